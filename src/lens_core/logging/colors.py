"""ANSI color codes for terminal output.

256-color palette escapes used by the colored log format.

Usage:
    from lens_core.logging.colors import GREEN, RESET

    print(f"{GREEN}[SERVER]{RESET} ready")
"""

RESET = "\033[0m"

# Levels
RED = "\033[38;5;196m"  # ERROR
YELLOW = "\033[38;5;226m"  # WARN
CYAN = "\033[38;5;51m"  # INFO
LIGHT_BLUE = "\033[38;5;153m"  # DEBUG and context payloads

# Components
GREEN = "\033[38;5;82m"  # server
MAGENTA = "\033[38;5;201m"  # registry
ORANGE = "\033[38;5;208m"  # config

__all__ = [
    "RESET",
    "GREEN",
    "RED",
    "YELLOW",
    "ORANGE",
    "LIGHT_BLUE",
    "CYAN",
    "MAGENTA",
]
