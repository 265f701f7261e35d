"""Protocol Client - owns one MCP server child process.

Spawns the server, performs the initialize handshake and correlates
JSON-RPC requests with responses by id. Stdout frames and the process
exit are funnelled through one ordered event queue and consumed by a
single dispatcher task, so correlation needs no locking.
"""

import asyncio
import os
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from mcp.types import (
    Implementation,
    InitializeResult,
    JSONRPCError,
    JSONRPCRequest,
    ServerCapabilities,
)
from pydantic import ValidationError

from lens_core.config.models import RuntimeConfig, ServerConfig
from lens_core.errors import LensError, create_error
from lens_core.logging import LensLogger
from lens_core.types import ConnectionState

from .framing import FrameReader, iter_frames
from .pending import PendingRequest, PendingRequests
from .protocol import (
    METHOD_INITIALIZE,
    METHOD_INITIALIZED,
    METHOD_TOOLS_LIST,
    Frame,
    JSONRPCBuilder,
    JSONRPCReply,
)
from .types import RpcFailure, RpcResult, RpcSuccess, ToolDescriptor

# Receives server name and the client whose process exited unexpectedly
ExitCallback = Callable[[str, "ProtocolClient"], None]


@dataclass(frozen=True)
class FrameReceived:
    """A complete message read from stdout."""

    message: Frame


@dataclass(frozen=True)
class ProcessExited:
    """The child process is gone and stdout reached EOF."""

    returncode: int | None


class ProtocolClient:
    """Single MCP server connection over stdio.

    Lifecycle: idle -> starting -> handshake -> ready -> (stopping -> stopped) | errored.
    A client is started at most once; restarting means building a new client.
    """

    def __init__(
        self,
        config: ServerConfig,
        settings: RuntimeConfig | None = None,
        logger: LensLogger | None = None,
        on_exit: ExitCallback | None = None,
    ):
        """Initialize protocol client.

        Args:
            config: Server definition
            settings: Runtime settings (timeouts, client identity)
            logger: Optional logger
            on_exit: Called when the process exits while handshaking or ready
        """
        self._config = config
        self._settings = settings or RuntimeConfig()
        self._logger = logger.server(config.name) if logger else None
        self._on_exit = on_exit

        self._state = ConnectionState.IDLE
        self._process: asyncio.subprocess.Process | None = None
        self._returncode: int | None = None
        self._closing = False

        self._next_id = 0
        self._pending = PendingRequests()
        self._reader = FrameReader(self._logger, config.name)
        self._events: asyncio.Queue[FrameReceived | ProcessExited] = asyncio.Queue()
        self._tasks: list[asyncio.Task[None]] = []

        self._server_info: Implementation | None = None
        self._server_capabilities: ServerCapabilities | None = None
        self._protocol_version: str | None = None
        self._last_error: LensError | None = None

    @property
    def name(self) -> str:
        return self._config.name

    @property
    def config(self) -> ServerConfig:
        return self._config

    @property
    def state(self) -> ConnectionState:
        """Current lifecycle state."""
        return self._state

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process else None

    @property
    def returncode(self) -> int | None:
        return self._returncode

    @property
    def server_info(self) -> Implementation | None:
        """serverInfo from the initialize result."""
        return self._server_info

    @property
    def server_capabilities(self) -> ServerCapabilities | None:
        return self._server_capabilities

    @property
    def protocol_version(self) -> str | None:
        """Protocol version the server agreed to."""
        return self._protocol_version

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def last_error(self) -> LensError | None:
        """Most recent connection-level failure."""
        return self._last_error

    @property
    def discarded_frames(self) -> int:
        return self._reader.discarded

    def is_running(self) -> bool:
        """True iff the handshake completed and the process is alive."""
        return self._state == ConnectionState.READY

    async def start(self) -> InitializeResult:
        """Spawn the server process and complete the initialize handshake.

        Returns:
            The server's validated InitializeResult

        Raises:
            LensError(CLIENT_STATE_INVALID): If the client already left idle
            SpawnError: If the executable cannot be started
            HandshakeError: If the server does not complete initialize
        """
        if self._state != ConnectionState.IDLE:
            raise create_error(
                "CLIENT_STATE_INVALID",
                server_name=self.name,
                state=self._state.value,
            )

        self._state = ConnectionState.STARTING
        await self._spawn()
        if self._closing:
            # Stopped while the process was being spawned
            self._signal()
            raise create_error("PROCESS_EXITED", server_name=self.name, detail="Server stopped")
        self._start_tasks()
        self._state = ConnectionState.HANDSHAKE

        try:
            result = await self._handshake()
        except LensError as error:
            if self._state not in (ConnectionState.STOPPING, ConnectionState.STOPPED):
                self._last_error = error
                self._state = ConnectionState.ERRORED
            if self._logger:
                self._logger.handshake_failed(error)
            await self._shutdown("Handshake failed")
            raise
        except asyncio.CancelledError:
            self.terminate()
            raise

        self._server_info = result.serverInfo
        self._server_capabilities = result.capabilities
        self._protocol_version = str(result.protocolVersion)
        self._state = ConnectionState.READY
        if self._logger:
            self._logger.handshake_completed(
                f"{result.serverInfo.name} {result.serverInfo.version}",
                self._protocol_version,
            )
        return result

    async def request(
        self,
        method: str,
        params: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> RpcResult:
        """Send a request and wait for its response.

        Args:
            method: JSON-RPC method
            params: Optional parameters
            timeout: Seconds to wait (defaults to RuntimeConfig.request_timeout)

        Returns:
            RpcSuccess or RpcFailure carrying the response id

        Raises:
            NotReadyError: If the handshake has not completed
            RequestTimeout: If no response arrived in time
            ProcessExit: If the process exited or was stopped meanwhile
        """
        if self._state != ConnectionState.READY:
            raise create_error(
                "CLIENT_NOT_READY",
                server_name=self.name,
                state=self._state.value,
                method=method,
            )
        return await self._call(method, params, timeout)

    def notify(self, method: str, params: dict[str, Any] | None = None) -> None:
        """Send a notification. No response is expected.

        Raises:
            NotReadyError: If the handshake has not completed
        """
        if self._state != ConnectionState.READY:
            raise create_error(
                "CLIENT_NOT_READY",
                server_name=self.name,
                state=self._state.value,
                method=method,
            )
        self._write(JSONRPCBuilder.notification(method, params))

    async def list_tools(self) -> list[ToolDescriptor]:
        """Fetch the server's tools.

        Never raises: any failure is logged and yields an empty list.
        """
        try:
            reply = await self.request(METHOD_TOOLS_LIST)
        except LensError as e:
            self._warn(f"Failed to list tools: {e.message}")
            return []

        if isinstance(reply, RpcFailure):
            self._warn(f"Failed to list tools: {reply.message} (code {reply.code})")
            return []

        entries = reply.result.get("tools") if isinstance(reply.result, dict) else None
        if not isinstance(entries, list):
            self._warn("Failed to list tools: result has no tools array")
            return []

        tools = []
        for entry in entries:
            tool = ToolDescriptor.from_dict(entry)
            if tool is None:
                self._warn(f"Skipping tool entry without a name: {entry!r}")
                continue
            tools.append(tool)
        return tools

    async def stop(self) -> None:
        """Stop the server. Idempotent.

        Pending requests fail with ProcessExit, the process gets SIGTERM and
        is killed if it outlives RuntimeConfig.stop_timeout.
        """
        if self._state in (
            ConnectionState.IDLE,
            ConnectionState.STOPPING,
            ConnectionState.STOPPED,
        ):
            return

        self._state = ConnectionState.STOPPING
        pending = await self._shutdown("Server stopped")
        self._state = ConnectionState.STOPPED
        if self._logger:
            self._logger.stopped(pending)

    def terminate(self) -> None:
        """Signal the process and release the connection without waiting."""
        if self._state in (ConnectionState.IDLE, ConnectionState.STOPPED):
            return

        self._closing = True
        pending = self._reject_pending("Server stopped")
        self._signal()
        self._cancel_tasks()
        self._state = ConnectionState.STOPPED
        if self._logger:
            self._logger.stopped(pending)

    # Internals

    async def _spawn(self) -> None:
        command = self._config.command
        args = list(self._config.args)
        env = {**os.environ, **self._config.env}

        if self._logger:
            self._logger.spawning(command, args)

        try:
            self._process = await asyncio.create_subprocess_exec(
                command,
                *args,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=env,
            )
        except OSError as e:
            error = create_error(
                "SPAWN_FAILED",
                cause=e,
                server_name=self.name,
                detail=f"{self._config.command_line}: {e}",
            )
            self._last_error = error
            self._state = ConnectionState.ERRORED
            if self._logger:
                self._logger.spawn_failed(error)
            raise error from e

        if self._logger:
            self._logger.spawned(self._process.pid)

    def _start_tasks(self) -> None:
        self._tasks = [
            asyncio.create_task(self._read_stdout(), name=f"lens:{self.name}:stdout"),
            asyncio.create_task(self._drain_stderr(), name=f"lens:{self.name}:stderr"),
            asyncio.create_task(self._dispatch(), name=f"lens:{self.name}:dispatch"),
            asyncio.create_task(
                self._pending.run_expiry(self._on_expired),
                name=f"lens:{self.name}:expiry",
            ),
        ]

    async def _handshake(self) -> InitializeResult:
        params = JSONRPCBuilder.initialize_params(self._settings)
        try:
            reply = await self._call(METHOD_INITIALIZE, params, None)
        except LensError as e:
            raise self._handshake_error(e.message, e) from e

        if isinstance(reply, RpcFailure):
            raise self._handshake_error(
                f"initialize returned error {reply.code}: {reply.message}",
                reply.to_error(self.name, METHOD_INITIALIZE),
            )

        try:
            result = InitializeResult.model_validate(reply.result)
        except ValidationError as e:
            raise self._handshake_error(f"Malformed initialize result: {e}", e) from e

        self._write(JSONRPCBuilder.notification(METHOD_INITIALIZED))
        return result

    def _handshake_error(self, detail: str, cause: BaseException) -> LensError:
        return create_error(
            "HANDSHAKE_FAILED",
            cause=cause,
            server_name=self.name,
            method=METHOD_INITIALIZE,
            detail=detail,
        )

    async def _call(
        self,
        method: str,
        params: dict[str, Any] | None,
        timeout: float | None,
    ) -> RpcResult:
        if timeout is None:
            timeout = self._settings.request_timeout

        self._next_id += 1
        request_id = self._next_id
        entry = self._pending.add(request_id, method, timeout)

        try:
            self._write(JSONRPCBuilder.request(method, params, request_id))
            return await entry.future
        except (BrokenPipeError, ConnectionResetError) as e:
            raise create_error(
                "PROCESS_EXITED",
                cause=e,
                server_name=self.name,
                method=method,
                request_id=request_id,
            ) from e
        finally:
            self._pending.discard(request_id)

    def _write(self, message: dict[str, Any]) -> None:
        if self._process is None or self._process.stdin is None:
            raise create_error("PROCESS_EXITED", server_name=self.name)
        self._process.stdin.write(JSONRPCBuilder.encode(message))

    async def _read_stdout(self) -> None:
        process = self._process
        assert process is not None and process.stdout is not None
        try:
            async for message in iter_frames(
                process.stdout, self._reader, self._settings.read_chunk_size
            ):
                self._events.put_nowait(FrameReceived(message))
        except OSError as e:
            self._warn(f"Error reading stdout: {e}")

        returncode = await process.wait()
        self._events.put_nowait(ProcessExited(returncode))

    async def _drain_stderr(self) -> None:
        process = self._process
        assert process is not None and process.stderr is not None
        buffer = b""
        while True:
            chunk = await process.stderr.read(self._settings.read_chunk_size)
            if not chunk:
                break
            *lines, buffer = (buffer + chunk).split(b"\n")
            for raw in lines:
                self._log_stderr(raw)
        if buffer:
            self._log_stderr(buffer)

    def _log_stderr(self, raw: bytes) -> None:
        line = raw.decode("utf-8", errors="replace").rstrip()
        if line and self._logger:
            self._logger.stderr(line)

    async def _dispatch(self) -> None:
        while True:
            event = await self._events.get()
            if isinstance(event, ProcessExited):
                self._handle_exit(event.returncode)
                return
            self._handle_frame(event.message)

    def _handle_frame(self, frame: Frame) -> None:
        result: RpcResult
        if isinstance(frame, JSONRPCReply):
            result = RpcSuccess(id=frame.id, result=frame.result)  # type: ignore[arg-type]
        elif isinstance(frame, JSONRPCError):
            result = RpcFailure(
                id=frame.id,  # type: ignore[arg-type]
                code=frame.error.code,
                message=frame.error.message,
                data=frame.error.data,
            )
        elif isinstance(frame, JSONRPCRequest):
            self._unmatched(f"server request '{frame.method}'")
            return
        else:
            self._unmatched(f"notification '{frame.method}'")
            return

        request_id = frame.id
        if isinstance(request_id, bool) or not isinstance(request_id, int):
            self._unmatched(f"response with non-integer id {request_id!r}")
            return
        if not self._pending.resolve(request_id, result):
            self._unmatched(f"response with unknown id {request_id}")

    def _handle_exit(self, returncode: int | None) -> None:
        self._returncode = returncode
        if self._closing:
            return

        pending = self._reject_pending(f"Process exited with code {returncode}")
        self._last_error = create_error(
            "PROCESS_EXITED",
            server_name=self.name,
            detail=f"Process exited with code {returncode}",
        )
        self._state = ConnectionState.ERRORED
        if self._logger:
            self._logger.exited(returncode, pending)
        self._cancel_tasks()

        if self._on_exit:
            try:
                self._on_exit(self.name, self)
            except Exception as e:
                self._warn(f"Exit callback failed: {e}")

    def _on_expired(self, entry: PendingRequest) -> None:
        error = create_error(
            "REQUEST_TIMEOUT",
            server_name=self.name,
            method=entry.method,
            request_id=entry.id,
            timeout_seconds=entry.timeout,
        )
        if entry.fail(error) and self._logger:
            self._logger.request_timeout(entry.method, entry.id, entry.timeout)

    def _reject_pending(self, reason: str) -> int:
        return self._pending.reject_all(
            lambda entry: create_error(
                "PROCESS_EXITED",
                server_name=self.name,
                method=entry.method,
                request_id=entry.id,
                detail=reason,
            )
        )

    async def _shutdown(self, reason: str) -> int:
        """Reject pending work, stop the process, then the background tasks."""
        self._closing = True
        pending = self._reject_pending(reason)
        self._signal()
        await self._wait_for_exit()
        self._cancel_tasks()
        current = asyncio.current_task()
        tasks = [task for task in self._tasks if task is not current]
        await asyncio.gather(*tasks, return_exceptions=True)
        return pending

    def _signal(self) -> None:
        process = self._process
        if process is None or process.returncode is not None:
            return
        if process.stdin is not None and not process.stdin.is_closing():
            process.stdin.close()
        try:
            process.terminate()
        except ProcessLookupError:
            pass

    async def _wait_for_exit(self) -> None:
        process = self._process
        if process is None:
            return

        try:
            await asyncio.wait_for(process.wait(), timeout=self._settings.stop_timeout)
        except TimeoutError:
            self._warn(f"Process did not exit within {self._settings.stop_timeout}s, killing")
            try:
                process.kill()
            except ProcessLookupError:
                pass
            try:
                await asyncio.wait_for(process.wait(), timeout=self._settings.stop_timeout)
            except TimeoutError:
                self._warn("Process still running after SIGKILL")
                return
        self._returncode = process.returncode

    def _cancel_tasks(self) -> None:
        current = asyncio.current_task()
        for task in self._tasks:
            if task is not current and not task.done():
                task.cancel()

    def _unmatched(self, description: str) -> None:
        if self._logger:
            self._logger.unmatched(description)

    def _warn(self, message: str) -> None:
        if self._logger:
            self._logger.warn(message)
