"""In-flight request table with deadline expiry."""

import asyncio
import heapq
import time
from collections.abc import Callable, Iterator
from dataclasses import dataclass

from .types import RpcResult


@dataclass
class PendingRequest:
    """One request awaiting its response."""

    id: int
    method: str
    future: asyncio.Future[RpcResult]
    created_at: float
    deadline: float
    timeout: float

    def succeed(self, result: RpcResult) -> bool:
        """Settle with a response. False if already settled or abandoned."""
        if self.future.done():
            return False
        self.future.set_result(result)
        return True

    def fail(self, error: BaseException) -> bool:
        """Settle with an error. False if already settled or abandoned."""
        if self.future.done():
            return False
        self.future.set_exception(error)
        return True


class PendingRequests:
    """Pending requests keyed by id, plus a min-heap of deadlines.

    Every entry leaves the table exactly once: on response, on expiry or
    on teardown. Removing an id that is already gone is a no-op, so a
    late response after a timeout is simply reported as unmatched.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        """Initialize pending table.

        Args:
            clock: Monotonic time source in seconds
        """
        self._clock = clock
        self._entries: dict[int, PendingRequest] = {}
        self._deadlines: list[tuple[float, int]] = []
        self._wakeup = asyncio.Event()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, request_id: object) -> bool:
        return request_id in self._entries

    def __iter__(self) -> Iterator[PendingRequest]:
        return iter(list(self._entries.values()))

    def add(self, request_id: int, method: str, timeout: float) -> PendingRequest:
        """Register a request and its deadline.

        Raises:
            ValueError: If the id is already pending
        """
        if request_id in self._entries:
            raise ValueError(f"Request id {request_id} is already pending")

        now = self._clock()
        entry = PendingRequest(
            id=request_id,
            method=method,
            future=asyncio.get_running_loop().create_future(),
            created_at=now,
            deadline=now + timeout,
            timeout=timeout,
        )
        self._entries[request_id] = entry

        earliest = self.next_deadline()
        heapq.heappush(self._deadlines, (entry.deadline, request_id))
        if earliest is None or entry.deadline < earliest:
            self._wakeup.set()
        return entry

    def get(self, request_id: int) -> PendingRequest | None:
        return self._entries.get(request_id)

    def discard(self, request_id: int) -> PendingRequest | None:
        """Remove an entry without settling it."""
        return self._entries.pop(request_id, None)

    def resolve(self, request_id: int, result: RpcResult) -> bool:
        """Settle a request with its response.

        Returns:
            True if the id was pending
        """
        entry = self._entries.pop(request_id, None)
        if entry is None:
            return False
        entry.succeed(result)
        return True

    def reject(self, request_id: int, error: BaseException) -> bool:
        """Settle a request with an error.

        Returns:
            True if the id was pending
        """
        entry = self._entries.pop(request_id, None)
        if entry is None:
            return False
        entry.fail(error)
        return True

    def reject_all(self, make_error: Callable[[PendingRequest], BaseException]) -> int:
        """Fail every pending request and empty the table.

        Returns:
            Number of requests rejected
        """
        entries = list(self._entries.values())
        self._entries.clear()
        self._deadlines.clear()
        for entry in entries:
            entry.fail(make_error(entry))
        return len(entries)

    def next_deadline(self) -> float | None:
        """Earliest deadline of a still-pending request."""
        while self._deadlines:
            deadline, request_id = self._deadlines[0]
            entry = self._entries.get(request_id)
            if entry is not None and entry.deadline == deadline:
                return deadline
            heapq.heappop(self._deadlines)
        return None

    def expire(self, now: float | None = None) -> list[PendingRequest]:
        """Remove and return entries whose deadline has passed.

        The caller settles the returned entries.
        """
        if now is None:
            now = self._clock()

        expired: list[PendingRequest] = []
        while self._deadlines and self._deadlines[0][0] <= now:
            deadline, request_id = heapq.heappop(self._deadlines)
            entry = self._entries.get(request_id)
            if entry is None or entry.deadline != deadline:
                continue
            del self._entries[request_id]
            expired.append(entry)
        return expired

    async def run_expiry(self, on_expired: Callable[[PendingRequest], None]) -> None:
        """Sleep until the earliest deadline, expire, repeat. Runs until cancelled.

        Args:
            on_expired: Called once for each expired entry
        """
        while True:
            self._wakeup.clear()
            deadline = self.next_deadline()
            if deadline is None:
                await self._wakeup.wait()
                continue

            delay = deadline - self._clock()
            if delay > 0:
                try:
                    await asyncio.wait_for(self._wakeup.wait(), timeout=delay)
                    continue
                except TimeoutError:
                    pass

            for entry in self.expire():
                on_expired(entry)
