"""Serialized outbound operation queue.

Control messages and audio frames must reach the transport in the order the
caller issued them, even when they are issued before the socket is open. The
queue starts *held*: submissions are buffered until :meth:`release` is called
(on connect), then drained strictly FIFO by a single worker task, one
operation in flight at a time.
"""

import asyncio
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from ...core.config import setup_logging

logger = setup_logging(__name__)

Operation = Callable[[], Awaitable[None]]
ErrorCallback = Callable[[Exception, str], None]


@dataclass
class _QueuedOperation:
    run: Operation
    label: str
    kind: str


class OrderedWriteQueue:
    """Single-worker FIFO of async write operations.

    States:
        held      - operations are buffered, nothing runs (initial state)
        draining  - the worker runs buffered and new operations in order
        closed    - held permanently; pending work is dropped and new
                    submissions are discarded until :meth:`reopen`

    A failing operation is reported through ``on_error`` and the worker moves
    on to the next one.
    """

    def __init__(self, on_error: ErrorCallback | None = None, name: str = "writes"):
        self.name = name
        self.on_error = on_error
        self._pending: deque[_QueuedOperation] = deque()
        self._held = True
        self._closed = False
        self._worker: asyncio.Task | None = None
        self._idle = asyncio.Event()
        self._idle.set()
        self.executed = 0

    @property
    def is_held(self) -> bool:
        return self._held

    @property
    def is_closed(self) -> bool:
        return self._closed

    def __len__(self) -> int:
        return len(self._pending)

    def pending_count(self, kind: str | None = None) -> int:
        if kind is None:
            return len(self._pending)
        return sum(1 for op in self._pending if op.kind == kind)

    def submit(self, operation: Operation, label: str = "operation", kind: str = "control") -> bool:
        """Queue an operation; returns False if the queue is closed."""
        if self._closed:
            logger.debug(f"[{self.name}] discarding {label}: queue closed")
            return False

        self._pending.append(_QueuedOperation(operation, label, kind))
        self._idle.clear()
        logger.debug(f"[{self.name}] queued {label} ({len(self._pending)} pending)")
        self._ensure_worker()
        return True

    def release(self) -> None:
        """Start draining buffered and future operations."""
        if self._closed:
            logger.debug(f"[{self.name}] release ignored: queue closed")
            return
        self._held = False
        logger.debug(f"[{self.name}] released with {len(self._pending)} pending")
        self._ensure_worker()

    def hold(self) -> None:
        """Stop draining after the operation currently in flight, if any."""
        self._held = True
        self._mark_idle_if_done()

    def close(self) -> int:
        """Hold permanently and drop everything pending. Returns the drop count."""
        self._held = True
        self._closed = True
        dropped = len(self._pending)
        self._pending.clear()
        if dropped:
            logger.debug(f"[{self.name}] closed, dropped {dropped} pending operations")
        self._mark_idle_if_done()
        return dropped

    def reopen(self) -> None:
        """Return a closed queue to the initial held state."""
        self._closed = False
        self._held = True
        self._pending.clear()
        self._mark_idle_if_done()

    async def join(self) -> None:
        """Wait until nothing is pending and no operation is in flight.

        Returns immediately while held, since held work cannot make progress.
        """
        while not self._held and not self._idle.is_set():
            await self._idle.wait()

    def _ensure_worker(self) -> None:
        if self._held or not self._pending:
            return
        if self._worker is not None and not self._worker.done():
            return
        self._idle.clear()
        self._worker = asyncio.get_running_loop().create_task(self._drain(), name=f"{self.name}-drain")

    def _mark_idle_if_done(self) -> None:
        in_flight = self._worker is not None and not self._worker.done()
        if not self._pending and not in_flight:
            self._idle.set()
        elif self._held and not in_flight:
            self._idle.set()

    async def _drain(self) -> None:
        try:
            while self._pending and not self._held:
                op = self._pending.popleft()
                try:
                    await op.run()
                except Exception as e:
                    logger.error(f"[{self.name}] {op.label} failed: {e}")
                    if self.on_error:
                        try:
                            self.on_error(e, op.label)
                        except Exception as callback_error:
                            logger.error(f"Error in write failure callback: {callback_error}")
                else:
                    self.executed += 1
        finally:
            self._worker = None
            if not self._pending or self._held:
                self._idle.set()
