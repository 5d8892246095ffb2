from __future__ import annotations

import asyncio
import enum
import logging
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)


class DebounceState(enum.Enum):
    IDLE = "idle"
    PENDING = "pending"


class Debouncer:
    """Trailing-edge debounce for an async callback on the running event loop.

    Every ``trigger()`` pushes the deadline ``delay_ms`` into the future; the
    callback runs once no trigger arrived within the window. ``cancel()`` drops
    a pending run and ``flush_now()`` runs the callback immediately, which is
    what shutdown paths use so buffered writes are not lost.
    """

    def __init__(self, callback: Callable[[], Awaitable[object]], delay_ms: int) -> None:
        self._callback = callback
        self.delay_ms = max(0, int(delay_ms))
        self._handle: asyncio.TimerHandle | None = None
        self._deadline: float | None = None
        self._tasks: set[asyncio.Task] = set()

    @property
    def state(self) -> DebounceState:
        return DebounceState.PENDING if self._handle is not None else DebounceState.IDLE

    @property
    def deadline(self) -> float | None:
        """Loop time at which the pending callback fires, if any."""

        return self._deadline

    def trigger(self) -> None:
        loop = asyncio.get_running_loop()
        if self._handle is not None:
            self._handle.cancel()
        delay_s = self.delay_ms / 1000.0
        self._deadline = loop.time() + delay_s
        self._handle = loop.call_later(delay_s, self._fire)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
        self._handle = None
        self._deadline = None

    async def flush_now(self) -> None:
        self.cancel()
        await self._run()

    async def wait_idle(self) -> None:
        """Wait for callbacks already started by the timer to finish."""

        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _fire(self) -> None:
        self._handle = None
        self._deadline = None
        task = asyncio.get_running_loop().create_task(self._run())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run(self) -> None:
        try:
            await self._callback()
        except Exception as exc:
            logger.exception("debounced callback failed", exc_info=exc)
