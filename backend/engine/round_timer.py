"""
Round Timer — one countdown per session.

idle → running → expired, or → stopped when the game ends another way.
Started once (by the first kill); a second start is ignored so a repeated
first-kill branch can never double-tick. Ticks every `tick_interval`
seconds, awaiting on_tick(remaining) each time, and awaits on_expire()
exactly once when the counter reaches zero.
"""
import asyncio
import logging
from enum import Enum
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class TimerState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    EXPIRED = "expired"
    STOPPED = "stopped"


class RoundTimer:
    def __init__(
        self,
        on_tick: Callable[[int], Awaitable[None]],
        on_expire: Callable[[], Awaitable[None]],
        tick_interval: float = 1.0,
    ):
        self._on_tick = on_tick
        self._on_expire = on_expire
        self.tick_interval = tick_interval
        self.state = TimerState.IDLE
        self.remaining = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self.state == TimerState.RUNNING

    def start(self, duration: int) -> bool:
        """Begin the countdown. Returns False if the timer was already used."""
        if self.state != TimerState.IDLE:
            logger.debug("Timer start ignored (state=%s)", self.state.value)
            return False
        self.remaining = duration
        self.state = TimerState.RUNNING
        self._task = asyncio.create_task(self._run(), name="round-timer")
        logger.info("Round timer started: %ds", duration)
        return True

    def stop(self) -> None:
        """Tear down the tick source. Safe from inside the timer's own callbacks."""
        if self.state == TimerState.RUNNING:
            self.state = TimerState.STOPPED
            logger.info("Round timer stopped with %ds left", self.remaining)
        task = self._task
        if task and not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def wait(self) -> None:
        """Wait for the countdown task to finish (expiry or cancellation)."""
        task = self._task
        if task is None:
            return
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _run(self) -> None:
        try:
            while self.remaining > 0:
                await asyncio.sleep(self.tick_interval)
                if self.state != TimerState.RUNNING:
                    return
                self.remaining -= 1
                await self._on_tick(self.remaining)
            if self.state != TimerState.RUNNING:
                return
            self.state = TimerState.EXPIRED
            logger.info("Round timer expired")
            await self._on_expire()
        except asyncio.CancelledError:
            logger.debug("Round timer task cancelled")
