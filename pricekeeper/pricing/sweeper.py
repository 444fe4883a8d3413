"""Due-change sweeper: a cooperative periodic task.

The timer loop and the on-demand trigger both call run_once(), which
delegates to PricingService.apply_due_scheduled_changes(). Concurrent runs
are safe because apply() refuses an already-applied change.
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from enum import Enum

import structlog

from pricekeeper.config import SweeperConfig
from pricekeeper.models import SweepResult, utcnow
from pricekeeper.pricing.service import PricingService

logger = structlog.get_logger(__name__)


class SweeperState(str, Enum):
    IDLE = "idle"
    SWEEPING = "sweeping"


class DueChangeSweeper:
    """Applies due scheduled changes on a fixed period.

    Example:
        >>> sweeper = DueChangeSweeper(service, interval_seconds=300)
        >>> sweeper.start()          # initial run after initial_delay_seconds
        >>> await sweeper.run_once() # manual "apply due now"
        >>> await sweeper.stop()     # lets an in-flight sweep finish
    """

    def __init__(
        self,
        service: PricingService,
        interval_seconds: float = 300.0,
        initial_delay_seconds: float = 10.0,
    ):
        self.service = service
        self.interval_seconds = interval_seconds
        self.initial_delay_seconds = initial_delay_seconds

        self._active = 0
        self._task: asyncio.Task | None = None
        self._stop_event: asyncio.Event | None = None
        self.last_result: SweepResult | None = None
        self.last_run_at: datetime | None = None

    @classmethod
    def from_config(cls, service: PricingService, config: SweeperConfig) -> DueChangeSweeper:
        return cls(
            service,
            interval_seconds=config.interval_seconds,
            initial_delay_seconds=config.initial_delay_seconds,
        )

    @property
    def state(self) -> SweeperState:
        return SweeperState.SWEEPING if self._active else SweeperState.IDLE

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self, now: datetime | None = None) -> SweepResult:
        """Idle -> Sweeping -> Idle. Returns the sweep outcome."""
        self._active += 1
        try:
            result = await self.service.apply_due_scheduled_changes(now=now)
        finally:
            self._active -= 1
        self.last_result = result
        self.last_run_at = utcnow() if now is None else now
        return result

    def start(self) -> None:
        """Start the periodic loop on the running event loop."""
        if self.running:
            return
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._loop(), name="due-change-sweeper")
        logger.info(
            "sweeper_started",
            interval_seconds=self.interval_seconds,
            initial_delay_seconds=self.initial_delay_seconds,
        )

    async def stop(self) -> None:
        """Signal the loop and wait for it; a sweep in progress is not cancelled."""
        if self._task is None:
            return
        assert self._stop_event is not None
        self._stop_event.set()
        await self._task
        self._task = None
        logger.info("sweeper_stopped")

    async def _wait(self, seconds: float) -> bool:
        """Sleep up to `seconds`; True if stop was requested meanwhile."""
        assert self._stop_event is not None
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return False
        return True

    async def _loop(self) -> None:
        delay = self.initial_delay_seconds
        while not await self._wait(delay):
            try:
                result = await self.run_once()
                if result.applied:
                    logger.info("scheduled_changes_applied", count=result.applied)
            except Exception:
                # A failed sweep (e.g. database down) must not kill the timer
                logger.exception("sweep_failed")
            delay = self.interval_seconds
