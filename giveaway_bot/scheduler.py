from __future__ import annotations

import enum
import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Optional

from discord.ext import tasks

from .tracker import ActiveGiveawayTracker

if TYPE_CHECKING:
    from .giveaway_manager import GiveawayManager

log = logging.getLogger(__name__)


class SchedulerState(enum.Enum):
    STOPPED = "stopped"
    RUNNING = "running"


class ExpiryScheduler:
    """Periodically hands expired giveaways to the manager for ending."""

    def __init__(
        self,
        tracker: ActiveGiveawayTracker,
        manager: "GiveawayManager",
        interval: float = 1.0,
    ) -> None:
        if interval <= 0:
            raise ValueError("scheduler interval must be positive")
        self.tracker = tracker
        self.manager = manager
        self.interval = interval
        self.state = SchedulerState.STOPPED
        self._ticking = False
        self._loop = tasks.loop(seconds=interval)(self._run)
        self._loop.before_loop(self._wait_until_ready)

    def start(self) -> None:
        if self.state is SchedulerState.RUNNING:
            return
        log.info("Starting giveaway expiry checks every %s second(s)", self.interval)
        self._loop.start()
        self.state = SchedulerState.RUNNING

    def stop(self) -> None:
        if self.state is SchedulerState.STOPPED:
            return
        self._loop.cancel()
        self.state = SchedulerState.STOPPED
        log.info("Stopped giveaway expiry checks")

    async def tick(self, now: Optional[datetime] = None) -> int:
        """End every tracked giveaway whose end time has passed.

        Returns the number of giveaways this tick ended. A tick started while
        another is still in progress does nothing.
        """
        if self._ticking:
            log.debug("Previous expiry check still running; skipping")
            return 0
        self._ticking = True
        try:
            return await self._check_expired(now or datetime.now(tz=UTC))
        finally:
            self._ticking = False

    async def _check_expired(self, now: datetime) -> int:
        ended = 0
        for guild_id in self.tracker.guild_ids():
            if not self.manager.is_guild_ready(guild_id):
                log.debug("Guild %s is not ready; deferring its expired giveaways", guild_id)
                continue
            for giveaway in self.tracker.list_active(guild_id):
                if not self.tracker.is_active(giveaway):
                    continue
                if not self.tracker.has_expired(giveaway, now):
                    continue
                try:
                    if await self.manager.expire(giveaway):
                        ended += 1
                except Exception:
                    log.exception("Failed to end giveaway %s", giveaway.short_id)
        return ended

    async def _wait_until_ready(self) -> None:
        await self.manager.wait_until_ready()

    async def _run(self) -> None:
        await self.tick()
