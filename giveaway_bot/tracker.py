from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

from .models import Giveaway

log = logging.getLogger(__name__)


class ActiveGiveawayTracker:
    """Per-guild working set of giveaways that have not ended yet.

    Mutations are serialised by a lock; readers get snapshots, so a scan can
    run while another task adds or removes entries.
    """

    def __init__(self) -> None:
        self._active: Dict[int, List[Giveaway]] = {}
        self._lock = asyncio.Lock()

    async def load(self, giveaways: Iterable[Giveaway]) -> int:
        """Track every giveaway whose end has not been handled, expired or not."""
        loaded = 0
        async with self._lock:
            self._active.clear()
            for giveaway in giveaways:
                if giveaway.end_handled:
                    continue
                self._active.setdefault(giveaway.guild_id, []).append(giveaway)
                loaded += 1
        log.info("Loaded %d active giveaway(s) from the database", loaded)
        return loaded

    async def add(self, giveaway: Giveaway) -> bool:
        if giveaway.end_handled:
            log.warning("Refusing to track giveaway %s; it has already ended", giveaway.short_id)
            return False
        async with self._lock:
            active = self._active.setdefault(giveaway.guild_id, [])
            if any(item is giveaway for item in active):
                return False
            log.debug(
                "Tracking giveaway %s (%s) in guild %s",
                giveaway.short_id,
                giveaway.title,
                giveaway.guild_id,
            )
            active.append(giveaway)
            return True

    async def remove(self, giveaway: Giveaway) -> bool:
        async with self._lock:
            return self._remove_locked(giveaway)

    async def claim(self, giveaway: Giveaway) -> bool:
        """Atomically mark an active giveaway as ended and stop tracking it.

        Returns ``True`` only for the caller that performed the transition.
        """
        async with self._lock:
            if giveaway.end_handled or not self._contains(giveaway):
                return False
            giveaway.end_handled = True
            self._remove_locked(giveaway)
            return True

    def is_active(self, giveaway: Giveaway) -> bool:
        return not giveaway.end_handled and self._contains(giveaway)

    @staticmethod
    def has_expired(giveaway: Giveaway, now: Optional[datetime] = None) -> bool:
        return giveaway.has_expired(now)

    def list_active(self, guild_id: int) -> Tuple[Giveaway, ...]:
        return tuple(self._active.get(guild_id, ()))

    def guild_ids(self) -> Tuple[int, ...]:
        return tuple(self._active.keys())

    def __len__(self) -> int:
        return sum(len(items) for items in self._active.values())

    def _contains(self, giveaway: Giveaway) -> bool:
        return any(item is giveaway for item in self._active.get(giveaway.guild_id, ()))

    def _remove_locked(self, giveaway: Giveaway) -> bool:
        active = self._active.get(giveaway.guild_id)
        if active is None:
            log.warning(
                "Guild %s for giveaway %s is not tracked", giveaway.guild_id, giveaway.short_id
            )
            return False
        for index, item in enumerate(active):
            if item is giveaway:
                del active[index]
                log.debug(
                    "Removing tracking for giveaway %s in guild %s",
                    giveaway.short_id,
                    giveaway.guild_id,
                )
                return True
        return False
