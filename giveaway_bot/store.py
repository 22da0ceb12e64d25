"""In-process cache of giveaways backed by :class:`GiveawayStorage`."""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Dict, Iterable, List, Optional

from .models import Giveaway
from .storage import GiveawayStorage

log = logging.getLogger(__name__)


class GiveawayStore:
    """Owns the canonical giveaway records and serialises writes per record."""

    def __init__(self, storage: GiveawayStorage) -> None:
        self.storage = storage
        self._giveaways: Dict[uuid.UUID, Giveaway] = {}
        self._record_locks: Dict[uuid.UUID, asyncio.Lock] = {}

    async def load(self) -> List[Giveaway]:
        giveaways = await self.storage.load_giveaways()
        self._giveaways = {giveaway.id: giveaway for giveaway in giveaways}
        log.info("Loaded %d total giveaway(s) from the database", len(self._giveaways))
        return list(self._giveaways.values())

    def get(self, giveaway_id: uuid.UUID) -> Optional[Giveaway]:
        return self._giveaways.get(giveaway_id)

    def all(self) -> List[Giveaway]:
        return list(self._giveaways.values())

    def lock_for(self, giveaway_id: uuid.UUID) -> asyncio.Lock:
        """Return the lock that serialises mutations of a single giveaway."""
        lock = self._record_locks.get(giveaway_id)
        if lock is None:
            lock = asyncio.Lock()
            self._record_locks[giveaway_id] = lock
        return lock

    async def create(self, giveaway: Giveaway) -> Giveaway:
        """Persist a new giveaway and add it to the cache."""
        if giveaway.id in self._giveaways:
            raise ValueError(f"Giveaway {giveaway.id} already exists")
        await self.storage.save_giveaway(giveaway)
        self._giveaways[giveaway.id] = giveaway
        return giveaway

    async def save(self, giveaway: Giveaway) -> None:
        await self.storage.save_giveaway(giveaway)
        self._giveaways.setdefault(giveaway.id, giveaway)

    async def save_many(self, giveaways: Iterable[Giveaway]) -> None:
        items = list(giveaways)
        if not items:
            return
        await self.storage.save_giveaways(items)
        for giveaway in items:
            self._giveaways.setdefault(giveaway.id, giveaway)
