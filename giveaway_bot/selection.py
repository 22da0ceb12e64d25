from __future__ import annotations

import logging
import random
import secrets
from typing import Iterable, List, Optional

import discord

from .eligibility import EligibilityValidator
from .models import Giveaway

log = logging.getLogger(__name__)


class WinnerSelector:
    """Draws unique winners from a giveaway's entrants."""

    def __init__(
        self, validator: EligibilityValidator, rng: Optional[random.Random] = None
    ) -> None:
        self.validator = validator
        self._rng = rng or secrets.SystemRandom()

    def select_winners(
        self,
        giveaway: Giveaway,
        guild: Optional[discord.Guild],
        keep: Iterable[discord.Member] = (),
    ) -> List[discord.Member]:
        """Select up to ``giveaway.winner_count`` valid winners.

        Members in ``keep`` that entered and are still valid are placed first
        and are not redrawn. The remaining places are filled by uniform draws
        from a copy of the entrant pool; every drawn entrant leaves the pool
        whether or not they validate, so the loop ends once the pool is empty
        even if nobody is eligible.
        """
        if guild is None:
            log.warning("Guild %s unavailable; giveaway %s has no winners", giveaway.guild_id, giveaway.short_id)
            return []

        pool = list(dict.fromkeys(giveaway.entrants))
        winners: List[discord.Member] = []
        kept_ids: set[int] = set()

        for member in keep:
            if len(winners) >= giveaway.winner_count:
                break
            if member.id in kept_ids or member.id not in pool:
                continue
            if not self.validator.validate_member(member, guild):
                continue
            kept_ids.add(member.id)
            winners.append(member)

        if kept_ids:
            pool = [user_id for user_id in pool if user_id not in kept_ids]

        while pool and len(winners) < giveaway.winner_count:
            index = self._rng.randrange(len(pool))
            pool[index], pool[-1] = pool[-1], pool[index]
            user_id = pool.pop()

            member = self.validator.validate_user(user_id, guild)
            if member is not None:
                winners.append(member)

        return winners
