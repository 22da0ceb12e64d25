from __future__ import annotations

from typing import Optional

import discord

from .exclusions import RoleExclusionRegistry, UserExclusionRegistry
from .models import Giveaway


class EligibilityValidator:
    """Decides whether a user may win a giveaway in a guild.

    A user is valid when they are currently a member of the guild, are not
    user-excluded there, and hold no role that is excluded there. The check is
    made at draw time, so entrants are never removed for becoming ineligible.
    """

    def __init__(
        self, role_exclusions: RoleExclusionRegistry, user_exclusions: UserExclusionRegistry
    ) -> None:
        self.role_exclusions = role_exclusions
        self.user_exclusions = user_exclusions

    def validate_member(self, member: discord.Member, guild: discord.Guild) -> bool:
        if member.guild.id != guild.id:
            raise ValueError("member must belong to the guild being validated")
        if self.user_exclusions.is_excluded(guild.id, member.id):
            return False
        return not any(
            self.role_exclusions.is_excluded(guild.id, role.id) for role in member.roles
        )

    def validate_user(self, user_id: int, guild: discord.Guild) -> Optional[discord.Member]:
        """Return the member for ``user_id`` when they are a valid winner, else ``None``."""
        if not user_id:
            return None
        member = guild.get_member(user_id)
        if member is None or not self.validate_member(member, guild):
            return None
        return member

    def count_excluded_entrants(self, giveaway: Giveaway, guild: Optional[discord.Guild]) -> int:
        if guild is None:
            return 0
        return sum(1 for user_id in giveaway.entrants if self.validate_user(user_id, guild) is None)
