"""Per-guild registries of roles and users barred from winning giveaways."""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, Generic, List, Optional, TypeVar, Union

import discord

from .audit import AuditLog
from .embeds import exclusion_embed
from .models import ExcludedRole, ExcludedUser
from .storage import GiveawayStorage

log = logging.getLogger(__name__)

RecordT = TypeVar("RecordT", ExcludedRole, ExcludedUser)
Target = Union[discord.abc.Snowflake, discord.Role, discord.abc.User]


def _normalise_reason(reason: Optional[str]) -> Optional[str]:
    if reason is None:
        return None
    reason = reason.strip()
    return reason or None


class ExclusionRegistry(Generic[RecordT]):
    """In-memory mirror of the persisted exclusions of one kind.

    Records are written to storage before they are inserted into the cache,
    so a failed write leaves the cache unchanged.
    """

    kind = "Entity"

    def __init__(self, storage: GiveawayStorage, audit: AuditLog) -> None:
        self.storage = storage
        self.audit = audit
        self._excluded: Dict[int, Dict[int, RecordT]] = {}
        self._guild_locks: Dict[int, asyncio.Lock] = {}

    def is_excluded(self, guild_id: int, target_id: int) -> bool:
        return target_id in self._excluded.get(guild_id, {})

    def get(self, guild_id: int, target_id: int) -> Optional[RecordT]:
        return self._excluded.get(guild_id, {}).get(target_id)

    def excluded_ids(self, guild_id: int) -> List[int]:
        return list(self._excluded.get(guild_id, {}).keys())

    def records(self, guild_id: int) -> List[RecordT]:
        return list(self._excluded.get(guild_id, {}).values())

    async def exclude(
        self, staff_member: discord.Member, target: Target, reason: Optional[str] = None
    ) -> RecordT:
        guild = staff_member.guild
        reason = _normalise_reason(reason)
        async with self._lock_for(guild.id):
            existing = self.get(guild.id, target.id)
            if existing is not None:
                log.info(
                    "%s %s is already excluded in guild %s", self.kind, target.id, guild.id
                )
                return existing
            record = self._make_record(guild.id, target.id, reason, staff_member.id)
            await self._persist_add(record)
            cache = dict(self._excluded.get(guild.id, {}))
            cache[target.id] = record
            self._excluded[guild.id] = cache

        log.info(
            "%s %s was excluded by %s in guild %s. Reason: %s",
            self.kind,
            target.id,
            staff_member.id,
            guild.id,
            reason or "<none>",
        )
        await self.audit.log(
            guild,
            exclusion_embed(
                kind=self.kind,
                target_label=self._label(target),
                staff_member=staff_member,
                reason=reason,
                added=True,
            ),
        )
        return record

    async def include(self, staff_member: discord.Member, target: Target) -> bool:
        """Lift an exclusion; returns ``False`` when the target was not excluded."""
        guild = staff_member.guild
        async with self._lock_for(guild.id):
            record = self.get(guild.id, target.id)
            if record is None:
                return False
            await self._persist_remove(record)
            cache = dict(self._excluded.get(guild.id, {}))
            cache.pop(target.id, None)
            self._excluded[guild.id] = cache

        log.info(
            "The exclusion on %s %s was removed by %s in guild %s",
            self.kind.lower(),
            target.id,
            staff_member.id,
            guild.id,
        )
        await self.audit.log(
            guild,
            exclusion_embed(
                kind=self.kind,
                target_label=self._label(target),
                staff_member=staff_member,
                added=False,
            ),
        )
        return True

    async def reload_guild(self, guild: discord.Guild) -> int:
        """Rebuild the cached exclusions of a guild from storage."""
        records = await self._query(guild.id)
        cache: Dict[int, RecordT] = {}
        for record in records:
            if not self._keep_on_reload(guild, record):
                log.warning(
                    "Excluded %s %s not found (exclusion in guild %s)",
                    self.kind.lower(),
                    record.target_id,
                    guild.id,
                )
                continue
            cache[record.target_id] = record
        async with self._lock_for(guild.id):
            self._excluded[guild.id] = cache
        log.info("Loaded %d excluded %s(s) for guild %s", len(cache), self.kind.lower(), guild.id)
        return len(cache)

    def _lock_for(self, guild_id: int) -> asyncio.Lock:
        lock = self._guild_locks.get(guild_id)
        if lock is None:
            lock = asyncio.Lock()
            self._guild_locks[guild_id] = lock
        return lock

    @staticmethod
    def _label(target: Target) -> str:
        mention = getattr(target, "mention", None) or str(target.id)
        return f"{mention} ({target.id})"

    def _keep_on_reload(self, guild: discord.Guild, record: RecordT) -> bool:
        return True

    def _make_record(
        self, guild_id: int, target_id: int, reason: Optional[str], staff_member_id: int
    ) -> RecordT:
        raise NotImplementedError

    async def _persist_add(self, record: RecordT) -> None:
        raise NotImplementedError

    async def _persist_remove(self, record: RecordT) -> None:
        raise NotImplementedError

    async def _query(self, guild_id: int) -> List[RecordT]:
        raise NotImplementedError


class RoleExclusionRegistry(ExclusionRegistry[ExcludedRole]):
    kind = "Role"

    def _keep_on_reload(self, guild: discord.Guild, record: ExcludedRole) -> bool:
        return guild.get_role(record.role_id) is not None

    def _make_record(
        self, guild_id: int, target_id: int, reason: Optional[str], staff_member_id: int
    ) -> ExcludedRole:
        return ExcludedRole(
            guild_id=guild_id, role_id=target_id, reason=reason, staff_member_id=staff_member_id
        )

    async def _persist_add(self, record: ExcludedRole) -> None:
        await self.storage.add_excluded_role(record)

    async def _persist_remove(self, record: ExcludedRole) -> None:
        await self.storage.remove_excluded_role(record)

    async def _query(self, guild_id: int) -> List[ExcludedRole]:
        return await self.storage.query_excluded_roles(guild_id)


class UserExclusionRegistry(ExclusionRegistry[ExcludedUser]):
    kind = "User"

    def _make_record(
        self, guild_id: int, target_id: int, reason: Optional[str], staff_member_id: int
    ) -> ExcludedUser:
        return ExcludedUser(
            guild_id=guild_id, user_id=target_id, reason=reason, staff_member_id=staff_member_id
        )

    async def _persist_add(self, record: ExcludedUser) -> None:
        await self.storage.add_excluded_user(record)

    async def _persist_remove(self, record: ExcludedUser) -> None:
        await self.storage.remove_excluded_user(record)

    async def _query(self, guild_id: int) -> List[ExcludedUser]:
        return await self.storage.query_excluded_users(guild_id)
