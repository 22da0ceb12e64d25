from __future__ import annotations

import asyncio
import logging
import random
import re
import uuid
from datetime import UTC, datetime
from typing import List, Optional, Sequence, Tuple, Union

import discord

from . import embeds
from .audit import AuditLog
from .config import Config
from .eligibility import EligibilityValidator
from .errors import (
    GiveawayNotActiveError,
    GiveawayNotFoundError,
    GiveawayStillActiveError,
    GiveawayValidationError,
    GiveawayWrongGuildError,
    GuildUnavailableError,
    WinnerCountUnchangedError,
)
from .exclusions import RoleExclusionRegistry, UserExclusionRegistry
from .ids import new_giveaway_id, parse_giveaway_id
from .models import Giveaway, GiveawayCreationOptions, JoinResult, RedrawResult
from .selection import WinnerSelector
from .storage import GiveawayStorage
from .store import GiveawayStore
from .tracker import ActiveGiveawayTracker
from .views import GiveawayJoinView

log = logging.getLogger(__name__)

USER_MENTION_RE = re.compile(r"^<@!?(\d+)>$")

GiveawayRef = Union[str, uuid.UUID]


class GiveawayManager:
    """Coordinates giveaway lifecycle, persistence, and Discord interactions."""

    def __init__(
        self,
        bot: discord.Client,
        config: Config,
        storage: GiveawayStorage,
        *,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.bot = bot
        self.config = config
        self.storage = storage
        self.audit = AuditLog(config)
        self.store = GiveawayStore(storage)
        self.tracker = ActiveGiveawayTracker()
        self.role_exclusions = RoleExclusionRegistry(storage, self.audit)
        self.user_exclusions = UserExclusionRegistry(storage, self.audit)
        self.validator = EligibilityValidator(self.role_exclusions, self.user_exclusions)
        self.selector = WinnerSelector(self.validator, rng=rng)
        self._ready_guilds: set[int] = set()

    async def load(self) -> None:
        giveaways = await self.store.load()
        await self.tracker.load(giveaways)

    def register_views(self) -> int:
        """Re-attach join buttons to the announcements of active giveaways."""
        registered = 0
        for guild_id in self.tracker.guild_ids():
            for giveaway in self.tracker.list_active(guild_id):
                if not giveaway.message_id:
                    continue
                self.bot.add_view(self._build_view(giveaway), message_id=giveaway.message_id)
                registered += 1
        return registered

    async def reload_exclusions(self, guild: discord.Guild) -> None:
        await self.role_exclusions.reload_guild(guild)
        await self.user_exclusions.reload_guild(guild)
        self._ready_guilds.add(guild.id)

    def forget_guild(self, guild_id: int) -> None:
        self._ready_guilds.discard(guild_id)

    def is_guild_ready(self, guild_id: int) -> bool:
        """Whether the guild is cached and its exclusions are loaded, so draws can run."""
        return guild_id in self._ready_guilds and self.get_guild(guild_id) is not None

    async def wait_until_ready(self) -> None:
        await self.bot.wait_until_ready()

    # --- Lookups ----------------------------------------------------------

    def get_giveaway(self, guild_id: int, giveaway_ref: GiveawayRef) -> Giveaway:
        """Find a giveaway by id, rejecting unknown ids and ids from other guilds."""
        if isinstance(giveaway_ref, uuid.UUID):
            giveaway_id = giveaway_ref
        else:
            giveaway_id = parse_giveaway_id(giveaway_ref)
        giveaway = self.store.get(giveaway_id)
        if giveaway is None:
            raise GiveawayNotFoundError(giveaway_ref)
        if giveaway.guild_id != guild_id:
            raise GiveawayWrongGuildError(giveaway_ref)
        return giveaway

    def is_active(self, giveaway: Giveaway) -> bool:
        return self.tracker.is_active(giveaway)

    def get_guild(self, guild_id: int) -> Optional[discord.Guild]:
        return self.bot.get_guild(guild_id)

    # --- Lifecycle --------------------------------------------------------

    async def create_giveaway(
        self, options: GiveawayCreationOptions, *, now: Optional[datetime] = None
    ) -> Giveaway:
        """Validate and persist a new giveaway.

        The giveaway is not tracked or announced here; see :meth:`start_giveaway`.
        """
        now = now or datetime.now(tz=UTC)
        title = (options.title or "").strip()
        description = (options.description or "").strip()
        if not title:
            raise GiveawayValidationError("A giveaway needs a title.")
        if not description:
            raise GiveawayValidationError("A giveaway needs a description.")
        if options.winner_count < 1:
            raise GiveawayValidationError("The number of winners must be greater than zero.")
        end_time = options.end_time.astimezone(UTC)
        if end_time <= now:
            raise GiveawayValidationError("The end time must be in the future.")
        start_time = (options.start_time or now).astimezone(UTC)
        if end_time <= start_time:
            raise GiveawayValidationError("The end time must be later than the start time.")

        giveaway = Giveaway(
            id=new_giveaway_id(),
            guild_id=options.guild_id,
            channel_id=options.channel_id,
            creator_id=options.creator_id,
            title=title,
            description=description,
            image_uri=options.image_uri or None,
            start_time=start_time,
            end_time=end_time,
            winner_count=options.winner_count,
        )
        await self.store.create(giveaway)
        log.info(
            "%s created giveaway %s (%s) in guild %s. Running %s to %s",
            options.creator_id,
            giveaway.short_id,
            giveaway.title,
            giveaway.guild_id,
            giveaway.start_time.isoformat(),
            giveaway.end_time.isoformat(),
        )
        await self.log_giveaway_creation(giveaway)
        return giveaway

    async def start_giveaway(self, options: GiveawayCreationOptions) -> Giveaway:
        giveaway = await self.create_giveaway(options)
        await self.tracker.add(giveaway)
        await self.announce(giveaway)
        return giveaway

    async def announce(self, giveaway: Giveaway) -> Optional[discord.Message]:
        """Post the public announcement with its join button."""
        channel = await self._fetch_text_channel(giveaway)
        if channel is None:
            log.error(
                "Giveaway %s could not be announced; channel %s was not found",
                giveaway.short_id,
                giveaway.channel_id,
            )
            return None

        view = self._build_view(giveaway)
        log.info("Announcing giveaway %s in channel %s", giveaway.short_id, channel.id)
        message = await channel.send(embed=self._public_embed(giveaway), view=view)
        self.bot.add_view(view, message_id=message.id)

        async with self.store.lock_for(giveaway.id):
            giveaway.message_id = message.id
            await self.store.save(giveaway)
        log.debug("Updated giveaway %s message ID to %s", giveaway.short_id, message.id)

        await self.update_log_message(giveaway)
        return message

    async def join(
        self, guild_id: int, giveaway_ref: GiveawayRef, member: discord.Member
    ) -> JoinResult:
        giveaway = self.get_giveaway(guild_id, giveaway_ref)
        async with self.store.lock_for(giveaway.id):
            if not self.tracker.is_active(giveaway) or giveaway.has_expired():
                log.warning(
                    "%s attempted to join ended giveaway %s (%s)",
                    member.id,
                    giveaway.short_id,
                    giveaway.title,
                )
                return JoinResult.NOT_ACTIVE
            if not giveaway.add_entrant(member.id):
                log.info("%s has already joined giveaway %s", member.id, giveaway.short_id)
                return JoinResult.ALREADY_JOINED
            try:
                await self.store.save(giveaway)
            except Exception:
                giveaway.remove_entrant(member.id)
                raise

        log.info("%s joined giveaway %s (%s)", member.id, giveaway.short_id, giveaway.title)
        await self.update_log_message(giveaway)
        return JoinResult.JOINED

    async def remove_from_active_giveaways(self, member: discord.Member) -> int:
        """Drop a departing member from every active giveaway they entered."""
        affected: List[Giveaway] = []
        for giveaway in self.tracker.list_active(member.guild.id):
            async with self.store.lock_for(giveaway.id):
                if giveaway.remove_entrant(member.id):
                    affected.append(giveaway)
        if not affected:
            return 0

        log.info(
            "Removing %s from %d giveaway(s) in guild %s",
            member.id,
            len(affected),
            member.guild.id,
        )
        await self.store.save_many(affected)
        await asyncio.gather(*(self.update_log_message(giveaway) for giveaway in affected))
        return len(affected)

    async def end_giveaway(self, guild_id: int, giveaway_ref: GiveawayRef) -> Giveaway:
        """End an active giveaway immediately. No winners are drawn."""
        giveaway = self.get_giveaway(guild_id, giveaway_ref)
        async with self.store.lock_for(giveaway.id):
            if not await self.tracker.claim(giveaway):
                raise GiveawayNotActiveError(giveaway.short_id)
            previous_end_time = giveaway.end_time
            giveaway.end_time = datetime.now(tz=UTC)
            try:
                await self.store.save(giveaway)
            except Exception:
                giveaway.end_time = previous_end_time
                giveaway.end_handled = False
                await self.tracker.add(giveaway)
                raise

        log.info("Giveaway %s (%s) was ended manually", giveaway.short_id, giveaway.title)
        await self.log_giveaway_expiration(giveaway, [])
        await self.update_public_message(giveaway)
        await self.update_log_message(giveaway)
        return giveaway

    async def expire(self, giveaway: Giveaway) -> bool:
        """Run the end-of-giveaway workflow once for a giveaway past its end time.

        Returns ``False`` when another task already handled the giveaway.
        """
        winners: List[discord.Member] = []
        async with self.store.lock_for(giveaway.id):
            if not await self.tracker.claim(giveaway):
                return False
            log.info("Giveaway %s (%s) has ended", giveaway.short_id, giveaway.title)
            try:
                winners = self.selector.select_winners(giveaway, self.get_guild(giveaway.guild_id))
                giveaway.winner_ids = [winner.id for winner in winners]
            finally:
                await self.store.save(giveaway)

        log.info(
            "Selected %d winner(s) for giveaway %s (%s): %s",
            len(winners),
            giveaway.short_id,
            giveaway.title,
            ", ".join(str(winner.id) for winner in winners) or "<none>",
        )
        await self.log_giveaway_expiration(giveaway, winners)
        await self.update_public_message(giveaway)
        await self.update_log_message(giveaway)
        return True

    async def redraw(
        self,
        guild_id: int,
        giveaway_ref: GiveawayRef,
        keep_ids: Optional[str] = None,
    ) -> RedrawResult:
        """Draw new winners for an ended giveaway, keeping the listed users."""
        giveaway = self.get_giveaway(guild_id, giveaway_ref)
        if self.tracker.is_active(giveaway):
            raise GiveawayStillActiveError(giveaway.short_id)
        guild = self.get_guild(guild_id)
        if guild is None:
            raise GuildUnavailableError(giveaway.short_id)

        keep, invalid_ids = self._parse_keep_ids(keep_ids, giveaway, guild)
        async with self.store.lock_for(giveaway.id):
            if self.tracker.is_active(giveaway):
                raise GiveawayStillActiveError(giveaway.short_id)
            winners = self.selector.select_winners(giveaway, guild, keep)
            giveaway.winner_ids = [winner.id for winner in winners]
            await self.store.save(giveaway)

        log.info(
            "Redrew %d winner(s) for giveaway %s (%s); kept %d, rejected %d keep id(s)",
            len(winners),
            giveaway.short_id,
            giveaway.title,
            len(keep),
            len(invalid_ids),
        )
        await self.update_log_message(giveaway)
        await self.update_public_message(giveaway)
        return RedrawResult(winners=winners, invalid_ids=invalid_ids)

    async def set_winner_count(
        self, guild_id: int, giveaway_ref: GiveawayRef, winner_count: int
    ) -> Giveaway:
        if winner_count < 1:
            raise GiveawayValidationError("The number of winners must be greater than zero.")
        giveaway = self.get_giveaway(guild_id, giveaway_ref)
        async with self.store.lock_for(giveaway.id):
            if not self.tracker.is_active(giveaway):
                raise GiveawayNotActiveError(giveaway.short_id)
            if giveaway.winner_count == winner_count:
                raise WinnerCountUnchangedError(giveaway.short_id, winner_count)
            previous = giveaway.winner_count
            giveaway.winner_count = winner_count
            try:
                await self.store.save(giveaway)
            except Exception:
                giveaway.winner_count = previous
                raise

        log.info(
            "Giveaway %s winner count changed from %d to %d",
            giveaway.short_id,
            previous,
            winner_count,
        )
        await self.update_log_message(giveaway)
        await self.update_public_message(giveaway)
        return giveaway

    # --- Presentation -----------------------------------------------------

    def build_information_embed(self, giveaway: Giveaway) -> discord.Embed:
        guild = self.get_guild(giveaway.guild_id)
        return embeds.information_embed(
            giveaway,
            color=self.config.giveaway_color(giveaway.guild_id),
            excluded_entrants=self.validator.count_excluded_entrants(giveaway, guild),
        )

    async def log_giveaway_creation(self, giveaway: Giveaway) -> None:
        guild = self.get_guild(giveaway.guild_id)
        if guild is None:
            log.error(
                "Could not log giveaway creation; guild %s was not found", giveaway.guild_id
            )
            return
        message = await self.audit.log(guild, self._log_embed(giveaway, guild))
        if message is None:
            return
        async with self.store.lock_for(giveaway.id):
            giveaway.log_message_id = message.id
            await self.store.save(giveaway)

    async def log_giveaway_expiration(
        self, giveaway: Giveaway, winners: Sequence[discord.abc.User]
    ) -> None:
        guild = self.get_guild(giveaway.guild_id)
        if guild is None:
            log.error(
                "Could not log end of giveaway %s; guild %s was not found",
                giveaway.short_id,
                giveaway.guild_id,
            )
            return
        embed = embeds.expiration_embed(
            giveaway,
            winners,
            excluded_entrants=self.validator.count_excluded_entrants(giveaway, guild),
        )
        await self.audit.log(guild, embed)

    async def update_public_message(self, giveaway: Giveaway) -> None:
        if not giveaway.message_id:
            log.warning("Public message ID for giveaway %s is 0", giveaway.short_id)
            return
        channel = await self._fetch_text_channel(giveaway)
        message = await self._fetch_message(channel, giveaway.message_id) if channel else None
        if message is None:
            log.warning("Could not update public giveaway message for giveaway %s", giveaway.short_id)
            return
        try:
            if self.tracker.is_active(giveaway):
                await message.edit(embed=self._public_embed(giveaway))
            else:
                await message.edit(embed=self._public_embed(giveaway), view=None)
        except discord.HTTPException as exc:
            log.warning(
                "Failed to edit public message %s for giveaway %s: %s",
                giveaway.message_id,
                giveaway.short_id,
                exc,
            )

    async def update_log_message(self, giveaway: Giveaway) -> None:
        if not giveaway.log_message_id:
            log.debug("Log message ID for giveaway %s is 0", giveaway.short_id)
            return
        guild = self.get_guild(giveaway.guild_id)
        if guild is None:
            return
        message = await self.audit.fetch_log_message(guild, giveaway.log_message_id)
        if message is None:
            log.warning("Could not update log giveaway message for giveaway %s", giveaway.short_id)
            return
        try:
            await message.edit(embed=self._log_embed(giveaway, guild))
        except discord.HTTPException as exc:
            log.warning(
                "Failed to edit log message %s for giveaway %s: %s",
                giveaway.log_message_id,
                giveaway.short_id,
                exc,
            )

    # --- Internal helpers -------------------------------------------------

    def _parse_keep_ids(
        self, keep_ids: Optional[str], giveaway: Giveaway, guild: discord.Guild
    ) -> Tuple[List[discord.Member], List[str]]:
        keep: List[discord.Member] = []
        invalid: List[str] = []
        if not keep_ids or not keep_ids.strip():
            return keep, invalid

        for token in keep_ids.split():
            mention = USER_MENTION_RE.match(token)
            raw = mention.group(1) if mention else token
            if not raw.isdigit():
                invalid.append(token)
                continue
            user_id = int(raw)
            member = self.validator.validate_user(user_id, guild)
            if member is None or not giveaway.has_entrant(user_id):
                invalid.append(token)
                continue
            keep.append(member)
        return keep, invalid

    def _public_embed(self, giveaway: Giveaway) -> discord.Embed:
        return embeds.public_embed(giveaway, color=self.config.giveaway_color(giveaway.guild_id))

    def _log_embed(self, giveaway: Giveaway, guild: discord.Guild) -> discord.Embed:
        return embeds.log_embed(
            giveaway, excluded_entrants=self.validator.count_excluded_entrants(giveaway, guild)
        )

    def _build_view(self, giveaway: Giveaway) -> GiveawayJoinView:
        return GiveawayJoinView(self, giveaway.short_id)

    async def _fetch_text_channel(self, giveaway: Giveaway) -> Optional[discord.TextChannel]:
        guild = self.get_guild(giveaway.guild_id)
        channel = guild.get_channel(giveaway.channel_id) if guild else None
        if isinstance(channel, discord.TextChannel):
            return channel
        try:
            fetched = await self.bot.fetch_channel(giveaway.channel_id)
        except (discord.NotFound, discord.Forbidden, discord.HTTPException):
            return None
        return fetched if isinstance(fetched, discord.TextChannel) else None

    async def _fetch_message(
        self, channel: discord.TextChannel, message_id: int
    ) -> Optional[discord.Message]:
        try:
            return await channel.fetch_message(message_id)
        except (discord.NotFound, discord.Forbidden, discord.HTTPException):
            return None
