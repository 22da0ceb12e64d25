from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Optional

import discord

from .config import Config

log = logging.getLogger(__name__)


class AuditLog:
    """Posts audit embeds to the log channel configured for each guild."""

    def __init__(self, config: Config) -> None:
        self.config = config

    def get_log_channel(self, guild: discord.Guild) -> Optional[discord.TextChannel]:
        guild_config = self.config.get_guild_config(guild.id)
        if guild_config is None or not guild_config.log_channel_id:
            return None
        channel = guild.get_channel(guild_config.log_channel_id)
        if isinstance(channel, discord.TextChannel):
            return channel
        return None

    async def log(
        self, guild: discord.Guild, embed: discord.Embed
    ) -> Optional[discord.Message]:
        channel = self.get_log_channel(guild)
        if channel is None:
            log.debug("No log channel configured for guild %s; audit entry dropped", guild.id)
            return None
        if embed.timestamp is None:
            embed.timestamp = datetime.now(tz=UTC)
        try:
            return await channel.send(embed=embed)
        except discord.HTTPException as exc:
            log.warning("Failed to send log message to %s: %s", channel.id, exc)
            return None

    async def fetch_log_message(
        self, guild: discord.Guild, message_id: int
    ) -> Optional[discord.Message]:
        if not message_id:
            return None
        channel = self.get_log_channel(guild)
        if channel is None:
            return None
        try:
            return await channel.fetch_message(message_id)
        except (discord.NotFound, discord.Forbidden, discord.HTTPException):
            log.debug("Failed to retrieve log message %s in guild %s", message_id, guild.id)
            return None
