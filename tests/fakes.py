"""Lightweight stand-ins for the Discord objects the bot touches."""

import itertools
import uuid
from datetime import UTC, datetime, timedelta
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import discord

from giveaway_bot.config import (
    Config,
    GuildConfig,
    LoggingConfig,
    PermissionsConfig,
    SchedulerConfig,
)
from giveaway_bot.models import Giveaway

GUILD_ID = 1000
CHANNEL_ID = 2000
LOG_CHANNEL_ID = 3000
STAFF_ID = 42

_message_ids = itertools.count(900_000)


def make_message(message_id=None):
    message = MagicMock(spec=discord.Message)
    message.id = message_id if message_id is not None else next(_message_ids)
    message.edit = AsyncMock()
    return message


def make_text_channel(channel_id):
    channel = MagicMock(spec=discord.TextChannel)
    channel.id = channel_id
    channel.mention = f"<#{channel_id}>"
    channel.sent = []
    channel.messages = {}

    async def send(*args, **kwargs):
        message = make_message()
        channel.sent.append((kwargs, message))
        channel.messages[message.id] = message
        return message

    async def fetch_message(message_id):
        if message_id not in channel.messages:
            channel.messages[message_id] = make_message(message_id)
        return channel.messages[message_id]

    channel.send = AsyncMock(side_effect=send)
    channel.fetch_message = AsyncMock(side_effect=fetch_message)
    return channel


class FakeGuild:
    def __init__(self, guild_id=GUILD_ID):
        self.id = guild_id
        self.members = {}
        self.roles = {}
        self.channels = {}

    def add_role(self, role_id):
        role = SimpleNamespace(id=role_id, guild=self, mention=f"<@&{role_id}>")
        self.roles[role_id] = role
        return role

    def add_member(self, user_id, roles=()):
        member = SimpleNamespace(
            id=user_id, guild=self, roles=list(roles), mention=f"<@{user_id}>"
        )
        self.members[user_id] = member
        return member

    def remove_member(self, user_id):
        self.members.pop(user_id, None)

    def add_text_channel(self, channel_id):
        channel = make_text_channel(channel_id)
        self.channels[channel_id] = channel
        return channel

    def get_member(self, user_id):
        return self.members.get(user_id)

    def get_role(self, role_id):
        return self.roles.get(role_id)

    def get_channel(self, channel_id):
        return self.channels.get(channel_id)


def make_config(database_path=Path("giveaways.sqlite"), log_channel_id=LOG_CHANNEL_ID):
    return Config(
        token="token",
        application_id=1,
        database_path=Path(database_path),
        logging=LoggingConfig(),
        scheduler=SchedulerConfig(),
        permissions=PermissionsConfig(),
        guilds={GUILD_ID: GuildConfig(log_channel_id=log_channel_id)},
    )


def make_bot(*guilds):
    by_id = {guild.id: guild for guild in guilds}
    bot = MagicMock()
    bot.guild_cache = by_id
    bot.get_guild = MagicMock(side_effect=by_id.get)
    bot.fetch_channel = AsyncMock(return_value=None)
    bot.wait_until_ready = AsyncMock()
    return bot


def make_giveaway(guild_id=GUILD_ID, *, entrants=(), winner_count=1, ends_in=timedelta(hours=1), **kwargs):
    now = datetime.now(tz=UTC)
    fields = dict(
        id=uuid.uuid4(),
        guild_id=guild_id,
        channel_id=CHANNEL_ID,
        creator_id=STAFF_ID,
        title="Steam key",
        description="One key for a lucky member",
        start_time=now - timedelta(hours=1),
        end_time=now + ends_in,
        winner_count=winner_count,
        entrants=list(entrants),
    )
    fields.update(kwargs)
    return Giveaway(**fields)
