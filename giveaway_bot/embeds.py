"""Embed builders for public, information, log and exclusion views."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Iterable, Optional, Sequence

import discord

from .models import Giveaway

DESCRIPTION_LIMIT = 1024
TITLE_LIMIT = 255
FIELD_LIMIT = 1024

JOIN_HINT = "Click the button below to enter the giveaway!"


def truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return f"{text[:limit - 3]}..."


def quantity(count: int, word: str) -> str:
    return f"{count:,} {word}" if count == 1 else f"{count:,} {word}s"


def humanize_duration(delta: timedelta) -> str:
    seconds = max(int(delta.total_seconds()), 0)
    if seconds == 0:
        return "0 seconds"
    parts = []
    for unit, size in (("week", 604800), ("day", 86400), ("hour", 3600), ("minute", 60), ("second", 1)):
        amount, seconds = divmod(seconds, size)
        if amount:
            parts.append(quantity(amount, unit))
    return ", ".join(parts[:2])


def _mention_user(user_id: int) -> str:
    return f"<@{user_id}>"


def _mention_channel(channel_id: int) -> str:
    return f"<#{channel_id}>"


def _timestamp(value: datetime) -> str:
    return discord.utils.format_dt(value, style="R")


def _winner_lines(winner_ids: Iterable[int]) -> str:
    return truncate("\n".join(f"• {_mention_user(w)} ({w})" for w in winner_ids), FIELD_LIMIT)


def message_link(giveaway: Giveaway) -> str:
    return f"https://discord.com/channels/{giveaway.guild_id}/{giveaway.channel_id}/{giveaway.message_id}"


def public_embed(
    giveaway: Giveaway, *, color: int, now: Optional[datetime] = None
) -> discord.Embed:
    """The announcement shown to members in the giveaway channel."""
    ended = giveaway.end_handled or giveaway.has_expired(now)
    prefix = "Giveaway ended: " if ended else "🎉 Giveaway: "
    embed = discord.Embed(
        title=truncate(prefix + giveaway.title, TITLE_LIMIT),
        description=truncate(giveaway.description, DESCRIPTION_LIMIT),
        color=discord.Color(color),
    )
    if not ended:
        embed.add_field(name="\u200b", value=JOIN_HINT, inline=False)
    embed.add_field(name="Number of winners", value=str(giveaway.winner_count), inline=True)
    embed.add_field(name="Ended" if ended else "Ends", value=_timestamp(giveaway.end_time), inline=True)
    if ended and giveaway.winner_ids:
        embed.add_field(
            name=quantity(len(giveaway.winner_ids), "Winner").title(),
            value=" ".join(_mention_user(w) for w in giveaway.winner_ids),
            inline=False,
        )
    if giveaway.image_uri:
        embed.set_image(url=giveaway.image_uri)
    embed.set_footer(text=f"Giveaway ID: {giveaway.short_id}")
    return embed


def information_embed(
    giveaway: Giveaway,
    *,
    color: int,
    excluded_entrants: int,
    now: Optional[datetime] = None,
) -> discord.Embed:
    """Staff-facing details about a giveaway."""
    embed = discord.Embed(title="Giveaway information", color=discord.Color(color))
    ended = giveaway.has_expired(now)
    embed.add_field(name="Title", value=truncate(giveaway.title, FIELD_LIMIT), inline=False)
    embed.add_field(
        name="Description", value=truncate(giveaway.description, DESCRIPTION_LIMIT), inline=False
    )
    embed.add_field(name="ID", value=f"`{giveaway.short_id}`", inline=True)
    embed.add_field(name="Channel", value=_mention_channel(giveaway.channel_id), inline=True)
    if giveaway.message_id:
        embed.add_field(
            name="Message", value=f"[{giveaway.message_id}]({message_link(giveaway)})", inline=True
        )
    else:
        embed.add_field(name="Message", value="Not posted", inline=True)
    embed.add_field(name="Number of winners", value=str(giveaway.winner_count), inline=True)
    embed.add_field(name="Ended" if ended else "Ends", value=_timestamp(giveaway.end_time), inline=True)
    embed.add_field(name="Creator", value=_mention_user(giveaway.creator_id), inline=True)
    embed.add_field(name="Entrants", value=f"{len(giveaway.entrants):,}", inline=True)
    embed.add_field(name="Excluded entrants", value=f"{excluded_entrants:,}", inline=True)
    if giveaway.image_uri:
        embed.add_field(name="Image", value=f"[View]({giveaway.image_uri})", inline=True)
    if giveaway.winner_ids:
        embed.add_field(
            name=quantity(len(giveaway.winner_ids), "Winner").title(),
            value=_winner_lines(giveaway.winner_ids),
            inline=False,
        )
    return embed


def log_embed(giveaway: Giveaway, *, excluded_entrants: int) -> discord.Embed:
    embed = information_embed(
        giveaway, color=discord.Color.green().value, excluded_entrants=excluded_entrants
    )
    embed.title = "Giveaway created"
    return embed


def expiration_embed(
    giveaway: Giveaway, winners: Sequence[discord.abc.User], *, excluded_entrants: int
) -> discord.Embed:
    """Audit entry describing the outcome of a giveaway that has ended."""
    embed = discord.Embed()
    embed.add_field(name="Title", value=truncate(giveaway.title, FIELD_LIMIT), inline=False)
    embed.add_field(
        name="Description", value=truncate(giveaway.description, DESCRIPTION_LIMIT), inline=False
    )
    embed.add_field(name="ID", value=f"`{giveaway.short_id}`", inline=True)
    embed.add_field(name="Number of winners", value=str(giveaway.winner_count), inline=True)
    embed.add_field(
        name="Duration",
        value=humanize_duration(giveaway.end_time - giveaway.start_time),
        inline=True,
    )
    embed.add_field(name="Entrants", value=f"{len(giveaway.entrants):,}", inline=True)
    embed.add_field(name="Excluded entrants", value=f"{excluded_entrants:,}", inline=True)

    if not winners:
        embed.color = discord.Color.orange()
        embed.title = "Giveaway ended (no winners)"
        embed.description = f"The giveaway **{giveaway.title}** has ended without any winners."
        return embed

    embed.add_field(
        name=quantity(len(winners), "Winner").title(),
        value=truncate("\n".join(f"• {w.mention} ({w.id})" for w in winners), FIELD_LIMIT),
        inline=False,
    )
    if len(winners) < giveaway.winner_count:
        embed.color = discord.Color.orange()
        embed.title = "Giveaway ended (too few winners)"
        embed.description = (
            f"The giveaway **{giveaway.title}** has ended with only "
            f"{quantity(len(winners), 'winner')} out of {giveaway.winner_count}."
        )
    else:
        embed.color = discord.Color.green()
        embed.title = "Giveaway ended"
        embed.description = (
            f"The giveaway **{giveaway.title}** has ended with {quantity(len(winners), 'winner')}."
        )
    return embed


def exclusion_embed(
    *,
    kind: str,
    target_label: str,
    staff_member: discord.abc.User,
    reason: Optional[str] = None,
    added: bool,
) -> discord.Embed:
    """Audit entry for a role or user exclusion being added or removed."""
    action = "added" if added else "removed"
    embed = discord.Embed(
        title=f"{kind} exclusion {action}",
        color=discord.Color.orange() if added else discord.Color.green(),
    )
    embed.add_field(name=kind, value=target_label, inline=True)
    embed.add_field(name="Staff member", value=staff_member.mention, inline=True)
    if added and reason:
        embed.add_field(name="Reason", value=truncate(reason, FIELD_LIMIT), inline=False)
    return embed


def entrants_embed(giveaway: Giveaway) -> discord.Embed:
    embed = discord.Embed(title="Giveaway entrants", color=discord.Color.blurple())
    embed.add_field(name="Entrants", value=f"{len(giveaway.entrants):,}", inline=False)
    if giveaway.entrants:
        lines = "\n".join(f"• {_mention_user(e)} ({e})" for e in giveaway.entrants)
        embed.description = truncate(lines, 4096)
    embed.set_footer(text=f"Giveaway ID: {giveaway.short_id}")
    return embed


def error_embed(title: str, description: str) -> discord.Embed:
    return discord.Embed(title=title, description=description, color=discord.Color.red())


def success_embed(title: str, description: Optional[str] = None) -> discord.Embed:
    return discord.Embed(title=title, description=description, color=discord.Color.green())
