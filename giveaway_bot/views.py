from __future__ import annotations

import logging
from typing import Optional

import discord

from .embeds import error_embed, success_embed
from .errors import GiveawayError
from .models import GiveawayCreationOptions, JoinResult
from .timestamps import parse_end_time

log = logging.getLogger(__name__)

JOIN_CUSTOM_ID_PREFIX = "join-ga-"

JOIN_RESPONSES = {
    JoinResult.JOINED: "You have entered the giveaway. Good luck!",
    JoinResult.ALREADY_JOINED: "You have already entered this giveaway.",
    JoinResult.NOT_ACTIVE: "This giveaway has already ended.",
}


class GiveawayJoinView(discord.ui.View):
    def __init__(self, manager, giveaway_id: str) -> None:
        super().__init__(timeout=None)
        self.manager = manager
        self.giveaway_id = giveaway_id

        join_button = discord.ui.Button(
            label="Enter giveaway",
            emoji="🎉",
            style=discord.ButtonStyle.primary,
            custom_id=f"{JOIN_CUSTOM_ID_PREFIX}{giveaway_id}",
        )
        join_button.callback = self.join_callback  # type: ignore[assignment]
        self.add_item(join_button)

    async def join_callback(self, interaction: discord.Interaction) -> None:
        if not interaction.guild or not isinstance(interaction.user, discord.Member):
            await interaction.response.send_message(
                "You can only join giveaways from a guild.", ephemeral=True
            )
            return
        try:
            result = await self.manager.join(
                interaction.guild.id, self.giveaway_id, interaction.user
            )
        except GiveawayError as exc:
            log.info(
                "%s could not join giveaway %s: %s", interaction.user.id, self.giveaway_id, exc
            )
            await interaction.response.send_message(
                embed=error_embed("Error joining giveaway", str(exc)), ephemeral=True
            )
            return
        await interaction.response.send_message(JOIN_RESPONSES[result], ephemeral=True)


class CreateGiveawayModal(discord.ui.Modal, title="Create giveaway"):
    giveaway_title = discord.ui.TextInput(
        label="Title", max_length=255, placeholder="What is being given away?"
    )
    description = discord.ui.TextInput(
        label="Description", style=discord.TextStyle.paragraph, max_length=1024
    )
    end_time = discord.ui.TextInput(
        label="End time",
        placeholder="Duration such as 1d12h or 90m, or a unix timestamp",
        max_length=64,
    )
    image_url = discord.ui.TextInput(
        label="Image URL", required=False, placeholder="Optional image shown on the giveaway"
    )

    def __init__(self, manager, channel: discord.TextChannel, winner_count: int) -> None:
        super().__init__()
        self.manager = manager
        self.channel = channel
        self.winner_count = winner_count

    async def on_submit(self, interaction: discord.Interaction) -> None:
        guild = interaction.guild
        if guild is None:
            await interaction.response.send_message(
                "Giveaways can only be created inside a guild.", ephemeral=True
            )
            return

        image_uri: Optional[str] = self.image_url.value.strip() or None
        try:
            options = GiveawayCreationOptions(
                guild_id=guild.id,
                channel_id=self.channel.id,
                creator_id=interaction.user.id,
                title=self.giveaway_title.value,
                description=self.description.value,
                winner_count=self.winner_count,
                end_time=parse_end_time(self.end_time.value),
                image_uri=image_uri,
            )
            await interaction.response.defer(ephemeral=True, thinking=True)
            giveaway = await self.manager.start_giveaway(options)
        except GiveawayError as exc:
            log.info("%s failed to create a giveaway: %s", interaction.user.id, exc)
            embed = error_embed("Error creating giveaway", str(exc))
            if interaction.response.is_done():
                await interaction.followup.send(embed=embed, ephemeral=True)
            else:
                await interaction.response.send_message(embed=embed, ephemeral=True)
            return

        await interaction.followup.send(
            embed=success_embed(
                "Giveaway created",
                f"**{giveaway.title}** is now running in {self.channel.mention} "
                f"(ID `{giveaway.short_id}`).",
            ),
            ephemeral=True,
        )

    async def on_error(self, interaction: discord.Interaction, error: Exception) -> None:
        log.exception("Unexpected error while creating a giveaway", exc_info=error)
        embed = error_embed("Error creating giveaway", "An unexpected error occurred.")
        if interaction.response.is_done():
            await interaction.followup.send(embed=embed, ephemeral=True)
        else:
            await interaction.response.send_message(embed=embed, ephemeral=True)
