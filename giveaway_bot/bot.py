from __future__ import annotations

import argparse
import asyncio
import logging
import os
from datetime import UTC, datetime
from importlib import metadata
from pathlib import Path
from typing import Optional

import aiohttp
import discord
from discord import app_commands
from discord.ext import commands

from .config import Config, ConfigError, load_config
from .embeds import entrants_embed, error_embed, humanize_duration, success_embed
from .errors import GiveawayError
from .giveaway_manager import GiveawayManager
from .scheduler import ExpiryScheduler
from .storage import GiveawayStorage
from .views import CreateGiveawayModal

log = logging.getLogger(__name__)

ENV_PATH = Path(".env")
DISTRIBUTION_NAME = "discord-giveaway-bot"


def _load_env_file(path: Path = ENV_PATH) -> None:
    if not path.exists():
        return
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError:
        return
    for line in raw.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        if "=" not in stripped:
            continue
        key, value = stripped.split("=", 1)
        key = key.strip()
        if not key:
            continue
        value = value.strip()
        if value and ((value[0] == value[-1]) and value.startswith(("'", '"'))):
            value = value[1:-1]
        os.environ.setdefault(key, value)


def configure_logging(level: str) -> None:
    console_level = getattr(logging, level.upper(), logging.INFO)
    formatter = logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")

    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)

    root_logger.setLevel(logging.DEBUG)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(console_level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    log_dir = Path("logs")
    log_dir.mkdir(parents=True, exist_ok=True)
    file_handler = logging.FileHandler(log_dir / "log.txt", encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(formatter)
    root_logger.addHandler(file_handler)

    # discord.py's gateway chatter is noisy at DEBUG.
    logging.getLogger("discord").setLevel(logging.INFO)


def get_version() -> str:
    try:
        return metadata.version(DISTRIBUTION_NAME)
    except metadata.PackageNotFoundError:
        return "0.0.0+local"


class GiveawayBot(commands.Bot):
    def __init__(self, config: Config, storage: GiveawayStorage) -> None:
        intents = discord.Intents.default()
        intents.members = True

        super().__init__(
            command_prefix=commands.when_mentioned,
            intents=intents,
            application_id=config.application_id,
        )
        self.config = config
        self.manager = GiveawayManager(self, config, storage)
        self.scheduler = ExpiryScheduler(
            self.manager.tracker, self.manager, config.scheduler.interval_seconds
        )
        self.started_at = datetime.now(tz=UTC)
        self._avatar_refreshed = False

    async def setup_hook(self) -> None:
        await self.manager.load()
        registered = self.manager.register_views()
        log.info("Registered join buttons for %d active giveaway(s)", registered)
        self.scheduler.start()
        await self.tree.sync()
        dev_guild_id = self.config.permissions.development_guild_id
        if dev_guild_id:
            guild = discord.Object(dev_guild_id)
            self.tree.copy_global_to(guild=guild)
            await self.tree.sync(guild=guild)

    async def close(self) -> None:
        self.scheduler.stop()
        await super().close()

    async def on_ready(self) -> None:
        log.info("Logged in as %s (%s)", self.user, self.user.id)  # type: ignore[union-attr]
        if not self._avatar_refreshed:
            self._avatar_refreshed = True
            await self.refresh_avatar()

    async def on_guild_available(self, guild: discord.Guild) -> None:
        await self.manager.reload_exclusions(guild)

    async def on_guild_join(self, guild: discord.Guild) -> None:
        await self.manager.reload_exclusions(guild)

    async def on_guild_unavailable(self, guild: discord.Guild) -> None:
        self.manager.forget_guild(guild.id)

    async def on_guild_remove(self, guild: discord.Guild) -> None:
        self.manager.forget_guild(guild.id)

    async def on_member_remove(self, member: discord.Member) -> None:
        await self.manager.remove_from_active_giveaways(member)

    async def on_app_command_completion(
        self, interaction: discord.Interaction, command: app_commands.Command
    ) -> None:
        log.info(
            "%s (%s) ran /%s in guild %s with %s",
            interaction.user,
            interaction.user.id,
            command.qualified_name,
            interaction.guild_id,
            interaction.namespace,
        )

    async def refresh_avatar(self) -> None:
        avatar_url = self.config.avatar_url
        if not avatar_url or self.user is None:
            return
        try:
            async with aiohttp.ClientSession() as session:
                async with session.get(avatar_url) as response:
                    response.raise_for_status()
                    data = await response.read()
            await self.user.edit(avatar=data)
        except (aiohttp.ClientError, discord.HTTPException, ValueError) as exc:
            log.warning("Failed to update avatar from %s: %s", avatar_url, exc)
            return
        log.info("Updated avatar from %s", avatar_url)


async def _respond(interaction: discord.Interaction, embed: discord.Embed) -> None:
    if interaction.response.is_done():
        await interaction.followup.send(embed=embed, ephemeral=True)
    else:
        await interaction.response.send_message(embed=embed, ephemeral=True)


async def _send_error(interaction: discord.Interaction, title: str, exc: GiveawayError) -> None:
    log.info(
        "/%s by %s rejected: %s",
        getattr(interaction.command, "qualified_name", "unknown"),
        interaction.user.id,
        exc,
    )
    await _respond(interaction, error_embed(title, str(exc)))


def build_bot(config_path: Path) -> GiveawayBot:
    _load_env_file()
    config = load_config(config_path)
    configure_logging(config.logging.level)
    storage = GiveawayStorage(config.database_path)
    return GiveawayBot(config, storage)


def register_commands(bot: GiveawayBot) -> None:
    manager = bot.manager

    giveaway_group = app_commands.Group(
        name="giveaway",
        description="Create and manage giveaways.",
        guild_only=True,
        default_permissions=discord.Permissions(manage_guild=True),
    )

    @giveaway_group.command(name="create", description="Create a new giveaway.")
    @app_commands.describe(
        channel="Channel where the giveaway will be posted.",
        winners="Number of winners to draw.",
    )
    async def giveaway_create(
        interaction: discord.Interaction,
        channel: discord.TextChannel,
        winners: app_commands.Range[int, 1, 100] = 1,
    ) -> None:
        await interaction.response.send_modal(CreateGiveawayModal(manager, channel, winners))

    @giveaway_group.command(name="end", description="End a giveaway now without drawing winners.")
    @app_commands.describe(giveaway_id="Identifier of the giveaway to end.")
    async def giveaway_end(interaction: discord.Interaction, giveaway_id: str) -> None:
        await interaction.response.defer(ephemeral=True)
        try:
            giveaway = await manager.end_giveaway(interaction.guild_id, giveaway_id)
        except GiveawayError as exc:
            await _send_error(interaction, "Error ending giveaway", exc)
            return
        await _respond(
            interaction,
            success_embed("Giveaway ended", f"**{giveaway.title}** has been ended."),
        )

    @giveaway_group.command(name="redraw", description="Draw new winners for an ended giveaway.")
    @app_commands.describe(
        giveaway_id="Identifier of the giveaway to redraw.",
        keep_ids="Space separated user IDs or mentions of winners to keep.",
    )
    async def giveaway_redraw(
        interaction: discord.Interaction, giveaway_id: str, keep_ids: Optional[str] = None
    ) -> None:
        await interaction.response.defer(ephemeral=True)
        try:
            result = await manager.redraw(interaction.guild_id, giveaway_id, keep_ids)
        except GiveawayError as exc:
            await _send_error(interaction, "Error redrawing giveaway", exc)
            return

        if result.winners:
            description = "\n".join(f"• {w.mention} ({w.id})" for w in result.winners)
        else:
            description = "No valid entrants were available."
        embed = success_embed("Giveaway redrawn", description)
        if result.invalid_ids:
            embed.color = discord.Color.orange()
            embed.add_field(
                name="Ignored IDs",
                value=", ".join(f"`{token}`" for token in result.invalid_ids)[:1024],
                inline=False,
            )
        await _respond(interaction, embed)

    @giveaway_group.command(
        name="setwinners", description="Change the number of winners of a running giveaway."
    )
    @app_commands.describe(
        giveaway_id="Identifier of the giveaway to update.",
        winners="New number of winners.",
    )
    async def giveaway_setwinners(
        interaction: discord.Interaction,
        giveaway_id: str,
        winners: app_commands.Range[int, 1, 100],
    ) -> None:
        await interaction.response.defer(ephemeral=True)
        try:
            giveaway = await manager.set_winner_count(interaction.guild_id, giveaway_id, winners)
        except GiveawayError as exc:
            await _send_error(interaction, "Error updating giveaway", exc)
            return
        await _respond(
            interaction,
            success_embed(
                "Winner count updated",
                f"**{giveaway.title}** will now draw {giveaway.winner_count} winner(s).",
            ),
        )

    @giveaway_group.command(name="view", description="Show details about a giveaway.")
    @app_commands.describe(giveaway_id="Identifier of the giveaway to display.")
    async def giveaway_view(interaction: discord.Interaction, giveaway_id: str) -> None:
        try:
            giveaway = manager.get_giveaway(interaction.guild_id, giveaway_id)
        except GiveawayError as exc:
            await _send_error(interaction, "Error viewing giveaway", exc)
            return
        await _respond(interaction, manager.build_information_embed(giveaway))

    @giveaway_group.command(name="viewentrants", description="List the entrants of a giveaway.")
    @app_commands.describe(giveaway_id="Identifier of the giveaway to inspect.")
    async def giveaway_viewentrants(interaction: discord.Interaction, giveaway_id: str) -> None:
        try:
            giveaway = manager.get_giveaway(interaction.guild_id, giveaway_id)
        except GiveawayError as exc:
            await _send_error(interaction, "Error viewing entrants", exc)
            return
        await _respond(interaction, entrants_embed(giveaway))

    @giveaway_group.command(name="blockrole", description="Stop members with a role from winning.")
    @app_commands.describe(role="Role to exclude.", reason="Why the role is excluded.")
    async def giveaway_blockrole(
        interaction: discord.Interaction, role: discord.Role, reason: Optional[str] = None
    ) -> None:
        registry = manager.role_exclusions
        if registry.is_excluded(role.guild.id, role.id):
            await _respond(
                interaction, error_embed("Role already excluded", f"{role.mention} is already excluded.")
            )
            return
        await interaction.response.defer(ephemeral=True)
        await registry.exclude(interaction.user, role, reason)  # type: ignore[arg-type]
        await _respond(
            interaction,
            success_embed("Role excluded", f"Members with {role.mention} can no longer win giveaways."),
        )

    @giveaway_group.command(name="unblockrole", description="Allow members with a role to win again.")
    @app_commands.describe(role="Role to include again.")
    async def giveaway_unblockrole(interaction: discord.Interaction, role: discord.Role) -> None:
        await interaction.response.defer(ephemeral=True)
        removed = await manager.role_exclusions.include(interaction.user, role)  # type: ignore[arg-type]
        if not removed:
            await _respond(
                interaction, error_embed("Role not excluded", f"{role.mention} is not excluded.")
            )
            return
        await _respond(
            interaction,
            success_embed("Role included", f"Members with {role.mention} can win giveaways again."),
        )

    @giveaway_group.command(name="blockuser", description="Stop a user from winning giveaways.")
    @app_commands.describe(user="User to exclude.", reason="Why the user is excluded.")
    async def giveaway_blockuser(
        interaction: discord.Interaction, user: discord.User, reason: Optional[str] = None
    ) -> None:
        registry = manager.user_exclusions
        if registry.is_excluded(interaction.guild_id, user.id):
            await _respond(
                interaction, error_embed("User already excluded", f"{user.mention} is already excluded.")
            )
            return
        await interaction.response.defer(ephemeral=True)
        await registry.exclude(interaction.user, user, reason)  # type: ignore[arg-type]
        await _respond(
            interaction,
            success_embed("User excluded", f"{user.mention} can no longer win giveaways."),
        )

    @giveaway_group.command(name="unblockuser", description="Allow a user to win giveaways again.")
    @app_commands.describe(user="User to include again.")
    async def giveaway_unblockuser(interaction: discord.Interaction, user: discord.User) -> None:
        await interaction.response.defer(ephemeral=True)
        removed = await manager.user_exclusions.include(interaction.user, user)  # type: ignore[arg-type]
        if not removed:
            await _respond(
                interaction, error_embed("User not excluded", f"{user.mention} is not excluded.")
            )
            return
        await _respond(
            interaction,
            success_embed("User included", f"{user.mention} can win giveaways again."),
        )

    bot.tree.add_command(giveaway_group)

    @bot.tree.command(name="info", description="Show information about the bot.")
    async def info(interaction: discord.Interaction) -> None:
        uptime = datetime.now(tz=UTC) - bot.started_at
        embed = discord.Embed(title="Giveaway bot", color=discord.Color.blurple())
        embed.add_field(name="Version", value=get_version(), inline=True)
        embed.add_field(name="discord.py", value=discord.__version__, inline=True)
        embed.add_field(name="Uptime", value=humanize_duration(uptime), inline=True)
        embed.add_field(name="Active giveaways", value=str(len(manager.tracker)), inline=True)
        await interaction.response.send_message(embed=embed, ephemeral=True)

    @bot.tree.error
    async def on_app_command_error(
        interaction: discord.Interaction, error: app_commands.AppCommandError
    ) -> None:
        if isinstance(error, app_commands.CheckFailure):
            await _respond(
                interaction,
                error_embed("Missing permissions", "You are not allowed to use this command."),
            )
            return
        log.exception(
            "Unhandled error in /%s",
            getattr(interaction.command, "qualified_name", "unknown"),
            exc_info=error,
        )
        await _respond(
            interaction, error_embed("Something went wrong", "An unexpected error occurred.")
        )


async def main() -> None:
    parser = argparse.ArgumentParser(description="Discord Giveaway Bot")
    parser.add_argument(
        "--config",
        type=Path,
        default=Path("config") / "config.yaml",
        help="Path to the bot configuration file.",
    )
    args = parser.parse_args()

    try:
        bot = build_bot(args.config)
    except ConfigError as exc:
        raise SystemExit(f"Configuration error: {exc}") from exc

    register_commands(bot)

    async with bot:
        await bot.start(bot.config.token)


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
