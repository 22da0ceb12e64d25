import unittest
from datetime import timedelta
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import discord

from fakes import GUILD_ID, LOG_CHANNEL_ID, FakeGuild, make_config, make_giveaway

from giveaway_bot import embeds
from giveaway_bot.audit import AuditLog


def winner(user_id):
    return SimpleNamespace(id=user_id, mention=f"<@{user_id}>")


class TestEmbeds(unittest.TestCase):
    def test_public_embed_while_running(self):
        giveaway = make_giveaway(winner_count=3, image_uri="https://example.com/a.png")
        embed = embeds.public_embed(giveaway, color=0x123456)
        self.assertTrue(embed.title.startswith("🎉 Giveaway: "))
        self.assertEqual(embed.color.value, 0x123456)
        self.assertIn(embeds.JOIN_HINT, [field.value for field in embed.fields])
        self.assertEqual(embed.image.url, "https://example.com/a.png")
        self.assertIn(giveaway.short_id, embed.footer.text)

    def test_public_embed_after_end_lists_winners(self):
        giveaway = make_giveaway(end_handled=True, winner_ids=[5, 6])
        embed = embeds.public_embed(giveaway, color=0)
        self.assertTrue(embed.title.startswith("Giveaway ended: "))
        values = [field.value for field in embed.fields]
        self.assertNotIn(embeds.JOIN_HINT, values)
        self.assertIn("<@5> <@6>", values)

    def test_long_title_is_truncated(self):
        giveaway = make_giveaway(title="x" * 400)
        self.assertLessEqual(len(embeds.public_embed(giveaway, color=0).title), 255)

    def test_long_description_is_truncated(self):
        giveaway = make_giveaway(description="d" * 2000)
        embed = embeds.public_embed(giveaway, color=0)
        self.assertEqual(len(embed.description), embeds.DESCRIPTION_LIMIT)
        self.assertTrue(embed.description.startswith("ddd"))

    def test_information_embed_counts(self):
        giveaway = make_giveaway(entrants=[1, 2, 3], message_id=77, description="d" * 2000)
        embed = embeds.information_embed(giveaway, color=0, excluded_entrants=1)
        fields = {field.name: field.value for field in embed.fields}
        self.assertEqual(fields["Entrants"], "3")
        self.assertEqual(fields["Excluded entrants"], "1")
        self.assertLessEqual(len(fields["Description"]), 1024)
        self.assertIn(f"/{GUILD_ID}/", fields["Message"])

    def test_expiration_embed_variants(self):
        giveaway = make_giveaway(winner_count=2, entrants=[1, 2, 3])
        none = embeds.expiration_embed(giveaway, [], excluded_entrants=0)
        partial = embeds.expiration_embed(giveaway, [winner(1)], excluded_entrants=2)
        full = embeds.expiration_embed(giveaway, [winner(1), winner(2)], excluded_entrants=0)
        self.assertEqual(none.title, "Giveaway ended (no winners)")
        self.assertEqual(partial.title, "Giveaway ended (too few winners)")
        self.assertEqual(full.title, "Giveaway ended")
        self.assertEqual(full.color, discord.Color.green())

    def test_humanize_duration(self):
        self.assertEqual(embeds.humanize_duration(timedelta(days=1, hours=2, minutes=3)), "1 day, 2 hours")
        self.assertEqual(embeds.humanize_duration(timedelta(seconds=-5)), "0 seconds")


class TestAuditLog(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.guild = FakeGuild()
        self.log_channel = self.guild.add_text_channel(LOG_CHANNEL_ID)
        self.audit = AuditLog(make_config())

    async def test_log_stamps_and_sends(self):
        embed = discord.Embed(title="entry")
        message = await self.audit.log(self.guild, embed)
        self.assertIsNotNone(message)
        self.assertIsNotNone(embed.timestamp)
        self.log_channel.send.assert_awaited_once_with(embed=embed)

    async def test_unconfigured_guild_is_skipped(self):
        other = FakeGuild(GUILD_ID + 1)
        self.assertIsNone(await self.audit.log(other, discord.Embed()))
        self.assertIsNone(self.audit.get_log_channel(other))

    async def test_send_failure_is_logged(self):
        self.log_channel.send = AsyncMock(
            side_effect=discord.Forbidden(MagicMock(status=403, reason="Forbidden"), "no access")
        )
        with self.assertLogs("giveaway_bot.audit", level="WARNING"):
            self.assertIsNone(await self.audit.log(self.guild, discord.Embed()))

    async def test_fetch_log_message(self):
        sent = await self.audit.log(self.guild, discord.Embed())
        self.assertIs(await self.audit.fetch_log_message(self.guild, sent.id), sent)
        self.assertIsNone(await self.audit.fetch_log_message(self.guild, 0))


if __name__ == "__main__":
    unittest.main()
