import os
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from giveaway_bot.config import DEFAULT_GIVEAWAY_COLOR, ConfigError, load_config


class TestLoadConfig(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.path = Path(self.tmp.name) / "config.yaml"

    def tearDown(self):
        self.tmp.cleanup()

    def write(self, text):
        self.path.write_text(text, encoding="utf-8")
        return self.path

    def test_minimal_config_uses_defaults(self):
        config = load_config(self.write("token: abc\napplication_id: 123\n"))
        self.assertEqual(config.token, "abc")
        self.assertEqual(config.application_id, 123)
        self.assertEqual(config.database_path, Path("data/giveaways.sqlite"))
        self.assertEqual(config.logging.level, "INFO")
        self.assertEqual(config.scheduler.interval_seconds, 1.0)
        self.assertIsNone(config.permissions.development_guild_id)
        self.assertEqual(config.guilds, {})
        self.assertEqual(config.giveaway_color(1), DEFAULT_GIVEAWAY_COLOR)

    def test_token_resolved_from_environment(self):
        with patch.dict(os.environ, {"GIVEAWAY_TEST_TOKEN": "from-env"}):
            config = load_config(
                self.write("token: ${GIVEAWAY_TEST_TOKEN}\napplication_id: 1\n")
            )
        self.assertEqual(config.token, "from-env")

    def test_missing_environment_variable_is_an_error(self):
        with patch.dict(os.environ, {}, clear=True):
            with self.assertRaises(ConfigError):
                load_config(self.write("token: ${GIVEAWAY_MISSING_TOKEN}\napplication_id: 1\n"))

    def test_guild_settings(self):
        config = load_config(
            self.write(
                "token: abc\n"
                "application_id: 1\n"
                "guilds:\n"
                "  '111':\n"
                "    log_channel_id: 222\n"
                "    giveaway_color: '#00FF00'\n"
                "  '333': {}\n"
            )
        )
        self.assertEqual(config.get_guild_config(111).log_channel_id, 222)
        self.assertEqual(config.giveaway_color(111), 0x00FF00)
        self.assertIsNone(config.get_guild_config(333).log_channel_id)
        self.assertEqual(config.giveaway_color(333), DEFAULT_GIVEAWAY_COLOR)

    def test_invalid_values_raise(self):
        cases = {
            "missing token": "application_id: 1\n",
            "bad application id": "token: abc\napplication_id: nope\n",
            "bad interval": "token: abc\napplication_id: 1\nscheduler:\n  interval_seconds: 0\n",
            "bad colour": "token: abc\napplication_id: 1\nguilds:\n  '1':\n    giveaway_color: purple\n",
            "bad guild id": "token: abc\napplication_id: 1\nguilds:\n  main: {}\n",
            "not a mapping": "- token\n",
        }
        for name, text in cases.items():
            with self.subTest(name):
                with self.assertRaises(ConfigError):
                    load_config(self.write(text))

    def test_missing_file(self):
        with self.assertRaises(ConfigError):
            load_config(Path(self.tmp.name) / "absent.yaml")


if __name__ == "__main__":
    unittest.main()
