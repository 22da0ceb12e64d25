import unittest
import uuid
from datetime import UTC, datetime, timedelta

from giveaway_bot.errors import GiveawayValidationError, InvalidGiveawayIdError
from giveaway_bot.ids import format_giveaway_id, new_giveaway_id, parse_giveaway_id
from giveaway_bot.timestamps import parse_duration, parse_end_time


class TestGiveawayIds(unittest.TestCase):
    def test_short_id_is_22_url_safe_characters(self):
        short_id = format_giveaway_id(new_giveaway_id())
        self.assertEqual(len(short_id), 22)
        self.assertNotIn("=", short_id)
        self.assertNotIn("+", short_id)
        self.assertNotIn("/", short_id)

    def test_short_id_resolves_to_same_uuid(self):
        giveaway_id = uuid.UUID("0f8fad5b-d9cb-469f-a165-70867728950e")
        self.assertEqual(parse_giveaway_id(format_giveaway_id(giveaway_id)), giveaway_id)

    def test_hyphenated_uuid_is_accepted(self):
        giveaway_id = uuid.uuid4()
        self.assertEqual(parse_giveaway_id(str(giveaway_id)), giveaway_id)

    def test_surrounding_whitespace_is_ignored(self):
        giveaway_id = uuid.uuid4()
        self.assertEqual(parse_giveaway_id(f"  {format_giveaway_id(giveaway_id)} "), giveaway_id)

    def test_malformed_ids_are_rejected(self):
        for raw in ("", "abc", "not a giveaway id at all", "!" * 22):
            with self.subTest(raw=raw):
                with self.assertRaises(InvalidGiveawayIdError):
                    parse_giveaway_id(raw)

    def test_non_canonical_trailing_bits_are_rejected(self):
        short_id = format_giveaway_id(uuid.UUID(int=0))
        self.assertEqual(short_id, "A" * 22)
        with self.assertRaises(InvalidGiveawayIdError):
            parse_giveaway_id("A" * 21 + "B")

    def test_invalid_id_is_a_validation_error(self):
        self.assertTrue(issubclass(InvalidGiveawayIdError, GiveawayValidationError))


class TestEndTimeParsing(unittest.TestCase):
    NOW = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)

    def test_durations(self):
        cases = {
            "1w": timedelta(weeks=1),
            "2d12h": timedelta(days=2, hours=12),
            "90m": timedelta(minutes=90),
            "1h 30m": timedelta(hours=1, minutes=30),
            "45S": timedelta(seconds=45),
        }
        for raw, expected in cases.items():
            with self.subTest(raw=raw):
                self.assertEqual(parse_duration(raw), expected)

    def test_duration_is_relative_to_now(self):
        self.assertEqual(parse_end_time("1d", now=self.NOW), self.NOW + timedelta(days=1))

    def test_digits_are_unix_seconds(self):
        self.assertEqual(
            parse_end_time("1714564800", now=self.NOW),
            datetime(2024, 5, 1, 12, 0, tzinfo=UTC),
        )

    def test_invalid_values_are_rejected(self):
        for raw in ("", "   ", "tomorrow", "5x", "1d and 2h", "-5m"):
            with self.subTest(raw=raw):
                with self.assertRaises(GiveawayValidationError):
                    parse_end_time(raw, now=self.NOW)


if __name__ == "__main__":
    unittest.main()
