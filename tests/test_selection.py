import random
import unittest
from unittest.mock import MagicMock

from fakes import GUILD_ID, FakeGuild, make_giveaway

from giveaway_bot.eligibility import EligibilityValidator
from giveaway_bot.exclusions import RoleExclusionRegistry, UserExclusionRegistry
from giveaway_bot.models import ExcludedRole, ExcludedUser
from giveaway_bot.selection import WinnerSelector


def make_validator():
    roles = RoleExclusionRegistry(MagicMock(), MagicMock())
    users = UserExclusionRegistry(MagicMock(), MagicMock())
    return EligibilityValidator(roles, users)


def exclude_user(validator, guild_id, user_id):
    validator.user_exclusions._excluded.setdefault(guild_id, {})[user_id] = ExcludedUser(guild_id, user_id)


def exclude_role(validator, guild_id, role_id):
    validator.role_exclusions._excluded.setdefault(guild_id, {})[role_id] = ExcludedRole(guild_id, role_id)


class TestEligibilityValidator(unittest.TestCase):
    def setUp(self):
        self.guild = FakeGuild()
        self.validator = make_validator()

    def test_member_without_exclusions_is_valid(self):
        member = self.guild.add_member(1)
        self.assertIs(self.validator.validate_user(1, self.guild), member)

    def test_departed_member_is_invalid(self):
        self.assertIsNone(self.validator.validate_user(1, self.guild))
        self.assertIsNone(self.validator.validate_user(0, self.guild))

    def test_user_exclusion(self):
        member = self.guild.add_member(1)
        exclude_user(self.validator, GUILD_ID, 1)
        self.assertFalse(self.validator.validate_member(member, self.guild))
        self.assertIsNone(self.validator.validate_user(1, self.guild))

    def test_role_exclusion(self):
        role = self.guild.add_role(50)
        member = self.guild.add_member(1, roles=[role])
        exclude_role(self.validator, GUILD_ID, 50)
        self.assertFalse(self.validator.validate_member(member, self.guild))

    def test_exclusions_do_not_leak_across_guilds(self):
        member = self.guild.add_member(1)
        exclude_user(self.validator, GUILD_ID + 1, 1)
        self.assertTrue(self.validator.validate_member(member, self.guild))

    def test_member_of_another_guild_is_a_programming_error(self):
        other = FakeGuild(GUILD_ID + 1)
        member = other.add_member(1)
        with self.assertRaises(ValueError):
            self.validator.validate_member(member, self.guild)

    def test_excluded_entrants_are_counted(self):
        for user_id in (1, 2, 3):
            self.guild.add_member(user_id)
        exclude_user(self.validator, GUILD_ID, 2)
        giveaway = make_giveaway(entrants=[1, 2, 3, 4])
        self.assertEqual(self.validator.count_excluded_entrants(giveaway, self.guild), 2)
        self.assertEqual(self.validator.count_excluded_entrants(giveaway, None), 0)


class TestWinnerSelector(unittest.TestCase):
    def setUp(self):
        self.guild = FakeGuild()
        self.validator = make_validator()
        self.selector = WinnerSelector(self.validator, rng=random.Random(1234))

    def add_members(self, *user_ids):
        return [self.guild.add_member(user_id) for user_id in user_ids]

    def test_excluded_entrant_is_never_drawn(self):
        self.add_members(1, 2, 3, 4, 5)
        exclude_user(self.validator, GUILD_ID, 3)
        giveaway = make_giveaway(entrants=[1, 2, 3, 4, 5], winner_count=2)

        for seed in range(50):
            self.selector = WinnerSelector(self.validator, rng=random.Random(seed))
            winners = self.selector.select_winners(giveaway, self.guild)
            ids = [w.id for w in winners]
            self.assertEqual(len(ids), 2)
            self.assertEqual(len(set(ids)), 2)
            self.assertNotIn(3, ids)
            self.assertTrue(set(ids) <= {1, 2, 4, 5})
        self.assertIn(3, giveaway.entrants)

    def test_no_valid_entrants_terminates_empty(self):
        self.add_members(1, 2)
        exclude_user(self.validator, GUILD_ID, 1)
        exclude_user(self.validator, GUILD_ID, 2)
        giveaway = make_giveaway(entrants=[1, 2, 3], winner_count=2)
        self.assertEqual(self.selector.select_winners(giveaway, self.guild), [])

    def test_fewer_entrants_than_winners(self):
        self.add_members(1, 2)
        giveaway = make_giveaway(entrants=[1, 2], winner_count=5)
        winners = self.selector.select_winners(giveaway, self.guild)
        self.assertEqual(sorted(w.id for w in winners), [1, 2])

    def test_no_entrants(self):
        giveaway = make_giveaway(entrants=[], winner_count=3)
        self.assertEqual(self.selector.select_winners(giveaway, self.guild), [])

    def test_missing_guild_yields_no_winners(self):
        giveaway = make_giveaway(entrants=[1], winner_count=1)
        self.assertEqual(self.selector.select_winners(giveaway, None), [])

    def test_entrant_list_is_not_modified(self):
        self.add_members(1, 2, 3)
        giveaway = make_giveaway(entrants=[1, 2, 3], winner_count=2)
        self.selector.select_winners(giveaway, self.guild)
        self.assertEqual(giveaway.entrants, [1, 2, 3])

    def test_kept_members_come_first(self):
        members = self.add_members(1, 2, 3, 4)
        giveaway = make_giveaway(entrants=[1, 2, 3, 4], winner_count=3)
        winners = self.selector.select_winners(giveaway, self.guild, keep=[members[3], members[1]])
        ids = [w.id for w in winners]
        self.assertEqual(ids[:2], [4, 2])
        self.assertEqual(len(ids), 3)
        self.assertEqual(len(set(ids)), 3)

    def test_keep_ignores_non_entrants_and_excluded_members(self):
        members = self.add_members(1, 2, 3, 9)
        exclude_user(self.validator, GUILD_ID, 2)
        giveaway = make_giveaway(entrants=[1, 2, 3], winner_count=2)
        winners = self.selector.select_winners(giveaway, self.guild, keep=[members[3], members[1]])
        ids = [w.id for w in winners]
        self.assertNotIn(9, ids)
        self.assertNotIn(2, ids)
        self.assertEqual(sorted(ids), [1, 3])

    def test_keep_is_capped_at_winner_count(self):
        members = self.add_members(1, 2, 3)
        giveaway = make_giveaway(entrants=[1, 2, 3], winner_count=1)
        winners = self.selector.select_winners(giveaway, self.guild, keep=members)
        self.assertEqual([w.id for w in winners], [1])

    def test_draw_is_roughly_uniform(self):
        self.add_members(1, 2, 3, 4)
        giveaway = make_giveaway(entrants=[1, 2, 3, 4], winner_count=1)
        counts = {1: 0, 2: 0, 3: 0, 4: 0}
        for _ in range(4000):
            counts[self.selector.select_winners(giveaway, self.guild)[0].id] += 1
        for user_id, count in counts.items():
            with self.subTest(user_id=user_id):
                self.assertGreater(count, 800)
                self.assertLess(count, 1200)


if __name__ == "__main__":
    unittest.main()
