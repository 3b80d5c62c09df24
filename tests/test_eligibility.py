# tests/test_eligibility.py

import unittest

from clubpoints.eligibility import (
    ELIGIBLE,
    INVALID_TEAM_SIZE,
    MIXED_OR_UNREGISTERED,
    evaluate,
)
from clubpoints.teams import RosterEntry, group_by_team
from tests.helpers import rows


class TestEligibility(unittest.TestCase):
    """Club award eligibility for a single team."""

    def setUp(self):
        self.roster = {
            f"A{i}": RosterEntry(f"Player A{i}", "club-a", "Club A", f"a{i}") for i in range(1, 5)
        }
        self.roster["B1"] = RosterEntry("Player B1", "club-b", "Club B", "b1")

    def _team(self, *player_ids):
        return group_by_team(rows(*[(pid, "party", 1) for pid in player_ids]), self.roster)["party"]

    def test_three_from_same_club_is_eligible(self):
        result = evaluate(self._team("A1", "A2", "A3"))
        self.assertTrue(result.eligible)
        self.assertEqual(result.club_name, "Club A")
        self.assertEqual(result.club_id, "club-a")
        self.assertEqual(result.reason, ELIGIBLE)

    def test_one_unregistered_member_is_not_eligible(self):
        result = evaluate(self._team("A1", "A2", "NOBODY"))
        self.assertFalse(result.eligible)
        self.assertEqual(result.reason, MIXED_OR_UNREGISTERED)
        self.assertIsNone(result.club_name)

    def test_mixed_clubs_are_not_eligible(self):
        result = evaluate(self._team("A1", "A2", "B1"))
        self.assertFalse(result.eligible)
        self.assertEqual(result.reason, MIXED_OR_UNREGISTERED)

    def test_two_members_never_eligible(self):
        result = evaluate(self._team("A1", "A2"))
        self.assertFalse(result.eligible)
        self.assertEqual(result.reason, INVALID_TEAM_SIZE)

    def test_four_members_never_eligible(self):
        result = evaluate(self._team("A1", "A2", "A3", "A4"))
        self.assertFalse(result.eligible)
        self.assertEqual(result.reason, INVALID_TEAM_SIZE)


if __name__ == '__main__':
    unittest.main()
