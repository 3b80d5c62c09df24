# tests/test_teams.py

import pytest

from clubpoints.teams import (
    NO_CLUB,
    UNKNOWN_PLAYER,
    ParticipantRow,
    RosterEntry,
    group_by_team,
    normalize_id,
    order_by_placement,
    parse_participant_row,
    parse_participant_rows,
    team_composition,
    top_four,
)
from tests.helpers import rows


@pytest.fixture
def roster():
    return {
        "A1": RosterEntry("Alice", "club-a", "Club A", "a1"),
        "A2": RosterEntry("Anna", "club-a", "Club A", "a2"),
        "A3": RosterEntry("Ari", "club-a", "Club A", "a3"),
        "B1": RosterEntry("Bob", "club-b", "Club B", "b1"),
    }


def test_normalize_id():
    assert normalize_id(" ab c\t12 ") == "ABC12"
    assert normalize_id(None) == ""
    assert normalize_id(123) == "123"


def test_parse_participant_row_reads_feed_keys():
    row = parse_participant_row({"userPlayfabId": " abc123 ", "partyId": "p1", "userPlace": "2"})
    assert row == ParticipantRow(competitor_id="ABC123", party_id="p1", placement=2)


@pytest.mark.parametrize("place,expected", [
    ("2nd", 2),
    ("1.0", 1),
    (" 3 ", 3),
    (4.0, 4),
    (1.5, 1),
])
def test_parse_participant_row_takes_leading_integer(place, expected):
    row = parse_participant_row({"userPlayfabId": "A", "partyId": "p", "userPlace": place})
    assert row.placement == expected


@pytest.mark.parametrize("raw", [
    {"userPlayfabId": "A", "partyId": "p", "userPlace": 5},
    {"userPlayfabId": "A", "partyId": "p", "userPlace": 0},
    {"userPlayfabId": "A", "partyId": "p", "userPlace": "first"},
    {"userPlayfabId": "A", "partyId": "p", "userPlace": "5th"},
    {"userPlayfabId": "A", "partyId": "p", "userPlace": float("nan")},
    {"userPlayfabId": "A", "partyId": "p", "userPlace": True},
    {"userPlayfabId": "", "partyId": "p", "userPlace": 1},
    {"userPlayfabId": "A", "partyId": None, "userPlace": 1},
    {"userPlayfabId": "A", "partyId": "p"},
    "not a row",
])
def test_parse_participant_row_rejects_unscoreable(raw):
    assert parse_participant_row(raw) is None


def test_parse_participant_rows_skips_bad_records():
    parsed = parse_participant_rows([
        {"userPlayfabId": "A", "partyId": "p", "userPlace": 1},
        {"userPlayfabId": "B", "partyId": "q", "userPlace": 9},
        None,
    ])
    assert [r.competitor_id for r in parsed] == ["A"]


def test_four_parties_ordered_first_to_fourth(roster):
    participant_rows = rows(
        ("X1", "p4", 4), ("X2", "p2", 2), ("X3", "p1", 1), ("X4", "p3", 3),
        ("X5", "p4", 4), ("X6", "p1", 1),
    )
    ordered = order_by_placement(group_by_team(participant_rows, roster))
    assert [team.party_id for team in ordered] == ["p1", "p2", "p3", "p4"]
    assert [team.placement for team in ordered] == [1, 2, 3, 4]


def test_group_by_team_collects_roster_identity(roster):
    teams = group_by_team(rows(("a1", "p1", 1), ("A2", "p1", 1), ("A3", "p1", 1)), roster)
    team = teams["p1"]
    assert team.competitor_ids == ["A1", "A2", "A3"]
    assert team.competitor_names == ["Alice", "Anna", "Ari"]
    assert team.club_names == ["Club A"] * 3
    assert team.club_ids == ["club-a"] * 3
    assert team.has_unregistered_members is False
    assert team.size == 3


def test_unregistered_members_get_placeholders(roster):
    teams = group_by_team(rows(("A1", "p1", 2), ("ZZ9", "p1", 2)), roster)
    team = teams["p1"]
    assert team.has_unregistered_members is True
    assert team.competitor_names[1] == UNKNOWN_PLAYER
    assert team.club_names[1] == NO_CLUB
    assert team.club_ids[1] is None
    assert team.registered_clubs() == ["Club A"]


def test_invalid_rows_are_dropped(roster):
    bad = [
        ParticipantRow("A1", "p1", 7),
        ParticipantRow("", "p1", 1),
        ParticipantRow("A2", "", 1),
        "garbage",
    ]
    assert group_by_team(bad, roster) == {}


def test_team_placement_is_minimum_of_members(roster):
    teams = group_by_team(rows(("A1", "p1", 3), ("A2", "p1", 2)), roster)
    assert teams["p1"].placement == 2


def test_ties_keep_first_seen_order(roster):
    teams = group_by_team(rows(("X1", "late", 2), ("X2", "early", 1), ("X3", "also-2", 2)), roster)
    ordered = order_by_placement(teams)
    assert [t.party_id for t in ordered] == ["early", "late", "also-2"]


def test_top_four_truncates():
    participant_rows = rows(*[(f"X{i}", f"p{i}", min(i, 4)) for i in range(1, 7)])
    ordered = order_by_placement(group_by_team(participant_rows, {}))
    assert len(top_four(ordered)) == 4


class TestTeamComposition:
    def test_single_club(self, roster):
        team = group_by_team(rows(("A1", "p", 1), ("A2", "p", 1)), roster)["p"]
        assert team_composition(team) == "Club A"

    def test_mixed(self, roster):
        team = group_by_team(rows(("A1", "p", 1), ("B1", "p", 1)), roster)["p"]
        assert team_composition(team) == "Mixed Team"

    def test_club_plus_unregistered(self, roster):
        team = group_by_team(rows(("A1", "p", 1), ("Q", "p", 1)), roster)["p"]
        assert team_composition(team) == "Club A + Unregistered"

    def test_mixed_plus_unregistered(self, roster):
        team = group_by_team(rows(("A1", "p", 1), ("B1", "p", 1), ("Q", "p", 1)), roster)["p"]
        assert team_composition(team) == "Mixed Team + Unregistered"

    def test_all_unregistered(self):
        team = group_by_team(rows(("Q1", "p", 1), ("Q2", "p", 1)), {})["p"]
        assert team_composition(team) == "Unregistered Players"
