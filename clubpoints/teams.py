# clubpoints/teams.py

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional

LOGGER = logging.getLogger(__name__)

NO_CLUB = "No Club"
UNKNOWN_PLAYER = "Unknown Player"
TOP_TEAMS = 4

_WHITESPACE = re.compile(r"\s+")
_LEADING_INT = re.compile(r"\s*([+-]?\d+)")


def normalize_id(raw: Any) -> str:
    """Upper-case an external player id and strip all whitespace."""
    if raw is None:
        return ""
    return _WHITESPACE.sub("", str(raw)).upper()


@dataclass(frozen=True)
class RosterEntry:
    name: str
    club_id: str
    club_name: str
    member_key: Optional[str] = None


@dataclass(frozen=True)
class ParticipantRow:
    competitor_id: str
    party_id: str
    placement: int


@dataclass
class Team:
    party_id: str
    placements: List[int] = field(default_factory=list)
    competitor_ids: List[str] = field(default_factory=list)
    competitor_names: List[str] = field(default_factory=list)
    club_names: List[str] = field(default_factory=list)
    club_ids: List[Optional[str]] = field(default_factory=list)
    has_unregistered_members: bool = False

    @property
    def placement(self) -> int:
        return min(self.placements)

    @property
    def size(self) -> int:
        return len(self.competitor_ids)

    def registered_clubs(self) -> List[str]:
        return [name for name in self.club_names if name != NO_CLUB]

    def members(self):
        """Yield (competitor_id, placement, club_id) per member in row order."""
        return zip(self.competitor_ids, self.placements, self.club_ids)


def _parse_placement(value: Any) -> Optional[int]:
    """Leading integer of the feed value ("2", "2nd", "1.0", 1.0); None otherwise."""
    if value is None or isinstance(value, bool):
        return None
    match = _LEADING_INT.match(str(value))
    return int(match.group(1)) if match else None


def parse_participant_row(raw: Any) -> Optional[ParticipantRow]:
    """Build a row from a feed record, or None if it is not scoreable."""
    if not isinstance(raw, Mapping):
        return None

    competitor_id = normalize_id(raw.get("userPlayfabId"))
    party_id = raw.get("partyId")
    placement = _parse_placement(raw.get("userPlace"))

    if not competitor_id or party_id in (None, ""):
        return None
    if placement is None or placement < 1 or placement > TOP_TEAMS:
        return None
    return ParticipantRow(competitor_id=competitor_id, party_id=str(party_id), placement=placement)


def parse_participant_rows(payload: Iterable[Any]) -> List[ParticipantRow]:
    rows: List[ParticipantRow] = []
    skipped = 0
    for raw in payload:
        row = parse_participant_row(raw)
        if row is None:
            skipped += 1
            continue
        rows.append(row)
    if skipped:
        LOGGER.debug("Skipped %s participant rows outside the top 4 or missing ids", skipped)
    return rows


def _is_valid(row: Any) -> bool:
    if not isinstance(row, ParticipantRow):
        return False
    if not row.competitor_id or not row.party_id:
        return False
    return isinstance(row.placement, int) and 1 <= row.placement <= TOP_TEAMS


def group_by_team(rows: Iterable[ParticipantRow], roster: Mapping[str, RosterEntry]) -> Dict[str, Team]:
    """
    Group participant rows by party id.

    Teams keep the order in which their party id was first seen. Competitors
    missing from the roster are kept with placeholder identity and flag the
    team as having unregistered members.
    """
    teams: Dict[str, Team] = {}
    for row in rows:
        if not _is_valid(row):
            continue

        competitor_id = normalize_id(row.competitor_id)
        entry = roster.get(competitor_id)

        team = teams.get(row.party_id)
        if team is None:
            team = Team(party_id=row.party_id)
            teams[row.party_id] = team

        if entry is None:
            team.has_unregistered_members = True
            team.competitor_names.append(UNKNOWN_PLAYER)
            team.club_names.append(NO_CLUB)
            team.club_ids.append(None)
        else:
            team.competitor_names.append(entry.name)
            team.club_names.append(entry.club_name)
            team.club_ids.append(entry.club_id)

        team.placements.append(row.placement)
        team.competitor_ids.append(competitor_id)

    return teams


def order_by_placement(teams: Mapping[str, Team]) -> List[Team]:
    # sorted() is stable, so ties keep first-seen order
    return sorted(teams.values(), key=lambda team: team.placement)


def top_four(ordered: List[Team]) -> List[Team]:
    return ordered[:TOP_TEAMS]


def team_composition(team: Team) -> str:
    """Short label describing who a team was made of."""
    unique_clubs = list(dict.fromkeys(team.registered_clubs()))

    if team.has_unregistered_members:
        if not unique_clubs:
            return "Unregistered Players"
        if len(unique_clubs) == 1:
            return f"{unique_clubs[0]} + Unregistered"
        return "Mixed Team + Unregistered"

    if len(unique_clubs) == 1:
        return unique_clubs[0]
    if len(unique_clubs) > 1:
        return "Mixed Team"
    return NO_CLUB
