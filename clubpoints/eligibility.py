# clubpoints/eligibility.py

from dataclasses import dataclass
from typing import Optional

from clubpoints.teams import NO_CLUB, Team

CLUB_TEAM_SIZE = 3

ELIGIBLE = "eligible"
INVALID_TEAM_SIZE = "invalid team size"
MIXED_OR_UNREGISTERED = "not all players from same registered club"


@dataclass(frozen=True)
class Eligibility:
    eligible: bool
    club_name: Optional[str]
    club_id: Optional[str]
    reason: str


def evaluate(team: Team) -> Eligibility:
    """
    Decide whether a team earns its club an award.

    A team qualifies only with exactly three members who all resolve to the
    same registered club. Individual results are recorded regardless.
    """
    if team.size != CLUB_TEAM_SIZE:
        return Eligibility(False, None, None, INVALID_TEAM_SIZE)

    if team.has_unregistered_members or any(name == NO_CLUB for name in team.club_names):
        return Eligibility(False, None, None, MIXED_OR_UNREGISTERED)

    club_ids = set(team.club_ids)
    club_names = set(team.club_names)
    if len(club_ids) != 1 or len(club_names) != 1 or None in club_ids:
        return Eligibility(False, None, None, MIXED_OR_UNREGISTERED)

    return Eligibility(True, team.club_names[0], team.club_ids[0], ELIGIBLE)
