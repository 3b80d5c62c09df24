# tests/helpers.py

import os
import tempfile
from typing import Dict, List, Tuple

from clubpoints.api_client import Tournament
from clubpoints.database import Database
from clubpoints.teams import ParticipantRow


def create_test_db() -> Tuple[Database, str]:
    """Create a fresh database in a temp file. Caller removes the file."""
    fd, db_path = tempfile.mkstemp(suffix='.db')
    os.close(fd)
    return Database(db_path), db_path


def remove_test_db(db: Database, db_path: str) -> None:
    db.close()
    for suffix in ('', '-wal', '-shm'):
        if os.path.exists(db_path + suffix):
            os.remove(db_path + suffix)


def seed_roster(db: Database, clubs: Dict[str, Tuple[str, List[str]]]) -> None:
    """
    Add clubs and members.

    clubs maps club_id -> (club name, [player ids]). Member names are
    "<player id> name" and member keys are the lower-cased ids.
    """
    for club_id, (club_name, player_ids) in clubs.items():
        db.add_club(club_id, club_name)
        for player_id in player_ids:
            db.add_club_member(club_id, player_id, f"{player_id} name", member_key=player_id.lower())


def rows(*specs) -> List[ParticipantRow]:
    """rows(("P1", "party-a", 1), ...) -> participant rows."""
    return [ParticipantRow(competitor_id=c, party_id=p, placement=n) for c, p, n in specs]


class FakeFeed:
    """In-memory tournament feed."""

    def __init__(self, tournaments=None, participants=None, failing=None):
        self.tournaments = list(tournaments or [])
        self.participants = dict(participants or {})
        self.failing = dict(failing or {})
        self.participant_calls: List[str] = []

    def add(self, tournament_id: str, name: str, participant_rows: List[ParticipantRow]) -> Tournament:
        tournament = Tournament(id=tournament_id, name=name)
        self.tournaments.append(tournament)
        self.participants[tournament_id] = participant_rows
        return tournament

    def list_tournaments(self, since, until):
        return list(self.tournaments)

    def list_participants(self, tournament_id):
        self.participant_calls.append(tournament_id)
        if tournament_id in self.failing:
            raise self.failing[tournament_id]
        return list(self.participants.get(tournament_id, []))
