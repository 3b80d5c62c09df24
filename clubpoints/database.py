# clubpoints/database.py

import logging
import os
import sqlite3
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, List, Optional, Set, Tuple

from clubpoints.teams import RosterEntry, normalize_id
from clubpoints.tiers import STAT_FIELDS

LOGGER = logging.getLogger(__name__)

# Season value used for lifetime rows in per-season tables.
LIFETIME = 0
DEFAULT_SEASON = 1

ENTITY_PLAYER = 'player'
ENTITY_CLUB = 'club'
ENTITY_MEMBER = 'member'

_ADAPTERS_REGISTERED = False


def _register_decimal_adapters() -> None:
    global _ADAPTERS_REGISTERED
    if _ADAPTERS_REGISTERED:
        return

    # Points are stored as text so repeated additions stay exact.
    sqlite3.register_adapter(Decimal, str)
    sqlite3.register_converter("DECTEXT", lambda b: Decimal(b.decode()))

    _ADAPTERS_REGISTERED = True


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def member_entity_id(club_id: str, member_key: str) -> str:
    return f"{club_id}:{member_key}"


@dataclass
class PlayerResult:
    player_id: str
    name: Optional[str]
    is_registered: bool
    stat_field: Optional[str]
    points: Decimal


@dataclass
class ClubAward:
    club_id: str
    stat_field: Optional[str]
    points: Decimal


@dataclass
class MemberAward:
    club_id: str
    member_key: str
    stat_field: Optional[str]
    points: Decimal


@dataclass
class TournamentBatch:
    """Every write produced by one tournament, applied in one transaction."""

    tournament_id: str
    tournament_name: str
    tier: str
    season: int
    player_results: List[PlayerResult] = field(default_factory=list)
    club_awards: List[ClubAward] = field(default_factory=list)
    member_awards: List[MemberAward] = field(default_factory=list)

    @property
    def touched_clubs(self) -> Set[str]:
        clubs = {award.club_id for award in self.club_awards}
        clubs.update(award.club_id for award in self.member_awards)
        return clubs


class Database:
    """Handle all database operations."""

    def __init__(self, db_path: str = 'data/clubpoints.db'):
        self.db_path = self._resolve_db_path(db_path)
        self.conn = None
        self.init_database()

    @staticmethod
    def _resolve_db_path(db_path: str) -> str:
        """Return an absolute database path anchored to project root when relative."""
        if db_path == ':memory:':
            return db_path
        path = Path(db_path)
        if path.is_absolute():
            return str(path)

        project_root = Path(__file__).resolve().parents[1]
        return str(project_root / path)

    def init_database(self):
        """Create tables if they don't exist."""
        try:
            db_dir = os.path.dirname(self.db_path)
            if db_dir:
                try:
                    os.makedirs(db_dir, exist_ok=True)
                except OSError as e:
                    raise RuntimeError(f"Failed to create database directory '{db_dir}': {e}")

            _register_decimal_adapters()
            self.conn = sqlite3.connect(
                self.db_path,
                timeout=30.0,
                detect_types=sqlite3.PARSE_DECLTYPES,
                check_same_thread=False,
            )
            self.conn.row_factory = sqlite3.Row
            self.conn.execute("PRAGMA busy_timeout = 30000")
            self.conn.execute("PRAGMA foreign_keys = ON")
            self._set_wal_mode_best_effort()

            cursor = self.conn.cursor()

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS settings (
                    key     TEXT PRIMARY KEY,
                    value   TEXT
                )
            """)

            # Roster
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS clubs (
                    club_id         TEXT PRIMARY KEY,
                    name            TEXT NOT NULL,
                    total_points    DECTEXT NOT NULL DEFAULT '0',
                    member_points   DECTEXT NOT NULL DEFAULT '0',
                    total_trophies  INTEGER NOT NULL DEFAULT 0,
                    created_at      TEXT DEFAULT CURRENT_TIMESTAMP
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS club_members (
                    club_id         TEXT NOT NULL,
                    member_key      TEXT NOT NULL,
                    external_id     TEXT,
                    name            TEXT,
                    trophy_count    INTEGER,
                    total_points    DECTEXT NOT NULL DEFAULT '0',
                    last_profile_sync TEXT,
                    joined_at       TEXT DEFAULT CURRENT_TIMESTAMP,
                    PRIMARY KEY (club_id, member_key),
                    FOREIGN KEY (club_id) REFERENCES clubs(club_id)
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS club_seasons (
                    club_id         TEXT NOT NULL,
                    season          INTEGER NOT NULL,
                    total_points    DECTEXT NOT NULL DEFAULT '0',
                    member_points   DECTEXT NOT NULL DEFAULT '0',
                    total_trophies  INTEGER NOT NULL DEFAULT 0,
                    PRIMARY KEY (club_id, season),
                    FOREIGN KEY (club_id) REFERENCES clubs(club_id)
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS member_seasons (
                    club_id         TEXT NOT NULL,
                    member_key      TEXT NOT NULL,
                    season          INTEGER NOT NULL,
                    total_points    DECTEXT NOT NULL DEFAULT '0',
                    PRIMARY KEY (club_id, member_key, season)
                )
            """)

            # Individual results, kept for everyone who finished top 4
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS players (
                    player_id       TEXT PRIMARY KEY,
                    name            TEXT,
                    is_registered   INTEGER NOT NULL DEFAULT 0,
                    trophy_count    INTEGER,
                    total_points    DECTEXT NOT NULL DEFAULT '0',
                    created_at      TEXT DEFAULT CURRENT_TIMESTAMP
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS player_seasons (
                    player_id       TEXT NOT NULL,
                    season          INTEGER NOT NULL,
                    total_points    DECTEXT NOT NULL DEFAULT '0',
                    trophy_count    INTEGER,
                    PRIMARY KEY (player_id, season)
                )
            """)

            # Placement counters per tier; season 0 holds lifetime totals
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS tier_stats (
                    entity_type     TEXT NOT NULL,
                    entity_id       TEXT NOT NULL,
                    season          INTEGER NOT NULL,
                    tier            TEXT NOT NULL,
                    first           INTEGER NOT NULL DEFAULT 0,
                    second          INTEGER NOT NULL DEFAULT 0,
                    third           INTEGER NOT NULL DEFAULT 0,
                    PRIMARY KEY (entity_type, entity_id, season, tier)
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS processed_tournaments (
                    tournament_id   TEXT PRIMARY KEY,
                    name            TEXT,
                    tier            TEXT,
                    fetched_at      TEXT NOT NULL
                )
            """)

            cursor.execute("CREATE INDEX IF NOT EXISTS idx_club_members_external ON club_members(external_id)")

            self._commit_with_retry(context="init schema commit")
        except sqlite3.Error as e:
            raise RuntimeError(f"Failed to initialize database at '{self.db_path}': {e}")

    def _commit_with_retry(self, retries: int = 8, delay_seconds: float = 0.25, context: str = "commit") -> None:
        """
        Retry commit on transient SQLITE_BUSY/locked errors.
        """
        last_error = None
        for attempt in range(retries):
            try:
                self.conn.commit()
                return
            except sqlite3.OperationalError as e:
                last_error = e
                if "locked" not in str(e).lower() and "busy" not in str(e).lower():
                    raise
                if attempt == retries - 1:
                    break
                time.sleep(delay_seconds)
        raise RuntimeError(
            f"Failed to {context}: database remained locked after {retries} attempts ({last_error})"
        )

    def _set_wal_mode_best_effort(self, retries: int = 5, delay_seconds: float = 0.2) -> None:
        """Try to enable WAL without failing startup if the DB is temporarily locked."""
        if self.db_path == ':memory:':
            return
        for attempt in range(retries):
            try:
                self.conn.execute("PRAGMA journal_mode = WAL")
                return
            except sqlite3.OperationalError as e:
                msg = str(e).lower()
                if "locked" not in msg and "busy" not in msg:
                    raise
                if attempt == retries - 1:
                    LOGGER.warning("Could not enable WAL mode (database locked); continuing. (%s)", e)
                    return
                time.sleep(delay_seconds)

    # --- Settings ---

    def get_current_season(self) -> int:
        """Current season number, defaulting to 1 when unset or invalid."""
        try:
            cursor = self.conn.cursor()
            cursor.execute("SELECT value FROM settings WHERE key = 'current_season'")
            row = cursor.fetchone()
        except sqlite3.Error as e:
            raise RuntimeError(f"Failed to load current season: {e}")
        if row is None:
            return DEFAULT_SEASON
        try:
            season = int(row["value"])
        except (TypeError, ValueError):
            LOGGER.warning("Invalid current_season setting %r; using season %s", row["value"], DEFAULT_SEASON)
            return DEFAULT_SEASON
        return season if season > 0 else DEFAULT_SEASON

    def set_current_season(self, season: int) -> None:
        if season < 1:
            raise ValueError(f"Season must be a positive integer, got {season}")
        try:
            self.conn.execute(
                "INSERT INTO settings (key, value) VALUES ('current_season', ?) "
                "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
                (str(season),),
            )
            self.conn.commit()
        except sqlite3.Error as e:
            self.conn.rollback()
            raise RuntimeError(f"Failed to set current season: {e}")

    # --- Roster ---

    def add_club(self, club_id: str, name: str) -> str:
        """Add a club or rename an existing one. Returns club_id."""
        try:
            self.conn.execute(
                "INSERT INTO clubs (club_id, name) VALUES (?, ?) "
                "ON CONFLICT(club_id) DO UPDATE SET name = excluded.name",
                (club_id, name),
            )
            self.conn.commit()
            return club_id
        except sqlite3.Error as e:
            self.conn.rollback()
            raise RuntimeError(f"Failed to add club '{name}': {e}")

    def add_club_member(
        self,
        club_id: str,
        external_id: str,
        name: str,
        member_key: Optional[str] = None,
        trophy_count: Optional[int] = None,
    ) -> str:
        """Add a player to a club roster. Returns the member key."""
        member_key = member_key or normalize_id(external_id)
        try:
            self.conn.execute(
                """
                INSERT INTO club_members (club_id, member_key, external_id, name, trophy_count)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(club_id, member_key) DO UPDATE SET
                    external_id = excluded.external_id,
                    name = excluded.name
                """,
                (club_id, member_key, external_id, name, trophy_count),
            )
            self.conn.commit()
            return member_key
        except sqlite3.Error as e:
            self.conn.rollback()
            raise RuntimeError(f"Failed to add member '{external_id}' to club {club_id}: {e}")

    def import_roster(self, clubs: Dict[str, Any]) -> Dict[str, int]:
        """
        Load clubs and members from an exported roster document.

        Expected shape: {club_id: {"name": ..., "players": {key: {"playfabId": ..., "name": ...}}}}
        """
        if not isinstance(clubs, dict):
            raise ValueError("Roster document must be an object keyed by club id")

        counts = {"clubs": 0, "members": 0}
        for club_id, club_data in clubs.items():
            if not isinstance(club_data, dict) or not club_data.get("name"):
                LOGGER.warning("Skipping roster entry %s without a club name", club_id)
                continue
            self.add_club(str(club_id), club_data["name"])
            counts["clubs"] += 1
            for member_key, player in (club_data.get("players") or {}).items():
                if not isinstance(player, dict) or not player.get("playfabId"):
                    continue
                self.add_club_member(
                    str(club_id),
                    player["playfabId"],
                    player.get("name"),
                    member_key=str(member_key),
                    trophy_count=player.get("trophyCount"),
                )
                counts["members"] += 1
        return counts

    def get_roster(self) -> Dict[str, RosterEntry]:
        """Map normalized player ids to their club membership."""
        try:
            cursor = self.conn.cursor()
            cursor.execute("""
                SELECT m.member_key, m.external_id, m.name, c.club_id, c.name AS club_name
                FROM club_members m
                JOIN clubs c ON c.club_id = m.club_id
                WHERE m.external_id IS NOT NULL AND m.name IS NOT NULL
                ORDER BY c.club_id, m.member_key
            """)
            rows = cursor.fetchall()
        except sqlite3.Error as e:
            raise RuntimeError(f"Failed to load roster: {e}")

        roster: Dict[str, RosterEntry] = {}
        for row in rows:
            player_id = normalize_id(row["external_id"])
            if not player_id:
                continue
            roster[player_id] = RosterEntry(
                name=row["name"],
                club_id=row["club_id"],
                club_name=row["club_name"],
                member_key=row["member_key"],
            )
        return roster

    def get_club(self, club_id: str) -> Optional[Dict]:
        cursor = self.conn.cursor()
        cursor.execute("SELECT * FROM clubs WHERE club_id = ?", (club_id,))
        row = cursor.fetchone()
        return dict(row) if row else None

    def get_all_clubs(self) -> List[Dict]:
        cursor = self.conn.cursor()
        cursor.execute("SELECT * FROM clubs ORDER BY name")
        return [dict(row) for row in cursor.fetchall()]

    def get_club_members(self, club_id: str) -> List[Dict]:
        cursor = self.conn.cursor()
        cursor.execute(
            "SELECT * FROM club_members WHERE club_id = ? ORDER BY member_key",
            (club_id,),
        )
        return [dict(row) for row in cursor.fetchall()]

    def get_all_members(self) -> List[Dict]:
        """All roster members with an external id, for profile sync."""
        cursor = self.conn.cursor()
        cursor.execute("""
            SELECT * FROM club_members
            WHERE external_id IS NOT NULL AND TRIM(external_id) != ''
            ORDER BY club_id, member_key
        """)
        return [dict(row) for row in cursor.fetchall()]

    def get_member(self, club_id: str, member_key: str) -> Optional[Dict]:
        cursor = self.conn.cursor()
        cursor.execute(
            "SELECT * FROM club_members WHERE club_id = ? AND member_key = ?",
            (club_id, member_key),
        )
        row = cursor.fetchone()
        return dict(row) if row else None

    def get_club_season(self, club_id: str, season: int) -> Optional[Dict]:
        cursor = self.conn.cursor()
        cursor.execute(
            "SELECT * FROM club_seasons WHERE club_id = ? AND season = ?",
            (club_id, season),
        )
        row = cursor.fetchone()
        return dict(row) if row else None

    def get_member_season(self, club_id: str, member_key: str, season: int) -> Optional[Dict]:
        cursor = self.conn.cursor()
        cursor.execute(
            "SELECT * FROM member_seasons WHERE club_id = ? AND member_key = ? AND season = ?",
            (club_id, member_key, season),
        )
        row = cursor.fetchone()
        return dict(row) if row else None

    def get_club_standings(self, season: int) -> List[Dict]:
        """Clubs ordered by points for a season (0 for lifetime)."""
        cursor = self.conn.cursor()
        if season == LIFETIME:
            cursor.execute("SELECT club_id, name, total_points, member_points, total_trophies FROM clubs")
        else:
            cursor.execute("""
                SELECT c.club_id, c.name,
                       COALESCE(s.total_points, '0') AS total_points,
                       COALESCE(s.member_points, '0') AS member_points,
                       COALESCE(s.total_trophies, 0) AS total_trophies
                FROM clubs c
                LEFT JOIN club_seasons s ON s.club_id = c.club_id AND s.season = ?
            """, (season,))
        standings = []
        for row in cursor.fetchall():
            item = dict(row)
            item["total_points"] = Decimal(str(item["total_points"]))
            item["member_points"] = Decimal(str(item["member_points"]))
            standings.append(item)
        standings.sort(key=lambda item: (-item["total_points"], item["name"]))
        return standings

    # --- Individual records ---

    def get_player(self, player_id: str) -> Optional[Dict]:
        cursor = self.conn.cursor()
        cursor.execute("SELECT * FROM players WHERE player_id = ?", (normalize_id(player_id),))
        row = cursor.fetchone()
        if not row:
            return None
        player = dict(row)
        player["is_registered"] = bool(player["is_registered"])
        return player

    def get_player_season(self, player_id: str, season: int) -> Optional[Dict]:
        cursor = self.conn.cursor()
        cursor.execute(
            "SELECT * FROM player_seasons WHERE player_id = ? AND season = ?",
            (normalize_id(player_id), season),
        )
        row = cursor.fetchone()
        return dict(row) if row else None

    def get_tier_stats(self, entity_type: str, entity_id: str, season: int = LIFETIME) -> Dict[str, Dict[str, int]]:
        """Placement counters keyed by tier for one entity and season."""
        cursor = self.conn.cursor()
        cursor.execute(
            """
            SELECT tier, first, second, third FROM tier_stats
            WHERE entity_type = ? AND entity_id = ? AND season = ?
            ORDER BY tier
            """,
            (entity_type, entity_id, season),
        )
        return {
            row["tier"]: {name: row[name] for name in STAT_FIELDS}
            for row in cursor.fetchall()
        }

    # --- Processed markers ---

    def is_tournament_processed(self, tournament_id: str) -> bool:
        try:
            cursor = self.conn.cursor()
            cursor.execute(
                "SELECT 1 FROM processed_tournaments WHERE tournament_id = ? LIMIT 1",
                (str(tournament_id),),
            )
            return cursor.fetchone() is not None
        except sqlite3.Error as e:
            raise RuntimeError(f"Failed to check tournament {tournament_id}: {e}")

    def mark_tournament_processed(self, tournament_id: str, name: str = None, tier: str = None) -> None:
        try:
            self._insert_marker(self.conn.cursor(), tournament_id, name, tier)
            self.conn.commit()
        except sqlite3.Error as e:
            self.conn.rollback()
            raise RuntimeError(f"Failed to mark tournament {tournament_id} as processed: {e}")

    def get_processed_tournaments(self, limit: int = 50) -> List[Dict]:
        cursor = self.conn.cursor()
        cursor.execute(
            "SELECT * FROM processed_tournaments ORDER BY fetched_at DESC, tournament_id LIMIT ?",
            (limit,),
        )
        return [dict(row) for row in cursor.fetchall()]

    @staticmethod
    def _insert_marker(cursor, tournament_id: str, name: Optional[str], tier: Optional[str]) -> None:
        cursor.execute(
            "INSERT INTO processed_tournaments (tournament_id, name, tier, fetched_at) VALUES (?, ?, ?, ?)",
            (str(tournament_id), name, tier, _utc_now()),
        )

    # --- Tournament writes ---

    def apply_tournament(self, batch: TournamentBatch) -> Dict[str, int]:
        """
        Apply every write for one tournament plus its processed marker.

        All statements run in one transaction: either the tournament is fully
        recorded and marked, or nothing changes.
        """
        cursor = self.conn.cursor()
        season = batch.season
        try:
            for result in batch.player_results:
                self._apply_player_result(cursor, result, batch.tier, season)

            for award in batch.club_awards:
                self._add_club_points(cursor, award.club_id, award.points, season)
                self._increment_tier_stat(cursor, ENTITY_CLUB, award.club_id, batch.tier, award.stat_field, season)

            for award in batch.member_awards:
                self._add_member_points(cursor, award.club_id, award.member_key, award.points, season)
                self._increment_tier_stat(
                    cursor,
                    ENTITY_MEMBER,
                    member_entity_id(award.club_id, award.member_key),
                    batch.tier,
                    award.stat_field,
                    season,
                )

            refreshed = 0
            for club_id in sorted(batch.touched_clubs):
                if self._refresh_member_points(cursor, club_id, season):
                    refreshed += 1

            self._insert_marker(cursor, batch.tournament_id, batch.tournament_name, batch.tier)
            self._commit_with_retry(context=f"record tournament {batch.tournament_id}")
        except Exception as e:
            # Bad stored values (e.g. an unparseable points column) fail here too
            self.conn.rollback()
            raise RuntimeError(f"Failed to record tournament {batch.tournament_id}: {e}") from e

        return {
            "player_results": len(batch.player_results),
            "club_awards": len(batch.club_awards),
            "member_awards": len(batch.member_awards),
            "clubs_refreshed": refreshed,
        }

    def _apply_player_result(self, cursor, result: PlayerResult, tier: str, season: int) -> None:
        cursor.execute("SELECT name, is_registered FROM players WHERE player_id = ?", (result.player_id,))
        row = cursor.fetchone()
        if row is None:
            cursor.execute(
                "INSERT INTO players (player_id, name, is_registered) VALUES (?, ?, ?)",
                (result.player_id, result.name if result.is_registered else None, int(result.is_registered)),
            )
        elif bool(row["is_registered"]) != result.is_registered:
            name = row["name"] or (result.name if result.is_registered else None)
            cursor.execute(
                "UPDATE players SET is_registered = ?, name = ? WHERE player_id = ?",
                (int(result.is_registered), name, result.player_id),
            )

        self._increment_tier_stat(cursor, ENTITY_PLAYER, result.player_id, tier, result.stat_field, season)

        cursor.execute("SELECT total_points FROM players WHERE player_id = ?", (result.player_id,))
        lifetime = cursor.fetchone()["total_points"]
        cursor.execute(
            "UPDATE players SET total_points = ? WHERE player_id = ?",
            (lifetime + result.points, result.player_id),
        )

        cursor.execute(
            "INSERT OR IGNORE INTO player_seasons (player_id, season) VALUES (?, ?)",
            (result.player_id, season),
        )
        cursor.execute(
            "SELECT total_points FROM player_seasons WHERE player_id = ? AND season = ?",
            (result.player_id, season),
        )
        season_points = cursor.fetchone()["total_points"]
        cursor.execute(
            "UPDATE player_seasons SET total_points = ? WHERE player_id = ? AND season = ?",
            (season_points + result.points, result.player_id, season),
        )

    def _add_club_points(self, cursor, club_id: str, points: Decimal, season: int) -> None:
        cursor.execute("SELECT total_points FROM clubs WHERE club_id = ?", (club_id,))
        row = cursor.fetchone()
        if row is None:
            raise RuntimeError(f"Club {club_id} not found for points update")
        cursor.execute(
            "UPDATE clubs SET total_points = ? WHERE club_id = ?",
            (row["total_points"] + points, club_id),
        )

        cursor.execute(
            "INSERT OR IGNORE INTO club_seasons (club_id, season) VALUES (?, ?)",
            (club_id, season),
        )
        cursor.execute(
            "SELECT total_points FROM club_seasons WHERE club_id = ? AND season = ?",
            (club_id, season),
        )
        season_points = cursor.fetchone()["total_points"]
        cursor.execute(
            "UPDATE club_seasons SET total_points = ? WHERE club_id = ? AND season = ?",
            (season_points + points, club_id, season),
        )

    def _add_member_points(self, cursor, club_id: str, member_key: str, points: Decimal, season: int) -> None:
        cursor.execute(
            "SELECT total_points FROM club_members WHERE club_id = ? AND member_key = ?",
            (club_id, member_key),
        )
        row = cursor.fetchone()
        if row is None:
            raise RuntimeError(f"Member {member_key} of club {club_id} not found for points update")
        cursor.execute(
            "UPDATE club_members SET total_points = ? WHERE club_id = ? AND member_key = ?",
            (row["total_points"] + points, club_id, member_key),
        )

        cursor.execute(
            "INSERT OR IGNORE INTO member_seasons (club_id, member_key, season) VALUES (?, ?, ?)",
            (club_id, member_key, season),
        )
        cursor.execute(
            "SELECT total_points FROM member_seasons WHERE club_id = ? AND member_key = ? AND season = ?",
            (club_id, member_key, season),
        )
        season_points = cursor.fetchone()["total_points"]
        cursor.execute(
            "UPDATE member_seasons SET total_points = ? WHERE club_id = ? AND member_key = ? AND season = ?",
            (season_points + points, club_id, member_key, season),
        )

    @staticmethod
    def _increment_tier_stat(
        cursor,
        entity_type: str,
        entity_id: str,
        tier: str,
        stat_field: Optional[str],
        season: int,
    ) -> None:
        """Bump one placement counter for both the season and lifetime rows."""
        if stat_field not in STAT_FIELDS:
            return
        for scope in (season, LIFETIME):
            cursor.execute(
                "INSERT OR IGNORE INTO tier_stats (entity_type, entity_id, season, tier) VALUES (?, ?, ?, ?)",
                (entity_type, entity_id, scope, tier),
            )
            # stat_field is one of STAT_FIELDS, never caller text
            cursor.execute(
                f"""
                UPDATE tier_stats SET {stat_field} = {stat_field} + 1
                WHERE entity_type = ? AND entity_id = ? AND season = ? AND tier = ?
                """,
                (entity_type, entity_id, scope, tier),
            )

    def _refresh_member_points(self, cursor, club_id: str, season: int) -> bool:
        """Recompute a club's member point sums; write only what changed."""
        cursor.execute("SELECT total_points FROM club_members WHERE club_id = ?", (club_id,))
        lifetime_sum = sum((row["total_points"] for row in cursor.fetchall()), Decimal('0'))
        cursor.execute(
            "SELECT total_points FROM member_seasons WHERE club_id = ? AND season = ?",
            (club_id, season),
        )
        season_sum = sum((row["total_points"] for row in cursor.fetchall()), Decimal('0'))

        cursor.execute("SELECT member_points FROM clubs WHERE club_id = ?", (club_id,))
        club = cursor.fetchone()
        if club is None:
            return False
        cursor.execute(
            "INSERT OR IGNORE INTO club_seasons (club_id, season) VALUES (?, ?)",
            (club_id, season),
        )
        cursor.execute(
            "SELECT member_points FROM club_seasons WHERE club_id = ? AND season = ?",
            (club_id, season),
        )
        stored_season = cursor.fetchone()["member_points"]

        changed = False
        if club["member_points"] != lifetime_sum:
            cursor.execute("UPDATE clubs SET member_points = ? WHERE club_id = ?", (lifetime_sum, club_id))
            changed = True
        if stored_season != season_sum:
            cursor.execute(
                "UPDATE club_seasons SET member_points = ? WHERE club_id = ? AND season = ?",
                (season_sum, club_id, season),
            )
            changed = True
        return changed

    # --- Profile sync ---

    def update_member_profile(
        self,
        club_id: str,
        member_key: str,
        season: int,
        name: Optional[str] = None,
        trophy_count: Optional[int] = None,
    ) -> None:
        """Store a refreshed display name and/or trophy count for a roster member."""
        member = self.get_member(club_id, member_key)
        if member is None:
            raise RuntimeError(f"Member {member_key} of club {club_id} not found")
        player_id = normalize_id(member["external_id"])

        try:
            cursor = self.conn.cursor()
            cursor.execute(
                """
                UPDATE club_members
                SET name = COALESCE(?, name),
                    trophy_count = COALESCE(?, trophy_count),
                    last_profile_sync = ?
                WHERE club_id = ? AND member_key = ?
                """,
                (name, trophy_count, _utc_now(), club_id, member_key),
            )

            cursor.execute("INSERT OR IGNORE INTO players (player_id) VALUES (?)", (player_id,))
            if name is not None:
                cursor.execute("UPDATE players SET name = ? WHERE player_id = ?", (name, player_id))
            if trophy_count is not None:
                cursor.execute(
                    "UPDATE players SET trophy_count = ? WHERE player_id = ?",
                    (trophy_count, player_id),
                )
                cursor.execute(
                    "INSERT OR IGNORE INTO player_seasons (player_id, season) VALUES (?, ?)",
                    (player_id, season),
                )
                cursor.execute(
                    "UPDATE player_seasons SET trophy_count = ? WHERE player_id = ? AND season = ?",
                    (trophy_count, player_id, season),
                )
            self.conn.commit()
        except sqlite3.Error as e:
            self.conn.rollback()
            raise RuntimeError(f"Failed to update profile for member {member_key}: {e}")

    def refresh_club_trophies(self, season: int) -> List[Tuple[str, int, int]]:
        """
        Set each club's trophy total to the sum of its members' trophy counts.

        Returns (club name, previous, new) for every club that changed.
        """
        changed: List[Tuple[str, int, int]] = []
        try:
            cursor = self.conn.cursor()
            cursor.execute("""
                SELECT c.club_id, c.name, c.total_trophies,
                       COALESCE(SUM(m.trophy_count), 0) AS member_trophies
                FROM clubs c
                LEFT JOIN club_members m ON m.club_id = c.club_id
                GROUP BY c.club_id
            """)
            for row in cursor.fetchall():
                club_id = row["club_id"]
                total = int(row["member_trophies"])
                season_row = self.get_club_season(club_id, season)
                season_total = season_row["total_trophies"] if season_row else 0
                if total == row["total_trophies"] and total == season_total:
                    continue

                cursor.execute("UPDATE clubs SET total_trophies = ? WHERE club_id = ?", (total, club_id))
                cursor.execute(
                    "INSERT OR IGNORE INTO club_seasons (club_id, season) VALUES (?, ?)",
                    (club_id, season),
                )
                cursor.execute(
                    "UPDATE club_seasons SET total_trophies = ? WHERE club_id = ? AND season = ?",
                    (total, club_id, season),
                )
                changed.append((row["name"], row["total_trophies"], total))
            self.conn.commit()
        except sqlite3.Error as e:
            self.conn.rollback()
            raise RuntimeError(f"Failed to refresh club trophies: {e}")
        return changed

    def close(self):
        """Close database connection."""
        if self.conn:
            self.conn.close()
