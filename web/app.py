from decimal import Decimal
import logging
import os
import sys
from typing import Any, Optional

from fastapi import FastAPI, HTTPException

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from clubpoints.config import DEFAULT_DB_PATH
from clubpoints.database import (
    ENTITY_CLUB,
    ENTITY_MEMBER,
    ENTITY_PLAYER,
    LIFETIME,
    Database,
    member_entity_id,
)

LOGGER = logging.getLogger(__name__)

app = FastAPI(title="Club standings")

_db: Optional[Database] = None


def get_db() -> Database:
    global _db
    if _db is None:
        _db = Database(os.environ.get("CLUBPOINTS_DB_PATH", DEFAULT_DB_PATH))
        LOGGER.info("Using database at: %s", _db.db_path)
    return _db


def _plain(value: Any) -> Any:
    """Points go out as strings so clients see the exact stored value."""
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, dict):
        return {key: _plain(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_plain(item) for item in value]
    return value


def _resolve_season(db: Database, season: Optional[int]) -> int:
    if season is None:
        return db.get_current_season()
    if season < 0:
        raise HTTPException(status_code=400, detail="season must be 0 (lifetime) or a positive integer")
    return season


@app.get("/api/season")
async def current_season() -> dict:
    return {"season": get_db().get_current_season()}


@app.get("/api/clubs")
async def club_standings(season: Optional[int] = None) -> dict:
    db = get_db()
    season = _resolve_season(db, season)
    try:
        standings = db.get_club_standings(season)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to load standings: {str(e)}")
    for rank, club in enumerate(standings, 1):
        club["rank"] = rank
    return {"season": season, "lifetime": season == LIFETIME, "clubs": _plain(standings)}


@app.get("/api/clubs/{club_id}")
async def club_detail(club_id: str, season: Optional[int] = None) -> dict:
    db = get_db()
    season = _resolve_season(db, season)
    club = db.get_club(club_id)
    if club is None:
        raise HTTPException(status_code=404, detail=f"Club {club_id} not found")

    members = []
    for member in db.get_club_members(club_id):
        if season == LIFETIME:
            member["season_points"] = member["total_points"]
        else:
            member_season = db.get_member_season(club_id, member["member_key"], season)
            member["season_points"] = member_season["total_points"] if member_season else Decimal("0")
        member["tier_stats"] = db.get_tier_stats(
            ENTITY_MEMBER, member_entity_id(club_id, member["member_key"]), season
        )
        members.append(member)

    return _plain({
        "season": season,
        "club": club,
        "season_totals": db.get_club_season(club_id, season),
        "tier_stats": db.get_tier_stats(ENTITY_CLUB, club_id, season),
        "members": members,
    })


@app.get("/api/players/{player_id}")
async def player_detail(player_id: str, season: Optional[int] = None) -> dict:
    db = get_db()
    season = _resolve_season(db, season)
    player = db.get_player(player_id)
    if player is None:
        raise HTTPException(status_code=404, detail=f"Player {player_id} not found")
    return _plain({
        "season": season,
        "player": player,
        "season_totals": db.get_player_season(player["player_id"], season),
        "tier_stats": db.get_tier_stats(ENTITY_PLAYER, player["player_id"], season),
    })


@app.get("/api/tournaments/processed")
async def processed_tournaments(limit: int = 50) -> dict:
    safe_limit = max(1, min(limit, 500))
    tournaments = get_db().get_processed_tournaments(safe_limit)
    return {"tournaments": tournaments, "count": len(tournaments)}
