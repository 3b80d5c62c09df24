# clubpoints/profile_sync.py

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Dict

from clubpoints.api_client import ProfileClient
from clubpoints.config import PROFILE_SYNC_DELAY_SECONDS, PROFILE_TROPHY_STATISTIC
from clubpoints.database import Database
from clubpoints.teams import normalize_id

LOGGER = logging.getLogger(__name__)


class ProfileSync:
    """Refresh roster names and trophy counts, then club trophy totals."""

    def __init__(
        self,
        db: Database,
        client: ProfileClient,
        delay_seconds: float = PROFILE_SYNC_DELAY_SECONDS,
    ):
        self.db = db
        self.client = client
        self.delay_seconds = delay_seconds

    def run(self, season: int) -> Dict[str, int]:
        summary = {"total": 0, "updated": 0, "failed": 0, "clubs_updated": 0}
        if not self.client.enabled:
            LOGGER.info("Profile sync skipped (credentials not configured)")
            return summary

        LOGGER.info("Starting profile sync...")
        # Profile and statistics for one player are independent reads.
        with ThreadPoolExecutor(max_workers=2) as pool:
            for member in self.db.get_all_members():
                summary["total"] += 1
                player_id = normalize_id(member["external_id"])
                try:
                    if self._sync_member(pool, member, player_id, season):
                        summary["updated"] += 1
                except Exception as e:
                    LOGGER.error("Failed to sync %s: %s", player_id, e)
                    summary["failed"] += 1
                if self.delay_seconds:
                    time.sleep(self.delay_seconds)

        LOGGER.info(
            "Profile sync complete: %s/%s players updated, %s failed",
            summary["updated"],
            summary["total"],
            summary["failed"],
        )

        for club_name, previous, total in self.db.refresh_club_trophies(season):
            LOGGER.info("  %s: %s -> %s trophies (season %s)", club_name, previous, total, season)
            summary["clubs_updated"] += 1
        LOGGER.info("Club trophies updated: %s clubs", summary["clubs_updated"])
        return summary

    def _sync_member(self, pool: ThreadPoolExecutor, member: Dict, player_id: str, season: int) -> bool:
        profile_future = pool.submit(self.client.get_player_profile, player_id)
        stats_future = pool.submit(self.client.get_player_statistics, player_id, [PROFILE_TROPHY_STATISTIC])
        profile = profile_future.result()
        statistics = stats_future.result()

        name = None
        if profile and profile.get("DisplayName") and profile["DisplayName"] != member["name"]:
            name = profile["DisplayName"]

        trophy_count = None
        if statistics and statistics.get(PROFILE_TROPHY_STATISTIC) is not None:
            value = statistics[PROFILE_TROPHY_STATISTIC]
            if value != member["trophy_count"]:
                trophy_count = value

        if name is None and trophy_count is None:
            return False

        self.db.update_member_profile(
            member["club_id"],
            member["member_key"],
            season,
            name=name,
            trophy_count=trophy_count,
        )
        LOGGER.info(
            "  %s: %s %s",
            player_id,
            f'name="{name}"' if name else "",
            f"trophies={trophy_count}" if trophy_count is not None else "",
        )
        return True
