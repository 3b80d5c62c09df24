# clubpoints/api_client.py

from __future__ import annotations

import gzip
import json
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional
from urllib.error import HTTPError, URLError
from urllib.parse import urlencode
from urllib.request import Request, urlopen

from clubpoints.teams import ParticipantRow, parse_participant_rows

LOGGER = logging.getLogger(__name__)


class FeedError(RuntimeError):
    """Raised when the tournament feed is unreachable or returns malformed data."""


@dataclass(frozen=True)
class Tournament:
    id: str
    name: Optional[str]
    start_window: Optional[datetime] = None


class TournamentFeedClient:
    """Client for the tournament results feed."""

    DEFAULT_BASE = "https://backbone-client-api.azurewebsites.net/api/v1"
    HEADERS = {
        "Accept-Encoding": "gzip",
        "Content-Type": "application/x-www-form-urlencoded",
    }

    def __init__(
        self,
        access_token: str,
        app_id: str,
        base_url: str = DEFAULT_BASE,
        timeout_seconds: int = 30,
        rate_limit_pause_seconds: float = 10.0,
    ):
        self.access_token = access_token
        self.app_id = app_id
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.rate_limit_pause_seconds = rate_limit_pause_seconds

    @staticmethod
    def _decode(resp) -> Any:
        raw = resp.read()
        if raw[:2] == b"\x1f\x8b":
            raw = gzip.decompress(raw)
        return json.loads(raw.decode("utf-8"))

    def _post_form(self, endpoint: str, fields: Dict[str, str], retry_429: bool = True) -> Any:
        url = f"{self.base_url}/{endpoint}"
        headers = dict(self.HEADERS)
        headers["BACKBONE_APP_ID"] = self.app_id
        body = urlencode(fields).encode("utf-8")
        req = Request(url, data=body, headers=headers, method="POST")
        try:
            with urlopen(req, timeout=self.timeout_seconds) as resp:
                return self._decode(resp)
        except HTTPError as exc:
            if exc.code == 429 and retry_429:
                LOGGER.warning("Rate limited by %s; retrying once in %ss", endpoint, self.rate_limit_pause_seconds)
                time.sleep(self.rate_limit_pause_seconds)
                return self._post_form(endpoint, fields, retry_429=False)
            raise FeedError(f"HTTP Error: {exc.code} {exc.reason} ({endpoint})") from exc
        except URLError as exc:
            raise FeedError(f"Feed unreachable ({endpoint}): {exc.reason}") from exc
        except OSError as exc:
            raise FeedError(f"Feed request failed ({endpoint}): {exc}") from exc
        except (ValueError, UnicodeDecodeError) as exc:
            raise FeedError(f"Invalid JSON from {endpoint}: {exc}") from exc

    @staticmethod
    def _parse_timestamp(value: Any) -> Optional[datetime]:
        if not value or not isinstance(value, str):
            return None
        try:
            dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
        if dt.tzinfo is None:
            return dt.replace(tzinfo=timezone.utc)
        return dt

    @staticmethod
    def _format_timestamp(value: datetime) -> str:
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")

    def parse_tournaments(self, payload: Any) -> List[Tournament]:
        if not isinstance(payload, list):
            raise FeedError("Invalid tournament data received")

        out: List[Tournament] = []
        for item in payload:
            if not isinstance(item, dict):
                continue
            tournament_id = item.get("tournamentId")
            if tournament_id in (None, ""):
                LOGGER.debug("Skipping tournament without id: %r", item.get("name"))
                continue
            out.append(
                Tournament(
                    id=str(tournament_id),
                    name=item.get("name"),
                    start_window=self._parse_timestamp(item.get("startDate") or item.get("sinceDate")),
                )
            )
        return out

    def list_tournaments(self, since: datetime, until: datetime) -> List[Tournament]:
        """Tournaments in the window. A non-list response aborts the caller's run."""
        payload = self._post_form(
            "dataReportGetTournaments",
            {
                "accessToken": self.access_token,
                "sinceDate": self._format_timestamp(since),
                "untilDate": self._format_timestamp(until),
            },
        )
        return self.parse_tournaments(payload)

    def list_participants(self, tournament_id: str) -> List[ParticipantRow]:
        payload = self._post_form(
            "dataReportGetTournamentUsers",
            {
                "accessToken": self.access_token,
                "tournamentId": str(tournament_id),
            },
        )
        if not isinstance(payload, list):
            raise FeedError(f"Invalid tournament data format received for {tournament_id}")
        return parse_participant_rows(payload)


class ProfileClient:
    """Player profile service client. Every failure is reported as None."""

    BASE = "https://{title_id}.playfabapi.com"

    def __init__(self, title_id: str, secret_key: str, timeout_seconds: int = 20):
        self.title_id = title_id
        self.secret_key = secret_key
        self.timeout_seconds = timeout_seconds

    @property
    def enabled(self) -> bool:
        return bool(self.title_id and self.secret_key)

    def _url(self, endpoint: str) -> str:
        return self.BASE.format(title_id=self.title_id) + endpoint

    def _post_json(self, endpoint: str, body: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        req = Request(
            self._url(endpoint),
            data=json.dumps(body).encode("utf-8"),
            headers={
                "Content-Type": "application/json",
                "X-SecretKey": self.secret_key,
            },
            method="POST",
        )
        try:
            with urlopen(req, timeout=self.timeout_seconds) as resp:
                result = json.loads(resp.read().decode("utf-8"))
        except HTTPError:
            return None
        except (URLError, ValueError, OSError) as exc:
            LOGGER.error("Profile request %s failed: %s", endpoint, exc)
            return None
        if not isinstance(result, dict) or result.get("code") != 200:
            return None
        data = result.get("data")
        return data if isinstance(data, dict) else None

    def get_player_profile(self, player_id: str) -> Optional[Dict[str, Any]]:
        if not self.enabled:
            return None
        data = self._post_json(
            "/Server/GetPlayerProfile",
            {
                "PlayFabId": player_id,
                "ProfileConstraints": {"ShowDisplayName": True, "ShowStatistics": True},
            },
        )
        if not data or not data.get("PlayerProfile"):
            return None
        return data["PlayerProfile"]

    def get_player_statistics(
        self,
        player_id: str,
        statistic_names: Iterable[str] = ("Trophies",),
    ) -> Optional[Dict[str, Any]]:
        """Statistics as {name: value}."""
        if not self.enabled:
            return None
        data = self._post_json(
            "/Server/GetPlayerStatistics",
            {"PlayFabId": player_id, "StatisticNames": list(statistic_names)},
        )
        if not data or not isinstance(data.get("Statistics"), list):
            return None
        return {
            stat.get("StatisticName"): stat.get("Value")
            for stat in data["Statistics"]
            if isinstance(stat, dict) and stat.get("StatisticName")
        }
