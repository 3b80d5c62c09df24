import gzip
import json
from datetime import datetime, timezone
from io import BytesIO
from urllib.error import HTTPError, URLError
from urllib.parse import parse_qs

import pytest

import clubpoints.api_client as api_module
from clubpoints.api_client import FeedError, ProfileClient, TournamentFeedClient
from clubpoints.teams import ParticipantRow


@pytest.fixture
def client():
    return TournamentFeedClient("token-123", "app-42", base_url="https://feed.example.com/api/v1/")


def _json_body(payload) -> BytesIO:
    return BytesIO(json.dumps(payload).encode("utf-8"))


def test_list_tournaments_posts_form_fields(client, monkeypatch):
    seen = {}

    def fake_urlopen(req, timeout=0):
        seen["url"] = req.full_url
        seen["headers"] = dict(req.header_items())
        seen["fields"] = parse_qs(req.data.decode("utf-8"))
        return _json_body([
            {"tournamentId": "t1", "name": "EU Silver Cup 1", "startDate": "2026-01-02T10:00:00Z"},
            {"tournamentId": 7, "name": "Gold Cup"},
            {"name": "no id"},
            "junk",
        ])

    monkeypatch.setattr(api_module, "urlopen", fake_urlopen)
    since = datetime(2026, 1, 1, tzinfo=timezone.utc)
    until = datetime(2026, 1, 2, tzinfo=timezone.utc)
    tournaments = client.list_tournaments(since, until)

    assert seen["url"] == "https://feed.example.com/api/v1/dataReportGetTournaments"
    assert seen["headers"]["Backbone_app_id"] == "app-42"
    assert seen["fields"]["accessToken"] == ["token-123"]
    assert seen["fields"]["sinceDate"] == ["2026-01-01T00:00:00Z"]
    assert seen["fields"]["untilDate"] == ["2026-01-02T00:00:00Z"]

    assert [t.id for t in tournaments] == ["t1", "7"]
    assert tournaments[0].name == "EU Silver Cup 1"
    assert tournaments[0].start_window == datetime(2026, 1, 2, 10, tzinfo=timezone.utc)
    assert tournaments[1].start_window is None


def test_list_tournaments_rejects_non_list(client, monkeypatch):
    monkeypatch.setattr(api_module, "urlopen", lambda req, timeout=0: _json_body({"error": "nope"}))
    with pytest.raises(FeedError):
        client.list_tournaments(datetime.now(timezone.utc), datetime.now(timezone.utc))


def test_list_participants_parses_rows(client, monkeypatch):
    payload = [
        {"userPlayfabId": "abc", "partyId": "p1", "userPlace": 1},
        {"userPlayfabId": "def", "partyId": "p2", "userPlace": 12},
    ]
    monkeypatch.setattr(api_module, "urlopen", lambda req, timeout=0: _json_body(payload))
    assert client.list_participants("t1") == [ParticipantRow("ABC", "p1", 1)]


def test_list_participants_accepts_empty_list(client, monkeypatch):
    monkeypatch.setattr(api_module, "urlopen", lambda req, timeout=0: _json_body([]))
    assert client.list_participants("t1") == []


def test_list_participants_rejects_non_list(client, monkeypatch):
    monkeypatch.setattr(api_module, "urlopen", lambda req, timeout=0: _json_body({"rows": []}))
    with pytest.raises(FeedError):
        client.list_participants("t1")


def test_gzip_response_is_decoded(client, monkeypatch):
    body = gzip.compress(json.dumps([]).encode("utf-8"))
    monkeypatch.setattr(api_module, "urlopen", lambda req, timeout=0: BytesIO(body))
    assert client.list_participants("t1") == []


def test_invalid_json_raises_feed_error(client, monkeypatch):
    monkeypatch.setattr(api_module, "urlopen", lambda req, timeout=0: BytesIO(b"<html>"))
    with pytest.raises(FeedError):
        client.list_participants("t1")


def test_rate_limit_retry(client, monkeypatch):
    calls = {"n": 0}

    def fake_urlopen(req, timeout=0):
        calls["n"] += 1
        if calls["n"] == 1:
            raise HTTPError(req.full_url, 429, "Too Many Requests", hdrs=None, fp=BytesIO(b"{}"))
        return _json_body([])

    monkeypatch.setattr(api_module, "urlopen", fake_urlopen)
    monkeypatch.setattr(api_module.time, "sleep", lambda *_: None)

    assert client.list_participants("t1") == []
    assert calls["n"] == 2


def test_rate_limit_retries_only_once(client, monkeypatch):
    def fake_urlopen(req, timeout=0):
        raise HTTPError(req.full_url, 429, "Too Many Requests", hdrs=None, fp=BytesIO(b"{}"))

    monkeypatch.setattr(api_module, "urlopen", fake_urlopen)
    monkeypatch.setattr(api_module.time, "sleep", lambda *_: None)
    with pytest.raises(FeedError):
        client.list_participants("t1")


def test_unreachable_feed_raises_feed_error(client, monkeypatch):
    def fake_urlopen(req, timeout=0):
        raise URLError("connection refused")

    monkeypatch.setattr(api_module, "urlopen", fake_urlopen)
    with pytest.raises(FeedError):
        client.list_tournaments(datetime.now(timezone.utc), datetime.now(timezone.utc))


class TestProfileClient:
    @pytest.fixture
    def profiles(self):
        return ProfileClient("ABCD", "secret")

    def test_disabled_without_credentials(self):
        client = ProfileClient("", "")
        assert client.enabled is False
        assert client.get_player_profile("X") is None
        assert client.get_player_statistics("X") is None

    def test_get_player_profile(self, profiles, monkeypatch):
        seen = {}

        def fake_urlopen(req, timeout=0):
            seen["url"] = req.full_url
            seen["secret"] = req.get_header("X-secretkey")
            seen["body"] = json.loads(req.data.decode("utf-8"))
            return _json_body({"code": 200, "data": {"PlayerProfile": {"DisplayName": "Alice"}}})

        monkeypatch.setattr(api_module, "urlopen", fake_urlopen)
        assert profiles.get_player_profile("P1") == {"DisplayName": "Alice"}
        assert seen["url"] == "https://ABCD.playfabapi.com/Server/GetPlayerProfile"
        assert seen["secret"] == "secret"
        assert seen["body"]["PlayFabId"] == "P1"

    def test_get_player_statistics(self, profiles, monkeypatch):
        payload = {
            "code": 200,
            "data": {"Statistics": [{"StatisticName": "NUM_TROPHIES_SEASON", "Value": 17}, {"Value": 3}]},
        }
        monkeypatch.setattr(api_module, "urlopen", lambda req, timeout=0: _json_body(payload))
        assert profiles.get_player_statistics("P1", ["NUM_TROPHIES_SEASON"]) == {"NUM_TROPHIES_SEASON": 17}

    def test_failures_return_none(self, profiles, monkeypatch):
        def fake_urlopen(req, timeout=0):
            raise HTTPError(req.full_url, 400, "Bad Request", hdrs=None, fp=BytesIO(b"{}"))

        monkeypatch.setattr(api_module, "urlopen", fake_urlopen)
        assert profiles.get_player_profile("P1") is None

        monkeypatch.setattr(api_module, "urlopen", lambda req, timeout=0: _json_body({"code": 404}))
        assert profiles.get_player_statistics("P1") is None
