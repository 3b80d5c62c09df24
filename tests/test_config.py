# tests/test_config.py

from clubpoints.config import DEFAULT_API_BASE_URL, DEFAULT_DB_PATH, load_settings


def test_defaults_from_empty_environment():
    settings = load_settings({})
    assert settings.api_base_url == DEFAULT_API_BASE_URL
    assert settings.tournaments_days == 1
    assert settings.db_path == DEFAULT_DB_PATH
    assert settings.log_level == "INFO"
    assert settings.profile_sync_enabled is False
    assert settings.validate() == ["API_ACCESS_TOKEN", "API_APP_ID"]


def test_reads_environment():
    settings = load_settings({
        "API_ACCESS_TOKEN": "tok",
        "API_APP_ID": "app",
        "API_BASE_URL": "https://feed.example.com",
        "TOURNAMENTS_DAYS": "3",
        "PLAYFAB_TITLE_ID": "ABCD",
        "PLAYFAB_SECRET_KEY": "secret",
        "CLUBPOINTS_DB_PATH": "/tmp/points.db",
        "LOG_LEVEL": "debug",
    })
    assert settings.validate() == []
    assert settings.api_base_url == "https://feed.example.com"
    assert settings.tournaments_days == 3
    assert settings.profile_sync_enabled is True
    assert settings.db_path == "/tmp/points.db"
    assert settings.log_level == "DEBUG"


def test_invalid_days_fall_back_to_default():
    assert load_settings({"TOURNAMENTS_DAYS": "soon"}).tournaments_days == 1
    assert load_settings({"TOURNAMENTS_DAYS": "-2"}).tournaments_days == 1


def test_profile_sync_needs_both_credentials():
    assert load_settings({"PLAYFAB_TITLE_ID": "ABCD"}).profile_sync_enabled is False
