# clubpoints/config.py

import os
from dataclasses import dataclass
from typing import List, Mapping, Optional

DEFAULT_API_BASE_URL = "https://backbone-client-api.azurewebsites.net/api/v1"
DEFAULT_DB_PATH = "data/clubpoints.db"
DEFAULT_TOURNAMENTS_DAYS = 1               # How many days back to fetch tournaments
PROFILE_TROPHY_STATISTIC = "NUM_TROPHIES_SEASON"
PROFILE_SYNC_DELAY_SECONDS = 0.1           # Pause between members to stay under the rate limit


@dataclass(frozen=True)
class Settings:
    api_access_token: str = ""
    api_app_id: str = ""
    api_base_url: str = DEFAULT_API_BASE_URL
    tournaments_days: int = DEFAULT_TOURNAMENTS_DAYS
    playfab_title_id: str = ""
    playfab_secret_key: str = ""
    db_path: str = DEFAULT_DB_PATH
    log_level: str = "INFO"

    @property
    def profile_sync_enabled(self) -> bool:
        return bool(self.playfab_title_id and self.playfab_secret_key)

    def validate(self) -> List[str]:
        """Names of required environment variables that are missing."""
        missing = []
        if not self.api_access_token:
            missing.append("API_ACCESS_TOKEN")
        if not self.api_app_id:
            missing.append("API_APP_ID")
        return missing


def _positive_int(raw: Optional[str], default: int) -> int:
    try:
        value = int(raw)
    except (TypeError, ValueError):
        return default
    return value if value > 0 else default


def load_settings(environ: Mapping[str, str] = None) -> Settings:
    env = os.environ if environ is None else environ
    return Settings(
        api_access_token=env.get("API_ACCESS_TOKEN", ""),
        api_app_id=env.get("API_APP_ID", ""),
        api_base_url=env.get("API_BASE_URL") or DEFAULT_API_BASE_URL,
        tournaments_days=_positive_int(env.get("TOURNAMENTS_DAYS"), DEFAULT_TOURNAMENTS_DAYS),
        playfab_title_id=env.get("PLAYFAB_TITLE_ID", ""),
        playfab_secret_key=env.get("PLAYFAB_SECRET_KEY", ""),
        db_path=env.get("CLUBPOINTS_DB_PATH") or DEFAULT_DB_PATH,
        log_level=(env.get("LOG_LEVEL") or "INFO").upper(),
    )
