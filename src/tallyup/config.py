"""Runtime settings read from the environment."""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

DEFAULT_AMAZON_MATCH_WINDOW_DAYS = 5
DEFAULT_AMAZON_MAX_GROUP_SIZE = 1
MAX_AMAZON_GROUP_SIZE = 3
DEFAULT_INCOME_MATCH_WINDOW_DAYS = 30


@dataclass(frozen=True)
class Settings:
    """Settings shared by the CLI and the services."""

    db_path: Optional[str] = None
    log_level: Optional[str] = None
    amazon_match_window_days: int = DEFAULT_AMAZON_MATCH_WINDOW_DAYS
    amazon_max_group_size: int = DEFAULT_AMAZON_MAX_GROUP_SIZE
    income_match_window_days: int = DEFAULT_INCOME_MATCH_WINDOW_DAYS


def _env_int(name: str, default: int, minimum: int = 0, maximum: Optional[int] = None) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw.strip())
    except ValueError:
        return default
    if value < minimum:
        return default
    if maximum is not None and value > maximum:
        return maximum
    return value


def default_db_path() -> str:
    """Return ~/.tallyup/tallyup.db, creating the directory if needed."""
    db_dir = Path.home() / ".tallyup"
    db_dir.mkdir(exist_ok=True)
    return str(db_dir / "tallyup.db")


def load_settings() -> Settings:
    """Build settings from TALLYUP_* environment variables.

    Invalid integers fall back to their defaults.
    """
    return Settings(
        db_path=os.environ.get("TALLYUP_DB_PATH") or None,
        log_level=os.environ.get("TALLYUP_LOG_LEVEL") or None,
        amazon_match_window_days=_env_int(
            "TALLYUP_AMAZON_MATCH_WINDOW_DAYS", DEFAULT_AMAZON_MATCH_WINDOW_DAYS
        ),
        amazon_max_group_size=_env_int(
            "TALLYUP_AMAZON_MAX_GROUP_SIZE",
            DEFAULT_AMAZON_MAX_GROUP_SIZE,
            minimum=1,
            maximum=MAX_AMAZON_GROUP_SIZE,
        ),
        income_match_window_days=_env_int(
            "TALLYUP_INCOME_MATCH_WINDOW_DAYS", DEFAULT_INCOME_MATCH_WINDOW_DAYS
        ),
    )
