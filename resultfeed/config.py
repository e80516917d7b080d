from __future__ import annotations

import os
import pathlib
from dataclasses import dataclass, field, replace
from functools import lru_cache
from typing import Optional, Tuple

from dotenv import load_dotenv


def _bool_from_env(value: Optional[str], default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _int_from_env(value: Optional[str], default: int) -> int:
    if value is None or value == "":
        return default
    return int(value)


def _list_from_env(value: Optional[str]) -> Tuple[str, ...]:
    if not value:
        return ()
    return tuple(item.strip() for item in value.split(",") if item.strip())


def _require_env(key: str) -> str:
    value = os.getenv(key)
    if value is None or value == "":
        raise RuntimeError(f"Missing required environment variable: {key}")
    return value


@dataclass(frozen=True)
class DataSourceSettings:
    url: str
    issue_key: str = "issue_id"
    numbers_key: str = "numbers"
    lucky_key: str = "lucky_number"
    date_key: str = "draw_date"
    timeout_seconds: int = 10


@dataclass(frozen=True)
class FeedSettings:
    ledger_url: str
    admin_api_key: Optional[str] = None
    draw_ids: Tuple[str, ...] = ()
    poll_interval_seconds: int = 60
    submit_only_once: bool = False
    state_file: str = "resultfeed_state.json"
    request_timeout_seconds: int = 10
    timezone: str = "America/Port-au-Prince"
    datasource: DataSourceSettings = field(default_factory=lambda: DataSourceSettings(url=""))

    def copy(self, **updates) -> "FeedSettings":
        return replace(self, **updates)


def load_from_environment() -> FeedSettings:
    ledger_url = _require_env("LEDGER_URL")

    datasource = DataSourceSettings(
        url=os.getenv("FEED__URL", ""),
        issue_key=os.getenv("FEED__ISSUE_KEY", "issue_id"),
        numbers_key=os.getenv("FEED__NUMBERS_KEY", "numbers"),
        lucky_key=os.getenv("FEED__LUCKY_KEY", "lucky_number"),
        date_key=os.getenv("FEED__DATE_KEY", "draw_date"),
        timeout_seconds=_int_from_env(os.getenv("FEED__TIMEOUT_SECONDS"), 10),
    )

    return FeedSettings(
        ledger_url=ledger_url.rstrip("/"),
        admin_api_key=os.getenv("ADMIN_API_KEY") or None,
        draw_ids=_list_from_env(os.getenv("FEED_DRAWS")),
        poll_interval_seconds=_int_from_env(os.getenv("POLL_INTERVAL_SECONDS"), 60),
        submit_only_once=_bool_from_env(os.getenv("SUBMIT_ONCE"), False),
        state_file=os.getenv("STATE_FILE", "resultfeed_state.json"),
        request_timeout_seconds=_int_from_env(os.getenv("LEDGER_TIMEOUT_SECONDS"), 10),
        timezone=os.getenv("LEDGER_TIMEZONE", "America/Port-au-Prince"),
        datasource=datasource,
    )


@lru_cache(maxsize=1)
def load_config(dotenv_path: Optional[str] = None) -> FeedSettings:
    if dotenv_path:
        load_dotenv(dotenv_path)
    else:
        default_path = pathlib.Path(".env")
        if default_path.exists():
            load_dotenv(default_path)
    return load_from_environment()
