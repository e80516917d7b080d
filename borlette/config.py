from __future__ import annotations

import os
from dataclasses import dataclass
from decimal import Decimal
from functools import lru_cache
from typing import Optional, Tuple

from dotenv import load_dotenv


@dataclass(frozen=True)
class FlaskSettings:
    secret_key: str = "borlette-dev-secret"
    debug: bool = True


@dataclass(frozen=True)
class LedgerSettings:
    timezone: str = "America/Port-au-Prince"
    closing_window_minutes: int = 3
    agent_delete_grace_minutes: int = 5
    supervisor_delete_grace_minutes: int = 10
    admission_retries: int = 3
    settlement_lock_timeout_seconds: float = 5.0


@dataclass(frozen=True)
class PayoutSettings:
    borlette: Tuple[int, int, int] = (60, 20, 10)
    lotto3: int = 500
    lotto4: int = 1000
    lotto5: int = 5000
    marriage: int = 1000

    def multiplier(self, game: str) -> Decimal:
        base = game[len("auto_"):] if game.startswith("auto_") else game
        return Decimal(getattr(self, base))


@dataclass(frozen=True)
class AppSettings:
    flask: FlaskSettings
    ledger: LedgerSettings
    payouts: PayoutSettings
    database_url: str
    admin_api_key: Optional[str]


def _int_from_env(key: str, default: int) -> int:
    value = os.getenv(key)
    if value is None or value == "":
        return default
    return int(value)


def _float_from_env(key: str, default: float) -> float:
    value = os.getenv(key)
    if value is None or value == "":
        return default
    return float(value)


def _lots_from_env(key: str, default: Tuple[int, int, int]) -> Tuple[int, int, int]:
    value = os.getenv(key)
    if not value:
        return default
    parts = [int(part) for part in value.split(",") if part.strip()]
    if len(parts) != 3:
        raise RuntimeError(f"{key} must list three multipliers, e.g. 60,20,10")
    return parts[0], parts[1], parts[2]


@lru_cache(maxsize=1)
def load_settings(dotenv_path: Optional[str] = None) -> AppSettings:
    if dotenv_path:
        load_dotenv(dotenv_path)
    else:
        load_dotenv()

    flask_settings = FlaskSettings(
        secret_key=os.getenv("FLASK_SECRET_KEY", "borlette-dev-secret"),
        debug=os.getenv("FLASK_DEBUG", "1") == "1",
    )

    ledger_settings = LedgerSettings(
        timezone=os.getenv("LEDGER_TIMEZONE", "America/Port-au-Prince"),
        closing_window_minutes=_int_from_env("CLOSING_WINDOW_MINUTES", 3),
        agent_delete_grace_minutes=_int_from_env("AGENT_DELETE_GRACE_MINUTES", 5),
        supervisor_delete_grace_minutes=_int_from_env("SUPERVISOR_DELETE_GRACE_MINUTES", 10),
        admission_retries=_int_from_env("ADMISSION_RETRIES", 3),
        settlement_lock_timeout_seconds=_float_from_env("SETTLEMENT_LOCK_TIMEOUT_SECONDS", 5.0),
    )

    payout_settings = PayoutSettings(
        borlette=_lots_from_env("PAYOUT_BORLETTE", (60, 20, 10)),
        lotto3=_int_from_env("PAYOUT_LOTTO3", 500),
        lotto4=_int_from_env("PAYOUT_LOTTO4", 1000),
        lotto5=_int_from_env("PAYOUT_LOTTO5", 5000),
        marriage=_int_from_env("PAYOUT_MARRIAGE", 1000),
    )

    database_url = os.getenv("DATABASE_URL", "sqlite:///borlette.db")
    admin_api_key = os.getenv("ADMIN_API_KEY")

    return AppSettings(
        flask=flask_settings,
        ledger=ledger_settings,
        payouts=payout_settings,
        database_url=database_url,
        admin_api_key=admin_api_key,
    )
