from __future__ import annotations

import asyncio
import datetime as dt
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Sequence
from zoneinfo import ZoneInfo

import requests

from .base import DrawData, ResultDataSource

RESULT_SIZE = 5


@dataclass(frozen=True)
class HttpJsonDataSourceConfig:
    """Configuration describing where to fetch results and how to parse the JSON payload.

    ``url`` may contain a ``{draw_id}`` placeholder; otherwise the draw id is
    sent as the ``draw_id`` query parameter.
    Draw dates without an offset are read in ``timezone``, the ledger's
    operator time zone.
    """

    url: str
    issue_key: str = "issue_id"
    numbers_key: str = "numbers"
    lucky_key: str = "lucky_number"
    date_key: str = "draw_date"
    timeout_seconds: int = 10
    timezone: str = "America/Port-au-Prince"


class HttpJsonDataSource(ResultDataSource):
    """Fetch draw results from a JSON HTTP endpoint."""

    def __init__(self, config: HttpJsonDataSourceConfig) -> None:
        self._config = config

    async def fetch_latest(self, draw_id: str) -> DrawData:
        url, params = self._request_target(draw_id)
        response_json = await asyncio.to_thread(self._get_json, url, params, self._config.timeout_seconds)
        return self._parse_payload(draw_id, response_json)

    def _request_target(self, draw_id: str):
        if "{draw_id}" in self._config.url:
            return self._config.url.format(draw_id=draw_id), None
        return self._config.url, {"draw_id": draw_id}

    @staticmethod
    def _get_json(url: str, params: Optional[Mapping[str, str]], timeout_seconds: int) -> Mapping[str, Any]:
        resp = requests.get(url, params=params, timeout=timeout_seconds)
        resp.raise_for_status()
        data = resp.json()
        if not isinstance(data, Mapping):
            raise ValueError("HTTP API returned non-object payload")
        return data

    def _parse_payload(self, draw_id: str, payload: Mapping[str, Any]) -> DrawData:
        cfg = self._config
        try:
            issue_id = str(payload[cfg.issue_key])
        except KeyError as exc:
            raise ValueError(f"Missing issue id field: {cfg.issue_key}") from exc

        try:
            raw_numbers = payload[cfg.numbers_key]
        except KeyError as exc:
            raise ValueError(f"Missing numbers field: {cfg.numbers_key}") from exc

        return DrawData(
            draw_id=draw_id,
            issue_id=issue_id,
            draw_date=self._parse_date(payload.get(cfg.date_key)),
            numbers=self._parse_numbers(raw_numbers),
            lucky_number=self._parse_lucky(payload.get(cfg.lucky_key)),
        )

    @staticmethod
    def _parse_numbers(raw: Any) -> Sequence[str]:
        if isinstance(raw, str):
            raw = [part for part in raw.replace(",", " ").split() if part]
        if not isinstance(raw, (list, tuple)):
            raise ValueError("numbers field must be a list")
        numbers = []
        for value in raw:
            if isinstance(value, bool) or not isinstance(value, (int, str)):
                raise ValueError("numbers must be integers or digit strings")
            text = str(value).strip()
            if not text.isdigit() or not 0 <= int(text) <= 99:
                raise ValueError(f"number out of range: {value!r}")
            numbers.append(text.zfill(2))
        if len(numbers) != RESULT_SIZE:
            raise ValueError(f"expected {RESULT_SIZE} numbers, got {len(numbers)}")
        return tuple(numbers)

    @staticmethod
    def _parse_lucky(raw: Any) -> Optional[int]:
        if raw is None or raw == "":
            return None
        value = int(raw)
        if not 0 <= value <= 99:
            raise ValueError("lucky number must be between 0 and 99")
        return value

    def _parse_date(self, raw: Any) -> dt.datetime:
        zone = ZoneInfo(self._config.timezone)
        if raw is None:
            return dt.datetime.now(zone)
        if isinstance(raw, (int, float)):
            return dt.datetime.fromtimestamp(raw, tz=zone)
        if not isinstance(raw, str):
            raise ValueError("Unrecognized draw date format")
        try:
            # ISO-8601; a bare date is midnight local time
            parsed = dt.datetime.fromisoformat(raw.strip().replace("Z", "+00:00"))
        except ValueError as exc:
            raise ValueError("Invalid date string format") from exc
        if parsed.tzinfo is None:
            return parsed.replace(tzinfo=zone)
        return parsed.astimezone(zone)
