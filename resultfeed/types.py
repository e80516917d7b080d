from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from typing import Any, Mapping, Optional


@dataclass(frozen=True)
class DrawSnapshot:
    """What the ledger currently knows about a draw."""

    draw_id: str
    name: str
    active: bool
    blocked: bool
    result_version: int
    result_day: Optional[dt.date]

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "DrawSnapshot":
        result_day = payload.get("result_day")
        return cls(
            draw_id=str(payload["id"]),
            name=str(payload.get("name") or payload["id"]),
            active=bool(payload.get("active", True)),
            blocked=bool(payload.get("blocked", False)),
            result_version=int(payload.get("result_version") or 0),
            result_day=dt.date.fromisoformat(result_day) if result_day else None,
        )
