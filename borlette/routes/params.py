from __future__ import annotations

import datetime as dt
from typing import Optional

from flask import request
from werkzeug.exceptions import BadRequest


def require_arg(name: str) -> str:
    value = (request.args.get(name) or "").strip()
    if not value:
        raise BadRequest(f"{name} is required")
    return value


def date_arg(name: str) -> Optional[dt.date]:
    value = request.args.get(name)
    if not value:
        return None
    try:
        return dt.date.fromisoformat(value)
    except ValueError:
        raise BadRequest(f"{name} must be a YYYY-MM-DD date")


def bool_arg(name: str) -> Optional[bool]:
    value = request.args.get(name)
    if value is None or value == "":
        return None
    lowered = value.strip().lower()
    if lowered in ("1", "true", "yes"):
        return True
    if lowered in ("0", "false", "no"):
        return False
    raise BadRequest(f"{name} must be true or false")


def int_arg(name: str, default: Optional[int] = None) -> Optional[int]:
    value = request.args.get(name)
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError:
        raise BadRequest(f"{name} must be an integer")
