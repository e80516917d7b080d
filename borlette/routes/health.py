from __future__ import annotations

from flask import Blueprint, jsonify
from sqlalchemy import text

from ..db import session_scope

bp = Blueprint("health", __name__)


@bp.get("/health")
def health_check():
    with session_scope() as session:
        session.execute(text("SELECT 1"))
    return jsonify({"status": "ok"})
