from __future__ import annotations

from flask import Blueprint, jsonify, request
from werkzeug.exceptions import BadRequest

from ..services.reports import ReportService
from .admin import verify_admin
from .params import date_arg, int_arg

bp = Blueprint("reports", __name__)
report_service = ReportService()

bp.before_request(verify_admin)


@bp.get("/summary")
def summary():
    try:
        data = report_service.summary(
            agent_id=request.args.get("agent_id") or None,
            draw_id=request.args.get("draw_id") or None,
            period=request.args.get("period", "today"),
            from_day=date_arg("from"),
            to_day=date_arg("to"),
        )
    except ValueError as exc:
        raise BadRequest(str(exc))
    return jsonify(data)


@bp.get("/agents")
def agents():
    return jsonify(report_service.agent_stats(day=date_arg("day")))


@bp.get("/exposure")
def exposure():
    return jsonify(report_service.exposure_progress(draw_id=request.args.get("draw_id") or None, day=date_arg("day")))


@bp.get("/winners/unpaid")
def unpaid_winners():
    return jsonify(
        report_service.unpaid_winners(
            draw_id=request.args.get("draw_id") or None,
            agent_id=request.args.get("agent_id") or None,
        )
    )


@bp.get("/results")
def results():
    return jsonify(report_service.results(draw_id=request.args.get("draw_id") or None, limit=int_arg("limit", 20)))
