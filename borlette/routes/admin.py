from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from ..config import load_settings
from ..errors import AlreadySettled
from ..schemas import (
    DrawBlockRequest,
    DrawConfigRequest,
    LimitRequest,
    NumberRuleRequest,
    ResultPublishRequest,
    SettlementResponse,
)
from ..services.draws import DrawRepository
from ..services.exposure import ExposureLedger
from ..services.settlement import SettlementEngine
from ..services.tickets import TicketRepository
from .params import require_arg

bp = Blueprint("admin", __name__)
draw_repo = DrawRepository()
exposure_ledger = ExposureLedger()
ticket_repo = TicketRepository(exposure=exposure_ledger)
settlement_engine = SettlementEngine(draws=draw_repo, tickets=ticket_repo)


def _require_admin() -> bool:
    settings = load_settings()
    api_key = settings.admin_api_key
    if api_key:
        provided = request.headers.get("X-Admin-Token")
        if provided != api_key:
            return False
    return True


@bp.before_request
def verify_admin():
    if not _require_admin():
        return jsonify({"error": "UNAUTHORIZED", "message": "missing or invalid X-Admin-Token"}), 401
    return None


def _rule_payload() -> dict:
    return request.get_json(force=True, silent=True) or request.args.to_dict()


@bp.get("/draws")
def list_draws():
    return jsonify([draw.to_dict() for draw in draw_repo.list_draws()])


@bp.put("/draws/<draw_id>")
def configure_draw(draw_id: str):
    payload = request.get_json(force=True, silent=True) or {}
    data = DrawConfigRequest(**payload)
    draw = draw_repo.upsert_draw(draw_id, **data.dict())
    return jsonify(draw.to_dict())


@bp.post("/draws/<draw_id>/block")
def block_draw(draw_id: str):
    payload = request.get_json(force=True, silent=True) or {}
    data = DrawBlockRequest(**payload)
    draw = draw_repo.set_blocked(draw_id, data.blocked)
    return jsonify(draw.to_dict())


@bp.post("/draws/<draw_id>/results")
def publish_results(draw_id: str):
    payload = request.get_json(force=True, silent=True) or {}
    data = ResultPublishRequest(**payload)

    draw = draw_repo.publish_result(
        draw_id,
        data.results,
        lucky_number=data.lucky_number,
        comment=data.comment,
        source=data.source,
        published_at=data.published_at,
        result_day=data.result_day,
    )

    settlement = None
    if data.settle:
        try:
            report = settlement_engine.settle_draw(draw_id)
        except AlreadySettled as exc:
            current_app.logger.info("Nothing to settle for %s: %s", draw_id, exc.message)
        else:
            settlement = SettlementResponse(**report.to_dict()).dict()

    return jsonify({"draw": draw.to_dict(), "settlement": settlement})


@bp.post("/draws/<draw_id>/settle")
def settle_draw(draw_id: str):
    report = settlement_engine.settle_draw(draw_id)
    return jsonify(SettlementResponse(**report.to_dict()).dict())


@bp.get("/blocked-numbers")
def list_blocked_numbers():
    records = exposure_ledger.list_blocked(request.args.get("draw_id") or None)
    return jsonify([record.to_dict() for record in records])


@bp.post("/blocked-numbers")
def block_number():
    data = NumberRuleRequest(**_rule_payload())
    record = exposure_ledger.block_number(data.number, data.draw_id)
    return jsonify(record.to_dict()), 201


@bp.delete("/blocked-numbers")
def unblock_number():
    data = NumberRuleRequest(**_rule_payload())
    removed = exposure_ledger.unblock_number(data.number, data.draw_id)
    return jsonify({"removed": removed, "number": data.number, "draw_id": data.draw_id})


@bp.get("/limits")
def list_limits():
    records = exposure_ledger.list_limits(request.args.get("draw_id") or None)
    return jsonify([record.to_dict() for record in records])


@bp.post("/limits")
def set_limit():
    data = LimitRequest(**_rule_payload())
    record = exposure_ledger.set_limit(data.number, data.limit_amount, data.draw_id)
    return jsonify(record.to_dict()), 201


@bp.delete("/limits")
def remove_limit():
    data = NumberRuleRequest(**_rule_payload())
    removed = exposure_ledger.remove_limit(data.number, data.draw_id)
    return jsonify({"removed": removed, "number": data.number, "draw_id": data.draw_id})


@bp.delete("/tickets/<ticket_id>")
def supervisor_delete_ticket(ticket_id: str):
    requested_by = require_arg("requested_by")
    ticket = ticket_repo.delete(ticket_id, requested_by, supervisor=True)
    return jsonify({"deleted": True, "ticket_id": ticket.id})
