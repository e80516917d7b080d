from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from ..schemas import DrawFailure, TicketSubmitRequest, TicketSubmitResponse
from ..services.admission import AdmissionGate
from ..services.tickets import TicketRepository
from .params import bool_arg, date_arg, int_arg, require_arg

bp = Blueprint("tickets", __name__)
ticket_repo = TicketRepository()
admission_gate = AdmissionGate(tickets=ticket_repo, exposure=ticket_repo.exposure)


@bp.post("")
def submit_tickets():
    payload = request.get_json(force=True, silent=True) or {}
    data = TicketSubmitRequest(**payload)

    result = admission_gate.submit_cart(
        data.bets,
        data.agent_id,
        agent_name=data.agent_name,
        idempotency_key=data.idempotency_key,
    )
    response = TicketSubmitResponse(
        tickets=[ticket.to_dict() for ticket in result.tickets],
        failures=[DrawFailure(**failure.to_dict()) for failure in result.failures],
    )
    if result.failures:
        current_app.logger.info(
            "Cart from %s: %s tickets, %s rejected draws", data.agent_id, len(result.tickets), len(result.failures)
        )
    return jsonify(response.dict()), 201 if result.accepted else 409


@bp.get("")
def list_tickets():
    agent_id = require_arg("agent_id")
    tickets = ticket_repo.list_by_agent(
        agent_id,
        draw_id=request.args.get("draw_id") or None,
        day=date_arg("day"),
        checked=bool_arg("checked"),
        limit=int_arg("limit"),
    )
    return jsonify([ticket.to_dict() for ticket in tickets])


@bp.get("/<ticket_id>")
def get_ticket(ticket_id: str):
    ticket = ticket_repo.get(ticket_id)
    return jsonify(ticket.to_dict())


@bp.delete("/<ticket_id>")
def delete_ticket(ticket_id: str):
    requested_by = require_arg("requested_by")
    ticket = ticket_repo.delete(ticket_id, requested_by)
    return jsonify({"deleted": True, "ticket_id": ticket.id})


@bp.post("/<ticket_id>/pay")
def pay_ticket(ticket_id: str):
    ticket = ticket_repo.mark_paid(ticket_id)
    return jsonify(ticket.to_dict())
