from __future__ import annotations

import datetime as dt
import logging
import secrets
from decimal import Decimal
from typing import List, Optional, Sequence

from sqlalchemy import desc, or_, update
from sqlalchemy.orm import Session

from ..clock import as_utc, to_storage, utcnow
from ..config import LedgerSettings, load_settings
from ..db import session_scope
from ..errors import Forbidden, NotPayable, TicketNotFound
from ..models import Draw, Ticket
from ..money import to_cents
from ..schemas import BetBase, parse_bet
from .exposure import ExposureLedger

logger = logging.getLogger("borlette.tickets")


def new_ticket_id(agent_id: str, now: Optional[dt.datetime] = None) -> str:
    moment = as_utc(now or utcnow())
    millis = int(moment.timestamp() * 1000)
    return f"{agent_id}-{millis}{secrets.randbelow(1000):03d}"


class TicketRepository:
    def __init__(
        self,
        exposure: Optional[ExposureLedger] = None,
        settings: Optional[LedgerSettings] = None,
    ) -> None:
        self.exposure = exposure or ExposureLedger()
        self._settings = settings

    @property
    def settings(self) -> LedgerSettings:
        return self._settings or load_settings().ledger

    def create(
        self,
        session: Session,
        bets: Sequence[BetBase],
        agent_id: str,
        agent_name: Optional[str],
        draw: Draw,
        day: dt.date,
        idempotency_key: Optional[str] = None,
        now: Optional[dt.datetime] = None,
    ) -> Ticket:
        """Insert a ticket inside the admission transaction; exposure is the caller's job."""
        moment = now or utcnow()
        ticket = Ticket(
            id=new_ticket_id(agent_id, moment),
            agent_id=agent_id,
            agent_name=agent_name,
            draw_id=draw.id,
            draw_name=draw.name,
            total_cents=sum(to_cents(bet.amount) for bet in bets),
            win_cents=0,
            checked=False,
            paid=False,
            business_day=day,
            idempotency_key=idempotency_key,
            settled_version=0,
            created_at=to_storage(moment),
        )
        ticket.set_bets([bet.to_record() for bet in bets])
        session.add(ticket)
        session.flush()
        return ticket

    def get(self, ticket_id: str) -> Ticket:
        with session_scope() as session:
            ticket = session.get(Ticket, ticket_id)
            if ticket is None:
                raise TicketNotFound(ticket_id)
            session.expunge(ticket)
            return ticket

    def find_by_idempotency_key(self, key: str, session: Optional[Session] = None) -> Optional[Ticket]:
        if session is not None:
            return session.query(Ticket).filter(Ticket.idempotency_key == key).one_or_none()
        with session_scope() as own:
            ticket = own.query(Ticket).filter(Ticket.idempotency_key == key).one_or_none()
            if ticket is not None:
                own.expunge(ticket)
            return ticket

    def list_by_agent(
        self,
        agent_id: str,
        draw_id: Optional[str] = None,
        day: Optional[dt.date] = None,
        checked: Optional[bool] = None,
        limit: Optional[int] = None,
    ) -> List[Ticket]:
        with session_scope() as session:
            query = session.query(Ticket).filter(Ticket.agent_id == agent_id)
            if draw_id:
                query = query.filter(Ticket.draw_id == draw_id)
            if day is not None:
                query = query.filter(Ticket.business_day == day)
            if checked is not None:
                query = query.filter(Ticket.checked.is_(checked))
            query = query.order_by(desc(Ticket.created_at), desc(Ticket.id))
            if limit:
                query = query.limit(limit)
            tickets = query.all()
            for ticket in tickets:
                session.expunge(ticket)
            return tickets

    def list_unpaid_winners(self, draw_id: Optional[str] = None, agent_id: Optional[str] = None) -> List[Ticket]:
        with session_scope() as session:
            query = session.query(Ticket).filter(
                Ticket.checked.is_(True), Ticket.paid.is_(False), Ticket.win_cents > 0
            )
            if draw_id:
                query = query.filter(Ticket.draw_id == draw_id)
            if agent_id:
                query = query.filter(Ticket.agent_id == agent_id)
            tickets = query.order_by(desc(Ticket.win_cents)).all()
            for ticket in tickets:
                session.expunge(ticket)
            return tickets

    def ticket_age(self, ticket_id: str, now: Optional[dt.datetime] = None) -> dt.timedelta:
        ticket = self.get(ticket_id)
        return as_utc(now or utcnow()) - as_utc(ticket.created_at)

    def delete(
        self,
        ticket_id: str,
        requested_by: str,
        now: Optional[dt.datetime] = None,
        grace: Optional[dt.timedelta] = None,
        supervisor: bool = False,
    ) -> Ticket:
        """Void a ticket inside its grace window and hand its stake back to the exposure ledger.

        Agents may only delete their own tickets within the agent window;
        supervisors pass ``supervisor=True`` and their own ``grace``.
        Settled tickets are never deleted.
        """
        if grace is None:
            minutes = (
                self.settings.supervisor_delete_grace_minutes
                if supervisor
                else self.settings.agent_delete_grace_minutes
            )
            grace = dt.timedelta(minutes=minutes)
        moment = as_utc(now or utcnow())

        with session_scope() as session:
            ticket = session.get(Ticket, ticket_id)
            if ticket is None:
                raise TicketNotFound(ticket_id)
            if not supervisor and ticket.agent_id != requested_by:
                raise Forbidden(f"ticket {ticket_id} does not belong to {requested_by}")
            if ticket.checked:
                raise Forbidden(f"ticket {ticket_id} is already settled")
            age = moment - as_utc(ticket.created_at)
            if age > grace:
                raise Forbidden(
                    f"ticket {ticket_id} is {int(age.total_seconds())}s old; "
                    f"deletion window is {int(grace.total_seconds())}s",
                    details={"age_seconds": int(age.total_seconds())},
                )

            for record in ticket.get_bets():
                bet = parse_bet(record)
                self.exposure.release(
                    session,
                    ticket.draw_id,
                    bet.exposure_number(),
                    ticket.business_day,
                    to_cents(bet.amount),
                )
            session.delete(ticket)

        logger.info("Ticket %s deleted by %s (supervisor=%s)", ticket_id, requested_by, supervisor)
        return ticket

    def mark_settled(
        self,
        session: Session,
        ticket_id: str,
        win_amount: Decimal,
        version: int,
        now: Optional[dt.datetime] = None,
    ) -> bool:
        """Record a settlement outcome unless a newer pass or a payout got there first."""
        stmt = (
            update(Ticket)
            .where(
                Ticket.id == ticket_id,
                Ticket.paid.is_(False),
                or_(Ticket.checked.is_(False), Ticket.settled_version < version),
            )
            .values(
                win_cents=to_cents(win_amount),
                checked=True,
                settled_version=version,
                settled_at=to_storage(now or utcnow()),
            )
        )
        result = session.execute(stmt.execution_options(synchronize_session=False))
        return result.rowcount == 1

    def mark_paid(self, ticket_id: str, now: Optional[dt.datetime] = None) -> Ticket:
        with session_scope() as session:
            ticket = session.get(Ticket, ticket_id)
            if ticket is None:
                raise TicketNotFound(ticket_id)
            if not ticket.checked or ticket.win_cents <= 0:
                raise NotPayable(f"ticket {ticket_id} is not a settled winner")
            if ticket.paid:
                raise NotPayable(f"ticket {ticket_id} is already paid")
            ticket.paid = True
            ticket.paid_at = to_storage(now or utcnow())
            session.flush()
            session.refresh(ticket)
            session.expunge(ticket)
        logger.info("Ticket %s marked paid (%s)", ticket_id, ticket.win_amount)
        return ticket
