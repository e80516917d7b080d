from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from ..clock import business_day, utcnow
from ..config import LedgerSettings, load_settings
from ..db import session_scope
from ..errors import (
    DrawClosed,
    InvalidAmount,
    LedgerError,
    LimitExceeded,
    NumberBlocked,
    StorageConflict,
)
from ..models import Draw, Ticket
from ..money import has_cent_precision, to_cents
from ..schemas import BetBase
from .draws import DrawRepository, draw_is_open
from .exposure import ExposureLedger
from .tickets import TicketRepository

logger = logging.getLogger("borlette.admission")


@dataclass
class CartFailure:
    draw_id: str
    reason: str
    message: str

    def to_dict(self) -> Dict[str, str]:
        return {"draw_id": self.draw_id, "reason": self.reason, "message": self.message}


@dataclass
class CartResult:
    tickets: List[Ticket] = field(default_factory=list)
    failures: List[CartFailure] = field(default_factory=list)

    @property
    def accepted(self) -> bool:
        return bool(self.tickets)


def partition_by_draw(bets: Sequence[BetBase]) -> Dict[str, List[BetBase]]:
    """Group bets by draw id, keeping the order in which draws first appear."""
    groups: Dict[str, List[BetBase]] = {}
    for bet in bets:
        groups.setdefault(bet.draw_id, []).append(bet)
    return groups


def draw_idempotency_key(key: Optional[str], draw_id: str) -> Optional[str]:
    return f"{key}:{draw_id}" if key else None


class AdmissionGate:
    def __init__(
        self,
        draws: Optional[DrawRepository] = None,
        exposure: Optional[ExposureLedger] = None,
        tickets: Optional[TicketRepository] = None,
        settings: Optional[LedgerSettings] = None,
    ) -> None:
        self._settings = settings
        self.draws = draws or DrawRepository(settings)
        self.exposure = exposure or ExposureLedger()
        self.tickets = tickets or TicketRepository(self.exposure, settings)

    @property
    def settings(self) -> LedgerSettings:
        return self._settings or load_settings().ledger

    def admit(
        self,
        bets: Sequence[BetBase],
        agent_id: str,
        agent_name: Optional[str] = None,
        idempotency_key: Optional[str] = None,
        now: Optional[dt.datetime] = None,
    ) -> Ticket:
        """Turn a single-draw bundle into a ticket, or raise ``AdmissionRejected``.

        Exposure reservations and the ticket insert share one transaction.
        Write contention (a racing insert of the same exposure row, or a
        locked SQLite database) restarts the whole attempt, up to
        ``admission_retries`` times, before surfacing ``StorageConflict``.
        """
        if not bets:
            raise ValueError("a bundle needs at least one bet")
        draw_ids = {bet.draw_id for bet in bets}
        if len(draw_ids) != 1:
            raise ValueError("all bets of a bundle must target the same draw")
        draw_id = bets[0].draw_id
        moment = now or utcnow()

        attempts = max(1, self.settings.admission_retries)
        last_error: Optional[Exception] = None
        for attempt in range(1, attempts + 1):
            try:
                with session_scope() as session:
                    ticket = self._admit_once(session, draw_id, bets, agent_id, agent_name, idempotency_key, moment)
                    session.expunge(ticket)
            except (IntegrityError, OperationalError) as exc:
                last_error = exc
                logger.warning(
                    "Storage conflict admitting bundle for %s on %s (attempt %s/%s): %s",
                    agent_id,
                    draw_id,
                    attempt,
                    attempts,
                    exc.orig if hasattr(exc, "orig") else exc,
                )
                continue
            return ticket

        raise StorageConflict(
            f"could not admit bundle for draw {draw_id} after {attempts} attempts",
            details={"error": str(last_error)} if last_error else None,
        )

    def _admit_once(
        self,
        session: Session,
        draw_id: str,
        bets: Sequence[BetBase],
        agent_id: str,
        agent_name: Optional[str],
        idempotency_key: Optional[str],
        now: dt.datetime,
    ) -> Ticket:
        if idempotency_key:
            existing = self.tickets.find_by_idempotency_key(idempotency_key, session=session)
            if existing is not None:
                logger.info("Bundle %s already admitted as ticket %s", idempotency_key, existing.id)
                return existing

        draw = self.draws.load(session, draw_id)
        if not draw_is_open(draw, now, self.settings):
            raise DrawClosed(f"draw {draw_id} is closed for betting", details={"draw_id": draw_id})

        day = business_day(now, self.settings.timezone)
        for bet in bets:
            self._check_bet(session, draw, bet, day)

        ticket = self.tickets.create(
            session,
            bets,
            agent_id=agent_id,
            agent_name=agent_name,
            draw=draw,
            day=day,
            idempotency_key=idempotency_key,
            now=now,
        )
        logger.info(
            "Admitted ticket %s for %s on %s: %s bets, total %s",
            ticket.id,
            agent_id,
            draw_id,
            len(bets),
            ticket.total,
        )
        return ticket

    def _check_bet(self, session: Session, draw: Draw, bet: BetBase, day: dt.date) -> None:
        blocked = self.exposure.blocked_among(session, draw.id, bet.sub_numbers())
        if blocked:
            raise NumberBlocked(
                f"number {', '.join(blocked)} is blocked on draw {draw.id}",
                details={"number": bet.number, "blocked": blocked},
            )

        number = bet.exposure_number()
        try:
            cents = to_cents(bet.amount)
        except ValueError as exc:
            raise InvalidAmount(str(exc), details={"number": bet.number, "amount": str(bet.amount)}) from exc
        limit = self.exposure.limit_cents(session, draw.id, number)
        if cents > 0:
            accepted = self.exposure.reserve(session, draw.id, number, day, cents, limit)
        else:
            current = self.exposure.exposure_cents(session, draw.id, number, day)
            accepted = limit is None or current + cents <= limit
        if not accepted:
            raise LimitExceeded(
                f"limit reached for {number} on draw {draw.id}",
                details={"number": number, "amount": str(bet.amount)},
            )

        problem = self._amount_problem(draw, bet)
        if problem:
            raise InvalidAmount(problem, details={"number": bet.number, "amount": str(bet.amount)})

    @staticmethod
    def _amount_problem(draw: Draw, bet: BetBase) -> Optional[str]:
        if bet.amount <= 0:
            return "amount must be positive"
        if not has_cent_precision(bet.amount):
            return "amount has more than 2 decimal places"
        cents = to_cents(bet.amount)
        if draw.min_bet_cents and cents < draw.min_bet_cents:
            return f"amount is below the minimum bet of {draw.min_bet}"
        if draw.max_bet_cents and cents > draw.max_bet_cents:
            return f"amount is above the maximum bet of {draw.max_bet}"
        return None

    def submit_cart(
        self,
        bets: Sequence[BetBase],
        agent_id: str,
        agent_name: Optional[str] = None,
        idempotency_key: Optional[str] = None,
        now: Optional[dt.datetime] = None,
    ) -> CartResult:
        """Split a cart into per-draw bundles and admit each one on its own.

        Draws admitted before a later draw fails keep their tickets.
        """
        result = CartResult()
        for draw_id, group in partition_by_draw(bets).items():
            try:
                ticket = self.admit(
                    group,
                    agent_id,
                    agent_name=agent_name,
                    idempotency_key=draw_idempotency_key(idempotency_key, draw_id),
                    now=now,
                )
            except LedgerError as exc:
                logger.info("Rejected bundle for %s on %s: %s %s", agent_id, draw_id, exc.code, exc.message)
                result.failures.append(CartFailure(draw_id=draw_id, reason=exc.code, message=exc.message))
                continue
            result.tickets.append(ticket)
        return result
