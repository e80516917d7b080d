from __future__ import annotations

import datetime as dt
import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from threading import Lock
from typing import Dict, Iterator, List, Optional

from sqlalchemy import or_, update
from sqlalchemy.exc import SQLAlchemyError

from ..clock import utcnow
from ..config import AppSettings, load_settings
from ..db import session_scope
from ..errors import AlreadySettled, NotFound, StorageConflict
from ..models import Draw, Ticket
from ..money import quantize
from .draws import DrawRepository
from .payouts import bet_winnings
from .tickets import TicketRepository

logger = logging.getLogger("borlette.settlement")

_LOCKS_GUARD = Lock()
_DRAW_LOCKS: Dict[str, Lock] = {}


def _lock_for(draw_id: str) -> Lock:
    with _LOCKS_GUARD:
        lock = _DRAW_LOCKS.get(draw_id)
        if lock is None:
            lock = _DRAW_LOCKS[draw_id] = Lock()
        return lock


@contextmanager
def draw_settlement_lock(draw_id: str, timeout_s: Optional[float] = None) -> Iterator[None]:
    """Serialize settlement passes over one draw within this process.

    Passes over different draws do not contend.

    Raises:
        TimeoutError: the lock was not acquired within ``timeout_s``.
    """
    lock = _lock_for(draw_id)
    if timeout_s is None:
        acquired = lock.acquire()
    else:
        acquired = lock.acquire(timeout=max(0.0, float(timeout_s)))
    if not acquired:
        raise TimeoutError(f"settlement lock for draw {draw_id} not acquired within {timeout_s}s")
    try:
        yield
    finally:
        lock.release()


@dataclass
class SettlementReport:
    draw_id: str
    result_version: int
    checked: int = 0
    winners: int = 0
    total_won: Decimal = Decimal("0.00")
    skipped_paid: int = 0
    failures: List[Dict[str, str]] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "draw_id": self.draw_id,
            "result_version": self.result_version,
            "checked": self.checked,
            "winners": self.winners,
            "total_won": str(quantize(self.total_won)),
            "skipped_paid": self.skipped_paid,
            "failures": list(self.failures),
        }


class SettlementEngine:
    def __init__(
        self,
        draws: Optional[DrawRepository] = None,
        tickets: Optional[TicketRepository] = None,
        settings: Optional[AppSettings] = None,
    ) -> None:
        self._settings = settings
        self.draws = draws or DrawRepository(settings.ledger if settings else None)
        self.tickets = tickets or TicketRepository(settings=settings.ledger if settings else None)

    @property
    def settings(self) -> AppSettings:
        return self._settings or load_settings()

    def settle_draw(self, draw_id: str, now: Optional[dt.datetime] = None) -> SettlementReport:
        """Settle every ticket of ``draw_id`` that the current result has not been applied to.

        Unchecked tickets and unpaid tickets checked against an older result
        version are (re)computed; paid tickets keep their payout. Raises
        ``AlreadySettled`` when no ticket needs work.
        """
        timeout = self.settings.ledger.settlement_lock_timeout_seconds
        try:
            with draw_settlement_lock(draw_id, timeout_s=timeout):
                return self._settle(draw_id, now or utcnow())
        except TimeoutError as exc:
            raise StorageConflict(str(exc)) from exc

    def _settle(self, draw_id: str, now: dt.datetime) -> SettlementReport:
        draw = self.draws.get_draw(draw_id)
        if not draw.has_result:
            raise NotFound(f"no result published for draw {draw_id}")

        version = draw.result_version
        lots = draw.get_results()
        report = SettlementReport(draw_id=draw_id, result_version=version)

        with session_scope() as session:
            base = session.query(Ticket).filter(
                Ticket.draw_id == draw_id,
                Ticket.business_day == draw.result_day,
            )
            pending = (
                base.filter(
                    Ticket.paid.is_(False),
                    or_(Ticket.checked.is_(False), Ticket.settled_version < version),
                )
                .order_by(Ticket.created_at, Ticket.id)
                .all()
            )
            report.skipped_paid = base.filter(Ticket.paid.is_(True), Ticket.settled_version < version).count()
            for ticket in pending:
                session.expunge(ticket)

        if not pending:
            raise AlreadySettled(
                f"draw {draw_id} is already settled for result version {version}",
                details={"result_version": version},
            )

        payouts = self.settings.payouts
        for ticket in pending:
            try:
                win = sum(
                    (bet_winnings(bet, lots, draw.lucky_number, payouts) for bet in ticket.get_bets()),
                    Decimal("0"),
                )
                with session_scope() as session:
                    applied = self.tickets.mark_settled(session, ticket.id, win, version, now=now)
            except (ValueError, KeyError, TypeError, InvalidOperation, SQLAlchemyError) as exc:
                logger.warning("Could not settle ticket %s of draw %s: %s", ticket.id, draw_id, exc)
                report.failures.append({"ticket_id": ticket.id, "error": str(exc)})
                continue
            if not applied:
                continue
            report.checked += 1
            if win > 0:
                report.winners += 1
                report.total_won += win

        with session_scope() as session:
            session.execute(
                update(Draw)
                .where(Draw.id == draw_id, Draw.settled_version < version)
                .values(settled_version=version)
                .execution_options(synchronize_session=False)
            )

        logger.info(
            "Settled draw %s v%s: %s checked, %s winners, %s won, %s failures",
            draw_id,
            version,
            report.checked,
            report.winners,
            report.total_won,
            len(report.failures),
        )
        return report
