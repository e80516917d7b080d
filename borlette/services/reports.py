from __future__ import annotations

import datetime as dt
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from sqlalchemy import and_, case, func

from ..clock import business_day, utcnow
from ..config import LedgerSettings, load_settings
from ..db import session_scope
from ..models import GLOBAL_SCOPE, ExposureEntry, NumberLimit, Ticket
from ..money import from_cents
from .draws import DrawRepository
from .tickets import TicketRepository

PERIODS = ("today", "yesterday", "week", "month", "custom")


def period_bounds(
    period: Optional[str],
    today: dt.date,
    from_day: Optional[dt.date] = None,
    to_day: Optional[dt.date] = None,
) -> Tuple[Optional[dt.date], Optional[dt.date]]:
    """Inclusive business-day range for a named reporting period; ``(None, None)`` is unbounded."""
    if period in (None, "", "all"):
        return from_day, to_day
    if period == "today":
        return today, today
    if period == "yesterday":
        yesterday = today - dt.timedelta(days=1)
        return yesterday, yesterday
    if period == "week":
        # Weeks start on Sunday.
        return today - dt.timedelta(days=(today.weekday() + 1) % 7), today
    if period == "month":
        return today.replace(day=1), today
    if period == "custom":
        return from_day, to_day
    raise ValueError(f"unknown period {period!r}; expected one of {', '.join(PERIODS)}")


def _totals_columns():
    winning = and_(Ticket.checked.is_(True), Ticket.win_cents > 0)
    return (
        func.count(Ticket.id).label("tickets"),
        func.coalesce(func.sum(Ticket.total_cents), 0).label("bets"),
        func.coalesce(func.sum(case((winning, Ticket.win_cents), else_=0)), 0).label("wins"),
        func.coalesce(func.sum(case((winning, 1), else_=0)), 0).label("winners"),
        func.coalesce(
            func.sum(case((and_(Ticket.checked.is_(True), Ticket.win_cents == 0), 1), else_=0)), 0
        ).label("losers"),
        func.coalesce(func.sum(case((Ticket.checked.is_(False), 1), else_=0)), 0).label("pending"),
        func.coalesce(
            func.sum(case((and_(winning, Ticket.paid.is_(False)), Ticket.win_cents), else_=0)), 0
        ).label("unpaid"),
    )


def _totals_dict(row) -> Dict[str, object]:
    bets = int(row.bets or 0)
    wins = int(row.wins or 0)
    return {
        "tickets": int(row.tickets or 0),
        "total_bets": str(from_cents(bets)),
        "total_wins": str(from_cents(wins)),
        "net_result": str(from_cents(bets - wins)),
        "winners": int(row.winners or 0),
        "losers": int(row.losers or 0),
        "pending": int(row.pending or 0),
        "unpaid_wins": str(from_cents(int(row.unpaid or 0))),
    }


class ReportService:
    """Read-side aggregates over tickets and exposure; never used for admission decisions."""

    def __init__(
        self,
        draws: Optional[DrawRepository] = None,
        tickets: Optional[TicketRepository] = None,
        settings: Optional[LedgerSettings] = None,
    ) -> None:
        self._settings = settings
        self.draws = draws or DrawRepository(settings)
        self.tickets = tickets or TicketRepository(settings=settings)

    @property
    def settings(self) -> LedgerSettings:
        return self._settings or load_settings().ledger

    def today(self, now: Optional[dt.datetime] = None) -> dt.date:
        return business_day(now or utcnow(), self.settings.timezone)

    def summary(
        self,
        agent_id: Optional[str] = None,
        draw_id: Optional[str] = None,
        period: Optional[str] = "today",
        from_day: Optional[dt.date] = None,
        to_day: Optional[dt.date] = None,
        now: Optional[dt.datetime] = None,
    ) -> Dict[str, object]:
        start, end = period_bounds(period, self.today(now), from_day, to_day)
        with session_scope() as session:
            query = session.query(*_totals_columns())
            if agent_id and agent_id != "all":
                query = query.filter(Ticket.agent_id == agent_id)
            if draw_id and draw_id != "all":
                query = query.filter(Ticket.draw_id == draw_id)
            if start is not None:
                query = query.filter(Ticket.business_day >= start)
            if end is not None:
                query = query.filter(Ticket.business_day <= end)
            row = query.one()

            agents = session.query(
                Ticket.agent_id,
                func.sum(Ticket.total_cents).label("bets"),
                func.sum(case((Ticket.checked.is_(True), Ticket.win_cents), else_=0)).label("wins"),
            )
            if draw_id and draw_id != "all":
                agents = agents.filter(Ticket.draw_id == draw_id)
            if agent_id and agent_id != "all":
                agents = agents.filter(Ticket.agent_id == agent_id)
            if start is not None:
                agents = agents.filter(Ticket.business_day >= start)
            if end is not None:
                agents = agents.filter(Ticket.business_day <= end)
            per_agent = agents.group_by(Ticket.agent_id).all()

        summary = _totals_dict(row)
        summary["gain_count"] = sum(1 for item in per_agent if int(item.bets or 0) - int(item.wins or 0) >= 0)
        summary["loss_count"] = len(per_agent) - summary["gain_count"]
        summary["from"] = start.isoformat() if start else None
        summary["to"] = end.isoformat() if end else None
        return summary

    def agent_stats(self, day: Optional[dt.date] = None, now: Optional[dt.datetime] = None) -> List[Dict[str, object]]:
        day = day or self.today(now)
        with session_scope() as session:
            rows = (
                session.query(Ticket.agent_id, func.max(Ticket.agent_name).label("agent_name"), *_totals_columns())
                .filter(Ticket.business_day == day)
                .group_by(Ticket.agent_id)
                .order_by(Ticket.agent_id)
                .all()
            )
        stats = []
        for row in rows:
            item = {"agent_id": row.agent_id, "agent_name": row.agent_name, "day": day.isoformat()}
            item.update(_totals_dict(row))
            stats.append(item)
        return stats

    def exposure_progress(
        self,
        draw_id: Optional[str] = None,
        day: Optional[dt.date] = None,
        now: Optional[dt.datetime] = None,
    ) -> List[Dict[str, object]]:
        """Accepted stake against the effective limit per (draw, number) for one day."""
        day = day or self.today(now)
        with session_scope() as session:
            query = session.query(ExposureEntry).filter(ExposureEntry.day == day)
            if draw_id:
                query = query.filter(ExposureEntry.draw_id == draw_id)
            entries = query.order_by(ExposureEntry.draw_id, ExposureEntry.number).all()
            limits = {(limit.draw_id, limit.number): limit.limit_cents for limit in session.query(NumberLimit).all()}

            progress = []
            for entry in entries:
                limit = limits.get((entry.draw_id, entry.number), limits.get((GLOBAL_SCOPE, entry.number)))
                percent = None
                if limit:
                    percent = float((Decimal(entry.amount_cents) * 100 / Decimal(limit)).quantize(Decimal("0.1")))
                progress.append(
                    {
                        "draw_id": entry.draw_id,
                        "number": entry.number,
                        "day": day.isoformat(),
                        "amount": str(from_cents(entry.amount_cents)),
                        "limit": str(from_cents(limit)) if limit else None,
                        "percent": percent,
                    }
                )
        return progress

    def unpaid_winners(self, draw_id: Optional[str] = None, agent_id: Optional[str] = None) -> List[Dict[str, object]]:
        return [ticket.to_dict() for ticket in self.tickets.list_unpaid_winners(draw_id=draw_id, agent_id=agent_id)]

    def results(self, draw_id: Optional[str] = None, limit: int = 20) -> List[Dict[str, object]]:
        return [record.to_dict() for record in self.draws.list_results(draw_id=draw_id, limit=limit)]
