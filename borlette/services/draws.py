from __future__ import annotations

import datetime as dt
import json
import logging
from decimal import Decimal
from typing import List, Optional, Sequence

from sqlalchemy.orm import Session

from ..clock import as_utc, business_day, scheduled_at, to_storage, utcnow
from ..config import LedgerSettings, load_settings
from ..db import session_scope
from ..errors import DrawNotFound
from ..models import Draw, WinningResult
from ..money import to_cents
from ..schemas import two_digit

logger = logging.getLogger("borlette.draws")

DEFAULT_DRAWS = (
    ("tn_matin", "Tunisia Matin", "10:00"),
    ("tn_soir", "Tunisia Soir", "17:00"),
    ("fl_matin", "Florida Matin", "13:30"),
    ("fl_soir", "Florida Soir", "21:50"),
    ("ny_matin", "New York Matin", "14:30"),
    ("ny_soir", "New York Soir", "20:00"),
    ("ga_matin", "Georgia Matin", "12:30"),
    ("ga_soir", "Georgia Soir", "19:00"),
    ("tx_matin", "Texas Matin", "11:30"),
    ("tx_soir", "Texas Soir", "18:30"),
)


def closes_at(draw: Draw, day: dt.date, settings: LedgerSettings) -> dt.datetime:
    """Moment betting stops for the occurrence of ``draw`` on ``day``."""
    start = scheduled_at(day, draw.time, settings.timezone)
    return start - dt.timedelta(minutes=settings.closing_window_minutes)


def draw_is_open(draw: Draw, now: dt.datetime, settings: LedgerSettings) -> bool:
    if not draw.active or draw.blocked:
        return False
    day = business_day(now, settings.timezone)
    return as_utc(now) < closes_at(draw, day, settings)


def occurrence_day(draw: Draw, moment: dt.datetime, settings: LedgerSettings) -> dt.date:
    """Business day of the latest occurrence of ``draw`` that had closed by ``moment``.

    A result published after midnight, before that day's betting closes,
    belongs to the previous day's draw.
    """
    day = business_day(moment, settings.timezone)
    if as_utc(moment) < closes_at(draw, day, settings):
        day -= dt.timedelta(days=1)
    return day


class DrawRepository:
    def __init__(self, settings: Optional[LedgerSettings] = None) -> None:
        self._settings = settings

    @property
    def settings(self) -> LedgerSettings:
        return self._settings or load_settings().ledger

    def load(self, session: Session, draw_id: str, for_update: bool = False) -> Draw:
        query = session.query(Draw).filter(Draw.id == draw_id)
        if for_update:
            query = query.with_for_update()
        draw = query.one_or_none()
        if draw is None:
            raise DrawNotFound(draw_id)
        return draw

    def get_draw(self, draw_id: str) -> Draw:
        with session_scope() as session:
            draw = self.load(session, draw_id)
            session.expunge(draw)
            return draw

    def list_draws(self) -> List[Draw]:
        with session_scope() as session:
            draws = session.query(Draw).order_by(Draw.time).all()
            for draw in draws:
                session.expunge(draw)
            return draws

    def is_open_for_betting(self, draw_id: str, now: Optional[dt.datetime] = None) -> bool:
        draw = self.get_draw(draw_id)
        return draw_is_open(draw, now or utcnow(), self.settings)

    def upsert_draw(
        self,
        draw_id: str,
        name: str,
        time: str,
        frequency: str = "daily",
        active: bool = True,
        blocked: bool = False,
        min_bet: Decimal = Decimal("0"),
        max_bet: Decimal = Decimal("0"),
    ) -> Draw:
        with session_scope() as session:
            draw = session.get(Draw, draw_id)
            if draw is None:
                draw = Draw(id=draw_id, result_version=0, settled_version=0)
                session.add(draw)
            draw.name = name
            draw.time = time
            draw.frequency = frequency
            draw.active = active
            draw.blocked = blocked
            draw.min_bet_cents = to_cents(min_bet)
            draw.max_bet_cents = to_cents(max_bet)
            session.flush()
            session.refresh(draw)
            session.expunge(draw)
            return draw

    def seed_defaults(self) -> int:
        created = 0
        with session_scope() as session:
            if session.query(Draw).count():
                return 0
            for draw_id, name, time in DEFAULT_DRAWS:
                session.add(Draw(id=draw_id, name=name, time=time, result_version=0, settled_version=0))
                created += 1
        logger.info("Seeded %s default draws", created)
        return created

    def set_blocked(self, draw_id: str, blocked: bool) -> Draw:
        return self._set_flag(draw_id, "blocked", blocked)

    def set_active(self, draw_id: str, active: bool) -> Draw:
        return self._set_flag(draw_id, "active", active)

    def _set_flag(self, draw_id: str, flag: str, value: bool) -> Draw:
        with session_scope() as session:
            draw = self.load(session, draw_id)
            setattr(draw, flag, bool(value))
            session.flush()
            session.refresh(draw)
            session.expunge(draw)
        logger.info("Draw %s %s=%s", draw_id, flag, value)
        return draw

    def publish_result(
        self,
        draw_id: str,
        results: Sequence[object],
        lucky_number: Optional[int] = None,
        comment: str = "",
        source: str = "manual",
        published_at: Optional[dt.datetime] = None,
        result_day: Optional[dt.date] = None,
    ) -> Draw:
        """Overwrite the draw's last result; settlement is the caller's job.

        ``result_day`` names the draw occurrence the numbers belong to. When it
        is omitted the occurrence is derived from ``published_at``, so a
        correction published the next morning still targets the earlier day.
        """
        numbers = [two_digit(value) for value in results]
        if len(numbers) != 5:
            raise ValueError("A draw result has exactly 5 numbers.")
        if lucky_number is not None and not 0 <= int(lucky_number) <= 99:
            raise ValueError("lucky_number must be between 0 and 99")

        moment = published_at or utcnow()
        with session_scope() as session:
            draw = self.load(session, draw_id, for_update=True)
            draw.set_results(numbers)
            draw.lucky_number = lucky_number
            draw.result_date = to_storage(moment)
            draw.result_day = result_day or occurrence_day(draw, moment, self.settings)
            draw.result_comment = comment
            draw.result_source = source
            draw.result_version = Draw.result_version + 1
            session.flush()
            session.refresh(draw)
            session.add(
                WinningResult(
                    draw_id=draw.id,
                    draw_name=draw.name,
                    numbers=json.dumps(numbers),
                    lucky_number=lucky_number,
                    comment=comment,
                    source=source,
                    version=draw.result_version,
                    result_day=draw.result_day,
                    published_at=draw.result_date,
                )
            )
            session.flush()
            session.refresh(draw)
            session.expunge(draw)
        logger.info(
            "Published result v%s for draw %s (%s): %s lucky=%s",
            draw.result_version,
            draw_id,
            source,
            numbers,
            lucky_number,
        )
        return draw

    def list_results(self, draw_id: Optional[str] = None, limit: int = 20) -> List[WinningResult]:
        with session_scope() as session:
            query = session.query(WinningResult)
            if draw_id:
                query = query.filter(WinningResult.draw_id == draw_id)
            records = query.order_by(WinningResult.published_at.desc(), WinningResult.id.desc()).limit(limit).all()
            for record in records:
                session.expunge(record)
            return records
