from __future__ import annotations

import datetime as dt
import json
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base

from .clock import to_storage, utcnow
from .money import from_cents

Base = declarative_base()

# Scope value used by limits and blocks that apply to every draw.
GLOBAL_SCOPE = "*"


def _now() -> dt.datetime:
    return to_storage(utcnow())


class Draw(Base):
    __tablename__ = "draws"

    id = Column(String(32), primary_key=True)
    name = Column(String(64), nullable=False)
    time = Column(String(5), nullable=False)
    frequency = Column(String(16), nullable=False, default="daily")
    active = Column(Boolean, nullable=False, default=True)
    blocked = Column(Boolean, nullable=False, default=False)
    min_bet_cents = Column(BigInteger, nullable=False, default=0)
    max_bet_cents = Column(BigInteger, nullable=False, default=0)
    results = Column(Text, nullable=True)
    lucky_number = Column(Integer, nullable=True)
    result_date = Column(DateTime, nullable=True)
    result_day = Column(Date, nullable=True)
    result_comment = Column(Text, nullable=True)
    result_source = Column(String(16), nullable=True)
    result_version = Column(Integer, nullable=False, default=0)
    settled_version = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=_now, nullable=False)
    updated_at = Column(DateTime, default=_now, onupdate=_now, nullable=False)

    def set_results(self, numbers: List[str]) -> None:
        self.results = json.dumps(list(numbers))

    def get_results(self) -> List[str]:
        return json.loads(self.results) if self.results else []

    @property
    def has_result(self) -> bool:
        return bool(self.results) and self.result_version > 0

    @property
    def min_bet(self) -> Decimal:
        return from_cents(self.min_bet_cents or 0)

    @property
    def max_bet(self) -> Decimal:
        return from_cents(self.max_bet_cents or 0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "time": self.time,
            "frequency": self.frequency,
            "active": self.active,
            "blocked": self.blocked,
            "min_bet": str(self.min_bet),
            "max_bet": str(self.max_bet),
            "results": self.get_results(),
            "lucky_number": self.lucky_number,
            "result_date": self.result_date.isoformat() if self.result_date else None,
            "result_day": self.result_day.isoformat() if self.result_day else None,
            "result_comment": self.result_comment,
            "result_source": self.result_source,
            "result_version": self.result_version,
            "settled_version": self.settled_version,
        }


class Ticket(Base):
    __tablename__ = "tickets"

    id = Column(String(80), primary_key=True)
    agent_id = Column(String(64), nullable=False, index=True)
    agent_name = Column(String(128), nullable=True)
    draw_id = Column(String(32), ForeignKey("draws.id"), nullable=False, index=True)
    draw_name = Column(String(64), nullable=False)
    bets = Column(Text, nullable=False)
    total_cents = Column(BigInteger, nullable=False)
    win_cents = Column(BigInteger, nullable=False, default=0)
    checked = Column(Boolean, nullable=False, default=False)
    paid = Column(Boolean, nullable=False, default=False)
    business_day = Column(Date, nullable=False, index=True)
    idempotency_key = Column(String(160), nullable=True, unique=True)
    settled_version = Column(Integer, nullable=False, default=0)
    settled_at = Column(DateTime, nullable=True)
    paid_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=_now, nullable=False)

    def set_bets(self, bets: List[Dict[str, Any]]) -> None:
        self.bets = json.dumps(bets)

    def get_bets(self) -> List[Dict[str, Any]]:
        return json.loads(self.bets)

    @property
    def total(self) -> Decimal:
        return from_cents(self.total_cents)

    @property
    def win_amount(self) -> Decimal:
        return from_cents(self.win_cents or 0)

    @property
    def status(self) -> str:
        if not self.checked:
            return "pending"
        return "winner" if self.win_cents > 0 else "loser"

    def to_dict(self) -> dict:
        return {
            "ticket_id": self.id,
            "agent_id": self.agent_id,
            "agent_name": self.agent_name,
            "draw_id": self.draw_id,
            "draw_name": self.draw_name,
            "bets": self.get_bets(),
            "total": str(self.total),
            "win_amount": str(self.win_amount),
            "status": self.status,
            "checked": self.checked,
            "paid": self.paid,
            "business_day": self.business_day.isoformat(),
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "settled_at": self.settled_at.isoformat() if self.settled_at else None,
            "paid_at": self.paid_at.isoformat() if self.paid_at else None,
        }


class ExposureEntry(Base):
    __tablename__ = "exposure_entries"

    id = Column(Integer, primary_key=True, autoincrement=True)
    draw_id = Column(String(32), ForeignKey("draws.id"), nullable=False)
    number = Column(String(8), nullable=False)
    day = Column(Date, nullable=False)
    amount_cents = Column(BigInteger, nullable=False, default=0)

    __table_args__ = (UniqueConstraint("draw_id", "number", "day", name="uq_exposure_draw_number_day"),)

    @property
    def amount(self) -> Decimal:
        return from_cents(self.amount_cents)


class NumberLimit(Base):
    __tablename__ = "number_limits"

    id = Column(Integer, primary_key=True, autoincrement=True)
    draw_id = Column(String(32), nullable=False, default=GLOBAL_SCOPE)
    number = Column(String(8), nullable=False)
    limit_cents = Column(BigInteger, nullable=False)

    __table_args__ = (UniqueConstraint("draw_id", "number", name="uq_limit_draw_number"),)

    @property
    def limit_amount(self) -> Decimal:
        return from_cents(self.limit_cents)

    def to_dict(self) -> dict:
        return {
            "draw_id": None if self.draw_id == GLOBAL_SCOPE else self.draw_id,
            "number": self.number,
            "limit_amount": str(self.limit_amount),
        }


class BlockedNumber(Base):
    __tablename__ = "blocked_numbers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    draw_id = Column(String(32), nullable=False, default=GLOBAL_SCOPE)
    number = Column(String(8), nullable=False)
    created_at = Column(DateTime, default=_now, nullable=False)

    __table_args__ = (UniqueConstraint("draw_id", "number", name="uq_blocked_draw_number"),)

    def to_dict(self) -> dict:
        return {
            "draw_id": None if self.draw_id == GLOBAL_SCOPE else self.draw_id,
            "number": self.number,
        }


class WinningResult(Base):
    __tablename__ = "winning_results"

    id = Column(Integer, primary_key=True, autoincrement=True)
    draw_id = Column(String(32), ForeignKey("draws.id"), nullable=False, index=True)
    draw_name = Column(String(64), nullable=False)
    numbers = Column(Text, nullable=False)
    lucky_number = Column(Integer, nullable=True)
    comment = Column(Text, nullable=True)
    source = Column(String(16), nullable=False, default="manual")
    version = Column(Integer, nullable=False)
    result_day = Column(Date, nullable=False)
    published_at = Column(DateTime, default=_now, nullable=False)

    def get_numbers(self) -> List[str]:
        return json.loads(self.numbers)

    def to_dict(self) -> dict:
        return {
            "draw_id": self.draw_id,
            "draw_name": self.draw_name,
            "numbers": self.get_numbers(),
            "lucky_number": self.lucky_number,
            "comment": self.comment,
            "source": self.source,
            "version": self.version,
            "result_day": self.result_day.isoformat(),
            "published_at": self.published_at.isoformat(),
        }


def optional_scope(draw_id: Optional[str]) -> str:
    return draw_id or GLOBAL_SCOPE
