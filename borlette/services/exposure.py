from __future__ import annotations

import datetime as dt
import logging
from decimal import Decimal
from typing import Iterable, List, Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from ..db import session_scope
from ..models import GLOBAL_SCOPE, BlockedNumber, ExposureEntry, NumberLimit, optional_scope
from ..money import from_cents, to_cents

logger = logging.getLogger("borlette.exposure")


class ExposureLedger:
    """Per (draw, number, day) accepted stake, plus the limit and block rules it is checked against."""

    # ------------------------------------------------------------------ #
    # Admission side: always called inside the caller's transaction
    # ------------------------------------------------------------------ #

    def blocked_among(self, session: Session, draw_id: str, numbers: Iterable[str]) -> List[str]:
        wanted = list(dict.fromkeys(numbers))
        if not wanted:
            return []
        rows = (
            session.query(BlockedNumber.number)
            .filter(BlockedNumber.draw_id.in_((draw_id, GLOBAL_SCOPE)))
            .filter(BlockedNumber.number.in_(wanted))
            .all()
        )
        blocked = {row.number for row in rows}
        return [number for number in wanted if number in blocked]

    def limit_cents(self, session: Session, draw_id: str, number: str) -> Optional[int]:
        """Effective limit in cents, or None when unlimited. A draw-scoped limit overrides the global one."""
        rows = (
            session.query(NumberLimit.draw_id, NumberLimit.limit_cents)
            .filter(NumberLimit.number == number)
            .filter(NumberLimit.draw_id.in_((draw_id, GLOBAL_SCOPE)))
            .all()
        )
        scoped = {row.draw_id: row.limit_cents for row in rows}
        value = scoped.get(draw_id, scoped.get(GLOBAL_SCOPE))
        if not value:
            return None
        return int(value)

    def exposure_cents(self, session: Session, draw_id: str, number: str, day: dt.date) -> int:
        value = (
            session.query(ExposureEntry.amount_cents)
            .filter(
                ExposureEntry.draw_id == draw_id,
                ExposureEntry.number == number,
                ExposureEntry.day == day,
            )
            .scalar()
        )
        return int(value or 0)

    def reserve(
        self,
        session: Session,
        draw_id: str,
        number: str,
        day: dt.date,
        amount_cents: int,
        limit_cents: Optional[int],
    ) -> bool:
        """Add ``amount_cents`` to the entry unless that would pass ``limit_cents``.

        The check and the increment are one conditional UPDATE, so two
        transactions racing on the same row cannot both pass the limit.
        A missing row is inserted; a concurrent insert of the same key
        surfaces as an IntegrityError for the caller to retry.
        """
        stmt = update(ExposureEntry).where(
            ExposureEntry.draw_id == draw_id,
            ExposureEntry.number == number,
            ExposureEntry.day == day,
        )
        if limit_cents is not None:
            stmt = stmt.where(ExposureEntry.amount_cents + amount_cents <= limit_cents)
        stmt = stmt.values(amount_cents=ExposureEntry.amount_cents + amount_cents)
        result = session.execute(stmt.execution_options(synchronize_session=False))
        if result.rowcount == 1:
            return True

        existing = (
            session.query(ExposureEntry.id)
            .filter(
                ExposureEntry.draw_id == draw_id,
                ExposureEntry.number == number,
                ExposureEntry.day == day,
            )
            .first()
        )
        if existing is not None:
            return False
        if limit_cents is not None and amount_cents > limit_cents:
            return False

        session.add(ExposureEntry(draw_id=draw_id, number=number, day=day, amount_cents=amount_cents))
        session.flush()
        return True

    def release(self, session: Session, draw_id: str, number: str, day: dt.date, amount_cents: int) -> None:
        stmt = (
            update(ExposureEntry)
            .where(
                ExposureEntry.draw_id == draw_id,
                ExposureEntry.number == number,
                ExposureEntry.day == day,
            )
            .values(amount_cents=ExposureEntry.amount_cents - amount_cents)
        )
        result = session.execute(stmt.execution_options(synchronize_session=False))
        if result.rowcount != 1:
            logger.warning("No exposure entry to release for %s/%s on %s", draw_id, number, day)

    # ------------------------------------------------------------------ #
    # Read side
    # ------------------------------------------------------------------ #

    def current(self, draw_id: str, number: str, day: dt.date) -> Decimal:
        with session_scope() as session:
            return from_cents(self.exposure_cents(session, draw_id, number, day))

    def entries_for_day(self, day: dt.date, draw_id: Optional[str] = None) -> List[ExposureEntry]:
        with session_scope() as session:
            query = session.query(ExposureEntry).filter(ExposureEntry.day == day)
            if draw_id:
                query = query.filter(ExposureEntry.draw_id == draw_id)
            entries = query.order_by(ExposureEntry.draw_id, ExposureEntry.number).all()
            for entry in entries:
                session.expunge(entry)
            return entries

    # ------------------------------------------------------------------ #
    # Owner configuration
    # ------------------------------------------------------------------ #

    def block_number(self, number: str, draw_id: Optional[str] = None) -> BlockedNumber:
        scope = optional_scope(draw_id)
        with session_scope() as session:
            blocked = (
                session.query(BlockedNumber)
                .filter(BlockedNumber.draw_id == scope, BlockedNumber.number == number)
                .one_or_none()
            )
            if blocked is None:
                blocked = BlockedNumber(draw_id=scope, number=number)
                session.add(blocked)
                session.flush()
            session.refresh(blocked)
            session.expunge(blocked)
        logger.info("Blocked number %s (scope=%s)", number, scope)
        return blocked

    def unblock_number(self, number: str, draw_id: Optional[str] = None) -> bool:
        scope = optional_scope(draw_id)
        with session_scope() as session:
            deleted = (
                session.query(BlockedNumber)
                .filter(BlockedNumber.draw_id == scope, BlockedNumber.number == number)
                .delete()
            )
        logger.info("Unblocked number %s (scope=%s)", number, scope)
        return bool(deleted)

    def list_blocked(self, draw_id: Optional[str] = None) -> List[BlockedNumber]:
        with session_scope() as session:
            query = session.query(BlockedNumber)
            if draw_id:
                query = query.filter(BlockedNumber.draw_id.in_((draw_id, GLOBAL_SCOPE)))
            records = query.order_by(BlockedNumber.draw_id, BlockedNumber.number).all()
            for record in records:
                session.expunge(record)
            return records

    def set_limit(self, number: str, limit_amount: Decimal, draw_id: Optional[str] = None) -> NumberLimit:
        """Upsert a limit; an amount of zero means unlimited."""
        scope = optional_scope(draw_id)
        with session_scope() as session:
            limit = (
                session.query(NumberLimit)
                .filter(NumberLimit.draw_id == scope, NumberLimit.number == number)
                .one_or_none()
            )
            if limit is None:
                limit = NumberLimit(draw_id=scope, number=number)
                session.add(limit)
            limit.limit_cents = to_cents(limit_amount)
            session.flush()
            session.refresh(limit)
            session.expunge(limit)
        logger.info("Limit for %s (scope=%s) set to %s", number, scope, limit_amount)
        return limit

    def remove_limit(self, number: str, draw_id: Optional[str] = None) -> bool:
        scope = optional_scope(draw_id)
        with session_scope() as session:
            deleted = (
                session.query(NumberLimit)
                .filter(NumberLimit.draw_id == scope, NumberLimit.number == number)
                .delete()
            )
        return bool(deleted)

    def list_limits(self, draw_id: Optional[str] = None) -> List[NumberLimit]:
        with session_scope() as session:
            query = session.query(NumberLimit)
            if draw_id:
                query = query.filter(NumberLimit.draw_id.in_((draw_id, GLOBAL_SCOPE)))
            records = query.order_by(NumberLimit.draw_id, NumberLimit.number).all()
            for record in records:
                session.expunge(record)
            return records
