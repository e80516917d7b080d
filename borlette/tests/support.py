from __future__ import annotations

import datetime as dt
import os
import tempfile
import unittest
from decimal import Decimal
from pathlib import Path
from typing import Optional

from borlette import db
from borlette.clock import scheduled_at
from borlette.config import AppSettings, FlaskSettings, LedgerSettings, PayoutSettings, load_settings
from borlette.models import Base
from borlette.schemas import parse_bet
from borlette.services.admission import AdmissionGate
from borlette.services.draws import DrawRepository
from borlette.services.exposure import ExposureLedger
from borlette.services.settlement import SettlementEngine
from borlette.services.tickets import TicketRepository

TIMEZONE = "America/Port-au-Prince"
DAY = dt.date(2026, 3, 10)
# 08:00 operator time on DAY; every test draw below closes later in the day.
NOW = scheduled_at(DAY, "08:00", TIMEZONE)


def bet(number, amount="10", draw_id="draw_x", game="borlette", **extra):
    data = {"game": game, "number": number, "amount": amount, "draw_id": draw_id}
    data.update(extra)
    return parse_bet(data)


class LedgerTestCase(unittest.TestCase):
    """Fresh SQLite file database and wired services per test."""

    admission_retries = 10

    def setUp(self) -> None:
        self._tmpdir = tempfile.TemporaryDirectory()
        self.database_url = f"sqlite:///{Path(self._tmpdir.name) / 'ledger.db'}"
        os.environ["DATABASE_URL"] = self.database_url
        os.environ.pop("ADMIN_API_KEY", None)
        load_settings.cache_clear()

        self.engine = db.configure_engine(self.database_url)
        Base.metadata.create_all(self.engine)

        self.ledger_settings = LedgerSettings(timezone=TIMEZONE, admission_retries=self.admission_retries)
        self.settings = AppSettings(
            flask=FlaskSettings(),
            ledger=self.ledger_settings,
            payouts=PayoutSettings(),
            database_url=self.database_url,
            admin_api_key=None,
        )
        self.draws = DrawRepository(self.ledger_settings)
        self.exposure = ExposureLedger()
        self.tickets = TicketRepository(self.exposure, self.ledger_settings)
        self.gate = AdmissionGate(self.draws, self.exposure, self.tickets, self.ledger_settings)
        self.settlement = SettlementEngine(self.draws, self.tickets, self.settings)

        self.draws.upsert_draw("draw_x", "Draw X", "20:00")
        self.draws.upsert_draw("draw_y", "Draw Y", "21:00")

    def tearDown(self) -> None:
        db.get_engine().dispose()
        load_settings.cache_clear()
        os.environ.pop("DATABASE_URL", None)
        self._tmpdir.cleanup()

    def admit(self, *bets, agent_id: str = "agent-1", now: Optional[dt.datetime] = None, **kwargs):
        return self.gate.admit(list(bets), agent_id, now=now or NOW, **kwargs)

    def publish(self, draw_id: str, results, lucky_number=None, published_at: Optional[dt.datetime] = None, **kwargs):
        return self.draws.publish_result(
            draw_id,
            results,
            lucky_number=lucky_number,
            published_at=published_at or NOW + dt.timedelta(hours=13),
            **kwargs,
        )

    def exposure_of(self, number: str, draw_id: str = "draw_x", day: dt.date = DAY) -> Decimal:
        return self.exposure.current(draw_id, number, day)
