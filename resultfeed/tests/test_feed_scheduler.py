import asyncio
import datetime as dt
import json
import tempfile
import unittest
from pathlib import Path
from unittest import mock
from zoneinfo import ZoneInfo

from resultfeed.config import DataSourceSettings, FeedSettings
from resultfeed.datasource.base import DrawData, ResultDataSource
from resultfeed.datasource.http_api import HttpJsonDataSource, HttpJsonDataSourceConfig
from resultfeed.scheduler import FeedScheduler
from resultfeed.types import DrawSnapshot

TIMEZONE = "America/Port-au-Prince"
DRAW_DATE = dt.datetime(2026, 3, 10, 17, 0)


class FakeDataSource(ResultDataSource):
    def __init__(self, draws) -> None:
        self._draws = draws
        self.closed = False
        self.calls = []

    async def fetch_latest(self, draw_id: str) -> DrawData:
        self.calls.append(draw_id)
        draw = self._draws[draw_id]
        if isinstance(draw, Exception):
            raise draw
        return draw

    async def close(self) -> None:
        self.closed = True


class FakeClient:
    def __init__(self, snapshots) -> None:
        self._snapshots = snapshots
        self.publications = []

    async def get_draws(self):
        return {snapshot.draw_id: snapshot for snapshot in self._snapshots}

    async def publish_result(self, draw: DrawData):
        self.publications.append((draw.draw_id, tuple(draw.numbers), draw.lucky_number))
        return {
            "draw": {"id": draw.draw_id, "result_version": 1},
            "settlement": {"checked": 3, "winners": 1},
        }


def snapshot(draw_id: str, result_version: int = 0, result_day=None) -> DrawSnapshot:
    return DrawSnapshot(
        draw_id=draw_id,
        name=draw_id,
        active=True,
        blocked=False,
        result_version=result_version,
        result_day=result_day,
    )


def draw_data(draw_id: str, issue_id: str) -> DrawData:
    return DrawData(
        draw_id=draw_id,
        issue_id=issue_id,
        draw_date=DRAW_DATE,
        numbers=("12", "34", "56", "78", "90"),
        lucky_number=4,
    )


class FeedSchedulerTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmpdir = tempfile.TemporaryDirectory()
        self.state_path = Path(self._tmpdir.name) / "state.json"

    def tearDown(self) -> None:
        self._tmpdir.cleanup()

    def _make_settings(self, draw_ids=()) -> FeedSettings:
        return FeedSettings(
            ledger_url="http://ledger.test",
            admin_api_key="secret",
            draw_ids=tuple(draw_ids),
            poll_interval_seconds=5,
            submit_only_once=True,
            state_file=str(self.state_path),
            datasource=DataSourceSettings(url="http://feed.test/{draw_id}"),
        )

    def test_publishes_new_issue_and_persists_state(self) -> None:
        datasource = FakeDataSource({"tn_matin": draw_data("tn_matin", "2026-03-10")})
        client = FakeClient([snapshot("tn_matin")])
        scheduler = FeedScheduler(self._make_settings(), datasource, client)

        summary = asyncio.run(scheduler.run_once())

        self.assertEqual(len(summary.published), 1)
        self.assertEqual(summary.published[0].result_version, 1)
        self.assertEqual(summary.published[0].settlement["winners"], 1)
        self.assertTrue(datasource.closed)
        self.assertEqual(client.publications, [("tn_matin", ("12", "34", "56", "78", "90"), 4)])

        persisted = json.loads(self.state_path.read_text(encoding="utf-8"))
        self.assertEqual(persisted["last_issues"], {"tn_matin": "2026-03-10"})

    def test_skips_issue_already_published(self) -> None:
        self.state_path.write_text(json.dumps({"last_issues": {"tn_matin": "2026-03-10"}}), encoding="utf-8")
        datasource = FakeDataSource({"tn_matin": draw_data("tn_matin", "2026-03-10")})
        client = FakeClient([snapshot("tn_matin")])
        scheduler = FeedScheduler(self._make_settings(), datasource, client)

        summary = asyncio.run(scheduler.run_once())

        self.assertEqual(summary.published, [])
        self.assertEqual(summary.skipped, ["tn_matin"])
        self.assertEqual(client.publications, [])

    def test_skips_draw_with_manual_result_for_the_day(self) -> None:
        datasource = FakeDataSource({"tn_matin": draw_data("tn_matin", "2026-03-10")})
        client = FakeClient([snapshot("tn_matin", result_version=1, result_day=DRAW_DATE.date())])
        scheduler = FeedScheduler(self._make_settings(), datasource, client)

        summary = asyncio.run(scheduler.run_once())

        self.assertEqual(summary.skipped, ["tn_matin"])
        self.assertEqual(client.publications, [])

    def test_late_utc_draw_date_matches_the_local_result_day(self) -> None:
        late = DrawData(
            draw_id="ny_soir",
            issue_id="2026-03-10",
            draw_date=dt.datetime(2026, 3, 11, 1, 0, tzinfo=dt.timezone.utc).astimezone(ZoneInfo(TIMEZONE)),
            numbers=("12", "34", "56", "78", "90"),
        )
        datasource = FakeDataSource({"ny_soir": late})
        client = FakeClient([snapshot("ny_soir", result_version=1, result_day=dt.date(2026, 3, 10))])
        scheduler = FeedScheduler(self._make_settings(), datasource, client)

        summary = asyncio.run(scheduler.run_once())

        self.assertEqual(summary.skipped, ["ny_soir"])
        self.assertEqual(client.publications, [])

    def test_failure_on_one_draw_does_not_stop_others(self) -> None:
        datasource = FakeDataSource(
            {
                "tn_matin": ValueError("expected 5 numbers, got 3"),
                "ny_soir": draw_data("ny_soir", "2026-03-10"),
            }
        )
        client = FakeClient([snapshot("tn_matin"), snapshot("ny_soir")])
        scheduler = FeedScheduler(self._make_settings(["tn_matin", "ny_soir", "ghost"]), datasource, client)

        summary = asyncio.run(scheduler.run_once())

        self.assertEqual([result.draw_id for result in summary.published], ["ny_soir"])
        self.assertIn("tn_matin", summary.failed)
        self.assertEqual(summary.skipped, ["ghost"])


class HttpJsonDataSourceTests(unittest.TestCase):
    def test_parses_payload_with_template_url(self) -> None:
        source = HttpJsonDataSource(HttpJsonDataSourceConfig(url="http://feed.test/{draw_id}"))
        payload = {"issue_id": 77, "numbers": [12, "3", "45", 6, "90"], "lucky_number": "8", "draw_date": "2026-03-10T21:00:00Z"}

        with mock.patch.object(HttpJsonDataSource, "_get_json", return_value=payload) as get_json:
            draw = asyncio.run(source.fetch_latest("fl_soir"))

        get_json.assert_called_once_with("http://feed.test/fl_soir", None, 10)
        self.assertEqual(draw.issue_id, "77")
        self.assertEqual(draw.numbers, ("12", "03", "45", "06", "90"))
        self.assertEqual(draw.lucky_number, 8)
        self.assertEqual(draw.draw_date, dt.datetime(2026, 3, 10, 21, 0, tzinfo=dt.timezone.utc))

    def test_dates_are_read_in_the_operator_time_zone(self) -> None:
        source = HttpJsonDataSource(HttpJsonDataSourceConfig(url="http://feed.test/{draw_id}"))
        cases = {
            "2026-03-10": dt.date(2026, 3, 10),
            "2026-03-10T20:00:00": dt.date(2026, 3, 10),
            "2026-03-11T01:00:00Z": dt.date(2026, 3, 10),
        }
        for raw, expected in cases.items():
            with self.subTest(raw=raw):
                payload = {"issue_id": "9", "numbers": [1, 2, 3, 4, 5], "draw_date": raw}
                with mock.patch.object(HttpJsonDataSource, "_get_json", return_value=payload):
                    draw = asyncio.run(source.fetch_latest("ny_soir"))
                self.assertIsNotNone(draw.draw_date.tzinfo)
                self.assertEqual(draw.result_day, expected)
                self.assertEqual(draw.to_publish_payload()["result_day"], expected.isoformat())

    def test_rejects_wrong_result_size(self) -> None:
        source = HttpJsonDataSource(HttpJsonDataSourceConfig(url="http://feed.test/results"))
        payload = {"issue_id": "1", "numbers": [1, 2, 3]}

        with mock.patch.object(HttpJsonDataSource, "_get_json", return_value=payload) as get_json:
            with self.assertRaises(ValueError):
                asyncio.run(source.fetch_latest("fl_soir"))

        get_json.assert_called_once_with("http://feed.test/results", {"draw_id": "fl_soir"}, 10)


if __name__ == "__main__":
    unittest.main()
