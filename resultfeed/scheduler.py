from __future__ import annotations

import asyncio
import json
import logging
import pathlib
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Protocol

from .config import FeedSettings
from .datasource import DrawData, ResultDataSource
from .types import DrawSnapshot


class LedgerClientProtocol(Protocol):
    async def get_draws(self) -> Dict[str, DrawSnapshot]:
        ...

    async def publish_result(self, draw: DrawData) -> Mapping[str, Any]:
        ...


@dataclass
class SchedulerResult:
    draw_id: str
    issue_id: str
    result_version: int
    settlement: Optional[Mapping[str, Any]] = None


@dataclass
class PollSummary:
    published: List[SchedulerResult] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)


class FeedStateStore:
    """Remembers the last issue published per draw to avoid resubmitting it."""

    def __init__(self, path: str) -> None:
        self._path = pathlib.Path(path)

    def load_last_issues(self) -> Dict[str, str]:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            return {}
        issues = data.get("last_issues")
        return dict(issues) if isinstance(issues, dict) else {}

    def save_last_issues(self, issues: Mapping[str, str]) -> None:
        payload = {"last_issues": dict(issues)}
        self._path.write_text(json.dumps(payload, sort_keys=True), encoding="utf-8")


class FeedScheduler:
    def __init__(
        self,
        settings: FeedSettings,
        datasource: ResultDataSource,
        client: LedgerClientProtocol,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._settings = settings
        self._datasource = datasource
        self._client = client
        self._state = FeedStateStore(settings.state_file)
        self._last_issues = self._state.load_last_issues()
        self._logger = logger or logging.getLogger("borlette.resultfeed")

    async def run_forever(self) -> None:
        interval = self._settings.poll_interval_seconds
        self._logger.info("Result feed loop started; poll interval=%s", interval)
        while True:
            try:
                summary = await self.poll()
                if summary.published and self._settings.submit_only_once:
                    self._logger.info("Submit-once flag set; exiting loop.")
                    return
            except Exception as exc:
                self._logger.exception("Result feed iteration failed: %s", exc)
            await asyncio.sleep(interval)

    async def run_once(self) -> PollSummary:
        try:
            return await self.poll()
        finally:
            await self._datasource.close()

    async def poll(self) -> PollSummary:
        summary = PollSummary()
        snapshots = await self._client.get_draws()
        draw_ids = self._settings.draw_ids or tuple(snapshots)
        for draw_id in draw_ids:
            snapshot = snapshots.get(draw_id)
            if snapshot is None:
                self._logger.warning("Draw %s is unknown to the ledger; skipping.", draw_id)
                summary.skipped.append(draw_id)
                continue
            try:
                result = await self._attempt_submission(snapshot)
            except (RuntimeError, ValueError, OSError) as exc:
                self._logger.warning("Result feed failed for draw %s: %s", draw_id, exc)
                summary.failed[draw_id] = str(exc)
                continue
            if result is None:
                summary.skipped.append(draw_id)
            else:
                summary.published.append(result)
        return summary

    async def _attempt_submission(self, snapshot: DrawSnapshot) -> Optional[SchedulerResult]:
        draw = await self._datasource.fetch_latest(snapshot.draw_id)

        if self._last_issues.get(snapshot.draw_id) == draw.issue_id:
            self._logger.debug("Issue %s already published for %s; skipping.", draw.issue_id, snapshot.draw_id)
            return None

        if snapshot.result_version > 0 and snapshot.result_day == draw.result_day:
            self._logger.info(
                "Draw %s already has a result for %s (v%s); skipping.",
                snapshot.draw_id,
                snapshot.result_day,
                snapshot.result_version,
            )
            self._remember(snapshot.draw_id, draw.issue_id)
            return None

        self._logger.info(
            "Publishing result for %s issue %s -> %s lucky=%s",
            snapshot.draw_id,
            draw.issue_id,
            list(draw.numbers),
            draw.lucky_number,
        )
        response = await self._client.publish_result(draw)
        published = response.get("draw") or {}
        self._remember(snapshot.draw_id, draw.issue_id)

        return SchedulerResult(
            draw_id=snapshot.draw_id,
            issue_id=draw.issue_id,
            result_version=int(published.get("result_version") or 0),
            settlement=response.get("settlement"),
        )

    def _remember(self, draw_id: str, issue_id: str) -> None:
        self._last_issues[draw_id] = issue_id
        self._state.save_last_issues(self._last_issues)
