from __future__ import annotations

import asyncio
from typing import Any, Dict, Mapping, Optional

import requests

from .config import FeedSettings
from .datasource import DrawData
from .types import DrawSnapshot


class LedgerClient:
    """Wrapper around the ledger's admin API."""

    def __init__(self, settings: FeedSettings, session: Optional[requests.Session] = None) -> None:
        self._settings = settings
        self._session = session or requests.Session()
        if settings.admin_api_key:
            self._session.headers["X-Admin-Token"] = settings.admin_api_key

    def _url(self, path: str) -> str:
        return f"{self._settings.ledger_url}/admin/api{path}"

    async def get_draws(self) -> Dict[str, DrawSnapshot]:
        return await asyncio.to_thread(self._sync_get_draws)

    def _sync_get_draws(self) -> Dict[str, DrawSnapshot]:
        resp = self._session.get(self._url("/draws"), timeout=self._settings.request_timeout_seconds)
        resp.raise_for_status()
        payload = resp.json()
        if not isinstance(payload, list):
            raise ValueError("ledger returned non-list draw payload")
        snapshots = [DrawSnapshot.from_payload(item) for item in payload]
        return {snapshot.draw_id: snapshot for snapshot in snapshots}

    async def publish_result(self, draw: DrawData) -> Mapping[str, Any]:
        return await asyncio.to_thread(self._sync_publish_result, draw)

    def _sync_publish_result(self, draw: DrawData) -> Mapping[str, Any]:
        resp = self._session.post(
            self._url(f"/draws/{draw.draw_id}/results"),
            json=draw.to_publish_payload(),
            timeout=self._settings.request_timeout_seconds,
        )
        if resp.status_code >= 400:
            try:
                detail = resp.json()
            except ValueError:
                detail = resp.text
            raise RuntimeError(f"ledger rejected result for {draw.draw_id}: {resp.status_code} {detail}")
        return resp.json()

    def close(self) -> None:
        self._session.close()
