from __future__ import annotations

import abc
import datetime as dt
from dataclasses import dataclass
from typing import Optional, Sequence


@dataclass(frozen=True)
class DrawData:
    """Normalized result payload returned by data sources."""

    draw_id: str
    issue_id: str
    draw_date: dt.datetime
    numbers: Sequence[str]
    lucky_number: Optional[int] = None

    @property
    def result_day(self) -> dt.date:
        """Operator-local day of the draw; sources localize ``draw_date`` first."""
        return self.draw_date.date()

    def to_publish_payload(self) -> dict:
        return {
            "results": list(self.numbers),
            "lucky_number": self.lucky_number,
            "comment": f"issue {self.issue_id}",
            "source": "auto",
            "published_at": self.draw_date.isoformat(),
            "result_day": self.result_day.isoformat(),
            "settle": True,
        }


class ResultDataSource(abc.ABC):
    """Abstract result provider."""

    @abc.abstractmethod
    async def fetch_latest(self, draw_id: str) -> DrawData:
        """Return the newest published result for ``draw_id``.

        Implementations should raise `RuntimeError` or `ValueError` if
        remote data is unavailable or validation fails.
        """

    async def close(self) -> None:
        """Optional hook for connectors that require cleanup."""
        return None
