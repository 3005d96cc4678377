"""
Analytics aggregation for linkhop.

Responsibilities:
    - Verify the caller owns the link before reading any event
    - Daily click series over a trailing window (or all time)
    - Most recent raw events
    - Top-N breakdowns by browser, OS, device type, referrer and country
    - Owner-wide totals for the dashboard summary

Everything here is derived from the analytic_events written by the click
recorder; nothing is stored.

Notes:
    - `days <= 0` means all time (no lower bound).
    - The window bounds the chart and the breakdowns. Recent events are the
      newest rows regardless of age.
    - The chart, recent-events and five breakdown reads run concurrently on a
      small thread pool once ownership has been checked.
    - Grouping columns are restricted to `TOP_N_COLUMNS`; anything else is
      rejected as InvalidColumnError before any read is issued.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from ..errors import LinkNotFoundError, NotAuthorizedError
from ..models import AggregatedAnalytics, utcnow
from ..storage.base import BaseStorage, validate_column
from .base import BaseAnalytics

log = logging.getLogger(__name__)

# AggregatedAnalytics field -> grouping column
BREAKDOWNS: Dict[str, str] = {
    "top_browsers": "browser",
    "top_os": "os",
    "top_device_types": "deviceType",
    "top_referrers": "referrer",
    "top_countries": "country",
}


def window_start(days: int, now: Optional[datetime] = None) -> Optional[datetime]:
    if days <= 0:
        return None
    return (now or utcnow()) - timedelta(days=days)


class AnalyticsAggregator(BaseAnalytics):
    def __init__(self, storage: BaseStorage, max_workers: int = 7):
        self.storage = storage
        self._pool = ThreadPoolExecutor(max_workers=max(1, max_workers), thread_name_prefix="linkhop-analytics")

    def close(self) -> None:
        self._pool.shutdown(wait=True)

    def _authorize(self, link_id: str, caller_id: str) -> None:
        link = self.storage.get_link(link_id)
        if link is None:
            raise LinkNotFoundError(f"Link not found: {link_id}")
        if link.owner_id != caller_id:
            raise NotAuthorizedError("Link not found or user not authorized to view its analytics.")

    def aggregate(
        self,
        link_id: str,
        caller_id: str,
        days: int = 30,
        top_n: int = 5,
        now: Optional[datetime] = None,
    ) -> AggregatedAnalytics:
        """
        Build the analytics read model for one link.

        Args:
            link_id (str): Link to report on.
            caller_id (str): Authenticated user; must own the link.
            days (int): Trailing window in days; <= 0 for all time.
            top_n (int): Size of the recent-events list and of each breakdown.
            now (datetime, optional): Reference time (tests).

        Raises:
            LinkNotFoundError, NotAuthorizedError, InvalidColumnError
        """
        self._authorize(link_id, caller_id)
        for column in BREAKDOWNS.values():
            validate_column(column)

        since = window_start(days, now)
        limit = max(0, top_n)

        chart = self._pool.submit(self.storage.clicks_by_day, link_id, since)
        recent = self._pool.submit(self.storage.recent_events, link_id, limit, None)
        tops = {
            field: self._pool.submit(self.storage.top_values, link_id, column, limit, since)
            for field, column in BREAKDOWNS.items()
        }

        return AggregatedAnalytics(
            chart_data=chart.result(),
            recent_events=recent.result(),
            period_days=days,
            **{field: future.result() for field, future in tops.items()},
        )

    def overall_summary(self, owner_id: str, days: int = 7, now: Optional[datetime] = None) -> Dict[str, Any]:
        since = window_start(days, now)
        clicks = self._pool.submit(self.storage.count_owner_events, owner_id, since)
        links = self._pool.submit(self.storage.count_owner_links, owner_id)
        return {
            "totalClicks": clicks.result(),
            "totalLinks": links.result(),
            "periodDays": days,
        }
