"""
Abstract Base Class for analytics read models.

Responsibilities:
    - Define the owner-facing aggregation contract
    - Support easy substitution (e.g., store-backed, warehouse-backed)
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, Optional

from ..models import AggregatedAnalytics

__all__ = ["BaseAnalytics"]


class BaseAnalytics(ABC):
    """Abstract base for pluggable analytics aggregators."""

    @abstractmethod
    def aggregate(
        self,
        link_id: str,
        caller_id: str,
        days: int = 30,
        top_n: int = 5,
        now: Optional[datetime] = None,
    ) -> AggregatedAnalytics:  # pragma: no cover
        """
        Time series, recent events and top-N breakdowns for one link.

        Raises:
            LinkNotFoundError: unknown link.
            NotAuthorizedError: `caller_id` does not own the link.
        """
        raise NotImplementedError

    @abstractmethod
    def overall_summary(
        self, owner_id: str, days: int = 7, now: Optional[datetime] = None
    ) -> Dict[str, Any]:  # pragma: no cover
        """Click and link totals across everything `owner_id` owns."""
        raise NotImplementedError
