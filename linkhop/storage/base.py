"""
Base storage interface for linkhop.

Purpose:
    Define a small, stable contract that multiple storage backends
    (in-memory, PostgreSQL) can implement without requiring changes to the
    resolver, recorder or aggregator.

    The store is the single source of truth for link records, their target
    lists and rotation cursor, and the analytic events recorded against them.

Testing & Coverage:
    These are abstract methods and are not executed directly in tests.
    We annotate them with `# pragma: no cover` so coverage tools don't
    penalize the project for un-runnable abstract declarations.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime
from typing import Dict, List, Optional, Tuple

from ..errors import InvalidColumnError
from ..models import AnalyticEvent, Domain, Link

# Grouping dimensions exposed by the analytics API -> event column name.
TOP_N_COLUMNS: Dict[str, str] = {
    "browser": "browser",
    "os": "os",
    "deviceType": "device_type",
    "referrer": "referrer",
    "country": "country",
}


def validate_column(column: str) -> str:
    """
    Map an API grouping name to its storage column.

    Raises:
        InvalidColumnError: if `column` is not in the allow-list.
    """
    try:
        return TOP_N_COLUMNS[column]
    except (KeyError, TypeError):
        raise InvalidColumnError(column) from None


class BaseStorage(ABC):
    """Abstract base class for storage backends."""

    # ---- links & domains ----------------------------------------------

    @abstractmethod  # pragma: no cover
    def save_link(self, link: Link) -> bool:
        """
        Insert a link record.

        Returns:
            bool: True on success, False if the slug is taken in the link's domain scope.
        """
        raise NotImplementedError

    @abstractmethod  # pragma: no cover
    def save_domain(self, domain: Domain) -> bool:
        """Insert a custom/sub domain record. False if the host is taken."""
        raise NotImplementedError

    @abstractmethod  # pragma: no cover
    def get_link(self, link_id: str) -> Optional[Link]:
        raise NotImplementedError

    @abstractmethod  # pragma: no cover
    def get_link_by_slug(self, slug: str, domain_id: Optional[str]) -> Optional[Link]:
        """
        Look up a link inside one domain scope.

        `domain_id=None` searches the shared pool (links whose domain is NULL);
        it never matches links bound to a concrete domain.
        """
        raise NotImplementedError

    @abstractmethod  # pragma: no cover
    def find_verified_domain(self, host: str) -> Optional[Domain]:
        """Return the verified domain whose host matches exactly, else None."""
        raise NotImplementedError

    @abstractmethod  # pragma: no cover
    def increment_click(self, link_id: str) -> bool:
        """
        Atomically add one to the link's click counter.

        Returns:
            bool: False if the link does not exist.
        """
        raise NotImplementedError

    @abstractmethod  # pragma: no cover
    def set_last_used_target_index(self, link_id: str, index: int) -> bool:
        """Overwrite the rotation cursor (last write wins)."""
        raise NotImplementedError

    @abstractmethod  # pragma: no cover
    def delete_link(self, link_id: str) -> bool:
        """Delete a link and, by cascade, its analytic events."""
        raise NotImplementedError

    # ---- analytic events -----------------------------------------------

    @abstractmethod  # pragma: no cover
    def add_event(self, event: AnalyticEvent) -> None:
        raise NotImplementedError

    @abstractmethod  # pragma: no cover
    def clicks_by_day(self, link_id: str, since: Optional[datetime]) -> List[Tuple[date, int]]:
        """Event counts per UTC calendar day, ascending. `since=None` means all time."""
        raise NotImplementedError

    @abstractmethod  # pragma: no cover
    def recent_events(self, link_id: str, limit: int, since: Optional[datetime]) -> List[AnalyticEvent]:
        """Newest events first."""
        raise NotImplementedError

    @abstractmethod  # pragma: no cover
    def top_values(
        self, link_id: str, column: str, limit: int, since: Optional[datetime]
    ) -> List[Tuple[str, int]]:
        """
        Grouped counts for one allow-listed column, largest first.

        NULL and empty values are excluded. `column` is the API name
        (see TOP_N_COLUMNS); anything else raises InvalidColumnError before
        touching the backend.
        """
        raise NotImplementedError

    @abstractmethod  # pragma: no cover
    def count_owner_events(self, owner_id: str, since: Optional[datetime]) -> int:
        raise NotImplementedError

    @abstractmethod  # pragma: no cover
    def count_owner_links(self, owner_id: str) -> int:
        raise NotImplementedError
