"""
Storage module for linkhop (in-memory implementation).

Responsibilities:
    - Hold link records, verified domains and analytic events
    - Resolve slugs inside a domain scope (NULL domain = shared pool)
    - Atomic click increments and last-write-wins cursor updates
    - Grouped reads for the analytics aggregator

Design:
    - This is an in-memory reference implementation that satisfies the BaseStorage contract.
    - A single lock guards every mutation, so `increment_click` is atomic under
      concurrent background writers just like `UPDATE ... SET click_count = click_count + 1`.
    - Reads hand out copies; callers never observe a record changing under them.
    - For production, use DBStorage (PostgreSQL).
"""

import threading
from collections import Counter
from dataclasses import replace
from datetime import date, datetime
from typing import Dict, List, Optional, Tuple

from ..models import AnalyticEvent, Domain, Link, utcnow
from .base import BaseStorage, validate_column


class Storage(BaseStorage):
    def __init__(self):
        """
        Initialize empty storage.

        Internal schema:
            self.links   = { link_id: Link }
            self.slugs   = { (domain_id | None, slug): link_id }
            self.domains = { host: Domain }
            self.events  = { link_id: [AnalyticEvent, ...] }  (append order)
        """
        self.links: Dict[str, Link] = {}
        self.slugs: Dict[Tuple[Optional[str], str], str] = {}
        self.domains: Dict[str, Domain] = {}
        self.events: Dict[str, List[AnalyticEvent]] = {}
        self._lock = threading.Lock()

    @staticmethod
    def _copy(link: Link) -> Link:
        return replace(link, targets=list(link.targets))

    # ---- links & domains ----------------------------------------------

    def save_link(self, link: Link) -> bool:
        if not link.slug:
            return False
        key = (link.domain_id, link.slug)
        with self._lock:
            if key in self.slugs or link.id in self.links:
                return False
            self.links[link.id] = self._copy(link)
            self.slugs[key] = link.id
        return True

    def save_domain(self, domain: Domain) -> bool:
        host = domain.host.lower()
        with self._lock:
            if host in self.domains:
                return False
            self.domains[host] = replace(domain, host=host)
        return True

    def get_link(self, link_id: str) -> Optional[Link]:
        with self._lock:
            link = self.links.get(link_id)
            return self._copy(link) if link else None

    def get_link_by_slug(self, slug: str, domain_id: Optional[str]) -> Optional[Link]:
        with self._lock:
            link_id = self.slugs.get((domain_id, slug))
            link = self.links.get(link_id) if link_id else None
            return self._copy(link) if link else None

    def find_verified_domain(self, host: str) -> Optional[Domain]:
        domain = self.domains.get((host or "").lower())
        if domain and domain.verified:
            return domain
        return None

    def increment_click(self, link_id: str) -> bool:
        with self._lock:
            link = self.links.get(link_id)
            if link is None:
                return False
            link.click_count += 1
            link.updated_at = utcnow()
        return True

    def set_last_used_target_index(self, link_id: str, index: int) -> bool:
        with self._lock:
            link = self.links.get(link_id)
            if link is None:
                return False
            link.last_used_target_index = index
        return True

    def delete_link(self, link_id: str) -> bool:
        with self._lock:
            link = self.links.pop(link_id, None)
            if link is None:
                return False
            self.slugs.pop((link.domain_id, link.slug), None)
            self.events.pop(link_id, None)
        return True

    # ---- analytic events -----------------------------------------------

    def add_event(self, event: AnalyticEvent) -> None:
        with self._lock:
            if event.link_id not in self.links:
                # Mirrors the foreign key on analytic_events.link_id
                raise KeyError(f"Unknown link: {event.link_id}")
            self.events.setdefault(event.link_id, []).append(event)

    def _window(self, link_id: str, since: Optional[datetime]) -> List[AnalyticEvent]:
        with self._lock:
            events = list(self.events.get(link_id, []))
        if since is None:
            return events
        return [e for e in events if e.timestamp >= since]

    def clicks_by_day(self, link_id: str, since: Optional[datetime]) -> List[Tuple[date, int]]:
        per_day = Counter(e.timestamp.date() for e in self._window(link_id, since))
        return sorted(per_day.items())

    def recent_events(self, link_id: str, limit: int, since: Optional[datetime]) -> List[AnalyticEvent]:
        events = sorted(self._window(link_id, since), key=lambda e: e.timestamp, reverse=True)
        return events[: max(0, limit)]

    def top_values(
        self, link_id: str, column: str, limit: int, since: Optional[datetime]
    ) -> List[Tuple[str, int]]:
        attr = validate_column(column)
        counts = Counter(
            value
            for value in (getattr(e, attr) for e in self._window(link_id, since))
            if value
        )
        ranked = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
        return ranked[: max(0, limit)]

    def count_owner_events(self, owner_id: str, since: Optional[datetime]) -> int:
        with self._lock:
            owned = [lid for lid, link in self.links.items() if link.owner_id == owner_id]
        return sum(len(self._window(lid, since)) for lid in owned)

    def count_owner_links(self, owner_id: str) -> int:
        with self._lock:
            return sum(1 for link in self.links.values() if link.owner_id == owner_id)
