"""
LinkResolver module for linkhop.

Responsibilities:
    - Map (slug, host) to a link inside the right domain scope
    - Compute the display short URL for the resolved link
    - Pick the destination through the rotation strategy
    - Hand click/cursor/event writes to the recorder without waiting on them
    - Decide between a plain redirect and a cloaked (proxied) response

Scope rule:
    The configured shortener domain and any localhost[:port] / 127.0.0.1[:port]
    host address the shared pool (links with no domain). Any other host must
    match a verified custom/sub domain exactly, and only links bound to that
    domain are visible through it.

Concurrency:
    Hits are handled independently. The rotation cursor is read on the hot path
    and written back later by a background task, so two concurrent hits on the
    same link can read the same cursor, pick the same target and both persist
    the same next index: one rotation step is lost under contention. Rotation
    is therefore approximately fair, not exactly-once. Click counts stay exact
    because the store increments them atomically.
"""

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from ..analytics.recorder import ClickRecorder
from ..models import ResolvedLink, RotationDecision, Visitor, utcnow
from ..storage.base import BaseStorage
from .cloaking import CloakedResponse, CloakingProxy
from .rotation import BaseRotation, RoundRobinRotation, is_rotation_active

log = logging.getLogger(__name__)

_LOCAL_HOST = re.compile(r"^(localhost|127\.0\.0\.1)(:\d+)?$", re.IGNORECASE)

REDIRECT = "redirect"
CLOAK = "cloak"
NOT_FOUND = "not_found"


def is_localhost(host: str) -> bool:
    return bool(_LOCAL_HOST.match((host or "").strip()))


@dataclass(frozen=True)
class HitOutcome:
    kind: str
    target_url: Optional[str] = None
    resolved: Optional[ResolvedLink] = None
    decision: Optional[RotationDecision] = None
    cloaked: Optional[CloakedResponse] = None


class LinkResolver:
    """
    Orchestrates store lookup, rotation, background recording and cloaking.
    """

    def __init__(
        self,
        storage: BaseStorage,
        settings: Any,
        recorder: ClickRecorder,
        cloaker: Optional[CloakingProxy] = None,
        rotation: Optional[BaseRotation] = None,
    ):
        self.storage = storage
        self.settings = settings
        self.recorder = recorder
        self.cloaker = cloaker or CloakingProxy(timeout=settings.CLOAK_TIMEOUT)
        self.rotation = rotation or RoundRobinRotation()
        self.default_host = (settings.SHORTENER_DOMAIN or "").strip().lower()
        self.enforce_window = bool(getattr(settings, "ENFORCE_ROTATION_WINDOW", False))

    def is_default_host(self, host: str) -> bool:
        host = (host or "").strip().lower()
        return host == self.default_host or is_localhost(host)

    @staticmethod
    def short_url(effective_domain: str, slug: str) -> str:
        protocol = "http://" if is_localhost(effective_domain) else "https://"
        return f"{protocol}{effective_domain}/{slug}"

    def resolve(self, slug: str, host: str) -> Optional[ResolvedLink]:
        """
        Find the link for `slug` as requested on `host`.

        Returns:
            Optional[ResolvedLink]: None when nothing matches (an expected outcome).
        """
        if not slug or not host:
            return None
        host = host.strip().lower()

        if self.is_default_host(host):
            link = self.storage.get_link_by_slug(slug, None)
            effective_domain = self.default_host
        else:
            domain = self.storage.find_verified_domain(host)
            if domain is None:
                log.debug("No verified domain for host %r", host)
                return None
            link = self.storage.get_link_by_slug(slug, domain.id)
            effective_domain = domain.host

        if link is None:
            return None
        return ResolvedLink(
            link=link,
            short_url=self.short_url(effective_domain, link.slug),
            effective_domain=effective_domain,
        )

    def choose_target(self, resolved: ResolvedLink, now: Optional[datetime] = None) -> RotationDecision:
        link = resolved.link
        if self.enforce_window and not is_rotation_active(link, now or utcnow()):
            return RotationDecision(target_url=link.original_url, next_index_to_persist=None)
        return self.rotation.choose(link)

    def handle_hit(self, slug: str, host: str, visitor: Visitor, now: Optional[datetime] = None) -> HitOutcome:
        """
        Serve one hit: resolve, rotate, queue the writes, then redirect or proxy.

        Only the lookup and the rotation choice happen before returning (plus
        the outbound fetch for cloaked links); counter, cursor and event writes
        are queued on the recorder's worker.
        """
        resolved = self.resolve(slug, host)
        if resolved is None:
            return HitOutcome(kind=NOT_FOUND)

        decision = self.choose_target(resolved, now)
        if not decision.target_url:
            log.warning("Link %s has no usable destination", resolved.link.id)
            return HitOutcome(kind=NOT_FOUND, resolved=resolved)

        self.recorder.submit_hit(resolved.link.id, decision, visitor)

        if resolved.link.is_cloaked:
            result = self.cloaker.serve_cloaked(decision.target_url)
            if isinstance(result, CloakedResponse):
                return HitOutcome(CLOAK, decision.target_url, resolved, decision, cloaked=result)

        return HitOutcome(REDIRECT, decision.target_url, resolved, decision)
