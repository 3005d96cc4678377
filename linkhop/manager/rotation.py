"""
Target rotation for links with several destinations.

Provided strategies:
- RoundRobinRotation (default): strict round-robin over target positions,
  driven by the persisted cursor `last_used_target_index`. The per-target
  `weight` is NOT consulted; every target is visited equally often.
- WeightedRotation: cumulative-weight draw. Opt-in via
  LINKHOP_ROTATION_STRATEGY=weighted; it changes observable behavior and
  ignores the cursor when choosing (it still persists the chosen index).

Both are pure: they read a Link and return a RotationDecision. Persisting
`next_index_to_persist` is the caller's job; `None` means "leave the cursor
alone" (empty list or bad entry, served from `original_url`).

`is_rotation_active` evaluates the rotation window and click limit. It is
kept separate from selection; the resolver only consults it when
LINKHOP_ENFORCE_ROTATION_WINDOW is on.
"""

import logging
import random
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, Optional, Type
from urllib.parse import urlparse

from ..models import Link, LinkTarget, RotationDecision

log = logging.getLogger(__name__)


def is_valid_target(target: Optional[LinkTarget]) -> bool:
    """A usable target has an http(s) URL with a host."""
    if target is None or not isinstance(target.url, str) or not target.url.strip():
        return False
    parsed = urlparse(target.url.strip())
    return parsed.scheme in {"http", "https"} and bool(parsed.netloc)


def next_target(link: Link) -> RotationDecision:
    """
    Round-robin selection.

    - no targets              -> original_url, cursor untouched
    - cursor None             -> behaves as -1, so the first hit takes targets[0]
    - selected entry unusable -> original_url, cursor untouched
    - otherwise               -> targets[(cursor + 1) % n], persist that index

    A stale cursor (targets shrank since it was written) wraps through the
    modulo instead of failing.
    """
    targets = link.targets or []
    if not targets:
        return RotationDecision(target_url=link.original_url, next_index_to_persist=None)

    current = link.last_used_target_index if link.last_used_target_index is not None else -1
    index = (current + 1) % len(targets)
    selected = targets[index]

    if not is_valid_target(selected):
        log.warning("Link %s: target #%d is unusable, serving original URL", link.id, index)
        return RotationDecision(target_url=link.original_url, next_index_to_persist=None)

    return RotationDecision(target_url=selected.url.strip(), next_index_to_persist=index)


def is_rotation_active(link: Link, now: datetime) -> bool:
    """
    True when `now` is inside the rotation window and the click limit is not reached.

    Open bounds (None) are unbounded. `click_limit` counts clicks already
    recorded, so a limit of 10 allows clicks 1..10 to rotate.
    """
    if link.rotation_start is not None and now < link.rotation_start:
        return False
    if link.rotation_end is not None and now > link.rotation_end:
        return False
    if link.click_limit is not None and link.click_count >= link.click_limit:
        return False
    return True


class BaseRotation(ABC):
    """Abstract base for target selection strategies."""

    @abstractmethod
    def choose(self, link: Link) -> RotationDecision:  # pragma: no cover
        raise NotImplementedError


class RoundRobinRotation(BaseRotation):
    """Faithful cursor-driven rotation; weights are inert metadata here."""

    def choose(self, link: Link) -> RotationDecision:
        return next_target(link)


class WeightedRotation(BaseRotation):
    """
    Cumulative-weight draw over the targets.

    Missing weights count as 0. If every weight is 0 the draw is uniform.
    Bad entries are excluded from the draw; if none are usable the link is
    served from `original_url` without touching the cursor.
    """

    def __init__(self, rng: Optional[random.Random] = None):
        self.rng = rng or random.Random()

    def choose(self, link: Link) -> RotationDecision:
        usable = [(i, t) for i, t in enumerate(link.targets or []) if is_valid_target(t)]
        if not usable:
            return RotationDecision(target_url=link.original_url, next_index_to_persist=None)

        total = sum(max(0, t.weight or 0) for _, t in usable)
        if total == 0:
            index, target = usable[self.rng.randrange(len(usable))]
            return RotationDecision(target_url=target.url.strip(), next_index_to_persist=index)

        draw = self.rng.random() * total
        for index, target in usable:
            weight = max(0, target.weight or 0)
            if draw < weight:
                return RotationDecision(target_url=target.url.strip(), next_index_to_persist=index)
            draw -= weight
        # Float rounding can leave a sliver past the last bucket
        index, target = next((i, t) for i, t in reversed(usable) if (t.weight or 0) > 0)
        return RotationDecision(target_url=target.url.strip(), next_index_to_persist=index)


# Strategy registry and factory
ROTATION_REGISTRY: Dict[str, Type[BaseRotation]] = {
    "round-robin": RoundRobinRotation,
    "roundrobin": RoundRobinRotation,
    "rr": RoundRobinRotation,
    "weighted": WeightedRotation,
}


def get_rotation_from_config(name: Optional[str] = None) -> BaseRotation:
    """Resolve a rotation strategy by name; unknown names fall back to round-robin."""
    key = (name or "round-robin").strip().lower()
    cls = ROTATION_REGISTRY.get(key)
    if cls is None:
        log.warning("Unknown rotation strategy %r, using round-robin", key)
        cls = RoundRobinRotation
    log.info("Using rotation strategy: %s -> %s", key, cls.__name__)
    return cls()
