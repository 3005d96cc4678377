"""
Domain types shared by storage, rotation, recording and aggregation.

Internal attribute names are snake_case; `to_dict()` renders the camelCase
wire shape the dashboard consumes (`linkId`, `deviceType`, `chartData`, ...).
"""

import enum
import json
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


class DeviceType(str, enum.Enum):
    DESKTOP = "desktop"
    MOBILE = "mobile"
    TABLET = "tablet"
    BOT = "bot"
    OTHER = "other"


@dataclass(frozen=True)
class LinkTarget:
    url: str
    weight: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"url": self.url, "weight": self.weight}


def parse_targets(raw: Union[None, str, Sequence[Any]]) -> List[LinkTarget]:
    """
    Normalize a stored target list into `LinkTarget`s.

    Accepts a JSON string, a list of `{url, weight}` dicts, or `LinkTarget`s.
    Malformed entries are kept in position as `LinkTarget(url="")` so the
    rotation cursor keeps pointing at the same slots; the rotation engine
    treats them as bad entries.
    """
    if raw is None:
        return []
    if isinstance(raw, str):
        raw = json.loads(raw) if raw.strip() else []
    targets: List[LinkTarget] = []
    for item in raw or []:
        if isinstance(item, LinkTarget):
            targets.append(item)
        elif isinstance(item, dict):
            url = item.get("url")
            weight = item.get("weight")
            try:
                weight = int(weight) if weight is not None else None
            except (TypeError, ValueError):
                weight = None
            targets.append(LinkTarget(url=url if isinstance(url, str) else "", weight=weight))
        else:
            targets.append(LinkTarget(url=""))
    return targets


@dataclass
class Link:
    """
    A short link record.

    `slug` is unique within its domain scope; `domain_id=None` is the shared
    pool served from the default shortener host. `last_used_target_index` is
    the rotation cursor and may be stale if `targets` were edited after the
    last write.
    """
    id: str
    slug: str
    original_url: str
    owner_id: str
    targets: List[LinkTarget] = field(default_factory=list)
    domain_id: Optional[str] = None
    last_used_target_index: Optional[int] = None
    click_count: int = 0
    is_cloaked: bool = False
    rotation_start: Optional[datetime] = None
    rotation_end: Optional[datetime] = None
    click_limit: Optional[int] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class Domain:
    """Custom or sub domain owned by an account (provisioned elsewhere)."""
    id: str
    host: str
    owner_id: str
    verified: bool = True
    kind: str = "custom"


@dataclass(frozen=True)
class AnalyticEvent:
    id: str
    link_id: str
    timestamp: datetime
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    country: Optional[str] = None
    city: Optional[str] = None
    device_type: Optional[str] = None
    browser: Optional[str] = None
    os: Optional[str] = None
    referrer: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "linkId": self.link_id,
            "timestamp": self.timestamp.isoformat(),
            "ipAddress": self.ip_address,
            "userAgent": self.user_agent,
            "country": self.country,
            "city": self.city,
            "deviceType": self.device_type,
            "browser": self.browser,
            "os": self.os,
            "referrer": self.referrer,
        }


@dataclass(frozen=True)
class RotationDecision:
    """Outcome of target selection; `None` index means: skip the cursor write."""
    target_url: str
    next_index_to_persist: Optional[int] = None


@dataclass(frozen=True)
class ResolvedLink:
    link: Link
    short_url: str
    effective_domain: str


@dataclass(frozen=True)
class Visitor:
    """Request facts captured on the hot path and classified later."""
    ip: Optional[str] = None
    user_agent: Optional[str] = None
    accept_language: Optional[str] = None
    referrer: Optional[str] = None


@dataclass
class AggregatedAnalytics:
    chart_data: List[Tuple[date, int]]
    recent_events: List[AnalyticEvent]
    top_browsers: List[Tuple[str, int]]
    top_os: List[Tuple[str, int]]
    top_device_types: List[Tuple[str, int]]
    top_referrers: List[Tuple[str, int]]
    top_countries: List[Tuple[str, int]]
    period_days: int

    def to_dict(self) -> Dict[str, Any]:
        def _top(rows: List[Tuple[str, int]]) -> List[Dict[str, Any]]:
            return [{"name": name, "count": count} for name, count in rows]

        return {
            "chartData": [{"date": day.isoformat(), "clicks": clicks} for day, clicks in self.chart_data],
            "recentEvents": [event.to_dict() for event in self.recent_events],
            "topBrowsers": _top(self.top_browsers),
            "topOS": _top(self.top_os),
            "topDeviceTypes": _top(self.top_device_types),
            "topReferrers": _top(self.top_referrers),
            "topCountries": _top(self.top_countries),
            "periodDays": self.period_days,
        }
