"""
Visitor classification: geography, device class, browser and OS.

Responsibilities:
    - Replace local/private client IPs with a configured public IP so dev and
      internal traffic still geolocates to something plausible
    - Classify the device with an ordered regex cascade (bot, tablet, mobile, desktop)
    - Parse browser and OS families with the `user-agents` parser

Holds no state besides the injected geo provider; safe to share across threads.
"""

import ipaddress
import logging
import re
from dataclasses import dataclass
from typing import Optional, Tuple

from user_agents import parse as parse_user_agent

from ..models import DeviceType
from .geo import GeoProvider

log = logging.getLogger(__name__)

UNKNOWN = "Unknown"

# Order matters: the first matching rule wins.
_DEVICE_RULES: Tuple[Tuple[DeviceType, "re.Pattern[str]"], ...] = (
    (DeviceType.BOT, re.compile(
        r"bot|crawl|spider|slurp|bingpreview|facebookexternalhit|mediapartners|"
        r"headless|lighthouse|curl/|wget/|python-requests|httpclient|okhttp",
        re.IGNORECASE,
    )),
    (DeviceType.TABLET, re.compile(
        r"ipad|tablet|kindle|silk/|playbook|sm-t\d|android(?!.*mobile)",
        re.IGNORECASE,
    )),
    (DeviceType.MOBILE, re.compile(
        r"mobi|iphone|ipod|android.*mobile|windows phone|blackberry|opera mini|iemobile",
        re.IGNORECASE,
    )),
    (DeviceType.DESKTOP, re.compile(
        r"windows nt|macintosh|mac os x|x11|linux|cros",
        re.IGNORECASE,
    )),
)


_IPV4_WITH_PORT = re.compile(r"^(\d{1,3}(?:\.\d{1,3}){3}):\d+$")
_BRACKETED_WITH_PORT = re.compile(r"^\[([^\]]+)\](?::\d+)?$")


def strip_port(ip: str) -> str:
    """Drop a `:port` suffix some proxies append ("1.2.3.4:5678", "[::1]:80")."""
    ip = ip.strip()
    match = _IPV4_WITH_PORT.match(ip) or _BRACKETED_WITH_PORT.match(ip)
    return match.group(1) if match else ip


def is_local_ip(ip: Optional[str]) -> bool:
    """
    True for loopback, private, link-local and unspecified addresses,
    including their IPv4-mapped IPv6 forms (::ffff:10.0.0.1).
    Unparseable input counts as local.
    """
    if not ip:
        return True
    try:
        addr = ipaddress.ip_address(strip_port(ip))
    except ValueError:
        return True
    mapped = getattr(addr, "ipv4_mapped", None)
    if mapped is not None:
        addr = mapped
    return addr.is_loopback or addr.is_private or addr.is_link_local or addr.is_unspecified


def normalize_ip(ip: Optional[str], fallback: str) -> str:
    """Return the bare public address (port dropped), else `fallback`."""
    if is_local_ip(ip):
        return fallback
    return strip_port(ip)


def classify_device(user_agent: Optional[str]) -> DeviceType:
    if not user_agent or not user_agent.strip():
        return DeviceType.OTHER
    for device, pattern in _DEVICE_RULES:
        if pattern.search(user_agent):
            return device
    return DeviceType.OTHER


def parse_browser_os(user_agent: Optional[str]) -> Tuple[str, str]:
    """(browser family, OS family); "Unknown" for anything the parser cannot name."""
    if not user_agent:
        return UNKNOWN, UNKNOWN
    try:
        ua = parse_user_agent(user_agent)
        browser = ua.browser.family
        os_family = ua.os.family
    except Exception:
        log.debug("User-agent parse failed: %r", user_agent, exc_info=True)
        return UNKNOWN, UNKNOWN
    return (
        browser if browser and browser != "Other" else UNKNOWN,
        os_family if os_family and os_family != "Other" else UNKNOWN,
    )


@dataclass(frozen=True)
class Classification:
    ip_address: Optional[str]
    country: Optional[str]
    city: Optional[str]
    browser: str
    os: str
    device_type: DeviceType


class Classifier:
    def __init__(self, geo_provider: GeoProvider, fallback_ip: str):
        self.geo_provider = geo_provider
        self.fallback_ip = fallback_ip

    def classify(
        self,
        ip: Optional[str],
        user_agent: Optional[str],
        accept_language: Optional[str] = None,
    ) -> Classification:
        """
        Classify one visitor. Never raises for bad input; a failed geo lookup
        leaves country and city as None.

        `ip_address` on the result is the address as received, not the
        substituted fallback.
        """
        lookup_ip = normalize_ip(ip, self.fallback_ip)
        geo = self.geo_provider.lookup(lookup_ip, accept_language)
        if not geo.ok:
            log.info("No geo data for %s: %s", lookup_ip, geo.error)
        browser, os_family = parse_browser_os(user_agent)
        return Classification(
            ip_address=ip,
            country=geo.country if geo.ok else None,
            city=geo.city if geo.ok else None,
            browser=browser,
            os=os_family,
            device_type=classify_device(user_agent),
        )
