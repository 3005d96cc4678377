"""
Pluggable IP geolocation.

One provider per backend, selected by LINKHOP_GEO_PROVIDER:
    - geolite : local MaxMind GeoLite2 City database (geoip2.database)
    - maxmind : MaxMind GeoIP2 web service (geoip2.webservice)
    - ipinfo  : ipinfo.io over HTTPS (requests)
    - ipapi   : ipapi.com over HTTPS (requests)
    - none    : lookups disabled

Every provider returns a `GeoResult`. A failure is reported in
`GeoResult.error`; there is no retry against another provider and callers
treat an error as "no geo data".
"""

import gettext
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Callable, Dict, Optional

import geoip2.database
import geoip2.webservice
import pycountry
import requests

from ..errors import GeoLookupError

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class GeoResult:
    provider: str
    country: Optional[str] = None
    city: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def preferred_language(accept_language: Optional[str]) -> str:
    """'nl-NL,nl;q=0.9,en;q=0.8' -> 'nl'. Defaults to 'en'."""
    if not accept_language:
        return "en"
    first = accept_language.split(",")[0].split(";")[0].strip()
    return first[:2].lower() or "en"


@lru_cache(maxsize=32)
def _country_translator(lang: str) -> Callable[[str], str]:
    if lang == "en":
        return lambda name: name
    try:
        return gettext.translation("iso3166-1", pycountry.LOCALES_DIR, languages=[lang]).gettext
    except OSError:
        return lambda name: name


def country_name(code: Optional[str], accept_language: Optional[str] = None) -> Optional[str]:
    """Render an ISO alpha-2 code as a country name in the visitor's language."""
    if not code:
        return None
    try:
        country = pycountry.countries.get(alpha_2=code.upper())
    except KeyError:
        country = None
    if country is None:
        return code
    return _country_translator(preferred_language(accept_language))(country.name)


class GeoProvider(ABC):
    """Uniform geo lookup contract."""

    name = "base"

    def lookup(self, ip: str, accept_language: Optional[str] = None) -> GeoResult:
        if not ip:
            return GeoResult(provider=self.name, error="No IP provided")
        try:
            return self._lookup(ip, accept_language)
        except Exception as exc:
            log.warning("%s lookup failed for %s: %s", self.name, ip, exc)
            return GeoResult(provider=self.name, error=f"{self.name} lookup failed: {exc}")

    @abstractmethod
    def _lookup(self, ip: str, accept_language: Optional[str]) -> GeoResult:  # pragma: no cover
        raise NotImplementedError


class NullGeoProvider(GeoProvider):
    name = "none"

    def _lookup(self, ip: str, accept_language: Optional[str]) -> GeoResult:
        return GeoResult(provider=self.name, error="Geo lookup disabled")


def _localized(names: Dict[str, str], accept_language: Optional[str]) -> Optional[str]:
    if not names:
        return None
    return names.get(preferred_language(accept_language)) or names.get("en")


class GeoLiteProvider(GeoProvider):
    """Offline lookups against a GeoLite2/GeoIP2 City .mmdb file."""

    name = "geolite"

    def __init__(self, db_path: str):
        self.db_path = db_path
        self._reader: Optional[geoip2.database.Reader] = None

    def _get_reader(self) -> geoip2.database.Reader:
        if self._reader is None:
            self._reader = geoip2.database.Reader(self.db_path)
        return self._reader

    def _lookup(self, ip: str, accept_language: Optional[str]) -> GeoResult:
        response = self._get_reader().city(ip)
        return GeoResult(
            provider=self.name,
            country=_localized(response.country.names, accept_language),
            city=_localized(response.city.names, accept_language),
            latitude=response.location.latitude,
            longitude=response.location.longitude,
        )


class MaxMindProvider(GeoProvider):
    name = "maxmind"

    def __init__(self, account_id: int, license_key: str, timeout: float = 3.0):
        self.account_id = account_id
        self.license_key = license_key
        self.timeout = timeout
        self._client: Optional[geoip2.webservice.Client] = None

    def _lookup(self, ip: str, accept_language: Optional[str]) -> GeoResult:
        if not self.account_id or not self.license_key:
            raise GeoLookupError("Missing MaxMind credentials")
        if self._client is None:
            self._client = geoip2.webservice.Client(self.account_id, self.license_key, timeout=self.timeout)
        response = self._client.city(ip)
        return GeoResult(
            provider=self.name,
            country=_localized(response.country.names, accept_language),
            city=_localized(response.city.names, accept_language),
            latitude=response.location.latitude,
            longitude=response.location.longitude,
        )


class _HttpGeoProvider(GeoProvider):
    def __init__(self, api_key: str, session: Optional[requests.Session] = None, timeout: float = 3.0):
        self.api_key = api_key
        self.session = session or requests.Session()
        self.timeout = timeout

    def _get_json(self, url: str, params: Dict[str, str]) -> Dict[str, Any]:
        resp = self.session.get(url, params=params, timeout=self.timeout)
        resp.raise_for_status()
        return resp.json()


class IpInfoProvider(_HttpGeoProvider):
    name = "ipinfo"

    def _lookup(self, ip: str, accept_language: Optional[str]) -> GeoResult:
        if not self.api_key:
            raise GeoLookupError("Missing IPINFO_API_KEY")
        data = self._get_json(f"https://ipinfo.io/{ip}", {"token": self.api_key})
        if not data.get("loc"):
            raise GeoLookupError("Missing 'loc' in ipinfo response")
        lat, lon = data["loc"].split(",")
        return GeoResult(
            provider=self.name,
            country=country_name(data.get("country"), accept_language),
            city=data.get("city"),
            latitude=float(lat),
            longitude=float(lon),
        )


class IpApiProvider(_HttpGeoProvider):
    name = "ipapi"

    def _lookup(self, ip: str, accept_language: Optional[str]) -> GeoResult:
        data = self._get_json(f"https://api.ipapi.com/{ip}", {"access_key": self.api_key})
        if data.get("success") is False or data.get("error"):
            info = (data.get("error") or {}).get("info", "unknown error")
            raise GeoLookupError(info)
        return GeoResult(
            provider=self.name,
            country=data.get("country_name"),
            city=data.get("city"),
            latitude=data.get("latitude"),
            longitude=data.get("longitude"),
        )


def get_geo_provider(name: Optional[str], settings: Any) -> GeoProvider:
    """Build the configured provider. Unknown names raise ValueError."""
    key = (name or "geolite").strip().lower()
    if key in {"geolite", "geoip-lite", "geolite2"}:
        return GeoLiteProvider(settings.GEOLITE_DB_PATH)
    if key == "maxmind":
        return MaxMindProvider(settings.MAXMIND_ACCOUNT_ID, settings.MAXMIND_LICENSE_KEY, timeout=settings.GEO_TIMEOUT)
    if key == "ipinfo":
        return IpInfoProvider(settings.IPINFO_API_KEY, timeout=settings.GEO_TIMEOUT)
    if key == "ipapi":
        return IpApiProvider(settings.IPAPI_API_KEY, timeout=settings.GEO_TIMEOUT)
    if key in {"none", "off", "disabled"}:
        return NullGeoProvider()
    raise ValueError(f"Unknown geo provider: {key!r}")
