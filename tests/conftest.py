"""
Global pytest fixtures for the linkhop test suite.

Responsibilities:
    - Provide settings, in-memory storage and a deterministic geo provider
    - Provide a fully wired resolver (recorder + background worker) for unit tests
    - Provide a fresh FastAPI TestClient via the app factory for integration tests

Why an app factory?
    Using `create_app()` ensures each test gets fresh in-memory state and its
    own background worker, eliminating cross-test flakiness.
"""

from typing import Dict, Optional, Tuple

import pytest
from fastapi.testclient import TestClient

import auth.config
from main import create_app
from linkhop.analytics.classifier import Classifier
from linkhop.analytics.geo import GeoProvider, GeoResult
from linkhop.analytics.recorder import ClickRecorder
from linkhop.background import BackgroundWorker
from linkhop.config import Settings
from linkhop.manager.cloaking import CloakingProxy
from linkhop.manager.link_resolver import LinkResolver
from linkhop.models import Domain, Link, LinkTarget, new_id
from linkhop.storage.storage import Storage

FALLBACK_IP = "8.8.8.8"
OWNER = "alice"
OWNER_PASSWORD = "alice-pw"


class FakeGeoProvider(GeoProvider):
    """Table-driven provider; unknown IPs come back as an error result."""

    name = "fake"

    def __init__(self, table: Optional[Dict[str, Tuple[str, str]]] = None):
        self.table = table if table is not None else {
            FALLBACK_IP: ("United States", "Mountain View"),
            "81.2.69.142": ("United Kingdom", "London"),
        }
        self.calls = []

    def _lookup(self, ip, accept_language):
        self.calls.append(ip)
        if ip not in self.table:
            return GeoResult(provider=self.name, error="not in table")
        country, city = self.table[ip]
        return GeoResult(provider=self.name, country=country, city=city)


def make_link(storage: Storage, slug: str = "promo", targets=None, **kwargs) -> Link:
    """Insert a link into `storage` and return it."""
    link = Link(
        id=kwargs.pop("id", new_id()),
        slug=slug,
        original_url=kwargs.pop("original_url", "https://example.com/original"),
        owner_id=kwargs.pop("owner_id", OWNER),
        targets=[t if isinstance(t, LinkTarget) else LinkTarget(**t) for t in (targets or [])],
        **kwargs,
    )
    assert storage.save_link(link)
    return link


def make_domain(storage: Storage, host: str = "go.brand.test", verified: bool = True) -> Domain:
    domain = Domain(id=new_id(), host=host, owner_id=OWNER, verified=verified)
    assert storage.save_domain(domain)
    return domain


@pytest.fixture
def settings() -> Settings:
    s = Settings()
    s.SHORTENER_DOMAIN = "lnk.test"
    s.LANDING_URL = "/"
    s.GEO_PROVIDER = "none"
    s.FALLBACK_PUBLIC_IP = FALLBACK_IP
    s.ROTATION_STRATEGY = "round-robin"
    s.ENFORCE_ROTATION_WINDOW = False
    s.WORKER_THREADS = 2
    s.WORKER_QUEUE_SIZE = 1000
    return s


@pytest.fixture
def storage() -> Storage:
    return Storage()


@pytest.fixture
def geo() -> FakeGeoProvider:
    return FakeGeoProvider()


@pytest.fixture
def worker():
    w = BackgroundWorker(threads=2, queue_size=1000)
    yield w
    w.shutdown()


@pytest.fixture
def recorder(storage, geo, worker) -> ClickRecorder:
    return ClickRecorder(storage, Classifier(geo, fallback_ip=FALLBACK_IP), worker)


@pytest.fixture
def resolver(storage, settings, recorder) -> LinkResolver:
    return LinkResolver(storage, settings, recorder, cloaker=CloakingProxy(timeout=2.0))


@pytest.fixture
def app(settings, storage, geo):
    return create_app(settings=settings, storage=storage, geo_provider=geo)


@pytest.fixture
def client(app) -> TestClient:
    """Fresh TestClient over a fresh app instance."""
    return TestClient(app)


@pytest.fixture
def owner_auth(monkeypatch):
    monkeypatch.setitem(auth.config.USERS, OWNER, OWNER_PASSWORD)
    monkeypatch.setitem(auth.config.USERS, "mallory", "mallory-pw")
    return (OWNER, OWNER_PASSWORD)
