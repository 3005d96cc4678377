"""
Main API module for linkhop.

Responsibilities:
    - Serve short-link hits: resolve slug + host, rotate targets, redirect or cloak
    - Record clicks in the background without delaying the redirect
    - Expose owner-facing analytics (per-link breakdowns and account summary)

Architecture:
    - App Factory pattern (create_app) for test isolation and DI.
    - In-memory Storage by default; LINKHOP_STORAGE_BACKEND=postgres swaps in DBStorage.
    - LinkResolver orchestrates lookup, rotation, recording and cloaking;
      AnalyticsAggregator serves the read side.

Redirect path contract:
    The visitor never sees a raw 4xx/5xx. Missing input, unknown links and
    unexpected failures all send the visitor to the landing page with an
    `error` query parameter.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional
from urllib.parse import urlencode

from fastapi import Depends, FastAPI, HTTPException, Query, Request, Response
from fastapi.responses import JSONResponse, RedirectResponse
from pydantic import BaseModel

from auth.dependencies import get_current_user
from linkhop.analytics.analytics import AnalyticsAggregator
from linkhop.analytics.classifier import Classifier, classify_device, parse_browser_os
from linkhop.analytics.geo import GeoProvider, get_geo_provider
from linkhop.analytics.recorder import ClickRecorder
from linkhop.background import BackgroundWorker
from linkhop.config import Settings
from linkhop.errors import InvalidColumnError, LinkNotFoundError, NotAuthorizedError
from linkhop.manager.cloaking import CloakingProxy
from linkhop.manager.link_resolver import CLOAK, NOT_FOUND, LinkResolver
from linkhop.manager.rotation import get_rotation_from_config
from linkhop.models import AnalyticEvent, DeviceType, Visitor, new_id, utcnow
from linkhop.storage.base import BaseStorage
from linkhop.storage.storage_factory import get_storage


class EventRequest(BaseModel):
    """Payload for recording an analytic event directly."""
    linkId: Optional[str] = None
    ipAddress: Optional[str] = None
    userAgent: Optional[str] = None
    country: Optional[str] = None
    city: Optional[str] = None
    deviceType: Optional[DeviceType] = None
    browser: Optional[str] = None
    os: Optional[str] = None
    referrer: Optional[str] = None


def _client_ip(request: Request) -> Optional[str]:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    return request.client.host if request.client else None


def create_app(
    settings: Optional[Settings] = None,
    storage: Optional[BaseStorage] = None,
    geo_provider: Optional[GeoProvider] = None,
    cloaker: Optional[CloakingProxy] = None,
) -> FastAPI:
    """
    Factory function to build and configure a new FastAPI app instance.

    Every argument is optional; anything omitted is built from `settings`
    (itself read from the environment when omitted). The wired components are
    exposed on `app.state` (storage, worker, resolver, aggregator).
    """
    settings = settings or Settings()

    if not logging.getLogger().handlers:
        logging.basicConfig(level=logging.INFO)
    if settings.DEBUG_LOGGING:
        logging.getLogger("linkhop").setLevel(logging.DEBUG)
    log = logging.getLogger("linkhop.api")

    # ----------------------------------------------------------------
    # Per-app instances (isolated for tests, swappable for production)
    # ----------------------------------------------------------------
    storage = storage or get_storage(settings.STORAGE_BACKEND, dsn=settings.DB_DSN)
    geo_provider = geo_provider or get_geo_provider(settings.GEO_PROVIDER, settings)
    worker = BackgroundWorker(threads=settings.WORKER_THREADS, queue_size=settings.WORKER_QUEUE_SIZE)
    classifier = Classifier(geo_provider, fallback_ip=settings.FALLBACK_PUBLIC_IP)
    recorder = ClickRecorder(storage, classifier, worker)
    resolver = LinkResolver(
        storage,
        settings,
        recorder,
        cloaker=cloaker or CloakingProxy(timeout=settings.CLOAK_TIMEOUT),
        rotation=get_rotation_from_config(settings.ROTATION_STRATEGY),
    )
    aggregator = AnalyticsAggregator(storage, max_workers=settings.ANALYTICS_QUERY_THREADS)

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        yield
        worker.shutdown()
        aggregator.close()

    app = FastAPI(
        title="linkhop",
        description="Short-link resolution with target rotation, cloaking and click analytics",
        docs_url="/docs",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.storage = storage
    app.state.worker = worker
    app.state.resolver = resolver
    app.state.aggregator = aggregator

    log.info(
        "linkhop storage=%s geo=%s rotation=%s default_host=%s",
        type(storage).__name__, geo_provider.name, type(resolver.rotation).__name__, settings.SHORTENER_DOMAIN,
    )

    # ----------------------------------------------------------------
    # Utilities
    # ----------------------------------------------------------------
    def _landing(error: str) -> RedirectResponse:
        sep = "&" if "?" in settings.LANDING_URL else "?"
        return RedirectResponse(f"{settings.LANDING_URL}{sep}{urlencode({'error': error})}", status_code=302)

    def _serve_hit(slug: str, host: Optional[str], request: Request) -> Response:
        slug = (slug or "").strip("/")
        if not slug:
            return _landing("missing_slug")
        if not host:
            return _landing("missing_host")

        visitor = Visitor(
            ip=_client_ip(request),
            user_agent=request.headers.get("user-agent"),
            accept_language=request.headers.get("accept-language"),
            referrer=request.headers.get("referer"),
        )
        try:
            outcome = resolver.handle_hit(slug, host, visitor)
        except Exception:
            log.exception("Error processing redirect for slug %r on host %r", slug, host)
            return _landing("unavailable")

        if outcome.kind == NOT_FOUND:
            return _landing("link_not_found")
        if outcome.kind == CLOAK and outcome.cloaked is not None:
            response = Response(content=outcome.cloaked.body, status_code=outcome.cloaked.status)
            for name, value in outcome.cloaked.headers:
                response.headers.append(name, value)
            return response
        return RedirectResponse(outcome.target_url, status_code=301)

    # ----------------------------------------------------------------
    # Routes
    # ----------------------------------------------------------------
    @app.get("/health")
    def health() -> Dict[str, Any]:
        return {"status": "ok", "background": worker.stats()}

    @app.get("/")
    def landing(error: Optional[str] = None) -> Dict[str, Any]:
        return {"service": "linkhop", "error": error}

    @app.get("/api/internal/redirect/{slug:path}")
    def internal_redirect(slug: str, request: Request) -> Response:
        """
        Redirect entry point behind the routing layer.

        The routing layer rewrites any short-link path to this endpoint and
        passes the host the visitor asked for in `x-original-host`.
        """
        return _serve_hit(slug, request.headers.get("x-original-host"), request)

    @app.get("/api/analytics/link/{link_id}")
    def link_analytics(
        link_id: str,
        days: int = Query(30, description="Trailing window in days; 0 or less for all time."),
        top_n: int = Query(5, alias="topN", ge=1, le=100),
        caller: str = Depends(get_current_user),
    ) -> Dict[str, Any]:
        """
        Per-link analytics for the authenticated owner.

        Returns:
            dict: chartData, recentEvents, topBrowsers, topOS, topDeviceTypes,
                  topReferrers, topCountries, periodDays.

        Raises:
            HTTPException: 404 if the link is unknown or not owned by the caller,
                           400 on an invalid grouping column.
        """
        try:
            result = aggregator.aggregate(link_id, caller, days=days, top_n=top_n)
        except (LinkNotFoundError, NotAuthorizedError) as exc:
            raise HTTPException(status_code=404, detail=str(exc))
        except InvalidColumnError as exc:
            raise HTTPException(status_code=400, detail=str(exc))
        return result.to_dict()

    @app.get("/api/analytics/summary")
    def analytics_summary(
        days: int = Query(7, description="Trailing window in days; 0 or less for all time."),
        caller: str = Depends(get_current_user),
    ) -> Dict[str, Any]:
        return aggregator.overall_summary(caller, days=days)

    @app.post("/api/analytics/event", status_code=201)
    def record_event(req: EventRequest) -> Dict[str, Any]:
        """
        Record one analytic event and bump the link's click counter.

        Missing browser/OS/device fields are derived from `userAgent`.
        """
        if not req.linkId:
            raise HTTPException(status_code=400, detail="Missing required field: linkId")
        if storage.get_link(req.linkId) is None:
            raise HTTPException(status_code=404, detail="Link not found")

        browser, os_family = parse_browser_os(req.userAgent)
        event = AnalyticEvent(
            id=new_id(),
            link_id=req.linkId,
            timestamp=utcnow(),
            ip_address=req.ipAddress,
            user_agent=req.userAgent,
            country=req.country,
            city=req.city,
            device_type=(req.deviceType or classify_device(req.userAgent)).value,
            browser=req.browser or browser,
            os=req.os or os_family,
            referrer=req.referrer,
        )
        try:
            storage.add_event(event)
            storage.increment_click(req.linkId)
        except Exception:
            log.exception("Error recording analytic event for link %s", req.linkId)
            return JSONResponse({"message": "Error recording event"}, status_code=500)
        return {"message": "Event recorded", "id": event.id}

    @app.get("/{slug}")
    def public_redirect(slug: str, request: Request) -> Response:
        """
        Public short-link entry for deployments without a separate routing layer.

        Host comes from `x-forwarded-host` (first value) or `Host`.
        """
        forwarded = request.headers.get("x-forwarded-host")
        host = forwarded.split(",")[0].strip() if forwarded else request.headers.get("host")
        return _serve_hit(slug, host, request)

    return app


# Backward compatibility for uvicorn and legacy imports:
# `uvicorn main:app --reload` and `from main import app` continue to work.
app = create_app()
