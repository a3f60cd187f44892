"""FastAPI application exposing the response stats observer to a proxy."""
import hmac
import hashlib
import json
import logging
import time
import uuid
from typing import Optional
from fastapi import FastAPI, Request, HTTPException, Header, Query
from fastapi.responses import Response
from pydantic import ValidationError

from respstats.config import settings
from respstats.exchange import Exchange, HttpRequest, HttpResponse
from respstats.listeners import InMemoryStats
from respstats.logging_utils import setup_logging, RequestLoggingMiddleware
from respstats.metrics import (
    PrometheusStatsListener,
    get_metrics,
    record_exchange_result,
    record_request
)
from respstats.models import (
    ClearResponse,
    ExchangeRequest,
    ObserveResponse,
    SiteStatsResponse,
    StatsResponse
)
from respstats.observer import ResponseStatsObserver
from respstats.registry import StatsRegistry

# Setup logging
setup_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


def verify_signature(body: bytes, signature: str) -> bool:
    """Verify HMAC-SHA256 signature."""
    if not settings.INGEST_SECRET:
        return False

    expected_signature = hmac.new(
        settings.INGEST_SECRET.encode(),
        body,
        hashlib.sha256
    ).hexdigest()

    return hmac.compare_digest(expected_signature, signature)


def create_app(prometheus_stats: Optional[bool] = None) -> FastAPI:
    """
    Build the application with its own stats registry and listeners.

    The registry, the in-memory listener and the observer hang off app.state
    so tests and embedding hosts can reach them.
    """
    if prometheus_stats is None:
        prometheus_stats = settings.PROMETHEUS_STATS

    app = FastAPI(title=settings.APP_NAME, version=settings.APP_VERSION)

    stats_registry = StatsRegistry()
    memory_stats = InMemoryStats()
    stats_registry.add_listener(memory_stats)
    prometheus_listener = None
    if prometheus_stats:
        prometheus_listener = PrometheusStatsListener()
        stats_registry.add_listener(prometheus_listener)

    app.state.stats_registry = stats_registry
    app.state.memory_stats = memory_stats
    app.state.prometheus_listener = prometheus_listener
    app.state.observer = ResponseStatsObserver(stats_registry)

    # Add request logging middleware
    app.add_middleware(RequestLoggingMiddleware)

    @app.post("/exchanges", response_model=ObserveResponse)
    async def observe_exchange(
        request: Request,
        x_signature: Optional[str] = Header(None, alias="X-Signature")
    ):
        """
        Record stats for one completed exchange reported by the proxy.
        The raw body must be signed with INGEST_SECRET.
        """
        request_id = getattr(request.state, "request_id", None)
        if not request_id:
            request_id = str(uuid.uuid4())
            request.state.request_id = request_id

        # Get raw body for signature verification (must be done before parsing)
        body = await request.body()

        if not x_signature or not verify_signature(body, x_signature):
            logger.error(
                "Invalid signature",
                extra={
                    "request_id": request_id,
                    "result": "invalid_signature"
                }
            )
            record_exchange_result("invalid_signature")
            raise HTTPException(status_code=401, detail="invalid signature")

        try:
            payload = ExchangeRequest(**json.loads(body.decode()))
        except json.JSONDecodeError as e:
            logger.error(
                "Invalid JSON",
                extra={
                    "request_id": request_id,
                    "result": "validation_error",
                    "error": str(e)
                }
            )
            record_exchange_result("validation_error")
            raise HTTPException(status_code=422, detail=f"Invalid JSON: {str(e)}")
        except (ValidationError, TypeError) as e:
            logger.error(
                "Validation error",
                extra={
                    "request_id": request_id,
                    "result": "validation_error",
                    "error": str(e)
                }
            )
            record_exchange_result("validation_error")
            raise HTTPException(status_code=422, detail=str(e))

        exchange = Exchange(
            request=HttpRequest(uri=payload.uri),
            response=HttpResponse.from_header_pairs(
                payload.status_code,
                [(h.name, h.value) for h in payload.headers]
            )
        )
        app.state.observer.observe(exchange, payload.elapsed_ms, payload.body)

        site = exchange.request.site
        logger.info(
            "Exchange observed",
            extra={
                "request_id": request_id,
                "site": site,
                "result": "observed"
            }
        )
        record_exchange_result("observed")

        return ObserveResponse(status="ok", site=site)

    @app.get("/stats", response_model=StatsResponse)
    async def get_stats(prefix: str = Query("")):
        """All per-site counters plus global ones, optionally filtered by key prefix."""
        all_sites = memory_stats.get_all_site_stats(prefix)
        return StatsResponse(
            global_=memory_stats.get_stats(prefix),
            sites=[
                SiteStatsResponse(site=site, counters=all_sites[site])
                for site in sorted(all_sites)
            ]
        )

    @app.get("/stats/site", response_model=SiteStatsResponse)
    async def get_site_stats(site: str = Query(..., min_length=1), prefix: str = Query("")):
        """Counters of one site."""
        if site not in memory_stats.sites():
            raise HTTPException(status_code=404, detail="unknown site")
        return SiteStatsResponse(site=site, counters=memory_stats.get_site_stats(site, prefix))

    @app.delete("/stats", response_model=ClearResponse)
    async def clear_stats(
        site: Optional[str] = Query(None),
        prefix: Optional[str] = Query(None)
    ):
        """Clear stats through the registry so every listener sees it."""
        if prefix:
            stats_registry.clear(prefix, site)
        else:
            stats_registry.clear_all(site)
        logger.info("Stats cleared", extra={"site": site, "prefix": prefix})
        return ClearResponse(status="ok", site=site, prefix=prefix)

    @app.get("/health/live")
    async def health_live():
        """Liveness probe - always returns 200 once app is running."""
        return {"status": "alive"}

    @app.get("/health/ready")
    async def health_ready():
        """Readiness probe - returns 200 only if INGEST_SECRET is set."""
        if not settings.is_ready():
            raise HTTPException(status_code=503, detail="not ready")
        return {"status": "ready"}

    @app.get("/metrics")
    async def metrics():
        """Prometheus-style metrics endpoint."""
        content = get_metrics()
        if prometheus_listener is not None:
            content += prometheus_listener.export()
        return Response(content=content, media_type="text/plain")

    @app.middleware("http")
    async def add_request_timing(request: Request, call_next):
        """Add request timing for metrics."""
        start_time = time.time()
        request.state.start_time = start_time
        response = await call_next(request)
        latency_ms = (time.time() - start_time) * 1000
        record_request(request.url.path, response.status_code, latency_ms)
        return response

    @app.on_event("startup")
    async def startup():
        logger.info("Application starting up")

    @app.on_event("shutdown")
    async def shutdown():
        logger.info("Application shutting down")

    return app


app = create_app()
