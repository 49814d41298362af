"""
Algoan / Bridge connector

A FastAPI service subscribed to Algoan events. It links customers to
Bridge and synchronizes their bank accounts and transactions into Algoan
analyses.

Handled events:
- aggregator_link_required: generate a Bridge Connect redirect URL
- bank_details_required: pull accounts and transactions into the analysis

Webhooks are answered as soon as they are authenticated; the workflows run
in background tasks that acknowledge the event once they end.
"""
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from connector.api import router
from connector.config import settings
from connector.errors import UnauthorizedError, UpstreamApiError
from connector.logging import (
    configure_logging,
    get_logger,
    set_request_context,
    clear_request_context,
    generate_request_id,
)
from connector.services import (
    AlgoanClient,
    BridgeClient,
    HooksService,
    ServiceAccountRegistry,
)
from connector import metrics

# Configure structured logging
configure_logging()
logger = get_logger(__name__)


def build_hooks_service() -> HooksService:
    """Wire the clients, the registry and the hooks service."""
    algoan = AlgoanClient()
    bridge = BridgeClient()
    registry = ServiceAccountRegistry(algoan)
    return HooksService(registry, algoan, bridge)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    logger.info(
        "service_starting",
        service_name=settings.service_name,
        algoan_base_url=settings.algoan_base_url,
        bridge_base_url=settings.bridge_base_url,
    )

    hooks_service = build_hooks_service()
    if settings.load_service_accounts_on_startup:
        await hooks_service.registry.load()
    app.state.hooks_service = hooks_service

    logger.info("service_started", service_name=settings.service_name)

    yield

    logger.info("service_stopping", service_name=settings.service_name)
    await hooks_service.drain()


app = FastAPI(
    title="Algoan Bridge Connector",
    description="Links Algoan customers to Bridge and synchronizes their bank data",
    version="0.1.0",
    lifespan=lifespan,
)


@app.middleware("http")
async def request_logging_middleware(request: Request, call_next):
    """
    Tag each webhook call with a request id, then log and measure it.

    Health checks and metric scrapes pass through untouched.
    """
    path = request.url.path
    if path in ("/health", "/metrics"):
        return await call_next(request)

    request_id = request.headers.get("X-Request-ID") or generate_request_id()
    set_request_context(request_id)
    request.state.request_id = request_id
    logger.info("request_received", method=request.method, path=path)

    status_code = 500
    start_time = time.perf_counter()
    try:
        response = await call_next(request)
        status_code = response.status_code
        response.headers["X-Request-ID"] = request_id
        return response
    except Exception as e:
        logger.error("request_failed", method=request.method, path=path, error=str(e))
        raise
    finally:
        duration_seconds = time.perf_counter() - start_time
        logger.info(
            "request_completed",
            method=request.method,
            path=path,
            status_code=status_code,
            duration_ms=round(duration_seconds * 1000, 2),
        )
        metrics.record_http_request(request.method, path, status_code, duration_seconds)
        clear_request_context()


def error_response(request: Request, status_code: int, detail: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"detail": detail},
        headers={"X-Request-ID": getattr(request.state, "request_id", "unknown")},
    )


@app.exception_handler(UnauthorizedError)
async def unauthorized_error_handler(request: Request, exc: UnauthorizedError):
    """Reject events that could not be authenticated."""
    logger.warning("webhook_unauthorized", detail=exc.detail)
    return error_response(request, 401, exc.detail)


@app.exception_handler(UpstreamApiError)
async def upstream_api_error_handler(request: Request, exc: UpstreamApiError):
    """Algoan or Bridge failed while a webhook was being authenticated."""
    logger.error("upstream_api_error", service=exc.service, status_code=exc.status_code, detail=exc.detail)
    return error_response(request, 502, f"{exc.service} API error: {exc.detail}")


# Include API routes
app.include_router(router)


@app.get("/health")
async def health_check():
    """Health check endpoint for container orchestration."""
    return {"status": "ok", "service": settings.service_name}


@app.get("/metrics")
async def metrics_endpoint():
    """Prometheus metrics endpoint."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
