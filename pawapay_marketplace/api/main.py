"""
FastAPI application factory.

Marketplace payment API in front of PawaPay. ``create_app`` builds the
service graph once and wires in:
- CORS
- request ids bound into the structlog context and echoed back
- per-route request metrics
- JSON error responses for the payment exception taxonomy
"""
import time
import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Awaitable, Callable, Optional

import httpx
import structlog
from fastapi import FastAPI, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from pawapay_marketplace import __version__
from pawapay_marketplace.config import Settings, get_settings
from pawapay_marketplace.core.exceptions import PaymentGatewayError
from pawapay_marketplace.database.connection import Database
from pawapay_marketplace.integrations.pawapay_client import PawaPayClient
from pawapay_marketplace.monitoring.logging import setup_logging
from pawapay_marketplace.monitoring.metrics import metrics

from .dependencies import Services, build_services
from .routes import admin_router, monitoring_router, payment_router, webhook_router

logger = structlog.get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

CallNext = Callable[[Request], Awaitable[Response]]


def _route_label(request: Request) -> str:
    # Route templates keep label cardinality bounded
    route = request.scope.get("route")
    return getattr(route, "path", None) or "unmatched"


async def request_context_middleware(request: Request, call_next: CallNext) -> Response:
    """
    Bind a request id into the log context, time the request and record it.

    An incoming ``X-Request-ID`` is reused so a trace can span the caller.
    """
    request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
    structlog.contextvars.bind_contextvars(
        request_id=request_id,
        method=request.method,
        path=request.url.path,
    )
    started = time.perf_counter()
    logger.debug("request_started", client_host=request.client.host if request.client else None)

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    try:
        response = await call_next(request)
        status_code = response.status_code
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
    except Exception as e:
        logger.error("request_failed", error=str(e), error_type=type(e).__name__)
        raise
    finally:
        elapsed = time.perf_counter() - started
        metrics.record_http_request(request.method, _route_label(request), status_code, elapsed)
        logger.info("request_completed", status_code=status_code, duration_seconds=elapsed)
        structlog.contextvars.clear_contextvars()


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(PaymentGatewayError)
    async def payment_error_handler(request: Request, exc: PaymentGatewayError) -> JSONResponse:
        log = logger.error if exc.http_status >= 500 else logger.warning
        log(
            "request_error",
            error=str(exc),
            error_code=exc.error_code,
            error_type=type(exc).__name__,
            metadata=exc.metadata,
        )
        return JSONResponse(status_code=exc.http_status, content=exc.to_dict())

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error("unhandled_exception", error=str(exc), error_type=type(exc).__name__)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": "Internal server error",
                "message": "An unexpected error occurred. Please try again later.",
            },
        )


def _lifespan(settings: Settings, services: Services) -> Callable[[FastAPI], Any]:
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, Any]:
        setup_logging(settings)
        logger.info(
            "application_startup",
            app_name=settings.app_name,
            env=settings.app_env,
            pawapay_environment=settings.pawapay_environment,
            pawapay_base_url=settings.base_url,
        )
        try:
            await services.database.create_all()
        except Exception as e:
            logger.error("database_initialization_failed", error=str(e))
            raise

        yield

        logger.info("application_shutdown")
        try:
            await services.aclose()
        except Exception as e:
            logger.error("shutdown_error", error=str(e))

    return lifespan


def create_app(
    settings: Optional[Settings] = None,
    *,
    database: Optional[Database] = None,
    client: Optional[PawaPayClient] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> FastAPI:
    """
    Build the application and its service graph.

    Args:
        settings: Defaults to ``get_settings()``
        database: Pre-built database (tests pass an in-memory one)
        client: Pre-built gateway client
        http_client: Transport for a client built here

    Returns:
        FastAPI: Application with ``app.state.services`` populated
    """
    settings = settings or get_settings()
    services = build_services(settings, database=database, client=client, http_client=http_client)

    app = FastAPI(
        title="PawaPay Marketplace Payments",
        description=(
            "Mobile-money collections and vendor payouts through PawaPay: "
            "operator-aware validation, signed callbacks, idempotent reconciliation "
            "and at most one payout per earnings record."
        ),
        version=__version__,
        lifespan=_lifespan(settings, services),
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )
    app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.get_allowed_origins_list(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.middleware("http")(request_context_middleware)
    register_exception_handlers(app)

    for router in (payment_router, webhook_router, admin_router, monitoring_router):
        app.include_router(router)

    @app.get("/", tags=["root"])
    async def root() -> dict[str, Any]:
        return {
            "service": settings.app_name,
            "version": __version__,
            "status": "operational",
            "environment": settings.app_env,
            "pawapay_environment": settings.pawapay_environment,
            "docs": "/docs",
            "health": "/health",
            "metrics": "/metrics",
        }

    return app


def main() -> None:
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "pawapay_marketplace.api.main:create_app",
        factory=True,
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
