"""
Main FastAPI application.

Kiosk order API with:
- CORS configuration
- Error handling mapped from the order error taxonomy
- Request ID tracking
- Structured logging
- Prometheus metrics
"""
import time
import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Optional

import structlog
from fastapi import FastAPI, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from kiosk_orders.catalog.stores import SEED_STORES
from kiosk_orders.config import Settings, get_settings
from kiosk_orders.core.exceptions import OrderSystemError
from kiosk_orders.database.connection import close_db, init_db
from kiosk_orders.monitoring.logging import setup_logging

from .dependencies import Services, build_services
from .routes import customer_router, monitoring_router, order_router, webhook_router

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, Any]:
    """
    Application lifespan manager.

    Startup creates the schema, seeds stores and restarts persisted ready
    timers. Shutdown cancels running timers and closes the database.
    """
    settings: Settings = app.state.settings
    logger.info(
        "application_startup",
        app_name=settings.app_name,
        env=settings.app_env,
        card_configured=settings.card_configured,
        swish_configured=settings.swish_configured,
    )

    owns_services = app.state.services is None
    if owns_services:
        try:
            await init_db()
            logger.info("database_initialized")
        except Exception as e:
            logger.error("database_initialization_failed", error=str(e))
            raise
        app.state.services = build_services(settings)

    services: Services = app.state.services
    await services.store.seed_stores(SEED_STORES)
    await services.scheduler.recover()

    yield

    logger.info("application_shutdown")
    await services.scheduler.shutdown()
    if owns_services:
        try:
            await close_db()
            logger.info("database_connections_closed")
        except Exception as e:
            logger.error("database_shutdown_error", error=str(e))


async def add_request_id_middleware(request: Request, call_next: Any) -> Response:
    """
    Add request ID to all requests for tracing.

    Also adds timing information and structured logging context.
    """
    request_id = str(uuid.uuid4())
    start_time = time.time()

    structlog.contextvars.bind_contextvars(
        request_id=request_id,
        method=request.method,
        path=request.url.path,
    )

    logger.info(
        "request_started",
        client_host=request.client.host if request.client else None,
    )

    try:
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id

        logger.info(
            "request_completed",
            status_code=response.status_code,
            duration_seconds=time.time() - start_time,
        )
        return response

    except Exception as e:
        logger.error(
            "request_failed",
            error=str(e),
            duration_seconds=time.time() - start_time,
        )
        raise

    finally:
        structlog.contextvars.clear_contextvars()


async def order_error_handler(request: Request, exc: OrderSystemError) -> JSONResponse:
    log = logger.warning if exc.http_status < 500 else logger.error
    log(
        "order_system_error",
        error_code=exc.error_code,
        error=exc.message,
        http_status=exc.http_status,
        path=request.url.path,
    )
    return JSONResponse(status_code=exc.http_status, content=exc.to_dict())


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "Invalid request")
    if location:
        message = f"{location}: {message}"

    logger.warning("request_validation_error", path=request.url.path, error=message)
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": {"code": "validation_error", "message": message}},
    )


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Global exception handler for unhandled exceptions.
    """
    logger.error(
        "unhandled_exception",
        error=str(exc),
        error_type=type(exc).__name__,
        path=request.url.path,
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": {
                "code": "internal_error",
                "message": "An unexpected error occurred. Please try again later.",
            }
        },
    )


def create_app(
    services: Optional[Services] = None, settings: Optional[Settings] = None
) -> FastAPI:
    """
    Build the application.

    Args:
        services: Pre-built service graph; when omitted the lifespan creates
            the database and builds one from settings.
        settings: Application settings (taken from services, else get_settings())
    """
    if settings is None:
        settings = services.settings if services is not None else get_settings()
    setup_logging(settings)

    app = FastAPI(
        title="Kiosk Order API",
        description=(
            "Order backend for the bistro kiosk: server-side pricing, card and Swish "
            "payments, payment callbacks, receipts and ready notifications."
        ),
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )
    app.state.settings = settings
    app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.get_allowed_origins_list(),
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "Stripe-Signature"],
    )
    app.middleware("http")(add_request_id_middleware)

    app.add_exception_handler(OrderSystemError, order_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, global_exception_handler)

    app.include_router(order_router)
    app.include_router(webhook_router)
    app.include_router(customer_router)
    app.include_router(monitoring_router)

    @app.get("/", tags=["root"])
    async def root() -> dict[str, Any]:
        """Root endpoint with API information."""
        return {
            "service": settings.app_name,
            "version": "1.0.0",
            "status": "operational",
            "environment": settings.app_env,
            "docs": "/docs",
            "health": "/health",
            "metrics": "/metrics",
        }

    return app


app = create_app()


def run() -> None:
    """Console entry point."""
    import uvicorn

    settings = get_settings()

    uvicorn.run(
        "kiosk_orders.api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug,
        workers=settings.api_workers if not settings.debug else 1,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
