"""
Custom SSO Service - FastAPI Application
Proxies signup and login to the backend auth service and mirrors identities into Supabase
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, HTTPException, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.datastructures import Headers
import structlog

from app.config import get_settings
from app.routes import health, outbox, sso
from app.services.reconciler import SSOLinkReconciler
from app.services.sso_service import SSOProxyService
from app.utils.backend_client import BackendAuthClient
from app.utils.exceptions import ProxyError
from app.utils.outbox import SSOLinkOutbox, create_redis_client
from app.utils.supabase_client import SupabaseClient
from shared.utils.logger import setup_logging

settings = get_settings()

# Configure structured logging
setup_logging(settings.logging_config_path, settings.log_level, settings.log_format)

logger = structlog.get_logger(__name__)


class EmptyPreflightCORSMiddleware(CORSMiddleware):
    """CORS middleware answering pre-flight requests with an empty body"""

    def preflight_response(self, request_headers: Headers) -> Response:
        response = super().preflight_response(request_headers)
        headers = {
            key: value
            for key, value in response.headers.items()
            if key not in ("content-length", "content-type")
        }
        return Response(status_code=response.status_code, headers=headers)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan events"""
    logger.info("Starting Custom SSO Service")

    identity = SupabaseClient(settings)
    if not settings.identity_platform_configured:
        logger.warning("Identity platform is not fully configured, auth calls will fail")

    backend = BackendAuthClient(settings)
    await backend.start()

    link_outbox = None
    reconciler_task = None
    if settings.sso_outbox_enabled:
        link_outbox = SSOLinkOutbox(create_redis_client(settings.redis_url))
        if not await link_outbox.ping():
            logger.warning("SSO outbox Redis unreachable, failed links will only be logged")

        reconciler = SSOLinkReconciler(link_outbox, identity, settings.sso_outbox_max_attempts)
        app.state.reconciler = reconciler
        await reconciler.recover()
        if settings.sso_outbox_drain_interval > 0:
            reconciler_task = asyncio.create_task(
                reconciler.run_forever(settings.sso_outbox_drain_interval, settings.sso_outbox_batch_size)
            )

    app.state.identity = identity
    app.state.backend = backend
    app.state.outbox = link_outbox
    app.state.sso_service = SSOProxyService(settings, backend, identity, link_outbox)

    logger.info("Custom SSO Service startup complete")

    yield

    logger.info("Custom SSO Service shutting down")

    if reconciler_task is not None:
        reconciler_task.cancel()
        try:
            await reconciler_task
        except asyncio.CancelledError:
            pass

    await backend.stop()
    if link_outbox is not None:
        await link_outbox.close()

    logger.info("Custom SSO Service shutdown complete")


# Create FastAPI application
app = FastAPI(
    title="Custom SSO Service",
    description="Backend auth proxy with Supabase identity mirroring",
    version=settings.service_version,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

app.add_middleware(
    EmptyPreflightCORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log all incoming requests"""
    logger.info(
        "Request received",
        method=request.method,
        path=request.url.path,
        client_ip=request.client.host if request.client else "unknown"
    )

    response = await call_next(request)

    logger.info(
        "Request completed",
        method=request.method,
        path=request.url.path,
        status_code=response.status_code
    )

    return response


@app.exception_handler(ProxyError)
async def proxy_error_handler(request: Request, exc: ProxyError):
    """Typed proxy failures"""
    logger.warning(
        "Custom SSO error",
        error=exc.message,
        error_type=type(exc).__name__,
        status_code=exc.status_code,
        path=request.url.path
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Malformed bodies use the same envelope as other failures"""
    logger.warning("Invalid request body", errors=exc.errors(), path=request.url.path)
    return JSONResponse(
        status_code=400,
        content={"success": False, "error": "Invalid request body"}
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Custom HTTP exception handler"""
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.detail},
        headers=getattr(exc, "headers", None)
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler"""
    logger.error(
        "Unhandled exception",
        error=str(exc),
        method=request.method,
        path=request.url.path,
        exc_info=True
    )

    return JSONResponse(
        status_code=500,
        content={"success": False, "error": "Internal server error"}
    )


# Register routes
app.include_router(health.router, tags=["Health"])
app.include_router(sso.router, prefix="/functions/v1", tags=["Custom SSO"])
app.include_router(outbox.router, prefix="/internal/sso-outbox", tags=["SSO Outbox"])


# Root endpoint
@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "service": settings.service_name,
        "version": settings.service_version,
        "status": "running",
        "docs": "/docs"
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=8010,
        reload=settings.debug,
        log_level="info"
    )
