"""Microloan Repayment Ledger - FastAPI Entry Point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded

from microloan.config import settings
from microloan.database import Database
from microloan.middleware.error_capture import ErrorCaptureMiddleware
from microloan.api import applications, payments, repayments
from microloan.services.error_logger import log_error_standalone
from microloan.services.errors import LedgerError, UnauthorizedError
from microloan.services.payment_gateway import get_payment_gateway

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Connect the database and resolve the payment gateway once.

    Tables are created on startup in development only; in prod use Alembic
    migrations.
    """
    database = Database(settings.database_url, echo=settings.debug)
    await database.connect(create_tables=settings.is_development)
    app.state.database = database

    app.state.payment_gateway = get_payment_gateway()
    if app.state.payment_gateway is None:
        logger.warning("No payment gateway configured; online payments are disabled")
    else:
        logger.info("Payment gateway: %s", app.state.payment_gateway.provider_name)

    try:
        yield
    finally:
        await database.dispose()


limiter = Limiter(key_func=get_remote_address)

app = FastAPI(
    title="Microloan Repayment API",
    description="Repayment ledger and online payments for microloan applications",
    version="0.1.0",
    lifespan=lifespan,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@app.exception_handler(LedgerError)
async def ledger_error_handler(request: Request, exc: LedgerError) -> JSONResponse:
    content: dict = {"detail": exc.message}
    if isinstance(exc, UnauthorizedError) and exc.code:
        content["code"] = exc.code
    if exc.status_code not in (401, 403):
        await log_error_standalone(
            exc,
            getattr(request.app.state, "database", None),
            module="main.ledger_error_handler",
            request_method=request.method,
            request_path=str(request.url.path),
            ip_address=request.client.host if request.client else None,
        )
        # Recorded with its cause; the capture middleware skips this response.
        request.state.error_logged = True
    if exc.status_code >= 500 and settings.is_development and exc.cause:
        content["error"] = exc.cause
    return JSONResponse(status_code=exc.status_code, content=content)


# ── Security headers middleware ──────────────────────────────────
class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Adds standard security headers to every response."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        if not settings.is_development:
            response.headers["Strict-Transport-Security"] = "max-age=63072000; includeSubDomains"
        return response


# Error capture middleware (catches anything the routes let escape)
app.add_middleware(ErrorCaptureMiddleware)

# Security headers
app.add_middleware(SecurityHeadersMiddleware)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "Accept", "X-Requested-With"],
)

# Routers
app.include_router(applications.router, prefix="/api/applications", tags=["Applications"])
app.include_router(repayments.router, prefix="/api/repayments", tags=["Repayments"])
app.include_router(payments.router, prefix="/api/payments", tags=["Payments"])


@app.get("/api/health")
async def health_check(request: Request):
    """Liveness plus the payment gateway's state.

    A missing or unhealthy gateway reports "degraded" but still answers 200.
    """
    gateway = getattr(request.app.state, "payment_gateway", None)
    if gateway is None:
        gateway_status = {"provider": None, "healthy": False}
    else:
        try:
            healthy = await gateway.check_health()
        except Exception as e:
            logger.warning("Payment gateway health check failed: %s", e)
            healthy = False
        gateway_status = {"provider": gateway.provider_name, "healthy": healthy}
    return {
        "status": "healthy" if gateway_status["healthy"] else "degraded",
        "service": "microloan-api",
        "version": "0.1.0",
        "payment_gateway": gateway_status,
    }
