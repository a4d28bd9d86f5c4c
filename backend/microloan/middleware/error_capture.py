"""FastAPI middleware that captures unhandled exceptions and logs them to the DB.

Every 5xx response is recorded in the error_logs table; 4xx responses other
than auth failures are recorded as warnings.  Ledger errors are recorded by
their exception handler, with their cause, and are not recorded twice.
"""

from __future__ import annotations

import logging
import time
from typing import Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import JSONResponse

from microloan.models.error_log import ErrorSeverity
from microloan.services.error_logger import log_error_standalone

logger = logging.getLogger("microloan.middleware")


def _request_user_id(request: Request) -> Optional[int]:
    """Best-effort user id from the bearer token, for error context only."""
    from microloan.auth_utils import decode_token

    auth_header = request.headers.get("authorization", "")
    if not auth_header.startswith("Bearer "):
        return None
    try:
        return int(decode_token(auth_header[7:]).get("sub", 0)) or None
    except Exception:
        return None


class ErrorCaptureMiddleware(BaseHTTPMiddleware):
    """Catches unhandled exceptions, returns 500, and persists the error."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        start = time.time()
        database = getattr(request.app.state, "database", None)
        ip_address = request.client.host if request.client else None

        try:
            response = await call_next(request)
        except Exception as exc:
            elapsed_ms = round((time.time() - start) * 1000, 2)
            await log_error_standalone(
                exc,
                database,
                severity=ErrorSeverity.ERROR,
                module="middleware.error_capture",
                request_method=request.method,
                request_path=str(request.url.path),
                status_code=500,
                response_time_ms=elapsed_ms,
                user_id=_request_user_id(request),
                ip_address=ip_address,
            )
            logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
            return JSONResponse(
                status_code=500,
                content={"detail": "Internal Server Error"},
            )

        if (
            response.status_code >= 400
            and response.status_code not in (401, 403)
            and not getattr(request.state, "error_logged", False)
        ):
            elapsed_ms = round((time.time() - start) * 1000, 2)
            severity = ErrorSeverity.ERROR if response.status_code >= 500 else ErrorSeverity.WARNING
            await log_error_standalone(
                Exception(f"HTTP {response.status_code} on {request.method} {request.url.path}"),
                database,
                severity=severity,
                module="middleware.error_capture",
                function_name="dispatch",
                request_method=request.method,
                request_path=str(request.url.path),
                status_code=response.status_code,
                response_time_ms=elapsed_ms,
                user_id=_request_user_id(request),
                ip_address=ip_address,
            )
        return response
