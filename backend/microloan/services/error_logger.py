"""Centralised error logging: captures exceptions to DB and Python logger.

Usage:
    # 1. As a function call in any try/except:
    from microloan.services.error_logger import log_error
    try:
        ...
    except Exception as e:
        await log_error(e, module="api.repayments", function_name="record_repayment")
        raise

    # 2. Middleware captures unhandled request errors automatically and
    #    persists them with its own session.
"""

from __future__ import annotations

import logging
import traceback as tb_module
from typing import TYPE_CHECKING, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from microloan.models.error_log import ErrorLog, ErrorSeverity
from microloan.services.errors import LedgerError

if TYPE_CHECKING:
    from microloan.database import Database

logger = logging.getLogger("microloan.errors")


def _sanitize_text(value: object, *, max_len: Optional[int] = None) -> str:
    """Normalize control characters before persisting/serializing text."""
    text = str(value)
    text = "".join(ch if (ch >= " " or ch in "\n\r\t") else " " for ch in text)
    if max_len is not None:
        return text[:max_len]
    return text


async def log_error(
    exc: Exception,
    *,
    db: Optional[AsyncSession] = None,
    severity: Optional[ErrorSeverity] = None,
    module: Optional[str] = None,
    function_name: Optional[str] = None,
    line_number: Optional[int] = None,
    request_method: Optional[str] = None,
    request_path: Optional[str] = None,
    status_code: Optional[int] = None,
    response_time_ms: Optional[float] = None,
    user_id: Optional[int] = None,
    ip_address: Optional[str] = None,
) -> Optional[ErrorLog]:
    """Log an exception to the Python logger and, if *db* is given, the database.

    LedgerErrors supply their own status code and cause when those are not
    given, and default to WARNING below 500.  Everything else defaults to
    ERROR.

    Returns the created ErrorLog row (or None if the DB write failed/skipped).
    """
    cause = None
    if isinstance(exc, LedgerError):
        if status_code is None:
            status_code = exc.status_code
        cause = _sanitize_text(exc.cause, max_len=2000) if exc.cause else None
    if severity is None:
        if status_code is not None and status_code < 500:
            severity = ErrorSeverity.WARNING
        else:
            severity = ErrorSeverity.ERROR

    error_type = type(exc).__name__
    message = _sanitize_text(exc, max_len=2000)
    traceback_str = _sanitize_text(
        "".join(tb_module.format_exception(type(exc), exc, exc.__traceback__)),
        max_len=10000,
    )

    # Auto-detect module/function/line from traceback if not provided
    if exc.__traceback__ and not module:
        frame = exc.__traceback__
        while frame.tb_next:
            frame = frame.tb_next
        module = module or frame.tb_frame.f_code.co_filename
        function_name = function_name or frame.tb_frame.f_code.co_name
        line_number = line_number or frame.tb_lineno

    log_msg = f"[{severity.value.upper()}] {error_type}: {message}"
    if cause:
        log_msg = f"{log_msg} (cause: {cause})"
    if request_path:
        log_msg = f"{request_method or '?'} {request_path} -> {log_msg}"
    if severity in (ErrorSeverity.ERROR, ErrorSeverity.CRITICAL):
        logger.error(log_msg, exc_info=exc)
    else:
        logger.warning(log_msg)

    if db is None:
        return None

    try:
        entry = ErrorLog(
            severity=severity,
            error_type=error_type,
            message=message,
            traceback=traceback_str,
            cause=cause,
            module=_sanitize_text(module, max_len=300) if module else None,
            function_name=_sanitize_text(function_name, max_len=200) if function_name else None,
            line_number=line_number,
            request_method=request_method,
            request_path=_sanitize_text(request_path, max_len=500) if request_path else None,
            status_code=status_code,
            response_time_ms=response_time_ms,
            user_id=user_id,
            ip_address=_sanitize_text(ip_address, max_len=45) if ip_address else None,
        )
        db.add(entry)
        await db.flush()
        return entry
    except Exception as db_err:
        # Never let error-logging itself crash the app
        logger.warning("Failed to persist error log to DB: %s", db_err)
        return None


async def log_error_standalone(
    exc: Exception,
    database: Optional["Database"],
    **kwargs,
) -> Optional[ErrorLog]:
    """Log an error using a fresh session (for middleware use)."""
    if database is None:
        return await log_error(exc, **kwargs)
    try:
        async with database.session() as db:
            entry = await log_error(exc, db=db, **kwargs)
            await db.commit()
            return entry
    except Exception as db_err:
        logger.warning("Failed standalone error log: %s", db_err)
        return None
