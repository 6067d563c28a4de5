"""Middleware that records failed requests in the error_logs table.

5xx responses and uncaught exceptions are stored as errors, other 4xx
responses (except auth failures) as warnings.  A response produced by a
rejected finance command is logged with that command's error kind and context.
"""

from __future__ import annotations

import time
from typing import Optional

from fastapi import HTTPException, Request, Response
from jose import JWTError, jwt as jose_jwt
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import JSONResponse

from campus_finance.config import settings
from campus_finance.models.error_log import ErrorSeverity
from campus_finance.services.error_logger import log_error_standalone


def _user_id_from_request(request: Request) -> Optional[int]:
    auth_header = request.headers.get("authorization", "")
    if not auth_header.startswith("Bearer "):
        return None
    try:
        payload = jose_jwt.decode(auth_header[7:], settings.secret_key, algorithms=["HS256"])
        return int(payload.get("sub", 0)) or None
    except (JWTError, ValueError, TypeError):
        return None


class ErrorCaptureMiddleware(BaseHTTPMiddleware):
    """Catches unhandled exceptions, returns 500, and persists the error."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        start = time.time()
        user_id = _user_id_from_request(request)
        request_fields = {
            "session_factory": getattr(request.app.state, "session_factory", None),
            "request_method": request.method,
            "request_path": str(request.url.path),
            "user_id": user_id,
        }

        try:
            response = await call_next(request)
        except Exception as exc:
            if isinstance(exc, HTTPException) and exc.status_code < 500:
                raise
            await log_error_standalone(
                exc,
                status_code=500,
                response_time_ms=round((time.time() - start) * 1000, 2),
                **request_fields,
            )
            return JSONResponse(status_code=500, content={"detail": "Internal Server Error"})

        status = response.status_code
        if status >= 500 or (status >= 400 and status not in (401, 403)):
            # the FinanceError handler leaves the rejected command's error here
            exc = getattr(request.state, "finance_error", None)
            if exc is None:
                exc = Exception(f"HTTP {status} on {request.method} {request.url.path}")
            await log_error_standalone(
                exc,
                severity=ErrorSeverity.ERROR if status >= 500 else ErrorSeverity.WARNING,
                status_code=status,
                response_time_ms=round((time.time() - start) * 1000, 2),
                **request_fields,
            )
        return response
