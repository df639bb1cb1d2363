"""
FastAPI middleware for logging and request tracking.

Every log line carries a short request ID and the calling user
(the X-User-ID header), so one teacher's requests can be followed
through the scheduling services.
"""

import logging
import time
import uuid
from contextvars import ContextVar

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

# Request ID and caller for the current request (available across async calls)
request_id_ctx: ContextVar[str] = ContextVar("request_id", default="")
user_id_ctx: ContextVar[str] = ContextVar("user_id", default="-")

logger = logging.getLogger(__name__)

USER_HEADER = "X-User-ID"


def get_request_id() -> str:
    """Get current request ID from context."""
    return request_id_ctx.get()


def get_request_user() -> str:
    """Get the X-User-ID of the current request, or "-" when absent."""
    return user_id_ctx.get()


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Logs each scheduling request with its caller and response time.

    The request ID is returned to the client in the X-Request-ID header.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        req_id = str(uuid.uuid4())[:8]
        caller = request.headers.get(USER_HEADER) or "-"
        request_id_ctx.set(req_id)
        user_id_ctx.set(caller)

        context = {"request_id": req_id, "user_id": caller}

        logger.info(
            f"[{req_id}] user={caller} {request.method} {request.url.path}",
            extra={**context, "method": request.method, "query": str(request.query_params)},
        )

        start_time = time.time()

        try:
            response = await call_next(request)
        except Exception as e:
            elapsed = time.time() - start_time
            logger.error(
                f"[{req_id}] user={caller} failed after {elapsed:.2f}s: {e}",
                extra={**context, "elapsed_ms": elapsed * 1000},
                exc_info=True,
            )
            raise

        elapsed = time.time() - start_time

        logger.info(
            f"[{req_id}] user={caller} {response.status_code} in {elapsed:.2f}s",
            extra={**context, "status_code": response.status_code, "elapsed_ms": elapsed * 1000},
        )

        response.headers["X-Request-ID"] = req_id

        return response
