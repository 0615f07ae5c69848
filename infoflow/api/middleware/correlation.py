"""
Correlation ID Middleware

Tags every request with a correlation ID so log lines from the engine,
repositories and notification outbox can be tied back to one API call.
"""

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from ...utils.logger import set_correlation_id, get_logger
from ...utils.idgen import generate_correlation_id

logger = get_logger(__name__)

CORRELATION_HEADER = "X-Correlation-Id"


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """
    Middleware that binds a correlation ID to the request.

    Reuses the caller's X-Correlation-Id when present and echoes it back on
    the response.
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        correlation_id = request.headers.get(CORRELATION_HEADER) or generate_correlation_id()
        set_correlation_id(correlation_id)

        response = await call_next(request)
        response.headers[CORRELATION_HEADER] = correlation_id

        if response.status_code >= 500:
            logger.error(
                f"{request.method} {request.url.path} -> {response.status_code}",
                extra={"status_code": response.status_code}
            )
        return response
