"""
Observability Middleware.

Every request carries a correlation ID (the caller's, or a fresh UUID) that
is echoed back and attached to the request log line together with the
operator named in X-Actor. Courier webhooks are logged under their own
logger so redelivery noise can be filtered separately.
"""

import time
import uuid
import logging
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger("fulfillment")
webhook_logger = logging.getLogger("fulfillment.webhooks")

CORRELATION_HEADER = "X-Correlation-ID"
ACTOR_HEADER = "X-Actor"
WEBHOOK_PATH_PREFIX = "/v1/webhooks/"


def request_logger(path: str) -> logging.Logger:
    return webhook_logger if path.startswith(WEBHOOK_PATH_PREFIX) else logger


class ObservabilityMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        correlation_id = request.headers.get(CORRELATION_HEADER) or str(uuid.uuid4())
        request.state.correlation_id = correlation_id

        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000

        response.headers[CORRELATION_HEADER] = correlation_id
        response.headers["X-Process-Time"] = f"{elapsed_ms:.2f}"

        context = {
            "correlation_id": correlation_id,
            "actor": request.headers.get(ACTOR_HEADER),
            "method": request.method,
            "path": request.url.path,
            "status_code": response.status_code,
            "duration_ms": round(elapsed_ms, 2),
        }
        target = request_logger(request.url.path)
        if response.status_code >= 500:
            target.error("Request failed", extra=context)
        elif response.status_code >= 400:
            target.warning("Request rejected", extra=context)
        else:
            target.info("Request served", extra=context)

        return response
