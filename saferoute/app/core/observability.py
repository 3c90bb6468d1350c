"""
Observability helpers.

Configures the ``saferoute`` logger tree and tags every HTTP request with a
correlation id that is echoed back in ``X-Correlation-ID``.
"""

import time
import uuid
import logging
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from saferoute.app.core.config import settings

logger = logging.getLogger("saferoute")
access_logger = logging.getLogger("saferoute.http")

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str = None) -> None:
    """
    Attach a stream handler to the ``saferoute`` logger tree.

    Safe to call more than once; the handler is only added the first time.
    """
    logger.setLevel((level or settings.log_level).upper())
    if not any(getattr(h, "_saferoute", False) for h in logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._saferoute = True
        logger.addHandler(handler)


class ObservabilityMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        correlation_id = request.headers.get("X-Correlation-ID") or str(uuid.uuid4())
        started = time.perf_counter()

        response = await call_next(request)

        duration_ms = (time.perf_counter() - started) * 1000
        response.headers["X-Correlation-ID"] = correlation_id
        response.headers["X-Process-Time"] = f"{duration_ms:.2f}"

        # Location pings arrive every few seconds per trip; keep them at debug
        if response.status_code >= 500:
            level = logging.ERROR
        elif response.status_code >= 400:
            level = logging.WARNING
        elif request.url.path.endswith("/location/track"):
            level = logging.DEBUG
        else:
            level = logging.INFO

        access_logger.log(
            level,
            "%s %s -> %d in %.1f ms [cid=%s client=%s]",
            request.method,
            request.url.path,
            response.status_code,
            duration_ms,
            correlation_id,
            request.client.host if request.client else "unknown",
        )
        return response
