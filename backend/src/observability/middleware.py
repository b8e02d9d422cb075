"""Request logging middleware.

Assigns the request id and writes one completion line per request with
the tenant the request acted for. The tenant is stored on
``request.state.tenant_id`` by the tenant context dependency; requests that
never resolved a tenant (health, metrics, rejected tokens) log ``None``.
"""

import logging
import time
from typing import Callable, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from .request_id import generate_request_id, set_request_id

logger = logging.getLogger(__name__)

# Polled by health checks and scrapers; logged at DEBUG
QUIET_PATHS = ("/health", "/metrics")


def _resolved_tenant(request: Request) -> Optional[str]:
    tenant_id = getattr(request.state, "tenant_id", None)
    return str(tenant_id) if tenant_id is not None else None


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Sets the request id and logs each request with its resolved tenant."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or generate_request_id()
        set_request_id(request_id)
        level = logging.DEBUG if request.url.path.startswith(QUIET_PATHS) else logging.INFO
        start_time = time.time()

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                f"{request.method} {request.url.path} failed: {type(e).__name__}",
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "request_tenant_id": _resolved_tenant(request),
                    "error_type": type(e).__name__,
                    "duration_ms": round((time.time() - start_time) * 1000, 2),
                },
                exc_info=True,
            )
            raise

        logger.log(
            level,
            f"{request.method} {request.url.path} {response.status_code}",
            extra={
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "request_tenant_id": _resolved_tenant(request),
                "client_ip": request.client.host if request.client else None,
                "duration_ms": round((time.time() - start_time) * 1000, 2),
            },
        )
        response.headers["X-Request-ID"] = request_id
        return response
