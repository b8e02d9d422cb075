"""Exception handlers mapping tenancy errors to JSON responses.

Body shape: ``{"error", "message", "details", "request_id"}``.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from config import get_settings
from observability.request_id import get_request_id

from .errors import EntityNotFoundError, TenantError, TenantOwnershipError

logger = logging.getLogger(__name__)


def _error_response(exc: TenantError) -> JSONResponse:
    body = exc.to_dict()
    body["request_id"] = get_request_id()
    return JSONResponse(status_code=exc.status_code, content=body)


async def tenant_error_handler(request: Request, exc: TenantError) -> JSONResponse:
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        f"{exc.error_kind} on {request.method} {request.url.path}",
        extra={"error_kind": exc.error_kind, "status_code": exc.status_code},
    )
    return _error_response(exc)


async def entity_not_found_handler(request: Request, exc: EntityNotFoundError) -> JSONResponse:
    """Unknown ids answer like foreign ones unless collapsing is disabled."""
    if get_settings().OWNERSHIP_COLLAPSE_NOT_FOUND and exc.expected_tenant is not None:
        return await tenant_error_handler(request, TenantOwnershipError(exc.violations, exc.expected_tenant))
    return await tenant_error_handler(request, exc)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(EntityNotFoundError, entity_not_found_handler)
    app.add_exception_handler(TenantError, tenant_error_handler)
