"""Request ID and tenant id correlation for logs.

The tenant variable exists only so log records can be stamped with the
tenant a request is working for. Isolation never reads it: the binding that
filters rows lives in the request's database session.
"""

import uuid
from contextvars import ContextVar
from typing import Optional

# Context variables (async-safe)
request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
tenant_id_var: ContextVar[Optional[str]] = ContextVar("log_tenant_id", default=None)


def generate_request_id() -> str:
    """Generate a new unique request ID.

    Returns:
        str: UUID v4 request ID
    """
    return str(uuid.uuid4())


def get_request_id() -> str:
    """Get current request ID from context.

    Returns:
        str: Current request ID or "no-request-id" if not set
    """
    return request_id_var.get() or "no-request-id"


def set_request_id(request_id: str) -> None:
    request_id_var.set(request_id)


def get_log_tenant_id() -> Optional[str]:
    return tenant_id_var.get()
