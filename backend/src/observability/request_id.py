"""Request and tenant correlation for log records.

Context variables are async-safe: each request (or Celery task) sees its
own request_id and tenant_id.
"""

import uuid
from contextvars import ContextVar
from typing import Optional

request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)

# Set while a tenant context is bound (see tenancy.context.bind_tenant)
tenant_id_var: ContextVar[Optional[str]] = ContextVar("tenant_id", default=None)


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


def get_tenant_id() -> Optional[str]:
    return tenant_id_var.get()
