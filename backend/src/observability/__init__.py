"""Observability module: structured logging with request and tenant correlation."""

from .logging_config import configure_logging, JSONFormatter, RequestIDFilter
from .request_id import (
    request_id_var,
    tenant_id_var,
    get_request_id,
    set_request_id,
    generate_request_id,
    get_tenant_id,
)

__all__ = [
    "configure_logging",
    "JSONFormatter",
    "RequestIDFilter",
    "request_id_var",
    "tenant_id_var",
    "get_request_id",
    "set_request_id",
    "generate_request_id",
    "get_tenant_id",
]
