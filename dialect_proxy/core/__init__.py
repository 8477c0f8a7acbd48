"""Core module initialization."""

from .backend import Backend, parse_backends, select_backend
from .client import (
    UpstreamStream,
    clear_upstream_transports,
    mount_upstream_transport,
    open_upstream_stream,
)
from .exceptions import (
    ConfigurationError,
    InvalidRequestError,
    ModelNotFoundError,
    ProxyError,
    UpstreamHTTPError,
)
from .sse import SSELineDecoder, extract_data_payload, format_sse_event

__all__ = [
    "Backend",
    "ConfigurationError",
    "InvalidRequestError",
    "ModelNotFoundError",
    "ProxyError",
    "SSELineDecoder",
    "UpstreamHTTPError",
    "UpstreamStream",
    "clear_upstream_transports",
    "extract_data_payload",
    "format_sse_event",
    "mount_upstream_transport",
    "open_upstream_stream",
    "parse_backends",
    "select_backend",
]
