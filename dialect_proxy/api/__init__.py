"""API module for the proxy."""

from .routes import list_models, messages_endpoint, usage_router

__all__ = [
    "list_models",
    "messages_endpoint",
    "usage_router",
]
