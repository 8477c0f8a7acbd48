"""API routes for the proxy."""

from .messages import messages_endpoint
from .models import list_models
from .usage import router as usage_router

__all__ = [
    "list_models",
    "messages_endpoint",
    "usage_router",
]
