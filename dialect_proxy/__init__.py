"""Dialect proxy - Anthropic Messages in front of Gemini and OpenAI.

Inbound Messages requests (optionally carrying OpenAI-style fields) are
normalized into one canonical request, rendered for the configured upstream
and re-streamed back as Anthropic Messages SSE events.

Example:
    >>> from dialect_proxy.main import create_app
    >>> import uvicorn
    >>> uvicorn.run(create_app(), host="127.0.0.1", port=8000)
"""

from .config_loader import load_config
from .core import Backend, ProxyError
from .logging import setup_logging
from .main import create_app

__version__ = "0.1.0"

__all__ = [
    "Backend",
    "ProxyError",
    "create_app",
    "load_config",
    "setup_logging",
]
