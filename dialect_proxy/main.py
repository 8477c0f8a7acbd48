"""FastAPI application for the dialect proxy."""

import logging
import socket
from typing import Any, Mapping, Optional

import uvicorn
from fastapi import FastAPI

from .api import list_models, messages_endpoint, usage_router
from .config_loader import load_config, resolve_server_settings
from .core import parse_backends
from .logging import parse_log_level, setup_logging
from .usage_metrics import DEFAULT_CONTEXT_WINDOW, UsageLedger

logger = logging.getLogger("dialect-proxy")


def create_app(
    config: Optional[Mapping[str, Any]] = None,
    *,
    ledger: Optional[UsageLedger] = None,
) -> FastAPI:
    """Build the application from a parsed config.

    Args:
        config: Parsed config mapping. Loaded from disk when omitted.
        ledger: Session usage ledger. One is created for the configured port
            when omitted.

    Returns:
        The configured FastAPI application instance.
    """
    if config is None:
        config = load_config()

    backends = parse_backends(config.get("model_list"))
    proxy_settings = config.get("proxy_settings") or {}
    default_model = proxy_settings.get("default_model")
    if default_model and default_model not in backends:
        logger.warning(f"default_model '{default_model}' is not in model_list; ignoring it")
        default_model = None
    settings = resolve_server_settings(config)

    if ledger is None:
        window = DEFAULT_CONTEXT_WINDOW
        if default_model:
            window = backends[default_model].context_window
        ledger = UsageLedger(port=settings.port, context_window=window)

    app = FastAPI(title="Dialect Proxy")
    app.state.backends = backends
    app.state.default_model = default_model
    app.state.ledger = ledger
    app.state.settings = settings

    @app.on_event("startup")
    async def startup_event():
        """Handle application startup."""
        logger.info("Dialect proxy starting up...")
        logger.info("Configured bind address %s:%s", settings.host, settings.port)
        if settings.host == "0.0.0.0":
            hostname = socket.gethostname()
            logger.info("Reachable on local network at http://%s:%s", hostname, settings.port)
        logger.info(f"Available backends: {list(backends.keys())}")
        for name, backend in backends.items():
            logger.info(f"  - {name}: {backend.api_type} {backend.target_model} @ {backend.base_url}")
        if default_model:
            logger.info(f"Default model: {default_model}")
        logger.info(f"Token status file: {ledger.status_path}")

    app.post("/v1/messages")(messages_endpoint)
    app.get("/v1/models")(list_models)
    app.include_router(usage_router)

    logger.info(f"FastAPI application created with {len(backends)} backends")
    return app


def main() -> None:
    """Load config, configure logging and serve with uvicorn."""
    config = load_config()
    settings = resolve_server_settings(config)
    setup_logging(parse_log_level(settings.log_level))
    app = create_app(config)
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
