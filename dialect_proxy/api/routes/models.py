"""Models listing endpoint."""

import logging

from fastapi import Request

logger = logging.getLogger("dialect-proxy")


async def list_models(request: Request) -> dict:
    """List configured model names.

    GET /v1/models
    """
    logger.info("Received models list request")
    backends = request.app.state.backends
    return {
        "object": "list",
        "data": [
            {
                "id": name,
                "object": "model",
                "owned_by": backend.provider_label.lower(),
                "target_model": backend.target_model,
            }
            for name, backend in backends.items()
        ],
    }
