"""Anthropic-compatible Messages API endpoint."""

import asyncio
import json
import logging
import time
import uuid
from typing import Any, AsyncIterator, Mapping, Optional

import httpx
from fastapi import Request, Response
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.requests import ClientDisconnect

from ...core import (
    InvalidRequestError,
    ModelNotFoundError,
    UpstreamHTTPError,
    open_upstream_stream,
    select_backend,
)
from ...streaming import adapter_for
from ...transform import build_canonical_request, build_gemini_payload, build_openai_payload
from ...usage_metrics import UsageLedger

logger = logging.getLogger("dialect-proxy")


def _anthropic_error_response(
    message: str,
    *,
    error_type: str = "invalid_request_error",
    status_code: int = 400,
    error_code: Optional[str] = None,
    param: Optional[str] = None,
) -> JSONResponse:
    error: dict[str, Any] = {"type": error_type, "message": message}
    if error_code:
        error["code"] = error_code
    if param:
        error["param"] = param
    payload = {"type": "error", "error": error}
    return JSONResponse(payload, status_code=status_code)


async def messages_endpoint(request: Request) -> Response:
    """POST /v1/messages - translated to the configured upstream and re-streamed."""
    # Generate request ID for log correlation
    req_id = uuid.uuid4().hex[:8]
    start_time = time.perf_counter()

    client_host = request.client.host if request.client else "unknown"
    content_length = request.headers.get("content-length", "not-set")
    logger.info(
        f"[{req_id}] Messages API request from {client_host}, Content-Length: {content_length}"
    )

    state = request.app.state
    ledger: UsageLedger = state.ledger
    tracker = ledger.start_request()

    try:
        body = await request.body()
        payload = json.loads(body or b"{}")
    except ClientDisconnect:
        elapsed = time.perf_counter() - start_time
        logger.warning(f"[{req_id}] ClientDisconnect after {elapsed:.3f}s")
        tracker.finish()
        return Response(status_code=499)  # Client Closed Request
    except ValueError as exc:
        logger.info(f"[{req_id}] Invalid JSON payload: {exc}")
        tracker.finish()
        return _anthropic_error_response("Invalid JSON payload", error_code="invalid_json")

    if not isinstance(payload, Mapping):
        tracker.finish()
        return _anthropic_error_response(
            "Request body must be a JSON object",
            error_code="invalid_json_shape",
        )

    model_name = payload.get("model")
    if not isinstance(model_name, str) or not model_name:
        tracker.finish()
        return _anthropic_error_response(
            "You must provide a model parameter",
            error_code="missing_parameter",
            param="model",
        )

    try:
        backend = select_backend(state.backends, model_name, state.default_model)
    except ModelNotFoundError as exc:
        tracker.finish()
        return _anthropic_error_response(
            exc.message,
            error_type="not_found_error",
            status_code=404,
            error_code="model_not_found",
            param="model",
        )

    try:
        canonical = build_canonical_request(payload)
    except InvalidRequestError as exc:
        logger.error(f"[{req_id}] Failed to translate messages request: {exc}")
        tracker.finish()
        return _anthropic_error_response(exc.message, error_code=exc.code)

    if canonical.dropped_params:
        logger.debug(f"[{req_id}] Dropped unsupported params: {', '.join(canonical.dropped_params)}")
    if not canonical.stream:
        logger.debug(f"[{req_id}] Non-streaming request; responding with a stream anyway")

    if backend.api_type == "openai":
        upstream_payload = build_openai_payload(canonical, backend.target_model)
    else:
        upstream_payload = build_gemini_payload(canonical, backend.target_model)
    upstream_body = json.dumps(upstream_payload, ensure_ascii=False).encode("utf-8")

    if logger.isEnabledFor(logging.DEBUG):
        logger.debug(
            f"[{req_id}] Forwarding to backend: name={backend.name}, api_type={backend.api_type}, "
            f"target_model={backend.target_model}, turns={len(canonical.turns)}, "
            f"tools={len(canonical.tools)}"
        )

    try:
        upstream = await open_upstream_stream(backend, upstream_body)
    except UpstreamHTTPError as exc:
        tracker.finish()
        return _anthropic_error_response(
            exc.message,
            error_type="api_error",
            status_code=exc.status_code,
        )
    except httpx.HTTPError as exc:
        elapsed = time.perf_counter() - start_time
        logger.error(f"[{req_id}] Backend error after {elapsed:.3f}s: {exc}")
        tracker.finish()
        return _anthropic_error_response(
            f"Failed to reach {backend.provider_label}: {exc}",
            error_type="api_error",
            status_code=502,
            error_code="backend_error",
        )

    message_id = f"msg_{uuid.uuid4().hex[:24]}"
    adapter = adapter_for(backend.api_type)(
        message_id,
        backend.target_model,
        ledger=ledger,
        context_window=backend.context_window,
    )

    elapsed = time.perf_counter() - start_time
    logger.info(f"[{req_id}] Starting streaming response for {model_name}, setup took {elapsed:.3f}s")

    async def adapted_stream() -> AsyncIterator[bytes]:
        """Re-emit the upstream stream; release it however the client leaves."""
        try:
            async for event in adapter.adapt_stream(upstream.aiter_bytes()):
                yield event
        except (asyncio.CancelledError, GeneratorExit):
            adapter.cancel()
            logger.info(f"[{req_id}] Client disconnected mid-stream")
            raise
        finally:
            await upstream.aclose()
            tracker.finish()
            logger.debug(f"[{req_id}] Stream finished in {time.perf_counter() - start_time:.3f}s")

    return StreamingResponse(
        adapted_stream(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache"},
    )
