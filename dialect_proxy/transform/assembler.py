"""Inbound request assembly.

Runs the pure transcoding stages over an inbound payload and returns one
CanonicalRequest: tool mapping, message normalization, then root-level
sanitization. Target dialect payloads are rendered from the result by
``gemini.build_gemini_payload`` and ``openai.build_openai_payload``.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

from ..core.exceptions import InvalidRequestError
from ..types import CanonicalRequest, GenerationParams
from .normalizer import flatten_system, normalize_messages
from .sanitizer import sanitize_root
from .tools import map_tool_choice, map_tools, merge_tool_entries

logger = logging.getLogger("dialect-proxy")

_CANONICAL_KEYS = frozenset({
    "model",
    "messages",
    "system",
    "tools",
    "tool_choice",
    "temperature",
    "top_p",
    "top_k",
    "max_tokens",
    "stop_sequences",
    "thinking",
    "metadata",
    "stream",
})


def _as_list(value: Any) -> list[Any]:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def _stop_sequences(value: Any) -> Optional[tuple[str, ...]]:
    if value is None:
        return None
    if isinstance(value, (list, tuple)):
        items = tuple(str(item) for item in value if item is not None)
        return items or None
    return (str(value),)


def build_canonical_request(payload: Mapping[str, Any]) -> CanonicalRequest:
    """Translate an inbound Messages or OpenAI-shaped payload.

    Args:
        payload: Raw inbound request body. It is not modified.

    Returns:
        The canonical request, including the list of dropped parameters.

    Raises:
        InvalidRequestError: If the payload is not a JSON object.
    """
    if not isinstance(payload, Mapping):
        raise InvalidRequestError("Request body must be a JSON object", code="invalid_json_shape")

    tools = map_tools(
        merge_tool_entries(_as_list(payload.get("tools")), _as_list(payload.get("functions")))
    )
    tool_choice = map_tool_choice(payload.get("tool_choice"), payload.get("function_call"))

    normalized = normalize_messages(_as_list(payload.get("messages")))
    # System/developer turns win over a top-level system prompt
    system = normalized.system if normalized.system is not None else flatten_system(payload.get("system"))

    sanitized = sanitize_root(payload)
    req = sanitized.payload

    thinking = req.get("thinking")
    params = GenerationParams(
        temperature=req.get("temperature"),
        top_p=req.get("top_p"),
        top_k=req.get("top_k"),
        max_tokens=req.get("max_tokens"),
        stop_sequences=_stop_sequences(req.get("stop_sequences")),
        thinking=thinking if isinstance(thinking, Mapping) else None,
    )

    metadata = req.get("metadata")
    extra = {key: value for key, value in req.items() if key not in _CANONICAL_KEYS}

    request = CanonicalRequest(
        model=str(req.get("model") or ""),
        turns=normalized.turns,
        system=system,
        tools=tools,
        tool_choice=tool_choice,
        params=params,
        metadata=metadata if isinstance(metadata, Mapping) else None,
        stream=bool(req.get("stream")),
        dropped_params=tuple(sanitized.dropped),
        extra=extra,
    )

    if logger.isEnabledFor(logging.DEBUG):
        logger.debug(
            f"Canonical request: model={request.model}, turns={len(request.turns)}, "
            f"tools={len(request.tools)}, system={'yes' if request.system else 'no'}"
        )
    return request
