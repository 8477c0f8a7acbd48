"""Root-level parameter sanitization.

OpenAI-flavoured requests carry sampling and formatting knobs the Messages
dialect has no equivalent for. They are renamed where a counterpart exists
and dropped otherwise; the dropped names are reported so callers can log
them.
"""

from __future__ import annotations

import copy
import logging
from typing import Any, Mapping, NamedTuple

logger = logging.getLogger("dialect-proxy")

DEFAULT_MAX_TOKENS = 4096

DROP_KEYS: tuple[str, ...] = (
    "n",
    "presence_penalty",
    "frequency_penalty",
    "best_of",
    "logit_bias",
    "seed",
    "stream_options",
    "logprobs",
    "top_logprobs",
    "user",
    "response_format",
    "service_tier",
    "parallel_tool_calls",
    "functions",
    "function_call",
    "developer",
    "strict",
    "reasoning_effort",
)


class SanitizedRequest(NamedTuple):
    """A sanitized copy of the payload and the keys removed from it."""

    payload: dict[str, Any]
    dropped: list[str]


def sanitize_root(payload: Mapping[str, Any]) -> SanitizedRequest:
    """Rename, drop and default root-level request fields.

    Steps, in order:
    1. ``stop`` becomes ``stop_sequences`` (a scalar becomes a one-element list, null is dropped)
    2. a truthy ``user`` moves into ``metadata.user_id``
    3. every key in DROP_KEYS is removed and recorded
    4. ``max_tokens`` defaults to 4096 when absent or null

    The input mapping is not modified.
    """
    req = copy.deepcopy(dict(payload))
    dropped: list[str] = []

    stop = req.pop("stop", None)
    if stop is not None:
        req["stop_sequences"] = list(stop) if isinstance(stop, (list, tuple)) else [stop]

    if req.get("user"):
        metadata = req.get("metadata")
        merged = dict(metadata) if isinstance(metadata, Mapping) else {}
        merged["user_id"] = req.pop("user")
        req["metadata"] = merged
        dropped.append("user")

    for key in DROP_KEYS:
        if key in req:
            del req[key]
            if key not in dropped:
                dropped.append(key)

    if req.get("max_tokens") is None:
        req["max_tokens"] = DEFAULT_MAX_TOKENS

    if dropped:
        logger.debug(f"Dropped unsupported parameters: {', '.join(dropped)}")

    return SanitizedRequest(payload=req, dropped=dropped)
