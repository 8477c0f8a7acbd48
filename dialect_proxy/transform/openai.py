"""Canonical request -> OpenAI Chat Completions payload.

Key mappings:
- system prompt -> leading system message
- tool_result blocks -> ``tool`` messages (ahead of the rest of the turn)
- tool_use blocks -> assistant ``tool_calls``
- images -> ``image_url`` parts (base64 data becomes a data URL)
- tools -> ``function`` tools; tool_choice any/tool -> required/function
- stop_sequences -> stop

Reference:
- OpenAI Chat Completions: https://platform.openai.com/docs/api-reference/chat
"""

from __future__ import annotations

import json
import logging
from typing import Any, Mapping, Optional

from ..types import (
    CanonicalRequest,
    ImageBlock,
    TextBlock,
    ToolResultBlock,
    ToolUseBlock,
    Turn,
)
from .normalizer import extract_text_content

logger = logging.getLogger("dialect-proxy")


def _image_part(block: ImageBlock) -> dict[str, Any]:
    if block.data is not None:
        url = f"data:{block.media_type or 'image/png'};base64,{block.data}"
    else:
        url = block.url or ""
    return {"type": "image_url", "image_url": {"url": url}}


def _tool_result_message(block: ToolResultBlock) -> dict[str, Any]:
    content = block.content
    if isinstance(content, str):
        text = content
    elif content is None:
        text = ""
    else:
        text = extract_text_content(content)
    if block.is_error:
        text = f"[Error] {text}"
    return {"role": "tool", "tool_call_id": block.tool_use_id, "content": text}


def _serialize_tool_input(input_data: Any) -> str:
    if isinstance(input_data, str):
        return input_data
    return json.dumps(input_data, ensure_ascii=False)


def convert_turn(turn: Turn) -> list[dict[str, Any]]:
    """Convert one turn into OpenAI messages."""
    if isinstance(turn.content, str):
        return [{"role": turn.role, "content": turn.content}]

    messages: list[dict[str, Any]] = []
    content_parts: list[dict[str, Any]] = []
    tool_calls: list[dict[str, Any]] = []

    for block in turn.content:
        if isinstance(block, TextBlock):
            content_parts.append({"type": "text", "text": block.text})
        elif isinstance(block, ImageBlock):
            content_parts.append(_image_part(block))
        elif isinstance(block, ToolUseBlock):
            tool_calls.append({
                "id": block.id,
                "type": "function",
                "function": {
                    "name": block.name,
                    "arguments": _serialize_tool_input(block.input),
                },
            })
        elif isinstance(block, ToolResultBlock):
            messages.append(_tool_result_message(block))
        else:
            logger.debug(f"Dropping {block.type or 'unknown'} block for OpenAI")

    # Simplify content if it's just text
    content: Any
    if len(content_parts) == 1 and content_parts[0]["type"] == "text":
        content = content_parts[0]["text"]
    elif content_parts:
        content = content_parts
    else:
        content = None

    if turn.role == "assistant":
        message: dict[str, Any] = {"role": "assistant", "content": content}
        if tool_calls:
            message["tool_calls"] = tool_calls
        if content is not None or tool_calls:
            messages.append(message)
    elif content is not None:
        messages.append({"role": turn.role, "content": content})

    return messages


def convert_tool_choice(tool_choice: Optional[Mapping[str, Any]]) -> Any:
    """Messages tool_choice -> OpenAI tool_choice."""
    if not tool_choice:
        return None
    choice_type = tool_choice.get("type")
    if choice_type == "tool":
        return {"type": "function", "function": {"name": tool_choice.get("name", "")}}
    if choice_type == "any":
        return "required"
    if choice_type in ("auto", "none"):
        return choice_type
    return None


def build_openai_payload(request: CanonicalRequest, model_id: str) -> dict[str, Any]:
    """Render a canonical request as a streaming chat completions body.

    Args:
        request: The canonical request
        model_id: Upstream model name

    Returns:
        OpenAI Chat Completions request body
    """
    messages: list[dict[str, Any]] = []
    if request.system:
        messages.append({"role": "system", "content": request.system})
    for turn in request.turns:
        messages.extend(convert_turn(turn))

    payload: dict[str, Any] = {
        "model": model_id,
        "messages": messages,
        "stream": True,
        "stream_options": {"include_usage": True},
    }

    params = request.params
    if params.max_tokens is not None:
        payload["max_tokens"] = params.max_tokens
    if params.stop_sequences is not None:
        payload["stop"] = list(params.stop_sequences)
    if params.temperature is not None:
        payload["temperature"] = params.temperature
    if params.top_p is not None:
        payload["top_p"] = params.top_p
    if params.top_k is not None:
        logger.debug(f"top_k={params.top_k} is not supported by OpenAI, ignoring")

    if request.tools:
        payload["tools"] = [
            {
                "type": "function",
                "function": {
                    "name": tool.name,
                    "description": tool.description or "",
                    "parameters": tool.input_schema or {"type": "object", "properties": {}},
                },
            }
            for tool in request.tools
        ]

    tool_choice = convert_tool_choice(request.tool_choice)
    if tool_choice is not None:
        payload["tool_choice"] = tool_choice

    if request.metadata and request.metadata.get("user_id"):
        payload["user"] = request.metadata["user_id"]

    return payload
