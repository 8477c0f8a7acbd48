"""Canonical request -> Gemini generateContent payload.

Key mappings:
- system prompt -> ``systemInstruction``
- turns -> ``contents`` (assistant is renamed "model")
- tool_use -> ``functionCall`` part, with a sibling ``thoughtSignature``
- tool_result -> a separate "function" turn holding a ``functionResponse``
- generation params -> ``generationConfig``
- tools -> ``tools[0].functionDeclarations`` with pruned schemas
- thinking budget -> ``thinking_level`` (gemini-3) or ``thinking_config``

Reference:
- Gemini API: https://ai.google.dev/api/generate-content
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

from ..types import (
    CanonicalRequest,
    GeminiContent,
    GeminiPart,
    ImageBlock,
    TextBlock,
    ToolResultBlock,
    ToolUseBlock,
    Turn,
)
from .tools import clean_schema_for_gemini

logger = logging.getLogger("dialect-proxy")

MAX_THINKING_BUDGET = 24576
HIGH_THINKING_THRESHOLD = 16000
DEFAULT_IMAGE_MEDIA_TYPE = "image/png"


def _tool_use_part(block: ToolUseBlock) -> GeminiPart:
    part: GeminiPart = {"functionCall": {"name": block.name, "args": block.input}}
    signature = block.thought_signature
    if signature is not None:
        part["thoughtSignature"] = signature
    return part


def _tool_result_content(block: ToolResultBlock) -> GeminiContent:
    content = block.content
    if not isinstance(content, str):
        content = json.dumps(content, ensure_ascii=False)
    return {
        "role": "function",
        "parts": [
            {
                "functionResponse": {
                    "name": block.tool_use_id,
                    "response": {"content": content},
                }
            }
        ],
    }


def convert_turn(turn: Turn) -> list[GeminiContent]:
    """Convert one turn into Gemini contents.

    Tool results are emitted as their own "function" turns, ahead of the
    turn that carried them. Turns left without parts are dropped.
    """
    role = "model" if turn.role == "assistant" else turn.role
    parts: list[GeminiPart] = []
    contents: list[GeminiContent] = []

    if isinstance(turn.content, str):
        parts.append({"text": turn.content})
    else:
        for block in turn.content:
            if isinstance(block, TextBlock):
                parts.append({"text": block.text})
            elif isinstance(block, ImageBlock):
                if block.data is None:
                    logger.warning("Skipping URL image: Gemini only accepts inline image data")
                    continue
                parts.append({
                    "inlineData": {
                        "mimeType": block.media_type or DEFAULT_IMAGE_MEDIA_TYPE,
                        "data": block.data,
                    }
                })
            elif isinstance(block, ToolUseBlock):
                parts.append(_tool_use_part(block))
            elif isinstance(block, ToolResultBlock):
                contents.append(_tool_result_content(block))
            else:
                logger.debug(f"Dropping {block.type or 'unknown'} block for Gemini")

    if parts:
        contents.append({"role": role, "parts": parts})
    return contents


def _generation_config(request: CanonicalRequest) -> dict[str, Any]:
    params = request.params
    config: dict[str, Any] = {}
    if params.temperature is not None:
        config["temperature"] = params.temperature
    if params.max_tokens is not None:
        config["maxOutputTokens"] = params.max_tokens
    if params.stop_sequences is not None:
        config["stopSequences"] = list(params.stop_sequences)
    if params.top_p is not None:
        config["topP"] = params.top_p
    if params.top_k is not None:
        config["topK"] = params.top_k
    return config


def thinking_directive(model_id: str, budget: Optional[int]) -> dict[str, Any]:
    """Map a thinking token budget onto the model family's directive."""
    if budget is None:
        return {}
    if "gemini-3" in model_id:
        return {"thinking_level": "high" if budget >= HIGH_THINKING_THRESHOLD else "low"}
    return {"thinking_config": {"thinking_budget": min(budget, MAX_THINKING_BUDGET)}}


def build_gemini_payload(request: CanonicalRequest, model_id: str) -> dict[str, Any]:
    """Render a canonical request as a streamGenerateContent body.

    Args:
        request: The canonical request
        model_id: Upstream Gemini model name; selects the thinking directive

    Returns:
        Gemini request body
    """
    payload: dict[str, Any] = {"contents": []}

    if request.system:
        payload["systemInstruction"] = {"parts": [{"text": request.system}]}

    for turn in request.turns:
        payload["contents"].extend(convert_turn(turn))

    payload["generationConfig"] = _generation_config(request)

    if request.tools:
        declarations = []
        for tool in request.tools:
            declaration: dict[str, Any] = {"name": tool.name}
            if tool.description is not None:
                declaration["description"] = tool.description
            if tool.input_schema is not None:
                declaration["parameters"] = clean_schema_for_gemini(tool.input_schema)
            declarations.append(declaration)
        payload["tools"] = [{"functionDeclarations": declarations}]

    if request.params.thinking is not None:
        directive = thinking_directive(model_id, request.params.thinking_budget)
        if not directive:
            logger.debug("Thinking requested without a budget, no directive sent")
        payload.update(directive)

    return payload
