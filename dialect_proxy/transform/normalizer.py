"""Conversation turn normalization.

Inbound messages may mix OpenAI chat roles (``system``, ``developer``,
``tool``, legacy ``function``, assistant ``tool_calls``/``function_call``)
with Messages-style content blocks. Each raw message is parsed once into a
tagged variant, then rendered as canonical ``Turn`` objects:

- SystemText: system/developer text, folded into the single system prompt
- ToolResultMessage: becomes a user turn with one tool_result block
- AssistantToolCalls: becomes an assistant turn with tool_use blocks
- PassthroughMessage: everything else, content parsed into blocks
"""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, NamedTuple, Optional, Union

from ..core.exceptions import InvalidRequestError
from ..types import (
    ContentBlock,
    ImageBlock,
    OpaqueBlock,
    TextBlock,
    ToolResultBlock,
    ToolUseBlock,
    Turn,
)

logger = logging.getLogger("dialect-proxy")

SYSTEM_ROLES = frozenset({"system", "developer"})
TOOL_RESULT_ROLES = frozenset({"tool", "function"})


def _json_dumps(value: Any) -> str:
    try:
        return json.dumps(value, ensure_ascii=False)
    except (TypeError, ValueError):
        return str(value)


def extract_text_content(content: Any) -> str:
    """Flatten any message content into plain text.

    Strings are returned verbatim; block lists yield the text of each block
    joined with newlines; mappings yield ``text`` or recurse into
    ``content``. Anything else falls back to its JSON rendering.
    """
    if isinstance(content, str):
        return content

    if isinstance(content, list):
        text_parts: list[str] = []
        for block in content:
            if isinstance(block, str):
                text_parts.append(block)
            elif isinstance(block, Mapping):
                if block.get("type") == "text" and block.get("text"):
                    text_parts.append(block["text"])
                elif block.get("content"):
                    text_parts.append(extract_text_content(block["content"]))
        return "\n".join(text_parts)

    if isinstance(content, Mapping):
        if content.get("text"):
            return content["text"]
        if content.get("content"):
            return extract_text_content(content["content"])

    return _json_dumps(content)


def flatten_system(system: Any) -> Optional[str]:
    """Collapse a top-level ``system`` block list into one string.

    Blank fragments are dropped and the rest joined with a blank line.
    Strings and ``None`` pass through unchanged.
    """
    if system is None or isinstance(system, str):
        return system
    if not isinstance(system, list):
        return extract_text_content(system)

    fragments: list[str] = []
    for item in system:
        if isinstance(item, str):
            text = item
        elif isinstance(item, Mapping):
            if item.get("text"):
                text = item["text"]
            elif item.get("content"):
                inner = item["content"]
                text = inner if isinstance(inner, str) else _json_dumps(inner)
            else:
                text = _json_dumps(item)
        else:
            text = _json_dumps(item)
        if text and text.strip():
            fragments.append(text)
    return "\n\n".join(fragments)


def _parse_data_url(url: str) -> Optional[tuple[str, str]]:
    """Split ``data:<media>;base64,<data>`` into (media_type, data)."""
    if not url.startswith("data:") or ";base64," not in url:
        return None
    header, data = url[len("data:"):].split(";base64,", 1)
    return header or "image/png", data


def _parse_tool_arguments(arguments: Any) -> Any:
    if not isinstance(arguments, str):
        return arguments if arguments is not None else {}
    if not arguments.strip():
        return {}
    try:
        return json.loads(arguments)
    except json.JSONDecodeError:
        logger.warning(f"Tool call arguments are not valid JSON, keeping raw: {arguments[:100]}")
        return {"raw": arguments}


def parse_content_block(raw: Any) -> ContentBlock:
    """Parse one raw content block into its canonical variant."""
    if isinstance(raw, str):
        return TextBlock(raw)
    if not isinstance(raw, Mapping):
        return TextBlock(_json_dumps(raw))

    block_type = raw.get("type", "")

    if block_type == "text":
        return TextBlock(raw.get("text") or "")

    if block_type == "image":
        source = raw.get("source") or {}
        if not isinstance(source, Mapping):
            raise InvalidRequestError("image source must be an object", code="invalid_message")
        if source.get("type") == "url":
            return ImageBlock(media_type=source.get("media_type"), url=source.get("url"))
        return ImageBlock(media_type=source.get("media_type"), data=source.get("data"))

    if block_type == "image_url":
        image_url = raw.get("image_url") or {}
        url = image_url.get("url", "") if isinstance(image_url, Mapping) else str(image_url)
        parsed = _parse_data_url(url)
        if parsed:
            return ImageBlock(media_type=parsed[0], data=parsed[1])
        return ImageBlock(url=url)

    if block_type == "tool_use":
        return ToolUseBlock(
            id=raw.get("id") or f"toolu_{uuid.uuid4().hex[:12]}",
            name=raw.get("name", ""),
            input=raw.get("input") if raw.get("input") is not None else {},
        )

    if block_type == "tool_result":
        return ToolResultBlock(
            tool_use_id=raw.get("tool_use_id", ""),
            content=raw.get("content"),
            is_error=bool(raw.get("is_error", False)),
        )

    return OpaqueBlock(dict(raw))


def parse_content(content: Any) -> Union[str, tuple[ContentBlock, ...]]:
    """Parse message content: strings stay strings, lists become blocks."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return tuple(parse_content_block(block) for block in content)
    if content is None:
        return ()
    logger.debug(f"Unexpected message content type {type(content).__name__}, flattening")
    return extract_text_content(content)


# =============================================================================
# Parsed message variants
# =============================================================================


@dataclass(frozen=True)
class SystemText:
    text: str


@dataclass(frozen=True)
class ToolResultMessage:
    tool_use_id: str
    content: Any


@dataclass(frozen=True)
class AssistantToolCalls:
    text: Optional[str]
    calls: tuple[ToolUseBlock, ...]


@dataclass(frozen=True)
class PassthroughMessage:
    role: str
    content: Union[str, tuple[ContentBlock, ...]]


ParsedMessage = Union[SystemText, ToolResultMessage, AssistantToolCalls, PassthroughMessage]


def _leading_text(content: Any) -> Optional[str]:
    if not content:
        return None
    if isinstance(content, str):
        return content
    return extract_text_content(content) or None


def parse_message(msg: Mapping[str, Any]) -> ParsedMessage:
    """Classify a raw message by role and shape."""
    role = msg.get("role", "user")

    if role in SYSTEM_ROLES:
        return SystemText(extract_text_content(msg.get("content")))

    if role in TOOL_RESULT_ROLES:
        return ToolResultMessage(
            tool_use_id=msg.get("tool_call_id") or msg.get("name") or "",
            content=msg.get("content"),
        )

    if role == "assistant" and msg.get("function_call"):
        call = msg["function_call"]
        if not isinstance(call, Mapping):
            raise InvalidRequestError("function_call must be an object", code="invalid_message")
        return AssistantToolCalls(
            text=_leading_text(msg.get("content")),
            calls=(
                ToolUseBlock(
                    id=call.get("id") or f"call_{uuid.uuid4().hex[:8]}",
                    name=call.get("name", ""),
                    input=_parse_tool_arguments(call.get("arguments")),
                ),
            ),
        )

    if role == "assistant" and msg.get("tool_calls"):
        tool_calls = msg["tool_calls"]
        if not isinstance(tool_calls, list):
            raise InvalidRequestError("tool_calls must be a list", code="invalid_message")
        calls = []
        for tool_call in tool_calls:
            function = (tool_call.get("function") or {}) if isinstance(tool_call, Mapping) else None
            if not isinstance(function, Mapping):
                raise InvalidRequestError(
                    "tool_calls entries must be objects with an object function",
                    code="invalid_message",
                )
            calls.append(
                ToolUseBlock(
                    id=tool_call.get("id") or f"call_{uuid.uuid4().hex[:8]}",
                    name=function.get("name", ""),
                    input=_parse_tool_arguments(function.get("arguments")),
                )
            )
        return AssistantToolCalls(text=_leading_text(msg.get("content")), calls=tuple(calls))

    return PassthroughMessage(role=role, content=parse_content(msg.get("content")))


class NormalizedMessages(NamedTuple):
    turns: tuple[Turn, ...]
    system: Optional[str]


def normalize_messages(messages: Iterable[Mapping[str, Any]]) -> NormalizedMessages:
    """Rewrite inbound messages into canonical turns plus one system prompt.

    ``system`` is ``None`` when no system or developer text was found.
    """
    turns: list[Turn] = []
    system_fragments: list[str] = []

    for msg in messages:
        if not isinstance(msg, Mapping):
            logger.warning(f"Skipping non-object message: {type(msg).__name__}")
            continue
        parsed = parse_message(msg)

        if isinstance(parsed, SystemText):
            if parsed.text:
                system_fragments.append(parsed.text)
        elif isinstance(parsed, ToolResultMessage):
            turns.append(
                Turn(
                    role="user",
                    content=(ToolResultBlock(tool_use_id=parsed.tool_use_id, content=parsed.content),),
                )
            )
        elif isinstance(parsed, AssistantToolCalls):
            blocks: list[ContentBlock] = []
            if parsed.text:
                blocks.append(TextBlock(parsed.text))
            blocks.extend(parsed.calls)
            turns.append(Turn(role="assistant", content=tuple(blocks)))
        else:
            turns.append(Turn(role=parsed.role, content=parsed.content))

    system = "\n\n".join(system_fragments) if system_fragments else None
    return NormalizedMessages(turns=tuple(turns), system=system)
