"""Canonical, dialect-agnostic request model.

Inbound payloads are parsed into these immutable structures once, at the
boundary. Every target dialect renders from them, so dialect-specific code
never has to sniff for alternate field shapes.

Content blocks form a tagged variant keyed by ``type``:
- TextBlock: plain text
- ImageBlock: base64 image (or a URL reference)
- ToolUseBlock: a tool invocation made by the assistant
- ToolResultBlock: the result of a previous tool invocation
- OpaqueBlock: any other block kind, kept verbatim
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Union
from urllib.parse import quote, unquote

THOUGHT_SIGNATURE_MARKER = "__ts_"

# Characters encodeURIComponent leaves alone
_URI_COMPONENT_SAFE = "-_.!~*'()"
_MALFORMED_PERCENT = re.compile(r"%(?![0-9A-Fa-f]{2})")


def embed_thought_signature(tool_id: str, signature: str) -> str:
    """Append a URL-encoded thought signature to a tool-use id."""
    return f"{tool_id}{THOUGHT_SIGNATURE_MARKER}{quote(signature, safe=_URI_COMPONENT_SAFE)}"


def extract_thought_signature(tool_id: Optional[str]) -> Optional[str]:
    """Return the URL-decoded thought signature carried by a tool-use id.

    The signature is opaque and returned verbatim. Missing suffixes, empty
    suffixes and undecodable percent-escapes all yield ``None``.
    """
    if not tool_id or THOUGHT_SIGNATURE_MARKER not in tool_id:
        return None
    encoded = tool_id.split(THOUGHT_SIGNATURE_MARKER)[1]
    if not encoded or _MALFORMED_PERCENT.search(encoded):
        return None
    try:
        return unquote(encoded, errors="strict")
    except UnicodeDecodeError:
        return None


@dataclass(frozen=True)
class TextBlock:
    text: str
    type: str = field(default="text", init=False)

    def to_dict(self) -> dict[str, Any]:
        return {"type": "text", "text": self.text}


@dataclass(frozen=True)
class ImageBlock:
    """An image; either ``data`` (base64) or ``url`` is set."""

    media_type: Optional[str] = None
    data: Optional[str] = None
    url: Optional[str] = None
    type: str = field(default="image", init=False)

    def to_dict(self) -> dict[str, Any]:
        if self.url is not None and self.data is None:
            return {"type": "image", "source": {"type": "url", "url": self.url}}
        source: dict[str, Any] = {"type": "base64", "data": self.data}
        if self.media_type:
            source["media_type"] = self.media_type
        return {"type": "image", "source": source}


@dataclass(frozen=True)
class ToolUseBlock:
    id: str
    name: str
    input: Any = field(default_factory=dict)
    type: str = field(default="tool_use", init=False)

    @property
    def thought_signature(self) -> Optional[str]:
        return extract_thought_signature(self.id)

    def to_dict(self) -> dict[str, Any]:
        return {"type": "tool_use", "id": self.id, "name": self.name, "input": self.input}


@dataclass(frozen=True)
class ToolResultBlock:
    tool_use_id: str
    content: Any = None
    is_error: bool = False
    type: str = field(default="tool_result", init=False)

    def to_dict(self) -> dict[str, Any]:
        block: dict[str, Any] = {
            "type": "tool_result",
            "tool_use_id": self.tool_use_id,
            "content": self.content,
        }
        if self.is_error:
            block["is_error"] = True
        return block


@dataclass(frozen=True)
class OpaqueBlock:
    """A block kind no target dialect maps (thinking, document, ...)."""

    data: Mapping[str, Any]

    @property
    def type(self) -> str:
        return str(self.data.get("type", ""))

    def to_dict(self) -> dict[str, Any]:
        return dict(self.data)


ContentBlock = Union[TextBlock, ImageBlock, ToolUseBlock, ToolResultBlock, OpaqueBlock]


@dataclass(frozen=True)
class Turn:
    """One conversation turn; ``content`` is a string or a tuple of blocks."""

    role: str
    content: Union[str, tuple[ContentBlock, ...]] = ()

    @property
    def blocks(self) -> tuple[ContentBlock, ...]:
        if isinstance(self.content, str):
            return (TextBlock(self.content),)
        return self.content

    def to_dict(self) -> dict[str, Any]:
        if isinstance(self.content, str):
            return {"role": self.role, "content": self.content}
        return {"role": self.role, "content": [block.to_dict() for block in self.content]}


@dataclass(frozen=True)
class ToolDeclaration:
    name: str
    description: Optional[str] = None
    input_schema: Any = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.input_schema,
        }


@dataclass(frozen=True)
class GenerationParams:
    """Sampling and length controls; ``None`` means the field was absent."""

    temperature: Optional[float] = None
    top_p: Optional[float] = None
    top_k: Optional[int] = None
    max_tokens: Optional[int] = None
    stop_sequences: Optional[tuple[str, ...]] = None
    thinking: Optional[Mapping[str, Any]] = None

    @property
    def thinking_budget(self) -> Optional[int]:
        if not isinstance(self.thinking, Mapping):
            return None
        budget = self.thinking.get("budget_tokens")
        if isinstance(budget, bool) or not isinstance(budget, (int, float)):
            return None
        return int(budget)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {}
        for key in ("temperature", "top_p", "top_k", "max_tokens"):
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.stop_sequences is not None:
            result["stop_sequences"] = list(self.stop_sequences)
        if self.thinking is not None:
            result["thinking"] = dict(self.thinking)
        return result


@dataclass(frozen=True)
class CanonicalRequest:
    """A fully normalized request in the Anthropic Messages shape."""

    model: str
    turns: tuple[Turn, ...] = ()
    system: Optional[str] = None
    tools: tuple[ToolDeclaration, ...] = ()
    tool_choice: Optional[Mapping[str, Any]] = None
    params: GenerationParams = field(default_factory=GenerationParams)
    metadata: Optional[Mapping[str, Any]] = None
    stream: bool = False
    dropped_params: tuple[str, ...] = ()
    extra: Mapping[str, Any] = field(default_factory=dict)

    def to_payload(self) -> dict[str, Any]:
        """Render the Messages API request body."""
        payload: dict[str, Any] = dict(self.extra)
        payload["model"] = self.model
        payload["messages"] = [turn.to_dict() for turn in self.turns]
        if self.system is not None:
            payload["system"] = self.system
        payload["tools"] = [tool.to_dict() for tool in self.tools]
        if self.tool_choice is not None:
            payload["tool_choice"] = dict(self.tool_choice)
        if self.metadata is not None:
            payload["metadata"] = dict(self.metadata)
        if self.stream:
            payload["stream"] = True
        payload.update(self.params.to_dict())
        return payload
