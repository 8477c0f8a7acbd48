"""Tool declaration, tool choice and JSON-Schema mapping.

Key mappings:
- OpenAI ``tools`` + legacy ``functions`` -> one list of ToolDeclaration
- OpenAI ``tool_choice`` / legacy ``function_call`` -> Messages tool_choice
- Messages input_schema -> Gemini ``parameters`` (unsupported keywords pruned)
"""

from __future__ import annotations

import copy
import logging
from typing import Any, Iterable, Mapping, Optional

from ..types import ToolDeclaration

logger = logging.getLogger("dialect-proxy")

# JSON-Schema keywords Gemini's function declarations reject
GEMINI_UNSUPPORTED_SCHEMA_FIELDS = frozenset({
    "$schema",
    "additionalProperties",
    "exclusiveMinimum",
    "exclusiveMaximum",
    "multipleOf",
    "patternProperties",
    "dependencies",
    "const",
    "if",
    "then",
    "else",
    "allOf",
    "anyOf",
    "oneOf",
    "not",
})


def remove_uri_format(schema: Any) -> Any:
    """Recursively drop ``format: "uri"`` from string-typed schemas."""
    if isinstance(schema, list):
        return [remove_uri_format(item) for item in schema]
    if not isinstance(schema, Mapping):
        return schema

    if schema.get("type") == "string" and schema.get("format") == "uri":
        return {key: value for key, value in schema.items() if key != "format"}

    return {key: remove_uri_format(value) for key, value in schema.items()}


def clean_schema_for_gemini(schema: Any) -> Any:
    """Recursively remove JSON-Schema keywords Gemini does not support.

    Keywords are pruned at every nesting level. Property names under
    ``properties`` are never treated as keywords, so a property called
    ``not`` or ``const`` survives.
    """
    if isinstance(schema, list):
        return [clean_schema_for_gemini(item) for item in schema]
    if not isinstance(schema, Mapping):
        return schema

    cleaned: dict[str, Any] = {}
    for key, value in schema.items():
        if key in GEMINI_UNSUPPORTED_SCHEMA_FIELDS:
            continue
        if key == "properties" and isinstance(value, Mapping):
            cleaned[key] = {name: clean_schema_for_gemini(prop) for name, prop in value.items()}
        elif isinstance(value, (Mapping, list)):
            cleaned[key] = clean_schema_for_gemini(value)
        else:
            cleaned[key] = value
    return cleaned


def merge_tool_entries(
    tools: Optional[Iterable[Any]],
    functions: Optional[Iterable[Any]],
) -> list[Mapping[str, Any]]:
    """Combine modern ``tools`` and legacy ``functions`` into one list.

    Legacy entries are wrapped as ``{"type": "function", "function": entry}``.
    """
    entries: list[Mapping[str, Any]] = []
    for tool in tools or []:
        if isinstance(tool, Mapping):
            entries.append(tool)
    for function in functions or []:
        if isinstance(function, Mapping):
            entries.append({"type": "function", "function": function})
    return entries


def map_tools(entries: Iterable[Mapping[str, Any]]) -> tuple[ToolDeclaration, ...]:
    """Convert OpenAI- or Messages-shaped tool entries to declarations.

    The schema is stripped of ``format: "uri"``. Strict entries get
    ``additionalProperties: false`` as the closest available emulation.
    """
    declarations: list[ToolDeclaration] = []
    for entry in entries:
        function = entry.get("function")
        if not isinstance(function, Mapping):
            function = {}

        name = function.get("name") or entry.get("name") or ""
        description = function.get("description") or entry.get("description")
        raw_schema = function.get("parameters")
        if raw_schema is None:
            raw_schema = entry.get("input_schema")
        schema = remove_uri_format(copy.deepcopy(raw_schema))

        if function.get("strict") is True or entry.get("strict") is True:
            if isinstance(schema, dict):
                schema["additionalProperties"] = False

        declarations.append(ToolDeclaration(name=name, description=description, input_schema=schema))
    return tuple(declarations)


def map_tool_choice(
    tool_choice: Any,
    function_call: Any = None,
) -> Optional[dict[str, Any]]:
    """Convert an OpenAI tool choice directive to the Messages form.

    Returns ``None`` when neither directive is given, meaning the request's
    tool choice is left untouched.
    """
    choice = tool_choice or function_call
    if not choice:
        return None

    if isinstance(choice, str):
        if choice == "none":
            return {"type": "none"}
        if choice == "required":
            return {"type": "any"}
        return {"type": "auto"}

    if isinstance(choice, Mapping):
        function = choice.get("function")
        if choice.get("type") == "function" and isinstance(function, Mapping) and function.get("name"):
            return {"type": "tool", "name": function["name"]}
        if choice.get("name"):
            return {"type": "tool", "name": choice["name"]}
        return dict(choice)

    logger.debug(f"Ignoring unrecognised tool_choice: {choice!r}")
    return None
