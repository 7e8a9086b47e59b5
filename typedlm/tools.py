"""Tool declarations and structured tool calls.

Declarations flow out through `LMRequest.tools` in the chat-completions
`{"type": "function", ...}` wire shape. Tool calls flow back only through the
structured `tool_calls` field of the response message; they are never scraped
out of free text.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, Field

from typedlm.errors import ErrorKind, TaggedError
from typedlm.signature import Signature


class ToolParameter(BaseModel):
    """One declared tool parameter."""

    name: str = Field(min_length=1)
    type: str = 'string'
    description: str = ''
    required: bool = True


class ToolSpec(BaseModel):
    """A tool the model may call.

    Examples:
        >>> ToolSpec(name='add', description='Adds', parameters=[ToolParameter(name='a', type='integer')]).to_wire()['function']['parameters']['required']
        ['a']
    """

    name: str = Field(min_length=1)
    description: str = ''
    parameters: list[ToolParameter] = Field(default_factory=list)

    def to_wire(self) -> dict[str, Any]:
        properties: dict[str, Any] = {}
        for p in self.parameters:
            prop: dict[str, Any] = {'type': p.type}
            if p.description:
                prop['description'] = p.description
            properties[p.name] = prop
        return {
            'type': 'function',
            'function': {
                'name': self.name,
                'description': self.description,
                'parameters': {
                    'type': 'object',
                    'properties': properties,
                    'required': [p.name for p in self.parameters if p.required],
                },
            },
        }


class ToolCall(BaseModel):
    """A tool call envelope taken from a structured LM response."""

    name: str
    args: Any = Field(default_factory=dict)


def render_tools(signature: Signature, inputs: Mapping[str, Any]) -> list[dict[str, Any]] | None:
    """Wire-shaped declarations for the signature's tool field.

    Returns None (not an empty list) when the signature declares no tools or the
    caller supplied none, so tool-less requests keep their exact shape.
    """
    tools_field = signature.tool_declarations_field
    if tools_field is None:
        return None
    declared = inputs.get(tools_field.name)
    if not declared:
        return None

    rendered: list[dict[str, Any]] = []
    for tool in declared:
        if isinstance(tool, ToolSpec):
            rendered.append(tool.to_wire())
        elif isinstance(tool, Mapping) and tool.get('type') == 'function':
            rendered.append(dict(tool))
        elif isinstance(tool, Mapping):
            rendered.append(ToolSpec.model_validate(tool).to_wire())
        else:
            raise TypeError(f'Unsupported tool declaration: {type(tool).__name__}')
    return rendered


def parse_tool_calls(raw_calls: Any) -> list[ToolCall] | TaggedError:
    """Normalize structured tool calls from a response message.

    Each call's `arguments` string must decode on its own. A malformed string is
    reported immediately as invalid_tool_call_arguments for that tool; it is
    never passed through output repair.
    """
    if not raw_calls:
        return []
    if not isinstance(raw_calls, list):
        return TaggedError(ErrorKind.INVALID_TOOL_CALL, {'reason': 'not_a_list'})

    calls: list[ToolCall] = []
    for raw in raw_calls:
        if not isinstance(raw, Mapping):
            return TaggedError(ErrorKind.INVALID_TOOL_CALL, {'reason': 'not_a_mapping'})

        function = raw.get('function') or {}
        name = function.get('name') or raw.get('name')
        if not isinstance(name, str) or not name:
            return TaggedError(ErrorKind.INVALID_TOOL_CALL, {'reason': 'missing_name'})

        arguments = function.get('arguments', raw.get('arguments'))
        if arguments is None:
            args: Any = {}
        elif isinstance(arguments, (dict, list)):
            args = arguments
        elif isinstance(arguments, str):
            try:
                args = json.loads(arguments) if arguments.strip() else {}
            except json.JSONDecodeError:
                return TaggedError(ErrorKind.INVALID_TOOL_CALL_ARGUMENTS, {'name': name})
        else:
            return TaggedError(ErrorKind.INVALID_TOOL_CALL_ARGUMENTS, {'name': name})

        calls.append(ToolCall(name=name, args=args))
    return calls
