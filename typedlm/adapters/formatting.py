"""Rendering helpers shared by the adapters.

Everything here is deterministic: the same signature, inputs and demos always
render to the same text, which keeps requests byte-comparable across runs.
"""

from __future__ import annotations

import json
from collections.abc import Callable, Mapping, Sequence
from typing import Any

from pydantic import BaseModel

from typedlm.attachments import ATTACHMENTS_PLACEHOLDER, Attachments
from typedlm.history import HistoryTurn
from typedlm.llm.base import Message
from typedlm.signature import Field, Signature

PairRenderer = Callable[[Sequence[tuple[Field, Any]]], str]


def format_value(value: Any) -> str:
    """Single-line, stable text for a field value."""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if value is None:
        return ''
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, Attachments):
        return ATTACHMENTS_PLACEHOLDER
    if isinstance(value, BaseModel):
        return value.model_dump_json()
    return json.dumps(jsonable(value), ensure_ascii=False, sort_keys=True, default=str)


def jsonable(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode='json')
    if isinstance(value, tuple):
        return [jsonable(v) for v in value]
    if isinstance(value, list):
        return [jsonable(v) for v in value]
    if isinstance(value, dict):
        return {k: jsonable(v) for k, v in value.items()}
    return value


def present_pairs(fields: Sequence[Field], data: Mapping[str, Any]) -> list[tuple[Field, Any]]:
    """(field, value) for every field present in `data`, in field order."""
    return [(f, data[f.name]) for f in fields if f.name in data]


def render_label_lines(pairs: Sequence[tuple[Field, Any]]) -> str:
    return '\n'.join(f'{f.marker}: {format_value(v)}' for f, v in pairs)


def render_json_object(pairs: Sequence[tuple[Field, Any]]) -> str:
    return json.dumps({f.name: jsonable(v) for f, v in pairs}, ensure_ascii=False, default=str)


def section_marker(name: str) -> str:
    return f'[[ ## {name} ## ]]'


def render_marker_sections(pairs: Sequence[tuple[Field, Any]]) -> str:
    return '\n\n'.join(f'{section_marker(f.name)}\n{format_value(v)}' for f, v in pairs)


def describe_fields(label: str, fields: Sequence[Field]) -> str | None:
    if not fields:
        return None
    lines = []
    for f in fields:
        suffix = ''
        if f.one_of:
            suffix = f" (one of: {', '.join(format_value(v) for v in f.one_of)})"
        lines.append(f'- {f.name}: {f.description}{suffix}')
    return f'{label} Fields:\n' + '\n'.join(lines)


def describe_signature(signature: Signature) -> str | None:
    parts = [
        describe_fields('Input', signature.prompt_input_fields),
        describe_fields('Output', signature.text_output_fields),
    ]
    joined = '\n\n'.join(p for p in parts if p)
    return joined or None


def instruction_line(signature: Signature) -> str | None:
    if not signature.instructions:
        return None
    return f'Instructions: {signature.instructions}'


def turn_pairs(signature: Signature, turn: HistoryTurn) -> tuple[list[tuple[Field, Any]], list[tuple[Field, Any]]]:
    inputs = [(signature.field(name), value) for name, value in turn.inputs]
    outputs = [(signature.field(name), value) for name, value in turn.outputs]
    return inputs, outputs


def history_messages(
    signature: Signature,
    turns: Sequence[HistoryTurn],
    *,
    render_inputs: PairRenderer,
    render_outputs: PairRenderer,
) -> list[Message]:
    """One user/assistant message pair per prior turn, oldest first."""
    messages: list[Message] = []
    for turn in turns:
        inputs, outputs = turn_pairs(signature, turn)
        messages.append(Message(role='user', content=render_inputs(inputs)))
        messages.append(Message(role='assistant', content=render_outputs(outputs)))
    return messages


def render_examples(
    signature: Signature,
    demos: Sequence[Mapping[str, Any]],
    *,
    render_outputs: PairRenderer,
) -> str | None:
    """Numbered `Example N:` blocks, in the order given."""
    if not demos:
        return None
    blocks = []
    for index, demo in enumerate(demos, start=1):
        inputs = render_label_lines(present_pairs(signature.prompt_input_fields, demo))
        outputs = render_outputs(present_pairs(signature.text_output_fields, demo))
        blocks.append(f'Example {index}:\n{inputs}\n{outputs}')
    return 'Examples:\n\n' + '\n\n'.join(blocks)


def build_text_prompt(
    signature: Signature,
    inputs: Mapping[str, Any],
    demos: Sequence[Mapping[str, Any]],
    *,
    format_instructions: str,
    render_demo_outputs: PairRenderer,
    output_labels: bool,
) -> str:
    """Single-message prompt: instructions, format, fields, examples, current inputs."""
    current = render_label_lines(present_pairs(signature.prompt_input_fields, inputs))
    if output_labels:
        labels = '\n'.join(f'{f.marker}:' for f in signature.text_output_fields)
        current = f'{current}\n{labels}' if current else labels

    sections = [
        instruction_line(signature),
        format_instructions,
        describe_signature(signature),
        render_examples(signature, demos, render_outputs=render_demo_outputs),
        current,
    ]
    return '\n\n'.join(s for s in sections if s)
