"""JSON adapter: exactly one top-level JSON object.

The keyset rule is stricter than `Field.required`: every declared text output
key must be present in the decoded object, optional or not, though an optional
value that fails to cast is dropped rather than failing the parse. Unknown keys are
dropped. A top-level array is always rejected.
"""

from __future__ import annotations

import json
from collections.abc import Mapping, Sequence
from typing import Any

from typedlm.adapters.base import Adapter, Demo
from typedlm.adapters.formatting import build_text_prompt, history_messages, render_json_object, render_label_lines
from typedlm.errors import Err, ErrorKind, ParseOutcome, TaggedError, err
from typedlm.history import extract_turns
from typedlm.llm.base import LMRequest, Message
from typedlm.signature import Signature
from typedlm.tools import render_tools
from typedlm.typed_outputs import cast_outputs, parse_json_object, schema_as_json


def schema_lines(signature: Signature) -> list[str]:
    """One line per schema-attached output field, with its JSON Schema inline."""
    lines = []
    for f in signature.text_output_fields:
        if f.schema is None:
            continue
        schema = json.dumps(schema_as_json(f.schema), ensure_ascii=False, sort_keys=True)
        lines.append(f'The value of "{f.name}" must match this JSON Schema: {schema}')
    return lines


class JSONAdapter(Adapter):
    name = 'json'

    def format_instructions(self, signature: Signature) -> str:
        keys = ', '.join(f.name for f in signature.text_output_fields)
        text = (
            f'Return JSON only. Return a single valid JSON object with keys: {keys}. '
            'Do not include any other text.'
        )
        lines = schema_lines(signature)
        if lines:
            text += '\n' + '\n'.join(lines)
        return text

    def format_request(
        self,
        signature: Signature,
        inputs: Mapping[str, Any],
        demos: Sequence[Demo] = (),
    ) -> LMRequest | TaggedError:
        extracted = extract_turns(signature, inputs)
        if isinstance(extracted, TaggedError):
            return extracted
        current_inputs, turns = extracted

        prompt = build_text_prompt(
            signature,
            current_inputs,
            demos,
            format_instructions=self.format_instructions(signature),
            render_demo_outputs=render_json_object,
            output_labels=False,
        )
        messages = history_messages(
            signature,
            turns,
            render_inputs=render_label_lines,
            render_outputs=render_json_object,
        )
        messages.append(Message(role='user', content=prompt))
        return LMRequest(messages=tuple(messages), tools=render_tools(signature, inputs))

    def parse_outputs(self, signature: Signature, text: str) -> ParseOutcome:
        decoded = parse_json_object(text)
        if isinstance(decoded, TaggedError):
            return Err(decoded)

        fields = signature.text_output_fields
        missing = [f.name for f in fields if f.name not in decoded]
        if missing:
            return err(ErrorKind.MISSING_REQUIRED_OUTPUTS, fields=missing)
        return cast_outputs(fields, decoded, drop_invalid_optional=True)
