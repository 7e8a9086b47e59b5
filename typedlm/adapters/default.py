"""Default adapter: `Name: value` lines in a single user message.

Request layout:
    [history user/assistant pairs...]
    user: Instructions / format / field descriptions / Examples / current inputs

Parsing accepts either a JSON object carrying the output keys or labeled lines
(`Answer: 42`), so a model that answers a "Return JSON only" retry prompt is
still understood.
"""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from typing import Any

from typedlm.adapters.base import Adapter, Demo
from typedlm.adapters.formatting import build_text_prompt, history_messages, render_label_lines
from typedlm.errors import ErrorKind, ParseOutcome, TaggedError, err
from typedlm.history import extract_turns
from typedlm.llm.base import LMRequest, Message
from typedlm.signature import Field, Signature
from typedlm.tools import render_tools
from typedlm.typed_outputs import cast_outputs, parse_json_object


def extract_labeled_value(text: str, field: Field, boundaries: Sequence[Field]) -> str | None:
    """Value following `Marker:` at the start of a line, up to the next known marker."""
    others = '|'.join(re.escape(f.marker) for f in boundaries if f.name != field.name)
    stop = rf'(?=\n[ \t]*(?:{others})[ \t]*:|\Z)' if others else r'(?=\Z)'
    pattern = re.compile(rf'^[ \t]*{re.escape(field.marker)}[ \t]*:(.*?){stop}', re.MULTILINE | re.DOTALL)
    match = pattern.search(text)
    if match is None:
        return None
    value = match.group(1).strip()
    return value or None


class DefaultAdapter(Adapter):
    name = 'default'

    def format_instructions(self, signature: Signature) -> str:
        lines = '\n'.join(f'{f.marker}: [your {f.description}]' for f in signature.text_output_fields)
        return f'Follow this exact format for your response:\n{lines}'

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
            render_demo_outputs=render_label_lines,
            output_labels=True,
        )
        messages = history_messages(
            signature,
            turns,
            render_inputs=render_label_lines,
            render_outputs=render_label_lines,
        )
        messages.append(Message(role='user', content=prompt))
        return LMRequest(messages=tuple(messages), tools=render_tools(signature, inputs))

    def parse_outputs(self, signature: Signature, text: str) -> ParseOutcome:
        fields = signature.text_output_fields
        raw: dict[str, Any] = {}

        decoded = parse_json_object(text)
        if isinstance(decoded, dict):
            raw = {f.name: decoded[f.name] for f in fields if f.name in decoded}

        boundaries = (*signature.prompt_input_fields, *fields)
        for f in fields:
            if f.name in raw:
                continue
            value = extract_labeled_value(text, f, boundaries)
            if value is not None:
                raw[f.name] = value

        outcome = cast_outputs(fields, raw, drop_invalid_optional=True)
        if not outcome.ok:
            return outcome

        missing = [f.name for f in fields if f.required and f.name not in outcome.values]
        if missing:
            return err(ErrorKind.MISSING_REQUIRED_OUTPUTS, fields=missing)
        return outcome
