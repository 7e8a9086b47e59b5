"""Chat adapter: marker sections over a multi-message conversation.

Request layout:
    system: Instructions + field descriptions + section format
    [demo user/assistant pairs...]
    [history user/assistant pairs...]
    user: current inputs as `[[ ## field ## ]]` sections

Parsing:
- unknown markers are ignored
- duplicate markers: the first occurrence wins
- if required markers are missing and the text holds a JSON object, the JSON
  adapter parses it instead
"""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from typing import Any

from typedlm.adapters.base import Adapter, Demo
from typedlm.adapters.formatting import (
    describe_signature,
    history_messages,
    instruction_line,
    present_pairs,
    render_marker_sections,
    section_marker,
)
from typedlm.adapters.json_adapter import JSONAdapter
from typedlm.errors import ErrorKind, ParseOutcome, TaggedError, err
from typedlm.history import extract_turns
from typedlm.llm.base import LMRequest, Message
from typedlm.signature import Signature
from typedlm.tools import render_tools
from typedlm.typed_outputs import cast_outputs, parse_json_object

_MARKER = re.compile(r'\[\[\s*##\s*([A-Za-z0-9_]+)\s*##\s*\]\]')


def extract_sections(text: str, allowed: set[str]) -> dict[str, str]:
    """Section bodies keyed by field name; unknown names ignored, first wins."""
    matches = list(_MARKER.finditer(text))
    sections: dict[str, str] = {}
    for i, match in enumerate(matches):
        name = match.group(1)
        if name not in allowed or name in sections:
            continue
        end = matches[i + 1].start() if i + 1 < len(matches) else len(text)
        sections[name] = text[match.end() : end].strip()
    return sections


class ChatAdapter(Adapter):
    name = 'chat'

    def __init__(self, *, fallback: Adapter | None = None) -> None:
        self._fallback = fallback or JSONAdapter()

    def format_instructions(self, signature: Signature) -> str:
        lines = []
        for f in signature.text_output_fields:
            lines.append(section_marker(f.name) if f.required else f'{section_marker(f.name)} (optional)')
        return 'Respond with the following sections (one per output field):\n' + '\n'.join(lines)

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

        system = '\n\n'.join(
            s
            for s in (instruction_line(signature), describe_signature(signature), self.format_instructions(signature))
            if s
        )
        messages = [Message(role='system', content=system)]

        for demo in demos:
            messages.append(
                Message(role='user', content=render_marker_sections(present_pairs(signature.prompt_input_fields, demo)))
            )
            messages.append(
                Message(
                    role='assistant',
                    content=render_marker_sections(present_pairs(signature.text_output_fields, demo)),
                )
            )

        messages.extend(
            history_messages(
                signature,
                turns,
                render_inputs=render_marker_sections,
                render_outputs=render_marker_sections,
            )
        )
        messages.append(
            Message(
                role='user',
                content=render_marker_sections(present_pairs(signature.prompt_input_fields, current_inputs)),
            )
        )
        return LMRequest(messages=tuple(messages), tools=render_tools(signature, inputs))

    def parse_outputs(self, signature: Signature, text: str) -> ParseOutcome:
        fields = signature.text_output_fields
        sections = extract_sections(text, {f.name for f in fields})

        missing = [f.name for f in fields if f.required and f.name not in sections]
        if missing:
            if not isinstance(parse_json_object(text), TaggedError):
                return self._fallback.parse_outputs(signature, text)
            return err(ErrorKind.MISSING_REQUIRED_OUTPUTS, fields=missing)

        # All required markers were found: type errors are reported, not retried as JSON.
        return cast_outputs(fields, sections, drop_invalid_optional=True)
