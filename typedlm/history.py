"""Conversation history for signatures with a `history` input field.

Each history entry is one prior turn: a mapping that holds the signature's
input field values and the output values the model produced for them.
Validation happens here, before any LM call; adapters only render the
validated turns.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, Field

from typedlm.errors import ErrorKind, TaggedError
from typedlm.signature import Signature


class History(BaseModel):
    """Ordered prior turns.

    Examples:
        >>> History(messages=[{'question': 'hi', 'answer': 'hello'}]).messages[0]['answer']
        'hello'
    """

    messages: list[Any] = Field(default_factory=list)


@dataclass(frozen=True)
class HistoryTurn:
    """A validated turn: (name, value) pairs in signature field order."""

    inputs: tuple[tuple[str, Any], ...]
    outputs: tuple[tuple[str, Any], ...]


def extract_turns(
    signature: Signature,
    inputs: Mapping[str, Any],
) -> tuple[dict[str, Any], list[HistoryTurn]] | TaggedError:
    """Split history out of `inputs` and validate it.

    Returns:
        (inputs without the history field, validated turns), or a TaggedError.
        Absent, None and empty history all yield an empty turn list.
    """
    history_field = signature.history_field
    if history_field is None:
        return dict(inputs), []

    filtered = {k: v for k, v in inputs.items() if k != history_field.name}
    value = inputs.get(history_field.name)

    if value is None:
        return filtered, []
    if not isinstance(value, History):
        return TaggedError(
            ErrorKind.INVALID_HISTORY_VALUE,
            {'field': history_field.name, 'expected': 'History', 'got': type(value).__name__},
        )

    turns: list[HistoryTurn] = []
    for index, entry in enumerate(value.messages):
        turn = _validate_turn(signature, entry, index)
        if isinstance(turn, TaggedError):
            return turn
        turns.append(turn)
    return filtered, turns


def _validate_turn(signature: Signature, entry: Any, index: int) -> HistoryTurn | TaggedError:
    if not isinstance(entry, Mapping):
        return TaggedError(ErrorKind.INVALID_HISTORY_ELEMENT, {'index': index, 'reason': 'not_a_mapping'})

    input_fields = signature.prompt_input_fields
    output_fields = signature.text_output_fields

    missing = [f.name for f in (*input_fields, *output_fields) if f.required and f.name not in entry]
    if missing:
        return TaggedError(
            ErrorKind.INVALID_HISTORY_ELEMENT,
            {'index': index, 'reason': 'missing_fields', 'missing': missing},
        )

    input_pairs = tuple((f.name, entry[f.name]) for f in input_fields if f.name in entry)
    output_pairs = tuple((f.name, entry[f.name]) for f in output_fields if f.name in entry)
    if not input_pairs or not output_pairs:
        reason = 'missing_input_fields' if not input_pairs else 'missing_output_fields'
        return TaggedError(ErrorKind.INVALID_HISTORY_ELEMENT, {'index': index, 'reason': reason})

    return HistoryTurn(inputs=input_pairs, outputs=output_pairs)
