"""Signatures: typed declarations of an LM call's inputs and outputs.

A signature is pure data. It knows its own well-formedness rules (unique field
names, at least one output) and how to look fields up, and nothing else:
rendering and parsing live in the adapters.

Examples:
    >>> sig = Signature.define('question -> answer: int')
    >>> [f.name for f in sig.output_fields]
    ['answer']
    >>> sig.field('question').marker
    'Question'
"""

from __future__ import annotations

import re
from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass, field as dc_field
from enum import Enum
from typing import Any


class FieldKind(str, Enum):
    STRING = 'string'
    INTEGER = 'integer'
    FLOAT = 'float'
    BOOLEAN = 'boolean'
    JSON = 'json'
    TOOL_DECLARATIONS = 'tool_declarations'
    TOOL_CALLS = 'tool_calls'
    HISTORY = 'history'


_TYPE_ALIASES: dict[str, FieldKind] = {
    'str': FieldKind.STRING,
    'string': FieldKind.STRING,
    'int': FieldKind.INTEGER,
    'integer': FieldKind.INTEGER,
    'float': FieldKind.FLOAT,
    'number': FieldKind.FLOAT,
    'bool': FieldKind.BOOLEAN,
    'boolean': FieldKind.BOOLEAN,
    'json': FieldKind.JSON,
    'dict': FieldKind.JSON,
    'list': FieldKind.JSON,
}

_INPUT_ONLY = {FieldKind.HISTORY, FieldKind.TOOL_DECLARATIONS}
_OUTPUT_ONLY = {FieldKind.TOOL_CALLS}
_FIELD_NAME = re.compile(r'^[A-Za-z_][A-Za-z0-9_]*$')


def humanize(name: str) -> str:
    return ' '.join(part.capitalize() for part in name.split('_') if part)


@dataclass(frozen=True)
class Field:
    """A named, typed signature field.

    Args:
        name: Field name; also the JSON key and the marker source.
        kind: Value kind used for casting.
        description: Human description rendered into prompts.
        required: Whether parsing must produce this field.
        schema: Optional pydantic model class or JSON Schema dict for `json` fields.
        one_of: Optional set of allowed values.
    """

    name: str
    kind: FieldKind = FieldKind.STRING
    description: str = ''
    required: bool = True
    schema: Any = None
    one_of: tuple[Any, ...] | None = None

    def __post_init__(self) -> None:
        if not _FIELD_NAME.match(self.name):
            raise ValueError(f'Invalid field name: {self.name!r}')
        object.__setattr__(self, 'kind', FieldKind(self.kind))
        if not self.description:
            object.__setattr__(self, 'description', humanize(self.name))
        if self.one_of is not None:
            object.__setattr__(self, 'one_of', tuple(self.one_of))

    @property
    def marker(self) -> str:
        """Label used by text adapters, e.g. `Question`."""
        return self.name.capitalize()


def InputField(name: str, kind: FieldKind | str = FieldKind.STRING, description: str = '', **kwargs: Any) -> Field:
    return Field(name=name, kind=FieldKind(kind), description=description, **kwargs)


def OutputField(name: str, kind: FieldKind | str = FieldKind.STRING, description: str = '', **kwargs: Any) -> Field:
    return Field(name=name, kind=FieldKind(kind), description=description, **kwargs)


@dataclass(frozen=True)
class Signature:
    """Ordered input and output fields plus free-text instructions."""

    input_fields: tuple[Field, ...]
    output_fields: tuple[Field, ...]
    instructions: str | None = None
    name: str = 'Signature'
    _index: dict[str, Field] = dc_field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, 'input_fields', tuple(self.input_fields))
        object.__setattr__(self, 'output_fields', tuple(self.output_fields))

        if not self.output_fields:
            raise ValueError(f'Signature {self.name!r} must declare at least one output field.')

        index: dict[str, Field] = {}
        for f in (*self.input_fields, *self.output_fields):
            if f.name in index:
                raise ValueError(f'Duplicate field name {f.name!r} in signature {self.name!r}.')
            index[f.name] = f
        object.__setattr__(self, '_index', index)

        for f in self.input_fields:
            if f.kind in _OUTPUT_ONLY:
                raise ValueError(f'Field {f.name!r} of kind {f.kind.value} must be an output field.')
        for f in self.output_fields:
            if f.kind in _INPUT_ONLY:
                raise ValueError(f'Field {f.name!r} of kind {f.kind.value} must be an input field.')

        if sum(1 for f in self.input_fields if f.kind == FieldKind.HISTORY) > 1:
            raise ValueError(f'Signature {self.name!r} declares more than one history field.')

    # --- lookup ---

    def field(self, name: str) -> Field:
        try:
            return self._index[name]
        except KeyError:
            raise KeyError(f'Signature {self.name!r} has no field {name!r}.') from None

    def fields(self) -> Iterator[Field]:
        yield from self.input_fields
        yield from self.output_fields

    def __contains__(self, name: object) -> bool:
        return name in self._index

    @property
    def history_field(self) -> Field | None:
        return next((f for f in self.input_fields if f.kind == FieldKind.HISTORY), None)

    @property
    def tool_declarations_field(self) -> Field | None:
        return next((f for f in self.input_fields if f.kind == FieldKind.TOOL_DECLARATIONS), None)

    @property
    def prompt_input_fields(self) -> tuple[Field, ...]:
        """Input fields rendered as text (history and tool declarations excluded)."""
        return tuple(f for f in self.input_fields if f.kind not in _INPUT_ONLY)

    @property
    def text_output_fields(self) -> tuple[Field, ...]:
        """Output fields parsed from response text (tool calls excluded)."""
        return tuple(f for f in self.output_fields if f.kind not in _OUTPUT_ONLY)

    @property
    def tool_call_fields(self) -> tuple[Field, ...]:
        return tuple(f for f in self.output_fields if f.kind in _OUTPUT_ONLY)

    @property
    def has_schema_outputs(self) -> bool:
        return any(f.schema is not None for f in self.output_fields)

    # --- derived signatures ---

    def with_outputs(self, output_fields: Sequence[Field]) -> 'Signature':
        return Signature(
            input_fields=self.input_fields,
            output_fields=tuple(output_fields),
            instructions=self.instructions,
            name=self.name,
        )

    def text_only(self) -> 'Signature':
        """This signature without tool-call outputs, or itself when it has none."""
        if not self.tool_call_fields:
            return self
        return self.with_outputs(self.text_output_fields)

    # --- inputs ---

    def missing_inputs(self, inputs: Mapping[str, Any]) -> list[str]:
        """Names of required text inputs absent from `inputs`."""
        return [f.name for f in self.prompt_input_fields if f.required and f.name not in inputs]

    # --- constructors ---

    @classmethod
    def define(cls, signature_string: str, *, instructions: str | None = None) -> 'Signature':
        """Build a signature from a compact string.

        Supported forms:
            "question, context -> answer: int"
            "qa(question: str) -> answer: str, confidence: float"

        Types are optional and default to `string`.

        Raises:
            ValueError: If the string cannot be parsed.
        """
        text = ' '.join(signature_string.split())
        parts = text.split('->')
        if len(parts) != 2:
            raise ValueError(f"Invalid signature format {signature_string!r}: expected 'inputs -> outputs'.")
        inputs_part, outputs_part = (p.strip() for p in parts)

        name = text
        call = re.fullmatch(r'(\w+)\s*\((.*)\)', inputs_part)
        if call:
            name, inputs_part = call.group(1), call.group(2)

        return cls(
            input_fields=tuple(_parse_field_list(inputs_part)),
            output_fields=tuple(_parse_field_list(outputs_part)),
            instructions=instructions,
            name=name,
        )


def _parse_field_list(text: str) -> list[Field]:
    fields: list[Field] = []
    for chunk in text.split(','):
        chunk = chunk.strip()
        if not chunk:
            continue
        name, _, type_name = (p.strip() for p in chunk.partition(':'))
        if not name:
            raise ValueError('Invalid field format: empty field name.')
        kind = FieldKind.STRING
        if type_name:
            try:
                kind = _TYPE_ALIASES[type_name.lower()]
            except KeyError:
                raise ValueError(f'Unknown field type: {type_name!r}') from None
        fields.append(Field(name=name, kind=kind))
    return fields
