from __future__ import annotations

import pytest
from pydantic import BaseModel

from typedlm.errors import INVALID_JSON, NO_JSON_OBJECT_FOUND, TOP_LEVEL_ARRAY_NOT_ALLOWED, ErrorKind, TaggedError
from typedlm.signature import Field, FieldKind
from typedlm.typed_outputs import (
    cast_field_value,
    cast_outputs,
    cast_scalar,
    decode_json_value,
    parse_json_object,
    repair_json_text,
    strip_code_fences,
    validate_term,
)


class Person(BaseModel):
    name: str
    age: int


def test_strip_code_fences_returns_fenced_body() -> None:
    assert strip_code_fences('```json\n{"a": 1}\n```') == '{"a": 1}'
    assert strip_code_fences('  plain  ') == 'plain'


def test_parse_fenced_object_with_trailing_comma() -> None:
    decoded = parse_json_object('```json\n{"answer":"hi","rationale":"because",}\n```')

    assert decoded == {'answer': 'hi', 'rationale': 'because'}


def test_parse_single_quoted_object() -> None:
    assert parse_json_object("{'answer':'hi'}") == {'answer': 'hi'}


def test_parse_extracts_object_from_surrounding_prose() -> None:
    assert parse_json_object('Sure! {"a": 1} hope that helps') == {'a': 1}


def test_valid_json_is_not_rewritten() -> None:
    assert parse_json_object('{"a": "it\'s, fine"}') == {'a': "it's, fine"}


def test_repair_leaves_commas_inside_strings() -> None:
    assert repair_json_text('{"a": "x,}", }') == '{"a": "x,}" }'


@pytest.mark.parametrize('text', ['[{"answer": "hi"}]', '[1, 2,]', '```json\n[1]\n```'])
def test_top_level_array_is_rejected(text: str) -> None:
    decoded = parse_json_object(text)

    assert isinstance(decoded, TaggedError)
    assert decoded.kind == ErrorKind.OUTPUT_DECODE_FAILED
    assert decoded.details == {'reason': TOP_LEVEL_ARRAY_NOT_ALLOWED}


def test_text_without_object_reports_no_object() -> None:
    decoded = parse_json_object('no json here')

    assert isinstance(decoded, TaggedError)
    assert decoded.details['reason'] == NO_JSON_OBJECT_FOUND


def test_broken_object_reports_invalid_json() -> None:
    decoded = parse_json_object('{"a": }')

    assert isinstance(decoded, TaggedError)
    assert decoded.details['reason'] == INVALID_JSON


def test_decode_json_value_allows_arrays_when_not_requiring_object() -> None:
    assert decode_json_value('[1, 2,]', require_object=False) == [1, 2]


def test_validate_term_casts_to_model() -> None:
    typed = validate_term({'name': 'Ada', 'age': 36}, Person)

    assert typed == Person(name='Ada', age=36)


def test_validate_term_reports_every_model_error() -> None:
    result = validate_term({'age': 'old'}, Person)

    assert isinstance(result, TaggedError)
    assert result.kind == ErrorKind.OUTPUT_VALIDATION_FAILED
    paths = sorted(issue.path for issue in result.details['errors'])
    assert paths == ['$.age', '$.name']


def test_validate_term_reports_every_json_schema_error() -> None:
    schema = {
        'type': 'object',
        'properties': {'a': {'type': 'integer'}},
        'required': ['a', 'b'],
    }

    result = validate_term({'a': 'x'}, schema)

    assert isinstance(result, TaggedError)
    assert len(result.details['errors']) == 2
    assert {issue.path for issue in result.details['errors']} == {'$', '$.a'}


def test_validate_term_returns_value_for_valid_json_schema() -> None:
    assert validate_term({'a': 1}, {'type': 'object'}) == {'a': 1}


@pytest.mark.parametrize(
    ('value', 'kind', 'expected'),
    [
        ('42 apples', FieldKind.INTEGER, (True, 42)),
        (7.0, FieldKind.INTEGER, (True, 7)),
        (True, FieldKind.INTEGER, (False, 'invalid_integer')),
        ('3.5', FieldKind.FLOAT, (True, 3.5)),
        ('yes', FieldKind.BOOLEAN, (True, True)),
        ('No', FieldKind.BOOLEAN, (True, False)),
        ('maybe', FieldKind.BOOLEAN, (False, 'invalid_boolean')),
        (12, FieldKind.STRING, (True, '12')),
        ('{"k": [1]}', FieldKind.JSON, (True, {'k': [1]})),
        ('not json', FieldKind.JSON, (False, 'invalid_json')),
    ],
)
def test_cast_scalar(value: object, kind: FieldKind, expected: tuple[bool, object]) -> None:
    assert cast_scalar(value, kind) == expected


def test_cast_field_value_enforces_one_of() -> None:
    field = Field('label', one_of=('spam', 'ham'))

    assert cast_field_value(field, 'ham') == 'ham'
    result = cast_field_value(field, 'eggs')
    assert isinstance(result, TaggedError)
    assert result.kind == ErrorKind.INVALID_OUTPUT_VALUE
    assert result.details['field'] == 'label'


def test_cast_field_value_decodes_string_for_schema_field() -> None:
    field = Field('person', kind='json', schema=Person)

    assert cast_field_value(field, '{"name": "Ada", "age": 36}') == Person(name='Ada', age=36)


def test_cast_field_value_schema_errors_carry_field_path() -> None:
    field = Field('person', kind='json', schema=Person)

    result = cast_field_value(field, {'name': 'Ada'})

    assert isinstance(result, TaggedError)
    assert result.kind == ErrorKind.OUTPUT_VALIDATION_FAILED
    assert result.details['field'] == 'person'
    assert [str(issue) for issue in result.details['errors']] == ['$.person.age: Field required']


def test_cast_outputs_ignores_unknown_keys_and_can_drop_invalid_optionals() -> None:
    fields = (Field('answer'), Field('score', kind='integer', required=False))

    strict = cast_outputs(fields, {'answer': 'a', 'score': 'n/a', 'extra': 1})
    lenient = cast_outputs(fields, {'answer': 'a', 'score': 'n/a', 'extra': 1}, drop_invalid_optional=True)

    assert not strict.ok
    assert lenient.ok
    assert lenient.values == {'answer': 'a'}
