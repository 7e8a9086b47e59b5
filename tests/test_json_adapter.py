from __future__ import annotations

import pytest
from pydantic import BaseModel

from typedlm.adapters import JSONAdapter
from typedlm.errors import TOP_LEVEL_ARRAY_NOT_ALLOWED, ErrorKind
from typedlm.signature import Field, Signature


class Person(BaseModel):
    name: str
    age: int


@pytest.fixture
def sig() -> Signature:
    return Signature(
        input_fields=(Field('question'),),
        output_fields=(Field('answer'), Field('rationale', required=False)),
    )


def test_format_instructions_restates_keys(sig: Signature) -> None:
    text = JSONAdapter().format_instructions(sig)

    assert text.startswith('Return JSON only.')
    assert 'keys: answer, rationale' in text


def test_format_request_includes_schema_for_schema_fields() -> None:
    sig = Signature(
        input_fields=(Field('bio'),),
        output_fields=(Field('person', kind='json', schema=Person),),
    )

    request = JSONAdapter().format_request(sig, {'bio': 'Ada, 36'})

    prompt = request.messages[-1].content
    assert 'The value of "person" must match this JSON Schema:' in prompt
    assert '"age"' in prompt


def test_demo_outputs_render_as_json_objects(sig: Signature) -> None:
    request = JSONAdapter().format_request(sig, {'question': 'q'}, [{'question': 'dq', 'answer': 'da'}])

    assert 'Example 1:\nQuestion: dq\n{"answer": "da"}' in request.messages[-1].content


def test_fenced_object_with_trailing_comma(sig: Signature) -> None:
    outcome = JSONAdapter().parse_outputs(sig, '```json\n{"answer":"hi","rationale":"because",}\n```')

    assert outcome.ok
    assert outcome.values == {'answer': 'hi', 'rationale': 'because'}


def test_single_quoted_object(sig: Signature) -> None:
    outcome = JSONAdapter().parse_outputs(sig, "{'answer':'hi','rationale':'because'}")

    assert outcome.values == {'answer': 'hi', 'rationale': 'because'}


def test_missing_optional_key_still_fails_keyset(sig: Signature) -> None:
    outcome = JSONAdapter().parse_outputs(sig, '{"answer":"hi"}')

    assert not outcome.ok
    assert outcome.kind == ErrorKind.MISSING_REQUIRED_OUTPUTS
    assert outcome.error.details['fields'] == ['rationale']


def test_unknown_keys_are_dropped(sig: Signature) -> None:
    outcome = JSONAdapter().parse_outputs(sig, '{"answer":"hi","rationale":"r","extra":1}')

    assert outcome.ok
    assert outcome.values == {'answer': 'hi', 'rationale': 'r'}


@pytest.mark.parametrize('text', ['[{"answer":"hi","rationale":"r"}]', '```json\n[]\n```'])
def test_top_level_array_always_fails(sig: Signature, text: str) -> None:
    outcome = JSONAdapter().parse_outputs(sig, text)

    assert outcome.kind == ErrorKind.OUTPUT_DECODE_FAILED
    assert outcome.error.details == {'reason': TOP_LEVEL_ARRAY_NOT_ALLOWED}


def test_schema_field_casts_to_model() -> None:
    sig = Signature(input_fields=(Field('bio'),), output_fields=(Field('person', kind='json', schema=Person),))

    outcome = JSONAdapter().parse_outputs(sig, '{"person": {"name": "Ada", "age": 36}}')

    assert outcome.ok
    assert outcome.values['person'] == Person(name='Ada', age=36)


def test_schema_field_missing_required_key_reports_errors() -> None:
    sig = Signature(input_fields=(Field('bio'),), output_fields=(Field('person', kind='json', schema=Person),))

    outcome = JSONAdapter().parse_outputs(sig, '{"person": {"name": "Ada"}}')

    assert outcome.kind == ErrorKind.OUTPUT_VALIDATION_FAILED
    assert outcome.error.details['field'] == 'person'
    assert outcome.error.details['errors']
    assert outcome.error.details['errors'][0].path == '$.person.age'


def test_json_schema_dict_field_returns_decoded_value() -> None:
    schema = {'type': 'object', 'properties': {'tags': {'type': 'array', 'items': {'type': 'string'}}}, 'required': ['tags']}
    sig = Signature(input_fields=(Field('text'),), output_fields=(Field('meta', kind='json', schema=schema),))

    ok = JSONAdapter().parse_outputs(sig, '{"meta": {"tags": ["a", "b"]}}')
    bad = JSONAdapter().parse_outputs(sig, '{"meta": {"tags": [1]}}')

    assert ok.values == {'meta': {'tags': ['a', 'b']}}
    assert bad.kind == ErrorKind.OUTPUT_VALIDATION_FAILED
    assert bad.error.details['errors'][0].path == '$.meta.tags[0]'


def test_parse_is_idempotent(sig: Signature) -> None:
    adapter = JSONAdapter()
    text = '{"answer": "x", "rationale": "y",}'

    assert adapter.parse_outputs(sig, text) == adapter.parse_outputs(sig, text)


@pytest.mark.parametrize('confidence', ['null', '"very high"'])
def test_uncastable_optional_value_is_dropped(confidence: str) -> None:
    sig = Signature(
        input_fields=(Field('question'),),
        output_fields=(Field('answer'), Field('confidence', kind='float', required=False)),
    )

    outcome = JSONAdapter().parse_outputs(sig, f'{{"answer": "hi", "confidence": {confidence}}}')

    assert outcome.ok
    assert outcome.values == {'answer': 'hi'}


def test_uncastable_required_value_still_fails() -> None:
    sig = Signature(input_fields=(Field('question'),), output_fields=(Field('score', kind='float'),))

    outcome = JSONAdapter().parse_outputs(sig, '{"score": null}')

    assert outcome.kind == ErrorKind.INVALID_OUTPUT_VALUE
    assert outcome.error.details['field'] == 'score'
