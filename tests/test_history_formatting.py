from __future__ import annotations

import pytest

from typedlm.adapters import Adapter, ChatAdapter, DefaultAdapter, JSONAdapter
from typedlm.errors import ErrorKind, TaggedError
from typedlm.history import History, extract_turns
from typedlm.llm.mock import MockLLMClient
from typedlm.runtime.pipeline import Pipeline
from typedlm.signature import Field, Signature

ADAPTERS = [DefaultAdapter(), ChatAdapter(), JSONAdapter()]


def _with_history() -> Signature:
    return Signature(
        input_fields=(Field('question'), Field('history', kind='history')),
        output_fields=(Field('answer'),),
        instructions='Answer the question.',
    )


def _without_history() -> Signature:
    return Signature(
        input_fields=(Field('question'),),
        output_fields=(Field('answer'),),
        instructions='Answer the question.',
    )


@pytest.mark.parametrize('adapter', ADAPTERS, ids=lambda a: a.name)
@pytest.mark.parametrize('history', ['absent', None, History(messages=[])], ids=['absent', 'none', 'empty'])
def test_empty_history_is_byte_identical_to_no_history_field(adapter: Adapter, history: object) -> None:
    # Arrange
    inputs = {'question': 'What is the capital of France?'}
    history_inputs = dict(inputs) if history == 'absent' else {**inputs, 'history': history}

    # Act
    with_field = adapter.format_request(_with_history(), history_inputs)
    without_field = adapter.format_request(_without_history(), inputs)

    # Assert
    assert with_field.messages == without_field.messages
    assert with_field.tools is None and without_field.tools is None


@pytest.mark.parametrize('adapter', ADAPTERS, ids=lambda a: a.name)
def test_n_turns_add_2n_messages_before_current_turn(adapter: Adapter) -> None:
    # Arrange
    history = History(
        messages=[
            {'question': 'hist-q1', 'answer': 'hist-a1'},
            {'question': 'hist-q2', 'answer': 'hist-a2'},
        ]
    )
    base = adapter.format_request(_without_history(), {'question': 'current'})

    # Act
    request = adapter.format_request(_with_history(), {'question': 'current', 'history': history})

    # Assert
    assert len(request.messages) == len(base.messages) + 4
    current = request.messages[-1]
    assert current == base.messages[-1]
    assert 'hist-' not in current.content

    history_messages = [m for m in request.messages if 'hist-' in (m.content or '')]
    assert [m.role for m in history_messages] == ['user', 'assistant', 'user', 'assistant']
    assert 'hist-q1' in history_messages[0].content
    assert 'hist-a2' in history_messages[3].content


def test_default_history_uses_label_lines() -> None:
    history = History(messages=[{'question': 'q0', 'answer': 'a0'}])

    request = DefaultAdapter().format_request(_with_history(), {'question': 'q1', 'history': history})

    assert request.messages[0].content == 'Question: q0'
    assert request.messages[1].content == 'Answer: a0'


def test_json_history_assistant_turns_are_json_objects() -> None:
    history = History(messages=[{'question': 'q0', 'answer': 'a0'}])

    request = JSONAdapter().format_request(_with_history(), {'question': 'q1', 'history': history})

    assert request.messages[1].content == '{"answer": "a0"}'


def test_non_history_value_is_rejected() -> None:
    result = extract_turns(_with_history(), {'question': 'q', 'history': [{'question': 'q0', 'answer': 'a0'}]})

    assert isinstance(result, TaggedError)
    assert result.kind == ErrorKind.INVALID_HISTORY_VALUE
    assert result.details['field'] == 'history'


def test_turn_missing_field_reports_index() -> None:
    history = History(messages=[{'question': 'q0', 'answer': 'a0'}, {'question': 'q1'}])

    result = DefaultAdapter().format_request(_with_history(), {'question': 'q', 'history': history})

    assert isinstance(result, TaggedError)
    assert result.kind == ErrorKind.INVALID_HISTORY_ELEMENT
    assert result.details['index'] == 1
    assert result.details['missing'] == ['answer']


def test_turn_that_is_not_a_mapping_reports_index() -> None:
    history = History(messages=['just text'])

    result = extract_turns(_with_history(), {'question': 'q', 'history': history})

    assert isinstance(result, TaggedError)
    assert result.details == {'index': 0, 'reason': 'not_a_mapping'}


@pytest.mark.asyncio
async def test_invalid_history_never_calls_the_lm() -> None:
    # Arrange
    llm = MockLLMClient('Answer: x')
    pipeline = Pipeline(llm)

    # Act
    outcome = await pipeline.run(_with_history(), {'question': 'q', 'history': 'not a history'})

    # Assert
    assert outcome.kind == ErrorKind.INVALID_HISTORY_VALUE
    assert llm.call_count == 0
