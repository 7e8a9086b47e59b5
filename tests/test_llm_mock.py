from __future__ import annotations

import json

import pytest

from typedlm.errors import LMTransportError
from typedlm.llm.base import Choice, LMRequest, LMResponse, Message
from typedlm.llm.mock import MockLLMClient


def _request(text: str = 'X') -> LMRequest:
    return LMRequest(messages=(Message(role='user', content=text),))


@pytest.mark.asyncio
async def test_mock_llm_returns_json_text() -> None:
    llm = MockLLMClient({'answer': 'Paris', 'confidence': 0.9})

    resp = await llm.generate(_request())

    payload = json.loads(resp.text)
    assert payload['answer'] == 'Paris'
    assert resp.first_choice.message.role == 'assistant'


@pytest.mark.asyncio
async def test_mock_llm_replays_in_order_and_repeats_the_last_item() -> None:
    llm = MockLLMClient(['first', 'second'])

    texts = [(await llm.generate(_request(str(i)))).text for i in range(3)]

    assert texts == ['first', 'second', 'second']
    assert [r.messages[0].content for r in llm.requests] == ['0', '1', '2']
    assert llm.call_count == 3


@pytest.mark.asyncio
async def test_mock_llm_raises_scripted_exceptions() -> None:
    llm = MockLLMClient([LMTransportError('boom'), 'ok'])

    with pytest.raises(LMTransportError, match='boom'):
        await llm.generate(_request())
    assert (await llm.generate(_request())).text == 'ok'


@pytest.mark.asyncio
async def test_mock_llm_passes_full_responses_through() -> None:
    scripted = LMResponse(choices=[Choice(message=Message(role='assistant', content=None, tool_calls=[]))])
    llm = MockLLMClient(scripted)

    assert await llm.generate(_request()) is scripted


@pytest.mark.asyncio
async def test_mock_llm_fn_sees_the_request() -> None:
    llm = MockLLMClient(fn=lambda request: request.messages[-1].content.upper())

    resp = await llm.generate(_request('shout'))

    assert resp.text == 'SHOUT'


@pytest.mark.asyncio
async def test_mock_llm_without_script_raises_transport_error() -> None:
    with pytest.raises(LMTransportError):
        await MockLLMClient().generate(_request())
