"""Mock LLM client.

Use this for:
- deterministic tests
- offline development
- exercising retry and tool-call paths without a provider
"""

from __future__ import annotations

import json
from collections.abc import Callable, Iterable
from typing import Any

from typedlm.errors import LMTransportError
from typedlm.llm.base import Choice, LLMClient, LLMUsage, LMRequest, LMResponse, Message

Scripted = str | dict[str, Any] | LMResponse | Exception


class MockLLMClient(LLMClient):
    """A mock model that replays scripted outputs in order.

    Each scripted item can be:
    - a string (returned as the assistant content),
    - a dict (JSON-serialized into the assistant content),
    - a full LMResponse (returned as-is, e.g. to carry tool calls),
    - an exception instance (raised, e.g. LMTransportError).

    Alternatively provide `fn`, a callable mapping request -> scripted item.
    The last scripted item is repeated once the script is exhausted.
    Every request is recorded in `requests`.
    """

    def __init__(
        self,
        outputs: Iterable[Scripted] | Scripted | None = None,
        fn: Callable[[LMRequest], Scripted] | None = None,
        *,
        model: str = 'mock-llm',
        usage: LLMUsage | None = None,
    ) -> None:
        if outputs is None or isinstance(outputs, (str, dict, LMResponse, Exception)):
            outputs = [] if outputs is None else [outputs]
        self._outputs = list(outputs)
        self._fn = fn
        self._usage = usage
        self.model = model
        self.requests: list[LMRequest] = []

    @property
    def call_count(self) -> int:
        return len(self.requests)

    async def generate(self, request: LMRequest) -> LMResponse:
        index = len(self.requests)
        self.requests.append(request)

        if self._fn is not None:
            item = self._fn(request)
        elif self._outputs:
            item = self._outputs[min(index, len(self._outputs) - 1)]
        else:
            raise LMTransportError('MockLLMClient has no scripted output.')

        if isinstance(item, Exception):
            raise item
        if isinstance(item, LMResponse):
            return item
        if isinstance(item, dict):
            item = json.dumps(item)

        return LMResponse(
            choices=[Choice(message=Message(role='assistant', content=item), finish_reason='stop')],
            usage=self._usage,
            raw={'mock': True},
        )
