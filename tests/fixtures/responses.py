from __future__ import annotations

from typing import Any

from typedlm.llm.base import Choice, LMResponse, Message


def tool_call_response(*calls: tuple[str, Any], content: str | None = None) -> LMResponse:
    """A response whose assistant message carries structured tool calls.

    Each call is (name, arguments) where arguments is sent as-is (usually a JSON string).
    """
    tool_calls = [
        {'id': f'call_{i}', 'type': 'function', 'function': {'name': name, 'arguments': arguments}}
        for i, (name, arguments) in enumerate(calls)
    ]
    return LMResponse(
        choices=[Choice(message=Message(role='assistant', content=content, tool_calls=tool_calls), finish_reason='tool_calls')],
    )
