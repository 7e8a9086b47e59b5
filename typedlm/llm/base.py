"""LLM transport interface.

This module defines the narrow contract used by the pipeline. A client is:
- swappable (any chat-completions style backend)
- mockable (deterministic tests)
- observable (usage counters reported back in responses)
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class Message:
    """A chat message. `tool_calls` is only set on assistant responses.

    `content` is text, or a list of content parts when files are attached.
    """

    role: str
    content: str | list[dict[str, Any]] | None
    tool_calls: list[dict[str, Any]] | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {'role': self.role, 'content': self.content}
        if self.tool_calls is not None:
            data['tool_calls'] = self.tool_calls
        return data


@dataclass(frozen=True)
class LMRequest:
    """
    A request to generate model output.

    Attributes:
        messages: Ordered chat messages (render order).
        tools: Wire-shaped tool declarations, or None when the signature declares none.
        options: Provider request options such as temperature.
    """

    messages: tuple[Message, ...]
    tools: list[dict[str, Any]] | None = None
    options: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {'messages': [m.to_dict() for m in self.messages]}
        if self.tools is not None:
            body['tools'] = self.tools
        body.update(self.options)
        return body

    def last_user_index(self) -> int:
        """Index of the final user message.

        Raises:
            ValueError: If there is no user message.
        """
        for index in range(len(self.messages) - 1, -1, -1):
            if self.messages[index].role == 'user':
                return index
        raise ValueError('Request has no user message.')


@dataclass(frozen=True)
class LLMUsage:
    """Best-effort token usage summary (provider-dependent)."""

    prompt_tokens: int | None = None
    completion_tokens: int | None = None
    total_tokens: int | None = None


@dataclass(frozen=True)
class Choice:
    message: Message
    finish_reason: str | None = None


@dataclass(frozen=True)
class LMResponse:
    """A response from the model client.

    Attributes:
        choices: At least one completion choice.
        usage: Best-effort token usage.
        raw: Provider-specific raw payload (kept for debugging/telemetry).
    """

    choices: list[Choice]
    usage: LLMUsage | None = None
    raw: dict[str, Any] = field(default_factory=dict)

    @property
    def first_choice(self) -> Choice:
        if not self.choices:
            raise ValueError('LM response contains no choices.')
        return self.choices[0]

    @property
    def text(self) -> str:
        return self.first_choice.message.content or ''


class LLMClient(ABC):
    """Model inference client."""

    model: str | None = None

    @abstractmethod
    async def generate(self, request: LMRequest) -> LMResponse:
        """Generate a response from the model.

        Raises:
            LMTransportError: If the model could not be reached or returned no completion.
        """
        raise NotImplementedError
