"""Adapter interface.

An adapter is a strategy object over a fixed behavior set:

- format_instructions: the output-format contract shown to the model
- format_request: signature + inputs + demos (+ history, tools) -> LMRequest
- parse_outputs: raw response text -> ParseOutcome

`parse_outputs` must be pure: the same text always yields the same outcome.
Adapters hold configuration only, never per-invocation state, so one instance
can serve any number of concurrent pipeline runs.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from typing import Any

from typedlm.errors import ParseOutcome, TaggedError
from typedlm.llm.base import LMRequest
from typedlm.signature import Signature

Demo = Mapping[str, Any]


class Adapter(ABC):
    """Renders signatures into LM requests and parses responses back."""

    name: str = 'adapter'

    @abstractmethod
    def format_instructions(self, signature: Signature) -> str:
        raise NotImplementedError

    @abstractmethod
    def format_request(
        self,
        signature: Signature,
        inputs: Mapping[str, Any],
        demos: Sequence[Demo] = (),
    ) -> LMRequest | TaggedError:
        """Build the request, or return a pre-flight error (history validation)."""
        raise NotImplementedError

    @abstractmethod
    def parse_outputs(self, signature: Signature, text: str) -> ParseOutcome:
        raise NotImplementedError

    def preflight(self) -> TaggedError | None:
        """Configuration check run before any LM call."""
        return None

    async def complete_outputs(self, signature: Signature, text: str, *, request: LMRequest) -> ParseOutcome:
        """Turn the main response text into outputs.

        Single-call adapters just parse. Adapters that need follow-up model
        calls override this.
        """
        return self.parse_outputs(signature, text)

    def __repr__(self) -> str:
        return f'{type(self).__name__}()'
