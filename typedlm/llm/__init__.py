"""LLM transport clients.

This package intentionally contains ONLY model inference clients.

Rules:
- No prompt formatting here.
- No output parsing or schema validation here.
- No output retry logic here.

Those belong in the adapter and runtime layers.
"""

from .base import Choice, LLMClient, LLMUsage, LMRequest, LMResponse, Message
from .mock import MockLLMClient

__all__ = ['Choice', 'LLMClient', 'LLMUsage', 'LMRequest', 'LMResponse', 'Message', 'MockLLMClient']
