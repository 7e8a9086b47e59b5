"""Signature adapters.

Adapters are selected by value: pass an instance, or one of the registered
names to `resolve_adapter`.
"""

from __future__ import annotations

from typedlm.adapters.base import Adapter, Demo
from typedlm.adapters.chat import ChatAdapter
from typedlm.adapters.default import DefaultAdapter
from typedlm.adapters.json_adapter import JSONAdapter
from typedlm.adapters.two_step import TwoStepAdapter, extractor_signature
from typedlm.llm.base import LLMClient

ADAPTERS: dict[str, type[Adapter]] = {
    'default': DefaultAdapter,
    'chat': ChatAdapter,
    'json': JSONAdapter,
    'two_step': TwoStepAdapter,
}


def resolve_adapter(
    adapter: Adapter | str | None,
    *,
    extraction_lm: LLMClient | None = None,
    extraction_temperature: float = 0.0,
) -> Adapter:
    """Return an adapter instance for `adapter`.

    Raises:
        ValueError: If `adapter` names no registered adapter.
    """
    if isinstance(adapter, Adapter):
        return adapter
    name = adapter or 'default'
    try:
        cls = ADAPTERS[name]
    except KeyError:
        raise ValueError(f"Unknown adapter {name!r}; expected one of: {', '.join(ADAPTERS)}") from None
    if cls is TwoStepAdapter:
        return TwoStepAdapter(extraction_lm=extraction_lm, request_defaults={'temperature': extraction_temperature})
    return cls()


__all__ = [
    'ADAPTERS',
    'Adapter',
    'ChatAdapter',
    'DefaultAdapter',
    'Demo',
    'JSONAdapter',
    'TwoStepAdapter',
    'extractor_signature',
    'resolve_adapter',
]
