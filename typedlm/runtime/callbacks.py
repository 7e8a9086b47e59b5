"""Lifecycle callbacks around every pipeline phase.

Phases always fire in this order for one attempt:

    format_start -> format_end -> call_start -> call_end -> parse_start -> parse_end

Callbacks come from three tiers, merged once per invocation in fixed
precedence: global (pipeline), program (e.g. a Predict instance), per-call.
Registration order is kept inside each tier.

Dispatch is isolated per callback: a callback that raises is logged and
skipped, and the next callback still sees the event.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from typedlm.observability.tracing import log_event


class Phase(str, Enum):
    FORMAT_START = 'format_start'
    FORMAT_END = 'format_end'
    CALL_START = 'call_start'
    CALL_END = 'call_end'
    PARSE_START = 'parse_start'
    PARSE_END = 'parse_end'


@dataclass(frozen=True)
class CallbackEvent:
    """One lifecycle event.

    Attributes:
        call_id: Stable for the whole invocation, retries included.
        phase: Which boundary fired.
        meta: {call_id, attempt, adapter, signature_name}.
        payload: Phase-specific, bounded data (no full prompts).
    """

    call_id: str
    phase: Phase
    meta: dict[str, Any] = field(default_factory=dict)
    payload: dict[str, Any] = field(default_factory=dict)


class AdapterCallback:
    """Base class for pipeline callbacks. Override any subset of hooks."""

    def on_format_start(self, event: CallbackEvent) -> None:
        pass

    def on_format_end(self, event: CallbackEvent) -> None:
        pass

    def on_call_start(self, event: CallbackEvent) -> None:
        pass

    def on_call_end(self, event: CallbackEvent) -> None:
        pass

    def on_parse_start(self, event: CallbackEvent) -> None:
        pass

    def on_parse_end(self, event: CallbackEvent) -> None:
        pass


def merge_callbacks(*tiers: Iterable[AdapterCallback] | None) -> tuple[AdapterCallback, ...]:
    """Concatenate tiers in the order given (global, program, per-call)."""
    merged: list[AdapterCallback] = []
    for tier in tiers:
        if tier:
            merged.extend(tier)
    return tuple(merged)


def emit(callbacks: Sequence[AdapterCallback], event: CallbackEvent) -> None:
    """Deliver `event` to every callback in order. Never raises."""
    hook_name = f'on_{event.phase.value}'
    for callback in callbacks:
        hook = getattr(callback, hook_name, None)
        if hook is None:
            continue
        try:
            hook(event)
        except Exception as exc:
            log_event(
                'callback.failed',
                call_id=event.call_id,
                level=logging.WARNING,
                exc_info=True,
                phase=event.phase.value,
                callback=type(callback).__name__,
                error=repr(exc),
            )
