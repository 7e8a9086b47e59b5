# ------------------------------------------------------------------------------
# Callback doubles shared by the pipeline tests
# ------------------------------------------------------------------------------

from __future__ import annotations

from typedlm.runtime.callbacks import AdapterCallback, CallbackEvent


class RecordingCallback(AdapterCallback):
    """Appends (label, event) for every phase to a shared log."""

    def __init__(self, label: str, log: list[tuple[str, CallbackEvent]] | None = None) -> None:
        self.label = label
        self.log = log if log is not None else []

    def _record(self, event: CallbackEvent) -> None:
        self.log.append((self.label, event))

    on_format_start = _record
    on_format_end = _record
    on_call_start = _record
    on_call_end = _record
    on_parse_start = _record
    on_parse_end = _record

    @property
    def phases(self) -> list[str]:
        return [event.phase.value for label, event in self.log if label == self.label]


class ExplodingCallback(AdapterCallback):
    """Raises from every hook."""

    def _boom(self, event: CallbackEvent) -> None:
        raise RuntimeError(f'boom in {event.phase.value}')

    on_format_start = _boom
    on_format_end = _boom
    on_call_start = _boom
    on_call_end = _boom
    on_parse_start = _boom
    on_parse_end = _boom
