"""End-to-end pipeline: format -> LM call -> parse -> (bounded) retry.

This is the single entry point callers use. For one invocation it:
- merges callbacks (global, program, per-call) and mints a call_id
- runs adapter pre-flight checks before any LM call
- formats the request (history validated here) and attaches input files
- calls the LM with transport retries (`max_retries`, via tenacity)
- parses text outputs and structured tool calls
- retries parse/validation failures with a retry prompt (`max_output_retries`)

The two retry counters are independent. Nothing is shared between
invocations except read-only configuration, so `run` can be awaited
concurrently on one Pipeline.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping, Sequence
from dataclasses import asdict, dataclass, field, replace
from typing import Any

from tenacity import AsyncRetrying, RetryCallState, retry_if_exception_type, stop_after_attempt, wait_fixed

from typedlm.adapters import Adapter, Demo, resolve_adapter
from typedlm.attachments import attachment_parts, merge_attachments
from typedlm.config import Settings
from typedlm.errors import Err, ErrorKind, LMTransportError, Ok, ParseOutcome, TaggedError
from typedlm.llm.base import LLMClient, LMRequest, LMResponse
from typedlm.observability.tracing import log_event, new_call_id
from typedlm.runtime.callbacks import AdapterCallback, CallbackEvent, Phase, emit, merge_callbacks
from typedlm.runtime.repair import RetryController, build_retry_prompt, primary_prompt_text, replace_primary_prompt_text
from typedlm.signature import Signature
from typedlm.tools import parse_tool_calls

_TRANSPORT_ERRORS = (LMTransportError, asyncio.TimeoutError)


def _failure_reason(exc: BaseException | None) -> str:
    if exc is None:
        return ''
    return str(exc) or type(exc).__name__


@dataclass(frozen=True)
class RunOptions:
    """Per-invocation options. `None` means: use the pipeline's settings."""

    adapter: Adapter | str | None = None
    demos: Sequence[Demo] = ()
    max_retries: int | None = None
    max_output_retries: int | None = None
    callbacks: Sequence[AdapterCallback] = ()
    program_callbacks: Sequence[AdapterCallback] = ()
    extraction_lm: LLMClient | None = None
    request_options: Mapping[str, Any] = field(default_factory=dict)
    metadata: Mapping[str, Any] = field(default_factory=dict)


@dataclass
class _Invocation:
    call_id: str
    signature: Signature
    adapter: Adapter
    callbacks: tuple[AdapterCallback, ...]
    attempt: int = 0

    def emit(self, phase: Phase, payload: dict[str, Any]) -> None:
        meta = {
            'call_id': self.call_id,
            'attempt': self.attempt,
            'adapter': self.adapter.name,
            'signature_name': self.signature.name,
        }
        emit(self.callbacks, CallbackEvent(call_id=self.call_id, phase=phase, meta=meta, payload=payload))


class Pipeline:
    """Runs signatures against an LLM client through an adapter."""

    def __init__(
        self,
        llm: LLMClient,
        *,
        settings: Settings | None = None,
        callbacks: Sequence[AdapterCallback] | None = None,
        adapter: Adapter | str | None = None,
        extraction_lm: LLMClient | None = None,
    ) -> None:
        self._llm = llm
        self._settings = settings or Settings()
        self._callbacks = tuple(callbacks or ())
        self._adapter = adapter
        self._extraction_lm = extraction_lm

    @property
    def settings(self) -> Settings:
        return self._settings

    async def run(
        self,
        signature: Signature,
        inputs: Mapping[str, Any],
        options: RunOptions | None = None,
    ) -> ParseOutcome:
        """Run one invocation.

        Returns:
            Ok(values) or Err(error) with exactly one terminal tagged error.

        Raises:
            ValueError: If the adapter name is unknown or retry limits are negative.
        """
        opts = options or RunOptions()
        adapter = resolve_adapter(
            opts.adapter or self._adapter or self._settings.adapter,
            extraction_lm=opts.extraction_lm or self._extraction_lm,
            extraction_temperature=self._settings.extraction_temperature,
        )
        max_retries = self._settings.max_retries if opts.max_retries is None else opts.max_retries
        max_output_retries = (
            self._settings.max_output_retries if opts.max_output_retries is None else opts.max_output_retries
        )
        if max_retries < 0:
            raise ValueError('max_retries must be >= 0')
        controller = RetryController(max_output_retries)

        inv = _Invocation(
            call_id=new_call_id(),
            signature=signature,
            adapter=adapter,
            callbacks=merge_callbacks(self._callbacks, opts.program_callbacks, opts.callbacks),
        )
        log_event(
            'pipeline.start',
            call_id=inv.call_id,
            signature=signature.name,
            adapter=adapter.name,
            metadata=dict(opts.metadata),
        )

        preflight = adapter.preflight()
        if preflight is None:
            missing = signature.missing_inputs(inputs)
            if missing:
                preflight = TaggedError(ErrorKind.MISSING_INPUTS, {'fields': missing})
        if preflight is not None:
            log_event('pipeline.preflight.failed', call_id=inv.call_id, level=logging.WARNING, kind=preflight.kind.value)
            return Err(preflight)

        inputs_keys = sorted(inputs)
        inv.emit(Phase.FORMAT_START, {'inputs_keys': inputs_keys})
        formatted = adapter.format_request(signature, inputs, opts.demos)
        if isinstance(formatted, TaggedError):
            inv.emit(Phase.FORMAT_END, {'error': formatted})
            return self._finish(inv, Err(formatted))
        formatted = merge_attachments(formatted, attachment_parts(signature, inputs))
        base_request = self._with_options(formatted, opts.request_options)
        inv.emit(Phase.FORMAT_END, {'request': self._summarize(base_request)})

        request = base_request
        while True:
            summary = self._summarize(request)
            inv.emit(Phase.CALL_START, {'request': summary})
            response = await self._generate(request, call_id=inv.call_id, max_retries=max_retries)
            if isinstance(response, TaggedError):
                inv.emit(Phase.CALL_END, {'request': summary, 'error': response})
                return self._finish(inv, Err(response))
            inv.emit(Phase.CALL_END, {'request': summary, 'usage': asdict(response.usage) if response.usage else None})

            text = response.text
            inv.emit(Phase.PARSE_START, {'response_chars': len(text)})
            outcome = await self._parse(adapter, signature, response, request)
            if isinstance(outcome, Ok):
                inv.emit(Phase.PARSE_END, {'outputs_keys': sorted(outcome.values)})
                return self._finish(inv, outcome)
            inv.emit(Phase.PARSE_END, {'error': outcome.error})

            if not controller.record_failure(outcome.error):
                return self._finish(inv, outcome)

            inv.attempt = controller.attempt
            log_event(
                'pipeline.output.retry',
                call_id=inv.call_id,
                attempt=inv.attempt,
                kind=outcome.kind.value,
            )
            inv.emit(Phase.FORMAT_START, {'inputs_keys': inputs_keys})
            retry_prompt = build_retry_prompt(
                primary_prompt_text(base_request),
                signature,
                outcome.error,
                max_lines=self._settings.max_retry_error_lines,
            )
            request = replace_primary_prompt_text(base_request, retry_prompt)
            inv.emit(Phase.FORMAT_END, {'request': self._summarize(request)})

    def _retrying(self, *, call_id: str, max_retries: int) -> AsyncRetrying:
        def log_failure(retry_state: RetryCallState) -> None:
            exc = retry_state.outcome.exception() if retry_state.outcome else None
            log_event(
                'lm.call.failed',
                call_id=call_id,
                level=logging.WARNING,
                attempt=retry_state.attempt_number - 1,
                error=_failure_reason(exc),
            )

        return AsyncRetrying(
            reraise=True,
            stop=stop_after_attempt(max_retries + 1),
            wait=wait_fixed(self._settings.retry_sleep_seconds),
            retry=retry_if_exception_type(_TRANSPORT_ERRORS),
            after=log_failure,
        )

    async def _generate_once(self, request: LMRequest) -> LMResponse:
        response = await self._llm.generate(request)
        if not response.choices:
            raise LMTransportError('LM response contains no choices.')
        return response

    async def _generate(self, request: LMRequest, *, call_id: str, max_retries: int) -> LMResponse | TaggedError:
        """Call the LM, retrying transport failures only."""
        retrying = self._retrying(call_id=call_id, max_retries=max_retries)
        try:
            return await retrying(self._generate_once, request)
        except _TRANSPORT_ERRORS as exc:
            return TaggedError(ErrorKind.LM_CALL_FAILED, {'reason': _failure_reason(exc), 'attempts': max_retries + 1})

    async def _parse(
        self,
        adapter: Adapter,
        signature: Signature,
        response: LMResponse,
        request: LMRequest,
    ) -> ParseOutcome:
        message = response.first_choice.message
        values: dict[str, Any] = {}

        # Structured tool calls first: a malformed call fails before any text repair.
        calls: list[Any] = []
        if signature.tool_call_fields:
            parsed = parse_tool_calls(message.tool_calls)
            if isinstance(parsed, TaggedError):
                return Err(parsed)
            calls = parsed

        if signature.text_output_fields:
            outcome = await adapter.complete_outputs(signature.text_only(), message.content or '', request=request)
            if isinstance(outcome, Err):
                return outcome
            values.update(outcome.values)

        for f in signature.tool_call_fields:
            values[f.name] = calls
        return Ok(values)

    def _with_options(self, request: LMRequest, request_options: Mapping[str, Any]) -> LMRequest:
        if not request_options:
            return request
        return replace(request, options={**request.options, **request_options})

    def _summarize(self, request: LMRequest) -> dict[str, Any]:
        return {
            'messages_count': len(request.messages),
            'tools_count': len(request.tools) if request.tools else 0,
            'model': getattr(self._llm, 'model', None),
        }

    def _finish(self, inv: _Invocation, outcome: ParseOutcome) -> ParseOutcome:
        if isinstance(outcome, Ok):
            log_event('pipeline.end', call_id=inv.call_id, ok=True, attempts=inv.attempt + 1)
        else:
            log_event(
                'pipeline.end',
                call_id=inv.call_id,
                level=logging.WARNING,
                ok=False,
                kind=outcome.kind.value,
                attempts=inv.attempt + 1,
            )
        return outcome


async def run(
    signature: Signature,
    inputs: Mapping[str, Any],
    options: RunOptions | None = None,
    *,
    llm: LLMClient,
    settings: Settings | None = None,
    callbacks: Sequence[AdapterCallback] | None = None,
) -> ParseOutcome:
    """Convenience wrapper: a one-off Pipeline run."""
    return await Pipeline(llm, settings=settings, callbacks=callbacks).run(signature, inputs, options)
