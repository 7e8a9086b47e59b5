"""Bounded output-retry controller and retry prompt builder.

A retry prompt is used when model output fails to parse or validate. It holds:
- the original prompt contract (the base prompt, unchanged)
- a compact, path-oriented list of what was wrong
- a restated "return JSON only" instruction with the expected keys and schema

The raw error object and the invalid output are never echoed back.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Any

from typedlm.adapters.json_adapter import schema_lines
from typedlm.errors import ErrorKind, TaggedError
from typedlm.llm.base import LMRequest, Message
from typedlm.signature import Signature

RETRYABLE_KINDS = frozenset(
    {
        ErrorKind.OUTPUT_DECODE_FAILED,
        ErrorKind.MISSING_REQUIRED_OUTPUTS,
        ErrorKind.OUTPUT_VALIDATION_FAILED,
        ErrorKind.INVALID_OUTPUT_VALUE,
    }
)


class RetryController:
    """Attempt counter plus last error for one pipeline invocation.

    Attempting(n) -> Success | Attempting(n + 1) | Exhausted. The number of
    extra attempts is capped by `max_output_retries`, so the loop always ends.
    """

    def __init__(self, max_output_retries: int = 0) -> None:
        if max_output_retries < 0:
            raise ValueError('max_output_retries must be >= 0')
        self.max_output_retries = max_output_retries
        self.attempt = 0
        self.last_error: TaggedError | None = None

    @property
    def exhausted(self) -> bool:
        return self.attempt >= self.max_output_retries

    def record_failure(self, error: TaggedError) -> bool:
        """Record a failed attempt. Returns True when another attempt should run."""
        self.last_error = error
        if error.kind not in RETRYABLE_KINDS or self.exhausted:
            return False
        self.attempt += 1
        return True


def format_error_lines(error: TaggedError) -> list[str]:
    """`$.path: message` lines describing a retryable error."""
    details = error.details
    if error.kind == ErrorKind.OUTPUT_VALIDATION_FAILED:
        return [str(issue) for issue in details.get('errors', [])]
    if error.kind == ErrorKind.MISSING_REQUIRED_OUTPUTS:
        return [f'$.{name}: missing required key' for name in details.get('fields', [])]
    if error.kind == ErrorKind.INVALID_OUTPUT_VALUE:
        return [f"$.{details.get('field')}: {details.get('reason')}"]
    if error.kind == ErrorKind.OUTPUT_DECODE_FAILED:
        return [f"$: {details.get('reason', 'invalid_json')}"]
    return [f'$: {error.kind.value}']


def build_retry_prompt(
    base_prompt: str,
    signature: Signature,
    error: TaggedError,
    *,
    max_lines: int = 10,
) -> str:
    """Construct the prompt for the next output attempt.

    Args:
        base_prompt: The final user message of the original request.
        signature: Signature whose text outputs are expected.
        error: The error from the failed attempt.
        max_lines: Cap on listed error lines.

    Returns:
        The base prompt followed by the error summary and JSON-only instructions.
    """
    lines = format_error_lines(error)
    shown = lines[:max_lines]
    if len(lines) > max_lines:
        shown.append(f'... and {len(lines) - max_lines} more')

    keys = ', '.join(f.name for f in signature.text_output_fields)
    parts = [
        base_prompt,
        '',
        'Your previous output did not match the required format.',
        'Errors:',
        *(f'- {line}' for line in shown),
        '',
        'Return JSON only (no markdown fences, no labels, no extra text).',
        f'The top-level JSON object must contain the following keys: {keys}.',
    ]
    parts.extend(schema_lines(signature))
    return '\n'.join(parts)


def _is_text_part(part: object) -> bool:
    return isinstance(part, dict) and part.get('type') == 'text' and isinstance(part.get('text'), str)


def primary_prompt_text(request: LMRequest) -> str:
    """Text of the final user message (its first text part when it carries attachments).

    Raises:
        ValueError: If there is no user message, or its parts hold no text part.
    """
    content = request.messages[request.last_user_index()].content
    if isinstance(content, list):
        part = next((p for p in content if _is_text_part(p)), None)
        if part is None:
            raise ValueError('Final user message has no text part.')
        return part['text']
    return content or ''


def replace_primary_prompt_text(request: LMRequest, prompt: str) -> LMRequest:
    """Copy of `request` with the final user message's text replaced.

    Attachment parts, tools and options are kept.
    """
    index = request.last_user_index()
    message = request.messages[index]
    content: str | list[dict[str, Any]] = prompt
    if isinstance(message.content, list):
        if not any(_is_text_part(p) for p in message.content):
            raise ValueError('Final user message has no text part.')
        content = [{**p, 'text': prompt} if _is_text_part(p) else p for p in message.content]
    messages = list(request.messages)
    messages[index] = Message(role=message.role, content=content)
    return replace(request, messages=tuple(messages))
