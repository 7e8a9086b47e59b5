"""Tagged error taxonomy and parse outcomes.

Model output failures are data, not exceptions: adapters and the pipeline
return `Ok` / `Err` values so the retry controller can inspect the error kind.
Exceptions are reserved for programmer errors, transport failures raised by an
`LLMClient`, and `unwrap()` on an `Err`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """Kinds of terminal pipeline errors."""

    INVALID_HISTORY_VALUE = 'invalid_history_value'
    INVALID_HISTORY_ELEMENT = 'invalid_history_element'
    MISSING_INPUTS = 'missing_inputs'
    OUTPUT_DECODE_FAILED = 'output_decode_failed'
    MISSING_REQUIRED_OUTPUTS = 'missing_required_outputs'
    OUTPUT_VALIDATION_FAILED = 'output_validation_failed'
    INVALID_OUTPUT_VALUE = 'invalid_output_value'
    INVALID_TOOL_CALL_ARGUMENTS = 'invalid_tool_call_arguments'
    INVALID_TOOL_CALL = 'invalid_tool_call'
    EXTRACTION_LM_NOT_CONFIGURED = 'extraction_lm_not_configured'
    EXTRACTION_PARSE_FAILED = 'extraction_parse_failed'
    EXTRACTION_FAILED = 'extraction_failed'
    LM_CALL_FAILED = 'lm_call_failed'


# Reasons carried by OUTPUT_DECODE_FAILED.
NO_JSON_OBJECT_FOUND = 'no_json_object_found'
TOP_LEVEL_ARRAY_NOT_ALLOWED = 'top_level_array_not_allowed'
INVALID_JSON = 'invalid_json'


@dataclass(frozen=True)
class ValidationIssue:
    """One schema validation failure, addressed by a `$`-rooted path."""

    path: str
    message: str
    kind: str | None = None

    def __str__(self) -> str:
        return f'{self.path}: {self.message}'


@dataclass(frozen=True)
class TaggedError:
    """A terminal error: a kind plus kind-specific details."""

    kind: ErrorKind
    details: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        if not self.details:
            return self.kind.value
        return f'{self.kind.value}: {self.details}'


@dataclass(frozen=True)
class Ok:
    """Successful outcome holding typed output values keyed by field name."""

    values: dict[str, Any]

    @property
    def ok(self) -> bool:
        return True

    def unwrap(self) -> dict[str, Any]:
        return self.values


@dataclass(frozen=True)
class Err:
    """Failed outcome holding exactly one tagged error."""

    error: TaggedError

    @property
    def ok(self) -> bool:
        return False

    @property
    def kind(self) -> ErrorKind:
        return self.error.kind

    def unwrap(self) -> dict[str, Any]:
        raise PredictionError(self.error)


ParseOutcome = Ok | Err


def err(kind: ErrorKind, **details: Any) -> Err:
    """Shorthand for building an `Err` outcome."""
    return Err(TaggedError(kind, details))


# ---------------------------------
# TYPED EXCEPTIONS
# ---------------------------------


class PredictionError(RuntimeError):
    """Raised when a caller unwraps a failed outcome."""

    def __init__(self, error: TaggedError) -> None:
        super().__init__(str(error))
        self.error = error

    @property
    def kind(self) -> ErrorKind:
        return self.error.kind


class LMTransportError(RuntimeError):
    """Raised by an LLMClient when the model could not be reached."""
