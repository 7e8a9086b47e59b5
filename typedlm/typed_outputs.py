"""Repair -> validate -> cast helpers for model output.

A pure, deterministic pipeline for turning LM text into typed values:

1. strip markdown code fences
2. if still not parseable, cut the outermost `{...}` span
3. if still not parseable, apply textual repairs (trailing commas, single quotes)
4. validate/cast against the field's schema or scalar kind

Nothing here raises on bad model output; failures come back as tagged errors so
the retry controller can act on them. Repairs only run when the previous step
failed to decode, so valid JSON is never rewritten.
"""

from __future__ import annotations

import json
import math
import re
from typing import Any

import jsonschema
from pydantic import BaseModel, ValidationError

from typedlm.errors import (
    INVALID_JSON,
    NO_JSON_OBJECT_FOUND,
    TOP_LEVEL_ARRAY_NOT_ALLOWED,
    Err,
    ErrorKind,
    Ok,
    ParseOutcome,
    TaggedError,
    ValidationIssue,
)
from typedlm.signature import Field, FieldKind

_FENCE = re.compile(r'```[A-Za-z0-9_-]*[ \t]*\n?(.*?)```', re.DOTALL)
_LEADING_INT = re.compile(r'^[+-]?\d+')
_LEADING_FLOAT = re.compile(r'^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?')

_TRUE = {'true', 'yes', '1'}
_FALSE = {'false', 'no', '0'}


# ------------------------------
# Repair
# ------------------------------


def strip_code_fences(text: str) -> str:
    """Return the body of the first fenced block, or the stripped text if unfenced."""
    stripped = text.strip()
    match = _FENCE.search(stripped)
    if match:
        return match.group(1).strip()
    if stripped.startswith('```'):
        # Unterminated fence: drop the opening line.
        return stripped.split('\n', 1)[1].strip() if '\n' in stripped else ''
    return stripped


def extract_object_span(text: str) -> str | None:
    """Return the outermost `{...}` span (first `{` through last `}`), if any."""
    start = text.find('{')
    end = text.rfind('}')
    if start == -1 or end == -1 or end < start:
        return None
    return text[start : end + 1]


def repair_json_text(text: str) -> str:
    """Apply deterministic textual repairs outside of string literals.

    - remove trailing commas before `}` or `]`
    - rewrite single-quoted strings/keys as double-quoted JSON strings
    """
    out: list[str] = []
    i = 0
    n = len(text)
    while i < n:
        ch = text[i]
        if ch == '"':
            end = _scan_string(text, i, '"')
            out.append(text[i:end])
            i = end
        elif ch == "'":
            end = _scan_string(text, i, "'")
            closed = end <= n and text[end - 1] == "'" and end - 1 > i
            body = text[i + 1 : end - 1] if closed else text[i + 1 : end]
            out.append(json.dumps(_unescape_single_quoted(body), ensure_ascii=False))
            i = end
        elif ch == ',':
            j = i + 1
            while j < n and text[j].isspace():
                j += 1
            if j < n and text[j] in '}]':
                i += 1
                continue
            out.append(ch)
            i += 1
        else:
            out.append(ch)
            i += 1
    return ''.join(out)


def _scan_string(text: str, start: int, quote: str) -> int:
    """Index just past the closing quote of the literal opening at `start`."""
    i = start + 1
    while i < len(text):
        if text[i] == '\\':
            i += 2
            continue
        if text[i] == quote:
            return i + 1
        i += 1
    return len(text)


def _unescape_single_quoted(body: str) -> str:
    return body.replace("\\'", "'").replace('\\"', '"')


# ------------------------------
# Decode
# ------------------------------


def _try_loads(text: str) -> tuple[bool, Any]:
    try:
        return True, json.loads(text)
    except (json.JSONDecodeError, ValueError):
        return False, None


def decode_json_value(text: str, *, require_object: bool = True) -> Any | TaggedError:
    """Decode model text into a JSON value, repairing only as needed.

    Returns:
        The decoded value, or TaggedError(output_decode_failed, {reason}).
    """
    candidate = strip_code_fences(text)
    if not candidate:
        return TaggedError(ErrorKind.OUTPUT_DECODE_FAILED, {'reason': NO_JSON_OBJECT_FOUND})

    ok, value = _try_loads(candidate)

    if not ok and require_object and candidate.startswith('['):
        # A near-valid top-level array is still an array.
        ok, value = _try_loads(repair_json_text(candidate))

    if not ok and require_object:
        span = extract_object_span(candidate)
        if span is None:
            return TaggedError(ErrorKind.OUTPUT_DECODE_FAILED, {'reason': NO_JSON_OBJECT_FOUND})
        candidate = span
        ok, value = _try_loads(candidate)

    if not ok:
        repaired = repair_json_text(candidate)
        if repaired != candidate:
            ok, value = _try_loads(repaired)

    if not ok:
        return TaggedError(ErrorKind.OUTPUT_DECODE_FAILED, {'reason': INVALID_JSON})
    if require_object and isinstance(value, list):
        return TaggedError(ErrorKind.OUTPUT_DECODE_FAILED, {'reason': TOP_LEVEL_ARRAY_NOT_ALLOWED})
    if require_object and not isinstance(value, dict):
        return TaggedError(ErrorKind.OUTPUT_DECODE_FAILED, {'reason': NO_JSON_OBJECT_FOUND})
    return value


def parse_json_object(text: str) -> dict[str, Any] | TaggedError:
    """Decode a single top-level JSON object from model text."""
    return decode_json_value(text, require_object=True)


# ------------------------------
# Validate
# ------------------------------


def _json_path(parts: Any) -> str:
    path = '$'
    for part in parts:
        path += f'[{part}]' if isinstance(part, int) else f'.{part}'
    return path


def _is_model_class(schema: Any) -> bool:
    return isinstance(schema, type) and issubclass(schema, BaseModel)


def validate_term(value: Any, schema: Any, *, root: str = '$') -> Any | TaggedError:
    """Validate a decoded value against a pydantic model class or a JSON Schema dict.

    Every failure is reported, not just the first.

    Returns:
        The typed value (a model instance for model schemas, the decoded value
        for dict schemas), or TaggedError(output_validation_failed, {errors}).
    """
    if _is_model_class(schema):
        try:
            return schema.model_validate(value)
        except ValidationError as exc:
            issues = [
                ValidationIssue(path=root + _json_path(e['loc'])[1:], message=e['msg'], kind=e['type'])
                for e in exc.errors()
            ]
            return TaggedError(ErrorKind.OUTPUT_VALIDATION_FAILED, {'errors': issues})

    if isinstance(schema, dict):
        validator_cls = jsonschema.validators.validator_for(schema, default=jsonschema.Draft202012Validator)
        errors = sorted(validator_cls(schema).iter_errors(value), key=lambda e: [str(p) for p in e.absolute_path])
        if errors:
            issues = [
                ValidationIssue(path=root + _json_path(e.absolute_path)[1:], message=e.message, kind=str(e.validator))
                for e in errors
            ]
            return TaggedError(ErrorKind.OUTPUT_VALIDATION_FAILED, {'errors': issues})
        return value

    raise TypeError(f'Unsupported schema type: {type(schema).__name__}')


def schema_as_json(schema: Any) -> dict[str, Any]:
    """JSON Schema dict for a field schema (model classes are converted)."""
    if _is_model_class(schema):
        return schema.model_json_schema()
    return schema


# ------------------------------
# Cast
# ------------------------------


def cast_scalar(value: Any, kind: FieldKind) -> tuple[bool, Any]:
    """Coerce `value` to `kind`. Returns (ok, value_or_reason)."""
    if kind == FieldKind.STRING:
        if isinstance(value, str):
            return True, value
        if isinstance(value, bool):
            return True, 'true' if value else 'false'
        if isinstance(value, (int, float)):
            return True, str(value)
        if value is None:
            return False, 'invalid_string'
        return True, json.dumps(value, ensure_ascii=False)

    if kind == FieldKind.INTEGER:
        if isinstance(value, bool):
            return False, 'invalid_integer'
        if isinstance(value, int):
            return True, value
        if isinstance(value, float) and value.is_integer():
            return True, int(value)
        if isinstance(value, str):
            match = _LEADING_INT.match(value.strip())
            if match:
                return True, int(match.group(0))
        return False, 'invalid_integer'

    if kind == FieldKind.FLOAT:
        if isinstance(value, bool):
            return False, 'invalid_float'
        if isinstance(value, (int, float)):
            return True, float(value)
        if isinstance(value, str):
            match = _LEADING_FLOAT.match(value.strip())
            if match and math.isfinite(float(match.group(0))):
                return True, float(match.group(0))
        return False, 'invalid_float'

    if kind == FieldKind.BOOLEAN:
        if isinstance(value, bool):
            return True, value
        if isinstance(value, str):
            lowered = value.strip().lower()
            if lowered in _TRUE:
                return True, True
            if lowered in _FALSE:
                return True, False
        return False, 'invalid_boolean'

    if kind == FieldKind.JSON:
        if isinstance(value, (dict, list)):
            return True, value
        if isinstance(value, str):
            decoded = decode_json_value(value, require_object=False)
            if not isinstance(decoded, TaggedError):
                return True, decoded
        return False, 'invalid_json'

    return True, value


def _check_one_of(field: Field, value: Any) -> str | None:
    if field.one_of is None:
        return None
    allowed = []
    for raw in field.one_of:
        ok, typed = cast_scalar(raw, field.kind)
        if not ok:
            ok, typed = cast_scalar(str(raw), field.kind)
        allowed.append(typed if ok else raw)
    if value in allowed:
        return None
    return f'not one of {allowed!r}'


def cast_field_value(field: Field, value: Any) -> Any | TaggedError:
    """Cast one raw output value for `field`.

    Returns:
        The typed value, TaggedError(output_validation_failed, {field, errors})
        for schema failures, or TaggedError(invalid_output_value, {field, reason}).
    """
    if field.schema is not None:
        if isinstance(value, str):
            decoded = decode_json_value(value, require_object=False)
            if isinstance(decoded, TaggedError):
                return TaggedError(
                    ErrorKind.INVALID_OUTPUT_VALUE,
                    {'field': field.name, 'reason': decoded.details['reason'], 'got': _preview(value)},
                )
            value = decoded
        typed = validate_term(value, field.schema, root=f'$.{field.name}')
        if isinstance(typed, TaggedError):
            return TaggedError(
                ErrorKind.OUTPUT_VALIDATION_FAILED,
                {'field': field.name, 'errors': typed.details['errors']},
            )
        return typed

    ok, typed = cast_scalar(value, field.kind)
    if not ok:
        return TaggedError(
            ErrorKind.INVALID_OUTPUT_VALUE,
            {'field': field.name, 'reason': typed, 'got': _preview(value)},
        )

    reason = _check_one_of(field, typed)
    if reason is not None:
        return TaggedError(
            ErrorKind.INVALID_OUTPUT_VALUE,
            {'field': field.name, 'reason': reason, 'got': _preview(typed)},
        )
    return typed


def cast_outputs(fields: Any, raw: dict[str, Any], *, drop_invalid_optional: bool = False) -> ParseOutcome:
    """Cast every present raw value, stopping at the first failing field.

    Keys in `raw` that name no field are ignored. With `drop_invalid_optional`,
    a non-required field whose value fails to cast is left out instead of
    failing the whole parse.
    """
    values: dict[str, Any] = {}
    for f in fields:
        if f.name not in raw:
            continue
        typed = cast_field_value(f, raw[f.name])
        if isinstance(typed, TaggedError):
            if drop_invalid_optional and not f.required:
                continue
            return Err(typed)
        values[f.name] = typed
    return Ok(values)


def _preview(value: Any, limit: int = 80) -> str:
    text = value if isinstance(value, str) else repr(value)
    return text if len(text) <= limit else text[: limit - 3] + '...'
