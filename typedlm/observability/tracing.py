"""Minimal structured logging for pipeline invocations.

Every log line is a single JSON object carrying the invocation's `call_id`, so
lines from concurrent invocations can be told apart. Records go through the
standard `logging` module under the `typedlm` logger; configure handlers there.
"""

from __future__ import annotations

import json
import logging
import uuid
from typing import Any

logger = logging.getLogger('typedlm')


def new_call_id() -> str:
    return uuid.uuid4().hex


def log_event(
    event: str,
    *,
    call_id: str,
    level: int = logging.INFO,
    exc_info: bool = False,
    **fields: Any,
) -> None:
    if not logger.isEnabledFor(level):
        return
    payload: dict[str, Any] = {'event': event, 'call_id': call_id, **fields}
    logger.log(level, json.dumps(payload, ensure_ascii=False, default=str), exc_info=exc_info)
