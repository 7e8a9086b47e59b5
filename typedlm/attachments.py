"""File attachments sent alongside a prompt.

An `Attachments` input value never appears in prompt text (adapters render it
as `<attachments>`). Its files are appended as content parts to the final user
message of the request, after a leading text part:

    [{'type': 'text', 'text': prompt}, {'type': 'input_file', 'file_path': ...}, ...]
"""

from __future__ import annotations

import os
from collections.abc import Mapping, Sequence
from dataclasses import replace
from typing import Any, Literal

from pydantic import BaseModel, Field

from typedlm.llm.base import LMRequest, Message
from typedlm.signature import Signature

ATTACHMENTS_PLACEHOLDER = '<attachments>'

_MIME_TYPES = {
    '.pdf': 'application/pdf',
    '.png': 'image/png',
    '.jpg': 'image/jpeg',
    '.jpeg': 'image/jpeg',
    '.webp': 'image/webp',
    '.gif': 'image/gif',
}


def mime_type_for_path(path: str) -> str | None:
    return _MIME_TYPES.get(os.path.splitext(path)[1].lower())


class AttachmentItem(BaseModel):
    type: Literal['file'] = 'file'
    path: str
    mime_type: str | None = None

    def to_part(self) -> dict[str, Any]:
        part: dict[str, Any] = {'type': 'input_file', 'file_path': self.path}
        if self.mime_type:
            part['mime_type'] = self.mime_type
        return part


class Attachments(BaseModel):
    """One or more files attached to a request.

    Examples:
        >>> Attachments.of('report.pdf').to_message_parts()
        [{'type': 'input_file', 'file_path': 'report.pdf', 'mime_type': 'application/pdf'}]
    """

    items: list[AttachmentItem] = Field(default_factory=list)

    @classmethod
    def of(cls, paths: str | Sequence[str | AttachmentItem | Mapping[str, Any]]) -> 'Attachments':
        """Build from a path, a list of paths, or item mappings.

        Raises:
            TypeError: If an entry is neither a path nor an item.
        """
        if isinstance(paths, str):
            paths = [paths]
        items = []
        for entry in paths:
            if isinstance(entry, str):
                item = AttachmentItem(path=entry)
            elif isinstance(entry, AttachmentItem):
                item = entry
            elif isinstance(entry, Mapping):
                item = AttachmentItem.model_validate(entry)
            else:
                raise TypeError(f'Invalid attachment item: {entry!r}')
            if item.mime_type is None:
                item = item.model_copy(update={'mime_type': mime_type_for_path(item.path)})
            items.append(item)
        return cls(items=items)

    def to_message_parts(self) -> list[dict[str, Any]]:
        return [item.to_part() for item in self.items]

    def __str__(self) -> str:
        return f"<attachments: {', '.join(item.path for item in self.items)}>"


def attachment_parts(signature: Signature, inputs: Mapping[str, Any]) -> list[dict[str, Any]]:
    """Parts for every `Attachments` input value, in signature field order."""
    parts: list[dict[str, Any]] = []
    for f in signature.prompt_input_fields:
        value = inputs.get(f.name)
        if isinstance(value, Attachments):
            parts.extend(value.to_message_parts())
    return parts


def merge_attachments(request: LMRequest, parts: Sequence[dict[str, Any]]) -> LMRequest:
    """Append `parts` to the final user message; the request is unchanged when empty.

    Raises:
        ValueError: If the request has no user message.
    """
    if not parts:
        return request
    index = request.last_user_index()
    message = request.messages[index]
    content = message.content
    if isinstance(content, list):
        updated = [*content, *parts]
    else:
        updated = [{'type': 'text', 'text': content or ''}, *parts]
    messages = list(request.messages)
    messages[index] = Message(role=message.role, content=updated, tool_calls=message.tool_calls)
    return replace(request, messages=tuple(messages))
