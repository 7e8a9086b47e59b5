"""Two-step adapter: a free-form main call, then an extraction call.

1) The main LM answers naturally. Its prompt carries no output-format contract.
2) A separately configured extraction LM re-expresses that free text as the
   signature's outputs, through an extraction adapter (JSON by default).

This is the only adapter that issues a second LM call, so it overrides
`complete_outputs`. Extraction errors are terminal; they are never retried.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

from typedlm.adapters.base import Adapter, Demo
from typedlm.adapters.formatting import history_messages, present_pairs, render_label_lines
from typedlm.adapters.json_adapter import JSONAdapter
from typedlm.errors import Err, ErrorKind, LMTransportError, ParseOutcome, TaggedError, err
from typedlm.history import extract_turns
from typedlm.llm.base import LLMClient, LMRequest, Message
from typedlm.signature import Field, Signature
from typedlm.tools import render_tools

EXTRACTOR_INSTRUCTIONS = 'Extract structured outputs from the input text. Return only values supported by the text.'


def extractor_signature(signature: Signature) -> Signature:
    """`text -> <text outputs of signature>` used for the extraction call."""
    input_name = 'text' if 'text' not in signature else 'completion_text'
    return Signature(
        input_fields=(Field(name=input_name, description='Freeform completion text from the main LM'),),
        output_fields=signature.text_output_fields,
        instructions=EXTRACTOR_INSTRUCTIONS,
        name=f'{signature.name}__two_step_extractor',
    )


def _field_list(fields: Sequence[Field]) -> str:
    return '\n'.join(f'- {f.name}: {f.description}' for f in fields)


class TwoStepAdapter(Adapter):
    name = 'two_step'

    def __init__(
        self,
        *,
        extraction_lm: LLMClient | None = None,
        extraction_adapter: Adapter | None = None,
        request_defaults: Mapping[str, Any] | None = None,
    ) -> None:
        self.extraction_lm = extraction_lm
        self.extraction_adapter = extraction_adapter or JSONAdapter()
        self.request_defaults = dict(request_defaults) if request_defaults is not None else {'temperature': 0.0}

    def format_instructions(self, signature: Signature) -> str:
        return 'Respond naturally and clearly.'

    def _system_prompt(self, signature: Signature) -> str:
        text = (
            'You are a helpful assistant that solves the user task.\n\n'
            f'Inputs available:\n{_field_list(signature.prompt_input_fields)}\n\n'
            f'Desired outputs:\n{_field_list(signature.text_output_fields)}\n\n'
            f'{self.format_instructions(signature)}'
        )
        if signature.instructions:
            text += f'\n\nSpecific instructions:\n{signature.instructions}'
        return text

    def _render_examples(self, signature: Signature, demos: Sequence[Demo]) -> str | None:
        if not demos:
            return None
        blocks = []
        for index, demo in enumerate(demos, start=1):
            inputs = render_label_lines(present_pairs(signature.prompt_input_fields, demo))
            outputs = render_label_lines(present_pairs(signature.text_output_fields, demo))
            blocks.append(f'Example {index}:\nInputs:\n{inputs}\n\nHelpful answer:\n{outputs}')
        return '\n\n'.join(blocks)

    def format_request(
        self,
        signature: Signature,
        inputs: Mapping[str, Any],
        demos: Sequence[Demo] = (),
    ) -> LMRequest | TaggedError:
        extracted = extract_turns(signature, inputs)
        if isinstance(extracted, TaggedError):
            return extracted
        current_inputs, turns = extracted

        task = 'Task inputs:\n' + render_label_lines(present_pairs(signature.prompt_input_fields, current_inputs))
        user = '\n\n'.join(s for s in (self._render_examples(signature, demos), task) if s)

        messages = [Message(role='system', content=self._system_prompt(signature))]
        messages.extend(
            history_messages(
                signature,
                turns,
                render_inputs=render_label_lines,
                render_outputs=render_label_lines,
            )
        )
        messages.append(Message(role='user', content=user))
        return LMRequest(messages=tuple(messages), tools=render_tools(signature, inputs))

    def preflight(self) -> TaggedError | None:
        if self.extraction_lm is None:
            return TaggedError(ErrorKind.EXTRACTION_LM_NOT_CONFIGURED)
        return None

    def parse_outputs(self, signature: Signature, text: str) -> ParseOutcome:
        """Parse an extraction response (not the main response) into outputs."""
        outcome = self.extraction_adapter.parse_outputs(extractor_signature(signature), text)
        if isinstance(outcome, Err):
            return err(ErrorKind.EXTRACTION_PARSE_FAILED, inner=outcome.error)
        return outcome

    def build_extraction_request(self, signature: Signature, text: str) -> LMRequest | TaggedError:
        extractor = extractor_signature(signature)
        request = self.extraction_adapter.format_request(extractor, {extractor.input_fields[0].name: text})
        if isinstance(request, TaggedError):
            return request
        options = {**self.request_defaults, **request.options}
        return LMRequest(messages=request.messages, tools=request.tools, options=options)

    async def complete_outputs(self, signature: Signature, text: str, *, request: LMRequest) -> ParseOutcome:
        if self.extraction_lm is None:
            return err(ErrorKind.EXTRACTION_LM_NOT_CONFIGURED)

        extraction_request = self.build_extraction_request(signature, text)
        if isinstance(extraction_request, TaggedError):
            return err(ErrorKind.EXTRACTION_FAILED, reason=str(extraction_request))

        try:
            response = await self.extraction_lm.generate(extraction_request)
            extraction_text = response.text
        except (LMTransportError, ValueError) as exc:
            return err(ErrorKind.EXTRACTION_FAILED, reason=str(exc))

        return self.parse_outputs(signature, extraction_text)

    def __repr__(self) -> str:
        return f'TwoStepAdapter(extraction_lm={self.extraction_lm!r}, extraction_adapter={self.extraction_adapter!r})'
