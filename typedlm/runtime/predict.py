"""Predict: a signature bound to a pipeline.

This is the program tier for callbacks: callbacks given here run after the
pipeline's global callbacks and before any per-call callbacks.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

from typedlm.adapters import Adapter, Demo
from typedlm.errors import ParseOutcome
from typedlm.runtime.callbacks import AdapterCallback
from typedlm.runtime.pipeline import Pipeline, RunOptions
from typedlm.signature import Signature


class Predict:
    """Call a signature with keyword inputs.

    Examples:
        >>> qa = Predict('question -> answer', pipeline)
        >>> outcome = await qa(question='What is 2 + 2?')
        >>> outcome.unwrap()['answer']
        '4'
    """

    def __init__(
        self,
        signature: Signature | str,
        pipeline: Pipeline,
        *,
        demos: Sequence[Demo] | None = None,
        callbacks: Sequence[AdapterCallback] | None = None,
        adapter: Adapter | str | None = None,
        max_output_retries: int | None = None,
    ) -> None:
        self.signature = Signature.define(signature) if isinstance(signature, str) else signature
        self.pipeline = pipeline
        self.demos = list(demos or [])
        self.callbacks = tuple(callbacks or ())
        self.adapter = adapter
        self.max_output_retries = max_output_retries

    async def __call__(
        self,
        inputs: Mapping[str, Any] | None = None,
        /,
        *,
        callbacks: Sequence[AdapterCallback] | None = None,
        **kwargs: Any,
    ) -> ParseOutcome:
        options = RunOptions(
            adapter=self.adapter,
            demos=self.demos,
            max_output_retries=self.max_output_retries,
            program_callbacks=self.callbacks,
            callbacks=tuple(callbacks or ()),
        )
        return await self.pipeline.run(self.signature, {**(inputs or {}), **kwargs}, options)

    async def forward(self, inputs: Mapping[str, Any] | None = None, /, **kwargs: Any) -> dict[str, Any]:
        """Run and return output values.

        Raises:
            PredictionError: If the run ends in a tagged error.
        """
        outcome = await self(inputs, **kwargs)
        return outcome.unwrap()
