"""Pipeline - Sequential composition of Runnables

A RunnableSequence executes its steps one after another, feeding each
step's output to the next step. Sequences flatten when piped together, so
(a | b) | c and a | (b | c) hold the same three steps.
"""

from contextlib import aclosing
from typing import Any, AsyncIterator, List, Optional, Sequence, Tuple

from pydantic import Field, model_validator

from chainkit.exceptions import ConfigurationError
from chainkit.logger import logger
from chainkit.runnable.base import BatchOptions, Runnable
from chainkit.runnable.options import RunnableOptions
from chainkit.runnable.parallel import resolve_batch_options


class RunnableSequence(Runnable):
    """Sequence of Runnables executed in order

    The same options value is handed to every step. Errors from any step
    propagate unchanged and abort the sequence.

    Supports the | operator for chaining:
        pipeline = prompt | model | parser

    Attributes:
        steps: Runnables to execute in order (at least one)
    """

    steps: Tuple[Runnable, ...] = Field(..., description="Runnables to execute in sequence")

    @model_validator(mode="after")
    def check_not_empty(self) -> "RunnableSequence":
        if not self.steps:
            raise ConfigurationError("A RunnableSequence needs at least one step")
        return self

    @classmethod
    def from_units(cls, *units: Runnable) -> "RunnableSequence":
        """Build a flat sequence, splicing in the steps of nested sequences"""
        steps: List[Runnable] = []
        for unit in units:
            if isinstance(unit, RunnableSequence):
                steps.extend(unit.steps)
            else:
                steps.append(unit)
        return cls(steps=tuple(steps))

    @property
    def first(self) -> Runnable:
        return self.steps[0]

    @property
    def middle(self) -> Tuple[Runnable, ...]:
        return self.steps[1:-1]

    @property
    def last(self) -> Runnable:
        return self.steps[-1]

    @property
    def display_name(self) -> str:
        return self.name or " | ".join(step.display_name for step in self.steps)

    async def invoke(self, input: Any, options: Optional[RunnableOptions] = None) -> Any:
        """Execute all steps sequentially"""
        result = input
        for i, step in enumerate(self.steps):
            logger.debug(f"Sequence '{self.display_name}': step {i} ({step.display_name})")
            result = await step.invoke(result, options)
        return result

    async def batch(self, inputs: Sequence[Any], options: BatchOptions = None) -> List[Any]:
        """Execute the batch stage by stage

        Every step receives the whole list of current values through its own
        batch(), so items run concurrently within each stage.
        """
        values = list(inputs)
        if options is not None and not isinstance(options, RunnableOptions):
            options = list(options)
        resolve_batch_options(options, len(values))
        for i, step in enumerate(self.steps):
            logger.debug(
                f"Sequence '{self.display_name}': batch step {i} ({step.display_name}), {len(values)} items"
            )
            values = await step.batch(values, options)
        return values

    async def stream(self, input: Any, options: Optional[RunnableOptions] = None) -> AsyncIterator[Any]:
        """Invoke every step but the last, then stream the last step

        Chunks from the last step are forwarded as they arrive.
        """
        value = input
        for step in self.steps[:-1]:
            value = await step.invoke(value, options)

        async with aclosing(self.last.stream(value, options)) as stream:
            async for chunk in stream:
                yield chunk
