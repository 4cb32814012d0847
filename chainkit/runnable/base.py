"""Runnable - Core abstraction for composable units

A Runnable accepts an input plus optional RunnableOptions and produces an
output through three execution modes:
1. invoke(): one input, one output
2. batch(): many inputs, run concurrently, outputs in input order
3. stream(): one input, an async iterator of partial outputs

Only invoke() is abstract. The default batch() delegates to the batch
executor and the default stream() emits the result of invoke() as a single
chunk, so every unit supports all three modes.
"""

from abc import ABC, abstractmethod
from contextlib import aclosing
from typing import (
    TYPE_CHECKING,
    Any,
    AsyncIterable,
    AsyncIterator,
    Callable,
    Generic,
    List,
    Mapping,
    Optional,
    Sequence,
    TypeVar,
    Union,
)

from pydantic import BaseModel, ConfigDict, Field

from chainkit.exceptions import ConfigurationError
from chainkit.runnable.options import RunnableOptions
from chainkit.utils.streaming import collect

if TYPE_CHECKING:
    from chainkit.runnable.adapters import RunnableBinding
    from chainkit.runnable.parallel import RunnableMap
    from chainkit.runnable.pipeline import RunnableSequence


Input = TypeVar("Input")
Output = TypeVar("Output")

BatchOptions = Union[RunnableOptions, Sequence[RunnableOptions], None]


class Runnable(BaseModel, ABC, Generic[Input, Output]):
    """Abstract base class for all composable units

    Runnables are immutable configurations: a call never changes the unit,
    so the same instance can serve many concurrent calls.

    Supports the | operator for chaining:
        chain = prompt | model | parser

    Attributes:
        name: Optional human-readable name, used in logs
    """
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    name: Optional[str] = Field(default=None, description="Human-readable name")

    @property
    def display_name(self) -> str:
        return self.name or type(self).__name__

    # =========================================================================
    # Execution
    # =========================================================================

    @abstractmethod
    async def invoke(self, input: Input, options: Optional[RunnableOptions] = None) -> Output:
        """Run the unit on a single input

        Args:
            input: The input value
            options: Call-time options

        Returns:
            The output value
        """

    async def batch(self, inputs: Sequence[Input], options: BatchOptions = None) -> List[Output]:
        """Run the unit on many inputs concurrently

        Args:
            inputs: Input values
            options: One options value for every input, or a list matched
                positionally with ``inputs``

        Returns:
            Outputs in input order

        Raises:
            ConfigurationError: If positional options do not match inputs in length
        """
        from chainkit.runnable.parallel import run_batch
        return await run_batch(self, inputs, options)

    async def stream(self, input: Input, options: Optional[RunnableOptions] = None) -> AsyncIterator[Output]:
        """Stream partial outputs

        Non-streaming units yield exactly one chunk, the result of invoke().
        """
        yield await self.invoke(input, options)

    async def transform(
        self,
        chunks: AsyncIterable[Input],
        options: Optional[RunnableOptions] = None,
    ) -> AsyncIterator[Output]:
        """Stream outputs from a stream of input chunks

        The default folds the input chunks into one value and streams on it.
        Units that can work chunk by chunk (e.g. output parsers) override this.
        """
        folded = await collect(chunks)
        async with aclosing(self.stream(folded, options)) as stream:
            async for chunk in stream:
                yield chunk

    # =========================================================================
    # Composition
    # =========================================================================

    def pipe(self, other: Any) -> "RunnableSequence":
        """Chain ``other`` after this unit

        ``other`` may be a Runnable, a plain callable or a mapping of
        runnables (run in parallel on the same input).
        """
        from chainkit.runnable.pipeline import RunnableSequence
        return RunnableSequence.from_units(self, coerce_to_runnable(other))

    def __or__(self, other: Any) -> "RunnableSequence":
        """Support pipeline operator: runnable1 | runnable2"""
        return self.pipe(other)

    def __ror__(self, other: Any) -> "RunnableSequence":
        """Support pipeline operator with a callable or mapping on the left"""
        from chainkit.runnable.pipeline import RunnableSequence
        return RunnableSequence.from_units(coerce_to_runnable(other), self)

    def __and__(self, other: Any) -> "RunnableMap":
        """Support parallel operator: runnable1 & runnable2

        Both units run concurrently on the same input. The output is a dict
        keyed by each unit's display name.
        """
        from chainkit.runnable.parallel import RunnableMap
        return RunnableMap.from_units(self, coerce_to_runnable(other))

    def bind(self, options: RunnableOptions) -> "RunnableBinding":
        """Bind default options to this unit

        Call-time options still take precedence over the bound ones.
        """
        from chainkit.runnable.adapters import RunnableBinding
        return RunnableBinding(bound=self, options=options)

    # =========================================================================
    # Factories
    # =========================================================================

    @staticmethod
    def from_function(func: Callable[[Any], Any], name: Optional[str] = None) -> "Runnable":
        """Lift a sync or async function into a unit"""
        from chainkit.runnable.adapters import RunnableFunction
        return RunnableFunction(func=func, name=name)

    @staticmethod
    def map_input(func: Callable[[Any], Any]) -> "Runnable":
        """Wrap a pure synchronous transform applied to a pipeline's input"""
        from chainkit.runnable.adapters import RunnableMapInput
        return RunnableMapInput(func=func)

    @staticmethod
    def map_output(func: Callable[[Any], Any]) -> "Runnable":
        """Wrap a pure synchronous transform applied to the previous unit's output"""
        from chainkit.runnable.adapters import RunnableMapOutput
        return RunnableMapOutput(func=func)

    @staticmethod
    def passthrough() -> "Runnable":
        from chainkit.runnable.adapters import RunnablePassthrough
        return RunnablePassthrough()

    @staticmethod
    def from_mapping(steps: Mapping[str, Any]) -> "RunnableMap":
        """Run every entry concurrently on the same input, collecting a dict"""
        from chainkit.runnable.parallel import RunnableMap
        return RunnableMap(steps={key: coerce_to_runnable(value) for key, value in steps.items()})


def coerce_to_runnable(thing: Any) -> Runnable:
    """Turn a Runnable, callable or mapping into a Runnable

    Raises:
        ConfigurationError: If ``thing`` cannot be used as a unit
    """
    if isinstance(thing, Runnable):
        return thing
    if isinstance(thing, Mapping):
        return Runnable.from_mapping(thing)
    if callable(thing):
        return Runnable.from_function(thing)
    raise ConfigurationError(f"Cannot use {type(thing).__name__} as a runnable")
