"""Adapters - Small Runnables wrapping plain functions and options

These wrap a function or another unit with input/output transformation and
bound options. They hold no mutable state and never catch exceptions: a
failure raised by the wrapped function reaches the caller unchanged.
"""

import inspect
from contextlib import aclosing
from typing import Any, AsyncIterable, AsyncIterator, Callable, List, Optional, Sequence

from pydantic import Field, field_validator

from chainkit.runnable.base import BatchOptions, Runnable
from chainkit.runnable.options import RunnableOptions
from chainkit.utils.streaming import closing_stream


class RunnableFunction(Runnable):
    """Runnable wrapping a sync or async function of one argument

    Attributes:
        func: The function; coroutine results are awaited
    """

    func: Callable[[Any], Any] = Field(..., description="Function applied to the input")

    @property
    def display_name(self) -> str:
        return self.name or getattr(self.func, "__name__", type(self).__name__)

    async def invoke(self, input: Any, options: Optional[RunnableOptions] = None) -> Any:
        result = self.func(input)
        if inspect.isawaitable(result):
            result = await result
        return result


class _PureTransform(Runnable):
    """A synchronous, side-effect free transform"""

    func: Callable[[Any], Any] = Field(..., description="Pure synchronous transform")

    @field_validator("func")
    @classmethod
    def reject_coroutine_functions(cls, func: Callable[[Any], Any]) -> Callable[[Any], Any]:
        if inspect.iscoroutinefunction(func):
            raise ValueError("Transforms must be synchronous; use Runnable.from_function for async code")
        return func

    async def invoke(self, input: Any, options: Optional[RunnableOptions] = None) -> Any:
        return self.func(input)


class RunnableMapInput(_PureTransform):
    """Reshape a pipeline's input before it reaches the next unit

    Example:
        chain = Runnable.map_input(lambda q: {"topic": q}) | prompt | model
    """


class RunnableMapOutput(_PureTransform):
    """Reshape the output of the preceding unit

    Example:
        chain = model | Runnable.map_output(lambda result: result.output_as_string)
    """


class RunnablePassthrough(Runnable):
    """Runnable that returns its input unchanged

    Passes chunks through one by one when used with transform().
    """

    async def invoke(self, input: Any, options: Optional[RunnableOptions] = None) -> Any:
        return input

    async def transform(
        self,
        chunks: AsyncIterable[Any],
        options: Optional[RunnableOptions] = None,
    ) -> AsyncIterator[Any]:
        async with closing_stream(chunks) as source:
            async for chunk in source:
                yield chunk


class RunnableBinding(Runnable):
    """A unit with default options bound to it

    Created by Runnable.bind(). Call-time options are merged over the bound
    options on every call.

    Attributes:
        bound: The wrapped unit
        options: Bound default options
    """

    bound: Runnable = Field(..., description="Wrapped unit")
    options: RunnableOptions = Field(default_factory=RunnableOptions, description="Bound options")

    @property
    def display_name(self) -> str:
        return self.name or self.bound.display_name

    def _merged(self, options: Optional[RunnableOptions]) -> RunnableOptions:
        return self.options.merge(options)

    def _merged_batch(self, options: BatchOptions) -> BatchOptions:
        if options is None or isinstance(options, RunnableOptions):
            return self._merged(options)
        # Length is validated by the bound unit's batch
        return [self._merged(item) for item in options]

    async def invoke(self, input: Any, options: Optional[RunnableOptions] = None) -> Any:
        return await self.bound.invoke(input, self._merged(options))

    async def batch(self, inputs: Sequence[Any], options: BatchOptions = None) -> List[Any]:
        return await self.bound.batch(inputs, self._merged_batch(options))

    async def stream(self, input: Any, options: Optional[RunnableOptions] = None) -> AsyncIterator[Any]:
        async with aclosing(self.bound.stream(input, self._merged(options))) as stream:
            async for chunk in stream:
                yield chunk

    async def transform(
        self,
        chunks: AsyncIterable[Any],
        options: Optional[RunnableOptions] = None,
    ) -> AsyncIterator[Any]:
        async with aclosing(self.bound.transform(chunks, self._merged(options))) as stream:
            async for chunk in stream:
                yield chunk

    def bind(self, options: RunnableOptions) -> "RunnableBinding":
        """Re-binding merges into the existing bound options"""
        return RunnableBinding(bound=self.bound, options=self.options.merge(options), name=self.name)
