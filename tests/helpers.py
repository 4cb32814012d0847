"""
Fake units shared by the test modules.
"""

import asyncio
from typing import Any, AsyncIterator, List, Optional

from pydantic import Field

from chainkit.runnable import Runnable, RunnableOptions


class AddOne(Runnable):
    """Adds one to its input and records every call"""

    calls: List[Any] = Field(default_factory=list)

    async def invoke(self, input: Any, options: Optional[RunnableOptions] = None) -> Any:
        self.calls.append((input, options))
        return input + 1


class Double(Runnable):
    async def invoke(self, input: Any, options: Optional[RunnableOptions] = None) -> Any:
        return input * 2


class Failing(Runnable):
    """Raises ``error`` for inputs listed in ``fail_on`` (all inputs if empty)"""

    error: BaseException
    fail_on: List[Any] = Field(default_factory=list)
    calls: List[Any] = Field(default_factory=list)

    async def invoke(self, input: Any, options: Optional[RunnableOptions] = None) -> Any:
        self.calls.append(input)
        if not self.fail_on or input in self.fail_on:
            raise self.error
        return input


class SlowEcho(Runnable):
    """Sleeps ``input`` seconds then returns it, tracking peak concurrency"""

    active: List[int] = Field(default_factory=lambda: [0])
    peak: List[int] = Field(default_factory=lambda: [0])
    finished: List[Any] = Field(default_factory=list)

    async def invoke(self, input: Any, options: Optional[RunnableOptions] = None) -> Any:
        self.active[0] += 1
        self.peak[0] = max(self.peak[0], self.active[0])
        try:
            await asyncio.sleep(input)
        finally:
            self.active[0] -= 1
        self.finished.append(input)
        return input


class ChunkEmitter(Runnable):
    """Streams fixed chunks and records whether its stream was closed"""

    chunks: List[Any]
    events: List[str] = Field(default_factory=list)

    async def invoke(self, input: Any, options: Optional[RunnableOptions] = None) -> Any:
        return "".join(self.chunks)

    async def stream(self, input: Any, options: Optional[RunnableOptions] = None) -> AsyncIterator[Any]:
        self.events.append("started")
        try:
            for chunk in self.chunks:
                yield chunk
        finally:
            self.events.append("closed")


class OptionsProbe(Runnable):
    """Returns the options it was called with"""

    async def invoke(self, input: Any, options: Optional[RunnableOptions] = None) -> Any:
        return options
