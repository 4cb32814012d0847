"""Streaming utilities

Folding of streamed chunks into one value, plus a pseudo-streaming helper
that splits finished text into chunks for models that cannot stream.

A fold is a pure left fold over the chunk sequence: the first chunk is the
starting value and every following chunk is concatenated onto the running
total. There is no empty/identity value, so folding zero chunks fails.
"""
import asyncio
import functools
from contextlib import aclosing, nullcontext
from typing import Any, AsyncIterable, AsyncIterator, Iterable, Optional

from chainkit.exceptions import ConcatenationError
from chainkit.schema import (
    AIChatMessageFunctionCall,
    BaseChatMessage,
    ChatMessageContentImage,
    ChatMessageContentMultiModal,
    ChatMessageContentText,
    LanguageModelResult,
    LanguageModelUsage,
    concat_content,
    concat_messages,
)

_CONTENT_TYPES = (ChatMessageContentText, ChatMessageContentImage, ChatMessageContentMultiModal)


def concat_chunks(left: Any, right: Any) -> Any:
    """Concatenate two streamed values

    Raises:
        ConcatenationError: If the two values have no concatenation operation
    """
    match left, right:
        case str(), str():
            return left + right
        case BaseChatMessage(), BaseChatMessage():
            return concat_messages(left, right)
        case LanguageModelResult(), LanguageModelResult() if type(left) is type(right):
            return left.concat(right)
        case AIChatMessageFunctionCall(), AIChatMessageFunctionCall():
            return left.concat(right)
        case LanguageModelUsage(), LanguageModelUsage():
            return left.concat(right)
        case _, _ if isinstance(left, _CONTENT_TYPES) and isinstance(right, _CONTENT_TYPES):
            return concat_content(left, right)
        case list(), list():
            return left + right
        case dict(), dict():
            merged = dict(left)
            for key, value in right.items():
                merged[key] = concat_chunks(merged[key], value) if key in merged else value
            return merged
    raise ConcatenationError(
        f"Cannot concatenate {type(right).__name__} onto {type(left).__name__}"
    )


def fold_chunks(chunks: Iterable[Any]) -> Any:
    """Fold chunks left to right into one value

    Raises:
        ConcatenationError: If there are no chunks or two chunks do not concatenate
    """
    iterator = iter(chunks)
    try:
        first = next(iterator)
    except StopIteration:
        raise ConcatenationError("Cannot fold an empty stream") from None
    return functools.reduce(concat_chunks, iterator, first)


class StreamMerger:
    """Running total of a stream

    Example:
        merger = StreamMerger()
        async for chunk in model.stream(prompt):
            merger.add(chunk)
            render(merger.value)
    """

    def __init__(self):
        self._value: Any = None
        self._count = 0

    @property
    def count(self) -> int:
        """Number of chunks added so far"""
        return self._count

    @property
    def value(self) -> Any:
        """Current running total

        Raises:
            ConcatenationError: If no chunk has been added yet
        """
        if self._count == 0:
            raise ConcatenationError("No chunks have been merged yet")
        return self._value

    def add(self, chunk: Any) -> Any:
        """Merge ``chunk`` into the running total and return the new total"""
        self._value = chunk if self._count == 0 else concat_chunks(self._value, chunk)
        self._count += 1
        return self._value


def closing_stream(stream: AsyncIterable[Any]):
    """Context manager closing ``stream`` on exit if it supports aclose()

    Used wherever one stream consumes another, so that an abandoned or
    failed consumer also closes its source.
    """
    return aclosing(stream) if hasattr(stream, "aclose") else nullcontext(stream)


async def accumulate(stream: AsyncIterable[Any]) -> AsyncIterator[Any]:
    """Yield the running total after every chunk of ``stream``"""
    merger = StreamMerger()
    async with closing_stream(stream) as chunks:
        async for chunk in chunks:
            yield merger.add(chunk)


async def collect(stream: AsyncIterable[Any]) -> Any:
    """Consume ``stream`` and return the folded value"""
    merger = StreamMerger()
    async with closing_stream(stream) as chunks:
        async for chunk in chunks:
            merger.add(chunk)
    return merger.value


async def stream_text(
    text: str,
    chunk_size: int = 1,
    char_delay: Optional[float] = None,
) -> AsyncIterator[str]:
    """Split finished text into chunks (typewriter effect)

    Args:
        text: Text to stream
        chunk_size: Characters per chunk
        char_delay: Delay between chunks in seconds (None or 0 = no delay)

    Yields:
        str: Text chunks; an empty text yields a single empty chunk
    """
    if not text:
        yield ""
        return

    for start in range(0, len(text), chunk_size):
        yield text[start:start + chunk_size]
        if char_delay:
            await asyncio.sleep(char_delay)
