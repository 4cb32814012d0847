"""Chat model base class

A chat model is a Runnable from a prompt (PromptValue, list of messages or
plain string) to a ChatResult. Streaming models emit partial ChatResults
that fold back into the full result with concat().
"""

from abc import abstractmethod
from contextlib import aclosing
from typing import Any, AsyncIterator, List, Optional

from pydantic import Field

from chainkit.exceptions import ExecutionError
from chainkit.logger import logger
from chainkit.runnable.base import Runnable
from chainkit.runnable.options import RunnableOptions
from chainkit.schema import (
    AIChatMessage,
    BaseChatMessage,
    ChatFunction,
    ChatFunctionCall,
    ChatMessage,
    ChatResult,
    PromptValue,
    parse_chat_message,
)


class ChatModelOptions(RunnableOptions):
    """Options of a chat model call

    Unset fields fall back to the model's default_options and then to the
    model settings from the configuration file.

    Attributes:
        model: Model name
        temperature: Sampling temperature
        max_tokens: Maximum number of tokens to generate
        functions: Functions the model may call
        function_call: Whether and which function the model must call
        stop: Stop sequences
    """

    model: Optional[str] = None
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    functions: List[ChatFunction] = Field(default_factory=list)
    function_call: Optional[ChatFunctionCall] = None
    stop: Optional[List[str]] = None


def to_chat_messages(input: Any) -> List[ChatMessage]:
    """Normalize a model input to a list of messages

    Raises:
        ExecutionError: If the input is not a prompt
    """
    match input:
        case PromptValue():
            return input.to_chat_messages()
        case str():
            return [BaseChatMessage.human_text(input)]
        case BaseChatMessage():
            return [input]
        case list() | tuple():
            return [
                message if isinstance(message, BaseChatMessage) else parse_chat_message(message)
                for message in input
            ]
        case _:
            raise ExecutionError(f"A chat model cannot take {type(input).__name__} as input")


class BaseChatModel(Runnable):
    """Base class for chat models

    Subclasses implement _generate() and may implement _stream() for native
    streaming; without it stream() yields the complete result as one chunk.

    Attributes:
        default_options: Options used when the call does not set them
    """

    default_options: ChatModelOptions = Field(default_factory=ChatModelOptions)

    def _merge_options(self, options: Optional[RunnableOptions]) -> ChatModelOptions:
        # merge() keeps the more specific class, so this stays a ChatModelOptions
        return self.default_options.merge(options)

    @abstractmethod
    async def _generate(self, messages: List[ChatMessage], options: ChatModelOptions) -> ChatResult:
        """Produce the complete result for ``messages``"""

    async def _stream(self, messages: List[ChatMessage], options: ChatModelOptions) -> AsyncIterator[ChatResult]:
        yield await self._generate(messages, options)

    async def invoke(self, input: Any, options: Optional[RunnableOptions] = None) -> ChatResult:
        messages = to_chat_messages(input)
        return await self._generate(messages, self._merge_options(options))

    async def stream(self, input: Any, options: Optional[RunnableOptions] = None) -> AsyncIterator[ChatResult]:
        messages = to_chat_messages(input)
        merged = self._merge_options(options)
        logger.debug(f"Model '{self.display_name}': stream started ({len(messages)} messages)")
        count = 0
        async with aclosing(self._stream(messages, merged)) as chunks:
            async for chunk in chunks:
                count += 1
                yield chunk
        logger.debug(f"Model '{self.display_name}': stream finished after {count} chunks")

    async def call(self, messages: Any, options: Optional[RunnableOptions] = None) -> AIChatMessage:
        """Invoke the model and return only the AI message"""
        result = await self.invoke(messages, options)
        return result.output
