"""Fake chat models for tests and examples

They need no network access and stream their answer character by
character, so they exercise the same streaming path as a real model.
"""

from abc import abstractmethod
from typing import AsyncIterator, List, Optional

from pydantic import Field, PrivateAttr, field_validator

from chainkit.models.base import BaseChatModel, ChatModelOptions
from chainkit.schema import AIChatMessage, ChatMessage, ChatResult, FinishReason
from chainkit.utils.streaming import stream_text


class _FakeChatModel(BaseChatModel):
    """Answers with text computed from the messages

    Attributes:
        char_delay: Delay between streamed characters in seconds
    """

    char_delay: Optional[float] = Field(default=None, description="Delay between streamed chunks")

    @abstractmethod
    def _respond(self, messages: List[ChatMessage]) -> str:
        """Text of the answer"""

    async def _generate(self, messages: List[ChatMessage], options: ChatModelOptions) -> ChatResult:
        return ChatResult(
            id="fake",
            output=AIChatMessage(content=self._respond(messages)),
            finish_reason=FinishReason.STOP,
        )

    async def _stream(self, messages: List[ChatMessage], options: ChatModelOptions) -> AsyncIterator[ChatResult]:
        text = self._respond(messages)
        remaining = len(text)
        async for piece in stream_text(text, char_delay=self.char_delay):
            remaining -= len(piece)
            yield ChatResult(
                id="fake",
                output=AIChatMessage(content=piece),
                finish_reason=FinishReason.STOP if remaining == 0 else FinishReason.UNSPECIFIED,
                streaming=True,
            )


class FakeListChatModel(_FakeChatModel):
    """Returns the given responses in order, starting over after the last one

    Example:
        model = FakeListChatModel(responses=["Hi!", "Bye!"])
    """

    responses: List[str] = Field(..., description="Canned responses")

    _cursor: int = PrivateAttr(default=0)

    @field_validator("responses")
    @classmethod
    def require_responses(cls, responses: List[str]) -> List[str]:
        if not responses:
            raise ValueError("FakeListChatModel needs at least one response")
        return responses

    def _respond(self, messages: List[ChatMessage]) -> str:
        response = self.responses[self._cursor % len(self.responses)]
        self._cursor += 1
        return response


class FakeEchoChatModel(_FakeChatModel):
    """Returns the text of the last message it receives"""

    def _respond(self, messages: List[ChatMessage]) -> str:
        return messages[-1].content_as_string if messages else ""
