"""Memory for chains: chat message history and conversation buffers"""
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, Field

from chainkit.exceptions import ExecutionError
from chainkit.logger import logger
from chainkit.schema import AIChatMessage, BaseChatMessage, ChatMessage, get_buffer_string


class BaseChatMessageHistory(ABC, BaseModel):
    """Storage for the messages of one conversation"""

    @abstractmethod
    async def get_chat_messages(self) -> List[ChatMessage]:
        """All messages, oldest first"""

    @abstractmethod
    async def add_chat_message(self, message: ChatMessage) -> None:
        """Append a message"""

    @abstractmethod
    async def remove_first(self) -> Optional[ChatMessage]:
        """Remove and return the oldest message (None if empty)"""

    @abstractmethod
    async def remove_last(self) -> Optional[ChatMessage]:
        """Remove and return the newest message (None if empty)"""

    @abstractmethod
    async def clear(self) -> None:
        """Remove all messages"""

    async def add_user_message(self, text: str) -> None:
        await self.add_chat_message(BaseChatMessage.human_text(text))

    async def add_ai_message(self, text: str) -> None:
        await self.add_chat_message(AIChatMessage(content=text))


class InMemoryChatMessageHistory(BaseChatMessageHistory):
    """Message history kept in a list

    Attributes:
        messages: Stored messages
        max_messages: Drop the oldest messages beyond this count (None = keep all)
    """

    messages: List[ChatMessage] = Field(default_factory=list)
    max_messages: Optional[int] = Field(default=None, ge=1)

    async def get_chat_messages(self) -> List[ChatMessage]:
        return list(self.messages)

    async def add_chat_message(self, message: ChatMessage) -> None:
        self.messages.append(message)
        if self.max_messages is not None and len(self.messages) > self.max_messages:
            self.messages = self.messages[-self.max_messages:]

    async def remove_first(self) -> Optional[ChatMessage]:
        return self.messages.pop(0) if self.messages else None

    async def remove_last(self) -> Optional[ChatMessage]:
        return self.messages.pop() if self.messages else None

    async def clear(self) -> None:
        self.messages = []


class BaseMemory(ABC, BaseModel):
    """State a chain reads before running and updates afterwards"""

    @property
    @abstractmethod
    def memory_keys(self) -> List[str]:
        """Keys this memory adds to the chain inputs"""

    @abstractmethod
    async def load_memory_variables(self, values: Mapping[str, Any]) -> Dict[str, Any]:
        """Variables to add to the chain inputs"""

    @abstractmethod
    async def save_context(self, inputs: Mapping[str, Any], outputs: Mapping[str, Any]) -> None:
        """Record one run of the chain"""

    @abstractmethod
    async def clear(self) -> None:
        """Forget everything"""


def _pick_key(values: Mapping[str, Any], key: Optional[str], exclude: List[str], kind: str) -> str:
    if key is not None:
        if key not in values:
            raise ExecutionError(f"Missing {kind} key '{key}' in {sorted(values)}")
        return key
    candidates = [k for k in values if k not in exclude]
    if len(candidates) != 1:
        raise ExecutionError(
            f"Cannot pick the {kind} key from {candidates}; set {kind}_key on the memory"
        )
    return candidates[0]


class ConversationBufferMemory(BaseMemory):
    """Keeps the whole conversation and hands it back to the chain

    The history is returned under ``memory_key`` either as a list of
    messages (``return_messages=True``, for MessagesPlaceholder) or as one
    ``Human: ...`` / ``AI: ...`` transcript string.

    Example:
        memory = ConversationBufferMemory(return_messages=True)
        chain = LLMChain(prompt=prompt, llm=model, memory=memory)
    """

    chat_history: BaseChatMessageHistory = Field(default_factory=InMemoryChatMessageHistory)
    memory_key: str = "history"
    return_messages: bool = False
    input_key: Optional[str] = None
    output_key: Optional[str] = None
    human_prefix: str = "Human"
    ai_prefix: str = "AI"

    @property
    def memory_keys(self) -> List[str]:
        return [self.memory_key]

    async def load_memory_variables(self, values: Mapping[str, Any]) -> Dict[str, Any]:
        messages = await self.chat_history.get_chat_messages()
        logger.debug(f"Memory '{self.memory_key}': loaded {len(messages)} messages")
        if self.return_messages:
            return {self.memory_key: messages}
        return {
            self.memory_key: get_buffer_string(
                messages, human_prefix=self.human_prefix, ai_prefix=self.ai_prefix
            )
        }

    async def save_context(self, inputs: Mapping[str, Any], outputs: Mapping[str, Any]) -> None:
        input_value = inputs[_pick_key(inputs, self.input_key, self.memory_keys, "input")]
        output_value = outputs[_pick_key(outputs, self.output_key, [], "output")]

        human = input_value if isinstance(input_value, BaseChatMessage) else BaseChatMessage.human_text(str(input_value))
        ai = output_value if isinstance(output_value, AIChatMessage) else AIChatMessage(content=str(output_value))
        await self.chat_history.add_chat_message(human)
        await self.chat_history.add_chat_message(ai)
        logger.debug(f"Memory '{self.memory_key}': saved one exchange")

    async def clear(self) -> None:
        await self.chat_history.clear()
