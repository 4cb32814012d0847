"""Schema definitions for chainkit

Immutable value types exchanged between runnables: message content, chat
messages, function-call fragments, function descriptors, usage and
generation results, and prompt values.

Streaming producers emit partial values of these types; consumers fold them
back together with ``concat``. Concatenation is only defined between two
values of the same variant. A cross-variant concat returns the left operand
unchanged and logs a warning, so a heterogeneous stream never fails halfway
through a fold.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Sequence, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator

from chainkit.logger import logger


# =============================================================================
# Message Content
# =============================================================================

class ImageDetail(str, Enum):
    """Detail level requested for an image part"""
    AUTO = "auto"
    LOW = "low"
    HIGH = "high"


class ChatMessageContentText(BaseModel):
    """Text content of a human message"""
    model_config = ConfigDict(frozen=True)

    type: Literal["text"] = "text"
    text: str


class ChatMessageContentImage(BaseModel):
    """Image reference content of a human message

    ``data`` is either a URL or base64 encoded image bytes, depending on the
    model that consumes it.
    """
    model_config = ConfigDict(frozen=True)

    type: Literal["image"] = "image"
    data: str
    mime_type: Optional[str] = Field(default=None, description="IANA MIME type, e.g. image/png")
    detail: ImageDetail = Field(default=ImageDetail.AUTO)


ChatMessageContentPart = Annotated[
    Union[ChatMessageContentText, ChatMessageContentImage],
    Field(discriminator="type"),
]


class ChatMessageContentMultiModal(BaseModel):
    """Ordered parts of a multi-modal human message

    Parts are text or image values only; multi-modal values never nest.
    """
    model_config = ConfigDict(frozen=True)

    type: Literal["multi_modal"] = "multi_modal"
    parts: Tuple[ChatMessageContentPart, ...]

    @field_validator("parts", mode="before")
    @classmethod
    def reject_nested(cls, parts: Any) -> Any:
        for part in parts or ():
            kind = part.get("type") if isinstance(part, dict) else getattr(part, "type", None)
            if kind == "multi_modal":
                raise ValueError("Multi-modal content cannot contain other multi-modal content")
        return parts


ChatMessageContent = Annotated[
    Union[ChatMessageContentText, ChatMessageContentImage, ChatMessageContentMultiModal],
    Field(discriminator="type"),
]


def concat_content(left: ChatMessageContent, right: ChatMessageContent) -> ChatMessageContent:
    """Concatenate two content values

    text + text stays text; any other combination becomes a multi-modal value
    whose parts are the flattened parts of both sides, left first.
    """
    match left, right:
        case ChatMessageContentText(), ChatMessageContentText():
            return ChatMessageContentText(text=left.text + right.text)
        case ChatMessageContentMultiModal(), ChatMessageContentMultiModal():
            parts = left.parts + right.parts
        case ChatMessageContentMultiModal(), _:
            parts = left.parts + (right,)
        case _, ChatMessageContentMultiModal():
            parts = (left,) + right.parts
        case _:
            parts = (left, right)
    return ChatMessageContentMultiModal(parts=parts)


def content_to_string(content: ChatMessageContent) -> str:
    match content:
        case ChatMessageContentText():
            return content.text
        case ChatMessageContentImage():
            return content.data
        case ChatMessageContentMultiModal():
            return "\n".join(content_to_string(part) for part in content.parts)


# =============================================================================
# Function Calling
# =============================================================================

class ChatFunction(BaseModel):
    """Description of a function the chat model may call

    ``parameters`` is a JSON Schema object; it is passed through to the model
    untouched.
    """
    model_config = ConfigDict(frozen=True)

    name: str
    description: Optional[str] = None
    parameters: Optional[Dict[str, Any]] = None

    def to_param(self) -> Dict[str, Any]:
        """Convert to the tool format used by OpenAI-compatible APIs"""
        function: Dict[str, Any] = {"name": self.name}
        if self.description is not None:
            function["description"] = self.description
        if self.parameters is not None:
            function["parameters"] = self.parameters
        return {"type": "function", "function": function}


class ChatFunctionCallNone(BaseModel):
    """The model must answer the user and not call a function"""
    model_config = ConfigDict(frozen=True)

    mode: Literal["none"] = "none"


class ChatFunctionCallAuto(BaseModel):
    """The model chooses between answering and calling a function"""
    model_config = ConfigDict(frozen=True)

    mode: Literal["auto"] = "auto"


class ChatFunctionCallForced(BaseModel):
    """The model must call the named function"""
    model_config = ConfigDict(frozen=True)

    mode: Literal["forced"] = "forced"
    function_name: str


ChatFunctionCall = Annotated[
    Union[ChatFunctionCallNone, ChatFunctionCallAuto, ChatFunctionCallForced],
    Field(discriminator="mode"),
]


class AIChatMessageFunctionCall(BaseModel):
    """A (possibly partial) function call requested by the model

    While streaming, ``arguments_raw`` is the exact concatenation of every
    fragment received so far and is what should be parsed once the stream
    ends. ``arguments`` is merged best-effort per chunk and may lag behind.
    """
    model_config = ConfigDict(frozen=True)

    name: str = ""
    arguments_raw: str = ""
    arguments: Dict[str, Any] = Field(default_factory=dict)

    def concat(self, other: "AIChatMessageFunctionCall") -> "AIChatMessageFunctionCall":
        return AIChatMessageFunctionCall(
            name=self.name + other.name,
            arguments_raw=self.arguments_raw + other.arguments_raw,
            arguments={**self.arguments, **other.arguments},
        )


# =============================================================================
# Chat Messages
# =============================================================================

class BaseChatMessage(ABC, BaseModel):
    """A message that is part of a chat conversation"""
    model_config = ConfigDict(frozen=True)

    @property
    @abstractmethod
    def content_as_string(self) -> str:
        """Content of the message rendered as plain text"""

    def concat(self, other: "ChatMessage") -> "ChatMessage":
        """Merge this message with a later chunk of the same variant"""
        return concat_messages(self, other)

    @classmethod
    def system_message(cls, content: str) -> "SystemChatMessage":
        return SystemChatMessage(content=content)

    @classmethod
    def human_message(cls, content: ChatMessageContent) -> "HumanChatMessage":
        return HumanChatMessage(content=content)

    @classmethod
    def human_text(cls, text: str) -> "HumanChatMessage":
        """Shortcut for a human message with text content"""
        return HumanChatMessage(content=ChatMessageContentText(text=text))

    @classmethod
    def ai_message(
        cls,
        content: str = "",
        function_call: Optional[AIChatMessageFunctionCall] = None,
    ) -> "AIChatMessage":
        return AIChatMessage(content=content, function_call=function_call)

    @classmethod
    def function_message(cls, name: str, content: str) -> "FunctionChatMessage":
        return FunctionChatMessage(name=name, content=content)

    @classmethod
    def custom_message(cls, content: str, role: str) -> "CustomChatMessage":
        return CustomChatMessage(content=content, role=role)


class SystemChatMessage(BaseChatMessage):
    type: Literal["system"] = "system"
    content: str

    @property
    def content_as_string(self) -> str:
        return self.content


class HumanChatMessage(BaseChatMessage):
    type: Literal["human"] = "human"
    content: ChatMessageContent

    @property
    def content_as_string(self) -> str:
        return content_to_string(self.content)


class AIChatMessage(BaseChatMessage):
    type: Literal["ai"] = "ai"
    content: str = ""
    function_call: Optional[AIChatMessageFunctionCall] = None

    @property
    def content_as_string(self) -> str:
        return self.content


class FunctionChatMessage(BaseChatMessage):
    """Result of calling a function, sent back to the model"""
    type: Literal["function"] = "function"
    name: str
    content: str

    @property
    def content_as_string(self) -> str:
        return self.content


class CustomChatMessage(BaseChatMessage):
    type: Literal["custom"] = "custom"
    role: str
    content: str

    @property
    def content_as_string(self) -> str:
        return self.content


ChatMessage = Annotated[
    Union[
        SystemChatMessage,
        HumanChatMessage,
        AIChatMessage,
        FunctionChatMessage,
        CustomChatMessage,
    ],
    Field(discriminator="type"),
]

chat_message_adapter = TypeAdapter(ChatMessage)


def parse_chat_message(data: Any) -> ChatMessage:
    """Validate a dict (e.g. from ``model_dump()``) into the right message variant"""
    return chat_message_adapter.validate_python(data)


def concat_messages(left: ChatMessage, right: ChatMessage) -> ChatMessage:
    """Concatenate two chat messages of the same variant

    Mismatched variants return ``left`` unchanged.
    """
    match left, right:
        case SystemChatMessage(), SystemChatMessage():
            return SystemChatMessage(content=left.content + right.content)
        case HumanChatMessage(), HumanChatMessage():
            return HumanChatMessage(content=concat_content(left.content, right.content))
        case AIChatMessage(), AIChatMessage():
            function_call = None
            if left.function_call is not None or right.function_call is not None:
                function_call = (left.function_call or AIChatMessageFunctionCall()).concat(
                    right.function_call or AIChatMessageFunctionCall()
                )
            return AIChatMessage(content=left.content + right.content, function_call=function_call)
        case FunctionChatMessage(), FunctionChatMessage():
            return FunctionChatMessage(name=left.name + right.name, content=left.content + right.content)
        case CustomChatMessage(), CustomChatMessage():
            return CustomChatMessage(role=left.role, content=left.content + right.content)
        case _:
            logger.warning(
                f"Ignoring concat of {type(right).__name__} onto {type(left).__name__}"
            )
            return left


def get_buffer_string(
    messages: Sequence[ChatMessage],
    human_prefix: str = "Human",
    ai_prefix: str = "AI",
) -> str:
    """Render messages as ``Prefix: content`` lines"""
    lines = []
    for message in messages:
        match message:
            case SystemChatMessage():
                prefix = "System"
            case HumanChatMessage():
                prefix = human_prefix
            case AIChatMessage():
                prefix = ai_prefix
            case FunctionChatMessage():
                prefix = "Function"
            case CustomChatMessage():
                prefix = message.role
            case _:
                prefix = type(message).__name__
        lines.append(f"{prefix}: {message.content_as_string}")
    return "\n".join(lines)


# =============================================================================
# Generation Results
# =============================================================================

class FinishReason(str, Enum):
    """Why the model stopped generating"""
    STOP = "stop"
    LENGTH = "length"
    CONTENT_FILTER = "content_filter"
    FUNCTION_CALL = "function_call"
    UNSPECIFIED = "unspecified"


class LanguageModelUsage(BaseModel):
    """Token counts reported by the model

    On concat the later chunk's counts win wherever they are set.
    """
    model_config = ConfigDict(frozen=True)

    prompt_tokens: Optional[int] = None
    response_tokens: Optional[int] = None
    total_tokens: Optional[int] = None

    def concat(self, other: "LanguageModelUsage") -> "LanguageModelUsage":
        return LanguageModelUsage(
            prompt_tokens=other.prompt_tokens if other.prompt_tokens is not None else self.prompt_tokens,
            response_tokens=other.response_tokens if other.response_tokens is not None else self.response_tokens,
            total_tokens=other.total_tokens if other.total_tokens is not None else self.total_tokens,
        )


class LanguageModelResult(ABC, BaseModel):
    """Result of one model call, or one chunk of it when ``streaming`` is set

    Attributes:
        id: Provider identifier of the generation
        output: The generated value
        finish_reason: Why generation stopped
        metadata: Provider specific extra information
        usage: Token counts
        streaming: Whether this value is a streamed chunk
    """
    model_config = ConfigDict(frozen=True)

    id: Optional[str] = None
    output: Any
    finish_reason: FinishReason = FinishReason.UNSPECIFIED
    metadata: Dict[str, Any] = Field(default_factory=dict)
    usage: LanguageModelUsage = Field(default_factory=LanguageModelUsage)
    streaming: bool = False

    @property
    @abstractmethod
    def output_as_string(self) -> str:
        """The output rendered as plain text"""

    @abstractmethod
    def _concat_output(self, other_output: Any) -> Any:
        """Merge ``other_output`` onto this result's output"""

    def concat(self, other: "LanguageModelResult") -> "LanguageModelResult":
        return type(self)(
            id=other.id if other.id is not None else self.id,
            output=self._concat_output(other.output),
            finish_reason=other.finish_reason,
            metadata={**self.metadata, **other.metadata},
            usage=self.usage.concat(other.usage),
            streaming=other.streaming,
        )


class ChatResult(LanguageModelResult):
    """Result returned by a chat model"""
    output: AIChatMessage

    @property
    def output_as_string(self) -> str:
        return self.output.content

    def _concat_output(self, other_output: Any) -> Any:
        return concat_messages(self.output, other_output)


class LLMResult(LanguageModelResult):
    """Result returned by a text completion model"""
    output: str

    @property
    def output_as_string(self) -> str:
        return self.output

    def _concat_output(self, other_output: Any) -> Any:
        return self.output + other_output


# =============================================================================
# Prompt Values
# =============================================================================

class PromptValue(ABC, BaseModel):
    """Rendered prompt, consumable by both text and chat models"""
    model_config = ConfigDict(frozen=True)

    @abstractmethod
    def to_string(self) -> str:
        """Prompt as a single string"""

    @abstractmethod
    def to_chat_messages(self) -> List[ChatMessage]:
        """Prompt as a list of chat messages"""

    def __str__(self) -> str:
        return self.to_string()


class StringPromptValue(PromptValue):
    type: Literal["string"] = "string"
    value: str

    def to_string(self) -> str:
        return self.value

    def to_chat_messages(self) -> List[ChatMessage]:
        return [BaseChatMessage.human_text(self.value)]


class ChatPromptValue(PromptValue):
    type: Literal["chat"] = "chat"
    messages: Tuple[ChatMessage, ...]

    def to_string(self) -> str:
        return get_buffer_string(self.messages)

    def to_chat_messages(self) -> List[ChatMessage]:
        return list(self.messages)
