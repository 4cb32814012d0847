"""Prompt templates

Templates are Runnables from a mapping of variables to a PromptValue, so
they sit at the head of a pipeline:

    chain = ChatPromptTemplate.from_template("Tell me a joke about {topic}") | model

Variables use str.format syntax. Input variables are detected from the
template text; partial variables are filled in ahead of time and are no
longer required at call time.
"""

import string
from abc import abstractmethod
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from pydantic import Field, model_validator

from chainkit.exceptions import ConfigurationError, ExecutionError
from chainkit.runnable.base import Runnable
from chainkit.runnable.options import RunnableOptions
from chainkit.schema import (
    AIChatMessage,
    BaseChatMessage,
    ChatMessage,
    ChatPromptValue,
    CustomChatMessage,
    PromptValue,
    StringPromptValue,
    SystemChatMessage,
    parse_chat_message,
)


def detect_variables(template: str) -> List[str]:
    """Names of the format fields in ``template``, in order of first use

    Raises:
        ConfigurationError: On positional fields such as ``{}`` or ``{0}``
    """
    names: List[str] = []
    for _, field_name, _, _ in string.Formatter().parse(template):
        if field_name is None:
            continue
        root = field_name.split(".", 1)[0].split("[", 1)[0]
        if not root or root.isdigit():
            raise ConfigurationError(f"Positional placeholders are not supported in template: {template!r}")
        if root not in names:
            names.append(root)
    return names


class BasePromptTemplate(Runnable):
    """Base class for prompt templates

    Attributes:
        input_variables: Variables that must be supplied at call time
        partial_variables: Pre-filled variables; callables are called on every format
    """

    input_variables: Tuple[str, ...] = Field(default=(), description="Variables required at call time")
    partial_variables: Dict[str, Any] = Field(default_factory=dict, description="Pre-filled variables")

    def partial(self, **values: Any) -> "BasePromptTemplate":
        """Return a copy with some variables filled in"""
        partials = {**self.partial_variables, **values}
        remaining = tuple(name for name in self.input_variables if name not in partials)
        return self.model_copy(update={"partial_variables": partials, "input_variables": remaining})

    def _merge_partials(self, values: Mapping[str, Any]) -> Dict[str, Any]:
        merged = {
            key: value() if callable(value) else value
            for key, value in self.partial_variables.items()
        }
        merged.update(values)
        missing = [name for name in self.input_variables if name not in merged]
        if missing:
            raise ExecutionError(
                f"Missing value for prompt variable(s) {', '.join(missing)}; got {sorted(values)}"
            )
        return merged

    def _coerce_input(self, input: Any) -> Mapping[str, Any]:
        if isinstance(input, Mapping):
            return input
        if len(self.input_variables) == 1:
            return {self.input_variables[0]: input}
        raise ExecutionError(
            f"Expected a mapping with {list(self.input_variables)}, got {type(input).__name__}"
        )

    @abstractmethod
    def format_prompt(self, values: Mapping[str, Any]) -> PromptValue:
        """Render the template

        Raises:
            ExecutionError: If a variable is missing
        """

    def format(self, values: Mapping[str, Any]) -> str:
        return self.format_prompt(values).to_string()

    async def invoke(self, input: Any, options: Optional[RunnableOptions] = None) -> PromptValue:
        return self.format_prompt(self._coerce_input(input))


class PromptTemplate(BasePromptTemplate):
    """Template rendering to a single string

    Example:
        prompt = PromptTemplate.from_template("Translate to {language}: {text}")
        value = await prompt.invoke({"language": "French", "text": "Hello"})
    """

    template: str = Field(..., description="str.format style template")

    @classmethod
    def from_template(cls, template: str, partial_variables: Optional[Dict[str, Any]] = None) -> "PromptTemplate":
        partials = dict(partial_variables or {})
        return cls(
            template=template,
            input_variables=tuple(name for name in detect_variables(template) if name not in partials),
            partial_variables=partials,
        )

    def render(self, values: Mapping[str, Any]) -> str:
        merged = self._merge_partials(values)
        try:
            return self.template.format(**merged)
        except (KeyError, IndexError, AttributeError) as e:
            raise ExecutionError(f"Failed to render prompt template: {e}", cause=e) from e

    def format_prompt(self, values: Mapping[str, Any]) -> StringPromptValue:
        return StringPromptValue(value=self.render(values))


class ChatMessagePromptTemplate(BasePromptTemplate):
    """Template for one chat message with a fixed role

    Roles ``system``, ``human``/``user``, ``ai``/``assistant`` map to the
    matching message types; any other role yields a CustomChatMessage.
    """

    role: str = Field(..., description="Message role")
    prompt: PromptTemplate = Field(..., description="Template for the message text")

    @classmethod
    def from_template(cls, role: str, template: str) -> "ChatMessagePromptTemplate":
        prompt = PromptTemplate.from_template(template)
        return cls(role=role, prompt=prompt, input_variables=prompt.input_variables)

    def format_message(self, values: Mapping[str, Any]) -> ChatMessage:
        text = self.prompt.render(values)
        match self.role:
            case "system":
                return SystemChatMessage(content=text)
            case "human" | "user":
                return BaseChatMessage.human_text(text)
            case "ai" | "assistant":
                return AIChatMessage(content=text)
            case _:
                return CustomChatMessage(role=self.role, content=text)

    def format_prompt(self, values: Mapping[str, Any]) -> ChatPromptValue:
        return ChatPromptValue(messages=(self.format_message(self._merge_partials(values)),))


class MessagesPlaceholder(BasePromptTemplate):
    """Inserts a list of messages taken from a variable, e.g. chat history

    Attributes:
        variable_name: Variable holding the messages
        optional: If set, a missing variable renders no messages
    """

    variable_name: str = Field(..., description="Variable holding a list of messages")
    optional: bool = False

    @model_validator(mode="before")
    @classmethod
    def require_variable(cls, data: Any) -> Any:
        if isinstance(data, dict) and "input_variables" not in data and not data.get("optional"):
            data = {**data, "input_variables": (data.get("variable_name"),)}
        return data

    def format_messages(self, values: Mapping[str, Any]) -> List[ChatMessage]:
        if self.variable_name not in values:
            if self.optional:
                return []
            raise ExecutionError(f"Missing value for prompt variable(s) {self.variable_name}")
        messages = values[self.variable_name]
        if isinstance(messages, (str, bytes)) or not isinstance(messages, Sequence):
            raise ExecutionError(
                f"Variable {self.variable_name} must be a list of messages, got {type(messages).__name__}"
            )
        return [
            message if isinstance(message, BaseChatMessage) else parse_chat_message(message)
            for message in messages
        ]

    def format_prompt(self, values: Mapping[str, Any]) -> ChatPromptValue:
        return ChatPromptValue(messages=tuple(self.format_messages(values)))


class ChatPromptTemplate(BasePromptTemplate):
    """Template rendering to a list of chat messages

    Example:
        prompt = ChatPromptTemplate.from_messages([
            ("system", "You are a helpful assistant that speaks {language}"),
            MessagesPlaceholder(variable_name="history"),
            ("human", "{question}"),
        ])
    """

    messages: Tuple[Any, ...] = Field(..., description="Message templates, placeholders and literal messages")

    @classmethod
    def from_template(cls, template: str) -> "ChatPromptTemplate":
        """A single human message template"""
        return cls.from_messages([("human", template)])

    @classmethod
    def from_messages(cls, messages: Sequence[Any]) -> "ChatPromptTemplate":
        """Build from ``(role, template)`` pairs, placeholders and literal messages

        Raises:
            ConfigurationError: On an entry of an unsupported kind
        """
        entries: List[Any] = []
        variables: List[str] = []
        for entry in messages:
            match entry:
                case (str() as role, str() as template):
                    entry = ChatMessagePromptTemplate.from_template(role, template)
                case ChatMessagePromptTemplate() | MessagesPlaceholder() | BaseChatMessage():
                    pass
                case _:
                    raise ConfigurationError(f"Unsupported chat prompt entry: {entry!r}")
            if isinstance(entry, BasePromptTemplate):
                variables.extend(name for name in entry.input_variables if name not in variables)
            entries.append(entry)
        return cls(messages=tuple(entries), input_variables=tuple(variables))

    def format_messages(self, values: Mapping[str, Any]) -> List[ChatMessage]:
        merged = self._merge_partials(values)
        rendered: List[ChatMessage] = []
        for entry in self.messages:
            match entry:
                case ChatMessagePromptTemplate():
                    rendered.append(entry.format_message(merged))
                case MessagesPlaceholder():
                    rendered.extend(entry.format_messages(merged))
                case _:
                    rendered.append(entry)
        return rendered

    def format_prompt(self, values: Mapping[str, Any]) -> ChatPromptValue:
        return ChatPromptValue(messages=tuple(self.format_messages(values)))
