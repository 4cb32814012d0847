"""
Chat model backed by an OpenAI-compatible chat completions API.

Usage:
    # Use the [llm.default] (or [llm.openai]) section of config.toml
    model = ChatOpenAI()

    # Use a named section
    model = ChatOpenAI(config_name="gpt4")

    # Use custom settings directly
    model = ChatOpenAI(settings=LLMSettings(model="gpt-4o-mini"))
"""
import json
from typing import Any, AsyncIterator, Dict, List, Optional

from openai import (
    APIConnectionError,
    APITimeoutError,
    AsyncOpenAI,
    AuthenticationError,
    InternalServerError,
    OpenAIError,
    RateLimitError,
)
from pydantic import Field, model_validator
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_random_exponential

from chainkit.config import LLMSettings, config
from chainkit.exceptions import ExecutionError
from chainkit.logger import logger
from chainkit.models.base import BaseChatModel, ChatModelOptions
from chainkit.schema import (
    AIChatMessage,
    AIChatMessageFunctionCall,
    ChatFunctionCallAuto,
    ChatFunctionCallForced,
    ChatFunctionCallNone,
    ChatMessage,
    ChatMessageContentImage,
    ChatMessageContentMultiModal,
    ChatMessageContentText,
    ChatResult,
    CustomChatMessage,
    FinishReason,
    FunctionChatMessage,
    HumanChatMessage,
    LanguageModelUsage,
    SystemChatMessage,
)
from chainkit.utils import log_execution_time

# Errors worth retrying; everything else fails immediately
TRANSIENT_ERRORS = (APIConnectionError, APITimeoutError, RateLimitError, InternalServerError)

_FINISH_REASONS = {
    "stop": FinishReason.STOP,
    "length": FinishReason.LENGTH,
    "content_filter": FinishReason.CONTENT_FILTER,
    "tool_calls": FinishReason.FUNCTION_CALL,
    "function_call": FinishReason.FUNCTION_CALL,
}


def _tool_call_id(name: str) -> str:
    return f"call_{name}"


def _parse_arguments(raw: str) -> Dict[str, Any]:
    """Best-effort parse of (possibly incomplete) JSON arguments"""
    try:
        parsed = json.loads(raw) if raw else {}
    except json.JSONDecodeError:
        return {}
    return parsed if isinstance(parsed, dict) else {}


def _map_finish_reason(reason: Optional[str]) -> FinishReason:
    return _FINISH_REASONS.get(reason, FinishReason.UNSPECIFIED) if reason else FinishReason.UNSPECIFIED


def _map_usage(usage: Any) -> LanguageModelUsage:
    if usage is None:
        return LanguageModelUsage()
    return LanguageModelUsage(
        prompt_tokens=usage.prompt_tokens,
        response_tokens=usage.completion_tokens,
        total_tokens=usage.total_tokens,
    )


class ChatOpenAI(BaseChatModel):
    """Chat model for OpenAI and OpenAI-compatible endpoints

    Functions from the call options are sent as tools; the function call
    policy maps to ``tool_choice``. Transient API errors are retried with
    exponential backoff up to ``settings.max_retries`` times; any failure that
    remains is raised as ExecutionError.

    Attributes:
        config_name: Section of [llm] to read settings from
        settings: Model settings (read from the configuration when omitted)
        client: AsyncOpenAI client (created from the settings when omitted)
    """

    config_name: str = Field(default="default", description="Name of the [llm.<name>] section")
    settings: LLMSettings = Field(..., description="Model settings")
    client: Any = Field(default=None, description="AsyncOpenAI client")

    @model_validator(mode="before")
    @classmethod
    def resolve_settings(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if data.get("settings") is None:
            data["settings"] = config.get_llm_config(data.get("config_name", "default"))
        if data.get("client") is None:
            settings: LLMSettings = data["settings"]
            # Retries are handled here, not inside the client
            data["client"] = AsyncOpenAI(
                api_key=settings.api_key,
                base_url=settings.base_url,
                timeout=settings.timeout,
                max_retries=0,
            )
        return data

    @property
    def display_name(self) -> str:
        return self.name or f"ChatOpenAI({self.settings.model})"

    # =========================================================================
    # Request mapping
    # =========================================================================

    @staticmethod
    def format_content(content: Any) -> Any:
        """Convert human message content to the OpenAI content format"""
        match content:
            case ChatMessageContentText():
                return content.text
            case ChatMessageContentImage():
                url = content.data
                if not url.startswith(("http://", "https://", "data:")):
                    url = f"data:{content.mime_type or 'image/jpeg'};base64,{url}"
                return [{"type": "image_url", "image_url": {"url": url, "detail": content.detail.value}}]
            case ChatMessageContentMultiModal():
                parts = []
                for part in content.parts:
                    formatted = ChatOpenAI.format_content(part)
                    if isinstance(formatted, str):
                        parts.append({"type": "text", "text": formatted})
                    else:
                        parts.extend(formatted)
                return parts

    @staticmethod
    def format_messages(messages: List[ChatMessage]) -> List[dict]:
        """
        Convert chat messages to the OpenAI message format.

        Function calls are sent as tool calls whose id is derived from the
        function name, so a following function message pairs with it.
        """
        formatted = []
        for message in messages:
            match message:
                case SystemChatMessage():
                    formatted.append({"role": "system", "content": message.content})
                case HumanChatMessage():
                    formatted.append({"role": "user", "content": ChatOpenAI.format_content(message.content)})
                case AIChatMessage(function_call=None):
                    formatted.append({"role": "assistant", "content": message.content})
                case AIChatMessage():
                    call = message.function_call
                    formatted.append({
                        "role": "assistant",
                        "content": message.content or None,
                        "tool_calls": [{
                            "id": _tool_call_id(call.name),
                            "type": "function",
                            "function": {
                                "name": call.name,
                                "arguments": call.arguments_raw or json.dumps(call.arguments),
                            },
                        }],
                    })
                case FunctionChatMessage():
                    formatted.append({
                        "role": "tool",
                        "tool_call_id": _tool_call_id(message.name),
                        "content": message.content,
                    })
                case CustomChatMessage():
                    formatted.append({"role": message.role, "content": message.content})
        return formatted

    def _request(self, messages: List[ChatMessage], options: ChatModelOptions) -> Dict[str, Any]:
        request: Dict[str, Any] = {
            "model": options.model or self.settings.model,
            "messages": self.format_messages(messages),
        }
        temperature = options.temperature if options.temperature is not None else self.settings.temperature
        if temperature is not None:
            request["temperature"] = temperature
        max_tokens = options.max_tokens if options.max_tokens is not None else self.settings.max_tokens
        if max_tokens is not None:
            request["max_tokens"] = max_tokens
        if options.stop:
            request["stop"] = options.stop
        if options.functions:
            request["tools"] = [function.to_param() for function in options.functions]
        match options.function_call:
            case ChatFunctionCallNone():
                request["tool_choice"] = "none"
            case ChatFunctionCallAuto():
                request["tool_choice"] = "auto"
            case ChatFunctionCallForced(function_name=name):
                request["tool_choice"] = {"type": "function", "function": {"name": name}}
        return request

    async def _create(self, request: Dict[str, Any]) -> Any:
        """Send the request, retrying transient errors"""
        async for attempt in AsyncRetrying(
            retry=retry_if_exception_type(TRANSIENT_ERRORS),
            stop=stop_after_attempt(self.settings.max_retries + 1),
            wait=wait_random_exponential(min=1, max=20),
            reraise=True,
        ):
            with attempt:
                if attempt.retry_state.attempt_number > 1:
                    logger.warning(
                        f"Retrying {self.display_name} request (attempt {attempt.retry_state.attempt_number})"
                    )
                return await self.client.chat.completions.create(**request)

    def _wrap_error(self, e: OpenAIError) -> ExecutionError:
        if isinstance(e, AuthenticationError):
            logger.error("Authentication failed. Check API key.")
        elif isinstance(e, RateLimitError):
            logger.error("Rate limit exceeded. Consider increasing max_retries.")
        else:
            logger.error(f"OpenAI API error: {e}")
        return ExecutionError(f"{self.display_name} request failed: {e}", cause=e)

    # =========================================================================
    # Response mapping
    # =========================================================================

    @log_execution_time(log_level="DEBUG")
    async def _generate(self, messages: List[ChatMessage], options: ChatModelOptions) -> ChatResult:
        request = self._request(messages, options)
        try:
            response = await self._create(request)
        except OpenAIError as e:
            raise self._wrap_error(e) from e

        if not response.choices:
            logger.error(f"Invalid or empty response from LLM: {response}")
            raise ExecutionError(f"{self.display_name} returned no choices")

        choice = response.choices[0]
        message = choice.message
        function_call = None
        if message.tool_calls:
            if len(message.tool_calls) > 1:
                logger.warning(
                    f"{self.display_name} returned {len(message.tool_calls)} tool calls; using the first"
                )
            tool_call = message.tool_calls[0]
            function_call = AIChatMessageFunctionCall(
                name=tool_call.function.name,
                arguments_raw=tool_call.function.arguments or "",
                arguments=_parse_arguments(tool_call.function.arguments or ""),
            )

        return ChatResult(
            id=response.id,
            output=AIChatMessage(content=message.content or "", function_call=function_call),
            finish_reason=_map_finish_reason(choice.finish_reason),
            metadata={"model": response.model, "created": response.created},
            usage=_map_usage(response.usage),
            streaming=False,
        )

    async def _stream(self, messages: List[ChatMessage], options: ChatModelOptions) -> AsyncIterator[ChatResult]:
        request = self._request(messages, options)
        request["stream"] = True
        request["stream_options"] = {"include_usage": True}
        try:
            response = await self._create(request)
        except OpenAIError as e:
            raise self._wrap_error(e) from e

        # Raw arguments of the first tool call received so far
        arguments_raw = ""
        finish_reason = FinishReason.UNSPECIFIED
        try:
            async for chunk in response:
                if not chunk.choices:
                    # Final usage-only chunk
                    yield ChatResult(
                        id=chunk.id,
                        output=AIChatMessage(),
                        finish_reason=finish_reason,
                        usage=_map_usage(chunk.usage),
                        streaming=True,
                    )
                    continue

                choice = chunk.choices[0]
                delta = choice.delta
                if choice.finish_reason:
                    finish_reason = _map_finish_reason(choice.finish_reason)
                function_call = None
                for tool_delta in delta.tool_calls or []:
                    if (getattr(tool_delta, "index", 0) or 0) != 0:
                        logger.debug(f"Ignoring fragment of tool call {tool_delta.index}")
                        continue
                    name = (tool_delta.function and tool_delta.function.name) or ""
                    fragment = (tool_delta.function and tool_delta.function.arguments) or ""
                    arguments_raw += fragment
                    function_call = AIChatMessageFunctionCall(
                        name=name,
                        arguments_raw=fragment,
                        arguments=_parse_arguments(arguments_raw),
                    )

                yield ChatResult(
                    id=chunk.id,
                    output=AIChatMessage(content=delta.content or "", function_call=function_call),
                    finish_reason=finish_reason,
                    usage=_map_usage(chunk.usage),
                    streaming=True,
                )
        except OpenAIError as e:
            raise self._wrap_error(e) from e
        finally:
            await response.close()
