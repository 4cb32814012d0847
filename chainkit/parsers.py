"""Output parsers

Parsers sit at the tail of a pipeline and turn model results into plain
values:

    chain = prompt | model | StringOutputParser()
"""
import json
from abc import abstractmethod
from typing import Any, AsyncIterable, AsyncIterator, Dict, Optional

from chainkit.exceptions import ExecutionError
from chainkit.runnable.base import Runnable
from chainkit.runnable.options import RunnableOptions
from chainkit.utils.streaming import closing_stream
from chainkit.schema import (
    AIChatMessage,
    AIChatMessageFunctionCall,
    BaseChatMessage,
    ChatResult,
    LanguageModelResult,
    PromptValue,
)


class BaseOutputParser(Runnable):
    """Base class for output parsers

    Subclasses implement parse(); parse failures are raised as ExecutionError.
    """

    @abstractmethod
    def parse(self, value: Any) -> Any:
        """Turn a model output into a value

        Raises:
            ExecutionError: If the output cannot be parsed
        """

    async def invoke(self, input: Any, options: Optional[RunnableOptions] = None) -> Any:
        return self.parse(input)


class StringOutputParser(BaseOutputParser):
    """Extract the text of a model result, message or prompt value

    transform() parses chunk by chunk, so a streamed model output can be
    turned into a stream of text fragments:

        async for text in parser.transform(model.stream(prompt)):
            print(text, end="")
    """

    def parse(self, value: Any) -> str:
        match value:
            case str():
                return value
            case LanguageModelResult():
                return value.output_as_string
            case BaseChatMessage():
                return value.content_as_string
            case PromptValue():
                return value.to_string()
            case _:
                raise ExecutionError(f"Cannot extract text from {type(value).__name__}")

    async def transform(
        self,
        chunks: AsyncIterable[Any],
        options: Optional[RunnableOptions] = None,
    ) -> AsyncIterator[str]:
        async with closing_stream(chunks) as source:
            async for chunk in source:
                yield self.parse(chunk)


class JsonOutputFunctionsParser(BaseOutputParser):
    """Parse the function call of a chat result into a mapping

    Attributes:
        args_only: Return only the parsed arguments instead of
            ``{"name": ..., "arguments": ...}``
    """

    args_only: bool = True

    @staticmethod
    def _function_call(value: Any) -> AIChatMessageFunctionCall:
        match value:
            case ChatResult(output=AIChatMessage(function_call=AIChatMessageFunctionCall() as call)):
                return call
            case AIChatMessage(function_call=AIChatMessageFunctionCall() as call):
                return call
            case ChatResult() | AIChatMessage():
                raise ExecutionError("The model did not return a function call")
            case _:
                raise ExecutionError(f"Cannot read a function call from {type(value).__name__}")

    def parse(self, value: Any) -> Dict[str, Any]:
        call = self._function_call(value)
        raw = call.arguments_raw.strip()
        try:
            arguments = json.loads(raw) if raw else {}
        except json.JSONDecodeError as e:
            raise ExecutionError(
                f"Invalid JSON arguments for function '{call.name}': {e}", cause=e
            ) from e
        if self.args_only:
            return arguments
        return {"name": call.name, "arguments": arguments}
