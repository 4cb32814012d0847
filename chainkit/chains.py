"""Chains - Runnables from a mapping of values to a mapping of values

A chain optionally carries memory: before it runs, the memory variables are
added to its inputs, and afterwards the inputs and outputs are saved back.
"""

from abc import abstractmethod
from typing import Any, Dict, List, Mapping, Optional, Sequence

from pydantic import Field

from chainkit.exceptions import ConfigurationError
from chainkit.logger import logger
from chainkit.memory import BaseMemory
from chainkit.parsers import StringOutputParser
from chainkit.prompt.template import BasePromptTemplate
from chainkit.runnable.base import BatchOptions, Runnable
from chainkit.runnable.options import RunnableOptions

ChainValues = Dict[str, Any]


class BaseChain(Runnable):
    """Base class for chains

    Attributes:
        memory: Optional memory loaded before and saved after every call
    """

    memory: Optional[BaseMemory] = Field(default=None, description="Conversation memory")

    @property
    @abstractmethod
    def input_keys(self) -> List[str]:
        """Keys the caller must provide"""

    @property
    @abstractmethod
    def output_keys(self) -> List[str]:
        """Keys of the returned mapping"""

    @abstractmethod
    async def call_internal(self, values: ChainValues, options: Optional[RunnableOptions] = None) -> ChainValues:
        """Run the chain on inputs already extended with memory variables"""

    def _to_values(self, input: Any) -> ChainValues:
        if not self.input_keys:
            return {}
        if isinstance(input, Mapping) and set(input) == set(self.input_keys):
            return dict(input)
        if len(self.input_keys) == 1:
            return {self.input_keys[0]: input}
        raise ConfigurationError(
            f"{self.display_name} requires {len(self.input_keys)} input values: {self.input_keys}"
        )

    async def call(self, values: Mapping[str, Any], options: Optional[RunnableOptions] = None) -> ChainValues:
        """Run the chain, loading and saving memory around it

        Returns:
            The chain outputs (memory variables are not included)
        """
        full_values = dict(values)
        if self.memory is not None:
            full_values.update(await self.memory.load_memory_variables(values))

        outputs = await self.call_internal(full_values, options)

        if self.memory is not None:
            await self.memory.save_context(values, outputs)
        return outputs

    async def invoke(self, input: Any, options: Optional[RunnableOptions] = None) -> ChainValues:
        values = input if isinstance(input, Mapping) else self._to_values(input)
        return await self.call(values, options)

    async def apply(self, inputs: Sequence[Mapping[str, Any]], options: BatchOptions = None) -> List[ChainValues]:
        """Call the chain on every input concurrently"""
        return await self.batch(inputs, options)

    async def run(self, input: Any, options: Optional[RunnableOptions] = None) -> str:
        """Call the chain on one value and return its single output as text

        Raises:
            ConfigurationError: If the chain returns more than one output
        """
        outputs = await self.call(self._to_values(input), options)
        if len(outputs) != 1:
            raise ConfigurationError(
                f"{self.display_name} returned {len(outputs)} outputs; run() supports one, use call() instead"
            )
        return str(next(iter(outputs.values())))


class LLMChain(BaseChain):
    """Format a prompt, call a model and parse the answer

    Example:
        chain = LLMChain(prompt=PromptTemplate.from_template("Tell me a joke about {topic}"), llm=model)
        joke = await chain.run("bears")

    Attributes:
        prompt: Prompt template filled from the inputs
        llm: Model (or any Runnable) called with the rendered prompt
        output_parser: Parser applied to the model result
        output_key: Key of the parsed result in the outputs
    """

    prompt: BasePromptTemplate = Field(..., description="Prompt template")
    llm: Runnable = Field(..., description="Model called with the prompt")
    output_parser: Runnable = Field(default_factory=StringOutputParser, description="Parser for the model result")
    output_key: str = "output"

    @property
    def input_keys(self) -> List[str]:
        memory_keys = self.memory.memory_keys if self.memory is not None else []
        return [key for key in self.prompt.input_variables if key not in memory_keys]

    @property
    def output_keys(self) -> List[str]:
        return [self.output_key]

    async def call_internal(self, values: ChainValues, options: Optional[RunnableOptions] = None) -> ChainValues:
        pipeline = self.prompt | self.llm | self.output_parser
        logger.debug(f"LLMChain: running {pipeline.display_name}")
        return {self.output_key: await pipeline.invoke(values, options)}
