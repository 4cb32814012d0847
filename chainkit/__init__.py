"""chainkit - Composable runnables for language model pipelines

Units are chained with | into sequences, run concurrently with & or batch(),
and streamed chunk by chunk with stream(). Streamed results fold back into
one value through their concat() operation.
"""

from chainkit.chains import BaseChain, LLMChain
from chainkit.exceptions import ChainkitError, ConcatenationError, ConfigurationError, ExecutionError
from chainkit.memory import BaseChatMessageHistory, BaseMemory, ConversationBufferMemory, InMemoryChatMessageHistory
from chainkit.models import BaseChatModel, ChatModelOptions, ChatOpenAI, FakeEchoChatModel, FakeListChatModel
from chainkit.parsers import BaseOutputParser, JsonOutputFunctionsParser, StringOutputParser
from chainkit.prompt import ChatPromptTemplate, MessagesPlaceholder, PromptTemplate
from chainkit.runnable import (
    Runnable,
    RunnableBinding,
    RunnableFunction,
    RunnableMap,
    RunnableOptions,
    RunnablePassthrough,
    RunnableSequence,
)
from chainkit.utils.streaming import StreamMerger, collect, fold_chunks

__version__ = "0.1.0"

__all__ = [
    'BaseChain',
    'BaseChatMessageHistory',
    'BaseChatModel',
    'BaseMemory',
    'BaseOutputParser',
    'ChainkitError',
    'ChatModelOptions',
    'ChatOpenAI',
    'ChatPromptTemplate',
    'ConcatenationError',
    'ConfigurationError',
    'ConversationBufferMemory',
    'ExecutionError',
    'FakeEchoChatModel',
    'FakeListChatModel',
    'InMemoryChatMessageHistory',
    'JsonOutputFunctionsParser',
    'LLMChain',
    'MessagesPlaceholder',
    'PromptTemplate',
    'Runnable',
    'RunnableBinding',
    'RunnableFunction',
    'RunnableMap',
    'RunnableOptions',
    'RunnablePassthrough',
    'RunnableSequence',
    'StreamMerger',
    'StringOutputParser',
    'collect',
    'fold_chunks',
]
