from chainkit.models.base import BaseChatModel, ChatModelOptions, to_chat_messages
from chainkit.models.fake import FakeEchoChatModel, FakeListChatModel
from chainkit.models.openai import ChatOpenAI

__all__ = [
    'BaseChatModel',
    'ChatModelOptions',
    'ChatOpenAI',
    'FakeEchoChatModel',
    'FakeListChatModel',
    'to_chat_messages',
]
