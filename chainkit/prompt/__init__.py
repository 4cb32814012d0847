from chainkit.prompt.template import (
    BasePromptTemplate,
    ChatMessagePromptTemplate,
    ChatPromptTemplate,
    MessagesPlaceholder,
    PromptTemplate,
    detect_variables,
)

__all__ = [
    'BasePromptTemplate',
    'ChatMessagePromptTemplate',
    'ChatPromptTemplate',
    'MessagesPlaceholder',
    'PromptTemplate',
    'detect_variables',
]
