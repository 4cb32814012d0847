import pytest

from chainkit.exceptions import ConfigurationError, ExecutionError
from chainkit.prompt import ChatPromptTemplate, MessagesPlaceholder, PromptTemplate, detect_variables
from chainkit.schema import (
    AIChatMessage,
    BaseChatMessage,
    ChatPromptValue,
    CustomChatMessage,
    StringPromptValue,
    SystemChatMessage,
)


class TestDetectVariables:
    def test_order_of_first_use(self):
        assert detect_variables("{b} and {a} and {b}") == ["b", "a"]

    def test_attribute_access_uses_root_name(self):
        assert detect_variables("{user.name} {items[0]}") == ["user", "items"]

    def test_escaped_braces_are_not_variables(self):
        assert detect_variables("{{literal}} {real}") == ["real"]

    def test_positional_fields_rejected(self):
        with pytest.raises(ConfigurationError):
            detect_variables("Hello {}")


class TestPromptTemplate:
    @pytest.mark.asyncio
    async def test_renders_string_prompt_value(self):
        prompt = PromptTemplate.from_template("Tell me a joke about {topic}")
        assert prompt.input_variables == ("topic",)
        value = await prompt.invoke({"topic": "bears"})
        assert value == StringPromptValue(value="Tell me a joke about bears")

    @pytest.mark.asyncio
    async def test_single_variable_accepts_bare_value(self):
        prompt = PromptTemplate.from_template("Hello {name}")
        assert (await prompt.invoke("Ada")).to_string() == "Hello Ada"

    @pytest.mark.asyncio
    async def test_missing_variable_raises_naming_it(self):
        prompt = PromptTemplate.from_template("{greeting}, {name}")
        with pytest.raises(ExecutionError, match="name"):
            await prompt.invoke({"greeting": "Hi"})

    def test_partial_variables(self):
        prompt = PromptTemplate.from_template("{greeting}, {name}").partial(greeting="Hi")
        assert prompt.input_variables == ("name",)
        assert prompt.format({"name": "Ada"}) == "Hi, Ada"

    def test_callable_partials_are_called_on_format(self):
        counter = iter(range(10))
        prompt = PromptTemplate.from_template("n={n}", partial_variables={"n": lambda: next(counter)})
        assert prompt.input_variables == ()
        assert prompt.format({}) == "n=0"
        assert prompt.format({}) == "n=1"

    @pytest.mark.asyncio
    async def test_non_mapping_input_for_many_variables(self):
        prompt = PromptTemplate.from_template("{a}{b}")
        with pytest.raises(ExecutionError):
            await prompt.invoke("x")

    @pytest.mark.asyncio
    async def test_batch(self):
        prompt = PromptTemplate.from_template("{x}!")
        values = await prompt.batch([{"x": "a"}, {"x": "b"}])
        assert [v.to_string() for v in values] == ["a!", "b!"]


class TestChatPromptTemplate:
    @pytest.mark.asyncio
    async def test_from_template_is_one_human_message(self):
        prompt = ChatPromptTemplate.from_template("Tell me a joke about {topic}")
        value = await prompt.invoke({"topic": "cats"})
        assert isinstance(value, ChatPromptValue)
        assert value.to_chat_messages() == [BaseChatMessage.human_text("Tell me a joke about cats")]

    @pytest.mark.asyncio
    async def test_from_messages_roles(self):
        prompt = ChatPromptTemplate.from_messages([
            ("system", "You speak {language}"),
            ("human", "{question}"),
            ("ai", "Let me think"),
            ("critic", "Be brief"),
        ])
        assert prompt.input_variables == ("language", "question")
        messages = (await prompt.invoke({"language": "French", "question": "Why?"})).to_chat_messages()
        assert messages == [
            SystemChatMessage(content="You speak French"),
            BaseChatMessage.human_text("Why?"),
            AIChatMessage(content="Let me think"),
            CustomChatMessage(role="critic", content="Be brief"),
        ]

    @pytest.mark.asyncio
    async def test_messages_placeholder_inserts_history(self):
        prompt = ChatPromptTemplate.from_messages([
            ("system", "Be helpful"),
            MessagesPlaceholder(variable_name="history"),
            ("human", "{question}"),
        ])
        assert prompt.input_variables == ("history", "question")
        history = [BaseChatMessage.human_text("Hi"), AIChatMessage(content="Hello")]
        value = await prompt.invoke({"history": history, "question": "How are you?"})
        assert value.to_chat_messages()[1:3] == history
        assert len(value.to_chat_messages()) == 4

    @pytest.mark.asyncio
    async def test_placeholder_accepts_dumped_messages(self):
        prompt = ChatPromptTemplate.from_messages([MessagesPlaceholder(variable_name="history")])
        value = await prompt.invoke({"history": [AIChatMessage(content="x").model_dump()]})
        assert value.to_chat_messages() == [AIChatMessage(content="x")]

    @pytest.mark.asyncio
    async def test_optional_placeholder(self):
        prompt = ChatPromptTemplate.from_messages([
            MessagesPlaceholder(variable_name="history", optional=True),
            ("human", "{q}"),
        ])
        assert prompt.input_variables == ("q",)
        value = await prompt.invoke("hello")
        assert value.to_chat_messages() == [BaseChatMessage.human_text("hello")]

    @pytest.mark.asyncio
    async def test_missing_placeholder_variable(self):
        prompt = ChatPromptTemplate.from_messages([MessagesPlaceholder(variable_name="history")])
        with pytest.raises(ExecutionError, match="history"):
            await prompt.invoke({})

    @pytest.mark.asyncio
    async def test_literal_messages_are_kept(self):
        system = SystemChatMessage(content="{not a variable}")
        prompt = ChatPromptTemplate.from_messages([system, ("human", "{q}")])
        messages = (await prompt.invoke({"q": "x"})).to_chat_messages()
        assert messages[0] == system

    def test_unsupported_entry(self):
        with pytest.raises(ConfigurationError):
            ChatPromptTemplate.from_messages([42])

    def test_to_string(self):
        prompt = ChatPromptTemplate.from_messages([("system", "S"), ("human", "{q}")])
        assert prompt.format({"q": "H"}) == "System: S\nHuman: H"
