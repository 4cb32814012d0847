import pytest

from chainkit.exceptions import ConcatenationError
from chainkit.schema import (
    AIChatMessage,
    AIChatMessageFunctionCall,
    BaseChatMessage,
    ChatMessageContentText,
    ChatResult,
    LLMResult,
)
from chainkit.utils.streaming import (
    StreamMerger,
    accumulate,
    collect,
    concat_chunks,
    fold_chunks,
    stream_text,
)
from tests.helpers import ChunkEmitter


async def _aiter(items):
    for item in items:
        yield item


class TestConcatChunks:
    """Pairwise concatenation of streamed values"""

    def test_strings(self):
        assert concat_chunks("Hi", " there") == "Hi there"

    def test_messages(self):
        assert concat_chunks(AIChatMessage(content="a"), AIChatMessage(content="b")) == AIChatMessage(content="ab")

    def test_content(self):
        result = concat_chunks(ChatMessageContentText(text="a"), ChatMessageContentText(text="b"))
        assert result == ChatMessageContentText(text="ab")

    def test_function_calls(self):
        result = concat_chunks(AIChatMessageFunctionCall(name="f"), AIChatMessageFunctionCall(arguments_raw="{}"))
        assert result == AIChatMessageFunctionCall(name="f", arguments_raw="{}")

    def test_dicts_merge_key_by_key(self):
        """Should concatenate values under shared keys and keep the rest"""
        result = concat_chunks({"a": "x", "b": [1]}, {"a": "y", "b": [2], "c": 3})
        assert result == {"a": "xy", "b": [1, 2], "c": 3}

    def test_unrelated_values_raise(self):
        """Should refuse values without a concatenation operation"""
        with pytest.raises(ConcatenationError):
            concat_chunks(1, 2)
        with pytest.raises(ConcatenationError):
            concat_chunks(AIChatMessage(content="a"), "b")

    def test_different_result_types_raise(self):
        with pytest.raises(ConcatenationError):
            concat_chunks(LLMResult(output="a"), ChatResult(output=AIChatMessage(content="b")))


class TestFold:
    """Left fold over a chunk sequence"""

    def test_fold_is_left_fold(self):
        """Should equal concat(concat(c1, c2), c3)"""
        chunks = [
            ChatResult(id="1", output=AIChatMessage(content="Hel"), streaming=True),
            ChatResult(output=AIChatMessage(content="lo "), streaming=True),
            ChatResult(output=AIChatMessage(content="world"), streaming=True),
        ]
        expected = chunks[0].concat(chunks[1]).concat(chunks[2])
        assert fold_chunks(chunks) == expected
        assert fold_chunks(chunks).output_as_string == "Hello world"

    def test_fold_is_deterministic(self):
        chunks = ["a", "b", "c"]
        assert fold_chunks(chunks) == fold_chunks(list(chunks)) == "abc"

    def test_empty_fold_raises(self):
        """Should fail because there is no identity value"""
        with pytest.raises(ConcatenationError):
            fold_chunks([])

    def test_single_chunk_is_returned_as_is(self):
        message = BaseChatMessage.human_text("only")
        assert fold_chunks([message]) is message


class TestStreamMerger:
    def test_running_total(self):
        merger = StreamMerger()
        assert merger.add("Hi") == "Hi"
        assert merger.add(" there") == "Hi there"
        assert merger.count == 2
        assert merger.value == "Hi there"

    def test_value_before_any_chunk_raises(self):
        with pytest.raises(ConcatenationError):
            StreamMerger().value

    @pytest.mark.asyncio
    async def test_accumulate_yields_running_totals(self):
        totals = [total async for total in accumulate(_aiter(["a", "b", "c"]))]
        assert totals == ["a", "ab", "abc"]

    @pytest.mark.asyncio
    async def test_collect(self):
        assert await collect(_aiter(["x", "y"])) == "xy"

    @pytest.mark.asyncio
    async def test_abandoned_accumulate_closes_source(self):
        emitter = ChunkEmitter(chunks=["a", "b", "c"])
        totals = accumulate(emitter.stream(None))
        assert await totals.__anext__() == "a"
        await totals.aclose()
        assert emitter.events == ["started", "closed"]

    @pytest.mark.asyncio
    async def test_failed_collect_closes_source(self):
        """Should close the source when a chunk does not concatenate"""
        emitter = ChunkEmitter(chunks=["a", 1, "c"])
        with pytest.raises(ConcatenationError):
            await collect(emitter.stream(None))
        assert emitter.events == ["started", "closed"]


class TestStreamText:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("chunk_size", [1, 2, 3, 100])
    async def test_reconstructs_text(self, chunk_size):
        """Should lose or duplicate no characters regardless of chunk size"""
        text = "Hello, streaming world!"
        chunks = [chunk async for chunk in stream_text(text, chunk_size=chunk_size)]
        assert "".join(chunks) == text
        assert all(len(chunk) <= chunk_size for chunk in chunks)

    @pytest.mark.asyncio
    async def test_empty_text_yields_one_empty_chunk(self):
        assert [chunk async for chunk in stream_text("")] == [""]
