"""Tests for the orchestrator core (Chat.ask)."""

from __future__ import annotations

import pytest

from tests.mock_providers import (
    ScriptedProvider,
    make_text_chunks,
    make_tool_call_chunks,
    text_message,
    tool_call_message,
)
from tests.mock_tools import echo, explode, slow_add, weather_tool
from unillm.config import UnillmConfig
from unillm.errors import RateLimitError, StreamIntegrityError, ToolLoopError
from unillm.llm.types import Attachment, Chunk, Content, Message, ToolCall
from unillm.orchestrator.core import Chat


def _roles(chat):
    return [m.role for m in chat.messages]


class TestTextOnlyResponse:
    async def test_single_round(self):
        provider = ScriptedProvider([text_message("Just a text response.")])
        chat = Chat(provider, "mock-model")

        reply = await chat.ask("hello")

        assert reply.content == "Just a text response."
        assert provider.call_count == 1
        assert _roles(chat) == ["user", "assistant"]
        assert chat.messages[0].content == "hello"

    async def test_provider_receives_model_tools_and_temperature(self):
        provider = ScriptedProvider([text_message("ok")])
        chat = Chat(provider, "gpt-x", tools=[weather_tool], temperature=0.2)

        await chat.ask("hi")

        assert provider.last_model_id == "gpt-x"
        assert provider.last_tools == [weather_tool]
        assert provider.last_temperature == 0.2

    async def test_history_grows_across_asks(self):
        provider = ScriptedProvider([text_message("one"), text_message("two")])
        chat = Chat(provider, "m")
        await chat.ask("first")
        await chat.ask("second")

        assert _roles(chat) == ["user", "assistant", "user", "assistant"]
        assert len(provider.histories[1]) == 3


class TestToolRound:
    async def test_weather_example(self):
        provider = ScriptedProvider(
            [
                tool_call_message([("c1", "get_weather", {"city": "Berlin"})]),
                text_message("It's 15C in Berlin."),
            ]
        )
        chat = Chat(provider, "m").with_tool(weather_tool)

        reply = await chat.ask("Weather in Berlin?")

        assert reply.content == "It's 15C in Berlin."
        assert provider.call_count == 2
        assert _roles(chat) == ["user", "assistant", "tool", "assistant"]
        tool_msg = chat.messages[2]
        assert tool_msg.content == "15C"
        assert tool_msg.tool_call_id == "c1"

        # Second request saw the tool result as the last message.
        second = provider.histories[1]
        assert [m.role for m in second] == ["user", "assistant", "tool"]
        assert second[-1] == tool_msg

    async def test_tool_results_follow_call_order(self):
        provider = ScriptedProvider(
            [
                tool_call_message(
                    [
                        ("c1", "echo", {"message": "first"}),
                        ("c2", "slow_add", {"a": 1, "b": 2}),
                        ("c3", "echo", {"message": "third"}),
                    ]
                ),
                text_message("done"),
            ]
        )
        chat = Chat(provider, "m", tools=[echo, slow_add])

        await chat.ask("go")

        tool_msgs = [m for m in chat.messages if m.role == "tool"]
        assert [(m.tool_call_id, m.content) for m in tool_msgs] == [
            ("c1", "first"),
            ("c2", "3"),
            ("c3", "third"),
        ]
        # One provider call per assistant turn, none mid-batch.
        assert provider.call_count == 2

    async def test_multiple_tool_rounds(self):
        provider = ScriptedProvider(
            [
                tool_call_message([("c1", "echo", {"message": "a"})]),
                tool_call_message([("c2", "echo", {"message": "b"})]),
                text_message("finished"),
            ]
        )
        chat = Chat(provider, "m", tools=[echo])

        reply = await chat.ask("loop twice")

        assert reply.content == "finished"
        assert _roles(chat) == ["user", "assistant", "tool", "assistant", "tool", "assistant"]


class TestToolFailure:
    async def test_handler_exception_becomes_tool_message(self):
        provider = ScriptedProvider(
            [
                tool_call_message([("c1", "explode", {"reason": "disk on fire"})]),
                text_message("Sorry, the tool failed."),
            ]
        )
        chat = Chat(provider, "m", tools=[explode])

        reply = await chat.ask("do it")

        assert reply.content == "Sorry, the tool failed."
        assert provider.call_count == 2
        tool_msg = chat.messages[2]
        assert tool_msg.role == "tool"
        assert tool_msg.content == "disk on fire"
        assert tool_msg.tool_call_id == "c1"

    async def test_validation_error_becomes_tool_message(self):
        provider = ScriptedProvider(
            [
                tool_call_message([("c1", "echo", {"message": 12345})]),
                text_message("retrying"),
            ]
        )
        chat = Chat(provider, "m", tools=[echo])

        await chat.ask("bad args")

        assert chat.messages[2].role == "tool"
        assert "Invalid arguments for echo" in chat.messages[2].content


class TestUnknownTool:
    async def test_unknown_tool_is_skipped(self):
        provider = ScriptedProvider(
            [
                tool_call_message([("c1", "nonexistent_tool", {"arg": "val"})]),
                text_message("I could not find that tool."),
            ]
        )
        chat = Chat(provider, "m", tools=[echo])

        reply = await chat.ask("use nonexistent tool")

        assert reply.content == "I could not find that tool."
        assert _roles(chat) == ["user", "assistant", "assistant"]
        assert [m.role for m in provider.histories[1]] == ["user", "assistant"]

    async def test_known_and_unknown_mixed(self):
        provider = ScriptedProvider(
            [
                tool_call_message(
                    [("c1", "ghost", {}), ("c2", "echo", {"message": "here"})]
                ),
                text_message("ok"),
            ]
        )
        chat = Chat(provider, "m", tools=[echo])

        await chat.ask("mixed")

        tool_msgs = [m for m in chat.messages if m.role == "tool"]
        assert [m.tool_call_id for m in tool_msgs] == ["c2"]


class TestStreaming:
    async def test_chunks_forwarded_in_order(self):
        provider = ScriptedProvider([make_text_chunks("streamed reply here")])
        chat = Chat(provider, "m")
        seen: list[Chunk] = []

        reply = await chat.ask("stream please", on_chunk=seen.append)

        assert reply.content == "streamed reply here"
        assert "".join(c.content for c in seen) == "streamed reply here"
        assert provider.stream_calls == 1

    async def test_async_callback(self):
        provider = ScriptedProvider([make_text_chunks("a b")])
        chat = Chat(provider, "m")
        seen = []

        async def on_chunk(chunk):
            seen.append(chunk.content)

        await chat.ask("hi", on_chunk=on_chunk)
        assert seen == ["a ", "b"]

    async def test_streamed_tool_round(self):
        provider = ScriptedProvider(
            [
                make_tool_call_chunks("get_weather", {"city": "Berlin"}, "c1", pieces=5),
                make_text_chunks("It's 15C in Berlin."),
            ]
        )
        chat = Chat(provider, "m", tools=[weather_tool])
        seen = []

        reply = await chat.ask("Weather?", on_chunk=seen.append)

        assert reply.content == "It's 15C in Berlin."
        assert chat.messages[1].tool_calls["c1"].arguments == {"city": "Berlin"}
        assert chat.messages[2].content == "15C"
        assert sum(1 for c in seen if c.is_tool_call) == 6
        assert provider.stream_calls == 2

    async def test_config_enables_streaming_without_callback(self):
        config = UnillmConfig()
        config.chat.stream = True
        provider = ScriptedProvider([make_text_chunks("quiet stream")])
        chat = Chat(provider, "m", config=config)

        reply = await chat.ask("hi")

        assert reply.content == "quiet stream"
        assert provider.stream_calls == 1

    async def test_corrupt_stream_aborts_ask(self):
        provider = ScriptedProvider(
            [[Chunk(tool_calls=[ToolCall(id="c1", name="echo", arguments='{"message": ')])]]
        )
        chat = Chat(provider, "m", tools=[echo])

        with pytest.raises(StreamIntegrityError):
            await chat.ask("hi", on_chunk=lambda c: None)


class TestProviderErrors:
    async def test_error_propagates(self):
        provider = ScriptedProvider([RateLimitError(status_code=429)])
        chat = Chat(provider, "m")

        with pytest.raises(RateLimitError):
            await chat.ask("hi")
        assert _roles(chat) == ["user"]

    async def test_error_after_tool_round(self):
        provider = ScriptedProvider(
            [
                tool_call_message([("c1", "echo", {"message": "x"})]),
                RateLimitError(),
            ]
        )
        chat = Chat(provider, "m", tools=[echo])

        with pytest.raises(RateLimitError):
            await chat.ask("hi")
        assert _roles(chat) == ["user", "assistant", "tool"]


class TestMaxRounds:
    async def test_round_cap(self):
        provider = ScriptedProvider(
            [tool_call_message([(f"c{i}", "echo", {"message": "loop"})]) for i in range(5)]
        )
        chat = Chat(provider, "m", tools=[echo], max_rounds=3)

        with pytest.raises(ToolLoopError) as exc_info:
            await chat.ask("infinite loop")
        assert exc_info.value.max_rounds == 3
        assert provider.call_count == 3

    async def test_cap_from_config(self):
        config = UnillmConfig()
        config.chat.max_rounds = 1
        provider = ScriptedProvider([tool_call_message([("c1", "echo", {"message": "x"})])])
        chat = Chat(provider, "m", config=config, tools=[echo])

        with pytest.raises(ToolLoopError):
            await chat.ask("hi")


class TestCallbacksAndHistory:
    async def test_new_and_end_message_callbacks(self):
        provider = ScriptedProvider(
            [
                tool_call_message([("c1", "get_weather", {"city": "Oslo"})]),
                text_message("cold"),
            ]
        )
        events = []
        chat = (
            Chat(provider, "m")
            .with_tools(weather_tool)
            .on_new_message(lambda: events.append("new"))
            .on_end_message(lambda m: events.append(m.role))
        )

        await chat.ask("Oslo?")

        assert events == ["new", "assistant", "new", "tool", "new", "assistant"]

    async def test_attachments_become_content(self):
        provider = ScriptedProvider([text_message("a cat")])
        chat = Chat(provider, "m")

        await chat.ask("What is this?", attachments=[Attachment(b"..", filename="cat.png")])

        user = chat.messages[0]
        assert isinstance(user.content, Content)
        assert user.content.attachments[0].type == "image"

    async def test_empty_ask_rejected(self):
        chat = Chat(ScriptedProvider([]), "m")
        with pytest.raises(ValueError):
            await chat.ask()

    async def test_messages_view_is_read_only(self):
        provider = ScriptedProvider([text_message("x")])
        chat = Chat(provider, "m")
        await chat.ask("y")
        assert isinstance(chat.messages, tuple)
        assert list(chat) == list(chat.messages)
        assert len(chat) == 2

    async def test_complete_on_prebuilt_history(self):
        provider = ScriptedProvider([text_message("Bonjour")])
        chat = Chat(provider, "m")
        chat.add_message(role="system", content="Answer in French.")
        chat.add_message(Message(role="user", content="Hello"))

        reply = await chat.complete()

        assert reply.content == "Bonjour"
        assert [m.role for m in provider.histories[0]] == ["system", "user"]

    def test_with_model_keeps_fixed_provider(self):
        provider = ScriptedProvider([])
        chat = Chat(provider, "m").with_model("other-model")
        assert chat.provider is provider
        assert chat.model_id == "other-model"

    def test_model_required(self):
        with pytest.raises(ValueError):
            Chat(ScriptedProvider([]))

    def test_defaults_from_config(self):
        config = UnillmConfig()
        chat = Chat(ScriptedProvider([]), config=config)
        assert chat.model_id == config.chat.default_model
        assert chat.temperature == config.chat.temperature
        assert chat.max_rounds is None
