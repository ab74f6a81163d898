"""Tests for the chat-completion client against a fake OpenAI client."""

from types import SimpleNamespace

import pytest

from eburon.config import LLMSettings
from eburon.llm import LLM, map_finish_reason, usage_from
from eburon.schema import Message

SETTINGS = LLMSettings(
    name="vps", model="kimi-k2-thinking:cloud", base_url="http://localhost:11434/v1", api_key="ollama"
)


def fragment(index, id=None, name=None, arguments=None):
    return SimpleNamespace(
        index=index, id=id, function=SimpleNamespace(name=name, arguments=arguments)
    )


def chunk(content=None, tool_calls=None, finish_reason=None, usage=None, reasoning=None):
    delta = SimpleNamespace(content=content, tool_calls=tool_calls, reasoning=reasoning)
    return SimpleNamespace(
        choices=[SimpleNamespace(delta=delta, finish_reason=finish_reason)], usage=usage
    )


def usage_chunk(prompt_tokens, completion_tokens):
    return SimpleNamespace(
        choices=[],
        usage=SimpleNamespace(
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=prompt_tokens + completion_tokens,
        ),
    )


class FakeStream:
    def __init__(self, chunks):
        self.chunks = list(chunks)

    def __aiter__(self):
        return self

    async def __anext__(self):
        if not self.chunks:
            raise StopAsyncIteration
        return self.chunks.pop(0)


class FakeCompletions:
    def __init__(self, response):
        self.response = response
        self.requests = []

    async def create(self, **params):
        self.requests.append(params)
        if params.get("stream"):
            return FakeStream(self.response)
        return self.response


class FakeOpenAI:
    """Stands in for AsyncOpenAI and records every request"""

    def __init__(self, response):
        self.chat = SimpleNamespace(completions=FakeCompletions(response))

    @property
    def requests(self):
        return self.chat.completions.requests


async def collect(llm: LLM, **kwargs):
    return [part async for part in llm.stream_tool([Message.user_message("go")], **kwargs)]


class TestHelpers:
    @pytest.mark.parametrize(
        "reason,has_tool_calls,expected",
        [
            ("stop", False, "stop"),
            ("stop", True, "tool-calls"),
            ("tool_calls", False, "tool-calls"),
            ("length", False, "length"),
            ("content_filter", False, "content-filter"),
            ("weird", False, "other"),
            (None, False, "unknown"),
        ],
    )
    def test_map_finish_reason(self, reason, has_tool_calls, expected):
        assert map_finish_reason(reason, has_tool_calls) == expected

    def test_usage_total_is_derived_when_missing(self):
        usage = usage_from(SimpleNamespace(prompt_tokens=7, completion_tokens=3, total_tokens=None))
        assert (usage.input_tokens, usage.output_tokens, usage.total_tokens) == (7, 3, 10)

    def test_no_usage(self):
        assert usage_from(None).total_tokens == 0


class TestStreamTool:
    async def test_tool_call_assembled_from_fragments(self):
        client = FakeOpenAI(
            [
                chunk(content="Opening "),
                chunk(content="the page."),
                chunk(tool_calls=[fragment(0, id="call-1", name="playwright_", arguments='{"co')]),
                chunk(tool_calls=[fragment(0, name="execute", arguments='de": "return 1;"}')]),
                chunk(finish_reason="tool_calls"),
                usage_chunk(12, 5),
            ]
        )
        parts = await collect(LLM(SETTINGS, client=client))

        assert [p.type for p in parts] == ["text-delta", "text-delta", "tool-call", "finish"]
        call = parts[2].tool_call
        assert call.id == "call-1"
        assert call.function.name == "playwright_execute"
        assert call.function.arguments == '{"code": "return 1;"}'
        assert parts[-1].finish_reason == "tool-calls"
        assert parts[-1].usage.total_tokens == 17

    async def test_interleaved_calls_keep_index_order(self):
        client = FakeOpenAI(
            [
                chunk(tool_calls=[fragment(1, id="b", name="computer_screenshot")]),
                chunk(tool_calls=[fragment(0, id="a", name="computer_move_mouse", arguments="{")]),
                chunk(tool_calls=[fragment(0, arguments='"x": 1, "y": 2}')]),
                chunk(finish_reason="tool_calls"),
            ]
        )
        parts = await collect(LLM(SETTINGS, client=client))

        calls = [p.tool_call for p in parts if p.type == "tool-call"]
        assert [c.id for c in calls] == ["a", "b"]
        assert calls[0].function.arguments == '{"x": 1, "y": 2}'
        assert calls[1].function.arguments == "{}"

    async def test_nameless_call_is_dropped(self):
        client = FakeOpenAI(
            [
                chunk(tool_calls=[fragment(0, id="call-1", arguments="{}")]),
                chunk(finish_reason="stop"),
            ]
        )
        parts = await collect(LLM(SETTINGS, client=client))
        assert [p.type for p in parts] == ["finish"]

    async def test_missing_id_is_generated(self):
        client = FakeOpenAI(
            [chunk(tool_calls=[fragment(0, name="computer_screenshot")]), chunk(finish_reason="stop")]
        )
        parts = await collect(LLM(SETTINGS, client=client))
        assert parts[0].tool_call.id.startswith("call_")

    async def test_stop_with_tool_calls_reports_tool_calls(self):
        client = FakeOpenAI(
            [chunk(tool_calls=[fragment(0, id="c", name="computer_screenshot")]), chunk(finish_reason="stop")]
        )
        parts = await collect(LLM(SETTINGS, client=client))
        assert parts[-1].finish_reason == "tool-calls"

    async def test_reasoning_is_passed_through(self):
        client = FakeOpenAI([chunk(reasoning="thinking"), chunk(content="done", finish_reason="stop")])
        parts = await collect(LLM(SETTINGS, client=client))
        assert parts[0].type == "reasoning-delta"
        assert parts[0].text == "thinking"
        assert parts[-1].finish_reason == "stop"

    async def test_request_asks_for_usage(self):
        client = FakeOpenAI([chunk(finish_reason="stop")])
        await collect(LLM(SETTINGS, client=client), tools=[{"type": "function"}])

        request = client.requests[0]
        assert request["stream"] is True
        assert request["stream_options"] == {"include_usage": True}
        assert request["tools"] == [{"type": "function"}]
        assert request["model"] == "kimi-k2-thinking:cloud"


def completion(content=None, tool_calls=None, finish_reason="stop", usage=None):
    message = SimpleNamespace(content=content, tool_calls=tool_calls)
    return SimpleNamespace(
        choices=[SimpleNamespace(message=message, finish_reason=finish_reason)], usage=usage
    )


class TestAskTool:
    async def test_tool_calls_and_usage(self):
        call = SimpleNamespace(
            id=None,
            function=SimpleNamespace(name="playwright_execute", arguments=None),
        )
        response = completion(
            tool_calls=[call],
            usage=SimpleNamespace(prompt_tokens=4, completion_tokens=2, total_tokens=6),
        )
        result = await LLM(SETTINGS, client=FakeOpenAI(response)).ask_tool(
            [Message.user_message("go")]
        )

        assert result.finish_reason == "tool-calls"
        assert result.tool_calls[0].id.startswith("call_")
        assert result.tool_calls[0].function.arguments == "{}"
        assert result.usage.total_tokens == 6

    async def test_text_answer(self):
        result = await LLM(SETTINGS, client=FakeOpenAI(completion(content="Example Domain"))).ask_tool(
            [Message.user_message("go")]
        )
        assert result.content == "Example Domain"
        assert result.tool_calls == []
        assert result.finish_reason == "stop"

    async def test_empty_choices(self):
        llm = LLM(SETTINGS, client=FakeOpenAI(SimpleNamespace(choices=[], usage=None)))
        with pytest.raises(ValueError):
            await llm.ask_tool([Message.user_message("go")])

    async def test_system_messages_come_first(self):
        client = FakeOpenAI(completion(content="ok"))
        await LLM(SETTINGS, client=client).ask(
            [Message.user_message("go")], system_msgs=[Message.system_message("be brief")]
        )
        roles = [m["role"] for m in client.requests[0]["messages"]]
        assert roles == ["system", "user"]
        assert "tools" not in client.requests[0]
