"""Tests for the Anthropic provider adapter."""

from types import SimpleNamespace

import httpx
import anthropic
import pytest

from domain.models.errors import ConfigurationError, TransportError
from domain.streaming.stream_events import BlockStop, MessageStop, TextDelta, ToolInputDelta, ToolUseStart
from infrastructure.config.settings import AgentSettings
from infrastructure.llm.anthropic_provider import AnthropicProvider, map_raw_event


def raw(kind, **fields):
    return SimpleNamespace(type=kind, **fields)


class FakeRawStream:
    def __init__(self, events, error=None):
        self.events = events
        self.error = error
        self.closed = False

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for event in self.events:
            yield event
        if self.error is not None:
            raise self.error

    async def close(self):
        self.closed = True


class FakeMessages:
    def __init__(self, stream=None, message=None):
        self.stream = stream
        self.message = message
        self.calls = []

    async def create(self, **params):
        self.calls.append(params)
        if params.get("stream"):
            return self.stream
        return self.message


def make_provider(messages):
    return AnthropicProvider(api_key=None, client=SimpleNamespace(messages=messages), model="m")


def test_map_raw_events():
    tool_block = SimpleNamespace(type="tool_use", id="toolu_1", name="read_file")

    assert map_raw_event(raw("content_block_start", index=1, content_block=tool_block)) == ToolUseStart(
        id="toolu_1", name="read_file", index=1
    )
    assert map_raw_event(raw("content_block_start", index=0, content_block=SimpleNamespace(type="text"))) is None
    assert map_raw_event(
        raw("content_block_delta", index=0, delta=SimpleNamespace(type="text_delta", text="hi"))
    ) == TextDelta(text="hi")
    assert map_raw_event(
        raw("content_block_delta", index=1, delta=SimpleNamespace(type="input_json_delta", partial_json='{"a'))
    ) == ToolInputDelta(index=1, partial_json='{"a')
    assert map_raw_event(raw("content_block_stop", index=1)) == BlockStop(index=1)
    assert map_raw_event(raw("message_stop")) == MessageStop()
    assert map_raw_event(raw("message_delta")) is None
    assert map_raw_event(raw("ping")) is None


@pytest.mark.asyncio
async def test_stream_sends_request_and_closes():
    stream = FakeRawStream([
        raw("message_start"),
        raw("content_block_delta", index=0, delta=SimpleNamespace(type="text_delta", text="hi")),
        raw("message_stop"),
    ])
    messages = FakeMessages(stream=stream)
    provider = make_provider(messages)

    events = [
        event async for event in provider.stream(
            "prompt", model="m", max_tokens=10, temperature=0.5,
            tools=[{"name": "read_file"}], system="guidance",
        )
    ]

    assert events == [TextDelta(text="hi"), MessageStop()]
    assert stream.closed is True
    params = messages.calls[0]
    assert params["messages"] == [{"role": "user", "content": "prompt"}]
    assert params["tools"] == [{"name": "read_file"}]
    assert params["system"] == "guidance"
    assert params["stream"] is True


@pytest.mark.asyncio
async def test_stream_errors_become_transport_errors():
    request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
    stream = FakeRawStream([], error=anthropic.APIConnectionError(request=request))
    provider = make_provider(FakeMessages(stream=stream))

    with pytest.raises(TransportError):
        async for _ in provider.stream("prompt", model="m", max_tokens=10, temperature=0.5):
            pass

    assert stream.closed is True


@pytest.mark.asyncio
async def test_complete_joins_text_blocks():
    message = SimpleNamespace(content=[
        SimpleNamespace(type="text", text="part one "),
        SimpleNamespace(type="tool_use"),
        SimpleNamespace(type="text", text="part two"),
    ])
    messages = FakeMessages(message=message)
    provider = make_provider(messages)

    assert await provider.complete("summarize", 2000) == "part one part two"
    assert messages.calls[0]["max_tokens"] == 2000
    assert messages.calls[0]["model"] == "m"


def test_missing_credential_is_a_configuration_error():
    with pytest.raises(ConfigurationError):
        AnthropicProvider(api_key=None)


def test_settings_accept_either_credential_variable(monkeypatch):
    monkeypatch.delenv("ANTHROPIC_AUTH_TOKEN", raising=False)
    monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-test")

    settings = AgentSettings(_env_file=None)

    assert settings.anthropic_auth_token == "sk-test"
    assert settings.compaction_budget().prior_step_chars == 3000
    assert settings.generation_options().max_tokens == 8192
