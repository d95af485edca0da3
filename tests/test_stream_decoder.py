"""Tests for stream decoding and tool argument buffering."""

import pytest

from conftest import FakeProvider
from domain.models.errors import TransportError
from domain.streaming.stream_decoder import StreamDecoder
from domain.streaming.stream_events import (
    BlockStop,
    MessageStop,
    TextDelta,
    TextFragment,
    ToolInputDelta,
    ToolInvocationRequest,
    ToolUseStart,
)


async def collect(decoder, options):
    return [item async for item in decoder.decode("prompt", options)]


@pytest.mark.asyncio
async def test_text_passes_through_in_order(options):
    provider = FakeProvider([TextDelta(text="Hel"), TextDelta(text="lo"), MessageStop()])

    items = await collect(StreamDecoder(provider), options)

    assert items == [TextFragment(text="Hel"), TextFragment(text="lo")]
    assert provider.closed is True
    assert provider.stream_calls[0]["model"] == "test-model"


@pytest.mark.asyncio
async def test_fragmented_arguments_parse_at_block_stop(options):
    provider = FakeProvider([
        TextDelta(text="Reading"),
        ToolUseStart(id="t1", name="read_file", index=1),
        ToolInputDelta(index=1, partial_json='{"pa'),
        ToolInputDelta(index=1, partial_json='th": "/a'),
        ToolInputDelta(index=1, partial_json='"}'),
        BlockStop(index=1),
        TextDelta(text="done"),
        MessageStop(),
    ])

    items = await collect(StreamDecoder(provider), options)

    assert items[0] == TextFragment(text="Reading")
    request = items[1]
    assert isinstance(request, ToolInvocationRequest)
    assert request.params == {"path": "/a"}
    assert request.raw_arguments == '{"path": "/a"}'
    assert request.error is None
    assert items[2] == TextFragment(text="done")


@pytest.mark.asyncio
async def test_next_tool_start_is_a_boundary(options):
    provider = FakeProvider([
        ToolUseStart(id="t1", name="read_file", index=0),
        ToolInputDelta(index=0, partial_json='{"path": "a"}'),
        ToolUseStart(id="t2", name="read_file", index=1),
        ToolInputDelta(index=1, partial_json='{"path": "b"}'),
    ])

    items = await collect(StreamDecoder(provider), options)

    assert [item.id for item in items] == ["t1", "t2"]
    assert [item.params["path"] for item in items] == ["a", "b"]


@pytest.mark.asyncio
async def test_text_between_argument_deltas_leaves_tool_buffer_intact(options):
    provider = FakeProvider([
        ToolUseStart(id="t1", name="write_file", index=1),
        ToolInputDelta(index=1, partial_json='{"path": "x",'),
        TextDelta(text="meanwhile"),
        ToolInputDelta(index=1, partial_json=' "content": "y"}'),
        BlockStop(index=1),
        MessageStop(),
    ])

    items = await collect(StreamDecoder(provider), options)

    assert items[0] == TextFragment(text="meanwhile")
    assert items[1].params == {"path": "x", "content": "y"}


@pytest.mark.asyncio
async def test_new_tool_block_finalizes_the_open_one(options):
    provider = FakeProvider([
        ToolUseStart(id="t1", name="read_file", index=1),
        ToolUseStart(id="t2", name="read_file", index=2),
        ToolInputDelta(index=1, partial_json='{"path": "late"}'),
        ToolInputDelta(index=2, partial_json='{"path": "b"}'),
        MessageStop(),
    ])

    items = await collect(StreamDecoder(provider), options)

    assert [(item.id, item.params) for item in items] == [("t1", {}), ("t2", {"path": "b"})]


@pytest.mark.asyncio
async def test_empty_arguments_parse_to_empty_object(options):
    provider = FakeProvider([ToolUseStart(id="t1", name="list_files"), BlockStop(), MessageStop()])

    items = await collect(StreamDecoder(provider), options)

    assert items[0].params == {}
    assert items[0].error is None


@pytest.mark.asyncio
async def test_malformed_arguments_become_request_error(options):
    provider = FakeProvider([
        ToolUseStart(id="t1", name="read_file"),
        ToolInputDelta(partial_json='{"path": '),
        BlockStop(),
        ToolUseStart(id="t2", name="read_file", index=1),
        ToolInputDelta(index=1, partial_json='["not", "an", "object"]'),
        MessageStop(),
    ])

    items = await collect(StreamDecoder(provider), options)

    assert "Malformed arguments" in items[0].error
    assert items[0].params == {}
    assert "must be a JSON object" in items[1].error


@pytest.mark.asyncio
async def test_unterminated_tool_is_flushed_at_stream_end(options):
    provider = FakeProvider([
        ToolUseStart(id="t1", name="read_file"),
        ToolInputDelta(partial_json='{"path": "z"}'),
    ])

    items = await collect(StreamDecoder(provider), options)

    assert items[0].params == {"path": "z"}


@pytest.mark.asyncio
async def test_message_stop_ends_sequence(options):
    provider = FakeProvider([TextDelta(text="a"), MessageStop(), TextDelta(text="ignored")])

    items = await collect(StreamDecoder(provider), options)

    assert items == [TextFragment(text="a")]
    assert provider.closed is True


@pytest.mark.asyncio
async def test_transport_failure_propagates(options):
    provider = FakeProvider([TextDelta(text="a"), TextDelta(text="b")], fail_after=1)

    received = []
    with pytest.raises(TransportError):
        async for item in StreamDecoder(provider).decode("prompt", options):
            received.append(item)

    assert received == [TextFragment(text="a")]
    assert provider.closed is True


@pytest.mark.asyncio
async def test_closing_decoder_closes_provider(options):
    provider = FakeProvider([TextDelta(text=str(i)) for i in range(10)])

    stream = StreamDecoder(provider).decode("prompt", options)
    first = await stream.__anext__()
    await stream.aclose()

    assert first == TextFragment(text="0")
    assert provider.closed is True
    assert provider.delivered == 1
