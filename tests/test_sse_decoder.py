"""Tests for the incremental SSE decoder."""

import httpx
import pytest

from tests.helpers import FakeByteSource, collect, frame, sse
from zproxy.streaming.sse import EventKind, RawEvent, SSEDecoder, parse_line


STREAM = (
    b": keep-alive comment\n"
    + sse(
        frame(phase="thinking", delta="让我想想"),
        frame(phase="answer", delta="你好, world"),
    )
    + b"event: message\nid: 42\nretry: 1500\n"
    + b"data: not json\n"
    + sse(frame(phase="done", done=True))
)


async def decode(chunks: list[bytes]) -> list[RawEvent]:
    return await collect(SSEDecoder(FakeByteSource(chunks)).iter_events())


@pytest.mark.unit
class TestParseLine:
    def test_json_data(self):
        event = parse_line('data: {"a": 1}')
        assert event == RawEvent(
            kind=EventKind.DATA, raw_value='{"a": 1}', parsed_json={"a": 1}, is_json=True
        )

    def test_data_without_space(self):
        event = parse_line('data:{"a":1}\r')
        assert event is not None
        assert event.parsed_json == {"a": 1}

    def test_non_json_data_is_flagged(self):
        event = parse_line("data: [DONE]")
        assert event is not None
        assert event.kind is EventKind.DATA
        assert event.is_json is False
        assert event.raw_value == "[DONE]"

    @pytest.mark.parametrize("line", ["", "   ", ": comment", "no colon here", "foo: bar"])
    def test_ignored_lines(self, line):
        assert parse_line(line) is None

    def test_event_and_id(self):
        assert parse_line("event: message") == RawEvent(EventKind.EVENT, "message")
        assert parse_line("id: 7") == RawEvent(EventKind.ID, "7")

    def test_retry(self):
        event = parse_line("retry: 1500")
        assert event is not None
        assert event.retry == 1500

    def test_invalid_retry_is_dropped(self):
        assert parse_line("retry: soon") is None

    def test_only_one_leading_space_removed(self):
        event = parse_line("data:  padded")
        assert event is not None
        assert event.raw_value == " padded"


@pytest.mark.unit
class TestSSEDecoder:
    async def test_whole_stream(self):
        events = await decode([STREAM])

        kinds = [event.kind for event in events]
        assert kinds == [
            EventKind.DATA,
            EventKind.DATA,
            EventKind.EVENT,
            EventKind.ID,
            EventKind.RETRY,
            EventKind.DATA,
            EventKind.DATA,
        ]
        assert events[1].parsed_json["data"]["delta_content"] == "你好, world"
        assert events[5].is_json is False

    async def test_every_two_way_split_gives_same_events(self):
        expected = await decode([STREAM])
        for offset in range(1, len(STREAM)):
            assert await decode([STREAM[:offset], STREAM[offset:]]) == expected

    async def test_single_byte_chunks_give_same_events(self):
        expected = await decode([STREAM])
        chunks = [STREAM[i : i + 1] for i in range(len(STREAM))]
        assert await decode(chunks) == expected

    async def test_final_line_without_newline_is_flushed(self):
        events = await decode([b'data: {"x": 1}\n', b'data: {"y": 2}'])
        assert [event.parsed_json for event in events] == [{"x": 1}, {"y": 2}]

    async def test_source_released_once_after_exhaustion(self):
        source = FakeByteSource([sse(frame(delta="a"))])
        closed = []

        async def on_close():
            closed.append(True)

        decoder = SSEDecoder(source, on_close=on_close)
        await collect(decoder.iter_events())
        await decoder.aclose()
        await decoder.aclose()

        assert decoder.closed
        assert source.close_count == 1
        assert closed == [True]

    async def test_early_exit_releases_source(self):
        source = FakeByteSource([sse(frame(delta="a"), frame(delta="b"))])

        async with SSEDecoder(source) as decoder:
            async for _ in decoder.iter_events():
                break

        assert decoder.closed
        assert source.close_count == 1

    async def test_pull_based_reading(self):
        source = FakeByteSource([b"data: 1\n", b"data: 2\n", b"data: 3\n"])
        decoder = SSEDecoder(source)
        events = decoder.iter_events()

        first = await events.__anext__()

        assert first.parsed_json == 1
        assert source.pulled == 1
        await events.aclose()
        assert source.close_count == 1

    async def test_source_error_propagates_and_releases(self):
        source = FakeByteSource(
            [b"data: 1\n", b"data: 2\n"], raise_at=1, error=httpx.ReadError("reset")
        )
        decoder = SSEDecoder(source)

        with pytest.raises(httpx.ReadError):
            await collect(decoder.iter_events())

        assert source.close_count == 1

    async def test_iter_json_skips_non_json(self):
        decoder = SSEDecoder(FakeByteSource([b"data: [DONE]\ndata: {}\nevent: x\n"]))
        assert await collect(decoder.iter_json()) == [{}]

    async def test_iter_data(self):
        decoder = SSEDecoder(FakeByteSource([b"event: x\ndata: 5\n"]))
        events = await collect(decoder.iter_data())
        assert [event.raw_value for event in events] == ["5"]

    async def test_from_response(self):
        response = httpx.Response(200, content=sse(frame(delta="hi")))
        decoder = SSEDecoder.from_response(response)

        events = await collect(decoder.iter_json())

        assert events[0]["data"]["delta_content"] == "hi"
        assert decoder.closed
