import asyncio

import httpx
import pytest

from stubwire.errors import StreamLifecycleError
from stubwire.stream.consumer import (
    ConsumerState,
    StreamConsumer,
    consume_data_stream,
    consume_event_stream,
    consume_text_stream,
)


class ChunkedBody:
    """Async byte source with an optional pause before each chunk."""

    def __init__(self, chunks, delay=0.0):
        self.chunks = list(chunks)
        self.delay = delay
        self.closed = False
        self.reads = 0

    async def aiter_bytes(self):
        for chunk in self.chunks:
            if self.delay:
                await asyncio.sleep(self.delay)
            self.reads += 1
            yield chunk

    async def aclose(self):
        self.closed = True


@pytest.mark.asyncio
async def test_event_stream_messages_data_and_done_sentinel():
    body = ChunkedBody([
        b"data: hel",
        b"lo\n\ndata: {\"n\": 1}\n\n",
        b"data: \n\n",
        b"data: [DONE]\n\n",
    ])
    raw, parsed, calls = [], [], []
    await consume_event_stream(
        body,
        on_message=raw.append,
        on_data=parsed.append,
        on_close=lambda: calls.append("close"),
        on_finish=lambda: calls.append("finish"),
    )
    assert raw == ["hello", '{"n": 1}']
    assert parsed == [{"n": 1}]
    assert calls == ["close", "finish"]
    assert body.closed


@pytest.mark.asyncio
async def test_event_stream_reports_full_messages():
    events = []
    await consume_event_stream(
        ChunkedBody([b"event: tick\nid: 3\ndata: a\ndata: b\n\n"]),
        on_event=events.append,
    )
    assert [(e.event, e.id, e.data) for e in events] == [("tick", "3", "a\nb")]


@pytest.mark.asyncio
async def test_abort_from_open_hook_before_first_chunk():
    signal = asyncio.Event()
    body = ChunkedBody([b"data: never\n\n"])
    calls, messages = [], []

    consumer = StreamConsumer(
        body,
        on_open=lambda response: signal.set(),
        on_close=lambda: calls.append("close"),
        on_finish=lambda: calls.append("finish"),
        on_error=lambda e: calls.append("error"),
        signal=signal,
    )
    await consumer.run(lambda chunk: messages.append(chunk))

    assert calls == ["close", "finish"]
    assert messages == []
    assert body.reads == 0
    assert consumer.state is ConsumerState.ABORTED


@pytest.mark.asyncio
async def test_abort_while_waiting_for_next_chunk():
    signal = asyncio.Event()
    body = ChunkedBody([b"data: one\n\n", b"data: two\n\n"], delay=0.05)
    messages, calls = [], []

    def on_message(data):
        messages.append(data)
        signal.set()

    await consume_event_stream(
        body,
        on_message=on_message,
        on_close=lambda: calls.append("close"),
        on_finish=lambda: calls.append("finish"),
        on_error=lambda e: calls.append("error"),
        signal=signal,
    )
    assert messages == ["one"]
    assert calls == ["close", "finish"]
    assert body.closed


@pytest.mark.asyncio
async def test_async_open_hook_runs_first():
    order = []

    async def on_open(response):
        order.append("open")

    await consume_text_stream(ChunkedBody([b"x"]), on_open=on_open, on_message=order.append)
    assert order == ["open", "x"]


@pytest.mark.asyncio
async def test_callback_error_routed_to_on_error():
    errors, calls = [], []

    def on_message(data):
        raise ValueError("bad handler")

    await consume_event_stream(
        ChunkedBody([b"data: x\n\n"]),
        on_message=on_message,
        on_error=errors.append,
        on_close=lambda: calls.append("close"),
    )
    assert len(errors) == 1
    assert isinstance(errors[0], StreamLifecycleError)
    assert isinstance(errors[0].__cause__, ValueError)
    assert calls == []


@pytest.mark.asyncio
async def test_error_raised_without_handler():
    def on_message(data):
        raise RuntimeError("boom")

    with pytest.raises(StreamLifecycleError):
        await consume_event_stream(ChunkedBody([b"data: x\n\n"]), on_message=on_message)


@pytest.mark.asyncio
async def test_missing_body_is_an_error():
    with pytest.raises(StreamLifecycleError):
        await consume_text_stream(None)


@pytest.mark.asyncio
async def test_text_stream_handles_split_multibyte_characters():
    data = "héllo wörld ✓".encode("utf-8")
    for i in range(len(data) + 1):
        received = []
        await consume_text_stream(ChunkedBody([data[:i], data[i:]]), on_message=received.append)
        assert "".join(received) == "héllo wörld ✓"


@pytest.mark.asyncio
async def test_text_stream_flushes_incomplete_tail():
    received = []
    await consume_text_stream(ChunkedBody([b"ok", b"\xe2\x9c"]), on_message=received.append)
    assert received == ["ok", "\ufffd"]


@pytest.mark.asyncio
async def test_data_stream_frames_and_text():
    body = ChunkedBody([
        b'data: {"type": "start", "messageId": "m1"}\n\n',
        b'data: {"type": "text-delta", "id": "t", "delta": "Hel"}\n\n'
        b'data: {"type": "text-delta", "id": "t", "delta": "lo"}\n\n',
        b'data: {"type": "custom-thing"}\n\n',
        b'data: {"type": "finish"}\n\ndata: [DONE]\n\n',
    ])
    frames, text = [], []
    await consume_data_stream(body, on_frame=frames.append, on_text=text.append)
    assert [f.type for f in frames] == ["start", "text-delta", "text-delta", "finish"]
    assert "".join(text) == "Hello"


@pytest.mark.asyncio
async def test_consumes_an_httpx_streaming_response():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            headers={"content-type": "text/event-stream"},
            content=b"data: one\n\ndata: two\n\n",
        )

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        response = await client.send(client.build_request("GET", "http://api.test/events"), stream=True)
        messages = []
        await consume_event_stream(response, on_message=messages.append)

    assert messages == ["one", "two"]
    assert response.is_closed


@pytest.mark.asyncio
async def test_plain_iterable_body():
    messages = []
    await consume_event_stream([b"data: a\n", b"\n"], on_message=messages.append)
    assert messages == ["a"]
