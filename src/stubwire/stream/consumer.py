from __future__ import annotations

import asyncio
import codecs
import inspect
import json
import logging
from enum import Enum
from typing import Any, AsyncIterable, AsyncIterator, Callable, Iterable, Optional, Union

from stubwire.errors import StreamLifecycleError, StreamProtocolError
from stubwire.stream.frames import DataFrame, TextDeltaFrame, parse_frame
from stubwire.stream.parse import DONE_SENTINEL, LineDecoder, MessageParser, StreamMessage

logger = logging.getLogger(__name__)

ByteSource = Union[AsyncIterable[bytes], Iterable[bytes], Any]


class ConsumerState(str, Enum):
    IDLE = "idle"
    OPENED = "opened"
    STREAMING = "streaming"
    CLOSED = "closed"
    FINISHED = "finished"
    ABORTED = "aborted"
    ERRORED = "errored"


async def _next_chunk(body: AsyncIterator[bytes]) -> Optional[bytes]:
    try:
        return await body.__anext__()
    except StopAsyncIteration:
        return None


async def _from_iterable(chunks: Iterable[bytes]) -> AsyncIterator[bytes]:
    for chunk in chunks:
        yield chunk


def _body_of(response: ByteSource) -> AsyncIterator[bytes]:
    if response is None:
        raise StreamLifecycleError("response has no body")
    if hasattr(response, "aiter_bytes"):
        return response.aiter_bytes()
    if hasattr(response, "__aiter__"):
        return response.__aiter__()
    if isinstance(response, (bytes, bytearray)):
        return _from_iterable([bytes(response)])
    if hasattr(response, "__iter__"):
        return _from_iterable(response)
    raise StreamLifecycleError(f"cannot read a body from {type(response).__name__}")


class StreamConsumer:
    """
    Runs the read loop for one response body.

    ``on_open`` runs before any byte is read and may set ``signal`` to stop
    early. The loop's only suspension point is waiting for the next chunk, and
    that wait races ``signal``; a chunk already received is always decoded in
    full. Normal completion and cancellation both end with ``on_close`` then
    ``on_finish``. Errors go to ``on_error`` when given, otherwise they are raised.
    """

    def __init__(
        self,
        response: ByteSource,
        *,
        on_open: Optional[Callable[[Any], Any]] = None,
        on_close: Optional[Callable[[], Any]] = None,
        on_finish: Optional[Callable[[], Any]] = None,
        on_error: Optional[Callable[[StreamLifecycleError], Any]] = None,
        signal: Optional[asyncio.Event] = None,
    ) -> None:
        self.response = response
        self.on_open = on_open
        self.on_close = on_close
        self.on_finish = on_finish
        self.on_error = on_error
        self.signal = signal
        self.state = ConsumerState.IDLE

    @property
    def cancelled(self) -> bool:
        return self.signal is not None and self.signal.is_set()

    async def run(self, on_chunk: Callable[[bytes], None], on_end: Optional[Callable[[], None]] = None) -> None:
        try:
            if self.on_open is not None:
                result = self.on_open(self.response)
                if inspect.isawaitable(result):
                    await result
            self.state = ConsumerState.OPENED

            aborted = self.cancelled
            if aborted:
                await self._close()
            else:
                body = _body_of(self.response)
                self.state = ConsumerState.STREAMING
                aborted = await self._pump(body, on_chunk)
                if not aborted and on_end is not None:
                    on_end()

            self.state = ConsumerState.ABORTED if aborted else ConsumerState.CLOSED
            logger.debug("stream %s", self.state.value)
            if self.on_close is not None:
                self.on_close()
            if self.on_finish is not None:
                self.on_finish()
            if not aborted:
                self.state = ConsumerState.FINISHED
        except Exception as e:
            self.state = ConsumerState.ERRORED
            err = e if isinstance(e, StreamLifecycleError) else StreamLifecycleError(str(e) or type(e).__name__)
            if err is not e:
                err.__cause__ = e
            if self.on_error is None:
                raise err
            logger.debug("stream error routed to on_error: %s", err)
            self.on_error(err)

    async def _pump(self, body: AsyncIterator[bytes], on_chunk: Callable[[bytes], None]) -> bool:
        """Read until the body ends (False) or the signal fires (True)."""
        abort = asyncio.ensure_future(self.signal.wait()) if self.signal is not None else None
        try:
            while True:
                if self.cancelled:
                    return True
                pending = asyncio.ensure_future(_next_chunk(body))
                if abort is not None:
                    await asyncio.wait({pending, abort}, return_when=asyncio.FIRST_COMPLETED)
                    if not pending.done():
                        pending.cancel()
                        await asyncio.wait({pending})
                        return True
                chunk = await pending
                if chunk is None:
                    return False
                on_chunk(bytes(chunk))
        finally:
            if abort is not None:
                abort.cancel()
            await self._close()

    async def _close(self) -> None:
        aclose = getattr(self.response, "aclose", None)
        if aclose is not None:
            await aclose()


def _emit(
    message: StreamMessage,
    on_message: Optional[Callable[[str], Any]],
    on_data: Optional[Callable[[Any], Any]],
    on_event: Optional[Callable[[StreamMessage], Any]],
) -> None:
    raw = message.data
    if not raw or raw == DONE_SENTINEL:
        return
    if on_event is not None:
        on_event(message)
    if on_message is not None:
        on_message(raw)
    if on_data is not None:
        try:
            parsed = json.loads(raw)
        except ValueError:
            return  # non-JSON data is only delivered raw
        on_data(parsed)


async def consume_event_stream(
    response: ByteSource,
    *,
    on_message: Optional[Callable[[str], Any]] = None,
    on_data: Optional[Callable[[Any], Any]] = None,
    on_event: Optional[Callable[[StreamMessage], Any]] = None,
    on_id: Optional[Callable[[str], Any]] = None,
    on_retry: Optional[Callable[[int], Any]] = None,
    on_protocol_error: Optional[Callable[[StreamProtocolError], Any]] = None,
    **lifecycle: Any,
) -> None:
    """Decode a text/event-stream body into messages."""
    parser = MessageParser(
        on_message=lambda msg: _emit(msg, on_message, on_data, on_event),
        on_id=on_id,
        on_retry=on_retry,
        on_protocol_error=on_protocol_error,
    )
    decoder = LineDecoder(parser)
    await StreamConsumer(response, **lifecycle).run(decoder.feed)


async def consume_text_stream(
    response: ByteSource,
    *,
    on_message: Optional[Callable[[str], Any]] = None,
    **lifecycle: Any,
) -> None:
    """Forward a plain text body chunk by chunk, decoding UTF-8 across chunk boundaries."""
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

    def on_chunk(chunk: bytes) -> None:
        text = decoder.decode(chunk)
        if text and on_message is not None:
            on_message(text)

    def on_end() -> None:
        rest = decoder.decode(b"", final=True)
        if rest and on_message is not None:
            on_message(rest)

    await StreamConsumer(response, **lifecycle).run(on_chunk, on_end)


async def consume_data_stream(
    response: ByteSource,
    *,
    on_frame: Optional[Callable[[DataFrame], Any]] = None,
    on_text: Optional[Callable[[str], Any]] = None,
    on_protocol_error: Optional[Callable[[StreamProtocolError], Any]] = None,
    **lifecycle: Any,
) -> None:
    """Decode an event-stream whose data lines are JSON frames (text deltas and friends)."""

    def on_message(raw: str) -> None:
        frame = parse_frame(raw)
        if frame is None:
            return
        if on_frame is not None:
            on_frame(frame)
        if on_text is not None and isinstance(frame, TextDeltaFrame):
            on_text(frame.delta)

    await consume_event_stream(
        response,
        on_message=on_message,
        on_protocol_error=on_protocol_error,
        **lifecycle,
    )
