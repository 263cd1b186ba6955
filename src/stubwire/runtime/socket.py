from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, Protocol, Sequence

from stubwire.domain.models import EventContract
from stubwire.errors import AckPayloadError, AckTimeoutError
from stubwire.runtime.values import entries

logger = logging.getLogger(__name__)

DEFAULT_ACK_TIMEOUT = 30.0


class SocketTransport(Protocol):
    """A persistent duplex channel carrying named events (Socket.IO style)."""

    def emit(self, event: str, payload: Any, callback: Optional[Callable[[Any], None]] = None) -> None: ...

    def on(self, event: str, handler: Callable[..., Any]) -> None: ...


def build_payload(contract: EventContract, args: Sequence[Any]) -> Any:
    """
    Event payload for one call.

    Keyed body bindings become named fields, object bindings are shallow-merged,
    scalar object bindings go under "data". With no bindings, or when nothing was
    contributed, a single argument is sent as-is and several as a list.
    """
    verbatim = args[0] if len(args) == 1 else list(args)
    if not contract.parameter_bindings:
        return verbatim

    payload: dict[str, Any] = {}
    has_data = False
    for binding in contract.parameter_bindings:
        if binding.arg_position >= len(args):
            continue
        value = args[binding.arg_position]
        if value is None or binding.kind == "ignored":
            continue

        if binding.key is not None:
            payload[binding.key] = value
        else:
            obj = entries(value)
            if obj is not None:
                payload.update(obj)
            else:
                payload["data"] = value
        has_data = True

    return payload if has_data else verbatim


def unwrap_ack(event: str, response: Any) -> Any:
    if isinstance(response, dict):
        error = response.get("error")
        if isinstance(error, str) and error:
            raise AckPayloadError(event, error)
        if "data" in response:
            return response["data"]
    return response


class EventDispatcher:
    """
    Emits one socket event per call.

    The strategy comes from the compiled contract: events declared void are
    fire-and-forget and return None immediately; everything else returns an
    awaitable resolved with the remote acknowledgement.
    """

    def __init__(self, transport: SocketTransport, ack_timeout: float = DEFAULT_ACK_TIMEOUT) -> None:
        self.transport = transport
        self.ack_timeout = ack_timeout

    def dispatch(self, contract: EventContract, args: Sequence[Any], timeout: Optional[float] = None):
        payload = build_payload(contract, args)
        if not contract.expects_ack:
            logger.debug("emit %s", contract.event)
            self.transport.emit(contract.event, payload)
            return None
        return self.emit_with_ack(contract.event, payload, timeout)

    def emit_with_ack(self, event: str, payload: Any, timeout: Optional[float] = None) -> Awaitable[Any]:
        """
        Emit now and return an awaitable for the acknowledgement.

        The timer starts at emission, not when the result is awaited. Must be
        called from inside a running event loop.
        """
        loop = asyncio.get_running_loop()
        ack: asyncio.Future[Any] = loop.create_future()
        limit = self.ack_timeout if timeout is None else timeout

        def on_timeout() -> None:
            if not ack.done():
                ack.set_exception(AckTimeoutError(event, limit))

        timer = loop.call_later(limit, on_timeout)

        def on_ack(response: Any = None) -> None:
            timer.cancel()
            if not ack.done():
                ack.set_result(response)

        logger.debug("emit %s (ack, timeout=%ss)", event, limit)
        try:
            self.transport.emit(event, payload, callback=on_ack)
        except BaseException:
            timer.cancel()
            raise
        return self._wait_ack(event, ack)

    async def _wait_ack(self, event: str, ack: "asyncio.Future[Any]") -> Any:
        return unwrap_ack(event, await ack)

    def listen(self, contract: EventContract, handler: Callable[..., Any]) -> None:
        self.transport.on(contract.event, handler)
