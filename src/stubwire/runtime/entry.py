"""
Runtime entry point for generated stubs.

Generated modules import only this module. Each stub class is a table of
closures keyed by method name, one closure per compiled contract:

    class UsersController(HttpService):
        find_one = http_stub({...endpoint contract...})

    users = UsersController(options=ClientOptions(base_url="http://api"))
    response = await users.find_one(None, 42)

Every stub takes call-site options first, then the positional arguments of the
annotated method.
"""

from __future__ import annotations

from typing import Any, Callable, Mapping, Optional, Union

import httpx

from stubwire.domain.models import EndpointContract, EventContract, ServiceContracts
from stubwire.runtime.config import ClientOptions, get_default_options, set_default_options
from stubwire.runtime.files import FilePart
from stubwire.runtime.http import HttpDispatcher, raise_for_status, read_json
from stubwire.runtime.socket import DEFAULT_ACK_TIMEOUT, EventDispatcher, SocketTransport

__all__ = [
    "ClientOptions",
    "FilePart",
    "HttpService",
    "ListenerService",
    "SocketService",
    "build_service_class",
    "event_stub",
    "get_default_options",
    "http_stub",
    "listener_stub",
    "raise_for_status",
    "read_json",
    "set_default_options",
]

ContractLike = Union[Mapping[str, Any], EndpointContract, EventContract]


class HttpService:
    """Base class of HTTP stub classes. Holds the dispatcher and the per-instance options."""

    contracts: Optional[ServiceContracts] = None

    def __init__(
        self,
        dispatcher: Optional[HttpDispatcher] = None,
        *,
        options: Optional[ClientOptions] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        if dispatcher is None:
            dispatcher = HttpDispatcher(client=client, options=options)
        elif options is not None:
            dispatcher = dispatcher.with_options(options)
        self.dispatcher = dispatcher

    async def aclose(self) -> None:
        await self.dispatcher.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.aclose()


class SocketService:
    """Base class of gateway stub classes."""

    contracts: Optional[ServiceContracts] = None
    namespace: str = ""

    def __init__(
        self,
        transport: Optional[SocketTransport] = None,
        *,
        dispatcher: Optional[EventDispatcher] = None,
        ack_timeout: float = DEFAULT_ACK_TIMEOUT,
    ) -> None:
        if dispatcher is None:
            if transport is None:
                raise TypeError("either a transport or a dispatcher is required")
            dispatcher = EventDispatcher(transport, ack_timeout=ack_timeout)
        self.dispatcher = dispatcher


class ListenerService(SocketService):
    """Base class of emitter stub classes: each stub registers a handler for a server-sent event."""


def http_stub(contract: ContractLike) -> Callable[..., Any]:
    c = EndpointContract.model_validate(contract)

    async def stub(self: HttpService, options: Optional[ClientOptions] = None, *args: Any) -> httpx.Response:
        return await self.dispatcher.dispatch(c, args, options)

    stub.__name__ = c.name
    stub.__qualname__ = c.name
    stub.contract = c  # type: ignore[attr-defined]
    return stub


def event_stub(contract: ContractLike) -> Callable[..., Any]:
    c = EventContract.model_validate(contract)

    def stub(self: SocketService, options: Optional[ClientOptions] = None, *args: Any):
        timeout = options.timeout if options is not None else None
        return self.dispatcher.dispatch(c, args, timeout)

    stub.__name__ = c.name
    stub.__qualname__ = c.name
    stub.contract = c  # type: ignore[attr-defined]
    return stub


def listener_stub(contract: ContractLike) -> Callable[..., Any]:
    c = EventContract.model_validate(contract)

    def stub(self: SocketService, handler: Callable[..., Any]) -> None:
        self.dispatcher.listen(c, handler)

    stub.__name__ = c.name
    stub.__qualname__ = c.name
    stub.contract = c  # type: ignore[attr-defined]
    return stub


def build_service_class(service: Union[ServiceContracts, Mapping[str, Any]]) -> type:
    """Build the stub class for one compiled service without rendering any source."""
    s = ServiceContracts.model_validate(service)
    table: dict[str, Any] = {"contracts": s}

    if s.kind == "controller":
        base: type = HttpService
        for endpoint in s.endpoints:
            table[endpoint.name] = http_stub(endpoint)
    else:
        base = ListenerService if s.kind == "emitter" else SocketService
        table["namespace"] = s.namespace
        for event in s.events:
            table[event.name] = listener_stub(event) if event.direction == "listen" else event_stub(event)

    return type(s.name, (base,), table)
