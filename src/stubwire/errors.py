from __future__ import annotations

from typing import Any, Optional


class StubwireError(Exception):
    """Base class for every error raised by stubwire."""


class DescriptorError(StubwireError):
    """An annotated member could not be turned into a descriptor.

    Only the offending member is skipped; the rest of the source unit is kept.
    """

    def __init__(self, member: str, reason: str, line: int = 0) -> None:
        self.member = member
        self.reason = reason
        self.line = line
        super().__init__(f"{member} (line {line}): {reason}")


class DispatchError(StubwireError):
    """Transport failure or non-2xx status for a dispatched request."""

    def __init__(self, message: str, status: Optional[int] = None, response: Any = None) -> None:
        self.status = status
        self.response = response
        super().__init__(message)


class StreamProtocolError(StubwireError):
    """A malformed event-stream line. Reported, never raised by the consumer."""

    def __init__(self, line: bytes, reason: str) -> None:
        self.line = line
        self.reason = reason
        super().__init__(f"{reason}: {line[:80]!r}")


class StreamLifecycleError(StubwireError):
    """Failure while pumping a response body or inside a consumer callback."""


class AckTimeoutError(StubwireError):
    """The remote side did not acknowledge a socket event in time."""

    def __init__(self, event: str, timeout: float) -> None:
        self.event = event
        self.timeout = timeout
        super().__init__(f"socket event {event!r} not acknowledged within {timeout}s")


class AckPayloadError(StubwireError):
    """The remote side acknowledged with an ``{"error": ...}`` payload."""

    def __init__(self, event: str, error: str) -> None:
        self.event = event
        self.error = error
        super().__init__(error)
