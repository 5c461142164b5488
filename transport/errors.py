"""Exceptions raised by the live transport layer."""


class TransportError(Exception):
    """Base live transport error."""


class TransportClosedError(TransportError):
    """Raised when sending on, or opening, a connection that is not usable."""

    def __init__(self, message: str, code: int | None = None) -> None:
        super().__init__(message)
        self.code = code


class MalformedMessageError(TransportError):
    """Raised when an inbound frame is not valid JSON or not a known message."""
