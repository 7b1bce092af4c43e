"""Error taxonomy shared by every Praxis component.

Each error carries a stable ``code`` that the service facade and the REST
layer surface to callers unchanged.
"""

from __future__ import annotations


class PraxisError(Exception):
    """Base class for all expected failures."""

    code = "INTERNAL_ERROR"

    def __init__(self, message: str, *, code: str | None = None) -> None:
        super().__init__(message)
        if code is not None:
            self.code = code


class ValidationError(PraxisError):
    """Missing or malformed input, rejected before any side effect."""

    code = "INVALID_INPUT"


class NotFoundError(PraxisError):
    """Unknown agent, behavior or link id."""

    code = "NOT_FOUND"


class UpstreamError(PraxisError):
    """A text-generation provider call failed (transport, HTTP status or body)."""

    code = "UPSTREAM_FAILED"

    def __init__(self, message: str, *, provider: str | None = None, status_code: int | None = None) -> None:
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code


class PersistenceError(PraxisError):
    """A store read or write failed. Always surfaced."""

    code = "PERSISTENCE_FAILED"
