"""Error taxonomy for the zz session core.

Errors tied to a specific outstanding request or turn settle that request's
future. Untracked errors are surfaced to the consumer as error events.
"""

from typing import Optional


class ZzError(Exception):
    """Base class for all zz errors."""


class InvalidStateError(ZzError):
    """Caller violated a session precondition (e.g. a turn is already active).

    Raised synchronously to the caller; has no session-wide effect.
    """


class RequestRejectedError(ZzError):
    """The backend answered a request with an error response."""

    def __init__(self, method: Optional[str], message: str, code: Optional[int] = None):
        self.method = method
        self.code = code
        self.backend_message = message
        super().__init__(
            f"Request failed ({method or 'unknown'}): {message} ({code})"
        )


class ProtocolError(ZzError):
    """The transport could not decode a frame. Fatal for the session."""


class UnexpectedExitError(ZzError):
    """The backend process terminated while work was outstanding."""

    def __init__(self, code: Optional[int]):
        self.code = code
        super().__init__(f"codex app-server exited unexpectedly (code={code})")


class MalformedPayloadError(ZzError):
    """An event payload lacks the fields needed to act on it."""
