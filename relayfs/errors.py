"""
Error taxonomy shared by the relay and its clients.

Every failure the relay reports has a kind and an HTTP status. The relay turns raised
errors into a JSON error payload and the client turns that payload back into an
exception of the same class, so callers handle a rejected write the same way whether
it failed locally or on the relay.
"""

from typing import Any, Dict, Optional, Type


class RelayError(Exception):
    """Base class for all errors raised by relayfs."""

    status = 500
    kind = "RelayError"

    def __init__(self, message: str, detail: Optional[Dict[str, Any]] = None):
        """Instantiate with a human readable message and an optional error payload."""
        super().__init__(message)

        self.message = message
        self.detail = detail

    def to_payload(self) -> Dict[str, Any]:
        """Turn the error into the "error" member of a response envelope."""
        return {"kind": self.kind, "message": self.message}


class ConfigurationError(RelayError):
    """A shared secret, password, or relay URL is missing."""

    # The relay answers 401 when it has no secret to check tokens against.
    status = 401
    kind = "ConfigurationError"


class UnsupportedEnvironmentError(ConfigurationError):
    """The credential context requires an explicit password but none was given."""

    kind = "UnsupportedEnvironmentError"


class AuthenticationError(RelayError):
    """The bearer token is missing or was rejected."""

    status = 401
    kind = "AuthenticationError"


class AuthorizationError(RelayError):
    """The operation is not permitted for this request or the path is ignored."""

    status = 403
    kind = "AuthorizationError"


class ValidationError(RelayError):
    """The request lacks a method or body, or carries malformed arguments."""

    status = 422
    kind = "ValidationError"


class MethodNotAllowedError(RelayError):
    """The operation is not in the allow-list of the HTTP verb that was used."""

    status = 405
    kind = "MethodNotAllowedError"


class UnderlyingIOError(RelayError):
    """
    The disk primitive behind an operation raised.

    The original exception is kept as the cause, and its message is passed through
    verbatim rather than normalized into a cross-platform error code.
    """

    status = 500
    kind = "UnderlyingIOError"

    def __init__(
        self,
        message: str,
        detail: Optional[Dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
    ):
        """Instantiate with the message and, when known, the original exception."""
        super().__init__(message, detail)

        self.cause = cause


class AbortError(RelayError):
    """A client request was aborted through its abort signal."""

    status = 499
    kind = "AbortError"


class PublishError(RelayError):
    """The relay could not be bound to a port or exposed through a tunnel."""

    kind = "PublishError"


_KINDS: Dict[str, Type[RelayError]] = {
    cls.kind: cls
    for cls in [
        RelayError,
        ConfigurationError,
        UnsupportedEnvironmentError,
        AuthenticationError,
        AuthorizationError,
        ValidationError,
        MethodNotAllowedError,
        UnderlyingIOError,
    ]
}


def error_for_kind(kind: Optional[str]) -> Type[RelayError]:
    """Look up the error class for a kind reported by the relay."""
    if kind is None:
        return RelayError

    return _KINDS.get(kind, RelayError)
