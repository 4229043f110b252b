"""
Client for performing file system operations on a relay.

The client mirrors a subset of the local file system API: every operation is sent to
the relay as a single HTTP request and the relay's response is turned back into a
return value or an exception. Errors raised by the disk primitives on the relay, like
FileNotFoundError, arrive as UnderlyingIOError with the original exception as its cause.

Requests are stateless. The relay URL and the bearer token come from a CredentialStore,
which `relayfs init` (or relayfs.auth.init()) fills in beforehand.
"""

from .abort import AbortSignal
from .client import RelayClient

__all__ = ["AbortSignal", "RelayClient"]
