"""
relayfs exposes a local directory to remote clients through a small HTTP relay.

A relay process executes file system operations like readFile, writeFile, and readdir
on the local disk on behalf of clients, which talk to it with one stateless HTTP request
per operation. A relay can be password protected, in which case clients authenticate
with a token derived from a shared secret, and it can be published to the internet
through a tunnel.
"""

from relayfs.auth import Authenticator, init
from relayfs.client import AbortSignal, RelayClient
from relayfs.constants import VERSION as __version__
from relayfs.store import CookieCredentialStore, CredentialStore, FileCredentialStore

__all__ = [
    "__version__",
    "AbortSignal",
    "Authenticator",
    "CookieCredentialStore",
    "CredentialStore",
    "FileCredentialStore",
    "RelayClient",
    "init",
]
