"""
Persistent client state: the relay's base URL and the bearer token.

A host process keeps this state in files inside a state directory, a browser-like
context keeps it in cookies. Both are available behind the same CredentialStore
interface, and which one is used is decided once when the store is constructed rather
than at every place that needs the URL or token.
"""

from abc import ABC, abstractmethod
import os
from typing import Optional

import fasteners
import httpx

import relayfs.constants as constants
from relayfs.logger import log


class CredentialStore(ABC):
    """Storage of a relay URL and a single token."""

    # Whether the context requires the password to be passed explicitly, rather than
    # being read from the process environment.
    requires_explicit_password = False

    @abstractmethod
    def load_url(self) -> Optional[str]:
        """Return the stored relay URL, if any."""

    @abstractmethod
    def save_url(self, url: str) -> None:
        """Persist the relay URL."""

    @abstractmethod
    def load_token(self) -> Optional[str]:
        """Return the stored bearer token, if any."""

    @abstractmethod
    def save_token(self, token: str) -> None:
        """Persist the bearer token."""

    @abstractmethod
    def clear(self) -> None:
        """Forget both the URL and the token."""


class FileCredentialStore(CredentialStore):
    """
    Credential store backed by plain files in a state directory.

    Multiple processes (like a relay persisting its URL and a client reading it) can
    share the directory, so every access is guarded by an inter-process lock.
    """

    def __init__(self, state_dir: str = constants.STATE_DIR):
        """Instantiate a store that keeps its files in the given directory."""
        self.state_dir = os.path.expanduser(state_dir)

        self._lock_path = os.path.join(self.state_dir, "state.lock")

    def load_url(self) -> Optional[str]:
        return self._read(constants.URL_FILENAME)

    def save_url(self, url: str) -> None:
        self._write(constants.URL_FILENAME, url)

    def load_token(self) -> Optional[str]:
        return self._read(constants.TOKEN_FILENAME)

    def save_token(self, token: str) -> None:
        self._write(constants.TOKEN_FILENAME, token, private=True)

    def clear(self) -> None:
        if not os.path.isdir(self.state_dir):
            return

        with fasteners.InterProcessLock(self._lock_path):
            for name in [constants.URL_FILENAME, constants.TOKEN_FILENAME]:
                try:
                    os.unlink(os.path.join(self.state_dir, name))
                except FileNotFoundError:
                    pass

    def _read(self, name: str) -> Optional[str]:
        """Read a state file, or return None if it doesn't exist yet."""
        if not os.path.isdir(self.state_dir):
            return None

        with fasteners.InterProcessLock(self._lock_path):
            try:
                with open(os.path.join(self.state_dir, name), "r") as f:
                    value = f.read().strip()
            except FileNotFoundError:
                return None

        return value or None

    def _write(self, name: str, value: str, private: bool = False) -> None:
        """Write a state file, creating the state directory if needed."""
        if not os.path.isdir(self.state_dir):
            log.info(f"creating state directory {self.state_dir}")
            os.makedirs(self.state_dir, exist_ok=True)

        path = os.path.join(self.state_dir, name)

        with fasteners.InterProcessLock(self._lock_path):
            flags = os.O_WRONLY | os.O_CREAT | os.O_TRUNC
            fd = os.open(path, flags, 0o600 if private else 0o644)

            with os.fdopen(fd, "w") as f:
                f.write(value)


class CookieCredentialStore(CredentialStore):
    """
    Credential store backed by a cookie jar, for browser-like contexts.

    Such contexts have no trustworthy process environment to read the shared secret
    from, so authentication requires an explicit password.
    """

    requires_explicit_password = True

    def __init__(self, cookies: Optional[httpx.Cookies] = None):
        """Instantiate a store on top of an existing cookie jar or a new one."""
        self.cookies = cookies if cookies is not None else httpx.Cookies()

    def load_url(self) -> Optional[str]:
        return self.cookies.get(constants.URL_COOKIE)

    def save_url(self, url: str) -> None:
        self.cookies.set(constants.URL_COOKIE, url)

    def load_token(self) -> Optional[str]:
        return self.cookies.get(constants.TOKEN_COOKIE)

    def save_token(self, token: str) -> None:
        self.cookies.set(constants.TOKEN_COOKIE, token)

    def clear(self) -> None:
        for name in [constants.URL_COOKIE, constants.TOKEN_COOKIE]:
            if name in self.cookies:
                self.cookies.delete(name)
