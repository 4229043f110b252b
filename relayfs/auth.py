"""
Authentication between clients and a password protected relay.

Clients and the relay share a secret (password) out-of-band. A client never sends that
secret over the wire. Instead it derives a token by hashing the secret with argon2id and
a random salt, and sends the token as a bearer credential with every request. The relay
verifies the token against its own copy of the secret in constant time.

A token is never derived from another token: every issuance hashes the original secret
again, so two issuances never produce the same token, but both verify on the relay.
The relay only ever verifies; it doesn't hash the secret per request.
"""

import os
from typing import Optional

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError
import httpx

import relayfs.constants as constants
from relayfs.errors import ConfigurationError, UnsupportedEnvironmentError
from relayfs.logger import log, redact
from relayfs.store import CredentialStore

_hasher = PasswordHasher()


def hash_secret(secret: str) -> str:
    """Derive a token from a secret with a one-way salted hash."""
    return _hasher.hash(secret)


def verify_token(secret: str, token: str) -> bool:
    """
    Check if a token was derived from the given secret.

    Malformed tokens are considered unverified rather than raising.
    """
    try:
        return _hasher.verify(token, secret)
    except (VerificationError, InvalidHashError):
        return False


def bearer(token: str) -> str:
    """Format a token as the value of an Authorization header."""
    return f"Bearer {token}"


def parse_bearer(header: Optional[str]) -> Optional[str]:
    """Extract the token from an Authorization header value."""
    if header is None:
        return None

    scheme, _, token = header.strip().partition(" ")

    if scheme.lower() != "bearer" or not token.strip():
        return None

    return token.strip()


class Authenticator:
    """Issues tokens for a relay and persists them once the relay accepts them."""

    def __init__(
        self,
        store: CredentialStore,
        http: Optional[httpx.Client] = None,
        timeout: float = 5.0,
    ):
        """
        Instantiate an authenticator that persists tokens to the given store.

        The probe request is made with the given HTTP client, or with a new one using
        the given timeout in seconds.
        """
        self._store = store
        self._http = http
        self._timeout = timeout

    def issue_token(self, password: Optional[str] = None) -> str:
        """
        Derive a token from the password and try it against the relay.

        The password defaults to the shared secret in the environment. If the relay
        doesn't reject the token with a 401 then it is saved to the credential store for
        subsequent requests.

        A rejected token or an unreachable relay is logged rather than raised, so that a
        long running client doesn't crash over it. The token is returned either way.
        """
        secret = password or os.environ.get(constants.PASSWORD_ENV)

        if not secret:
            raise ConfigurationError(
                f"a password or the {constants.PASSWORD_ENV} environment variable"
                " is required to authenticate"
            )

        if password is None and self._store.requires_explicit_password:
            raise UnsupportedEnvironmentError(
                "a password is required when credentials are stored in cookies"
            )

        token = hash_secret(secret)

        url = self._store.load_url()

        if url is None:
            raise ConfigurationError("no relay url configured, call init() first")

        try:
            response = self._probe(url, token)
        except httpx.HTTPError as e:
            log.error(f"failed to reach relay at {url}: {e}")
            return token

        if response.status_code == 401:
            log.error("failed to authenticate, check your password")
        else:
            if response.status_code >= 500:
                log.warning(f"relay responded {response.status_code} to auth probe")

            self._store.save_token(token)
            log.info(f"authenticated with token {redact(token)}")

        return token

    def _probe(self, url: str, token: str) -> httpx.Response:
        """Make an authenticated request to the relay's base URL."""
        headers = {
            "Authorization": bearer(token),
            constants.PROTOCOL_HEADER: constants.PROTOCOL_VERSION,
        }

        if self._http is not None:
            return self._http.get(url, headers=headers)

        with httpx.Client(timeout=self._timeout) as http:
            return http.get(url, headers=headers)


def init(
    url: str,
    store: CredentialStore,
    password: Optional[str] = None,
    protected: bool = False,
    http: Optional[httpx.Client] = None,
) -> Optional[str]:
    """
    Point clients using the store at the relay with the given URL.

    If the relay is password protected then a token is issued as well, which is
    returned.
    """
    store.save_url(url.rstrip("/"))

    if protected:
        return Authenticator(store, http).issue_token(password)

    return None
