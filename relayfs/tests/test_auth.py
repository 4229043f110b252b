import logging

import httpx
import pytest

import relayfs.auth as auth
from relayfs.auth import Authenticator, bearer, hash_secret, parse_bearer, verify_token
import relayfs.constants as constants
from relayfs.errors import ConfigurationError, UnsupportedEnvironmentError
from relayfs.relay import Dispatcher
from relayfs.store import CookieCredentialStore, FileCredentialStore


def test_hash_is_salted(secret):
    first = hash_secret(secret)
    second = hash_secret(secret)

    assert first != second
    assert secret not in first

    assert verify_token(secret, first)
    assert verify_token(secret, second)


def test_verify_rejects_other_secret(token):
    assert not verify_token("wrong", token)


def test_verify_rejects_malformed_token(secret):
    assert not verify_token(secret, "not a hash")
    assert not verify_token(secret, "")


def test_bearer_roundtrip(token):
    assert parse_bearer(bearer(token)) == token
    assert parse_bearer(f"bearer {token}") == token


def test_parse_bearer_invalid():
    assert parse_bearer(None) is None
    assert parse_bearer("Basic abc") is None
    assert parse_bearer("Bearer") is None
    assert parse_bearer("Bearer   ") is None


@pytest.fixture
def relay_http(tmp_path, secret):
    app = Dispatcher(root=str(tmp_path), secret=secret, protected=True)

    with httpx.Client(transport=httpx.WSGITransport(app=app)) as http:
        yield http


def test_issue_token_saves_accepted_token(tmp_path, secret, relay_http):
    store = FileCredentialStore(str(tmp_path / "state"))
    store.save_url("http://relay")

    token = Authenticator(store, relay_http).issue_token(secret)

    assert store.load_token() == token
    assert verify_token(secret, token)


def test_issue_token_from_environment(tmp_path, secret, relay_http, monkeypatch):
    monkeypatch.setenv(constants.PASSWORD_ENV, secret)

    store = FileCredentialStore(str(tmp_path / "state"))
    store.save_url("http://relay")

    token = Authenticator(store, relay_http).issue_token()

    assert store.load_token() == token


def test_issue_token_rejected(tmp_path, relay_http, caplog):
    store = FileCredentialStore(str(tmp_path / "state"))
    store.save_url("http://relay")

    with caplog.at_level(logging.ERROR, logger="relayfs"):
        Authenticator(store, relay_http).issue_token("wrong")

    assert store.load_token() is None
    assert "failed to authenticate" in caplog.text


def test_issue_token_unreachable(tmp_path, secret, caplog):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    store = FileCredentialStore(str(tmp_path / "state"))
    store.save_url("http://relay")

    with httpx.Client(transport=httpx.MockTransport(handler)) as http:
        token = Authenticator(store, http).issue_token(secret)

    assert token is not None
    assert store.load_token() is None
    assert "failed to reach relay" in caplog.text


def test_issue_token_without_secret(tmp_path, monkeypatch):
    monkeypatch.delenv(constants.PASSWORD_ENV, raising=False)

    store = FileCredentialStore(str(tmp_path / "state"))
    store.save_url("http://relay")

    with pytest.raises(ConfigurationError):
        Authenticator(store).issue_token()


def test_issue_token_without_url(tmp_path, secret):
    store = FileCredentialStore(str(tmp_path / "state"))

    with pytest.raises(ConfigurationError):
        Authenticator(store).issue_token(secret)


def test_cookie_store_requires_explicit_password(secret, monkeypatch):
    monkeypatch.setenv(constants.PASSWORD_ENV, secret)

    store = CookieCredentialStore()
    store.save_url("http://relay")

    with pytest.raises(UnsupportedEnvironmentError):
        Authenticator(store).issue_token()


def test_cookie_store_explicit_password(secret, relay_http):
    store = CookieCredentialStore()
    store.save_url("http://relay")

    token = Authenticator(store, relay_http).issue_token(secret)

    assert store.load_token() == token


def test_init_unprotected(tmp_path):
    store = FileCredentialStore(str(tmp_path / "state"))

    assert auth.init("http://relay/", store) is None

    assert store.load_url() == "http://relay"
    assert store.load_token() is None


def test_init_protected(tmp_path, secret, relay_http):
    store = FileCredentialStore(str(tmp_path / "state"))

    token = auth.init(
        "http://relay", store, password=secret, protected=True, http=relay_http
    )

    assert store.load_token() == token
