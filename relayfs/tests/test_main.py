from unittest import mock
import logging

import pytest

from relayfs.__main__ import main
import relayfs.constants as constants
from relayfs.errors import PublishError
from relayfs.logger import log
from relayfs.store import FileCredentialStore


@pytest.fixture
def config(tmp_path):
    path = tmp_path / "config"
    path.write_text(f"[client]\nstate_dir = {tmp_path / 'state'}\n")
    return str(path)


def run(arguments):
    with pytest.raises(SystemExit) as e:
        main(arguments)

    return e.value.code


def test_no_args():
    assert run([]) != 0


def test_debug_flag_set(config, tmp_path):
    with mock.patch("relayfs.__main__.Publisher"):
        with mock.patch("relayfs.__main__._wait_forever"):
            run(["serve", "--debug", f"--config={config}", f"--root={tmp_path}"])

    assert log.getEffectiveLevel() == logging.DEBUG


def test_debug_flag_not_set(config, tmp_path):
    with mock.patch("relayfs.__main__.Publisher"):
        with mock.patch("relayfs.__main__._wait_forever"):
            run(["serve", f"--config={config}", f"--root={tmp_path}"])

    assert log.getEffectiveLevel() == logging.INFO


def test_serve(config, tmp_path, monkeypatch, secret):
    monkeypatch.setenv(constants.PASSWORD_ENV, secret)

    with mock.patch("relayfs.__main__.Publisher") as mock_publisher:
        mock_publisher().start.return_value = "http://localhost:3000"

        with mock.patch("relayfs.__main__._wait_forever"):
            code = run(
                ["serve", f"--config={config}", f"--root={tmp_path}", "--protected"]
            )

    assert code == 0

    dispatcher = mock_publisher.call_args[0][0]
    assert dispatcher.protected
    assert dispatcher.secret == secret
    assert dispatcher.root == str(tmp_path)

    assert mock_publisher().stop.called


def test_serve_interrupted(config, tmp_path):
    with mock.patch("relayfs.__main__.Publisher") as mock_publisher:
        with mock.patch("relayfs.__main__._wait_forever") as mock_wait:
            mock_wait.side_effect = KeyboardInterrupt

            code = run(["serve", f"--config={config}", f"--root={tmp_path}"])

    assert code == 130
    assert mock_publisher().stop.called


def test_serve_failure(config, tmp_path, caplog):
    with mock.patch("relayfs.__main__.Publisher") as mock_publisher:
        mock_publisher().start.side_effect = PublishError("no free port")

        code = run(["serve", f"--config={config}", f"--root={tmp_path}"])

    assert code == constants.RELAYFS_ERROR_CODE
    assert "no free port" in caplog.text


def test_serve_tunnel(config, tmp_path):
    with mock.patch("relayfs.__main__.Publisher") as mock_publisher:
        with mock.patch("relayfs.__main__._wait_forever"):
            run(["serve", f"--config={config}", f"--root={tmp_path}", "--tunnel"])

    tunnel = mock_publisher.call_args[1]["tunnel"]
    assert tunnel.destination == "nokey@localhost.run"


def test_init(config, tmp_path):
    code = run(["init", f"--config={config}", "http://relay.example.com/"])

    assert code == 0

    store = FileCredentialStore(str(tmp_path / "state"))
    assert store.load_url() == "http://relay.example.com"


def test_init_protected_without_password(config, monkeypatch, caplog):
    monkeypatch.delenv(constants.PASSWORD_ENV, raising=False)

    code = run(["init", f"--config={config}", "--protected", "http://relay"])

    assert code == constants.RELAYFS_ERROR_CODE
    assert "ConfigurationError" in caplog.text
