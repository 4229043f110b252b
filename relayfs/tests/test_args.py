import pytest

from relayfs.args import Arguments


def test_no_args():
    with pytest.raises(SystemExit):
        Arguments.parse([])


def test_version(capsys):
    with pytest.raises(SystemExit):
        Arguments.parse(["--version"])

    assert "protocol" in capsys.readouterr().out


def test_serve_defaults():
    args = Arguments.parse(["serve"])

    assert args.command == "serve"
    assert args.port is None
    assert args.host is None
    assert args.protected is None
    assert args.tunnel is None
    assert not args.debug


def test_serve_options():
    args = Arguments.parse(
        [
            "serve",
            "--port=4000",
            "--host=0.0.0.0",
            "--root=/srv",
            "--protected",
            "--debug",
        ]
    )

    assert args.port == 4000
    assert args.host == "0.0.0.0"
    assert args.root == "/srv"
    assert args.protected
    assert args.debug


def test_port_validation():
    with pytest.raises(SystemExit):
        Arguments.parse(["serve", "--port=0"])

    with pytest.raises(SystemExit):
        Arguments.parse(["serve", "--port=abc"])


def test_tunnel():
    args = Arguments.parse(["serve", "--tunnel"])
    assert args.tunnel == "nokey@localhost.run"

    args = Arguments.parse(["serve", "--tunnel=user@host"])
    assert args.tunnel == "user@host"


def test_extra_ssh_args():
    args = Arguments.parse(["serve", "--tunnel", "--ssh=-4 -E logfile"])

    assert args.extra_ssh_args == ["-4", "-E", "logfile"]


def test_init():
    args = Arguments.parse(["init", "https://relay.example.com", "--protected"])

    assert args.command == "init"
    assert args.url == "https://relay.example.com"
    assert args.protected
    assert args.timeout is None


def test_init_requires_url():
    with pytest.raises(SystemExit):
        Arguments.parse(["init"])


def test_timeout():
    args = Arguments.parse(["init", "--timeout=1234", "http://relay"])
    assert args.timeout == 1234

    with pytest.raises(SystemExit):
        Arguments.parse(["init", "--timeout=-1", "http://relay"])
