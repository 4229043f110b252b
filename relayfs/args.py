"""Module defining the command-line arguments and providing a parser for them."""

from __future__ import annotations

import argparse
import os
import shlex
from typing import List, Optional

from relayfs.constants import (
    CONFIG_ENV,
    CONFIG_PATH,
    PASSWORD_ENV,
    PROTOCOL_VERSION,
    VERSION,
)


class Arguments(argparse.Namespace):
    """Parsed command-line arguments."""

    command: str

    config: str
    debug: bool

    # serve
    host: Optional[str]
    port: Optional[int]
    root: Optional[str]
    protected: Optional[bool]
    tunnel: Optional[str]
    extra_ssh_args: List[str]

    # init
    url: str
    timeout: Optional[int]

    @classmethod
    def parse(cls, args: Optional[List[str]] = None) -> Arguments:
        """
        Parse command-line arguments from the given list of strings.

        Defaults to sys.argv if none are specified.
        """
        return cls._get_parser().parse_args(args, namespace=cls())

    @classmethod
    def _get_parser(cls) -> argparse.ArgumentParser:
        parser = argparse.ArgumentParser(
            prog="relayfs",
            description="Expose a local file system to remote clients over HTTP.",
        )

        parser.add_argument(
            "--version",
            action="version",
            version=f"%(prog)s {VERSION} (protocol {PROTOCOL_VERSION})",
            help="show the program version and protocol version",
        )

        commands = parser.add_subparsers(dest="command", metavar="command")
        commands.required = True

        serve = commands.add_parser("serve", help="run a relay for a directory")
        cls._add_common_arguments(serve)

        serve.add_argument("--host", type=str, help="interface to listen on")
        serve.add_argument(
            "--port", type=cls._parse_port, help="first port to try listening on"
        )
        serve.add_argument("--root", type=str, help="directory to expose")

        # Defaults to None rather than False so the config file can enable it
        serve.add_argument(
            "--protected",
            action="store_true",
            default=None,
            help=f"require a token derived from ${PASSWORD_ENV}",
        )

        # Publish through an SSH tunnel, optionally to a specific destination
        serve.add_argument(
            "--tunnel",
            type=str,
            nargs="?",
            const="nokey@localhost.run",
            metavar="DESTINATION",
            help="publish the relay through an SSH tunnel (default localhost.run)",
        )
        serve.add_argument(
            "--ssh",
            type=cls._parse_extra_args,
            help="additional arguments to pass to SSH",
            dest="extra_ssh_args",
            default=[],
        )

        init = commands.add_parser("init", help="point local clients at a relay")
        cls._add_common_arguments(init)

        init.add_argument("url", type=str, help="base URL of the relay")
        init.add_argument(
            "--protected",
            action="store_true",
            help=f"authenticate with the password in ${PASSWORD_ENV}",
        )
        init.add_argument(
            "--timeout",
            type=cls._parse_timeout,
            help="timeout for the authentication probe in milliseconds",
        )

        return parser

    @staticmethod
    def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
        # Path to (optional) config file
        parser.add_argument(
            "--config",
            type=str,
            help=f"path to config file (default is ${CONFIG_ENV} or {CONFIG_PATH})",
            default=os.environ.get(CONFIG_ENV, CONFIG_PATH),
        )

        # Enable debug output for development
        parser.add_argument(
            "--debug", action="store_true", help="enable debug information"
        )

    @staticmethod
    def _parse_extra_args(arg: str) -> List[str]:
        return shlex.split(arg)

    @staticmethod
    def _parse_port(arg: str) -> int:
        try:
            val = int(arg)
            assert 0 < val < 65536
            return val
        except (ValueError, AssertionError):
            raise argparse.ArgumentTypeError("expected port number between 1 and 65535")

    @staticmethod
    def _parse_timeout(arg: str) -> int:
        try:
            val = int(arg)
            assert val > 0
            return val
        except (ValueError, AssertionError):
            raise argparse.ArgumentTypeError("expected number > 0")
