"""
Module implementing the command-line interface and invoking the main logic of relayfs.

`relayfs serve` runs a relay on the local machine: it exposes a directory to clients by
executing their file system operations on the local disk. The relay listens on a local
port and can optionally be published to the internet through an SSH tunnel.

`relayfs init` points the clients on a machine at a relay by persisting its URL and,
for a password protected relay, a token derived from the shared secret.
"""

import os
import signal
import sys
import threading
from typing import List, NoReturn, Optional

import httpx

import relayfs.auth as auth
from relayfs.config import Config
import relayfs.constants as constants
from relayfs.errors import RelayError
import relayfs.logger as logger
from relayfs.logger import log
from relayfs.relay import Dispatcher, IgnoreList, Publisher, SshTunnel, Tunnel
from relayfs.store import FileCredentialStore
from .args import Arguments


def main(arguments: Optional[List[str]] = None) -> NoReturn:
    """
    Run the relayfs subcommand with the given arguments.

    Defaults to parsing command-line arguments from sys.argv if none are specified.
    """
    # Parse command-line arguments.
    args = Arguments.parse(arguments)

    # Configure debug logging.
    logger.configure(args.debug)

    config = Config.load(args.config)

    try:
        if args.command == "serve":
            exit_code = serve(args, config)
        else:
            exit_code = init(args, config)
    except KeyboardInterrupt:
        exit_code = 128 + signal.SIGINT
    except RelayError as e:
        log.error(f"{e.kind}: {e}")
        exit_code = constants.RELAYFS_ERROR_CODE
    except Exception as e:
        log.error(f"failed to run {args.command}: {e}")
        exit_code = constants.RELAYFS_ERROR_CODE

    sys.exit(exit_code)


def serve(args: Arguments, config: Config) -> int:
    """Run a relay until interrupted."""
    relay_config = config.relay

    host = args.host or relay_config.host
    port = args.port or relay_config.port
    root = os.path.abspath(args.root or relay_config.root)
    protected = relay_config.protected if args.protected is None else args.protected

    secret = os.environ.get(constants.PASSWORD_ENV)

    if protected and not secret:
        log.warning(
            f"relay is protected but {constants.PASSWORD_ENV} is not set,"
            " all requests will be rejected"
        )

    ignore_list = IgnoreList.load(root, relay_config.ignore_file)

    dispatcher = Dispatcher(
        root=root, secret=secret, protected=protected, ignore_list=ignore_list
    )

    tunnel: Optional[Tunnel] = None
    tunnel_host = args.tunnel or relay_config.tunnel_host

    if tunnel_host is not None:
        tunnel = SshTunnel(tunnel_host, extra_ssh_args=args.extra_ssh_args)

    publisher = Publisher(
        dispatcher,
        host=host,
        port=port,
        tunnel=tunnel,
        store=FileCredentialStore(config.client.state_dir),
        soft_attempts=relay_config.soft_port_attempts,
        hard_attempts=relay_config.hard_port_attempts,
    )

    url = publisher.start()
    print(url, flush=True)

    try:
        _wait_forever()
    finally:
        publisher.stop()

    return 0


def init(args: Arguments, config: Config) -> int:
    """Persist the relay URL, and a token if the relay is protected."""
    store = FileCredentialStore(config.client.state_dir)

    if args.timeout is not None:
        timeout = args.timeout / 1000
    else:
        timeout = config.client.timeout

    with httpx.Client(timeout=timeout) as http:
        auth.init(args.url, store, protected=args.protected, http=http)

    log.info(f"clients in {os.path.abspath(store.state_dir)} now use {args.url}")

    return 0


def _wait_forever() -> None:
    """Block the calling thread until the process is interrupted."""
    threading.Event().wait()


if __name__ == "__main__":
    main()
