"""Module that binds a relay to a local port and optionally publishes it."""

import errno
import threading
from socketserver import ThreadingMixIn
from typing import Any, Callable, Optional
from wsgiref.simple_server import make_server, WSGIRequestHandler, WSGIServer

import relayfs.constants as constants
from relayfs.errors import PublishError
from relayfs.logger import log
from relayfs.store import CredentialStore
from .tunnel import Tunnel


class ThreadingWSGIServer(ThreadingMixIn, WSGIServer):
    """WSGI server that handles every connection in its own thread."""

    daemon_threads = True


class _RequestHandler(WSGIRequestHandler):
    """Request handler that logs through the relayfs logger instead of stderr."""

    def log_message(self, format: str, *args: Any) -> None:
        log.debug(f"{self.address_string()} - {format % args}")


class Publisher:
    """
    Owner of a relay's listening socket and, optionally, its tunnel.

    Example:
    ```
    publisher = Publisher(Dispatcher(), port=3000)
    url = publisher.start()
    ...
    publisher.stop()
    ```
    """

    def __init__(
        self,
        app: Callable,
        host: str = "127.0.0.1",
        port: int = constants.DEFAULT_PORT,
        tunnel: Optional[Tunnel] = None,
        store: Optional[CredentialStore] = None,
        soft_attempts: int = constants.SOFT_PORT_ATTEMPTS,
        hard_attempts: int = constants.HARD_PORT_ATTEMPTS,
    ):
        """
        Instantiate a publisher for the WSGI application.

        If the port is taken then the following ports are tried, up to hard_attempts
        ports in total, with a warning once soft_attempts ports were taken. If a store
        is specified then the reachable URL is persisted to it for local clients.
        """
        self.app = app
        self.host = host
        self.port = port
        self.url: Optional[str] = None

        self.soft_attempts = soft_attempts
        self.hard_attempts = hard_attempts

        self._tunnel = tunnel
        self._tunnel_open = False
        self._store = store

        self._httpd: Optional[ThreadingWSGIServer] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        """Whether the relay is currently bound to a port."""
        return self._httpd is not None

    def start(self) -> str:
        """
        Bind the relay to a port, start serving, and return the URL it is reachable at.

        This is the tunnel's public URL if a tunnel was specified, and the local
        loopback URL otherwise. Calling start() on a running publisher returns the
        existing URL.
        """
        if self._httpd is not None and self.url is not None:
            return self.url

        self._httpd = self._bind()
        self.port = self._httpd.server_port

        self._thread = threading.Thread(
            target=self._httpd.serve_forever, name="relayfs", daemon=True
        )
        self._thread.start()

        url = f"http://localhost:{self.port}"

        if self._tunnel is not None:
            try:
                url = self._tunnel.open(self.port).rstrip("/")
                self._tunnel_open = True
            except Exception as e:
                self.stop()
                raise PublishError(f"failed to open tunnel: {e}")

        self.url = url

        if self._store is not None:
            self._store.save_url(url)

        log.info(f"relay listening on port {self.port}, reachable at {url}")

        return url

    def stop(self) -> None:
        """Stop serving and tear down the tunnel. Safe to call when not running."""
        if self._tunnel is not None and self._tunnel_open:
            self._tunnel.close()
            self._tunnel_open = False

        if self._httpd is not None:
            self._httpd.shutdown()
            self._httpd.server_close()
            self._httpd = None

            log.info(f"relay on port {self.port} stopped")

        if self._thread is not None:
            self._thread.join(timeout=5.0)
            self._thread = None

        self.url = None

    def _bind(self) -> ThreadingWSGIServer:
        """Bind to the configured port or, if it is taken, one of the ports after it."""
        port = self.port

        for attempt in range(1, self.hard_attempts + 1):
            try:
                return make_server(
                    self.host,
                    port,
                    self.app,
                    server_class=ThreadingWSGIServer,
                    handler_class=_RequestHandler,
                )
            except OSError as e:
                if e.errno != errno.EADDRINUSE:
                    raise PublishError(f"failed to bind to port {port}: {e}")

            if attempt == self.soft_attempts:
                log.warning(
                    f"tried {attempt} ports starting at {self.port}, consider freeing"
                    f" a port in the range {self.port}-{self.port + self.soft_attempts}"
                )

            log.debug(f"port {port} is in use, trying port {port + 1}")

            port = port + 1

            if port > 65535:
                break

        raise PublishError(
            f"tried {self.hard_attempts} ports starting at {self.port}, none were free"
        )
