"""
Tunnels that make a relay's local port reachable from the internet.

A relay normally only listens on a local port. To use it from another network, a tunnel
provider forwards a public endpoint to that port. relayfs ships with a tunnel over SSH
remote port forwarding, which works with any SSH server that allows it as well as with
services like localhost.run that print a public URL for the forwarded port.
"""

from abc import ABC, abstractmethod
import contextlib
import re
import subprocess
import threading
from typing import IO, List, Optional

from relayfs.events import Event, EventQueue, UnexpectedEvent
from relayfs.logger import log

_URL_PATTERN = re.compile(r"https?://[\w.-]+(?::\d+)?(?:/[\w./-]*)?")


class Tunnel(ABC):
    """Forwards a public endpoint to a local port."""

    @abstractmethod
    def open(self, port: int) -> str:
        """Establish the tunnel to the local port and return its public URL."""

    @abstractmethod
    def close(self) -> None:
        """Tear down the tunnel. Safe to call if the tunnel isn't open."""


class SshTunnel(Tunnel):
    """
    Tunnel based on SSH remote port forwarding.

    The SSH server is expected to print the public URL of the forwarded port, like
    localhost.run does. Alternatively a fixed public URL can be specified for servers
    that don't, in which case the tunnel is considered open once SSH is running.
    """

    def __init__(
        self,
        destination: str = "nokey@localhost.run",
        remote_port: int = 80,
        public_url: Optional[str] = None,
        extra_ssh_args: Optional[List[str]] = None,
        timeout: float = 15.0,
    ):
        """Instantiate a tunnel to the SSH destination (user@host)."""
        self.destination = destination
        self.remote_port = remote_port
        self.public_url = public_url
        self.extra_ssh_args = extra_ssh_args or []
        self.timeout = timeout

        self._proc: Optional[subprocess.Popen] = None
        self._thread: Optional[threading.Thread] = None

    def open(self, port: int) -> str:
        events = EventQueue()

        ssh_command = self._compose_ssh_command(port)
        log.debug(f"running {ssh_command}")

        try:
            self._proc = subprocess.Popen(
                ssh_command,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
            )
        except Exception as e:
            raise RuntimeError(f"failed to start ssh: {e}")

        self._thread = threading.Thread(
            target=self._watch_output, args=(events, self._proc), daemon=True
        )
        self._thread.start()

        if self.public_url is not None:
            return self.public_url

        try:
            url: str = events.expect(Event.URL_READ, timeout=self.timeout)
        except UnexpectedEvent as e:
            self.close()

            if e.actual_event == Event.TUNNEL_EXIT:
                raise RuntimeError(f"ssh exited with code {e.actual_value}")
            else:
                raise RuntimeError("tunnel did not report a public url in time")

        return url

    def close(self) -> None:
        if self._proc is not None:
            # The process may already have exited on its own
            with contextlib.suppress(ProcessLookupError):
                self._proc.terminate()

            try:
                self._proc.wait(timeout=5.0)
            except subprocess.TimeoutExpired:
                self._proc.kill()

            self._proc = None

        if self._thread is not None:
            self._thread.join(timeout=5.0)
            self._thread = None

    def _compose_ssh_command(self, port: int) -> List[str]:
        """Compose the SSH command that forwards the remote port to the local port."""
        ssh_command = ["ssh"]

        # Disable SSH INFO messages and keep the connection alive while idle
        ssh_command.extend(["-o", "LogLevel=error"])
        ssh_command.extend(["-o", "ServerAliveInterval=30"])

        ssh_command.extend(["-R", f"{self.remote_port}:localhost:{port}"])

        # No remote command will be executed
        ssh_command.append("-N" if self.public_url is not None else "-T")

        ssh_command.extend(self.extra_ssh_args)
        ssh_command.append(self.destination)

        return ssh_command

    @staticmethod
    def _watch_output(events: EventQueue, proc: subprocess.Popen) -> None:
        """Skim SSH's output for the public URL until the process exits."""
        stdout: IO[str] = proc.stdout  # type: ignore
        found = False

        try:
            for line in stdout:
                log.debug(f"tunnel: {line.rstrip()}")

                if not found:
                    match = _URL_PATTERN.search(line)

                    if match is not None:
                        found = True
                        events.notify(Event.URL_READ, match.group(0).rstrip("/."))

            events.notify(Event.TUNNEL_EXIT, proc.wait())
        except Exception as e:
            events.exception(f"tunnel failed: {e}")
