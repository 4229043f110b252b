"""Module for configuration variables with defaults that are overridable by a file."""

from __future__ import annotations

from configparser import ConfigParser, SectionProxy
from dataclasses import dataclass, field
import os
from typing import Optional

import relayfs.constants as constants
from relayfs.logger import log


@dataclass
class RelayConfig:
    """Configuration variables of the relay process."""

    host: str = "127.0.0.1"
    port: int = constants.DEFAULT_PORT

    root: str = os.curdir
    ignore_file: str = ".relayfsignore"

    protected: bool = False

    soft_port_attempts: int = constants.SOFT_PORT_ATTEMPTS
    hard_port_attempts: int = constants.HARD_PORT_ATTEMPTS

    # SSH destination to tunnel through, no tunnel if unset
    tunnel_host: Optional[str] = None

    @staticmethod
    def load(section: SectionProxy) -> RelayConfig:
        """Load overridden variables from a section within a config file."""
        config = RelayConfig()

        config.host = section.get("host", fallback=config.host)
        config.port = section.getint("port", fallback=config.port)

        config.root = os.path.expanduser(section.get("root", fallback=config.root))
        config.ignore_file = section.get("ignore_file", fallback=config.ignore_file)

        config.protected = section.getboolean("protected", fallback=config.protected)

        config.soft_port_attempts = section.getint(
            "soft_port_attempts", fallback=config.soft_port_attempts
        )
        config.hard_port_attempts = section.getint(
            "hard_port_attempts", fallback=config.hard_port_attempts
        )

        config.tunnel_host = section.get("tunnel_host", fallback=config.tunnel_host)

        return config


@dataclass
class ClientConfig:
    """Configuration variables of relay clients."""

    state_dir: str = constants.STATE_DIR
    timeout: float = 5.0

    @staticmethod
    def load(section: SectionProxy) -> ClientConfig:
        """Load overridden variables from a section within a config file."""
        config = ClientConfig()

        config.state_dir = section.get("state_dir", fallback=config.state_dir)
        config.timeout = section.getfloat("timeout", fallback=config.timeout)

        return config


@dataclass
class Config:
    """Configuration variables."""

    relay: RelayConfig = field(default_factory=RelayConfig)
    client: ClientConfig = field(default_factory=ClientConfig)

    @staticmethod
    def load(filename: str) -> Config:
        """Load overridden configuration variables from a config file."""
        parser = ConfigParser()

        config = Config()
        filename = os.path.expanduser(filename)

        try:
            with open(filename, "r") as f:
                parser.read_string(f.read(), filename)

            if "relay" in parser:
                config.relay = RelayConfig.load(parser["relay"])
            if "client" in parser:
                config.client = ClientConfig.load(parser["client"])
        except FileNotFoundError:
            log.info(f"no config file at {filename}")
        except Exception as e:
            # An unreadable config file is not considered a fatal error since we can
            # fall back to defaults.
            log.error(f"failed to read config file {filename}: {e}")
        else:
            log.info(f"loaded config: {config}")

        return config
