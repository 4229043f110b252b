"""Module containing utilities for logging, along with a standard logger."""

import logging
from typing import Any, Optional


def _get_logger(name: Optional[str] = "relayfs") -> logging.Logger:
    stderrOutput = logging.StreamHandler()

    formatter = logging.Formatter("%(asctime)s - %(levelname)s - %(message)s")
    stderrOutput.setFormatter(formatter)

    logger = logging.getLogger(name)
    logger.addHandler(stderrOutput)

    return logger


def configure(debug: bool) -> None:
    """Set the verbosity of the standard logger for a command-line invocation."""
    if debug:
        log.setLevel(logging.DEBUG)

        for handler in log.handlers:
            handler.setFormatter(
                logging.Formatter(
                    "%(asctime)s - %(levelname)s - [%(threadName)s] %(message)s"
                )
            )
    else:
        log.setLevel(logging.INFO)


def summarize(obj: Any, max_length: int = 255) -> str:
    """Return a stringified representation of the object up to the given length."""
    stringified_obj = str(obj)

    if len(stringified_obj) <= max_length:
        return stringified_obj
    else:
        return stringified_obj[: max_length - 3] + "..."


def redact(token: Optional[str], visible: int = 6) -> str:
    """Return a loggable form of a bearer token that only shows its tail."""
    if not token:
        return "<none>"

    return "..." + token[-visible:]


# Default logger
log = _get_logger()
