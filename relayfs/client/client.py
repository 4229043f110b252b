"""Module implementing the client side of the relay protocol."""

import json
import logging
import os
import threading
import time
from typing import Any, Dict, List, Optional, Sequence, Union
from urllib.parse import quote

import httpx

import relayfs.constants as constants
from relayfs.auth import bearer
from relayfs.encoding import Encoding
from relayfs.errors import (
    AbortError,
    ConfigurationError,
    error_for_kind,
    RelayError,
    UnderlyingIOError,
    ValidationError,
)
from relayfs.events import Event, EventQueue, UnexpectedEvent
from relayfs.filesystem import Attributes, decode_text, DirEntry
from relayfs.logger import log, summarize
import relayfs.registry as registry
from relayfs.registry import Operation
from relayfs.store import CredentialStore
from .abort import AbortSignal

PathLike = Union[str, "os.PathLike[str]"]

# Marker for operations that are called without contents
_NO_CONTENTS = object()


class RelayClient:
    """
    Client that performs file system operations on a relay.

    The relay URL and bearer token are read from the credential store for every request,
    so a token issued by an Authenticator sharing the store is picked up immediately.

    Example:
    ```
    fs = RelayClient(FileCredentialStore())
    fs.write_file("notes.txt", "hello")
    assert fs.read_file("notes.txt", encoding="utf8") == "hello"
    ```
    """

    def __init__(
        self,
        store: CredentialStore,
        timeout: float = 5.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        """
        Instantiate a client with the given request timeout in seconds.

        A custom httpx transport can be specified, for example to talk to a relay
        application in the same process.
        """
        self._store = store
        self._http = httpx.Client(timeout=timeout, transport=transport)
        self._encoding = Encoding(Attributes, DirEntry)

    def close(self) -> None:
        """Close the underlying connection pool."""
        self._http.close()

    def __enter__(self) -> "RelayClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    #
    # Generic calls
    #

    def call(
        self,
        operation: str,
        path: PathLike,
        *args: Any,
        options: Optional[Dict[str, Any]] = None,
        contents: Any = _NO_CONTENTS,
        signal: Optional[AbortSignal] = None,
    ) -> Any:
        """
        Call an operation on the relay and return its result.

        Positional arguments follow the target path, options are the JSON options
        object of the operation. Errors reported by the relay are raised as the
        matching RelayError, and file system errors as UnderlyingIOError caused by the
        original exception (e.g. FileNotFoundError).
        """
        op = registry.lookup(operation)

        if op is None:
            raise ValidationError(f"unknown operation '{operation}'")

        if len(args) > len(op.params):
            raise ValidationError(
                f"{op.name} takes at most {len(op.params)} arguments, got {len(args)}"
            )

        request = self._build_request(op, os.fspath(path), args, options, contents)

        t_call = time.time()
        response = self._send(request, signal)
        t_return = time.time()

        # Explicit check before logging because summarize is relatively slow
        if log.isEnabledFor(logging.DEBUG):
            t_millis = round((t_return - t_call) * 1000)
            log.debug(
                f"relay::{op.name}({summarize(os.fspath(path))}) -"
                f" {response.status_code} in {t_millis} ms"
            )

        return self._interpret(response).get(op.result_field)

    def _build_request(
        self,
        op: Operation,
        path: str,
        args: Sequence[Any],
        options: Optional[Dict[str, Any]],
        contents: Any,
    ) -> httpx.Request:
        """Compose the HTTP request for an operation."""
        url = self._store.load_url()

        if url is None:
            raise ConfigurationError("no relay url configured, call init() first")

        headers = {constants.PROTOCOL_HEADER: constants.PROTOCOL_VERSION}

        token = self._store.load_token()

        if token is not None:
            headers["Authorization"] = bearer(token)

        if options:
            headers[constants.OPTIONS_HEADER] = json.dumps(
                {name: value for name, value in options.items() if value is not None}
            )

        if args:
            headers[constants.ARGS_HEADER] = self._encoding.dumps(list(args))

        body = None

        if op.verb.has_body:
            headers["Content-Type"] = "application/json"

            if contents is _NO_CONTENTS:
                body = self._encoding.dumps({})
            else:
                body = self._encoding.dumps({"contents": contents})

        return self._http.build_request(
            op.verb.value,
            f"{url.rstrip('/')}/{quote(path, safe='')}",
            params={constants.METHOD_PARAM: op.name},
            headers=headers,
            content=body,
        )

    def _send(
        self, request: httpx.Request, signal: Optional[AbortSignal]
    ) -> httpx.Response:
        """
        Send a request, unless or until the abort signal is triggered.

        An aborted request is abandoned: its response is discarded whenever it arrives.
        """
        if signal is None:
            return self._http.send(request)

        if signal.aborted:
            raise AbortError(f"request aborted: {signal.reason or 'no reason given'}")

        events = EventQueue()
        signal.subscribe(events)

        def run() -> None:
            try:
                response = self._http.send(request)
            except Exception as e:
                events.exception(e)
            else:
                events.notify(Event.RESPONSE, response)

        t = threading.Thread(target=run, daemon=True)
        t.start()

        try:
            return events.expect(Event.RESPONSE)
        except UnexpectedEvent as e:
            if e.actual_event == Event.ABORTED:
                reason = e.actual_value or "no reason given"
                raise AbortError(f"request aborted: {reason}")
            raise
        finally:
            signal.unsubscribe(events)

    def _interpret(self, response: httpx.Response) -> Dict[str, Any]:
        """Decode a response envelope, raising the reported error on failure."""
        try:
            payload = self._encoding.loads(response.content)
        except (ValueError, TypeError):
            payload = None

        if (
            response.is_success
            and isinstance(payload, dict)
            and payload.get("success") is True
        ):
            return payload

        error = payload.get("error") if isinstance(payload, dict) else None

        if not isinstance(error, dict):
            fallback = f"relay responded with {response.status_code}"
            message = str(error) if error else fallback
            raise RelayError(message, {"status": response.status_code})

        cls = error_for_kind(error.get("kind"))
        message = str(error.get("message") or "relay responded with an error")

        if cls is UnderlyingIOError:
            cause = error.get("cause")

            if isinstance(cause, BaseException):
                raise UnderlyingIOError(message, error, cause) from cause

            raise UnderlyingIOError(message, error)

        raise cls(message, error)

    #
    # Metadata access
    #

    def access(
        self,
        path: PathLike,
        mode: Optional[int] = None,
        signal: Optional[AbortSignal] = None,
    ) -> None:
        """Check that the path exists and is accessible with the given mode."""
        args = [] if mode is None else [mode]
        self.call("access", path, *args, signal=signal)

    def stat(self, path: PathLike, signal: Optional[AbortSignal] = None) -> Attributes:
        return self.call("stat", path, signal=signal)

    def lstat(self, path: PathLike, signal: Optional[AbortSignal] = None) -> Attributes:
        return self.call("lstat", path, signal=signal)

    def exists(self, path: PathLike, signal: Optional[AbortSignal] = None) -> bool:
        return bool(self.call("exists", path, signal=signal))

    def exists_sync(self, path: PathLike, signal: Optional[AbortSignal] = None) -> bool:
        return bool(self.call("existsSync", path, signal=signal))

    def readlink(self, path: PathLike, signal: Optional[AbortSignal] = None) -> str:
        return self.call("readlink", path, signal=signal)

    def realpath(self, path: PathLike, signal: Optional[AbortSignal] = None) -> str:
        return self.call("realpath", path, signal=signal)

    def watch(self, path: PathLike, signal: Optional[AbortSignal] = None) -> Attributes:
        """Return a snapshot of the attributes of the path, to poll for changes."""
        return self.call("watch", path, signal=signal)

    #
    # Directory listings
    #

    def readdir(
        self,
        path: PathLike,
        encoding: Optional[str] = None,
        with_file_types: bool = False,
        recursive: bool = False,
        signal: Optional[AbortSignal] = None,
    ) -> List[Union[str, bytes, DirEntry]]:
        """
        List the names of the entries in a directory, excluding "." and "..".

        With encoding set to "buffer" the names are returned as bytes, and with
        with_file_types set the entries are returned as DirEntry objects.
        """
        options = {
            "encoding": encoding,
            "withFileTypes": with_file_types or None,
            "recursive": recursive or None,
        }
        return self.call("readdir", path, options=options, signal=signal)

    def opendir(
        self,
        path: PathLike,
        recursive: bool = False,
        signal: Optional[AbortSignal] = None,
    ) -> List[DirEntry]:
        return self.call(
            "opendir", path, options={"recursive": recursive or None}, signal=signal
        )

    #
    # File contents
    #

    def read_file(
        self,
        path: PathLike,
        encoding: Optional[str] = None,
        flag: Optional[str] = None,
        signal: Optional[AbortSignal] = None,
    ) -> Union[bytes, str]:
        """
        Read the entire contents of a file.

        Without an encoding the contents are returned as bytes. With an encoding (like
        "utf8", "latin1" or "base64") the bytes are decoded into text once they have
        been received.
        """
        options = {"encoding": encoding, "flag": flag}
        data = self.call("readFile", path, options=options, signal=signal)

        if isinstance(data, list):
            data = bytes(data)
        elif isinstance(data, str):
            data = data.encode("utf-8")

        if encoding is None or encoding == "buffer":
            return data

        return decode_text(data, encoding)

    def write_file(
        self,
        path: PathLike,
        data: Union[str, bytes],
        encoding: Optional[str] = None,
        mode: Optional[int] = None,
        flag: Optional[str] = None,
        flush: bool = False,
        signal: Optional[AbortSignal] = None,
    ) -> None:
        """Write data to a file, replacing the file if it already exists."""
        options = {
            "encoding": encoding,
            "mode": mode,
            "flag": flag,
            "flush": flush or None,
        }
        self.call("writeFile", path, options=options, contents=data, signal=signal)

    def append_file(
        self,
        path: PathLike,
        data: Union[str, bytes],
        encoding: Optional[str] = None,
        mode: Optional[int] = None,
        flag: Optional[str] = None,
        flush: bool = False,
        signal: Optional[AbortSignal] = None,
    ) -> None:
        """Append data to a file, creating the file if it doesn't exist yet."""
        options = {
            "encoding": encoding,
            "mode": mode,
            "flag": flag,
            "flush": flush or None,
        }
        self.call("appendFile", path, options=options, contents=data, signal=signal)

    def truncate(
        self, path: PathLike, length: int = 0, signal: Optional[AbortSignal] = None
    ) -> None:
        self.call("truncate", path, length, signal=signal)

    def open(
        self,
        path: PathLike,
        flags: Union[str, int] = "r",
        mode: Optional[int] = None,
        signal: Optional[AbortSignal] = None,
    ) -> None:
        """Open and close a file on the relay, e.g. to create it with flags "a"."""
        args = [flags] if mode is None else [flags, mode]
        self.call("open", path, *args, signal=signal)

    #
    # Metadata modification
    #

    def chmod(
        self, path: PathLike, mode: int, signal: Optional[AbortSignal] = None
    ) -> None:
        self.call("chmod", path, mode, signal=signal)

    def chown(
        self, path: PathLike, uid: int, gid: int, signal: Optional[AbortSignal] = None
    ) -> None:
        self.call("chown", path, uid, gid, signal=signal)

    def lchown(
        self, path: PathLike, uid: int, gid: int, signal: Optional[AbortSignal] = None
    ) -> None:
        self.call("lchown", path, uid, gid, signal=signal)

    def utimes(
        self,
        path: PathLike,
        atime: float,
        mtime: float,
        signal: Optional[AbortSignal] = None,
    ) -> None:
        self.call("utimes", path, atime, mtime, signal=signal)

    def lutimes(
        self,
        path: PathLike,
        atime: float,
        mtime: float,
        signal: Optional[AbortSignal] = None,
    ) -> None:
        self.call("lutimes", path, atime, mtime, signal=signal)

    #
    # File system structure
    #

    def mkdir(
        self,
        path: PathLike,
        recursive: bool = False,
        mode: Optional[int] = None,
        signal: Optional[AbortSignal] = None,
    ) -> Optional[str]:
        """
        Create a directory.

        With recursive set, parents are created as needed, an existing directory is
        not an error, and the first directory created is returned.
        """
        options = {"recursive": recursive or None, "mode": mode}
        return self.call("mkdir", path, options=options, signal=signal)

    def mkdtemp(self, prefix: PathLike, signal: Optional[AbortSignal] = None) -> str:
        """Create a uniquely named directory starting with the prefix and return it."""
        return self.call("mkdtemp", prefix, signal=signal)

    def symlink(
        self,
        target: str,
        path: PathLike,
        type: Optional[str] = None,
        signal: Optional[AbortSignal] = None,
    ) -> None:
        """Create a symbolic link at path pointing to target."""
        args = [os.fspath(path)] if type is None else [os.fspath(path), type]
        self.call("symlink", target, *args, signal=signal)

    def link(
        self,
        existing_path: PathLike,
        new_path: PathLike,
        signal: Optional[AbortSignal] = None,
    ) -> None:
        self.call("link", existing_path, os.fspath(new_path), signal=signal)

    def copy_file(
        self,
        src: PathLike,
        dest: PathLike,
        mode: int = 0,
        signal: Optional[AbortSignal] = None,
    ) -> None:
        self.call("copyFile", src, os.fspath(dest), mode, signal=signal)

    def cp(
        self,
        src: PathLike,
        dest: PathLike,
        recursive: bool = False,
        force: bool = True,
        error_on_exist: bool = False,
        signal: Optional[AbortSignal] = None,
    ) -> None:
        options = {
            "recursive": recursive,
            "force": force,
            "errorOnExist": error_on_exist,
        }
        self.call("cp", src, os.fspath(dest), options=options, signal=signal)

    def unlink(self, path: PathLike, signal: Optional[AbortSignal] = None) -> None:
        self.call("unlink", path, signal=signal)

    def rmdir(
        self,
        path: PathLike,
        recursive: bool = False,
        signal: Optional[AbortSignal] = None,
    ) -> None:
        options = {"recursive": recursive or None}
        self.call("rmdir", path, options=options, signal=signal)
