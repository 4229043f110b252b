"""
WSGI application that validates relay requests and executes them on the local disk.

Every request passes through a fixed pipeline of stages before any disk primitive is
touched. Each stage either lets the request continue or raises a RelayError that is
turned into a JSON error response with the matching HTTP status:

1. Protection gate: verify the bearer token when the relay is password protected (401).
2. Write guard: writes, creations and removals require an authenticated request (403).
3. Ignore list: paths matching the ignore file are refused for any operation (403).
4. Required fields: the operation name, and a body for POST/PUT (422).
5. Allow-list: the operation must be registered for the HTTP verb that was used (405).
6. Argument decoding: positional arguments and options from the request headers (422).
7. Invocation: the disk primitive, with anything it raises reported verbatim (500).

A health check (`GET /_health` without a method) is answered right after the protection
gate.

The outcome of each stage is recorded in a RequestContext that only lives as long as
the request itself, so no request can influence how another one is handled.
"""

from dataclasses import dataclass, field
import logging
import os
import re
from typing import Any, Callable, Dict, List, Optional

from semver import VersionInfo
from webob import Request, Response

import relayfs.constants as constants
from relayfs.auth import parse_bearer, verify_token
from relayfs.encoding import Encoding
from relayfs.errors import (
    AuthenticationError,
    AuthorizationError,
    ConfigurationError,
    MethodNotAllowedError,
    RelayError,
    UnderlyingIOError,
    ValidationError,
)
from relayfs.filesystem import Attributes, DirEntry, LocalFileSystemService
from relayfs.logger import log, redact, summarize
import relayfs.registry as registry
from relayfs.registry import Operation, Verb
from .ignore import IgnoreList

# Disk primitive behind each registered operation
PRIMITIVES: Dict[str, str] = {
    "access": "access",
    "lstat": "lstat",
    "stat": "stat",
    "readFile": "read_file",
    "readdir": "readdir",
    "readlink": "readlink",
    "realpath": "realpath",
    "watch": "watch",
    "opendir": "opendir",
    "exists": "exists",
    "existsSync": "exists",
    "chmod": "chmod",
    "chown": "chown",
    "lchown": "lchown",
    "utimes": "utimes",
    "lutimes": "lutimes",
    "truncate": "truncate",
    "writeFile": "write_file",
    "appendFile": "append_file",
    "mkdir": "mkdir",
    "mkdtemp": "mkdtemp",
    "open": "open",
    "symlink": "symlink",
    "link": "link",
    "copyFile": "copy_file",
    "cp": "cp",
    "unlink": "unlink",
    "rmdir": "rmdir",
}

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


def snake_case(name: str) -> str:
    """Turn an option name like "withFileTypes" into "with_file_types"."""
    return _CAMEL_BOUNDARY.sub("_", name).lower()


@dataclass
class RequestContext:
    """State of a single request as it passes through the dispatch pipeline."""

    method: str
    path: str
    operation_name: Optional[str]
    authorization: Optional[str]
    body: Optional[bytes]
    args_header: Optional[str] = None
    options_header: Optional[str] = None
    protocol_header: Optional[str] = None

    authed: bool = False
    operation: Optional[Operation] = None
    args: List[Any] = field(default_factory=list)
    options: Dict[str, Any] = field(default_factory=dict)
    contents: Any = None

    @property
    def verb(self) -> Optional[Verb]:
        """Return the verb class of the request, or None for unsupported verbs."""
        try:
            return Verb(self.method)
        except ValueError:
            return None

    @staticmethod
    def from_request(request: Request) -> "RequestContext":
        """Capture everything the pipeline needs from a WebOb request."""
        # PATH_INFO is already URL decoded, and the path is a single URL segment
        path = request.path_info or "/"

        if path.startswith("/"):
            path = path[1:]

        body = request.body or None

        return RequestContext(
            method=request.method.upper(),
            path=path,
            operation_name=request.GET.get(constants.METHOD_PARAM) or None,
            authorization=request.headers.get("Authorization"),
            body=body,
            args_header=request.headers.get(constants.ARGS_HEADER),
            options_header=request.headers.get(constants.OPTIONS_HEADER),
            protocol_header=request.headers.get(constants.PROTOCOL_HEADER),
        )


class Dispatcher:
    """
    WSGI application exposing a file system service through the relay protocol.

    Example:
    ```
    app = Dispatcher(LocalFileSystemService(), root="/srv/files", secret="hunter2")
    wsgiref.simple_server.make_server("127.0.0.1", 3000, app).serve_forever()
    ```
    """

    def __init__(
        self,
        service: Any = None,
        root: str = os.curdir,
        secret: Optional[str] = None,
        protected: bool = False,
        ignore_list: Optional[IgnoreList] = None,
    ):
        """
        Instantiate a dispatcher for the given service.

        Relative paths are resolved against the root directory. The secret is what
        bearer tokens are verified against. If the relay is protected then every request
        needs a valid token, otherwise only requests that change something do.
        """
        if service is None:
            service = LocalFileSystemService()

        self.root = os.path.abspath(root)
        self.secret = secret
        self.protected = protected
        self.ignore_list = ignore_list or IgnoreList(self.root, [])

        # Static dispatch table, fixed for the lifetime of the dispatcher
        self._table: Dict[str, Callable[..., Any]] = {
            name: getattr(service, PRIMITIVES[name]) for name in registry.OPERATIONS
        }

        self._encoding = Encoding(Attributes, DirEntry)

    def __call__(self, environ: dict, start_response: Callable) -> Any:
        """WSGI application callable."""
        request = Request(environ)
        response = self.handle(request)
        return response(environ, start_response)

    def handle(self, request: Request) -> Response:
        """Run a request through the dispatch pipeline and return the response."""
        ctx = RequestContext.from_request(request)

        try:
            self._authenticate(ctx)

            if self._is_health_check(ctx):
                return self._health()

            self._guard_writes(ctx)
            self._filter_ignored(ctx)
            self._require_fields(ctx)
            self._check_allowed(ctx)
            self._decode_arguments(ctx)

            data = self._invoke(ctx)
        except RelayError as e:
            log.debug(
                f"{ctx.method} /{ctx.path}?method={ctx.operation_name}"
                f" - {e.status} {e.message}"
            )
            return self._error(e)
        except Exception as e:
            log.error(f"failed to handle {ctx.method} /{ctx.path}: {e}")
            return self._error(RelayError(f"internal relay error: {e}"))

        assert ctx.operation is not None

        log.debug(f"{ctx.method} /{ctx.path}?method={ctx.operation.name} - 200")

        return self._respond(200, {"success": True, ctx.operation.result_field: data})

    #
    # Pipeline stages
    #

    def _authenticate(self, ctx: RequestContext) -> None:
        """Verify the bearer token, which is mandatory if the relay is protected."""
        token = parse_bearer(ctx.authorization)

        if not self.protected:
            # Writes may still be authorized with a valid token
            if self.secret and token is not None:
                ctx.authed = verify_token(self.secret, token)
            return

        if not self.secret:
            raise ConfigurationError(
                f"the {constants.PASSWORD_ENV} environment variable is required to"
                " protect the relay"
            )

        if ctx.authorization is None:
            raise AuthenticationError("an Authorization header is required")

        if token is None or not verify_token(self.secret, token):
            log.debug(f"rejected token {redact(token)}")
            raise AuthenticationError("unauthorized request")

        ctx.authed = True

    def _guard_writes(self, ctx: RequestContext) -> None:
        """Refuse anything that may change the disk unless the request is authed."""
        if ctx.authed:
            return

        if ctx.verb != Verb.GET or registry.is_mutating(ctx.operation_name):
            raise AuthorizationError(
                "writes, creations and removals require an authenticated request"
            )

    def _filter_ignored(self, ctx: RequestContext) -> None:
        """Refuse paths that match the ignore list, whatever the operation."""
        paths = [self._resolve(ctx.path)]

        op = registry.lookup(ctx.operation_name)

        if op is not None and op.path_params:
            args = self._parse_header(ctx.args_header, list) or []

            for i, param in enumerate(op.params):
                if param in op.path_params and i < len(args):
                    if isinstance(args[i], str):
                        paths.append(self._resolve(args[i]))

        for path in paths:
            if self.ignore_list.matches(path):
                raise AuthorizationError(f"access to '{ctx.path}' is forbidden")

    def _require_fields(self, ctx: RequestContext) -> None:
        """Check that the operation name, and for POST/PUT a body, are present."""
        if ctx.operation_name is None:
            raise ValidationError("a method is required")

        if ctx.verb is not None and ctx.verb.has_body:
            if not ctx.body:
                raise ValidationError(f"a body is required on {ctx.method} requests")

            try:
                body = self._encoding.loads(ctx.body)
            except (ValueError, TypeError) as e:
                raise ValidationError(f"invalid JSON body: {e}")

            if not isinstance(body, dict):
                raise ValidationError("the body must be a JSON object")

            ctx.contents = body.get("contents")

        if ctx.protocol_header is not None:
            self._check_protocol(ctx.protocol_header)

    def _check_allowed(self, ctx: RequestContext) -> None:
        """Check the operation against the allow-list of the verb that was used."""
        assert ctx.operation_name is not None

        if ctx.verb is None or not registry.is_allowed(ctx.verb, ctx.operation_name):
            raise MethodNotAllowedError(
                f"method '{ctx.operation_name}' is not allowed for {ctx.method}"
            )

        ctx.operation = registry.lookup(ctx.operation_name)

    def _decode_arguments(self, ctx: RequestContext) -> None:
        """Decode positional arguments and options from the request headers."""
        op = ctx.operation
        assert op is not None

        args = self._parse_header(ctx.args_header, list) or []

        if len(args) > len(op.params):
            raise ValidationError(
                f"{op.name} takes at most {len(op.params)} arguments, got {len(args)}"
            )

        for i, param in enumerate(op.params):
            if param in op.path_params and i < len(args):
                if not isinstance(args[i], str):
                    raise ValidationError(f"argument '{param}' must be a path")

                args[i] = self._resolve(args[i])

        options = self._parse_header(ctx.options_header, dict) or {}

        ctx.args = args
        ctx.options = {
            snake_case(name): value
            for name, value in options.items()
            if name in op.options and value is not None
        }

        if op.takes_contents:
            ctx.contents = self._decode_contents(ctx.contents)

    def _invoke(self, ctx: RequestContext) -> Any:
        """Call the disk primitive, reporting any exception it raises."""
        op = ctx.operation
        assert op is not None

        path = ctx.path if op.raw_target else self._resolve(ctx.path)
        args = [path, *ctx.args]

        if op.takes_contents:
            args.insert(1, ctx.contents)

        if log.isEnabledFor(logging.DEBUG):
            log.debug(f"fs::{op.name}{summarize(tuple(args))} {ctx.options}")

        try:
            return self._table[op.name](*args, **ctx.options)
        except Exception as e:
            log.error(f"{op.name} on '{path}' failed: {e}")
            raise UnderlyingIOError(str(e), cause=e)

    #
    # Helpers
    #

    def _resolve(self, path: str) -> str:
        """Resolve a client supplied path against the relay root."""
        return os.path.normpath(os.path.join(self.root, path))

    def _parse_header(self, value: Optional[str], expected_type: type) -> Any:
        """
        Parse a JSON encoded header.

        Malformed JSON or an unexpected type is treated as if the header was absent, so
        that clients can always send their (possibly empty) options.
        """
        if value is None:
            return None

        try:
            parsed = self._encoding.loads(value)
        except (ValueError, TypeError):
            log.debug(f"ignoring malformed header value {summarize(value)}")
            return None

        if not isinstance(parsed, expected_type):
            return None

        return parsed

    @staticmethod
    def _decode_contents(contents: Any) -> Any:
        """Accept text, bytes, or a Buffer-like JSON representation of bytes."""
        if isinstance(contents, (str, bytes)):
            return contents

        if isinstance(contents, dict) and contents.get("type") == "Buffer":
            contents = contents.get("data")

        if isinstance(contents, list) and all(
            isinstance(b, int) and 0 <= b < 256 for b in contents
        ):
            return bytes(contents)

        raise ValidationError("contents must be a string or bytes")

    @staticmethod
    def _check_protocol(version: str) -> None:
        """Check if the client speaks a compatible protocol version."""
        try:
            client_version = VersionInfo.parse(version)
        except (ValueError, TypeError):
            raise ValidationError(f"invalid protocol version '{version}'")

        if client_version.major != VersionInfo.parse(constants.PROTOCOL_VERSION).major:
            raise ValidationError(
                f"incompatible protocol ({version} != {constants.PROTOCOL_VERSION})"
            )

    #
    # Responses
    #

    @staticmethod
    def _is_health_check(ctx: RequestContext) -> bool:
        """Check for the health route, which is only shadowed by explicit operations."""
        return (
            ctx.method == "GET"
            and "/" + ctx.path == constants.HEALTH_PATH
            and ctx.operation_name is None
        )

    def _health(self) -> Response:
        return self._respond(
            200,
            {
                "success": True,
                "data": {
                    "status": "ok",
                    "version": constants.VERSION,
                    "protocol": constants.PROTOCOL_VERSION,
                },
            },
        )

    def _error(self, error: RelayError) -> Response:
        payload = error.to_payload()

        if isinstance(error, UnderlyingIOError) and error.cause is not None:
            payload["cause"] = error.cause

        return self._respond(error.status, {"success": False, "error": payload})

    def _respond(self, status: int, payload: Dict[str, Any]) -> Response:
        response = Response(
            body=self._encoding.dumps(payload).encode("utf-8"),
            status=status,
            content_type="application/json",
            charset="utf-8",
        )
        response.headers[constants.PROTOCOL_HEADER] = constants.PROTOCOL_VERSION

        return response
