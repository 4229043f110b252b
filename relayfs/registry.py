"""
Closed registry of the file system operations that can be called through a relay.

Each HTTP verb carries its own class of operations:

* GET carries read-only operations
* PUT carries operations that mutate the contents or metadata of an existing path
* POST carries operations that create something
* DELETE carries removal operations

An operation name that is not registered under any verb can never be reached, even if
a disk primitive of that name exists. The registry is not configurable at runtime.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, Optional, Tuple


class Verb(Enum):
    """HTTP verb classes used by the wire protocol."""

    GET = "GET"
    PUT = "PUT"
    POST = "POST"
    DELETE = "DELETE"

    @property
    def has_body(self) -> bool:
        """Whether requests with this verb must carry a body."""
        return self in (Verb.PUT, Verb.POST)


@dataclass(frozen=True)
class Operation:
    """
    Description of a remotely callable operation.

    The target path travels in the URL and is not part of params. Params names the
    additional positional arguments, of which those listed in path_params are paths
    themselves. The target path is resolved against the relay root unless raw_target is
    set, because symbolic link targets are stored verbatim.

    Options names the keys accepted in the options header, others are dropped. The
    result is returned in the result_field member of the response envelope.
    """

    name: str
    verbs: Tuple[Verb, ...]
    params: Tuple[str, ...] = ()
    path_params: Tuple[str, ...] = ()
    options: Tuple[str, ...] = ()
    result_field: str = "data"
    takes_contents: bool = False
    raw_target: bool = False

    @property
    def verb(self) -> Verb:
        """Return the verb that clients use for this operation."""
        return self.verbs[0]

    @property
    def mutating(self) -> bool:
        """Whether the operation can change anything on the relay's disk."""
        return any(verb != Verb.GET for verb in self.verbs)


def _op(name: str, *verbs: Verb, **kwargs) -> Operation:
    return Operation(name, verbs, **kwargs)


_WRITE_OPTIONS = ("encoding", "mode", "flag", "flush")

OPERATIONS: Dict[str, Operation] = {
    op.name: op
    for op in [
        # Read-only
        _op("access", Verb.GET, params=("mode",)),
        _op("lstat", Verb.GET),
        _op("stat", Verb.GET),
        _op("readFile", Verb.GET, options=("flag",), result_field="buffer"),
        _op(
            "readdir",
            Verb.GET,
            options=("encoding", "withFileTypes", "recursive"),
            result_field="dirs",
        ),
        _op("readlink", Verb.GET),
        _op("realpath", Verb.GET),
        _op("watch", Verb.GET),
        _op("opendir", Verb.GET, options=("recursive",)),
        _op("exists", Verb.GET, result_field="exists"),
        _op("existsSync", Verb.GET, result_field="exists"),
        # Content and metadata mutation
        _op("chmod", Verb.PUT, params=("mode",)),
        _op("chown", Verb.PUT, params=("uid", "gid")),
        _op("lchown", Verb.PUT, params=("uid", "gid")),
        _op("utimes", Verb.PUT, params=("atime", "mtime")),
        _op("lutimes", Verb.PUT, params=("atime", "mtime")),
        _op("truncate", Verb.PUT, params=("len",)),
        _op(
            "writeFile",
            Verb.POST,
            Verb.PUT,
            options=_WRITE_OPTIONS,
            takes_contents=True,
        ),
        _op("appendFile", Verb.PUT, options=_WRITE_OPTIONS, takes_contents=True),
        # Creation
        _op("mkdir", Verb.POST, options=("recursive", "mode")),
        _op("mkdtemp", Verb.POST),
        _op("open", Verb.POST, params=("flags", "mode")),
        _op(
            "symlink",
            Verb.POST,
            params=("path", "type"),
            path_params=("path",),
            raw_target=True,
        ),
        _op("link", Verb.POST, params=("newPath",), path_params=("newPath",)),
        _op("copyFile", Verb.POST, params=("dest", "mode"), path_params=("dest",)),
        _op(
            "cp",
            Verb.POST,
            params=("dest",),
            path_params=("dest",),
            options=("recursive", "force", "errorOnExist"),
        ),
        # Removal
        _op("unlink", Verb.DELETE),
        _op("rmdir", Verb.DELETE, options=("recursive",)),
    ]
}

ALLOW_LIST: Dict[Verb, FrozenSet[str]] = {
    verb: frozenset(name for name, op in OPERATIONS.items() if verb in op.verbs)
    for verb in Verb
}


def lookup(name: Optional[str]) -> Optional[Operation]:
    """Return the registered operation with this name, if any."""
    if name is None:
        return None

    return OPERATIONS.get(name)


def is_allowed(verb: Verb, name: str) -> bool:
    """Check if the operation may be called with the given verb."""
    return name in ALLOW_LIST[verb]


def is_mutating(name: Optional[str]) -> bool:
    """Check if the operation with this name can change the relay's disk."""
    op = lookup(name)
    return op is not None and op.mutating
