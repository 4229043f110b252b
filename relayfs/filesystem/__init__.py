"""
Modules that perform the actual file system work on the relay's local disk.

The relay exposes a fixed set of calls like readFile(), readdir(), mkdir() and unlink()
over HTTP. This package holds the local side of those calls: the service that invokes
the OS primitives, and the data structures (file attributes and directory entries) that
are sent back to clients.

Nothing in here knows about HTTP, authentication or the allow-list. The dispatcher
resolves paths and validates requests before any of these methods are invoked, and it
reports whatever OS error they raise back to the client unmodified.
"""

from .common import Attributes, decode_text, DirEntry, encode_text
from .service import LocalFileSystemService

__all__ = [
    "Attributes",
    "DirEntry",
    "LocalFileSystemService",
    "decode_text",
    "encode_text",
]
