"""Data structures returned by the relay's file system operations."""

from __future__ import annotations

import base64
from dataclasses import dataclass
import os
import stat
from typing import Optional, Union


@dataclass
class Attributes:
    """Container of file system attributes (basically os.stat_result as a dataclass)."""

    st_mode: int
    st_ino: int
    st_dev: int
    st_nlink: int
    st_uid: int
    st_gid: int
    st_size: int
    st_atime_ns: int
    st_mtime_ns: int
    st_ctime_ns: int

    def __init__(self, **attribs: Union[int, float]) -> None:
        """
        Instantiate with the specified file system attributes.

        You must specify the attributes declared in this class, but you may include any
        number of extra attributes, like st_blksize.
        """
        for name, value in attribs.items():
            setattr(self, name, value)

    @staticmethod
    def from_stat(st: os.stat_result) -> Attributes:
        """Instantiate from the attributes contained within an os.stat_result object."""
        st_dict = {k: getattr(st, k) for k in dir(st) if k.startswith("st_")}
        return Attributes(**st_dict)

    def is_dir(self) -> bool:
        """Check if the attributes describe a directory."""
        return stat.S_ISDIR(self.st_mode)

    def is_file(self) -> bool:
        """Check if the attributes describe a regular file."""
        return stat.S_ISREG(self.st_mode)

    def is_symlink(self) -> bool:
        """Check if the attributes describe a symbolic link."""
        return stat.S_ISLNK(self.st_mode)


@dataclass
class DirEntry:
    """Name and type of an entry within a directory."""

    name: str
    type: str

    FILE = "file"
    DIRECTORY = "directory"
    SYMLINK = "symlink"
    OTHER = "other"

    @staticmethod
    def from_scandir(entry: os.DirEntry, name: str) -> DirEntry:
        """Instantiate from an os.DirEntry, listed under the given (relative) name."""
        if entry.is_symlink():
            typ = DirEntry.SYMLINK
        elif entry.is_dir(follow_symlinks=False):
            typ = DirEntry.DIRECTORY
        elif entry.is_file(follow_symlinks=False):
            typ = DirEntry.FILE
        else:
            typ = DirEntry.OTHER

        return DirEntry(name, typ)


# Node style encoding names and the Python codecs they correspond to
_CODECS = {
    "utf8": "utf-8",
    "utf-8": "utf-8",
    "ascii": "ascii",
    "latin1": "latin-1",
    "binary": "latin-1",
    "ucs2": "utf-16-le",
    "ucs-2": "utf-16-le",
    "utf16le": "utf-16-le",
    "utf-16le": "utf-16-le",
}


def decode_text(data: bytes, encoding: Optional[str]) -> str:
    """Decode file contents into text with a Node style encoding name like "utf8"."""
    name = (encoding or "utf8").lower()

    if name == "base64":
        return base64.b64encode(data).decode("ascii")
    elif name == "hex":
        return data.hex()
    else:
        return data.decode(_CODECS.get(name, name))


def encode_text(text: str, encoding: Optional[str]) -> bytes:
    """Encode text into file contents with a Node style encoding name like "utf8"."""
    name = (encoding or "utf8").lower()

    if name == "base64":
        return base64.b64decode(text)
    elif name == "hex":
        return bytes.fromhex(text)
    else:
        return text.encode(_CODECS.get(name, name))
