"""Module that exposes local file system calls as a relay service."""

import errno
import os
import os.path
import shutil
import tempfile
from typing import List, Optional, Union

from relayfs.filesystem.common import Attributes, DirEntry, encode_text

# Mirrors COPYFILE_EXCL: fail if the destination of a copy already exists.
COPYFILE_EXCL = 1

_OPEN_FLAGS = {
    "r": os.O_RDONLY,
    "rs": os.O_RDONLY | getattr(os, "O_SYNC", 0),
    "r+": os.O_RDWR,
    "rs+": os.O_RDWR | getattr(os, "O_SYNC", 0),
    "w": os.O_WRONLY | os.O_CREAT | os.O_TRUNC,
    "wx": os.O_WRONLY | os.O_CREAT | os.O_TRUNC | os.O_EXCL,
    "w+": os.O_RDWR | os.O_CREAT | os.O_TRUNC,
    "wx+": os.O_RDWR | os.O_CREAT | os.O_TRUNC | os.O_EXCL,
    "a": os.O_WRONLY | os.O_CREAT | os.O_APPEND,
    "ax": os.O_WRONLY | os.O_CREAT | os.O_APPEND | os.O_EXCL,
    "as": os.O_WRONLY | os.O_CREAT | os.O_APPEND | getattr(os, "O_SYNC", 0),
    "a+": os.O_RDWR | os.O_CREAT | os.O_APPEND,
    "ax+": os.O_RDWR | os.O_CREAT | os.O_APPEND | os.O_EXCL,
    "as+": os.O_RDWR | os.O_CREAT | os.O_APPEND | getattr(os, "O_SYNC", 0),
}

# Flags that open a file for writing or change it merely by opening it
_WRITE_FLAGS = os.O_WRONLY | os.O_RDWR | os.O_CREAT | os.O_TRUNC | os.O_APPEND


def open_flags(flag: Union[str, int, None], default: str = "r") -> int:
    """Translate a symbolic open flag like "w" or "ax+" into os.open flags."""
    if flag is None:
        flag = default

    if isinstance(flag, int):
        return flag

    try:
        return _OPEN_FLAGS[flag]
    except KeyError:
        raise ValueError(f"invalid open flag '{flag}'")


class LocalFileSystemService:
    """
    Service that performs file system operations on the relay's local disk.

    Paths are expected to be resolved by the caller already. Every method simply lets
    the underlying OS error propagate, it is up to the caller to report it.
    """

    #
    # Metadata access
    #

    @staticmethod
    def access(path: str, mode: Optional[int] = None) -> None:
        if mode is None:
            mode = os.F_OK

        if not os.path.lexists(path):
            raise FileNotFoundError(errno.ENOENT, os.strerror(errno.ENOENT), path)

        if not os.access(path, mode):
            raise PermissionError(errno.EACCES, os.strerror(errno.EACCES), path)

    @staticmethod
    def stat(path: str) -> Attributes:
        return Attributes.from_stat(os.stat(path))

    @staticmethod
    def lstat(path: str) -> Attributes:
        return Attributes.from_stat(os.lstat(path))

    @staticmethod
    def exists(path: str) -> bool:
        return os.path.exists(path)

    @staticmethod
    def readlink(path: str) -> str:
        return os.readlink(path)

    @staticmethod
    def realpath(path: str) -> str:
        resolved = os.path.realpath(path)

        # Fail for dangling paths rather than returning a path that doesn't exist
        os.stat(resolved)

        return resolved

    @staticmethod
    def watch(path: str) -> Attributes:
        """Return a snapshot of the path's attributes to poll for changes."""
        return Attributes.from_stat(os.stat(path))

    #
    # Directory listings
    #

    @staticmethod
    def readdir(
        path: str,
        encoding: Optional[str] = None,
        with_file_types: bool = False,
        recursive: bool = False,
    ) -> List[Union[str, bytes, DirEntry]]:
        entries = LocalFileSystemService._scan(path, recursive)

        if with_file_types:
            return entries
        elif encoding == "buffer":
            return [os.fsencode(entry.name) for entry in entries]
        else:
            return [entry.name for entry in entries]

    @staticmethod
    def opendir(path: str, recursive: bool = False) -> List[DirEntry]:
        return LocalFileSystemService._scan(path, recursive)

    @staticmethod
    def _scan(path: str, recursive: bool) -> List[DirEntry]:
        """List the entries of a directory, optionally including all subdirectories."""
        entries: List[DirEntry] = []
        pending = [""]

        while len(pending) > 0:
            prefix = pending.pop(0)

            with os.scandir(os.path.join(path, prefix)) as it:
                for entry in it:
                    name = os.path.join(prefix, entry.name) if prefix else entry.name
                    entries.append(DirEntry.from_scandir(entry, name))

                    if recursive and entry.is_dir(follow_symlinks=False):
                        pending.append(name)

        return entries

    #
    # File contents
    #

    @staticmethod
    def read_file(path: str, flag: Optional[str] = None) -> bytes:
        flags = open_flags(flag, "r")

        if flags & _WRITE_FLAGS:
            raise ValueError(f"readFile only accepts read-only flags, got '{flag}'")

        fd = os.open(path, flags)

        with os.fdopen(fd, "rb") as f:
            return f.read()

    @staticmethod
    def write_file(
        path: str,
        contents: Union[str, bytes],
        encoding: Optional[str] = None,
        mode: Optional[int] = None,
        flag: Optional[str] = None,
        flush: bool = False,
    ) -> None:
        if isinstance(contents, str):
            contents = encode_text(contents, encoding)

        fd = os.open(path, open_flags(flag, "w"), 0o666 if mode is None else mode)

        with os.fdopen(fd, "wb") as f:
            f.write(contents)

            if flush:
                f.flush()
                os.fsync(f.fileno())

    @staticmethod
    def append_file(
        path: str,
        contents: Union[str, bytes],
        encoding: Optional[str] = None,
        mode: Optional[int] = None,
        flag: Optional[str] = None,
        flush: bool = False,
    ) -> None:
        LocalFileSystemService.write_file(
            path, contents, encoding, mode, flag or "a", flush
        )

    @staticmethod
    def truncate(path: str, length: Optional[int] = None) -> None:
        os.truncate(path, length or 0)

    @staticmethod
    def open(
        path: str, flags: Union[str, int, None] = None, mode: Optional[int] = None
    ) -> None:
        """
        Open and immediately close a file.

        File handles can't be passed to clients, so this is only useful for its side
        effects like creating or truncating the file, or checking that it can be opened.
        """
        fd = os.open(path, open_flags(flags, "r"), 0o666 if mode is None else mode)
        os.close(fd)

    #
    # Metadata modification
    #

    @staticmethod
    def chmod(path: str, mode: int) -> None:
        os.chmod(path, mode)

    @staticmethod
    def chown(path: str, uid: int, gid: int) -> None:
        os.chown(path, uid, gid)

    @staticmethod
    def lchown(path: str, uid: int, gid: int) -> None:
        os.chown(path, uid, gid, follow_symlinks=False)

    @staticmethod
    def utimes(path: str, atime: float, mtime: float) -> None:
        os.utime(path, (atime, mtime))

    @staticmethod
    def lutimes(path: str, atime: float, mtime: float) -> None:
        if os.utime in os.supports_follow_symlinks:
            os.utime(path, (atime, mtime), follow_symlinks=False)
        else:
            os.utime(path, (atime, mtime))

    #
    # File system structure
    #

    @staticmethod
    def mkdir(
        path: str, recursive: bool = False, mode: Optional[int] = None
    ) -> Optional[str]:
        """
        Create a directory.

        With recursive set, missing parents are created too, an existing directory is
        not an error, and the first directory that had to be created is returned.
        """
        if mode is None:
            mode = 0o777

        if not recursive:
            os.mkdir(path, mode)
            return None

        first_created = None
        candidate = os.path.abspath(path)

        while not os.path.exists(candidate):
            first_created = candidate
            parent = os.path.dirname(candidate)

            if parent == candidate:
                break

            candidate = parent

        os.makedirs(path, mode, exist_ok=True)

        return first_created

    @staticmethod
    def mkdtemp(prefix: str) -> str:
        directory, base = os.path.split(prefix)
        return tempfile.mkdtemp(prefix=base, dir=directory or None)

    @staticmethod
    def symlink(target: str, path: str, type: Optional[str] = None) -> None:
        os.symlink(target, path, target_is_directory=(type in ("dir", "junction")))

    @staticmethod
    def link(existing_path: str, new_path: str) -> None:
        os.link(existing_path, new_path)

    @staticmethod
    def copy_file(src: str, dest: str, mode: Optional[int] = None) -> None:
        if mode and mode & COPYFILE_EXCL and os.path.lexists(dest):
            raise FileExistsError(errno.EEXIST, os.strerror(errno.EEXIST), dest)

        shutil.copyfile(src, dest)

    @staticmethod
    def cp(
        src: str,
        dest: str,
        recursive: bool = False,
        force: bool = True,
        error_on_exist: bool = False,
    ) -> None:
        def copy(s: str, d: str) -> None:
            if os.path.lexists(d) and not force:
                if error_on_exist:
                    raise FileExistsError(errno.EEXIST, os.strerror(errno.EEXIST), d)
                return

            shutil.copy2(s, d, follow_symlinks=False)

        if os.path.isdir(src):
            if not recursive:
                raise IsADirectoryError(errno.EISDIR, os.strerror(errno.EISDIR), src)

            shutil.copytree(
                src, dest, symlinks=True, copy_function=copy, dirs_exist_ok=True
            )
        else:
            copy(src, dest)

    @staticmethod
    def unlink(path: str) -> None:
        os.unlink(path)

    @staticmethod
    def rmdir(path: str, recursive: bool = False) -> None:
        if recursive:
            shutil.rmtree(path)
        else:
            os.rmdir(path)
