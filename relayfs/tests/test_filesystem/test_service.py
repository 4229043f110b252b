import os
import stat

import pytest

from relayfs.filesystem.common import DirEntry
from relayfs.filesystem.service import COPYFILE_EXCL, LocalFileSystemService, open_flags


@pytest.fixture
def fs():
    return LocalFileSystemService()


def test_open_flags():
    assert open_flags("r") == os.O_RDONLY
    assert open_flags("w") == os.O_WRONLY | os.O_CREAT | os.O_TRUNC
    assert open_flags(None, "a") == os.O_WRONLY | os.O_CREAT | os.O_APPEND
    assert open_flags(os.O_RDWR) == os.O_RDWR

    with pytest.raises(ValueError):
        open_flags("q")


def test_access(fs, tmp_path):
    (tmp_path / "file").write_text("abc")

    fs.access(str(tmp_path / "file"))
    fs.access(str(tmp_path / "file"), os.R_OK)

    with pytest.raises(FileNotFoundError):
        fs.access(str(tmp_path / "nonexistent"))


def test_stat_and_lstat(fs, tmp_path):
    (tmp_path / "file").write_text("abc")
    os.symlink("file", tmp_path / "link")

    assert fs.stat(str(tmp_path / "link")).st_size == 3
    assert fs.lstat(str(tmp_path / "link")).is_symlink()

    with pytest.raises(FileNotFoundError):
        fs.stat(str(tmp_path / "nonexistent"))


def test_exists(fs, tmp_path):
    (tmp_path / "file").write_text("abc")

    assert fs.exists(str(tmp_path / "file"))
    assert not fs.exists(str(tmp_path / "nonexistent"))


def test_readlink_and_realpath(fs, tmp_path):
    (tmp_path / "file").write_text("abc")
    os.symlink("file", tmp_path / "link")
    os.symlink("nonexistent", tmp_path / "dangling")

    assert fs.readlink(str(tmp_path / "link")) == "file"
    assert fs.realpath(str(tmp_path / "link")) == os.path.realpath(tmp_path / "file")

    with pytest.raises(FileNotFoundError):
        fs.realpath(str(tmp_path / "dangling"))


def test_watch_snapshot(fs, tmp_path):
    (tmp_path / "file").write_text("abc")

    before = fs.watch(str(tmp_path / "file"))
    (tmp_path / "file").write_text("abcdef")
    after = fs.watch(str(tmp_path / "file"))

    assert before.st_size == 3
    assert after.st_size == 6


def test_readdir(fs, tmp_path):
    (tmp_path / "a").write_text("")
    (tmp_path / "b").mkdir()
    (tmp_path / "b" / "c").write_text("")

    assert sorted(fs.readdir(str(tmp_path))) == ["a", "b"]
    assert sorted(fs.readdir(str(tmp_path), encoding="buffer")) == [b"a", b"b"]
    assert sorted(fs.readdir(str(tmp_path), recursive=True)) == ["a", "b", "b/c"]

    entries = fs.readdir(str(tmp_path), with_file_types=True)
    assert sorted(entries, key=lambda e: e.name) == [
        DirEntry("a", DirEntry.FILE),
        DirEntry("b", DirEntry.DIRECTORY),
    ]


def test_readdir_nonexistent(fs, tmp_path):
    with pytest.raises(FileNotFoundError):
        fs.readdir(str(tmp_path / "nonexistent"))


def test_opendir(fs, tmp_path):
    (tmp_path / "a").mkdir()
    (tmp_path / "a" / "b").write_text("")

    entries = fs.opendir(str(tmp_path), recursive=True)

    assert sorted(e.name for e in entries) == ["a", "a/b"]


def test_file_roundtrip(fs, tmp_path):
    path = str(tmp_path / "file")

    fs.write_file(path, b"\x00\x01\x02")
    assert fs.read_file(path) == b"\x00\x01\x02"

    fs.write_file(path, "héllo")
    assert fs.read_file(path) == "héllo".encode("utf-8")

    fs.write_file(path, "AP8=", encoding="base64")
    assert fs.read_file(path) == b"\x00\xff"


def test_write_file_exclusive(fs, tmp_path):
    path = str(tmp_path / "file")

    fs.write_file(path, "abc", flag="wx")

    with pytest.raises(FileExistsError):
        fs.write_file(path, "abc", flag="wx")


def test_write_file_mode(fs, tmp_path):
    path = str(tmp_path / "file")

    fs.write_file(path, "abc", mode=0o600, flush=True)

    assert stat.S_IMODE(os.lstat(path).st_mode) & 0o077 == 0


def test_append_file(fs, tmp_path):
    path = str(tmp_path / "file")

    fs.append_file(path, "abc")
    fs.append_file(path, b"def")

    assert fs.read_file(path) == b"abcdef"


def test_read_file_nonexistent(fs, tmp_path):
    with pytest.raises(FileNotFoundError):
        fs.read_file(str(tmp_path / "nonexistent"))


@pytest.mark.parametrize("flag", ["w", "a", "a+", "r+", "wx"])
def test_read_file_refuses_write_flags(fs, tmp_path, flag):
    (tmp_path / "file").write_text("abc")

    with pytest.raises(ValueError):
        fs.read_file(str(tmp_path / "file"), flag=flag)

    with pytest.raises(ValueError):
        fs.read_file(str(tmp_path / "new"), flag=flag)

    assert (tmp_path / "file").read_text() == "abc"
    assert not (tmp_path / "new").exists()


def test_read_file_read_flags(fs, tmp_path):
    (tmp_path / "file").write_text("abc")

    assert fs.read_file(str(tmp_path / "file"), flag="r") == b"abc"
    assert fs.read_file(str(tmp_path / "file"), flag="rs") == b"abc"


def test_truncate(fs, tmp_path):
    (tmp_path / "small").write_text("abcdef")
    (tmp_path / "large").write_text("")

    fs.truncate(str(tmp_path / "small"), 2)
    fs.truncate(str(tmp_path / "large"), 100)

    assert os.lstat(tmp_path / "small").st_size == 2
    assert os.lstat(tmp_path / "large").st_size == 100

    fs.truncate(str(tmp_path / "small"))
    assert os.lstat(tmp_path / "small").st_size == 0


def test_open_creates(fs, tmp_path):
    with pytest.raises(FileNotFoundError):
        fs.open(str(tmp_path / "file"))

    fs.open(str(tmp_path / "file"), "a")

    assert (tmp_path / "file").exists()


def test_chmod(fs, tmp_path):
    (tmp_path / "file").write_text("")

    fs.chmod(str(tmp_path / "file"), 0o640)

    assert stat.S_IMODE(os.lstat(tmp_path / "file").st_mode) == 0o640


def test_chown_to_self(fs, tmp_path):
    (tmp_path / "file").write_text("")
    os.symlink("file", tmp_path / "link")

    fs.chown(str(tmp_path / "file"), os.getuid(), os.getgid())
    fs.lchown(str(tmp_path / "link"), os.getuid(), os.getgid())


def test_utimes(fs, tmp_path):
    (tmp_path / "file").write_text("")
    os.symlink("file", tmp_path / "link")

    fs.utimes(str(tmp_path / "file"), 1000, 2000)
    fs.lutimes(str(tmp_path / "link"), 1000, 3000)

    assert os.stat(tmp_path / "file").st_mtime == 2000


def test_mkdir(fs, tmp_path):
    assert fs.mkdir(str(tmp_path / "a")) is None
    assert (tmp_path / "a").is_dir()

    with pytest.raises(FileExistsError):
        fs.mkdir(str(tmp_path / "a"))

    with pytest.raises(FileNotFoundError):
        fs.mkdir(str(tmp_path / "x" / "y"))


def test_mkdir_recursive(fs, tmp_path):
    created = fs.mkdir(str(tmp_path / "a" / "b" / "c"), recursive=True)

    assert created == str(tmp_path / "a")
    assert (tmp_path / "a" / "b" / "c").is_dir()

    assert fs.mkdir(str(tmp_path / "a" / "b" / "c"), recursive=True) is None


def test_mkdtemp(fs, tmp_path):
    first = fs.mkdtemp(str(tmp_path / "tmp-"))
    second = fs.mkdtemp(str(tmp_path / "tmp-"))

    assert first != second
    assert os.path.basename(first).startswith("tmp-")
    assert os.path.isdir(first)


def test_symlink_and_link(fs, tmp_path):
    (tmp_path / "file").write_text("abc")

    fs.symlink("file", str(tmp_path / "symlink"))
    fs.link(str(tmp_path / "file"), str(tmp_path / "hardlink"))

    assert os.readlink(tmp_path / "symlink") == "file"
    assert os.lstat(tmp_path / "file").st_nlink == 2


def test_copy_file(fs, tmp_path):
    (tmp_path / "src").write_text("abc")
    (tmp_path / "existing").write_text("")

    fs.copy_file(str(tmp_path / "src"), str(tmp_path / "dest"))
    assert (tmp_path / "dest").read_text() == "abc"

    with pytest.raises(FileExistsError):
        fs.copy_file(str(tmp_path / "src"), str(tmp_path / "existing"), COPYFILE_EXCL)


def test_cp_recursive(fs, tmp_path):
    (tmp_path / "src").mkdir()
    (tmp_path / "src" / "file").write_text("abc")

    with pytest.raises(IsADirectoryError):
        fs.cp(str(tmp_path / "src"), str(tmp_path / "dest"))

    fs.cp(str(tmp_path / "src"), str(tmp_path / "dest"), recursive=True)

    assert (tmp_path / "dest" / "file").read_text() == "abc"


def test_cp_no_force(fs, tmp_path):
    (tmp_path / "src").write_text("new")
    (tmp_path / "dest").write_text("old")

    fs.cp(str(tmp_path / "src"), str(tmp_path / "dest"), force=False)
    assert (tmp_path / "dest").read_text() == "old"

    with pytest.raises(FileExistsError):
        fs.cp(
            str(tmp_path / "src"),
            str(tmp_path / "dest"),
            force=False,
            error_on_exist=True,
        )

    fs.cp(str(tmp_path / "src"), str(tmp_path / "dest"))
    assert (tmp_path / "dest").read_text() == "new"


def test_unlink_and_rmdir(fs, tmp_path):
    (tmp_path / "file").write_text("")
    (tmp_path / "dir").mkdir()
    (tmp_path / "dir" / "file").write_text("")

    fs.unlink(str(tmp_path / "file"))
    assert not (tmp_path / "file").exists()

    with pytest.raises(OSError):
        fs.rmdir(str(tmp_path / "dir"))

    fs.rmdir(str(tmp_path / "dir"), recursive=True)
    assert not (tmp_path / "dir").exists()
