"""Small user tools working on a file system image: echo, cat and ls."""

from __future__ import annotations

import shutil
import sys
from pathlib import Path
from typing import BinaryIO, TextIO

from .disk import BufferCache, MemoryDisk
from .fs import FileSystem, Stat
from .layout import DIRENT_SIZE, DIRSIZ, DirEntry, InodeType
from .log import Log
from .printf import format_user

_BUFSIZE = 512


def echo(args) -> str:
    """The arguments joined by spaces and ended by a newline; empty for none."""
    return "".join(arg + (" " if i + 1 < len(args) else "\n") for i, arg in enumerate(args))


def _open(fs: FileSystem, path: str):
    with fs.log.transaction():
        return fs.namei(path)


def _put(fs: FileSystem, ip) -> None:
    with fs.log.transaction():
        fs.iput(ip)


def _stat(fs: FileSystem, path: str) -> Stat | None:
    ip = _open(fs, path)
    if ip is None:
        return None
    try:
        fs.ilock(ip)
        try:
            return fs.stati(ip)
        finally:
            fs.iunlock(ip)
    finally:
        _put(fs, ip)


def cat(fs: FileSystem, paths, out: BinaryIO) -> int:
    """Copy each file to out; stops at the first that cannot be opened or read."""
    for path in paths:
        ip = _open(fs, path)
        if ip is None:
            out.write(format_user("cat: cannot open %s\n", path).encode())
            return 1
        try:
            off = 0
            while True:
                fs.ilock(ip)
                try:
                    chunk = fs.readi(ip, off, _BUFSIZE)
                except (OSError, ValueError):
                    out.write(b"cat: read error\n")
                    return 1
                finally:
                    fs.iunlock(ip)
                if not chunk:
                    break
                off += len(chunk)
                out.write(chunk)
        finally:
            _put(fs, ip)
    return 0


def fmtname(path: str) -> str:
    """The last path element, blank-padded to DIRSIZ characters."""
    name = path[path.rfind("/") + 1:]
    return name if len(name) >= DIRSIZ else name.ljust(DIRSIZ)


def _line(name: str, st: Stat) -> str:
    return format_user("%s %d %d %d\n", fmtname(name), int(st.type), st.ino, st.size)


def ls(fs: FileSystem, path: str, out: TextIO) -> None:
    """List a file, or every entry of a directory, with type, inode number and size."""
    ip = _open(fs, path)
    if ip is None:
        sys.stderr.write(format_user("ls: cannot open %s\n", path))
        return
    try:
        fs.ilock(ip)
        try:
            st = fs.stati(ip)
        finally:
            fs.iunlock(ip)
        if st.type == InodeType.FILE:
            out.write(_line(path, st))
        elif st.type == InodeType.DIR:
            if len(path) + 1 + DIRSIZ + 1 > _BUFSIZE:
                out.write("ls: path too long\n")
                return
            off = 0
            while True:
                fs.ilock(ip)
                try:
                    raw = fs.readi(ip, off, DIRENT_SIZE)
                finally:
                    fs.iunlock(ip)
                if len(raw) != DIRENT_SIZE:
                    break
                off += DIRENT_SIZE
                de = DirEntry.from_bytes(raw)
                if de.inum == 0:
                    continue
                full = f"{path}/{de.name}"
                entry = _stat(fs, full)
                if entry is None:
                    out.write(format_user("ls: cannot stat %s\n", full))
                    continue
                out.write(_line(full, entry))
    finally:
        _put(fs, ip)


def _load(image: str) -> FileSystem:
    cache = BufferCache(MemoryDisk(Path(image).read_bytes()))
    return FileSystem(cache, Log(cache))


_USAGE = "usage: tools echo [word ...] | cat image [path ...] | ls image [path ...]\n"


def main(argv=None) -> int:
    args = sys.argv[1:] if argv is None else list(argv)
    if not args:
        sys.stderr.write(_USAGE)
        return 1
    command, rest = args[0], args[1:]
    if command == "echo":
        sys.stdout.write(echo(rest))
        return 0
    if command not in ("cat", "ls") or not rest:
        sys.stderr.write(_USAGE)
        return 1
    try:
        fs = _load(rest[0])
    except OSError as exc:
        sys.stderr.write(f"{rest[0]}: {exc.strerror}\n")
        return 1
    paths = rest[1:]
    if command == "cat":
        out = sys.stdout.buffer
        if paths:
            status = cat(fs, paths, out)
        else:
            shutil.copyfileobj(sys.stdin.buffer, out, _BUFSIZE)
            status = 0
        out.flush()
        return status
    for path in paths or ["."]:
        ls(fs, path, sys.stdout)
    return 0


if __name__ == "__main__":
    sys.exit(main())