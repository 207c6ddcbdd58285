"""Open files: a reference-counted table of inode files and pipes."""

from __future__ import annotations

import errno
import threading
from dataclasses import dataclass
from enum import IntEnum

from .fs import FileSystem, Inode, Stat
from .layout import BSIZE, MAXOPBLOCKS, KernelPanic

NFILE = 100
PIPESIZE = 512

# Blocks a single write may touch: inode, indirect block, allocation
# blocks and two blocks of slop for unaligned writes.
_MAX_WRITE = ((MAXOPBLOCKS - 1 - 1 - 2) // 2) * BSIZE


class FileType(IntEnum):
    NONE = 0
    PIPE = 1
    INODE = 2


class Pipe:
    """A bounded byte channel between one reading and one writing file."""

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._data = bytearray(PIPESIZE)
        self.nread = 0
        self.nwrite = 0
        self.readopen = True
        self.writeopen = True

    def write(self, data) -> int:
        """Write all of data, waiting while the pipe is full."""
        with self._cond:
            for byte in bytes(data):
                while self.nwrite == self.nread + PIPESIZE:
                    if not self.readopen:
                        raise BrokenPipeError(errno.EPIPE, "read end of pipe is closed")
                    self._cond.notify_all()
                    self._cond.wait()
                self._data[self.nwrite % PIPESIZE] = byte
                self.nwrite += 1
            self._cond.notify_all()
        return len(data)

    def read(self, n: int) -> bytes:
        """Read up to n bytes, waiting while the pipe is empty and still writable."""
        with self._cond:
            while self.nread == self.nwrite and self.writeopen:
                self._cond.wait()
            out = bytearray()
            while len(out) < n and self.nread != self.nwrite:
                out.append(self._data[self.nread % PIPESIZE])
                self.nread += 1
            self._cond.notify_all()
        return bytes(out)

    def close(self, writable: bool) -> None:
        """Close the writing end if writable, else the reading end."""
        with self._cond:
            if writable:
                self.writeopen = False
            else:
                self.readopen = False
            self._cond.notify_all()

    @property
    def closed(self) -> bool:
        return not self.readopen and not self.writeopen


@dataclass(eq=False)
class File:
    """An open file: either a pipe end or an inode with an offset."""

    type: FileType = FileType.NONE
    ref: int = 0
    readable: bool = False
    writable: bool = False
    pipe: Pipe | None = None
    ip: Inode | None = None
    off: int = 0


class FileTable:
    """A fixed pool of open-file structures."""

    def __init__(self, fs: FileSystem | None = None, nfile: int = NFILE) -> None:
        self.fs = fs
        self._lock = threading.Lock()
        self.files = [File() for _ in range(nfile)]

    def _require_fs(self) -> FileSystem:
        if self.fs is None:
            raise KernelPanic("file table has no file system")
        return self.fs

    def alloc(self) -> File:
        """Take a free file structure with one reference."""
        with self._lock:
            for f in self.files:
                if f.ref == 0:
                    f.ref = 1
                    f.type = FileType.NONE
                    f.readable = f.writable = False
                    f.pipe = None
                    f.ip = None
                    f.off = 0
                    return f
        raise OSError(errno.ENFILE, "file table overflow")

    def dup(self, f: File) -> File:
        with self._lock:
            if f.ref < 1:
                raise KernelPanic("filedup")
            f.ref += 1
        return f

    def close(self, f: File) -> None:
        """Drop a reference; the last one closes the pipe end or releases the inode."""
        with self._lock:
            if f.ref < 1:
                raise KernelPanic("fileclose")
            f.ref -= 1
            if f.ref > 0:
                return
            kind, pipe, writable, ip = f.type, f.pipe, f.writable, f.ip
            f.type = FileType.NONE
            f.pipe = None
            f.ip = None
        if kind == FileType.PIPE and pipe is not None:
            pipe.close(writable)
        elif kind == FileType.INODE and ip is not None:
            fs = self._require_fs()
            with fs.log.transaction():
                fs.iput(ip)

    def stat(self, f: File) -> Stat:
        if f.type != FileType.INODE or f.ip is None:
            raise OSError(errno.EBADF, "not an inode file")
        fs = self._require_fs()
        fs.ilock(f.ip)
        try:
            return fs.stati(f.ip)
        finally:
            fs.iunlock(f.ip)

    def read(self, f: File, n: int) -> bytes:
        if not f.readable:
            raise OSError(errno.EBADF, "file not open for reading")
        if f.type == FileType.PIPE and f.pipe is not None:
            return f.pipe.read(n)
        if f.type == FileType.INODE and f.ip is not None:
            fs = self._require_fs()
            fs.ilock(f.ip)
            try:
                data = fs.readi(f.ip, f.off, n)
                f.off += len(data)
            finally:
                fs.iunlock(f.ip)
            return data
        raise KernelPanic("fileread")

    def write(self, f: File, data) -> int:
        """Write data, splitting inode writes so each fits in one log transaction."""
        if not f.writable:
            raise OSError(errno.EBADF, "file not open for writing")
        if f.type == FileType.PIPE and f.pipe is not None:
            return f.pipe.write(data)
        if f.type == FileType.INODE and f.ip is not None:
            fs = self._require_fs()
            data = bytes(data)
            i = 0
            while i < len(data):
                n1 = min(len(data) - i, _MAX_WRITE)
                with fs.log.transaction():
                    fs.ilock(f.ip)
                    try:
                        r = fs.writei(f.ip, data[i:i + n1], f.off)
                        if r > 0:
                            f.off += r
                    finally:
                        fs.iunlock(f.ip)
                if r != n1:
                    raise KernelPanic("short filewrite")
                i += r
            return len(data)
        raise KernelPanic("filewrite")

    def open_pipe(self) -> tuple[File, File]:
        """Create a pipe; returns its reading and writing files."""
        reader = writer = None
        try:
            reader = self.alloc()
            writer = self.alloc()
        except OSError:
            for f in (reader, writer):
                if f is not None:
                    self.close(f)
            raise
        pipe = Pipe()
        reader.type = FileType.PIPE
        reader.readable, reader.writable = True, False
        reader.pipe = pipe
        writer.type = FileType.PIPE
        writer.readable, writer.writable = False, True
        writer.pipe = pipe
        return reader, writer