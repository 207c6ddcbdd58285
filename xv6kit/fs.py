"""Inodes, directories and path names on top of the buffer cache and the log."""

from __future__ import annotations

import errno
import struct
import threading
from dataclasses import dataclass, field
from typing import Any, Mapping

from .disk import BufferCache, _SleepLock
from .layout import (
    BPB,
    BSIZE,
    DINODE_SIZE,
    DIRENT_SIZE,
    DIRSIZ,
    IPB,
    MAXFILE,
    NDEV,
    NDIRECT,
    NINDIRECT,
    NINODE,
    ROOTDEV,
    ROOTINO,
    DirEntry,
    DiskInode,
    InodeType,
    KernelPanic,
    SuperBlock,
    bitmap_block,
    inode_block,
)
from .log import Log

_U32 = struct.Struct("<I")
_UINT_MAX = 0xFFFFFFFF


@dataclass(frozen=True)
class Stat:
    """Metadata about an inode."""

    dev: int
    ino: int
    type: int
    nlink: int
    size: int


@dataclass(eq=False)
class Inode:
    """In-memory copy of an inode, plus cache bookkeeping."""

    dev: int = 0
    inum: int = 0
    ref: int = 0
    valid: bool = False
    type: int = 0
    major: int = 0
    minor: int = 0
    nlink: int = 0
    size: int = 0
    addrs: list[int] = field(default_factory=lambda: [0] * (NDIRECT + 1))
    lock: _SleepLock = field(default_factory=_SleepLock, repr=False)


def skipelem(path: str) -> tuple[str, str] | None:
    """Split off the first element of path.

    Returns (name, rest) where rest has no leading slashes, or None when
    path holds no element.  Names are cut to DIRSIZ characters.
    """
    stripped = path.lstrip("/")
    if not stripped:
        return None
    elem, _, rest = stripped.partition("/")
    return elem[:DIRSIZ], rest.lstrip("/")


class FileSystem:
    """Block allocation, the inode cache, file contents, directories and paths.

    devsw maps a major device number to an object with optional
    read(n) -> bytes and write(data) -> int methods.
    """

    def __init__(
        self,
        cache: BufferCache,
        log: Log,
        dev: int = ROOTDEV,
        *,
        ninode: int = NINODE,
        devsw: Mapping[int, Any] | None = None,
    ) -> None:
        self.cache = cache
        self.log = log
        self.dev = dev
        self.devsw: dict[int, Any] = dict(devsw or {})
        self._lock = threading.Lock()
        self._inodes = [Inode() for _ in range(ninode)]
        buf = cache.read(dev, 1)
        self.sb = SuperBlock.from_bytes(buf.data)
        cache.release(buf)

    # Blocks.

    def _bzero(self, dev: int, bno: int) -> None:
        bp = self.cache.read(dev, bno)
        bp.data[:] = bytes(BSIZE)
        self.log.write(bp)
        self.cache.release(bp)

    def _balloc(self, dev: int) -> int:
        sb = self.sb
        for b in range(0, sb.size, BPB):
            bp = self.cache.read(dev, bitmap_block(b, sb))
            for bi in range(min(BPB, sb.size - b)):
                m = 1 << (bi % 8)
                if not bp.data[bi // 8] & m:
                    bp.data[bi // 8] |= m
                    self.log.write(bp)
                    self.cache.release(bp)
                    self._bzero(dev, b + bi)
                    return b + bi
            self.cache.release(bp)
        raise KernelPanic("balloc: out of blocks")

    def _bfree(self, dev: int, b: int) -> None:
        bp = self.cache.read(dev, bitmap_block(b, self.sb))
        bi = b % BPB
        m = 1 << (bi % 8)
        if not bp.data[bi // 8] & m:
            self.cache.release(bp)
            raise KernelPanic("freeing free block")
        bp.data[bi // 8] &= ~m & 0xFF
        self.log.write(bp)
        self.cache.release(bp)

    # Inodes.

    @staticmethod
    def _slot(inum: int) -> slice:
        start = (inum % IPB) * DINODE_SIZE
        return slice(start, start + DINODE_SIZE)

    def ialloc(self, itype: int) -> Inode:
        """Allocate a free on-disk inode of the given type; returns it unlocked."""
        for inum in range(1, self.sb.ninodes):
            bp = self.cache.read(self.dev, inode_block(inum, self.sb))
            slot = self._slot(inum)
            if DiskInode.from_bytes(bp.data[slot]).type == 0:
                bp.data[slot] = DiskInode(type=int(itype)).to_bytes()
                self.log.write(bp)
                self.cache.release(bp)
                return self._iget(self.dev, inum)
            self.cache.release(bp)
        raise KernelPanic("ialloc: no inodes")

    def iupdate(self, ip: Inode) -> None:
        """Copy a modified in-memory inode to disk."""
        bp = self.cache.read(ip.dev, inode_block(ip.inum, self.sb))
        bp.data[self._slot(ip.inum)] = DiskInode(
            ip.type, ip.major, ip.minor, ip.nlink, ip.size, list(ip.addrs)
        ).to_bytes()
        self.log.write(bp)
        self.cache.release(bp)

    def _iget(self, dev: int, inum: int) -> Inode:
        with self._lock:
            empty = None
            for ip in self._inodes:
                if ip.ref > 0 and ip.dev == dev and ip.inum == inum:
                    ip.ref += 1
                    return ip
                if empty is None and ip.ref == 0:
                    empty = ip
            if empty is None:
                raise KernelPanic("iget: no inodes")
            empty.dev = dev
            empty.inum = inum
            empty.ref = 1
            empty.valid = False
            return empty

    def idup(self, ip: Inode) -> Inode:
        with self._lock:
            ip.ref += 1
        return ip

    def ilock(self, ip: Inode) -> None:
        """Lock the inode, reading it from disk if needed."""
        if ip is None or ip.ref < 1:
            raise KernelPanic("ilock")
        ip.lock.acquire()
        if not ip.valid:
            bp = self.cache.read(ip.dev, inode_block(ip.inum, self.sb))
            dip = DiskInode.from_bytes(bp.data[self._slot(ip.inum)])
            self.cache.release(bp)
            ip.type = dip.type
            ip.major = dip.major
            ip.minor = dip.minor
            ip.nlink = dip.nlink
            ip.size = dip.size
            ip.addrs = list(dip.addrs)
            ip.valid = True
            if ip.type == 0:
                raise KernelPanic("ilock: no type")

    def iunlock(self, ip: Inode) -> None:
        if ip is None or not ip.lock.held() or ip.ref < 1:
            raise KernelPanic("iunlock")
        ip.lock.release()

    def iput(self, ip: Inode) -> None:
        """Drop a reference; free the inode on disk if it was the last and unlinked."""
        ip.lock.acquire()
        try:
            if ip.valid and ip.nlink == 0:
                with self._lock:
                    r = ip.ref
                if r == 1:
                    self._itrunc(ip)
                    ip.type = 0
                    self.iupdate(ip)
                    ip.valid = False
        finally:
            ip.lock.release()
        with self._lock:
            ip.ref -= 1

    def iunlockput(self, ip: Inode) -> None:
        self.iunlock(ip)
        self.iput(ip)

    # Inode content.

    def _bmap(self, ip: Inode, bn: int) -> int:
        if bn < NDIRECT:
            if ip.addrs[bn] == 0:
                ip.addrs[bn] = self._balloc(ip.dev)
            return ip.addrs[bn]
        bn -= NDIRECT
        if bn < NINDIRECT:
            if ip.addrs[NDIRECT] == 0:
                ip.addrs[NDIRECT] = self._balloc(ip.dev)
            bp = self.cache.read(ip.dev, ip.addrs[NDIRECT])
            (addr,) = _U32.unpack_from(bp.data, bn * 4)
            if addr == 0:
                addr = self._balloc(ip.dev)
                _U32.pack_into(bp.data, bn * 4, addr)
                self.log.write(bp)
            self.cache.release(bp)
            return addr
        raise KernelPanic("bmap: out of range")

    def _itrunc(self, ip: Inode) -> None:
        for i in range(NDIRECT):
            if ip.addrs[i]:
                self._bfree(ip.dev, ip.addrs[i])
                ip.addrs[i] = 0
        if ip.addrs[NDIRECT]:
            bp = self.cache.read(ip.dev, ip.addrs[NDIRECT])
            entries = struct.unpack_from(f"<{NINDIRECT}I", bp.data)
            for addr in entries:
                if addr:
                    self._bfree(ip.dev, addr)
            self.cache.release(bp)
            self._bfree(ip.dev, ip.addrs[NDIRECT])
            ip.addrs[NDIRECT] = 0
        ip.size = 0
        self.iupdate(ip)

    def stati(self, ip: Inode) -> Stat:
        return Stat(ip.dev, ip.inum, ip.type, ip.nlink, ip.size)

    def _device(self, ip: Inode, op: str):
        device = self.devsw.get(ip.major) if 0 <= ip.major < NDEV else None
        handler = getattr(device, op, None)
        if handler is None:
            raise OSError(errno.ENODEV, f"no {op} routine for device {ip.major}")
        return handler

    def readi(self, ip: Inode, off: int, n: int) -> bytes:
        """Read up to n bytes at off; the read stops at the end of the file."""
        if ip.type == InodeType.DEVICE:
            return self._device(ip, "read")(n)
        if off < 0 or n < 0:
            raise ValueError("offset and count must not be negative")
        if off > ip.size or off + n > _UINT_MAX:
            raise ValueError(f"read at {off} outside file of size {ip.size}")
        n = min(n, ip.size - off)
        out = bytearray()
        while len(out) < n:
            bp = self.cache.read(ip.dev, self._bmap(ip, off // BSIZE))
            start = off % BSIZE
            m = min(n - len(out), BSIZE - start)
            out += bp.data[start:start + m]
            self.cache.release(bp)
            off += m
        return bytes(out)

    def writei(self, ip: Inode, data, off: int) -> int:
        """Write data at off, growing the file; returns the number of bytes written."""
        if ip.type == InodeType.DEVICE:
            return self._device(ip, "write")(bytes(data))
        n = len(data)
        if off < 0:
            raise ValueError("offset must not be negative")
        if off > ip.size or off + n > _UINT_MAX:
            raise ValueError(f"write at {off} outside file of size {ip.size}")
        if off + n > MAXFILE * BSIZE:
            raise ValueError("write beyond the maximum file size")
        tot = 0
        while tot < n:
            bp = self.cache.read(ip.dev, self._bmap(ip, off // BSIZE))
            start = off % BSIZE
            m = min(n - tot, BSIZE - start)
            bp.data[start:start + m] = data[tot:tot + m]
            self.log.write(bp)
            self.cache.release(bp)
            tot += m
            off += m
        if n > 0 and off > ip.size:
            ip.size = off
            self.iupdate(ip)
        return n

    # Directories.

    def dirlookup(self, dp: Inode, name: str) -> tuple[Inode, int] | None:
        """Find name in directory dp; returns the referenced inode and entry offset."""
        if dp.type != InodeType.DIR:
            raise KernelPanic("dirlookup not DIR")
        for off in range(0, dp.size, DIRENT_SIZE):
            raw = self.readi(dp, off, DIRENT_SIZE)
            if len(raw) != DIRENT_SIZE:
                raise KernelPanic("dirlookup read")
            de = DirEntry.from_bytes(raw)
            if de.inum and de.name[:DIRSIZ] == name[:DIRSIZ]:
                return self._iget(dp.dev, de.inum), off
        return None

    def dirlink(self, dp: Inode, name: str, inum: int) -> None:
        """Add the entry (name, inum) to directory dp."""
        found = self.dirlookup(dp, name)
        if found is not None:
            self.iput(found[0])
            raise FileExistsError(errno.EEXIST, "entry already exists", name)
        off = 0
        while off < dp.size:
            raw = self.readi(dp, off, DIRENT_SIZE)
            if len(raw) != DIRENT_SIZE:
                raise KernelPanic("dirlink read")
            if DirEntry.from_bytes(raw).inum == 0:
                break
            off += DIRENT_SIZE
        try:
            written = self.writei(dp, DirEntry(inum, name[:DIRSIZ]).to_bytes(), off)
        except ValueError as exc:
            raise KernelPanic("dirlink") from exc
        if written != DIRENT_SIZE:
            raise KernelPanic("dirlink")

    # Paths.

    def _namex(self, path: str, parent: bool, cwd: Inode | None):
        if path.startswith("/") or cwd is None:
            ip = self._iget(self.dev, ROOTINO)
        else:
            ip = self.idup(cwd)
        name = ""
        while (step := skipelem(path)) is not None:
            name, path = step
            self.ilock(ip)
            if ip.type != InodeType.DIR:
                self.iunlockput(ip)
                return None
            if parent and path == "":
                self.iunlock(ip)
                return ip, name
            found = self.dirlookup(ip, name)
            if found is None:
                self.iunlockput(ip)
                return None
            self.iunlockput(ip)
            ip = found[0]
        if parent:
            self.iput(ip)
            return None
        return ip, name

    def namei(self, path: str, cwd: Inode | None = None) -> Inode | None:
        """Look up path; relative paths start at cwd, or at the root without one."""
        result = self._namex(path, False, cwd)
        return None if result is None else result[0]

    def nameiparent(self, path: str, cwd: Inode | None = None) -> tuple[Inode, str] | None:
        """Return the parent directory of path and the final path element."""
        return self._namex(path, True, cwd)