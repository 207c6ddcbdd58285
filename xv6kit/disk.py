"""An in-memory disk and the buffer cache that sits in front of it."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field

from .layout import BSIZE, NBUF, ROOTDEV, KernelPanic


class _SleepLock:
    """A non-reentrant lock that knows which thread holds it."""

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._owner: int | None = None

    def acquire(self) -> None:
        with self._cond:
            while self._owner is not None:
                self._cond.wait()
            self._owner = threading.get_ident()

    def release(self) -> None:
        with self._cond:
            self._owner = None
            self._cond.notify_all()

    def held(self) -> bool:
        return self._owner == threading.get_ident()


@dataclass(eq=False)
class Buffer:
    """A cached copy of one disk block."""

    dev: int = 0
    blockno: int = 0
    data: bytearray = field(default_factory=lambda: bytearray(BSIZE))
    valid: bool = False
    dirty: bool = False
    refcnt: int = 0
    lock: _SleepLock = field(default_factory=_SleepLock, repr=False)


class MemoryDisk:
    """A disk whose blocks live in memory."""

    def __init__(self, image=None, nblocks: int = 0) -> None:
        self._data = bytearray(image) if image is not None else bytearray(nblocks * BSIZE)

    @property
    def nblocks(self) -> int:
        return len(self._data) // BSIZE

    @property
    def image(self) -> bytes:
        return bytes(self._data)

    def _check(self, blockno: int) -> slice:
        if not 0 <= blockno < self.nblocks:
            raise KernelPanic("iderw: block out of range")
        return slice(blockno * BSIZE, (blockno + 1) * BSIZE)

    def read_block(self, blockno: int) -> bytes:
        return bytes(self._data[self._check(blockno)])

    def write_block(self, blockno: int, data) -> None:
        if len(data) != BSIZE:
            raise ValueError(f"a block is {BSIZE} bytes, got {len(data)}")
        self._data[self._check(blockno)] = data

    def sync(self, buf: Buffer) -> None:
        """Write a dirty buffer out, or fill an invalid one from disk."""
        if not buf.lock.held():
            raise KernelPanic("iderw: buf not locked")
        if buf.valid and not buf.dirty:
            raise KernelPanic("iderw: nothing to do")
        if buf.dev != ROOTDEV:
            raise KernelPanic("iderw: request not for disk 1")
        where = self._check(buf.blockno)
        if buf.dirty:
            buf.dirty = False
            self._data[where] = buf.data
        else:
            buf.data[:] = self._data[where]
        buf.valid = True


class BufferCache:
    """A fixed pool of block buffers kept in most-recently-used order."""

    def __init__(self, disk: MemoryDisk, nbuf: int = NBUF) -> None:
        self.disk = disk
        self._lock = threading.Lock()
        self._mru = [Buffer() for _ in range(nbuf)]

    def _get(self, dev: int, blockno: int) -> Buffer:
        with self._lock:
            for b in self._mru:
                if b.dev == dev and b.blockno == blockno:
                    b.refcnt += 1
                    break
            else:
                # A dirty buffer with no references is still pinned by the log.
                for b in reversed(self._mru):
                    if b.refcnt == 0 and not b.dirty:
                        b.dev = dev
                        b.blockno = blockno
                        b.valid = False
                        b.dirty = False
                        b.refcnt = 1
                        break
                else:
                    raise KernelPanic("bget: no buffers")
        b.lock.acquire()
        return b

    def read(self, dev: int, blockno: int) -> Buffer:
        """Return a locked buffer holding the block's contents."""
        b = self._get(dev, blockno)
        if not b.valid:
            self.disk.sync(b)
        return b

    def write(self, buf: Buffer) -> None:
        """Write a locked buffer's contents to disk."""
        if not buf.lock.held():
            raise KernelPanic("bwrite")
        buf.dirty = True
        self.disk.sync(buf)

    def release(self, buf: Buffer) -> None:
        """Unlock a buffer; once unreferenced it becomes most recently used."""
        if not buf.lock.held():
            raise KernelPanic("brelse")
        buf.lock.release()
        with self._lock:
            buf.refcnt -= 1
            if buf.refcnt == 0:
                self._mru.remove(buf)
                self._mru.insert(0, buf)