"""A redo log that makes multi-block file system updates atomic."""

from __future__ import annotations

import struct
import threading
from contextlib import contextmanager
from typing import Iterator

from .disk import Buffer, BufferCache
from .layout import BSIZE, LOGSIZE, MAXOPBLOCKS, ROOTDEV, KernelPanic, SuperBlock


class Log:
    """Groups block writes of concurrent operations into one committed transaction.

    On disk the log is a header block holding the count and the home block
    numbers, followed by copies of those blocks.
    """

    def __init__(
        self,
        cache: BufferCache,
        dev: int = ROOTDEV,
        *,
        logsize: int = LOGSIZE,
        maxopblocks: int = MAXOPBLOCKS,
    ) -> None:
        if 4 * (1 + logsize) >= BSIZE:
            raise KernelPanic("initlog: too big logheader")
        self.cache = cache
        self.dev = dev
        self.logsize = logsize
        self.maxopblocks = maxopblocks
        self._cond = threading.Condition()
        self.outstanding = 0
        self.committing = False
        self.blocks: list[int] = []

        buf = cache.read(dev, 1)
        sb = SuperBlock.from_bytes(buf.data)
        cache.release(buf)
        self.start = sb.logstart
        self.size = sb.nlog
        self._recover()

    def _read_head(self) -> None:
        buf = self.cache.read(self.dev, self.start)
        (n,) = struct.unpack_from("<i", buf.data, 0)
        if not 0 <= n <= self.logsize:
            self.cache.release(buf)
            raise KernelPanic("log header corrupt")
        self.blocks = list(struct.unpack_from(f"<{n}i", buf.data, 4))
        self.cache.release(buf)

    def _write_head(self) -> None:
        buf = self.cache.read(self.dev, self.start)
        n = len(self.blocks)
        struct.pack_into(f"<i{n}i", buf.data, 0, n, *self.blocks)
        self.cache.write(buf)
        self.cache.release(buf)

    def _copy_blocks(self, to_log: bool) -> None:
        for tail, home in enumerate(self.blocks):
            log_buf = self.cache.read(self.dev, self.start + tail + 1)
            home_buf = self.cache.read(self.dev, home)
            src, dst = (home_buf, log_buf) if to_log else (log_buf, home_buf)
            dst.data[:] = src.data
            self.cache.write(dst)
            self.cache.release(src)
            self.cache.release(dst)

    def _recover(self) -> None:
        self._read_head()
        self._copy_blocks(to_log=False)
        self.blocks = []
        self._write_head()

    def _commit(self) -> None:
        if self.blocks:
            self._copy_blocks(to_log=True)
            self._write_head()
            self._copy_blocks(to_log=False)
            self.blocks = []
            self._write_head()

    def begin_op(self) -> None:
        """Start an operation, waiting while a commit runs or the log could overflow."""
        with self._cond:
            while (
                self.committing
                or len(self.blocks) + (self.outstanding + 1) * self.maxopblocks
                > self.logsize
            ):
                self._cond.wait()
            self.outstanding += 1

    def end_op(self) -> None:
        """Finish an operation; the last one out commits the transaction."""
        with self._cond:
            self.outstanding -= 1
            if self.committing:
                raise KernelPanic("log.committing")
            do_commit = self.outstanding == 0
            if do_commit:
                self.committing = True
            else:
                self._cond.notify_all()
        if do_commit:
            try:
                self._commit()
            finally:
                with self._cond:
                    self.committing = False
                    self._cond.notify_all()

    def write(self, buf: Buffer) -> None:
        """Record a modified buffer in the transaction and pin it in the cache."""
        if len(self.blocks) >= self.logsize or len(self.blocks) >= self.size - 1:
            raise KernelPanic("too big a transaction")
        if self.outstanding < 1:
            raise KernelPanic("log_write outside of trans")
        with self._cond:
            if buf.blockno not in self.blocks:
                self.blocks.append(buf.blockno)
            buf.dirty = True

    @contextmanager
    def transaction(self) -> Iterator[Log]:
        self.begin_op()
        try:
            yield self
        finally:
            self.end_op()