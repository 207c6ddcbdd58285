import struct

import pytest

from xv6kit.disk import BufferCache, MemoryDisk
from xv6kit.layout import BSIZE, LOGSIZE, ROOTDEV, KernelPanic, SuperBlock
from xv6kit.log import Log

LOGSTART = 2
SIZE = 100


def _disk(nlog=LOGSIZE):
    disk = MemoryDisk(nblocks=SIZE)
    sb = SuperBlock(size=SIZE, nlog=nlog, logstart=LOGSTART, inodestart=LOGSTART + nlog)
    disk.write_block(1, sb.to_bytes().ljust(BSIZE, b"\0"))
    return disk


def _header_count(disk):
    return struct.unpack_from("<i", disk.read_block(LOGSTART))[0]


def _modify(cache, log, blockno, fill):
    buf = cache.read(ROOTDEV, blockno)
    buf.data[:] = fill * BSIZE
    log.write(buf)
    cache.release(buf)


def test_commit_happens_at_end_of_transaction():
    disk = _disk()
    cache = BufferCache(disk)
    log = Log(cache)
    with log.transaction():
        _modify(cache, log, 50, b"Z")
        assert disk.read_block(50) == bytes(BSIZE)
    assert disk.read_block(50) == b"Z" * BSIZE
    assert disk.read_block(LOGSTART + 1) == b"Z" * BSIZE
    assert _header_count(disk) == 0
    assert log.blocks == []


def test_recovery_installs_committed_blocks():
    disk = _disk()
    disk.write_block(LOGSTART, struct.pack("<ii", 1, 60).ljust(BSIZE, b"\0"))
    disk.write_block(LOGSTART + 1, b"R" * BSIZE)
    Log(BufferCache(disk))
    assert disk.read_block(60) == b"R" * BSIZE
    assert _header_count(disk) == 0


def test_write_absorbs_repeated_block():
    cache = BufferCache(_disk())
    log = Log(cache)
    with log.transaction():
        _modify(cache, log, 40, b"a")
        _modify(cache, log, 40, b"b")
        _modify(cache, log, 41, b"c")
        assert log.blocks == [40, 41]


def test_nested_operations_commit_once():
    disk = _disk()
    cache = BufferCache(disk)
    log = Log(cache)
    log.begin_op()
    log.begin_op()
    _modify(cache, log, 70, b"n")
    log.end_op()
    assert log.outstanding == 1
    assert disk.read_block(70) == bytes(BSIZE)
    log.end_op()
    assert disk.read_block(70) == b"n" * BSIZE


def test_write_outside_transaction():
    cache = BufferCache(_disk())
    log = Log(cache)
    buf = cache.read(ROOTDEV, 30)
    with pytest.raises(KernelPanic, match="outside of trans"):
        log.write(buf)
    cache.release(buf)


def test_transaction_too_big():
    cache = BufferCache(_disk(nlog=5))
    log = Log(cache)
    with pytest.raises(KernelPanic, match="too big"):
        with log.transaction():
            for blockno in range(50, 56):
                _modify(cache, log, blockno, b"x")
    assert log.outstanding == 0


def test_transaction_ends_on_error():
    cache = BufferCache(_disk())
    log = Log(cache)
    with pytest.raises(ValueError):
        with log.transaction():
            raise ValueError("boom")
    assert log.outstanding == 0
    assert not log.committing