import errno
import threading

import pytest

from xv6kit.disk import BufferCache, MemoryDisk
from xv6kit.file import File, FileTable, FileType, Pipe
from xv6kit.fs import FileSystem
from xv6kit.layout import DirEntry, InodeType, KernelPanic
from xv6kit.log import Log
from xv6kit.mkfs import ImageBuilder


def make_fs(files):
    builder = ImageBuilder()
    for name, data in files.items():
        inum = builder.ialloc(InodeType.FILE)
        builder.iappend(builder.root, DirEntry(inum, name).to_bytes())
        builder.iappend(inum, data)
    cache = BufferCache(MemoryDisk(builder.finish()))
    return FileSystem(cache, Log(cache))


def open_inode(table, path, readable=True, writable=True):
    fs = table.fs
    with fs.log.transaction():
        ip = fs.namei(path)
    f = table.alloc()
    f.type = FileType.INODE
    f.ip = ip
    f.readable = readable
    f.writable = writable
    return f


def test_alloc_and_exhaustion():
    table = FileTable(nfile=2)
    a = table.alloc()
    b = table.alloc()
    assert a.ref == 1 and b.ref == 1 and a is not b
    with pytest.raises(OSError) as info:
        table.alloc()
    assert info.value.errno == errno.ENFILE


def test_dup_and_close_counts():
    table = FileTable(nfile=1)
    f = table.alloc()
    assert table.dup(f) is f
    assert f.ref == 2
    table.close(f)
    assert f.ref == 1
    table.close(f)
    assert f.ref == 0
    with pytest.raises(KernelPanic):
        table.close(f)
    with pytest.raises(KernelPanic):
        table.dup(f)


def test_pipe_round_trip():
    table = FileTable()
    r, w = table.open_pipe()
    assert r.readable and not r.writable
    assert w.writable and not w.readable
    assert table.write(w, b"hello") == 5
    assert table.read(r, 3) == b"hel"
    assert table.read(r, 10) == b"lo"


def test_pipe_wrong_end_raises():
    table = FileTable()
    r, w = table.open_pipe()
    with pytest.raises(OSError):
        table.write(r, b"x")
    with pytest.raises(OSError):
        table.read(w, 1)


def test_pipe_eof_after_writer_closes():
    table = FileTable()
    r, w = table.open_pipe()
    table.write(w, b"ab")
    table.close(w)
    assert table.read(r, 10) == b"ab"
    assert table.read(r, 10) == b""


def test_pipe_write_fails_when_reader_closed_and_full():
    table = FileTable()
    r, w = table.open_pipe()
    table.close(r)
    with pytest.raises(BrokenPipeError):
        table.write(w, bytes(600))


def test_pipe_closed_when_both_ends_closed():
    table = FileTable()
    r, w = table.open_pipe()
    pipe = r.pipe
    table.close(r)
    assert not pipe.closed
    table.close(w)
    assert pipe.closed


def test_pipe_large_transfer_between_threads():
    table = FileTable()
    r, w = table.open_pipe()
    payload = bytes(range(256)) * 8
    t = threading.Thread(target=table.write, args=(w, payload))
    t.start()
    got = bytearray()
    while len(got) < len(payload):
        got += table.read(r, 300)
    t.join(timeout=5)
    assert not t.is_alive()
    assert bytes(got) == payload


def test_open_pipe_failure_releases_slot():
    table = FileTable(nfile=1)
    with pytest.raises(OSError):
        table.open_pipe()
    f = table.alloc()
    assert f.ref == 1


def test_pipe_class_direct():
    p = Pipe()
    assert p.write(b"xyz") == 3
    assert p.read(2) == b"xy"
    p.close(True)
    assert p.read(5) == b"z"


def test_inode_read_advances_offset():
    table = FileTable(make_fs({"README": b"hello world"}))
    f = open_inode(table, "/README", writable=False)
    assert table.read(f, 5) == b"hello"
    assert f.off == 5
    assert table.read(f, 100) == b" world"
    assert table.read(f, 100) == b""


def test_inode_write_then_read_back():
    table = FileTable(make_fs({"data": b"12345"}))
    f = open_inode(table, "/data")
    f.off = 5
    payload = bytes(i % 251 for i in range(3000))
    assert table.write(f, payload) == len(payload)
    assert table.stat(f).size == 5 + len(payload)
    f.off = 0
    assert table.read(f, 10000) == b"12345" + payload


def test_inode_write_not_writable():
    table = FileTable(make_fs({"data": b"abc"}))
    f = open_inode(table, "/data", writable=False)
    with pytest.raises(OSError):
        table.write(f, b"x")


def test_stat_inode_and_pipe():
    table = FileTable(make_fs({"README": b"abc"}))
    f = open_inode(table, "/README")
    st = table.stat(f)
    assert st.size == 3
    assert st.type == InodeType.FILE
    r, _ = table.open_pipe()
    with pytest.raises(OSError):
        table.stat(r)


def test_close_inode_file_drops_reference():
    fs = make_fs({"README": b"abc"})
    table = FileTable(fs)
    f = open_inode(table, "/README")
    ip = f.ip
    before = ip.ref
    table.close(f)
    assert ip.ref == before - 1
    assert f.type == FileType.NONE


def test_read_on_unset_file_panics():
    table = FileTable()
    f = File(readable=True, ref=1)
    with pytest.raises(KernelPanic):
        table.read(f, 1)