"""On-disk file system format: block layout, superblock, inodes and directory entries."""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from enum import IntEnum

ROOTINO = 1
BSIZE = 512
NDIRECT = 12
NINDIRECT = BSIZE // 4
MAXFILE = NDIRECT + NINDIRECT
DIRSIZ = 14
BPB = BSIZE * 8

ROOTDEV = 1
FSSIZE = 1000
LOGSIZE = 30
MAXOPBLOCKS = 10
NBUF = MAXOPBLOCKS * 3
NINODE = 50
NDEV = 10

_SUPER = struct.Struct("<7I")
_DINODE = struct.Struct(f"<4hI{NDIRECT + 1}I")
_DIRENT = struct.Struct(f"<H{DIRSIZ}s")

SUPERBLOCK_SIZE = _SUPER.size
DINODE_SIZE = _DINODE.size
DIRENT_SIZE = _DIRENT.size
IPB = BSIZE // DINODE_SIZE


class KernelPanic(RuntimeError):
    """An unrecoverable inconsistency detected by the file system code."""


class InodeType(IntEnum):
    FREE = 0
    DIR = 1
    FILE = 2
    DEVICE = 3


def _require(data: bytes, size: int, what: str) -> None:
    if len(data) < size:
        raise ValueError(f"{what} needs {size} bytes, got {len(data)}")


@dataclass
class SuperBlock:
    """Describes the disk layout."""

    size: int = 0
    nblocks: int = 0
    ninodes: int = 0
    nlog: int = 0
    logstart: int = 0
    inodestart: int = 0
    bmapstart: int = 0

    def to_bytes(self) -> bytes:
        return _SUPER.pack(
            self.size,
            self.nblocks,
            self.ninodes,
            self.nlog,
            self.logstart,
            self.inodestart,
            self.bmapstart,
        )

    @classmethod
    def from_bytes(cls, data) -> SuperBlock:
        _require(data, _SUPER.size, "superblock")
        return cls(*_SUPER.unpack_from(data))


@dataclass
class DiskInode:
    """An inode as stored on disk."""

    type: int = 0
    major: int = 0
    minor: int = 0
    nlink: int = 0
    size: int = 0
    addrs: list[int] = field(default_factory=lambda: [0] * (NDIRECT + 1))

    def to_bytes(self) -> bytes:
        if len(self.addrs) != NDIRECT + 1:
            raise ValueError(f"an inode holds exactly {NDIRECT + 1} addresses")
        return _DINODE.pack(
            self.type, self.major, self.minor, self.nlink, self.size, *self.addrs
        )

    @classmethod
    def from_bytes(cls, data) -> DiskInode:
        _require(data, _DINODE.size, "inode")
        values = _DINODE.unpack_from(data)
        return cls(*values[:5], addrs=list(values[5:]))


@dataclass
class DirEntry:
    """One entry of a directory file; inum 0 marks a free slot."""

    inum: int = 0
    name: str = ""

    def to_bytes(self) -> bytes:
        return _DIRENT.pack(self.inum, self.name.encode("latin-1")[:DIRSIZ])

    @classmethod
    def from_bytes(cls, data) -> DirEntry:
        _require(data, _DIRENT.size, "directory entry")
        inum, raw = _DIRENT.unpack_from(data)
        return cls(inum, raw.split(b"\0", 1)[0].decode("latin-1"))


def inode_block(inum: int, sb: SuperBlock) -> int:
    """Block holding inode number inum."""
    return inum // IPB + sb.inodestart


def bitmap_block(b: int, sb: SuperBlock) -> int:
    """Bitmap block holding the bit for block b."""
    return b // BPB + sb.bmapstart