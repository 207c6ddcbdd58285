"""Build a file system image holding a root directory and a set of files."""

from __future__ import annotations

import os
import struct
import sys

from .layout import (
    BPB,
    BSIZE,
    DINODE_SIZE,
    DIRSIZ,
    FSSIZE,
    IPB,
    LOGSIZE,
    MAXFILE,
    NDIRECT,
    NINDIRECT,
    ROOTINO,
    DirEntry,
    DiskInode,
    InodeType,
    SuperBlock,
    inode_block,
)

NINODES = 200

_INDIRECT = struct.Struct(f"<{NINDIRECT}I")


class ImageBuilder:
    """Lays out an empty file system in memory and appends files to it.

    Layout: boot block, superblock, log, inode blocks, free bitmap, data blocks.
    """

    def __init__(self, size: int = FSSIZE, ninodes: int = NINODES, nlog: int = LOGSIZE) -> None:
        self.nbitmap = size // BPB + 1
        self.ninodeblocks = ninodes // IPB + 1
        self.nlog = nlog
        self.nmeta = 2 + nlog + self.ninodeblocks + self.nbitmap
        self.nblocks = size - self.nmeta
        if self.nblocks <= 0:
            raise ValueError(f"an image of {size} blocks has no room for data")
        self.sb = SuperBlock(
            size=size,
            nblocks=self.nblocks,
            ninodes=ninodes,
            nlog=nlog,
            logstart=2,
            inodestart=2 + nlog,
            bmapstart=2 + nlog + self.ninodeblocks,
        )
        self._image = bytearray(size * BSIZE)
        self._wsect(1, self.sb.to_bytes().ljust(BSIZE, b"\0"))
        self.freeinode = 1
        self.freeblock = self.nmeta

        self.root = self.ialloc(InodeType.DIR)
        if self.root != ROOTINO:
            raise ValueError("root directory did not get the root inode number")
        self.iappend(self.root, DirEntry(self.root, ".").to_bytes())
        self.iappend(self.root, DirEntry(self.root, "..").to_bytes())

    def _wsect(self, sec: int, data) -> None:
        if len(data) != BSIZE:
            raise ValueError(f"a sector is {BSIZE} bytes, got {len(data)}")
        if not 0 <= sec < self.sb.size:
            raise ValueError(f"sector {sec} outside the image")
        self._image[sec * BSIZE:(sec + 1) * BSIZE] = data

    def _rsect(self, sec: int) -> bytearray:
        if not 0 <= sec < self.sb.size:
            raise ValueError(f"sector {sec} outside the image")
        return bytearray(self._image[sec * BSIZE:(sec + 1) * BSIZE])

    def _rinode(self, inum: int) -> DiskInode:
        start = (inum % IPB) * DINODE_SIZE
        block = self._rsect(inode_block(inum, self.sb))
        return DiskInode.from_bytes(block[start:start + DINODE_SIZE])

    def _winode(self, inum: int, din: DiskInode) -> None:
        bn = inode_block(inum, self.sb)
        block = self._rsect(bn)
        start = (inum % IPB) * DINODE_SIZE
        block[start:start + DINODE_SIZE] = din.to_bytes()
        self._wsect(bn, block)

    def _next_block(self) -> int:
        if self.freeblock >= self.sb.size:
            raise ValueError("image is out of data blocks")
        b = self.freeblock
        self.freeblock += 1
        return b

    def ialloc(self, itype: int) -> int:
        """Allocate the next inode with one link and no content."""
        if self.freeinode >= self.sb.ninodes:
            raise ValueError("image is out of inodes")
        inum = self.freeinode
        self.freeinode += 1
        self._winode(inum, DiskInode(type=int(itype), nlink=1, size=0))
        return inum

    def iappend(self, inum: int, data) -> None:
        """Append data to the end of inode inum, allocating blocks in order."""
        data = bytes(data)
        din = self._rinode(inum)
        off = din.size
        pos = 0
        while pos < len(data):
            fbn = off // BSIZE
            if fbn >= MAXFILE:
                raise ValueError("file exceeds the maximum file size")
            if fbn < NDIRECT:
                if din.addrs[fbn] == 0:
                    din.addrs[fbn] = self._next_block()
                x = din.addrs[fbn]
            else:
                if din.addrs[NDIRECT] == 0:
                    din.addrs[NDIRECT] = self._next_block()
                indirect = list(_INDIRECT.unpack(self._rsect(din.addrs[NDIRECT])))
                if indirect[fbn - NDIRECT] == 0:
                    indirect[fbn - NDIRECT] = self._next_block()
                    self._wsect(din.addrs[NDIRECT], _INDIRECT.pack(*indirect))
                x = indirect[fbn - NDIRECT]
            n1 = min(len(data) - pos, (fbn + 1) * BSIZE - off)
            block = self._rsect(x)
            start = off - fbn * BSIZE
            block[start:start + n1] = data[pos:pos + n1]
            self._wsect(x, block)
            pos += n1
            off += n1
        din.size = off
        self._winode(inum, din)

    def finish(self) -> bytes:
        """Round the root directory size up a block, write the bitmap, return the image."""
        din = self._rinode(self.root)
        din.size = (din.size // BSIZE + 1) * BSIZE
        self._winode(self.root, din)

        used = self.freeblock
        if used >= BPB:
            raise ValueError("allocated blocks do not fit in one bitmap block")
        bitmap = bytearray(BSIZE)
        for i in range(used):
            bitmap[i // 8] |= 1 << (i % 8)
        self._wsect(self.sb.bmapstart, bitmap)
        return bytes(self._image)


def _populate(builder: ImageBuilder, files) -> None:
    for entry in files:
        name = os.fspath(entry)
        if "/" in name:
            raise ValueError(f"file names may not contain '/': {name}")
        with open(name, "rb") as fh:
            data = fh.read()
        # Host binaries carry a leading underscore so they are not run by mistake.
        if name.startswith("_"):
            name = name[1:]
        inum = builder.ialloc(InodeType.FILE)
        builder.iappend(builder.root, DirEntry(inum, name[:DIRSIZ]).to_bytes())
        builder.iappend(inum, data)


def build_image(path, files) -> bytes:
    """Write an image at path holding files (named without '/') in the root directory."""
    builder = ImageBuilder()
    _populate(builder, files)
    image = builder.finish()
    with open(path, "wb") as fh:
        fh.write(image)
    return image


def main(argv=None) -> int:
    args = sys.argv[1:] if argv is None else list(argv)
    if not args:
        sys.stderr.write("Usage: mkfs fs.img files...\n")
        return 1
    builder = ImageBuilder()
    print(
        f"nmeta {builder.nmeta} (boot, super, log blocks {builder.nlog} "
        f"inode blocks {builder.ninodeblocks}, bitmap blocks {builder.nbitmap}) "
        f"blocks {builder.nblocks} total {builder.sb.size}"
    )
    try:
        _populate(builder, args[1:])
        print(f"balloc: first {builder.freeblock} blocks have been allocated")
        image = builder.finish()
        print(f"balloc: write bitmap block at sector {builder.sb.bmapstart}")
        with open(args[0], "wb") as fh:
            fh.write(image)
    except OSError as exc:
        sys.stderr.write(f"{exc.filename or args[0]}: {exc.strerror}\n")
        return 1
    except ValueError as exc:
        sys.stderr.write(f"mkfs: {exc}\n")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())