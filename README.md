# xv6kit

A compact model of a small Unix-style file system, written in plain Python
with no third-party dependencies.

It covers the storage stack from raw blocks up to open files:

- **On-disk layout** (`xv6kit.layout`): `SuperBlock`, `DiskInode` and
  `DirEntry`, each with `to_bytes()` / `from_bytes()`, the `InodeType`
  enumeration, and the helpers `inode_block` and `bitmap_block`.
- **Disk and buffer cache** (`xv6kit.disk`): `MemoryDisk`, a disk held in
  memory (`read_block`, `write_block`, `sync`, and the `image` property),
  and `BufferCache`, a fixed pool of `Buffer`s (`read`, `write`, `release`)
  that recycles the least recently used free buffer.
- **Redo log** (`xv6kit.log`): `Log` groups block writes into committed
  transactions through `begin_op` / `end_op`, or the `transaction()`
  context manager, and replays a committed log when it is opened.
- **Inodes, directories and path names** (`xv6kit.fs`): `FileSystem` with
  `ialloc`, `iupdate`, `idup`, `ilock`, `iunlock`, `iput`, `iunlockput`,
  `stati`, `readi`, `writei`, `dirlookup`, `dirlink`, `namei` and
  `nameiparent`; `skipelem` splits a path into its first element and the
  rest. Device inodes are served by objects in the `devsw` mapping.
- **Open files and pipes** (`xv6kit.file`): `FileTable` (`alloc`, `dup`,
  `close`, `stat`, `read`, `write`, `open_pipe`), `File` and `Pipe`.
- **Image builder** (`xv6kit.mkfs`): `ImageBuilder` and `build_image` lay
  out a fresh image with a root directory holding host files.
- **Console and keyboard** (`xv6kit.console`, `xv6kit.kbd`): `Console`, a
  line-edited input buffer fed through `interrupt(getc)`, with
  `format_kernel`; `KeyboardDecoder` turns PC scan codes into characters.
- **Small user tools** (`xv6kit.printf`, `xv6kit.grep`, `xv6kit.tools`):
  `format_user` / `printf`, a `^ . * $` matcher (`match`, `grep`), and
  `echo`, `cat`, `ls` and `fmtname` over a file system image.

Inconsistencies that would halt a running system are raised as
`xv6kit.layout.KernelPanic`; ordinary failures raise `OSError`,
`ValueError` or `FileExistsError`.

## Installation

```
pip install .
```

For running the tests:

```
pip install .[test]
pytest
```

## Command line

Build a file system image from host files in the current directory (names
may not contain `/`; a leading `_` is dropped when the file is stored):

```
xv6-mkfs fs.img README _cat _ls
```

Search host files, or standard input, for lines matching a simple pattern
(`^`, `.`, `*` and `$` are supported):

```
xv6-grep 'ab*c$' notes.txt
```

Run the small user tools. `ls` lists a file or the entries of a directory
as name, type, inode number and size; `cat` copies files out of the image
(with no paths it copies standard input); `echo` prints its words:

```
xv6-tools ls fs.img /
xv6-tools cat fs.img README
xv6-tools echo hello world
```

## Library use

```python
from xv6kit.mkfs import build_image
from xv6kit.grep import match
from xv6kit.printf import format_user
from xv6kit.tools import echo, fmtname

build_image("fs.img", ["README"])

match("^h.*o$", "hello")                 # True
format_user("%d %x %s", -5, 255, "ok")   # '-5 FF ok'
echo(["a", "b"])                         # 'a b\n'
fmtname("/dir/README")                   # 'README' padded with blanks to 14 columns
```

Opening an image and adding a file to its root directory; every update runs
inside one log transaction:

```python
from pathlib import Path

from xv6kit.disk import BufferCache, MemoryDisk
from xv6kit.fs import FileSystem
from xv6kit.layout import InodeType
from xv6kit.log import Log

disk = MemoryDisk(Path("fs.img").read_bytes())
cache = BufferCache(disk)
log = Log(cache)
fs = FileSystem(cache, log)

with log.transaction():
    ip = fs.ialloc(InodeType.FILE)
    fs.ilock(ip)
    ip.nlink = 1
    fs.iupdate(ip)
    fs.writei(ip, b"hi\n", 0)
    fs.iunlock(ip)
    root = fs.namei("/")
    fs.ilock(root)
    fs.dirlink(root, "hello", ip.inum)
    fs.iunlockput(root)
    fs.iput(ip)

Path("fs.img").write_bytes(disk.image)
```

## What it does not do

There is no kernel here: no processes, scheduler, system calls, shell or
hardware drivers. The disk is always `MemoryDisk`; an image is loaded into
memory and is written back only if you save `MemoryDisk.image` yourself.
There are no ready-made operations to make directories, unlink, rename or
create files by path; such work is done with the `FileSystem` methods as
shown above. The `xv6-tools` commands only read an image, and `xv6-grep`
works on host files, not on files inside an image.