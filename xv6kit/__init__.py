"""A small Unix-style file system: disk layout, buffer cache, redo log, inodes, files, pipes, image builder and user tools."""

__version__ = "0.1.0"