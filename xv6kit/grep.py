"""A tiny grep supporting only the ^ . * $ operators."""

from __future__ import annotations

import sys
from typing import BinaryIO

from .printf import format_user

_BUFSIZE = 1024


def _match_here(re: str, ri: int, text: str, ti: int) -> bool:
    while True:
        if ri == len(re):
            return True
        if ri + 1 < len(re) and re[ri + 1] == "*":
            return _match_star(re[ri], re, ri + 2, text, ti)
        if re[ri] == "$" and ri + 1 == len(re):
            return ti == len(text)
        if ti < len(text) and re[ri] in (".", text[ti]):
            ri += 1
            ti += 1
            continue
        return False


def _match_star(c: str, re: str, ri: int, text: str, ti: int) -> bool:
    while True:
        if _match_here(re, ri, text, ti):
            return True
        if ti < len(text) and (text[ti] == c or c == "."):
            ti += 1
        else:
            return False


def match(pattern: str, text: str) -> bool:
    """Search for pattern anywhere in text."""
    if pattern.startswith("^"):
        return _match_here(pattern, 1, text, 0)
    return any(_match_here(pattern, 0, text, ti) for ti in range(len(text) + 1))


def grep(pattern: str, stream: BinaryIO, out: BinaryIO) -> None:
    """Copy each newline-terminated line of stream that matches pattern to out.

    Text is read in chunks of a fixed buffer; a chunk that holds no newline
    at all is dropped, as is a final line without a newline.
    """
    pending = b""
    while True:
        chunk = stream.read(_BUFSIZE - 1 - len(pending))
        if not chunk:
            break
        pending += chunk
        start = 0
        while (end := pending.find(b"\n", start)) >= 0:
            if match(pattern, pending[start:end].decode("latin-1")):
                out.write(pending[start:end + 1])
            start = end + 1
        pending = pending[start:] if start else b""


def main(argv=None) -> int:
    args = sys.argv[1:] if argv is None else list(argv)
    out = sys.stdout.buffer
    if not args:
        sys.stderr.write("usage: grep pattern [file ...]\n")
        return 1
    pattern, paths = args[0], args[1:]
    if not paths:
        grep(pattern, sys.stdin.buffer, out)
        out.flush()
        return 0
    for path in paths:
        try:
            stream = open(path, "rb")
        except OSError:
            out.write(format_user("grep: cannot open %s\n", path).encode())
            out.flush()
            return 1
        with stream:
            grep(pattern, stream, out)
    out.flush()
    return 0


if __name__ == "__main__":
    sys.exit(main())