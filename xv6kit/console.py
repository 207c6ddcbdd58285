"""The console: a line-edited input buffer fed by interrupts, and output echo."""

from __future__ import annotations

import io
import threading
from typing import Callable, TextIO

from .kbd import control

INPUT_BUF = 128
BACKSPACE = 0x100

_DIGITS = "0123456789abcdef"


def _number(value: int, base: int, signed: bool) -> str:
    x = int(value) & 0xFFFFFFFF
    negative = signed and x >= 0x80000000
    if negative:
        x = 0x100000000 - x
    out = []
    while True:
        out.append(_DIGITS[x % base])
        x //= base
        if x == 0:
            break
    if negative:
        out.append("-")
    return "".join(reversed(out))


def format_kernel(fmt: str, *args) -> str:
    """Format like the kernel's printf: only %d, %x, %p, %s and %%."""
    if fmt is None:
        raise ValueError("null fmt")
    remaining = iter(args)

    def next_arg():
        try:
            return next(remaining)
        except StopIteration:
            raise TypeError("not enough arguments for format string") from None

    out: list[str] = []
    chars = iter(fmt)
    for c in chars:
        if c != "%":
            out.append(c)
            continue
        c = next(chars, None)
        if c is None:
            break
        if c == "d":
            out.append(_number(next_arg(), 10, True))
        elif c in "xp":
            out.append(_number(next_arg(), 16, False))
        elif c == "s":
            s = next_arg()
            out.append("(null)" if s is None else str(s))
        elif c == "%":
            out.append("%")
        else:
            out.append("%" + c)
    return "".join(out)


class Console:
    """Line-buffered console input with editing, echoing everything to out."""

    def __init__(self, out: TextIO | None = None, procdump: Callable[[], None] | None = None) -> None:
        self.out = out if out is not None else io.StringIO()
        self._procdump = procdump
        self._cond = threading.Condition()
        self._buf = [0] * INPUT_BUF
        self._r = 0
        self._w = 0
        self._e = 0

    def _putc(self, c: int) -> None:
        self.out.write("\b \b" if c == BACKSPACE else chr(c))

    def interrupt(self, getc: Callable[[], int]) -> None:
        """Consume characters from getc until it returns a negative value."""
        dump = False
        with self._cond:
            while (c := getc()) >= 0:
                if c == control("P"):
                    dump = True
                elif c == control("U"):
                    while self._e != self._w and self._buf[(self._e - 1) % INPUT_BUF] != ord("\n"):
                        self._e -= 1
                        self._putc(BACKSPACE)
                elif c in (control("H"), 0x7F):
                    if self._e != self._w:
                        self._e -= 1
                        self._putc(BACKSPACE)
                elif c != 0 and self._e - self._r < INPUT_BUF:
                    if c == ord("\r"):
                        c = ord("\n")
                    self._buf[self._e % INPUT_BUF] = c & 0xFF
                    self._e += 1
                    self._putc(c)
                    if c in (ord("\n"), control("D")) or self._e == self._r + INPUT_BUF:
                        self._w = self._e
                        self._cond.notify_all()
        if dump and self._procdump is not None:
            self._procdump()

    def read(self, n: int) -> bytes:
        """Read up to n bytes of completed input, stopping after a newline.

        Control-D ends the read; if bytes were already read it is kept so the
        next read returns nothing.
        """
        target = n
        out = bytearray()
        with self._cond:
            while n > 0:
                while self._r == self._w:
                    self._cond.wait()
                c = self._buf[self._r % INPUT_BUF]
                self._r += 1
                if c == control("D"):
                    if n < target:
                        self._r -= 1
                    break
                out.append(c)
                n -= 1
                if c == ord("\n"):
                    break
        return bytes(out)

    def write(self, data) -> int:
        with self._cond:
            for byte in bytes(data):
                self._putc(byte & 0xFF)
        return len(data)