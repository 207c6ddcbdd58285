"""A small printf that understands only %d, %x, %p, %s and %c."""

from __future__ import annotations

from typing import TextIO

_DIGITS = "0123456789ABCDEF"


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


def format_user(fmt: str, *args) -> str:
    """Format like the user-level printf; arguments are 32-bit words."""
    pieces: list[str] = []
    remaining = iter(args)

    def next_arg():
        try:
            return next(remaining)
        except StopIteration:
            raise TypeError("not enough arguments for format string") from None

    pending = False
    for c in fmt:
        if not pending:
            if c == "%":
                pending = True
            else:
                pieces.append(c)
            continue
        if c == "d":
            pieces.append(_number(next_arg(), 10, True))
        elif c in "xp":
            pieces.append(_number(next_arg(), 16, False))
        elif c == "s":
            s = next_arg()
            pieces.append("(null)" if s is None else str(s))
        elif c == "c":
            ch = next_arg()
            pieces.append(ch if isinstance(ch, str) else chr(int(ch) & 0xFF))
        elif c == "%":
            pieces.append("%")
        else:
            pieces.append("%" + c)
        pending = False
    return "".join(pieces)


def printf(stream: TextIO, fmt: str, *args) -> None:
    stream.write(format_user(fmt, *args))