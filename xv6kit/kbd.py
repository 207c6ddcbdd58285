"""Decoding of PC keyboard scan codes (set 1) into characters."""

from __future__ import annotations

from enum import IntFlag


class Modifier(IntFlag):
    SHIFT = 1 << 0
    CTL = 1 << 1
    ALT = 1 << 2
    CAPSLOCK = 1 << 3
    NUMLOCK = 1 << 4
    SCROLLLOCK = 1 << 5
    E0ESC = 1 << 6


KEY_HOME = 0xE0
KEY_END = 0xE1
KEY_UP = 0xE2
KEY_DN = 0xE3
KEY_LF = 0xE4
KEY_RT = 0xE5
KEY_PGUP = 0xE6
KEY_PGDN = 0xE7
KEY_INS = 0xE8
KEY_DEL = 0xE9


def control(ch: str) -> int:
    """The code that Control plus ch produces."""
    return ord(ch) - ord("@")


_NUL = "\x00"

_SPECIAL = {
    0xC8: KEY_UP,
    0xD0: KEY_DN,
    0xC9: KEY_PGUP,
    0xD1: KEY_PGDN,
    0xCB: KEY_LF,
    0xCD: KEY_RT,
    0x97: KEY_HOME,
    0xCF: KEY_END,
    0xD2: KEY_INS,
    0xD3: KEY_DEL,
}

_KEYPAD = "".join([_NUL * 7 + "7", "89-456+1", "230." + _NUL * 4])


def _table(rows: str, specials: dict[int, int]) -> tuple[int, ...]:
    table = [ord(ch) for ch in rows] + [0] * (256 - len(rows))
    for code, value in specials.items():
        table[code] = value
    return tuple(table)


_NORMAL = _table(
    "".join([
        _NUL + "\x1b123456", "7890-=\b\t", "qwertyui", "op[]\n" + _NUL + "as",
        "dfghjkl;", "'`" + _NUL + "\\zxcv", "bnm,./" + _NUL + "*", _NUL + " " + _NUL * 6,
        _KEYPAD,
    ]),
    {0x9C: ord("\n"), 0xB5: ord("/"), **_SPECIAL},
)

_SHIFTED = _table(
    "".join([
        _NUL + "\x1b!@#$%^", "&*()_+\b\t", "QWERTYUI", "OP{}\n" + _NUL + "AS",
        "DFGHJKL:", '"~' + _NUL + "|ZXCV", "BNM<>?" + _NUL + "*", _NUL + " " + _NUL * 6,
        _KEYPAD,
    ]),
    {0x9C: ord("\n"), 0xB5: ord("/"), **_SPECIAL},
)


def _control_table() -> tuple[int, ...]:
    rows = "".join([
        "QWERTYUI", "OP" + _NUL * 2 + "\r" + _NUL + "AS", "DFGHJKL" + _NUL,
        _NUL * 3 + "\\ZXCV", "BNM" + _NUL * 2 + "/" + _NUL * 2,
    ])
    table = [0] * 256
    for offset, ch in enumerate(rows, start=0x10):
        if ch in (_NUL, "\r"):
            table[offset] = ord(ch)
        else:
            table[offset] = control(ch) & 0xFF
    table[0x9C] = ord("\r")
    table[0xB5] = control("/") & 0xFF
    for code, value in _SPECIAL.items():
        table[code] = value
    return tuple(table)


_CONTROL = _control_table()

_SHIFTCODE = {0x1D: Modifier.CTL, 0x2A: Modifier.SHIFT, 0x36: Modifier.SHIFT,
              0x38: Modifier.ALT, 0x9D: Modifier.CTL, 0xB8: Modifier.ALT}
_TOGGLECODE = {0x3A: Modifier.CAPSLOCK, 0x45: Modifier.NUMLOCK, 0x46: Modifier.SCROLLLOCK}

_CHARCODE = (_NORMAL, _SHIFTED, _CONTROL, _CONTROL)


class KeyboardDecoder:
    """Tracks modifier state across scan codes and yields character codes."""

    def __init__(self) -> None:
        self.shift = 0

    @property
    def modifiers(self) -> Modifier:
        return Modifier(self.shift)

    def feed(self, data: int) -> int:
        """Decode one scan-code byte; 0 means no character was produced."""
        if not 0 <= data <= 0xFF:
            raise ValueError(f"scan code out of range: {data}")
        if data == 0xE0:
            self.shift |= Modifier.E0ESC
            return 0
        if data & 0x80:
            if not self.shift & Modifier.E0ESC:
                data &= 0x7F
            self.shift &= ~(int(_SHIFTCODE.get(data, 0)) | Modifier.E0ESC)
            return 0
        if self.shift & Modifier.E0ESC:
            data |= 0x80
            self.shift &= ~Modifier.E0ESC

        self.shift |= int(_SHIFTCODE.get(data, 0))
        self.shift ^= int(_TOGGLECODE.get(data, 0))
        c = _CHARCODE[self.shift & (Modifier.CTL | Modifier.SHIFT)][data]
        if self.shift & Modifier.CAPSLOCK:
            if ord("a") <= c <= ord("z"):
                c += ord("A") - ord("a")
            elif ord("A") <= c <= ord("Z"):
                c += ord("a") - ord("A")
        return c