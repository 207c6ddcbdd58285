import threading

import pytest

from xv6kit.console import Console, format_kernel
from xv6kit.kbd import control


def getc_from(text):
    codes = iter([c if isinstance(c, int) else ord(c) for c in text])
    return lambda: next(codes, -1)


def test_format_kernel_numbers():
    assert format_kernel("%d", -42) == "-42"
    assert format_kernel("%d", 17) == "17"
    assert format_kernel("%x", 255) == "ff"
    assert format_kernel("%p", 255) == format_kernel("%x", 255)


def test_format_kernel_strings_and_unknown():
    assert format_kernel("a%sb", "XY") == "aXYb"
    assert format_kernel("%s", None) == "(null)"
    assert format_kernel("%z") == "%z"
    assert format_kernel("100%%") == "100%"
    assert format_kernel("abc%") == "abc"


def test_format_kernel_missing_argument():
    with pytest.raises(TypeError):
        format_kernel("%d")


def test_line_is_read_and_echoed():
    con = Console()
    con.interrupt(getc_from("hi\n"))
    assert con.read(100) == b"hi\n"
    assert con.out.getvalue() == "hi\n"


def test_carriage_return_becomes_newline():
    con = Console()
    con.interrupt(getc_from("ok\r"))
    assert con.read(100) == b"ok\n"


def test_read_limited_by_n():
    con = Console()
    con.interrupt(getc_from("hello\n"))
    assert con.read(2) == b"he"
    assert con.read(100) == b"llo\n"


def test_backspace_erases():
    con = Console()
    con.interrupt(getc_from(["a", "b", 0x7F, "c", "\n"]))
    assert con.read(100) == b"ac\n"
    assert "\b \b" in con.out.getvalue()


def test_kill_line():
    con = Console()
    con.interrupt(getc_from(["x", "y", control("U"), "z", "\n"]))
    assert con.read(100) == b"z\n"


def test_control_d_is_end_of_file():
    con = Console()
    con.interrupt(getc_from(["a", "b", control("D")]))
    assert con.read(100) == b"ab"
    assert con.read(100) == b""


def test_procdump_called():
    calls = []
    con = Console(procdump=lambda: calls.append(True))
    con.interrupt(getc_from([control("P")]))
    assert calls == [True]


def test_write_echoes():
    con = Console()
    assert con.write(b"out") == 3
    assert con.out.getvalue() == "out"


def test_read_waits_for_input():
    con = Console()
    result = []
    t = threading.Thread(target=lambda: result.append(con.read(10)))
    t.start()
    con.interrupt(getc_from("go\n"))
    t.join(timeout=5)
    assert not t.is_alive()
    assert result == [b"go\n"]