import io

from xv6kit.disk import BufferCache, MemoryDisk
from xv6kit.fs import FileSystem
from xv6kit.layout import DIRSIZ, ROOTINO, DirEntry, InodeType
from xv6kit.log import Log
from xv6kit.mkfs import ImageBuilder
from xv6kit.tools import cat, echo, fmtname, ls, main


def make_image(files):
    builder = ImageBuilder()
    inums = {}
    for name, data in files.items():
        inum = builder.ialloc(InodeType.FILE)
        builder.iappend(builder.root, DirEntry(inum, name).to_bytes())
        builder.iappend(inum, data)
        inums[name] = inum
    return builder.finish(), inums


def make_fs(files):
    image, inums = make_image(files)
    cache = BufferCache(MemoryDisk(image))
    return FileSystem(cache, Log(cache)), inums


def test_echo():
    assert echo(["hello", "world"]) == "hello world\n"
    assert echo(["one"]) == "one\n"
    assert echo([]) == ""


def test_fmtname_pads_and_strips_directories():
    name = fmtname("a/b/README")
    assert name.rstrip(" ") == "README"
    assert len(name) == DIRSIZ
    long_name = "averyveryverylongname"
    assert fmtname("/" + long_name) == long_name


def test_cat_concatenates():
    fs, _ = make_fs({"a": b"first\n", "b": b"second\n"})
    out = io.BytesIO()
    assert cat(fs, ["a", "/b"], out) == 0
    assert out.getvalue() == b"first\nsecond\n"


def test_cat_large_file():
    payload = bytes(i % 199 for i in range(3000))
    fs, _ = make_fs({"big": payload})
    out = io.BytesIO()
    assert cat(fs, ["big"], out) == 0
    assert out.getvalue() == payload


def test_cat_missing_file_stops():
    fs, _ = make_fs({"a": b"x"})
    out = io.BytesIO()
    assert cat(fs, ["nope", "a"], out) == 1
    assert out.getvalue() == b"cat: cannot open nope\n"


def test_ls_file():
    fs, inums = make_fs({"README": b"hello"})
    out = io.StringIO()
    ls(fs, "README", out)
    expected = f"{fmtname('README')} {int(InodeType.FILE)} {inums['README']} 5\n"
    assert out.getvalue() == expected


def test_ls_root_directory():
    fs, inums = make_fs({"README": b"hello", "data": b"12345678"})
    out = io.StringIO()
    ls(fs, ".", out)
    lines = out.getvalue().splitlines(keepends=True)
    assert len(lines) == 4
    root = fs.namei("/")
    fs.ilock(root)
    root_size = root.size
    fs.iunlock(root)
    dirtype = int(InodeType.DIR)
    assert lines[0] == f"{fmtname('./.')} {dirtype} {ROOTINO} {root_size}\n"
    assert lines[1] == f"{fmtname('./..')} {dirtype} {ROOTINO} {root_size}\n"
    assert lines[2] == f"{fmtname('./README')} {int(InodeType.FILE)} {inums['README']} 5\n"
    assert lines[3] == f"{fmtname('./data')} {int(InodeType.FILE)} {inums['data']} 8\n"


def test_ls_missing(capsys):
    fs, _ = make_fs({})
    out = io.StringIO()
    ls(fs, "nope", out)
    assert out.getvalue() == ""
    assert capsys.readouterr().err == "ls: cannot open nope\n"


def test_ls_path_too_long():
    fs, _ = make_fs({})
    out = io.StringIO()
    ls(fs, "/" * 500, out)
    assert out.getvalue() == "ls: path too long\n"


def test_main_echo(capsys):
    assert main(["echo", "hi", "there"]) == 0
    assert capsys.readouterr().out == "hi there\n"


def test_main_ls_and_cat(tmp_path, capsys):
    image, inums = make_image({"README": b"text\n"})
    path = tmp_path / "fs.img"
    path.write_bytes(image)
    assert main(["ls", str(path), "README"]) == 0
    out = capsys.readouterr().out
    assert out == f"{fmtname('README')} {int(InodeType.FILE)} {inums['README']} 5\n"
    assert main(["cat", str(path), "nope"]) == 1


def test_main_usage(capsys):
    assert main([]) == 1
    assert main(["ls"]) == 1
    assert "usage" in capsys.readouterr().err