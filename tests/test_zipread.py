import io
import zipfile

import pytest

from upnpwire.zipread import ZipRead


def _zip_bytes(members):
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as archive:
        for name, data in members.items():
            archive.writestr(name, data)
    return buf.getvalue()


def test_open_member():
    data = _zip_bytes({"xml data files/service/Foo1.xml": b"<scpd/>"})
    with ZipRead.from_bytes(data) as zr:
        with zr.open("xml data files/service/Foo1.xml") as member:
            assert member.read() == b"<scpd/>"


def test_open_nested_zip():
    inner = _zip_bytes({"service.xml": b"inner contents"})
    outer = _zip_bytes({"spec.zip": inner, "readme.txt": b"text"})
    with ZipRead.from_bytes(outer) as zr:
        with zr.open_zip("spec.zip") as nested:
            with nested.open("service.xml") as member:
                assert member.read() == b"inner contents"


def test_missing_member():
    zr = ZipRead.from_bytes(_zip_bytes({"a.txt": b"a"}))
    with pytest.raises(FileNotFoundError):
        zr.open("b.txt")
    with pytest.raises(FileNotFoundError):
        zr.open_zip("b.zip")


def test_nested_member_not_a_zip():
    zr = ZipRead.from_bytes(_zip_bytes({"a.txt": b"plain text"}))
    with pytest.raises(zipfile.BadZipFile):
        zr.open_zip("a.txt")


def test_bad_bytes():
    with pytest.raises(zipfile.BadZipFile):
        ZipRead.from_bytes(b"definitely not a zip archive")


def test_from_path(tmp_path):
    path = tmp_path / "resources.zip"
    path.write_bytes(_zip_bytes({"x/y.txt": b"payload"}))
    with ZipRead.from_file(path) as zr:
        with zr.open("x/y.txt") as member:
            assert member.read() == b"payload"


def test_from_file_object(tmp_path):
    path = tmp_path / "resources.zip"
    path.write_bytes(_zip_bytes({"y.txt": b"payload"}))
    with open(path, "rb") as handle:
        zr = ZipRead.from_file(handle)
        with zr.open("y.txt") as member:
            assert member.read() == b"payload"
        zr.close()


def test_close_prevents_reading():
    zr = ZipRead.from_bytes(_zip_bytes({"a.txt": b"a"}))
    zr.close()
    with pytest.raises(ValueError):
        zr.open("a.txt")