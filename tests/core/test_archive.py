# tests/core/test_archive.py

import io
import struct
import zipfile
import zlib

import pytest

from portrait_pipeline.core.archive import (
    CENTRAL_DIRECTORY_SIGNATURE,
    END_OF_DIRECTORY_SIGNATURE,
    LOCAL_FILE_SIGNATURE,
    MAX_ENTRIES,
    MAX_ENTRY_SIZE,
    MAX_OFFSET,
    ArchiveBuilder,
    ArchiveEntry,
    crc32,
)
from portrait_pipeline.core.exceptions import FileIOError, SizeError


class _SizedBytes(bytes):
    """Reports an arbitrary length without allocating the payload."""

    def __new__(cls, reported_length):
        instance = super().__new__(cls, b"")
        instance.reported_length = reported_length
        return instance

    def __len__(self):
        return self.reported_length


# --- CRC-32 ---

def test_crc32_known_vectors():
    assert crc32(b"") == 0
    assert crc32(b"123456789") == 0xCBF43926


@pytest.mark.parametrize("payload", [b"a", b"hello world", bytes(range(256)) * 3])
def test_crc32_matches_zlib(payload):
    assert crc32(payload) == zlib.crc32(payload)


# --- Layout ---

def test_empty_archive_is_end_record_only():
    data = ArchiveBuilder().build([])
    assert len(data) == 22
    assert struct.unpack("<I", data[:4])[0] == END_OF_DIRECTORY_SIGNATURE


def test_single_entry_layout():
    data = ArchiveBuilder().build([("photo_0.jpg", b"abc")])
    name = b"photo_0.jpg"

    assert struct.unpack("<I", data[:4])[0] == LOCAL_FILE_SIGNATURE
    local_size = 30 + len(name) + 3
    assert data[30:30 + len(name)] == name
    assert data[30 + len(name):local_size] == b"abc"

    assert struct.unpack("<I", data[local_size:local_size + 4])[0] == CENTRAL_DIRECTORY_SIGNATURE
    central_size = 46 + len(name)
    assert len(data) == local_size + central_size + 22

    end = data[-22:]
    (_, _, _, count, total, dir_size, dir_offset, comment) = struct.unpack("<IHHHHIIH", end)
    assert count == total == 1
    assert dir_size == central_size
    assert dir_offset == local_size
    assert comment == 0


def test_archive_readable_by_zipfile():
    entries = [
        ArchiveEntry("photo_0.jpg", b"\xff\xd8first"),
        ArchiveEntry("photo_1.png", b"\x89PNGsecond"),
    ]
    data = ArchiveBuilder().build(entries)

    with zipfile.ZipFile(io.BytesIO(data)) as archive:
        assert archive.namelist() == ["photo_0.jpg", "photo_1.png"]
        assert archive.testzip() is None
        assert archive.read("photo_1.png") == b"\x89PNGsecond"
        info = archive.getinfo("photo_0.jpg")
        assert info.compress_type == zipfile.ZIP_STORED
        assert info.CRC == zlib.crc32(b"\xff\xd8first")


def test_build_is_deterministic():
    entries = [("a.jpg", b"one"), ("b.jpg", b"two")]
    builder = ArchiveBuilder()
    assert builder.build(entries) == builder.build(entries)


def test_entry_order_is_preserved():
    first = ArchiveBuilder().build([("a", b"1"), ("b", b"2")])
    second = ArchiveBuilder().build([("b", b"2"), ("a", b"1")])
    assert first != second


# --- Limits ---

def test_too_many_entries():
    entries = [ArchiveEntry(f"{index}", b"") for index in range(MAX_ENTRIES + 1)]
    with pytest.raises(SizeError, match="Too many files"):
        ArchiveBuilder().build(entries)


def test_name_too_long():
    with pytest.raises(SizeError, match="name too long"):
        ArchiveBuilder().build([("a" * 0x10000, b"x")])


def test_entry_too_large():
    with pytest.raises(SizeError) as exc_info:
        ArchiveBuilder().validate([ArchiveEntry("big.jpg", _SizedBytes(MAX_ENTRY_SIZE + 1))])
    assert isinstance(exc_info.value, FileIOError)
    assert "big.jpg" in str(exc_info.value)


def test_local_header_overhead_counts_toward_offset_limit():
    # payload plus name fits, but the 30-byte local header pushes the
    # central directory offset past 32 bits
    name = "a.jpg"
    payload = _SizedBytes(MAX_OFFSET - len(name) - 10)
    with pytest.raises(SizeError, match="4 GiB offset limit"):
        ArchiveBuilder().validate([ArchiveEntry(name, payload)])


def test_entry_offset_beyond_limit():
    entries = [
        ArchiveEntry("a.jpg", _SizedBytes(0xF0000000)),
        ArchiveEntry("b.jpg", _SizedBytes(0x20000000)),
        ArchiveEntry("c.jpg", b"x"),
    ]
    with pytest.raises(SizeError, match="4 GiB offset limit"):
        ArchiveBuilder().build(entries)


def test_archive_just_under_limit_validates():
    name = "a.jpg"
    # local header + name + payload + central record + name == MAX_OFFSET
    payload = _SizedBytes(MAX_OFFSET - 30 - 46 - 2 * len(name))
    ArchiveBuilder().validate([ArchiveEntry(name, payload)])
