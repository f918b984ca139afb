"""Minimal stored (uncompressed) ZIP archive writer with CRC-32 checksums."""

import struct
from dataclasses import dataclass
from typing import Iterable, List, Sequence, Tuple, Union

from .exceptions import SizeError

MAX_ENTRIES = 0xFFFF
MAX_NAME_LENGTH = 0xFFFF
MAX_ENTRY_SIZE = 0xFFFFFFFF
MAX_OFFSET = 0xFFFFFFFF

LOCAL_HEADER_SIZE = 30
CENTRAL_RECORD_SIZE = 46

LOCAL_FILE_SIGNATURE = 0x04034B50
CENTRAL_DIRECTORY_SIGNATURE = 0x02014B50
END_OF_DIRECTORY_SIGNATURE = 0x06054B50

VERSION = 20
METHOD_STORE = 0

_CRC32_POLYNOMIAL = 0xEDB88320


def _make_crc32_table() -> List[int]:
    table = []
    for index in range(256):
        crc = index
        for _ in range(8):
            if crc & 1:
                crc = _CRC32_POLYNOMIAL ^ (crc >> 1)
            else:
                crc >>= 1
        table.append(crc)
    return table


CRC32_TABLE = _make_crc32_table()


def crc32(data: bytes) -> int:
    """IEEE CRC-32 of ``data`` (reflected table, all-ones init, inverted result)."""
    crc = 0xFFFFFFFF
    for byte in data:
        crc = (crc >> 8) ^ CRC32_TABLE[(crc ^ byte) & 0xFF]
    return crc ^ 0xFFFFFFFF


@dataclass(frozen=True)
class ArchiveEntry:
    """A named payload to be stored in the archive."""

    name: str
    data: bytes

    @property
    def encoded_name(self) -> bytes:
        return self.name.encode("utf-8")


EntryLike = Union[ArchiveEntry, Tuple[str, bytes]]


def _coerce_entries(entries: Iterable[EntryLike]) -> List[ArchiveEntry]:
    return [
        entry if isinstance(entry, ArchiveEntry) else ArchiveEntry(*entry)
        for entry in entries
    ]


class ArchiveBuilder:
    """
    Packs ordered (name, bytes) entries into a single in-memory archive.

    Entries are stored without compression, so the output is a pure function
    of entry order and content: timestamps, attributes and comments are zero.
    """

    def validate(self, entries: Sequence[ArchiveEntry]) -> None:
        """Raise SizeError when the entries cannot be represented in the format."""
        if len(entries) > MAX_ENTRIES:
            raise SizeError(
                f"Too many files to archive: {len(entries)} (max {MAX_ENTRIES})"
            )
        offset = 0
        directory_size = 0
        for entry in entries:
            name_length = len(entry.encoded_name)
            if name_length > MAX_NAME_LENGTH:
                raise SizeError(f"File name too long: {entry.name[:64]}...")
            if len(entry.data) > MAX_ENTRY_SIZE:
                raise SizeError(f"File data too large for archive: {entry.name}")
            if offset > MAX_OFFSET:
                raise SizeError("Archive exceeds the 4 GiB offset limit")
            offset += LOCAL_HEADER_SIZE + name_length + len(entry.data)
            directory_size += CENTRAL_RECORD_SIZE + name_length

        # the central directory offset and size are 32-bit fields too
        if offset > MAX_OFFSET or directory_size > MAX_OFFSET:
            raise SizeError("Archive exceeds the 4 GiB offset limit")

    def build(self, entries: Iterable[EntryLike]) -> bytes:
        """
        Build the archive.

        Args:
            entries: Ordered entries, as ArchiveEntry or (name, bytes) tuples

        Returns:
            The complete archive bytes

        Raises:
            SizeError: If the entry count, a name length, an entry size or an
                offset exceeds the format limits. Validation happens before any
                output is built.
        """
        archive_entries = _coerce_entries(entries)
        self.validate(archive_entries)

        body = bytearray()
        central_directory = bytearray()

        for entry in archive_entries:
            name = entry.encoded_name
            size = len(entry.data)
            checksum = crc32(entry.data)
            offset = len(body)

            body += self._local_header(name, checksum, size)
            body += entry.data
            central_directory += self._central_record(name, checksum, size, offset)

        directory_offset = len(body)
        body += central_directory
        body += self._end_record(
            len(archive_entries), len(central_directory), directory_offset
        )
        return bytes(body)

    @staticmethod
    def _local_header(name: bytes, checksum: int, size: int) -> bytes:
        return (
            struct.pack(
                "<IHHHHHIIIHH",
                LOCAL_FILE_SIGNATURE,
                VERSION,  # version needed to extract
                0,  # flags
                METHOD_STORE,
                0,  # mod time
                0,  # mod date
                checksum,
                size,  # compressed
                size,  # uncompressed
                len(name),
                0,  # extra length
            )
            + name
        )

    @staticmethod
    def _central_record(name: bytes, checksum: int, size: int, offset: int) -> bytes:
        return (
            struct.pack(
                "<IHHHHHHIIIHHHHHII",
                CENTRAL_DIRECTORY_SIGNATURE,
                VERSION,  # version made by
                VERSION,  # version needed to extract
                0,  # flags
                METHOD_STORE,
                0,  # mod time
                0,  # mod date
                checksum,
                size,
                size,
                len(name),
                0,  # extra length
                0,  # comment length
                0,  # disk number start
                0,  # internal attributes
                0,  # external attributes
                offset,
            )
            + name
        )

    @staticmethod
    def _end_record(count: int, directory_size: int, directory_offset: int) -> bytes:
        return struct.pack(
            "<IHHHHIIH",
            END_OF_DIRECTORY_SIGNATURE,
            0,  # this disk
            0,  # disk with central directory
            count,
            count,
            directory_size,
            directory_offset,
            0,  # comment length
        )
