"""
Reads and writes snapshot files.

A snapshot starts with a 10 byte signature and an 8 byte version tag,
followed by entries until the end of the file. Each entry holds the
NUL-terminated path, owner and group, the mtime seconds and nanoseconds
(8 bytes each), the mode (2 bytes) and the number of extended attributes
(4 bytes), then per attribute the NUL-terminated name, a 4 byte value length
and the raw value. All integers are little-endian.
"""

from __future__ import annotations

import logging
import mmap
import os
import struct
from pathlib import Path

from metasnap.models import MODE_MASK, MetaEntry
from metasnap.store import EntryStore


logger = logging.getLogger(__name__)

SIGNATURE = b"MeTaSt00r3"
VERSION = b"\0" * 8
HEADER_SIZE = len(SIGNATURE) + len(VERSION)

_U16 = struct.Struct("<H")
_U32 = struct.Struct("<I")
_U64 = struct.Struct("<Q")
_S64 = struct.Struct("<q")
_U64_MASK = (1 << 64) - 1


class SnapshotError(Exception):
    """A snapshot file could not be read or written."""


class SnapshotSizeError(SnapshotError):
    pass


class SnapshotSignatureError(SnapshotError):
    pass


class SnapshotVersionError(SnapshotError):
    pass


class CorruptSnapshotError(SnapshotError):
    pass


class TruncatedSnapshotError(CorruptSnapshotError):
    """A read ran past the end of the snapshot data."""


class ByteCursor:
    """
    Sequential reader over an immutable buffer.

    Every read is bounds-checked and raises `TruncatedSnapshotError` instead
    of returning short data.
    """

    def __init__(self, buffer: bytes | mmap.mmap, offset: int = 0) -> None:
        self._buffer = buffer
        self._end = len(buffer)
        self._pos = offset

    @property
    def position(self) -> int:
        return self._pos

    @property
    def at_end(self) -> bool:
        return self._pos >= self._end

    def peek(self) -> int:
        if self._pos >= self._end:
            raise TruncatedSnapshotError("Attempt to read beyond end of file, corrupt file?")
        return self._buffer[self._pos]

    def read(self, size: int) -> bytes:
        if size < 0 or self._pos + size > self._end:
            raise TruncatedSnapshotError("Attempt to read beyond end of file, corrupt file?")
        data = bytes(self._buffer[self._pos:self._pos + size])
        self._pos += size
        return data

    def read_uint(self, codec: struct.Struct) -> int:
        return codec.unpack(self.read(codec.size))[0]

    def read_cstring(self) -> bytes:
        terminator = self._buffer.find(b"\0", self._pos)
        if terminator < 0:
            raise TruncatedSnapshotError("Attempt to read beyond end of file, corrupt file?")
        data = self.read(terminator - self._pos)
        self._pos += 1
        return data


def _cstring(value: str) -> bytes:
    raw = os.fsencode(value)
    if b"\0" in raw:
        raise ValueError(f"Embedded NUL in {value!r}")
    return raw + b"\0"


def encode_entry(entry: MetaEntry) -> bytes:
    parts = [
        _cstring(entry.path),
        _cstring(entry.owner),
        _cstring(entry.group),
        _U64.pack(entry.mtime_sec & _U64_MASK),
        _U64.pack(entry.mtime_nsec & _U64_MASK),
        _U16.pack(entry.mode & MODE_MASK),
        _U32.pack(len(entry.xattrs)),
    ]
    for name, value in entry.xattrs:
        parts.append(_cstring(name))
        parts.append(_U32.pack(len(value)))
        parts.append(value)
    return b"".join(parts)


def save_store(store: EntryStore, path: str | os.PathLike[str]) -> int:
    """Writes every entry of `store` to `path`. Returns the entry count."""
    try:
        fh = open(path, "wb")
    except OSError as exc:
        raise SnapshotError(f"Failed to open {path}: {exc.strerror or exc}") from exc

    count = 0
    with fh:
        try:
            fh.write(SIGNATURE)
            fh.write(VERSION)
            for entry in store:
                fh.write(encode_entry(entry))
                count += 1
        except OSError as exc:
            raise SnapshotError(f"Failed to write to {path}: {exc.strerror or exc}") from exc

    logger.debug("%d entries written to %s", count, path)
    return count


def _decode_entry(cursor: ByteCursor) -> MetaEntry:
    path = os.fsdecode(cursor.read_cstring())
    owner = os.fsdecode(cursor.read_cstring())
    group = os.fsdecode(cursor.read_cstring())
    mtime_sec = _S64.unpack(cursor.read(_S64.size))[0]
    mtime_nsec = cursor.read_uint(_U64)
    mode = cursor.read_uint(_U16)
    count = cursor.read_uint(_U32)

    xattrs: list[tuple[str, bytes]] = []
    for _ in range(count):
        name = os.fsdecode(cursor.read_cstring())
        length = cursor.read_uint(_U32)
        xattrs.append((name, cursor.read(length)))

    return MetaEntry(
        path=path,
        owner=owner,
        group=group,
        mode=mode,
        mtime_sec=mtime_sec,
        mtime_nsec=mtime_nsec,
        xattrs=xattrs,
    )


def decode_store(buffer: bytes | mmap.mmap, store: EntryStore | None = None) -> EntryStore:
    """
    Parses a complete snapshot held in `buffer`.

    Entries are added to `store` only once the whole buffer has been parsed,
    so a failure never leaves a partially filled store behind.
    """
    if len(buffer) < HEADER_SIZE:
        raise SnapshotSizeError("Snapshot has an invalid size")

    cursor = ByteCursor(buffer)
    if cursor.read(len(SIGNATURE)) != SIGNATURE:
        raise SnapshotSignatureError("Invalid signature")
    if cursor.read(len(VERSION)) != VERSION:
        raise SnapshotVersionError("Invalid version")

    entries: list[MetaEntry] = []
    while not cursor.at_end:
        if cursor.peek() == 0:
            raise CorruptSnapshotError(f"Invalid characters at offset {cursor.position}")
        entries.append(_decode_entry(cursor))

    store = store if store is not None else EntryStore()
    for entry in entries:
        store.add(entry)
    return store


def load_store(path: str | os.PathLike[str], store: EntryStore | None = None) -> EntryStore:
    """Loads the snapshot file at `path`, raising `SnapshotError` on any problem."""
    try:
        fh = Path(path).open("rb")
    except OSError as exc:
        raise SnapshotError(f"Failed to open {path}: {exc.strerror or exc}") from exc

    with fh:
        size = os.fstat(fh.fileno()).st_size
        if size < HEADER_SIZE:
            raise SnapshotSizeError(f"File {path} has an invalid size")
        try:
            mapped = mmap.mmap(fh.fileno(), 0, access=mmap.ACCESS_READ)
        except (OSError, ValueError) as exc:
            raise SnapshotError(f"Unable to mmap {path}: {exc}") from exc

        with mapped:
            try:
                result = decode_store(mapped, store)
            except SnapshotError as exc:
                raise type(exc)(f"{exc} in file {path}") from exc

    logger.debug("%d entries read from %s", len(result), path)
    return result
