from __future__ import annotations

import stat
from datetime import datetime
from typing import Iterable, Iterator

from metasnap.models import MetaEntry


def format_xattr_value(value: bytes) -> str:
    """Quotes printable ASCII values and hex-encodes everything else."""
    if all(32 <= byte <= 126 for byte in value):
        return f'"{value.decode("ascii")}"'
    return "0x" + value.hex()


def format_mtime(entry: MetaEntry) -> str:
    try:
        moment = datetime.fromtimestamp(entry.mtime_sec).astimezone()
    except (OverflowError, ValueError, OSError):
        # Outside the platform time range; show the raw value.
        return f"{entry.mtime_sec}.{entry.mtime_nsec:09d}"
    return f"{moment:%Y-%m-%d %H:%M:%S}.{entry.mtime_nsec:09d} {moment:%z}"


def dump_lines(entries: Iterable[MetaEntry]) -> Iterator[str]:
    for entry in entries:
        shown_path = entry.path + ("/" if entry.is_dir else "")
        yield "\t".join(
            (
                stat.filemode(entry.mode),
                entry.owner,
                entry.group,
                format_mtime(entry),
                shown_path,
            )
        )
        for name, value in entry.xattrs:
            yield f"\t\t\t\t{shown_path}\t{name}={format_xattr_value(value)}"
