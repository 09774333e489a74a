from __future__ import annotations

import stat
from dataclasses import dataclass, field
from enum import IntFlag


PERMISSION_MASK = 0o7777
MODE_MASK = 0o177777


class DiffKind(IntFlag):
    NONE = 0x00
    OWNER = 0x01
    GROUP = 0x02
    MODE = 0x04
    TYPE = 0x08
    MTIME = 0x10
    XATTR = 0x20
    ADDED = 0x40
    DELETED = 0x80


@dataclass(slots=True)
class MetaEntry:
    path: str
    owner: str
    group: str
    mode: int
    mtime_sec: int
    mtime_nsec: int
    xattrs: list[tuple[str, bytes]] = field(default_factory=list)

    @property
    def file_type(self) -> int:
        return stat.S_IFMT(self.mode)

    @property
    def permissions(self) -> int:
        return self.mode & PERMISSION_MASK

    @property
    def is_dir(self) -> bool:
        return stat.S_ISDIR(self.mode)

    @property
    def is_symlink(self) -> bool:
        return stat.S_ISLNK(self.mode)

    def has_xattr(self, name: str, value: bytes) -> bool:
        """True if an attribute with exactly this name and value is present."""
        for own_name, own_value in self.xattrs:
            if own_name != name:
                continue
            return own_value == value
        return False


@dataclass(slots=True)
class DiffRecord:
    real: MetaEntry | None
    stored: MetaEntry | None
    kind: DiffKind

    @property
    def path(self) -> str:
        entry = self.real if self.real is not None else self.stored
        if entry is None:
            raise ValueError("DiffRecord has neither a real nor a stored entry")
        return entry.path
