from __future__ import annotations

from typing import Iterator

from metasnap.models import DiffKind, DiffRecord, MetaEntry
from metasnap.store import EntryStore


def xattrs_equal(left: MetaEntry, right: MetaEntry) -> bool:
    """True if both entries carry exactly the same (name, value) pairs."""
    if len(left.xattrs) != len(right.xattrs):
        return False

    # Make sure all xattrs in left are found in right and vice versa
    for (left_name, left_value), (right_name, right_value) in zip(left.xattrs, right.xattrs):
        if not right.has_xattr(left_name, left_value):
            return False
        if not left.has_xattr(right_name, right_value):
            return False
    return True


def compare_entries(
    real: MetaEntry,
    stored: MetaEntry,
    *,
    compare_mtime: bool = False,
    metafile: str | None = None,
) -> DiffKind:
    if real.path != stored.path:
        raise ValueError(f"Cannot compare {real.path!r} with {stored.path!r}")

    kind = DiffKind.NONE
    if real.owner != stored.owner:
        kind |= DiffKind.OWNER
    if real.group != stored.group:
        kind |= DiffKind.GROUP
    if real.permissions != stored.permissions:
        kind |= DiffKind.MODE
    if real.file_type != stored.file_type:
        kind |= DiffKind.TYPE

    # The snapshot file changes on every save, so its own mtime is ignored.
    if (
        compare_mtime
        and real.path != metafile
        and (real.mtime_sec != stored.mtime_sec or real.mtime_nsec != stored.mtime_nsec)
    ):
        kind |= DiffKind.MTIME

    if not xattrs_equal(real, stored):
        kind |= DiffKind.XATTR
    return kind


def diff_stores(
    real: EntryStore,
    stored: EntryStore,
    *,
    compare_mtime: bool = False,
    metafile: str | None = None,
) -> Iterator[DiffRecord]:
    """
    Yields one `DiffRecord` for every path present in either store.

    Live entries come first, in collection order, followed by the paths that
    exist only in the snapshot.
    """
    for entry in real:
        other = stored.get(entry.path)
        if other is None:
            yield DiffRecord(real=entry, stored=None, kind=DiffKind.ADDED)
            continue
        kind = compare_entries(entry, other, compare_mtime=compare_mtime, metafile=metafile)
        yield DiffRecord(real=entry, stored=other, kind=kind)

    for entry in stored:
        if entry.path not in real:
            yield DiffRecord(real=None, stored=entry, kind=DiffKind.DELETED)
