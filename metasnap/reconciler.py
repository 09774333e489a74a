"""
Brings live metadata in line with a snapshot, or reports how they differ.

`report` turns difference records into printable lines. `Reconciler.apply`
fixes ownership, mode, mtime and extended attributes path by path and hands
back the directories that are missing from, or extra on, the filesystem so
the optional empty-directory passes can run afterwards.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import PurePosixPath
from typing import Iterable, Iterator

from metasnap.collector import collect_entry
from metasnap.differ import compare_entries
from metasnap.fsops import LocalFilesystem
from metasnap.identity import IdentityCache
from metasnap.models import DiffKind, DiffRecord, MetaEntry


logger = logging.getLogger(__name__)

_FIELD_WORDS = (
    (DiffKind.ADDED, "added"),
    (DiffKind.DELETED, "removed"),
    (DiffKind.OWNER, "owner"),
    (DiffKind.GROUP, "group"),
    (DiffKind.MODE, "mode"),
    (DiffKind.TYPE, "type"),
    (DiffKind.MTIME, "mtime"),
    (DiffKind.XATTR, "xattr"),
)


def describe_difference(record: DiffRecord) -> str | None:
    if record.kind == DiffKind.NONE:
        return None
    words = [word for flag, word in _FIELD_WORDS if record.kind & flag]
    return f"{record.path}:\t{' '.join(words)}"


def report(records: Iterable[DiffRecord]) -> Iterator[str]:
    for record in records:
        line = describe_difference(record)
        if line is None:
            logger.debug("%s:\tno difference", record.path)
            continue
        yield line


@dataclass(slots=True)
class PendingDirectories:
    """Side lists gathered while applying a snapshot."""

    missing_dirs: list[MetaEntry] = field(default_factory=list)
    missing_others: list[MetaEntry] = field(default_factory=list)
    extra_dirs: list[MetaEntry] = field(default_factory=list)

    def add_missing(self, entry: MetaEntry) -> None:
        target = self.missing_dirs if entry.is_dir else self.missing_others
        _insert_by_length(target, entry, descending=False)

    def add_extra(self, entry: MetaEntry) -> None:
        _insert_by_length(self.extra_dirs, entry, descending=True)


def _insert_by_length(entries: list[MetaEntry], entry: MetaEntry, *, descending: bool) -> None:
    # Equal lengths keep arrival order.
    length = len(entry.path)
    for index, current in enumerate(entries):
        current_length = len(current.path)
        if (current_length < length) if descending else (current_length > length):
            entries.insert(index, entry)
            return
    entries.append(entry)


def _is_within(path: str, directory: str) -> bool:
    candidate = PurePosixPath(path)
    base = PurePosixPath(directory)
    return candidate != base and base in candidate.parents


def prune_missing_dirs(
    missing_dirs: list[MetaEntry],
    missing_others: Iterable[MetaEntry],
) -> list[MetaEntry]:
    """
    Drops directories whose removal looks intentional.

    If file x/y/z is missing as well as directory x/y, the directory was most
    likely deleted on purpose rather than dropped for being empty, so x/y and
    every missing directory below it are left alone.
    """
    candidates = list(missing_dirs)
    logger.debug("List of candidate dirs: %s", ", ".join(entry.path for entry in candidates))

    for other in missing_others:
        logger.debug("Pruning using file %s", other.path)
        if "/" not in other.path:
            logger.info("No delimiter found in %s", other.path)
            continue
        parent = other.path.rsplit("/", 1)[0] or "/"

        kept: list[MetaEntry] = []
        for entry in candidates:
            if PurePosixPath(entry.path) == PurePosixPath(parent):
                logger.debug("Prune phase 1 - %s", entry.path)
            elif _is_within(entry.path, parent):
                logger.debug("Prune phase 2 - %s", entry.path)
            else:
                kept.append(entry)
        candidates = kept

    return candidates


class Reconciler:
    """
    Applies stored metadata to the live filesystem.

    Every field is fixed independently: a failing ownership, mode, mtime or
    xattr change is logged and the remaining fields and paths still get
    processed.
    """

    def __init__(
        self,
        fs: LocalFilesystem,
        identity: IdentityCache,
        *,
        compare_mtime: bool = False,
        metafile: str | None = None,
    ) -> None:
        self.fs = fs
        self.identity = identity
        self.compare_mtime = compare_mtime
        self.metafile = metafile

    def apply(self, records: Iterable[DiffRecord]) -> PendingDirectories:
        pending = PendingDirectories()
        for record in records:
            self.fix(record, pending)
        return pending

    def fix(self, record: DiffRecord, pending: PendingDirectories) -> None:
        real, stored, kind = record.real, record.stored, record.kind

        if real is None:
            logger.info("%s:\tremoved", record.path)
            pending.add_missing(stored)
            return

        if stored is None:
            if real.is_dir:
                pending.add_extra(real)
            logger.info("%s:\tadded", real.path)
            return

        if kind == DiffKind.NONE:
            logger.debug("%s:\tno difference", real.path)
            return

        if kind & DiffKind.TYPE:
            logger.info("%s:\tnew type, will not change metadata", real.path)
            return

        logger.warning("%s:\tchanging metadata", real.path)

        if kind & (DiffKind.OWNER | DiffKind.GROUP):
            self._fix_ownership(real, stored, kind)
        if kind & DiffKind.MODE:
            self._fix_mode(real, stored)
        if kind & DiffKind.MTIME:
            self._fix_mtime(real, stored)
        if kind & DiffKind.XATTR:
            self._fix_xattrs(real, stored)

    def _fix_ownership(self, real: MetaEntry, stored: MetaEntry, kind: DiffKind) -> None:
        uid = gid = -1

        if kind & DiffKind.OWNER:
            logger.info("%s:\tchanging owner from %s to %s", real.path, real.owner, stored.owner)
            resolved = self.identity.user_id(stored.owner)
            if resolved is None:
                logger.debug("\tgetpwnam failed: user %s not found", stored.owner)
                return
            uid = resolved

        if kind & DiffKind.GROUP:
            logger.info("%s:\tchanging group from %s to %s", real.path, real.group, stored.group)
            resolved = self.identity.group_id(stored.group)
            if resolved is None:
                logger.debug("\tgetgrnam failed: group %s not found", stored.group)
                return
            gid = resolved

        try:
            self.fs.chown(real.path, uid, gid)
        except OSError as exc:
            logger.debug("\tlchown failed: %s", exc.strerror or exc)

    def _fix_mode(self, real: MetaEntry, stored: MetaEntry) -> None:
        logger.info(
            "%s:\tchanging mode from 0%o to 0%o",
            real.path,
            real.permissions,
            stored.permissions,
        )
        try:
            self.fs.chmod(real.path, stored.permissions)
        except OSError as exc:
            logger.debug("\tchmod failed: %s", exc.strerror or exc)

    def _fix_mtime(self, real: MetaEntry, stored: MetaEntry) -> None:
        if real.is_symlink:
            logger.info("%s:\tsymlink, not changing mtime", real.path)
            return
        logger.info(
            "%s:\tchanging mtime from %d.%09d to %d.%09d",
            real.path,
            real.mtime_sec,
            real.mtime_nsec,
            stored.mtime_sec,
            stored.mtime_nsec,
        )
        try:
            self.fs.set_mtime(real.path, stored.mtime_sec, stored.mtime_nsec)
        except OSError as exc:
            logger.debug("\tutime failed: %s", exc.strerror or exc)

    def _fix_xattrs(self, real: MetaEntry, stored: MetaEntry) -> None:
        for name, value in real.xattrs:
            if stored.has_xattr(name, value):
                continue
            logger.info("%s:\tremoving xattr %s", real.path, name)
            try:
                self.fs.xattr_remove(real.path, name)
            except OSError as exc:
                logger.debug("\tlremovexattr failed: %s", exc.strerror or exc)

        # Changed values were removed above, so create-only is enough here.
        for name, value in stored.xattrs:
            if real.has_xattr(name, value):
                continue
            logger.info("%s:\tadding xattr %s", stored.path, name)
            try:
                self.fs.xattr_set(stored.path, name, value, create_only=True)
            except OSError as exc:
                logger.debug("\tlsetxattr failed: %s", exc.strerror or exc)

    def recreate_missing_dirs(self, pending: PendingDirectories) -> list[str]:
        """
        Recreates missing directories that were most likely elided for being
        empty. Returns the paths that were created.
        """
        if not pending.missing_dirs:
            return []
        logger.debug("Attempting to recreate missing dirs")

        recreated: list[str] = []
        for stored in prune_missing_dirs(pending.missing_dirs, pending.missing_others):
            try:
                self.fs.mkdir(stored.path, stored.permissions)
            except OSError as exc:
                logger.error("%s:\trecreating failed (%s)", stored.path, exc.strerror or exc)
                continue
            logger.warning("%s:\trecreated", stored.path)
            recreated.append(stored.path)

            # mkdir only sets the mode; owner, group and mtime need a fix pass.
            created = collect_entry(stored.path, self.fs, self.identity)
            if created is None:
                logger.error("Failed to get metadata for %s", stored.path)
                continue
            kind = compare_entries(
                created,
                stored,
                compare_mtime=self.compare_mtime,
                metafile=self.metafile,
            )
            self.fix(DiffRecord(real=created, stored=stored, kind=kind), PendingDirectories())

        return recreated

    def remove_extra_dirs(self, pending: PendingDirectories) -> list[str]:
        """
        Removes directories that are absent from the snapshot and empty.

        Nested empty directories may be tried before their children are gone,
        so the list is retried until a full pass removes nothing. That is
        quadratic in the number of directories.
        """
        remaining = list(pending.extra_dirs)
        removed: list[str] = []

        removed_any = True
        while removed_any and remaining:
            removed_any = False
            logger.debug("Attempting to delete empty dirs")
            still_present: list[MetaEntry] = []
            for entry in remaining:
                try:
                    self.fs.rmdir(entry.path)
                except OSError as exc:
                    logger.info("%s:\tremoving failed (%s)", entry.path, exc.strerror or exc)
                    still_present.append(entry)
                    continue
                logger.warning("%s:\tremoved", entry.path)
                removed.append(entry.path)
                removed_any = True
            remaining = still_present

        pending.extra_dirs = remaining
        return removed
