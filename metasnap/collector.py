from __future__ import annotations

import logging
import os
import stat
from typing import TYPE_CHECKING, Iterable

from metasnap.config import Settings
from metasnap.fsops import LocalFilesystem, is_unsupported
from metasnap.identity import IdentityCache
from metasnap.models import MODE_MASK, MetaEntry
from metasnap.store import EntryStore

if TYPE_CHECKING:
    from rich.console import Console


logger = logging.getLogger(__name__)

SKIPPED_NAMES = {".", ".."}


def normalize_path(path: str | os.PathLike[str], cwd: str | None = None) -> str:
    """
    Canonicalizes `path` and expresses it relative to the working directory.

    Paths at or below the working directory come back as `.` or `./<rest>`,
    anything else stays absolute.
    """
    real = os.path.realpath(os.fspath(path))
    cwd = os.path.realpath(cwd if cwd is not None else os.getcwd())

    if real == cwd:
        return "."
    try:
        common = os.path.commonpath([real, cwd])
    except ValueError:
        return real
    if common != cwd:
        return real
    return "./" + os.path.relpath(real, cwd).replace(os.sep, "/")


def _read_xattrs(path: str, fs: LocalFilesystem) -> list[tuple[str, bytes]] | None:
    try:
        names = fs.xattr_list(path)
    except OSError as exc:
        if is_unsupported(exc):
            return []
        logger.error("listxattr failed for %s: %s", path, exc.strerror or exc)
        return None

    xattrs: list[tuple[str, bytes]] = []
    for name in names:
        if not name:
            continue
        try:
            value = fs.xattr_get(path, name)
        except OSError as exc:
            logger.error("getxattr failed for %s: %s", path, exc.strerror or exc)
            return None
        xattrs.append((name, bytes(value)))
    return xattrs


def collect_entry(
    path: str,
    fs: LocalFilesystem,
    identity: IdentityCache,
) -> MetaEntry | None:
    """Reads the metadata of one filesystem object, or returns `None`."""
    try:
        st = fs.lstat(path)
    except OSError as exc:
        logger.error("lstat failed for %s: %s", path, exc.strerror or exc)
        return None

    owner = identity.user_name(st.st_uid)
    if owner is None:
        logger.error("getpwuid failed for %s: uid %d not found", path, st.st_uid)
        return None

    group = identity.group_name(st.st_gid)
    if group is None:
        logger.error("getgrgid failed for %s: gid %d not found", path, st.st_gid)
        return None

    entry = MetaEntry(
        path=path,
        owner=owner,
        group=group,
        mode=st.st_mode & MODE_MASK,
        mtime_sec=st.st_mtime_ns // 1_000_000_000,
        mtime_nsec=st.st_mtime_ns % 1_000_000_000,
    )

    # symlinks have no xattrs
    if entry.is_symlink:
        return entry

    xattrs = _read_xattrs(path, fs)
    if xattrs is None:
        return None
    entry.xattrs = xattrs
    return entry


def _walk(
    path: str,
    store: EntryStore,
    fs: LocalFilesystem,
    identity: IdentityCache,
    skip_names: set[str],
) -> None:
    entry = collect_entry(path, fs, identity)
    if entry is None:
        return
    store.add(entry)

    if not stat.S_ISDIR(entry.mode):
        return

    try:
        children = fs.list_dir(path)
    except OSError as exc:
        logger.error("opendir failed for %s: %s", path, exc.strerror or exc)
        return

    for name in sorted(children):
        if name in skip_names:
            continue
        _walk(f"{path.rstrip('/')}/{name}", store, fs, identity, skip_names)


def collect_tree(
    root: str | os.PathLike[str],
    store: EntryStore,
    *,
    fs: LocalFilesystem,
    identity: IdentityCache,
    include_vcs_dirs: bool = False,
    vcs_dir_name: str = ".git",
) -> EntryStore:
    """
    Walks `root` pre-order and adds an entry for every object that could be
    read. Failures are logged and only skip the affected entry or subtree.
    """
    skip_names = set(SKIPPED_NAMES)
    if not include_vcs_dirs:
        skip_names.add(vcs_dir_name)
    _walk(normalize_path(root), store, fs, identity, skip_names)
    return store


def collect_paths(
    paths: Iterable[str],
    settings: Settings,
    *,
    fs: LocalFilesystem | None = None,
    identity: IdentityCache | None = None,
    console: "Console | None" = None,
) -> EntryStore:
    fs = fs or LocalFilesystem()
    identity = identity or IdentityCache()
    store = EntryStore()

    def _collect_all() -> None:
        for path in paths:
            collect_tree(
                path,
                store,
                fs=fs,
                identity=identity,
                include_vcs_dirs=settings.include_vcs_dirs,
                vcs_dir_name=settings.vcs_dir_name,
            )

    if console is not None:
        with console.status("Collecting metadata..."):
            _collect_all()
    else:
        _collect_all()

    logger.debug("%d entries collected", len(store))
    return store
