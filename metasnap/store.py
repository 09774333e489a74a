from __future__ import annotations

import logging
from typing import Iterator

from metasnap.models import MetaEntry


logger = logging.getLogger(__name__)


class EntryStore:
    """
    Collection of `MetaEntry` objects keyed by path.

    Entries are kept in insertion order. A path appears at most once: when a
    second entry arrives for a path that is already stored, the first one is
    kept and the newcomer is dropped.
    """

    def __init__(self) -> None:
        self._entries: list[MetaEntry] = []
        self._index: dict[str, int] = {}

    def add(self, entry: MetaEntry) -> bool:
        """Stores `entry`. Returns `False` if its path was already present."""
        if entry.path in self._index:
            logger.debug("%s:\tduplicate entry ignored", entry.path)
            return False
        self._index[entry.path] = len(self._entries)
        self._entries.append(entry)
        return True

    def get(self, path: str) -> MetaEntry | None:
        index = self._index.get(path)
        if index is None:
            return None
        return self._entries[index]

    def paths(self) -> list[str]:
        return [entry.path for entry in self._entries]

    def __contains__(self, path: object) -> bool:
        return path in self._index

    def __iter__(self) -> Iterator[MetaEntry]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __bool__(self) -> bool:
        return bool(self._entries)
