from __future__ import annotations

import grp
import pwd
from typing import Callable, Iterable


IdSource = Callable[[], Iterable[tuple[int, str]]]


def _system_users() -> list[tuple[int, str]]:
    return [(entry.pw_uid, entry.pw_name) for entry in pwd.getpwall()]


def _system_groups() -> list[tuple[int, str]]:
    return [(entry.gr_gid, entry.gr_name) for entry in grp.getgrall()]


class _IdTable:
    def __init__(self, source: IdSource) -> None:
        self._source = source
        self._names: dict[int, str] | None = None
        self._ids: dict[str, int] | None = None

    def _load(self) -> None:
        names: dict[int, str] = {}
        ids: dict[str, int] = {}
        for ident, name in self._source():
            names.setdefault(ident, name)
            ids.setdefault(name, ident)
        self._names = names
        self._ids = ids

    def name(self, ident: int) -> str | None:
        if self._names is None:
            self._load()
        return self._names.get(ident)

    def ident(self, name: str) -> int | None:
        if self._ids is None:
            self._load()
        return self._ids.get(name)


class IdentityCache:
    """
    Resolves numeric user/group ids to names and back.

    Both tables are read once, on the first lookup, and are then kept for the
    lifetime of the cache. The first name seen for an id (and the first id
    seen for a name) wins, matching the order of the account database.

    Args:
        user_source:
          Callable returning `(uid, name)` pairs. Defaults to `pwd.getpwall`.
        group_source:
          Callable returning `(gid, name)` pairs. Defaults to `grp.getgrall`.
    """

    def __init__(
        self,
        user_source: IdSource | None = None,
        group_source: IdSource | None = None,
    ) -> None:
        self._users = _IdTable(user_source or _system_users)
        self._groups = _IdTable(group_source or _system_groups)

    def user_name(self, uid: int) -> str | None:
        return self._users.name(uid)

    def user_id(self, name: str) -> int | None:
        return self._users.ident(name)

    def group_name(self, gid: int) -> str | None:
        return self._groups.name(gid)

    def group_id(self, name: str) -> int | None:
        return self._groups.ident(name)
