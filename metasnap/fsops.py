from __future__ import annotations

import errno
import os

import xattr


class LocalFilesystem:
    """
    Thin wrapper over the platform metadata primitives.

    Nothing here follows symlinks except `chmod`, which has no portable
    non-dereferencing form. Every method raises `OSError` on failure and the
    caller decides how severe that is. Extended attributes go through the
    `xattr` package, which covers Linux, macOS and the BSDs.
    """

    def lstat(self, path: str) -> os.stat_result:
        return os.lstat(path)

    def list_dir(self, path: str) -> list[str]:
        return os.listdir(path)

    def xattr_list(self, path: str) -> list[str]:
        return list(xattr.listxattr(path, symlink=True))

    def xattr_get(self, path: str, name: str) -> bytes:
        return xattr.getxattr(path, name, symlink=True)

    def xattr_set(self, path: str, name: str, value: bytes, create_only: bool = True) -> None:
        options = xattr.XATTR_CREATE if create_only else 0
        xattr.setxattr(path, name, value, options=options, symlink=True)

    def xattr_remove(self, path: str, name: str) -> None:
        xattr.removexattr(path, name, symlink=True)

    def chmod(self, path: str, bits: int) -> None:
        os.chmod(path, bits)

    def chown(self, path: str, uid: int, gid: int) -> None:
        os.chown(path, uid, gid, follow_symlinks=False)

    def set_mtime(self, path: str, sec: int, nsec: int) -> None:
        # Access time is carried over unchanged.
        current = os.lstat(path)
        mtime_ns = sec * 1_000_000_000 + nsec
        os.utime(path, ns=(current.st_atime_ns, mtime_ns), follow_symlinks=False)

    def mkdir(self, path: str, mode: int) -> None:
        os.mkdir(path, mode)

    def rmdir(self, path: str) -> None:
        os.rmdir(path)


def is_unsupported(exc: OSError) -> bool:
    return exc.errno in {errno.ENOTSUP, errno.EOPNOTSUPP}
