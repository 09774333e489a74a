"""Shared fixtures for metasnap tests.

The ``pytest`` console script can run with a sys.path that excludes the
repository root. Ensure ``import metasnap`` resolves to the local package.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest


PROJECT_ROOT = Path(__file__).resolve().parent.parent
PROJECT_ROOT_STR = str(PROJECT_ROOT)

if PROJECT_ROOT_STR not in sys.path:
    sys.path.insert(0, PROJECT_ROOT_STR)

from metasnap.identity import IdentityCache  # noqa: E402
from tests.fakes import MemoryXattrFilesystem, RecordingFilesystem  # noqa: E402


OTHER_UID = 4242
OTHER_GID = 4343


def make_identity() -> IdentityCache:
    return IdentityCache(
        user_source=lambda: [(os.getuid(), "alice"), (OTHER_UID, "bob")],
        group_source=lambda: [(os.getgid(), "staff"), (OTHER_GID, "wheel")],
    )


@pytest.fixture
def identity() -> IdentityCache:
    """Identity cache naming the current uid/gid alice/staff."""
    return make_identity()


@pytest.fixture
def memfs() -> MemoryXattrFilesystem:
    return MemoryXattrFilesystem()


@pytest.fixture
def recfs() -> RecordingFilesystem:
    return RecordingFilesystem()


@pytest.fixture
def workdir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """An empty working tree, made the current directory."""
    tree = tmp_path.resolve() / "tree"
    tree.mkdir()
    tree.chmod(0o755)
    monkeypatch.chdir(tree)
    return tree


@pytest.fixture
def metafile(tmp_path: Path) -> Path:
    """Snapshot location outside the working tree."""
    return tmp_path.resolve() / "snapshot.meta"
