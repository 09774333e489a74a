"""End-to-end checks of the typer commands."""

from __future__ import annotations

import logging
import os
import stat
from pathlib import Path

import pytest
from typer.testing import CliRunner

from metasnap import cli
from metasnap.codec import SIGNATURE, VERSION
from metasnap.config import APP_VERSION, OPTIONS_ENVVAR
from metasnap.logs import PACKAGE_LOGGER
from tests.conftest import make_identity


runner = CliRunner()


@pytest.fixture(autouse=True)
def isolated_cli(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.delenv(OPTIONS_ENVVAR, raising=False)
    monkeypatch.setattr(cli, "IdentityCache", make_identity)
    yield
    package_logger = logging.getLogger(PACKAGE_LOGGER)
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
    package_logger.setLevel(logging.NOTSET)


@pytest.fixture
def tree(workdir: Path) -> Path:
    (workdir / "a.txt").write_text("a\n", encoding="utf-8")
    (workdir / "a.txt").chmod(0o644)
    (workdir / "sub").mkdir()
    (workdir / "sub").chmod(0o755)
    return workdir


def test_version() -> None:
    result = runner.invoke(cli.app, ["version"])

    assert result.exit_code == 0
    assert f"metasnap {APP_VERSION}" in result.output


def test_save_then_compare_is_clean(tree: Path, metafile: Path) -> None:
    saved = runner.invoke(cli.app, ["save", "-f", str(metafile)])
    assert saved.exit_code == 0, saved.output
    assert "Saved metadata for 3 path(s)" in saved.output
    assert metafile.read_bytes().startswith(SIGNATURE + VERSION)

    compared = runner.invoke(cli.app, ["compare", "-f", str(metafile)])
    assert compared.exit_code == 0, compared.output
    assert ":\t" not in compared.output


def test_compare_then_apply_restores_mode(tree: Path, metafile: Path) -> None:
    runner.invoke(cli.app, ["save", "-f", str(metafile)])
    (tree / "a.txt").chmod(0o600)

    compared = runner.invoke(cli.app, ["compare", "-f", str(metafile)])
    assert compared.exit_code == 0
    assert "./a.txt:\tmode" in compared.output

    applied = runner.invoke(cli.app, ["apply", "-f", str(metafile)])
    assert applied.exit_code == 0, applied.output
    assert stat.S_IMODE(os.lstat(tree / "a.txt").st_mode) == 0o644


def test_apply_recreates_empty_directory(tree: Path, metafile: Path) -> None:
    runner.invoke(cli.app, ["save", "-f", str(metafile)])
    (tree / "sub").rmdir()

    applied = runner.invoke(cli.app, ["apply", "-e", "-f", str(metafile)])

    assert applied.exit_code == 0, applied.output
    assert (tree / "sub").is_dir()
    assert "Recreated (1):" in applied.output


def test_apply_removes_extra_empty_directory(tree: Path, metafile: Path) -> None:
    runner.invoke(cli.app, ["save", "-f", str(metafile)])
    (tree / "extra").mkdir()

    applied = runner.invoke(cli.app, ["apply", "-E", "-f", str(metafile)])

    assert applied.exit_code == 0, applied.output
    assert not (tree / "extra").exists()


def test_environment_options_select_metafile(
    tree: Path, metafile: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv(OPTIONS_ENVVAR, f"--file={metafile}")

    result = runner.invoke(cli.app, ["save"])

    assert result.exit_code == 0, result.output
    assert metafile.is_file()


def test_dump_of_snapshot(tree: Path, metafile: Path) -> None:
    runner.invoke(cli.app, ["save", "-f", str(metafile)])

    result = runner.invoke(cli.app, ["dump", "-f", str(metafile)])

    assert result.exit_code == 0, result.output
    assert "\t./\n" in result.output
    assert "\t./a.txt\n" in result.output
    assert "\t./sub/\n" in result.output


def test_dump_of_live_paths(tree: Path) -> None:
    result = runner.invoke(cli.app, ["dump", "a.txt"])

    assert result.exit_code == 0, result.output
    assert "-rw-r--r--\talice\tstaff\t" in result.output


def test_corrupt_snapshot_fails(tree: Path, metafile: Path) -> None:
    metafile.write_bytes(b"garbage!!!" + VERSION)

    result = runner.invoke(cli.app, ["compare", "-f", str(metafile)])

    assert result.exit_code == 1
    assert "Invalid signature" in result.output


def test_missing_snapshot_fails(tree: Path, metafile: Path) -> None:
    result = runner.invoke(cli.app, ["apply", "-f", str(metafile)])

    assert result.exit_code == 1
    assert "Failed to load metadata from" in result.output


def test_bad_environment_options_fail(tree: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv(OPTIONS_ENVVAR, "--nonsense")

    result = runner.invoke(cli.app, ["compare"])

    assert result.exit_code == 1
    assert "Invalid configuration" in result.output


def test_nothing_collected_fails(tree: Path) -> None:
    result = runner.invoke(cli.app, ["save", "does-not-exist"])

    assert result.exit_code == 1
    assert "Failed to load metadata from file system" in result.output
