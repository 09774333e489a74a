"""Settings from the per-user config file and the options variable."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from metasnap.config import (
    CONFIG_FILENAME,
    DEFAULT_METAFILE,
    OPTIONS_ENVVAR,
    Settings,
    config_path,
    load_settings,
)


def _write_config(home: Path, data) -> None:
    (home / CONFIG_FILENAME).write_text(json.dumps(data), encoding="utf-8")


def test_defaults_without_file_or_env(tmp_path: Path) -> None:
    settings = load_settings(home=tmp_path, environ={})

    assert settings == Settings()
    assert settings.metafile == DEFAULT_METAFILE
    assert settings.vcs_dir_name == ".git"


def test_config_path_is_in_home(tmp_path: Path) -> None:
    assert config_path(tmp_path) == tmp_path / ".metasnap.json"


def test_config_file_values(tmp_path: Path) -> None:
    _write_config(
        tmp_path,
        {
            "file": "snap.meta",
            "mtime": True,
            "git": True,
            "empty_dirs": True,
            "remove_empty_dirs": True,
            "verbosity": -1,
        },
    )

    settings = load_settings(home=tmp_path, environ={})

    assert settings.metafile == "snap.meta"
    assert settings.compare_mtime
    assert settings.include_vcs_dirs
    assert settings.recreate_empty_dirs
    assert settings.remove_empty_dirs
    assert settings.verbosity == -1


def test_environment_options_apply_after_file(tmp_path: Path) -> None:
    _write_config(tmp_path, {"file": "from-file", "verbosity": 1})

    settings = load_settings(
        home=tmp_path,
        environ={OPTIONS_ENVVAR: "-m -e -v --file 'with space.meta' -q -q"},
    )

    assert settings.metafile == "with space.meta"
    assert settings.compare_mtime
    assert settings.recreate_empty_dirs
    assert not settings.remove_empty_dirs
    assert settings.verbosity == 0


def test_environment_file_equals_form(tmp_path: Path) -> None:
    settings = load_settings(home=tmp_path, environ={OPTIONS_ENVVAR: "--file=x.meta -g -E"})

    assert settings.metafile == "x.meta"
    assert settings.include_vcs_dirs
    assert settings.remove_empty_dirs


def test_environment_combined_short_flags(tmp_path: Path) -> None:
    settings = load_settings(home=tmp_path, environ={OPTIONS_ENVVAR: "-mg -vvq -Ef snap.meta"})

    assert settings.compare_mtime
    assert settings.include_vcs_dirs
    assert settings.remove_empty_dirs
    assert not settings.recreate_empty_dirs
    assert settings.verbosity == 1
    assert settings.metafile == "snap.meta"


@pytest.mark.parametrize(
    "options",
    ["--bogus", "-f", "save"],
)
def test_bad_environment_options(tmp_path: Path, options: str) -> None:
    with pytest.raises(ValueError, match=OPTIONS_ENVVAR):
        load_settings(home=tmp_path, environ={OPTIONS_ENVVAR: options})


@pytest.mark.parametrize(
    "data",
    [
        ["not", "an", "object"],
        {"file": ""},
        {"mtime": "yes"},
        {"verbosity": True},
        {"colour": "blue"},
    ],
)
def test_bad_config_values(tmp_path: Path, data) -> None:
    _write_config(tmp_path, data)

    with pytest.raises(ValueError):
        load_settings(home=tmp_path, environ={})


def test_malformed_json_is_a_value_error(tmp_path: Path) -> None:
    (tmp_path / CONFIG_FILENAME).write_text("{not json", encoding="utf-8")

    with pytest.raises(ValueError):
        load_settings(home=tmp_path, environ={})
