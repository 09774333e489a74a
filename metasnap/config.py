from __future__ import annotations

import json
import os
import shlex
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

import click


APP_VERSION = "1.0.0"
CONFIG_FILENAME = ".metasnap.json"
OPTIONS_ENVVAR = "METASNAP_OPTIONS"
DEFAULT_METAFILE = "./.metadata"
VCS_DIR_NAME = ".git"


@dataclass(slots=True)
class Settings:
    metafile: str = DEFAULT_METAFILE
    compare_mtime: bool = False
    recreate_empty_dirs: bool = False
    remove_empty_dirs: bool = False
    include_vcs_dirs: bool = False
    vcs_dir_name: str = VCS_DIR_NAME
    verbosity: int = 0


def config_path(home: Path | None = None) -> Path:
    return (home or Path.home()) / CONFIG_FILENAME


def load_settings(
    home: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> Settings:
    """
    Builds `Settings` from the per-user JSON file and the options variable.

    The environment variable wins over the file; command line flags are
    applied on top of the result by the caller.
    """
    settings = Settings()
    path = config_path(home)
    if path.is_file():
        with path.open("r", encoding="utf-8") as fh:
            data = json.load(fh)
        _apply_config_data(settings, data, path)

    environ = os.environ if environ is None else environ
    options = environ.get(OPTIONS_ENVVAR, "")
    if options.strip():
        _apply_option_tokens(settings, shlex.split(options))
    return settings


def _apply_config_data(settings: Settings, data: Any, source: Path) -> None:
    if not isinstance(data, dict):
        raise ValueError(f"Config file {source} must contain a JSON object.")

    for key, value in data.items():
        if key == "file":
            if not isinstance(value, str) or not value:
                raise ValueError(f"Config key 'file' in {source} must be a non-empty string.")
            settings.metafile = value
        elif key in {"mtime", "git", "empty_dirs", "remove_empty_dirs"}:
            if not isinstance(value, bool):
                raise ValueError(f"Config key '{key}' in {source} must be true or false.")
            _set_flag(settings, key, value)
        elif key == "verbosity":
            if not isinstance(value, int) or isinstance(value, bool):
                raise ValueError(f"Config key 'verbosity' in {source} must be an integer.")
            settings.verbosity = value
        else:
            raise ValueError(f"Unknown config key '{key}' in {source}.")


def _set_flag(settings: Settings, key: str, value: bool) -> None:
    if key == "mtime":
        settings.compare_mtime = value
    elif key == "git":
        settings.include_vcs_dirs = value
    elif key == "empty_dirs":
        settings.recreate_empty_dirs = value
    elif key == "remove_empty_dirs":
        settings.remove_empty_dirs = value


# Same option set as the command line.
_OPTIONS_COMMAND = click.Command(
    OPTIONS_ENVVAR,
    params=[
        click.Option(["-m", "--mtime"], is_flag=True),
        click.Option(["-g", "--git"], is_flag=True),
        click.Option(["-e", "--empty-dirs", "empty_dirs"], is_flag=True),
        click.Option(["-E", "--remove-empty-dirs", "remove_empty_dirs"], is_flag=True),
        click.Option(["-v", "--verbose"], count=True),
        click.Option(["-q", "--quiet"], count=True),
        click.Option(["-f", "--file", "metafile"], default=None),
    ],
    add_help_option=False,
)


def _apply_option_tokens(settings: Settings, tokens: list[str]) -> None:
    try:
        ctx = _OPTIONS_COMMAND.make_context(OPTIONS_ENVVAR, tokens)
    except click.ClickException as exc:
        raise ValueError(f"{OPTIONS_ENVVAR}: {exc.format_message()}") from exc

    params = ctx.params
    for key in ("mtime", "git", "empty_dirs", "remove_empty_dirs"):
        if params[key]:
            _set_flag(settings, key, True)
    settings.verbosity += params["verbose"] - params["quiet"]
    if params["metafile"]:
        settings.metafile = params["metafile"]
