from __future__ import annotations

import typer
from rich.console import Console
from rich.text import Text

from metasnap.codec import SnapshotError, load_store, save_store
from metasnap.collector import collect_paths, normalize_path
from metasnap.config import APP_VERSION, Settings, load_settings
from metasnap.differ import diff_stores
from metasnap.dump import dump_lines
from metasnap.fsops import LocalFilesystem
from metasnap.identity import IdentityCache
from metasnap.logs import configure_logging
from metasnap.reconciler import Reconciler, report
from metasnap.store import EntryStore


app = typer.Typer(help="Save and restore file ownership, permissions, mtimes and xattrs.")
console = Console()


def _render_path_summary(title: str, paths: list[str], style: str) -> None:
    if not paths:
        return
    console.print(Text(f"{title} ({len(paths)}):", style=style))
    for path in paths:
        console.print(f"  {path}", markup=False, highlight=False, soft_wrap=True)


def _render_report_line(line: str) -> None:
    # Report and dump lines are tab separated; rich would expand the tabs.
    if line.endswith("\tadded"):
        colour = "green"
    elif line.endswith("\tremoved"):
        colour = "red"
    else:
        colour = "yellow"
    typer.secho(line, fg=colour)


def _build_settings(
    *,
    verbose: int,
    quiet: int,
    mtime: bool,
    git: bool,
    metafile: str | None,
    empty_dirs: bool = False,
    remove_empty_dirs: bool = False,
) -> Settings:
    settings = load_settings()
    settings.verbosity += verbose - quiet
    settings.compare_mtime = settings.compare_mtime or mtime
    settings.include_vcs_dirs = settings.include_vcs_dirs or git
    settings.recreate_empty_dirs = settings.recreate_empty_dirs or empty_dirs
    settings.remove_empty_dirs = settings.remove_empty_dirs or remove_empty_dirs
    if metafile:
        settings.metafile = metafile
    configure_logging(settings.verbosity)
    return settings


def _collect_live(paths: list[str], settings: Settings, identity: IdentityCache) -> EntryStore | None:
    real = collect_paths(
        paths or ["."],
        settings,
        fs=LocalFilesystem(),
        identity=identity,
        console=console,
    )
    if not real:
        console.print("[red]Failed to load metadata from file system[/red]")
        return None
    return real


def _load_snapshot(settings: Settings) -> EntryStore | None:
    try:
        return load_store(settings.metafile)
    except SnapshotError as exc:
        console.print(f"[red]{exc}[/red]")
        console.print(f"[red]Failed to load metadata from {settings.metafile}[/red]")
        return None


def _compare(paths: list[str], settings: Settings) -> int:
    stored = _load_snapshot(settings)
    if stored is None:
        return 1
    real = _collect_live(paths, settings, IdentityCache())
    if real is None:
        return 1

    records = diff_stores(
        real,
        stored,
        compare_mtime=settings.compare_mtime,
        metafile=normalize_path(settings.metafile),
    )
    for line in report(records):
        _render_report_line(line)
    return 0


def _save(paths: list[str], settings: Settings) -> int:
    real = _collect_live(paths, settings, IdentityCache())
    if real is None:
        return 1
    try:
        count = save_store(real, settings.metafile)
    except SnapshotError as exc:
        console.print(f"[red]{exc}[/red]")
        return 1
    console.print(f"Saved metadata for {count} path(s) to {settings.metafile}", highlight=False)
    return 0


def _apply(paths: list[str], settings: Settings) -> int:
    stored = _load_snapshot(settings)
    if stored is None:
        return 1
    identity = IdentityCache()
    real = _collect_live(paths, settings, identity)
    if real is None:
        return 1

    metafile = normalize_path(settings.metafile)
    reconciler = Reconciler(
        LocalFilesystem(),
        identity,
        compare_mtime=settings.compare_mtime,
        metafile=metafile,
    )
    pending = reconciler.apply(
        diff_stores(real, stored, compare_mtime=settings.compare_mtime, metafile=metafile)
    )

    if settings.recreate_empty_dirs:
        _render_path_summary("Recreated", reconciler.recreate_missing_dirs(pending), "green")
    if settings.remove_empty_dirs:
        _render_path_summary("Removed empty", reconciler.remove_extra_dirs(pending), "yellow")
    return 0


def _dump(paths: list[str], settings: Settings) -> int:
    if paths:
        store = _collect_live(paths, settings, IdentityCache())
    else:
        store = _load_snapshot(settings)
    if store is None:
        return 1
    for line in dump_lines(store):
        typer.echo(line)
    return 0


def _run(action, paths: list[str] | None, settings: Settings) -> int:
    try:
        return action(list(paths or ()), settings)
    except KeyboardInterrupt:
        console.print("[yellow]Interrupted.[/yellow] Metadata may be partially applied.")
        return 130


def _settings_or_exit(**kwargs) -> Settings:
    try:
        return _build_settings(**kwargs)
    except (OSError, ValueError) as exc:
        console.print(f"[red]Invalid configuration:[/red] {exc}")
        raise typer.Exit(code=1)


@app.command()
def compare(
    paths: list[str] | None = typer.Argument(None, help="Paths to check. Defaults to the current directory."),
    verbose: int = typer.Option(0, "--verbose", "-v", count=True, help="Print more verbose messages."),
    quiet: int = typer.Option(0, "--quiet", "-q", count=True, help="Print less verbose messages."),
    mtime: bool = typer.Option(False, "--mtime", "-m", help="Also take mtime into account."),
    git: bool = typer.Option(False, "--git", "-g", help="Do not omit .git directories."),
    metafile: str | None = typer.Option(None, "--file", "-f", help="Metadata file (./.metadata by default)."),
) -> None:
    """Show differences between stored and real metadata."""
    settings = _settings_or_exit(verbose=verbose, quiet=quiet, mtime=mtime, git=git, metafile=metafile)
    raise typer.Exit(code=_run(_compare, paths, settings))


@app.command()
def save(
    paths: list[str] | None = typer.Argument(None, help="Paths to record. Defaults to the current directory."),
    verbose: int = typer.Option(0, "--verbose", "-v", count=True, help="Print more verbose messages."),
    quiet: int = typer.Option(0, "--quiet", "-q", count=True, help="Print less verbose messages."),
    mtime: bool = typer.Option(False, "--mtime", "-m", help="Also take mtime into account."),
    git: bool = typer.Option(False, "--git", "-g", help="Do not omit .git directories."),
    metafile: str | None = typer.Option(None, "--file", "-f", help="Metadata file (./.metadata by default)."),
) -> None:
    """Save current metadata."""
    settings = _settings_or_exit(verbose=verbose, quiet=quiet, mtime=mtime, git=git, metafile=metafile)
    raise typer.Exit(code=_run(_save, paths, settings))


@app.command()
def apply(
    paths: list[str] | None = typer.Argument(None, help="Paths to fix. Defaults to the current directory."),
    verbose: int = typer.Option(0, "--verbose", "-v", count=True, help="Print more verbose messages."),
    quiet: int = typer.Option(0, "--quiet", "-q", count=True, help="Print less verbose messages."),
    mtime: bool = typer.Option(False, "--mtime", "-m", help="Also take mtime into account."),
    git: bool = typer.Option(False, "--git", "-g", help="Do not omit .git directories."),
    metafile: str | None = typer.Option(None, "--file", "-f", help="Metadata file (./.metadata by default)."),
    empty_dirs: bool = typer.Option(False, "--empty-dirs", "-e", help="Recreate missing empty directories."),
    remove_empty_dirs: bool = typer.Option(
        False,
        "--remove-empty-dirs",
        "-E",
        help="Remove extra empty directories.",
    ),
) -> None:
    """Apply stored metadata to the filesystem."""
    settings = _settings_or_exit(
        verbose=verbose,
        quiet=quiet,
        mtime=mtime,
        git=git,
        metafile=metafile,
        empty_dirs=empty_dirs,
        remove_empty_dirs=remove_empty_dirs,
    )
    raise typer.Exit(code=_run(_apply, paths, settings))


@app.command()
def dump(
    paths: list[str] | None = typer.Argument(
        None,
        help="Dump real metadata of these paths instead of the stored metadata.",
    ),
    verbose: int = typer.Option(0, "--verbose", "-v", count=True, help="Print more verbose messages."),
    quiet: int = typer.Option(0, "--quiet", "-q", count=True, help="Print less verbose messages."),
    git: bool = typer.Option(False, "--git", "-g", help="Do not omit .git directories."),
    metafile: str | None = typer.Option(None, "--file", "-f", help="Metadata file (./.metadata by default)."),
) -> None:
    """Dump stored (or, given paths, real) metadata in human-readable form."""
    settings = _settings_or_exit(verbose=verbose, quiet=quiet, mtime=False, git=git, metafile=metafile)
    raise typer.Exit(code=_run(_dump, paths, settings))


@app.command()
def version() -> None:
    """Output version information."""
    console.print(f"metasnap {APP_VERSION}", highlight=False)
