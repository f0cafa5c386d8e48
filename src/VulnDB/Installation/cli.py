# === NAVMAP v1 ===
# {
#   "module": "VulnDB.Installation.cli",
#   "purpose": "Typer CLI for inspecting, updating, importing, and deleting the vulnerability database",
#   "sections": [
#     {"id": "setup", "name": "App & Context", "anchor": "IMP", "kind": "infra"},
#     {"id": "commands", "name": "CLI Commands", "anchor": "CMDS", "kind": "commands"}
#   ]
# }
# === /NAVMAP ===

"""``vulndb`` command line interface."""

from __future__ import annotations

import json
import sys
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from tqdm import tqdm

from .curator import Curator
from .distribution import load_distribution_client
from .errors import VulnDBError
from .logging_utils import setup_logging
from .progress import ProgressSnapshot, StagedProgress
from .settings import load_config

# ============================================================================
# SETUP (IMP)
# ============================================================================

app = typer.Typer(
    name="vulndb",
    help="Manage the local vulnerability database",
    no_args_is_help=True,
)
console = Console()
err_console = Console(stderr=True)


@dataclass
class CliState:
    root_dir: Optional[Path] = None
    validate_checksum: Optional[bool] = None
    validate_age: Optional[bool] = None
    client: Optional[str] = None

    def curator(self, *, with_client: bool = False) -> Curator:
        config = load_config(
            root_dir=self.root_dir,
            validate_checksum=self.validate_checksum,
            validate_age=self.validate_age,
        )
        client = load_distribution_client(self.client) if with_client else None
        return Curator(config, client)


def _state(ctx: typer.Context) -> CliState:
    if not isinstance(ctx.obj, CliState):
        ctx.obj = CliState()
    return ctx.obj


def _fail(exc: Exception) -> None:
    err_console.print(f"[red]✗ {exc}[/red]")
    raise typer.Exit(1)


class ProgressDisplay:
    """Render a published :class:`StagedProgress` with ``tqdm`` until it completes.

    The curator hands the progress object over once per operation; a
    background thread polls its snapshot so counters advanced by a downloader
    show up live.  Used as a context manager around the curator call.
    """

    def __init__(self, *, interval: float = 0.1, disable: Optional[bool] = None) -> None:
        self.interval = interval
        self.disable = disable
        self.last_snapshot: Optional[ProgressSnapshot] = None
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def __call__(self, staged: StagedProgress) -> None:
        self._thread = threading.Thread(
            target=self._render, args=(staged,), name="vulndb-progress", daemon=True
        )
        self._thread.start()

    def _draw(self, bar: tqdm, staged: StagedProgress) -> ProgressSnapshot:
        snapshot = staged.snapshot()
        self.last_snapshot = snapshot
        bar.set_description(snapshot.stage or "starting", refresh=False)
        bar.n = int(staged.progress.fraction * 100)
        bar.refresh()
        return snapshot

    def _render(self, staged: StagedProgress) -> None:
        with tqdm(
            total=100, unit="%", leave=False, disable=self.disable, file=sys.stderr
        ) as bar:
            while not self._stop.is_set():
                if self._draw(bar, staged).completed:
                    return
                self._stop.wait(self.interval)
            self._draw(bar, staged)

    def close(self) -> None:
        if self._thread is None:
            return
        self._stop.set()
        self._thread.join()
        self._thread = None

    def __enter__(self) -> "ProgressDisplay":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


@app.callback()
def main(
    ctx: typer.Context,
    root_dir: Optional[Path] = typer.Option(
        None, "--root-dir", "-d", help="Database root directory"
    ),
    no_validate_checksum: bool = typer.Option(
        False, "--no-validate-checksum", help="Skip payload checksum verification"
    ),
    no_validate_age: bool = typer.Option(
        False, "--no-validate-age", help="Accept databases older than the max age"
    ),
    client: Optional[str] = typer.Option(
        None, "--client", help="Registered distribution client to use"
    ),
    verbosity: int = typer.Option(
        0, "--verbose", "-v", count=True, help="Increase verbosity (-v INFO, -vv DEBUG)"
    ),
) -> None:
    """Inspect and maintain the installed vulnerability database."""

    level = {0: "WARNING", 1: "INFO"}.get(verbosity, "DEBUG")
    setup_logging(level=level)
    ctx.obj = CliState(
        root_dir=root_dir,
        validate_checksum=False if no_validate_checksum else None,
        validate_age=False if no_validate_age else None,
        client=client,
    )


# ============================================================================
# CLI COMMANDS (CMDS)
# ============================================================================


@app.command()
def status(
    ctx: typer.Context,
    as_json: bool = typer.Option(False, "--json", help="Emit the status as JSON"),
) -> None:
    """Show the state of the installed database."""

    try:
        report = _state(ctx).curator().status()
    except VulnDBError as exc:
        _fail(exc)
        return

    if as_json:
        typer.echo(json.dumps(report.to_mapping(), indent=2))
    else:
        mapping = report.to_mapping()
        console.print(f"Path:      {mapping['location']}")
        console.print(f"Schema:    {mapping['schemaVersion'] or '-'}")
        console.print(f"Built:     {mapping['built'] or '-'}")
        console.print(f"Checksum:  {mapping['checksum'] or '-'}")
        if report.ok:
            console.print("Status:    [green]valid[/green]")
        else:
            console.print(f"Status:    [red]invalid[/red] ({report.error})")
    if not report.ok:
        raise typer.Exit(1)


@app.command()
def check(ctx: typer.Context) -> None:
    """Check whether a newer database is available (ignores the update throttle)."""

    try:
        candidate = _state(ctx).curator(with_client=True).check_for_update()
    except Exception as exc:
        _fail(exc)
        return

    if candidate is None:
        console.print("No update available")
        return
    built = candidate.description.built.isoformat().replace("+00:00", "Z")
    console.print(
        f"Update available: {candidate.description.schema_version} built {built} "
        f"({candidate.location})"
    )


@app.command()
def update(ctx: typer.Context) -> None:
    """Download and activate a newer database when one is available."""

    try:
        with ProgressDisplay() as display:
            changed = _state(ctx).curator(with_client=True).update(on_progress=display)
    except VulnDBError as exc:
        _fail(exc)
        return

    if changed:
        console.print("[green]✓ Vulnerability database updated to latest version![/green]")
    else:
        console.print("No vulnerability database update available")


@app.command("import")
def import_cmd(
    ctx: typer.Context,
    archive: Path = typer.Argument(..., help="Database archive to import"),
) -> None:
    """Import a database archive from the local filesystem."""

    try:
        with ProgressDisplay() as display:
            _state(ctx).curator().import_archive(archive, on_progress=display)
    except VulnDBError as exc:
        _fail(exc)
        return
    console.print(f"[green]✓ Vulnerability database imported from {archive}[/green]")


@app.command()
def delete(ctx: typer.Context) -> None:
    """Delete the installed database."""

    try:
        curator = _state(ctx).curator()
        curator.delete()
    except (VulnDBError, OSError) as exc:
        _fail(exc)
        return
    console.print(f"Vulnerability database deleted: {curator.db_dir}")


__all__ = ["app", "CliState", "ProgressDisplay", "main"]
