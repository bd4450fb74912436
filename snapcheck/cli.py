"""snapcheck CLI: Typer + Rich terminal interface.

Commands: init-db, keys, checklists, serve, worker.
All output is Rich-powered with color-coded panels and tables.
"""

from __future__ import annotations

import asyncio
import importlib
import logging
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from snapcheck import __version__
from snapcheck.errors import WorkerUnavailableError
from snapcheck.notify.events import EventType, RunEvent, RunEventEmitter
from snapcheck.schemas.run import AssertionResult, Flow, FlowRunSummary
from snapcheck.schemas.settings import ManagerSettings
from snapcheck.settings import load_env_file, load_settings

# Load overrides from .env on startup
load_env_file()

console = Console()

# ── App and sub-apps ─────────────────────────────────────────────

app = typer.Typer(
    name="snapcheck",
    help="Snapshot-based regression testing for HTTP services.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

keys_app = typer.Typer(
    name="keys",
    help="Manage API keys.",
    no_args_is_help=True,
)
app.add_typer(keys_app, name="keys")

checklists_app = typer.Typer(
    name="checklists",
    help="Inspect and run checklists.",
    no_args_is_help=True,
)
app.add_typer(checklists_app, name="checklists")


# ── Version callback ───────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"snapcheck {__version__}")
        raise typer.Exit()


# ── App Callback ────────────────────────────────────────────────


@app.callback()
def main(
    version: bool = typer.Option(
        False, "--version", "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """Snapshot-based regression testing for HTTP services."""


# ── Helpers ──────────────────────────────────────────────────────


def _load_settings(database: Path | None = None) -> ManagerSettings:
    """Load settings, exit on error."""
    try:
        settings = load_settings()
    except Exception as e:
        console.print(f"[red]Error loading config:[/red] {e}")
        raise typer.Exit(1) from None
    if database is not None:
        settings.database_path = str(database)
    _configure_logging(settings.log_level)
    return settings


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
        force=True,
    )


_RESULT_STYLES = {
    AssertionResult.NEW: "cyan",
    AssertionResult.MATCH: "green",
    AssertionResult.MISS: "bright_red",
}


def _print_run_event(event: RunEvent) -> None:
    """Print checklist-run progress as the runner emits it."""
    data = event.data
    if event.type == EventType.CHECKLIST_RUN_STARTED:
        console.print(
            f"[dim]Running checklist {data['checklist_id']} against {data['worker_origin']}...[/dim]"
        )
    elif event.type == EventType.CHECKLIST_RUN_FAILED:
        console.print(f"[red]Run failed:[/red] {data['error']['message']}")
    elif event.type == EventType.CHECKLIST_RUN_COMPLETED:
        summary = data["summary"]
        console.print(
            f"[dim]Run finished: {summary['match']} match, "
            f"{summary['miss']} miss, {summary['new']} new[/dim]"
        )


def _display_flows(checklist_id: int, flows: list[Flow]) -> None:
    """Render one results table per flow plus a totals panel."""
    for flow in flows:
        table = Table(title=f"Flow: {flow.name}")
        table.add_column("Assertion", style="bold")
        table.add_column("Result")
        table.add_column("Snapshot", max_width=50)
        table.add_column("Expected", max_width=50, style="dim")

        for assertion in flow.assertions:
            result = assertion.result or AssertionResult.NEW
            table.add_row(
                assertion.name,
                Text(result.value, style=_RESULT_STYLES[result]),
                assertion.snapshot,
                assertion.expected_snapshot or "-",
            )
        console.print(table)

    total = FlowRunSummary.total([f.summary for f in flows])
    border = "red" if total.miss else "green"
    console.print(Panel(
        f"[bold]Flows:[/bold] {len(flows)}\n"
        f"[green]Match:[/green] {total.match}  "
        f"[bright_red]Miss:[/bright_red] {total.miss}  "
        f"[cyan]New:[/cyan] {total.new}",
        title=f"[bold]Checklist {checklist_id}[/bold]",
        border_style=border,
    ))


# ── Database & keys ──────────────────────────────────────────────


@app.command("init-db")
def init_db_command(
    database: Path = typer.Option(None, "--database", "-d", help="SQLite database path"),
) -> None:
    """Create the database schema."""
    from snapcheck.persistence.database import close_db, init_db

    settings = _load_settings(database)

    async def _init():
        db = await init_db(settings.database_path)
        await close_db(db)

    asyncio.run(_init())
    console.print(f"[green]Database ready:[/green] {settings.database_path}")


@keys_app.command("create")
def keys_create(
    database: Path = typer.Option(None, "--database", "-d", help="SQLite database path"),
) -> None:
    """Create an API key and print it (it is not shown again)."""
    from snapcheck.persistence.api_keys import ApiKeyStore
    from snapcheck.persistence.database import close_db, init_db

    settings = _load_settings(database)

    async def _create():
        db = await init_db(settings.database_path)
        try:
            _, raw_key = await ApiKeyStore(db).create()
        finally:
            await close_db(db)
        return raw_key

    raw_key = asyncio.run(_create())
    console.print(Panel(
        f"[bold]{raw_key}[/bold]\n[dim]Store it now, it cannot be shown again.[/dim]",
        title="[bold blue]New API key[/bold blue]",
        border_style="blue",
    ))


# ── Checklists ───────────────────────────────────────────────────


@checklists_app.command("list")
def checklists_list(
    key: str = typer.Option(..., "--key", "-k", help="API key", envvar="SNAPCHECK_API_KEY"),
    database: Path = typer.Option(None, "--database", "-d", help="SQLite database path"),
) -> None:
    """Show the checklists owned by an API key."""
    from snapcheck.persistence.api_keys import ApiKeyStore
    from snapcheck.persistence.checklists import ChecklistStore
    from snapcheck.persistence.database import close_db, init_db
    from snapcheck.persistence.snapshots import SnapshotStore

    settings = _load_settings(database)

    async def _list():
        db = await init_db(settings.database_path)
        try:
            api_key = await ApiKeyStore(db).find_by_key(key)
            if api_key is None:
                return None
            snapshots = SnapshotStore(db)
            rows = []
            for checklist in await ChecklistStore(db).find_all(api_key.id):
                rows.append((checklist, await snapshots.count_by_checklist(checklist.id)))
            return rows
        finally:
            await close_db(db)

    rows = asyncio.run(_list())
    if rows is None:
        console.print("[red]Unknown API key.[/red]")
        raise typer.Exit(1)
    if not rows:
        console.print("[dim]No checklists found.[/dim]")
        return

    table = Table(title=f"Checklists ({len(rows)})")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Worker origin")
    table.add_column("Snapshots", justify="right")
    for checklist, count in rows:
        table.add_row(str(checklist.id), checklist.worker_origin, str(count))
    console.print(table)


@checklists_app.command("run")
def checklists_run(
    checklist_id: int = typer.Argument(..., help="Checklist ID"),
    key: str = typer.Option(..., "--key", "-k", help="API key", envvar="SNAPCHECK_API_KEY"),
    database: Path = typer.Option(None, "--database", "-d", help="SQLite database path"),
) -> None:
    """Run a checklist against its worker and print the results."""
    from snapcheck.persistence.api_keys import ApiKeyStore
    from snapcheck.persistence.checklists import ChecklistStore
    from snapcheck.persistence.database import close_db, init_db
    from snapcheck.run.runner import ChecklistRunner
    from snapcheck.run.worker_client import WorkerClient

    settings = _load_settings(database)

    async def _run():
        db = await init_db(settings.database_path)
        try:
            api_key = await ApiKeyStore(db).find_by_key(key)
            checklist = (
                await ChecklistStore(db).find(checklist_id, api_key.id) if api_key else None
            )
            if checklist is None:
                return None
            client = WorkerClient(
                timeout=settings.worker_timeout,
                run_path=settings.worker_run_path,
            )
            emitter = RunEventEmitter()
            emitter.add_listener(_print_run_event)
            return await ChecklistRunner(db, client, emitter).run(checklist)
        finally:
            await close_db(db)

    try:
        flows = asyncio.run(_run())
    except WorkerUnavailableError as e:
        console.print(f"[red]Worker unavailable:[/red] {e}")
        raise typer.Exit(1) from None

    if flows is None:
        console.print(f"[red]Checklist {checklist_id} not found.[/red]")
        raise typer.Exit(1)
    if not flows:
        console.print("[dim]The worker reported no flows.[/dim]")
        return
    _display_flows(checklist_id, flows)


# ── Servers ──────────────────────────────────────────────────────


@app.command()
def serve(
    host: str = typer.Option(None, "--host", help="Interface to bind"),
    port: int = typer.Option(None, "--port", "-p", help="Port to serve the manager on"),
) -> None:
    """Serve the manager API (and its scheduler)."""
    import uvicorn

    from snapcheck.api.server import create_app

    settings = _load_settings()
    if host:
        settings.host = host
    if port:
        settings.port = port

    console.print(Panel(
        f"[bold]URL:[/bold] http://{settings.host}:{settings.port}\n"
        f"[bold]Database:[/bold] {settings.database_path}\n"
        f"[bold]Scheduler:[/bold] {'on' if settings.scheduler_enabled else 'off'}",
        title="[bold blue]snapcheck manager[/bold blue]",
        border_style="blue",
    ))
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port, log_level="warning")


@app.command()
def worker(
    target: str = typer.Argument(..., help="RunContext to serve, as module:attribute"),
    host: str = typer.Option("0.0.0.0", "--host", help="Interface to bind"),
    port: int = typer.Option(3000, "--port", "-p", help="Port to serve the worker on"),
) -> None:
    """Serve a RunContext as a worker."""
    import uvicorn

    from snapcheck.sdk.context import RunContext
    from snapcheck.sdk.server import create_worker_app

    settings = _load_settings()
    module_name, _, attr = target.partition(":")
    if not module_name or not attr:
        console.print("[red]Target must look like[/red] [bold]module:attribute[/bold]")
        raise typer.Exit(1)
    try:
        ctx = getattr(importlib.import_module(module_name), attr)
    except (ImportError, AttributeError) as e:
        console.print(f"[red]Cannot load {target}:[/red] {e}")
        raise typer.Exit(1) from None
    if not isinstance(ctx, RunContext):
        console.print(f"[red]{target} is not a RunContext.[/red]")
        raise typer.Exit(1)

    console.print(Panel(
        f"[bold]URL:[/bold] http://{host}:{port}\n"
        f"[bold]Flows:[/bold] {', '.join(f.name for f in ctx.flows) or '-'}",
        title="[bold blue]snapcheck worker[/bold blue]",
        border_style="blue",
    ))
    uvicorn.run(create_worker_app(ctx, env=settings.env), host=host, port=port, log_level="warning")


# ── Entry point ──────────────────────────────────────────────────

if __name__ == "__main__":
    app()
