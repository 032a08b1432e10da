"""Command-line interface for cellflow."""

import json
import logging
import sys
import threading
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeout
from pathlib import Path
from typing import Any, Optional

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from cellflow import __version__
from cellflow.approval import ApprovalService
from cellflow.config import get_config
from cellflow.models import Notebook, RunRequest, RunResponse
from cellflow.persistence import JsonFileStore
from cellflow.run import RunCoordinator
from cellflow.templating.interpolator import render_output

console = Console()

STATUS_STYLES = {
    "idle": "dim",
    "queued": "blue",
    "running": "yellow",
    "paused": "dark_orange",
    "completed": "green",
    "error": "red",
    "failed": "red",
    "skipped": "dim",
    "cancelled": "magenta",
}

store_dir_option = click.option(
    "--store-dir",
    type=click.Path(path_type=Path),
    default=None,
    help="Directory holding notebooks (default: from config or ./notebooks)",
)


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _open_store(store_dir: Optional[Path]) -> JsonFileStore:
    return JsonFileStore(base_dir=store_dir or get_config().store_dir)


def _styled(status: str) -> str:
    style = STATUS_STYLES.get(status, "white")
    return f"[{style}]{status}[/{style}]"


def _preview(value: Any, limit: int = 60) -> str:
    if value is None:
        return ""
    text = render_output(value).replace("\n", " ")
    if len(text) > limit:
        text = text[: limit - 3] + "..."
    return escape(text)


def load_notebook_definition(path: Path, default_timeout_ms: int) -> Notebook:
    """Load a notebook definition from a JSON file.

    Cells without a cell_index take their position in the file; cells
    without a timeout_ms take the configured default.
    """
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)

    if "id" not in data:
        data["id"] = path.stem
    for position, cell in enumerate(data.get("cells", [])):
        cell.setdefault("cell_index", position)
        cell.setdefault("timeout_ms", default_timeout_ms)

    return Notebook.model_validate(data)


def _run_interruptible(coordinator: RunCoordinator, notebook_id: str, request: RunRequest) -> RunResponse:
    """Run in a worker thread so Ctrl-C cancels the run instead of abandoning it."""
    cancel_event = threading.Event()
    pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="cellflow-run")
    future = pool.submit(coordinator.run, notebook_id, request, cancel_event)
    try:
        while True:
            try:
                return future.result(timeout=0.2)
            except FuturesTimeout:
                continue
            except KeyboardInterrupt:
                console.print("[yellow]Cancelling run...[/yellow]")
                cancel_event.set()
    finally:
        pool.shutdown(wait=True)


def _show_response(response: RunResponse) -> None:
    if response.status == "completed":
        console.print(
            Panel.fit(
                f"[green]Run completed[/green]\n\n"
                f"Cells: [bold]{response.cells_completed}[/bold] completed, "
                f"[bold]{response.cells_failed}[/bold] failed, "
                f"[bold]{response.cells_skipped}[/bold] skipped\n"
                f"Tokens: {response.total_tokens:,}  Cost: ${response.total_cost:.6f}\n"
                f"Duration: {response.duration_ms}ms",
                border_style="green",
                title=f"[bold green]Run {response.run_id}[/bold green]",
            )
        )
        if response.outputs:
            table = Table(title="Outputs", show_lines=False)
            table.add_column("Cell", style="cyan", no_wrap=True)
            table.add_column("Output")
            for cell_id, output in response.outputs.items():
                table.add_row(cell_id, _preview(output, limit=100))
            console.print(table)

    elif response.status == "paused":
        console.print(
            Panel.fit(
                f"[dark_orange]{response.message}[/dark_orange]\n\n"
                f"Cells completed: [bold]{response.cells_completed}[/bold]\n"
                f"Approve with: [cyan]cellflow approve <notebook> {response.paused_at}[/cyan]",
                border_style="dark_orange",
                title=f"[bold]Run {response.run_id} paused[/bold]",
            )
        )

    elif response.status == "failed":
        console.print(
            Panel.fit(
                f"[red]Error:[/red] {escape(response.error)}\n\n"
                f"Failed at: [bold]{response.failed_at}[/bold]\n"
                f"Cells: {response.cells_completed} completed, {response.cells_failed} failed",
                border_style="red",
                title=f"[bold red]Run {response.run_id} failed[/bold red]",
            )
        )

    else:
        console.print(
            Panel.fit(
                f"[magenta]{response.message}[/magenta]\n\n"
                f"Cells completed: [bold]{response.cells_completed}[/bold]",
                border_style="magenta",
                title=f"[bold]Run {response.run_id} cancelled[/bold]",
            )
        )


def _fail(title: str, error: Exception) -> None:
    console.print()
    console.print(
        Panel.fit(
            f"[red]Error:[/red] {escape(str(error))}",
            border_style="red",
            title=f"[bold red]{title}[/bold red]",
        )
    )
    sys.exit(1)


@click.group()
@click.version_option(version=__version__)
@click.option("--log-level", type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"]), default=None)
def main(log_level: Optional[str]):
    """cellflow - Run notebooks of AI cells.

    Cells run in order, chain their outputs, and pause at approval gates.
    """
    _setup_logging(log_level or get_config().log_level)


@main.command(name="import")
@click.argument("definition", type=click.Path(exists=True, path_type=Path))
@store_dir_option
def import_notebook(definition: Path, store_dir: Optional[Path]):
    """Import a notebook definition (JSON) into the store.

    DEFINITION: Path to the notebook JSON file
    """
    try:
        store = _open_store(store_dir)
        notebook = load_notebook_definition(definition, get_config().default_timeout_ms)
        store.save_notebook(notebook)
        console.print(
            f"[green]Imported[/green] [bold]{notebook.title}[/bold] "
            f"({len(notebook.cells)} cells) as [cyan]{notebook.id}[/cyan]"
        )
    except Exception as e:
        _fail("Import Failed", e)


@main.command()
@click.argument("notebook_id")
@click.option("--cell", "cell_id", default=None, help="Run only this cell")
@click.option("--from", "run_from_cell", default=None, help="Run this cell and every later cell")
@click.option("--include-approved", is_flag=True, help="Run through approval cells without pausing")
@click.option(
    "--api-key",
    envvar="CELLFLOW_ANTHROPIC_API_KEY",
    help="Anthropic API key (or set CELLFLOW_ANTHROPIC_API_KEY)",
)
@store_dir_option
def run(
    notebook_id: str,
    cell_id: Optional[str],
    run_from_cell: Optional[str],
    include_approved: bool,
    api_key: Optional[str],
    store_dir: Optional[Path],
):
    """Run a notebook.

    NOTEBOOK_ID: Id of an imported notebook
    """
    try:
        config = get_config()
        if api_key:
            config = config.model_copy(update={"anthropic_api_key": api_key})

        store = _open_store(store_dir)
        coordinator = RunCoordinator.from_config(store, config=config)
        request = RunRequest(
            cell_id=cell_id,
            run_from_cell=run_from_cell,
            include_approved=include_approved,
        )

        with console.status(f"[cyan]Running notebook {notebook_id}..."):
            response = _run_interruptible(coordinator, notebook_id, request)

        _show_response(response)
        if response.status == "failed":
            sys.exit(1)
    except Exception as e:
        _fail("Run Failed", e)


def _decide(notebook_id: str, cell_id: str, action: str, feedback: Optional[str], store_dir: Optional[Path]):
    try:
        store = _open_store(store_dir)
        outcome = ApprovalService(store).resolve(notebook_id, cell_id, action, feedback=feedback)
        style = "green" if outcome.action == "approved" else "red"
        console.print(f"[{style}]{outcome.message}[/{style}]")
        if outcome.continue_from:
            console.print(
                f"Continue with: [cyan]cellflow run {notebook_id} --from {outcome.continue_from}[/cyan]"
            )
    except Exception as e:
        _fail("Approval Failed", e)


@main.command()
@click.argument("notebook_id")
@click.argument("cell_id")
@click.option("--feedback", default=None, help="Reviewer comment")
@store_dir_option
def approve(notebook_id: str, cell_id: str, feedback: Optional[str], store_dir: Optional[Path]):
    """Approve a paused approval cell."""
    _decide(notebook_id, cell_id, "approve", feedback, store_dir)


@main.command()
@click.argument("notebook_id")
@click.argument("cell_id")
@click.option("--feedback", default=None, help="Reason for rejecting")
@store_dir_option
def reject(notebook_id: str, cell_id: str, feedback: Optional[str], store_dir: Optional[Path]):
    """Reject a paused approval cell, stopping the run."""
    _decide(notebook_id, cell_id, "reject", feedback, store_dir)


@main.command()
@click.argument("notebook_id")
@store_dir_option
def show(notebook_id: str, store_dir: Optional[Path]):
    """Show a notebook's cells and their status."""
    try:
        notebook = _open_store(store_dir).get_notebook(notebook_id)
    except Exception as e:
        _fail("Show Failed", e)
        return

    console.print(
        Panel.fit(
            f"[bold cyan]{notebook.title}[/bold cyan]\n"
            f"Status: {_styled(notebook.status)}\n"
            f"[dim]Last run: {notebook.last_run_at or 'never'}[/dim]",
            border_style="cyan",
        )
    )

    table = Table(show_header=True)
    table.add_column("#", justify="right")
    table.add_column("Cell", style="cyan", no_wrap=True)
    table.add_column("Type")
    table.add_column("Status", no_wrap=True)
    table.add_column("Depends on", style="dim")
    table.add_column("Output / error")

    for cell in notebook.cells:
        detail = _preview(cell.output) if cell.status == "completed" else escape(cell.error_message or "")
        table.add_row(
            str(cell.cell_index),
            cell.id,
            cell.cell_type,
            _styled(cell.status),
            ", ".join(cell.dependencies),
            detail,
        )
    console.print(table)


@main.command()
@click.argument("notebook_id")
@store_dir_option
def runs(notebook_id: str, store_dir: Optional[Path]):
    """List a notebook's runs."""
    try:
        store = _open_store(store_dir)
        run_list = store.list_runs(notebook_id)
    except Exception as e:
        _fail("Listing Runs Failed", e)
        return

    if not run_list:
        console.print("[yellow]No runs found.[/yellow]")
        return

    table = Table(show_header=True)
    table.add_column("Run", justify="right")
    table.add_column("Status", no_wrap=True)
    table.add_column("Done/Failed/Skipped/Total", no_wrap=True)
    table.add_column("Tokens", justify="right")
    table.add_column("Cost", justify="right")
    table.add_column("Note")

    for r in run_list:
        note = r.error_message or (f"paused at {r.paused_cell_id}" if r.status == "paused" else "")
        table.add_row(
            str(r.run_number),
            _styled(r.status),
            f"{r.cells_completed}/{r.cells_failed}/{r.cells_skipped}/{r.cells_total}",
            f"{r.total_tokens:,}",
            f"${r.total_cost:.6f}",
            note,
        )
    console.print(table)


@main.command()
def config_show():
    """Show current configuration."""
    try:
        config = get_config()
        console.print(Panel.fit("[bold cyan]cellflow Configuration[/bold cyan]", border_style="cyan"))
        console.print()
        console.print(f"[cyan]Model:[/cyan] {config.model}")
        console.print(f"[cyan]Max Tokens:[/cyan] {config.max_tokens}")
        console.print(f"[cyan]Default Timeout:[/cyan] {config.default_timeout_ms}ms")
        console.print(f"[cyan]Strict Dependencies:[/cyan] {config.strict_dependencies}")
        console.print(f"[cyan]Strict Placeholders:[/cyan] {config.strict_placeholders}")
        console.print(f"[cyan]Store Dir:[/cyan] {config.store_dir}")
        console.print(f"[cyan]API Key Set:[/cyan] {'Yes' if config.anthropic_api_key else 'No'}")
    except Exception as e:
        console.print(f"[red]Error loading config:[/red] {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
