import json
from pathlib import Path
from typing import List

import typer
from rich import print as rprint
from rich.panel import Panel
from rich.table import Table

from .config import get_settings
from .errors import FlowError
from .events import EventBus, JobFailed
from .ir import load_graph
from .log import configure_logging
from .queue import JobQueue, JobStatus
from .registry import default_registry
from .validator import validation_report
from .visualize import ascii_plan

app = typer.Typer(no_args_is_help=True, help="nodeflow CLI: validate, explain and run node graphs")


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Log at DEBUG level")):
    configure_logging(get_settings(), level="DEBUG" if verbose else None)


def _load(file: Path):
    try:
        return load_graph(file)
    except FlowError as e:
        rprint(f"[bold red]{e}[/]")
        raise typer.Exit(code=1)


@app.command()
def init():
    """Create a local project layout (workflows/, custom_nodes/)."""
    for name in ["workflows", "custom_nodes"]:
        Path(name).mkdir(exist_ok=True)
    rprint(Panel.fit("[bold green]Initialized[/] directories: workflows/, custom_nodes/"))


@app.command()
def validate(file: Path):
    """Validate a graph file (edges, handles, inputs, types, cycles)."""
    ok, messages = validation_report(_load(file), default_registry())
    table = Table(title="Validation Report", show_lines=True)
    table.add_column("Status", justify="center", style="bold")
    table.add_column("Message")
    for m in messages:
        status = "OK" if m.startswith("OK:") else "ERR"
        table.add_row(status, m)
    rprint(table)
    if not ok:
        raise typer.Exit(code=1)


@app.command()
def explain(file: Path):
    """Print the execution order with depth and timestamp per node."""
    try:
        print(ascii_plan(_load(file)))
    except FlowError as e:
        rprint(f"[bold red]{e}[/]")
        raise typer.Exit(code=1)


@app.command()
def run(files: List[Path] = typer.Argument(..., help="Graph files; each becomes one job.")):
    """Queue each graph as a job and run them in order."""
    graphs = [_load(f) for f in files]
    bus = EventBus()
    bus.subscribe(JobFailed, lambda e: rprint(
        f"[red]job {e.job_id[:8]} failed at {e.node_id or '-'}:[/] {e.error.get('message')}"))

    queue = JobQueue(registry=default_registry(), event_bus=bus)
    job_ids = queue.enqueue(graphs)
    queue.run_pending()

    failed = False
    for path, job_id in zip(files, job_ids):
        job = queue.get_job(job_id)
        failed = failed or job.status != JobStatus.COMPLETED
        colour = "green" if job.status == JobStatus.COMPLETED else "red"
        rprint(Panel.fit(json.dumps(job.outputs, indent=2, default=str),
                         title=f"{path.name}  [{colour}]{job.status.value}[/]"))
    if failed:
        raise typer.Exit(1)


@app.command()
def nodes():
    """List registered node types."""
    table = Table(title="Node Types")
    for col in ("Type", "Label", "Category", "Source"):
        table.add_column(col)
    for meta in default_registry().list_all_with_metadata():
        table.add_row(meta["type"], meta["label"], meta["category"], meta["source"])
    rprint(table)


if __name__ == "__main__":
    app()
