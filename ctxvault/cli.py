"""
Command-line interface for ctxvault.

Provides commands for indexing projects, searching, inspecting and deleting
indexed projects, and running the REST and MCP servers.
"""

import asyncio
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn, TimeElapsedColumn
from rich.syntax import Syntax
from rich.table import Table

from . import __version__
from .config import Config
from .context import VaultContext
from .jobs import Job, JobStatus, JobType
from .logging_config import setup_logging_from_config
from .progress import ProgressReporter

logger = logging.getLogger(__name__)

# Rich console for pretty output
console = Console()

# Seconds between progress polls while a job runs
POLL_INTERVAL = 0.2


def _context(ctx: click.Context) -> VaultContext:
    if "vault" not in ctx.obj:
        ctx.obj["vault"] = VaultContext.from_config(ctx.obj["config"], offline=ctx.obj["offline"])
    return ctx.obj["vault"]


def _fail(message: str, error: Exception) -> None:
    console.print(f"[red]{message}: {error}[/red]")
    if logger.isEnabledFor(logging.DEBUG):
        raise error
    sys.exit(1)


async def _run_with_progress(
    vault: VaultContext,
    job_type: JobType,
    path: Path,
    project_id: str,
    exclude: list[str],
) -> Job:
    """Run an index job in the foreground while rendering its progress."""
    delta_only = job_type is JobType.UPDATE
    job = vault.jobs.create_job(
        job_type,
        project_id,
        {"directory_path": str(path), "exclude_patterns": exclude, "delta_only": delta_only},
    )
    task = asyncio.create_task(
        vault.jobs.run_index_job(
            job.id,
            vault.indexer,
            path,
            project_id,
            exclude_patterns=exclude,
            delta_only=delta_only,
        )
    )

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
        TimeElapsedColumn(),
        console=console,
    ) as progress:
        bar = progress.add_task("Starting...", total=100)
        while not task.done():
            message = job.logs[-1].message if job.logs else job.status.value
            progress.update(bar, completed=job.progress, description=message[:60])
            await asyncio.sleep(POLL_INTERVAL)
        if job.status is JobStatus.COMPLETED:
            progress.update(bar, completed=100, description="Done")

    await task
    return job


@click.group()
@click.option("--config", "config_path", type=click.Path(path_type=Path), help="Path to config.toml")
@click.option("--offline", is_flag=True, help="Use fallback vectors instead of loading the embedding model")
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.version_option(version=__version__, prog_name="ctxvault")
@click.pass_context
def main(ctx: click.Context, config_path: Optional[Path], offline: bool, debug: bool):
    """ctxvault - Semantic code search over indexed repositories."""
    config = Config(config_path)
    setup_logging_from_config(config, level="DEBUG" if debug else "WARNING")
    ctx.ensure_object(dict)
    ctx.obj["config"] = config
    ctx.obj["offline"] = offline


@main.command()
@click.argument("path", type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.option("--project", "-p", "project_id", help="Project id (default: directory name)")
@click.option("--exclude", "-x", multiple=True, help="Extra gitignore-style exclude pattern")
@click.pass_context
def index(ctx: click.Context, path: Path, project_id: Optional[str], exclude: tuple):
    """Fully index a directory into a project."""
    _index_command(ctx, JobType.INDEX, path, project_id, list(exclude))


@main.command()
@click.argument("path", type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.option("--project", "-p", "project_id", help="Project id (default: directory name)")
@click.option("--exclude", "-x", multiple=True, help="Extra gitignore-style exclude pattern")
@click.pass_context
def update(ctx: click.Context, path: Path, project_id: Optional[str], exclude: tuple):
    """Re-index only the files that changed since the last run."""
    _index_command(ctx, JobType.UPDATE, path, project_id, list(exclude))


def _index_command(ctx: click.Context, job_type: JobType, path: Path, project_id: Optional[str], exclude: list[str]):
    vault = _context(ctx)
    path = path.resolve()
    project_id = project_id or path.name

    verb = "Updating" if job_type is JobType.UPDATE else "Indexing"
    label = "Update" if job_type is JobType.UPDATE else "Indexing"
    console.print(f"[cyan]{verb} {path} as project '{project_id}'...[/cyan]")

    try:
        job = asyncio.run(_run_with_progress(vault, job_type, path, project_id, exclude))
    except Exception as e:
        _fail(f"Error during {verb.lower()}", e)
        return

    result = job.result
    console.print(f"\n[green]✓ {label} complete![/green]\n")
    table = Table(show_header=False, box=None)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Files scanned", str(result.files_total))
    table.add_row("Files processed", str(result.files_processed))
    table.add_row("Chunks indexed", str(result.chunks_indexed))
    table.add_row("Duration", ProgressReporter.format_duration(job.duration or 0.0))
    if result.delta_stats:
        stats = result.delta_stats
        table.add_row("Skipped (unchanged)", str(stats.skipped))
        table.add_row("Updated", str(stats.updated))
        table.add_row("Added", str(stats.added))
        table.add_row("Deleted", str(stats.deleted))
    console.print(table)


@main.command()
@click.argument("query")
@click.option("--project", "-p", "project_id", help="Restrict the search to one project")
@click.option("--top-k", "-n", type=int, help="Maximum number of results")
@click.pass_context
def search(ctx: click.Context, query: str, project_id: Optional[str], top_k: Optional[int]):
    """Search indexed code semantically.

    Examples:
      ctxvault search "authentication logic"
      ctxvault search "error handling" --project api --top-k 5
    """
    vault = _context(ctx)
    top_k = top_k or vault.config.get("search", "default_top_k", default=3)

    console.print(f'[cyan]Searching {project_id or "all projects"}:[/cyan] "{query}"\n')
    try:
        results = asyncio.run(vault.search(query, top_k, project_id))
    except Exception as e:
        _fail("Error during search", e)
        return

    if not results:
        console.print("[yellow]No results found.[/yellow]")
        return

    for i, result in enumerate(results, 1):
        console.print(
            f"[bold]{i}. {result.project_id}/{result.file_path}:"
            f"{result.metadata.start_line}-{result.metadata.end_line}[/bold] "
            f"[dim](score: {result.score:.3f})[/dim]"
        )
        lexer = Syntax.guess_lexer(result.file_path, code=result.content)
        console.print(Syntax(result.content, lexer, theme="monokai"))
        console.print()


@main.command()
@click.pass_context
def projects(ctx: click.Context):
    """List indexed projects."""
    vault = _context(ctx)
    try:
        summaries = vault.store.list_projects()
    except Exception as e:
        _fail("Error listing projects", e)
        return

    if not summaries:
        console.print("[yellow]No projects found. Run 'ctxvault index PATH' to create one.[/yellow]")
        return

    table = Table(title="Indexed Projects")
    table.add_column("Project", style="cyan")
    table.add_column("Documents", justify="right", style="green")
    table.add_column("Directory")
    table.add_column("Last indexed")
    for summary in summaries:
        last = summary.last_indexed or summary.last_modified
        table.add_row(
            summary.project_id,
            str(summary.document_count),
            summary.directory_path or "-",
            last.astimezone().strftime("%Y-%m-%d %H:%M:%S") if last else "-",
        )
    console.print(table)


@main.command()
@click.argument("project_id")
@click.option("--files", is_flag=True, help="List indexed files")
@click.pass_context
def stats(ctx: click.Context, project_id: str, files: bool):
    """Show statistics for a project."""
    vault = _context(ctx)
    try:
        project_stats = vault.store.get_project_stats(project_id)
        metadata = vault.store.get_project_metadata(project_id)
    except Exception as e:
        _fail("Error getting stats", e)
        return

    table = Table(title=f"Project: {project_id}", show_header=False)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Total documents", str(project_stats.total_documents))
    table.add_row("Total files", str(project_stats.total_files))
    if metadata:
        table.add_row("Directory", metadata.directory_path)
        table.add_row("Created", _format_time(metadata.created_at))
        table.add_row("Last indexed", _format_time(metadata.last_indexed))
        if metadata.exclude_patterns:
            table.add_row("Excludes", ", ".join(metadata.exclude_patterns))
    console.print(table)

    if files:
        for path in project_stats.files:
            console.print(f"  {path}")


def _format_time(value: datetime) -> str:
    return value.astimezone().strftime("%Y-%m-%d %H:%M:%S")


@main.command()
@click.argument("project_id")
@click.confirmation_option(prompt="Are you sure you want to delete this project?")
@click.pass_context
def delete(ctx: click.Context, project_id: str):
    """Delete a project and all of its indexed data."""
    vault = _context(ctx)
    try:
        deleted = vault.store.delete_project(project_id)
    except Exception as e:
        _fail("Error deleting project", e)
        return
    console.print(f"[green]✓ Deleted project '{project_id}' ({deleted} documents removed).[/green]")


@main.command()
@click.option("--host", help="Bind address (default: server.host)")
@click.option("--port", type=int, help="Port (default: server.port)")
@click.pass_context
def serve(ctx: click.Context, host: Optional[str], port: Optional[int]):
    """Run the REST API server."""
    from .api import run_server

    config = ctx.obj["config"]
    setup_logging_from_config(config)
    run_server(_context(ctx), host=host, port=port)


@main.command()
@click.pass_context
def mcp(ctx: click.Context):
    """Run the MCP server on stdio."""
    from .mcp_server import create_server

    config = ctx.obj["config"]
    setup_logging_from_config(config)
    vault = _context(ctx)
    vault.embeddings.warm_up()
    create_server(vault).run()


@main.command()
def version():
    """Show ctxvault version."""
    console.print(f"ctxvault version {__version__}")


if __name__ == "__main__":
    main()
