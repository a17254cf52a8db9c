"""Typer-based CLI for contextrank."""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import typer
from rich.console import Console
from rich.table import Table

from . import __version__, config_manager
from .buffers import FileBufferProvider
from .embeddings import EMBEDDING_MODELS, get_embedder
from .models import RetrievalRequest, Scope
from .orchestrator import find_for_query
from .outline import build_outline

app = typer.Typer(
    help="🔎 contextrank — rank open files by relevance to a prompt.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

config_app = typer.Typer(
    help="⚙️  Configuration — embedding backend and ranking limits.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)
app.add_typer(config_app, name="config")

console = Console()


def version_callback(value: bool):
    """Print version and exit."""
    if value:
        typer.echo(f"contextrank v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-v",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(False, "--verbose", help="Log every retrieval step."),
):
    """contextrank: bounded, relevant context windows for language assistants."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


def _display_name(path: str, base: Path) -> str:
    try:
        return os.path.relpath(path, base)
    except ValueError:
        return path


@app.command("outline")
def outline(
    file: Path = typer.Argument(..., exists=True, dir_okay=False, help="Source file to outline."),
):
    """Print the definition skeleton of FILE."""
    buffers = FileBufferProvider([file])
    handle = file.resolve()
    result = build_outline(handle, buffers)
    if result is None:
        console.print(
            f"[yellow]No outline for {file} "
            f"(filetype '{buffers.get_filetype(handle) or 'unknown'}').[/yellow]"
        )
        raise typer.Exit(code=1)
    typer.echo(result)


@app.command("query")
def query(
    prompt: str = typer.Argument(..., help="What you are asking about."),
    file: Path = typer.Option(..., "--file", "-f", exists=True, dir_okay=False, help="Active file (sent in full)."),
    buffer: Optional[List[Path]] = typer.Option(
        None, "--buffer", "-b", exists=True, dir_okay=False,
        help="Other open file (sent as an outline). Repeatable.",
    ),
    scope: str = typer.Option("buffers", "--scope", "-s", help="buffer (active only) or buffers (all)."),
    selection: Optional[str] = typer.Option(None, "--selection", help="Selected text sent with the prompt."),
    top_n: Optional[int] = typer.Option(None, "--top-n", "-n", min=0, help="Maximum results."),
    model: Optional[str] = typer.Option(None, "--model", "-m", help="Embedding backend: hash or remote."),
):
    """Rank FILE and the --buffer files by relevance to PROMPT."""
    try:
        scope_value = Scope.parse(scope)
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc

    try:
        embedder = get_embedder(model)
    except ValueError as exc:
        console.print(f"[bold red]{exc}[/bold red]")
        raise typer.Exit(code=1) from exc

    buffers = FileBufferProvider([file, *(buffer or [])])
    active = file.resolve()
    request = RetrievalRequest(
        scope=scope_value,
        prompt=prompt,
        selection=selection,
        filename=str(active),
        filetype=buffers.get_filetype(active),
        active_buffer=active,
    )

    outcome: Dict[str, Any] = {}
    asyncio.run(find_for_query(
        request,
        buffers=buffers,
        embedder=embedder,
        on_done=lambda results: outcome.setdefault("results", results),
        on_error=lambda error: outcome.setdefault("error", error),
        top_n=top_n,
    ))

    if "error" in outcome:
        console.print(f"[bold red]Embedding failed:[/bold red] {outcome['error']}")
        raise typer.Exit(code=1)

    results = outcome["results"]
    if not results:
        console.print("[yellow]No related buffers found.[/yellow]")
        return

    table = Table(title=f"Context for: {prompt}", show_header=True)
    table.add_column("#", justify="right", style="dim")
    table.add_column("Score", justify="right", style="cyan")
    table.add_column("File", overflow="fold")
    table.add_column("Sent as")
    for i, scored in enumerate(results, 1):
        table.add_row(
            str(i),
            f"{scored.score:.4f}",
            _display_name(scored.filename, active.parent),
            "full text" if scored.filename == str(active) else "outline",
        )
    console.print(table)


# ------------------------------------------------------------------
# config
# ------------------------------------------------------------------

@config_app.command("show")
def show_config():
    """Show the current embedding and retrieval settings."""
    emb_cfg = config_manager.load_embedding_config()
    retrieval_cfg = config_manager.load_retrieval_config()

    table = Table(title="contextrank configuration", show_header=True)
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    table.add_row("embeddings.model", str(emb_cfg["model"]))
    table.add_row("embeddings.endpoint", str(emb_cfg["endpoint"]))
    table.add_row("embeddings.remote_model", str(emb_cfg["remote_model"]))
    table.add_row("embeddings.api_key", "set" if emb_cfg["api_key"] else "not set")
    table.add_row("embeddings.batch_size", str(emb_cfg["batch_size"]))
    table.add_row("retrieval.top_n", str(retrieval_cfg["top_n"]))
    console.print(table)


@config_app.command("set-embedding")
def set_embedding(
    model: str = typer.Argument(..., help="Embedding backend: hash or remote."),
    endpoint: str = typer.Option("", "--endpoint", help="OpenAI-compatible /embeddings URL."),
    remote_model: str = typer.Option("", "--remote-model", help="Model name for the remote endpoint."),
    api_key: str = typer.Option("", "--api-key", help="Bearer token for the remote endpoint."),
):
    """Choose the embedding backend.

    Examples:
        contextrank config set-embedding hash
        contextrank config set-embedding remote --remote-model text-embedding-3-small
    """
    model = model.lower().strip()
    if model not in EMBEDDING_MODELS:
        console.print(
            f"[bold red]Unknown model '{model}'. "
            f"Choose from: {', '.join(EMBEDDING_MODELS.keys())}[/bold red]"
        )
        raise typer.Exit(code=1)

    if not config_manager.save_embedding_config(model, endpoint, remote_model, api_key):
        console.print("[bold red]Failed to save configuration![/bold red]")
        raise typer.Exit(code=1)
    console.print(f"[green]Embedding model set to: {model}[/green]")


@config_app.command("unset-embedding")
def unset_embedding():
    """Reset the embedding backend to the default (hash)."""
    if not config_manager.clear_embedding_config():
        console.print("[bold red]Failed to reset embedding config![/bold red]")
        raise typer.Exit(code=1)
    console.print("[green]Embedding model reset to default (hash).[/green]")


@config_app.command("set-top-n")
def set_top_n(
    top_n: int = typer.Argument(..., min=0, help="Maximum number of ranked results."),
):
    """Set how many ranked buffers a query returns."""
    if not config_manager.save_retrieval_config(top_n):
        console.print("[bold red]Failed to save configuration![/bold red]")
        raise typer.Exit(code=1)
    console.print(f"[green]top_n set to: {top_n}[/green]")


if __name__ == "__main__":
    app()
