"""Command line interface for CodeSage."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Optional

import typer
from rich.console import Console
from rich.table import Table

from codesage.config import CONFIG_KEYS, AppConfig, load_config, save_config
from codesage.embedding.encoder import EmbeddingConfig, EmbeddingModel
from codesage.errors import CodesageError, EmbeddingServiceError
from codesage.index.indexer import Indexer
from codesage.index.manifest import load_manifest
from codesage.index.search import PARTITION_MODES, Retriever, format_context
from codesage.index.storage import create_store, delete_index, index_exists, open_store
from codesage.utils.files import discover_files

console = Console()
app = typer.Typer(help="CodeSage - local retrieval over your codebase")


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="[%(levelname)s] %(message)s")


@contextmanager
def _reported_errors() -> Iterator[None]:
    try:
        yield
    except EmbeddingServiceError as exc:
        console.print(f"[red]Embedding service unavailable:[/red] {exc}")
        console.print("[dim]Check the model name and that it can be downloaded or is cached.[/dim]")
        raise typer.Exit(code=1) from exc
    except CodesageError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(code=1) from exc


def _load_embedder(config: AppConfig) -> EmbeddingModel:
    return EmbeddingModel(EmbeddingConfig(model_name=config.model_name))


def _print_progress(stage: str, current: int, total: int) -> None:
    if current == total or current % 25 == 0:
        console.print(f"[dim]  {stage}: {current}/{total}[/dim]")


@app.command()
def train(
    target: Path = typer.Argument(Path("."), help="File or directory to index."),
    force: bool = typer.Option(False, "--force", "-f", help="Re-index from scratch"),
    data_dir: Optional[Path] = typer.Option(None, "--data-dir", help="Index directory"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Index a codebase into the vector store."""
    _setup_logging(verbose)
    console.print(f"Target: [bold]{target.resolve()}[/bold]")

    with _reported_errors():
        config = load_config(data_dir)
        files = discover_files(target)
        embedder = _load_embedder(config)
        with create_store(config.index_path) as store:
            indexer = Indexer(
                embedder,
                store,
                config.manifest_path,
                chunker_config=config.chunker_config(),
                batch_size=config.embed_batch_size,
                concurrency=config.embed_concurrency,
            )
            stats = indexer.train(
                target, force=force, files=files, on_progress=_print_progress
            )

    if stats.up_to_date:
        console.print("[green]No changes detected. Index is up to date.[/green]")
        return
    console.print(
        f"Files: {stats.processed} processed, {stats.unchanged} unchanged; "
        f"chunks: {stats.code_chunks}; time: {stats.elapsed:.1f}s"
    )


@app.command()
def learn(
    path: Path = typer.Argument(..., help="Markdown file or directory of best practices."),
    data_dir: Optional[Path] = typer.Option(None, "--data-dir", help="Index directory"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Add knowledge documents to the index."""
    _setup_logging(verbose)
    with _reported_errors():
        config = load_config(data_dir)
        embedder = _load_embedder(config)
        with create_store(config.index_path) as store:
            indexer = Indexer(
                embedder,
                store,
                config.manifest_path,
                batch_size=config.embed_batch_size,
                concurrency=config.embed_concurrency,
            )
            added = indexer.learn(path)
    console.print(f"Added {added} knowledge paragraphs.")


@app.command()
def query(
    text: str = typer.Argument(..., help="Query text"),
    top_k: Optional[int] = typer.Option(None, "--top-k", "-k", help="Number of results"),
    partition: str = typer.Option("both", "--partition", "-p", help="code, knowledge or both"),
    data_dir: Optional[Path] = typer.Option(None, "--data-dir", help="Index directory"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Show the ranked hits for a query."""
    _setup_logging(verbose)
    if partition not in PARTITION_MODES:
        raise typer.BadParameter(f"partition must be one of {', '.join(PARTITION_MODES)}")

    with _reported_errors():
        config = load_config(data_dir)
        with open_store(config.index_path) as store:
            retriever = Retriever(_load_embedder(config), store)
            results = retriever.retrieve(text, top_k=top_k or config.top_k, partition=partition)

    if not results:
        console.print("[yellow]No matches found.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Score")
    table.add_column("Source")
    table.add_column("Kind")
    table.add_column("Snippet")
    for result in results:
        meta = result.metadata
        if result.partition == "code":
            source = f"{meta['filePath']} L{meta['startLine']}-{meta['endLine']}"
            kind = meta["chunkKind"]
        else:
            source = f"{meta['source']} - {meta['section']}"
            kind = "knowledge"
        snippet = result.text.replace("\n", " ")
        table.add_row(f"{result.score:.4f}", source, kind, snippet[:120])
    console.print(table)


@app.command()
def context(
    text: str = typer.Argument(..., help="Question to gather context for"),
    top_k: Optional[int] = typer.Option(None, "--top-k", "-k", help="Number of results"),
    data_dir: Optional[Path] = typer.Option(None, "--data-dir", help="Index directory"),
) -> None:
    """Print grouped, prompt-ready context for a question."""
    with _reported_errors():
        config = load_config(data_dir)
        with open_store(config.index_path) as store:
            retriever = Retriever(_load_embedder(config), store)
            results = retriever.retrieve_grouped(text, top_k=top_k or config.top_k)
    if not results:
        console.print("[yellow]No matches found.[/yellow]")
        return
    console.print(format_context(results), markup=False, highlight=False)


@app.command()
def status(
    data_dir: Optional[Path] = typer.Option(None, "--data-dir", help="Index directory"),
) -> None:
    """Summarize the index and the last training run."""
    with _reported_errors():
        config = load_config(data_dir)
    if not index_exists(config.index_path):
        console.print('[yellow]Index not found. Run "codesage train <path>" first.[/yellow]')
        return

    with open_store(config.index_path) as store:
        code_items = store.count("code")
        knowledge_items = store.count("knowledge")
    manifest = load_manifest(config.manifest_path)

    console.print(f"Index: [bold]{config.index_path}[/bold]")
    console.print(f"Code chunks: {code_items}, knowledge paragraphs: {knowledge_items}")
    if manifest is not None:
        console.print(f"Files tracked: {len(manifest.files)}, last trained: {manifest.trained_at}")


@app.command()
def reset(
    data_dir: Optional[Path] = typer.Option(None, "--data-dir", help="Index directory"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
) -> None:
    """Delete the index and the train manifest."""
    config = AppConfig(data_dir=data_dir)
    if not yes:
        typer.confirm(f"Delete all indexed data in {config.data_dir}?", abort=True)
    removed = delete_index(config.index_path)
    config.manifest_path.unlink(missing_ok=True)
    if removed:
        console.print("Index deleted.")
    else:
        console.print("[yellow]No index to delete.[/yellow]")


@app.command("config")
def config_command(
    settings: Optional[List[str]] = typer.Argument(None, help="KEY=VALUE pairs to save"),
    data_dir: Optional[Path] = typer.Option(None, "--data-dir", help="Index directory"),
) -> None:
    """Show the effective settings, or save KEY=VALUE overrides first."""
    values = {}
    for item in settings or []:
        key, sep, value = item.partition("=")
        if not sep or key not in CONFIG_KEYS:
            raise typer.BadParameter(
                f"expected KEY=VALUE with KEY one of {', '.join(CONFIG_KEYS)}, got {item!r}"
            )
        values[key] = value

    with _reported_errors():
        if values:
            path = save_config(values, data_dir)
            console.print(f"Saved {len(values)} setting(s) to {path}")
        config = load_config(data_dir)

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Setting")
    table.add_column("Value")
    for key, value in config.to_dict().items():
        table.add_row(key, str(value))
    console.print(table)


def main() -> None:  # pragma: no cover
    app()


if __name__ == "__main__":  # pragma: no cover
    main()
