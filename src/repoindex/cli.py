"""Command line interface for repoindex."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from repoindex.config import AppConfig
from repoindex.embedding.encoder import EmbeddingConfig, EmbeddingModel
from repoindex.embedding.generator import EmbeddingGenerator
from repoindex.errors import IndexingRunError
from repoindex.index.indexer import Indexer
from repoindex.index.search import Searcher
from repoindex.index.storage import SQLiteVectorStore


console = Console()
app = typer.Typer(help="repoindex - incremental semantic index of source trees")


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="[%(levelname)s] %(message)s")


def _ensure_db_parent(db_path: Path) -> None:
    db_path.parent.mkdir(parents=True, exist_ok=True)


def _resolve_db(db: Optional[Path]) -> Path:
    config = AppConfig(db_path=db if db is not None else AppConfig().db_path)
    return config.resolve_db_path(Path.cwd())


@app.command()
def index(
    root: Path = typer.Argument(..., help="Source tree to index.", resolve_path=True),
    project: Optional[str] = typer.Option(
        None, "--project", "-p", help="Project id (generated for --full when omitted)"
    ),
    full: bool = typer.Option(False, "--full", help="Rebuild the project from scratch"),
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
    model: str = typer.Option(AppConfig().model_name, help="Sentence-transformer model name"),
    chunk_lines: int = typer.Option(AppConfig().chunk_lines, help="Chunk size in lines"),
    overlap: int = typer.Option(AppConfig().overlap_percent, help="Chunk overlap in percent"),
    workers: Optional[int] = typer.Option(None, help="Embedding worker threads"),
    timeout: Optional[float] = typer.Option(
        None, help="Seconds to wait for each chunk embedding (default: no limit)"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Index a source tree, incrementally unless --full is given."""
    _setup_logging(verbose)
    if not full and not project:
        raise typer.BadParameter("--project is required for incremental indexing")
    try:
        config = AppConfig(
            db_path=db if db is not None else AppConfig().db_path,
            model_name=model,
            chunk_lines=chunk_lines,
            overlap_percent=overlap,
            workers=workers,
            embedding_timeout=timeout,
        )
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc

    resolved_db = config.resolve_db_path(Path.cwd())
    _ensure_db_parent(resolved_db)

    embedder = EmbeddingModel(EmbeddingConfig(model_name=config.model_name))
    store = SQLiteVectorStore(resolved_db, dimension=embedder.dimension)
    generator = EmbeddingGenerator(
        embedder, workers=config.workers, timeout=config.embedding_timeout
    )
    indexer = Indexer(
        generator,
        store,
        chunk_lines=config.chunk_lines,
        overlap_percent=config.overlap_percent,
        extensions=config.extensions,
        ignore_patterns=config.ignore_patterns,
    )

    console.print(f"Indexing into [bold]{resolved_db}[/bold]...")
    try:
        result = indexer.index(root, project, incremental=not full)
    except IndexingRunError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1) from exc
    finally:
        generator.close()
        store.close()

    console.print(f"Project: [bold]{result.project_id}[/bold]")
    console.print(
        f"new: {len(result.new_files)}, "
        f"modified: {len(result.modified_files)}, unchanged: {len(result.unchanged_files)}, "
        f"removed: {len(result.removed_files)}, failed: {len(result.failed_files)}, "
        f"chunks: {len(result.new_chunks)}"
    )


@app.command()
def search(
    query: str = typer.Argument(..., help="Query text"),
    project: str = typer.Option(..., "--project", "-p", help="Project id"),
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
    model: str = typer.Option(AppConfig().model_name, help="Sentence-transformer model name"),
    limit: int = typer.Option(10, help="Number of results to display"),
    threshold: float = typer.Option(
        AppConfig().similarity_threshold, help="Maximum cosine distance"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Execute a semantic search within a project."""
    _setup_logging(verbose)
    resolved_db = _resolve_db(db)
    if not resolved_db.exists():
        raise typer.BadParameter(f"Database not found: {resolved_db}")

    embedder = EmbeddingModel(EmbeddingConfig(model_name=model))
    store = SQLiteVectorStore(resolved_db, dimension=embedder.dimension)
    generator = EmbeddingGenerator(embedder, workers=1)
    searcher = Searcher(generator, store, similarity_threshold=threshold)

    try:
        results = searcher.search_with_scores(project, query, limit=limit)
    finally:
        generator.close()
        store.close()

    if not results:
        console.print("[yellow]No matches found.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Distance")
    table.add_column("File")
    table.add_column("Lines")
    table.add_column("Snippet")

    for result in results:
        snippet = result.content.replace("\n", " ")
        table.add_row(
            f"{result.distance:.4f}",
            result.file_path,
            f"{result.start_line}-{result.end_line}",
            snippet[:180],
        )

    console.print(table)


@app.command()
def files(
    project: str = typer.Option(..., "--project", "-p", help="Project id"),
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
) -> None:
    """List the files recorded for a project."""
    resolved_db = _resolve_db(db)
    if not resolved_db.exists():
        console.print("[yellow]Database not found.[/yellow]")
        return

    store = SQLiteVectorStore(resolved_db)
    try:
        records = store.list_files(project)
        chunk_count = store.count_chunks(project)
    finally:
        store.close()

    if not records:
        console.print(f"[yellow]No files indexed for project {project}.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("File")
    table.add_column("Size")
    table.add_column("Checksum")
    for record in records:
        table.add_row(record.relative_path, str(record.size_bytes), record.checksum[:12])
    console.print(table)
    console.print(f"{len(records)} files, {chunk_count} chunks")


@app.command()
def delete(
    project: str = typer.Option(..., "--project", "-p", help="Project id"),
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
) -> None:
    """Remove every chunk and file record of a project."""
    resolved_db = _resolve_db(db)
    if not resolved_db.exists():
        console.print("[yellow]Database not found, nothing to delete.[/yellow]")
        return

    store = SQLiteVectorStore(resolved_db)
    try:
        removed = store.delete_project(project)
    finally:
        store.close()
    console.print(f"Removed {removed} chunks from project {project}.")
