"""CLI entrypoint for chunkstash."""

from __future__ import annotations

import json
from pathlib import Path
from typing import List, Optional

import typer

from chunkstash.core.config import Settings
from chunkstash.core.errors import ChunkStashError, IntegrityViolation
from chunkstash.core.logging import configure_logging
from chunkstash.core.metrics import render_metrics
from chunkstash.ingest.pipeline import iter_files
from chunkstash.ingest.types import TxContext
from chunkstash.runtime import Runtime

app = typer.Typer(name="chunkstash", help="Deduplicating, content-defined chunk store")


def _load_settings(config: Optional[Path], db: Optional[Path]) -> Settings:
    settings = Settings.from_yaml(config)
    if db is not None:
        settings.db_path = db
    return settings


def _echo(payload: object) -> None:
    typer.echo(json.dumps(payload, indent=2))


@app.callback()
def main(
    log_level: str = typer.Option("WARNING", "--log-level", help="Logging level"),
    plain_logs: bool = typer.Option(False, "--plain-logs", help="Human readable logs instead of JSON"),
) -> None:
    configure_logging(log_level.upper(), use_json=not plain_logs)


@app.command()
def put(
    paths: List[Path] = typer.Argument(..., help="Files or directories to ingest"),
    config: Optional[Path] = typer.Option(None, "--config", help="YAML configuration file"),
    db: Optional[Path] = typer.Option(None, "--db", help="Override the blob store database path"),
    hostname: Optional[str] = typer.Option(None, "--hostname", help="Hostname recorded on the transaction"),
    archive: bool = typer.Option(False, "--archive", help="Mark the transaction as an archive"),
    show_metrics: bool = typer.Option(False, "--metrics", help="Print Prometheus metrics to stderr afterwards"),
) -> None:
    """Chunk, deduplicate and store files."""
    settings = _load_settings(config, db)
    ctx = TxContext(hostname=hostname or settings.hostname, archive=archive)
    files = list(iter_files(paths, settings.ignore_patterns))
    with Runtime.open(settings) as runtime:
        try:
            report = runtime.pipeline.ingest_paths(files, ctx)
        except IntegrityViolation as exc:
            typer.echo(f"Integrity violation: {exc}", err=True)
            raise typer.Exit(code=2)
    _echo(report)
    if show_metrics:
        payload, _content_type = render_metrics()
        typer.echo(payload.decode("utf-8"), err=True)
    if report["stats"]["failed"]:
        raise typer.Exit(code=1)


@app.command()
def index(
    file_hash: str = typer.Argument(..., help="Whole-file hash"),
    config: Optional[Path] = typer.Option(None, "--config", help="YAML configuration file"),
    db: Optional[Path] = typer.Option(None, "--db", help="Override the blob store database path"),
) -> None:
    """Print the Chunk Index of a stored file."""
    with Runtime.open(_load_settings(config, db)) as runtime:
        try:
            entries = runtime.store.get_index(file_hash)
        except ChunkStashError as exc:
            typer.echo(str(exc), err=True)
            raise typer.Exit(code=1)
    if not entries:
        typer.echo(f"No index for {file_hash}", err=True)
        raise typer.Exit(code=1)
    _echo([{"offset": entry.offset, "hash": entry.hash} for entry in entries])


@app.command()
def metas(
    name: Optional[str] = typer.Argument(None, help="Only versions of this file name"),
    config: Optional[Path] = typer.Option(None, "--config", help="YAML configuration file"),
    db: Optional[Path] = typer.Option(None, "--db", help="Override the blob store database path"),
) -> None:
    """List stored metadata versions, oldest first."""
    with Runtime.open(_load_settings(config, db)) as runtime:
        versions = runtime.store.list_metas(name)
    _echo([dict(meta.to_dict(), hash=meta.hash) for meta in versions])


if __name__ == "__main__":
    app()
