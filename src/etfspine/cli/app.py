"""
Root Typer application for the etfspine CLI.

Commands
--------
describe      Render the relational-vs-document comparison (Markdown / JSON / YAML).
validators    Print collection validators (``$jsonSchema`` + ``$expr``).
indexes       List the indexes of every collection.
init-source   Create the relational source schema, optionally with sample rows.
migrate       Load the relational source into the document store.
audit         Run whole-store integrity checks against the document store.
"""

from __future__ import annotations

from enum import Enum
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as pkg_version
from pathlib import Path

import typer

from etfspine.cli.utils import console, fail, print_dict, print_json, print_rows
from etfspine.core.errors import ConfigError, EtfSpineError
from etfspine.core.logging import configure_logging, get_logger
from etfspine.core.settings import MEMORY_URL, EtfSpineSettings, get_settings

app = typer.Typer(
    name="etfspine",
    help="etfspine: relational to document schema mapping for ETF reference data.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

logger = get_logger(__name__)


class ReportFormat(str, Enum):
    markdown = "markdown"
    json = "json"
    yaml = "yaml"


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        try:
            v = pkg_version("etfspine")
        except PackageNotFoundError:
            from etfspine import __version__ as v
        typer.echo(f"etfspine {v}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    log_level: str | None = typer.Option(None, "--log-level", help="Override ETFSPINE_LOG_LEVEL."),
) -> None:
    """etfspine CLI: describe, migrate and audit the document schema."""
    try:
        settings = get_settings(log_level=log_level)
    except ConfigError as exc:
        fail(exc)
    configure_logging(level=settings.log_level, json_format=settings.log_json)


def _settings(**overrides: object) -> EtfSpineSettings:
    try:
        return get_settings(**overrides)
    except ConfigError as exc:
        fail(exc)
        raise  # unreachable; fail() exits


# ── describe / validators / indexes ──────────────────────────────────────


@app.command()
def describe(
    fmt: ReportFormat = typer.Option(ReportFormat.markdown, "--format", "-f", help="Output format."),
    output: Path | None = typer.Option(None, "--output", "-o", help="Write to a file instead of stdout."),
    validators: bool = typer.Option(False, "--validators", help="Include collection validators (json/yaml)."),
) -> None:
    """Render the relational-vs-document comparison."""
    from etfspine.mapping.report import build_report, render_markdown, report_to_dict, report_to_yaml

    report = build_report(include_validators=validators)
    if fmt is ReportFormat.markdown:
        text = render_markdown(report)
    elif fmt is ReportFormat.yaml:
        text = report_to_yaml(report)
    else:
        import json

        text = json.dumps(report_to_dict(report), indent=2, default=str)

    if output is not None:
        output.write_text(text, encoding="utf-8")
        console.print(f"[green]Wrote[/green] {output}")
    else:
        typer.echo(text)


@app.command()
def validators(
    collection: str | None = typer.Argument(None, help="Collection name (default: all)."),
) -> None:
    """Print collection validators as JSON."""
    from etfspine.documents.collections import COLLECTIONS, get_collection, validator_for

    try:
        specs = [get_collection(collection)] if collection else list(COLLECTIONS)
    except EtfSpineError as exc:
        fail(exc)
        return
    print_json({spec.name: validator_for(spec) for spec in specs})


@app.command()
def indexes(
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """List every collection index."""
    from etfspine.documents.collections import COLLECTIONS

    rows = [
        {
            "collection": spec.name,
            "index": index.name,
            "keys": ", ".join(index.keys),
            "unique": index.unique,
            "partial_filter": index.partial_filter,
        }
        for spec in COLLECTIONS
        for index in spec.indexes
    ]
    if json_out:
        print_json(rows)
    else:
        print_rows(rows, title="Collection indexes")


# ── init-source / migrate / audit ────────────────────────────────────────


@app.command("init-source")
def init_source(
    source: str | None = typer.Option(None, "--source", "-s", help="Source database URL."),
    sample: bool = typer.Option(False, "--sample", help="Insert the sample dataset."),
) -> None:
    """Create the relational source schema (and triggers)."""
    from etfspine.relational.sample import seed_sample_data
    from etfspine.relational.session import (
        create_source_engine,
        create_source_schema,
        source_session_factory,
    )

    settings = _settings(source_url=source)
    if settings.source_url == settings.default_source_url:
        settings.data_dir.mkdir(parents=True, exist_ok=True)
    try:
        engine = create_source_engine(settings.source_url)
    except EtfSpineError as exc:
        fail(exc)
        return
    try:
        create_source_schema(engine)
        if sample:
            with source_session_factory(engine).begin() as session:
                seed_sample_data(session)
    finally:
        engine.dispose()
    logger.info("source_initialised", source=settings.source_url, sample=sample)
    console.print(f"[green]Source schema ready[/green] at {settings.source_url}")


@app.command()
def migrate(
    source: str | None = typer.Option(None, "--source", "-s", help="Source database URL."),
    target: str | None = typer.Option(None, "--target", "-t", help="memory:// or a SQLAlchemy URL."),
    batch_size: int | None = typer.Option(None, "--batch-size", "-b"),
    fail_fast: bool | None = typer.Option(None, "--fail-fast/--no-fail-fast"),
    enforce_references: bool | None = typer.Option(None, "--references/--no-references"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Load into a scratch in-memory store."),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Load the relational source into the document store."""
    from etfspine.integrity.service import DocumentService
    from etfspine.migration.runner import MigrationRunner, verify_counts
    from etfspine.relational.session import create_source_engine, source_session_factory
    from etfspine.store import open_store

    settings = _settings(
        source_url=source,
        target_url=target,
        batch_size=batch_size,
        fail_fast=fail_fast,
        enforce_references=enforce_references,
    )
    engine = store = None
    try:
        engine = create_source_engine(settings.source_url)
        # A dry run never touches the target.
        store = open_store(MEMORY_URL if dry_run else settings.target_url)
        service = DocumentService(store, enforce_references=settings.enforce_references)
        with source_session_factory(engine)() as session:
            runner = MigrationRunner(
                session,
                service,
                batch_size=settings.batch_size,
                fail_fast=settings.fail_fast,
                dry_run=dry_run,
            )
            result = runner.run()
            counts = verify_counts(session, runner.service.store)
    except EtfSpineError as exc:
        fail(exc, as_json=json_out)
        return
    finally:
        if store is not None:
            store.close()
        if engine is not None:
            engine.dispose()

    if json_out:
        print_json({**result.to_dict(), "counts": [c.to_dict() for c in counts]})
    else:
        print_dict(
            {
                "run_id": result.run_id,
                "loaded": result.total_loaded,
                "rejected": len(result.rejects),
                "elapsed_ms": round(result.elapsed_ms, 1),
                "dry_run": result.dry_run,
            },
            title="Migration",
        )
        print_rows(counts, title="Counts", columns=["entity", "table", "collection", "source", "target", "ok"])
        if result.rejects:
            print_rows(result.rejects, title="Rejects", columns=["entity", "stage", "reason_code", "reason_detail"])

    if not result.success or not all(c.ok for c in counts):
        raise typer.Exit(code=1)


@app.command()
def audit(
    target: str | None = typer.Option(None, "--target", "-t", help="SQLAlchemy URL of the document store."),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Run whole-store integrity checks; exits 1 on any FAIL."""
    from etfspine.integrity.audit import IntegrityAuditor
    from etfspine.store import open_store

    settings = _settings(target_url=target)
    if settings.store_backend == "memory":
        fail(ConfigError("audit needs a persistent store: pass --target or set ETFSPINE_TARGET_URL"), as_json=json_out)
    try:
        store = open_store(settings.target_url)
    except EtfSpineError as exc:
        fail(exc, as_json=json_out)
        return
    try:
        report = IntegrityAuditor(store).run()
    finally:
        store.close()

    if json_out:
        print_json(report.to_dict())
    else:
        print_rows(
            report.results,
            title="Integrity audit",
            columns=["name", "category", "status", "message"],
        )
        print_dict(report.summary(), title="Summary")

    if not report.ok:
        raise typer.Exit(code=1)


__all__ = ["app"]
