"""
CLI utility helpers: output formatting and error reporting.
"""

from __future__ import annotations

import json
from dataclasses import asdict
from typing import Any

import typer
from rich.console import Console
from rich.table import Table

from etfspine.core.errors import EtfSpineError

console = Console()
err_console = Console(stderr=True)


def _to_dict(obj: Any) -> dict[str, Any]:
    """Convert dataclass / pydantic model / dict to plain dict."""
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    if hasattr(obj, "model_dump"):
        return obj.model_dump()
    if hasattr(obj, "__dataclass_fields__"):
        return asdict(obj)
    if isinstance(obj, dict):
        return obj
    return {"value": str(obj)}


def print_json(payload: Any) -> None:
    """Plain JSON on stdout (no highlighting, safe to pipe)."""
    typer.echo(json.dumps(payload, indent=2, default=str))


def print_rows(rows: list[Any], *, title: str = "", columns: list[str] | None = None) -> None:
    """Render a list of dataclasses/dicts as a Rich table."""
    if not rows:
        console.print("[dim]No items.[/dim]")
        return
    dicts = [_to_dict(r) for r in rows]
    columns = columns or list(dicts[0])
    table = Table(title=title or None, show_lines=False, pad_edge=False)
    for col in columns:
        table.add_column(col, overflow="fold")
    for d in dicts:
        table.add_row(*("" if d.get(c) is None else str(d.get(c)) for c in columns))
    console.print(table)


def print_dict(data: dict[str, Any], *, title: str = "") -> None:
    if title:
        console.print(f"[bold]{title}[/bold]")
    for k, v in data.items():
        console.print(f"  [cyan]{k}[/cyan]: {v}")


def fail(error: EtfSpineError, *, as_json: bool = False) -> None:
    """Report *error* and exit with status 1."""
    if as_json:
        print_json({"error": error.to_dict()})
    else:
        err_console.print(f"[bold red]Error[/bold red] ({error.code}): {error.message}")
    raise typer.Exit(code=1)
