"""Output formatting helpers for operation results.

All formatters work with OperationResult values or their ``to_dict()`` form.
"""

from __future__ import annotations

import json
from collections.abc import Sequence
from io import StringIO
from typing import Any

import yaml
from rich import box
from rich.console import Console
from rich.table import Table
from rich.text import Text

from .plugins.types import OperationResult


def _status_text(result: OperationResult) -> Text:
    if result.success:
        return Text("✓ ok", style="green")
    return Text("✗ failed", style="red")


def render_results_table(
    results: Sequence[OperationResult],
    names: Sequence[str] | None = None,
    title: str | None = None,
) -> Table:
    """Build a table with one row per result.

    Args:
        results: Results to render, in order
        names: Optional row labels (e.g. hook plugin names), same length as results
        title: Optional table title

    Returns:
        rich Table ready to print
    """
    if names is not None and len(names) != len(results):
        raise ValueError("names and results must have the same length")

    table = Table(title=title, box=box.ROUNDED, header_style="bold", border_style="dim")
    if names is not None:
        table.add_column("Plugin", no_wrap=True)
    table.add_column("Status", no_wrap=True)
    table.add_column("Message")
    table.add_column("Error", style="red")
    table.add_column("Duration", justify="right", no_wrap=True)

    for i, result in enumerate(results):
        row: list[Any] = []
        if names is not None:
            row.append(names[i])
        row.extend(
            [
                _status_text(result),
                result.message,
                result.error or "",
                f"{result.duration:.2f}s",
            ]
        )
        table.add_row(*row)

    return table


def render_to_string(renderable: Any, width: int = 100) -> str:
    """Render a rich object to plain text."""
    console = Console(file=StringIO(), width=width, color_system=None)
    console.print(renderable)
    return console.file.getvalue().rstrip()


def results_to_yaml(results: Sequence[OperationResult]) -> str:
    return yaml.dump(
        [r.to_dict() for r in results], default_flow_style=False, sort_keys=False
    )


def results_to_json(results: Sequence[OperationResult], indent: int = 2) -> str:
    return json.dumps([r.to_dict() for r in results], indent=indent, default=str)
