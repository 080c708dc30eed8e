"""
Terminal output using Rich
Renders the outcomes of a batch as a table
"""
from typing import Sequence

from rich.console import Console
from rich.table import Table
from rich.text import Text

from dyncall.core.network.multicall import CallItem, CallOutcome, CallSuccess
from dyncall.utils.logger import console as default_console

MAX_CELL_LENGTH = 66


def _shorten(text: str) -> str:
    if len(text) <= MAX_CELL_LENGTH:
        return text
    return text[:MAX_CELL_LENGTH - 3] + "..."


def _format_value(value) -> str:
    if isinstance(value, bytes):
        return "0x" + value.hex()
    if isinstance(value, (list, tuple)):
        inner = ", ".join(_format_value(v) for v in value)
        return f"[{inner}]" if isinstance(value, list) else f"({inner})"
    return str(value)


def render_outcomes(calls: Sequence[CallItem], outcomes: Sequence[CallOutcome]) -> Table:
    """Create the outcomes table"""
    table = Table(
        title="MULTICALL RESULTS",
        show_header=True,
        header_style="bold magenta",
        border_style="dim"
    )

    table.add_column("#", style="dim", width=3)
    table.add_column("Target", style="cyan")
    table.add_column("Function", style="white")
    table.add_column("Status", width=8)
    table.add_column("Result", overflow="fold")

    if not outcomes:
        table.add_row("", "", Text("No calls executed", style="dim italic"), "", "")
        return table

    for call, outcome in zip(calls, outcomes):
        target = f"{call.target[:8]}...{call.target[-4:]}"
        if isinstance(outcome, CallSuccess):
            status = Text("OK", style="bold green")
            result = Text(_shorten(_format_value(outcome.as_python())))
        else:
            status = Text("FAILED", style="bold red")
            result = Text(_shorten(outcome.reason or "0x" + outcome.return_data.hex()), style="red")
        table.add_row(str(outcome.index), target, call.function.signature, status, result)

    return table


def print_outcomes(
    calls: Sequence[CallItem],
    outcomes: Sequence[CallOutcome],
    console: Console | None = None,
):
    """Print the outcomes table to the console"""
    (console or default_console).print(render_outcomes(calls, outcomes))
