"""Output formatting utilities for CLI."""

from decimal import Decimal
from typing import List, Optional, Sequence

import click

from billdora.utils.money_utils import format_currency


def format_success(message: str) -> str:
    """Format a success message in green."""
    return click.style(f"✓ {message}", fg="green", bold=True)


def format_error(message: str) -> str:
    """Format an error message in red."""
    return click.style(f"✗ {message}", fg="red", bold=True)


def format_warning(message: str) -> str:
    """Format a warning message in yellow."""
    return click.style(f"⚠ {message}", fg="yellow", bold=True)


def format_info(message: str) -> str:
    """Format an info message in blue."""
    return click.style(f"ℹ {message}", fg="blue")


def format_money(amount: Optional[Decimal]) -> str:
    """Format an optional amount for a table cell."""
    return "-" if amount is None else format_currency(amount)


def format_table(
    headers: List[str],
    rows: Sequence[Sequence[object]],
    right_align: Sequence[int] = (),
    max_width: int = 40,
) -> str:
    """Format data as a table.

    Args:
        headers: List of column headers
        rows: Data rows (each row is a sequence of cell values)
        right_align: Indexes of columns to right-align (amounts, hours)
        max_width: Maximum width for each column

    Returns:
        Formatted table as a string
    """
    if not headers:
        return ""

    cells = [[str(cell) for cell in row] for row in rows]
    col_widths = [len(h) for h in headers]
    for row in cells:
        for i, cell in enumerate(row[: len(headers)]):
            col_widths[i] = max(col_widths[i], len(cell))
    col_widths = [min(w, max_width) for w in col_widths]

    def render(row: Sequence[str]) -> str:
        parts = []
        for i, width in enumerate(col_widths):
            cell = row[i][:width] if i < len(row) else ""
            aligned = cell.rjust(width) if i in right_align else cell.ljust(width)
            parts.append(f" {aligned} ")
        return "|" + "|".join(parts) + "|"

    separator = "+" + "+".join("-" * (w + 2) for w in col_widths) + "+"
    lines = [separator, render(headers), separator]
    if cells:
        lines.extend(render(row) for row in cells)
        lines.append(separator)
    return "\n".join(lines)
