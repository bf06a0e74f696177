"""Create invoice command."""

import datetime as dt
from pathlib import Path
from typing import Optional, Tuple

import click

from billdora.cli.commands.preview import render_calculation
from billdora.cli.error_handlers import (
    DataValidationError,
    ProcessingError,
    with_error_handling,
)
from billdora.cli.utils.formatters import format_money, format_success, format_warning
from billdora.cli.utils.session_options import (
    build_session,
    open_store,
    parse_decimal,
    selection_options,
)
from billdora.config.settings import get_config
from billdora.models.invoice import Invoice
from billdora.services.errors import CommitError
from billdora.writers.csv_store_writer import CsvStoreWriter


@click.command(name="create-invoice")
@selection_options
@click.option("--client-id", default=None, help="Client being invoiced")
@click.option("--tax", "tax", default="0", show_default=True, help="Tax amount")
@click.option(
    "--due-date",
    type=click.DateTime(formats=["%Y-%m-%d"]),
    default=None,
    help="Payment due date (YYYY-MM-DD)",
)
@click.option("--invoice-number", default=None, help="Explicit invoice number")
def create_invoice(
    project_id: str,
    mode: str,
    tasks: Tuple[str, ...],
    exclude_time: Tuple[str, ...],
    exclude_expense: Tuple[str, ...],
    hourly_rate: Optional[str],
    data_dir: Optional[Path],
    debug: bool,
    client_id: Optional[str],
    tax: str,
    due_date: Optional[dt.datetime],
    invoice_number: Optional[str],
):
    """Create an invoice for a billing selection and save it.

    Example:
        billdora create-invoice --project-id proj-1 --mode milestone --task t-2
    """
    with with_error_handling(debug):
        config = get_config()
        path, store = open_store(data_dir, config)
        session = build_session(
            store,
            config,
            project_id,
            mode,
            tasks,
            exclude_time,
            exclude_expense,
            hourly_rate,
        )
        tax_amount = parse_decimal(tax, "--tax")
        if tax_amount < 0:
            raise DataValidationError("--tax cannot be negative")

        render_calculation(session, session.calculate())

        writer = CsvStoreWriter(path)
        try:
            result = session.commit(
                client_id=client_id,
                tax_amount=tax_amount,
                due_date=due_date.date() if due_date else None,
                invoice_number=invoice_number,
            )
        except CommitError:
            # Persist whatever was written so the partial invoice can be repaired
            writer.write(store)
            raise

        if result.rejection:
            raise ProcessingError(result.rejection)

        writer.write(store)
        for warning in result.warnings:
            click.echo(format_warning(warning))

        invoice = store.query("invoices", {"id": result.invoice_id})[0]
        click.echo(
            format_success(
                f"Created invoice {result.invoice_number} "
                f"(total {format_money(Invoice.model_validate(invoice).total)})"
            )
        )
