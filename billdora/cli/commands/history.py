"""Invoice history command."""

from pathlib import Path
from typing import Optional

import click

from billdora.cli.error_handlers import DataValidationError, with_error_handling
from billdora.cli.utils.formatters import format_money, format_table
from billdora.cli.utils.session_options import data_options, open_store
from billdora.config.settings import get_config
from billdora.services.billing_ledger import BillingLedger
from billdora.utils.money_utils import format_percentage


@click.command(name="invoice-history")
@click.option("--invoice-id", required=True, help="Invoice to show")
@data_options
def invoice_history(invoice_id: str, data_dir: Optional[Path], debug: bool):
    """Show an invoice's lines with the task billing that preceded them.

    Prior percentages come from invoices created before this one, so old
    invoices render the same way they did when they were issued.
    """
    with with_error_handling(debug):
        config = get_config()
        _, store = open_store(data_dir, config)

        try:
            history = BillingLedger(store).invoice_history(invoice_id)
        except LookupError as e:
            raise DataValidationError(str(e))

        rows = []
        for entry in history:
            item = entry.line_item
            if item.item_type == "task":
                prior = format_percentage(entry.prior_billed_percentage)
                current = format_percentage(item.billed_percentage or 0)
                cumulative = format_percentage(entry.cumulative_percentage)
            else:
                prior = current = cumulative = "-"
            rows.append(
                [item.description, prior, current, cumulative, format_money(item.amount)]
            )

        click.echo(
            format_table(
                ["Description", "Prior", "This invoice", "Cumulative", "Amount"],
                rows,
                right_align=(1, 2, 3, 4),
            )
        )
