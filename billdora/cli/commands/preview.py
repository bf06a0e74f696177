"""Preview billing command."""

from pathlib import Path
from typing import Optional, Tuple

import click

from billdora.calculators.billing_calculator import BillingCalculation
from billdora.cli.error_handlers import with_error_handling
from billdora.cli.utils.formatters import (
    format_error,
    format_info,
    format_money,
    format_success,
    format_table,
    format_warning,
)
from billdora.cli.utils.session_options import (
    build_session,
    open_store,
    selection_options,
)
from billdora.config.settings import get_config
from billdora.services.billing_session import BillingSession
from billdora.utils.money_utils import format_percentage


def render_calculation(session: BillingSession, calculation: BillingCalculation) -> None:
    """Print the engine result for a session."""
    mode = calculation.billing_mode
    click.echo(format_info(f"Billing method: {mode.value}"))

    if mode.is_task_based:
        tasks = {task.id: task for task in session.tasks}
        rows = [
            [
                tasks[task_id].name,
                format_percentage(tasks[task_id].billed_percentage),
                format_percentage(amount.percentage_to_bill),
                format_money(amount.amount_to_bill),
            ]
            for task_id, amount in calculation.selected_tasks.items()
        ]
        if rows:
            click.echo(
                format_table(
                    ["Task", "Prior", "This invoice", "Amount"], rows, right_align=(1, 2, 3)
                )
            )
    else:
        click.echo(
            f"Time: {calculation.total_hours}h = {format_money(calculation.time_total)}"
        )
        click.echo(f"Expenses: {format_money(calculation.expense_total)}")

    for warning in calculation.nte_warnings:
        click.echo(format_warning(warning))

    click.echo(f"Subtotal: {format_money(calculation.subtotal)}")
    if calculation.is_valid:
        click.echo(format_success("Ready to invoice"))
    else:
        click.echo(format_error(calculation.validation_error or "Selection is not valid"))


@click.command(name="preview")
@selection_options
def preview_billing(
    project_id: str,
    mode: str,
    tasks: Tuple[str, ...],
    exclude_time: Tuple[str, ...],
    exclude_expense: Tuple[str, ...],
    hourly_rate: Optional[str],
    data_dir: Optional[Path],
    debug: bool,
):
    """Preview the invoice amount for a billing selection without saving.

    Example:
        billdora preview --project-id proj-1 --mode percentage --task t-1=25
    """
    with with_error_handling(debug):
        config = get_config()
        _, store = open_store(data_dir, config)
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
        render_calculation(session, session.calculate())
        session.cancel()
