"""List billing candidates command."""

from pathlib import Path
from typing import Optional

import click

from billdora.cli.error_handlers import with_error_handling
from billdora.cli.utils.formatters import (
    format_info,
    format_money,
    format_success,
    format_table,
    format_warning,
)
from billdora.cli.utils.session_options import data_options, open_store
from billdora.config.settings import get_config
from billdora.services.billing_session import BillingSession
from billdora.utils.money_utils import format_currency_compact, format_percentage


@click.command(name="candidates")
@click.option("--project-id", required=True, help="Project to inspect")
@data_options
def list_candidates(project_id: str, data_dir: Optional[Path], debug: bool):
    """List tasks and unbilled time entries and expenses of a project.

    Example:
        billdora candidates --project-id proj-1 --data-dir ./data
    """
    with with_error_handling(debug):
        config = get_config()
        _, store = open_store(data_dir, config)

        session = BillingSession.from_config(store, project_id, config)
        session.load_candidates()
        if session.last_load_error is not None:
            click.echo(format_warning(str(session.last_load_error)))

        if session.tasks:
            click.echo(format_info("Tasks"))
            rows = [
                [
                    task.id,
                    task.name,
                    format_currency_compact(task.budget),
                    format_percentage(task.billed_percentage),
                    format_percentage(task.remaining_percentage),
                    task.billing_mode.value,
                ]
                for task in session.tasks
            ]
            click.echo(
                format_table(
                    ["ID", "Task", "Budget", "Billed", "Remaining", "Mode"],
                    rows,
                    right_align=(2, 3, 4),
                )
            )

        if session.time_entries:
            click.echo(format_info("Unbilled time"))
            rows = [
                [
                    entry.id,
                    entry.date.isoformat(),
                    entry.staff_name or "Team",
                    entry.task_id or "-",
                    str(entry.hours),
                    format_money(entry.rate(session.default_hourly_rate)),
                ]
                for entry in session.time_entries
            ]
            click.echo(
                format_table(
                    ["ID", "Date", "Staff", "Task", "Hours", "Rate"],
                    rows,
                    right_align=(4, 5),
                )
            )

        if session.expenses:
            click.echo(format_info("Unbilled expenses"))
            rows = [
                [expense.id, expense.date.isoformat(), expense.label, format_money(expense.amount)]
                for expense in session.expenses
            ]
            click.echo(
                format_table(["ID", "Date", "Expense", "Amount"], rows, right_align=(3,))
            )

        if not (session.tasks or session.time_entries or session.expenses):
            click.echo(format_info("No approved billable time or expenses found"))
            return

        click.echo(
            format_success(
                f"{len(session.time_entries)} time entries, "
                f"{len(session.expenses)} expenses, {len(session.tasks)} tasks"
            )
        )
