"""Shared options for commands that build a billing selection."""

from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Callable, Optional, Sequence, Tuple

import click

from billdora.cli.error_handlers import ConfigurationError, DataValidationError
from billdora.cli.utils.formatters import format_warning
from billdora.config.settings import BilldoraConfig
from billdora.models.task import BillingMode
from billdora.readers.csv_store_reader import CsvStoreReader
from billdora.services.billing_session import BillingSession
from billdora.services.data_store import InMemoryDataStore

MODE_CHOICES = [
    BillingMode.TIME_MATERIALS.value,
    BillingMode.MILESTONE.value,
    BillingMode.PERCENTAGE.value,
]


def data_options(f: Callable) -> Callable:
    """Add --data-dir and --debug."""
    f = click.option(
        "--data-dir",
        type=click.Path(file_okay=False, path_type=Path),
        default=None,
        help="Directory with the CSV tables (default: DATA_DIR from config)",
    )(f)
    f = click.option("--debug", is_flag=True, help="Show full stack traces")(f)
    return f


def selection_options(f: Callable) -> Callable:
    """Add the options describing a billing selection."""
    options = [
        click.option("--project-id", required=True, help="Project to invoice"),
        click.option(
            "--mode",
            type=click.Choice(MODE_CHOICES),
            default=BillingMode.TIME_MATERIALS.value,
            show_default=True,
            help="Billing method",
        ),
        click.option(
            "--task",
            "tasks",
            multiple=True,
            help="Task to bill, as ID or ID=PERCENT (milestone/percentage modes)",
        ),
        click.option(
            "--exclude-time",
            multiple=True,
            help="Time entry id to leave off (time & materials; all others are billed)",
        ),
        click.option(
            "--exclude-expense",
            multiple=True,
            help="Expense id to leave off (time & materials; all others are billed)",
        ),
        click.option(
            "--hourly-rate",
            type=str,
            default=None,
            help="Rate for entries without their own rate (default: config)",
        ),
    ]
    for option in reversed(options):
        f = option(f)
    return data_options(f)


def parse_decimal(value: str, name: str) -> Decimal:
    try:
        return Decimal(value)
    except InvalidOperation:
        raise DataValidationError(f"{name} must be a number, got {value!r}")


def parse_task_option(value: str) -> Tuple[str, Optional[Decimal]]:
    """Parse ``ID`` or ``ID=PERCENT``.

    Example:
        >>> parse_task_option("task-1=25")
        ('task-1', Decimal('25'))
    """
    task_id, sep, percentage = value.partition("=")
    task_id = task_id.strip()
    if not task_id:
        raise DataValidationError(f"Invalid --task value {value!r}")
    if not sep:
        return task_id, None
    return task_id, parse_decimal(percentage.strip(), f"Percentage for {task_id}")


def open_store(data_dir: Optional[Path], config: BilldoraConfig) -> Tuple[Path, InMemoryDataStore]:
    """Load the CSV store from ``data_dir`` or the configured directory."""
    path = data_dir or Path(config.data_dir)
    try:
        return path, CsvStoreReader(path).load()
    except FileNotFoundError as e:
        raise ConfigurationError(
            str(e), recovery_hint="Pass --data-dir or set DATA_DIR in your .env file"
        )


def build_session(
    store: InMemoryDataStore,
    config: BilldoraConfig,
    project_id: str,
    mode: str,
    tasks: Sequence[str],
    exclude_time: Sequence[str],
    exclude_expense: Sequence[str],
    hourly_rate: Optional[str],
) -> BillingSession:
    """Open a billing session and apply the selection options to it."""
    billing_mode = BillingMode(mode)
    if tasks and not billing_mode.is_task_based:
        raise DataValidationError(
            "--task only applies to milestone or percentage billing",
            recovery_hint="Add --mode milestone or --mode percentage",
        )
    if (exclude_time or exclude_expense) and billing_mode.is_task_based:
        raise DataValidationError(
            "--exclude-time/--exclude-expense only apply to time & materials billing"
        )

    default_rate = (
        parse_decimal(hourly_rate, "--hourly-rate")
        if hourly_rate is not None
        else config.default_hourly_rate
    )
    session = BillingSession(
        store,
        project_id,
        default_hourly_rate=default_rate,
        default_percentage=config.default_percentage_to_bill,
        invoice_number_prefix=config.invoice_number_prefix,
        billing_mode=billing_mode,
    )
    session.load_candidates()
    if session.last_load_error is not None:
        click.echo(format_warning(f"Could not load candidates: {session.last_load_error}"))

    for entry_id in exclude_time:
        if entry_id in session.selection.selected_time_entries:
            session.toggle_time_entry(entry_id)
    for expense_id in exclude_expense:
        if expense_id in session.selection.selected_expenses:
            session.toggle_expense(expense_id)

    known_tasks = {task.id for task in session.tasks}
    for value in tasks:
        task_id, percentage = parse_task_option(value)
        if task_id not in known_tasks:
            raise DataValidationError(
                f"Task {task_id} not found in project {project_id}"
            )
        if task_id not in session.selection.selected_tasks:
            session.toggle_task(task_id)
        if percentage is not None:
            session.set_task_percentage(task_id, percentage)

    return session

