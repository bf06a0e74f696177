"""Error handling for CLI commands."""

import sys
import traceback
from typing import Optional

import click
from pydantic import ValidationError

from billdora.cli.utils.formatters import format_error, format_warning
from billdora.services.errors import CommitError, LoadError, StoreError


class CLIError(Exception):
    """Base exception for CLI errors with user-friendly messages."""

    def __init__(self, message: str, recovery_hint: Optional[str] = None):
        """
        Initialize CLI error.

        Args:
            message: Error message to display
            recovery_hint: Optional hint for recovering from the error
        """
        self.message = message
        self.recovery_hint = recovery_hint
        super().__init__(message)


class ConfigurationError(CLIError):
    """Error related to configuration or the data directory."""

    pass


class DataValidationError(CLIError):
    """Error related to invalid user input or records."""

    pass


class ProcessingError(CLIError):
    """Error related to billing processing."""

    pass


def _echo_cli_error(label: str, error: CLIError) -> None:
    click.echo(format_error(f"{label}: {error.message}"))
    if error.recovery_hint:
        click.echo(format_warning(f"Hint: {error.recovery_hint}"))


def handle_cli_error(error: Exception, debug: bool = False) -> int:
    """
    Handle CLI errors with user-friendly messages.

    Args:
        error: The exception that occurred
        debug: Whether to show full stack trace

    Returns:
        Exit code (1-6 for known error types)
    """
    if isinstance(error, ConfigurationError):
        _echo_cli_error("Configuration Error", error)
        return 1

    elif isinstance(error, DataValidationError):
        _echo_cli_error("Data Validation Error", error)
        return 3

    elif isinstance(error, ProcessingError):
        _echo_cli_error("Processing Error", error)
        return 4

    elif isinstance(error, CommitError):
        click.echo(format_error(f"Invoice Error: {error.message}"))
        if error.invoice_id:
            click.echo(
                format_warning(
                    f"Hint: invoice {error.invoice_id} exists; fix the failed "
                    "steps instead of re-running, or a duplicate invoice is created"
                )
            )
        else:
            click.echo(format_warning("Hint: no invoice was created; it is safe to retry"))
        return 5

    elif isinstance(error, (LoadError, StoreError)):
        click.echo(format_error(f"Data Store Error: {error}"))
        return 2

    elif isinstance(error, ValidationError):
        click.echo(format_error("Invalid record in data directory"))
        click.echo(str(error))
        return 6

    elif isinstance(error, click.Abort):
        click.echo(format_warning("\nOperation cancelled by user"))
        return 130

    else:
        click.echo(format_error(f"Unexpected Error: {type(error).__name__}"))
        click.echo(str(error))

        if debug:
            click.echo("\nFull stack trace:")
            click.echo(traceback.format_exc())
        else:
            click.echo(format_warning("\nRun with --debug flag for full stack trace"))

        return 255


def with_error_handling(debug: bool = False):
    """
    Context manager adding standardized error handling to CLI commands.

    Args:
        debug: Whether to show full stack traces

    Example:
        @click.command()
        @click.option('--debug', is_flag=True)
        def my_command(debug):
            with with_error_handling(debug):
                ...
    """

    class ErrorHandler:
        def __init__(self, show_debug: bool):
            self.show_debug = show_debug

        def __enter__(self):
            return self

        def __exit__(self, exc_type, exc_val, exc_tb):
            if exc_val is not None and not isinstance(exc_val, SystemExit):
                sys.exit(handle_cli_error(exc_val, self.show_debug))
            return False

    return ErrorHandler(debug)
