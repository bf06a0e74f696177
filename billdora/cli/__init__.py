"""Billdora CLI.

Command-line interface over a directory of CSV tables: inspect billing
candidates, preview an invoice amount and create invoices.
"""

import click

from billdora import __version__
from billdora.cli.commands.candidates import list_candidates
from billdora.cli.commands.history import invoice_history
from billdora.cli.commands.invoice import create_invoice
from billdora.cli.commands.preview import preview_billing
from billdora.config.logging_config import LoggingConfig, configure_logging


@click.group(help="Billdora - bill project time, expenses and task budgets")
@click.version_option(version=__version__)
def cli():
    """Billdora CLI main entry point."""
    configure_logging(LoggingConfig.from_env())


cli.add_command(list_candidates)
cli.add_command(preview_billing)
cli.add_command(create_invoice)
cli.add_command(invoice_history)


def main():
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
