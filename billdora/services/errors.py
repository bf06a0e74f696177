"""
Exception hierarchy for billing I/O failures.

Business rule violations are never raised; they are reported as data on
BillingCalculation and CommitResult. Only data store failures surface as
exceptions.
"""

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from billdora.services.invoice_committer import CommitResult


class BilldoraError(Exception):
    """Base class for billing core errors."""

    pass


class StoreError(BilldoraError):
    """Raised by a data store when a read or write fails."""

    pass


class LoadError(BilldoraError):
    """Raised when billing candidates cannot be fetched for a project."""

    def __init__(self, message: str, project_id: Optional[str] = None):
        self.project_id = project_id
        super().__init__(message)


class CommitError(BilldoraError):
    """Raised when persisting an invoice fails.

    The invoice itself may or may not exist: callers must check
    ``invoice_id`` before retrying, since retrying after a partial success
    creates a second invoice.

    Attributes:
        invoice_id: Id of the created invoice, or None if it was not created
        result: Partial commit result with a status per sub-step
    """

    def __init__(
        self,
        message: str,
        invoice_id: Optional[str] = None,
        result: Optional["CommitResult"] = None,
    ):
        self.message = message
        self.invoice_id = invoice_id
        self.result = result
        super().__init__(message)
