"""Billing ledger reconstructed from invoice line items.

A task can be invoiced many times over its life. The task row only holds a
live snapshot (``billed_percentage`` / ``billed_amount``), which already
includes every committed invoice. Whenever the question is "what had been
billed before invoice X", the answer comes from summing the task line items
of invoices created strictly before X.

For the live view the snapshot and the ledger are combined by taking the
larger of the two. The snapshot can hold billing that predates the ledger;
the ledger can be ahead of a snapshot whose update failed mid-commit. Only
``task`` line items count; time and expense lines linked to a task never
change its billed percentage.
"""

import datetime as dt
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, List, Optional, Sequence

from billdora.models.invoice import Invoice, InvoiceLineItem
from billdora.models.task import Task
from billdora.services.data_store import DataStore
from billdora.utils.money_utils import ZERO

logger = logging.getLogger(__name__)

INVOICES = "invoices"
LINE_ITEMS = "invoice_line_items"


@dataclass(frozen=True)
class TaskBillingTotals:
    """Cumulative billing of a task across a set of invoices."""

    billed_percentage: Decimal
    billed_amount: Decimal


@dataclass(frozen=True)
class LineItemHistory:
    """An invoice line item with the task billing that preceded it.

    Attributes:
        line_item: The persisted line item
        prior_billed_percentage: Percent of the task billed on earlier
            invoices (zero for time and expense lines)
        cumulative_percentage: Prior plus this line's billed percentage
    """

    line_item: InvoiceLineItem
    prior_billed_percentage: Decimal
    cumulative_percentage: Decimal


def _as_utc(value: dt.datetime) -> dt.datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=dt.timezone.utc)
    return value


class BillingLedger:
    """Reads cumulative task billing out of persisted invoice line items.

    Example:
        >>> ledger = BillingLedger(store)
        >>> ledger.prior_billed_percentages("proj-1", invoice.created_at)
        {'task-1': Decimal('20')}
    """

    def __init__(self, store: DataStore):
        self.store = store

    def _project_invoices(self, project_id: str) -> List[Invoice]:
        rows = self.store.query(INVOICES, {"project_id": project_id})
        return [Invoice.model_validate(row) for row in rows]

    def _task_line_items(self, invoice_ids: Sequence[str]) -> List[InvoiceLineItem]:
        if not invoice_ids:
            return []
        rows = self.store.query(LINE_ITEMS, {"invoice_id": list(invoice_ids)})
        items = [InvoiceLineItem.model_validate(row) for row in rows]
        return [item for item in items if item.item_type == "task" and item.task_id]

    def task_totals(
        self, project_id: str, before: Optional[dt.datetime] = None
    ) -> Dict[str, TaskBillingTotals]:
        """Sum billed percentage and amount per task.

        Args:
            project_id: Project whose invoices are considered
            before: When given, only invoices created strictly earlier count

        Returns:
            Dictionary mapping task id to its totals
        """
        invoices = self._project_invoices(project_id)
        if before is not None:
            cutoff = _as_utc(before)
            invoices = [
                inv
                for inv in invoices
                if inv.created_at is not None and _as_utc(inv.created_at) < cutoff
            ]

        invoice_ids = [inv.id for inv in invoices if inv.id]
        percentages: Dict[str, Decimal] = {}
        amounts: Dict[str, Decimal] = {}
        for item in self._task_line_items(invoice_ids):
            task_id = item.task_id
            percentages[task_id] = percentages.get(task_id, ZERO) + (
                item.billed_percentage or ZERO
            )
            amounts[task_id] = amounts.get(task_id, ZERO) + item.amount

        return {
            task_id: TaskBillingTotals(percentages[task_id], amounts[task_id])
            for task_id in percentages
        }

    def prior_billed_percentages(
        self, project_id: str, before: dt.datetime
    ) -> Dict[str, Decimal]:
        """Percent billed per task on invoices created strictly before ``before``."""
        return {
            task_id: totals.billed_percentage
            for task_id, totals in self.task_totals(project_id, before).items()
        }

    def apply_to_tasks(self, project_id: str, tasks: Sequence[Task]) -> List[Task]:
        """Overlay ledger totals onto task snapshots.

        A task with ledger entries bills the larger of its stored and its
        ledger totals, capped at 100%; other tasks keep their stored values.
        The invoice committer validates against the same view, so a
        selection the engine accepts is not refused at commit time.
        """
        totals = self.task_totals(project_id)
        if not totals:
            return list(tasks)

        adjusted = []
        for task in tasks:
            task_totals = totals.get(task.id)
            if task_totals is None:
                adjusted.append(task)
                continue
            percentage = max(task.billed_percentage, task_totals.billed_percentage)
            adjusted.append(
                task.model_copy(
                    update={
                        "billed_percentage": min(percentage, Decimal("100")),
                        "billed_amount": max(
                            task.billed_amount, task_totals.billed_amount
                        ),
                    }
                )
            )
        return adjusted

    def invoice_history(self, invoice_id: str) -> List[LineItemHistory]:
        """Rebuild an invoice's lines with their "prior vs current" billing.

        Args:
            invoice_id: Invoice to render

        Returns:
            One LineItemHistory per line item, in stored order

        Raises:
            LookupError: If the invoice does not exist
        """
        rows = self.store.query(INVOICES, {"id": invoice_id})
        if not rows:
            raise LookupError(f"Invoice {invoice_id} not found")
        invoice = Invoice.model_validate(rows[0])

        prior: Dict[str, Decimal] = {}
        if invoice.project_id and invoice.created_at:
            prior = self.prior_billed_percentages(
                invoice.project_id, invoice.created_at
            )
        else:
            logger.warning(
                f"Invoice {invoice_id} has no project or creation time; "
                "prior billing shown as zero"
            )

        history = []
        for row in self.store.query(LINE_ITEMS, {"invoice_id": invoice_id}):
            item = InvoiceLineItem.model_validate(row)
            if item.item_type == "task" and item.task_id:
                prior_pct = prior.get(item.task_id, ZERO)
            else:
                prior_pct = ZERO
            history.append(
                LineItemHistory(
                    line_item=item,
                    prior_billed_percentage=prior_pct,
                    cumulative_percentage=prior_pct
                    + (item.billed_percentage or ZERO),
                )
            )
        return history
