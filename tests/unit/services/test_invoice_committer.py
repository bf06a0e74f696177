"""Tests for the invoice committer."""

import re
from decimal import Decimal
from unittest.mock import patch

import pytest

from billdora.calculators.billing_calculator import calculate_billing
from billdora.calculators.selection import BillingSelection
from billdora.models.expense import Expense
from billdora.models.task import BillingMode, Task
from billdora.models.time_entry import TimeEntry
from billdora.services.data_store import InMemoryDataStore
from billdora.services.errors import CommitError, StoreError
from billdora.services.invoice_committer import (
    InvoiceCommitter,
    InvoiceDraft,
    StepStatus,
    generate_invoice_number,
)

RATE = Decimal("100")


class FailingStore(InMemoryDataStore):
    """In-memory store that fails writes to selected tables."""

    def __init__(self, tables=None, fail_insert=(), fail_update=()):
        super().__init__(tables)
        self.fail_insert = set(fail_insert)
        self.fail_update = set(fail_update)

    def insert(self, table, record):
        if table in self.fail_insert:
            raise StoreError(f"insert into {table} failed")
        return super().insert(table, record)

    def update(self, table, patch, filters):
        if table in self.fail_update:
            raise StoreError(f"update of {table} failed")
        return super().update(table, patch, filters)


class InterleavingStore(InMemoryDataStore):
    """In-memory store that runs a callback just before the first task update."""

    def __init__(self, tables=None, before_task_update=None):
        super().__init__(tables)
        self.before_task_update = before_task_update

    def update(self, table, patch, filters):
        if table == "tasks" and self.before_task_update is not None:
            callback, self.before_task_update = self.before_task_update, None
            callback()
        return super().update(table, patch, filters)


def _tasks(store):
    return [Task.model_validate(r) for r in store.query("tasks")]


def _task_selection(store, mode, requests):
    tasks = {t.id: t for t in _tasks(store)}
    selection = BillingSelection(billing_mode=mode)
    for task_id, pct in requests.items():
        selection.set_task_percentage(tasks[task_id], Decimal(pct))
    return selection, calculate_billing(selection, [], [], list(tasks.values()))


def _tm_candidates(store):
    entries = [
        TimeEntry.model_validate(r)
        for r in store.query("time_entries", {"invoice_id": None})
    ]
    expenses = [
        Expense.model_validate(r) for r in store.query("expenses", {"invoice_id": None})
    ]
    selection = BillingSelection()
    selection.select_time_entries(e.id for e in entries)
    selection.select_expenses(e.id for e in expenses)
    return selection, entries, expenses


@pytest.fixture
def committer(sample_store, fixed_clock):
    """Committer writing to the sample store."""
    return InvoiceCommitter(
        sample_store,
        default_hourly_rate=RATE,
        invoice_number_prefix="TEST-",
        clock=fixed_clock,
    )


class TestGenerateInvoiceNumber:
    """Test invoice number generation."""

    def test_format(self):
        """Test prefix followed by six digits."""
        assert re.fullmatch(r"INV-\d{6}", generate_invoice_number("INV-"))

    def test_uses_epoch_milliseconds(self):
        """Test the last six digits of the epoch milliseconds are used."""
        with patch("billdora.services.invoice_committer.time.time", return_value=1700000123.4567):
            assert generate_invoice_number("X-") == "X-123456"


class TestTaskCommit:
    """Test committing milestone and percentage invoices."""

    def test_percentage_commit(self, sample_store, committer):
        """Test invoice, line item and cumulative task billing."""
        selection, calc = _task_selection(
            sample_store, BillingMode.PERCENTAGE, {"task-design": "50"}
        )

        result = committer.commit(
            InvoiceDraft(project_id="proj-1", client_id="client-1", tax_amount=Decimal("50")),
            selection,
            calc,
        )

        assert result.succeeded
        invoice = sample_store.query("invoices", {"id": result.invoice_id})[0]
        assert invoice["subtotal"] == "5000.00"
        assert invoice["tax_amount"] == "50.00"
        assert invoice["total"] == "5050.00"
        assert invoice["calculator_type"] == "percentage"
        assert invoice["invoice_number"].startswith("TEST-")
        assert invoice["created_at"] == "2026-04-01T09:01:00Z"

        item = sample_store.query("invoice_line_items")[0]
        assert item["item_type"] == "task"
        assert item["billed_percentage"] == "50"
        assert item["prior_billed_percentage"] == "0"
        assert item["quantity"] == "50.00"
        assert item["unit_price"] == "100.00"
        assert item["amount"] == "5000.00"
        assert item["unit"] == "hr"

        task = Task.model_validate(sample_store.query("tasks", {"id": "task-design"})[0])
        assert task.billed_percentage == Decimal("50")
        assert task.billed_amount == Decimal("5000.00")
        assert task.billing_mode == BillingMode.PERCENTAGE

    def test_cumulative_billing_on_locked_task(self, sample_store, committer):
        """Test an already locked task keeps its mode and accumulates."""
        selection, calc = _task_selection(
            sample_store, BillingMode.PERCENTAGE, {"task-permits": "20"}
        )

        result = committer.commit(InvoiceDraft(project_id="proj-1"), selection, calc)

        assert result.succeeded
        task = Task.model_validate(sample_store.query("tasks", {"id": "task-permits"})[0])
        assert task.billed_percentage == Decimal("70")
        assert task.billed_amount == Decimal("2800.00")
        item = sample_store.query("invoice_line_items")[0]
        assert item["prior_billed_percentage"] == "50"

    def test_milestone_without_estimate(self, sample_store, committer):
        """Test quantity and price fall back to a single unit."""
        selection, calc = _task_selection(
            sample_store, BillingMode.MILESTONE, {"task-survey": "0"}
        )

        result = committer.commit(InvoiceDraft(project_id="proj-1"), selection, calc)

        assert result.succeeded
        item = sample_store.query("invoice_line_items")[0]
        assert item["quantity"] == "1.00"
        assert item["unit_price"] == "500.00"
        assert item["amount"] == "500.00"

    def test_explicit_invoice_number(self, sample_store, committer):
        """Test a user supplied invoice number is kept."""
        selection, calc = _task_selection(
            sample_store, BillingMode.MILESTONE, {"task-design": "0"}
        )
        result = committer.commit(
            InvoiceDraft(project_id="proj-1", invoice_number="2026-001"), selection, calc
        )
        assert result.invoice_number == "2026-001"

    def test_rejects_task_locked_after_load(self, sample_store, committer):
        """Test the mode lock is re-checked against persisted tasks."""
        selection, calc = _task_selection(
            sample_store, BillingMode.PERCENTAGE, {"task-design": "10"}
        )
        sample_store.update("tasks", {"billing_mode": "milestone"}, {"id": "task-design"})

        result = committer.commit(InvoiceDraft(project_id="proj-1"), selection, calc)

        assert result.invoice_id is None
        assert result.rejection == 'Task "Design" is locked to milestone billing'
        assert sample_store.query("invoices") == []

    def test_rejects_budget_billed_elsewhere(self, sample_store, committer):
        """Test a concurrent invoice that used up the remaining budget."""
        selection, calc = _task_selection(
            sample_store, BillingMode.PERCENTAGE, {"task-design": "50"}
        )
        sample_store.update("tasks", {"billed_percentage": "70"}, {"id": "task-design"})

        result = committer.commit(InvoiceDraft(project_id="proj-1"), selection, calc)

        assert "only 30% left" in result.rejection
        assert sample_store.query("invoices") == []

    def test_zero_percentage_task_skipped(self, sample_store, committer):
        """Test a task with nothing to bill gets no line and no mode lock."""
        selection, calc = _task_selection(
            sample_store,
            BillingMode.PERCENTAGE,
            {"task-design": "50", "task-survey": "0"},
        )

        result = committer.commit(InvoiceDraft(project_id="proj-1"), selection, calc)

        assert result.succeeded
        items = sample_store.query("invoice_line_items")
        assert [i["task_id"] for i in items] == ["task-design"]
        survey = sample_store.query("tasks", {"id": "task-survey"})[0]
        assert survey.get("billing_mode") is None
        assert ("task_ledger", StepStatus.SKIPPED, "task-survey") in {
            (s.name, s.status, s.subject_id) for s in result.steps
        }

    def test_validates_against_invoice_ledger(self, sample_store, committer):
        """Test billing recorded on earlier invoices counts at commit time."""
        selection, calc = _task_selection(
            sample_store, BillingMode.PERCENTAGE, {"task-design": "50"}
        )
        sample_store.insert(
            "invoices",
            {"id": "inv-0", "project_id": "proj-1", "invoice_number": "INV-0",
             "subtotal": "8000", "total": "8000", "calculator_type": "percentage",
             "created_at": "2026-01-01T00:00:00+00:00"},
        )
        sample_store.insert(
            "invoice_line_items",
            {"invoice_id": "inv-0", "description": "Design", "quantity": "80",
             "unit_price": "100", "amount": "8000", "item_type": "task",
             "task_id": "task-design", "billed_percentage": "80"},
        )

        result = committer.commit(InvoiceDraft(project_id="proj-1"), selection, calc)

        assert result.invoice_id is None
        assert "only 20% left" in result.rejection

    def test_line_item_failure_after_task_update(self, sample_task_rows, fixed_clock):
        """Test a failed line item is reported after the task was billed."""
        store = FailingStore({"tasks": sample_task_rows}, fail_insert={"invoice_line_items"})
        committer = InvoiceCommitter(store, clock=fixed_clock)
        selection, calc = _task_selection(
            store, BillingMode.PERCENTAGE, {"task-design": "10"}
        )

        with pytest.raises(CommitError) as exc_info:
            committer.commit(InvoiceDraft(project_id="proj-1"), selection, calc)

        error = exc_info.value
        assert error.invoice_id is not None
        assert "task_line_item" in str(error)
        statuses = {(s.name, s.status) for s in error.result.steps}
        assert ("create_invoice", StepStatus.SUCCEEDED) in statuses
        assert ("task_ledger", StepStatus.SUCCEEDED) in statuses
        assert ("task_line_item", StepStatus.FAILED) in statuses
        task = Task.model_validate(store.query("tasks", {"id": "task-design"})[0])
        assert task.billed_percentage == Decimal("10")

    def test_ledger_update_failure(self, sample_task_rows, fixed_clock):
        """Test a failed task update is reported with the invoice id."""
        store = FailingStore({"tasks": sample_task_rows}, fail_update={"tasks"})
        committer = InvoiceCommitter(store, clock=fixed_clock)
        selection, calc = _task_selection(
            store, BillingMode.PERCENTAGE, {"task-design": "10"}
        )

        with pytest.raises(CommitError) as exc_info:
            committer.commit(InvoiceDraft(project_id="proj-1"), selection, calc)

        assert exc_info.value.invoice_id == store.query("invoices")[0]["id"]
        result = exc_info.value.result
        assert [s.name for s in result.failed_steps] == ["task_ledger"]
        assert ("task_line_item", StepStatus.SKIPPED) in {
            (s.name, s.status) for s in result.steps
        }
        assert store.query("invoice_line_items") == []


class TestConcurrentTaskCommits:
    """Test invoices racing for the same task budget."""

    def _race(self, rows, clock, first_pct, second_pct):
        store = InterleavingStore({"tasks": rows})
        committer = InvoiceCommitter(store, clock=clock)
        first_sel, first_calc = _task_selection(
            store, BillingMode.PERCENTAGE, {"task-design": first_pct}
        )
        second_sel, second_calc = _task_selection(
            store, BillingMode.PERCENTAGE, {"task-design": second_pct}
        )
        second_results = []
        store.before_task_update = lambda: second_results.append(
            committer.commit(InvoiceDraft(project_id="proj-1"), second_sel, second_calc)
        )

        first = committer.commit(InvoiceDraft(project_id="proj-1"), first_sel, first_calc)
        return store, first, second_results[0]

    def test_budget_billed_during_commit_left_off(self, sample_task_rows, fixed_clock):
        """Test two 60% invoices never bill more than the whole task."""
        store, first, second = self._race(sample_task_rows, fixed_clock, "60", "60")

        assert second.succeeded
        assert first.succeeded
        assert first.warnings == [
            'Task "Design" was billed on another invoice and was left off this invoice'
        ]
        conflicts = [s for s in first.steps if s.status == StepStatus.CONFLICT]
        assert [(s.name, s.subject_id) for s in conflicts] == [("task_ledger", "task-design")]

        items = store.query("invoice_line_items")
        assert [i["invoice_id"] for i in items] == [second.invoice_id]
        assert sum(Decimal(i["billed_percentage"]) for i in items) == Decimal("60")
        task = Task.model_validate(store.query("tasks", {"id": "task-design"})[0])
        assert task.billed_percentage == Decimal("60")
        assert store.query("invoices", {"id": first.invoice_id})[0]["subtotal"] == "0.00"

    def test_retried_when_budget_still_fits(self, sample_task_rows, fixed_clock):
        """Test billing that still fits after the other invoice is kept."""
        store, first, second = self._race(sample_task_rows, fixed_clock, "60", "30")

        assert first.succeeded and second.succeeded
        assert first.warnings == []
        task = Task.model_validate(store.query("tasks", {"id": "task-design"})[0])
        assert task.billed_percentage == Decimal("90")
        assert task.billed_amount == Decimal("9000.00")
        first_item = store.query("invoice_line_items", {"invoice_id": first.invoice_id})[0]
        assert first_item["prior_billed_percentage"] == "30"


class TestTimeAndMaterialsCommit:
    """Test committing time & materials invoices."""

    def test_commit_consumes_records(self, sample_store, committer):
        """Test every selected record is linked and itemized."""
        selection, entries, expenses = _tm_candidates(sample_store)
        calc = calculate_billing(selection, entries, expenses, [], RATE)

        result = committer.commit(
            InvoiceDraft(project_id="proj-1"), selection, calc, entries, expenses
        )

        assert result.succeeded
        assert result.warnings == []
        for row in sample_store.query("time_entries"):
            assert row["invoice_id"] == result.invoice_id
        expense = sample_store.query("expenses")[0]
        assert expense["invoice_id"] == result.invoice_id
        assert expense["status"] == "invoiced"

        items = sample_store.query("invoice_line_items")
        assert sorted(i["item_type"] for i in items) == ["expense", "time", "time"]
        time_item = [i for i in items if i.get("time_entry_id") == "te-2"][0]
        assert time_item["description"] == "Team Member - Professional Services"
        assert time_item["unit_price"] == "100"
        assert time_item["amount"] == "300.00"
        invoice = sample_store.query("invoices")[0]
        assert invoice["subtotal"] == "1100.00"

    def test_unselected_records_untouched(self, sample_store, committer):
        """Test deselected records stay candidates."""
        selection, entries, expenses = _tm_candidates(sample_store)
        selection.toggle_time_entry("te-2")
        calc = calculate_billing(selection, entries, expenses, [], RATE)

        committer.commit(InvoiceDraft(project_id="proj-1"), selection, calc, entries, expenses)

        te2 = sample_store.query("time_entries", {"id": "te-2"})[0]
        assert te2["invoice_id"] is None

    def test_locks_unset_task_to_time_materials(self, sample_store, committer):
        """Test time billed on a task locks it without touching its percentage."""
        selection, entries, expenses = _tm_candidates(sample_store)
        calc = calculate_billing(selection, entries, expenses, [], RATE)

        result = committer.commit(
            InvoiceDraft(project_id="proj-1"), selection, calc, entries, expenses
        )

        assert result.succeeded
        assert ("lock_task", StepStatus.SUCCEEDED, "task-survey") in {
            (s.name, s.status, s.subject_id) for s in result.steps
        }
        survey = Task.model_validate(sample_store.query("tasks", {"id": "task-survey"})[0])
        assert survey.billing_mode == BillingMode.TIME_MATERIALS
        assert survey.billed_percentage == Decimal("0")

    def test_rejects_time_on_task_locked_after_load(self, sample_store, committer):
        """Test time on a task locked to percentage billing is refused."""
        selection, entries, expenses = _tm_candidates(sample_store)
        calc = calculate_billing(selection, entries, expenses, [], RATE)
        sample_store.update("tasks", {"billing_mode": "percentage"}, {"id": "task-survey"})

        result = committer.commit(
            InvoiceDraft(project_id="proj-1"), selection, calc, entries, expenses
        )

        assert result.rejection == 'Task "Survey" is locked to percentage billing'
        assert sample_store.query("invoices") == []
        assert sample_store.query("time_entries", {"id": "te-1"})[0]["invoice_id"] is None

    def test_record_claimed_by_another_invoice(self, sample_store, committer):
        """Test compare-and-swap conflicts are warnings and reduce the total."""
        selection, entries, expenses = _tm_candidates(sample_store)
        calc = calculate_billing(selection, entries, expenses, [], RATE)
        sample_store.update("time_entries", {"invoice_id": "inv-other"}, {"id": "te-1"})

        result = committer.commit(
            InvoiceDraft(project_id="proj-1", tax_amount=Decimal("10")),
            selection,
            calc,
            entries,
            expenses,
        )

        assert result.succeeded
        assert len(result.warnings) == 1
        assert "te-1" in result.warnings[0]
        conflicts = [s for s in result.steps if s.status == StepStatus.CONFLICT]
        assert [s.subject_id for s in conflicts] == ["te-1"]

        te1 = sample_store.query("time_entries", {"id": "te-1"})[0]
        assert te1["invoice_id"] == "inv-other"
        invoice = sample_store.query("invoices")[0]
        assert invoice["subtotal"] == "500.00"
        assert invoice["total"] == "510.00"
        assert not [
            i
            for i in sample_store.query("invoice_line_items")
            if i.get("time_entry_id") == "te-1"
        ]

    def test_expense_claimed_by_another_invoice(self, sample_store, committer):
        """Test an expense invoiced elsewhere is left off."""
        selection, entries, expenses = _tm_candidates(sample_store)
        calc = calculate_billing(selection, entries, expenses, [], RATE)
        sample_store.update(
            "expenses", {"invoice_id": "inv-other", "status": "invoiced"}, {"id": "exp-1"}
        )

        result = committer.commit(
            InvoiceDraft(project_id="proj-1"), selection, calc, entries, expenses
        )

        assert result.warnings == [
            'Expense "Site visit" was already invoiced and was left off this invoice'
        ]
        assert sample_store.query("invoices")[0]["subtotal"] == "900.00"

    def test_link_failure_raises_with_invoice_id(self, sample_store, fixed_clock):
        """Test a failed consumption write is surfaced, not swallowed."""
        store = FailingStore(
            {
                "time_entries": sample_store.query("time_entries"),
                "expenses": sample_store.query("expenses"),
            },
            fail_update={"expenses"},
        )
        committer = InvoiceCommitter(store, default_hourly_rate=RATE, clock=fixed_clock)
        selection, entries, expenses = _tm_candidates(store)
        calc = calculate_billing(selection, entries, expenses, [], RATE)

        with pytest.raises(CommitError) as exc_info:
            committer.commit(InvoiceDraft(project_id="proj-1"), selection, calc, entries, expenses)

        result = exc_info.value.result
        assert exc_info.value.invoice_id == result.invoice_id
        assert [(s.name, s.subject_id) for s in result.failed_steps] == [
            ("link_expense", "exp-1")
        ]
        # Time entries were still consumed and itemized
        assert len(store.query("invoice_line_items")) == 2


class TestCommitPreconditions:
    """Test commits refused before anything is written."""

    def test_invalid_calculation(self, sample_store, committer):
        """Test an invalid selection is rejected with its message."""
        selection = BillingSelection()
        calc = calculate_billing(selection, [], [], [], RATE)
        result = committer.commit(InvoiceDraft(project_id="proj-1"), selection, calc)
        assert result.rejection == "Please select at least one time entry or expense"
        assert not result.succeeded
        assert sample_store.query("invoices") == []

    def test_zero_subtotal(self, sample_store, committer):
        """Test nothing is invoiced for a zero subtotal."""
        selection, calc = _task_selection(
            sample_store, BillingMode.PERCENTAGE, {"task-design": "0"}
        )
        result = committer.commit(InvoiceDraft(project_id="proj-1"), selection, calc)
        assert result.rejection.startswith("Nothing to bill")

    def test_stale_calculation(self, sample_store, committer):
        """Test a calculation from another mode is refused."""
        selection, calc = _task_selection(
            sample_store, BillingMode.PERCENTAGE, {"task-design": "10"}
        )
        selection.switch_mode(BillingMode.MILESTONE)
        result = committer.commit(InvoiceDraft(project_id="proj-1"), selection, calc)
        assert "out of date" in result.rejection

    def test_invoice_creation_failure(self, sample_task_rows, fixed_clock):
        """Test a failed header insert reports no invoice id."""
        store = FailingStore({"tasks": sample_task_rows}, fail_insert={"invoices"})
        committer = InvoiceCommitter(store, clock=fixed_clock)
        selection, calc = _task_selection(
            store, BillingMode.MILESTONE, {"task-design": "0"}
        )

        with pytest.raises(CommitError, match="Failed to create invoice") as exc_info:
            committer.commit(InvoiceDraft(project_id="proj-1"), selection, calc)

        assert exc_info.value.invoice_id is None
        assert store.query("invoice_line_items") == []
