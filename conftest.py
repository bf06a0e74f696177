"""
Global pytest configuration and fixtures.
"""
import datetime as dt
import os
from decimal import Decimal
from typing import Dict

import pytest

from billdora.config import BilldoraConfig, reload_config
from billdora.services.data_store import InMemoryDataStore


@pytest.fixture(scope="session")
def test_env_vars() -> Dict[str, str]:
    """Test environment variables for configuration."""
    return {
        'DEFAULT_HOURLY_RATE': '100',
        'DEFAULT_PERCENTAGE_TO_BILL': '10',
        'INVOICE_NUMBER_PREFIX': 'TEST-',
        'ENVIRONMENT': 'testing',
        'DEBUG': 'true',
        'LOG_LEVEL': 'DEBUG'
    }


@pytest.fixture
def mock_env(test_env_vars, monkeypatch):
    """Mock environment variables for testing."""
    for key, value in test_env_vars.items():
        monkeypatch.setenv(key, value)

    # Clear the global config to force reload with test values
    import billdora.config.settings
    billdora.config.settings._config = None

    yield test_env_vars

    # Clean up
    billdora.config.settings._config = None


@pytest.fixture
def test_config(mock_env) -> BilldoraConfig:
    """Test configuration instance."""
    return reload_config()


@pytest.fixture
def sample_task_rows():
    """Task rows as stored for project proj-1."""
    return [
        {
            'id': 'task-design', 'project_id': 'proj-1', 'name': 'Design',
            'total_budget': '10000', 'estimated_hours': '100',
            'billed_percentage': '0', 'billed_amount': '0',
        },
        {
            'id': 'task-permits', 'project_id': 'proj-1', 'name': 'Permits',
            'total_budget': '4000', 'estimated_hours': '20',
            'billed_percentage': '50', 'billed_amount': '2000',
            'billing_mode': 'percentage',
        },
        {
            'id': 'task-survey', 'project_id': 'proj-1', 'name': 'Survey',
            'estimated_fees': '500', 'billed_percentage': '0',
        },
    ]


@pytest.fixture
def sample_time_entry_rows():
    """Approved, billable, unbilled time entries for project proj-1."""
    return [
        {
            'id': 'te-1', 'project_id': 'proj-1', 'date': '2026-03-02',
            'hours': '4', 'hourly_rate': '150', 'task_id': 'task-survey',
            'staff_name': 'Alex Kim', 'billable': True,
            'approval_status': 'approved', 'invoice_id': None,
        },
        {
            'id': 'te-2', 'project_id': 'proj-1', 'date': '2026-03-03',
            'hours': '3', 'hourly_rate': None, 'task_id': None,
            'staff_name': None, 'billable': True,
            'approval_status': 'approved', 'invoice_id': None,
        },
    ]


@pytest.fixture
def sample_expense_rows():
    """Approved, billable, unbilled expenses for project proj-1."""
    return [
        {
            'id': 'exp-1', 'project_id': 'proj-1', 'date': '2026-03-04',
            'amount': '200', 'category': 'Travel', 'description': 'Site visit',
            'billable': True, 'approval_status': 'approved',
            'status': 'approved', 'invoice_id': None,
        },
    ]


@pytest.fixture
def sample_store(sample_task_rows, sample_time_entry_rows, sample_expense_rows):
    """In-memory store seeded with one project's records."""
    return InMemoryDataStore({
        'tasks': sample_task_rows,
        'time_entries': sample_time_entry_rows,
        'expenses': sample_expense_rows,
    })


@pytest.fixture
def fixed_clock():
    """Clock returning strictly increasing UTC timestamps."""
    state = {'now': dt.datetime(2026, 4, 1, 9, 0, tzinfo=dt.timezone.utc)}

    def clock():
        state['now'] += dt.timedelta(minutes=1)
        return state['now']

    return clock


@pytest.fixture
def hourly_rate() -> Decimal:
    """Default hourly rate used by the sample data."""
    return Decimal('100')


@pytest.fixture(autouse=True)
def cleanup_test_files():
    """Clean up any test files created during testing."""
    yield

    # Remove test coverage files in case they're created
    test_files = ['coverage.xml', '.coverage']
    for file in test_files:
        if os.path.exists(file):
            os.remove(file)


# Pytest configuration for different test types
def pytest_configure(config):
    """Configure pytest with custom markers and settings."""
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test"
    )


def pytest_collection_modifyitems(config, items):
    """Modify test collection to add markers based on location."""
    for item in items:
        # Add unit marker for tests in tests/unit/
        if "tests/unit/" in str(item.fspath):
            item.add_marker(pytest.mark.unit)

        # Add integration marker for tests in tests/integration/
        elif "tests/integration/" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
