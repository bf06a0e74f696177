"""Fixtures for CLI tests."""

import pytest
from click.testing import CliRunner

from billdora.config.logging_config import reset_logging
from billdora.writers.csv_store_writer import CsvStoreWriter


@pytest.fixture
def runner():
    """Create a Click CLI test runner."""
    return CliRunner()


@pytest.fixture
def data_dir(tmp_path, sample_store, mock_env, monkeypatch):
    """CSV data directory seeded with the sample project."""
    monkeypatch.setenv("LOG_CONSOLE", "false")
    path = tmp_path / "data"
    CsvStoreWriter(path).write(sample_store)
    yield path
    reset_logging()
