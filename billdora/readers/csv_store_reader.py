"""CSV store reader.

Loads a directory of CSV tables (one file per store table) into an
InMemoryDataStore. This is the persistence used by the command line; blank
cells become ``None`` so optional fields stay optional on the models.

Expected files (all optional):
```
tasks.csv  time_entries.csv  expenses.csv  invoices.csv  invoice_line_items.csv
```
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Union

import pandas as pd

from billdora.services.data_store import InMemoryDataStore
from billdora.utils.logging_utils import log_function_call

logger = logging.getLogger(__name__)

TABLES = (
    "tasks",
    "time_entries",
    "expenses",
    "invoices",
    "invoice_line_items",
)

BOOLEAN_COLUMNS = {"billable"}
_TRUE_VALUES = {"true", "1", "yes", "y"}
_FALSE_VALUES = {"false", "0", "no", "n"}


class CsvStoreReader:
    """Reader for a directory of CSV tables.

    Attributes:
        data_dir: Directory containing the CSV files

    Example:
        >>> store = CsvStoreReader("data").load()
        >>> len(store.query("tasks", {"project_id": "proj-1"}))
        3
    """

    def __init__(self, data_dir: Union[str, Path]):
        self.data_dir = Path(data_dir)

    @log_function_call
    def load(self) -> InMemoryDataStore:
        """Load every known table into a new in-memory store.

        Returns:
            InMemoryDataStore seeded with the CSV rows

        Raises:
            FileNotFoundError: If the data directory does not exist
        """
        if not self.data_dir.is_dir():
            raise FileNotFoundError(f"Data directory not found: {self.data_dir}")

        tables = {}
        for table in TABLES:
            path = self.data_dir / f"{table}.csv"
            if not path.exists():
                logger.debug(f"No {path.name} in {self.data_dir}; table is empty")
                continue
            tables[table] = self.read_table(path)
            logger.info(f"Loaded {len(tables[table])} row(s) from {path.name}")

        return InMemoryDataStore(tables)

    def read_table(self, path: Path) -> List[Dict[str, Any]]:
        """Read one CSV file into store records."""
        try:
            df = pd.read_csv(path, dtype=str, keep_default_na=True)
        except pd.errors.EmptyDataError:
            return []
        if df.empty:
            return []

        df = df.astype(object).where(pd.notna(df), None)
        records = df.to_dict(orient="records")
        return [self._coerce_record(record) for record in records]

    def _coerce_record(self, record: Dict[str, Any]) -> Dict[str, Any]:
        coerced = {}
        for key, value in record.items():
            if isinstance(value, str):
                value = value.strip() or None
            if key in BOOLEAN_COLUMNS and value is not None:
                value = self._parse_bool(key, value)
            coerced[str(key)] = value
        return coerced

    @staticmethod
    def _parse_bool(column: str, value: str) -> bool:
        lowered = value.lower()
        if lowered in _TRUE_VALUES:
            return True
        if lowered in _FALSE_VALUES:
            return False
        raise ValueError(f"Invalid boolean {value!r} in column {column!r}")
