"""CSV store writer.

Writes the tables of an InMemoryDataStore back to a directory of CSV files,
one file per table, so a CLI run that creates an invoice persists it.
"""

import logging
from pathlib import Path
from typing import List, Union

import pandas as pd

from billdora.services.data_store import InMemoryDataStore

logger = logging.getLogger(__name__)


class CsvStoreWriter:
    """Writer for a directory of CSV tables.

    Attributes:
        data_dir: Directory receiving the CSV files
    """

    def __init__(self, data_dir: Union[str, Path]):
        self.data_dir = Path(data_dir)

    def write(self, store: InMemoryDataStore) -> List[Path]:
        """Write every table of ``store`` to ``<data_dir>/<table>.csv``.

        Args:
            store: Store whose tables are written

        Returns:
            Paths of the files written
        """
        self.data_dir.mkdir(parents=True, exist_ok=True)

        written = []
        for table in store.tables():
            rows = store.query(table)
            df = pd.DataFrame.from_records(rows)
            path = self.data_dir / f"{table}.csv"
            df.to_csv(path, index=False)
            logger.info(f"Wrote {len(df)} row(s) to {path.name}")
            written.append(path)

        return written
