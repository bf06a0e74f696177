"""Writers persisting billing records out of a data store."""

from billdora.writers.csv_store_writer import CsvStoreWriter

__all__ = ["CsvStoreWriter"]
