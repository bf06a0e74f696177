"""Readers loading billing records into a data store."""

from billdora.readers.csv_store_reader import TABLES, CsvStoreReader

__all__ = ["CsvStoreReader", "TABLES"]
