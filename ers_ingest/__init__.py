"""ERS spreadsheet ingestion, validation and batch submission."""

__version__ = "0.3.0"
