"""Silver layer — school-page extraction and reconciliation engine."""

__version__ = "0.4.0"
