"""Export services."""

from .customers import EXPORT_COLUMNS, ExportResult, export_customers, to_csv, to_xlsx

__all__ = ["EXPORT_COLUMNS", "ExportResult", "export_customers", "to_csv", "to_xlsx"]
