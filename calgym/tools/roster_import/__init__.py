"""CSV import of rosters and evaluations."""

from .importer import ImportReport, import_evaluations, import_students, read_csv_rows

__all__ = [
    'ImportReport',
    'import_evaluations',
    'import_students',
    'read_csv_rows',
]
