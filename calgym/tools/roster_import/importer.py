"""CSV import of student rosters and evaluation sheets into a record store."""

import csv
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from calgym.records.store import RecordStore
from calgym.records.validator import validate_class_name, validate_student_name
from calgym.scoring.rules import DEFAULT_LEVEL

LOG = logging.getLogger(__name__)

NAME_HEADERS = ("name", "Name", "nom", "Nom")
CLASS_HEADERS = ("class", "Class", "classe", "Classe")

DEFAULT_MAX_FILE_SIZE = 5 * 1024 * 1024


@dataclass
class ImportReport:
    """Per-row tally of an import run."""
    imported: int = 0
    failed: int = 0
    classes_created: int = 0
    errors: List[str] = field(default_factory=list)

    def record_error(self, line: int, message: str) -> None:
        self.failed += 1
        self.errors.append(f"Line {line}: {message}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            'imported': self.imported,
            'failed': self.failed,
            'classes_created': self.classes_created,
            'errors': list(self.errors),
        }


def _first_value(row: Mapping[str, Any], headers) -> str:
    for header in headers:
        value = row.get(header)
        if value and value.strip():
            return value.strip()
    return ""


def read_csv_rows(csv_path: Path, max_file_size: int = DEFAULT_MAX_FILE_SIZE) -> List[Dict[str, str]]:
    """
    Read a CSV file with a header row.

    Raises:
        ValueError: If the file is not a .csv file or is too large
    """
    csv_path = Path(csv_path)
    if csv_path.suffix.lower() != '.csv':
        raise ValueError(f"Only CSV files can be imported: {csv_path.name}")
    size = csv_path.stat().st_size
    if size > max_file_size:
        raise ValueError(f"File too large ({size} bytes, maximum {max_file_size})")

    with open(csv_path, 'r', encoding='utf-8-sig', newline='') as f:
        reader = csv.DictReader(f)
        return [row for row in reader if any((v or '').strip() for v in row.values() if isinstance(v, str))]


def import_students(store: RecordStore, csv_path: Path, create_missing_classes: bool = False,
                    default_level=DEFAULT_LEVEL,
                    max_file_size: int = DEFAULT_MAX_FILE_SIZE) -> ImportReport:
    """
    Import students from a CSV roster with name and class columns.

    Args:
        store: Record store to add students to
        csv_path: Path to the roster CSV
        create_missing_classes: Create unknown classes at ``default_level``
            instead of rejecting their rows
        default_level: Level for classes created by the import
        max_file_size: Maximum accepted file size in bytes

    Returns:
        ImportReport with per-row successes and failures
    """
    report = ImportReport()
    rows = read_csv_rows(csv_path, max_file_size)

    for line, row in enumerate(rows, start=1):
        name = _first_value(row, NAME_HEADERS)
        class_name = _first_value(row, CLASS_HEADERS)

        if not name or not class_name:
            report.record_error(line, "missing name or class")
            continue
        if not validate_student_name(name):
            report.record_error(line, f"invalid name \"{name}\"")
            continue
        if not validate_class_name(class_name):
            report.record_error(line, f"invalid class \"{class_name}\"")
            continue

        if create_missing_classes and store.get_class(class_name) is None:
            created = store.add_class(class_name, default_level)
            if not created.success:
                report.record_error(line, created.message)
                continue
            report.classes_created += 1

        result = store.add_student(name, class_name)
        if result.success:
            report.imported += 1
        else:
            report.record_error(line, result.message)

    LOG.info(f"Imported {report.imported} student(s) from {csv_path}, "
             f"{report.failed} error(s), {report.classes_created} new class(es)")
    return report


def import_evaluations(store: RecordStore, csv_path: Path,
                       max_file_size: int = DEFAULT_MAX_FILE_SIZE) -> ImportReport:
    """
    Import one evaluation per row, matching students by name and class.

    Every other non-empty column is passed to the store as the raw evaluation
    payload, so out-of-range values are clamped rather than rejected.
    """
    report = ImportReport()
    rows = read_csv_rows(csv_path, max_file_size)
    identity_headers = set(NAME_HEADERS) | set(CLASS_HEADERS)

    for line, row in enumerate(rows, start=1):
        name = _first_value(row, NAME_HEADERS)
        class_name = _first_value(row, CLASS_HEADERS)
        if not name or not class_name:
            report.record_error(line, "missing name or class")
            continue

        student = store.find_student(name, class_name)
        if student is None:
            report.record_error(line, f"no student \"{name}\" in class \"{class_name}\"")
            continue

        payload = {
            key.strip(): value.strip()
            for key, value in row.items()
            if key and key not in identity_headers and isinstance(value, str) and value.strip()
        }
        result = store.save_evaluation(student.id, payload)
        if result.success:
            report.imported += 1
        else:
            report.record_error(line, result.message)

    LOG.info(f"Imported {report.imported} evaluation(s) from {csv_path}, {report.failed} error(s)")
    return report
