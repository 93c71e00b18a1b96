"""Tabular export of a class's grades from a record store."""

import csv
import logging
from pathlib import Path
from typing import List, Sequence

from calgym.records.store import RecordStore

LOG = logging.getLogger(__name__)

LATEST_HEADER = ["ID", "Name", "Total Score", "Date"]
HISTORY_HEADER = [
    "ID", "Name", "Date", "Level", "A", "B", "C",
    "Difficulty", "Specific Requirements", "Linking Quality", "Linking",
    "Execution", "CO CN", "CO CM", "Total Score",
]


def latest_scores_rows(store: RecordStore, class_name: str) -> List[List[str]]:
    """One row per evaluated student of the class, using their latest evaluation."""
    rows = [list(LATEST_HEADER)]
    for student in store.students_in_class(class_name):
        last = student.latest_evaluation
        if last is None:
            continue
        rows.append([
            student.id,
            student.name,
            f"{last.total_score:.2f}",
            last.created_at.date().isoformat(),
        ])
    return rows


def evaluation_history_rows(store: RecordStore, class_name: str) -> List[List[str]]:
    """Every evaluation of every student in the class, oldest first per student."""
    rows = [list(HISTORY_HEADER)]
    for student in store.students_in_class(class_name):
        for evaluation in student.evaluations:
            rows.append([
                student.id,
                student.name,
                evaluation.created_at.isoformat(),
                evaluation.level.value,
                str(evaluation.performed_a),
                str(evaluation.performed_b),
                str(evaluation.performed_c),
                f"{evaluation.difficulty_score:.2f}",
                f"{evaluation.specific_req_score:.2f}",
                evaluation.linking_quality,
                f"{evaluation.linking_score:.2f}",
                f"{evaluation.execution_score:.2f}",
                f"{evaluation.co_cn_score:.2f}",
                f"{evaluation.co_cm_score:.2f}",
                f"{evaluation.total_score:.2f}",
            ])
    return rows


def write_csv(rows: Sequence[Sequence[str]], output_path: Path) -> Path:
    """Write rows (header first) to a UTF-8 CSV file."""
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, 'w', newline='', encoding='utf-8') as f:
        writer = csv.writer(f)
        writer.writerows(rows)

    LOG.info(f"Exported {max(len(rows) - 1, 0)} row(s) to {output_path}")
    return output_path
