"""CSV export of class grades."""

from .exporter import evaluation_history_rows, latest_scores_rows, write_csv

__all__ = [
    'evaluation_history_rows',
    'latest_scores_rows',
    'write_csv',
]
