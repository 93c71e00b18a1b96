"""Rubric tables and the scoring engine."""

from .rules import ClassLevel, LEVEL_RULES, LINKING_QUALITIES, LevelRules, TierCounts
from .engine import (
    ComponentScore,
    DifficultyResult,
    ScoreBreakdown,
    calculate_difficulty,
    compose_total_score,
    format_score_row,
    get_linking_quality_score,
    max_co_cm_score,
    max_linking_score,
    score_evaluation,
)

__all__ = [
    'ClassLevel',
    'LEVEL_RULES',
    'LINKING_QUALITIES',
    'LevelRules',
    'TierCounts',
    'ComponentScore',
    'DifficultyResult',
    'ScoreBreakdown',
    'calculate_difficulty',
    'compose_total_score',
    'format_score_row',
    'get_linking_quality_score',
    'max_co_cm_score',
    'max_linking_score',
    'score_evaluation',
]
