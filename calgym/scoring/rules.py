"""Static rubric tables for the three class levels."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Mapping, Optional


class ClassLevel(str, Enum):
    """School-year tier that selects the rubric thresholds."""

    LEVEL_1 = "1AC"
    LEVEL_2 = "2AC"
    LEVEL_3 = "3AC"

    @classmethod
    def parse(cls, value: object) -> Optional["ClassLevel"]:
        """Return the matching level, or None for anything else."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except (ValueError, TypeError):
            return None


DEFAULT_LEVEL = ClassLevel.LEVEL_2

LINKING_QUALITIES = ("excellent", "good", "average", "weak")
DEFAULT_LINKING_QUALITY = "average"

DIFFICULTY_MAX = 6.0
SPECIFIC_REQ_MAX = 1.5
EXECUTION_MAX = 2.0
CO_CN_MAX = 3.0
TOTAL_MAX = 20.0

# Points for each spare A element standing in for a missing B element.
PARTIAL_BONUS_PER_SUBSTITUTION = 0.25

MAX_PERFORMED_ELEMENTS = 20


@dataclass(frozen=True)
class TierCounts:
    """A value for each element tier; A is the hardest, C the easiest."""

    a: float
    b: float
    c: float


@dataclass(frozen=True)
class LevelRules:
    """Everything the scoring engine needs to know about one level."""

    required: TierCounts
    points: TierCounts
    linking: Mapping[str, float]
    co_cm_max: float

    @property
    def linking_max(self) -> float:
        return self.linking["excellent"]


LEVEL_RULES: Dict[ClassLevel, LevelRules] = {
    ClassLevel.LEVEL_1: LevelRules(
        required=TierCounts(a=3, b=2, c=0),
        points=TierCounts(a=1.0, b=1.5, c=0.0),
        linking={"excellent": 4.5, "good": 3.5, "average": 2.5, "weak": 1.0},
        co_cm_max=3.0,
    ),
    ClassLevel.LEVEL_2: LevelRules(
        required=TierCounts(a=3, b=2, c=1),
        points=TierCounts(a=0.75, b=1.0, c=1.75),
        linking={"excellent": 3.5, "good": 2.5, "average": 1.5, "weak": 0.5},
        co_cm_max=4.0,
    ),
    ClassLevel.LEVEL_3: LevelRules(
        required=TierCounts(a=2, b=4, c=1),
        points=TierCounts(a=0.5, b=0.75, c=2.0),
        linking={"excellent": 2.5, "good": 1.75, "average": 1.0, "weak": 0.5},
        co_cm_max=5.0,
    ),
}


def rules_for(level: object) -> Optional[LevelRules]:
    """Look up the rules for a level given as enum member or raw string."""
    parsed = ClassLevel.parse(level)
    if parsed is None:
        return None
    return LEVEL_RULES[parsed]
