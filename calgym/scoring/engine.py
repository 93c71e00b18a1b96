"""Scoring engine turning raw rubric counts into graded components.

Difficulty is derived with a cascade: surplus C elements count as B, surplus B
elements count as A, each tier is then capped at its requirement. Spare A
elements may stand in for missing B elements at a reduced rate. Each rule that
fires adds one line to the explanation trail, in the order the rules run.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from .rules import (
    CO_CN_MAX,
    DIFFICULTY_MAX,
    EXECUTION_MAX,
    PARTIAL_BONUS_PER_SUBSTITUTION,
    SPECIFIC_REQ_MAX,
    LevelRules,
    TierCounts,
    rules_for,
)

LOG = logging.getLogger(__name__)

INVALID_LEVEL_LINE = "Invalid class level."
GENERIC_LINE = "Computed from the provided elements."


class DifficultyResult(BaseModel):
    """Difficulty score with the trail of rules that produced it."""
    model_config = ConfigDict(frozen=True)

    score: float = Field(ge=0.0, le=DIFFICULTY_MAX, description="Difficulty points (0-6)")
    explanation: Tuple[str, ...] = Field(description="Ordered derivation trail, never empty")


class ComponentScore(BaseModel):
    """One labelled row of a score breakdown."""
    model_config = ConfigDict(frozen=True)

    label: str
    score: float
    max_score: float
    note: str = ""


class ScoreBreakdown(BaseModel):
    """The six rubric components of one evaluation and their sum."""
    model_config = ConfigDict(frozen=True)

    difficulty: DifficultyResult
    linking_score: float
    components: Tuple[ComponentScore, ...]
    total_score: float

    def to_rows(self) -> List[str]:
        """Render every component as a literal text row."""
        return [format_score_row(c.label, c.score, c.max_score, c.note) for c in self.components]


def _cascade_surplus(required: TierCounts, performed_a: int, performed_b: int,
                     performed_c: int) -> Tuple[int, int, int, List[str]]:
    """Move surplus C elements to B, then surplus B elements to A."""
    lines = []
    extra_c = max(0, performed_c - required.c)
    if extra_c > 0:
        performed_b += extra_c
        lines.append(f"{extra_c} surplus C element(s) counted as B.")

    extra_b = max(0, performed_b - required.b)
    if extra_b > 0:
        performed_a += extra_b
        lines.append(f"{extra_b} surplus B element(s) counted as A.")

    return performed_a, performed_b, performed_c, lines


def _base_score(rules: LevelRules, adjusted_a: int, adjusted_b: int,
                adjusted_c: int) -> Tuple[TierCounts, float, str]:
    """Cap each tier at its requirement and price the remaining elements."""
    required, points = rules.required, rules.points
    # C is never incremented by the cascade, so this is the caller's own count.
    scored = TierCounts(
        a=min(adjusted_a, required.a),
        b=min(adjusted_b, required.b),
        c=min(adjusted_c, required.c),
    )
    base = scored.a * points.a + scored.b * points.b + scored.c * points.c
    line = (
        f"Base score: ({scored.a}A×{points.a}) + ({scored.b}B×{points.b}) "
        f"+ ({scored.c}C×{points.c}) = {base:.2f} pts."
    )
    return scored, base, line


def _partial_bonus(required: TierCounts, scored_b: int,
                   original_a: int) -> Tuple[float, Optional[str]]:
    """Credit spare A elements against B requirements that are still unmet."""
    missing_b = required.b - scored_b
    remaining_extra_a = max(0, original_a - required.a)
    if missing_b > 0 and remaining_extra_a > 0:
        replacements = min(missing_b, remaining_extra_a)
        bonus = replacements * PARTIAL_BONUS_PER_SUBSTITUTION
        return bonus, f"Bonus: {replacements} missing B replaced by A for +{bonus:.2f} pts."
    return 0.0, None


def calculate_difficulty(level, performed_a: int, performed_b: int,
                         performed_c: int) -> DifficultyResult:
    """
    Compute the difficulty component (0-6) for the elements a student performed.

    Args:
        level: ClassLevel or its string value
        performed_a: Number of A (hardest) elements performed
        performed_b: Number of B elements performed
        performed_c: Number of C (easiest) elements performed

    Returns:
        DifficultyResult; an unknown level yields a zero score and a
        single explanatory line instead of an error.
    """
    rules = rules_for(level)
    if rules is None:
        LOG.warning(f"Difficulty requested for unknown level {level!r}")
        return DifficultyResult(score=0.0, explanation=(INVALID_LEVEL_LINE,))

    original_a = max(0, int(performed_a))
    original_b = max(0, int(performed_b))
    original_c = max(0, int(performed_c))

    adjusted_a, adjusted_b, adjusted_c, trail = _cascade_surplus(
        rules.required, original_a, original_b, original_c
    )
    scored, base, base_line = _base_score(rules, adjusted_a, adjusted_b, adjusted_c)
    trail.append(base_line)

    bonus, bonus_line = _partial_bonus(rules.required, scored.b, original_a)
    if bonus_line:
        trail.append(bonus_line)

    if len(trail) == 1:
        trail = [GENERIC_LINE]

    score = min(base + bonus, DIFFICULTY_MAX)
    return DifficultyResult(score=score, explanation=tuple(trail))


def get_linking_quality_score(level, quality: str) -> float:
    """Points for a linking-quality label; 0 for an unknown level or label."""
    rules = rules_for(level)
    if rules is None or not isinstance(quality, str):
        return 0.0
    return rules.linking.get(quality, 0.0)


def max_linking_score(level) -> float:
    rules = rules_for(level)
    return rules.linking_max if rules else 0.0


def max_co_cm_score(level) -> float:
    rules = rules_for(level)
    return rules.co_cm_max if rules else 0.0


def compose_total_score(difficulty_score: float, specific_req_score: float,
                        linking_score: float, execution_score: float,
                        co_cn_score: float, co_cm_score: float) -> float:
    """Sum the six components. Callers clamp each addend beforehand."""
    return (difficulty_score + specific_req_score + linking_score
            + execution_score + co_cn_score + co_cm_score)


def score_evaluation(level, performed_a: int, performed_b: int, performed_c: int,
                     specific_req_score: float, linking_quality: str,
                     execution_score: float, co_cn_score: float,
                     co_cm_score: float) -> ScoreBreakdown:
    """Build the full six-row breakdown shown to the teacher."""
    difficulty = calculate_difficulty(level, performed_a, performed_b, performed_c)
    linking_score = get_linking_quality_score(level, linking_quality)
    total = compose_total_score(
        difficulty.score, specific_req_score, linking_score,
        execution_score, co_cn_score, co_cm_score,
    )
    components = (
        ComponentScore(label="1. Difficulty", score=difficulty.score,
                       max_score=DIFFICULTY_MAX, note="\n".join(difficulty.explanation)),
        ComponentScore(label="2. Specific requirements", score=specific_req_score,
                       max_score=SPECIFIC_REQ_MAX),
        ComponentScore(label="3. Linking quality", score=linking_score,
                       max_score=max_linking_score(level)),
        ComponentScore(label="4. Execution", score=execution_score,
                       max_score=EXECUTION_MAX),
        ComponentScore(label="5. Knowledge (CO CN)", score=co_cn_score,
                       max_score=CO_CN_MAX),
        ComponentScore(label="6. Conduct (CO CM)", score=co_cm_score,
                       max_score=max_co_cm_score(level)),
    )
    return ScoreBreakdown(
        difficulty=difficulty,
        linking_score=linking_score,
        components=components,
        total_score=total,
    )


def format_score_row(label: str, value: float, max_score: float, extra: str = "") -> str:
    """Format one breakdown row, e.g. ``4. Execution   1.50 / 2``."""
    row = f"{label:<28} {value:.2f} / {max_score:g}"
    if extra:
        notes = "\n".join(f"    {line}" for line in extra.splitlines())
        row = f"{row}\n{notes}"
    return row
