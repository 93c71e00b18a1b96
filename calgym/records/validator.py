"""Validation of untrusted input before it reaches the record store.

Names and levels are either accepted or rejected. Evaluation payloads are
never rejected: every field is coerced into its documented range, and the
derived scores are recomputed so the stored total always matches its parts.
"""

import logging
import math
import re
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

from calgym.scoring.engine import (
    calculate_difficulty,
    compose_total_score,
    get_linking_quality_score,
)
from calgym.scoring.rules import (
    CO_CN_MAX,
    DEFAULT_LEVEL,
    DEFAULT_LINKING_QUALITY,
    EXECUTION_MAX,
    LEVEL_RULES,
    LINKING_QUALITIES,
    MAX_PERFORMED_ELEMENTS,
    SPECIFIC_REQ_MAX,
    ClassLevel,
)
from .models import Evaluation

LOG = logging.getLogger(__name__)

CLASS_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9\s\-_À-ÿ]+$")
STUDENT_NAME_PATTERN = re.compile(r"^[a-zA-ZÀ-ÿ\s\-'.]+$")

CLASS_NAME_MAX_LENGTH = 50
STUDENT_NAME_MAX_LENGTH = 100
TEACHER_NAME_LENGTH = (2, 100)
REPORT_TITLE_LENGTH = (5, 200)

# Payload keys, with the camelCase spellings used by older exports.
FIELD_ALIASES = {
    "level": ("level", "year"),
    "performed_a": ("performed_a", "pA"),
    "performed_b": ("performed_b", "pB"),
    "performed_c": ("performed_c", "pC"),
    "specific_req_score": ("specific_req_score", "specificReqScore"),
    "linking_quality": ("linking_quality", "linkingQualityValue", "linkingQuality"),
    "execution_score": ("execution_score", "executionScore"),
    "co_cn_score": ("co_cn_score", "coCnScore"),
    "co_cm_score": ("co_cm_score", "coCmScore"),
    "created_at": ("created_at", "date"),
}


def validate_class_level(level: Any) -> bool:
    return ClassLevel.parse(level) is not None


def validate_class_name(name: Any) -> bool:
    """Check a class name: 1-50 letters, digits, spaces, '-' or '_'."""
    if not name or not isinstance(name, str):
        return False
    name = name.strip()
    return 0 < len(name) <= CLASS_NAME_MAX_LENGTH and bool(CLASS_NAME_PATTERN.match(name))


def validate_student_name(name: Any) -> bool:
    """Check a student name: 1-100 letters, spaces, hyphens, apostrophes or periods."""
    if not name or not isinstance(name, str):
        return False
    name = name.strip()
    return 0 < len(name) <= STUDENT_NAME_MAX_LENGTH and bool(STUDENT_NAME_PATTERN.match(name))


def _length_between(value: Any, bounds) -> bool:
    if not isinstance(value, str):
        return False
    low, high = bounds
    return low <= len(value.strip()) <= high


def validate_teacher_name(name: Any) -> bool:
    return _length_between(name, TEACHER_NAME_LENGTH)


def validate_report_title(title: Any) -> bool:
    return _length_between(title, REPORT_TITLE_LENGTH)


def clamp_number(value: Any, low: float, high: float) -> float:
    """Parse a number and clamp it into [low, high].

    Unparsable input counts as 0. Integers too large for a float clamp to the
    nearest bound.
    """
    try:
        number = float(value)
    except OverflowError:
        number = math.inf if value > 0 else -math.inf
    except (TypeError, ValueError):
        number = 0.0
    if math.isnan(number):
        number = 0.0
    return min(max(number, low), high)


def _pick(raw: Mapping[str, Any], field: str) -> Any:
    for key in FIELD_ALIASES[field]:
        if raw.get(key) is not None:
            return raw[key]
    return None


def _parse_timestamp(value: Any) -> datetime:
    """Parse an ISO timestamp, falling back to now when absent or unreadable."""
    parsed = None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            LOG.debug(f"Unreadable evaluation timestamp {value!r}, using current time")
    if parsed is None:
        return datetime.now(timezone.utc)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def validate_evaluation_input(raw: Any) -> Optional[Evaluation]:
    """
    Normalize an untrusted evaluation payload.

    Args:
        raw: Mapping of evaluation fields (snake_case or legacy camelCase keys)

    Returns:
        A well-formed Evaluation, or None if raw is not a mapping at all.
    """
    if not isinstance(raw, Mapping):
        return None

    level = ClassLevel.parse(_pick(raw, "level")) or DEFAULT_LEVEL
    rules = LEVEL_RULES[level]

    performed_a = int(clamp_number(_pick(raw, "performed_a"), 0, MAX_PERFORMED_ELEMENTS))
    performed_b = int(clamp_number(_pick(raw, "performed_b"), 0, MAX_PERFORMED_ELEMENTS))
    performed_c = int(clamp_number(_pick(raw, "performed_c"), 0, MAX_PERFORMED_ELEMENTS))

    linking_quality = _pick(raw, "linking_quality")
    if linking_quality not in LINKING_QUALITIES:
        linking_quality = DEFAULT_LINKING_QUALITY

    specific_req_score = clamp_number(_pick(raw, "specific_req_score"), 0, SPECIFIC_REQ_MAX)
    execution_score = clamp_number(_pick(raw, "execution_score"), 0, EXECUTION_MAX)
    co_cn_score = clamp_number(_pick(raw, "co_cn_score"), 0, CO_CN_MAX)
    co_cm_score = clamp_number(_pick(raw, "co_cm_score"), 0, rules.co_cm_max)

    difficulty_score = calculate_difficulty(level, performed_a, performed_b, performed_c).score
    linking_score = get_linking_quality_score(level, linking_quality)
    total_score = compose_total_score(
        difficulty_score, specific_req_score, linking_score,
        execution_score, co_cn_score, co_cm_score,
    )

    return Evaluation(
        level=level,
        performed_a=performed_a,
        performed_b=performed_b,
        performed_c=performed_c,
        specific_req_score=specific_req_score,
        linking_quality=linking_quality,
        execution_score=execution_score,
        co_cn_score=co_cn_score,
        co_cm_score=co_cm_score,
        difficulty_score=difficulty_score,
        linking_score=linking_score,
        total_score=total_score,
        created_at=_parse_timestamp(_pick(raw, "created_at")),
    )
