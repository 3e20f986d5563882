"""
validation.py — Score input gate between user edits and the grade calculator.

Handles:
- Parsing raw score text to a number
- Range checks against the 0-10 scale
- Single-field edit validation (empty input clears the score)
- Recovery-exam eligibility
- Bulk score-set validation with an error report
"""

import math
from typing import Any, Dict, List, Optional, Tuple

from core.grading import (
    MAX_SCORE,
    MIN_SCORE,
    RECOVERY_FIELD,
    SCORE_FIELDS,
    calculate_consolidated_grade,
    calculate_quarterly_mean,
    needs_recovery_exam,
)

NOT_A_NUMBER = "not a number"
OUT_OF_RANGE = "out of range"
UNKNOWN_FIELD = "unknown field"
NOT_ELIGIBLE = "not eligible for recovery"


class ScoreValidationError(ValueError):
    """A score edit was rejected before reaching the calculator."""

    def __init__(self, field: Optional[str], reason: str, value: Any = None):
        self.field = field
        self.reason = reason
        self.value = value
        super().__init__(f"{field or 'score'}: {reason}")

    def to_dict(self) -> Dict[str, Any]:
        return {"field": self.field, "value": self.value, "error": self.reason}


def _is_blank(raw: Any) -> bool:
    return raw is None or (isinstance(raw, str) and not raw.strip())


def validate_score(raw: Any) -> Dict[str, Any]:
    """
    Validate one raw score as typed by a teacher.

    Returns {"valid": True, "value": float} or {"valid": False, "error": reason}.
    """
    if isinstance(raw, bool):
        return {"valid": False, "error": NOT_A_NUMBER}
    try:
        value = float(str(raw).strip())
    except (TypeError, ValueError):
        return {"valid": False, "error": NOT_A_NUMBER}
    if math.isnan(value):
        return {"valid": False, "error": NOT_A_NUMBER}
    if value < MIN_SCORE or value > MAX_SCORE:
        return {"valid": False, "error": OUT_OF_RANGE}
    return {"valid": True, "value": value}


def validate_field_update(field: str, raw: Any) -> Optional[float]:
    """
    Validate a single-field edit. Blank input means "clear this score" and
    returns None; anything else must be a valid score.
    """
    if field not in SCORE_FIELDS:
        raise ScoreValidationError(field, UNKNOWN_FIELD, raw)
    if _is_blank(raw):
        return None
    result = validate_score(raw)
    if not result["valid"]:
        raise ScoreValidationError(field, result["error"], raw)
    return result["value"]


def validate_score_set(raw: Dict[str, Any]) -> Tuple[Dict[str, Optional[float]], List[Dict[str, Any]]]:
    """
    Validate every score field of a bulk-save entry.

    Returns (score_set, errors). Fields missing from the entry are absent;
    invalid fields are left absent in the score set and listed in errors.
    """
    score_set: Dict[str, Optional[float]] = {}
    errors: List[Dict[str, Any]] = []

    for field in SCORE_FIELDS:
        try:
            score_set[field] = validate_field_update(field, raw.get(field))
        except ScoreValidationError as exc:
            score_set[field] = None
            errors.append(exc.to_dict())

    try:
        check_recovery_eligibility(score_set, score_set[RECOVERY_FIELD])
    except ScoreValidationError as exc:
        score_set[RECOVERY_FIELD] = None
        errors.append(exc.to_dict())

    return score_set, errors


def check_recovery_eligibility(score_set: Dict[str, Any], recovery_score: Optional[float]):
    """Refuse a recovery score for a student outside the recovery band."""
    if recovery_score is None:
        return
    consolidated = calculate_consolidated_grade(calculate_quarterly_mean(score_set))
    if not needs_recovery_exam(consolidated):
        raise ScoreValidationError(RECOVERY_FIELD, NOT_ELIGIBLE, recovery_score)
