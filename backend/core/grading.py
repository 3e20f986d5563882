"""
grading.py — Grade calculation rules for the 0-10 quarterly scale.

Pipeline per student (all derived fields are recomputed on every read):
  quarterly_mean     = mean of the quarter scores that are present
  consolidated_grade = quarterly_mean (kept separate for future weighting)
  final_grade        = consolidated_grade, or (consolidated + recovery) / 2
                       when below the pass mark and a recovery score exists
  status             = Approved / Recovery / Failed from consolidated_grade
  final_status       = Approved / Failed after the recovery exam

Nothing here validates input ranges; that happens in core.validation.
"""

import math
import os
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional


PASS_THRESHOLD = 6.0
RECOVERY_THRESHOLD = 4.0
# Pass mark applied to the post-recovery final grade. Older client code used 5.0;
# the server rule has always been the direct pass mark.
FINAL_PASS_THRESHOLD = float(os.getenv("FINAL_PASS_THRESHOLD", str(PASS_THRESHOLD)))
# When on, a student in the recovery band with no recovery score keeps an
# empty final status instead of being resolved against the final pass mark.
PENDING_RECOVERY_HAS_NO_FINAL_STATUS = os.getenv(
    "PENDING_RECOVERY_HAS_NO_FINAL_STATUS", "false"
).strip().lower() in {"1", "true", "yes", "on"}
HIGH_PERFORMER_THRESHOLD = 8.0

MIN_SCORE = 0.0
MAX_SCORE = 10.0

QUARTER_FIELDS = ("quarter1", "quarter2", "quarter3", "quarter4")
RECOVERY_FIELD = "recovery_score"
SCORE_FIELDS = QUARTER_FIELDS + (RECOVERY_FIELD,)

APPROVED = "Approved"
RECOVERY = "Recovery"
FAILED = "Failed"

# Status bands (min_grade, label, description), ordered high to low.
STATUS_BANDS = [
    (PASS_THRESHOLD, APPROVED, "Approved directly"),
    (RECOVERY_THRESHOLD, RECOVERY, "Eligible for the recovery exam"),
    (MIN_SCORE, FAILED, "Failed without recovery"),
]


# ── Helpers ─────────────────────────────────────────────────────────

def round_half_up(value: float, places: int = 2) -> float:
    """Round like a gradebook does: 2.345 -> 2.35, never banker's rounding."""
    exponent = Decimal(1).scaleb(-places)
    return float(Decimal(str(value)).quantize(exponent, rounding=ROUND_HALF_UP))


def _score(value: Any) -> Optional[float]:
    """Coerce a stored score to float, or None when it is absent."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str) and not value.strip():
        return None
    try:
        v = float(value)
    except (TypeError, ValueError):
        return None
    return None if math.isnan(v) else v


def present_quarter_scores(score_set: Dict[str, Any]) -> List[float]:
    scores = (_score(score_set.get(field)) for field in QUARTER_FIELDS)
    return [s for s in scores if s is not None]


# ── Calculation steps ───────────────────────────────────────────────

def calculate_quarterly_mean(score_set: Dict[str, Any]) -> Optional[float]:
    """Mean of the present quarter scores, or None if nothing is graded yet."""
    scores = present_quarter_scores(score_set)
    if not scores:
        return None
    return round_half_up(sum(scores) / len(scores), 2)


def calculate_consolidated_grade(quarterly_mean: Optional[float]) -> Optional[float]:
    """Currently identical to the quarterly mean."""
    return quarterly_mean


def calculate_final_grade(
    consolidated: Optional[float], recovery_score: Any = None
) -> Optional[float]:
    """Average the recovery exam in for any student below the pass mark."""
    if consolidated is None or consolidated >= PASS_THRESHOLD:
        return consolidated
    recovery = _score(recovery_score)
    if recovery is not None:
        return round_half_up((consolidated + recovery) / 2, 2)
    return consolidated


def calculate_status(consolidated: Optional[float]) -> Optional[str]:
    """Status before the recovery exam is taken into account."""
    if consolidated is None:
        return None
    for min_grade, label, _ in STATUS_BANDS:
        if consolidated >= min_grade:
            return label
    return FAILED


def calculate_final_status(
    final_grade: Optional[float],
    consolidated: Optional[float],
    final_pass_threshold: float = FINAL_PASS_THRESHOLD,
    awaiting_recovery: bool = False,
) -> Optional[str]:
    """
    Outcome after the recovery exam. None when the student has no grades, or
    when awaiting_recovery is set for a student who has not sat the exam yet.
    Below the recovery floor the student has failed whatever the final grade.
    """
    if consolidated is None:
        return None
    if consolidated >= PASS_THRESHOLD:
        return APPROVED
    if consolidated < RECOVERY_THRESHOLD:
        return FAILED
    if final_grade is None or awaiting_recovery:
        return None
    return APPROVED if final_grade >= final_pass_threshold else FAILED


def needs_recovery_exam(consolidated: Optional[float]) -> bool:
    """True when the student may sit the recovery exam."""
    if consolidated is None:
        return False
    return RECOVERY_THRESHOLD <= consolidated < PASS_THRESHOLD


# ── Public entry point ──────────────────────────────────────────────

def recalculate(
    score_set: Dict[str, Any],
    final_pass_threshold: float = FINAL_PASS_THRESHOLD,
    pending_has_no_final_status: bool = PENDING_RECOVERY_HAS_NO_FINAL_STATUS,
) -> Dict[str, Any]:
    """
    Return a new record with every derived field recomputed from the raw scores.

    Keys already on the input (student id, name, ...) are carried over; stale
    derived values on the input are overwritten. The input is not modified.

    By default a student in the recovery band without a recovery score is
    resolved on the consolidated grade (so Failed below the final pass mark).
    With pending_has_no_final_status the final status stays None until the
    recovery score arrives.
    """
    quarterly_mean = calculate_quarterly_mean(score_set)
    consolidated = calculate_consolidated_grade(quarterly_mean)
    recovery_score = _score(score_set.get(RECOVERY_FIELD))
    final_grade = calculate_final_grade(consolidated, recovery_score)
    eligible = needs_recovery_exam(consolidated)

    record = dict(score_set)
    for field in SCORE_FIELDS:
        record[field] = _score(score_set.get(field))
    record.update({
        "quarterly_mean": quarterly_mean,
        "consolidated_grade": consolidated,
        "final_grade": final_grade,
        "status": calculate_status(consolidated),
        "final_status": calculate_final_status(
            final_grade,
            consolidated,
            final_pass_threshold,
            awaiting_recovery=pending_has_no_final_status and eligible and recovery_score is None,
        ),
        "recovery_eligible": eligible,
    })
    return record


def recalculate_all(
    score_sets: List[Dict[str, Any]],
    final_pass_threshold: float = FINAL_PASS_THRESHOLD,
    pending_has_no_final_status: bool = PENDING_RECOVERY_HAS_NO_FINAL_STATUS,
) -> List[Dict[str, Any]]:
    return [recalculate(s, final_pass_threshold, pending_has_no_final_status) for s in score_sets]


def get_grade_thresholds(final_pass_threshold: float = FINAL_PASS_THRESHOLD) -> Dict[str, Any]:
    """Return the status bands and thresholds for legend/reference."""
    bands = []
    for idx, (min_grade, label, desc) in enumerate(STATUS_BANDS):
        max_grade = MAX_SCORE if idx == 0 else STATUS_BANDS[idx - 1][0] - 0.01
        bands.append({
            "min": min_grade,
            "max": round(max_grade, 2),
            "label": label,
            "description": desc,
        })
    return {
        "scale": {"min": MIN_SCORE, "max": MAX_SCORE},
        "pass_threshold": PASS_THRESHOLD,
        "recovery_threshold": RECOVERY_THRESHOLD,
        "final_pass_threshold": final_pass_threshold,
        "high_performer_threshold": HIGH_PERFORMER_THRESHOLD,
        "bands": bands,
    }
