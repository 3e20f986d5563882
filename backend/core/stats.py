"""
stats.py — Class-wide analytics over recalculated student records.

Computes:
- Class average, median, spread and grade distribution
- Per-quarter averages, medians and approval rates
- Approved / failed / pending-recovery counts and approval rate
- School overview across several classes
"""

from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd

from core.grading import (
    APPROVED,
    FAILED,
    HIGH_PERFORMER_THRESHOLD,
    MAX_SCORE,
    MIN_SCORE,
    PASS_THRESHOLD,
    QUARTER_FIELDS,
    RECOVERY,
    RECOVERY_THRESHOLD,
    round_half_up,
)

DISTRIBUTION_BINS = [0, 2, 4, 6, 8, 10]


# ── Helpers ─────────────────────────────────────────────────────────

def _safe_float(val, places: int = 2) -> Optional[float]:
    """Convert to a rounded float or return None."""
    try:
        v = float(val)
        return None if np.isnan(v) or np.isinf(v) else round_half_up(v, places)
    except (TypeError, ValueError):
        return None


def _sanitize(obj):
    """Recursively coerce numpy/pandas scalars to JSON-safe Python types."""
    if isinstance(obj, dict):
        return {k: _sanitize(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_sanitize(v) for v in obj]
    if isinstance(obj, (np.bool_,)):
        return bool(obj)
    if isinstance(obj, (np.integer,)):
        return int(obj)
    if isinstance(obj, (np.floating, float)):
        v = float(obj)
        return None if (np.isnan(v) or np.isinf(v)) else v
    return obj


def _numeric(df: pd.DataFrame, col: str) -> pd.Series:
    """Numeric view of a column; missing columns read as all-NaN."""
    if col not in df.columns:
        return pd.Series(np.nan, index=df.index, dtype="float64")
    return pd.to_numeric(df[col], errors="coerce")


def _text(df: pd.DataFrame, col: str) -> pd.Series:
    if col not in df.columns:
        return pd.Series(None, index=df.index, dtype="object")
    return df[col].where(df[col].notna(), None)


def _mean(values: pd.Series) -> float:
    return _safe_float(values.mean()) if len(values) > 0 else 0


def _median(values: pd.Series) -> float:
    """Middle value as given for odd counts; the rounded mean of the two middle values otherwise."""
    n = len(values)
    if n == 0:
        return 0
    if n % 2:
        return float(values.sort_values().iloc[n // 2])
    return _safe_float(values.median())


def _rate(count: int, total: int, places: int = 1) -> float:
    return round_half_up(count / total * 100, places) if total > 0 else 0


def _empty_analytics(total_students: int = 0) -> Dict[str, Any]:
    zero_quarters = {q: 0 for q in QUARTER_FIELDS}
    return {
        "total_students": total_students,
        "graded_students": 0,
        "class_average": 0,
        "quarter_averages": dict(zero_quarters),
        "quarter_medians": dict(zero_quarters),
        "quarter_approval_rates": dict(zero_quarters),
        "median": 0,
        "std": 0,
        "min": 0,
        "max": 0,
        "approved_count": 0,
        "failed_count": 0,
        "recovery_count": 0,
        "high_performer_count": 0,
        "low_performer_count": 0,
        "approval_rate": 0,
        "distribution": {
            "bins": [f"{DISTRIBUTION_BINS[i]}-{DISTRIBUTION_BINS[i + 1]}" for i in range(len(DISTRIBUTION_BINS) - 1)],
            "counts": [0] * (len(DISTRIBUTION_BINS) - 1),
        },
    }


# ── Class Analytics ─────────────────────────────────────────────────

def compute_class_analytics(records: List[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Aggregate recalculated student records into class statistics.

    Records without a consolidated grade are ungraded and only count towards
    total_students. Quarter statistics filter each quarter independently, so a
    student missing quarter 2 still contributes to quarter 1.
    """
    if not records:
        return _empty_analytics()

    df = pd.DataFrame(list(records))
    consolidated = _numeric(df, "consolidated_grade")
    valid_mask = consolidated.notna()
    grades = consolidated[valid_mask]

    analytics = _empty_analytics(total_students=len(df))

    # Quarter statistics look at every record, graded or not.
    for quarter in QUARTER_FIELDS:
        q_scores = _numeric(df, quarter).dropna()
        analytics["quarter_averages"][quarter] = _mean(q_scores)
        analytics["quarter_medians"][quarter] = _median(q_scores)
        analytics["quarter_approval_rates"][quarter] = _rate(
            int((q_scores >= PASS_THRESHOLD).sum()), len(q_scores)
        )

    if grades.empty:
        return _sanitize(analytics)

    valid = df[valid_mask]
    status = _text(valid, "status")
    final_status = _text(valid, "final_status")
    outcome = final_status.where(final_status.notna(), status)
    pending_recovery = (status == RECOVERY) & final_status.isna()

    approved = int((outcome == APPROVED).sum())
    hist_counts, _ = np.histogram(grades.clip(MIN_SCORE, MAX_SCORE), bins=DISTRIBUTION_BINS)

    analytics.update({
        "graded_students": len(grades),
        "class_average": _mean(grades),
        "median": _median(grades),
        "std": _safe_float(grades.std(ddof=0)),
        "min": _safe_float(grades.min()),
        "max": _safe_float(grades.max()),
        "approved_count": approved,
        "failed_count": int((outcome == FAILED).sum()),
        "recovery_count": int(pending_recovery.sum()),
        "high_performer_count": int((grades > HIGH_PERFORMER_THRESHOLD).sum()),
        "low_performer_count": int((grades < RECOVERY_THRESHOLD).sum()),
        "approval_rate": _rate(approved, len(grades)),
    })
    analytics["distribution"]["counts"] = [int(c) for c in hist_counts]

    return _sanitize(analytics)


# ── School Overview ─────────────────────────────────────────────────

def compute_school_overview(classes: List[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Summarise several classes for the secretariat reports dashboard.

    Each entry is {"class_id", "class_name", "records"} with recalculated records.
    """
    per_class = []
    total_students = 0
    total_graded = 0
    total_approved = 0

    for entry in classes:
        analytics = compute_class_analytics(entry.get("records") or [])
        total_students += analytics["total_students"]
        total_graded += analytics["graded_students"]
        total_approved += analytics["approved_count"]
        per_class.append({
            "class_id": entry.get("class_id"),
            "class_name": entry.get("class_name") or entry.get("class_id"),
            "class_average": analytics["class_average"],
            "approved_count": analytics["approved_count"],
            "failed_count": analytics["failed_count"],
            "graded_students": analytics["graded_students"],
            "approval_rate": analytics["approval_rate"],
        })

    # Classes with nothing graded yet would drag the school mean to zero.
    averages = pd.Series([c["class_average"] for c in per_class if c["class_average"] > 0], dtype="float64")

    per_class.sort(key=lambda c: c["class_average"] or 0, reverse=True)

    return _sanitize({
        "total_classes": len(per_class),
        "total_students": total_students,
        "graded_students": total_graded,
        "overall_average": _mean(averages),
        "approval_rate": _rate(total_approved, total_graded, places=2),
        "classes": per_class,
    })
