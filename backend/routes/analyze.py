"""
Analyze routes — stateless grade calculations over posted score sets.
"""

import logging
from typing import Any, Dict, List

from fastapi import APIRouter, HTTPException

from core.grading import FINAL_PASS_THRESHOLD, get_grade_thresholds, recalculate_all
from core.stats import compute_class_analytics, compute_school_overview
from core.validation import validate_score_set

logger = logging.getLogger(__name__)

router = APIRouter()


def _validated_rows(data: Any) -> List[Dict[str, Any]]:
    """Run every posted row through the score gate; collect errors by row index."""
    if not isinstance(data, list):
        raise HTTPException(400, "No data provided.")
    if not all(isinstance(row, dict) for row in data):
        raise HTTPException(400, "Every data entry must be an object.")

    rows: List[Dict[str, Any]] = []
    errors: List[Dict[str, Any]] = []
    for idx, row in enumerate(data):
        score_set, row_errors = validate_score_set(row)
        errors.extend({"row": idx, **e} for e in row_errors)
        rows.append({**row, **score_set})
    if errors:
        logger.warning("Rejected analytics request: %d invalid scores", len(errors))
        raise HTTPException(422, {"message": "Some scores are invalid.", "errors": errors})
    return rows


def _records_from_payload(payload: dict) -> List[Dict[str, Any]]:
    """Extract and recalculate score sets from request payload."""
    return recalculate_all(_validated_rows(payload.get("data")), final_pass_threshold=FINAL_PASS_THRESHOLD)


@router.post("/recalculate")
async def recalculate_records(payload: dict):
    """Derived grades and statuses for each posted score set."""
    return {"records": _records_from_payload(payload)}


@router.post("/class")
async def class_analytics(payload: dict):
    """Class averages, median, status counts and approval rate."""
    records = _records_from_payload(payload)
    return {"records": records, "analytics": compute_class_analytics(records)}


@router.post("/school")
async def school_overview(payload: dict):
    """
    Overview across classes.
    Expects: { "classes": [{ "class_id": "...", "class_name": "...", "data": [...] }] }
    """
    classes = payload.get("classes")
    if not isinstance(classes, list) or not classes:
        raise HTTPException(400, "No classes provided.")

    prepared = []
    for entry in classes:
        if not isinstance(entry, dict):
            raise HTTPException(400, "Every class entry must be an object.")
        prepared.append({
            "class_id": entry.get("class_id"),
            "class_name": entry.get("class_name"),
            "records": _records_from_payload(entry),
        })
    return compute_school_overview(prepared)


@router.get("/thresholds")
async def thresholds():
    """Return grading thresholds and status bands."""
    return get_grade_thresholds(FINAL_PASS_THRESHOLD)
