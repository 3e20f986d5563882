"""
Grade routes — load, edit and bulk-save a class's scores for one subject.

Every response carries freshly recalculated records and class analytics;
nothing derived is read back from storage.
"""

import logging
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, HTTPException

from core.database import get_repository
from core.grading import FINAL_PASS_THRESHOLD, RECOVERY_FIELD, recalculate_all
from core.repository import GradeRepository, GradeRepositoryError
from core.stats import compute_class_analytics
from core.validation import (
    ScoreValidationError,
    check_recovery_eligibility,
    validate_field_update,
    validate_score,
    validate_score_set,
)

logger = logging.getLogger(__name__)

router = APIRouter()


async def _class_sheet(repo: GradeRepository, class_id: str, subject_id: str) -> Dict[str, Any]:
    try:
        score_sets = await repo.load_score_sets(class_id, subject_id)
    except GradeRepositoryError as exc:
        raise HTTPException(503, str(exc))

    students = recalculate_all(score_sets, final_pass_threshold=FINAL_PASS_THRESHOLD)
    return {
        "class_id": class_id,
        "subject_id": subject_id,
        "final_pass_threshold": FINAL_PASS_THRESHOLD,
        "students": students,
        "analytics": compute_class_analytics(students),
    }


@router.post("/validate")
async def validate(payload: dict):
    """Check a single typed score before it is sent as an edit."""
    if "value" not in payload:
        raise HTTPException(400, "Provide 'value'.")
    return validate_score(payload["value"])


@router.get("/{class_id}/{subject_id}")
async def class_grades(class_id: str, subject_id: str, repo: GradeRepository = Depends(get_repository)):
    """All enrolled students with recalculated grades, plus class analytics."""
    return await _class_sheet(repo, class_id, subject_id)


@router.patch("/{class_id}/{subject_id}/{student_id}")
async def update_grade(
    class_id: str,
    subject_id: str,
    student_id: str,
    payload: dict,
    repo: GradeRepository = Depends(get_repository),
):
    """
    Set or clear one score field for one student.
    Expects: { "field": "quarter1", "value": "7.5", "updated_by": "teacher-id" }
    """
    field = payload.get("field")
    if not field:
        raise HTTPException(400, "Provide 'field'.")

    try:
        value = validate_field_update(field, payload.get("value"))
    except ScoreValidationError as exc:
        logger.warning("Rejected edit for student=%s: %s", student_id, exc)
        raise HTTPException(422, exc.to_dict())

    before = await _class_sheet(repo, class_id, subject_id)
    current = next((s for s in before["students"] if s["student_id"] == student_id), None)
    if current is None:
        raise HTTPException(404, f"Student '{student_id}' is not enrolled in class '{class_id}'.")
    if field == RECOVERY_FIELD:
        try:
            check_recovery_eligibility(current, value)
        except ScoreValidationError as exc:
            logger.warning("Rejected edit for student=%s: %s", student_id, exc)
            raise HTTPException(422, exc.to_dict())

    try:
        await repo.apply_field_update(
            student_id, subject_id, class_id, field, value,
            updated_by=payload.get("updated_by"),
        )
    except GradeRepositoryError as exc:
        raise HTTPException(503, str(exc))

    sheet = await _class_sheet(repo, class_id, subject_id)
    student = next(s for s in sheet["students"] if s["student_id"] == student_id)
    return {"student": student, "analytics": sheet["analytics"]}


@router.post("/{class_id}/{subject_id}/save")
async def save_grades(
    class_id: str,
    subject_id: str,
    payload: dict,
    repo: GradeRepository = Depends(get_repository),
):
    """
    Save the score sets of several students in one atomic operation.
    Expects: { "updates": [{ "student_id": "...", "quarter1": 7, ... }], "updated_by": "..." }
    """
    updates = payload.get("updates")
    if not isinstance(updates, list):
        raise HTTPException(400, "Provide an 'updates' list.")

    entries: List[Dict[str, Any]] = []
    errors: List[Dict[str, Any]] = []
    for item in updates:
        student_id = item.get("student_id") if isinstance(item, dict) else None
        if not student_id:
            raise HTTPException(400, "Every update needs a 'student_id'.")
        score_set, item_errors = validate_score_set(item)
        errors.extend({"student_id": student_id, **e} for e in item_errors)
        entries.append({"student_id": student_id, **score_set})

    if errors:
        logger.warning("Rejected bulk save for class=%s subject=%s: %d invalid scores", class_id, subject_id, len(errors))
        raise HTTPException(422, {"message": "No grades were saved.", "errors": errors})

    try:
        saved = await repo.apply_bulk_update(
            class_id, subject_id, entries, updated_by=payload.get("updated_by"),
        )
    except GradeRepositoryError as exc:
        raise HTTPException(503, str(exc))

    sheet = await _class_sheet(repo, class_id, subject_id)
    sheet["saved"] = saved
    return sheet
