"""
Grade repository: persistence of per-student, per-subject, per-class scores.

Only raw scores are stored. Derived fields (means, statuses) are recomputed by
core.grading every time records are read.
"""

import copy
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pymongo import UpdateOne
from pymongo.errors import PyMongoError

from core.grading import SCORE_FIELDS

logger = logging.getLogger(__name__)


class GradeRepositoryError(Exception):
    """Raised when scores cannot be loaded or saved."""


def iso_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _check_field(field: str):
    if field not in SCORE_FIELDS:
        raise GradeRepositoryError(f"Unknown score field '{field}'.")


def _score_row(student: Dict[str, Any], scores: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    scores = scores or {}
    row = {
        "student_id": student["id"],
        "name": student.get("name"),
        "registration": student.get("registration"),
    }
    for field in SCORE_FIELDS:
        row[field] = scores.get(field)
    return row


class GradeRepository(ABC):
    """
    Narrow read/write contract the grade API depends on.

    Implementations must return one entry per enrolled student from
    load_score_sets, with None for every ungraded field, and must apply
    bulk updates all-or-nothing.
    """

    @abstractmethod
    async def load_score_sets(self, class_id: str, subject_id: str) -> List[Dict[str, Any]]:
        """Return [{student_id, name, registration, quarter1..4, recovery_score}]."""

    @abstractmethod
    async def apply_field_update(
        self,
        student_id: str,
        subject_id: str,
        class_id: str,
        field: str,
        value: Optional[float],
        updated_by: Optional[str] = None,
    ) -> None:
        """Upsert one score field; a None value clears it."""

    @abstractmethod
    async def apply_bulk_update(
        self,
        class_id: str,
        subject_id: str,
        entries: List[Dict[str, Any]],
        updated_by: Optional[str] = None,
    ) -> int:
        """
        Replace the score sets of several students atomically.

        Each entry is {"student_id", quarter1..4, recovery_score}. Returns the
        number of entries written.
        """

    async def close(self):
        """Release any held resources."""


class MongoGradeRepository(GradeRepository):
    """MongoDB-backed repository using the async motor driver."""

    def __init__(self, client, db_name: str):
        self.client = client
        self.db = client[db_name]

    async def load_score_sets(self, class_id: str, subject_id: str) -> List[Dict[str, Any]]:
        try:
            students = await self.db.students.find(
                {"class_id": class_id, "active": {"$ne": False}}, {"_id": 0}
            ).sort("name", 1).to_list(length=None)
            grade_docs = await self.db.grades.find(
                {"class_id": class_id, "subject_id": subject_id}, {"_id": 0}
            ).to_list(length=None)
        except PyMongoError as exc:
            logger.exception("Failed to load grades for class=%s subject=%s", class_id, subject_id)
            raise GradeRepositoryError("Could not retrieve grades.") from exc

        scores_by_student = {doc.get("student_id"): doc.get("scores") for doc in grade_docs}
        return [_score_row(s, scores_by_student.get(s["id"])) for s in students]

    async def apply_field_update(
        self,
        student_id: str,
        subject_id: str,
        class_id: str,
        field: str,
        value: Optional[float],
        updated_by: Optional[str] = None,
    ) -> None:
        _check_field(field)
        key = {"student_id": student_id, "subject_id": subject_id, "class_id": class_id}
        meta = {"updated_at": iso_now(), "updated_by": updated_by}
        if value is None:
            update = {"$unset": {f"scores.{field}": ""}, "$set": meta}
        else:
            update = {"$set": {f"scores.{field}": value, **meta}}
        try:
            await self.db.grades.update_one(key, update, upsert=True)
        except PyMongoError as exc:
            logger.exception("Failed to update %s for student=%s", field, student_id)
            raise GradeRepositoryError("Could not save grade.") from exc

    async def apply_bulk_update(
        self,
        class_id: str,
        subject_id: str,
        entries: List[Dict[str, Any]],
        updated_by: Optional[str] = None,
    ) -> int:
        now = iso_now()
        operations = []
        for entry in entries:
            scores = {f: entry.get(f) for f in SCORE_FIELDS if entry.get(f) is not None}
            operations.append(
                UpdateOne(
                    {"student_id": entry["student_id"], "subject_id": subject_id, "class_id": class_id},
                    {"$set": {"scores": scores, "updated_at": now, "updated_by": updated_by}},
                    upsert=True,
                )
            )
        if not operations:
            return 0

        try:
            async with await self.client.start_session() as session:
                async with session.start_transaction():
                    await self.db.grades.bulk_write(operations, ordered=True, session=session)
        except PyMongoError as exc:
            logger.exception("Bulk grade save aborted for class=%s subject=%s", class_id, subject_id)
            raise GradeRepositoryError("Could not save grades due to a transaction error.") from exc

        logger.info("Saved %d score sets for class=%s subject=%s", len(operations), class_id, subject_id)
        return len(operations)

    async def close(self):
        self.client.close()


class InMemoryGradeRepository(GradeRepository):
    """Dict-backed repository for local development and tests."""

    def __init__(self):
        self.students: Dict[str, Dict[str, Any]] = {}
        self.grades: Dict[tuple, Dict[str, Any]] = {}

    def enroll(self, student_id: str, class_id: str, name: str = "", registration: Optional[str] = None):
        self.students[student_id] = {
            "id": student_id,
            "name": name or student_id,
            "registration": registration,
            "class_id": class_id,
            "active": True,
        }

    async def load_score_sets(self, class_id: str, subject_id: str) -> List[Dict[str, Any]]:
        enrolled = sorted(
            (s for s in self.students.values() if s["class_id"] == class_id and s.get("active", True)),
            key=lambda s: s.get("name") or "",
        )
        rows = []
        for student in enrolled:
            doc = self.grades.get((student["id"], subject_id, class_id))
            rows.append(_score_row(student, doc["scores"] if doc else None))
        return rows

    async def apply_field_update(
        self,
        student_id: str,
        subject_id: str,
        class_id: str,
        field: str,
        value: Optional[float],
        updated_by: Optional[str] = None,
    ) -> None:
        _check_field(field)
        doc = self.grades.setdefault((student_id, subject_id, class_id), {"scores": {}})
        if value is None:
            doc["scores"].pop(field, None)
        else:
            doc["scores"][field] = value
        doc.update({"updated_at": iso_now(), "updated_by": updated_by})

    async def apply_bulk_update(
        self,
        class_id: str,
        subject_id: str,
        entries: List[Dict[str, Any]],
        updated_by: Optional[str] = None,
    ) -> int:
        staged = copy.deepcopy(self.grades)
        now = iso_now()
        for entry in entries:
            if not entry.get("student_id"):
                raise GradeRepositoryError("Bulk entry without student_id.")
            staged[(entry["student_id"], subject_id, class_id)] = {
                "scores": {f: entry[f] for f in SCORE_FIELDS if entry.get(f) is not None},
                "updated_at": now,
                "updated_by": updated_by,
            }
        self.grades = staged
        logger.info("Saved %d score sets for class=%s subject=%s", len(entries), class_id, subject_id)
        return len(entries)
