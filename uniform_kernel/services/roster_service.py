"""
RosterService -- students, their school roster summary, logs and distributions.

Responsibility:
    Keeps the two representations of a student in step: the full document
    in ``students`` and the summary entry in the school's ``students`` list.
    Also edits a student's receipt log and distribution records.

Architecture position:
    Kernel > Services.

Dual-write saga:
    add     1. insert student document   2. add summary to school
    update  1. update student document   2. replace summary on school
    delete  1. delete student document   2. drop summary from school

    If step 1 fails nothing has changed and the error propagates as is.
    If step 2 fails after step 1 landed, ``DualWriteInconsistencyError`` is
    raised (chained to the cause) and ``roster_dual_write_failed`` is logged.
    ``rebuild_roster_summary`` is the reconciliation path: it rebuilds the
    school's summary list from a query of the ``students`` collection.

Failure modes:
    - SchoolNotFoundError / StudentNotFoundError before any write.
    - LogEntryNotFoundError for an out-of-range log or distribution index.
    - TransactionConflictError when a log or distribution edit raced with
      another write to the same student (not retried).
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from uniform_kernel.db.document_store import (
    SCHOOLS,
    STUDENTS,
    ArrayUnion,
    DocumentStore,
    FieldFilter,
    Transaction,
)
from uniform_kernel.domain.clock import Clock
from uniform_kernel.domain.distribution import add_line, remove_line, requirement_key
from uniform_kernel.domain.values import Distribution, DistributionLine, Student
from uniform_kernel.exceptions import (
    DualWriteInconsistencyError,
    LogEntryNotFoundError,
    SchoolNotFoundError,
    StudentNotFoundError,
    ValidationError,
)
from uniform_kernel.logging_config import LogContext, get_logger
from uniform_kernel.services.base import BaseService

logger = get_logger("services.roster")

_EDITABLE_FIELDS = ("name", "form", "level", "gender")


def _require_text(field: str, value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(field, "is required")
    return value.strip()


def _require_index(field: str, value: Any) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValidationError(field, "must be a non-negative integer")


class RosterService(BaseService):
    """Student lifecycle with the school roster dual-write."""

    def __init__(self, store: DocumentStore, clock: Clock | None = None):
        super().__init__(store, clock)

    # -- roster ------------------------------------------------------------

    def add_student(
        self,
        school_id: str,
        name: str,
        level: str,
        gender: str,
        form: str = "",
    ) -> Student:
        name = _require_text("name", name)
        level = _require_text("level", level)
        gender = _require_text("gender", gender)
        if self.store.get(SCHOOLS, school_id) is None:
            raise SchoolNotFoundError(school_id)

        doc = {
            "schoolId": school_id,
            "name": name,
            "form": form or "",
            "level": level,
            "gender": gender,
            "uniformLog": [],
            "uniformDistribution": {},
            "createdAt": self.clock.isoformat(),
        }
        student_id = self.store.add(STUDENTS, doc)
        student = Student.from_document({**doc, "id": student_id})

        self._second_step(
            school_id,
            student_id,
            completed="student_created",
            failed="roster_summary_added",
            write=lambda: self.store.update(
                SCHOOLS, school_id, {"students": ArrayUnion(student.roster_summary())}
            ),
        )
        logger.info(
            "student_added",
            extra={"school_id": school_id, "student_id": student_id},
        )
        return student

    def update_student(self, student_id: str, **changes: Any) -> Student:
        unknown = sorted(set(changes) - set(_EDITABLE_FIELDS))
        if unknown:
            raise ValidationError(unknown[0], "field cannot be edited")
        for field in ("name", "level", "gender"):
            if field in changes:
                changes[field] = _require_text(field, changes[field])

        current = self._load_student(student_id)
        update = dict(changes)
        update["updatedAt"] = self.clock.isoformat()
        self.store.update(STUDENTS, student_id, update)
        student = self._load_student(student_id)

        def replace_summary() -> None:
            school = self.store.get(SCHOOLS, student.school_id)
            if school is None:
                raise SchoolNotFoundError(student.school_id)
            roster = [
                student.roster_summary() if entry.get("id") == student_id else entry
                for entry in school.get("students") or []
            ]
            self.store.update(SCHOOLS, student.school_id, {"students": roster})

        self._second_step(
            current.school_id,
            student_id,
            completed="student_updated",
            failed="roster_summary_updated",
            write=replace_summary,
        )
        logger.info("student_updated", extra={"student_id": student_id})
        return student

    def delete_student(self, student_id: str) -> None:
        student = self._load_student(student_id)
        self.store.delete(STUDENTS, student_id)

        def drop_summary() -> None:
            school = self.store.get(SCHOOLS, student.school_id)
            if school is None:
                raise SchoolNotFoundError(student.school_id)
            roster = [
                entry for entry in school.get("students") or []
                if entry.get("id") != student_id
            ]
            self.store.update(SCHOOLS, student.school_id, {"students": roster})

        self._second_step(
            student.school_id,
            student_id,
            completed="student_deleted",
            failed="roster_summary_removed",
            write=drop_summary,
        )
        logger.info(
            "student_deleted",
            extra={"school_id": student.school_id, "student_id": student_id},
        )

    def rebuild_roster_summary(self, school_id: str) -> list[dict]:
        """Rebuild the school's summary list from the ``students`` collection."""
        if self.store.get(SCHOOLS, school_id) is None:
            raise SchoolNotFoundError(school_id)
        roster = [
            Student.from_document(doc).roster_summary()
            for doc in self.store.query(
                STUDENTS, [FieldFilter("schoolId", "==", school_id)]
            )
        ]
        self.store.update(SCHOOLS, school_id, {"students": roster})
        logger.info(
            "roster_summary_rebuilt",
            extra={"school_id": school_id, "students": len(roster)},
        )
        return roster

    def list_students(self, school_id: str) -> list[Student]:
        return [
            Student.from_document(doc)
            for doc in self.store.query(
                STUDENTS, [FieldFilter("schoolId", "==", school_id)], order_by="name"
            )
        ]

    def get_student(self, student_id: str) -> Student:
        return self._load_student(student_id)

    # -- receipt log -------------------------------------------------------

    def remove_log_entry(self, student_id: str, index: int) -> None:
        """Remove the log entry at ``index``; later entries shift down."""

        def apply(txn: Transaction) -> None:
            doc = txn.get(STUDENTS, student_id)
            if doc is None:
                raise StudentNotFoundError(student_id)
            log = list(doc.get("uniformLog") or [])
            if not 0 <= index < len(log):
                raise LogEntryNotFoundError(student_id, index)
            del log[index]
            txn.update(STUDENTS, student_id, {"uniformLog": log})

        self.store.run_transaction(apply)
        logger.info(
            "log_entry_removed",
            extra={"student_id": student_id, "index": index},
        )

    # -- distributions -----------------------------------------------------

    def add_distribution(
        self,
        student_id: str,
        requirement_index: int,
        size: str,
        quantity: int,
        issued_by: str | None = None,
        issued_by_id: str | None = None,
    ) -> Distribution:
        """
        Record ``quantity`` of ``size`` issued against one of the student's
        requirements.

        The record is keyed by the student's gender and ``requirement_index``
        (the requirement's position among the policies for that gender).
        """
        _require_index("requirement_index", requirement_index)
        size = _require_text("size", size)
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
            raise ValidationError("quantity", "must be a positive integer")
        line = DistributionLine(
            size=size,
            quantity=quantity,
            received_at=self.clock.isoformat(),
            issued_by=issued_by,
            issued_by_id=issued_by_id,
        )
        with LogContext.bind(student_id=student_id, actor_id=issued_by_id):
            key, distribution = self._edit_distribution(
                student_id,
                requirement_index,
                lambda key, current: add_line(current, key, line),
            )
            logger.info(
                "distribution_added",
                extra={"key": key, "size": size, "quantity": quantity},
            )
        return distribution[key]

    def remove_distribution(
        self, student_id: str, requirement_index: int, index: int
    ) -> Distribution:
        _require_index("requirement_index", requirement_index)

        def edit(key, current):
            updated = remove_line(current, key, index)
            if updated is None:
                raise LogEntryNotFoundError(student_id, index, key)
            return updated

        key, distribution = self._edit_distribution(student_id, requirement_index, edit)
        logger.info(
            "distribution_removed",
            extra={"student_id": student_id, "key": key, "index": index},
        )
        return distribution[key]

    # -- internals ---------------------------------------------------------

    def _edit_distribution(
        self,
        student_id: str,
        requirement_index: int,
        edit: Callable[[str, dict[str, Distribution]], dict[str, Distribution]],
    ) -> tuple[str, dict[str, Distribution]]:
        def apply(txn: Transaction) -> tuple[str, dict[str, Distribution]]:
            doc = txn.get(STUDENTS, student_id)
            if doc is None:
                raise StudentNotFoundError(student_id)
            student = Student.from_document(doc)
            key = requirement_key(student.gender, requirement_index)
            updated = edit(key, dict(student.uniform_distribution))
            txn.update(
                STUDENTS,
                student_id,
                {
                    "uniformDistribution": {
                        k: d.to_document() for k, d in updated.items()
                    }
                },
            )
            return key, updated

        return self.store.run_transaction(apply)

    def _load_student(self, student_id: str) -> Student:
        doc = self.store.get(STUDENTS, student_id)
        if doc is None:
            raise StudentNotFoundError(student_id)
        return Student.from_document(doc)

    def _second_step(
        self,
        school_id: str,
        student_id: str,
        *,
        completed: str,
        failed: str,
        write: Callable[[], None],
    ) -> None:
        try:
            write()
        except Exception as exc:
            logger.error(
                "roster_dual_write_failed",
                extra={
                    "school_id": school_id,
                    "student_id": student_id,
                    "completed_step": completed,
                    "failed_step": failed,
                },
                exc_info=True,
            )
            raise DualWriteInconsistencyError(
                school_id, student_id, completed, failed
            ) from exc
