"""
DeficitSelector -- read path for deficit reports and requirement progress.

Prefers the stored report snapshot.  When none exists, the report is
computed live from the school's current policy and roster; the live result
is returned marked ``live=True`` and is never written back.
"""

from __future__ import annotations

from dataclasses import dataclass

from uniform_engines.deficits import (
    RequirementProgress,
    RosterProgress,
    compute_deficits,
    compute_student_deficit,
    student_requirement_status,
    summarize_student_uniforms,
)
from uniform_kernel.db.document_store import (
    DEFICIT_REPORTS,
    SCHOOLS,
    STUDENTS,
    FieldFilter,
)
from uniform_kernel.domain.values import School, Student
from uniform_kernel.exceptions import SchoolNotFoundError, StudentNotFoundError
from uniform_kernel.logging_config import get_logger
from uniform_kernel.selectors.base import BaseSelector
from uniform_kernel.services.deficit_report_service import (
    INDIVIDUAL_REPORT,
    SCHOOL_REPORT,
    school_report_id,
    student_report_id,
)

logger = get_logger("selectors.deficits")


@dataclass(frozen=True)
class ReportView:
    """A report document and whether it was computed on the spot."""

    report: dict
    live: bool


class DeficitSelector(BaseSelector):
    """Deficit reports and per-student progress for one school."""

    def school_report(self, school_id: str) -> ReportView:
        stored = self.store.get(DEFICIT_REPORTS, school_report_id(school_id))
        if stored is not None:
            return ReportView(report=stored, live=False)

        school = self._school(school_id)
        computation = compute_deficits(school.uniform_policy, self._roster(school_id))
        report = {"schoolId": school_id, "schoolName": school.name}
        report.update(computation.to_document())
        report["generatedAt"] = None
        report["type"] = SCHOOL_REPORT
        logger.debug("school_report_computed_live", extra={"school_id": school_id})
        return ReportView(report=report, live=True)

    def student_report(self, school_id: str, student_id: str) -> ReportView:
        stored = self.store.get(DEFICIT_REPORTS, student_report_id(school_id, student_id))
        if stored is not None:
            return ReportView(report=stored, live=False)

        school = self._school(school_id)
        deficit = compute_student_deficit(
            school.uniform_policy, self._student(student_id)
        )
        report = deficit.to_document()
        report.update({"schoolId": school_id, "generatedAt": None, "type": INDIVIDUAL_REPORT})
        return ReportView(report=report, live=True)

    def student_requirements(
        self, school_id: str, student_id: str
    ) -> tuple[RequirementProgress, ...]:
        return student_requirement_status(
            self._school(school_id).uniform_policy, self._student(student_id)
        )

    def roster_progress(self, school_id: str) -> dict[str, RosterProgress]:
        """Progress per student id, in roster order."""
        policies = self._school(school_id).uniform_policy
        return {
            student.id: summarize_student_uniforms(policies, student)
            for student in self._roster(school_id)
        }

    def _school(self, school_id: str) -> School:
        doc = self.store.get(SCHOOLS, school_id)
        if doc is None:
            raise SchoolNotFoundError(school_id)
        return School.from_document(doc)

    def _student(self, student_id: str) -> Student:
        doc = self.store.get(STUDENTS, student_id)
        if doc is None:
            raise StudentNotFoundError(student_id)
        return Student.from_document(doc)

    def _roster(self, school_id: str) -> list[Student]:
        return [
            Student.from_document(doc)
            for doc in self.store.query(
                STUDENTS, [FieldFilter("schoolId", "==", school_id)]
            )
        ]
