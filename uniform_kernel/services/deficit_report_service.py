"""
DeficitReportStore -- persisted snapshots of Deficit Engine output.

Responsibility:
    Run the Deficit Engine over a school's roster and store the result as
    one school-wide report document and one individual report per student
    with a deficit.  Read the stored reports back, list them, refresh them,
    and clean them up.

Architecture position:
    Kernel > Services -- imperative shell around ``uniform_engines.deficits``.

Document layout (collection ``deficitReports``):
    school_{schoolId}          type "school"
    {schoolId}_{studentId}     type "individual"

Invariants enforced:
    - Reports are fully replaced on every write, never merged.
    - All report writes of one generation commit in a single store
      transaction, including the deletion of stale individual reports.
      A reader sees either the old set or the new set, never an empty one.
    - ``generatedAt`` is stamped here from the injected clock; the engine
      itself is time-free.

Orphans:
    A student who no longer has a deficit has no new individual report.
    With ``prune_orphans=True`` (the default) ``generate_and_store`` deletes
    that student's old report in the same transaction.  With
    ``prune_orphans=False`` the old report is left in place and only
    ``refresh`` or ``cleanup`` removes it.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from uniform_engines.deficits import (
    DeficitComputation,
    PolicyInput,
    StudentInput,
    compute_deficits,
)
from uniform_kernel.db.document_store import (
    DEFICIT_REPORTS,
    SCHOOLS,
    STUDENTS,
    DocumentStore,
    FieldFilter,
    Transaction,
)
from uniform_kernel.domain.clock import Clock
from uniform_kernel.domain.values import School
from uniform_kernel.exceptions import SchoolNotFoundError
from uniform_kernel.logging_config import get_logger
from uniform_kernel.services.base import BaseService

logger = get_logger("services.deficit_reports")

SCHOOL_REPORT = "school"
INDIVIDUAL_REPORT = "individual"


def school_report_id(school_id: str) -> str:
    return f"school_{school_id}"


def student_report_id(school_id: str, student_id: str) -> str:
    return f"{school_id}_{student_id}"


@dataclass(frozen=True)
class GeneratedReports:
    """What one generation wrote."""

    school_report: dict
    student_reports: tuple[dict, ...]
    pruned_report_ids: tuple[str, ...] = ()


def build_school_report(
    school_id: str,
    school_name: str,
    computation: DeficitComputation,
    generated_at: str,
) -> dict:
    report = {"schoolId": school_id, "schoolName": school_name}
    report.update(computation.to_document())
    report["generatedAt"] = generated_at
    report["type"] = SCHOOL_REPORT
    return report


def build_student_reports(
    school_id: str,
    computation: DeficitComputation,
    generated_at: str,
) -> list[dict]:
    reports = []
    for student_deficit in computation.student_deficits:
        report = student_deficit.to_document()
        report["schoolId"] = school_id
        report["generatedAt"] = generated_at
        report["type"] = INDIVIDUAL_REPORT
        reports.append(report)
    return reports


class DeficitReportStore(BaseService):
    """
    Generates, stores, and reads deficit reports.

    Contract:
        Write methods commit in one store transaction each.  Read methods
        return stored documents (with ``id``) or None; they never compute.
    """

    def __init__(
        self,
        store: DocumentStore,
        clock: Clock | None = None,
        *,
        prune_orphans: bool = True,
    ):
        super().__init__(store, clock)
        self.prune_orphans = prune_orphans

    # -- writes ----------------------------------------------------------

    def generate_and_store(
        self,
        school_id: str,
        policies: Iterable[PolicyInput],
        students: Iterable[StudentInput],
        school_name: str = "",
    ) -> GeneratedReports:
        """Compute reports for the roster and store them (replace semantics)."""
        return self._write(
            school_id, policies, students, school_name, prune=self.prune_orphans
        )

    def refresh(
        self,
        school_id: str,
        policies: Iterable[PolicyInput],
        students: Iterable[StudentInput],
        school_name: str = "",
    ) -> GeneratedReports:
        """
        Regenerate every report for a school.

        New reports are written and all stale ones deleted in one
        transaction, so no orphaned individual report survives.
        """
        return self._write(school_id, policies, students, school_name, prune=True)

    def refresh_from_store(self, school_id: str) -> GeneratedReports:
        """Refresh using the school's stored policy and current roster."""
        doc = self.store.get(SCHOOLS, school_id)
        if doc is None:
            raise SchoolNotFoundError(school_id)
        school = School.from_document(doc)
        students = self.store.query(
            STUDENTS, [FieldFilter("schoolId", "==", school_id)]
        )
        return self.refresh(school_id, school.uniform_policy, students, school.name)

    def cleanup(self, school_id: str) -> int:
        """Delete every report for a school. Returns how many were deleted."""
        doomed = [school_report_id(school_id)] + [
            r["id"] for r in self.list_student_reports(school_id)
        ]
        existing = {d["id"] for d in self.store.get_many(DEFICIT_REPORTS, doomed)}

        def apply(txn: Transaction) -> None:
            for doc_id in doomed:
                txn.delete(DEFICIT_REPORTS, doc_id)

        self.store.run_transaction(apply)
        logger.info(
            "deficit_reports_cleaned",
            extra={"school_id": school_id, "deleted": len(existing)},
        )
        return len(existing)

    def _write(
        self,
        school_id: str,
        policies: Iterable[PolicyInput],
        students: Iterable[StudentInput],
        school_name: str,
        *,
        prune: bool,
    ) -> GeneratedReports:
        computation = compute_deficits(list(policies or ()), list(students or ()))
        generated_at = self.clock.isoformat()
        school_report = build_school_report(
            school_id, school_name, computation, generated_at
        )
        student_reports = build_student_reports(school_id, computation, generated_at)

        keep = {student_report_id(school_id, r["studentId"]) for r in student_reports}
        pruned: tuple[str, ...] = ()
        if prune:
            pruned = tuple(
                r["id"]
                for r in self.list_student_reports(school_id)
                if r["id"] not in keep
            )

        def apply(txn: Transaction) -> None:
            txn.set(DEFICIT_REPORTS, school_report_id(school_id), school_report)
            for report in student_reports:
                txn.set(
                    DEFICIT_REPORTS,
                    student_report_id(school_id, report["studentId"]),
                    report,
                )
            for doc_id in pruned:
                txn.delete(DEFICIT_REPORTS, doc_id)

        self.store.run_transaction(apply)
        logger.info(
            "deficit_reports_stored",
            extra={
                "school_id": school_id,
                "total_students": computation.total_students,
                "students_with_deficits": computation.students_with_deficits,
                "uniform_deficits": len(computation.uniform_deficits),
                "size_requests": len(computation.size_requests),
                "pruned": len(pruned),
            },
        )
        return GeneratedReports(
            school_report=school_report,
            student_reports=tuple(student_reports),
            pruned_report_ids=pruned,
        )

    # -- reads -----------------------------------------------------------

    def get_school_report(self, school_id: str) -> dict | None:
        return self.store.get(DEFICIT_REPORTS, school_report_id(school_id))

    def get_student_report(self, school_id: str, student_id: str) -> dict | None:
        return self.store.get(DEFICIT_REPORTS, student_report_id(school_id, student_id))

    def list_student_reports(self, school_id: str) -> list[dict]:
        """Individual reports for a school, largest total deficit first."""
        return self.store.query(
            DEFICIT_REPORTS,
            [
                FieldFilter("schoolId", "==", school_id),
                FieldFilter("type", "==", INDIVIDUAL_REPORT),
            ],
            order_by="totalDeficit",
            descending=True,
        )
