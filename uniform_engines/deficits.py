"""
Module: uniform_engines.deficits
Responsibility:
    The Deficit Engine.  Given a school's uniform policy and its roster,
    compute per-uniform and per-student deficits and the unfulfilled size
    requests recorded in the students' receipt logs.  Also provides the
    per-student requirement status and roster progress views that are
    derived from the same policy x log matching.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import uniform_kernel/domain.

Invariants enforced:
    - Policies are grouped by (uniform_id, level, gender); the first entry
      per key wins.
    - ``deficit = max(0, required - received)``; no aggregate ever carries a
      total deficit <= 0.
    - Size-request entries contribute 0 to received quantities.
    - Determinism: identical inputs give identical output.  No clock access.

Failure modes:
    - None.  Malformed mappings are defaulted (absent numbers -> 0, absent
      collections -> empty) by ``Policy.coerce`` / ``Student.coerce``.

Usage:
    from uniform_engines.deficits import compute_deficits

    result = compute_deficits(school.uniform_policy, students)
    result.students_with_deficits
    [d.to_document() for d in result.uniform_deficits]
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from uniform_engines.tracer import traced_engine
from uniform_kernel.domain.policy import group_policies
from uniform_kernel.domain.values import LogEntry, Policy, Student
from uniform_kernel.logging_config import get_logger

logger = get_logger("engines.deficits")

PolicyInput = Policy | Mapping[str, Any]
StudentInput = Student | Mapping[str, Any]


# ---------------------------------------------------------------------------
# Output types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AffectedStudent:
    """A student short of one uniform, as listed under a uniform deficit."""

    student_id: str
    student_name: str
    deficit: int

    def to_document(self) -> dict[str, Any]:
        return {
            "studentId": self.student_id,
            "studentName": self.student_name,
            "deficit": self.deficit,
        }


@dataclass(frozen=True)
class UniformDeficit:
    """Aggregate shortfall of one uniform for one (level, gender) group."""

    uniform_id: str
    uniform_name: str
    uniform_type: str
    level: str
    gender: str
    total_deficit: int
    students_affected: tuple[AffectedStudent, ...]

    def to_document(self) -> dict[str, Any]:
        return {
            "uniformId": self.uniform_id,
            "uniformName": self.uniform_name,
            "uniformType": self.uniform_type,
            "level": self.level,
            "gender": self.gender,
            "totalDeficit": self.total_deficit,
            "studentsAffected": [s.to_document() for s in self.students_affected],
        }


@dataclass(frozen=True)
class SizeRequestStudent:
    student_id: str
    student_name: str
    requested_at: str | None

    def to_document(self) -> dict[str, Any]:
        return {
            "studentId": self.student_id,
            "studentName": self.student_name,
            "requestedAt": self.requested_at,
        }


@dataclass(frozen=True)
class SizeRequest:
    """Students waiting on one (uniform, size) that could not be issued."""

    uniform_id: str
    uniform_name: str
    size_wanted: str
    students: tuple[SizeRequestStudent, ...]

    def to_document(self) -> dict[str, Any]:
        return {
            "uniformId": self.uniform_id,
            "uniformName": self.uniform_name,
            "sizeWanted": self.size_wanted,
            "students": [s.to_document() for s in self.students],
        }


@dataclass(frozen=True)
class DeficitDetail:
    """Required / received / deficit for one uniform of one student."""

    uniform_id: str
    uniform_name: str
    uniform_type: str
    required: int
    received: int
    deficit: int

    def to_document(self) -> dict[str, Any]:
        return {
            "uniformId": self.uniform_id,
            "uniformName": self.uniform_name,
            "uniformType": self.uniform_type,
            "required": self.required,
            "received": self.received,
            "deficit": self.deficit,
        }


@dataclass(frozen=True)
class StudentDeficit:
    """Per-student deficit breakdown.  Only uniforms with a deficit appear."""

    student_id: str
    student_name: str
    student_form: str
    student_level: str
    student_gender: str
    total_deficit: int
    deficit_details: tuple[DeficitDetail, ...]

    @property
    def has_deficit(self) -> bool:
        return self.total_deficit > 0

    def to_document(self) -> dict[str, Any]:
        return {
            "studentId": self.student_id,
            "studentName": self.student_name,
            "studentForm": self.student_form,
            "studentLevel": self.student_level,
            "studentGender": self.student_gender,
            "totalDeficit": self.total_deficit,
            "deficitDetails": [d.to_document() for d in self.deficit_details],
        }


@dataclass(frozen=True)
class DeficitComputation:
    """Full engine output for one roster."""

    uniform_deficits: tuple[UniformDeficit, ...]
    size_requests: tuple[SizeRequest, ...]
    student_deficits: tuple[StudentDeficit, ...]
    total_students: int
    students_with_deficits: int

    def to_document(self) -> dict[str, Any]:
        """The aggregate part of a school report (no ids or timestamps)."""
        return {
            "uniformDeficits": [d.to_document() for d in self.uniform_deficits],
            "sizeRequests": [r.to_document() for r in self.size_requests],
            "totalStudents": self.total_students,
            "studentsWithDeficits": self.students_with_deficits,
        }


# ---------------------------------------------------------------------------
# Internals
# ---------------------------------------------------------------------------


class _UniformAccumulator:
    def __init__(self, policy: Policy):
        self.policy = policy
        self.total = 0
        self.students: list[AffectedStudent] = []

    def freeze(self) -> UniformDeficit:
        p = self.policy
        return UniformDeficit(
            uniform_id=p.uniform_id,
            uniform_name=p.uniform_name,
            uniform_type=p.uniform_type,
            level=p.level,
            gender=p.gender,
            total_deficit=self.total,
            students_affected=tuple(self.students),
        )


class _SizeRequestAccumulator:
    def __init__(self, policy: Policy, size_wanted: str):
        self.policy = policy
        self.size_wanted = size_wanted
        self.students: list[SizeRequestStudent] = []
        self.seen: set[str] = set()

    def add(self, student: Student, entry: LogEntry) -> None:
        if student.id in self.seen:
            return
        self.seen.add(student.id)
        self.students.append(
            SizeRequestStudent(
                student_id=student.id,
                student_name=student.name,
                requested_at=entry.logged_at,
            )
        )

    def freeze(self) -> SizeRequest:
        return SizeRequest(
            uniform_id=self.policy.uniform_id,
            uniform_name=self.policy.uniform_name,
            size_wanted=self.size_wanted,
            students=tuple(self.students),
        )


def _canonical_policies(policies: Iterable[PolicyInput]) -> tuple[Policy, ...]:
    return tuple(group_policies(Policy.coerce(p) for p in policies or ()).values())


def _student_deficit(student: Student, policies: Iterable[Policy]) -> StudentDeficit:
    details: list[DeficitDetail] = []
    for policy in policies:
        if not policy.applies_to(student.level, student.gender):
            continue
        received = student.received_quantity(policy.uniform_id)
        deficit = max(0, policy.quantity_per_student - received)
        if deficit > 0:
            details.append(
                DeficitDetail(
                    uniform_id=policy.uniform_id,
                    uniform_name=policy.uniform_name,
                    uniform_type=policy.uniform_type,
                    required=policy.quantity_per_student,
                    received=received,
                    deficit=deficit,
                )
            )
    return StudentDeficit(
        student_id=student.id,
        student_name=student.name,
        student_form=student.form,
        student_level=student.level,
        student_gender=student.gender,
        total_deficit=sum(d.deficit for d in details),
        deficit_details=tuple(details),
    )


# ---------------------------------------------------------------------------
# Engine entry points
# ---------------------------------------------------------------------------


@traced_engine("deficits", "1.0", fingerprint_fields=("policies", "students"))
def compute_deficits(
    policies: Iterable[PolicyInput],
    students: Iterable[StudentInput],
) -> DeficitComputation:
    """
    Compute uniform deficits and size requests for a roster.

    Uniform deficits are ordered by total deficit, largest first; size
    requests by uniform name.  Both sorts are stable, so ties keep the
    order in which they were first encountered.
    """
    canonical = _canonical_policies(policies)
    roster = [Student.coerce(s) for s in students or ()]

    uniform_acc: dict[tuple[str, str, str], _UniformAccumulator] = {}
    size_acc: dict[tuple[str, str], _SizeRequestAccumulator] = {}
    student_deficits: list[StudentDeficit] = []

    for student in roster:
        for policy in canonical:
            if not policy.applies_to(student.level, student.gender):
                continue
            entries = student.entries_for(policy.uniform_id)
            received = sum(e.quantity_received for e in entries)
            deficit = max(0, policy.quantity_per_student - received)
            if deficit > 0:
                acc = uniform_acc.get(policy.group_key)
                if acc is None:
                    acc = uniform_acc[policy.group_key] = _UniformAccumulator(policy)
                acc.total += deficit
                acc.students.append(
                    AffectedStudent(student.id, student.name, deficit)
                )

            for entry in entries:
                if not entry.is_size_request:
                    continue
                key = (policy.uniform_id, entry.size_wanted or "")
                request = size_acc.get(key)
                if request is None:
                    request = size_acc[key] = _SizeRequestAccumulator(
                        policy, entry.size_wanted or ""
                    )
                request.add(student, entry)

        student_deficit = _student_deficit(student, canonical)
        if student_deficit.has_deficit:
            student_deficits.append(student_deficit)

    uniform_deficits = sorted(
        (acc.freeze() for acc in uniform_acc.values()),
        key=lambda d: d.total_deficit,
        reverse=True,
    )
    size_requests = sorted(
        (acc.freeze() for acc in size_acc.values()),
        key=lambda r: r.uniform_name,
    )

    return DeficitComputation(
        uniform_deficits=tuple(uniform_deficits),
        size_requests=tuple(size_requests),
        student_deficits=tuple(student_deficits),
        total_students=len(roster),
        students_with_deficits=len(student_deficits),
    )


@traced_engine("student_deficit", "1.0", fingerprint_fields=("policies", "student"))
def compute_student_deficit(
    policies: Iterable[PolicyInput],
    student: StudentInput,
) -> StudentDeficit:
    """Per-student mode: full required/received/deficit details for one student."""
    return _student_deficit(Student.coerce(student), _canonical_policies(policies))


# ---------------------------------------------------------------------------
# Requirement status views
# ---------------------------------------------------------------------------


class RequirementStatus(str, Enum):
    COMPLETE = "complete"
    PARTIAL = "partial"
    PENDING = "pending"


@dataclass(frozen=True)
class RequirementProgress:
    """One policy's progress for one student."""

    policy: Policy
    received: int
    log_entries: tuple[LogEntry, ...]
    pending_requests: tuple[LogEntry, ...]

    @property
    def required(self) -> int:
        return self.policy.quantity_per_student

    @property
    def remaining(self) -> int:
        return max(0, self.required - self.received)

    @property
    def status(self) -> RequirementStatus:
        if self.received >= self.required:
            return RequirementStatus.COMPLETE
        if self.received > 0:
            return RequirementStatus.PARTIAL
        return RequirementStatus.PENDING

    def to_document(self) -> dict[str, Any]:
        return {
            "uniformId": self.policy.uniform_id,
            "uniformName": self.policy.uniform_name,
            "uniformType": self.policy.uniform_type,
            "required": self.required,
            "received": self.received,
            "remaining": self.remaining,
            "status": self.status.value,
            "logEntries": [e.to_document() for e in self.log_entries],
            "pendingRequests": [e.to_document() for e in self.pending_requests],
        }


def student_requirement_status(
    policies: Iterable[PolicyInput],
    student: StudentInput,
) -> tuple[RequirementProgress, ...]:
    """Progress against every policy that applies to ``student``."""
    s = Student.coerce(student)
    progress = []
    for policy in _canonical_policies(policies):
        if not policy.applies_to(s.level, s.gender):
            continue
        entries = s.entries_for(policy.uniform_id)
        progress.append(
            RequirementProgress(
                policy=policy,
                received=sum(e.quantity_received for e in entries),
                log_entries=entries,
                pending_requests=tuple(e for e in entries if e.is_size_request),
            )
        )
    return tuple(progress)


@dataclass(frozen=True)
class RosterProgress:
    """Totals shown against a student in the roster list."""

    total_required: int
    total_received: int
    percentage: float
    missing_count: int

    def to_document(self) -> dict[str, Any]:
        return {
            "totalRequired": self.total_required,
            "totalReceived": self.total_received,
            "percentage": self.percentage,
            "missingCount": self.missing_count,
        }


def summarize_student_uniforms(
    policies: Iterable[PolicyInput],
    student: StudentInput,
) -> RosterProgress:
    """
    Overall progress for one student.

    ``percentage`` is capped at 100; received items beyond a requirement
    still count towards ``total_received``.
    """
    progress = student_requirement_status(policies, student)
    total_required = sum(p.required for p in progress)
    total_received = sum(p.received for p in progress)
    if total_required > 0:
        percentage = min(100.0, total_received / total_required * 100)
    else:
        percentage = 0.0
    return RosterProgress(
        total_required=total_required,
        total_received=total_received,
        percentage=percentage,
        missing_count=max(0, total_required - total_received),
    )
