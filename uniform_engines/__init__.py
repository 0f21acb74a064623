"""
Module: uniform_engines
Responsibility:
    Package entrypoint that re-exports the public symbols of the pure
    calculation engines.  This is the import surface used by the kernel
    services and selectors.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import uniform_kernel.domain (and sibling engine modules).
    MUST NOT import uniform_kernel.services or uniform_kernel.selectors.

Invariants enforced:
    - Purity: engines never read the clock.  ``generatedAt`` and similar
      timestamps are stamped by the services that persist engine output.
    - Determinism: identical inputs always produce identical outputs.

Usage:
    from uniform_engines import compute_deficits, summarize_student_uniforms
"""

from uniform_engines.deficits import (
    AffectedStudent,
    DeficitComputation,
    DeficitDetail,
    RequirementProgress,
    RequirementStatus,
    RosterProgress,
    SizeRequest,
    SizeRequestStudent,
    StudentDeficit,
    UniformDeficit,
    compute_deficits,
    compute_student_deficit,
    student_requirement_status,
    summarize_student_uniforms,
)
from uniform_engines.tracer import compute_input_fingerprint, traced_engine

__all__ = [
    "AffectedStudent",
    "DeficitComputation",
    "DeficitDetail",
    "RequirementProgress",
    "RequirementStatus",
    "RosterProgress",
    "SizeRequest",
    "SizeRequestStudent",
    "StudentDeficit",
    "UniformDeficit",
    "compute_deficits",
    "compute_input_fingerprint",
    "compute_student_deficit",
    "student_requirement_status",
    "summarize_student_uniforms",
    "traced_engine",
]
