"""
Pure domain layer.

This module contains immutable value objects and pure helpers with NO
dependencies on:
- ORM (SQLAlchemy)
- Database
- I/O

Time is only available through the injectable Clock.
"""

from uniform_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from uniform_kernel.domain.values import (
    Batch,
    Distribution,
    DistributionLine,
    LogEntry,
    Policy,
    ReceivedEntry,
    School,
    SchoolStatus,
    SizeRequestEntry,
    SizeStock,
    Student,
    Uniform,
    Variant,
    log_entry_from_document,
)

__all__ = [
    "Batch",
    "Clock",
    "DeterministicClock",
    "Distribution",
    "DistributionLine",
    "LogEntry",
    "Policy",
    "ReceivedEntry",
    "School",
    "SchoolStatus",
    "SizeRequestEntry",
    "SizeStock",
    "Student",
    "SystemClock",
    "Uniform",
    "Variant",
    "log_entry_from_document",
]
