"""
Pure helpers for per-requirement distribution records.

A student's ``uniformDistribution`` maps a requirement key such as
``"BOYS-0"`` (gender, then the requirement's index within that gender's
list) to a ``Distribution``.  ``totalReceived`` is derived from the lines on
every change and is never set directly.
"""

from __future__ import annotations

from collections.abc import Mapping

from uniform_kernel.domain.values import Distribution, DistributionLine


def requirement_key(gender: str, index: int) -> str:
    return f"{gender.upper()}-{index}"


def add_line(
    distribution: Mapping[str, Distribution],
    key: str,
    line: DistributionLine,
) -> dict[str, Distribution]:
    updated = dict(distribution)
    current = updated.get(key, Distribution())
    updated[key] = Distribution(lines=current.lines + (line,))
    return updated


def remove_line(
    distribution: Mapping[str, Distribution],
    key: str,
    index: int,
) -> dict[str, Distribution] | None:
    """Distribution with line ``index`` removed, or None if out of range."""
    current = distribution.get(key)
    if current is None or not 0 <= index < len(current.lines):
        return None
    updated = dict(distribution)
    lines = current.lines[:index] + current.lines[index + 1:]
    updated[key] = Distribution(lines=lines)
    return updated
