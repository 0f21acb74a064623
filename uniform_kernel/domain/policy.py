"""
Pure helpers over a school's uniform policy.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  The school service
    reads the policy list, calls these helpers, and writes the result back.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from uniform_kernel.domain.values import Policy


def group_policies(policies: Iterable[Policy]) -> dict[tuple[str, str, str], Policy]:
    """
    Index policies by (uniform_id, level, gender).

    The first entry for a key wins; later duplicates are ignored.  Dict
    insertion order keeps the grouped policies in first-seen order.
    """
    grouped: dict[tuple[str, str, str], Policy] = {}
    for policy in policies:
        if policy.group_key not in grouped:
            grouped[policy.group_key] = policy
    return grouped


def policies_for(
    policies: Iterable[Policy], level: str, gender: str
) -> tuple[Policy, ...]:
    """Canonical policies that apply to a (level, gender) group."""
    return tuple(
        p for p in group_policies(policies).values() if p.applies_to(level, gender)
    )


def next_policy_id(existing_ids: Iterable[str | None], now_millis: int) -> str:
    """
    Timestamp-derived policy id, bumped past any id already in use.

    Ids stay monotonic when several policies are added within the same
    millisecond.
    """
    taken = {i for i in existing_ids if i}
    candidate = now_millis
    for policy_id in taken:
        if policy_id.isdigit():
            candidate = max(candidate, int(policy_id) + 1)
    while str(candidate) in taken:
        candidate += 1
    return str(candidate)


def find_policy_index(policies: Sequence[Policy], target: Policy) -> int | None:
    """
    Locate ``target`` in ``policies``.

    Matches by id when both sides carry one.  Otherwise falls back to the
    (uniform_id, level, gender) triple, which is how entries written before
    ids existed are addressed.
    """
    for index, policy in enumerate(policies):
        if target.id and policy.id:
            if policy.id == target.id:
                return index
        elif policy.group_key == target.group_key:
            return index
    return None


def remove_policy(policies: Sequence[Policy], target: Policy) -> tuple[Policy, ...] | None:
    """Policies without ``target``, or None when nothing matched."""
    index = find_policy_index(policies, target)
    if index is None:
        return None
    return tuple(policies[:index]) + tuple(policies[index + 1:])
