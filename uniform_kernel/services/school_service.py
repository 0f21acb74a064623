"""
SchoolService -- schools and their uniform policy.

Responsibility:
    Create schools, change their status, and add or remove uniform policy
    entries.  Policy edits are last-writer-wins document writes.

Architecture position:
    Kernel > Services.  Pure policy list manipulation lives in
    ``uniform_kernel.domain.policy``.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from uniform_kernel.db.document_store import SCHOOLS, DocumentStore
from uniform_kernel.domain.clock import Clock
from uniform_kernel.domain.policy import next_policy_id, policies_for, remove_policy
from uniform_kernel.domain.values import Policy, School, SchoolStatus
from uniform_kernel.exceptions import (
    PolicyNotFoundError,
    SchoolNotFoundError,
    ValidationError,
)
from uniform_kernel.logging_config import get_logger
from uniform_kernel.services.base import BaseService

logger = get_logger("services.school")


class SchoolService(BaseService):
    """School documents and their ``uniformPolicy`` list."""

    def __init__(self, store: DocumentStore, clock: Clock | None = None):
        super().__init__(store, clock)

    def create_school(self, name: str, **fields: Any) -> School:
        if not isinstance(name, str) or not name.strip():
            raise ValidationError("name", "school name is required")
        doc = dict(fields)
        doc.update(
            {
                "name": name.strip(),
                "status": SchoolStatus.ACTIVE.value,
                "uniformPolicy": [],
                "students": [],
                "createdAt": self.clock.isoformat(),
            }
        )
        school_id = self.store.add(SCHOOLS, doc)
        logger.info("school_created", extra={"school_id": school_id})
        return School.from_document({**doc, "id": school_id})

    def get_school(self, school_id: str) -> School:
        return School.from_document(self._load(school_id))

    def set_status(self, school_id: str, status: SchoolStatus | str) -> School:
        try:
            status = SchoolStatus(status)
        except ValueError:
            raise ValidationError("status", f"unknown school status {status!r}") from None
        self._load(school_id)
        self.store.update(
            SCHOOLS,
            school_id,
            {"status": status.value, "updatedAt": self.clock.isoformat()},
        )
        logger.info(
            "school_status_changed",
            extra={"school_id": school_id, "status": status.value},
        )
        return self.get_school(school_id)

    def add_policy(self, school_id: str, policy: Policy | Mapping[str, Any]) -> Policy:
        """
        Append a policy entry with a generated id.

        The id is derived from the clock in milliseconds and bumped past any
        id already on the school.
        """
        entry = Policy.coerce(policy)
        if not entry.uniform_id:
            raise ValidationError("uniform_id", "uniform is required")
        if not entry.level or not entry.gender:
            raise ValidationError("level", "level and gender are required")
        if entry.quantity_per_student < 1:
            raise ValidationError("quantity_per_student", "must be at least 1")

        school = self.get_school(school_id)
        now = self.clock.now_utc()
        entry = Policy(
            uniform_id=entry.uniform_id,
            uniform_name=entry.uniform_name,
            uniform_type=entry.uniform_type,
            level=entry.level,
            gender=entry.gender,
            quantity_per_student=entry.quantity_per_student,
            is_required=entry.is_required,
            id=next_policy_id(
                (p.id for p in school.uniform_policy), int(now.timestamp() * 1000)
            ),
            created_at=now.isoformat(),
        )
        policies = [p.to_document() for p in school.uniform_policy]
        policies.append(entry.to_document())
        self.store.update(SCHOOLS, school_id, {"uniformPolicy": policies})
        logger.info(
            "policy_added",
            extra={
                "school_id": school_id,
                "policy_id": entry.id,
                "uniform_id": entry.uniform_id,
            },
        )
        return entry

    def remove_policy(self, school_id: str, policy: Policy | Mapping[str, Any]) -> None:
        target = Policy.coerce(policy)
        school = self.get_school(school_id)
        remaining = remove_policy(school.uniform_policy, target)
        if remaining is None:
            raise PolicyNotFoundError(
                school_id, target.id or "/".join(target.group_key)
            )
        self.store.update(
            SCHOOLS, school_id, {"uniformPolicy": [p.to_document() for p in remaining]}
        )
        logger.info(
            "policy_removed",
            extra={"school_id": school_id, "policy_id": target.id},
        )

    def policies_for(self, school_id: str, level: str, gender: str) -> tuple[Policy, ...]:
        return policies_for(self.get_school(school_id).uniform_policy, level, gender)

    def _load(self, school_id: str) -> dict:
        doc = self.store.get(SCHOOLS, school_id)
        if doc is None:
            raise SchoolNotFoundError(school_id)
        return doc
