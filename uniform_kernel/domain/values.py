"""
Value objects for the uniform kernel.

Responsibility:
    Immutable, typed views of the documents kept in the store: schools and
    their uniform policy, students and their receipt logs, distributions,
    and batch stock.  Each value converts to and from the camelCase document
    shape used by the store.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - ``from_document`` never raises on malformed input: absent numeric
      fields become 0, absent collections become empty, absent strings
      become "".
    - A log entry is either a ``ReceivedEntry`` (size received, quantity
      counted) or a ``SizeRequestEntry`` (size wanted, contributes 0).
    - ``Distribution.total_received`` is always the sum of its lines.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any


def _as_int(value: Any) -> int:
    """Coerce a stored numeric field to int, defaulting to 0."""
    if isinstance(value, bool):
        return int(value)
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        return 0


def _as_str(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


def _as_optional_str(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return str(value)


def _as_list(value: Any) -> list:
    if isinstance(value, (list, tuple)):
        return list(value)
    return []


def _as_mapping(value: Any) -> Mapping:
    if isinstance(value, Mapping):
        return value
    return {}


class SchoolStatus(str, Enum):
    """Lifecycle status of a school."""

    ACTIVE = "active"
    INACTIVE = "inactive"


# ---------------------------------------------------------------------------
# Policy
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Policy:
    """
    A uniform requirement rule for one (level, gender) group.

    Contract:
        ``quantity_per_student`` is validated (>= 1) when a policy is added
        through the school service; values read back from storage are
        taken as-is so that legacy documents still load.
    """

    uniform_id: str
    level: str
    gender: str
    quantity_per_student: int
    uniform_name: str = ""
    uniform_type: str = ""
    is_required: bool = True
    id: str | None = None
    created_at: str | None = None

    @property
    def group_key(self) -> tuple[str, str, str]:
        """Key used to deduplicate policies: (uniform_id, level, gender)."""
        return (self.uniform_id, self.level, self.gender)

    def applies_to(self, level: str, gender: str) -> bool:
        return self.level == level and self.gender == gender

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> Policy:
        return cls(
            id=_as_optional_str(doc.get("id")),
            uniform_id=_as_str(doc.get("uniformId")),
            uniform_name=_as_str(doc.get("uniformName")),
            uniform_type=_as_str(doc.get("uniformType")),
            level=_as_str(doc.get("level")),
            gender=_as_str(doc.get("gender")),
            quantity_per_student=_as_int(doc.get("quantityPerStudent")),
            is_required=bool(doc.get("isRequired", True)),
            created_at=_as_optional_str(doc.get("createdAt")),
        )

    @classmethod
    def coerce(cls, value: Policy | Mapping[str, Any]) -> Policy:
        if isinstance(value, Policy):
            return value
        return cls.from_document(_as_mapping(value))

    def to_document(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "uniformId": self.uniform_id,
            "uniformName": self.uniform_name,
            "uniformType": self.uniform_type,
            "level": self.level,
            "gender": self.gender,
            "quantityPerStudent": self.quantity_per_student,
            "isRequired": self.is_required,
            "createdAt": self.created_at,
        }


@dataclass(frozen=True)
class Uniform:
    """A catalogue item from the ``uniforms`` collection."""

    id: str
    name: str = ""
    type: str = ""

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> Uniform:
        doc = _as_mapping(doc)
        return cls(
            id=_as_str(doc.get("id")),
            name=_as_str(doc.get("name")),
            type=_as_str(doc.get("type") or doc.get("category")),
        )

    @classmethod
    def coerce(cls, value: Uniform | Policy | Mapping[str, Any]) -> Uniform:
        if isinstance(value, Uniform):
            return value
        if isinstance(value, Policy):
            return cls(value.uniform_id, value.uniform_name, value.uniform_type)
        return cls.from_document(_as_mapping(value))


# ---------------------------------------------------------------------------
# Log entries
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LogEntry:
    """
    Base for an entry in a student's uniform receipt log.

    Use ``ReceivedEntry`` or ``SizeRequestEntry``; the base type only holds
    the fields common to both.
    """

    uniform_id: str
    uniform_name: str
    uniform_type: str
    logged_at: str | None
    logged_by: str | None

    @property
    def quantity_received(self) -> int:
        return 0

    @property
    def size_received(self) -> str | None:
        return None

    @property
    def size_wanted(self) -> str | None:
        return None

    @property
    def is_size_request(self) -> bool:
        return False

    def to_document(self) -> dict[str, Any]:
        return {
            "uniformId": self.uniform_id,
            "uniformName": self.uniform_name,
            "uniformType": self.uniform_type,
            "quantityReceived": self.quantity_received,
            "sizeReceived": self.size_received,
            "sizeWanted": self.size_wanted,
            "loggedAt": self.logged_at,
            "loggedBy": self.logged_by,
        }


@dataclass(frozen=True)
class ReceivedEntry(LogEntry):
    """Items of a given size handed to the student."""

    quantity: int = 0
    size: str | None = None

    @property
    def quantity_received(self) -> int:
        return self.quantity

    @property
    def size_received(self) -> str | None:
        return self.size


@dataclass(frozen=True)
class SizeRequestEntry(LogEntry):
    """The student needs a size that could not be issued. Counts as 0."""

    wanted: str = ""

    @property
    def size_wanted(self) -> str | None:
        return self.wanted

    @property
    def is_size_request(self) -> bool:
        return True


def log_entry_from_document(doc: Mapping[str, Any]) -> LogEntry:
    """
    Build the typed log entry for a stored log document.

    An entry with ``sizeWanted`` set and no ``sizeReceived`` is an
    unfulfilled size request regardless of any stored quantity.
    """
    doc = _as_mapping(doc)
    common = dict(
        uniform_id=_as_str(doc.get("uniformId")),
        uniform_name=_as_str(doc.get("uniformName")),
        uniform_type=_as_str(doc.get("uniformType")),
        logged_at=_as_optional_str(doc.get("loggedAt")),
        logged_by=_as_optional_str(doc.get("loggedBy")),
    )
    size_received = _as_optional_str(doc.get("sizeReceived"))
    size_wanted = _as_optional_str(doc.get("sizeWanted"))
    if size_wanted is not None and size_received is None:
        return SizeRequestEntry(wanted=size_wanted, **common)
    return ReceivedEntry(
        quantity=_as_int(doc.get("quantityReceived")),
        size=size_received,
        **common,
    )


# ---------------------------------------------------------------------------
# Distributions
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DistributionLine:
    """One handover recorded against a requirement key."""

    size: str
    quantity: int
    received_at: str | None = None
    issued_by: str | None = None
    issued_by_id: str | None = None

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> DistributionLine:
        doc = _as_mapping(doc)
        return cls(
            size=_as_str(doc.get("size")),
            quantity=_as_int(doc.get("quantity")),
            received_at=_as_optional_str(doc.get("receivedAt")),
            issued_by=_as_optional_str(doc.get("issuedBy")),
            issued_by_id=_as_optional_str(doc.get("issuedById")),
        )

    def to_document(self) -> dict[str, Any]:
        return {
            "size": self.size,
            "quantity": self.quantity,
            "receivedAt": self.received_at,
            "issuedBy": self.issued_by,
            "issuedById": self.issued_by_id,
        }


@dataclass(frozen=True)
class Distribution:
    """Distribution lines for one requirement key, e.g. ``"BOYS-0"``."""

    lines: tuple[DistributionLine, ...] = ()

    @property
    def total_received(self) -> int:
        return sum(line.quantity for line in self.lines)

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> Distribution:
        doc = _as_mapping(doc)
        return cls(
            lines=tuple(
                DistributionLine.from_document(d)
                for d in _as_list(doc.get("distributions"))
            )
        )

    def to_document(self) -> dict[str, Any]:
        return {
            "distributions": [line.to_document() for line in self.lines],
            "totalReceived": self.total_received,
        }


# ---------------------------------------------------------------------------
# Students and schools
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Student:
    """A student document with its receipt log."""

    id: str
    name: str
    level: str
    gender: str
    school_id: str = ""
    form: str = ""
    uniform_log: tuple[LogEntry, ...] = ()
    uniform_distribution: Mapping[str, Distribution] = field(default_factory=dict)

    def entries_for(self, uniform_id: str) -> tuple[LogEntry, ...]:
        return tuple(e for e in self.uniform_log if e.uniform_id == uniform_id)

    def received_quantity(self, uniform_id: str) -> int:
        return sum(e.quantity_received for e in self.entries_for(uniform_id))

    def roster_summary(self) -> dict[str, Any]:
        """The denormalized entry kept on the school document."""
        return {
            "id": self.id,
            "name": self.name,
            "form": self.form,
            "level": self.level,
            "gender": self.gender,
        }

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> Student:
        doc = _as_mapping(doc)
        distribution = {
            str(key): Distribution.from_document(value)
            for key, value in _as_mapping(doc.get("uniformDistribution")).items()
        }
        return cls(
            id=_as_str(doc.get("id")),
            school_id=_as_str(doc.get("schoolId")),
            name=_as_str(doc.get("name")),
            form=_as_str(doc.get("form")),
            level=_as_str(doc.get("level")),
            gender=_as_str(doc.get("gender")),
            uniform_log=tuple(
                log_entry_from_document(e) for e in _as_list(doc.get("uniformLog"))
            ),
            uniform_distribution=distribution,
        )

    @classmethod
    def coerce(cls, value: Student | Mapping[str, Any]) -> Student:
        if isinstance(value, Student):
            return value
        return cls.from_document(_as_mapping(value))

    def to_document(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "schoolId": self.school_id,
            "name": self.name,
            "form": self.form,
            "level": self.level,
            "gender": self.gender,
            "uniformLog": [e.to_document() for e in self.uniform_log],
            "uniformDistribution": {
                key: dist.to_document()
                for key, dist in self.uniform_distribution.items()
            },
        }


@dataclass(frozen=True)
class School:
    """A school with its ordered uniform policy."""

    id: str
    name: str
    status: SchoolStatus = SchoolStatus.ACTIVE
    uniform_policy: tuple[Policy, ...] = ()

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> School:
        doc = _as_mapping(doc)
        try:
            status = SchoolStatus(doc.get("status", SchoolStatus.ACTIVE.value))
        except ValueError:
            status = SchoolStatus.INACTIVE
        return cls(
            id=_as_str(doc.get("id")),
            name=_as_str(doc.get("name")),
            status=status,
            uniform_policy=tuple(
                Policy.from_document(p) for p in _as_list(doc.get("uniformPolicy"))
            ),
        )


# ---------------------------------------------------------------------------
# Batch stock
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SizeStock:
    """Quantity on hand for one size of a variant."""

    size: str
    quantity: int
    depleted_at: str | None = None

    def deduct(self, quantity: int, now_iso: str) -> SizeStock:
        """
        Return the size after issuing ``quantity`` items.

        ``depleted_at`` is stamped on the first transition to zero only.
        """
        remaining = self.quantity - quantity
        depleted_at = self.depleted_at
        if remaining == 0 and depleted_at is None:
            depleted_at = now_iso
        return replace(self, quantity=remaining, depleted_at=depleted_at)

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> SizeStock:
        doc = _as_mapping(doc)
        return cls(
            size=_as_str(doc.get("size")),
            quantity=_as_int(doc.get("quantity")),
            depleted_at=_as_optional_str(doc.get("depletedAt")),
        )

    def to_document(self) -> dict[str, Any]:
        doc: dict[str, Any] = {"size": self.size, "quantity": self.quantity}
        if self.depleted_at is not None:
            doc["depletedAt"] = self.depleted_at
        return doc


@dataclass(frozen=True)
class Variant:
    """A (variant type, color) line of a batch, tied to a uniform."""

    id: str
    uniform_id: str
    variant_type: str
    color: str
    price: Decimal = Decimal("0")
    sizes: tuple[SizeStock, ...] = ()

    def size(self, size: str) -> SizeStock | None:
        for s in self.sizes:
            if s.size == size:
                return s
        return None

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> Variant:
        doc = _as_mapping(doc)
        try:
            price = Decimal(str(doc.get("price", "0")))
        except InvalidOperation:
            price = Decimal("0")
        return cls(
            id=_as_str(doc.get("id")),
            uniform_id=_as_str(doc.get("uniformId")),
            variant_type=_as_str(doc.get("variantType")),
            color=_as_str(doc.get("color")),
            price=price,
            sizes=tuple(SizeStock.from_document(s) for s in _as_list(doc.get("sizes"))),
        )

    def to_document(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "uniformId": self.uniform_id,
            "variantType": self.variant_type,
            "color": self.color,
            "price": str(self.price),
            "sizes": [s.to_document() for s in self.sizes],
        }


@dataclass(frozen=True)
class Batch:
    """A stock-receiving event holding variant/size quantities."""

    id: str
    name: str
    items: tuple[Variant, ...] = ()
    created_at: str | None = None

    def variant(self, variant_id: str) -> Variant | None:
        for item in self.items:
            if item.id == variant_id:
                return item
        return None

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> Batch:
        doc = _as_mapping(doc)
        return cls(
            id=_as_str(doc.get("id")),
            name=_as_str(doc.get("name")),
            items=tuple(Variant.from_document(v) for v in _as_list(doc.get("items"))),
            created_at=_as_optional_str(doc.get("createdAt")),
        )

    def to_document(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "items": [item.to_document() for item in self.items],
            "createdAt": self.created_at,
        }
