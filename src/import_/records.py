"""
Record shapes shared across the import pipeline.

The field registry is the single source of truth for which mapped fields
exist, which store column and entity each one belongs to, and whether a field
takes part in update diffs. The mapping loader, the diff engine and the
commit payload builders all read from it.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class Entity(str, Enum):
    """Entity a field belongs to."""

    SUBJECT = "patient"
    DEPENDENT = "order"


@dataclass(frozen=True)
class FieldSpec:
    """A mapped field and where it lives in the store."""

    name: str
    column: str
    entity: Entity
    comparable: bool = True


FIELD_REGISTRY: tuple[FieldSpec, ...] = (
    FieldSpec("patient_name", "name", Entity.SUBJECT, comparable=False),
    FieldSpec("insurance_primary", "primary_insurance", Entity.SUBJECT, comparable=False),
    FieldSpec("phone", "phone", Entity.SUBJECT),
    FieldSpec("email", "email", Entity.SUBJECT),
    FieldSpec("date_of_birth", "dob", Entity.SUBJECT),
    FieldSpec("address", "address", Entity.SUBJECT),
    FieldSpec("chair_type", "chair_type", Entity.DEPENDENT),
    FieldSpec("accessories", "accessories", Entity.DEPENDENT),
    FieldSpec("referring_physician", "referring_physician", Entity.DEPENDENT),
    FieldSpec("workflow_stage", "workflow_stage", Entity.DEPENDENT, comparable=False),
    FieldSpec("status", "status", Entity.DEPENDENT, comparable=False),
    FieldSpec("rep_name", "rep_name", Entity.DEPENDENT, comparable=False),
)

FIELDS_BY_NAME: dict[str, FieldSpec] = {spec.name: spec for spec in FIELD_REGISTRY}

NAME_COLUMN = "name"
INSURANCE_COLUMN = "primary_insurance"
CHAIR_TYPE_COLUMN = "chair_type"
ACCESSORIES_COLUMN = "accessories"
REP_NAME_COLUMN = "rep_name"


def comparable_fields(entity: Entity) -> list[FieldSpec]:
    """Diff allow-list for an entity, in registry order."""
    return [s for s in FIELD_REGISTRY if s.entity is entity and s.comparable]


@dataclass(frozen=True)
class MappedRecord:
    """One prospective patient plus its prospective order fields."""

    row_number: int
    subject: dict[str, Any] = field(default_factory=dict)
    dependent: dict[str, Any] = field(default_factory=dict)

    @property
    def name(self) -> Any:
        return self.subject.get(NAME_COLUMN)

    @property
    def insurance(self) -> Any:
        return self.subject.get(INSURANCE_COLUMN)

    def value(self, spec: FieldSpec) -> Any:
        bag = self.subject if spec.entity is Entity.SUBJECT else self.dependent
        return bag.get(spec.column)

    def as_dict(self) -> dict[str, Any]:
        """Flat view keyed by mapped field name, for display."""
        return {
            spec.name: self.value(spec)
            for spec in FIELD_REGISTRY
            if self.value(spec) is not None
        }


@dataclass
class DependentRecord:
    """An existing order/referral as loaded from the store."""

    id: str
    created_at: datetime
    fields: dict[str, Any]

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "DependentRecord":
        created_at = row.get("created_at")
        if isinstance(created_at, str):
            created_at = datetime.fromisoformat(created_at)
        if created_at is None:
            created_at = datetime.min
        return cls(id=str(row["id"]), created_at=created_at, fields=dict(row))


@dataclass
class SubjectRecord:
    """An existing patient with its orders pre-loaded."""

    id: str
    fields: dict[str, Any]
    dependents: list[DependentRecord] = field(default_factory=list)

    @classmethod
    def from_row(
        cls, row: dict[str, Any], dependents_key: str = "orders"
    ) -> "SubjectRecord":
        fields = {k: v for k, v in row.items() if k != dependents_key}
        dependents = [DependentRecord.from_row(d) for d in row.get(dependents_key) or []]
        return cls(id=str(row["id"]), fields=fields, dependents=dependents)

    @property
    def name(self) -> Any:
        return self.fields.get(NAME_COLUMN)

    @property
    def insurance(self) -> Any:
        return self.fields.get(INSURANCE_COLUMN)

    @property
    def latest_dependent(self) -> DependentRecord | None:
        """
        Most recently created order.

        Ties on created_at go to the lexicographically largest id so that
        diffs are deterministic.
        """
        if not self.dependents:
            return None
        return max(self.dependents, key=lambda d: (_sortable(d.created_at), d.id))


def _sortable(value: datetime) -> datetime:
    # Naive timestamps are treated as UTC so they compare with aware ones
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@dataclass(frozen=True)
class FieldChange:
    """A single field-level difference between stored and incoming data."""

    entity: Entity
    field: str
    from_value: Any
    to_value: Any
