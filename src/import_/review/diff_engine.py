"""
Field-level diffing between a stored patient and an incoming record.

Only allow-listed comparable fields are diffed, so server-managed columns
(ids, timestamps) and create-only fields never surface as changes. Values are
compared by canonical serialized form so equivalent representations (5 vs
"5", " x " vs "x", None vs "") are not reported. Two strings are compared as
text, so "0123" and "123" differ.
"""

import json
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from src.import_.records import (
    Entity,
    FieldChange,
    MappedRecord,
    SubjectRecord,
    comparable_fields,
)


def canonical(value: Any, numeric: bool = False) -> str | None:
    """
    Serialize a value to the form used for equality checks.

    With ``numeric`` set, numeric-looking strings are normalized as numbers;
    used when the other side of a comparison is an actual number.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    if _is_number(value):
        return _canonical_number(value)
    if isinstance(value, datetime):
        if value.time() == datetime.min.time() and value.tzinfo is None:
            return value.date().isoformat()
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            return None
        if numeric:
            number = _canonical_number(stripped)
            if number is not None:
                return number
        return stripped
    return json.dumps(value, sort_keys=True, default=str)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float, Decimal)) and not isinstance(value, bool)


def _canonical_number(value: Any) -> str | None:
    try:
        number = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    if not number.is_finite():
        return None
    if number == number.to_integral_value():
        return str(int(number))
    return format(number.normalize(), "f")


def values_equal(stored: Any, incoming: Any) -> bool:
    numeric = _is_number(stored) or _is_number(incoming)
    return canonical(stored, numeric) == canonical(incoming, numeric)


def diff_entity(
    entity: Entity, stored: dict[str, Any], incoming: dict[str, Any]
) -> list[FieldChange]:
    """Diff one entity over its allow-list, in allow-list order."""
    changes: list[FieldChange] = []
    for spec in comparable_fields(entity):
        old = stored.get(spec.column)
        new = incoming.get(spec.column)
        if new is None and isinstance(old, str):
            # Blank cells clear text columns to "", other columns to null
            new = ""
        if not values_equal(old, new):
            changes.append(
                FieldChange(entity=entity, field=spec.column, from_value=old, to_value=new)
            )
    return changes


def diff_record(subject: SubjectRecord, record: MappedRecord) -> list[FieldChange]:
    """
    Compute the change list for a matched pair.

    Patient fields come first, then fields of the patient's latest order.
    A patient without orders yields no order changes since there is nothing
    to update.
    """
    changes = diff_entity(Entity.SUBJECT, subject.fields, record.subject)
    latest = subject.latest_dependent
    if latest is not None:
        changes.extend(diff_entity(Entity.DEPENDENT, latest.fields, record.dependent))
    return changes
