"""Turns accepted field changes into store write payloads."""

from typing import Any, Iterable

from src.import_.records import FieldChange


def is_effectively_empty(value: Any) -> bool:
    if value is None:
        return True
    return isinstance(value, str) and not value.strip()


def build_payload(changes: Iterable[FieldChange], auto_merge_safe: bool = True) -> dict[str, Any]:
    """
    Build the field -> value payload for one entity.

    In raw mode every change is applied, blanks included. In safe mode a
    change that would replace a populated value with an empty one is
    dropped; everything else (filling a gap, replacing one value with
    another) is applied as-is.
    """
    payload: dict[str, Any] = {}
    for change in changes:
        if (
            auto_merge_safe
            and not is_effectively_empty(change.from_value)
            and is_effectively_empty(change.to_value)
        ):
            continue
        payload[change.field] = change.to_value
    return payload
