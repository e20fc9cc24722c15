"""Maps loosely typed spreadsheet rows onto MappedRecords."""

from typing import Any, Mapping

from src.import_.mapping.config import FieldMapping
from src.import_.parsing.report_parser import RawRow
from src.import_.records import FIELDS_BY_NAME, Entity, MappedRecord


def clean_value(value: Any) -> Any:
    """Trim strings; whitespace-only strings become None."""
    if isinstance(value, str):
        return value.strip() or None
    return value


def map_row(row: Mapping[str, Any], mapping: FieldMapping, row_number: int) -> MappedRecord:
    """
    Convert one raw row into a MappedRecord.

    Configured columns that are present and non-empty are copied to their
    target field, then constants are overlaid, then defaults fill whatever
    is still missing. Columns the mapping does not know are dropped.

    Args:
        row: Raw row keyed by header text
        mapping: Field mapping configuration
        row_number: Position of the row in the source file (for reporting)

    Returns:
        MappedRecord with subject and dependent projections
    """
    values: dict[str, Any] = {}

    for source_column, target in mapping.fields.items():
        value = clean_value(row.get(source_column))
        if value is not None:
            values[target] = value

    for target, value in mapping.constants.items():
        values[target] = clean_value(value)

    for target, value in mapping.defaults.items():
        if values.get(target) is None:
            values[target] = clean_value(value)

    subject: dict[str, Any] = {}
    dependent: dict[str, Any] = {}
    for target, value in values.items():
        if value is None:
            continue
        spec = FIELDS_BY_NAME[target]
        bag = subject if spec.entity is Entity.SUBJECT else dependent
        bag[spec.column] = value

    return MappedRecord(row_number=row_number, subject=subject, dependent=dependent)


def map_rows(rows: list[RawRow], mapping: FieldMapping) -> list[MappedRecord]:
    """Map every parsed row, keeping its position in the source file."""
    return [map_row(row.values, mapping, row.row_number) for row in rows]
