"""
Field mapping configuration for report imports.

The mapping document is external data with three sections:
- fields: source column -> target field
- constants: values always written onto every mapped record
- defaults: values written only when the record has no value of its own

Every target field must be a known record field so the mapping cannot
drift away from what the diff and commit steps understand.
"""

import logging
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from src.exceptions import MappingConfigError
from src.import_.records import FIELDS_BY_NAME

logger = logging.getLogger(__name__)


def _check_targets(names: list[str], section: str) -> None:
    unknown = sorted(set(names) - set(FIELDS_BY_NAME))
    if unknown:
        raise ValueError(f"Unknown target field(s) in {section}: {', '.join(unknown)}")


class FieldMapping(BaseModel):
    """Immutable column-to-field mapping loaded from a JSON document."""

    model_config = ConfigDict(frozen=True)

    fields: dict[str, str] = Field(
        default_factory=dict,
        description="Source column name -> target field name",
    )
    constants: dict[str, Any] = Field(
        default_factory=dict,
        description="Values applied to every record unconditionally",
    )
    defaults: dict[str, Any] = Field(
        default_factory=dict,
        description="Values applied only when the record lacks the field",
    )

    @field_validator("fields")
    @classmethod
    def validate_field_targets(cls, v: dict[str, str]) -> dict[str, str]:
        _check_targets(list(v.values()), "fields")
        return v

    @field_validator("constants", "defaults")
    @classmethod
    def validate_overlay_targets(cls, v: dict[str, Any]) -> dict[str, Any]:
        _check_targets(list(v.keys()), "overlays")
        return v

    def with_constants(self, **overrides: Any) -> "FieldMapping":
        """Return a copy with extra constants layered on top."""
        return FieldMapping(
            fields=dict(self.fields),
            constants={**self.constants, **overrides},
            defaults=dict(self.defaults),
        )


def load_field_mapping(path: Path) -> FieldMapping:
    """
    Load and validate a field mapping document.

    Raises:
        MappingConfigError: If the file is missing or fails validation
    """
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise MappingConfigError(f"Cannot read field mapping {path}: {e}") from e

    try:
        mapping = FieldMapping.model_validate_json(raw)
    except ValidationError as e:
        raise MappingConfigError(f"Invalid field mapping {path}: {e}") from e

    logger.info(
        "Loaded field mapping from %s (%d columns, %d constants, %d defaults)",
        path,
        len(mapping.fields),
        len(mapping.constants),
        len(mapping.defaults),
    )
    return mapping
