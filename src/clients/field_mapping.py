"""Dependency provider for the field mapping configuration."""

from functools import lru_cache

from src.import_.mapping.config import FieldMapping, load_field_mapping
from src.settings import settings


@lru_cache(maxsize=1)
def get_field_mapping() -> FieldMapping:
    """Load the field mapping document once per process."""
    return load_field_mapping(settings.import_mapping_path)
