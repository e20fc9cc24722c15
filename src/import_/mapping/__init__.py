"""
Column-to-field mapping for report imports.

This module handles:
- Loading and validating the field mapping document
- Converting raw spreadsheet rows into MappedRecords
"""

from src.import_.mapping.config import FieldMapping, load_field_mapping
from src.import_.mapping.row_mapper import map_row, map_rows

__all__ = [
    "FieldMapping",
    "load_field_mapping",
    "map_row",
    "map_rows",
]
