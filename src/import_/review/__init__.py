"""
Review stage of report imports.

This module handles:
- Field-level diffing of matched patients and their latest order
- The safe/raw merge policy for accepted changes
- The New / Updated / Skipped review batch and its selection state
"""

from src.import_.review.batch import (
    CommitSelection,
    ItemKind,
    NewItem,
    ReviewBatch,
    SkippedItem,
    UpdatedItem,
    build_review_batch,
)
from src.import_.review.diff_engine import diff_record
from src.import_.review.merge_policy import build_payload

__all__ = [
    "CommitSelection",
    "ItemKind",
    "NewItem",
    "ReviewBatch",
    "SkippedItem",
    "UpdatedItem",
    "build_payload",
    "build_review_batch",
    "diff_record",
]
