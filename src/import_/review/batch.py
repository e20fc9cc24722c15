"""
Review batch for a single uploaded report.

Partitions mapped records into New / Updated / Skipped and carries the
operator's accept/reject choices until commit. Nothing here writes to the
store.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable

from src.import_.matching.patient_matcher import (
    MatchKey,
    MatchStatus,
    PatientMatcher,
)
from src.import_.records import (
    Entity,
    FieldChange,
    MappedRecord,
    SubjectRecord,
)
from src.import_.review.diff_engine import diff_record

NO_CHANGES_REASON = "No changes detected"


class ItemKind(str, Enum):
    """Selectable sections of a review batch."""

    NEW = "new"
    UPDATED = "updated"


@dataclass
class NewItem:
    record: MappedRecord
    selected: bool = True


@dataclass
class UpdatedItem:
    subject: SubjectRecord
    record: MappedRecord
    changes: list[FieldChange]
    selected: bool = True

    def changes_for(self, entity: Entity) -> list[FieldChange]:
        return [c for c in self.changes if c.entity is entity]


@dataclass
class SkippedItem:
    record: MappedRecord
    reason: str
    subject: SubjectRecord | None = None


@dataclass
class CommitSelection:
    """Exactly what the operator approved for writing."""

    new: list[NewItem]
    updated: list[UpdatedItem]
    auto_merge_safe: bool
    unselected_count: int
    skipped_count: int

    @property
    def is_empty(self) -> bool:
        return not self.new and not self.updated


@dataclass
class ReviewBatch:
    """Three-way partition of an upload plus selection state."""

    new_records: list[NewItem] = field(default_factory=list)
    updated_records: list[UpdatedItem] = field(default_factory=list)
    skipped_records: list[SkippedItem] = field(default_factory=list)
    auto_merge_safe: bool = True

    @property
    def total(self) -> int:
        return len(self.new_records) + len(self.updated_records) + len(self.skipped_records)

    def _items(self, kind: ItemKind) -> list[NewItem] | list[UpdatedItem]:
        return self.new_records if kind is ItemKind.NEW else self.updated_records

    def set_selected(self, kind: ItemKind, index: int, selected: bool) -> None:
        items = self._items(kind)
        if not 0 <= index < len(items):
            raise ValueError(f"No {kind.value} record at index {index}")
        items[index].selected = selected

    def toggle(self, kind: ItemKind, index: int) -> None:
        items = self._items(kind)
        if not 0 <= index < len(items):
            raise ValueError(f"No {kind.value} record at index {index}")
        items[index].selected = not items[index].selected

    def select_only(self, kind: ItemKind, indices: Iterable[int]) -> None:
        """Select exactly the given indices of one section."""
        wanted = set(indices)
        items = self._items(kind)
        out_of_range = sorted(i for i in wanted if not 0 <= i < len(items))
        if out_of_range:
            raise ValueError(
                f"No {kind.value} record at index {', '.join(map(str, out_of_range))}"
            )
        for i, item in enumerate(items):
            item.selected = i in wanted

    def selection(self) -> CommitSelection:
        new = [item for item in self.new_records if item.selected]
        updated = [item for item in self.updated_records if item.selected]
        unselected = (len(self.new_records) - len(new)) + (
            len(self.updated_records) - len(updated)
        )
        return CommitSelection(
            new=new,
            updated=updated,
            auto_merge_safe=self.auto_merge_safe,
            unselected_count=unselected,
            skipped_count=len(self.skipped_records),
        )


def build_review_batch(
    records: list[MappedRecord], existing: list[SubjectRecord]
) -> ReviewBatch:
    """
    Partition mapped records against the existing patients.

    - No match (or an empty key): New
    - Match with at least one field change: Updated
    - Match without changes, several candidate patients, or a repeat of a
      record already headed for New: Skipped, with a reason
    """
    batch = ReviewBatch()
    matcher = PatientMatcher(existing)
    first_new_row: dict[MatchKey, int] = {}

    for result in matcher.match_all(records):
        record = result.record

        if result.status is MatchStatus.EMPTY_KEY:
            batch.new_records.append(NewItem(record=record))
            continue

        if result.status is MatchStatus.NO_MATCH:
            earlier = first_new_row.get(result.key)
            if earlier is not None:
                batch.skipped_records.append(
                    SkippedItem(record=record, reason=f"Duplicate of row {earlier}")
                )
            else:
                first_new_row[result.key] = record.row_number
                batch.new_records.append(NewItem(record=record))
            continue

        if result.status is MatchStatus.MULTIPLE_MATCHES:
            batch.skipped_records.append(
                SkippedItem(
                    record=record,
                    reason=(
                        f"Matches {result.candidate_count} existing patients; "
                        "manual resolution required"
                    ),
                )
            )
            continue

        assert result.subject is not None
        changes = diff_record(result.subject, record)
        if changes:
            batch.updated_records.append(
                UpdatedItem(subject=result.subject, record=record, changes=changes)
            )
        else:
            batch.skipped_records.append(
                SkippedItem(record=record, reason=NO_CHANGES_REASON, subject=result.subject)
            )

    return batch
