"""Tests for review batch partitioning and selection."""

from datetime import datetime, timezone

import pytest

from src.import_.records import DependentRecord, MappedRecord, SubjectRecord
from src.import_.review.batch import (
    NO_CHANGES_REASON,
    ItemKind,
    ReviewBatch,
    build_review_batch,
)


def _record(row_number: int, name: str | None, insurance: str | None, **subject: object) -> MappedRecord:
    fields: dict[str, object] = dict(subject)
    if name is not None:
        fields["name"] = name
    if insurance is not None:
        fields["primary_insurance"] = insurance
    return MappedRecord(row_number=row_number, subject=fields)


@pytest.fixture
def existing() -> list[SubjectRecord]:
    return [
        SubjectRecord(
            id="p-1",
            fields={"id": "p-1", "name": "John Smith", "primary_insurance": "Acme", "phone": "555-1111"},
            dependents=[
                DependentRecord(
                    id="o-1",
                    created_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
                    fields={"id": "o-1", "chair_type": "Manual"},
                )
            ],
        ),
        SubjectRecord(id="p-2", fields={"id": "p-2", "name": "Ann Lee", "primary_insurance": "Aetna"}),
        SubjectRecord(id="p-3", fields={"id": "p-3", "name": "Mary Major", "primary_insurance": "Aetna"}),
        SubjectRecord(id="p-4", fields={"id": "p-4", "name": "mary major", "primary_insurance": "AETNA"}),
    ]


@pytest.fixture
def batch(existing: list[SubjectRecord]) -> ReviewBatch:
    records = [
        _record(2, "Jane Doe", "Acme"),
        _record(3, "John Smith", "acme", phone="555-2222"),
        _record(4, "Ann Lee", "Aetna"),
        _record(5, "Mary Major", "Aetna"),
        _record(6, "jane doe ", "ACME"),
        _record(7, None, None),
        _record(8, None, None),
    ]
    return build_review_batch(records, existing)


class TestBuildReviewBatch:
    """Tests for build_review_batch."""

    def test_partition(self, batch: ReviewBatch) -> None:
        assert [i.record.row_number for i in batch.new_records] == [2, 7, 8]
        assert [i.record.row_number for i in batch.updated_records] == [3]
        assert [i.record.row_number for i in batch.skipped_records] == [4, 5, 6]
        assert batch.total == 7

    def test_dropped_leading_zero_is_a_change(self) -> None:
        """Digit strings are compared as text, not as numbers."""
        existing = [
            SubjectRecord(
                id="p-1",
                fields={"id": "p-1", "name": "Ann Lee", "primary_insurance": "Aetna", "phone": "0123456789"},
            )
        ]

        batch = build_review_batch([_record(2, "Ann Lee", "Aetna", phone="123456789")], existing)

        assert batch.skipped_records == []
        assert len(batch.updated_records) == 1
        assert [(c.field, c.from_value, c.to_value) for c in batch.updated_records[0].changes] == [
            ("phone", "0123456789", "123456789")
        ]

    def test_updated_carries_changes(self, batch: ReviewBatch) -> None:
        updated = batch.updated_records[0]

        assert updated.subject.id == "p-1"
        assert [(c.field, c.from_value, c.to_value) for c in updated.changes] == [
            ("phone", "555-1111", "555-2222"),
            ("chair_type", "Manual", ""),
        ]

    def test_skip_reasons(self, batch: ReviewBatch) -> None:
        reasons = {i.record.row_number: i.reason for i in batch.skipped_records}

        assert reasons[4] == NO_CHANGES_REASON
        assert reasons[5] == "Matches 2 existing patients; manual resolution required"
        assert reasons[6] == "Duplicate of row 2"

    def test_self_comparison_is_skipped(self) -> None:
        subject = SubjectRecord(
            id="p-1",
            fields={"id": "p-1", "name": "Jane Doe", "primary_insurance": "Acme", "phone": "1"},
        )
        record = _record(2, "Jane Doe", "Acme", phone="1")

        result = build_review_batch([record], [subject])

        assert result.updated_records == []
        assert result.skipped_records[0].reason == NO_CHANGES_REASON
        assert result.skipped_records[0].subject is subject

    def test_everything_selected_by_default(self, batch: ReviewBatch) -> None:
        assert all(i.selected for i in batch.new_records)
        assert all(i.selected for i in batch.updated_records)
        assert batch.auto_merge_safe is True


class TestSelection:
    """Tests for review batch selection state."""

    def test_toggle_and_set_selected(self, batch: ReviewBatch) -> None:
        batch.toggle(ItemKind.NEW, 0)
        assert batch.new_records[0].selected is False

        batch.set_selected(ItemKind.NEW, 0, True)
        assert batch.new_records[0].selected is True

    def test_select_only(self, batch: ReviewBatch) -> None:
        batch.select_only(ItemKind.NEW, [2])

        assert [i.selected for i in batch.new_records] == [False, False, True]

    @pytest.mark.parametrize("index", [-1, 3])
    def test_out_of_range(self, batch: ReviewBatch, index: int) -> None:
        with pytest.raises(ValueError):
            batch.set_selected(ItemKind.NEW, index, False)
        with pytest.raises(ValueError):
            batch.select_only(ItemKind.NEW, [index])

    def test_failed_select_only_leaves_selection(self, batch: ReviewBatch) -> None:
        with pytest.raises(ValueError):
            batch.select_only(ItemKind.NEW, [0, 9])

        assert all(i.selected for i in batch.new_records)

    def test_selection_counts(self, batch: ReviewBatch) -> None:
        batch.select_only(ItemKind.NEW, [0])
        batch.auto_merge_safe = False

        selection = batch.selection()

        assert [i.record.row_number for i in selection.new] == [2]
        assert len(selection.updated) == 1
        assert selection.unselected_count == 2
        assert selection.skipped_count == 3
        assert selection.auto_merge_safe is False
        assert not selection.is_empty

    def test_empty_selection(self, batch: ReviewBatch) -> None:
        batch.select_only(ItemKind.NEW, [])
        batch.select_only(ItemKind.UPDATED, [])

        assert batch.selection().is_empty
