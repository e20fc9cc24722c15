"""Tests for the diff engine."""

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from src.import_.records import (
    DependentRecord,
    Entity,
    FieldChange,
    MappedRecord,
    SubjectRecord,
)
from src.import_.review.diff_engine import canonical, diff_entity, diff_record, values_equal


def _order(order_id: str, created_at: datetime, **fields: object) -> DependentRecord:
    return DependentRecord(id=order_id, created_at=created_at, fields={"id": order_id, **fields})


class TestCanonical:
    """Tests for canonical value serialization."""

    @pytest.mark.parametrize(
        ("stored", "incoming"),
        [
            (5, "5"),
            (5.0, "5"),
            (Decimal("1.50"), "1.5"),
            (" x ", "x"),
            (None, ""),
            (None, "   "),
            (True, True),
            (date(1980, 12, 23), "1980-12-23"),
            (datetime(1980, 12, 23), "1980-12-23"),
            ({"b": 1, "a": 2}, {"a": 2, "b": 1}),
        ],
    )
    def test_equivalent_values(self, stored: object, incoming: object) -> None:
        assert values_equal(stored, incoming)

    @pytest.mark.parametrize(
        ("stored", "incoming"),
        [
            ("Manual", "manual"),
            (None, "Manual"),
            ("555-1111", ""),
            (1, "1.01"),
            (True, "false"),
            ("0123", "123"),
            ("0123456789", "123456789"),
            ("1e3", "1000"),
            ("1_000", "1000"),
            ("5.0", "5"),
        ],
    )
    def test_different_values(self, stored: object, incoming: object) -> None:
        assert not values_equal(stored, incoming)

    def test_aware_datetime_keeps_time(self) -> None:
        value = datetime(2024, 1, 1, tzinfo=timezone.utc)

        assert canonical(value) == "2024-01-01T00:00:00+00:00"


class TestDiffEntity:
    """Tests for diff_entity."""

    def test_identity_has_no_changes(self) -> None:
        fields = {"phone": "555-1111", "email": "a@example.com", "dob": "1980-12-23"}

        assert diff_entity(Entity.SUBJECT, fields, dict(fields)) == []

    def test_only_allow_listed_fields(self) -> None:
        stored = {"id": "p-1", "created_at": "2024-01-01", "name": "John Smith"}
        incoming = {"id": "other", "created_at": "2025-01-01", "name": "JOHN SMITH"}

        assert diff_entity(Entity.SUBJECT, stored, incoming) == []

    def test_absent_incoming_clears_text_to_empty_string(self) -> None:
        changes = diff_entity(Entity.SUBJECT, {"phone": "555-1111"}, {})

        assert changes == [
            FieldChange(entity=Entity.SUBJECT, field="phone", from_value="555-1111", to_value="")
        ]

    def test_absent_incoming_clears_other_columns_to_null(self) -> None:
        changes = diff_entity(Entity.SUBJECT, {"dob": date(1980, 12, 23)}, {})

        assert changes == [
            FieldChange(
                entity=Entity.SUBJECT, field="dob", from_value=date(1980, 12, 23), to_value=None
            )
        ]

    def test_blank_text_against_blank_text_is_not_a_change(self) -> None:
        assert diff_entity(Entity.SUBJECT, {"phone": ""}, {}) == []

    def test_changes_in_allow_list_order(self) -> None:
        changes = diff_entity(
            Entity.SUBJECT,
            {"address": "1 Old St", "phone": "1"},
            {"address": "2 New St", "phone": "2"},
        )

        assert [c.field for c in changes] == ["phone", "address"]


class TestDiffRecord:
    """Tests for diff_record."""

    def test_chair_type_change_on_latest_order(self) -> None:
        """Insurance compares case-insensitively; only the chair type differs."""
        subject = SubjectRecord(
            id="p-1",
            fields={"id": "p-1", "name": "John Smith", "primary_insurance": "Acme"},
            dependents=[
                _order("o-1", datetime(2024, 1, 1, tzinfo=timezone.utc), chair_type=None)
            ],
        )
        record = MappedRecord(
            row_number=2,
            subject={"name": "John Smith", "primary_insurance": "ACME"},
            dependent={"chair_type": "Manual"},
        )

        changes = diff_record(subject, record)

        assert changes == [
            FieldChange(
                entity=Entity.DEPENDENT, field="chair_type", from_value=None, to_value="Manual"
            )
        ]

    def test_compares_against_most_recent_order(self) -> None:
        subject = SubjectRecord(
            id="p-1",
            fields={"id": "p-1"},
            dependents=[
                _order("o-2", datetime(2024, 6, 1, tzinfo=timezone.utc), chair_type="Manual"),
                _order("o-1", datetime(2023, 1, 1, tzinfo=timezone.utc), chair_type="Group 3"),
            ],
        )
        record = MappedRecord(row_number=2, dependent={"chair_type": "Manual"})

        assert diff_record(subject, record) == []

    def test_subject_changes_before_order_changes(self) -> None:
        subject = SubjectRecord(
            id="p-1",
            fields={"id": "p-1", "phone": "1"},
            dependents=[_order("o-1", datetime(2024, 1, 1), chair_type="A")],
        )
        record = MappedRecord(row_number=2, subject={"phone": "2"}, dependent={"chair_type": "B"})

        changes = diff_record(subject, record)

        assert [(c.entity, c.field) for c in changes] == [
            (Entity.SUBJECT, "phone"),
            (Entity.DEPENDENT, "chair_type"),
        ]

    def test_no_order_changes_without_orders(self) -> None:
        subject = SubjectRecord(id="p-1", fields={"id": "p-1"})
        record = MappedRecord(row_number=2, dependent={"chair_type": "Manual"})

        assert diff_record(subject, record) == []


class TestLatestDependent:
    """Tests for SubjectRecord.latest_dependent."""

    def test_tie_broken_by_largest_id(self) -> None:
        when = datetime(2024, 1, 1, tzinfo=timezone.utc)
        subject = SubjectRecord(
            id="p-1",
            fields={},
            dependents=[_order("o-a", when), _order("o-c", when), _order("o-b", when)],
        )

        assert subject.latest_dependent is not None
        assert subject.latest_dependent.id == "o-c"

    def test_naive_and_aware_timestamps_compare(self) -> None:
        subject = SubjectRecord(
            id="p-1",
            fields={},
            dependents=[
                _order("o-1", datetime(2024, 1, 2)),
                _order("o-2", datetime(2024, 1, 1, tzinfo=timezone.utc)),
            ],
        )

        assert subject.latest_dependent is not None
        assert subject.latest_dependent.id == "o-1"

    def test_from_row_parses_orders(self) -> None:
        subject = SubjectRecord.from_row(
            {
                "id": 7,
                "name": "John Smith",
                "orders": [
                    {"id": 1, "created_at": "2024-01-01T00:00:00+00:00"},
                    {"id": 2, "created_at": "2024-03-01T00:00:00+00:00"},
                ],
            }
        )

        assert subject.id == "7"
        assert "orders" not in subject.fields
        assert subject.latest_dependent is not None
        assert subject.latest_dependent.id == "2"

    def test_no_orders(self) -> None:
        assert SubjectRecord(id="p-1", fields={}).latest_dependent is None
