"""Schemas for report import endpoints."""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from src.import_.commit.executor import CommitResult
from src.import_.records import FieldChange
from src.import_.review.sessions import ReviewSession

# Maximum size for an uploaded report (5MB decoded, ~6.7MB base64-encoded)
MAX_IMPORT_SIZE_BYTES = 5 * 1024 * 1024
MAX_BASE64_SIZE = int(MAX_IMPORT_SIZE_BYTES * 4 / 3) + 100  # base64 overhead + padding


class StoplightStatus(str, Enum):
    """Stoplight flag applied to every record created by one import run."""

    GREEN = "green"
    YELLOW = "yellow"
    RED = "red"


class ReportUploadRequest(BaseModel):
    """Request model for uploading a referral report."""

    file_name: str = Field(description="Original file name; the extension selects the parser")
    data: str = Field(description="Base64-encoded file content")

    @field_validator("data")
    @classmethod
    def validate_data_size(cls, v: str) -> str:
        """Validate that the data field doesn't exceed the maximum size."""
        if len(v) > MAX_BASE64_SIZE:
            max_mb = MAX_IMPORT_SIZE_BYTES / (1024 * 1024)
            raise ValueError(
                f"Report exceeds maximum size of {max_mb:.0f}MB. "
                "Please split the file and upload each part."
            )
        return v


class FieldChangeSchema(BaseModel):
    """One field that differs between the store and the report."""

    entity: str
    field: str
    from_value: Any = None
    to_value: Any = None

    @classmethod
    def from_change(cls, change: FieldChange) -> "FieldChangeSchema":
        return cls(
            entity=change.entity.value,
            field=change.field,
            from_value=change.from_value,
            to_value=change.to_value,
        )


class NewRecordSchema(BaseModel):
    index: int
    row_number: int
    selected: bool
    record: dict[str, Any]


class UpdatedRecordSchema(BaseModel):
    index: int
    row_number: int
    selected: bool
    patient_id: str
    patient_name: str | None = None
    changes: list[FieldChangeSchema]


class SkippedRecordSchema(BaseModel):
    row_number: int
    patient_name: str | None = None
    reason: str


class ReviewResponse(BaseModel):
    """A pending review batch."""

    review_id: UUID
    file_name: str
    file_format: str
    rep_name: str
    created_at: datetime
    auto_merge_safe: bool = Field(
        description="Never overwrite a populated field with an empty one",
    )
    total_rows: int
    new_records: list[NewRecordSchema] = Field(default_factory=list)
    updated_records: list[UpdatedRecordSchema] = Field(default_factory=list)
    skipped_records: list[SkippedRecordSchema] = Field(default_factory=list)

    @classmethod
    def from_session(cls, session: ReviewSession) -> "ReviewResponse":
        batch = session.batch
        return cls(
            review_id=session.review_id,
            file_name=session.file_name,
            file_format=session.file_format,
            rep_name=session.rep_name,
            created_at=session.created_at,
            auto_merge_safe=batch.auto_merge_safe,
            total_rows=batch.total,
            new_records=[
                NewRecordSchema(
                    index=i,
                    row_number=item.record.row_number,
                    selected=item.selected,
                    record=item.record.as_dict(),
                )
                for i, item in enumerate(batch.new_records)
            ],
            updated_records=[
                UpdatedRecordSchema(
                    index=i,
                    row_number=item.record.row_number,
                    selected=item.selected,
                    patient_id=item.subject.id,
                    patient_name=item.subject.name,
                    changes=[FieldChangeSchema.from_change(c) for c in item.changes],
                )
                for i, item in enumerate(batch.updated_records)
            ],
            skipped_records=[
                SkippedRecordSchema(
                    row_number=item.record.row_number,
                    patient_name=item.record.name,
                    reason=item.reason,
                )
                for item in batch.skipped_records
            ],
        )


class SelectionUpdateRequest(BaseModel):
    """Operator selection for a review; omitted fields are left unchanged."""

    selected_new: list[int] | None = Field(
        default=None,
        description="Indices of new records to create; all others are deselected",
    )
    selected_updated: list[int] | None = Field(
        default=None,
        description="Indices of updated records to apply; all others are deselected",
    )
    auto_merge_safe: bool | None = Field(
        default=None,
        description="Override the run-level safe-merge flag",
    )


class CommitRequest(SelectionUpdateRequest):
    """Request model for committing a review."""

    stoplight_status: StoplightStatus = Field(
        default=StoplightStatus.GREEN,
        description="Stoplight flag for every patient and order created by this run",
    )
    referral_date: datetime | None = Field(
        default=None,
        description="Referral date for new orders. Defaults to now.",
    )


class UpdateFailureSchema(BaseModel):
    subject_id: str
    row_number: int
    error: str


class CommitResponse(BaseModel):
    """Operator-facing summary of a commit."""

    review_id: UUID
    created: int = Field(description="Patients created")
    dependents_created: int = Field(description="Orders created")
    linked_created: int = Field(description="Equipment records created")
    updated: int = Field(description="Existing patients updated")
    unchanged: int = Field(
        default=0,
        description="Selected updates with nothing left to write after safe merge",
    )
    skipped: int = Field(description="Records not selected or with no changes")
    failed_updates: list[UpdateFailureSchema] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    stage: str

    @classmethod
    def from_result(cls, review_id: UUID, result: CommitResult) -> "CommitResponse":
        return cls(
            review_id=review_id,
            created=result.created,
            dependents_created=result.dependents_created,
            linked_created=result.linked_created,
            updated=result.updated,
            unchanged=result.unchanged,
            skipped=result.skipped,
            failed_updates=[
                UpdateFailureSchema(
                    subject_id=f.subject_id, row_number=f.row_number, error=f.error
                )
                for f in result.failed_updates
            ],
            warnings=result.warnings,
            stage=result.stage.value,
        )
