"""
Commit executor for reviewed report imports.

Applies the operator-approved selection in a fixed order:
1. Resolve or create insurance providers for the new patients
2. Create the new patients
3. Create one order per new patient
4. Create equipment records for orders with a chair type (best-effort)
5. Apply merged updates to matched patients and their latest order
6. Append one audit event summarizing the run

Steps 1-3 are all-or-nothing for the run: a failure raises CommitError and
nothing after it is attempted. Steps 4 and 5 fail per item and are reported
as warnings. The audit write never fails the commit.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable

from src.exceptions import CommitError, StoreError, UniqueViolationError
from src.import_.matching.patient_matcher import normalize_key_part
from src.import_.records import (
    ACCESSORIES_COLUMN,
    CHAIR_TYPE_COLUMN,
    REP_NAME_COLUMN,
    Entity,
)
from src.import_.review.batch import CommitSelection, NewItem
from src.import_.review.merge_policy import build_payload
from src.services.audit_service import AuditService
from src.services.record_store_service import RecordStoreService
from src.settings import settings

logger = logging.getLogger(__name__)

AUDIT_EVENT_KIND = "report_uploaded"


class CommitStage(str, Enum):
    """Last stage a commit completed."""

    PENDING = "pending"
    LOOKUPS_RESOLVED = "lookups_resolved"
    SUBJECTS_CREATED = "subjects_created"
    DEPENDENTS_CREATED = "dependents_created"
    LINKED_RECORDS_ATTEMPTED = "linked_records_attempted"
    UPDATED = "updated"
    AUDITED = "audited"


# Failing to reach one of these stages aborts the commit
FATAL_STAGE_LABELS = {
    CommitStage.LOOKUPS_RESOLVED: "Insurance provider resolution",
    CommitStage.SUBJECTS_CREATED: "Patient creation",
    CommitStage.DEPENDENTS_CREATED: "Order creation",
}


@dataclass
class CommitOptions:
    """Batch-level settings chosen by the operator for one commit."""

    file_name: str
    rep_name: str | None = None
    operator_email: str | None = None
    referral_date: datetime | None = None
    stoplight_status: str = field(default_factory=lambda: settings.default_stoplight_status)


@dataclass
class UpdateFailure:
    subject_id: str
    row_number: int
    error: str


@dataclass
class CommitResult:
    """Outcome of a commit, used for the audit event and operator summary."""

    created: int = 0
    dependents_created: int = 0
    linked_created: int = 0
    updated: int = 0
    # Selected updates whose merged payload turned out empty
    unchanged: int = 0
    skipped: int = 0
    failed_updates: list[UpdateFailure] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    stage: CommitStage = CommitStage.PENDING
    audited: bool = False


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CommitExecutor:
    """Writes an approved review selection to the record store."""

    def __init__(
        self,
        store: RecordStoreService,
        audit: AuditService,
        required_documents: list[str] | None = None,
        equipment_category: str | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._store = store
        self._audit = audit
        self.required_documents = (
            list(required_documents)
            if required_documents is not None
            else list(settings.required_documents)
        )
        self.equipment_category = equipment_category or settings.equipment_category
        self._clock = clock

    async def execute(self, selection: CommitSelection, options: CommitOptions) -> CommitResult:
        """
        Commit the selection.

        Raises:
            CommitError: If resolving providers, creating patients or creating
                orders fails
        """
        result = CommitResult(skipped=selection.unselected_count + selection.skipped_count)

        orders: list[dict[str, Any]] = []
        if selection.new:
            lookup_ids = await self._fatal(
                CommitStage.LOOKUPS_RESOLVED, self._resolve_lookups(selection.new)
            )
            result.stage = CommitStage.LOOKUPS_RESOLVED

            patients = await self._fatal(
                CommitStage.SUBJECTS_CREATED,
                self._create_subjects(selection.new, lookup_ids, options),
            )
            result.created = len(patients)
            result.stage = CommitStage.SUBJECTS_CREATED

            orders = await self._fatal(
                CommitStage.DEPENDENTS_CREATED,
                self._create_dependents(selection.new, patients, options),
            )
            result.dependents_created = len(orders)
            result.stage = CommitStage.DEPENDENTS_CREATED
        else:
            result.stage = CommitStage.DEPENDENTS_CREATED

        await self._create_linked_records(selection.new, orders, result)
        result.stage = CommitStage.LINKED_RECORDS_ATTEMPTED

        await self._apply_updates(selection, result)
        result.stage = CommitStage.UPDATED

        result.audited = await self._audit.append_event(
            AUDIT_EVENT_KIND,
            {
                "file_name": options.file_name,
                "rep_name": options.rep_name,
                "imported": result.created,
                "updated": result.updated,
                "skipped": result.skipped,
                "unchanged": result.unchanged,
                "warnings": len(result.warnings),
            },
            changed_by=options.operator_email,
        )
        if not result.audited:
            result.warnings.append("Audit log entry could not be written")
        result.stage = CommitStage.AUDITED

        logger.info(
            "Commit of %s complete: %d created, %d updated, %d skipped, %d warnings",
            options.file_name,
            result.created,
            result.updated,
            result.skipped,
            len(result.warnings),
        )
        return result

    async def _fatal(self, stage: CommitStage, step: Any) -> Any:
        try:
            return await step
        except StoreError as e:
            label = FATAL_STAGE_LABELS[stage]
            logger.error("Commit aborted during %s: %s", label, e)
            # Providers are re-found on retry and patients are one insert;
            # once patients exist a retry would duplicate them
            raise CommitError(
                label, e, retryable=stage is not CommitStage.DEPENDENTS_CREATED
            ) from e

    async def _resolve_lookups(self, items: list[NewItem]) -> dict[str, str]:
        """Resolve each distinct insurance name once; keyed by normalized name."""
        resolved: dict[str, str] = {}
        for item in items:
            name = item.record.insurance
            key = normalize_key_part(name)
            if not key or key in resolved:
                continue
            resolved[key] = await self._resolve_lookup(str(name))
        logger.info("Resolved %d insurance providers", len(resolved))
        return resolved

    async def _resolve_lookup(self, name: str) -> str:
        existing = await self._store.find_lookup_by_name(name)
        if existing is not None:
            return str(existing["id"])
        try:
            created = await self._store.create_lookup(name)
        except UniqueViolationError:
            # Another upload created it between our find and create
            logger.info("Insurance provider %r created concurrently; re-resolving", name)
            existing = await self._store.find_lookup_by_name(name)
            if existing is None:
                raise
            return str(existing["id"])
        return str(created["id"])

    async def _create_subjects(
        self,
        items: list[NewItem],
        lookup_ids: dict[str, str],
        options: CommitOptions,
    ) -> list[dict[str, Any]]:
        payloads = []
        for item in items:
            insurance_key = normalize_key_part(item.record.insurance)
            payloads.append(
                {
                    **item.record.subject,
                    "insurance_provider_id": lookup_ids.get(insurance_key),
                    "required_documents": list(self.required_documents),
                    "stoplight_status": options.stoplight_status,
                }
            )
        patients = await self._store.create_subjects(payloads)
        if len(patients) != len(payloads):
            error = StoreError(
                f"Patient creation returned {len(patients)} of {len(payloads)} rows"
            )
            logger.error("Commit aborted after partial patient insert: %s", error)
            # Some patients may already be written, so the review is spent
            raise CommitError(FATAL_STAGE_LABELS[CommitStage.SUBJECTS_CREATED], error)
        return patients

    async def _create_dependents(
        self,
        items: list[NewItem],
        patients: list[dict[str, Any]],
        options: CommitOptions,
    ) -> list[dict[str, Any]]:
        referral_date = (options.referral_date or self._clock()).isoformat()
        payloads = []
        for item, patient in zip(items, patients):
            payloads.append(
                {
                    **item.record.dependent,
                    settings.dependent_foreign_key: patient["id"],
                    REP_NAME_COLUMN: options.rep_name
                    or item.record.dependent.get(REP_NAME_COLUMN),
                    "referral_date": referral_date,
                    "stoplight_status": options.stoplight_status,
                }
            )
        orders = await self._store.create_dependents(payloads)
        if len(orders) != len(payloads):
            raise StoreError(f"Order creation returned {len(orders)} of {len(payloads)} rows")
        return orders

    async def _create_linked_records(
        self,
        items: list[NewItem],
        orders: list[dict[str, Any]],
        result: CommitResult,
    ) -> None:
        for item, order in zip(items, orders):
            chair_type = item.record.dependent.get(CHAIR_TYPE_COLUMN)
            if not chair_type:
                continue
            payload = {
                settings.linked_foreign_key: order["id"],
                "category": self.equipment_category,
                "equipment_type": chair_type,
                "model": chair_type,
                "notes": item.record.dependent.get(ACCESSORIES_COLUMN),
            }
            try:
                created = await self._store.create_linked_records([payload])
                result.linked_created += len(created)
            except Exception as e:
                logger.exception(
                    "Failed to create equipment for order %s (row %d)",
                    order["id"],
                    item.record.row_number,
                )
                result.warnings.append(
                    f"Row {item.record.row_number}: patient and order created, "
                    f"but equipment record failed: {e}"
                )

    async def _apply_updates(self, selection: CommitSelection, result: CommitResult) -> None:
        for item in selection.updated:
            subject_payload = build_payload(
                item.changes_for(Entity.SUBJECT), selection.auto_merge_safe
            )
            latest = item.subject.latest_dependent
            dependent_payload = (
                build_payload(item.changes_for(Entity.DEPENDENT), selection.auto_merge_safe)
                if latest is not None
                else {}
            )

            if not subject_payload and not dependent_payload:
                result.unchanged += 1
                continue

            try:
                if subject_payload:
                    await self._store.update_subject(item.subject.id, subject_payload)
                if dependent_payload and latest is not None:
                    await self._store.update_dependent(latest.id, dependent_payload)
            except StoreError as e:
                logger.warning(
                    "Failed to update patient %s (row %d): %s",
                    item.subject.id,
                    item.record.row_number,
                    e,
                )
                result.failed_updates.append(
                    UpdateFailure(
                        subject_id=item.subject.id,
                        row_number=item.record.row_number,
                        error=str(e),
                    )
                )
                result.warnings.append(f"Row {item.record.row_number}: update failed: {e}")
                continue

            result.updated += 1
