"""
Import gateway - orchestrates the report import pipeline.

Review phase (no writes):
1. Decode and parse the uploaded file
2. Resolve the rep name (workbook banner, mapping constant, or fallback)
3. Map rows onto records
4. Load existing patients by name and build the review batch

Commit phase:
5. Hand the operator-approved selection to the CommitExecutor
"""

import base64
import binascii
import logging

from src.exceptions import ParseError
from src.import_.commit.executor import CommitExecutor, CommitOptions, CommitResult
from src.import_.mapping.config import FieldMapping
from src.import_.mapping.row_mapper import map_rows
from src.import_.parsing.report_parser import parse_report, resolve_rep_name
from src.import_.review.batch import build_review_batch
from src.import_.review.sessions import ReviewSession
from src.services.record_store_service import RecordStoreService
from src.settings import settings

logger = logging.getLogger(__name__)


def decode_upload(data_base64: str, max_bytes: int | None = None) -> bytes:
    """Decode a base64 upload, enforcing the size limit."""
    try:
        content = base64.b64decode(data_base64, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ParseError(f"Failed to decode file data: {e}") from e

    limit = max_bytes or settings.max_upload_bytes
    if len(content) > limit:
        raise ParseError(
            f"File is {len(content)} bytes; the limit is {limit} bytes"
        )
    return content


async def prepare_review(
    content: bytes,
    file_name: str,
    mapping: FieldMapping,
    store: RecordStoreService,
) -> ReviewSession:
    """
    Build a review session for an uploaded report.

    Raises:
        ParseError: If the file cannot be parsed
        StoreError: If existing patients cannot be loaded
    """
    report = parse_report(content, file_name)
    rep_name = resolve_rep_name(report, mapping.constants, settings.default_rep_name)
    run_mapping = mapping.with_constants(rep_name=rep_name)

    records = map_rows(report.rows, run_mapping)
    logger.info(
        "Parsed %s (%s): %d rows, rep=%s",
        file_name,
        report.file_format,
        len(records),
        rep_name,
    )

    names = [str(r.name) for r in records if r.name]
    existing = await store.find_subjects_by_natural_key(names) if names else []

    batch = build_review_batch(records, existing)
    logger.info(
        "Review for %s: %d new, %d updated, %d skipped",
        file_name,
        len(batch.new_records),
        len(batch.updated_records),
        len(batch.skipped_records),
    )

    return ReviewSession(
        file_name=file_name,
        file_format=report.file_format,
        rep_name=rep_name,
        batch=batch,
    )


async def commit_review(
    session: ReviewSession,
    executor: CommitExecutor,
    options: CommitOptions,
) -> CommitResult:
    """Commit the currently selected items of a review session."""
    selection = session.batch.selection()
    logger.info(
        "Committing review %s: %d new, %d updated selected (auto_merge_safe=%s)",
        session.review_id,
        len(selection.new),
        len(selection.updated),
        selection.auto_merge_safe,
    )
    return await executor.execute(selection, options)
