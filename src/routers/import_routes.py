"""Import endpoints for referral reports."""

import logging
from uuid import UUID

from fastapi import APIRouter, HTTPException, Response, status

from src.exceptions import CommitError, ParseError, ReviewNotFoundError
from src.core.auth import Permissions, require_permission
from src.import_.commit.executor import CommitExecutor, CommitOptions
from src.import_.gateway import commit_review, decode_upload, prepare_review
from src.import_.review.batch import ItemKind
from src.import_.review.sessions import ReviewSession
from src.routers.deps import (
    AuditServiceDep,
    CurrentUserDep,
    FieldMappingDep,
    RecordStoreServiceDep,
    ReviewRegistryDep,
)
from src.schemas.import_schemas import (
    CommitRequest,
    CommitResponse,
    ReportUploadRequest,
    ReviewResponse,
    SelectionUpdateRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/import/reports",
    tags=["Import"],
    dependencies=[require_permission(Permissions.IMPORT_READ)],
)

WriteAccess = require_permission(Permissions.IMPORT_WRITE)


def _apply_selection(session: ReviewSession, request: SelectionUpdateRequest) -> None:
    batch = session.batch
    try:
        if request.selected_new is not None:
            batch.select_only(ItemKind.NEW, request.selected_new)
        if request.selected_updated is not None:
            batch.select_only(ItemKind.UPDATED, request.selected_updated)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e),
        ) from e
    if request.auto_merge_safe is not None:
        batch.auto_merge_safe = request.auto_merge_safe


async def _get_session(registry: ReviewRegistryDep, review_id: UUID) -> ReviewSession:
    try:
        return await registry.get(review_id)
    except ReviewNotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(e),
        ) from e


@router.post(
    "",
    response_model=ReviewResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[WriteAccess],
)
async def upload_report(
    request: ReportUploadRequest,
    record_store: RecordStoreServiceDep,
    mapping: FieldMappingDep,
    registry: ReviewRegistryDep,
    current_user: CurrentUserDep,
) -> ReviewResponse:
    """
    Upload a referral report (CSV or XLSX) and get a review batch.

    Rows are mapped, matched against existing patients and diffed. Nothing
    is written until the review is committed.
    """
    try:
        content = decode_upload(request.data)
        session = await prepare_review(content, request.file_name, mapping, record_store)
    except ParseError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e),
        ) from e

    await registry.add(session)
    logger.info(
        "Review %s created for %s by %s",
        session.review_id,
        request.file_name,
        current_user.email or current_user.service_name,
    )
    return ReviewResponse.from_session(session)


@router.get("/{review_id}", response_model=ReviewResponse)
async def get_review(review_id: UUID, registry: ReviewRegistryDep) -> ReviewResponse:
    """Get a pending review batch."""
    session = await _get_session(registry, review_id)
    return ReviewResponse.from_session(session)


@router.patch(
    "/{review_id}/selection", response_model=ReviewResponse, dependencies=[WriteAccess]
)
async def update_selection(
    review_id: UUID,
    request: SelectionUpdateRequest,
    registry: ReviewRegistryDep,
) -> ReviewResponse:
    """Accept or reject items, or toggle safe merge, before committing."""
    session = await _get_session(registry, review_id)
    _apply_selection(session, request)
    return ReviewResponse.from_session(session)


@router.post(
    "/{review_id}/commit", response_model=CommitResponse, dependencies=[WriteAccess]
)
async def commit_report(
    review_id: UUID,
    request: CommitRequest,
    record_store: RecordStoreServiceDep,
    audit: AuditServiceDep,
    registry: ReviewRegistryDep,
    current_user: CurrentUserDep,
) -> CommitResponse:
    """
    Commit the selected items of a review.

    Creates providers, patients, orders and equipment for selected new
    records, applies merged changes to selected updated records, and writes
    one audit event. The review is consumed by this call.
    """
    session = await _get_session(registry, review_id)
    _apply_selection(session, request)

    if session.batch.selection().is_empty:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No records selected",
        )

    try:
        session = await registry.pop(review_id)
    except ReviewNotFoundError as e:
        # Committed or discarded by a concurrent request
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(e),
        ) from e

    executor = CommitExecutor(record_store, audit)
    options = CommitOptions(
        file_name=session.file_name,
        rep_name=session.rep_name,
        operator_email=current_user.email,
        referral_date=request.referral_date,
        stoplight_status=request.stoplight_status.value,
    )

    try:
        result = await commit_review(session, executor, options)
    except CommitError as e:
        if e.retryable:
            await registry.add(session)
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Import failed: {e}",
        ) from e

    return CommitResponse.from_result(session.review_id, result)


@router.delete(
    "/{review_id}", status_code=status.HTTP_204_NO_CONTENT, dependencies=[WriteAccess]
)
async def discard_review(review_id: UUID, registry: ReviewRegistryDep) -> Response:
    """Discard a pending review. Nothing has been written, so nothing is undone."""
    try:
        await registry.pop(review_id)
    except ReviewNotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(e),
        ) from e
    return Response(status_code=status.HTTP_204_NO_CONTENT)
