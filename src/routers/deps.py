"""Shared dependencies for routers."""

from typing import Annotated

from fastapi import Depends

from src.clients.audit import get_audit_service
from src.clients.field_mapping import get_field_mapping
from src.clients.record_store import get_record_store_service
from src.clients.review_sessions import get_review_registry
from src.core.auth import AuthenticatedUser, get_current_user
from src.import_.mapping.config import FieldMapping
from src.import_.review.sessions import ReviewSessionRegistry
from src.services.audit_service import AuditService
from src.services.record_store_service import RecordStoreService

# Typed dependency aliases for use in endpoint signatures
RecordStoreServiceDep = Annotated[RecordStoreService, Depends(get_record_store_service)]
AuditServiceDep = Annotated[AuditService, Depends(get_audit_service)]
FieldMappingDep = Annotated[FieldMapping, Depends(get_field_mapping)]
ReviewRegistryDep = Annotated[ReviewSessionRegistry, Depends(get_review_registry)]
CurrentUserDep = Annotated[AuthenticatedUser, Depends(get_current_user)]
