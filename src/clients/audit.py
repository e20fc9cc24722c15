"""Dependency provider for the audit service."""

from functools import lru_cache

from src.clients.record_store import get_record_store_service
from src.services.audit_service import AuditService


@lru_cache(maxsize=1)
def get_audit_service() -> AuditService:
    """Get singleton AuditService writing through the record store."""
    return AuditService(get_record_store_service())
