"""
Audit log writer.

Appends events to the store's audit table. Writing the audit trail is
fire-and-forget for callers: a failed write is logged and never raised.
"""

import logging
from typing import Any

from src.services.record_store_service import RecordStoreService
from src.settings import settings

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "System"


class AuditService:
    """Append-only audit event writer."""

    def __init__(self, store: RecordStoreService, table: str | None = None):
        self._store = store
        self.table = table or settings.audit_table

    async def append_event(
        self,
        kind: str,
        details: dict[str, Any],
        changed_by: str | None = None,
        changed_user: str | None = None,
    ) -> bool:
        """
        Append one audit event.

        Args:
            kind: Event action name (e.g. "report_uploaded")
            details: Event details stored as JSON
            changed_by: Actor email; defaults to "System"
            changed_user: User the event is about, if any

        Returns:
            True if the event was written, False if the write failed
        """
        row = {
            "action": kind,
            "changed_by": changed_by or SYSTEM_ACTOR,
            "changed_user": changed_user,
            "details": details,
        }
        try:
            await self._store.insert(self.table, [row])
        except Exception:
            logger.exception("Failed to write audit event %s", kind)
            return False
        return True
