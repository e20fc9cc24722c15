"""Dependency provider for the record store service."""

from functools import lru_cache

from src.services.record_store_service import RecordStoreService


@lru_cache(maxsize=1)
def get_record_store_service() -> RecordStoreService:
    """Get singleton RecordStoreService instance."""
    return RecordStoreService()
