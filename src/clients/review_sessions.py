"""Dependency provider for the pending review registry."""

from src.import_.review.sessions import ReviewSessionRegistry
from src.settings import settings

# Module-level singleton
_review_registry: ReviewSessionRegistry | None = None


def get_review_registry() -> ReviewSessionRegistry:
    """Get the review registry singleton."""
    global _review_registry
    if _review_registry is None:
        _review_registry = ReviewSessionRegistry(settings.max_pending_reviews)
    return _review_registry
