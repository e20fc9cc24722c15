"""
In-process registry of pending review batches.

A review lives here between the upload request and the commit or discard
request. Nothing in a pending review has been written to the store, so
dropping one has no side effects.
"""

import asyncio
import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from uuid import UUID, uuid4

from src.exceptions import ReviewNotFoundError
from src.import_.review.batch import ReviewBatch

logger = logging.getLogger(__name__)


@dataclass
class ReviewSession:
    """One uploaded report awaiting operator review."""

    file_name: str
    file_format: str
    rep_name: str
    batch: ReviewBatch
    review_id: UUID = field(default_factory=uuid4)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class ReviewSessionRegistry:
    """Bounded map of review id -> ReviewSession; oldest evicted first."""

    def __init__(self, max_sessions: int):
        self.max_sessions = max_sessions
        self._sessions: OrderedDict[UUID, ReviewSession] = OrderedDict()
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._sessions)

    async def add(self, session: ReviewSession) -> None:
        async with self._lock:
            self._sessions[session.review_id] = session
            while len(self._sessions) > self.max_sessions:
                evicted_id, evicted = self._sessions.popitem(last=False)
                logger.warning(
                    "Dropped pending review %s (%s) to stay under %d reviews",
                    evicted_id,
                    evicted.file_name,
                    self.max_sessions,
                )

    async def get(self, review_id: UUID) -> ReviewSession:
        async with self._lock:
            session = self._sessions.get(review_id)
        if session is None:
            raise ReviewNotFoundError(f"Review {review_id} not found")
        return session

    async def pop(self, review_id: UUID) -> ReviewSession:
        """Remove and return a review so it cannot be committed twice."""
        async with self._lock:
            session = self._sessions.pop(review_id, None)
        if session is None:
            raise ReviewNotFoundError(f"Review {review_id} not found")
        return session
