"""Tests for the pending review registry."""

from uuid import uuid4

import pytest

from src.exceptions import ReviewNotFoundError
from src.import_.review.batch import ReviewBatch
from src.import_.review.sessions import ReviewSession, ReviewSessionRegistry


def _session(file_name: str = "referrals.csv") -> ReviewSession:
    return ReviewSession(
        file_name=file_name,
        file_format="csv",
        rep_name="Unknown Rep",
        batch=ReviewBatch(),
    )


class TestReviewSessionRegistry:
    """Tests for ReviewSessionRegistry."""

    @pytest.mark.anyio
    async def test_add_and_get(self) -> None:
        registry = ReviewSessionRegistry(max_sessions=5)
        session = _session()

        await registry.add(session)

        assert await registry.get(session.review_id) is session
        assert len(registry) == 1

    @pytest.mark.anyio
    async def test_pop_removes(self) -> None:
        registry = ReviewSessionRegistry(max_sessions=5)
        session = _session()
        await registry.add(session)

        assert await registry.pop(session.review_id) is session

        with pytest.raises(ReviewNotFoundError):
            await registry.pop(session.review_id)

    @pytest.mark.anyio
    async def test_unknown_review(self) -> None:
        registry = ReviewSessionRegistry(max_sessions=5)

        with pytest.raises(ReviewNotFoundError):
            await registry.get(uuid4())

    @pytest.mark.anyio
    async def test_oldest_evicted_at_capacity(self) -> None:
        registry = ReviewSessionRegistry(max_sessions=2)
        first, second, third = _session("a.csv"), _session("b.csv"), _session("c.csv")

        for session in (first, second, third):
            await registry.add(session)

        assert len(registry) == 2
        with pytest.raises(ReviewNotFoundError):
            await registry.get(first.review_id)
        assert await registry.get(third.review_id) is third
