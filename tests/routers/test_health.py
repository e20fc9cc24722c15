"""Tests for health endpoint."""

import pytest

from src.exceptions import StoreError
from tests.conftest import ClientFactory, FakeRecordStore


class TestHealthEndpoint:
    """Tests for the /health endpoint."""

    @pytest.mark.anyio
    async def test_health_returns_healthy_when_store_available(
        self,
        client_factory: ClientFactory,
    ) -> None:
        """Health check returns healthy when the record store answers."""
        async with client_factory() as client:
            response = await client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["record_store"] is True

    @pytest.mark.anyio
    async def test_health_returns_degraded_when_store_unavailable(
        self,
        client_factory: ClientFactory,
        fake_store: FakeRecordStore,
    ) -> None:
        """Health check returns degraded when the record store is unreachable."""
        fake_store.failures["health_check"] = StoreError("unreachable")

        async with client_factory() as client:
            response = await client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "degraded"
        assert data["record_store"] is False
