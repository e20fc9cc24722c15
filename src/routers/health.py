"""Health check endpoint."""

from fastapi import APIRouter

from src.routers.deps import RecordStoreServiceDep
from src.schemas.health import HealthResponse

router = APIRouter(tags=["Health"])


@router.get("/health", response_model=HealthResponse)
async def health_check(
    record_store: RecordStoreServiceDep,
) -> HealthResponse:
    """Check service health including record store connectivity."""
    store_healthy = await record_store.health_check()

    return HealthResponse(
        status="healthy" if store_healthy else "degraded",
        record_store=store_healthy,
    )
