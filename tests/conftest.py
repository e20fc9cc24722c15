"""Test configuration and fixtures."""

import itertools
from datetime import datetime, timezone
from typing import Any, AsyncGenerator, Generator, Protocol

import pytest
from httpx import ASGITransport, AsyncClient

from src.clients.audit import get_audit_service
from src.clients.field_mapping import get_field_mapping
from src.clients.record_store import get_record_store_service
from src.clients.review_sessions import get_review_registry
from src.core.auth import AuthenticatedUser, get_current_user
from src.exceptions import StoreError, UniqueViolationError
from src.import_.mapping.config import FieldMapping, load_field_mapping
from src.import_.matching.patient_matcher import normalize_key_part
from src.import_.records import SubjectRecord
from src.import_.review.sessions import ReviewSessionRegistry
from src.main import app
from src.services.audit_service import AuditService
from src.settings import DEFAULT_MAPPING_PATH

TEST_OPERATOR_EMAIL = "operator@example.com"


@pytest.fixture(scope="session")
def anyio_backend() -> str:
    """Configure pytest-anyio to use asyncio."""
    return "asyncio"


class FakeRecordStore:
    """
    In-memory stand-in for RecordStoreService.

    Tables are plain lists of dicts. Set `failures[<method name>]` to make
    that method raise, or add ids to `failing_subject_ids` to fail updates
    of specific patients.
    """

    def __init__(self) -> None:
        self.patients: list[dict[str, Any]] = []
        self.orders: list[dict[str, Any]] = []
        self.providers: list[dict[str, Any]] = []
        self.equipment: list[dict[str, Any]] = []
        self.audit_log: list[dict[str, Any]] = []
        self.subject_updates: list[tuple[str, dict[str, Any]]] = []
        self.dependent_updates: list[tuple[str, dict[str, Any]]] = []
        self.failures: dict[str, Exception] = {}
        self.failing_subject_ids: set[str] = set()
        # Equipment inserts for these chair types fail
        self.failing_chair_types: set[str] = set()
        self._ids = itertools.count(1)

    def _next_id(self, prefix: str) -> str:
        return f"{prefix}-{next(self._ids)}"

    def _check(self, operation: str) -> None:
        exc = self.failures.get(operation)
        if exc is not None:
            raise exc

    def add_patient(
        self,
        name: str,
        primary_insurance: str | None = None,
        orders: list[dict[str, Any]] | None = None,
        **fields: Any,
    ) -> dict[str, Any]:
        """Seed an existing patient and its orders."""
        patient = {
            "id": self._next_id("patient"),
            "name": name,
            "primary_insurance": primary_insurance,
            **fields,
        }
        self.patients.append(patient)
        for order in orders or []:
            self.orders.append(
                {
                    "id": self._next_id("order"),
                    "created_at": datetime(2024, 1, 1, tzinfo=timezone.utc).isoformat(),
                    **order,
                    "patient_id": patient["id"],
                }
            )
        return patient

    def orders_for(self, patient_id: str) -> list[dict[str, Any]]:
        return [o for o in self.orders if o["patient_id"] == patient_id]

    async def close(self) -> None:
        pass

    async def health_check(self) -> bool:
        return "health_check" not in self.failures

    async def find_subjects_by_natural_key(self, names: list[str]) -> list[SubjectRecord]:
        self._check("find_subjects_by_natural_key")
        wanted = {normalize_key_part(n) for n in names}
        return [
            SubjectRecord.from_row({**p, "orders": self.orders_for(p["id"])})
            for p in self.patients
            if normalize_key_part(p.get("name")) in wanted
        ]

    async def find_lookup_by_name(self, name: str) -> dict[str, Any] | None:
        self._check("find_lookup_by_name")
        for provider in self.providers:
            if normalize_key_part(provider["name"]) == normalize_key_part(name):
                return provider
        return None

    async def create_lookup(self, name: str) -> dict[str, Any]:
        self._check("create_lookup")
        if any(normalize_key_part(p["name"]) == normalize_key_part(name) for p in self.providers):
            raise UniqueViolationError("duplicate key value", code="23505")
        provider = {"id": self._next_id("provider"), "name": name.strip().upper()}
        self.providers.append(provider)
        return provider

    async def create_subjects(self, payloads: list[dict[str, Any]]) -> list[dict[str, Any]]:
        self._check("create_subjects")
        created = [{"id": self._next_id("patient"), **p} for p in payloads]
        self.patients.extend(created)
        return created

    async def create_dependents(self, payloads: list[dict[str, Any]]) -> list[dict[str, Any]]:
        self._check("create_dependents")
        created = [
            {
                "id": self._next_id("order"),
                "created_at": datetime.now(timezone.utc).isoformat(),
                **p,
            }
            for p in payloads
        ]
        self.orders.extend(created)
        return created

    async def create_linked_records(
        self, payloads: list[dict[str, Any]]
    ) -> list[dict[str, Any]]:
        self._check("create_linked_records")
        for p in payloads:
            if p.get("equipment_type") in self.failing_chair_types:
                raise StoreError(f"equipment insert rejected for {p['equipment_type']}")
        created = [{"id": self._next_id("equipment"), **p} for p in payloads]
        self.equipment.extend(created)
        return created

    async def update_subject(self, subject_id: str, payload: dict[str, Any]) -> None:
        self._check("update_subject")
        if subject_id in self.failing_subject_ids:
            raise StoreError(f"update rejected for {subject_id}")
        self.subject_updates.append((subject_id, payload))
        for patient in self.patients:
            if patient["id"] == subject_id:
                patient.update(payload)

    async def update_dependent(self, dependent_id: str, payload: dict[str, Any]) -> None:
        self._check("update_dependent")
        self.dependent_updates.append((dependent_id, payload))
        for order in self.orders:
            if order["id"] == dependent_id:
                order.update(payload)

    async def insert(self, table: str, rows: list[dict[str, Any]]) -> None:
        self._check("insert")
        if table == "audit_log":
            self.audit_log.extend(rows)


@pytest.fixture
def fake_store() -> FakeRecordStore:
    """Empty in-memory record store."""
    return FakeRecordStore()


@pytest.fixture
def audit_service(fake_store: FakeRecordStore) -> AuditService:
    """Audit service writing into the fake store."""
    return AuditService(fake_store)  # type: ignore[arg-type]


@pytest.fixture
def field_mapping() -> FieldMapping:
    """The shipped field mapping document."""
    return load_field_mapping(DEFAULT_MAPPING_PATH)


@pytest.fixture
def review_registry() -> ReviewSessionRegistry:
    """Fresh review registry per test."""
    return ReviewSessionRegistry(max_sessions=10)


@pytest.fixture
def mock_authenticated_user() -> AuthenticatedUser:
    """Mock authenticated operator for testing."""
    return AuthenticatedUser(
        auth_type="operator",
        user_id="test-user-id",
        email=TEST_OPERATOR_EMAIL,
        role="authenticated",
    )


class ClientFactory(Protocol):
    """Protocol for client factory fixture."""

    def __call__(self) -> AsyncClient: ...


@pytest.fixture
def client_factory(
    fake_store: FakeRecordStore,
    audit_service: AuditService,
    field_mapping: FieldMapping,
    review_registry: ReviewSessionRegistry,
    mock_authenticated_user: AuthenticatedUser,
) -> Generator[ClientFactory, None, None]:
    """Factory for creating test clients with in-memory dependencies."""

    def _create_client() -> AsyncClient:
        app.dependency_overrides[get_record_store_service] = lambda: fake_store
        app.dependency_overrides[get_audit_service] = lambda: audit_service
        app.dependency_overrides[get_field_mapping] = lambda: field_mapping
        app.dependency_overrides[get_review_registry] = lambda: review_registry
        app.dependency_overrides[get_current_user] = lambda: mock_authenticated_user

        transport = ASGITransport(app=app)
        return AsyncClient(transport=transport, base_url="http://testserver")

    yield _create_client

    app.dependency_overrides.clear()


@pytest.fixture
async def client(
    client_factory: ClientFactory,
) -> AsyncGenerator[AsyncClient, None]:
    """Async client for testing endpoints."""
    async with client_factory() as c:
        yield c


SAMPLE_REPORT_CSV = (
    "Name,Insurance,Phone,Chair Type,First Item,Referring Physician,Notes\n"
    "Jane Doe,Acme ,555-0100,Group 3,Tilt,Dr. Who,ignored\n"
    "John Smith,ACME,555-2222,Manual,,Dr. No,\n"
    ",,,,,,\n"
    "Ann Lee,Blue Shield,,,,,\n"
)


@pytest.fixture
def sample_report_csv() -> bytes:
    """Sample referral report in CSV form."""
    return SAMPLE_REPORT_CSV.encode("utf-8")
