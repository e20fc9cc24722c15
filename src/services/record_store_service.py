"""
Record store client for the hosted data store.

Talks to a PostgREST-compatible REST API. The import engine only needs
find/create/update operations and trusts the store for durability; store
errors are raised as StoreError, and uniqueness violations (Postgres code
23505) as UniqueViolationError so callers can re-resolve instead of failing.
"""

import logging
from typing import Any

import httpx

from src.exceptions import StoreError, UniqueViolationError
from src.import_.matching.patient_matcher import normalize_key_part
from src.import_.records import NAME_COLUMN, SubjectRecord
from src.settings import settings

logger = logging.getLogger(__name__)

UNIQUE_VIOLATION_CODE = "23505"
# Keep filter query strings well under common URL length limits
NAME_QUERY_CHUNK = 100


def _like_literal(value: str) -> str:
    """Escape a value for use as a literal ilike pattern."""
    escaped = value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    # PostgREST treats * as a wildcard; a single-char wildcard keeps the
    # result a superset and callers filter exactly afterwards
    return escaped.replace("*", "_")


def _quote(value: str) -> str:
    """Quote a value for a PostgREST list literal."""
    return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'


class RecordStoreService:
    """HTTP client for the patient/order record store."""

    def __init__(
        self,
        base_url: str | None = None,
        service_key: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = (base_url or settings.store_url).rstrip("/")
        self.service_key = service_key if service_key is not None else settings.store_service_key
        self.timeout = timeout or settings.store_timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=f"{self.base_url}/rest/v1",
                timeout=self.timeout,
                transport=self._transport,
                headers={
                    "apikey": self.service_key,
                    "Authorization": f"Bearer {self.service_key}",
                },
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, str] | None = None,
        json: Any = None,
        prefer: str | None = None,
    ) -> Any:
        client = await self._get_client()
        headers = {"Prefer": prefer} if prefer else None
        try:
            response = await client.request(
                method, path, params=params, json=json, headers=headers
            )
        except httpx.HTTPError as e:
            raise StoreError(f"Record store unreachable: {e}") from e

        if response.is_error:
            raise self._to_store_error(response)

        if not response.content:
            return None
        return response.json()

    @staticmethod
    def _to_store_error(response: httpx.Response) -> StoreError:
        code: str | None = None
        message = response.text or response.reason_phrase
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            code = body.get("code")
            message = body.get("message") or message
            if body.get("details"):
                message = f"{message} ({body['details']})"

        if code == UNIQUE_VIOLATION_CODE:
            return UniqueViolationError(message, code=code)
        logger.error(
            "Record store error: status=%s, code=%s, message=%s",
            response.status_code,
            code,
            message,
        )
        return StoreError(f"{response.status_code}: {message}", code=code)

    async def health_check(self) -> bool:
        """Check the store answers a trivial query."""
        try:
            await self._request(
                "GET",
                f"/{settings.subject_table}",
                params={"select": "id", "limit": "1"},
            )
            return True
        except StoreError:
            logger.warning("Record store health check failed", exc_info=True)
            return False

    async def find_subjects_by_natural_key(self, names: list[str]) -> list[SubjectRecord]:
        """
        Load patients (with their orders) whose name matches any of the names.

        Matching here is case-insensitive and may over-fetch; the caller does
        the exact key comparison.
        """
        distinct: dict[str, str] = {}
        for name in names:
            if name and name.strip():
                distinct.setdefault(normalize_key_part(name), name.strip())
        if not distinct:
            return []

        values = list(distinct.values())
        select = f"*,{settings.dependent_table}(*)"
        subjects: dict[str, SubjectRecord] = {}

        for start in range(0, len(values), NAME_QUERY_CHUNK):
            chunk = values[start : start + NAME_QUERY_CHUNK]
            patterns = ",".join(_quote(_like_literal(v)) for v in chunk)
            rows = await self._request(
                "GET",
                f"/{settings.subject_table}",
                params={
                    "select": select,
                    NAME_COLUMN: f"ilike(any).{{{patterns}}}",
                },
            )
            for row in rows or []:
                subject = SubjectRecord.from_row(row, dependents_key=settings.dependent_table)
                subjects[subject.id] = subject

        logger.info(
            "Loaded %d existing patients for %d distinct names",
            len(subjects),
            len(values),
        )
        return list(subjects.values())

    async def find_lookup_by_name(self, name: str) -> dict[str, Any] | None:
        """Find an insurance provider by case-insensitive name."""
        rows = await self._request(
            "GET",
            f"/{settings.lookup_table}",
            params={"select": "id,name", "name": f"ilike.{_like_literal(name.strip())}"},
        )
        wanted = normalize_key_part(name)
        for row in rows or []:
            if normalize_key_part(row.get("name")) == wanted:
                return row
        return None

    async def create_lookup(self, name: str) -> dict[str, Any]:
        """
        Create an insurance provider named after the upper-cased value.

        Raises:
            UniqueViolationError: If a provider with that name already exists
        """
        rows = await self._insert(
            settings.lookup_table, [{"name": name.strip().upper(), "source": "import"}]
        )
        if not rows:
            raise StoreError("Insurance provider creation returned no data")
        return rows[0]

    async def create_subjects(self, payloads: list[dict[str, Any]]) -> list[dict[str, Any]]:
        return await self._insert(settings.subject_table, payloads)

    async def create_dependents(self, payloads: list[dict[str, Any]]) -> list[dict[str, Any]]:
        return await self._insert(settings.dependent_table, payloads)

    async def create_linked_records(
        self, payloads: list[dict[str, Any]]
    ) -> list[dict[str, Any]]:
        return await self._insert(settings.linked_table, payloads)

    async def update_subject(self, subject_id: str, payload: dict[str, Any]) -> None:
        await self._update(settings.subject_table, subject_id, payload)

    async def update_dependent(self, dependent_id: str, payload: dict[str, Any]) -> None:
        await self._update(settings.dependent_table, dependent_id, payload)

    async def insert(self, table: str, rows: list[dict[str, Any]]) -> None:
        """Insert rows without reading them back."""
        await self._request("POST", f"/{table}", json=rows, prefer="return=minimal")

    async def _insert(self, table: str, rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
        if not rows:
            return []
        created = await self._request(
            "POST", f"/{table}", json=rows, prefer="return=representation"
        )
        return list(created or [])

    async def _update(self, table: str, row_id: str, payload: dict[str, Any]) -> None:
        if not payload:
            return
        await self._request(
            "PATCH",
            f"/{table}",
            params={"id": f"eq.{row_id}"},
            json=payload,
            prefer="return=minimal",
        )
