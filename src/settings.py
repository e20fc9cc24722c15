"""
Application settings for the Intake import service.

- Defaults are intended for development use against a local store.
- For production, set environment variables to override fields.
"""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_MAPPING_PATH = Path(__file__).parent / "import_" / "mapping" / "import_mapping.json"


class Settings(BaseSettings):
    """Intake service configuration."""

    # Record store (PostgREST-compatible hosted data store)
    store_url: str = Field(
        default="http://localhost:54321",
        description="Base URL of the hosted record store",
    )
    store_service_key: str = Field(
        default="",
        description="Service API key sent with every store request",
    )
    store_jwt_secret: str = Field(
        default="dev-jwt-secret-not-for-production-use",
        description="Secret used to verify operator bearer tokens",
    )
    store_jwt_audience: str = Field(
        default="authenticated",
        description="Expected audience claim of operator bearer tokens",
    )
    service_auth_secret: str = Field(
        default="dev-service-secret-not-for-production-use",
        description="Secret used to sign and verify service tokens",
    )
    store_timeout: float = Field(
        default=30.0,
        description="Timeout for record store requests in seconds",
    )

    # Table layout
    subject_table: str = Field(default="patients")
    dependent_table: str = Field(default="orders")
    dependent_foreign_key: str = Field(
        default="patient_id",
        description="Column on the dependent table referencing the subject id",
    )
    lookup_table: str = Field(default="insurance_providers")
    linked_table: str = Field(default="equipment")
    linked_foreign_key: str = Field(
        default="order_id",
        description="Column on the linked table referencing the dependent id",
    )
    audit_table: str = Field(default="audit_log")

    # Import behavior
    import_mapping_path: Path = Field(
        default=DEFAULT_MAPPING_PATH,
        description="JSON document with fields/constants/defaults sections",
    )
    default_rep_name: str = Field(
        default="Unknown Rep",
        description="Rep name used when neither the file nor the mapping supplies one",
    )
    default_stoplight_status: str = Field(default="green")
    equipment_category: str = Field(
        default="Power Wheelchair",
        description="Category stamped on equipment records created from chair types",
    )
    required_documents: list[str] = Field(
        default_factory=lambda: ["f2f", "pt_eval", "swo", "dpd", "hipaa", "insurance_card"],
        description="Document checklist assigned to newly imported patients",
    )
    max_upload_bytes: int = Field(
        default=5 * 1024 * 1024,
        description="Maximum decoded size of an uploaded report",
    )
    max_pending_reviews: int = Field(
        default=50,
        description="Pending review batches kept in memory before the oldest is dropped",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


settings = Settings()
