from functools import lru_cache
import json
from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _parse_list_value(value: str) -> list[str]:
    if not value:
        return []
    if isinstance(value, str):
        raw = value.strip()
        if raw == "":
            return []
        try:
            parsed = json.loads(raw)
            if isinstance(parsed, list):
                return [str(item).strip() for item in parsed if str(item).strip()]
        except ValueError:
            pass
        return [item.strip() for item in raw.split(",") if item.strip()]
    if isinstance(value, list):
        return [str(item).strip() for item in value if str(item).strip()]
    return []


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        extra="ignore",
        validate_by_name=True,
        populate_by_name=True,
    )
    environment: str = "development"
    database_url: str = ""

    jwt_secret: str = Field(
        default="",
        validation_alias=AliasChoices("JWT_SECRET", "AUTH_JWT_SECRET"),
    )
    jwt_audience: str = ""

    smtp_host: str = ""
    smtp_port: int = 465
    smtp_user: str = ""
    smtp_password: str = Field(
        default="",
        validation_alias=AliasChoices("SMTP_PASSWORD", "SMTP_PASS"),
    )
    smtp_use_tls: bool = True
    email_from: str = Field(
        default="",
        validation_alias=AliasChoices("EMAIL_FROM", "EMAIL_USER"),
    )
    email_from_name: str = "SEOcial Media Solution Team"
    brand_name: str = "SEOcial Media Solution"
    public_base_url: str = ""
    default_currency: str = "INR"

    notification_timeout_seconds: float = 15.0
    enable_notification_outbox: bool = False
    enable_recurring_jobs: bool = False
    notification_worker_interval_seconds: int = 30
    notification_worker_batch_size: int = 50
    notification_worker_max_attempts: int = 5

    pii_redaction_enabled: bool = Field(
        default=True,
        validation_alias=AliasChoices("PII_REDACTION_ENABLED"),
    )
    pii_redaction_fields: list[str] = Field(
        default_factory=lambda: [
            "phone",
            "email",
            "client_email",
            "client_phone",
        ],
        validation_alias=AliasChoices("PII_REDACTION_FIELDS"),
    )

    rate_limit_api_enabled: bool = False
    rate_limit_api_per_min: int = 300
    rate_limit_submit_per_min: int = 10
    trusted_proxy_cidrs: list[str] = Field(default_factory=list)

    docs_enabled: bool = Field(default=True)
    openapi_enabled: bool = Field(default=True)
    expose_error_details: bool = False

    security_headers_enabled: bool = Field(
        default=True,
        validation_alias=AliasChoices("SECURITY_HEADERS_ENABLED", "SECURE_HEADERS_ENABLED"),
    )

    admin_ip_allowlist_raw: str = Field(
        default="",
        validation_alias=AliasChoices("ADMIN_IP_ALLOWLIST"),
    )

    cors_allow_origins: list[str] = Field(default_factory=list)
    cors_allow_methods: list[str] = Field(default_factory=lambda: [
        "GET",
        "POST",
        "PUT",
        "DELETE",
        "OPTIONS",
    ])
    cors_allow_headers: list[str] = Field(default_factory=lambda: [
        "Authorization",
        "Content-Type",
        "Accept",
    ])

    @field_validator(
        "cors_allow_origins",
        "cors_allow_methods",
        "cors_allow_headers",
        "pii_redaction_fields",
        "trusted_proxy_cidrs",
        mode="before",
    )
    @classmethod
    def _split_csv(cls, value):
        if value is None:
            return []
        if isinstance(value, str):
            if value.strip() == "":
                return []
            return [item.strip() for item in value.split(",") if item.strip()]
        return value

    @property
    def admin_ip_allowlist(self) -> list[str]:
        return _parse_list_value(self.admin_ip_allowlist_raw)

    @property
    def is_production(self) -> bool:
        return self.environment.strip().lower() == "production"

    @property
    def smtp_configured(self) -> bool:
        return bool(self.smtp_host and self.email_from)

    def validate_required_config(self) -> list[str]:
        problems: list[str] = []
        if not self.database_url:
            problems.append("DATABASE_URL is not set")
        if not self.jwt_secret:
            problems.append("JWT_SECRET is not set")
        if not self.smtp_configured:
            problems.append("SMTP_HOST / EMAIL_FROM are not set; status emails will fail")
        if self.notification_timeout_seconds <= 0:
            problems.append("NOTIFICATION_TIMEOUT_SECONDS must be positive")
        return problems


@lru_cache
def get_settings() -> Settings:
    return Settings()
