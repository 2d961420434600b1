from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Prefer repo-root `.env`; keep local `.env` as a fallback for service-specific overrides.
    _REPO_ROOT = Path(__file__).resolve().parents[4]
    model_config = SettingsConfigDict(env_file=(_REPO_ROOT / ".env", ".env"), extra="ignore")

    VERSION: str = "0.1.0"
    APP_ENV: str = "dev"  # dev|test|prod
    PORT: int = 3000

    # Slack app credentials. Bot token and signing secret are required at boot.
    SLACK_BOT_TOKEN: str = ""
    SLACK_SIGNING_SECRET: str = ""
    SLACK_CLIENT_ID: str = ""
    SLACK_CLIENT_SECRET: str = ""
    # Shared anti-CSRF value round-tripped through the OAuth `state` parameter.
    SLACK_STATE_SECRET: str = ""
    SLACK_COMMAND: str = "/availability"
    SLACK_BOT_SCOPES: str = "commands"
    SLACK_USER_SCOPES: str = "im:history,chat:write,users.profile:write"
    SLACK_HTTP_TIMEOUT_SECONDS: float = 10.0

    PUBLIC_BASE_URL: str = ""
    VERCEL_URL: str = ""

    TEAM_USER_IDS: str = ""
    TEAM_NAME: str = "Team"
    ROUTE_CHANNEL_ID: str = ""
    ROUTE_CHANNEL_NAME: str = "#team-channel"
    STATUS_EMOJI: str = ":no_bell:"
    STATUS_TEXT: str = ""

    STORE_BACKEND: str = "memory"  # memory|local|s3
    LOCAL_STORE_DIR: str = "var/store"
    S3_ENDPOINT_URL: str | None = None
    S3_ACCESS_KEY_ID: str | None = None
    S3_SECRET_ACCESS_KEY: str | None = None
    S3_BUCKET: str = "headsdown-state"
    S3_PREFIX: str = "headsdown/"

    # Optional. When set, delegated tokens are encrypted at rest (AES-256-GCM).
    ENCRYPTION_KEY_BASE64: str = ""

    REQUEST_ID_HEADER: str = "x-request-id"
    # Slack delivers events in bursts from a small set of IPs; 0 disables limiting.
    RATE_LIMIT_REQUESTS_PER_MINUTE: int = 0
    ENABLE_PROMETHEUS_METRICS: bool = True
    PROMETHEUS_METRICS_PATH: str = "/metrics"
    ENABLE_OTEL_TRACING: bool = False
    OTEL_SERVICE_NAME: str = "headsdown-api"
    OTEL_EXPORTER_OTLP_TRACES_ENDPOINT: str = "http://localhost:4318/v1/traces"
    OTEL_EXPORTER_OTLP_HEADERS: str = ""
    OTEL_TRACE_SAMPLE_RATIO: float = 1.0
    OTEL_EXCLUDED_URLS: str = "/healthz,/readyz,/metrics"
    CONTENT_SECURITY_POLICY: str = "default-src 'none'; frame-ancestors 'none'; base-uri 'none'"

    @field_validator("S3_ENDPOINT_URL", "S3_ACCESS_KEY_ID", "S3_SECRET_ACCESS_KEY", mode="before")
    @classmethod
    def _empty_to_none(cls, v: object) -> object:
        if v == "":
            return None
        return v

    @field_validator("STORE_BACKEND")
    @classmethod
    def _validate_store_backend(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in {"memory", "local", "s3"}:
            raise ValueError("STORE_BACKEND must be one of: memory, local, s3")
        return v

    @field_validator("OTEL_TRACE_SAMPLE_RATIO")
    @classmethod
    def _validate_otel_sample_ratio(cls, v: float) -> float:
        if v < 0 or v > 1:
            raise ValueError("OTEL_TRACE_SAMPLE_RATIO must be between 0 and 1")
        return v

    @property
    def base_url(self) -> str:
        public = self.PUBLIC_BASE_URL.strip().rstrip("/")
        if public:
            return public
        if self.VERCEL_URL.strip():
            return f"https://{self.VERCEL_URL.strip()}"
        return f"http://localhost:{self.PORT}"

    @property
    def status_text(self) -> str:
        return self.STATUS_TEXT or f"Heads-down: please post in {self.ROUTE_CHANNEL_NAME}"

    @property
    def route_reference(self) -> str:
        # Slack renders `<#C123|name>` as a clickable channel link.
        if self.ROUTE_CHANNEL_ID:
            return f"<#{self.ROUTE_CHANNEL_ID}|{self.ROUTE_CHANNEL_NAME}>"
        return self.ROUTE_CHANNEL_NAME

    def missing_boot_secrets(self) -> list[str]:
        missing: list[str] = []
        if not self.SLACK_BOT_TOKEN:
            missing.append("SLACK_BOT_TOKEN")
        if not self.SLACK_SIGNING_SECRET:
            missing.append("SLACK_SIGNING_SECRET")
        return missing


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
