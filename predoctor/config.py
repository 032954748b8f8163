from __future__ import annotations

from pydantic import ConfigDict, Field
from pydantic_settings import BaseSettings

DEFAULT_INTRO_TEMPLATE = (
    "Hi, I'm {{assistantName}}, your AI health assistant for {{hospitalName}}."
)


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    jwt_secret: str = Field("change-me-jwt-secret-at-least-32-bytes", alias="JWT_SECRET")
    jwt_algorithm: str = "HS256"

    database_url: str = Field("sqlite:////tmp/predoctor_test.db", alias="DATABASE_URL")
    db_create_all: bool = Field(False, alias="DB_CREATE_ALL")

    redis_url: str = Field("redis://localhost:6379", alias="REDIS_URL")
    ai_rate_limit_per_minute: int = Field(10, alias="AI_RATE_LIMIT_PER_MINUTE")

    ai_provider: str = Field("openai", alias="AI_PROVIDER")
    openai_api_key: str | None = Field(None, alias="OPENAI_API_KEY")
    openai_model: str = Field("gpt-4.1-mini", alias="OPENAI_MODEL")
    groq_api_key: str | None = Field(None, alias="GROQ_API_KEY")
    groq_model: str = Field("openai/gpt-oss-20b", alias="GROQ_MODEL")
    groq_base_url: str = Field(
        "https://api.groq.com/openai/v1", alias="GROQ_BASE_URL"
    )
    ai_timeout_seconds: float = Field(
        60.0,
        alias="AI_TIMEOUT_SECONDS",
        description="Per-request timeout for text-generation providers",
    )
    assessment_temperature: float = 0.3
    followup_temperature: float = 0.2
    followup_max_turns: int = Field(3, alias="FOLLOWUP_MAX_TURNS")

    tenant_header: str = "X-Tenant-Subdomain"
    tenant_public_paths: list[str] = Field(
        default_factory=lambda: ["/api/public", "/api/health", "/metrics"]
    )
    reserved_subdomains: list[str] = Field(default_factory=lambda: ["www", "api"])

    smtp_host: str | None = Field(None, alias="SMTP_HOST")
    smtp_port: int = Field(587, alias="SMTP_PORT")
    smtp_user: str | None = Field(None, alias="SMTP_USER")
    smtp_password: str | None = Field(None, alias="SMTP_PASSWORD")
    smtp_from: str | None = Field(None, alias="SMTP_FROM")
    smtp_timeout_seconds: float = 10.0

    model_config = ConfigDict(
        extra="ignore",
        env_file=".env",
        case_sensitive=False,
        populate_by_name=True,
    )
