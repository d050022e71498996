from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "PAYGSite"
    app_env: str = "development"
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_db: str = "paygsite"
    postgres_user: str = "paygsite"
    postgres_password: str = "paygsite"

    redis_host: str = "localhost"
    redis_port: int = 6379

    database_url: str | None = None
    redis_url: str | None = None
    public_app_url: str = "https://paygsite.co.uk"
    tenant_site_base_domain: str = "paygsite.co.uk"
    admin_api_token: str | None = None

    worker_poll_interval_seconds: float = 5.0
    worker_busy_interval_seconds: float = 0.1
    worker_concurrency: int = 2
    worker_verbose: bool = True
    worker_job_types: str = ""
    worker_heartbeat_key: str = "worker:heartbeat"
    worker_heartbeat_ttl_seconds: int = 45
    worker_heartbeat_interval_seconds: float | None = 15.0

    job_retention_days: int = 30
    job_stale_after_seconds: int = 3600

    openai_api_key: str | None = None
    openai_model: str = "gpt-4o"
    openai_base_url: str = "https://api.openai.com/v1"
    openai_timeout_seconds: float = 120.0
    openai_temperature: float = 0.7
    openai_max_tokens: int = 8000

    anthropic_api_key: str | None = None
    anthropic_model: str = "claude-sonnet-4-20250514"
    anthropic_base_url: str = "https://api.anthropic.com/v1"
    anthropic_version: str = "2023-06-01"
    anthropic_timeout_seconds: float = 180.0
    anthropic_max_tokens: int = 8000

    ai_generation_max_retries: int = 3

    resend_api_key: str | None = None
    resend_base_url: str = "https://api.resend.com"
    resend_timeout_seconds: float = 15.0
    email_from: str = "PAYGSite <noreply@paygsite.co.uk>"

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    @property
    def worker_job_type_list(self) -> list[str]:
        if not self.worker_job_types.strip():
            return []
        return [value.strip() for value in self.worker_job_types.split(",") if value.strip()]

    @property
    def sqlalchemy_database_uri(self) -> str:
        if self.database_url:
            return self.database_url
        return (
            f"postgresql+psycopg://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    @property
    def cache_redis_url(self) -> str:
        if self.redis_url:
            return self.redis_url
        return f"redis://{self.redis_host}:{self.redis_port}/0"


def _is_placeholder(value: str | None) -> bool:
    return not value or "placeholder" in value


def is_openai_configured() -> bool:
    return not _is_placeholder(settings.openai_api_key)


def is_anthropic_configured() -> bool:
    return not _is_placeholder(settings.anthropic_api_key)


def is_resend_configured() -> bool:
    return not _is_placeholder(settings.resend_api_key)


settings = Settings()
