"""Configuration settings for ComplyGuard."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Compliance gateway
    compliance_api_url: str = "http://localhost:3000/api"
    request_timeout_seconds: float = 30.0

    # Credentials
    supabase_access_token: str = ""
    supabase_project_ref: str = ""
    check_all_projects: bool = False
    validate_credentials: bool = False

    # Request budget (management API allows ~60 requests/minute per token)
    rate_limit_per_minute: int = 60
    max_concurrent_projects: int = 4

    # Retry configuration for rate-limited calls
    max_retries: int = 2
    retry_base_delay: float = 1.0
    retry_max_delay: float = 30.0

    # Evidence persistence
    evidence_backend: str = "supabase"  # supabase | sql | none
    evidence_owner_id: str = ""
    evidence_page_size: int = 100
    supabase_url: str = ""
    supabase_service_role_key: str = ""
    database_url: str = ""

    # Tracing Configuration
    tracing_enabled: bool = True
    log_level: str = "INFO"

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


settings = Settings()
