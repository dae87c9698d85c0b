"""Application configuration"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings"""

    # Jira Product Discovery (source)
    jpd_base_url: str = ""
    jpd_email: str = ""
    jpd_api_token: str = ""
    jpd_project_key: str = ""

    # GitLab (destination)
    gitlab_url: str = "https://gitlab.com"
    gitlab_token: str = ""
    gitlab_project_id: str = ""

    # Sync
    sync_config_path: str = "sync.yaml"
    sync_interval_minutes: int = 10
    # Read and decide everything, write nothing (stale metadata cleanup still runs).
    dry_run: bool = False
    max_retry_attempts: int = 3

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    run_scheduler: bool = True

    # Logging
    log_level: str = "INFO"

    # Auth (optional)
    # When set, every route except /health requires "Authorization: Bearer <token>".
    api_token: str | None = None

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")


settings = Settings()
