from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "path-tracker"
    version: str = "0.1.0"
    env: str = "dev"
    api_prefix: str = "/api"
    log_level: str = "INFO"

    # Use postgresql+psycopg://... in production; SQLite keeps local runs dependency-free.
    database_url: str = "sqlite+aiosqlite:///./pathtracker.db"
    database_pool_size: int = 20
    database_max_overflow: int = 10
    database_pool_timeout_seconds: float = 5.0
    database_echo: bool = False
    create_schema_on_startup: bool = True

    api_key_bcrypt_rounds: int = 12
    session_user_header: str = "X-User-Id"

    default_body_size_limit_bytes: int = 10240
    max_batch_events: int = 100
    logs_default_limit: int = 100
    logs_max_limit: int = 1000
    logs_max_offset: int = 10000
    users_default_window_days: int = 30

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")


settings = Settings()
