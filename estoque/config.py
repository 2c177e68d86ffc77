from pydantic_settings import BaseSettings
from typing import List, Literal


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    database_url: str = "sqlite+aiosqlite:///./estoque.db"

    # Redis
    redis_url: str = "redis://localhost:6379/0"
    celery_broker_url: str = "redis://localhost:6379/0"
    celery_result_backend: str = "redis://localhost:6379/0"

    # Application
    secret_key: str = "your-secret-key-here-change-in-production"
    jwt_algorithm: str = "HS256"
    access_token_minutes: int = 30
    debug: bool = False
    environment: str = "development"
    log_level: str = "INFO"
    log_format: str = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
    cors_origins: List[str] = ["*"]

    # Catalog
    code_strategy: Literal["scan", "sequence"] = "scan"
    code_width: int = 4
    undo_capacity: int = 20

    # Import
    import_mode: Literal["insert", "upsert"] = "insert"
    import_backend: Literal["inline", "celery"] = "inline"
    max_upload_bytes: int = 20 * 1024 * 1024

    # API
    api_title: str = "Estoque API"
    api_version: str = "1.0.0"

    class Config:
        env_file = ".env"
        case_sensitive = False


settings = Settings()
