from __future__ import annotations

import os
from typing import Literal, Optional

import yaml
from pydantic import BaseModel, Field


class RedisConfig(BaseModel):
    """Configuration for Redis transport."""

    host: str = "localhost"
    port: int = 6379
    db: int = 0
    password: Optional[str] = None


class TransportConfig(BaseModel):
    """Transport configuration settings."""

    backend: Literal["inmemory", "redis"] = "inmemory"
    queue: str = "workflow-execution"
    redis: RedisConfig = RedisConfig()


class AuthConfig(BaseModel):
    """JWT and cookie settings."""

    jwt_secret: str = "change-me-in-production"
    access_token_ttl_seconds: int = 15 * 60
    refresh_token_ttl_seconds: int = 7 * 24 * 60 * 60
    cookie_secure: Optional[bool] = None


class GeminiConfig(BaseModel):
    base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    timeout_seconds: float = 120.0
    max_retries: int = Field(3, ge=1)
    default_api_key: Optional[str] = None


class WorkerConfig(BaseModel):
    """Execution worker tuning."""

    concurrency: int = 3
    max_attempts: int = 3
    backoff_delay_seconds: float = 2.0
    flash_prompt_concurrency: int = 15
    pro_prompt_concurrency: int = 10


class RateLimitConfig(BaseModel):
    flash_rpm: int = 1000
    pro_rpm: int = 500
    window_seconds: float = 60.0


class StorageConfig(BaseModel):
    directory: str = "results"
    public_base_url: str = "/results"


class MasStockConfig(BaseModel):
    """Top-level configuration model."""

    transport: TransportConfig = TransportConfig()
    database_url: Optional[str] = None
    auth: AuthConfig = AuthConfig()
    gemini: GeminiConfig = GeminiConfig()
    worker: WorkerConfig = WorkerConfig()
    rate_limits: RateLimitConfig = RateLimitConfig()
    storage: StorageConfig = StorageConfig()
    encryption_key: Optional[str] = None
    cors_origins: list[str] = Field(default_factory=lambda: ["http://localhost:5173"])
    environment: str = "development"
    log_level: str = "INFO"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


def load_config(path: Optional[str] = None) -> MasStockConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to MASSTOCK_CONFIG env
            variable or 'config.yaml' in the current directory.

    Secrets and endpoints set in the environment take precedence over the
    file.
    """

    config_path = path or os.getenv("MASSTOCK_CONFIG", "config.yaml")
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = MasStockConfig(**data)
    else:
        config = MasStockConfig()

    if os.getenv("MASSTOCK_TRANSPORT"):
        config.transport.backend = os.environ["MASSTOCK_TRANSPORT"].lower()
    env_db_url = os.getenv("MASSTOCK_DATABASE_URL") or os.getenv("DATABASE_URL")
    if env_db_url:
        config.database_url = env_db_url
    if os.getenv("JWT_SECRET"):
        config.auth.jwt_secret = os.environ["JWT_SECRET"]
    if os.getenv("ENCRYPTION_KEY"):
        config.encryption_key = os.environ["ENCRYPTION_KEY"]
    if os.getenv("DEFAULT_GEMINI_API_KEY"):
        config.gemini.default_api_key = os.environ["DEFAULT_GEMINI_API_KEY"]
    env_name = os.getenv("MASSTOCK_ENV") or os.getenv("NODE_ENV")
    if env_name:
        config.environment = env_name
    if os.getenv("MASSTOCK_LOG_LEVEL"):
        config.log_level = os.environ["MASSTOCK_LOG_LEVEL"]
    return config
