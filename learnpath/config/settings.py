"""Application settings using Pydantic Settings."""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="learnpath", description="Application name")
    app_version: str = Field(default="0.1.0", description="Application version")
    environment: Literal["development", "staging", "production", "testing"] = Field(
        default="development", description="Environment name"
    )
    debug: bool = Field(default=True, description="Debug mode")

    # API Server
    api_host: str = Field(default="0.0.0.0", description="API host")
    api_port: int = Field(default=8000, description="API port")

    # Authentication (tokens are issued by the identity service)
    auth_secret_key: str = Field(
        default="dev-jwt-secret-key-change-in-production-32chars!",
        description="JWT verification key (shared with the identity service)",
    )
    auth_algorithm: str = Field(default="HS256", description="JWT algorithm")

    # Storage
    storage_backend: Literal["cassandra", "memory"] = Field(
        default="cassandra", description="Persistence backend for tracking stores"
    )

    # Redis
    redis_enabled: bool = Field(
        default=True, description="Use Redis for cross-worker aggregation locks"
    )
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL",
    )
    redis_max_connections: int = Field(default=10, description="Max Redis connections")
    redis_socket_timeout: float = Field(default=5.0, description="Redis socket timeout")
    redis_socket_connect_timeout: float = Field(
        default=5.0, description="Redis connect timeout"
    )
    redis_retry_on_timeout: bool = Field(default=True, description="Retry on timeout")
    redis_health_check_interval: int = Field(
        default=30, description="Health check interval"
    )

    # Cassandra
    cassandra_hosts: list[str] = Field(
        default=["localhost"], description="Cassandra hosts"
    )
    cassandra_port: int = Field(default=9042, description="Cassandra port")
    cassandra_keyspace: str = Field(
        default="learnpath", description="Cassandra keyspace"
    )
    cassandra_username: str | None = Field(default=None, description="Cassandra user")
    cassandra_password: str | None = Field(
        default=None, description="Cassandra password"
    )
    cassandra_protocol_version: int = Field(default=4, description="Protocol version")
    cassandra_connect_timeout: float = Field(
        default=10.0, description="Connect timeout"
    )

    # Tracking policy
    video_auto_complete_threshold: int = Field(
        default=90,
        ge=1,
        le=100,
        description="Watched percentage at which a video counts as completed",
    )
    points_video: int = Field(default=10, ge=0, description="Points per video")
    points_lab: int = Field(default=50, ge=0, description="Points per lab")
    points_game: int = Field(default=30, ge=0, description="Points per game")
    points_document: int = Field(default=5, ge=0, description="Points per document")
    points_per_level: int = Field(default=500, gt=0, description="Points per level")
    implicit_enrollment_completion: bool = Field(
        default=True,
        description="Complete an enrollment automatically when it reaches 100%",
    )
    streak_timezone: str = Field(
        default="UTC", description="Timezone that defines a streak calendar day"
    )
    streak_milestones: list[int] = Field(
        default=[3, 7, 14, 30, 60, 100, 365],
        description="Ascending streak lengths reported as milestones",
    )
    aggregation_max_attempts: int = Field(
        default=3, ge=1, description="Compare-and-set attempts before giving up"
    )
    aggregation_lock_timeout_seconds: float = Field(
        default=10.0, description="Lifetime of a distributed aggregation lock"
    )
    aggregation_lock_blocking_timeout_seconds: float = Field(
        default=5.0, description="How long to wait for an aggregation lock"
    )

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="DEBUG", description="Log level"
    )
    log_format: Literal["json", "console"] = Field(
        default="console", description="Log format"
    )
    log_include_caller_info: bool = Field(
        default=True, description="Include caller info"
    )
    log_dir: str = Field(default="logs", description="Directory for log files")
    log_file_max_bytes: int = Field(
        default=10 * 1024 * 1024, description="Max size per log file (10MB default)"
    )
    log_file_backup_count: int = Field(
        default=5, description="Number of backup log files to keep"
    )
    log_requests: bool = Field(
        default=True, description="Log HTTP request start/finish"
    )
    log_exclude_paths: list[str] = Field(
        default=["/health", "/health/live", "/health/ready"],
        description="Paths to exclude from request logging",
    )

    # CORS
    cors_origins: list[str] = Field(default=["*"], description="CORS origins")
    cors_allow_credentials: bool = Field(default=True, description="Allow credentials")
    cors_allow_methods: list[str] = Field(default=["*"], description="Allowed methods")
    cors_allow_headers: list[str] = Field(default=["*"], description="Allowed headers")
    cors_max_age: int = Field(default=600, description="CORS max age")

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.environment == "production"

    @property
    def is_testing(self) -> bool:
        """Check if running in testing mode."""
        return self.environment == "testing"

    @property
    def content_points(self) -> dict[str, int]:
        """Points granted per content type on completion."""
        return {
            "video": self.points_video,
            "lab": self.points_lab,
            "game": self.points_game,
            "document": self.points_document,
        }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
