"""Application configuration using Pydantic Settings"""

import logging
from enum import Enum
from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class StoreBackend(str, Enum):
    FIRESTORE = "firestore"
    POSTGRES = "postgres"


class ActiveUsersStrategy(str, Enum):
    """How the aggregator estimates the number of active users.

    - ``distinct_voters``: distinct voters over the trailing activity window
    - ``hot_match_votes``: sum of recent votes across the reported hot matches
    """

    DISTINCT_VOTERS = "distinct_voters"
    HOT_MATCH_VOTES = "hot_match_votes"


class Settings(BaseSettings):
    """Settings shared by the aggregator and the edge service"""

    model_config = SettingsConfigDict(
        env_file=Path(__file__).parent.parent / ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Backing store
    store_backend: StoreBackend = Field(
        default=StoreBackend.FIRESTORE, description="Document store backend"
    )
    firebase_project_id: str = Field(default="", description="Firestore project ID")
    firebase_api_key: str = Field(default="", description="Firestore REST API key")
    database_url: str = Field(default="", description="PostgreSQL URL (postgres backend)")
    request_timeout_seconds: float = Field(
        default=10.0, description="Timeout for outbound store requests"
    )

    # Aggregator
    aggregation_interval_seconds: int = Field(default=60, description="Seconds between passes")
    lease_ttl_seconds: int = Field(default=50, description="Run lease time-to-live")
    active_users_strategy: ActiveUsersStrategy = Field(
        default=ActiveUsersStrategy.DISTINCT_VOTERS, description="Active user count policy"
    )
    active_users_window_seconds: int = Field(default=300, description="Distinct voter window")
    active_users_query_limit: int = Field(default=100, description="Max vote docs scanned")
    hot_match_limit: int = Field(default=5, description="Hot matches kept per snapshot")
    aggregator_health_port: int = Field(default=8081, description="Aggregator health port")

    # Edge
    freshness_seconds: int = Field(default=30, description="Snapshot cache freshness window")
    degraded_retry_seconds: int = Field(default=10, description="Max-age of degraded replies")
    stream_interval_seconds: float = Field(default=30, description="Seconds between SSE frames")
    live_matches_ttl_seconds: int = Field(default=120, description="Live matches cache TTL")
    matches_ttl_seconds: int = Field(default=300, description="Match cache TTL")
    matches_cache_maxsize: int = Field(default=256, description="Cached match keys per worker")
    tournament_id: str = Field(default="", description="Restrict match listings to a tournament")

    # Environment
    environment: str = Field(default="development", description="Environment name")
    log_level: str = Field(default="INFO", description="Logging level")

    # Server Configuration
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port")
    frontend_url: str = Field(default="http://localhost:3000", description="Frontend URL for CORS")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is a valid logging level"""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            logger.warning(f"Invalid log level '{v}', defaulting to INFO")
            return "INFO"
        return v_upper

    @field_validator(
        "aggregation_interval_seconds",
        "lease_ttl_seconds",
        "freshness_seconds",
        "degraded_retry_seconds",
        "stream_interval_seconds",
        "matches_ttl_seconds",
        "matches_cache_maxsize",
        "hot_match_limit",
    )
    @classmethod
    def validate_positive(cls, v):
        if v <= 0:
            raise ValueError("must be greater than zero")
        return v

    @property
    def cors_origins(self) -> list[str]:
        """Get CORS allowed origins"""
        return [self.frontend_url]

    @property
    def is_development(self) -> bool:
        """Check if running in development environment"""
        return self.environment.lower() == "development"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
