# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Application configuration settings using Pydantic Settings.

This module provides centralized configuration management for GradePulse.
Settings are loaded from environment variables with sensible defaults.

The Settings class is the main entry point and aggregates all subsettings.
A singleton instance is provided via get_settings() for dependency injection.
Validation failures are reported as ConfigurationError so callers deal with
a single error type regardless of which subsetting was wrong.

Example:
    >>> from src.core.config.settings import get_settings
    >>> settings = get_settings()
    >>> print(settings.scoring.academic)
    0.5
"""

from functools import lru_cache
from typing import Literal, Self

from pydantic import Field, SecretStr, ValidationError, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from src.core.exceptions import ConfigurationError

GranularityName = Literal["weekly", "monthly", "term", "all_time"]


class DatabaseSettings(BaseSettings):
    """Database configuration for the score store.

    Attributes:
        user: PostgreSQL username.
        password: PostgreSQL password.
        host: Database host address.
        port: Database port number.
        database: Database name.
        pool_size: Connection pool size.
        max_overflow: Maximum overflow connections.
        echo: Whether to log emitted SQL.
        run_migrations: Whether the API applies pending pipeline
            migrations at startup.
    """

    model_config = SettingsConfigDict(
        env_prefix="DB_",
        extra="ignore",
    )

    user: str = "gradepulse"
    password: SecretStr = SecretStr("gradepulse_password")
    host: str = "gradepulse-db"
    port: int = 5432
    database: str = "gradepulse"
    pool_size: int = 10
    max_overflow: int = 20
    echo: bool = False
    run_migrations: bool = False

    @property
    def url(self) -> str:
        """Build the async database URL from components."""
        pwd = self.password.get_secret_value()
        return f"postgresql+asyncpg://{self.user}:{pwd}@{self.host}:{self.port}/{self.database}"


class RedisSettings(BaseSettings):
    """Redis configuration for caching and message brokering.

    Attributes:
        host: Redis server host.
        port: Redis server port.
        password: Redis password.
        database: Redis database number.
        max_connections: Maximum connection pool size.
    """

    model_config = SettingsConfigDict(
        env_prefix="REDIS_",
        extra="ignore",
    )

    host: str = "gradepulse-redis"
    port: int = 6379
    password: SecretStr = SecretStr("gradepulse_redis_password")
    database: int = 0
    max_connections: int = 50

    @property
    def url(self) -> str:
        """Build the Redis connection URL."""
        pwd = self.password.get_secret_value()
        return f"redis://:{pwd}@{self.host}:{self.port}/{self.database}"


class CacheSettings(BaseSettings):
    """Read-through cache configuration.

    Attributes:
        backend: Cache backend, in-process map or Redis.
        namespace: Prefix applied to every key written to the backend.
        leaderboard_ttl_seconds: TTL for computed leaderboards.
        metrics_ttl_seconds: TTL for class metrics.
        mastery_ttl_seconds: TTL for topic mastery reads.
        stale_ttl_seconds: TTL for the last-known-good copy served when a
            recompute fails with a transient store error.
        sweep_interval_seconds: Interval between expired entry sweeps.
    """

    model_config = SettingsConfigDict(
        env_prefix="CACHE_",
        extra="ignore",
    )

    backend: Literal["memory", "redis"] = "memory"
    namespace: str = "gradepulse"
    leaderboard_ttl_seconds: int = Field(default=300, gt=0)
    metrics_ttl_seconds: int = Field(default=600, gt=0)
    mastery_ttl_seconds: int = Field(default=300, gt=0)
    stale_ttl_seconds: int = Field(default=3600, ge=0)
    sweep_interval_seconds: int = Field(default=60, gt=0)


class ScoringWeights(BaseSettings):
    """Composite score weights for leaderboard ranking.

    Each weight multiplies one 0..100 metric. Weights must be non-negative
    and must not all be zero; they are not required to sum to one.

    Attributes:
        academic: Weight of the mean graded percentage.
        attendance: Weight of the attendance rate.
        participation: Weight of the participation rate.
        rewards: Weight of normalised reward points.
        improvement: Weight of the improvement score.
    """

    model_config = SettingsConfigDict(
        env_prefix="SCORING_",
        extra="ignore",
    )

    academic: float = Field(default=0.5, ge=0)
    attendance: float = Field(default=0.2, ge=0)
    participation: float = Field(default=0.15, ge=0)
    rewards: float = Field(default=0.1, ge=0)
    improvement: float = Field(default=0.05, ge=0)

    @model_validator(mode="after")
    def validate_total(self) -> Self:
        """Reject a weight vector that cannot rank anything.

        Raises:
            ValueError: If every weight is zero.
        """
        if self.total <= 0:
            raise ValueError("At least one scoring weight must be positive")
        return self

    @property
    def total(self) -> float:
        """Sum of all weights."""
        return (
            self.academic
            + self.attendance
            + self.participation
            + self.rewards
            + self.improvement
        )


class LeaderboardSettings(BaseSettings):
    """Leaderboard aggregation configuration.

    Attributes:
        history_months: Months of history walked when bucketing periods.
        refresh_granularities: Granularities recomputed after each grade.
        passing_threshold: Academic score at or above which a student passes.
        default_page_size: Default limit for paginated leaderboard reads.
        max_page_size: Upper bound accepted for the limit parameter.
        top_performers: Number of top entries reported per trend point.
    """

    model_config = SettingsConfigDict(
        env_prefix="LEADERBOARD_",
        extra="ignore",
    )

    history_months: int = Field(default=3, ge=1, le=36)
    refresh_granularities: list[GranularityName] = Field(
        default_factory=lambda: ["weekly", "monthly", "term", "all_time"],
    )
    passing_threshold: float = Field(default=60.0, ge=0, le=100)
    default_page_size: int = Field(default=50, gt=0)
    max_page_size: int = Field(default=500, gt=0)
    top_performers: int = Field(default=3, ge=0)


class MasterySettings(BaseSettings):
    """Topic mastery aggregation configuration.

    Attributes:
        recency_policy: How attempts are weighted by age. ``simple`` weighs
            every attempt equally, ``linear`` weighs the i-th oldest attempt
            by i, ``exponential`` multiplies each older attempt by decay.
        decay: Decay factor for the exponential policy.
    """

    model_config = SettingsConfigDict(
        env_prefix="MASTERY_",
        extra="ignore",
    )

    recency_policy: Literal["simple", "linear", "exponential"] = "simple"
    decay: float = Field(default=0.8, gt=0, le=1)


class DispatchSettings(BaseSettings):
    """Event dispatch configuration.

    Attributes:
        handler_timeout_seconds: Per-handler timeout; a timeout is a failure.
        queue_size: Capacity of the publisher queue.
        workers: Number of worker tasks draining the queue.
    """

    model_config = SettingsConfigDict(
        env_prefix="DISPATCH_",
        extra="ignore",
    )

    handler_timeout_seconds: float = Field(default=10.0, gt=0)
    queue_size: int = Field(default=1000, gt=0)
    workers: int = Field(default=4, gt=0)


class SnapshotSettings(BaseSettings):
    """Leaderboard snapshot configuration.

    Attributes:
        capture_interval_hours: Hours between scheduled snapshot captures.
        page_size: Snapshots fetched per page when iterating history.
        retention_weekly_days: Days weekly snapshots stay active.
        retention_monthly_days: Days monthly snapshots stay active.
        retention_term_days: Days term snapshots stay active.
        retention_all_time_days: Days all-time snapshots stay active.
    """

    model_config = SettingsConfigDict(
        env_prefix="SNAPSHOT_",
        extra="ignore",
    )

    capture_interval_hours: int = Field(default=24, gt=0)
    page_size: int = Field(default=50, gt=0)
    retention_weekly_days: int = Field(default=90, gt=0)
    retention_monthly_days: int = Field(default=365, gt=0)
    retention_term_days: int = Field(default=730, gt=0)
    retention_all_time_days: int = Field(default=1095, gt=0)

    def retention_days(self, granularity: str) -> int:
        """Get the retention period for a granularity value.

        Args:
            granularity: Granularity value (weekly, monthly, term, all_time).

        Returns:
            Number of days snapshots of that granularity stay active.
        """
        return {
            "weekly": self.retention_weekly_days,
            "monthly": self.retention_monthly_days,
            "term": self.retention_term_days,
            "all_time": self.retention_all_time_days,
        }[granularity]


class AlertSettings(BaseSettings):
    """Performance alert configuration.

    After each grade the student's latest grades in the subject are
    checked against these thresholds.

    Attributes:
        window_days: Only grades this many days old or newer are checked.
        sample_size: Number of latest grades checked.
        min_grades: Fewer grades than this raise no alert.
        struggling_below: Average percentage under which a student is struggling.
        exceptional_above: Average percentage over which performance is exceptional.
        improvement_above: Gain in points between the older and the newer
            half of the sample that counts as significant improvement.
        history_size: Number of recent alerts kept in memory.
    """

    model_config = SettingsConfigDict(
        env_prefix="ALERT_",
        extra="ignore",
    )

    window_days: int = Field(default=7, gt=0)
    sample_size: int = Field(default=5, ge=2)
    min_grades: int = Field(default=3, ge=2)
    struggling_below: float = Field(default=60.0, ge=0, le=100)
    exceptional_above: float = Field(default=95.0, ge=0, le=100)
    improvement_above: float = Field(default=15.0, ge=0, le=100)
    history_size: int = Field(default=100, gt=0)


class WorkerSettings(BaseSettings):
    """Background worker configuration.

    Attributes:
        processes: Number of worker processes.
        threads: Number of threads per process.
        scheduler_enabled: Whether periodic jobs are scheduled.
        reconcile_interval_minutes: Interval between reconciliation sweeps.
        archive_cron: Cron expression of the retention archiving job.
    """

    model_config = SettingsConfigDict(
        env_prefix="WORKER_",
        extra="ignore",
    )

    processes: int = 2
    threads: int = 4
    scheduler_enabled: bool = True
    reconcile_interval_minutes: int = Field(default=30, gt=0)
    archive_cron: str = "30 2 * * *"


class Settings(BaseSettings):
    """Main application settings aggregating all subsettings.

    This is the primary configuration class for GradePulse.
    Use get_settings() to obtain a cached singleton instance.

    Attributes:
        environment: Current environment (development, staging, production).
        debug: Enable debug mode.
        log_level: Logging level.
        database: Database settings.
        redis: Redis settings.
        cache: Cache layer settings.
        scoring: Composite score weights.
        leaderboard: Leaderboard aggregation settings.
        mastery: Topic mastery settings.
        dispatch: Event dispatch settings.
        snapshot: Snapshot capture and retention settings.
        alerts: Performance alert thresholds.
        worker: Background worker settings.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # Environment
    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = True
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "DEBUG"

    # Subsettings - loaded with their own env prefixes
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    scoring: ScoringWeights = Field(default_factory=ScoringWeights)
    leaderboard: LeaderboardSettings = Field(default_factory=LeaderboardSettings)
    mastery: MasterySettings = Field(default_factory=MasterySettings)
    dispatch: DispatchSettings = Field(default_factory=DispatchSettings)
    snapshot: SnapshotSettings = Field(default_factory=SnapshotSettings)
    alerts: AlertSettings = Field(default_factory=AlertSettings)
    worker: WorkerSettings = Field(default_factory=WorkerSettings)

    @model_validator(mode="after")
    def validate_production_settings(self) -> Self:
        """Validate that production settings are properly configured.

        Raises:
            ValueError: If running in production with an in-process cache.
        """
        if self.environment == "production" and self.cache.backend == "memory":
            raise ValueError(
                "In-process cache cannot be shared between workers in production. "
                "Set CACHE_BACKEND=redis."
            )
        return self

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"


def load_settings(**overrides: object) -> Settings:
    """Build a Settings instance, reporting validation failures uniformly.

    Args:
        **overrides: Field values that take precedence over the environment.

    Returns:
        Validated Settings instance.

    Raises:
        ConfigurationError: If any setting fails validation.
    """
    try:
        return Settings(**overrides)
    except ValidationError as e:
        raise ConfigurationError(
            "Invalid configuration",
            details={"errors": [err["msg"] for err in e.errors()]},
            original_error=e,
        ) from e


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    Call clear_settings_cache() if you need to reload settings.

    Returns:
        Cached Settings instance.

    Raises:
        ConfigurationError: If any setting fails validation.
    """
    return load_settings()


def clear_settings_cache() -> None:
    """Clear the settings cache.

    Call this if you need to reload settings from environment.
    Useful for testing or dynamic configuration updates.
    """
    get_settings.cache_clear()
