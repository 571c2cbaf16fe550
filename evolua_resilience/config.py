from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .core.recovery.circuit_breaker import CircuitBreakerConfig
from .core.recovery.handler import ErrorHandlerConfig, RetryConfig


BASE_DIR = Path(__file__).resolve().parents[1]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=BASE_DIR / ".env",
        env_file_encoding="utf-8",
        env_prefix="RESILIENCE_",
        case_sensitive=False,
        extra="ignore"
    )

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")

    # Error Handler
    enable_retry: bool = Field(default=True, description="Retry retryable errors in execute_with_retry")
    max_retries: int = Field(default=3, ge=1, description="Maximum attempts per operation")
    retry_delay_seconds: float = Field(default=1.0, ge=0, description="Initial retry delay")
    max_retry_delay_seconds: float = Field(default=10.0, ge=0, description="Cap for exponential backoff")
    exponential_backoff: bool = Field(default=True, description="Double the delay after each failed attempt")
    enable_logging: bool = Field(default=True, description="Log handled errors")
    enable_incident_reporting: bool = Field(
        default=True,
        description="Forward new incidents to the log and the audit sink",
    )
    enable_user_notification: bool = Field(
        default=True,
        description="Deliver user-facing messages through the notifier",
    )

    # Circuit Breaker
    failure_threshold: int = Field(default=5, ge=1, description="Consecutive failures before opening")
    reset_timeout_seconds: float = Field(default=60.0, ge=0, description="Cool-down before a half-open probe")
    monitoring_period_seconds: float = Field(
        default=300.0,
        ge=0,
        description="Monitoring window (informational only)",
    )

    # Recovery Service
    recovery_max_attempts: int = Field(default=3, ge=1, description="Attempts in execute_with_recovery")
    recovery_delay_seconds: float = Field(
        default=1.0,
        ge=0,
        description="Linear delay unit between recovery attempts",
    )

    def handler_config(self) -> ErrorHandlerConfig:
        return ErrorHandlerConfig(
            enable_retry=self.enable_retry,
            max_retries=self.max_retries,
            retry_delay_seconds=self.retry_delay_seconds,
            exponential_backoff=self.exponential_backoff,
            enable_logging=self.enable_logging,
            enable_incident_reporting=self.enable_incident_reporting,
            enable_user_notification=self.enable_user_notification,
        )

    def retry_config(self) -> RetryConfig:
        retry_config = RetryConfig.from_handler_config(self.handler_config())
        retry_config.max_delay_seconds = self.max_retry_delay_seconds
        return retry_config

    def circuit_breaker_config(self) -> CircuitBreakerConfig:
        return CircuitBreakerConfig(
            failure_threshold=self.failure_threshold,
            reset_timeout_seconds=self.reset_timeout_seconds,
            monitoring_period_seconds=self.monitoring_period_seconds,
        )


# Global settings instance
settings = Settings()
