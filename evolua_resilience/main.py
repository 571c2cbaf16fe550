"""
Composition root for the resilience engine.

Builds the shared ErrorHandler and ErrorRecoveryService from settings so
use cases receive them explicitly instead of reaching for a global.
"""

from typing import Optional, Tuple

from .config import Settings, settings as default_settings
from .core.recovery import (
    DatabaseRecoveryStrategy,
    ErrorHandler,
    ErrorRecoveryService,
    IncidentNotifier,
    IncidentSink,
    IntegrationRecoveryStrategy,
    NetworkRecoveryStrategy,
    StorageRecoveryStrategy,
)
from .logging_config import setup_logging


def build_error_handler(
    settings: Optional[Settings] = None,
    notifier: Optional[IncidentNotifier] = None,
    incident_sink: Optional[IncidentSink] = None,
) -> ErrorHandler:
    settings = settings or default_settings
    return ErrorHandler(
        config=settings.handler_config(),
        retry_config=settings.retry_config(),
        notifier=notifier,
        incident_sink=incident_sink,
    )


def build_recovery_service(
    settings: Optional[Settings] = None,
    error_handler: Optional[ErrorHandler] = None,
) -> ErrorRecoveryService:
    settings = settings or default_settings
    return ErrorRecoveryService(
        error_handler=error_handler,
        strategies=[
            DatabaseRecoveryStrategy(),
            IntegrationRecoveryStrategy(breaker_config=settings.circuit_breaker_config()),
            StorageRecoveryStrategy(),
            NetworkRecoveryStrategy(),
        ],
        retry_delay_seconds=settings.recovery_delay_seconds,
        max_attempts=settings.recovery_max_attempts,
    )


def bootstrap(
    settings: Optional[Settings] = None,
    notifier: Optional[IncidentNotifier] = None,
    incident_sink: Optional[IncidentSink] = None,
) -> Tuple[ErrorHandler, ErrorRecoveryService]:
    """Configure logging and build the shared handler and recovery service."""
    settings = settings or default_settings
    setup_logging(settings.log_level)

    handler = build_error_handler(settings, notifier=notifier, incident_sink=incident_sink)
    return handler, build_recovery_service(settings, error_handler=handler)
