"""
Error Recovery Module

Provides the error taxonomy, centralized error handling, circuit breakers
and recovery strategies for resilient patient management operations.
"""

from .circuit_breaker import CircuitBreaker, CircuitBreakerConfig, CircuitBreakerOpenError
from .errors import (
    ErrorFactory,
    ErrorKind,
    FieldError,
    PatientManagementError,
    normalize_error,
)
from .handler import ErrorHandler, ErrorHandlerConfig, RetryConfig
from .incidents import IncidentNotifier, IncidentSink, IncidentStore, LoggingNotifier
from .models import (
    CircuitBreakerState,
    CircuitState,
    ComplianceLevel,
    ErrorContext,
    ErrorHandlingResult,
    IncidentReport,
    RecoveryAction,
    RecoveryResult,
    Severity,
    StorageType,
)
from .service import ErrorRecoveryService
from .strategies import (
    DatabaseRecoveryStrategy,
    IntegrationRecoveryStrategy,
    NetworkRecoveryStrategy,
    RecoveryStrategy,
    StorageRecoveryStrategy,
)

__all__ = [
    # Errors
    "PatientManagementError",
    "ErrorKind",
    "FieldError",
    "ErrorFactory",
    "normalize_error",
    # Models
    "ErrorContext",
    "ErrorHandlingResult",
    "IncidentReport",
    "RecoveryResult",
    "RecoveryAction",
    "Severity",
    "ComplianceLevel",
    "StorageType",
    "CircuitState",
    "CircuitBreakerState",
    # Handler
    "ErrorHandler",
    "ErrorHandlerConfig",
    "RetryConfig",
    # Incidents
    "IncidentStore",
    "IncidentNotifier",
    "IncidentSink",
    "LoggingNotifier",
    # Circuit breaker
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitBreakerOpenError",
    # Strategies
    "RecoveryStrategy",
    "DatabaseRecoveryStrategy",
    "IntegrationRecoveryStrategy",
    "StorageRecoveryStrategy",
    "NetworkRecoveryStrategy",
    "ErrorRecoveryService",
]
