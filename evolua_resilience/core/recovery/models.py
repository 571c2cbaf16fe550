"""
Recovery Models

Value types shared by the error handler, circuit breaker and recovery
strategies.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Dict, Mapping, Optional
from uuid import uuid4

if TYPE_CHECKING:
    from .errors import PatientManagementError


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Severity(str, Enum):
    """How serious an error is; drives log level and incident creation."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ComplianceLevel(str, Enum):
    """LGPD compliance finding level."""

    WARNING = "warning"
    VIOLATION = "violation"


class StorageType(str, Enum):
    """Backing store that raised a storage error."""

    FILE = "file"
    DATABASE = "database"
    CACHE = "cache"


class RecoveryAction(str, Enum):
    """Next step suggested to the caller for a handled error."""

    CORRECT_INPUT = "CORRECT_INPUT"
    VERIFY_RESOURCE_ID = "VERIFY_RESOURCE_ID"
    REQUEST_PERMISSION = "REQUEST_PERMISSION"
    SECURITY_REVIEW_REQUIRED = "SECURITY_REVIEW_REQUIRED"
    COMPLIANCE_REVIEW_REQUIRED = "COMPLIANCE_REVIEW_REQUIRED"
    RETRY_OPERATION = "RETRY_OPERATION"
    CHECK_INTEGRATION_STATUS = "CHECK_INTEGRATION_STATUS"
    CONTACT_SUPPORT = "CONTACT_SUPPORT"


class CircuitState(str, Enum):
    """Circuit breaker states."""

    CLOSED = "closed"        # Normal operation
    OPEN = "open"            # Failing, reject requests
    HALF_OPEN = "half-open"  # Probing recovery


@dataclass(frozen=True)
class ErrorContext:
    """
    Diagnostic context supplied by the calling use case.

    Used for logging and incident correlation only.
    """

    operation: str
    user_id: Optional[str] = None
    patient_id: Optional[str] = None
    timestamp: datetime = field(default_factory=_utcnow)
    metadata: Optional[Mapping[str, Any]] = field(default_factory=dict)

    def __post_init__(self) -> None:
        # Freeze the metadata view so callers can't mutate it after hand-off
        object.__setattr__(self, "metadata", MappingProxyType(dict(self.metadata or {})))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "operation": self.operation,
            "userId": self.user_id,
            "patientId": self.patient_id,
            "timestamp": self.timestamp.isoformat(),
            "metadata": dict(self.metadata),
        }


@dataclass
class ErrorHandlingResult:
    """Terminal output of the error handler."""

    error: "PatientManagementError"
    user_message: str
    success: bool = False
    retry_attempts: int = 0
    recovery_action: Optional[RecoveryAction] = None
    incident_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "error": self.error.to_dict(),
            "retryAttempts": self.retry_attempts,
            "recoveryAction": self.recovery_action.value if self.recovery_action else None,
            "userMessage": self.user_message,
            "incidentId": self.incident_id,
        }


@dataclass
class IncidentReport:
    """Record of a security, compliance or critical failure for human review."""

    error: "PatientManagementError"
    context: ErrorContext
    severity: Severity
    id: str = field(default_factory=lambda: str(uuid4()))
    timestamp: datetime = field(default_factory=_utcnow)
    resolved: bool = False
    resolution_notes: Optional[str] = None
    resolved_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "error": self.error.to_dict(),
            "context": self.context.to_dict(),
            "severity": self.severity.value,
            "timestamp": self.timestamp.isoformat(),
            "resolved": self.resolved,
            "resolutionNotes": self.resolution_notes,
            "resolvedAt": self.resolved_at.isoformat() if self.resolved_at else None,
        }


@dataclass
class RecoveryResult:
    """Verdict of a single recovery strategy invocation."""

    success: bool
    message: str
    requires_manual_intervention: bool
    data: Optional[Any] = None
    strategy: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "message": self.message,
            "requiresManualIntervention": self.requires_manual_intervention,
            "data": self.data,
            "strategy": self.strategy,
        }


@dataclass
class CircuitBreakerState:
    """Snapshot of a circuit breaker's counters."""

    failures: int = 0
    state: CircuitState = CircuitState.CLOSED
    last_failure_time: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "failures": self.failures,
            "state": self.state.value,
            "lastFailureTime": self.last_failure_time,
        }
