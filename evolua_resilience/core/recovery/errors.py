"""
Error Classification

Defines the structured error taxonomy for patient management operations.
Every failure surfaced by the engine is a PatientManagementError tagged
with exactly one ErrorKind and carrying that kind's payload.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple, Union

from .models import ComplianceLevel, Severity, StorageType


class ErrorKind(str, Enum):
    """Closed set of error kinds."""

    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    AUTHORIZATION = "authorization"
    SECURITY_VIOLATION = "security_violation"
    COMPLIANCE_VIOLATION = "compliance_violation"
    DATABASE = "database"
    STORAGE = "storage"
    NETWORK = "network"
    INTEGRATION = "integration"
    DATA_SYNC = "data_sync"


# Stable machine-readable codes
ERROR_CODES: Dict[ErrorKind, str] = {
    ErrorKind.VALIDATION: "VALIDATION_ERROR",
    ErrorKind.NOT_FOUND: "RESOURCE_NOT_FOUND",
    ErrorKind.AUTHORIZATION: "AUTHORIZATION_ERROR",
    ErrorKind.SECURITY_VIOLATION: "SECURITY_VIOLATION",
    ErrorKind.COMPLIANCE_VIOLATION: "LGPD_COMPLIANCE_ERROR",
    ErrorKind.DATABASE: "DATABASE_ERROR",
    ErrorKind.STORAGE: "STORAGE_ERROR",
    ErrorKind.NETWORK: "NETWORK_ERROR",
    ErrorKind.INTEGRATION: "INTEGRATION_ERROR",
    ErrorKind.DATA_SYNC: "DATA_SYNC_ERROR",
}

# Human-readable class-style names used in audit records
ERROR_NAMES: Dict[ErrorKind, str] = {
    ErrorKind.VALIDATION: "ValidationError",
    ErrorKind.NOT_FOUND: "ResourceNotFoundError",
    ErrorKind.AUTHORIZATION: "AuthorizationError",
    ErrorKind.SECURITY_VIOLATION: "SecurityViolationError",
    ErrorKind.COMPLIANCE_VIOLATION: "LGPDComplianceError",
    ErrorKind.DATABASE: "DatabaseError",
    ErrorKind.STORAGE: "StorageError",
    ErrorKind.NETWORK: "NetworkError",
    ErrorKind.INTEGRATION: "IntegrationError",
    ErrorKind.DATA_SYNC: "DataSyncError",
}


# =============================================================================
# Payloads (one per kind)
# =============================================================================

@dataclass(frozen=True)
class FieldError:
    """A single field-level validation failure."""

    field: str
    message: str
    code: str


@dataclass(frozen=True)
class ValidationDetails:
    field_errors: Tuple[FieldError, ...] = ()

    @property
    def field(self) -> Optional[str]:
        return self.field_errors[0].field if self.field_errors else None


@dataclass(frozen=True)
class NotFoundDetails:
    resource_type: str
    resource_id: str


@dataclass(frozen=True)
class AuthorizationDetails:
    user_id: str
    resource: str
    action: str


@dataclass(frozen=True)
class SecurityViolationDetails:
    violation_type: str
    severity: Severity


@dataclass(frozen=True)
class ComplianceDetails:
    compliance_type: str
    level: ComplianceLevel


@dataclass(frozen=True)
class DatabaseDetails:
    operation: str


@dataclass(frozen=True)
class StorageDetails:
    storage_type: StorageType


@dataclass(frozen=True)
class NetworkDetails:
    endpoint: Optional[str] = None
    status_code: Optional[int] = None


@dataclass(frozen=True)
class IntegrationDetails:
    system: str
    operation: str


@dataclass(frozen=True)
class DataSyncDetails:
    source_system: str
    target_system: str


ErrorDetails = Union[
    ValidationDetails,
    NotFoundDetails,
    AuthorizationDetails,
    SecurityViolationDetails,
    ComplianceDetails,
    DatabaseDetails,
    StorageDetails,
    NetworkDetails,
    IntegrationDetails,
    DataSyncDetails,
]

_DETAILS_TYPES: Dict[ErrorKind, type] = {
    ErrorKind.VALIDATION: ValidationDetails,
    ErrorKind.NOT_FOUND: NotFoundDetails,
    ErrorKind.AUTHORIZATION: AuthorizationDetails,
    ErrorKind.SECURITY_VIOLATION: SecurityViolationDetails,
    ErrorKind.COMPLIANCE_VIOLATION: ComplianceDetails,
    ErrorKind.DATABASE: DatabaseDetails,
    ErrorKind.STORAGE: StorageDetails,
    ErrorKind.NETWORK: NetworkDetails,
    ErrorKind.INTEGRATION: IntegrationDetails,
    ErrorKind.DATA_SYNC: DataSyncDetails,
}

# Fixed user-facing sentences; they must never include identifiers
_FIXED_USER_MESSAGES: Dict[ErrorKind, str] = {
    ErrorKind.AUTHORIZATION: "You do not have permission to perform this action.",
    ErrorKind.SECURITY_VIOLATION: (
        "A security violation was detected. This incident has been logged."
    ),
    ErrorKind.COMPLIANCE_VIOLATION: "This operation violates LGPD compliance requirements.",
    ErrorKind.DATABASE: "A database error occurred. Please try again later.",
    ErrorKind.STORAGE: "A storage error occurred. Please try again later.",
    ErrorKind.NETWORK: (
        "A network error occurred. Please check your connection and try again."
    ),
    ErrorKind.DATA_SYNC: (
        "Data synchronization failed. Changes may not be reflected across all systems."
    ),
}


class PatientManagementError(Exception):
    """
    Structured error raised by patient management operations.

    The error is a tagged variant: ``kind`` selects the variant and
    ``details`` holds that variant's payload. Behaviour that differs by
    kind (user message, severity) dispatches on ``kind``.
    """

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        details: ErrorDetails,
        context: Optional[Dict[str, Any]] = None,
        original_cause: Optional[BaseException] = None,
    ):
        expected = _DETAILS_TYPES[kind]
        if not isinstance(details, expected):
            raise TypeError(
                f"{kind.value} errors require {expected.__name__}, "
                f"got {type(details).__name__}"
            )

        super().__init__(message)
        self.kind = kind
        self.code = ERROR_CODES[kind]
        self.message = message
        self.details = details
        self.context = context
        self.original_cause = original_cause
        self.timestamp = datetime.now(timezone.utc)

        if original_cause is not None:
            self.__cause__ = original_cause

    def __repr__(self) -> str:
        return f"{self.name}(code={self.code!r}, message={self.message!r})"

    @property
    def name(self) -> str:
        return ERROR_NAMES[self.kind]

    def is_kind(self, *kinds: ErrorKind) -> bool:
        return self.kind in kinds

    @property
    def severity(self) -> Severity:
        """Computed severity of this error."""
        kind = self.kind

        if kind is ErrorKind.SECURITY_VIOLATION:
            return self.details.severity

        if kind is ErrorKind.COMPLIANCE_VIOLATION:
            if self.details.level is ComplianceLevel.VIOLATION:
                return Severity.CRITICAL
            return Severity.HIGH

        if kind in (ErrorKind.AUTHORIZATION, ErrorKind.DATABASE, ErrorKind.STORAGE):
            return Severity.HIGH

        if kind is ErrorKind.VALIDATION:
            return Severity.LOW

        return Severity.MEDIUM

    def get_user_message(self) -> str:
        """Message safe for direct display to the end user."""
        kind = self.kind

        if kind is ErrorKind.VALIDATION:
            field_errors = self.details.field_errors
            if len(field_errors) == 1:
                return field_errors[0].message
            if not field_errors:
                return "Validation failed"
            return f"Validation failed: {len(field_errors)} errors found"

        if kind is ErrorKind.NOT_FOUND:
            return f"The requested {self.details.resource_type.lower()} could not be found."

        if kind is ErrorKind.INTEGRATION:
            return (
                f"Integration with {self.details.system} failed. "
                "The operation will be retried automatically."
            )

        return _FIXED_USER_MESSAGES[kind]

    def to_dict(self) -> Dict[str, Any]:
        """Audit-safe projection for logs and incident records."""
        details = asdict(self.details)
        for key, value in details.items():
            if isinstance(value, Enum):
                details[key] = value.value

        return {
            "name": self.name,
            "kind": self.kind.value,
            "code": self.code,
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
            "context": self.context,
            "details": details,
            "cause": type(self.original_cause).__name__ if self.original_cause else None,
        }


FieldErrorLike = Union[FieldError, Mapping[str, str]]


def _coerce_field_errors(field_errors: Iterable[FieldErrorLike]) -> Tuple[FieldError, ...]:
    coerced = []
    for item in field_errors:
        if isinstance(item, FieldError):
            coerced.append(item)
        else:
            coerced.append(
                FieldError(field=item["field"], message=item["message"], code=item["code"])
            )
    return tuple(coerced)


# =============================================================================
# Factory
# =============================================================================

class ErrorFactory:
    """Uniform construction of taxonomy errors."""

    @staticmethod
    def create_validation_error(
        field_errors: Iterable[FieldErrorLike],
        context: Optional[Dict[str, Any]] = None,
    ) -> PatientManagementError:
        return PatientManagementError(
            ErrorKind.VALIDATION,
            "Validation failed",
            ValidationDetails(field_errors=_coerce_field_errors(field_errors)),
            context,
        )

    @staticmethod
    def create_not_found_error(
        resource_type: str,
        resource_id: str,
        context: Optional[Dict[str, Any]] = None,
        original_error: Optional[BaseException] = None,
    ) -> PatientManagementError:
        return PatientManagementError(
            ErrorKind.NOT_FOUND,
            f"{resource_type} with ID {resource_id} not found",
            NotFoundDetails(resource_type=resource_type, resource_id=resource_id),
            context,
            original_error,
        )

    @staticmethod
    def create_authorization_error(
        user_id: str,
        resource: str,
        action: str,
        context: Optional[Dict[str, Any]] = None,
        original_error: Optional[BaseException] = None,
    ) -> PatientManagementError:
        return PatientManagementError(
            ErrorKind.AUTHORIZATION,
            f"User {user_id} is not authorized to {action} {resource}",
            AuthorizationDetails(user_id=user_id, resource=resource, action=action),
            context,
            original_error,
        )

    @staticmethod
    def create_security_violation(
        message: str,
        violation_type: str,
        severity: Union[Severity, str],
        context: Optional[Dict[str, Any]] = None,
    ) -> PatientManagementError:
        return PatientManagementError(
            ErrorKind.SECURITY_VIOLATION,
            message,
            SecurityViolationDetails(
                violation_type=violation_type, severity=Severity(severity)
            ),
            context,
        )

    @staticmethod
    def create_compliance_error(
        message: str,
        compliance_type: str,
        level: Union[ComplianceLevel, str],
        context: Optional[Dict[str, Any]] = None,
    ) -> PatientManagementError:
        return PatientManagementError(
            ErrorKind.COMPLIANCE_VIOLATION,
            message,
            ComplianceDetails(compliance_type=compliance_type, level=ComplianceLevel(level)),
            context,
        )

    @staticmethod
    def create_database_error(
        message: str,
        operation: str,
        original_error: Optional[BaseException] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> PatientManagementError:
        return PatientManagementError(
            ErrorKind.DATABASE,
            message,
            DatabaseDetails(operation=operation),
            context,
            original_error,
        )

    @staticmethod
    def create_storage_error(
        message: str,
        storage_type: Union[StorageType, str],
        original_error: Optional[BaseException] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> PatientManagementError:
        return PatientManagementError(
            ErrorKind.STORAGE,
            message,
            StorageDetails(storage_type=StorageType(storage_type)),
            context,
            original_error,
        )

    @staticmethod
    def create_network_error(
        message: str,
        endpoint: Optional[str] = None,
        status_code: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
        original_error: Optional[BaseException] = None,
    ) -> PatientManagementError:
        return PatientManagementError(
            ErrorKind.NETWORK,
            message,
            NetworkDetails(endpoint=endpoint, status_code=status_code),
            context,
            original_error,
        )

    @staticmethod
    def create_integration_error(
        message: str,
        system: str,
        operation: str,
        original_error: Optional[BaseException] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> PatientManagementError:
        return PatientManagementError(
            ErrorKind.INTEGRATION,
            message,
            IntegrationDetails(system=system, operation=operation),
            context,
            original_error,
        )

    @staticmethod
    def create_data_sync_error(
        message: str,
        source_system: str,
        target_system: str,
        context: Optional[Dict[str, Any]] = None,
    ) -> PatientManagementError:
        return PatientManagementError(
            ErrorKind.DATA_SYNC,
            message,
            DataSyncDetails(source_system=source_system, target_system=target_system),
            context,
        )


# =============================================================================
# Normalization
# =============================================================================

def normalize_error(error: BaseException) -> PatientManagementError:
    """
    Convert an arbitrary exception into a taxonomy error.

    This is a best-effort, case-sensitive classification based on the
    exception message.
    Callers that need a precise kind should raise taxonomy errors directly.
    Unknown failures become database errors so they stay retry-eligible.
    """
    if isinstance(error, PatientManagementError):
        return error

    message = str(error)

    if "not found" in message:
        return ErrorFactory.create_not_found_error(
            "Resource", "unknown", original_error=error
        )

    if "unauthorized" in message or "permission" in message:
        return ErrorFactory.create_authorization_error(
            "unknown", "resource", "access", original_error=error
        )

    if "database" in message or "query" in message:
        return ErrorFactory.create_database_error(message, "unknown", error)

    if "network" in message or "fetch" in message:
        return ErrorFactory.create_network_error(message, original_error=error)

    return ErrorFactory.create_database_error(
        message or "An unexpected error occurred",
        "unknown",
        error,
    )
