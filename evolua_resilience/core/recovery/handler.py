"""
Error Handler

Centralized error handling for patient management use cases: error
normalization, retry with exponential backoff, fallback chains and
incident reporting for security and compliance violations.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import (
    Any,
    Awaitable,
    Callable,
    Coroutine,
    Dict,
    FrozenSet,
    Iterable,
    List,
    Optional,
    Sequence,
    TypeVar,
)

import structlog

from .errors import ErrorFactory, ErrorKind, FieldErrorLike, PatientManagementError, normalize_error
from .incidents import IncidentNotifier, IncidentSink, IncidentStore, LoggingNotifier
from .models import ErrorContext, ErrorHandlingResult, IncidentReport, RecoveryAction, Severity

T = TypeVar("T")

Operation = Callable[[], Coroutine[Any, Any, T]]
Sleep = Callable[[float], Awaitable[Any]]


DEFAULT_RETRYABLE_CODES: FrozenSet[str] = frozenset(
    {
        "DATABASE_ERROR",
        "NETWORK_ERROR",
        "STORAGE_ERROR",
        "INTEGRATION_ERROR",
        "DATA_SYNC_ERROR",
    }
)

RECOVERY_ACTIONS: Dict[ErrorKind, RecoveryAction] = {
    ErrorKind.VALIDATION: RecoveryAction.CORRECT_INPUT,
    ErrorKind.NOT_FOUND: RecoveryAction.VERIFY_RESOURCE_ID,
    ErrorKind.AUTHORIZATION: RecoveryAction.REQUEST_PERMISSION,
    ErrorKind.SECURITY_VIOLATION: RecoveryAction.SECURITY_REVIEW_REQUIRED,
    ErrorKind.COMPLIANCE_VIOLATION: RecoveryAction.COMPLIANCE_REVIEW_REQUIRED,
    ErrorKind.DATABASE: RecoveryAction.RETRY_OPERATION,
    ErrorKind.STORAGE: RecoveryAction.RETRY_OPERATION,
    ErrorKind.INTEGRATION: RecoveryAction.CHECK_INTEGRATION_STATUS,
    ErrorKind.DATA_SYNC: RecoveryAction.CHECK_INTEGRATION_STATUS,
    ErrorKind.NETWORK: RecoveryAction.CONTACT_SUPPORT,
}

INCIDENT_KINDS = (
    ErrorKind.SECURITY_VIOLATION,
    ErrorKind.COMPLIANCE_VIOLATION,
    ErrorKind.AUTHORIZATION,
)


@dataclass
class ErrorHandlerConfig:
    """Behaviour toggles for the error handler."""

    enable_retry: bool = True
    max_retries: int = 3
    retry_delay_seconds: float = 1.0
    exponential_backoff: bool = True
    enable_logging: bool = True
    enable_incident_reporting: bool = True
    enable_user_notification: bool = True


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""

    max_attempts: int = 3
    initial_delay_seconds: float = 1.0
    max_delay_seconds: float = 10.0
    exponential_backoff: bool = True
    retryable_codes: FrozenSet[str] = field(default_factory=lambda: DEFAULT_RETRYABLE_CODES)

    @classmethod
    def from_handler_config(cls, config: ErrorHandlerConfig) -> "RetryConfig":
        return cls(
            max_attempts=config.max_retries if config.enable_retry else 1,
            initial_delay_seconds=config.retry_delay_seconds,
            exponential_backoff=config.exponential_backoff,
        )

    def get_delay(self, attempt: int) -> float:
        """Delay before the retry that follows failed attempt ``attempt`` (1-based)."""
        if not self.exponential_backoff:
            return self.initial_delay_seconds
        delay = self.initial_delay_seconds * (2 ** (attempt - 1))
        return min(delay, self.max_delay_seconds)


_LOG_LEVELS: Dict[Severity, str] = {
    Severity.CRITICAL: "critical",
    Severity.HIGH: "error",
    Severity.MEDIUM: "warning",
    Severity.LOW: "info",
}


class ErrorHandler:
    """
    Top-level façade for error handling.

    Build one instance at the application's composition root and inject it
    into use cases. Incidents are kept in an ``IncidentStore`` and handed to
    ``incident_sink`` (audit persistence) when incident reporting is on.
    """

    def __init__(
        self,
        config: Optional[ErrorHandlerConfig] = None,
        retry_config: Optional[RetryConfig] = None,
        incident_store: Optional[IncidentStore] = None,
        notifier: Optional[IncidentNotifier] = None,
        incident_sink: Optional[IncidentSink] = None,
        sleep: Sleep = asyncio.sleep,
        logger: Optional[Any] = None,
    ):
        self.config = config or ErrorHandlerConfig()
        self.retry_config = retry_config or RetryConfig.from_handler_config(self.config)
        self.incidents = incident_store if incident_store is not None else IncidentStore()
        self.logger = logger or structlog.stdlib.get_logger(__name__)
        self.notifier = notifier or LoggingNotifier(self.logger)
        self.incident_sink = incident_sink
        self._sleep = sleep

    # -------------------------------------------------------------------------
    # Handling
    # -------------------------------------------------------------------------

    async def handle_error(
        self,
        error: BaseException,
        context: ErrorContext,
    ) -> ErrorHandlingResult:
        """Normalize, log and report an error. Never raises."""
        managed_error = normalize_error(error)

        if self.config.enable_logging:
            self._log_error(managed_error, context)

        incident: Optional[IncidentReport] = None
        if self.should_create_incident(managed_error):
            incident = await self._create_incident_report(managed_error, context)

        result = ErrorHandlingResult(
            error=managed_error,
            user_message=managed_error.get_user_message(),
            recovery_action=self.determine_recovery_action(managed_error),
            incident_id=incident.id if incident else None,
        )

        if self.config.enable_user_notification:
            await self._notify(self.notifier.notify_user, result, context)

        return result

    def handle_validation_error(
        self,
        field_errors: Iterable[FieldErrorLike],
        context: ErrorContext,
    ) -> ErrorHandlingResult:
        """Build and log a validation error. No incident is created."""
        error = ErrorFactory.create_validation_error(
            field_errors, {"context": context.to_dict()}
        )

        if self.config.enable_logging:
            self._log_error(error, context)

        return ErrorHandlingResult(
            error=error,
            user_message=error.get_user_message(),
            recovery_action=self.determine_recovery_action(error),
        )

    async def handle_security_violation(
        self,
        error: PatientManagementError,
        context: ErrorContext,
    ) -> ErrorHandlingResult:
        """Always report a security violation and notify the security team."""
        if error.kind is not ErrorKind.SECURITY_VIOLATION:
            raise TypeError(f"Expected a security violation, got {error.code}")

        incident = await self._create_incident_report(error, context)
        self.logger.critical(
            "security_violation_detected",
            incident_id=incident.id,
            error=error.to_dict(),
            context=context.to_dict(),
        )
        await self._notify(self.notifier.notify_security_team, incident)

        return ErrorHandlingResult(
            error=error,
            user_message=error.get_user_message(),
            recovery_action=RecoveryAction.SECURITY_REVIEW_REQUIRED,
            incident_id=incident.id,
        )

    async def handle_lgpd_violation(
        self,
        error: PatientManagementError,
        context: ErrorContext,
    ) -> ErrorHandlingResult:
        """Always report an LGPD compliance error and notify the compliance team."""
        if error.kind is not ErrorKind.COMPLIANCE_VIOLATION:
            raise TypeError(f"Expected an LGPD compliance error, got {error.code}")

        incident = await self._create_incident_report(error, context)
        self.logger.critical(
            "lgpd_compliance_violation",
            incident_id=incident.id,
            error=error.to_dict(),
            context=context.to_dict(),
        )
        await self._notify(self.notifier.notify_compliance_team, incident)

        return ErrorHandlingResult(
            error=error,
            user_message=error.get_user_message(),
            recovery_action=RecoveryAction.COMPLIANCE_REVIEW_REQUIRED,
            incident_id=incident.id,
        )

    # -------------------------------------------------------------------------
    # Execution helpers
    # -------------------------------------------------------------------------

    async def execute_with_retry(
        self,
        operation: Operation[T],
        context: ErrorContext,
    ) -> T:
        """
        Execute an operation with automatic retry on failure.

        Non-retryable errors are raised after the first failure. Retryable
        errors are retried up to ``retry_config.max_attempts`` with the
        configured backoff; the normalized error of the last attempt is
        raised when attempts run out.
        """
        max_attempts = max(1, self.retry_config.max_attempts)
        attempt = 0

        while True:
            try:
                return await operation()
            except Exception as e:
                attempt += 1
                managed_error = normalize_error(e)

                if not self.is_retryable(managed_error):
                    if managed_error is e:
                        raise
                    raise managed_error from e

                if attempt >= max_attempts:
                    if self.config.enable_logging:
                        self.logger.error(
                            "retry_exhausted",
                            attempts=attempt,
                            error=managed_error.to_dict(),
                            context=context.to_dict(),
                        )
                    if managed_error is e:
                        raise
                    raise managed_error from e

                delay = self.retry_config.get_delay(attempt)
                if self.config.enable_logging:
                    self.logger.warning(
                        "retry_scheduled",
                        attempt=attempt,
                        max_attempts=max_attempts,
                        delay_seconds=delay,
                        error_code=managed_error.code,
                        context=context.to_dict(),
                    )
                await self._sleep(delay)

    async def execute_with_fallback(
        self,
        operations: Sequence[Operation[T]],
        context: ErrorContext,
    ) -> T:
        """
        Try operations in order and return the first success.

        Failures are logged, not retried. The normalized error of the last
        operation is raised when every operation fails.
        """
        if not operations:
            raise ValueError("execute_with_fallback requires at least one operation")

        total = len(operations)
        for index, operation in enumerate(operations, start=1):
            try:
                return await operation()
            except Exception as e:
                if self.config.enable_logging:
                    self.logger.warning(
                        "fallback_operation_failed",
                        index=index,
                        total=total,
                        error=str(e),
                        context=context.to_dict(),
                    )
                if index == total:
                    managed_error = normalize_error(e)
                    if managed_error is e:
                        raise
                    raise managed_error from e

        raise RuntimeError("All fallback operations failed")

    # -------------------------------------------------------------------------
    # Incidents
    # -------------------------------------------------------------------------

    def get_incident_reports(self) -> List[IncidentReport]:
        return self.incidents.list_all()

    def get_incident_report(self, incident_id: str) -> Optional[IncidentReport]:
        return self.incidents.get(incident_id)

    def resolve_incident(self, incident_id: str, resolution_notes: str) -> bool:
        resolved = self.incidents.resolve(incident_id, resolution_notes)
        if resolved:
            self.logger.info("incident_resolved", incident_id=incident_id)
        return resolved

    # -------------------------------------------------------------------------
    # Classification
    # -------------------------------------------------------------------------

    def is_retryable(self, error: PatientManagementError) -> bool:
        return error.code in self.retry_config.retryable_codes

    def should_create_incident(self, error: PatientManagementError) -> bool:
        return error.is_kind(*INCIDENT_KINDS) or error.severity is Severity.CRITICAL

    def determine_severity(self, error: PatientManagementError) -> Severity:
        return error.severity

    def determine_recovery_action(self, error: PatientManagementError) -> RecoveryAction:
        return RECOVERY_ACTIONS.get(error.kind, RecoveryAction.CONTACT_SUPPORT)

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    async def _create_incident_report(
        self,
        error: PatientManagementError,
        context: ErrorContext,
    ) -> IncidentReport:
        incident = self.incidents.add(
            IncidentReport(
                error=error,
                context=context,
                severity=self.determine_severity(error),
            )
        )

        if self.config.enable_incident_reporting:
            self.logger.error(
                "incident_report_created",
                incident_id=incident.id,
                severity=incident.severity.value,
                error_code=error.code,
                operation=context.operation,
            )
            if self.incident_sink is not None:
                await self._notify(self.incident_sink, incident)

        return incident

    async def _notify(self, callback: Callable[..., Awaitable[Any]], *args: Any) -> None:
        # Collaborator failures must not mask the error being handled
        try:
            await callback(*args)
        except Exception:
            self.logger.exception(
                "notification_failed",
                callback=getattr(callback, "__name__", repr(callback)),
            )

    def _log_error(self, error: PatientManagementError, context: ErrorContext) -> None:
        severity = self.determine_severity(error)
        log = getattr(self.logger, _LOG_LEVELS[severity])
        log(
            "error_logged",
            error=error.to_dict(),
            context=context.to_dict(),
            severity=severity.value,
        )
