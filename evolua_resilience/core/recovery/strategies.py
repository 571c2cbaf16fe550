"""
Recovery Strategies

One strategy per error family. A strategy decides whether it applies to
an error and produces a RecoveryResult verdict describing whether the
caller may keep retrying or needs a human.
"""

from __future__ import annotations

import threading
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Coroutine, Dict, Optional, TypeVar

import structlog

from .circuit_breaker import CircuitBreaker, CircuitBreakerConfig
from .errors import ErrorKind, PatientManagementError
from .models import CircuitState, ErrorContext, RecoveryResult, StorageType

T = TypeVar("T")


class RecoveryStrategy(ABC):
    """Base class for recovery strategies."""

    name: str = "Recovery"

    @abstractmethod
    def can_handle(self, error: PatientManagementError) -> bool:
        """Whether this strategy applies to ``error``."""

    @abstractmethod
    async def recover(
        self,
        error: PatientManagementError,
        context: ErrorContext,
    ) -> RecoveryResult:
        """Produce a recovery verdict for ``error``."""

    def _result(
        self,
        message: str,
        requires_manual_intervention: bool,
        success: bool = False,
    ) -> RecoveryResult:
        return RecoveryResult(
            success=success,
            message=message,
            requires_manual_intervention=requires_manual_intervention,
            strategy=self.name,
        )


def _contains_any(message: str, patterns: tuple) -> bool:
    return any(p in message for p in patterns)


class DatabaseRecoveryStrategy(RecoveryStrategy):
    """Relational store failures, classified by message."""

    name = "DatabaseRecovery"

    connection_patterns = ("connection", "timeout", "econnrefused")
    constraint_patterns = ("constraint", "unique", "foreign key")
    deadlock_patterns = ("deadlock",)

    def can_handle(self, error: PatientManagementError) -> bool:
        return error.kind is ErrorKind.DATABASE

    async def recover(
        self,
        error: PatientManagementError,
        context: ErrorContext,
    ) -> RecoveryResult:
        message = error.message.lower()

        if _contains_any(message, self.connection_patterns):
            return self._result("Database connection lost. Retrying...", False)

        if _contains_any(message, self.constraint_patterns):
            return self._result("Data constraint violation. Please check your input.", True)

        if _contains_any(message, self.deadlock_patterns):
            return self._result(
                "Database deadlock detected. Operation will be retried.", False
            )

        return self._result("Database error occurred. Please try again later.", True)


class IntegrationRecoveryStrategy(RecoveryStrategy):
    """
    Third-party system failures.

    Owns one circuit breaker per external system, created on first use.
    Data sync failures are always left to the scheduled sync process.
    """

    name = "IntegrationRecovery"

    def __init__(
        self,
        breaker_config: Optional[CircuitBreakerConfig] = None,
        clock: Callable[[], float] = time.monotonic,
        logger: Optional[Any] = None,
    ):
        self.breaker_config = breaker_config or CircuitBreakerConfig()
        self.logger = logger or structlog.stdlib.get_logger(__name__)
        self._clock = clock
        self._circuit_breakers: Dict[str, CircuitBreaker] = {}
        self._lock = threading.Lock()

    def can_handle(self, error: PatientManagementError) -> bool:
        return error.is_kind(ErrorKind.INTEGRATION, ErrorKind.DATA_SYNC)

    async def recover(
        self,
        error: PatientManagementError,
        context: ErrorContext,
    ) -> RecoveryResult:
        if error.kind is ErrorKind.INTEGRATION:
            system = error.details.system
            circuit = self.get_circuit_breaker(system)

            if circuit.state == CircuitState.OPEN:
                return self._result(
                    f"Integration with {system} is temporarily unavailable. Using fallback.",
                    False,
                )

            return self._result(f"Integration with {system} failed. Retrying...", False)

        if error.kind is ErrorKind.DATA_SYNC:
            return self._result(
                "Data synchronization failed. Changes will be synced automatically.",
                False,
            )

        return self._result("Integration error occurred.", True)

    def get_circuit_breaker(self, system: str) -> CircuitBreaker:
        """Get or create the circuit breaker for a system."""
        with self._lock:
            circuit = self._circuit_breakers.get(system)
            if circuit is None:
                circuit = CircuitBreaker(
                    name=system,
                    config=self.breaker_config,
                    clock=self._clock,
                )
                self._circuit_breakers[system] = circuit
            return circuit

    def get_circuit_states(self) -> Dict[str, str]:
        with self._lock:
            return {name: cb.state.value for name, cb in self._circuit_breakers.items()}

    async def execute_with_circuit_breaker(
        self,
        system: str,
        operation: Callable[[], Coroutine[Any, Any, T]],
        fallback: Optional[Callable[[], Coroutine[Any, Any, T]]] = None,
    ) -> T:
        """Execute an integration call protected by the system's breaker."""
        circuit = self.get_circuit_breaker(system)
        return await circuit.execute(operation, fallback)


class StorageRecoveryStrategy(RecoveryStrategy):
    """File, database-backed and cache storage failures."""

    name = "StorageRecovery"

    def can_handle(self, error: PatientManagementError) -> bool:
        return error.kind is ErrorKind.STORAGE

    async def recover(
        self,
        error: PatientManagementError,
        context: ErrorContext,
    ) -> RecoveryResult:
        storage_type = error.details.storage_type

        if storage_type is StorageType.FILE:
            return self._result("File storage error. Please try uploading again.", True)

        if storage_type is StorageType.CACHE:
            # Cache misses degrade to the primary store
            return self._result("Cache error. Falling back to database.", False, success=True)

        return self._result("Storage error occurred. Please try again.", True)


class NetworkRecoveryStrategy(RecoveryStrategy):
    """Transport failures, classified by message then status code."""

    name = "NetworkRecovery"

    connection_patterns = ("connection", "network", "offline")

    def can_handle(self, error: PatientManagementError) -> bool:
        return error.kind is ErrorKind.NETWORK

    async def recover(
        self,
        error: PatientManagementError,
        context: ErrorContext,
    ) -> RecoveryResult:
        message = error.message.lower()
        status_code = error.details.status_code

        if "timeout" in message:
            return self._result("Request timed out. Retrying with longer timeout...", False)

        if _contains_any(message, self.connection_patterns):
            return self._result(
                "Network connection lost. Please check your internet connection.", True
            )

        if status_code:
            if status_code >= 500:
                return self._result("Server error. Retrying...", False)

            if status_code == 429:
                return self._result(
                    "Rate limit exceeded. Please wait before retrying.", True
                )

        return self._result("Network error occurred. Please try again.", True)
