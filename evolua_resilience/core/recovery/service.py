"""
Error Recovery Service

Selects a recovery strategy for an error and drives end-to-end retries
based on the strategy's verdict.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Coroutine, List, Optional, TypeVar

import structlog

from .errors import PatientManagementError, normalize_error
from .models import ErrorContext, RecoveryResult
from .strategies import (
    DatabaseRecoveryStrategy,
    IntegrationRecoveryStrategy,
    NetworkRecoveryStrategy,
    RecoveryStrategy,
    StorageRecoveryStrategy,
)

if TYPE_CHECKING:
    from .handler import ErrorHandler

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[Any]]


class ErrorRecoveryService:
    """
    Orchestrates recovery strategies.

    Strategies are consulted in order and the first one whose
    ``can_handle`` accepts the error wins, so list order is priority:
    database, integration, storage, network, then custom strategies in
    registration order.
    """

    def __init__(
        self,
        error_handler: Optional["ErrorHandler"] = None,
        strategies: Optional[List[RecoveryStrategy]] = None,
        retry_delay_seconds: float = 1.0,
        max_attempts: int = 3,
        sleep: Sleep = asyncio.sleep,
        logger: Optional[Any] = None,
    ):
        self.error_handler = error_handler
        self.retry_delay_seconds = retry_delay_seconds
        self.max_attempts = max_attempts
        self.logger = logger or structlog.stdlib.get_logger(__name__)
        self._sleep = sleep

        if strategies is None:
            strategies = [
                DatabaseRecoveryStrategy(),
                IntegrationRecoveryStrategy(),
                StorageRecoveryStrategy(),
                NetworkRecoveryStrategy(),
            ]
        self.strategies: List[RecoveryStrategy] = list(strategies)

    async def attempt_recovery(
        self,
        error: PatientManagementError,
        context: ErrorContext,
    ) -> RecoveryResult:
        """Ask the first matching strategy for a verdict."""
        strategy = next((s for s in self.strategies if s.can_handle(error)), None)

        if strategy is None:
            return RecoveryResult(
                success=False,
                message="No recovery strategy available for this error.",
                requires_manual_intervention=True,
            )

        try:
            result = await strategy.recover(error, context)
        except Exception:
            self.logger.exception(
                "recovery_failed",
                strategy=strategy.name,
                error_code=error.code,
                operation=context.operation,
            )
            return RecoveryResult(
                success=False,
                message="Recovery attempt failed.",
                requires_manual_intervention=True,
                strategy=strategy.name,
            )

        self.logger.info(
            "recovery_attempted",
            strategy=strategy.name,
            error_code=error.code,
            recovered=result.success,
            manual=result.requires_manual_intervention,
            operation=context.operation,
        )
        return result

    async def execute_with_recovery(
        self,
        operation: Callable[[], Coroutine[Any, Any, T]],
        context: ErrorContext,
        max_attempts: Optional[int] = None,
    ) -> T:
        """
        Run ``operation``, retrying while the selected strategy allows it.

        The delay grows linearly (``retry_delay_seconds * attempt``). The
        normalized error is raised once a verdict needs manual
        intervention or attempts are exhausted; when an error handler is
        attached, that terminal failure is routed through it first.
        Without ``max_attempts`` the service-wide default applies.
        """
        if max_attempts is None:
            max_attempts = self.max_attempts
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        attempt = 0
        while True:
            try:
                return await operation()
            except Exception as e:
                attempt += 1
                managed_error = normalize_error(e)

                verdict = await self.attempt_recovery(managed_error, context)

                if verdict.requires_manual_intervention or attempt >= max_attempts:
                    self.logger.warning(
                        "recovery_gave_up",
                        error_code=managed_error.code,
                        attempts=attempt,
                        manual=verdict.requires_manual_intervention,
                        operation=context.operation,
                    )
                    if self.error_handler is not None:
                        await self.error_handler.handle_error(managed_error, context)
                    if managed_error is e:
                        raise
                    raise managed_error from e

                delay = self.retry_delay_seconds * attempt
                self.logger.info(
                    "recovery_retry_scheduled",
                    attempt=attempt,
                    max_attempts=max_attempts,
                    delay_seconds=delay,
                    operation=context.operation,
                )
                await self._sleep(delay)

    def add_strategy(self, strategy: RecoveryStrategy) -> None:
        """Register a custom strategy, evaluated after existing ones."""
        self.strategies.append(strategy)

    def get_integration_strategy(self) -> IntegrationRecoveryStrategy:
        for strategy in self.strategies:
            if isinstance(strategy, IntegrationRecoveryStrategy):
                return strategy
        raise LookupError("Integration recovery strategy not found")
