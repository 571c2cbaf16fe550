"""
Tests for the Error Recovery Service

Tests for strategy selection, end-to-end recovery and extension.
"""

import pytest

from evolua_resilience.core.recovery import (
    ErrorContext,
    ErrorFactory,
    ErrorHandler,
    ErrorKind,
    ErrorRecoveryService,
    IntegrationRecoveryStrategy,
    PatientManagementError,
    RecoveryResult,
    RecoveryStrategy,
)

from fakes import CallCounter, RecordingSleep


class AlwaysRetryStrategy(RecoveryStrategy):
    """Custom strategy accepting every error."""

    name = "AlwaysRetry"

    def __init__(self):
        self.seen = []

    def can_handle(self, error):
        return True

    async def recover(self, error, context):
        self.seen.append(error)
        return self._result("Retrying anything.", False)


class ExplodingStrategy(RecoveryStrategy):
    name = "Exploding"

    def can_handle(self, error):
        return True

    async def recover(self, error, context):
        raise RuntimeError("strategy bug")


@pytest.fixture
def context() -> ErrorContext:
    return ErrorContext(operation="load_reports", user_id="user-1")


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def service(sleep) -> ErrorRecoveryService:
    return ErrorRecoveryService(sleep=sleep)


class TestAttemptRecovery:
    """Tests for attempt_recovery."""

    def test_builtin_order(self, service):
        assert [s.name for s in service.strategies] == [
            "DatabaseRecovery",
            "IntegrationRecovery",
            "StorageRecovery",
            "NetworkRecovery",
        ]

    @pytest.mark.asyncio
    async def test_dispatches_to_matching_strategy(self, service, context):
        result = await service.attempt_recovery(
            ErrorFactory.create_storage_error("redis down", "cache"), context
        )

        assert result.strategy == "StorageRecovery"
        assert result.success is True

    @pytest.mark.asyncio
    async def test_integration_error_verdict(self, service, context):
        error = ErrorFactory.create_integration_error("Service unavailable", "AppointmentSystem", "sync")

        result = await service.attempt_recovery(error, context)

        assert result.success is False
        assert result.strategy == "IntegrationRecovery"

    @pytest.mark.asyncio
    async def test_no_strategy_available(self, service, context):
        error = ErrorFactory.create_validation_error([])

        result = await service.attempt_recovery(error, context)

        assert result.success is False
        assert result.requires_manual_intervention is True
        assert "No recovery strategy" in result.message

    @pytest.mark.asyncio
    async def test_strategy_failure_needs_manual_intervention(self, context):
        service = ErrorRecoveryService(strategies=[ExplodingStrategy()])

        result = await service.attempt_recovery(ErrorFactory.create_network_error("x"), context)

        assert result == RecoveryResult(
            success=False,
            message="Recovery attempt failed.",
            requires_manual_intervention=True,
            strategy="Exploding",
        )


class TestExecuteWithRecovery:
    """Tests for execute_with_recovery."""

    @pytest.mark.asyncio
    async def test_recovers_after_connection_failure(self, service, sleep, context):
        operation = CallCounter(
            errors=[ErrorFactory.create_database_error("Connection failed", "query")]
        )

        assert await service.execute_with_recovery(operation, context) == "success"
        assert operation.calls == 2
        assert sleep.delays == [1.0]

    @pytest.mark.asyncio
    async def test_linear_delays(self, service, sleep, context):
        error = ErrorFactory.create_network_error("Request timeout")
        operation = CallCounter(errors=[error, error, error, error])

        await service.execute_with_recovery(operation, context, max_attempts=5)

        assert sleep.delays == [1.0, 2.0, 3.0, 4.0]

    @pytest.mark.asyncio
    async def test_manual_intervention_stops_immediately(self, service, sleep, context):
        error = ErrorFactory.create_database_error("violates unique constraint", "insert")
        operation = CallCounter(errors=[error])

        with pytest.raises(PatientManagementError) as exc_info:
            await service.execute_with_recovery(operation, context)

        assert exc_info.value is error
        assert operation.calls == 1
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_exhausted_attempts_raise(self, service, sleep, context):
        error = ErrorFactory.create_data_sync_error("drift", "postgres", "calendar")
        operation = CallCounter(errors=[error] * 3)

        with pytest.raises(PatientManagementError):
            await service.execute_with_recovery(operation, context, max_attempts=3)

        assert operation.calls == 3
        assert sleep.delays == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_service_default_max_attempts(self, sleep, context):
        service = ErrorRecoveryService(max_attempts=2, sleep=sleep)
        error = ErrorFactory.create_network_error("Request timeout")
        operation = CallCounter(errors=[error] * 3)

        with pytest.raises(PatientManagementError):
            await service.execute_with_recovery(operation, context)

        assert operation.calls == 2
        assert sleep.delays == [1.0]

    @pytest.mark.asyncio
    async def test_plain_exception_is_normalized(self, service, context):
        operation = CallCounter(errors=[KeyError("Patient not found")])

        with pytest.raises(PatientManagementError) as exc_info:
            await service.execute_with_recovery(operation, context)

        # Not-found errors have no strategy, so recovery stops at once
        assert exc_info.value.kind is ErrorKind.NOT_FOUND
        assert operation.calls == 1

    @pytest.mark.asyncio
    async def test_terminal_failure_routed_through_handler(self, sleep, context):
        handler = ErrorHandler()
        service = ErrorRecoveryService(error_handler=handler, sleep=sleep)
        operation = CallCounter(errors=[RuntimeError("permission denied")])

        with pytest.raises(PatientManagementError):
            await service.execute_with_recovery(operation, context)

        incidents = handler.get_incident_reports()
        assert len(incidents) == 1
        assert incidents[0].error.kind is ErrorKind.AUTHORIZATION

    @pytest.mark.asyncio
    async def test_invalid_max_attempts(self, service, context):
        with pytest.raises(ValueError):
            await service.execute_with_recovery(CallCounter(), context, max_attempts=0)


class TestExtension:
    """Tests for custom strategies and accessors."""

    @pytest.mark.asyncio
    async def test_custom_strategy_runs_after_builtins(self, service, context):
        custom = AlwaysRetryStrategy()
        service.add_strategy(custom)

        db_result = await service.attempt_recovery(
            ErrorFactory.create_database_error("deadlock detected", "update"), context
        )
        other = ErrorFactory.create_validation_error([])
        custom_result = await service.attempt_recovery(other, context)

        assert db_result.strategy == "DatabaseRecovery"
        assert custom_result.strategy == "AlwaysRetry"
        assert custom.seen == [other]

    def test_get_integration_strategy(self, service):
        strategy = service.get_integration_strategy()

        assert isinstance(strategy, IntegrationRecoveryStrategy)
        assert service.get_integration_strategy() is strategy

    def test_get_integration_strategy_missing(self):
        service = ErrorRecoveryService(strategies=[AlwaysRetryStrategy()])

        with pytest.raises(LookupError):
            service.get_integration_strategy()

    @pytest.mark.asyncio
    async def test_direct_circuit_breaker_call(self, service):
        strategy = service.get_integration_strategy()

        async def operation():
            return "slots"

        assert await strategy.execute_with_circuit_breaker("TestSystem", operation) == "slots"
