"""Test doubles shared by the recovery tests."""

from typing import List

from evolua_resilience.core.recovery import ErrorContext, ErrorHandlingResult, IncidentReport


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    """Replaces asyncio.sleep and records requested delays."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


class RecordingNotifier:
    def __init__(self):
        self.security: List[IncidentReport] = []
        self.compliance: List[IncidentReport] = []
        self.users: List[ErrorHandlingResult] = []

    async def notify_security_team(self, incident: IncidentReport) -> None:
        self.security.append(incident)

    async def notify_compliance_team(self, incident: IncidentReport) -> None:
        self.compliance.append(incident)

    async def notify_user(self, result: ErrorHandlingResult, context: ErrorContext) -> None:
        self.users.append(result)


class FailingNotifier(RecordingNotifier):
    async def notify_user(self, result: ErrorHandlingResult, context: ErrorContext) -> None:
        raise RuntimeError("smtp down")


class CallCounter:
    """Async operation that fails with the given errors, then returns ``value``."""

    def __init__(self, errors=(), value="success"):
        self.errors = list(errors)
        self.value = value
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return self.value
