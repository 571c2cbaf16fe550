"""
Incident Store

In-memory store for incident reports plus the notifier collaborators that
deliver incidents to security and compliance stakeholders.
"""

from __future__ import annotations

import threading
from datetime import datetime, timezone
from typing import Any, Callable, Coroutine, Dict, List, Optional, Protocol

import structlog

from .models import ErrorContext, ErrorHandlingResult, IncidentReport

# Audit persistence hook, called for every new incident
IncidentSink = Callable[[IncidentReport], Coroutine[Any, Any, None]]


class IncidentStore:
    """
    Thread-safe table of incident reports keyed by id.

    Incidents are never deleted by the engine; call ``clear`` from the
    application when they have been persisted elsewhere.
    """

    def __init__(self) -> None:
        self._incidents: Dict[str, IncidentReport] = {}
        self._lock = threading.Lock()

    def add(self, incident: IncidentReport) -> IncidentReport:
        with self._lock:
            self._incidents[incident.id] = incident
        return incident

    def get(self, incident_id: str) -> Optional[IncidentReport]:
        with self._lock:
            return self._incidents.get(incident_id)

    def list_all(self) -> List[IncidentReport]:
        with self._lock:
            return list(self._incidents.values())

    def resolve(self, incident_id: str, notes: str) -> bool:
        """Mark an incident resolved. Returns False for unknown ids."""
        with self._lock:
            incident = self._incidents.get(incident_id)
            if incident is None:
                return False
            incident.resolved = True
            incident.resolution_notes = notes
            incident.resolved_at = datetime.now(timezone.utc)
            return True

    def clear(self) -> None:
        with self._lock:
            self._incidents.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._incidents)


class IncidentNotifier(Protocol):
    """Delivers incidents and user-facing messages to their audiences."""

    async def notify_security_team(self, incident: IncidentReport) -> None:
        ...

    async def notify_compliance_team(self, incident: IncidentReport) -> None:
        ...

    async def notify_user(self, result: ErrorHandlingResult, context: ErrorContext) -> None:
        ...


class LoggingNotifier:
    """Default notifier: emits structured log records instead of messages."""

    def __init__(self, logger: Optional[Any] = None):
        self.logger = logger or structlog.stdlib.get_logger(__name__)

    async def notify_security_team(self, incident: IncidentReport) -> None:
        self.logger.error(
            "security_team_notified",
            incident_id=incident.id,
            severity=incident.severity.value,
            timestamp=incident.timestamp.isoformat(),
        )

    async def notify_compliance_team(self, incident: IncidentReport) -> None:
        self.logger.error(
            "compliance_team_notified",
            incident_id=incident.id,
            severity=incident.severity.value,
            timestamp=incident.timestamp.isoformat(),
        )

    async def notify_user(self, result: ErrorHandlingResult, context: ErrorContext) -> None:
        self.logger.info(
            "user_notified",
            operation=context.operation,
            user_id=context.user_id,
            user_message=result.user_message,
        )
