"""
Incident tracking: one mutable record per fingerprint.

All mutations of the incident map happen inside a single critical section per
call so concurrent reports never lose frequency updates. Callers receive
deep copies; the live records never leave the tracker.
"""

import threading
from collections import OrderedDict
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

import structlog

from sentinel.config import EscalationConfig, IncidentConfig
from sentinel.domain.categories import UNCATEGORIZED, ErrorCategory
from sentinel.domain.models import (
    ErrorReport,
    Incident,
    IncidentStatus,
    Resolution,
    Severity,
    normalize_context,
    utc_now,
)
from sentinel.services.categorizer import CategoryMatcher, determine_severity
from sentinel.services.fingerprint import generate_fingerprint

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class Sighting:
    """Outcome of reporting one error occurrence."""

    incident: Incident
    category: ErrorCategory
    is_new: bool
    escalated: bool = False


class IncidentTracker:
    def __init__(
        self,
        matcher: CategoryMatcher,
        escalation: EscalationConfig | None = None,
        retention: IncidentConfig | None = None,
        *,
        production: bool = False,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.matcher = matcher
        self.escalation = escalation or EscalationConfig()
        self.retention = retention or IncidentConfig()
        self.production = production
        self._clock = clock
        self._incidents: OrderedDict[str, Incident] = OrderedDict()
        self._lock = threading.Lock()
        self.logger = logger.bind(component="incident_tracker")

    def track(
        self,
        error: ErrorReport,
        context: Mapping[str, Any] | None = None,
        user_id: str | None = None,
        category_hint: str | None = None,
    ) -> Sighting:
        context = normalize_context(context)
        user = user_id or context.get("userId")
        user_id = str(user) if user else None
        fingerprint = generate_fingerprint(error, context, user_id)

        with self._lock:
            now = self._clock()
            self._evict(now)

            incident = self._incidents.get(fingerprint)
            if incident is not None:
                escalated = self._record_repeat(incident, now, user_id)
                self._incidents.move_to_end(fingerprint)
                category = self.matcher.get(incident.category_id) or UNCATEGORIZED
                is_new = False
                snapshot = incident.model_copy(deep=True)
            else:
                category = self._categorize(error, context, category_hint)
                incident = Incident(
                    id=fingerprint,
                    error=error,
                    category_id=category.id,
                    category_name=category.name,
                    severity=determine_severity(
                        error,
                        category,
                        has_user=user_id is not None,
                        production=self.production and bool(context.get("production")),
                    ),
                    first_seen=now,
                    last_seen=now,
                    affected_users={user_id} if user_id else set(),
                    context=context,
                )
                self._incidents[fingerprint] = incident
                while len(self._incidents) > self.retention.max_incidents:
                    self._incidents.popitem(last=False)
                escalated = False
                is_new = True
                snapshot = incident.model_copy(deep=True)

        if is_new:
            self.logger.info(
                "incident_created",
                incident_id=fingerprint,
                category=category.id,
                severity=snapshot.severity.value,
            )
        elif escalated:
            self.logger.warning(
                "incident_escalated",
                incident_id=fingerprint,
                severity=snapshot.severity.value,
                frequency=snapshot.frequency,
                affected_users=len(snapshot.affected_users),
            )

        return Sighting(
            incident=snapshot,
            category=category,
            is_new=is_new,
            escalated=escalated,
        )

    def _categorize(
        self, error: ErrorReport, context: Mapping[str, Any], category_hint: str | None
    ) -> ErrorCategory:
        if category_hint:
            hinted = self.matcher.get(category_hint)
            if hinted is not None:
                return hinted
            self.logger.debug("unknown_category_hint", category_hint=category_hint)
        return self.matcher.match(error, context)

    def _record_repeat(self, incident: Incident, now: datetime, user_id: str | None) -> bool:
        incident.frequency += 1
        incident.last_seen = max(now, incident.last_seen)
        if user_id:
            incident.affected_users.add(user_id)

        if incident.is_closed or incident.severity == Severity.CRITICAL:
            return False

        users = self.escalation.user_threshold
        occurrences = self.escalation.frequency_threshold
        if incident.severity == Severity.HIGH:
            users *= self.escalation.high_multiplier
            occurrences *= self.escalation.high_multiplier

        if len(incident.affected_users) > users or incident.frequency > occurrences:
            incident.severity = incident.severity.promote()
            return True
        return False

    def _evict(self, now: datetime) -> None:
        horizon = now - timedelta(hours=self.retention.retention_hours)
        # Ordered by last sighting, so expired records sit at the front.
        evicted = 0
        while self._incidents:
            oldest = next(iter(self._incidents.values()))
            if oldest.last_seen >= horizon:
                break
            self._incidents.popitem(last=False)
            evicted += 1
        if evicted:
            self.logger.debug("incidents_evicted", count=evicted)

    def get(self, incident_id: str) -> Incident | None:
        with self._lock:
            incident = self._incidents.get(incident_id)
            return incident.model_copy(deep=True) if incident else None

    def all(self) -> list[Incident]:
        with self._lock:
            return [incident.model_copy(deep=True) for incident in self._incidents.values()]

    def _transition(self, incident_id: str, status: IncidentStatus, **changes: Any) -> bool:
        with self._lock:
            incident = self._incidents.get(incident_id)
            if incident is None:
                return False
            incident.status = status
            for name, value in changes.items():
                setattr(incident, name, value)
        self.logger.info("incident_status_changed", incident_id=incident_id, status=status.value)
        return True

    def investigate(self, incident_id: str, assignee: str | None = None) -> bool:
        return self._transition(incident_id, IncidentStatus.INVESTIGATING, assigned_to=assignee)

    def resolve(self, incident_id: str, resolution: Resolution) -> bool:
        return self._transition(incident_id, IncidentStatus.RESOLVED, resolution=resolution)

    def ignore(self, incident_id: str) -> bool:
        return self._transition(incident_id, IncidentStatus.IGNORED)

    def stats(self, recent: int = 10) -> dict[str, Any]:
        incidents = self.all()
        by_category: dict[str, int] = {}
        by_severity: dict[str, int] = {}
        by_status: dict[str, int] = {}
        for incident in incidents:
            by_category[incident.category_name] = by_category.get(incident.category_name, 0) + 1
            by_severity[incident.severity.value] = by_severity.get(incident.severity.value, 0) + 1
            by_status[incident.status.value] = by_status.get(incident.status.value, 0) + 1

        return {
            "total": len(incidents),
            "by_category": by_category,
            "by_severity": by_severity,
            "by_status": by_status,
            "recent": sorted(incidents, key=lambda i: i.last_seen, reverse=True)[:recent],
        }
