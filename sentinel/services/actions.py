"""
Action execution for incidents and metric breaches.

Actions run in declared order. Each one is isolated: a guard that does not
hold skips it, and an exception inside it is logged without stopping the
actions after it.
"""

import json
from typing import Protocol

import structlog

from sentinel.domain.categories import (
    Action,
    AlertAction,
    AutoFixAction,
    CreateIssueAction,
    ErrorCategory,
    IgnoreAction,
)
from sentinel.domain.models import Alert, Incident, IssuePayload, Severity
from sentinel.services.alert_manager import AlertManager, new_alert_id
from sentinel.services.conditions import condition_holds, incident_variables
from sentinel.services.incident_tracker import IncidentTracker, Sighting
from sentinel.services.metric_store import ThresholdBreach

logger = structlog.get_logger(__name__)

INCIDENT_ALERT_SOURCE = "error-categorization"


class IssueSink(Protocol):
    """Issue-tracking destination. Fire-and-forget from the engine's view."""

    async def create_issue(self, payload: IssuePayload) -> None: ...


class LoggingIssueSink:
    """Default sink: records the issue as a structured log event."""

    def __init__(self) -> None:
        self.logger = logger.bind(component="issue_sink")

    async def create_issue(self, payload: IssuePayload) -> None:
        self.logger.info(
            "issue_created",
            title=payload.title,
            project=payload.project,
            priority=payload.priority,
            labels=payload.labels,
        )


def render_issue_body(incident: Incident, category: ErrorCategory) -> str:
    context = json.dumps(incident.context, indent=2, default=str)
    return f"""## Error Details
- **Category**: {category.name}
- **Severity**: {incident.severity.value}
- **Frequency**: {incident.frequency}
- **Affected Users**: {len(incident.affected_users)}
- **First Seen**: {incident.first_seen.isoformat()}
- **Last Seen**: {incident.last_seen.isoformat()}

## Error Message
```
{incident.error.message}
```

## Stack Trace
```
{incident.error.stack}
```

## Context
```json
{context}
```

## Reproduction
1. Visit the page where this error occurred
2. Perform the action that triggered the error
3. Check the client console and server logs for additional details

## Investigation Steps
- [ ] Reproduce the error in development environment
- [ ] Check related logs and metrics
- [ ] Identify root cause
- [ ] Implement fix
- [ ] Test fix
- [ ] Deploy to production
- [ ] Verify resolution
"""


class ActionExecutor:
    def __init__(
        self,
        alert_manager: AlertManager,
        tracker: IncidentTracker,
        issue_sink: IssueSink | None = None,
    ) -> None:
        self.alert_manager = alert_manager
        self.tracker = tracker
        self.issue_sink: IssueSink = issue_sink or LoggingIssueSink()
        self.logger = logger.bind(component="action_executor")

    async def execute(self, sighting: Sighting) -> list[str]:
        """Run the category's actions for one sighting; returns the action types run.

        A new incident runs every action. A repeat sighting only re-runs alert
        actions, and closed (resolved/ignored) incidents run nothing.
        """
        incident, category = sighting.incident, sighting.category
        if incident.is_closed:
            return []

        variables = incident_variables(incident)
        executed: list[str] = []
        for action in category.actions:
            if not sighting.is_new and not isinstance(action, AlertAction):
                continue
            if action.condition and not condition_holds(action.condition, variables):
                continue
            try:
                await self._run_incident_action(action, incident, category)
            except Exception as e:
                self.logger.exception(
                    "action_failed", action=action.type, incident_id=incident.id, error=str(e)
                )
                continue
            executed.append(action.type)
            if isinstance(action, IgnoreAction):
                break
        return executed

    async def _run_incident_action(
        self, action: Action, incident: Incident, category: ErrorCategory
    ) -> None:
        if isinstance(action, AlertAction):
            await self._alert_incident(action, incident, category)
        elif isinstance(action, CreateIssueAction):
            await self._create_issue(action, incident, category)
        elif isinstance(action, AutoFixAction):
            self.logger.info(
                "auto_fix_requested",
                incident_id=incident.id,
                category=category.id,
                fix_type=action.fix_type,
            )
        elif isinstance(action, IgnoreAction):
            self.tracker.ignore(incident.id)

    async def _alert_incident(
        self, action: AlertAction, incident: Incident, category: ErrorCategory
    ) -> None:
        alert = Alert(
            id=new_alert_id("incident"),
            severity=incident.severity,
            title=f"{category.name}: {incident.error.message}",
            message=incident.error.message or incident.error.name,
            source=INCIDENT_ALERT_SOURCE,
            timestamp=incident.last_seen,
            metadata={
                "incident_id": incident.id,
                "category": category.id,
                "frequency": incident.frequency,
                "affected_users": len(incident.affected_users),
                "teams": list(action.teams),
                "immediate": action.immediate,
                "path": incident.context.get("path"),
            },
        )
        await self.alert_manager.send_alert(alert, action.channels)

        if action.immediate and alert.severity == Severity.CRITICAL:
            self.logger.warning(
                "critical_error_alert",
                incident_id=incident.id,
                category=category.id,
                frequency=incident.frequency,
                affected_users=len(incident.affected_users),
            )

    async def _create_issue(
        self, action: CreateIssueAction, incident: Incident, category: ErrorCategory
    ) -> None:
        payload = IssuePayload(
            title=f"{category.name}: {incident.error.message}",
            body=render_issue_body(incident, category),
            project=action.project,
            priority=action.priority or incident.severity.value,
            labels=[category.id, incident.severity.value],
            incident_id=incident.id,
        )
        try:
            await self.issue_sink.create_issue(payload)
        except Exception as e:
            self.logger.error("issue_creation_failed", incident_id=incident.id, error=str(e))

    async def execute_breach(self, breach: ThresholdBreach) -> list[str]:
        """Run a threshold's actions. Metrics are not incidents, so only alert
        and issue actions have an effect; ignore suppresses notification."""
        executed: list[str] = []
        variables = {"severity": breach.severity.value}
        for action in breach.actions:
            if action.condition and not condition_holds(action.condition, variables):
                continue
            if isinstance(action, IgnoreAction):
                executed.append(action.type)
                break
            try:
                await self._run_breach_action(action, breach)
            except Exception as e:
                self.logger.exception(
                    "action_failed", action=action.type, metric=breach.metric.name, error=str(e)
                )
                continue
            executed.append(action.type)
        return executed

    async def _run_breach_action(self, action: Action, breach: ThresholdBreach) -> None:
        if isinstance(action, AlertAction):
            alert = breach.to_alert(new_alert_id(f"threshold-{breach.metric.name}"))
            await self.alert_manager.send_alert(alert, action.channels)
        elif isinstance(action, CreateIssueAction):
            alert = breach.to_alert(new_alert_id(f"threshold-{breach.metric.name}"))
            try:
                await self.issue_sink.create_issue(
                    IssuePayload(
                        title=alert.title,
                        body=alert.message,
                        project=action.project,
                        priority=action.priority or breach.severity.value,
                        labels=["metric", breach.metric.name, breach.level],
                    )
                )
            except Exception as e:
                self.logger.error(
                    "issue_creation_failed", metric=breach.metric.name, error=str(e)
                )
        elif isinstance(action, AutoFixAction):
            self.logger.info(
                "auto_fix_requested", metric=breach.metric.name, fix_type=action.fix_type
            )
