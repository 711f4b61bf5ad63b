"""Category and threshold actions: guards, ordering and isolation."""

import pytest

from sentinel.domain.categories import (
    DEFAULT_CATEGORIES,
    AlertAction,
    AutoFixAction,
    CreateIssueAction,
    ErrorCategory,
    IgnoreAction,
    PatternRule,
)
from sentinel.domain.models import ErrorReport, IncidentStatus, Severity
from sentinel.services.actions import INCIDENT_ALERT_SOURCE, ActionExecutor, render_issue_body
from sentinel.services.alert_manager import AlertManager
from sentinel.services.categorizer import CategoryMatcher
from sentinel.services.incident_tracker import IncidentTracker
from sentinel.services.metric_store import MetricStore

NOISY = ErrorCategory(
    id="noisy",
    name="Noisy Bots",
    priority=Severity.LOW,
    patterns=(PatternRule(field="message", pattern="crawler", weight=1.0),),
    actions=(IgnoreAction(), AlertAction(channels=["webhook"])),
)

FIXABLE = ErrorCategory(
    id="cache",
    name="Cache Errors",
    priority=Severity.MEDIUM,
    patterns=(PatternRule(field="message", pattern="stale cache", weight=1.0),),
    actions=(
        AutoFixAction(fix_type="flush_cache"),
        CreateIssueAction(project="platform", condition="severity >= high"),
        AlertAction(channels=["chat"]),
    ),
)


@pytest.fixture
def alert_manager(clock) -> AlertManager:
    return AlertManager(clock=clock)


@pytest.fixture
def webhook(alert_manager: AlertManager, make_channel):
    channel = make_channel("webhook")
    alert_manager.register_channel("webhook", channel)
    return channel


@pytest.fixture
def chat(alert_manager: AlertManager, make_channel):
    channel = make_channel("chat")
    alert_manager.register_channel("chat", channel)
    return channel


@pytest.fixture
def tracker(clock) -> IncidentTracker:
    matcher = CategoryMatcher((*DEFAULT_CATEGORIES, NOISY, FIXABLE))
    return IncidentTracker(matcher, clock=clock)


@pytest.fixture
def executor(alert_manager: AlertManager, tracker: IncidentTracker, issue_sink) -> ActionExecutor:
    return ActionExecutor(alert_manager, tracker, issue_sink)


async def test_new_incident_alerts_and_files_issue(
    executor: ActionExecutor, tracker: IncidentTracker, webhook, issue_sink
) -> None:
    sighting = tracker.track(ErrorReport(name="Error", message="Card declined"), {"path": "/pay"})

    executed = await executor.execute(sighting)

    assert executed == ["alert", "create_issue"]
    (alert,) = webhook.received
    assert alert.source == INCIDENT_ALERT_SOURCE
    assert alert.title == "Payment Processing Errors: Card declined"
    assert alert.severity == Severity.CRITICAL
    assert alert.metadata["teams"] == ["finance", "backend"]
    assert alert.metadata["path"] == "/pay"

    (issue,) = issue_sink.issues
    assert issue.project == "payments"
    assert issue.priority == "critical"
    assert issue.incident_id == sighting.incident.id
    assert "## Investigation Steps" in issue.body


async def test_repeat_sighting_only_alerts(
    executor: ActionExecutor, tracker: IncidentTracker, issue_sink, clock
) -> None:
    error = ErrorReport(name="Error", message="Card declined")
    await executor.execute(tracker.track(error))
    clock.advance(minutes=10)

    executed = await executor.execute(tracker.track(error))

    assert executed == ["alert"]
    assert len(issue_sink.issues) == 1


async def test_guard_skips_issue_until_condition_holds(
    executor: ActionExecutor, tracker: IncidentTracker, issue_sink
) -> None:
    sighting = tracker.track(
        ErrorReport(name="TypeError", message="Cannot read property 'id' of undefined"),
        user_id="u1",
    )

    assert await executor.execute(sighting) == ["alert"]
    assert issue_sink.issues == []


async def test_uncategorized_files_general_issue(
    executor: ActionExecutor, tracker: IncidentTracker, issue_sink
) -> None:
    sighting = tracker.track(ErrorReport(name="Oops", message="nothing recognisable"))

    assert await executor.execute(sighting) == ["create_issue"]
    assert issue_sink.issues[0].project == "general"
    assert issue_sink.issues[0].priority == "medium"


async def test_ignore_action_closes_incident_and_stops(
    executor: ActionExecutor, tracker: IncidentTracker, webhook
) -> None:
    sighting = tracker.track(ErrorReport(message="crawler hit /robots"))

    assert await executor.execute(sighting) == ["ignore"]
    assert tracker.get(sighting.incident.id).status == IncidentStatus.IGNORED
    assert webhook.received == []

    assert await executor.execute(tracker.track(ErrorReport(message="crawler hit /robots"))) == []


async def test_actions_run_in_declared_order_with_guards(
    executor: ActionExecutor, tracker: IncidentTracker, chat, issue_sink
) -> None:
    sighting = tracker.track(ErrorReport(message="stale cache entry"))

    assert await executor.execute(sighting) == ["auto_fix", "alert"]
    assert issue_sink.issues == []
    assert len(chat.received) == 1


async def test_failing_action_does_not_stop_later_actions(
    executor: ActionExecutor,
    tracker: IncidentTracker,
    alert_manager: AlertManager,
    issue_sink,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    async def broken_send(*args, **kwargs):
        raise RuntimeError("router exploded")

    monkeypatch.setattr(alert_manager, "send_alert", broken_send)
    sighting = tracker.track(ErrorReport(name="Error", message="Card declined"))

    assert await executor.execute(sighting) == ["create_issue"]
    assert len(issue_sink.issues) == 1


async def test_issue_sink_failure_is_contained(
    alert_manager: AlertManager, tracker: IncidentTracker
) -> None:
    class BrokenSink:
        async def create_issue(self, payload) -> None:
            raise ConnectionError("tracker offline")

    executor = ActionExecutor(alert_manager, tracker, BrokenSink())
    sighting = tracker.track(ErrorReport(name="Oops", message="unknown thing"))

    assert await executor.execute(sighting) == ["create_issue"]


def test_render_issue_body(tracker: IncidentTracker) -> None:
    sighting = tracker.track(
        ErrorReport(name="DatabaseError", message="query failed", stack="at db.py:10"),
        {"path": "/bookings", "userId": "u1"},
    )

    body = render_issue_body(sighting.incident, sighting.category)

    assert "- **Category**: Database Errors" in body
    assert "- **Affected Users**: 1" in body
    assert "at db.py:10" in body
    assert '"path": "/bookings"' in body


class TestBreachActions:
    async def test_default_breach_alerts_by_severity(
        self, executor: ActionExecutor, alert_manager: AlertManager, make_channel, clock
    ) -> None:
        email = make_channel("email")
        alert_manager.register_channel("email", email)
        breach = MetricStore(clock=clock).record("response_time", 6000, unit="ms")

        assert await executor.execute_breach(breach) == ["alert"]
        (alert,) = email.received
        assert alert.severity == Severity.CRITICAL
        assert alert.title == "response_time Threshold Exceeded"

    async def test_ignore_suppresses_breach(
        self, executor: ActionExecutor, webhook, issue_sink, clock
    ) -> None:
        store = MetricStore(clock=clock)
        store.set_threshold(
            "queue_depth",
            warning=10,
            critical=20,
            actions=[IgnoreAction(), AlertAction(channels=["webhook"])],
        )

        assert await executor.execute_breach(store.record("queue_depth", 50)) == ["ignore"]
        assert webhook.received == []

    async def test_breach_issue_and_severity_guard(
        self, executor: ActionExecutor, webhook, issue_sink, clock
    ) -> None:
        store = MetricStore(clock=clock)
        store.set_threshold(
            "queue_depth",
            warning=10,
            critical=20,
            actions=[
                CreateIssueAction(project="ops"),
                AlertAction(channels=["webhook"], condition="severity == critical"),
            ],
        )

        assert await executor.execute_breach(store.record("queue_depth", 15)) == ["create_issue"]
        assert issue_sink.issues[0].labels == ["metric", "queue_depth", "warning"]
        assert issue_sink.issues[0].priority == "high"
        assert webhook.received == []
