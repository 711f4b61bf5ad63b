"""
Alert delivery: channel registry, rate limiting, routing and fan-out.

Delivery to every selected channel runs concurrently inside a TaskGroup with
a per-channel timeout. A failing, slow or raising channel only affects its own
outcome; nothing propagates to the caller.
"""

import asyncio
import threading
import uuid
from collections import deque
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Protocol

import structlog

from sentinel.config import AlertingConfig
from sentinel.domain.models import Alert, Severity, utc_now

logger = structlog.get_logger(__name__)

SEVERITY_CHANNELS: dict[Severity, tuple[str, ...]] = {
    Severity.CRITICAL: ("email", "chat", "sms", "webhook"),
    Severity.HIGH: ("email", "chat", "webhook"),
    Severity.MEDIUM: ("chat", "webhook"),
    Severity.LOW: ("webhook",),
}


class AlertChannel(Protocol):
    """
    A named delivery sink.

    Implementations perform their own network call and report success as a
    boolean; raising is tolerated but never expected.
    """

    name: str
    enabled: bool

    async def send_alert(self, alert: Alert) -> bool: ...


class DeliveryStatus(str, Enum):
    SENT = "sent"
    FAILED = "failed"
    TIMEOUT = "timeout"
    UNAVAILABLE = "unavailable"


@dataclass
class DispatchReport:
    """Per-channel accounting for one send_alert call."""

    alert: Alert
    suppressed: bool = False
    outcomes: dict[str, DeliveryStatus] = field(default_factory=dict)

    @property
    def delivered(self) -> list[str]:
        return [name for name, status in self.outcomes.items() if status is DeliveryStatus.SENT]


def new_alert_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


class AlertManager:
    """Manages alert routing, dispatching and history."""

    def __init__(
        self,
        config: AlertingConfig | None = None,
        *,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.config = config or AlertingConfig()
        self._clock = clock
        self._channels: dict[str, AlertChannel] = {}
        self._history: deque[Alert] = deque(maxlen=self.config.history_limit)
        self._last_sent: dict[str, datetime] = {}
        self._failures: dict[str, int] = {}
        self._history_lock = threading.Lock()
        self._rate_lock = threading.Lock()
        self.logger = logger.bind(component="alert_manager")

    # Registry

    def register_channel(self, name: str, channel: AlertChannel) -> bool:
        """Register a channel at startup. Returns False if the name is taken."""
        if name in self._channels:
            self.logger.warning("alert_channel_already_registered", channel=name)
            return False
        self._channels[name] = channel
        self.logger.info("alert_channel_added", channel=name, enabled=channel.enabled)
        return True

    @property
    def channels(self) -> dict[str, AlertChannel]:
        return dict(self._channels)

    # Rate limiting

    def _is_rate_limited(self, key: str, now: datetime) -> bool:
        cooldown = timedelta(seconds=self.config.cooldown_seconds)
        with self._rate_lock:
            last_sent = self._last_sent.get(key)
            if last_sent is not None and now - last_sent < cooldown:
                return True
            self._last_sent[key] = now
            # Keys outside the cooldown carry no information any more.
            stale = [k for k, sent in self._last_sent.items() if now - sent >= cooldown]
            for k in stale:
                if k != key:
                    del self._last_sent[k]
            return False

    # Dispatch

    @staticmethod
    def channels_for_severity(severity: Severity) -> list[str]:
        return list(SEVERITY_CHANNELS.get(severity, ("webhook",)))

    async def send_alert(
        self, alert: Alert, channels: Sequence[str] | None = None
    ) -> DispatchReport:
        now = self._clock()
        key = alert.rate_limit_key
        if self._is_rate_limited(key, now):
            self.logger.debug("alert_rate_limited", alert_key=key)
            return DispatchReport(alert=alert, suppressed=True)

        self._remember(alert, now)

        targets = list(channels) if channels else self.channels_for_severity(alert.severity)
        self.logger.info(
            "alert_sending",
            severity=alert.severity.value,
            title=alert.title,
            source=alert.source,
            channels=targets,
        )

        report = DispatchReport(alert=alert)
        async with asyncio.TaskGroup() as task_group:
            tasks = {
                name: task_group.create_task(self._deliver(name, alert), name=name)
                for name in dict.fromkeys(targets)
            }
        for name, task in tasks.items():
            report.outcomes[name] = task.result()
            if report.outcomes[name] in (DeliveryStatus.FAILED, DeliveryStatus.TIMEOUT):
                self._failures[name] = self._failures.get(name, 0) + 1
        return report

    async def _deliver(self, name: str, alert: Alert) -> DeliveryStatus:
        channel = self._channels.get(name)
        if channel is None or not channel.enabled:
            self.logger.warning("alert_channel_unavailable", channel=name)
            return DeliveryStatus.UNAVAILABLE

        try:
            success = await asyncio.wait_for(
                channel.send_alert(alert), timeout=self.config.delivery_timeout_seconds
            )
        except TimeoutError:
            self.logger.error("alert_channel_timeout", channel=name, alert_id=alert.id)
            return DeliveryStatus.TIMEOUT
        except Exception as e:
            self.logger.exception(
                "alert_channel_error", channel=name, alert_id=alert.id, error=str(e)
            )
            return DeliveryStatus.FAILED

        if success:
            self.logger.debug("alert_sent", channel=name, alert_id=alert.id)
            return DeliveryStatus.SENT
        self.logger.error("alert_channel_failed", channel=name, alert_id=alert.id)
        return DeliveryStatus.FAILED

    # History

    def _remember(self, alert: Alert, now: datetime) -> None:
        horizon = now - timedelta(hours=self.config.history_retention_hours)
        with self._history_lock:
            while self._history and self._history[0].timestamp < horizon:
                self._history.popleft()
            self._history.append(alert)

    def get_recent_alerts(self, hours: float = 24) -> list[Alert]:
        cutoff = self._clock() - timedelta(hours=hours)
        with self._history_lock:
            return [alert for alert in self._history if alert.timestamp >= cutoff]

    def resolve_alert(self, alert_id: str) -> bool:
        """Mark a historical alert resolved. Idempotent."""
        with self._history_lock:
            for index, alert in enumerate(self._history):
                if alert.id != alert_id:
                    continue
                if not alert.resolved:
                    self._history[index] = alert.resolved_copy(self._clock())
                    self.logger.info("alert_resolved", alert_id=alert_id)
                return True
        return False

    def get_alert_stats(self) -> dict[str, Any]:
        recent = self.get_recent_alerts()
        stats: dict[str, Any] = {"total": len(recent)}
        for severity in Severity:
            stats[severity.value] = sum(1 for a in recent if a.severity == severity)
        stats["resolved"] = sum(1 for a in recent if a.resolved)
        stats["unresolved"] = stats["total"] - stats["resolved"]
        stats["delivery_failures"] = dict(self._failures)
        return stats

    # Predefined alerts for common scenarios

    async def system_error(
        self, error: BaseException, source: str, metadata: dict[str, Any] | None = None
    ) -> DispatchReport:
        return await self.send_alert(
            Alert(
                id=new_alert_id("error"),
                severity=Severity.HIGH,
                title="System Error Detected",
                message=str(error),
                source=source,
                timestamp=self._clock(),
                metadata={"error_type": type(error).__name__, **(metadata or {})},
            )
        )

    async def performance_alert(
        self, metric: str, value: float, threshold: float, source: str
    ) -> DispatchReport:
        return await self.send_alert(
            Alert(
                id=new_alert_id("perf"),
                severity=Severity.HIGH if value > threshold * 2 else Severity.MEDIUM,
                title="Performance Threshold Exceeded",
                message=f"{metric} is {value} (threshold: {threshold})",
                source=source,
                timestamp=self._clock(),
                metadata={"metric": metric, "value": value, "threshold": threshold},
            )
        )

    async def security_alert(
        self, event: str, details: dict[str, Any], source: str
    ) -> DispatchReport:
        return await self.send_alert(
            Alert(
                id=new_alert_id("sec"),
                severity=Severity.CRITICAL,
                title="Security Event Detected",
                message=event,
                source=source,
                timestamp=self._clock(),
                metadata=details,
            )
        )

    async def business_alert(
        self, metric: str, value: float, expected: float, source: str
    ) -> DispatchReport:
        deviation = value - expected
        relative = abs(deviation) / abs(expected) if expected else float("inf")
        return await self.send_alert(
            Alert(
                id=new_alert_id("biz"),
                severity=Severity.HIGH if relative > 0.5 else Severity.MEDIUM,
                title="Business Metric Alert",
                message=f"{metric} is {value} (expected: {expected})",
                source=source,
                timestamp=self._clock(),
                metadata={
                    "metric": metric,
                    "value": value,
                    "expected": expected,
                    "deviation": deviation,
                },
            )
        )

    async def uptime_alert(
        self, service: str, is_down: bool, downtime_ms: float | None = None
    ) -> DispatchReport | None:
        if is_down:
            return await self.send_alert(
                Alert(
                    id=new_alert_id("uptime"),
                    severity=Severity.CRITICAL,
                    title="Service Down",
                    message=f"{service} is not responding",
                    source="uptime-monitor",
                    timestamp=self._clock(),
                    metadata={"service": service, "status": "down"},
                )
            )
        if downtime_ms:
            return await self.send_alert(
                Alert(
                    id=new_alert_id("recovery"),
                    severity=Severity.MEDIUM,
                    title="Service Recovered",
                    message=f"{service} is back online after {downtime_ms}ms",
                    source="uptime-monitor",
                    timestamp=self._clock(),
                    metadata={"service": service, "status": "recovered", "downtime": downtime_ms},
                )
            )
        return None
