"""Shared test doubles: a controllable clock and an in-memory alert channel."""

import asyncio
from datetime import UTC, datetime, timedelta

import pytest

from sentinel.domain.models import Alert, IssuePayload


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 9, 9, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class RecordingChannel:
    """Test double that implements the AlertChannel protocol."""

    def __init__(
        self,
        name: str,
        *,
        enabled: bool = True,
        succeed: bool = True,
        raises: Exception | None = None,
        delay_seconds: float = 0.0,
    ) -> None:
        self.name = name
        self.enabled = enabled
        self.succeed = succeed
        self.raises = raises
        self.delay_seconds = delay_seconds
        self.received: list[Alert] = []

    async def send_alert(self, alert: Alert) -> bool:
        self.received.append(alert)
        if self.delay_seconds:
            await asyncio.sleep(self.delay_seconds)
        if self.raises is not None:
            raise self.raises
        return self.succeed


class RecordingIssueSink:
    def __init__(self) -> None:
        self.issues: list[IssuePayload] = []

    async def create_issue(self, payload: IssuePayload) -> None:
        self.issues.append(payload)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_channel() -> type[RecordingChannel]:
    return RecordingChannel


@pytest.fixture
def issue_sink() -> RecordingIssueSink:
    return RecordingIssueSink()
