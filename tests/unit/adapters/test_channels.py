"""HTTP channels against a stubbed transport."""

import json
from datetime import UTC, datetime

import httpx
import pytest

from adapters.notifiers.channels import (
    ChatChannel,
    EmailChannel,
    SmsChannel,
    WebhookChannel,
    build_default_channels,
)
from sentinel.config import ChannelConfig
from sentinel.domain.models import Alert, Severity


class StubTransport:
    """Records requests and answers with a fixed status."""

    def __init__(self, status_code: int = 200, error: Exception | None = None) -> None:
        self.status_code = status_code
        self.error = error
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return httpx.Response(self.status_code)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))

    def body(self, index: int = -1) -> dict:
        return json.loads(self.requests[index].content)


def make_alert(severity: Severity = Severity.CRITICAL) -> Alert:
    return Alert(
        id="alert-1",
        severity=severity,
        title="Service Down",
        message="api is not responding",
        source="uptime-monitor",
        timestamp=datetime(2024, 9, 9, 12, 0, tzinfo=UTC),
    )


async def test_email_channel_posts_to_relay() -> None:
    stub = StubTransport()
    async with stub.client() as client:
        channel = EmailChannel("https://mail.test/send", "oncall@example.com", client=client)
        assert await channel.send_alert(make_alert())

    body = stub.body()
    assert str(stub.requests[0].url) == "https://mail.test/send"
    assert body["to"] == "oncall@example.com"
    assert body["subject"] == "[CRITICAL] Service Down"
    assert "api is not responding" in body["html"]


async def test_chat_channel_payload() -> None:
    stub = StubTransport()
    async with stub.client() as client:
        channel = ChatChannel("https://hooks.test/T1", client=client, service_name="bookings")
        assert await channel.send_alert(make_alert(Severity.MEDIUM))

    assert stub.body()["attachments"][0]["footer"] == "bookings monitoring"


async def test_webhook_channel_payload() -> None:
    stub = StubTransport()
    async with stub.client() as client:
        assert await WebhookChannel("https://hooks.test/x", client=client).send_alert(make_alert())

    assert stub.body()["alert"]["id"] == "alert-1"


@pytest.mark.parametrize("status_code", [400, 500, 503])
async def test_rejected_delivery_returns_false(status_code: int) -> None:
    stub = StubTransport(status_code=status_code)
    async with stub.client() as client:
        assert not await WebhookChannel("https://hooks.test/x", client=client).send_alert(
            make_alert()
        )


async def test_network_error_returns_false() -> None:
    stub = StubTransport(error=httpx.ConnectError("refused"))
    async with stub.client() as client:
        assert not await ChatChannel("https://hooks.test/x", client=client).send_alert(
            make_alert()
        )


async def test_sms_only_sends_critical() -> None:
    stub = StubTransport()
    async with stub.client() as client:
        channel = SmsChannel("https://sms.test/send", "+15550100", client=client)

        assert await channel.send_alert(make_alert(Severity.HIGH))
        assert stub.requests == []

        assert await channel.send_alert(make_alert(Severity.CRITICAL))

    assert stub.body() == {
        "to": "+15550100",
        "message": "CRITICAL: Service Down - api is not responding",
    }


def test_channels_without_endpoints_are_disabled() -> None:
    assert not WebhookChannel(None).enabled
    assert WebhookChannel("https://hooks.test/x").enabled
    assert not SmsChannel("https://sms.test/send", None).enabled
    assert not ChatChannel("https://hooks.test/x", enabled=False).enabled


async def test_disabled_endpoint_never_sends() -> None:
    assert not await WebhookChannel(None).send_alert(make_alert())


def test_build_default_channels() -> None:
    config = ChannelConfig(chat_webhook_url="https://hooks.test/T1", service_name="bookings")

    channels = {channel.name: channel for channel in build_default_channels(config)}

    assert set(channels) == {"email", "chat", "sms", "webhook"}
    assert channels["chat"].enabled
    assert channels["chat"].service_name == "bookings"
    assert not channels["email"].enabled
    assert not channels["sms"].enabled
    assert not channels["webhook"].enabled
