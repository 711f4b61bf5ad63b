"""
HTTP delivery channels: email relay, chat webhook, SMS gateway, generic webhook.

Each channel performs one POST and reports success as a boolean. Network and
provider errors are logged and turned into ``False``; they never propagate.
"""

from abc import ABC, abstractmethod
from typing import Any

import httpx
import structlog

from adapters.notifiers.formatting import (
    email_subject,
    format_chat,
    format_email,
    format_sms,
    format_webhook,
)
from sentinel.config import ChannelConfig
from sentinel.domain.models import Alert, Severity

logger = structlog.get_logger(__name__)

HTTP_CLIENT_TIMEOUT = 10.0


class HttpAlertChannel(ABC):
    """Base class for channels that deliver by POSTing JSON to one endpoint."""

    name: str = "http"

    def __init__(
        self,
        endpoint: str | None,
        *,
        enabled: bool | None = None,
        client: httpx.AsyncClient | None = None,
        service_name: str = "sentinel",
    ) -> None:
        self.endpoint = endpoint
        self.enabled = bool(endpoint) if enabled is None else enabled
        self.service_name = service_name
        self._client = client
        self.logger = logger.bind(channel=self.name)

    @abstractmethod
    def build_payload(self, alert: Alert) -> dict[str, Any]:
        """Render the alert into this channel's JSON body."""

    async def send_alert(self, alert: Alert) -> bool:
        if not self.endpoint:
            return False

        payload = self.build_payload(alert)
        try:
            if self._client is not None:
                response = await self._client.post(self.endpoint, json=payload)
            else:
                async with httpx.AsyncClient(timeout=HTTP_CLIENT_TIMEOUT) as client:
                    response = await client.post(self.endpoint, json=payload)
        except httpx.HTTPError as e:
            self.logger.error("channel_delivery_failed", alert_id=alert.id, error=str(e))
            return False

        if not response.is_success:
            self.logger.error(
                "channel_delivery_rejected", alert_id=alert.id, status_code=response.status_code
            )
            return False
        return True


class EmailChannel(HttpAlertChannel):
    """Hands an HTML email to an HTTP mail relay."""

    name = "email"

    def __init__(self, endpoint: str | None, recipient: str, **kwargs: Any) -> None:
        super().__init__(endpoint, **kwargs)
        self.recipient = recipient

    def build_payload(self, alert: Alert) -> dict[str, Any]:
        return {
            "to": self.recipient,
            "subject": email_subject(alert),
            "html": format_email(alert, self.service_name),
        }


class ChatChannel(HttpAlertChannel):
    """Slack-compatible incoming webhook."""

    name = "chat"

    def build_payload(self, alert: Alert) -> dict[str, Any]:
        return format_chat(alert, self.service_name)


class SmsChannel(HttpAlertChannel):
    """Text message through an HTTP SMS gateway. Only critical alerts are sent."""

    name = "sms"

    def __init__(self, endpoint: str | None, phone: str | None, **kwargs: Any) -> None:
        super().__init__(endpoint, **kwargs)
        self.phone = phone
        if not phone:
            self.enabled = False

    def build_payload(self, alert: Alert) -> dict[str, Any]:
        return {"to": self.phone, "message": format_sms(alert)}

    async def send_alert(self, alert: Alert) -> bool:
        if alert.severity != Severity.CRITICAL:
            # Nothing to do below critical; that is not a failure.
            return True
        return await super().send_alert(alert)


class WebhookChannel(HttpAlertChannel):
    """Generic JSON envelope for arbitrary receivers."""

    name = "webhook"

    def build_payload(self, alert: Alert) -> dict[str, Any]:
        return format_webhook(alert, self.service_name)


def build_default_channels(
    config: ChannelConfig, client: httpx.AsyncClient | None = None
) -> list[HttpAlertChannel]:
    """Channels for every endpoint in the config; unset endpoints stay disabled."""
    common: dict[str, Any] = {"client": client, "service_name": config.service_name}
    return [
        EmailChannel(config.email_relay_url, config.alert_email, **common),
        ChatChannel(config.chat_webhook_url, **common),
        SmsChannel(config.sms_gateway_url, config.alert_phone, **common),
        WebhookChannel(config.webhook_url, **common),
    ]
