"""
Per-channel renderings of an Alert.

Every renderer reads the same canonical Alert fields and returns a new value;
none of them touch the Alert itself.
"""

import html
import json
from typing import Any

from sentinel.domain.models import Alert, Severity

SEVERITY_COLORS = {
    Severity.LOW: "#28a745",
    Severity.MEDIUM: "#ffc107",
    Severity.HIGH: "#fd7e14",
    Severity.CRITICAL: "#dc3545",
}

CHAT_EMOJIS = {
    Severity.LOW: ":large_green_circle:",
    Severity.MEDIUM: ":large_yellow_circle:",
    Severity.HIGH: ":large_orange_circle:",
    Severity.CRITICAL: ":red_circle:",
}

CHAT_COLORS = {
    Severity.LOW: "good",
    Severity.MEDIUM: "warning",
    Severity.HIGH: "danger",
    Severity.CRITICAL: "danger",
}

SMS_MAX_LENGTH = 320


def _timestamp(alert: Alert) -> str:
    return alert.timestamp.strftime("%Y-%m-%d %H:%M:%S UTC")


def email_subject(alert: Alert) -> str:
    return f"[{alert.severity.value.upper()}] {alert.title}"


def format_email(alert: Alert, service_name: str = "sentinel") -> str:
    color = SEVERITY_COLORS[alert.severity]
    details = ""
    if alert.metadata:
        metadata = html.escape(json.dumps(alert.metadata, indent=2, default=str))
        details = (
            "<details><summary>Additional Information</summary>"
            '<pre style="background: #e9ecef; padding: 10px; border-radius: 4px;">'
            f"{metadata}</pre></details>"
        )

    return f"""<html>
  <body style="font-family: Arial, sans-serif; margin: 20px;">
    <div style="border-left: 4px solid {color}; padding: 20px; background: #f8f9fa;">
      <h2 style="margin-top: 0; color: {color};">{alert.severity.value.upper()} ALERT</h2>
      <h3>{html.escape(alert.title)}</h3>
      <p><strong>Source:</strong> {html.escape(alert.source)}</p>
      <p><strong>Time:</strong> {_timestamp(alert)}</p>
      <p><strong>Message:</strong> {html.escape(alert.message)}</p>
      {details}
      <hr>
      <p style="font-size: 0.9em; color: #6c757d;">
        This alert was sent from the {html.escape(service_name)} monitoring system.
        <br>
        Alert ID: {html.escape(alert.id)}
      </p>
    </div>
  </body>
</html>
"""


def format_chat(alert: Alert, service_name: str = "sentinel") -> dict[str, Any]:
    """Slack-style message with one attachment."""
    return {
        "text": (
            f"{CHAT_EMOJIS[alert.severity]} {alert.severity.value.upper()} Alert: {alert.title}"
        ),
        "attachments": [
            {
                "color": CHAT_COLORS[alert.severity],
                "fields": [
                    {"title": "Source", "value": alert.source, "short": True},
                    {"title": "Time", "value": _timestamp(alert), "short": True},
                    {"title": "Message", "value": alert.message, "short": False},
                ],
                "footer": f"{service_name} monitoring",
                "ts": int(alert.timestamp.timestamp()),
            }
        ],
    }


def format_sms(alert: Alert) -> str:
    text = f"{alert.severity.value.upper()}: {alert.title} - {alert.message}"
    if len(text) > SMS_MAX_LENGTH:
        text = text[: SMS_MAX_LENGTH - 3] + "..."
    return text


def format_webhook(alert: Alert, service_name: str = "sentinel") -> dict[str, Any]:
    return {
        "alert": alert.model_dump(mode="json"),
        "timestamp": alert.timestamp.isoformat(),
        "source": service_name,
    }
