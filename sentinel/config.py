"""
Configuration management with environment variable support and validation.

Design principles:
- Environment-specific configs (dev, staging, prod)
- Validation at startup (fail fast)
- Type safety with Pydantic
- Secure defaults (no webhook URLs or tokens in code)
"""

import os
from functools import lru_cache
from typing import Literal, cast

from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator

# Load environment variables from .env file
load_dotenv()

Environment = Literal["development", "staging", "production"]
LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class EscalationConfig(BaseModel):
    """Frequency/impact rules that promote an incident's severity."""

    user_threshold: int = Field(
        default=10, gt=0, description="Affected users above which severity is promoted"
    )
    frequency_threshold: int = Field(
        default=50, gt=0, description="Occurrences above which severity is promoted"
    )
    high_multiplier: int = Field(
        default=2, ge=1, description="Threshold multiplier for the high -> critical step"
    )


class AlertingConfig(BaseModel):
    """Alert delivery, rate limiting and history settings."""

    cooldown_seconds: float = Field(
        default=300.0, ge=0.0, description="Suppression window per source|title key"
    )
    delivery_timeout_seconds: float = Field(
        default=10.0, gt=0.0, description="Timeout for a single channel delivery"
    )
    history_limit: int = Field(default=1000, gt=0, description="Max alerts kept in history")
    history_retention_hours: float = Field(
        default=24.0, gt=0.0, description="Alerts older than this are dropped from history"
    )


class IncidentConfig(BaseModel):
    """Retention for the in-memory incident map."""

    max_incidents: int = Field(default=5000, gt=0, description="Max tracked fingerprints")
    retention_hours: float = Field(
        default=168.0, gt=0.0, description="Incidents not seen for this long are evicted"
    )


class MetricsConfig(BaseModel):
    """Metric store and collection scheduler settings."""

    buffer_capacity: int = Field(default=1000, gt=0, description="Points kept per metric name")
    collection_interval_seconds: float = Field(
        default=60.0, gt=0.0, description="Interval between metric collections"
    )
    collection_timeout_seconds: float = Field(
        default=10.0, gt=0.0, description="Timeout for a single metric source poll"
    )
    average_window_minutes: float = Field(
        default=60.0, gt=0.0, description="Window used for averages in the summary"
    )
    business_api_url: str | None = Field(default=None, description="Base URL of metric endpoints")
    metrics_api_token: str | None = Field(default=None, description="Bearer token for metrics API")
    health_check_url: str | None = Field(default=None, description="Health endpoint to time")


class ChannelConfig(BaseModel):
    """Delivery endpoints. A channel is enabled only when its endpoint is set."""

    email_relay_url: str | None = Field(default=None, description="HTTP relay that sends email")
    alert_email: str = Field(default="alerts@example.com", description="Alert recipient")
    chat_webhook_url: str | None = Field(default=None, description="Slack-style incoming webhook")
    sms_gateway_url: str | None = Field(default=None, description="HTTP SMS gateway")
    alert_phone: str | None = Field(default=None, description="SMS recipient")
    webhook_url: str | None = Field(default=None, description="Generic JSON webhook")
    service_name: str = Field(default="sentinel", description="Name stamped on outbound alerts")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: LogLevel = Field(default="INFO", description="Logging level")
    format: Literal["json", "console"] = Field(default="json", description="Logging format")


class AppConfig(BaseModel):
    """Main application configuration combining all subsystems."""

    # Environment
    environment: Environment = Field(default="development", description="Environment")
    debug: bool = Field(default=False, description="Enable debug mode")

    # Component configs
    escalation: EscalationConfig = Field(default_factory=EscalationConfig)
    alerting: AlertingConfig = Field(default_factory=AlertingConfig)
    incidents: IncidentConfig = Field(default_factory=IncidentConfig)
    metrics: MetricsConfig = Field(default_factory=MetricsConfig)
    channels: ChannelConfig = Field(default_factory=ChannelConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @model_validator(mode="after")
    def debug_only_in_dev(self) -> "AppConfig":
        """Ensure debug mode is only allowed in development environment."""
        if self.debug and self.environment != "development":
            raise ValueError("debug mode is only allowed in development environment")
        return self

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


def load_config_from_env() -> AppConfig:
    """Load configuration from environment variables with validation."""

    def _env_to_literal(val: str) -> Environment:
        v = val.strip().lower()
        if v in {"dev", "development"}:
            return "development"
        if v in {"stage", "staging"}:
            return "staging"
        return "production"

    def _level_to_literal(val: str) -> LogLevel:
        v = val.strip().upper()
        known = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        return cast(LogLevel, v if v in known else "INFO")

    def _optional(name: str) -> str | None:
        val = os.getenv(name, "").strip()
        return val or None

    # Detect environment
    environment = _env_to_literal(os.getenv("ENVIRONMENT", "development"))
    debug = environment == "development"

    escalation_config = EscalationConfig(
        user_threshold=int(os.getenv("ESCALATION_USER_THRESHOLD", "10")),
        frequency_threshold=int(os.getenv("ESCALATION_FREQUENCY_THRESHOLD", "50")),
    )

    alerting_config = AlertingConfig(
        cooldown_seconds=float(os.getenv("ALERT_COOLDOWN_SECONDS", "300")),
        delivery_timeout_seconds=float(os.getenv("ALERT_DELIVERY_TIMEOUT_SECONDS", "10")),
    )

    metrics_config = MetricsConfig(
        buffer_capacity=int(os.getenv("METRIC_BUFFER_CAPACITY", "1000")),
        collection_interval_seconds=float(os.getenv("COLLECTION_INTERVAL_SECONDS", "60")),
        business_api_url=_optional("METRICS_API_URL"),
        metrics_api_token=_optional("METRICS_API_TOKEN"),
        health_check_url=_optional("HEALTH_CHECK_URL"),
    )

    channel_config = ChannelConfig(
        email_relay_url=_optional("EMAIL_RELAY_URL"),
        alert_email=os.getenv("ALERT_EMAIL", "alerts@example.com"),
        chat_webhook_url=_optional("SLACK_ALERT_WEBHOOK"),
        sms_gateway_url=_optional("SMS_GATEWAY_URL"),
        alert_phone=_optional("ALERT_PHONE"),
        webhook_url=_optional("ALERT_WEBHOOK_URL"),
    )

    logging_config = LoggingConfig(
        level=_level_to_literal(os.getenv("LOG_LEVEL", "INFO")),
        format="console" if debug else "json",
    )

    return AppConfig(
        environment=environment,
        debug=debug,
        escalation=escalation_config,
        alerting=alerting_config,
        metrics=metrics_config,
        channels=channel_config,
        logging=logging_config,
    )


@lru_cache
def get_config() -> AppConfig:
    """Get cached application configuration."""
    return load_config_from_env()


def print_config_summary(config: AppConfig | None = None) -> None:
    """Print configuration summary for debugging."""
    config = config or get_config()

    print("\nCONFIGURATION SUMMARY")
    print(f"Environment: {config.environment}")
    print(f"Debug Mode: {config.debug}")
    print(f"Log Level: {config.logging.level}")

    print("\nALERTING")
    print(f"Cooldown: {config.alerting.cooldown_seconds}s")
    print(f"Delivery Timeout: {config.alerting.delivery_timeout_seconds}s")
    print(
        f"Escalation: >{config.escalation.user_threshold} users "
        f"or >{config.escalation.frequency_threshold} occurrences"
    )

    print("\nMETRICS")
    print(f"Collection Interval: {config.metrics.collection_interval_seconds}s")
    print(f"Buffer Capacity: {config.metrics.buffer_capacity}")
