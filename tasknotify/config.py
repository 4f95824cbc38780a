"""Environment configuration for the task notification pipeline."""

import os
from functools import lru_cache

from dotenv import load_dotenv

load_dotenv()

BROKER_BACKENDS = ("memory", "dapr", "kafka")


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_list(name: str, default: str) -> list[str]:
    raw = os.getenv(name, default)
    return [item.strip().lower() for item in raw.split(",") if item.strip()]


class Settings:
    """Application settings loaded from environment variables.

    A Settings instance is handed to each pipeline component when it is
    constructed, so tests can build components with their own values
    instead of patching the environment.
    """

    def __init__(self) -> None:
        self.DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./tasknotify.db")

        # Notification pipeline
        self.NOTIFICATIONS_ENABLED: bool = _env_bool("NOTIFICATIONS_ENABLED", True)
        self.NOTIFICATION_TOPIC: str = os.getenv("NOTIFICATION_TOPIC", "notifications")
        self.NOTIFICATION_CONSUMER_GROUP: str = os.getenv(
            "NOTIFICATION_CONSUMER_GROUP", "notification-consumer-group"
        )
        self.NOTIFICATION_CHANNELS: list[str] = _env_list("NOTIFICATION_CHANNELS", "email")

        # Reminder scanner
        self.REMINDER_HOURS_BEFORE_DUE: int = int(os.getenv("REMINDER_HOURS_BEFORE_DUE", "24"))
        self.REMINDER_SCAN_INTERVAL_SECONDS: int = int(
            os.getenv("REMINDER_SCAN_INTERVAL_SECONDS", "3600")
        )

        # Broker
        self.BROKER_BACKEND: str = os.getenv("BROKER_BACKEND", "memory").lower()
        self.DAPR_HTTP_PORT: int = int(os.getenv("DAPR_HTTP_PORT", "3500"))
        self.DAPR_PUBSUB_NAME: str = os.getenv("DAPR_PUBSUB_NAME", "taskpubsub")
        self.KAFKA_BOOTSTRAP_SERVERS: str = os.getenv("KAFKA_BOOTSTRAP_SERVERS", "localhost:9092")

        # Email channel (unset SMTP_HOST means email is not configured)
        self.SMTP_HOST: str = os.getenv("SMTP_HOST", "")
        self.SMTP_PORT: int = int(os.getenv("SMTP_PORT", "587"))
        self.SMTP_USERNAME: str = os.getenv("SMTP_USERNAME", "")
        self.SMTP_PASSWORD: str = os.getenv("SMTP_PASSWORD", "")
        self.SMTP_USE_TLS: bool = _env_bool("SMTP_USE_TLS", True)
        self.SMTP_FROM: str = os.getenv("SMTP_FROM", "no-reply@tasknotify.local")

        # Background execution
        self.DISPATCH_MAX_WORKERS: int = int(os.getenv("DISPATCH_MAX_WORKERS", "4"))
        self.AUDIT_MAX_WORKERS: int = int(os.getenv("AUDIT_MAX_WORKERS", "2"))
        self.WORKER_BATCH_SIZE: int = int(os.getenv("WORKER_BATCH_SIZE", "50"))
        self.WORKER_POLL_INTERVAL_SECONDS: float = float(
            os.getenv("WORKER_POLL_INTERVAL_SECONDS", "1")
        )

    def validate(self) -> None:
        """Validate that the configured values are usable."""
        if not self.DATABASE_URL:
            raise ValueError("DATABASE_URL environment variable is required")
        if self.BROKER_BACKEND not in BROKER_BACKENDS:
            raise ValueError(
                f"BROKER_BACKEND must be one of {', '.join(BROKER_BACKENDS)}, "
                f"got {self.BROKER_BACKEND!r}"
            )
        if self.REMINDER_HOURS_BEFORE_DUE <= 0:
            raise ValueError("REMINDER_HOURS_BEFORE_DUE must be positive")
        if self.REMINDER_SCAN_INTERVAL_SECONDS <= 0:
            raise ValueError("REMINDER_SCAN_INTERVAL_SECONDS must be positive")
        if not self.NOTIFICATION_TOPIC:
            raise ValueError("NOTIFICATION_TOPIC must not be empty")

    @property
    def email_configured(self) -> bool:
        return bool(self.SMTP_HOST)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    settings = Settings()
    settings.validate()
    return settings
