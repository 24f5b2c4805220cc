"""Topic and webhook notifications with cross-channel failure reporting."""

from notifier.config import NotifierConfig
from notifier.logging_config import configure_logging
from notifier.notifications import (
    CHANNEL_ALL,
    CHANNEL_TOPIC,
    CHANNEL_WEBHOOK,
    EscalationResult,
    Notifier,
    SendResult,
    get_notifier,
    initialize,
    post_webhook,
    publish,
    relay_via_topic,
    report_system_error,
)

__all__ = [
    "CHANNEL_ALL",
    "CHANNEL_TOPIC",
    "CHANNEL_WEBHOOK",
    "EscalationResult",
    "Notifier",
    "NotifierConfig",
    "SendResult",
    "configure_logging",
    "get_notifier",
    "initialize",
    "post_webhook",
    "publish",
    "relay_via_topic",
    "report_system_error",
]
