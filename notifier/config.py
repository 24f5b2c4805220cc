import os
import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 5.0

# Recognised configuration keys -> NotifierConfig field names
CONFIG_KEYS = {
    "region": "region",
    "sns_topic": "topic",
    "slack_api_url": "webhook_url",
    "slack_channel_id": "chat_channel_id",
    "slack_sns_topic": "relay_topic",
    "error_sns_topic": "error_topic",
    "error_slack_url": "error_webhook_url",
    "error_msg_prefix": "error_msg_prefix",
    "project": "project",
    "timeout": "timeout",
}


@dataclass(frozen=True)
class NotifierConfig:
    """Delivery settings shared by every send of a :class:`Notifier`.

    Only ``region`` is required. Leaving any other address unset disables
    the delivery path that would use it.
    """

    region: str
    topic: Optional[str] = None
    webhook_url: Optional[str] = None
    chat_channel_id: Optional[str] = None
    relay_topic: Optional[str] = None
    error_topic: Optional[str] = None
    error_webhook_url: Optional[str] = None
    error_msg_prefix: str = ""
    project: Optional[str] = None
    timeout: float = DEFAULT_TIMEOUT

    @property
    def pubsub_endpoint(self) -> str:
        return f"{self.region}-pubsub.googleapis.com:443"

    def topic_path(self, topic: str) -> str:
        """Return a full ``projects/<p>/topics/<t>`` path for ``topic``."""
        if "/" in topic:
            return topic
        if not self.project:
            raise ValueError(f"Cannot resolve topic {topic!r} without a project")
        return f"projects/{self.project}/topics/{topic}"

    @classmethod
    def from_mapping(cls, options: Mapping[str, Any]) -> "NotifierConfig":
        """Build a config from a mapping using the recognised option keys.

        Unknown keys are ignored. Raises ``EnvironmentError`` when ``region``
        is missing.
        """
        values = {}
        for key, field_name in CONFIG_KEYS.items():
            value = options.get(key)
            if value is None or value == "":
                continue
            values[field_name] = value

        if not values.get("region"):
            logger.error("Missing required notifier option: region")
            raise EnvironmentError("Missing required notifier option: region")

        if "timeout" in values:
            try:
                values["timeout"] = float(values["timeout"])
            except (TypeError, ValueError):
                logger.error("Invalid notifier option: timeout=%r", values["timeout"])
                raise EnvironmentError("Invalid notifier option: timeout")

        ignored = set(options) - set(CONFIG_KEYS)
        if ignored:
            logger.debug("Ignoring unknown notifier options: %s", ", ".join(sorted(ignored)))
        return cls(**values)

    @classmethod
    def from_env(cls) -> "NotifierConfig":
        """Build a config from ``NOTIFIER_*`` environment variables.

        A ``.env`` file is loaded first when present. The Google project
        falls back to ``GOOGLE_CLOUD_PROJECT`` / ``GCP_PROJECT``.
        """
        load_dotenv()
        options = {}
        for key in CONFIG_KEYS:
            var = f"NOTIFIER_{key.upper()}"
            if os.getenv(var):
                logger.debug("Environment variable %s is set", var)
                options[key] = os.getenv(var)
        if "project" not in options:
            project = os.getenv("GOOGLE_CLOUD_PROJECT") or os.getenv("GCP_PROJECT")
            if project:
                options["project"] = project
        return cls.from_mapping(options)
