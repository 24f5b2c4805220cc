"""Best-effort delivery of notifications to a Pub/Sub topic and a chat webhook.

Every send swallows its own failure after logging it and, unless told not
to, reports the failure once through the *other* channel: a failed publish
escalates to the webhook fallback and a failed webhook post escalates to the
topic fallback. Escalated sends always run with ``suppress_fallback=True`` so
a second failure stops there.
"""

import json
import logging
import threading
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from functools import partial
from typing import Any, List, Mapping, Optional, Union

import requests
from google.cloud import pubsub_v1

from notifier.config import NotifierConfig

logger = logging.getLogger(__name__)

CHANNEL_TOPIC = "topic"
CHANNEL_WEBHOOK = "webhook"
CHANNEL_ALL = "all"

_notifier = None
_notifier_lock = threading.Lock()


@dataclass
class EscalationResult:
    """Outcome of :meth:`Notifier.report_system_error`."""

    channel: str
    message: Any
    sends: List["SendResult"] = field(default_factory=list)
    rejected: bool = False
    reason: Optional[str] = None


@dataclass
class SendResult:
    """Outcome of a single publish or webhook post."""

    channel: str
    ok: bool
    target: Optional[str] = None
    error: Optional[str] = None
    skipped: bool = False
    message_id: Optional[str] = None
    status_code: Optional[int] = None
    escalation: Optional[EscalationResult] = None


def _error_text(exc: BaseException) -> str:
    return str(exc) or repr(exc)


def _to_text(message: Any) -> str:
    if isinstance(message, str):
        return message
    return json.dumps(message, default=str)


class Notifier:
    """Send notifications using the addresses held by a :class:`NotifierConfig`.

    The Pub/Sub publisher is created lazily against the regional endpoint of
    ``config.region``; pass ``publisher`` to supply one explicitly.
    """

    def __init__(self, config: NotifierConfig, publisher=None):
        self.config = config
        self._publisher = publisher
        self._publisher_lock = threading.Lock()

    def _get_publisher(self):
        with self._publisher_lock:
            if self._publisher is None:
                self._publisher = pubsub_v1.PublisherClient(
                    client_options={"api_endpoint": self.config.pubsub_endpoint}
                )
                logger.debug("Created Pub/Sub publisher for %s", self.config.pubsub_endpoint)
            return self._publisher

    def publish(
        self,
        subject: str,
        message: Any = " ",
        topic: Optional[str] = None,
        suppress_fallback: bool = False,
    ) -> SendResult:
        """Publish ``message`` to ``topic`` (the configured topic by default).

        Non-string messages are JSON encoded. ``subject`` travels as the
        ``subject`` message attribute. Never raises.
        """
        topic = topic or self.config.topic
        extra = {"channel": CHANNEL_TOPIC}
        if not topic:
            logger.warning("No topic configured, dropping notification %r", subject, extra=extra)
            return SendResult(CHANNEL_TOPIC, ok=False, skipped=True)

        try:
            publisher = self._get_publisher()
            attributes = {"subject": str(subject)} if subject else {}
            future = publisher.publish(
                self.config.topic_path(topic),
                _to_text(message).encode("utf-8"),
                **attributes,
            )
            message_id = future.result(timeout=self.config.timeout)
        except Exception as exc:
            logger.exception("Failed to publish notification to %s: %s", topic, exc, extra=extra)
            result = SendResult(CHANNEL_TOPIC, ok=False, target=topic, error=_error_text(exc))
            if not suppress_fallback:
                result.escalation = self.report_system_error(CHANNEL_WEBHOOK, result.error)
            return result

        logger.info("Published notification %s to %s", message_id, topic, extra=extra)
        return SendResult(CHANNEL_TOPIC, ok=True, target=topic, message_id=message_id)

    def post_webhook(
        self,
        message: Any,
        webhook_url: Optional[str] = None,
        suppress_fallback: bool = False,
    ) -> SendResult:
        """POST ``{"text": message}`` to the webhook. Never raises."""
        url = webhook_url or self.config.webhook_url
        extra = {"channel": CHANNEL_WEBHOOK}
        if not url:
            logger.warning("No webhook configured, dropping notification", extra=extra)
            return SendResult(CHANNEL_WEBHOOK, ok=False, skipped=True)

        try:
            response = requests.post(url, json={"text": message}, timeout=self.config.timeout)
            response.raise_for_status()
        except Exception as exc:
            logger.exception("Failed to post notification: %s", exc, extra=extra)
            result = SendResult(CHANNEL_WEBHOOK, ok=False, target=url, error=_error_text(exc))
            if not suppress_fallback:
                result.escalation = self.report_system_error(CHANNEL_TOPIC, result.error)
            return result

        logger.info("Posted notification to webhook (%s)", response.status_code, extra=extra)
        return SendResult(CHANNEL_WEBHOOK, ok=True, target=url, status_code=response.status_code)

    def relay_via_topic(
        self,
        message: Any,
        relay_topic: Optional[str] = None,
        suppress_fallback: bool = False,
        subject: str = "",
    ) -> SendResult:
        """Publish a chat envelope to the relay topic.

        The topic's subscriber is expected to forward ``text`` into the chat
        ``channel``.
        """
        envelope = {"channel": self.config.chat_channel_id, "text": _to_text(message)}
        return self.publish(
            subject,
            json.dumps(envelope),
            relay_topic or self.config.relay_topic,
            suppress_fallback,
        )

    def _fallback_sends(self, channel: str, message: str) -> list:
        cfg = self.config
        sends = []
        if channel in (CHANNEL_TOPIC, CHANNEL_ALL) and cfg.error_topic:
            sends.append(
                partial(self.publish, cfg.error_msg_prefix, message, cfg.error_topic, suppress_fallback=True)
            )
        if channel in (CHANNEL_WEBHOOK, CHANNEL_ALL):
            text = f"{cfg.error_msg_prefix} - {message}" if cfg.error_msg_prefix else message
            if cfg.error_webhook_url:
                sends.append(partial(self.post_webhook, text, cfg.error_webhook_url, suppress_fallback=True))
            elif cfg.chat_channel_id and cfg.relay_topic:
                sends.append(
                    partial(
                        self.relay_via_topic,
                        text,
                        cfg.relay_topic,
                        suppress_fallback=True,
                        subject=cfg.error_msg_prefix,
                    )
                )
        return sends

    def report_system_error(self, channel: str, message: Any) -> EscalationResult:
        """Forward a system error message to the fallback channel(s).

        ``channel`` is ``"topic"``, ``"webhook"`` or ``"all"``. Non-string
        messages are logged and not forwarded. Queued sends run concurrently
        and are all awaited. Never raises.
        """
        extra = {"channel": channel}
        logger.error("System error: %s", message, extra=extra)
        result = EscalationResult(channel=channel, message=message)

        if not isinstance(message, str):
            logger.warning(
                "System error message is not a string (%s), not forwarding",
                type(message).__name__,
                extra=extra,
            )
            result.rejected = True
            result.reason = "message is not a string"
            return result

        try:
            sends = self._fallback_sends(channel, message)
            if not sends:
                logger.debug("No fallback route for channel %s", channel, extra=extra)
                result.reason = "no fallback route"
                return result

            with ThreadPoolExecutor(max_workers=len(sends)) as executor:
                futures = [executor.submit(send) for send in sends]
                wait(futures)

            for future in futures:
                exc = future.exception()
                if exc is not None:
                    logger.error("Fallback send raised: %s", exc, extra=extra)
                    continue
                result.sends.append(future.result())
        except Exception as exc:
            logger.exception("Failed to deliver system error message: %s", exc, extra=extra)
        return result


def initialize(config: Union[NotifierConfig, Mapping[str, Any]]) -> Notifier:
    """Replace the process-wide notifier with one built from ``config``."""
    global _notifier
    if not isinstance(config, NotifierConfig):
        config = NotifierConfig.from_mapping(config)
    notifier = Notifier(config)
    with _notifier_lock:
        _notifier = notifier
    logger.info("Notifier initialized for region %s", config.region)
    return notifier


def get_notifier() -> Notifier:
    """Return the process-wide notifier, building it from the environment on first use.

    Raises ``EnvironmentError`` when nothing was initialized and the
    environment lacks the required settings.
    """
    global _notifier
    with _notifier_lock:
        if _notifier is None:
            _notifier = Notifier(NotifierConfig.from_env())
            logger.info("Notifier initialized from environment")
        return _notifier


def _default_notifier(channel: str) -> Optional[Notifier]:
    try:
        return get_notifier()
    except Exception as exc:
        logger.exception("Notifier is not configured: %s", exc, extra={"channel": channel})
        return None


def publish(subject, message=" ", topic=None, suppress_fallback=False) -> SendResult:
    notifier = _default_notifier(CHANNEL_TOPIC)
    if notifier is None:
        return SendResult(CHANNEL_TOPIC, ok=False, skipped=True, error="notifier is not configured")
    return notifier.publish(subject, message, topic, suppress_fallback)


def post_webhook(message, webhook_url=None, suppress_fallback=False) -> SendResult:
    notifier = _default_notifier(CHANNEL_WEBHOOK)
    if notifier is None:
        return SendResult(CHANNEL_WEBHOOK, ok=False, skipped=True, error="notifier is not configured")
    return notifier.post_webhook(message, webhook_url, suppress_fallback)


def relay_via_topic(message, relay_topic=None, suppress_fallback=False, subject="") -> SendResult:
    notifier = _default_notifier(CHANNEL_TOPIC)
    if notifier is None:
        return SendResult(CHANNEL_TOPIC, ok=False, skipped=True, error="notifier is not configured")
    return notifier.relay_via_topic(message, relay_topic, suppress_fallback, subject)


def report_system_error(channel, message) -> EscalationResult:
    notifier = _default_notifier(channel)
    if notifier is None:
        logger.error("System error: %s", message, extra={"channel": channel})
        return EscalationResult(channel, message, reason="notifier is not configured")
    return notifier.report_system_error(channel, message)
