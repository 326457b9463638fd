"""RabbitMQ publishers for workshop audit events."""
from __future__ import annotations

import json
import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterator, Optional, Set

import pika
from pika.adapters.blocking_connection import BlockingChannel
from pika.exceptions import AMQPError

from ..config import AppConfig, RabbitMQConfig

LOGGER = logging.getLogger(__name__)


class RabbitMQPublisher:
    """Publish JSON documents to topic exchanges over short-lived connections.

    Each call opens its own connection; exchanges are declared durable the
    first time this publisher writes to them.
    """

    def __init__(
        self,
        config: RabbitMQConfig,
        connection_factory: Callable[[pika.URLParameters], pika.BlockingConnection] = pika.BlockingConnection,
    ) -> None:
        self._default_exchange = config.exchange
        self._parameters = pika.URLParameters(config.url)
        self._connection_factory = connection_factory
        self._declared: Set[str] = set()

    @contextmanager
    def _channel(self) -> Iterator[BlockingChannel]:
        connection = self._connection_factory(self._parameters)
        try:
            yield connection.channel()
        finally:
            if connection.is_open:
                connection.close()

    def publish(
        self,
        routing_key: str,
        payload: Dict[str, Any],
        *,
        exchange: Optional[str] = None,
        headers: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Publish ``payload`` as a persistent message; ``exchange`` defaults to the configured one."""

        target = exchange or self._default_exchange
        properties = pika.BasicProperties(
            content_type="application/json",
            delivery_mode=2,
            headers=dict(headers or {}),
        )
        try:
            with self._channel() as channel:
                if target not in self._declared:
                    channel.exchange_declare(exchange=target, exchange_type="topic", durable=True)
                    self._declared.add(target)
                channel.basic_publish(
                    exchange=target,
                    routing_key=routing_key,
                    body=json.dumps(payload, default=str).encode("utf-8"),
                    properties=properties,
                )
        except AMQPError:
            LOGGER.exception("Could not publish to %s", target, extra={"routing_key": routing_key})
            raise
        LOGGER.debug("Published %s to %s", routing_key, target)


class AuditEventPublisher:
    """Publish structured audit events for provisioning and teardown actions."""

    def __init__(
        self, publisher: Optional[RabbitMQPublisher], routing_key: str = "audit.workshop.event"
    ) -> None:
        self._publisher = publisher
        self._routing_key = routing_key

    @property
    def enabled(self) -> bool:
        return self._publisher is not None

    def publish(
        self,
        subject: str,
        action: str,
        outcome: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        event = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "subject": subject,
            "action": action,
            "outcome": outcome,
            "details": {key: value for key, value in (details or {}).items() if value is not None},
        }
        if self._publisher is None:
            LOGGER.debug("Audit publishing disabled", extra={"audit_event": event})
            return
        try:
            self._publisher.publish(self._routing_key, event, headers={"action": action, "outcome": outcome})
        except Exception:
            LOGGER.exception(
                "Failed to publish audit event", extra={"subject": subject, "action": action}
            )


def build_audit_publisher(settings: AppConfig) -> AuditEventPublisher:
    """Audit publisher for the configured broker, or a disabled one."""

    if settings.rabbitmq is None:
        return AuditEventPublisher(None)
    return AuditEventPublisher(
        RabbitMQPublisher(settings.rabbitmq), routing_key=settings.rabbitmq.audit_routing_key
    )


__all__ = ["RabbitMQPublisher", "AuditEventPublisher", "build_audit_publisher"]
