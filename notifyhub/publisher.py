"""Publisher API: the facade composing topic registry, subscription table and delivery engine."""

import random
import time
from typing import Callable, Dict, List, Optional, Union

from notifyhub.config import Settings
from notifyhub.delivery import DeliveryEngine, PublishReceipt, RetryPolicy
from notifyhub.delivery_log import DeliveryLog
from notifyhub.message import AttributeValue, Endpoint, EndpointKind, Message
from notifyhub.observability import Metrics, get_logger
from notifyhub.registry import TopicRegistry
from notifyhub.subscription import Subscription, SubscriptionTable
from notifyhub.topic import Topic
from notifyhub.transport import ConfirmationChannel, OptOutOracle, Transport

_UNSET = object()


class NotificationPublisher:
    """
    Create/delete topics, manage subscriptions and publish notifications.

    Collaborators are passed in explicitly; there is no process-wide client.
    Publishing calls block until every attempt is terminal or the timeout elapses.
    """

    def __init__(
        self,
        transport: Transport,
        opt_out_oracle: Optional[OptOutOracle] = None,
        confirmation_channel: Optional[ConfirmationChannel] = None,
        retry_policy: Optional[RetryPolicy] = None,
        pool_size: int = 8,
        dedup_window: int = 100,
        publish_timeout: Optional[float] = None,
        delivery_log: Optional[DeliveryLog] = None,
        metrics: Optional[Metrics] = None,
        sleep: Callable[[float], None] = time.sleep,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._registry = TopicRegistry()
        self._subscriptions = SubscriptionTable(self._registry, confirmation_channel)
        self._engine = DeliveryEngine(
            self._subscriptions,
            transport,
            opt_out_oracle=opt_out_oracle,
            retry_policy=retry_policy,
            pool_size=pool_size,
            dedup_window=dedup_window,
            delivery_log=delivery_log,
            metrics=metrics,
            sleep=sleep,
            rng=rng,
        )
        self._publish_timeout = publish_timeout
        self._logger = get_logger("notifyhub.publisher")

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        transport: Transport,
        opt_out_oracle: Optional[OptOutOracle] = None,
        confirmation_channel: Optional[ConfirmationChannel] = None,
        **kwargs,
    ) -> "NotificationPublisher":
        """Build a publisher whose pool, retry policy, dedup window and timeout come from settings."""
        return cls(
            transport,
            opt_out_oracle=opt_out_oracle,
            confirmation_channel=confirmation_channel,
            retry_policy=RetryPolicy.from_settings(settings),
            pool_size=settings.pool_size,
            dedup_window=settings.dedup_window,
            publish_timeout=settings.publish_timeout_sec if settings.publish_timeout_sec > 0 else None,
            **kwargs,
        )

    @property
    def registry(self) -> TopicRegistry:
        return self._registry

    @property
    def subscriptions(self) -> SubscriptionTable:
        return self._subscriptions

    @property
    def engine(self) -> DeliveryEngine:
        return self._engine

    @property
    def metrics(self) -> Metrics:
        return self._engine.metrics

    # ---- Topics ----

    def create_topic(self, name: str) -> Topic:
        return self._registry.create_topic(name)

    def delete_topic(self, topic_id: str) -> None:
        self._registry.delete_topic(topic_id)

    def get_topic(self, topic_id: str) -> Topic:
        return self._registry.get_topic(topic_id)

    def list_topics(self) -> List[Topic]:
        return self._registry.list_topics()

    # ---- Subscriptions ----

    def subscribe(self, topic_id: str, kind: Union[str, EndpointKind], address: str) -> Subscription:
        return self._subscriptions.subscribe(topic_id, kind, address)

    def subscribe_email(self, topic_id: str, address: str) -> Subscription:
        """Subscribe an email address; it stays pending until confirmed with its token."""
        return self._subscriptions.subscribe(topic_id, EndpointKind.EMAIL, address)

    def subscribe_sms(self, topic_id: str, phone_number: str) -> Subscription:
        """Subscribe an E.164 phone number (+ then up to 15 digits); confirmed immediately."""
        return self._subscriptions.subscribe(topic_id, EndpointKind.SMS, phone_number)

    def subscribe_push(self, topic_id: str, address: str) -> Subscription:
        return self._subscriptions.subscribe(topic_id, EndpointKind.PUSH, address)

    def confirm_subscription(self, subscription_id: str, token: str) -> Subscription:
        return self._subscriptions.confirm_subscription(subscription_id, token)

    def reject_subscription(self, subscription_id: str, token: str) -> Subscription:
        return self._subscriptions.reject_subscription(subscription_id, token)

    def unsubscribe(self, subscription_id: str) -> None:
        self._subscriptions.unsubscribe(subscription_id)

    def list_subscriptions(self, topic_id: str) -> List[Subscription]:
        """Subscriptions of a topic in creation order; NotFoundError if the topic is unknown."""
        return list(self._subscriptions.list_by_topic(topic_id))

    # ---- Publishing ----

    def publish_to_topic(
        self,
        topic_id: str,
        payload: str,
        attributes: Optional[Dict[str, AttributeValue]] = None,
        subject: Optional[str] = None,
        dedup_id: Optional[str] = None,
        timeout=_UNSET,
    ) -> PublishReceipt:
        """Fan out to the topic's confirmed subscriptions as of this call."""
        self._registry.get_topic(topic_id)
        message = Message(
            payload=payload,
            topic_id=topic_id,
            attributes=dict(attributes or {}),
            subject=subject,
            dedup_id=dedup_id,
        )
        return self._publish(message, timeout)

    def publish_direct(
        self,
        kind: Union[str, EndpointKind],
        address: str,
        payload: str,
        attributes: Optional[Dict[str, AttributeValue]] = None,
        subject: Optional[str] = None,
        dedup_id: Optional[str] = None,
        timeout=_UNSET,
    ) -> PublishReceipt:
        """Send to a single endpoint without a topic."""
        message = Message(
            payload=payload,
            endpoint=Endpoint.parse(kind, address),
            attributes=dict(attributes or {}),
            subject=subject,
            dedup_id=dedup_id,
        )
        return self._publish(message, timeout)

    def send_sms(
        self,
        phone_number: str,
        payload: str,
        attributes: Optional[Dict[str, AttributeValue]] = None,
        timeout=_UNSET,
    ) -> PublishReceipt:
        """Direct sms; an opted-out number yields an opted_out attempt and is never sent."""
        return self.publish_direct(EndpointKind.SMS, phone_number, payload, attributes=attributes, timeout=timeout)

    def _publish(self, message: Message, timeout) -> PublishReceipt:
        if timeout is _UNSET:
            timeout = self._publish_timeout
        receipt = self._engine.publish(message, timeout=timeout)
        self._logger.info(
            "published",
            extra={
                "message_id": receipt.message_id,
                "target": message.target_key,
                "total": receipt.total,
                "delivered": receipt.delivered,
                "failed": receipt.failed,
                "opted_out": receipt.opted_out,
            },
        )
        return receipt

    def close(self) -> None:
        self._engine.close()

    def __enter__(self) -> "NotificationPublisher":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"NotificationPublisher(topics={self._registry.topic_count()})"
