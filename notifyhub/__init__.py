"""Notification core: topics, subscriptions and tracked fan-out delivery (in-memory only)."""

from notifyhub.config import Settings
from notifyhub.default_transport import LoggingConfirmationChannel, LoggingTransport, StaticOptOutOracle
from notifyhub.delivery import DeliveryAttempt, DeliveryEngine, DeliveryState, PublishReceipt, RetryPolicy
from notifyhub.delivery_log import DeliveryLog, InMemoryDeliveryLog
from notifyhub.errors import (
    ConfirmationError,
    InvalidEndpointError,
    InvalidMessageError,
    InvalidNameError,
    NotFoundError,
    NotifyError,
    OptOutCheckError,
    OptedOutError,
    PermanentTransportError,
    PublishTimeoutError,
    RetriesExhaustedError,
    TransientTransportError,
    TransportError,
    TransportUnavailableError,
)
from notifyhub.message import Endpoint, EndpointKind, Message
from notifyhub.publisher import NotificationPublisher
from notifyhub.registry import TopicRegistry
from notifyhub.subscription import Subscription, SubscriptionState, SubscriptionTable
from notifyhub.topic import Topic
from notifyhub.transport import ConfirmationChannel, OptOutOracle, Transport

__all__ = [
    "Settings",
    "NotificationPublisher",
    "TopicRegistry",
    "Topic",
    "SubscriptionTable",
    "Subscription",
    "SubscriptionState",
    "DeliveryEngine",
    "DeliveryAttempt",
    "DeliveryState",
    "PublishReceipt",
    "RetryPolicy",
    "DeliveryLog",
    "InMemoryDeliveryLog",
    "Message",
    "Endpoint",
    "EndpointKind",
    "Transport",
    "OptOutOracle",
    "ConfirmationChannel",
    "LoggingTransport",
    "StaticOptOutOracle",
    "LoggingConfirmationChannel",
    "NotifyError",
    "InvalidNameError",
    "InvalidEndpointError",
    "InvalidMessageError",
    "NotFoundError",
    "ConfirmationError",
    "OptedOutError",
    "OptOutCheckError",
    "TransportError",
    "TransientTransportError",
    "PermanentTransportError",
    "RetriesExhaustedError",
    "TransportUnavailableError",
    "PublishTimeoutError",
]
