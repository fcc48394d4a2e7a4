"""Subscription records and the per-topic subscription table."""

import dataclasses
import threading
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Dict, Iterator, List, Optional, Union

from notifyhub.errors import ConfirmationError, NotFoundError
from notifyhub.message import Endpoint, EndpointKind
from notifyhub.observability import get_logger
from notifyhub.registry import TopicRegistry
from notifyhub.topic import Topic
from notifyhub.transport import ConfirmationChannel


class SubscriptionState(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    REJECTED = "rejected"


@dataclass(frozen=True)
class Subscription:
    """Immutable snapshot of a subscription; state changes replace the record in the table."""

    subscription_id: str
    topic_id: str
    endpoint: Endpoint
    state: SubscriptionState
    created_at: datetime

    @property
    def kind(self) -> EndpointKind:
        return self.endpoint.kind

    @property
    def address(self) -> str:
        return self.endpoint.address

    def to_dict(self) -> dict:
        return {
            "subscription_id": self.subscription_id,
            "topic_id": self.topic_id,
            "kind": self.endpoint.kind.value,
            "address": self.endpoint.address,
            "state": self.state.value,
            "created_at": self.created_at.isoformat(),
        }


class SubscriptionView:
    """Restartable view over a topic's subscriptions; every iteration takes a fresh snapshot."""

    def __init__(self, table: "SubscriptionTable", topic_id: str) -> None:
        self._table = table
        self._topic_id = topic_id

    def __iter__(self) -> Iterator[Subscription]:
        return iter(self._table._snapshot(self._topic_id))

    def __repr__(self) -> str:
        return f"SubscriptionView(topic_id={self._topic_id!r})"


class SubscriptionTable:
    """Endpoint registrations per topic, with confirmation state."""

    def __init__(
        self,
        registry: TopicRegistry,
        confirmation_channel: Optional[ConfirmationChannel] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._registry = registry
        self._confirmation_channel = confirmation_channel
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._subscriptions: Dict[str, Subscription] = {}
        # topic_id -> subscription ids in creation order
        self._by_topic: Dict[str, Dict[str, None]] = {}
        self._tokens: Dict[str, str] = {}
        self._lock = threading.Lock()
        self._logger = get_logger("notifyhub.subscription")
        registry.add_delete_hook(self._drop_topic)

    def subscribe(self, topic_id: str, kind: Union[str, EndpointKind], address: str) -> Subscription:
        """
        Register an endpoint on a topic. sms starts confirmed; email and push start pending
        and receive a confirmation token. Re-subscribing the same endpoint returns the
        existing subscription unless it was rejected.
        """
        endpoint = Endpoint.parse(kind, address)
        topic = self._registry.get_topic(topic_id)
        token: Optional[str] = None
        with topic.lock:
            if topic.deleted:
                raise NotFoundError(topic_id, "topic not found")
            with self._lock:
                existing = self._find(topic_id, endpoint)
                if existing is not None and existing.state is not SubscriptionState.REJECTED:
                    return existing
                if existing is not None:
                    self._remove(existing.subscription_id)
                state = (
                    SubscriptionState.PENDING
                    if endpoint.kind.requires_confirmation
                    else SubscriptionState.CONFIRMED
                )
                subscription = Subscription(
                    subscription_id=f"{topic_id}:{uuid.uuid4()}",
                    topic_id=topic_id,
                    endpoint=endpoint,
                    state=state,
                    created_at=self._clock(),
                )
                self._subscriptions[subscription.subscription_id] = subscription
                self._by_topic.setdefault(topic_id, {})[subscription.subscription_id] = None
                if state is SubscriptionState.PENDING:
                    token = uuid.uuid4().hex
                    self._tokens[subscription.subscription_id] = token
        self._logger.info(
            "subscribed",
            extra={
                "topic_id": topic_id,
                "subscription_id": subscription.subscription_id,
                "kind": endpoint.kind.value,
                "state": state.value,
            },
        )
        if token is not None and self._confirmation_channel is not None:
            try:
                self._confirmation_channel.send_confirmation(subscription, token)
            except Exception:
                # A pending record whose token never went out could not be confirmed.
                with topic.lock:
                    with self._lock:
                        self._remove(subscription.subscription_id)
                self._logger.exception(
                    "confirmation_failed",
                    extra={"topic_id": topic_id, "subscription_id": subscription.subscription_id},
                )
                raise
        return subscription

    def confirm_subscription(self, subscription_id: str, token: str) -> Subscription:
        """Move a pending subscription to confirmed when token matches; raise ConfirmationError otherwise."""
        return self._resolve(subscription_id, token, SubscriptionState.CONFIRMED)

    def reject_subscription(self, subscription_id: str, token: str) -> Subscription:
        """Move a pending subscription to rejected (the decline link of a confirmation message)."""
        return self._resolve(subscription_id, token, SubscriptionState.REJECTED)

    def _resolve(self, subscription_id: str, token: str, target: SubscriptionState) -> Subscription:
        with self._lock:
            current = self._subscriptions.get(subscription_id)
            if current is None:
                raise NotFoundError(subscription_id, "subscription not found")
            if current.state is target and current.endpoint.kind.requires_confirmation:
                if self._tokens.get(subscription_id) == token:
                    return current
            if current.state is not SubscriptionState.PENDING:
                raise ConfirmationError(subscription_id, f"subscription is {current.state.value}, not pending")
            if not token or self._tokens.get(subscription_id) != token:
                raise ConfirmationError(subscription_id, "confirmation token does not match")
            updated = dataclasses.replace(current, state=target)
            self._subscriptions[subscription_id] = updated
        self._logger.info(
            "subscription_resolved",
            extra={"subscription_id": subscription_id, "state": target.value},
        )
        return updated

    def get_subscription(self, subscription_id: str) -> Subscription:
        with self._lock:
            subscription = self._subscriptions.get(subscription_id)
        if subscription is None:
            raise NotFoundError(subscription_id, "subscription not found")
        return subscription

    def list_by_topic(self, topic_id: str) -> SubscriptionView:
        """Lazy view of a topic's subscriptions in creation order; empty (not an error) when none."""
        self._registry.get_topic(topic_id)
        return SubscriptionView(self, topic_id)

    def confirmed_for_topic(self, topic_id: str) -> List[Subscription]:
        """Snapshot of the confirmed subscriptions, used for fan-out."""
        return [s for s in self._snapshot(topic_id) if s.state is SubscriptionState.CONFIRMED]

    def unsubscribe(self, subscription_id: str) -> None:
        """Remove a subscription. No-op if it is already gone."""
        with self._lock:
            subscription = self._subscriptions.get(subscription_id)
        if subscription is None:
            return
        try:
            topic: Optional[Topic] = self._registry.get_topic(subscription.topic_id)
        except NotFoundError:
            topic = None
        if topic is None:
            with self._lock:
                self._remove(subscription_id)
            return
        with topic.lock:
            with self._lock:
                removed = self._remove(subscription_id)
        if removed:
            self._logger.info(
                "unsubscribed",
                extra={"topic_id": subscription.topic_id, "subscription_id": subscription_id},
            )

    def subscription_count(self) -> int:
        with self._lock:
            return len(self._subscriptions)

    def _snapshot(self, topic_id: str) -> List[Subscription]:
        self._registry.get_topic(topic_id)
        with self._lock:
            ids = list(self._by_topic.get(topic_id, ()))
            return [self._subscriptions[sid] for sid in ids]

    def _find(self, topic_id: str, endpoint: Endpoint) -> Optional[Subscription]:
        for sid in self._by_topic.get(topic_id, ()):
            subscription = self._subscriptions[sid]
            if subscription.endpoint == endpoint:
                return subscription
        return None

    def _remove(self, subscription_id: str) -> bool:
        """Caller holds self._lock."""
        subscription = self._subscriptions.pop(subscription_id, None)
        if subscription is None:
            return False
        self._tokens.pop(subscription_id, None)
        members = self._by_topic.get(subscription.topic_id)
        if members is not None:
            members.pop(subscription_id, None)
            if not members:
                del self._by_topic[subscription.topic_id]
        return True

    def _drop_topic(self, topic: Topic) -> None:
        """Delete hook: cascade a topic delete to its subscriptions (topic lock is held)."""
        with self._lock:
            ids = list(self._by_topic.get(topic.topic_id, ()))
            for sid in ids:
                self._remove(sid)
        if ids:
            self._logger.info(
                "subscriptions_cascaded",
                extra={"topic_id": topic.topic_id, "removed": len(ids)},
            )
