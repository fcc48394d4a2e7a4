"""Delivery engine: resolves targets, enforces sms opt-out, and fans out sends with retry/backoff."""

import random
import threading
import time
from collections import OrderedDict
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

from notifyhub.config import Settings
from notifyhub.delivery_log import DeliveryLog, InMemoryDeliveryLog
from notifyhub.errors import (
    NotifyError,
    OptOutCheckError,
    OptedOutError,
    PermanentTransportError,
    PublishTimeoutError,
    RetriesExhaustedError,
    TransientTransportError,
    TransportUnavailableError,
)
from notifyhub.message import Endpoint, EndpointKind, Message
from notifyhub.observability import Metrics, get_logger
from notifyhub.subscription import SubscriptionTable
from notifyhub.transport import OptOutOracle, Transport


class DeliveryState(str, Enum):
    QUEUED = "queued"
    IN_FLIGHT = "in_flight"
    DELIVERED = "delivered"
    FAILED = "failed"
    OPTED_OUT = "opted_out"

    @property
    def terminal(self) -> bool:
        return self in (DeliveryState.DELIVERED, DeliveryState.FAILED, DeliveryState.OPTED_OUT)


class DeliveryAttempt:
    """Delivery of one message to one endpoint. Updated by a worker; read from any thread."""

    def __init__(self, message_id: str, endpoint: Endpoint, subscription_id: Optional[str] = None) -> None:
        self._message_id = message_id
        self._endpoint = endpoint
        self._subscription_id = subscription_id
        self._state = DeliveryState.QUEUED
        self._attempts = 0
        self._last_error: Optional[NotifyError] = None
        self._provider_message_id: Optional[str] = None
        self._lock = threading.Lock()
        self._done = threading.Event()

    @property
    def message_id(self) -> str:
        return self._message_id

    @property
    def endpoint(self) -> Endpoint:
        return self._endpoint

    @property
    def subscription_id(self) -> Optional[str]:
        return self._subscription_id

    @property
    def state(self) -> DeliveryState:
        with self._lock:
            return self._state

    @property
    def attempts(self) -> int:
        with self._lock:
            return self._attempts

    @property
    def last_error(self) -> Optional[NotifyError]:
        with self._lock:
            return self._last_error

    @property
    def provider_message_id(self) -> Optional[str]:
        with self._lock:
            return self._provider_message_id

    def start(self, attempt_number: int) -> None:
        with self._lock:
            self._state = DeliveryState.IN_FLIGHT
            self._attempts = attempt_number

    def note_error(self, error: NotifyError) -> None:
        with self._lock:
            self._last_error = error

    def finish(
        self,
        state: DeliveryState,
        error: Optional[NotifyError] = None,
        provider_message_id: Optional[str] = None,
    ) -> bool:
        """Move to a terminal state. Returns False if the attempt was already terminal."""
        with self._lock:
            if self._state.terminal:
                return False
            self._state = state
            if error is not None:
                self._last_error = error
            self._provider_message_id = provider_message_id
        self._done.set()
        return True

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the attempt is terminal; returns False on timeout."""
        return self._done.wait(timeout)

    def to_dict(self) -> dict:
        with self._lock:
            return {
                "message_id": self._message_id,
                "subscription_id": self._subscription_id,
                "kind": self._endpoint.kind.value,
                "address": self._endpoint.address,
                "state": self._state.value,
                "attempts": self._attempts,
                "provider_message_id": self._provider_message_id,
                "error": self._last_error.to_dict() if self._last_error else None,
            }

    def __repr__(self) -> str:
        return (
            f"DeliveryAttempt(message_id={self._message_id!r}, "
            f"address={self._endpoint.address!r}, state={self.state.value})"
        )


@dataclass
class PublishReceipt:
    """Per-target outcome of one publish call. Counts are read live from the attempts."""

    message_id: str
    attempts: List[DeliveryAttempt] = field(default_factory=list)
    timed_out: bool = False
    duplicate: bool = False

    def _count(self, state: DeliveryState) -> int:
        return sum(1 for a in self.attempts if a.state is state)

    @property
    def total(self) -> int:
        return len(self.attempts)

    @property
    def delivered(self) -> int:
        return self._count(DeliveryState.DELIVERED)

    @property
    def failed(self) -> int:
        return self._count(DeliveryState.FAILED)

    @property
    def opted_out(self) -> int:
        return self._count(DeliveryState.OPTED_OUT)

    @property
    def pending(self) -> int:
        return sum(1 for a in self.attempts if not a.state.terminal)

    def to_dict(self) -> dict:
        return {
            "message_id": self.message_id,
            "total": self.total,
            "delivered": self.delivered,
            "failed": self.failed,
            "opted_out": self.opted_out,
            "pending": self.pending,
            "timed_out": self.timed_out,
            "duplicate": self.duplicate,
            "attempts": [a.to_dict() for a in self.attempts],
        }


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff with full jitter. `retry` counts from 1 for the first retry."""

    base_delay: float = 0.2
    factor: float = 2.0
    max_attempts: int = 5
    max_delay: float = 20.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetryPolicy":
        return cls(
            base_delay=settings.retry_base_ms / 1000.0,
            factor=settings.retry_factor,
            max_attempts=settings.retry_max_attempts,
            max_delay=settings.retry_max_delay_ms / 1000.0,
        )

    def ceiling(self, retry: int) -> float:
        """Upper bound of the delay before the given retry; grows by factor, capped at max_delay."""
        return min(self.max_delay, self.base_delay * (self.factor ** (retry - 1)))

    def delay(self, retry: int, rng: random.Random) -> float:
        return rng.uniform(0.0, self.ceiling(retry))


Target = Tuple[Optional[str], Endpoint]


class DeliveryEngine:
    """Fans a message out to its targets on a bounded worker pool and tracks every attempt."""

    def __init__(
        self,
        subscriptions: SubscriptionTable,
        transport: Transport,
        opt_out_oracle: Optional[OptOutOracle] = None,
        retry_policy: Optional[RetryPolicy] = None,
        pool_size: int = 8,
        dedup_window: int = 100,
        delivery_log: Optional[DeliveryLog] = None,
        metrics: Optional[Metrics] = None,
        sleep: Callable[[float], None] = time.sleep,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._subscriptions = subscriptions
        self._transport = transport
        self._opt_out_oracle = opt_out_oracle
        self._retry_policy = retry_policy or RetryPolicy()
        self._executor = ThreadPoolExecutor(
            max_workers=max(1, pool_size), thread_name_prefix="notifyhub-delivery"
        )
        self._closed = False
        self._dedup_window = max(1, dedup_window)
        self._recent: "OrderedDict[Tuple[str, str], PublishReceipt]" = OrderedDict()
        self._dedup_lock = threading.Lock()
        self._delivery_log = delivery_log if delivery_log is not None else InMemoryDeliveryLog()
        self._metrics = metrics if metrics is not None else Metrics()
        self._sleep = sleep
        self._rng = rng or random.Random()
        self._logger = get_logger("notifyhub.delivery")

    @property
    def metrics(self) -> Metrics:
        return self._metrics

    @property
    def delivery_log(self) -> DeliveryLog:
        return self._delivery_log

    @property
    def retry_policy(self) -> RetryPolicy:
        return self._retry_policy

    def publish(self, message: Message, timeout: Optional[float] = None) -> PublishReceipt:
        """
        Deliver message to every resolved target and wait until all attempts are terminal
        or timeout elapses. Attempts not yet started at the deadline fail with
        PublishTimeoutError; attempts already in flight finish on their own.
        """
        self._metrics.increment("publish.calls")
        if self._closed:
            raise TransportUnavailableError(message.message_id, "delivery engine is closed")
        targets = self._resolve_targets(message)

        receipt, duplicate = self._reserve(message)
        if duplicate:
            self._metrics.increment("publish.duplicates")
            self._logger.info(
                "duplicate_publish",
                extra={"message_id": message.message_id, "dedup_id": message.dedup_id},
            )
            return receipt

        futures: Dict[Future, DeliveryAttempt] = {}
        sendable = 0
        try:
            for subscription_id, endpoint in targets:
                attempt = DeliveryAttempt(message.message_id, endpoint, subscription_id)
                receipt.attempts.append(attempt)
                try:
                    opted_out = self._is_opted_out(endpoint)
                except Exception as e:
                    self._logger.exception(
                        "opt_out_check_failed",
                        extra={"message_id": message.message_id, "address": endpoint.address},
                    )
                    error = OptOutCheckError(endpoint.address, f"opt-out lookup failed: {e!s}")
                    error.__cause__ = e
                    self._finish(attempt, DeliveryState.FAILED, error=error)
                    continue
                if opted_out:
                    self._finish(attempt, DeliveryState.OPTED_OUT, error=OptedOutError(endpoint.address))
                    continue
                sendable += 1
                self._delivery_log.record(attempt)
                try:
                    future = self._executor.submit(self._deliver, attempt, message)
                except RuntimeError:
                    self._finish(
                        attempt,
                        DeliveryState.FAILED,
                        error=TransportUnavailableError(endpoint.address, "delivery pool is shut down"),
                    )
                    continue
                futures[future] = attempt
        except BaseException:
            self._abort(message, receipt, set(futures.values()))
            raise

        if sendable and not futures:
            self._forget(message)
            raise TransportUnavailableError(message.message_id, "no target could be dispatched")

        self._logger.info(
            "publishing",
            extra={
                "message_id": message.message_id,
                "target": message.target_key,
                "targets": receipt.total,
                "dispatched": len(futures),
            },
        )
        if futures:
            _, not_done = wait(futures, timeout=timeout)
            for future in not_done:
                attempt = futures[future]
                if future.cancel():
                    self._finish(
                        attempt,
                        DeliveryState.FAILED,
                        error=PublishTimeoutError(attempt.endpoint.address, timeout or 0.0),
                    )
            receipt.timed_out = bool(not_done)
        return receipt

    def close(self, wait_for_pending: bool = True) -> None:
        """Stop accepting publishes and shut the worker pool down."""
        self._closed = True
        self._executor.shutdown(wait=wait_for_pending)

    def __enter__(self) -> "DeliveryEngine":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _resolve_targets(self, message: Message) -> List[Target]:
        if message.endpoint is not None:
            return [(None, message.endpoint)]
        return [
            (s.subscription_id, s.endpoint)
            for s in self._subscriptions.confirmed_for_topic(message.topic_id)
        ]

    def _is_opted_out(self, endpoint: Endpoint) -> bool:
        if endpoint.kind is not EndpointKind.SMS or self._opt_out_oracle is None:
            return False
        return self._opt_out_oracle.is_opted_out(endpoint.address)

    def _reserve(self, message: Message) -> Tuple[PublishReceipt, bool]:
        """Return (receipt, is_duplicate); a fresh receipt is remembered for dedup_id messages."""
        receipt = PublishReceipt(message_id=message.message_id)
        if message.dedup_id is None:
            return receipt, False
        key = (message.target_key, message.dedup_id)
        with self._dedup_lock:
            original = self._recent.get(key)
            if original is not None:
                return PublishReceipt(
                    message_id=original.message_id,
                    attempts=original.attempts,
                    timed_out=original.timed_out,
                    duplicate=True,
                ), True
            self._recent[key] = receipt
            while len(self._recent) > self._dedup_window:
                self._recent.popitem(last=False)
        return receipt, False

    def _forget(self, message: Message) -> None:
        if message.dedup_id is None:
            return
        with self._dedup_lock:
            self._recent.pop((message.target_key, message.dedup_id), None)

    def _abort(self, message: Message, receipt: PublishReceipt, dispatched: set) -> None:
        """Fail every attempt that never reached a worker and release the dedup slot."""
        self._forget(message)
        aborted = 0
        for attempt in receipt.attempts:
            if attempt in dispatched:
                continue
            error = TransportUnavailableError(attempt.endpoint.address, "publish aborted before dispatch")
            # Not written to the delivery log, which may be what failed.
            if attempt.finish(DeliveryState.FAILED, error=error):
                self._metrics.increment("attempts.failed")
                aborted += 1
        self._logger.error(
            "publish_aborted",
            extra={"message_id": message.message_id, "aborted": aborted, "dispatched": len(dispatched)},
        )

    def _deliver(self, attempt: DeliveryAttempt, message: Message) -> None:
        """Worker body: send with retries until the attempt is terminal."""
        endpoint = attempt.endpoint
        policy = self._retry_policy
        last_error: Optional[TransientTransportError] = None
        for number in range(1, policy.max_attempts + 1):
            attempt.start(number)
            self._delivery_log.record(attempt)
            try:
                provider_id = self._transport.send(endpoint.kind, endpoint.address, message)
            except TransientTransportError as e:
                last_error = e
                attempt.note_error(e)
                if number >= policy.max_attempts:
                    break
                delay = policy.delay(number, self._rng)
                self._metrics.increment("attempts.retried")
                self._logger.warning(
                    "delivery_retry",
                    extra={
                        "message_id": message.message_id,
                        "address": endpoint.address,
                        "attempt": number,
                        "delay_sec": round(delay, 3),
                        "error": str(e),
                    },
                )
                self._sleep(delay)
                continue
            except PermanentTransportError as e:
                self._finish(attempt, DeliveryState.FAILED, error=e)
                return
            except Exception as e:
                self._logger.exception(
                    "transport_error_unclassified",
                    extra={"message_id": message.message_id, "address": endpoint.address},
                )
                error = PermanentTransportError(endpoint.address, f"unclassified transport error: {e!s}")
                error.__cause__ = e
                self._finish(attempt, DeliveryState.FAILED, error=error)
                return
            self._finish(attempt, DeliveryState.DELIVERED, provider_message_id=provider_id)
            return
        self._finish(
            attempt,
            DeliveryState.FAILED,
            error=RetriesExhaustedError(endpoint.address, attempt.attempts, last_error),
        )

    def _finish(
        self,
        attempt: DeliveryAttempt,
        state: DeliveryState,
        error: Optional[NotifyError] = None,
        provider_message_id: Optional[str] = None,
    ) -> None:
        if not attempt.finish(state, error=error, provider_message_id=provider_message_id):
            return
        self._delivery_log.record(attempt)
        self._metrics.increment(f"attempts.{state.value}")
        if state is DeliveryState.DELIVERED:
            self._logger.info(
                "delivered",
                extra={
                    "message_id": attempt.message_id,
                    "address": attempt.endpoint.address,
                    "provider_message_id": provider_message_id,
                },
            )
        else:
            self._logger.warning(
                "delivery_" + state.value,
                extra={
                    "message_id": attempt.message_id,
                    "address": attempt.endpoint.address,
                    "error": str(error) if error else None,
                },
            )
