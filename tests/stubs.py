"""Test doubles for the collaborator interfaces."""

import threading
from typing import Dict, List, Optional

from notifyhub.delivery_log import InMemoryDeliveryLog
from notifyhub.message import EndpointKind, Message
from notifyhub.subscription import Subscription
from notifyhub.transport import ConfirmationChannel, OptOutOracle, Transport


class RecordingTransport(Transport):
    """
    Records every send. `script` maps an address to outcomes consumed in order:
    an exception instance is raised, anything else is returned as the provider id.
    Addresses without a script (or with an exhausted one) succeed.
    """

    def __init__(self, script: Optional[Dict[str, list]] = None) -> None:
        super().__init__("recording")
        self._script = {k: list(v) for k, v in (script or {}).items()}
        self._lock = threading.Lock()
        self.sent: List[tuple] = []

    def send(self, kind: EndpointKind, address: str, message: Message) -> Optional[str]:
        with self._lock:
            self.sent.append((kind, address, message.payload))
            outcomes = self._script.get(address)
            outcome = outcomes.pop(0) if outcomes else f"provider-{len(self.sent)}"
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    def sends_to(self, address: str) -> int:
        with self._lock:
            return sum(1 for _, a, _ in self.sent if a == address)


class BlockingTransport(Transport):
    """Blocks every send until `release` is set."""

    def __init__(self) -> None:
        super().__init__("blocking")
        self.release = threading.Event()
        self.started = threading.Event()

    def send(self, kind: EndpointKind, address: str, message: Message) -> Optional[str]:
        self.started.set()
        self.release.wait(5)
        return f"late-{address}"


class AlwaysTransient(Transport):
    def __init__(self, error_type) -> None:
        super().__init__("always")
        self._error_type = error_type
        self.calls = 0

    def send(self, kind: EndpointKind, address: str, message: Message) -> Optional[str]:
        self.calls += 1
        raise self._error_type(address, "throttled")


class CollectingConfirmationChannel(ConfirmationChannel):
    def __init__(self) -> None:
        self.tokens: Dict[str, str] = {}

    def send_confirmation(self, subscription: Subscription, token: str) -> None:
        self.tokens[subscription.subscription_id] = token


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: List[float] = []

    def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


class FailingOptOutOracle(OptOutOracle):
    """Answers False, except that the lookup numbered `fail_on` (from 1) raises."""

    def __init__(self, fail_on: int = 1) -> None:
        self._fail_on = fail_on
        self.calls = 0

    def is_opted_out(self, phone_number: str) -> bool:
        self.calls += 1
        if self.calls == self._fail_on:
            raise ConnectionError(f"opt-out service unreachable for {phone_number}")
        return False


class FailOnceDeliveryLog(InMemoryDeliveryLog):
    """In-memory log whose first record call raises."""

    def __init__(self) -> None:
        super().__init__()
        self.failed = False

    def record(self, attempt) -> None:
        if not self.failed:
            self.failed = True
            raise OSError("delivery log unavailable")
        super().record(attempt)


class FailOnceConfirmationChannel(CollectingConfirmationChannel):
    def __init__(self) -> None:
        super().__init__()
        self.failed = False

    def send_confirmation(self, subscription: Subscription, token: str) -> None:
        if not self.failed:
            self.failed = True
            raise ConnectionError("mail relay refused connection")
        super().send_confirmation(subscription, token)
