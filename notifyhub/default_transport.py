"""Default collaborator adapters: a logging transport, a static opt-out list, a logging confirmation channel."""

import threading
import uuid
from typing import TYPE_CHECKING, Iterable, Optional

from notifyhub.message import EndpointKind
from notifyhub.observability import get_logger
from notifyhub.transport import ConfirmationChannel, OptOutOracle, Transport

if TYPE_CHECKING:
    from notifyhub.message import Message
    from notifyhub.subscription import Subscription


class LoggingTransport(Transport):
    """Transport that logs each send and returns a generated provider message id."""

    def __init__(self, region: str, account: str, name: str = "logging") -> None:
        super().__init__(name)
        self._region = region
        self._account = account

    @property
    def region(self) -> str:
        return self._region

    def send(self, kind: EndpointKind, address: str, message: "Message") -> Optional[str]:
        """Log the send; the returned id is scoped to the configured region and account."""
        provider_id = f"{self._region}:{self._account}:{uuid.uuid4()}"
        self._logger.info(
            "sent",
            extra={
                "kind": kind.value,
                "address": address,
                "message_id": message.message_id,
                "provider_message_id": provider_id,
            },
        )
        return provider_id


class StaticOptOutOracle(OptOutOracle):
    """Opt-out list held in memory; numbers can be added or removed at runtime."""

    def __init__(self, opted_out: Iterable[str] = ()) -> None:
        self._numbers = set(opted_out)
        self._lock = threading.Lock()

    def opt_out(self, phone_number: str) -> None:
        with self._lock:
            self._numbers.add(phone_number)

    def opt_in(self, phone_number: str) -> None:
        with self._lock:
            self._numbers.discard(phone_number)

    def is_opted_out(self, phone_number: str) -> bool:
        with self._lock:
            return phone_number in self._numbers


class LoggingConfirmationChannel(ConfirmationChannel):
    """Logs the confirmation token instead of mailing it; useful for local runs."""

    def __init__(self) -> None:
        self._logger = get_logger("notifyhub.confirmation")

    def send_confirmation(self, subscription: "Subscription", token: str) -> None:
        self._logger.info(
            "confirmation_requested",
            extra={
                "subscription_id": subscription.subscription_id,
                "address": subscription.address,
                "token": token,
            },
        )
