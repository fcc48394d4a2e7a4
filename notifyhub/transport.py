"""Abstract collaborators the core consumes: Transport, OptOutOracle, ConfirmationChannel."""

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Optional

from notifyhub.observability import get_logger

if TYPE_CHECKING:
    from notifyhub.message import EndpointKind, Message
    from notifyhub.subscription import Subscription


class Transport(ABC):
    """Sends one message to one endpoint through an external provider."""

    def __init__(self, name: str) -> None:
        self._name = name
        self._logger = get_logger(f"notifyhub.transport.{name}")

    @property
    def name(self) -> str:
        return self._name

    @abstractmethod
    def send(self, kind: "EndpointKind", address: str, message: "Message") -> Optional[str]:
        """
        Deliver message to address. Must be implemented by subclasses.
        Returns the provider-assigned message id, or None if the provider assigns none.
        Raises TransientTransportError (timeout, throttling) or PermanentTransportError
        (invalid address, rejected).
        """
        pass

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self._name!r})"


class OptOutOracle(ABC):
    """Answers whether a phone number has opted out of sms."""

    @abstractmethod
    def is_opted_out(self, phone_number: str) -> bool:
        pass


class ConfirmationChannel(ABC):
    """Delivers a confirmation token to the owner of a newly pending subscription."""

    @abstractmethod
    def send_confirmation(self, subscription: "Subscription", token: str) -> None:
        pass
