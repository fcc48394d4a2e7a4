"""Error taxonomy for the notification core. Every error names the failing identifier."""

from typing import Optional


class NotifyError(Exception):
    """Base class; `kind` is the stable error code exposed to callers."""

    kind = "NOTIFY_ERROR"

    def __init__(self, identifier: str, message: str) -> None:
        self.identifier = identifier
        self.message = message
        super().__init__(f"{self.kind}: {message} ({identifier!r})")

    def to_dict(self) -> dict:
        return {"code": self.kind, "identifier": self.identifier, "message": self.message}


class InvalidNameError(NotifyError):
    kind = "INVALID_NAME"


class InvalidEndpointError(NotifyError):
    kind = "INVALID_ENDPOINT"


class InvalidMessageError(NotifyError):
    kind = "INVALID_MESSAGE"


class NotFoundError(NotifyError):
    kind = "NOT_FOUND"


class ConfirmationError(NotifyError):
    kind = "CONFIRMATION"


class OptedOutError(NotifyError):
    """Informational: the phone number opted out, so the send was skipped."""

    kind = "OPTED_OUT"

    def __init__(self, identifier: str) -> None:
        super().__init__(identifier, "phone number has opted out of sms delivery")


class OptOutCheckError(NotifyError):
    """The opt-out status of a phone number could not be determined, so nothing was sent."""

    kind = "OPT_OUT_CHECK"


class TransportError(NotifyError):
    """Raised by a Transport when a send fails."""

    kind = "TRANSPORT"


class TransientTransportError(TransportError):
    """Timeout or throttling; the send may succeed if retried."""

    kind = "TRANSPORT_TRANSIENT"


class PermanentTransportError(TransportError):
    """Invalid address or rejected by the provider; never retried."""

    kind = "TRANSPORT_PERMANENT"


class RetriesExhaustedError(TransportError):
    """A transient failure persisted through every allowed attempt."""

    kind = "TRANSPORT_TRANSIENT"

    def __init__(self, identifier: str, attempts: int, cause: Optional[BaseException] = None) -> None:
        self.attempts = attempts
        self.cause = cause
        detail = f"gave up after {attempts} attempts"
        if cause is not None:
            detail = f"{detail}: {cause}"
        super().__init__(identifier, detail)


class TransportUnavailableError(TransportError):
    """No target of a publish could be dispatched at all."""

    kind = "TRANSPORT_UNAVAILABLE"


class PublishTimeoutError(NotifyError, TimeoutError):
    kind = "TIMEOUT"

    def __init__(self, identifier: str, timeout: float) -> None:
        self.timeout = timeout
        super().__init__(identifier, f"not started within {timeout:g}s publish timeout")
