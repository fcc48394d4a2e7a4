"""Message, endpoint and attribute types for notifications."""

import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from numbers import Real
from typing import Dict, Optional, Union

from notifyhub.errors import InvalidEndpointError, InvalidMessageError

AttributeValue = Union[str, int, float]

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
# E.164: leading +, country code cannot start with 0, at most 15 digits.
_E164_RE = re.compile(r"^\+[1-9]\d{1,14}$")
_PUSH_MAX_LEN = 2048


class EndpointKind(str, Enum):
    EMAIL = "email"
    SMS = "sms"
    PUSH = "push"

    @property
    def requires_confirmation(self) -> bool:
        return self is not EndpointKind.SMS


@dataclass(frozen=True)
class Endpoint:
    """A delivery address of a given kind. Construct with Endpoint.parse to validate."""

    kind: EndpointKind
    address: str

    @classmethod
    def parse(cls, kind: Union[str, EndpointKind], address: str) -> "Endpoint":
        """Validate address for kind and return an Endpoint; raises InvalidEndpointError."""
        try:
            kind = EndpointKind(kind)
        except ValueError:
            raise InvalidEndpointError(str(kind), "unknown endpoint kind") from None
        address = (address or "").strip()
        if kind is EndpointKind.EMAIL:
            ok = bool(_EMAIL_RE.match(address))
        elif kind is EndpointKind.SMS:
            ok = bool(_E164_RE.match(address))
        else:
            ok = 0 < len(address) <= _PUSH_MAX_LEN and not any(c.isspace() for c in address)
        if not ok:
            raise InvalidEndpointError(address, f"malformed {kind.value} address")
        return cls(kind, address)

    def to_dict(self) -> dict:
        return {"kind": self.kind.value, "address": self.address}


def validate_attributes(attributes: Optional[Dict[str, AttributeValue]]) -> Dict[str, AttributeValue]:
    """Return a copy of attributes, rejecting names that are empty and values that are not str or number."""
    out: Dict[str, AttributeValue] = {}
    for name, value in (attributes or {}).items():
        if not isinstance(name, str) or not name.strip():
            raise InvalidMessageError(str(name), "attribute name must be a non-empty string")
        if isinstance(value, bool) or not isinstance(value, (str, Real)):
            raise InvalidMessageError(name, "attribute value must be a string or a number")
        out[name] = value
    return out


@dataclass
class Message:
    """A notification addressed either to a topic (fan-out) or to a single endpoint."""

    payload: str
    topic_id: Optional[str] = None
    endpoint: Optional[Endpoint] = None
    attributes: Dict[str, AttributeValue] = field(default_factory=dict)
    subject: Optional[str] = None
    dedup_id: Optional[str] = None
    message_id: Optional[str] = None
    timestamp: Optional[datetime] = None

    def __post_init__(self) -> None:
        if self.timestamp is None:
            self.timestamp = datetime.now(timezone.utc)
        if self.message_id is None:
            self.message_id = f"msg_{uuid.uuid4().hex}"
        if not isinstance(self.payload, str) or not self.payload:
            raise InvalidMessageError(self.message_id, "payload must be a non-empty string")
        if (self.topic_id is None) == (self.endpoint is None):
            raise InvalidMessageError(
                self.message_id, "message needs exactly one target: a topic or an endpoint"
            )
        self.attributes = validate_attributes(self.attributes)

    @property
    def is_fanout(self) -> bool:
        return self.topic_id is not None

    @property
    def target_key(self) -> str:
        """Stable key of the target, used to scope deduplication."""
        if self.topic_id is not None:
            return f"topic:{self.topic_id}"
        return f"{self.endpoint.kind.value}:{self.endpoint.address}"

    def to_dict(self) -> dict:
        """Serialize message for logging or transport."""
        return {
            "message_id": self.message_id,
            "topic_id": self.topic_id,
            "endpoint": self.endpoint.to_dict() if self.endpoint else None,
            "payload": self.payload,
            "subject": self.subject,
            "attributes": dict(self.attributes),
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
        }
