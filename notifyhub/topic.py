"""Topic: a named fan-out channel with a stable opaque identifier (in-memory only)."""

import re
import threading
import uuid
from datetime import datetime, timezone
from typing import Optional

from notifyhub.errors import InvalidNameError

MAX_TOPIC_NAME_LENGTH = 256
_NAME_RE = re.compile(r"[A-Za-z0-9_-]+")


def validate_topic_name(name: str) -> str:
    """Return name if it is 1-256 ASCII letters, digits, '-' or '_'; raise InvalidNameError otherwise."""
    if not isinstance(name, str) or not name:
        raise InvalidNameError(str(name or ""), "topic name is required")
    if len(name) > MAX_TOPIC_NAME_LENGTH:
        raise InvalidNameError(name, f"topic name longer than {MAX_TOPIC_NAME_LENGTH} characters")
    if not _NAME_RE.fullmatch(name):
        raise InvalidNameError(name, "topic name may only contain letters, digits, '-' and '_'")
    return name


class Topic:
    """Identity and metadata of a topic. The lock serializes subscribe/delete for this topic only."""

    def __init__(self, name: str, topic_id: Optional[str] = None, created_at: Optional[datetime] = None) -> None:
        self._name = validate_topic_name(name)
        self._topic_id = topic_id or f"topic_{uuid.uuid4().hex[:12]}"
        self._created_at = created_at or datetime.now(timezone.utc)
        self._deleted = False
        self.lock = threading.RLock()

    @property
    def name(self) -> str:
        return self._name

    @property
    def topic_id(self) -> str:
        return self._topic_id

    @property
    def created_at(self) -> datetime:
        return self._created_at

    @property
    def deleted(self) -> bool:
        return self._deleted

    def mark_deleted(self) -> None:
        """Called by the registry while holding this topic's lock."""
        self._deleted = True

    def to_dict(self) -> dict:
        return {
            "topic_id": self._topic_id,
            "name": self._name,
            "created_at": self._created_at.isoformat(),
        }

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Topic):
            return False
        return self._topic_id == other._topic_id

    def __hash__(self) -> int:
        return hash(self._topic_id)

    def __repr__(self) -> str:
        return f"Topic(name={self._name!r}, id={self._topic_id!r})"
