"""Delivery log: the extension point for persisting attempt state changes."""

import threading
from abc import ABC, abstractmethod
from collections import deque
from typing import TYPE_CHECKING, Any, Dict, List

if TYPE_CHECKING:
    from notifyhub.delivery import DeliveryAttempt

DEFAULT_LOG_CAPACITY = 10000


class DeliveryLog(ABC):
    """Receives every state change of every delivery attempt. A durable backend implements this."""

    @abstractmethod
    def record(self, attempt: "DeliveryAttempt") -> None:
        pass


class InMemoryDeliveryLog(DeliveryLog):
    """Bounded in-memory log of attempt snapshots (oldest entries are dropped first)."""

    def __init__(self, capacity: int = DEFAULT_LOG_CAPACITY) -> None:
        self._entries: deque = deque(maxlen=max(1, capacity))
        self._lock = threading.Lock()

    def record(self, attempt: "DeliveryAttempt") -> None:
        entry = attempt.to_dict()
        with self._lock:
            self._entries.append(entry)

    def entries(self) -> List[Dict[str, Any]]:
        with self._lock:
            return list(self._entries)

    def for_message(self, message_id: str) -> List[Dict[str, Any]]:
        """State history of every attempt of one message, oldest first."""
        with self._lock:
            return [e for e in self._entries if e["message_id"] == message_id]

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
