"""In-memory topic registry: idempotent create by name, delete with cascade hooks."""

import threading
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Tuple

from notifyhub.errors import NotFoundError
from notifyhub.observability import get_logger
from notifyhub.topic import Topic, validate_topic_name

DeleteHook = Callable[[Topic], None]


class TopicRegistry:
    """Owns topic identity. Index dicts sit behind a short guard lock; deletes take the topic's own lock."""

    def __init__(self, clock: Optional[Callable[[], datetime]] = None) -> None:
        self._topics: Dict[str, Topic] = {}
        self._ids_by_name: Dict[str, str] = {}
        self._index_lock = threading.Lock()
        self._delete_hooks: List[DeleteHook] = []
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._logger = get_logger("notifyhub.registry")

    def add_delete_hook(self, hook: DeleteHook) -> None:
        """Register a callback run under the topic lock when a topic is deleted (used for cascades)."""
        self._delete_hooks.append(hook)

    def create_topic(self, name: str) -> Topic:
        """
        Return the topic called name, creating it if needed.
        Repeated calls with the same name return the same Topic unchanged.
        """
        topic, _ = self.get_or_create(name)
        return topic

    def get_or_create(self, name: str) -> Tuple[Topic, bool]:
        """Return (topic, True) if this call created it, (existing topic, False) otherwise."""
        validate_topic_name(name)
        with self._index_lock:
            topic_id = self._ids_by_name.get(name)
            if topic_id is not None:
                return self._topics[topic_id], False
            topic = Topic(name, created_at=self._clock())
            self._topics[topic.topic_id] = topic
            self._ids_by_name[name] = topic.topic_id
        self._logger.info("topic_created", extra={"topic": name, "topic_id": topic.topic_id})
        return topic, True

    def delete_topic(self, topic_id: str) -> Topic:
        """Remove the topic and run delete hooks. Unknown or already deleted ids raise NotFoundError."""
        topic = self.get_topic(topic_id)
        with topic.lock:
            if topic.deleted:
                raise NotFoundError(topic_id, "topic not found")
            with self._index_lock:
                self._topics.pop(topic_id, None)
                if self._ids_by_name.get(topic.name) == topic_id:
                    del self._ids_by_name[topic.name]
            topic.mark_deleted()
            for hook in self._delete_hooks:
                hook(topic)
        self._logger.info("topic_deleted", extra={"topic": topic.name, "topic_id": topic_id})
        return topic

    def get_topic(self, topic_id: str) -> Topic:
        """Return topic by id or raise NotFoundError."""
        with self._index_lock:
            topic = self._topics.get(topic_id)
        if topic is None:
            raise NotFoundError(topic_id, "topic not found")
        return topic

    def find_by_name(self, name: str) -> Optional[Topic]:
        """Return topic by name or None."""
        with self._index_lock:
            topic_id = self._ids_by_name.get(name)
            return self._topics.get(topic_id) if topic_id else None

    def list_topics(self) -> List[Topic]:
        """Topics in creation order."""
        with self._index_lock:
            return list(self._topics.values())

    def topic_count(self) -> int:
        """Number of topics."""
        with self._index_lock:
            return len(self._topics)
