"""Protocol message shapes for the HTTP surface (health, topics, subscriptions, receipts, errors)."""

from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from typing import Any, Dict, List

from notifyhub.errors import (
    ConfirmationError,
    InvalidEndpointError,
    InvalidMessageError,
    InvalidNameError,
    NotFoundError,
    NotifyError,
    OptOutCheckError,
    PublishTimeoutError,
    TransportError,
    TransportUnavailableError,
)


# ---- Health ----

@dataclass
class HealthResponse:
    """Response for GET /health."""
    uptime_sec: float
    topics: int
    subscriptions: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "uptime_sec": int(self.uptime_sec),
            "topics": self.topics,
            "subscriptions": self.subscriptions,
        }


# ---- Topics ----

@dataclass
class TopicDeletedResponse:
    """Response for DELETE /topics/{topic_id} (200 OK)."""
    status: str = "deleted"
    topic_id: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class UnsubscribedResponse:
    """Response for DELETE /subscriptions/{subscription_id} (200 OK, also when already gone)."""
    status: str = "unsubscribed"
    subscription_id: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def topics_list_response(topics: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Response for GET /topics."""
    return {"topics": topics}


def subscriptions_list_response(topic_id: str, subscriptions: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Response for GET /topics/{topic_id}/subscriptions."""
    return {"topic_id": topic_id, "subscriptions": subscriptions}


def stats_response(metrics: Dict[str, Dict[str, int]]) -> Dict[str, Any]:
    """Response for GET /stats."""
    return {"metrics": metrics}


# ---- Errors ----

# Error codes; each taxonomy kind maps to exactly one HTTP status.
ERROR_BAD_REQUEST = "BAD_REQUEST"
ERROR_UNAUTHORIZED = "UNAUTHORIZED"

_STATUS_BY_ERROR: List[tuple] = [
    (InvalidNameError, 400),
    (InvalidEndpointError, 400),
    (InvalidMessageError, 400),
    (NotFoundError, 404),
    (ConfirmationError, 409),
    (OptOutCheckError, 502),
    (TransportUnavailableError, 503),
    (PublishTimeoutError, 504),
    (TransportError, 502),
]


def status_for(error: NotifyError) -> int:
    """HTTP status for a taxonomy error (most specific class wins)."""
    for error_type, status in _STATUS_BY_ERROR:
        if isinstance(error, error_type):
            return status
    return 500


def error_body(error: NotifyError) -> Dict[str, Any]:
    return {"error": error.to_dict(), "ts": iso_ts()}


def iso_ts() -> str:
    """Current UTC timestamp in ISO 8601 (e.g. 2025-08-25T10:00:00Z)."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def error_code_table() -> Dict[str, int]:
    """{ code: http_status } for every taxonomy error kind."""
    table: Dict[str, int] = {}
    for error_type, status in _STATUS_BY_ERROR:
        table.setdefault(error_type.kind, status)
    return table

