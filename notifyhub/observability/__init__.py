"""Observability: logging and delivery metrics for the notification core."""

from notifyhub.observability.logger import get_logger
from notifyhub.observability.metrics import Metrics

__all__ = ["get_logger", "Metrics"]
