"""Translation of kopf watch events into queued notifications."""

import logging
from collections.abc import Mapping
from typing import Any

from models import Kind, Notification
from state import get_dispatcher

logger = logging.getLogger(__name__)


def notification_from_event(kind: Kind, event: Mapping[str, Any]) -> Notification | None:
    """Build a notification from a raw watch event, None if it names no object."""
    meta = (event.get("object") or {}).get("metadata") or {}
    name = meta.get("name")
    if not name:
        return None
    return Notification(
        kind=kind,
        namespace=meta.get("namespace"),
        name=name,
        deleted=event.get("type") == "DELETED",
    )


def notify(kind: Kind, event: Mapping[str, Any]) -> None:
    """Queue reconciliation of the object an event is about."""
    notification = notification_from_event(kind, event)
    if notification is None:
        return
    if not get_dispatcher().enqueue(notification):
        logger.warning(f"Could not queue {notification}, operator is shutting down")
