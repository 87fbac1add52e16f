"""Emit notification events without coupling callers to delivery."""

from __future__ import annotations

import logging
from typing import Any

from django.db import transaction

from .models import OutboxEvent

logger = logging.getLogger(__name__)


def _enqueue_delivery(event_id: int) -> None:
    from notifications import tasks as notification_tasks

    try:
        notification_tasks.deliver_outbox_event.delay(event_id)
    except Exception:
        # The redelivery job picks the row up later.
        logger.info(
            "notifications: failed to queue outbox delivery",
            exc_info=True,
            extra={"outbox_event_id": event_id},
        )


def emit_event(
    event_type: str,
    *,
    recipient,
    booking=None,
    payload: dict[str, Any] | None = None,
) -> OutboxEvent | None:
    """
    Record a notification event and schedule its delivery after commit.

    Never raises: a failure here is logged and the caller's state change
    stands.
    """
    try:
        with transaction.atomic():
            event = OutboxEvent.objects.create(
                event_type=event_type,
                recipient=recipient,
                booking=booking,
                payload=payload or {},
            )
    except Exception:
        logger.exception(
            "notifications: failed to record outbox event %s",
            event_type,
            extra={"booking_id": getattr(booking, "id", None)},
        )
        return None

    transaction.on_commit(lambda: _enqueue_delivery(event.id))
    return event
