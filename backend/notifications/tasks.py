from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from celery import shared_task
from django.conf import settings
from django.core.mail import EmailMultiAlternatives
from django.db import transaction
from django.template.loader import render_to_string
from django.utils import timezone

from core.pricing import format_cents
from notifications.models import Notification, NotificationLog, OutboxEvent

logger = logging.getLogger(__name__)
REDELIVERY_MIN_AGE = timedelta(minutes=2)


@dataclass(frozen=True)
class _Message:
    title: str
    body: str
    subject: str
    template: str


MESSAGES: dict[str, _Message] = {
    OutboxEvent.Type.BOOKING_REQUESTED: _Message(
        title="New booking request",
        body="{shopper_name} requested {listing_title} for {customer_total_display}.",
        subject="New booking request for {listing_title}",
        template="email/booking_requested.txt",
    ),
    OutboxEvent.Type.BOOKING_CONFIRMED: _Message(
        title="Booking confirmed",
        body="Your booking for {listing_title} is confirmed. {customer_total_display} was charged.",
        subject="Your booking for {listing_title} is confirmed",
        template="email/booking_confirmed.txt",
    ),
    OutboxEvent.Type.HOLD_RELEASED: _Message(
        title="Booking request not accepted",
        body="Your payment hold for {listing_title} was released. Reason: {reason}",
        subject="Your booking request for {listing_title} was not accepted",
        template="email/hold_released.txt",
    ),
    OutboxEvent.Type.PAYOUT_HOLD_SET: _Message(
        title="Payout on hold",
        body="Your payout for booking #{booking_id} is on hold until {hold_until}. Reason: {reason}",
        subject="Your payout for booking #{booking_id} is on hold",
        template="email/payout_hold_set.txt",
    ),
    OutboxEvent.Type.PAYOUT_HOLD_CLEARED: _Message(
        title="Payout hold removed",
        body="The hold on your payout for booking #{booking_id} was removed.",
        subject="Your payout for booking #{booking_id} is no longer on hold",
        template="email/payout_hold_cleared.txt",
    ),
    OutboxEvent.Type.DEPOSIT_SETTLED: _Message(
        title="Security deposit settled",
        body="{notes}",
        subject="Your security deposit for {listing_title} was settled",
        template="email/deposit_settled.txt",
    ),
    OutboxEvent.Type.PAYOUT_SENT: _Message(
        title="Payout sent",
        body="Your payout of {amount_display} for booking #{booking_id} is on its way.",
        subject="Your payout of {amount_display} is on its way",
        template="email/payout_sent.txt",
    ),
    OutboxEvent.Type.REWARD_PAID: _Message(
        title="Reward paid",
        body="Your {pool_label} of {amount_display} has been sent to your payout account.",
        subject="Your {pool_label} of {amount_display} is on its way",
        template="email/reward_paid.txt",
    ),
}


class _SafeDict(dict):
    def __missing__(self, key):
        return ""


def _build_context(event: OutboxEvent) -> dict:
    context: dict = {
        "site_name": getattr(settings, "SITE_NAME", "Vendibook"),
        "site_url": (getattr(settings, "FRONTEND_ORIGIN", "") or "").rstrip("/"),
        "recipient_name": event.recipient.get_full_name() or event.recipient.username,
        "booking_id": event.booking_id or "",
    }
    for key, value in (event.payload or {}).items():
        context[key] = value
        if key.endswith("_cents") and isinstance(value, int):
            context[f"{key[: -len('_cents')]}_display"] = format_cents(value)
    return context


def _log_notification(
    channel: str,
    type_: str,
    status: str,
    *,
    user_id: int | None = None,
    booking_id: int | None = None,
    error: str | None = None,
) -> None:
    try:
        NotificationLog.objects.create(
            channel=channel,
            type=type_,
            status=status,
            user_id=user_id,
            booking_id=booking_id,
            error=error or "",
        )
    except Exception:
        logger.exception(
            "notifications: failed to persist notification log",
            extra={"channel": channel, "type": type_, "status": status},
        )


def _send_email_logged(
    type_: str,
    *,
    to_email: str | None,
    subject: str,
    template: str,
    context: dict,
    user_id: int | None = None,
    booking_id: int | None = None,
) -> Optional[str]:
    """Send one templated email; returns an error string instead of raising."""
    if not to_email:
        error = "missing recipient email"
        _log_notification(
            NotificationLog.Channel.EMAIL,
            type_,
            NotificationLog.Status.FAILED,
            user_id=user_id,
            booking_id=booking_id,
            error=error,
        )
        logger.warning("notifications: cannot send email without recipient")
        return error

    try:
        body = render_to_string(template, {**context, "subject": subject}).strip()
        message = EmailMultiAlternatives(
            subject=subject,
            body=body,
            from_email=settings.DEFAULT_FROM_EMAIL,
            to=[to_email],
        )
        message.send(fail_silently=False)
    except Exception as exc:
        error_text = str(exc) or exc.__class__.__name__
        logger.exception(
            "notifications: email send failed",
            extra={"type": type_, "booking_id": booking_id, "user_id": user_id},
        )
        _log_notification(
            NotificationLog.Channel.EMAIL,
            type_,
            NotificationLog.Status.FAILED,
            user_id=user_id,
            booking_id=booking_id,
            error=error_text,
        )
        return error_text

    _log_notification(
        NotificationLog.Channel.EMAIL,
        type_,
        NotificationLog.Status.SENT,
        user_id=user_id,
        booking_id=booking_id,
    )
    return None


def _create_in_app(event: OutboxEvent, message: _Message, context: dict) -> None:
    if Notification.objects.filter(event=event).exists():
        return
    Notification.objects.create(
        user=event.recipient,
        event=event,
        type=event.event_type,
        title=message.title.format_map(_SafeDict(context)),
        message=message.body.format_map(_SafeDict(context)),
        booking_id=event.booking_id,
    )
    _log_notification(
        NotificationLog.Channel.IN_APP,
        event.event_type,
        NotificationLog.Status.SENT,
        user_id=event.recipient_id,
        booking_id=event.booking_id,
    )


def _mark(event_id: int, **values) -> None:
    OutboxEvent.objects.filter(pk=event_id).update(**values)


@shared_task(name="notifications.deliver_outbox_event")
def deliver_outbox_event(event_id: int) -> str:
    """
    Deliver one outbox event as an in-app notification plus an email.

    Failures are recorded on the event row and never raised, so a retry is
    always safe: the in-app row is created at most once per event.
    """
    event = OutboxEvent.objects.select_related("recipient").filter(pk=event_id).first()
    if event is None:
        logger.warning("notifications: outbox event %s no longer exists", event_id)
        return "missing"
    if event.status == OutboxEvent.Status.DELIVERED:
        return event.status

    message = MESSAGES.get(event.event_type)
    attempts = event.attempts + 1
    if message is None:
        _mark(
            event.id,
            status=OutboxEvent.Status.FAILED,
            attempts=attempts,
            last_error=f"no message for event type {event.event_type}",
        )
        return OutboxEvent.Status.FAILED

    context = _build_context(event)
    try:
        with transaction.atomic():
            _create_in_app(event, message, context)
    except Exception as exc:
        logger.exception(
            "notifications: in-app notification failed",
            extra={"outbox_event_id": event.id, "booking_id": event.booking_id},
        )
        _log_notification(
            NotificationLog.Channel.IN_APP,
            event.event_type,
            NotificationLog.Status.FAILED,
            user_id=event.recipient_id,
            booking_id=event.booking_id,
            error=str(exc),
        )
        _mark(
            event.id,
            status=OutboxEvent.Status.FAILED,
            attempts=attempts,
            last_error=str(exc) or exc.__class__.__name__,
        )
        return OutboxEvent.Status.FAILED

    error = _send_email_logged(
        event.event_type,
        to_email=event.recipient.email,
        subject=message.subject.format_map(_SafeDict(context)),
        template=message.template,
        context=context,
        user_id=event.recipient_id,
        booking_id=event.booking_id,
    )
    if error:
        _mark(
            event.id,
            status=OutboxEvent.Status.FAILED,
            attempts=attempts,
            last_error=error,
        )
        return OutboxEvent.Status.FAILED

    _mark(
        event.id,
        status=OutboxEvent.Status.DELIVERED,
        attempts=attempts,
        last_error="",
        delivered_at=timezone.now(),
    )
    return OutboxEvent.Status.DELIVERED


@shared_task(name="notifications.redeliver_pending_outbox_events")
def redeliver_pending_outbox_events() -> int:
    """Retry events that were never delivered, up to NOTIFICATION_MAX_ATTEMPTS."""
    max_attempts = getattr(settings, "NOTIFICATION_MAX_ATTEMPTS", 5)
    cutoff = timezone.now() - REDELIVERY_MIN_AGE
    event_ids = list(
        OutboxEvent.objects.filter(
            status__in=[OutboxEvent.Status.PENDING, OutboxEvent.Status.FAILED],
            attempts__lt=max_attempts,
            created_at__lte=cutoff,
        ).values_list("id", flat=True)[:500]
    )
    delivered = 0
    for event_id in event_ids:
        if deliver_outbox_event(event_id) == OutboxEvent.Status.DELIVERED:
            delivered += 1
    return delivered
