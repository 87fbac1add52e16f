from django.conf import settings
from django.db import models


class OutboxEvent(models.Model):
    """
    A domain event waiting to be turned into notifications.

    Rows are written by payment operations after their state change and are
    delivered by a separate Celery consumer, so delivery problems never reach
    the operation that emitted them.
    """

    class Type(models.TextChoices):
        BOOKING_REQUESTED = "booking_requested", "Booking requested"
        BOOKING_CONFIRMED = "booking_confirmed", "Booking confirmed"
        HOLD_RELEASED = "hold_released", "Hold released"
        PAYOUT_HOLD_SET = "payout_hold_set", "Payout hold set"
        PAYOUT_HOLD_CLEARED = "payout_hold_cleared", "Payout hold cleared"
        DEPOSIT_SETTLED = "deposit_settled", "Deposit settled"
        PAYOUT_SENT = "payout_sent", "Payout sent"
        REWARD_PAID = "reward_paid", "Reward paid"

    class Status(models.TextChoices):
        PENDING = "pending", "Pending"
        DELIVERED = "delivered", "Delivered"
        FAILED = "failed", "Failed"

    event_type = models.CharField(max_length=32, choices=Type.choices)
    recipient = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="outbox_events",
    )
    booking = models.ForeignKey(
        "bookings.Booking",
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name="outbox_events",
    )
    payload = models.JSONField(default=dict, blank=True)
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.PENDING)
    attempts = models.PositiveIntegerField(default=0)
    last_error = models.TextField(blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)
    delivered_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["created_at", "id"]
        indexes = [
            models.Index(fields=["status", "created_at"], name="outbox_status_created_idx"),
            models.Index(fields=["booking", "event_type"], name="outbox_booking_type_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.event_type} -> {self.recipient_id} ({self.status})"


class Notification(models.Model):
    """In-app notification shown in the user's inbox."""

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="notifications",
    )
    event = models.OneToOneField(
        OutboxEvent,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="notification",
    )
    type = models.CharField(max_length=32)
    title = models.CharField(max_length=200)
    message = models.TextField()
    booking_id = models.IntegerField(null=True, blank=True)
    read_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [models.Index(fields=["user", "read_at"], name="notification_user_read_idx")]

    def __str__(self) -> str:
        return f"{self.type} for {self.user_id}"


class NotificationLog(models.Model):
    class Channel(models.TextChoices):
        EMAIL = "email", "Email"
        IN_APP = "in_app", "In-app"

    class Status(models.TextChoices):
        SENT = "sent", "Sent"
        FAILED = "failed", "Failed"

    channel = models.CharField(max_length=8, choices=Channel.choices)
    type = models.CharField(max_length=128)
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="notification_logs",
    )
    booking_id = models.IntegerField(null=True, blank=True)
    status = models.CharField(max_length=8, choices=Status.choices)
    error = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [
            models.Index(fields=["booking_id", "created_at"], name="notiflog_booking_created_idx"),
            models.Index(fields=["type", "created_at"], name="notiflog_type_created_idx"),
        ]
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"{self.channel}:{self.type} ({self.status})"
