"""Database models for booking requests and their money state."""

from __future__ import annotations

from django.conf import settings
from django.db import models
from django.db.models.functions import Coalesce
from django.utils import timezone

from listings.models import Listing


class Booking(models.Model):
    """
    A booking request and the permanent financial record behind it.

    Money fields are integer cents. Three field groups change independently:
    the buyer-side hold (``hold_*``/``payment_*``), the security deposit
    (``deposit_*``) and the admin payout hold (``payout_hold_*``). Status
    fields are only written through ``bookings.domain``.
    """

    class HoldStatus(models.TextChoices):
        NONE = "none", "none"
        PENDING = "pending", "pending"
        CAPTURED = "captured", "captured"
        RELEASED = "released", "released"

    class PaymentStatus(models.TextChoices):
        UNPAID = "unpaid", "unpaid"
        AUTHORIZED = "authorized", "authorized"
        PAID = "paid", "paid"
        RELEASED = "released", "released"

    class DepositStatus(models.TextChoices):
        NONE = "none", "none"
        CHARGED = "charged", "charged"
        REFUNDED = "refunded", "refunded"
        FORFEITED = "forfeited", "forfeited"

    class CaptureMethod(models.TextChoices):
        MANUAL = "manual", "manual"
        AUTOMATIC = "automatic", "automatic"

    listing = models.ForeignKey(
        Listing,
        related_name="bookings",
        on_delete=models.PROTECT,
    )
    host = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        related_name="bookings_as_host",
        on_delete=models.PROTECT,
    )
    shopper = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        related_name="bookings_as_shopper",
        on_delete=models.PROTECT,
    )
    start_at = models.DateTimeField(null=True, blank=True)
    end_at = models.DateTimeField(null=True, blank=True)

    # Commercial terms, fixed when the request is created.
    base_amount_cents = models.PositiveIntegerField()
    delivery_fee_cents = models.PositiveIntegerField(default=0)
    deposit_amount_cents = models.PositiveIntegerField(null=True, blank=True)
    customer_total_cents = models.PositiveIntegerField()
    buyer_fee_cents = models.PositiveIntegerField(default=0)
    host_fee_cents = models.PositiveIntegerField(default=0)
    platform_fee_cents = models.PositiveIntegerField()
    host_payout_cents = models.PositiveIntegerField()
    buyer_fee_bps = models.PositiveIntegerField()
    host_fee_bps = models.PositiveIntegerField()

    # Buyer-side hold.
    payment_method_ref = models.CharField(max_length=120, blank=True, default="")
    payment_intent_id = models.CharField(max_length=120, blank=True, default="", db_index=True)
    capture_method = models.CharField(
        max_length=16,
        choices=CaptureMethod.choices,
        default=CaptureMethod.MANUAL,
    )
    hold_status = models.CharField(
        max_length=16,
        choices=HoldStatus.choices,
        default=HoldStatus.NONE,
    )
    payment_status = models.CharField(
        max_length=16,
        choices=PaymentStatus.choices,
        default=PaymentStatus.UNPAID,
    )
    hold_expires_at = models.DateTimeField(null=True, blank=True)
    hold_captured_at = models.DateTimeField(null=True, blank=True)
    hold_released_at = models.DateTimeField(null=True, blank=True)
    hold_release_reason = models.TextField(blank=True, default="")

    # Security deposit.
    deposit_status = models.CharField(
        max_length=16,
        choices=DepositStatus.choices,
        default=DepositStatus.NONE,
    )
    deposit_charge_id = models.CharField(max_length=120, blank=True, default="")
    deposit_refund_id = models.CharField(max_length=120, blank=True, default="")
    deposit_refund_cents = models.PositiveIntegerField(null=True, blank=True)
    deposit_refund_notes = models.TextField(blank=True, default="")
    deposit_refunded_at = models.DateTimeField(null=True, blank=True)
    # Set while a settlement is refunding at the processor.
    deposit_settlement_started_at = models.DateTimeField(null=True, blank=True)

    # Admin payout hold.
    payout_hold_until = models.DateTimeField(null=True, blank=True)
    payout_hold_reason = models.TextField(null=True, blank=True)
    payout_hold_set_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        related_name="payout_holds_set",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
    )
    payout_hold_set_at = models.DateTimeField(null=True, blank=True)
    payout_hold_cleared_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        related_name="payout_holds_cleared",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
    )
    payout_hold_cleared_at = models.DateTimeField(null=True, blank=True)
    payout_hold_clear_reason = models.TextField(blank=True, default="")

    # One-way latch: once set, hold and deposit fields are frozen.
    payout_processed = models.BooleanField(default=False)
    payout_processed_at = models.DateTimeField(null=True, blank=True)
    payout_transfer_id = models.CharField(max_length=120, blank=True, default="")
    # Set while the host transfer is in flight; blocks new admin holds.
    payout_started_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["hold_status", "hold_expires_at"], name="booking_hold_expiry_idx"),
            models.Index(fields=["deposit_status", "end_at"], name="booking_deposit_end_idx"),
            models.Index(fields=["payout_processed", "end_at"], name="booking_payout_end_idx"),
            models.Index(fields=["host", "hold_status"], name="booking_host_hold_idx"),
            models.Index(fields=["shopper", "hold_status"], name="booking_shopper_hold_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(
                    customer_total_cents=models.F("base_amount_cents")
                    + models.F("delivery_fee_cents")
                    + models.F("buyer_fee_cents")
                    + Coalesce(models.F("deposit_amount_cents"), 0)
                ),
                name="booking_customer_total_matches_breakdown",
            ),
            models.CheckConstraint(
                condition=models.Q(
                    host_payout_cents=models.F("base_amount_cents")
                    + models.F("delivery_fee_cents")
                    - models.F("host_fee_cents")
                ),
                name="booking_host_payout_matches_breakdown",
            ),
        ]

    def __str__(self) -> str:
        return f"Booking #{self.pk} for {self.listing_id} (hold={self.hold_status})"

    @property
    def has_deposit(self) -> bool:
        return bool(self.deposit_amount_cents)

    @property
    def subtotal_cents(self) -> int:
        return self.base_amount_cents + self.delivery_fee_cents

    def payout_hold_active(self, now=None) -> bool:
        """True while an admin payout hold is set and not yet past."""
        if self.payout_hold_until is None:
            return False
        return self.payout_hold_until > (now or timezone.now())
