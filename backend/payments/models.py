from django.conf import settings
from django.db import models


class Transaction(models.Model):
    """Append-only ledger row for one money movement, in cents."""

    class Kind(models.TextChoices):
        HOLD_AUTHORIZED = "HOLD_AUTHORIZED", "Hold authorized"
        BOOKING_CHARGE = "BOOKING_CHARGE", "Booking charge"
        HOLD_RELEASED = "HOLD_RELEASED", "Hold released"
        DEPOSIT_REFUND = "DEPOSIT_REFUND", "Deposit refund"
        DEPOSIT_FORFEIT = "DEPOSIT_FORFEIT", "Deposit forfeit"
        HOST_PAYOUT = "HOST_PAYOUT", "Host payout"
        PLATFORM_FEE = "PLATFORM_FEE", "Platform fee"
        PROMO_REWARD = "PROMO_REWARD", "Promo reward"

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="transactions",
    )
    booking = models.ForeignKey(
        "bookings.Booking",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="transactions",
    )
    reward = models.ForeignKey(
        "promotions.RewardRecord",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="transactions",
    )
    kind = models.CharField(max_length=32, choices=Kind.choices)
    amount_cents = models.BigIntegerField()
    currency = models.CharField(max_length=8, default="usd")
    stripe_id = models.CharField(
        max_length=255,
        blank=True,
        null=True,
        help_text="Related Stripe PaymentIntent / Refund / Transfer id.",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["booking", "kind"], name="txn_booking_kind_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.user} {self.kind} {self.amount_cents} {self.currency}"


class OwnerPayoutAccount(models.Model):
    """Stripe Connect Express account that receives host payouts and promo rewards."""

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="payout_account",
    )
    stripe_account_id = models.CharField(max_length=255, db_index=True)
    payouts_enabled = models.BooleanField(default=False)
    charges_enabled = models.BooleanField(default=False)
    requirements_due = models.JSONField(default=dict, blank=True)
    is_fully_onboarded = models.BooleanField(
        default=False,
        help_text="Charges and payouts enabled, no disabled_reason.",
    )
    last_synced_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-last_synced_at", "user_id"]

    def __str__(self) -> str:
        return f"{self.user} - {self.stripe_account_id}"
