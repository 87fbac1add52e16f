from django.conf import settings
from django.db import models


class RewardRecord(models.Model):
    """
    A promotional payout owed to a user: a listing reward or a contest prize.

    Records are only mutated by the payout batch (and the operator retry);
    they are never deleted.
    """

    class Pool(models.TextChoices):
        LISTING_REWARD = "listing_reward", "Listing reward"
        CONTEST = "contest", "Contest prize"

    class PayoutStatus(models.TextChoices):
        PENDING = "pending", "Pending"
        ELIGIBLE = "eligible", "Eligible"
        PAID = "paid", "Paid"
        FAILED = "failed", "Failed"
        DISQUALIFIED = "disqualified", "Disqualified"

    pool = models.CharField(max_length=32, choices=Pool.choices)
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="reward_records",
    )
    listing = models.ForeignKey(
        "listings.Listing",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="reward_records",
    )
    payout_status = models.CharField(
        max_length=16,
        choices=PayoutStatus.choices,
        default=PayoutStatus.PENDING,
    )
    disqualified_reason = models.CharField(max_length=255, blank=True, default="")
    # Recorded when the reward is claimed for a transfer; at most one open or
    # paid reward per pool may hold a given destination.
    destination_account_id = models.CharField(max_length=255, blank=True, null=True)
    transfer_id = models.CharField(max_length=255, blank=True, default="")
    amount_cents = models.PositiveIntegerField(null=True, blank=True)
    failure_message = models.TextField(blank=True, default="")
    payout_initiated_at = models.DateTimeField(null=True, blank=True)
    payout_completed_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ("created_at", "id")
        indexes = [
            models.Index(fields=("pool", "payout_status"), name="reward_pool_status_idx"),
            models.Index(
                fields=("pool", "destination_account_id"),
                name="reward_pool_destination_idx",
            ),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=("pool", "destination_account_id"),
                condition=models.Q(
                    destination_account_id__isnull=False,
                    payout_status__in=("pending", "eligible", "paid"),
                ),
                name="reward_one_payout_per_destination",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.get_pool_display()} #{self.pk} for user {self.user_id} ({self.payout_status})"
