"""Identity verification sessions reported by Stripe Identity."""

from __future__ import annotations

from django.conf import settings
from django.db import models
from django.utils import timezone


class IdentityVerification(models.Model):
    class Status(models.TextChoices):
        PENDING = "pending", "Pending"
        VERIFIED = "verified", "Verified"
        FAILED = "failed", "Failed"
        CANCELED = "canceled", "Canceled"

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="identity_verifications",
    )
    status = models.CharField(
        max_length=16,
        choices=Status.choices,
        default=Status.PENDING,
    )
    session_id = models.CharField(max_length=255, unique=True)
    verified_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["user", "status"], name="identity_user_status_idx"),
        ]


def mark_session_verified(user, session_id: str) -> IdentityVerification:
    """Record a verified Stripe Identity session for the user."""
    verification, _ = IdentityVerification.objects.update_or_create(
        session_id=session_id,
        defaults={
            "user": user,
            "status": IdentityVerification.Status.VERIFIED,
            "verified_at": timezone.now(),
        },
    )
    return verification
