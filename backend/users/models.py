from __future__ import annotations

from django.contrib.auth.models import AbstractUser
from django.db import models


class User(AbstractUser):
    """Marketplace account; the same user may host listings and book others."""

    phone = models.CharField(
        max_length=32,
        unique=True,
        null=True,
        blank=True,
        help_text="Optional E.164 formatted phone number.",
    )
    stripe_customer_id = models.CharField(
        max_length=120,
        blank=True,
        default="",
        help_text="Stripe Customer ID used for shopper payment methods.",
    )

    @property
    def display_name(self) -> str:
        return self.get_full_name() or self.username
