from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models


class Listing(models.Model):
    """A food truck, trailer, equipment item or vendor space offered for rent or sale."""

    class Mode(models.TextChoices):
        RENT = "rent", "Rent"
        SALE = "sale", "Sale"

    host = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="listings",
    )
    title = models.CharField(max_length=140)
    mode = models.CharField(max_length=8, choices=Mode.choices, default=Mode.RENT)
    is_instant_book = models.BooleanField(
        default=False,
        help_text="Instant-book listings are charged immediately instead of held for approval.",
    )
    deposit_amount_cents = models.PositiveIntegerField(
        null=True,
        blank=True,
        validators=[MinValueValidator(0)],
        help_text="Security deposit collected with each booking, in cents.",
    )
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"{self.title} (#{self.pk})"
