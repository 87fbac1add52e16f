import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("bookings", "0001_initial"),
        ("promotions", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="OwnerPayoutAccount",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True, primary_key=True, serialize=False, verbose_name="ID"
                    ),
                ),
                ("stripe_account_id", models.CharField(db_index=True, max_length=255)),
                ("payouts_enabled", models.BooleanField(default=False)),
                ("charges_enabled", models.BooleanField(default=False)),
                ("requirements_due", models.JSONField(blank=True, default=dict)),
                (
                    "is_fully_onboarded",
                    models.BooleanField(
                        default=False,
                        help_text="Charges and payouts enabled, no disabled_reason.",
                    ),
                ),
                ("last_synced_at", models.DateTimeField(blank=True, null=True)),
                (
                    "user",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="payout_account",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-last_synced_at", "user_id"],
            },
        ),
        migrations.CreateModel(
            name="Transaction",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True, primary_key=True, serialize=False, verbose_name="ID"
                    ),
                ),
                (
                    "kind",
                    models.CharField(
                        choices=[
                            ("HOLD_AUTHORIZED", "Hold authorized"),
                            ("BOOKING_CHARGE", "Booking charge"),
                            ("HOLD_RELEASED", "Hold released"),
                            ("DEPOSIT_REFUND", "Deposit refund"),
                            ("DEPOSIT_FORFEIT", "Deposit forfeit"),
                            ("HOST_PAYOUT", "Host payout"),
                            ("PLATFORM_FEE", "Platform fee"),
                            ("PROMO_REWARD", "Promo reward"),
                        ],
                        max_length=32,
                    ),
                ),
                ("amount_cents", models.BigIntegerField()),
                ("currency", models.CharField(default="usd", max_length=8)),
                (
                    "stripe_id",
                    models.CharField(
                        blank=True,
                        help_text="Related Stripe PaymentIntent / Refund / Transfer id.",
                        max_length=255,
                        null=True,
                    ),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "booking",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="transactions",
                        to="bookings.booking",
                    ),
                ),
                (
                    "reward",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="transactions",
                        to="promotions.rewardrecord",
                    ),
                ),
                (
                    "user",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="transactions",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["booking", "kind"], name="txn_booking_kind_idx"),
                ],
            },
        ),
    ]
