import django.db.models.deletion
import django.db.models.functions.comparison
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("listings", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Booking",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True, primary_key=True, serialize=False, verbose_name="ID"
                    ),
                ),
                ("start_at", models.DateTimeField(blank=True, null=True)),
                ("end_at", models.DateTimeField(blank=True, null=True)),
                ("base_amount_cents", models.PositiveIntegerField()),
                ("delivery_fee_cents", models.PositiveIntegerField(default=0)),
                ("deposit_amount_cents", models.PositiveIntegerField(blank=True, null=True)),
                ("customer_total_cents", models.PositiveIntegerField()),
                ("buyer_fee_cents", models.PositiveIntegerField(default=0)),
                ("host_fee_cents", models.PositiveIntegerField(default=0)),
                ("platform_fee_cents", models.PositiveIntegerField()),
                ("host_payout_cents", models.PositiveIntegerField()),
                ("buyer_fee_bps", models.PositiveIntegerField()),
                ("host_fee_bps", models.PositiveIntegerField()),
                (
                    "payment_method_ref",
                    models.CharField(blank=True, default="", max_length=120),
                ),
                (
                    "payment_intent_id",
                    models.CharField(blank=True, db_index=True, default="", max_length=120),
                ),
                (
                    "capture_method",
                    models.CharField(
                        choices=[("manual", "manual"), ("automatic", "automatic")],
                        default="manual",
                        max_length=16,
                    ),
                ),
                (
                    "hold_status",
                    models.CharField(
                        choices=[
                            ("none", "none"),
                            ("pending", "pending"),
                            ("captured", "captured"),
                            ("released", "released"),
                        ],
                        default="none",
                        max_length=16,
                    ),
                ),
                (
                    "payment_status",
                    models.CharField(
                        choices=[
                            ("unpaid", "unpaid"),
                            ("authorized", "authorized"),
                            ("paid", "paid"),
                            ("released", "released"),
                        ],
                        default="unpaid",
                        max_length=16,
                    ),
                ),
                ("hold_expires_at", models.DateTimeField(blank=True, null=True)),
                ("hold_captured_at", models.DateTimeField(blank=True, null=True)),
                ("hold_released_at", models.DateTimeField(blank=True, null=True)),
                ("hold_release_reason", models.TextField(blank=True, default="")),
                (
                    "deposit_status",
                    models.CharField(
                        choices=[
                            ("none", "none"),
                            ("charged", "charged"),
                            ("refunded", "refunded"),
                            ("forfeited", "forfeited"),
                        ],
                        default="none",
                        max_length=16,
                    ),
                ),
                ("deposit_charge_id", models.CharField(blank=True, default="", max_length=120)),
                ("deposit_refund_id", models.CharField(blank=True, default="", max_length=120)),
                ("deposit_refund_cents", models.PositiveIntegerField(blank=True, null=True)),
                ("deposit_refund_notes", models.TextField(blank=True, default="")),
                ("deposit_refunded_at", models.DateTimeField(blank=True, null=True)),
                ("payout_hold_until", models.DateTimeField(blank=True, null=True)),
                ("payout_hold_reason", models.TextField(blank=True, null=True)),
                ("payout_hold_set_at", models.DateTimeField(blank=True, null=True)),
                ("payout_hold_cleared_at", models.DateTimeField(blank=True, null=True)),
                ("payout_hold_clear_reason", models.TextField(blank=True, default="")),
                ("payout_processed", models.BooleanField(default=False)),
                ("payout_processed_at", models.DateTimeField(blank=True, null=True)),
                ("payout_transfer_id", models.CharField(blank=True, default="", max_length=120)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "listing",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="bookings",
                        to="listings.listing",
                    ),
                ),
                (
                    "host",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="bookings_as_host",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "shopper",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="bookings_as_shopper",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "payout_hold_set_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="payout_holds_set",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "payout_hold_cleared_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="payout_holds_cleared",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["hold_status", "hold_expires_at"], name="booking_hold_expiry_idx"
                    ),
                    models.Index(
                        fields=["deposit_status", "end_at"], name="booking_deposit_end_idx"
                    ),
                    models.Index(
                        fields=["payout_processed", "end_at"], name="booking_payout_end_idx"
                    ),
                    models.Index(fields=["host", "hold_status"], name="booking_host_hold_idx"),
                    models.Index(
                        fields=["shopper", "hold_status"], name="booking_shopper_hold_idx"
                    ),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(
                            customer_total_cents=models.F("base_amount_cents")
                            + models.F("delivery_fee_cents")
                            + models.F("buyer_fee_cents")
                            + django.db.models.functions.comparison.Coalesce(
                                models.F("deposit_amount_cents"), 0
                            )
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
                ],
            },
        ),
    ]
