import django.db.models.deletion
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
            name="RewardRecord",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True, primary_key=True, serialize=False, verbose_name="ID"
                    ),
                ),
                (
                    "pool",
                    models.CharField(
                        choices=[
                            ("listing_reward", "Listing reward"),
                            ("contest", "Contest prize"),
                        ],
                        max_length=32,
                    ),
                ),
                (
                    "payout_status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("eligible", "Eligible"),
                            ("paid", "Paid"),
                            ("failed", "Failed"),
                            ("disqualified", "Disqualified"),
                        ],
                        default="pending",
                        max_length=16,
                    ),
                ),
                (
                    "disqualified_reason",
                    models.CharField(blank=True, default="", max_length=255),
                ),
                (
                    "destination_account_id",
                    models.CharField(blank=True, max_length=255, null=True),
                ),
                ("transfer_id", models.CharField(blank=True, default="", max_length=255)),
                ("amount_cents", models.PositiveIntegerField(blank=True, null=True)),
                ("failure_message", models.TextField(blank=True, default="")),
                ("payout_initiated_at", models.DateTimeField(blank=True, null=True)),
                ("payout_completed_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "listing",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="reward_records",
                        to="listings.listing",
                    ),
                ),
                (
                    "user",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="reward_records",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ("created_at", "id"),
                "indexes": [
                    models.Index(fields=["pool", "payout_status"], name="reward_pool_status_idx"),
                    models.Index(
                        fields=["pool", "destination_account_id"],
                        name="reward_pool_destination_idx",
                    ),
                ],
            },
        ),
    ]
