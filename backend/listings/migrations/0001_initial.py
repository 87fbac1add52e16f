import django.core.validators
import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Listing",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True, primary_key=True, serialize=False, verbose_name="ID"
                    ),
                ),
                ("title", models.CharField(max_length=140)),
                (
                    "mode",
                    models.CharField(
                        choices=[("rent", "Rent"), ("sale", "Sale")], default="rent", max_length=8
                    ),
                ),
                (
                    "is_instant_book",
                    models.BooleanField(
                        default=False,
                        help_text=(
                            "Instant-book listings are charged immediately instead of held "
                            "for approval."
                        ),
                    ),
                ),
                (
                    "deposit_amount_cents",
                    models.PositiveIntegerField(
                        blank=True,
                        help_text="Security deposit collected with each booking, in cents.",
                        null=True,
                        validators=[django.core.validators.MinValueValidator(0)],
                    ),
                ),
                ("is_active", models.BooleanField(default=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "host",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="listings",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
            },
        ),
    ]
