from django.db import migrations, models


class Migration(migrations.Migration):
    dependencies = [
        ("promotions", "0001_initial"),
    ]

    operations = [
        migrations.AddConstraint(
            model_name="rewardrecord",
            constraint=models.UniqueConstraint(
                condition=models.Q(
                    ("destination_account_id__isnull", False),
                    ("payout_status__in", ("pending", "eligible", "paid")),
                ),
                fields=("pool", "destination_account_id"),
                name="reward_one_payout_per_destination",
            ),
        ),
    ]
