from django.conf import settings
from django.db import models


class DbSetting(models.Model):
    """
    Operator-managed override for a runtime setting.

    Rows are versioned: editing a saved row inserts a new version rather than
    updating in place, so past fee configurations stay reproducible.
    """

    class ValueType(models.TextChoices):
        INT = "int", "int"
        DECIMAL = "decimal", "decimal"
        STR = "str", "str"

    key = models.CharField(max_length=128, db_index=True)
    value_json = models.JSONField()
    value_type = models.CharField(max_length=16, choices=ValueType.choices)
    description = models.TextField(blank=True, default="")
    updated_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="operator_db_settings_updated",
    )
    updated_at = models.DateTimeField(auto_now=True)
    effective_at = models.DateTimeField(null=True, blank=True, db_index=True)

    class Meta:
        indexes = [
            models.Index(
                fields=["key", "effective_at", "updated_at"], name="opset_db_key_eff_upd_idx"
            ),
        ]
        ordering = ["-updated_at"]

    def __str__(self) -> str:
        return f"{self.key} ({self.value_type})"

    def save(self, *args, **kwargs):
        if self.pk is not None:
            # New version on every edit; the old row is left untouched.
            self.pk = None
            self._state.adding = True
            kwargs.pop("force_update", None)
            kwargs.pop("update_fields", None)
            kwargs["force_insert"] = True
        super().save(*args, **kwargs)
