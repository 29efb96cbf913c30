from django.db import models

OPTIONS_TABLE = "simple_options"
MAX_KEY_LENGTH = 255


class Option(models.Model):
    """Represents a persisted option (one row per key)."""

    key = models.CharField(max_length=MAX_KEY_LENGTH)
    value = models.TextField(null=True)
    is_json = models.BooleanField(default=False, db_column="isJson")
    autoload = models.BooleanField(default=False)
    date_created = models.DateTimeField(db_column="dateCreated")
    date_updated = models.DateTimeField(db_column="dateUpdated")

    class Meta:
        # The table is provisioned by the store at runtime, not by migrations.
        managed = False
        db_table = OPTIONS_TABLE
        ordering = ["key"]
        constraints = [
            models.UniqueConstraint(fields=["key"], name="idx_simple_options_key"),
        ]
        indexes = [
            models.Index(fields=["autoload"], name="idx_simple_options_autoload"),
        ]

    def __str__(self) -> str:
        return f"{self.key} ({'json' if self.is_json else 'string'})"
