from django.apps import AppConfig


class SimpleOptionsConfig(AppConfig):
    name = "simple_options"
    verbose_name = "Simple options"
    default_auto_field = "django.db.models.AutoField"
