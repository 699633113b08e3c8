from django.apps import AppConfig


class PricesConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "prices"
    verbose_name = "Fuel prices"

    def ready(self):
        from prices import signals  # noqa: F401
