from django.apps import AppConfig


class PurchasesConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'purchases'
    verbose_name = 'Course purchases'

    def ready(self) -> None:
        # Profile creation on user signup
        from . import signals  # noqa: F401
        return super().ready()
