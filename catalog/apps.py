from django.apps.config import AppConfig


class CatalogAppConfig(AppConfig):
    name = "catalog"
    verbose_name = "Item catalog"
    default_auto_field = "django.db.models.BigAutoField"
