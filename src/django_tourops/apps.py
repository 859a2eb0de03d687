"""Django app configuration for django-tourops."""

from django.apps import AppConfig


class DjangoTourOpsConfig(AppConfig):
    """App config for django-tourops."""

    name = "django_tourops"
    verbose_name = "Django Tour Ops"
    default_auto_field = "django.db.models.BigAutoField"
