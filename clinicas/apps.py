from django.apps import AppConfig


class ClinicasConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "clinicas"
    verbose_name = "Clínicas"
