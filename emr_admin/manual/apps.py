from django.apps import AppConfig


class ManualConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'emr_admin.manual'
    label = 'manual'
    verbose_name = 'User Manual'
