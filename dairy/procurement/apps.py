from django.apps import AppConfig


class ProcurementConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'dairy.procurement'

    def ready(self):
        """Import signals when app is ready"""
        import dairy.procurement.signals  # noqa: F401
