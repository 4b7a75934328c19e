from django.apps import AppConfig


class CustomersConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'dairy.customers'

    def ready(self):
        """Import signals when app is ready"""
        import dairy.customers.signals  # noqa: F401
