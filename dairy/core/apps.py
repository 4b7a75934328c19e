from django.apps import AppConfig


class CoreConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'dairy.core'

    def ready(self):
        """Import signals when app is ready"""
        import dairy.core.model_cache  # noqa: F401
        import dairy.core.cache_signals  # noqa: F401  # Cache invalidation signals
