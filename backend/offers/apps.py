"""Offers app configuration."""

from django.apps import AppConfig


class OffersConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'offers'

    def ready(self):
        # Cache invalidation listens for offer and profile changes
        from services.caching import receivers  # noqa: F401
