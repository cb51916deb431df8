from django.apps import AppConfig
from django.conf import settings


class MarketplaceConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "marketplace"
    verbose_name = "Marketplace"

    def ready(self):
        if getattr(settings, "TRACING_ENABLED", False):
            from marketplace.infra.observability.tracing import setup_tracing

            setup_tracing(
                service_name=getattr(settings, "TRACING_SERVICE_NAME", "storefront-backend"),
                console_export=getattr(settings, "TRACING_CONSOLE_EXPORT", False),
            )
