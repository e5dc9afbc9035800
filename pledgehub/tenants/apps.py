from django.apps import AppConfig


class TenantsConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'tenants'
    verbose_name = 'Tenants'

    def ready(self):
        # Cache invalidation on Tenant changes
        import tenants.signals  # noqa: F401
