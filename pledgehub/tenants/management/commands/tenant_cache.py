"""
Management command: maintain the tenant lookup cache.

Usage:
    python manage.py tenant_cache clear            # drop every cached tenant
    python manage.py tenant_cache clear --tenant acme
    python manage.py tenant_cache warm             # preload all active tenants
    python manage.py tenant_cache warm --tenant acme
"""
from django.core.management.base import BaseCommand, CommandError

from tenants.models import Tenant
from tenants.services import TenantService


class Command(BaseCommand):
    help = 'Clear or warm the tenant lookup cache'

    def add_arguments(self, parser):
        parser.add_argument('action', choices=['clear', 'warm'])
        parser.add_argument('--tenant', help='Limit to one tenant slug')

    def handle(self, *args, **options):
        slug = options.get('tenant')
        tenant = None
        if slug:
            tenant = Tenant.objects.filter(slug=slug).first()
            if tenant is None:
                raise CommandError(f'Tenant "{slug}" not found')

        if options['action'] == 'clear':
            if tenant is not None:
                TenantService.clear_cache(slug=tenant.slug, domain=tenant.domain)
                self.stdout.write(self.style.SUCCESS(f'Cache cleared for tenant: {tenant.slug}'))
            else:
                TenantService.clear_cache()
                self.stdout.write(self.style.SUCCESS('Cache cleared for all tenants'))
            return

        count = TenantService.warm_cache(slug=slug)
        if count == 0:
            self.stdout.write(self.style.WARNING('No active tenants to cache'))
        else:
            self.stdout.write(self.style.SUCCESS(f'Cache warmed for {count} tenant(s)'))
