"""
Tenant signals: drop cached tenant lookups whenever a Tenant changes.

Connected through TenantsConfig.ready().
"""
import logging

from django.db.models.signals import post_delete, post_save, pre_save
from django.dispatch import receiver

from .services import TenantService

logger = logging.getLogger(__name__)


@receiver(pre_save, sender='tenants.Tenant')
def tenant_pre_save(sender, instance, **kwargs):
    """Forget the previous slug/domain when they are about to change."""
    if instance._state.adding:
        return
    previous = sender.objects.filter(pk=instance.pk).values('slug', 'domain').first()
    if previous and (previous['slug'] != instance.slug or previous['domain'] != instance.domain):
        TenantService.clear_cache(slug=previous['slug'], domain=previous['domain'])


@receiver(post_save, sender='tenants.Tenant')
def tenant_post_save(sender, instance, **kwargs):
    TenantService.clear_cache(slug=instance.slug, domain=instance.domain)
    logger.info('Tenant cache cleared after save: %s (slug=%s)', instance.name, instance.slug)


@receiver(post_delete, sender='tenants.Tenant')
def tenant_post_delete(sender, instance, **kwargs):
    TenantService.clear_cache(slug=instance.slug, domain=instance.domain)
    logger.info('Tenant cache cleared after delete: %s (slug=%s)', instance.name, instance.slug)
