"""
Tenant business logic: cached lookup, suspension, membership management.
"""
import logging

from django.conf import settings
from django.core.cache import cache
from django.db import transaction
from django.utils import timezone
from django.utils.text import slugify

from accounts.models import Role
from core.audit import log_event
from .models import Tenant, TenantMembership

logger = logging.getLogger(__name__)

CACHE_PREFIX = 'tenant'


class TenantServiceError(Exception):
    """Base exception for tenant operations."""
    pass


class TenantLimitError(TenantServiceError):
    """Raised when a tenant quota (users, projects) would be exceeded."""
    pass


class TenantStateError(TenantServiceError):
    """Raised when a suspend/reactivate does not fit the current status."""
    pass


def _slug_key(slug):
    return f'{CACHE_PREFIX}:slug:{slug}'


def _domain_key(domain):
    return f'{CACHE_PREFIX}:domain:{domain}'


class TenantService:
    """Operations on tenants that go beyond plain model CRUD."""

    # ─── Lookup ───

    @staticmethod
    def find_by_slug(slug):
        """Active tenant by slug, cached for TENANT_CACHE_TTL seconds."""
        if not slug:
            return None
        key = _slug_key(slug)
        tenant = cache.get(key)
        if tenant is not None:
            return tenant
        tenant = Tenant.objects.filter(
            slug=slug, is_active=True, status=Tenant.Status.ACTIVE,
        ).first()
        if tenant is not None:
            cache.set(key, tenant, settings.TENANT_CACHE_TTL)
        return tenant

    @staticmethod
    def find_by_domain(domain):
        """Active tenant by custom domain, cached like slug lookups."""
        if not domain:
            return None
        key = _domain_key(domain)
        tenant = cache.get(key)
        if tenant is not None:
            return tenant
        tenant = Tenant.objects.filter(
            domain=domain, is_active=True, status=Tenant.Status.ACTIVE,
        ).first()
        if tenant is not None:
            cache.set(key, tenant, settings.TENANT_CACHE_TTL)
        return tenant

    @staticmethod
    def clear_cache(slug=None, domain=None):
        """
        Drop cached lookups for one tenant, or for every tenant when no key is given.

        Only tenant keys are removed; the rest of the shared cache is left alone.
        """
        keys = []
        if slug is None and domain is None:
            for tenant_slug, tenant_domain in Tenant.objects.values_list('slug', 'domain'):
                keys.append(_slug_key(tenant_slug))
                if tenant_domain:
                    keys.append(_domain_key(tenant_domain))
            cache.delete_many(keys)
            logger.info(f'Tenant cache cleared: {len(keys)} key(s)')
            return
        if slug:
            keys.append(_slug_key(slug))
        if domain:
            keys.append(_domain_key(domain))
        cache.delete_many(keys)
        logger.info(f'Tenant cache cleared for {", ".join(keys)}')

    @staticmethod
    def warm_cache(slug=None):
        """Preload active tenants into the cache. Returns the number cached."""
        qs = Tenant.objects.filter(is_active=True, status=Tenant.Status.ACTIVE)
        if slug:
            qs = qs.filter(slug=slug)
        count = 0
        for tenant in qs:
            cache.set(_slug_key(tenant.slug), tenant, settings.TENANT_CACHE_TTL)
            if tenant.domain:
                cache.set(_domain_key(tenant.domain), tenant, settings.TENANT_CACHE_TTL)
            count += 1
        logger.info(f'Tenant cache warmed: {count} tenant(s)')
        return count

    @staticmethod
    def url_for(slug, path=''):
        scheme, _, host = settings.APP_URL.partition('://')
        base = f'{scheme}://{slug}.{host.rstrip("/")}'
        return f'{base}/{path.lstrip("/")}' if path else base

    # ─── Lifecycle ───

    @staticmethod
    def unique_slug(name, exclude_pk=None):
        """Slug derived from ``name``, suffixed -1, -2, ... until free."""
        base = slugify(name)[:90] or 'tenant'
        slug = base
        counter = 1
        qs = Tenant.objects.all()
        if exclude_pk is not None:
            qs = qs.exclude(pk=exclude_pk)
        while qs.filter(slug=slug).exists():
            slug = f'{base}-{counter}'
            counter += 1
        return slug

    @staticmethod
    @transaction.atomic
    def suspend(tenant, by, reason=''):
        tenant = Tenant.objects.select_for_update().get(pk=tenant.pk)
        if tenant.status == Tenant.Status.SUSPENDED:
            raise TenantStateError(f'Tenant {tenant.slug} is already suspended')

        tenant.status = Tenant.Status.SUSPENDED
        tenant.suspended_at = timezone.now()
        tenant.suspended_reason = reason or ''
        tenant.suspended_by = by
        tenant.save(update_fields=[
            'status', 'suspended_at', 'suspended_reason', 'suspended_by', 'updated_at',
        ])

        logger.warning(f'Tenant suspended: {tenant.slug} by {by}, reason="{reason}"')
        log_event('tenant_suspended', actor=by, subject=tenant, reason=reason)
        return tenant

    @staticmethod
    @transaction.atomic
    def reactivate(tenant, by):
        tenant = Tenant.objects.select_for_update().get(pk=tenant.pk)
        if tenant.status == Tenant.Status.ACTIVE and tenant.is_active:
            raise TenantStateError(f'Tenant {tenant.slug} is already active')

        tenant.status = Tenant.Status.ACTIVE
        tenant.is_active = True
        tenant.suspended_at = None
        tenant.suspended_reason = ''
        tenant.suspended_by = None
        tenant.save(update_fields=[
            'status', 'is_active', 'suspended_at', 'suspended_reason', 'suspended_by', 'updated_at',
        ])

        logger.info(f'Tenant reactivated: {tenant.slug} by {by}')
        log_event('tenant_reactivated', actor=by, subject=tenant)
        return tenant

    # ─── Membership ───

    @staticmethod
    @transaction.atomic
    def add_member(tenant, user, role=Role.CONTRIBUTOR, by=None):
        """
        Grant ``role`` in ``tenant`` to ``user``.

        Reactivates an existing membership instead of duplicating it.

        Raises:
            TenantLimitError: max_users reached
        """
        membership = TenantMembership.objects.filter(tenant=tenant, user=user).first()
        if membership is None or not membership.is_active:
            if tenant.max_users is not None:
                active = TenantMembership.objects.filter(tenant=tenant, is_active=True).count()
                if active >= tenant.max_users:
                    raise TenantLimitError(
                        f'Tenant {tenant.slug} reached its user limit ({tenant.max_users})'
                    )

        if membership is None:
            membership = TenantMembership.objects.create(tenant=tenant, user=user, role=role)
        else:
            membership.role = role
            membership.is_active = True
            membership.save(update_fields=['role', 'is_active', 'updated_at'])

        logger.info(f'Membership granted: {user.email} -> {tenant.slug} ({role})')
        log_event('membership_granted', actor=by, subject=membership, role=role)
        return membership

    @staticmethod
    def deactivate_member(membership, by=None):
        membership.is_active = False
        membership.save(update_fields=['is_active', 'updated_at'])
        logger.info(f'Membership deactivated: {membership.user.email} -> {membership.tenant.slug}')
        log_event('membership_revoked', actor=by, subject=membership)
        return membership

    # ─── Selection ───

    @staticmethod
    def selectable_tenants(user):
        """Tenants a manager can switch between, with the user's role in each."""
        memberships = user.active_memberships().filter(
            role__in=(Role.TENANT_ADMIN, Role.PROJECT_MANAGER),
            tenant__is_active=True,
            tenant__status=Tenant.Status.ACTIVE,
        ).order_by('tenant__name')
        return [
            {
                'id': str(m.tenant.id),
                'slug': m.tenant.slug,
                'name': m.tenant.name,
                'role': m.role,
                'url': m.tenant.get_url(),
            }
            for m in memberships
        ]
