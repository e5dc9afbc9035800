"""
Tenant Middleware: resolves the tenant of a request and stores it on request.tenant.

Resolution order:
  1. acme.pledgehub.test     -> Tenant(slug='acme')       subdomain of APP_DOMAIN
  2. pledge.acme.org         -> Tenant(domain=...)         custom domain
  3. /t/acme/api/projects/   -> Tenant(slug='acme')       path prefix, stripped before routing
  4. localhost + X-Tenant-ID -> Tenant(slug=header)       development hosts only
  5. session                 -> tenant chosen through /api/tenants/select/

SECURITY:
  - X-Tenant-ID is IGNORED for non-development hosts; only the hostname,
    custom domain, path or the user's own selection decide the tenant.
  - An unknown tenant named by subdomain or path answers 404.

The tenant is also placed in the contextvars context so services, signals
and Celery tasks called during the request see it.
"""

import logging
import re

from django.conf import settings as django_settings
from django.http import JsonResponse

from .context import clear_current_tenant, set_current_tenant
from .services import TenantService

logger = logging.getLogger(__name__)

SESSION_KEY = 'selected_tenant_slug'

PATH_PREFIX_RE = re.compile(r'^/t/(?P<slug>[-a-zA-Z0-9_]+)(?P<rest>/.*)?$')


class TenantNotFound(Exception):
    pass


class TenantMiddleware:
    """
    Resolves the Tenant of a request.

    Must come AFTER SessionMiddleware and AuthenticationMiddleware.

    Sets:
      - request.tenant            = Tenant instance (or None)
      - request.tenant_membership = active TenantMembership of request.user (or None)
    """

    # Paths served without a tenant
    SKIP_PATHS = ('/admin/', '/api/health/', '/static/', '/media/')

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        try:
            tenant = self._resolve_tenant(request)
        except TenantNotFound as exc:
            logger.warning(f'Tenant not found: {exc} (path={request.path})')
            return JsonResponse({'detail': 'Tenant not found.'}, status=404)

        request.tenant = tenant
        set_current_tenant(tenant)

        request.tenant_membership = None
        user = getattr(request, 'user', None)
        if tenant is not None and user is not None and user.is_authenticated:
            request.tenant_membership = tenant.memberships.filter(
                user=user, is_active=True,
            ).first()

        try:
            response = self.get_response(request)
        finally:
            clear_current_tenant()

        return response

    # ─── Resolution ───

    def _resolve_tenant(self, request):
        if request.path.startswith(self.SKIP_PATHS):
            return None

        host = request.get_host().split(':')[0].lower()

        tenant = self._from_host(host)
        if tenant is not None:
            return tenant

        tenant = self._from_path(request)
        if tenant is not None:
            return tenant

        header_slug = request.META.get('HTTP_X_TENANT_ID', '').strip()
        if header_slug:
            if host in self._dev_hosts():
                return self._require(header_slug, source='header')
            logger.warning(
                'X-Tenant-ID header "%s" ignored for non-local host "%s"',
                header_slug, host,
            )

        return self._from_session(request)

    def _from_host(self, host):
        platform_domains = {d.lower() for d in getattr(django_settings, 'PLATFORM_DOMAINS', [])}
        if host in platform_domains or host in self._dev_hosts():
            return None

        app_domain = django_settings.APP_DOMAIN.lower()
        suffix = f'.{app_domain}'
        if host.endswith(suffix):
            slug = host[:-len(suffix)]
            if slug == 'www':
                return None
            return self._require(slug, source='subdomain')

        return TenantService.find_by_domain(host)

    def _from_path(self, request):
        match = PATH_PREFIX_RE.match(request.path_info)
        if match is None:
            return None
        tenant = self._require(match.group('slug'), source='path')
        # Route the rest of the path as if the prefix was not there
        request.path_info = match.group('rest') or '/'
        return tenant

    def _from_session(self, request):
        session = getattr(request, 'session', None)
        if session is None:
            return None
        slug = session.get(SESSION_KEY)
        if not slug:
            return None
        tenant = TenantService.find_by_slug(slug)
        if tenant is None:
            # Selected tenant was suspended or removed since
            session.pop(SESSION_KEY, None)
        return tenant

    def _require(self, slug, source):
        tenant = TenantService.find_by_slug(slug)
        if tenant is None:
            raise TenantNotFound(f'{source} slug "{slug}"')
        return tenant

    @staticmethod
    def _dev_hosts():
        return {h.lower() for h in getattr(django_settings, 'TENANT_DEV_HOSTS', [])}
