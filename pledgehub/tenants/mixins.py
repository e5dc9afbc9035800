"""
Tenant mixins: reusable pieces for tenant-scoped models and ViewSets.
"""
from django.db import models
from rest_framework.exceptions import PermissionDenied

from .context import get_current_tenant


# ═══════════════════════════════════════════════════════════════
# MODEL MIXINS
# ═══════════════════════════════════════════════════════════════

class TenantQuerySet(models.QuerySet):
    """QuerySet that knows how to narrow itself to one tenant."""

    def for_tenant(self, tenant):
        """Explicit tenant filter. ``None`` leaves the queryset unscoped."""
        if tenant is None:
            return self
        return self.filter(tenant=tenant)

    def for_current_tenant(self):
        """Filter by the tenant from the request context."""
        return self.for_tenant(get_current_tenant())


class TenantManager(models.Manager.from_queryset(TenantQuerySet)):
    pass


class TenantModelMixin(models.Model):
    """
    Abstract mixin adding the tenant FK.

    Usage:
        class Project(TenantModelMixin, models.Model):
            name = models.CharField(...)
    """
    tenant = models.ForeignKey(
        'tenants.Tenant',
        on_delete=models.CASCADE,
        related_name='%(class)ss',
        db_index=True,
    )

    objects = TenantManager()

    class Meta:
        abstract = True


# ═══════════════════════════════════════════════════════════════
# VIEWSET / VIEW MIXINS
# ═══════════════════════════════════════════════════════════════

class TenantViewSetMixin:
    """
    Mixin for DRF ViewSets: filters the queryset by request.tenant and stamps
    the tenant on created objects.

    Usage:
        class ProjectViewSet(TenantViewSetMixin, viewsets.ModelViewSet):
            queryset = Project.objects.all()
    """

    tenant_field = 'tenant'
    tenant_required = True

    def get_queryset(self):
        qs = super().get_queryset()
        tenant = getattr(self.request, 'tenant', None)

        if tenant is not None:
            qs = qs.filter(**{self.tenant_field: tenant})
        elif self.tenant_required:
            return qs.none()

        return qs

    def perform_create(self, serializer):
        tenant = getattr(self.request, 'tenant', None)
        if self.tenant_required and tenant is None:
            raise PermissionDenied('Tenant could not be determined.')
        serializer.save(tenant=tenant)


class TenantAPIViewMixin:
    """
    Mixin for plain APIViews: refuses the request when no tenant is resolved.
    """

    tenant_required = True

    def initial(self, request, *args, **kwargs):
        super().initial(request, *args, **kwargs)
        if self.tenant_required and getattr(request, 'tenant', None) is None:
            raise PermissionDenied('Tenant could not be determined.')
