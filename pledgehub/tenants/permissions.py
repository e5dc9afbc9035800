"""
Tenant-aware permissions for DRF.

The middleware fills request.tenant_membership for session users only;
JWT users are authenticated later by DRF, so membership is looked up
lazily through ``current_membership``.
"""
from rest_framework.permissions import BasePermission

from accounts.models import Role


def current_membership(request):
    """Active membership of request.user in request.tenant, or None."""
    tenant = getattr(request, 'tenant', None)
    user = getattr(request, 'user', None)
    if tenant is None or user is None or not user.is_authenticated:
        return None
    membership = getattr(request, 'tenant_membership', None)
    if membership is not None and membership.user_id == user.pk:
        return membership
    membership = tenant.memberships.filter(user=user, is_active=True).first()
    request.tenant_membership = membership
    return membership


class HasTenant(BasePermission):
    """A tenant must be resolved for this endpoint."""

    message = 'Tenant could not be determined.'

    def has_permission(self, request, view):
        return getattr(request, 'tenant', None) is not None


class IsTenantMember(BasePermission):
    """Active member of the current tenant (system admins pass)."""

    message = 'You are not a member of this organization.'

    def has_permission(self, request, view):
        if not request.user or not request.user.is_authenticated:
            return False
        if request.user.is_system_admin():
            return True
        return current_membership(request) is not None


class IsTenantAdmin(BasePermission):
    """Tenant admin of the current tenant (system admins pass)."""

    message = 'Tenant administrator role required.'

    def has_permission(self, request, view):
        if not request.user or not request.user.is_authenticated:
            return False
        if request.user.is_system_admin():
            return True
        membership = current_membership(request)
        return membership is not None and membership.role == Role.TENANT_ADMIN

