"""
Platform-level permission classes.

Tenant-level checks live in ``tenants.permissions``.
"""
from rest_framework.permissions import BasePermission


class IsSystemAdmin(BasePermission):
    """Access for system administrators only."""
    message = 'System administrator access required.'

    def has_permission(self, request, view):
        if not request.user or not request.user.is_authenticated:
            return False
        return request.user.is_system_admin()
