"""
Authorization policies for contributions.

Tenant checks go through the user's memberships in the contribution's
tenant, never through a single tenant stored on the user.
"""
from accounts.models import MANAGER_ROLES, Role
from tenants.policies import is_authenticated


def _is_owner(user, contribution):
    return contribution.user_id == user.pk


def _manages_tenant(user, contribution):
    return user.has_role_in_tenant(MANAGER_ROLES, contribution.tenant)


class ContributionPolicy:

    @staticmethod
    def view_any(user, tenant=None):
        return is_authenticated(user)

    @staticmethod
    def view(user, contribution):
        if not is_authenticated(user):
            return False
        if _is_owner(user, contribution) or user.is_system_admin():
            return True
        return _manages_tenant(user, contribution)

    @staticmethod
    def update(user, contribution):
        if not is_authenticated(user):
            return False
        return _is_owner(user, contribution) or _manages_tenant(user, contribution)

    delete = update

    @staticmethod
    def approve(user, contribution):
        return is_authenticated(user) and _manages_tenant(user, contribution)

    restore = approve
    reject = approve
    record_payment = approve

    @staticmethod
    def force_delete(user, contribution):
        if not is_authenticated(user):
            return False
        return user.has_role_in_tenant(Role.TENANT_ADMIN, contribution.tenant)
