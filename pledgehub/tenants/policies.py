"""
Authorization policies for tenants, users and the platform itself.

A policy is a pure yes/no answer about (user, ability, object); it reads
relations but never writes. DRF permission classes and views call them.
"""
from accounts.models import Role


def is_authenticated(user):
    return user is not None and getattr(user, 'is_authenticated', False)


def is_system_admin(user):
    return is_authenticated(user) and user.is_system_admin()


def share_tenant_as_admin(user, other):
    """True when ``user`` is tenant admin in a tenant ``other`` belongs to."""
    admin_tenant_ids = user.tenant_memberships.filter(
        is_active=True, role=Role.TENANT_ADMIN,
    ).values_list('tenant_id', flat=True)
    return other.tenant_memberships.filter(
        is_active=True, tenant_id__in=list(admin_tenant_ids),
    ).exists()


class TenantPolicy:

    @staticmethod
    def view_any(user):
        return is_system_admin(user)

    @staticmethod
    def view(user, tenant):
        if not is_authenticated(user):
            return False
        return user.is_system_admin() or user.is_member_of(tenant)

    @staticmethod
    def create(user):
        return is_system_admin(user)

    @staticmethod
    def update(user, tenant):
        if not is_authenticated(user):
            return False
        return user.is_system_admin() or user.is_tenant_admin(tenant)

    delete = update
    restore = update
    force_delete = update
    manage_settings = update
    invite_users = update

    @staticmethod
    def suspend(user, tenant=None):
        return is_system_admin(user)

    @staticmethod
    def view_platform_analytics(user, tenant=None):
        return is_system_admin(user)


class PlatformPolicy:
    """Platform-wide abilities. Every one is reserved to system administrators."""

    @staticmethod
    def access_admin_panel(user):
        return is_system_admin(user)

    manage_tenants = access_admin_panel
    review_applications = access_admin_panel
    view_platform_analytics = access_admin_panel
    manage_platform_fees = access_admin_panel
    manage_system_settings = access_admin_panel
    view_all_users = access_admin_panel
    manage_user_roles = access_admin_panel
    view_system_logs = access_admin_panel
    manage_integrations = access_admin_panel
    perform_maintenance = access_admin_panel
    export_platform_data = access_admin_panel
    manage_payment_providers = access_admin_panel


class UserPolicy:

    @staticmethod
    def view_any(user):
        if not is_authenticated(user):
            return False
        return user.is_system_admin() or user.is_tenant_admin()

    create = view_any

    @staticmethod
    def view(user, model):
        if not is_authenticated(user):
            return False
        if user.pk == model.pk or user.is_system_admin():
            return True
        return share_tenant_as_admin(user, model)

    update = view

    @staticmethod
    def delete(user, model):
        if not is_authenticated(user) or user.pk == model.pk:
            return False
        if user.is_system_admin():
            return True
        return share_tenant_as_admin(user, model)

    @staticmethod
    def restore(user, model):
        if not is_authenticated(user):
            return False
        return user.is_system_admin() or share_tenant_as_admin(user, model)

    force_delete = restore

    @staticmethod
    def change_global_role(user, model):
        if not is_authenticated(user) or user.pk == model.pk:
            return False
        return user.is_system_admin()

    assign_system_admin_role = change_global_role

    @staticmethod
    def manage_tenant_roles(user, model, tenant):
        if not is_authenticated(user) or user.pk == model.pk:
            return False
        if user.is_system_admin():
            return True
        return user.has_role_in_tenant(Role.TENANT_ADMIN, tenant)
