"""
Authorization policies for projects and project invitations.
"""
from django.db.models import Q
from django.utils import timezone

from accounts.models import MANAGER_ROLES, Role
from tenants.policies import is_authenticated, is_system_admin
from .models import ProjectInvitation, ProjectStatus, ProjectVisibility


def can_manage(user, project):
    """Creator, listed manager, or tenant admin / project manager of the project's tenant."""
    return is_authenticated(user) and project.is_manager(user)


def has_accepted_invitation(user, project):
    return project.invitations.filter(
        email__iexact=user.email, status=ProjectInvitation.Status.ACCEPTED,
    ).exists()


class ProjectPolicy:

    @staticmethod
    def view_any(user, tenant=None):
        if not is_authenticated(user):
            return False
        return user.is_system_admin() or user.is_member_of(tenant)

    @staticmethod
    def view(user, project):
        visibility = project.visibility
        if visibility == ProjectVisibility.PUBLIC and not is_authenticated(user):
            return True
        if not is_authenticated(user):
            return False
        if user.is_system_admin() or can_manage(user, project):
            return True

        if visibility == ProjectVisibility.PUBLIC:
            return True
        if visibility == ProjectVisibility.PRIVATE:
            return user.is_member_of(project.tenant)
        if visibility == ProjectVisibility.INVITE_ONLY:
            return user.is_tenant_admin(project.tenant) or has_accepted_invitation(user, project)
        return False

    @staticmethod
    def create(user, tenant=None):
        if not is_authenticated(user):
            return False
        return user.is_system_admin() or (tenant is not None and user.is_tenant_admin(tenant))

    create_for_tenant = create

    @staticmethod
    def update(user, project):
        return is_system_admin(user) or can_manage(user, project)

    restore = update
    view_audit_logs = update

    @staticmethod
    def delete(user, project):
        if is_system_admin(user):
            return True
        if not can_manage(user, project):
            return False
        return not project.contributions.filter(
            Q(status='active') | Q(approval_status='pending')
        ).exists()

    @staticmethod
    def force_delete(user, project=None):
        return is_system_admin(user)

    view_cross_tenant = force_delete
    override_restrictions = force_delete

    # === Transitions ===

    @staticmethod
    def _transition(user, project, allowed_from):
        if is_system_admin(user):
            return True
        return can_manage(user, project) and project.status in allowed_from

    @staticmethod
    def activate(user, project):
        return ProjectPolicy._transition(user, project, (ProjectStatus.DRAFT,))

    @staticmethod
    def pause(user, project):
        return ProjectPolicy._transition(user, project, (ProjectStatus.ACTIVE,))

    @staticmethod
    def resume(user, project):
        return ProjectPolicy._transition(user, project, (ProjectStatus.PAUSED,))

    @staticmethod
    def complete(user, project):
        return ProjectPolicy._transition(user, project, (ProjectStatus.ACTIVE, ProjectStatus.PAUSED))

    @staticmethod
    def cancel(user, project):
        return ProjectPolicy._transition(
            user, project, (ProjectStatus.DRAFT, ProjectStatus.ACTIVE, ProjectStatus.PAUSED),
        )

    # === Content ===

    @staticmethod
    def manage_products(user, project):
        if is_system_admin(user):
            return True
        if not can_manage(user, project):
            return False
        return project.status == ProjectStatus.DRAFT or not project.has_contributions()

    @staticmethod
    def view_statistics(user, project):
        if not is_authenticated(user):
            return False
        if user.is_system_admin() or can_manage(user, project):
            return True
        return project.contributions.filter(user=user).exists()

    @staticmethod
    def invite_users(user, project):
        if is_system_admin(user):
            return True
        return can_manage(user, project) and project.project_visibility.has_restricted_access

    @staticmethod
    def contribute(user, project, today=None):
        """Everything that must hold before ``user`` can pledge to ``project``."""
        if not is_authenticated(user):
            return False
        if project.created_by_id == user.pk:
            return False
        if not project.accepts_contributions():
            return False
        if not ProjectPolicy.view(user, project):
            return False
        if not project.registration_open(today or timezone.localdate()):
            return False
        if project.max_contributors is not None:
            contributors = project.contributions.values('user').distinct().count()
            if contributors >= project.max_contributors:
                return False
        return not project.contributions.filter(user=user).exists()

    @staticmethod
    def abilities(user, project):
        """Flags the client uses to render project actions."""
        return {
            'update': ProjectPolicy.update(user, project),
            'delete': ProjectPolicy.delete(user, project),
            'activate': ProjectPolicy.activate(user, project),
            'pause': ProjectPolicy.pause(user, project),
            'resume': ProjectPolicy.resume(user, project),
            'complete': ProjectPolicy.complete(user, project),
            'cancel': ProjectPolicy.cancel(user, project),
            'manage_products': ProjectPolicy.manage_products(user, project),
            'invite_users': ProjectPolicy.invite_users(user, project),
            'contribute': ProjectPolicy.contribute(user, project),
            'view_statistics': ProjectPolicy.view_statistics(user, project),
        }


class ProjectInvitationPolicy:

    @staticmethod
    def view_any(user, tenant=None):
        if not is_authenticated(user):
            return False
        return user.is_system_admin() or user.has_role_in_tenant(MANAGER_ROLES, tenant)

    create = view_any

    @staticmethod
    def _is_tenant_manager(user, invitation):
        return user.has_role_in_tenant(MANAGER_ROLES, invitation.project.tenant)

    @staticmethod
    def view(user, invitation):
        if not is_authenticated(user):
            return False
        if invitation.invited_by_id == user.pk or invitation.matches(user):
            return True
        return ProjectInvitationPolicy._is_tenant_manager(user, invitation)

    @staticmethod
    def update(user, invitation):
        if not is_authenticated(user):
            return False
        if invitation.invited_by_id == user.pk:
            return True
        return ProjectInvitationPolicy._is_tenant_manager(user, invitation)

    delete = update

    @staticmethod
    def force_delete(user, invitation):
        if not is_authenticated(user):
            return False
        return user.has_role_in_tenant(Role.TENANT_ADMIN, invitation.project.tenant)

    @staticmethod
    def accept(user, invitation):
        return is_authenticated(user) and invitation.matches(user)

    decline = accept
