from django.contrib.auth.models import AbstractUser, BaseUserManager
from django.db import models
from django.utils.translation import gettext_lazy as _


class Role(models.TextChoices):
    """Every role known to the platform, global and tenant-level."""
    SYSTEM_ADMIN = 'system_admin', _('System administrator')
    TENANT_ADMIN = 'tenant_admin', _('Tenant administrator')
    PROJECT_MANAGER = 'project_manager', _('Project manager')
    CONTRIBUTOR = 'contributor', _('Contributor')


GLOBAL_ROLE_CHOICES = [
    (Role.SYSTEM_ADMIN.value, Role.SYSTEM_ADMIN.label),
    (Role.CONTRIBUTOR.value, Role.CONTRIBUTOR.label),
]

TENANT_ROLE_CHOICES = [
    (Role.TENANT_ADMIN.value, Role.TENANT_ADMIN.label),
    (Role.PROJECT_MANAGER.value, Role.PROJECT_MANAGER.label),
    (Role.CONTRIBUTOR.value, Role.CONTRIBUTOR.label),
]

# Tenant roles allowed to run projects
MANAGER_ROLES = (Role.TENANT_ADMIN, Role.PROJECT_MANAGER)


class CustomUserManager(BaseUserManager):
    """Manager for CustomUser, where email is the unique identifier."""

    def normalize_email(self, email):
        return super().normalize_email(email or '').strip().lower()

    def create_user(self, email, password=None, **extra_fields):
        if not email:
            raise ValueError(_('Email is required'))
        email = self.normalize_email(email)
        extra_fields.setdefault('role', Role.CONTRIBUTOR)
        user = self.model(email=email, **extra_fields)
        user.set_password(password)
        user.save(using=self._db)
        return user

    def create_superuser(self, email, password=None, **extra_fields):
        extra_fields.setdefault('is_staff', True)
        extra_fields.setdefault('is_superuser', True)
        extra_fields.setdefault('is_active', True)
        extra_fields.setdefault('role', Role.SYSTEM_ADMIN)

        if extra_fields.get('is_staff') is not True:
            raise ValueError(_('Superuser must have is_staff=True'))
        if extra_fields.get('is_superuser') is not True:
            raise ValueError(_('Superuser must have is_superuser=True'))

        return self.create_user(email, password, **extra_fields)

    def system_admins(self):
        return self.filter(is_active=True).filter(
            models.Q(role=Role.SYSTEM_ADMIN) | models.Q(is_superuser=True)
        )


class CustomUser(AbstractUser):
    """
    Platform user. Logs in by email (username is disabled).

    The global ``role`` only distinguishes system administrators from
    everybody else; tenant-level roles live on ``tenants.TenantMembership``.
    """

    username = None
    email = models.EmailField(_('email address'), unique=True)
    name = models.CharField(_('name'), max_length=255, blank=True, default='')
    role = models.CharField(
        _('role'),
        max_length=20,
        choices=GLOBAL_ROLE_CHOICES,
        default=Role.CONTRIBUTOR,
        db_index=True,
    )
    phone = models.CharField(_('phone'), max_length=20, blank=True, default='')
    avatar_url = models.URLField(_('avatar'), blank=True, default='')
    bio = models.TextField(_('bio'), blank=True, default='')
    email_verified_at = models.DateTimeField(_('email verified at'), null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    USERNAME_FIELD = 'email'
    REQUIRED_FIELDS = []

    objects = CustomUserManager()

    class Meta:
        verbose_name = _('user')
        verbose_name_plural = _('users')
        ordering = ['email']

    def __str__(self):
        return self.email

    def get_full_name(self):
        return self.name or super().get_full_name() or self.email

    # === Roles ===

    def is_system_admin(self):
        return self.role == Role.SYSTEM_ADMIN or self.is_superuser

    def active_memberships(self):
        return self.tenant_memberships.filter(is_active=True).select_related('tenant')

    def tenants(self):
        """Tenants where the user holds an active membership."""
        from tenants.models import Tenant
        return Tenant.objects.filter(
            memberships__user=self, memberships__is_active=True,
        ).distinct()

    def admin_tenants(self):
        """Tenants the user can administer (tenant admin or project manager)."""
        from tenants.models import Tenant
        return Tenant.objects.filter(
            memberships__user=self,
            memberships__is_active=True,
            memberships__role__in=MANAGER_ROLES,
        ).distinct()

    def needs_tenant_selection(self):
        return self.admin_tenants().count() > 1

    def role_in_tenant(self, tenant):
        """Active tenant role, or None when the user is not a member."""
        if tenant is None:
            return None
        membership = self.tenant_memberships.filter(
            tenant=tenant, is_active=True,
        ).only('role').first()
        return membership.role if membership else None

    def has_role_in_tenant(self, role, tenant):
        roles = role if isinstance(role, (list, tuple, set, frozenset)) else (role,)
        return self.role_in_tenant(tenant) in roles

    def is_tenant_admin(self, tenant=None):
        qs = self.tenant_memberships.filter(is_active=True, role=Role.TENANT_ADMIN)
        if tenant is not None:
            qs = qs.filter(tenant=tenant)
        return qs.exists()

    def can_manage_projects(self, tenant):
        return self.has_role_in_tenant(MANAGER_ROLES, tenant)

    def is_member_of(self, tenant):
        return self.role_in_tenant(tenant) is not None
