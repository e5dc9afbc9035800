"""
Tenant models: core of the multi-tenant architecture.

Approach: shared database, shared schema, tenant FK on every top-level model.
Tenant = organization running contribution projects.
"""

import uuid
from decimal import Decimal

from django.conf import settings
from django.core.validators import MaxValueValidator, MinValueValidator, RegexValidator
from django.db import models
from django.db.models import Sum
from django.utils import timezone

from accounts.models import TENANT_ROLE_CHOICES, Role

hex_color_validator = RegexValidator(
    regex=r'^#[0-9A-Fa-f]{6}$',
    message='Color must be a hex value like #3B82F6.',
)


class Tenant(models.Model):
    """
    Organization account. All business data is bound to a tenant through an FK.
    """

    class Status(models.TextChoices):
        ACTIVE = 'active', 'Active'
        SUSPENDED = 'suspended', 'Suspended'
        INACTIVE = 'inactive', 'Inactive'

    # === Identity ===
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    slug = models.SlugField(
        max_length=100, unique=True, db_index=True,
        help_text='Unique identifier used for the subdomain and URL prefix',
    )
    name = models.CharField(max_length=255)
    domain = models.CharField(
        max_length=255, unique=True, null=True, blank=True,
        help_text='Optional custom domain',
    )
    status = models.CharField(
        max_length=20, choices=Status.choices, default=Status.ACTIVE, db_index=True,
    )
    is_active = models.BooleanField(default=True)

    # === Branding ===
    logo_url = models.URLField(blank=True, default='')
    primary_color = models.CharField(max_length=7, default='#3B82F6', validators=[hex_color_validator])
    secondary_color = models.CharField(max_length=7, default='#10B981', validators=[hex_color_validator])

    # === Billing & limits ===
    platform_fee_percentage = models.DecimalField(
        max_digits=5, decimal_places=2, default=Decimal('5.00'),
        validators=[MinValueValidator(Decimal('0')), MaxValueValidator(Decimal('100'))],
    )
    trial_ends_at = models.DateTimeField(null=True, blank=True)
    max_projects = models.PositiveIntegerField(null=True, blank=True, help_text='Empty = unlimited')
    max_users = models.PositiveIntegerField(null=True, blank=True, help_text='Empty = unlimited')
    max_storage_mb = models.PositiveIntegerField(default=10000)

    # === Contacts ===
    contact_name = models.CharField(max_length=255, blank=True, default='')
    contact_email = models.EmailField(blank=True, default='')
    contact_phone = models.CharField(max_length=20, blank=True, default='')

    # === Origin ===
    application = models.ForeignKey(
        'applications.TenantApplication',
        on_delete=models.SET_NULL,
        null=True, blank=True,
        related_name='tenants',
    )

    # === Suspension ===
    suspended_at = models.DateTimeField(null=True, blank=True)
    suspended_reason = models.TextField(blank=True, default='')
    suspended_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True, blank=True,
        related_name='+',
    )

    settings = models.JSONField(default=dict, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['name']
        indexes = [
            models.Index(fields=['status', 'is_active'], name='tenant_status_active_idx'),
        ]

    def __str__(self):
        return f'{self.name} ({self.slug})'

    def is_operational(self):
        return self.is_active and self.status == self.Status.ACTIVE

    def is_suspended(self):
        return self.status == self.Status.SUSPENDED

    def is_on_trial(self):
        return self.trial_ends_at is not None and self.trial_ends_at > timezone.now()

    def get_url(self, path=''):
        """Subdomain URL of the tenant, built from APP_URL."""
        scheme, _, host = settings.APP_URL.partition('://')
        base = f'{scheme}://{self.slug}.{host.rstrip("/")}'
        if path:
            return f'{base}/{path.lstrip("/")}'
        return base

    def metrics(self):
        from finance.models import Contribution
        from projects.models import ProjectStatus

        contributions = Contribution.objects.filter(tenant=self)
        return {
            'total_users': self.memberships.filter(is_active=True).count(),
            'total_projects': self.projects.count(),
            'active_projects': self.projects.filter(status=ProjectStatus.ACTIVE).count(),
            'total_contributions': contributions.count(),
            'total_revenue': contributions.aggregate(total=Sum('total_paid'))['total'] or Decimal('0.00'),
        }

    def to_frontend_config(self):
        """Public branding payload for the client."""
        return {
            'id': str(self.id),
            'slug': self.slug,
            'name': self.name,
            'domain': self.domain or '',
            'url': self.get_url(),
            'logo_url': self.logo_url or '',
            'primary_color': self.primary_color,
            'secondary_color': self.secondary_color,
            'status': self.status,
        }


class TenantMembership(models.Model):
    """
    User-to-tenant role assignment.
    A user may belong to several tenants with different roles.
    """

    tenant = models.ForeignKey(
        Tenant, on_delete=models.CASCADE,
        related_name='memberships',
    )
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='tenant_memberships',
    )
    role = models.CharField(
        max_length=20, choices=TENANT_ROLE_CHOICES,
        default=Role.CONTRIBUTOR,
    )
    is_active = models.BooleanField(default=True)
    joined_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        unique_together = ['tenant', 'user']
        indexes = [
            models.Index(fields=['tenant', 'role'], name='membership_tenant_role_idx'),
            models.Index(fields=['user', 'is_active'], name='membership_user_active_idx'),
        ]

    def __str__(self):
        return f'{self.user} -> {self.tenant} ({self.role})'


class OnboardingProgress(models.Model):
    """One onboarding checklist step of a freshly approved tenant."""

    DEFAULT_STEPS = (
        ('profile_setup', 'Complete Organization Profile'),
        ('team_invitation', 'Invite Team Members'),
        ('first_project', 'Create Your First Project'),
        ('platform_tour', 'Take the Platform Tour'),
    )

    tenant = models.ForeignKey(
        Tenant, on_delete=models.CASCADE,
        related_name='onboarding_steps',
    )
    step_key = models.CharField(max_length=100)
    step_name = models.CharField(max_length=255)
    completed = models.BooleanField(default=False)
    completed_at = models.DateTimeField(null=True, blank=True)
    data = models.JSONField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        unique_together = ['tenant', 'step_key']
        ordering = ['id']

    def __str__(self):
        return f'{self.tenant.slug}: {self.step_key}'

    def mark_completed(self, data=None):
        self.completed = True
        self.completed_at = timezone.now()
        if data is not None:
            self.data = data
        self.save(update_fields=['completed', 'completed_at', 'data', 'updated_at'])

    def mark_incomplete(self):
        self.completed = False
        self.completed_at = None
        self.save(update_fields=['completed', 'completed_at', 'updated_at'])

    @classmethod
    def seed_for(cls, tenant):
        """Create the default checklist for a tenant, skipping existing steps."""
        for key, name in cls.DEFAULT_STEPS:
            cls.objects.get_or_create(tenant=tenant, step_key=key, defaults={'step_name': name})
