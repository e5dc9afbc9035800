"""
Projects: fundraising campaigns of a tenant, their priced products and invitations.
"""
import secrets
from datetime import timedelta
from decimal import Decimal

from django.conf import settings
from django.core.validators import FileExtensionValidator, MinValueValidator
from django.db import models
from django.db.models import Q, Sum
from django.utils import timezone

from tenants.mixins import TenantModelMixin, TenantQuerySet


# ═══════════════════════════════════════════════════════════════
# ENUMS
# ═══════════════════════════════════════════════════════════════

class ProjectStatus(models.TextChoices):
    DRAFT = 'draft', 'Draft'
    ACTIVE = 'active', 'Active'
    PAUSED = 'paused', 'Paused'
    COMPLETED = 'completed', 'Completed'
    CANCELLED = 'cancelled', 'Cancelled'

    @property
    def accepts_contributions(self):
        return self == ProjectStatus.ACTIVE

    @property
    def is_ongoing(self):
        return self in (ProjectStatus.DRAFT, ProjectStatus.ACTIVE, ProjectStatus.PAUSED)

    @property
    def is_final(self):
        return self in (ProjectStatus.COMPLETED, ProjectStatus.CANCELLED)

    @property
    def css_class(self):
        return STATUS_CSS[self]

    def valid_transitions(self):
        return STATUS_TRANSITIONS[self]

    def can_transition_to(self, new_status):
        return ProjectStatus(new_status) in STATUS_TRANSITIONS[self]

    def transition_description(self, new_status):
        new_status = ProjectStatus(new_status)
        if not self.can_transition_to(new_status):
            return f'Invalid transition from {self.label} to {new_status.label}'
        return TRANSITION_DESCRIPTIONS.get(
            (self, new_status),
            f'Transitioning from {self.label} to {new_status.label}',
        )


STATUS_TRANSITIONS = {
    ProjectStatus.DRAFT: (ProjectStatus.ACTIVE, ProjectStatus.CANCELLED),
    ProjectStatus.ACTIVE: (ProjectStatus.PAUSED, ProjectStatus.COMPLETED, ProjectStatus.CANCELLED),
    ProjectStatus.PAUSED: (ProjectStatus.ACTIVE, ProjectStatus.COMPLETED, ProjectStatus.CANCELLED),
    ProjectStatus.COMPLETED: (),
    ProjectStatus.CANCELLED: (),
}

TRANSITION_DESCRIPTIONS = {
    (ProjectStatus.DRAFT, ProjectStatus.ACTIVE): 'Activating project to accept contributions',
    (ProjectStatus.DRAFT, ProjectStatus.CANCELLED): 'Cancelling draft project',
    (ProjectStatus.ACTIVE, ProjectStatus.PAUSED): 'Pausing active project',
    (ProjectStatus.ACTIVE, ProjectStatus.COMPLETED): 'Completing active project',
    (ProjectStatus.ACTIVE, ProjectStatus.CANCELLED): 'Cancelling active project',
    (ProjectStatus.PAUSED, ProjectStatus.ACTIVE): 'Resuming paused project',
    (ProjectStatus.PAUSED, ProjectStatus.COMPLETED): 'Completing paused project',
    (ProjectStatus.PAUSED, ProjectStatus.CANCELLED): 'Cancelling paused project',
}

STATUS_CSS = {
    ProjectStatus.DRAFT: 'bg-gray-100 text-gray-800',
    ProjectStatus.ACTIVE: 'bg-green-100 text-green-800',
    ProjectStatus.PAUSED: 'bg-yellow-100 text-yellow-800',
    ProjectStatus.COMPLETED: 'bg-blue-100 text-blue-800',
    ProjectStatus.CANCELLED: 'bg-red-100 text-red-800',
}


class ProjectVisibility(models.TextChoices):
    PUBLIC = 'public', 'Public'
    PRIVATE = 'private', 'Private'
    INVITE_ONLY = 'invite_only', 'Invite Only'

    @property
    def description(self):
        return VISIBILITY_DESCRIPTIONS[self]

    @property
    def is_publicly_discoverable(self):
        return self == ProjectVisibility.PUBLIC

    @property
    def has_restricted_access(self):
        return self in (ProjectVisibility.PRIVATE, ProjectVisibility.INVITE_ONLY)


VISIBILITY_DESCRIPTIONS = {
    ProjectVisibility.PUBLIC: 'Anyone can view and join this project',
    ProjectVisibility.PRIVATE: 'Only tenant members can view and join this project',
    ProjectVisibility.INVITE_ONLY: 'Only invited users can view and join this project',
}


class PaymentOption(models.TextChoices):
    FULL = 'full', 'Full payment'
    INSTALLMENTS = 'installments', 'Installments'


class InstallmentFrequency(models.TextChoices):
    MONTHLY = 'monthly', 'Monthly'
    QUARTERLY = 'quarterly', 'Quarterly'
    CUSTOM = 'custom', 'Custom'


def default_payment_options():
    return [PaymentOption.FULL.value, PaymentOption.INSTALLMENTS.value]


# ═══════════════════════════════════════════════════════════════
# PROJECT
# ═══════════════════════════════════════════════════════════════

class ProjectQuerySet(TenantQuerySet):

    def publicly_discoverable(self):
        return self.filter(
            visibility=ProjectVisibility.PUBLIC,
            status=ProjectStatus.ACTIVE,
            tenant__is_active=True,
            tenant__status='active',
        )

    def search(self, term):
        if not term:
            return self
        return self.filter(Q(name__icontains=term) | Q(description__icontains=term))


class ProjectManager(models.Manager.from_queryset(ProjectQuerySet)):
    pass


class Project(TenantModelMixin, models.Model):
    name = models.CharField(max_length=255)
    slug = models.SlugField(max_length=255)
    description = models.TextField(blank=True, default='')
    visibility = models.CharField(
        max_length=20, choices=ProjectVisibility.choices, default=ProjectVisibility.PUBLIC,
    )
    requires_approval = models.BooleanField(default=False)
    max_contributors = models.PositiveIntegerField(null=True, blank=True, help_text='Empty = unlimited')

    # === Money ===
    total_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    minimum_contribution = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    payment_options = models.JSONField(default=default_payment_options)
    installment_frequency = models.CharField(
        max_length=20, choices=InstallmentFrequency.choices, default=InstallmentFrequency.MONTHLY,
    )
    custom_installment_months = models.PositiveIntegerField(null=True, blank=True)

    # === Timeline ===
    start_date = models.DateField(null=True, blank=True)
    end_date = models.DateField(null=True, blank=True)
    registration_deadline = models.DateField(null=True, blank=True)

    # === Ownership ===
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='created_projects',
    )
    managed_by = models.JSONField(default=list, blank=True, help_text='Ids of users managing the project')

    status = models.CharField(
        max_length=20, choices=ProjectStatus.choices, default=ProjectStatus.DRAFT, db_index=True,
    )
    settings = models.JSONField(default=dict, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = ProjectManager()

    class Meta:
        ordering = ['-created_at']
        constraints = [
            models.UniqueConstraint(fields=['tenant', 'slug'], name='project_unique_slug_per_tenant'),
        ]
        indexes = [
            models.Index(fields=['tenant', 'status'], name='project_tenant_status_idx'),
            models.Index(fields=['visibility', 'status'], name='project_visibility_status_idx'),
        ]

    def __str__(self):
        return f'{self.name} ({self.status})'

    # === Status helpers ===

    @property
    def project_status(self):
        return ProjectStatus(self.status)

    @property
    def project_visibility(self):
        return ProjectVisibility(self.visibility)

    def accepts_contributions(self):
        return self.project_status.accepts_contributions

    def is_final(self):
        return self.project_status.is_final

    def can_transition_to(self, new_status):
        return self.project_status.can_transition_to(new_status)

    def is_publicly_discoverable(self):
        return self.visibility == ProjectVisibility.PUBLIC and self.status == ProjectStatus.ACTIVE

    def offers(self, payment_option):
        return payment_option in (self.payment_options or [])

    # === Management ===

    def is_manager(self, user):
        """Creator, listed manager, or tenant admin / project manager of the tenant."""
        if user is None or not user.is_authenticated:
            return False
        if self.created_by_id == user.pk:
            return True
        if user.pk in (self.managed_by or []):
            return True
        return user.can_manage_projects(self.tenant)

    def has_contributions(self):
        return self.contributions.exists()

    def registration_open(self, today=None):
        today = today or timezone.localdate()
        return self.registration_deadline is None or today <= self.registration_deadline

    # === Money ===

    def products_total(self):
        return self.products.aggregate(total=Sum('price'))['total'] or Decimal('0.00')

    def statistics(self, today=None):
        today = today or timezone.localdate()
        contributions = self.contributions.all()
        total_contributors = contributions.values('user').distinct().count()
        total_raised = contributions.aggregate(total=Sum('total_paid'))['total'] or Decimal('0.00')

        completion = Decimal('0.00')
        if self.total_amount and self.total_amount > 0:
            completion = min(total_raised / self.total_amount * 100, Decimal('100'))
            completion = completion.quantize(Decimal('0.01'))

        days_remaining = None
        if self.end_date is not None:
            days_remaining = max((self.end_date - today).days, 0)

        average = Decimal('0.00')
        if total_contributors:
            average = (total_raised / total_contributors).quantize(Decimal('0.01'))

        return {
            'total_contributors': total_contributors,
            'total_raised': total_raised,
            'completion_percentage': completion,
            'days_remaining': days_remaining,
            'average_contribution': average,
        }


# ═══════════════════════════════════════════════════════════════
# PRODUCT
# ═══════════════════════════════════════════════════════════════

class Product(TenantModelMixin, models.Model):
    """Priced item of a project; project total = sum of product prices."""

    project = models.ForeignKey(Project, on_delete=models.CASCADE, related_name='products')
    name = models.CharField(max_length=255)
    description = models.TextField(blank=True, default='')
    price = models.DecimalField(
        max_digits=12, decimal_places=2, validators=[MinValueValidator(Decimal('0.01'))],
    )
    image = models.FileField(
        upload_to='products/%Y/%m/',
        null=True, blank=True,
        validators=[FileExtensionValidator(['jpg', 'jpeg', 'png', 'gif', 'webp'])],
    )
    sort_order = models.PositiveIntegerField(default=0)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['sort_order', 'id']
        indexes = [
            models.Index(fields=['project', 'sort_order'], name='product_project_order_idx'),
        ]

    def __str__(self):
        return f'{self.name} ({self.price})'


# ═══════════════════════════════════════════════════════════════
# INVITATIONS
# ═══════════════════════════════════════════════════════════════

def generate_invitation_token():
    return secrets.token_urlsafe(30)[:40]


def default_invitation_expiry():
    return timezone.now() + timedelta(days=settings.PROJECT_INVITATION_TTL_DAYS)


class ProjectInvitation(models.Model):

    class Status(models.TextChoices):
        PENDING = 'pending', 'Pending'
        ACCEPTED = 'accepted', 'Accepted'
        DECLINED = 'declined', 'Declined'
        EXPIRED = 'expired', 'Expired'

    project = models.ForeignKey(Project, on_delete=models.CASCADE, related_name='invitations')
    email = models.EmailField()
    invited_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='sent_project_invitations',
    )
    token = models.CharField(max_length=40, unique=True, default=generate_invitation_token)
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.PENDING, db_index=True)
    expires_at = models.DateTimeField(default=default_invitation_expiry)
    accepted_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['project', 'email'], name='invitation_project_email_idx'),
        ]

    def __str__(self):
        return f'{self.email} -> {self.project.name} ({self.status})'

    @property
    def tenant(self):
        return self.project.tenant

    def is_expired(self):
        return self.expires_at <= timezone.now()

    def is_pending(self):
        return self.status == self.Status.PENDING and not self.is_expired()

    def matches(self, user):
        return bool(user and user.is_authenticated and user.email.lower() == self.email.lower())
