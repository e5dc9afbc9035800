"""
Finance: contributions (pledges), their installment schedules, gateway
transactions and the platform fees booked on every successful payment.
"""
from decimal import Decimal

from django.conf import settings
from django.db import models
from django.db.models import Sum

from tenants.mixins import TenantModelMixin

ZERO = Decimal('0.00')


class PaymentType(models.TextChoices):
    FULL = 'full', 'Full payment'
    INSTALLMENTS = 'installments', 'Installments'


class Contribution(TenantModelMixin, models.Model):
    """A user's pledge toward a project. One per (user, project)."""

    class Status(models.TextChoices):
        ACTIVE = 'active', 'Active'
        COMPLETED = 'completed', 'Completed'
        SUSPENDED = 'suspended', 'Suspended'
        CANCELLED = 'cancelled', 'Cancelled'

    class ApprovalStatus(models.TextChoices):
        PENDING = 'pending', 'Pending'
        APPROVED = 'approved', 'Approved'
        REJECTED = 'rejected', 'Rejected'

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='contributions',
    )
    project = models.ForeignKey(
        'projects.Project',
        on_delete=models.CASCADE,
        related_name='contributions',
    )

    # === Commitment ===
    total_committed = models.DecimalField(max_digits=12, decimal_places=2)
    payment_type = models.CharField(max_length=20, choices=PaymentType.choices)
    installment_amount = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    installment_frequency = models.CharField(max_length=20, blank=True, default='')
    total_installments = models.PositiveIntegerField(null=True, blank=True)

    # === Progress ===
    arrears_amount = models.DecimalField(max_digits=10, decimal_places=2, default=ZERO)
    arrears_paid = models.DecimalField(max_digits=10, decimal_places=2, default=ZERO)
    total_paid = models.DecimalField(max_digits=12, decimal_places=2, default=ZERO)
    next_payment_due = models.DateField(null=True, blank=True, db_index=True)

    status = models.CharField(max_length=20, choices=Status.choices, default=Status.ACTIVE, db_index=True)
    joined_date = models.DateField()

    # === Approval ===
    approval_status = models.CharField(
        max_length=20, choices=ApprovalStatus.choices, default=ApprovalStatus.APPROVED, db_index=True,
    )
    approved_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True, blank=True,
        related_name='approved_contributions',
    )
    approved_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']
        constraints = [
            models.UniqueConstraint(fields=['user', 'project'], name='contribution_unique_user_project'),
        ]

    def __str__(self):
        return f'{self.user} -> {self.project.name} ({self.total_paid}/{self.total_committed})'

    @property
    def outstanding(self):
        return max(self.total_committed - self.total_paid, ZERO)

    @property
    def outstanding_arrears(self):
        return max(self.arrears_amount - self.arrears_paid, ZERO)

    def is_fully_paid(self):
        return self.total_paid >= self.total_committed

    def is_pending_approval(self):
        return self.approval_status == self.ApprovalStatus.PENDING

    def accepts_payments(self):
        return (self.status == self.Status.ACTIVE
                and self.approval_status == self.ApprovalStatus.APPROVED)

    def progress_percentage(self):
        if not self.total_committed:
            return ZERO
        return min(self.total_paid / self.total_committed * 100, Decimal('100')).quantize(Decimal('0.01'))


class PaymentSchedule(TenantModelMixin, models.Model):
    """One installment of a contribution."""

    class Status(models.TextChoices):
        PENDING = 'pending', 'Pending'
        PAID = 'paid', 'Paid'
        OVERDUE = 'overdue', 'Overdue'
        SKIPPED = 'skipped', 'Skipped'

    contribution = models.ForeignKey(Contribution, on_delete=models.CASCADE, related_name='schedules')
    amount = models.DecimalField(max_digits=10, decimal_places=2)
    due_date = models.DateField(db_index=True)
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.PENDING, db_index=True)
    transaction = models.ForeignKey(
        'finance.Transaction',
        on_delete=models.SET_NULL,
        null=True, blank=True,
        related_name='schedules',
    )
    paid_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['due_date', 'id']

    def __str__(self):
        return f'{self.amount} due {self.due_date} ({self.status})'

    def is_unpaid(self):
        return self.status in (self.Status.PENDING, self.Status.OVERDUE)


class Transaction(TenantModelMixin, models.Model):
    """
    Payment gateway result. Append-only: a recorded transaction is never
    edited, corrections are new rows.
    """

    class Type(models.TextChoices):
        FULL_PAYMENT = 'full_payment', 'Full payment'
        INSTALLMENT = 'installment', 'Installment'
        ARREARS = 'arrears', 'Arrears'
        PARTIAL = 'partial', 'Partial'

    class Status(models.TextChoices):
        PENDING = 'pending', 'Pending'
        SUCCESS = 'success', 'Success'
        FAILED = 'failed', 'Failed'
        CANCELLED = 'cancelled', 'Cancelled'

    contribution = models.ForeignKey(Contribution, on_delete=models.PROTECT, related_name='transactions')
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name='transactions')
    gateway_reference = models.CharField(max_length=100, unique=True)
    amount = models.DecimalField(max_digits=10, decimal_places=2)
    type = models.CharField(max_length=20, choices=Type.choices)
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.PENDING, db_index=True)
    gateway_response = models.JSONField(null=True, blank=True)
    failure_reason = models.CharField(max_length=500, blank=True, default='')
    processed_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['tenant', 'status'], name='transaction_tenant_status_idx'),
        ]

    def __str__(self):
        return f'{self.gateway_reference}: {self.amount} ({self.status})'

    def save(self, *args, **kwargs):
        if self.pk is not None and not self._state.adding:
            raise ValueError('Transactions are immutable once recorded')
        super().save(*args, **kwargs)


class PlatformFee(TenantModelMixin, models.Model):
    """Platform share of one successful transaction."""

    class Status(models.TextChoices):
        PENDING = 'pending', 'Pending'
        CALCULATED = 'calculated', 'Calculated'
        PAID = 'paid', 'Paid'

    project = models.ForeignKey('projects.Project', on_delete=models.CASCADE, related_name='platform_fees')
    transaction = models.OneToOneField(Transaction, on_delete=models.CASCADE, related_name='platform_fee')
    project_amount = models.DecimalField(max_digits=12, decimal_places=2)
    fee_percentage = models.DecimalField(max_digits=5, decimal_places=2)
    fee_amount = models.DecimalField(max_digits=10, decimal_places=2)
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.PENDING, db_index=True)
    calculated_at = models.DateTimeField(null=True, blank=True)
    paid_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f'{self.fee_amount} ({self.fee_percentage}%) on {self.transaction.gateway_reference}'

    @classmethod
    def totals(cls, qs=None):
        qs = cls.objects.all() if qs is None else qs
        data = qs.aggregate(project_amount=Sum('project_amount'), fee_amount=Sum('fee_amount'))
        return {key: value or ZERO for key, value in data.items()}
