"""
Tenant applications: organizations asking to join the platform.

An application is reviewed exactly once by a system administrator;
approval creates the Tenant (see services.TenantApplicationService).
"""
import logging
import secrets
import string
import uuid

from django.conf import settings
from django.db import models
from django.utils import timezone

logger = logging.getLogger(__name__)

REFERENCE_ALPHABET = string.ascii_uppercase + string.digits
REFERENCE_ATTEMPTS = 10


class TenantApplication(models.Model):

    class Status(models.TextChoices):
        PENDING = 'pending', 'Pending review'
        APPROVED = 'approved', 'Approved'
        REJECTED = 'rejected', 'Rejected'

    class Industry(models.TextChoices):
        TECHNOLOGY = 'technology', 'Technology'
        HEALTHCARE = 'healthcare', 'Healthcare'
        FINANCE = 'finance', 'Finance'
        EDUCATION = 'education', 'Education'
        RETAIL = 'retail', 'Retail'
        MANUFACTURING = 'manufacturing', 'Manufacturing'
        CONSULTING = 'consulting', 'Consulting'
        NONPROFIT = 'nonprofit', 'Non-profit'
        MEDIA = 'media', 'Media'
        REAL_ESTATE = 'real_estate', 'Real estate'
        OTHER = 'other', 'Other'

    reference_number = models.CharField(max_length=64, unique=True, editable=False)

    # === Organization ===
    organization_name = models.CharField(max_length=255, unique=True)
    business_description = models.TextField()
    industry_type = models.CharField(max_length=32, choices=Industry.choices)
    business_registration_number = models.CharField(max_length=100, blank=True, default='')
    website_url = models.URLField(blank=True, default='')

    # === Contact person ===
    contact_person_name = models.CharField(max_length=255)
    contact_person_email = models.EmailField()
    contact_person_phone = models.CharField(max_length=20, blank=True, default='')

    # === Review ===
    status = models.CharField(
        max_length=20, choices=Status.choices, default=Status.PENDING, db_index=True,
    )
    submitted_at = models.DateTimeField(default=timezone.now)
    reviewed_at = models.DateTimeField(null=True, blank=True)
    reviewer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True, blank=True,
        related_name='reviewed_applications',
    )
    rejection_reason = models.CharField(max_length=255, blank=True, default='')
    notes = models.TextField(blank=True, default='')

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-submitted_at']
        indexes = [
            models.Index(fields=['status', 'submitted_at'], name='application_status_idx'),
        ]

    def __str__(self):
        return f'{self.reference_number} {self.organization_name} ({self.status})'

    def save(self, *args, **kwargs):
        if not self.reference_number:
            self.reference_number = self.generate_reference_number()
        super().save(*args, **kwargs)

    def is_pending(self):
        return self.status == self.Status.PENDING

    def is_approved(self):
        return self.status == self.Status.APPROVED

    def is_rejected(self):
        return self.status == self.Status.REJECTED

    def can_be_reviewed(self):
        return self.is_pending()

    @classmethod
    def generate_reference_number(cls):
        """
        TA-YYYYMMDD-HHMMSS-XXXX with four random upper-case alphanumerics.

        Falls back to TA-<uuid hex> after REFERENCE_ATTEMPTS collisions.
        """
        for _ in range(REFERENCE_ATTEMPTS):
            stamp = timezone.now().strftime('%Y%m%d-%H%M%S')
            suffix = ''.join(secrets.choice(REFERENCE_ALPHABET) for _ in range(4))
            reference = f'TA-{stamp}-{suffix}'
            if not cls.objects.filter(reference_number=reference).exists():
                return reference
        logger.warning('Reference number collisions exhausted, falling back to UUID')
        return f'TA-{uuid.uuid4().hex.upper()}'
