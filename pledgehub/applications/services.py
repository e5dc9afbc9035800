"""
Tenant application workflow: submit -> approve (creates a tenant) | reject.
"""
import logging

from django.conf import settings
from django.contrib.auth import get_user_model
from django.db import transaction
from django.urls import reverse
from django.utils import timezone
from django.utils.crypto import get_random_string

from accounts.models import Role
from core.audit import log_event
from core.emails import email_service
from tenants.models import OnboardingProgress, Tenant, TenantMembership
from tenants.services import TenantService
from .models import TenantApplication

logger = logging.getLogger(__name__)

User = get_user_model()

TEMPORARY_PASSWORD_LENGTH = 12


class ApplicationReviewError(Exception):
    """Raised when an application can no longer be reviewed."""
    pass


class TenantApplicationService:

    @staticmethod
    @transaction.atomic
    def submit(data) -> TenantApplication:
        """
        Store a new application and notify the applicant and system admins.

        Args:
            data: validated fields of TenantApplication
        """
        application = TenantApplication.objects.create(
            status=TenantApplication.Status.PENDING,
            submitted_at=timezone.now(),
            **data,
        )
        logger.info(
            f'Tenant application submitted: {application.reference_number} '
            f'({application.organization_name})'
        )
        log_event('tenant_application_submitted', subject=application,
                  organization=application.organization_name)

        transaction.on_commit(lambda: TenantApplicationService._send_confirmation(application))
        transaction.on_commit(lambda: TenantApplicationService._notify_system_admins(application))
        return application

    @staticmethod
    @transaction.atomic
    def approve(application, reviewer, notes=None) -> Tenant:
        """
        Approve a pending application.

        Creates the tenant, the contact user (if missing) with a fresh
        temporary password, the tenant_admin membership and the onboarding
        checklist.

        Raises:
            ApplicationReviewError: application already reviewed
        """
        application = TenantApplication.objects.select_for_update().get(pk=application.pk)
        if not application.can_be_reviewed():
            raise ApplicationReviewError(
                f'Application {application.reference_number} is already {application.status}'
            )

        application.status = TenantApplication.Status.APPROVED
        application.reviewed_at = timezone.now()
        application.reviewer = reviewer
        application.notes = notes or ''
        application.save(update_fields=['status', 'reviewed_at', 'reviewer', 'notes', 'updated_at'])

        tenant = Tenant.objects.create(
            slug=TenantService.unique_slug(application.organization_name),
            name=application.organization_name,
            contact_name=application.contact_person_name,
            contact_email=application.contact_person_email,
            contact_phone=application.contact_person_phone,
            status=Tenant.Status.ACTIVE,
            is_active=True,
            application=application,
            platform_fee_percentage=settings.DEFAULT_PLATFORM_FEE_PERCENTAGE,
        )

        user = User.objects.filter(email__iexact=application.contact_person_email).first()
        if user is None:
            user = User.objects.create_user(
                email=application.contact_person_email,
                name=application.contact_person_name,
                phone=application.contact_person_phone,
                role=Role.CONTRIBUTOR,
                email_verified_at=timezone.now(),
            )

        TenantMembership.objects.create(
            tenant=tenant, user=user, role=Role.TENANT_ADMIN, is_active=True,
        )

        temporary_password = get_random_string(TEMPORARY_PASSWORD_LENGTH)
        user.set_password(temporary_password)
        user.save(update_fields=['password'])

        OnboardingProgress.seed_for(tenant)

        logger.info(
            f'Tenant application approved: {application.reference_number} -> tenant {tenant.slug}, '
            f'admin {user.email}'
        )
        log_event('tenant_application_approved', actor=reviewer, subject=application,
                  tenant=tenant, tenant_id=str(tenant.id))

        transaction.on_commit(
            lambda: TenantApplicationService._send_approval(application, tenant, user, temporary_password)
        )
        return tenant

    @staticmethod
    @transaction.atomic
    def reject(application, reviewer, reason, notes=None) -> TenantApplication:
        """
        Reject a pending application.

        Raises:
            ApplicationReviewError: application already reviewed
        """
        application = TenantApplication.objects.select_for_update().get(pk=application.pk)
        if not application.can_be_reviewed():
            raise ApplicationReviewError(
                f'Application {application.reference_number} is already {application.status}'
            )

        application.status = TenantApplication.Status.REJECTED
        application.reviewed_at = timezone.now()
        application.reviewer = reviewer
        application.rejection_reason = reason
        application.notes = notes or ''
        application.save(update_fields=[
            'status', 'reviewed_at', 'reviewer', 'rejection_reason', 'notes', 'updated_at',
        ])

        logger.info(f'Tenant application rejected: {application.reference_number}, reason="{reason}"')
        log_event('tenant_application_rejected', actor=reviewer, subject=application, reason=reason)

        transaction.on_commit(lambda: TenantApplicationService._send_rejection(application))
        return application

    # ─── Email ───

    @staticmethod
    def status_url(application):
        path = reverse('application-status', kwargs={'reference': application.reference_number})
        return f'{settings.APP_URL.rstrip("/")}{path}'

    @staticmethod
    def _send_confirmation(application):
        email_service.send(
            application.contact_person_email,
            f'Application received - {application.reference_number}',
            'applications/emails/confirmation.txt',
            {
                'application': application,
                'status_url': TenantApplicationService.status_url(application),
            },
        )

    @staticmethod
    def _notify_system_admins(application):
        admins = list(User.objects.system_admins().values_list('email', flat=True))
        if not admins:
            logger.warning(f'No system administrators to notify about {application.reference_number}')
            return
        email_service.send(
            admins,
            f'New tenant application: {application.organization_name}',
            'applications/emails/admin_notification.txt',
            {'application': application},
        )

    @staticmethod
    def _send_approval(application, tenant, user, temporary_password):
        email_service.send(
            user.email,
            f'Your organization {tenant.name} has been approved',
            'applications/emails/approval.txt',
            {
                'application': application,
                'tenant': tenant,
                'user': user,
                'temporary_password': temporary_password,
                'login_url': tenant.get_url('/login'),
                'tenant_url': tenant.get_url(),
            },
        )

    @staticmethod
    def _send_rejection(application):
        email_service.send(
            application.contact_person_email,
            f'Update on your application {application.reference_number}',
            'applications/emails/rejection.txt',
            {'application': application},
        )
