"""
Tests for tenant applications.

Covers:
- Reference number format
- Submission: validation, confirmation and admin notification mail
- Approval: tenant, admin user, membership, onboarding, approval mail
- Rejection and the single-review rule
- Public status lookup and admin endpoints
"""
import re

from django.contrib.auth import get_user_model
from django.core import mail
from django.core.cache import cache
from django.test import TestCase
from rest_framework import status
from rest_framework.test import APITestCase

from accounts.models import Role
from core.testing import make_tenant, make_user
from tenants.models import OnboardingProgress, Tenant, TenantMembership
from .models import TenantApplication
from .services import ApplicationReviewError, TenantApplicationService

User = get_user_model()

REFERENCE_RE = re.compile(r'^TA-\d{8}-\d{6}-[A-Z0-9]{4}$')


def application_payload(**overrides):
    data = {
        'organization_name': 'Riverside Community Trust',
        'business_description': 'We raise money for neighbourhood facilities and run volunteer programs.',
        'industry_type': TenantApplication.Industry.NONPROFIT,
        'contact_person_name': 'Maria Lopez',
        'contact_person_email': 'Maria@Riverside.org',
        'contact_person_phone': '+1 555 010 2030',
    }
    data.update(overrides)
    return data


def make_application(**overrides):
    data = application_payload(**overrides)
    data['contact_person_email'] = data['contact_person_email'].lower()
    return TenantApplication.objects.create(**data)


class TenantApplicationModelTest(TestCase):

    def test_reference_number_format(self):
        application = make_application()
        self.assertRegex(application.reference_number, REFERENCE_RE)

    def test_reference_number_is_kept_on_save(self):
        application = make_application()
        reference = application.reference_number
        application.notes = 'checked'
        application.save()
        self.assertEqual(application.reference_number, reference)

    def test_status_helpers(self):
        application = make_application()
        self.assertTrue(application.is_pending())
        self.assertTrue(application.can_be_reviewed())


class TenantApplicationServiceTest(TestCase):

    def setUp(self):
        self.system_admin = make_user('root@example.com', role=Role.SYSTEM_ADMIN)

    def test_submit_sends_confirmation_and_admin_notification(self):
        data = application_payload(contact_person_email='maria@riverside.org')

        with self.captureOnCommitCallbacks(execute=True):
            application = TenantApplicationService.submit(data)

        self.assertEqual(application.status, TenantApplication.Status.PENDING)
        self.assertEqual(len(mail.outbox), 2)
        recipients = sorted(message.to[0] for message in mail.outbox)
        self.assertEqual(recipients, ['maria@riverside.org', 'root@example.com'])
        confirmation = next(m for m in mail.outbox if m.to == ['maria@riverside.org'])
        self.assertIn(application.reference_number, confirmation.subject)
        self.assertIn(application.reference_number, confirmation.body)

    def test_approve_creates_tenant_with_admin(self):
        application = make_application()

        with self.captureOnCommitCallbacks(execute=True):
            tenant = TenantApplicationService.approve(application, self.system_admin, 'Looks good')

        application.refresh_from_db()
        self.assertEqual(application.status, TenantApplication.Status.APPROVED)
        self.assertEqual(application.reviewer, self.system_admin)
        self.assertIsNotNone(application.reviewed_at)

        self.assertEqual(tenant.slug, 'riverside-community-trust')
        self.assertEqual(tenant.application, application)
        self.assertTrue(tenant.is_operational())

        user = User.objects.get(email='maria@riverside.org')
        self.assertEqual(user.role, Role.CONTRIBUTOR)
        membership = TenantMembership.objects.get(tenant=tenant, user=user)
        self.assertEqual(membership.role, Role.TENANT_ADMIN)
        self.assertEqual(OnboardingProgress.objects.filter(tenant=tenant).count(), 4)

        self.assertEqual(len(mail.outbox), 1)
        self.assertEqual(mail.outbox[0].to, ['maria@riverside.org'])
        self.assertIn(tenant.get_url('/login'), mail.outbox[0].body)

    def test_approval_password_works_for_login(self):
        application = make_application()
        with self.captureOnCommitCallbacks(execute=True):
            TenantApplicationService.approve(application, self.system_admin)

        body = mail.outbox[0].body
        user = User.objects.get(email='maria@riverside.org')
        password = next(
            line.split(':', 1)[1].strip()
            for line in body.splitlines()
            if 'Temporary password:' in line
        )
        self.assertTrue(user.check_password(password))

    def test_approve_reuses_existing_user(self):
        existing = make_user('maria@riverside.org')
        application = make_application()

        tenant = TenantApplicationService.approve(application, self.system_admin)

        self.assertEqual(User.objects.filter(email='maria@riverside.org').count(), 1)
        self.assertTrue(existing.is_tenant_admin(tenant))

    def test_approve_suffixes_taken_slug(self):
        make_tenant('riverside-community-trust')
        tenant = TenantApplicationService.approve(make_application(), self.system_admin)
        self.assertEqual(tenant.slug, 'riverside-community-trust-1')

    def test_reject(self):
        application = make_application()

        with self.captureOnCommitCallbacks(execute=True):
            TenantApplicationService.reject(application, self.system_admin, 'Incomplete details')

        application.refresh_from_db()
        self.assertEqual(application.status, TenantApplication.Status.REJECTED)
        self.assertEqual(application.rejection_reason, 'Incomplete details')
        self.assertFalse(Tenant.objects.exists())
        self.assertEqual(len(mail.outbox), 1)

    def test_application_is_reviewed_once(self):
        application = make_application()
        TenantApplicationService.reject(application, self.system_admin, 'No')

        with self.assertRaises(ApplicationReviewError):
            TenantApplicationService.approve(application, self.system_admin)
        with self.assertRaises(ApplicationReviewError):
            TenantApplicationService.reject(application, self.system_admin, 'Again')


class TenantApplicationAPITest(APITestCase):

    def setUp(self):
        cache.clear()
        self.client.defaults['HTTP_HOST'] = 'pledgehub.test'
        self.system_admin = make_user('root@example.com', role=Role.SYSTEM_ADMIN)

    def test_submit(self):
        with self.captureOnCommitCallbacks(execute=True):
            response = self.client.post('/api/applications/', application_payload(), format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertRegex(response.data['reference_number'], REFERENCE_RE)
        self.assertEqual(response.data['status'], TenantApplication.Status.PENDING)
        application = TenantApplication.objects.get()
        self.assertEqual(application.contact_person_email, 'maria@riverside.org')
        self.assertEqual(len(mail.outbox), 2)

    def test_submit_validation(self):
        response = self.client.post('/api/applications/', application_payload(
            organization_name='Bad <Name>',
            business_description='Too short',
            contact_person_name='R2D2',
            contact_person_phone='call me',
        ), format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        for field in ('organization_name', 'business_description',
                      'contact_person_name', 'contact_person_phone'):
            self.assertIn(field, response.data)

    def test_duplicate_organization_name(self):
        make_application()
        response = self.client.post('/api/applications/', application_payload(
            organization_name='riverside community trust',
        ), format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('organization_name', response.data)

    def test_status_lookup(self):
        application = make_application()
        response = self.client.get(f'/api/applications/status/{application.reference_number}/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], TenantApplication.Status.PENDING)
        self.assertNotIn('notes', response.data)

        response = self.client.get('/api/applications/status/TA-UNKNOWN/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_admin_review_requires_system_admin(self):
        application = make_application()
        self.client.force_authenticate(make_user('someone@example.com'))
        response = self.client.post(f'/api/admin/applications/{application.pk}/approve/', {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_admin_approve_then_conflict(self):
        application = make_application()
        self.client.force_authenticate(self.system_admin)

        response = self.client.post(f'/api/admin/applications/{application.pk}/approve/',
                                    {'notes': 'ok'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['tenant']['slug'], 'riverside-community-trust')
        self.assertEqual(response.data['application']['tenant_id'], response.data['tenant']['id'])

        response = self.client.post(f'/api/admin/applications/{application.pk}/reject/',
                                    {'rejection_reason': 'late'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)

    def test_admin_reject_requires_reason(self):
        application = make_application()
        self.client.force_authenticate(self.system_admin)
        response = self.client.post(f'/api/admin/applications/{application.pk}/reject/', {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_admin_list_filters(self):
        make_application()
        make_application(organization_name='Hilltop School', contact_person_email='head@hilltop.edu',
                         industry_type=TenantApplication.Industry.EDUCATION)
        self.client.force_authenticate(self.system_admin)

        response = self.client.get('/api/admin/applications/', {'industry_type': 'education'})
        self.assertEqual([a['organization_name'] for a in response.data], ['Hilltop School'])

        response = self.client.get('/api/admin/applications/', {'search': 'riverside'})
        self.assertEqual(len(response.data), 1)
