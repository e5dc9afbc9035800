"""
API tests for finance: pledging, contribution review, payments and platform fees.
"""
from decimal import Decimal

from django.core.cache import cache
from rest_framework import status
from rest_framework.test import APITestCase

from accounts.models import Role
from core.testing import add_member, make_contribution, make_project, make_tenant, make_user
from projects.models import ProjectStatus, ProjectVisibility
from .models import Contribution, Transaction


class FinanceAPITestCase(APITestCase):

    def setUp(self):
        cache.clear()
        self.tenant = make_tenant('acme')
        self.admin = make_user('boss@example.com')
        self.manager = make_user('pm@example.com')
        self.contributor = make_user('c@example.com')
        add_member(self.tenant, self.admin, Role.TENANT_ADMIN)
        add_member(self.tenant, self.manager, Role.PROJECT_MANAGER)
        add_member(self.tenant, self.contributor, Role.CONTRIBUTOR)
        self.project = make_project(self.tenant, self.admin, status=ProjectStatus.ACTIVE)
        self.client.defaults['HTTP_HOST'] = 'acme.pledgehub.test'


class ContributeAPITest(FinanceAPITestCase):

    def setUp(self):
        super().setUp()
        self.url = f'/api/projects/{self.project.pk}/contribute/'

    def test_pledge_installments(self):
        self.client.force_authenticate(self.contributor)
        response = self.client.post(self.url, {
            'payment_type': 'installments', 'total_installments': 4,
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['total_installments'], 4)
        self.assertEqual(len(response.data['schedules']), 4)
        self.assertEqual(Decimal(response.data['installment_amount']), Decimal('250.00'))
        self.assertEqual(response.data['approval_status'], Contribution.ApprovalStatus.APPROVED)

    def test_second_pledge_is_forbidden(self):
        self.client.force_authenticate(self.contributor)
        self.client.post(self.url, {'payment_type': 'full'}, format='json')
        response = self.client.post(self.url, {'payment_type': 'full'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_creator_cannot_pledge(self):
        self.client.force_authenticate(self.admin)
        response = self.client.post(self.url, {'payment_type': 'full'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_invalid_pledges(self):
        self.client.force_authenticate(self.contributor)
        response = self.client.post(self.url, {'payment_type': 'crypto'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        self.project.minimum_contribution = Decimal('500.00')
        self.project.save()
        response = self.client.post(self.url, {'payment_type': 'full', 'total_committed': '100.00'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_private_project_hidden_from_outsiders(self):
        self.project.visibility = ProjectVisibility.PRIVATE
        self.project.save()
        self.client.force_authenticate(make_user('outsider@example.com'))
        response = self.client.post(self.url, {'payment_type': 'full'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_project_of_other_tenant(self):
        foreign = make_project(make_tenant('globex'), self.admin, name='Foreign', status=ProjectStatus.ACTIVE)
        self.client.force_authenticate(self.contributor)
        response = self.client.post(f'/api/projects/{foreign.pk}/contribute/', {'payment_type': 'full'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)


class ContributionAPITest(FinanceAPITestCase):

    def setUp(self):
        super().setUp()
        self.own = make_contribution(self.project, self.contributor)
        self.other = make_contribution(self.project, make_user('d@example.com'))

    def test_contributors_see_their_own(self):
        self.client.force_authenticate(self.contributor)
        response = self.client.get('/api/contributions/')
        self.assertEqual([c['id'] for c in response.data], [self.own.pk])

        response = self.client.get(f'/api/contributions/{self.other.pk}/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_managers_see_tenant_contributions(self):
        self.client.force_authenticate(self.manager)
        response = self.client.get('/api/contributions/', {'project': self.project.pk})
        self.assertEqual(len(response.data), 2)

        response = self.client.get('/api/contributions/', {'project': 'abc'})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data), 2)

        response = self.client.get(f'/api/contributions/{self.own.pk}/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['transactions'], [])

    def test_review(self):
        pending = make_contribution(
            self.project, make_user('e@example.com'),
            approval_status=Contribution.ApprovalStatus.PENDING,
        )
        self.client.force_authenticate(self.contributor)
        self.assertEqual(
            self.client.get('/api/contributions/', {'approval_status': 'pending'}).data, [],
        )

        self.client.force_authenticate(self.manager)
        response = self.client.get('/api/contributions/', {'approval_status': 'pending'})
        self.assertEqual([c['id'] for c in response.data], [pending.pk])

        response = self.client.post(f'/api/contributions/{pending.pk}/approve/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['approval_status'], Contribution.ApprovalStatus.APPROVED)

        response = self.client.post(f'/api/contributions/{pending.pk}/reject/')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)

    def test_contributor_cannot_approve(self):
        self.client.force_authenticate(self.contributor)
        response = self.client.post(f'/api/contributions/{self.own.pk}/approve/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_owner_cancels(self):
        self.client.force_authenticate(self.contributor)
        response = self.client.post(f'/api/contributions/{self.own.pk}/cancel/')
        self.assertEqual(response.data['status'], Contribution.Status.CANCELLED)
        response = self.client.post(f'/api/contributions/{self.own.pk}/cancel/')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)

    def test_record_payment(self):
        url = f'/api/contributions/{self.own.pk}/payments/'
        self.client.force_authenticate(self.manager)

        response = self.client.post(url, {'reference': 'GW-1', 'amount': '400.00'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['transaction']['type'], Transaction.Type.PARTIAL)
        self.assertEqual(Decimal(response.data['contribution']['total_paid']), Decimal('400.00'))
        self.assertEqual(Decimal(response.data['contribution']['outstanding']), Decimal('600.00'))

        response = self.client.post(url, {'reference': 'GW-1', 'amount': '400.00'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)

        response = self.client.post(url, {'reference': 'GW-2', 'amount': '900.00'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        response = self.client.post(url, {
            'reference': 'GW-3', 'amount': '600.00', 'success': False,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('failure_reason', response.data)

        response = self.client.post(url, {
            'reference': 'GW-3', 'amount': '600.00', 'success': False, 'failure_reason': 'Declined',
        }, format='json')
        self.assertEqual(response.data['transaction']['status'], Transaction.Status.FAILED)

        response = self.client.get(f'/api/contributions/{self.own.pk}/')
        self.assertEqual(len(response.data['transactions']), 2)

    def test_contributor_cannot_record_payment(self):
        self.client.force_authenticate(self.contributor)
        response = self.client.post(f'/api/contributions/{self.own.pk}/payments/',
                                    {'reference': 'GW-1', 'amount': '10.00'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_schedule(self):
        self.client.force_authenticate(self.contributor)
        response = self.client.get(f'/api/contributions/{self.own.pk}/schedule/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data, [])


class AdminPlatformFeeAPITest(FinanceAPITestCase):

    def test_fees_with_totals(self):
        contribution = make_contribution(self.project, self.contributor)
        self.client.force_authenticate(self.manager)
        self.client.post(f'/api/contributions/{contribution.pk}/payments/',
                         {'reference': 'GW-1', 'amount': '200.00'}, format='json')

        self.client.force_authenticate(make_user('root@example.com', role=Role.SYSTEM_ADMIN))
        response = self.client.get('/api/admin/platform-fees/', {'tenant': 'acme'}, HTTP_HOST='pledgehub.test')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data['results']), 1)
        self.assertEqual(response.data['results'][0]['transaction_reference'], 'GW-1')
        self.assertEqual(Decimal(response.data['totals']['fee_amount']), Decimal('10.00'))

        response = self.client.get('/api/admin/platform-fees/', {'project': 'abc'}, HTTP_HOST='pledgehub.test')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data['results']), 1)

    def test_requires_system_admin(self):
        self.client.force_authenticate(self.admin)
        response = self.client.get('/api/admin/platform-fees/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
