"""
API tests for projects: tenant scope, invitations, public catalogue and admin.
"""
from datetime import timedelta
from decimal import Decimal

from django.core import mail
from django.core.cache import cache
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APITestCase

from accounts.models import Role
from core.testing import add_member, make_contribution, make_project, make_tenant, make_user
from .models import Project, ProjectInvitation, ProjectStatus, ProjectVisibility


def create_payload(**overrides):
    today = timezone.localdate()
    data = {
        'name': 'Summer Camp',
        'description': 'Two weeks of outdoor activities for the youth group.',
        'visibility': 'public',
        'total_amount': '900.00',
        'payment_options': ['full', 'installments'],
        'installment_frequency': 'monthly',
        'start_date': (today + timedelta(days=10)).isoformat(),
        'end_date': (today + timedelta(days=100)).isoformat(),
        'products': [
            {'name': 'Tents', 'price': '500.00'},
            {'name': 'Food', 'price': '400.00'},
        ],
    }
    data.update(overrides)
    return data


class ProjectAPITestCase(APITestCase):

    def setUp(self):
        cache.clear()
        self.tenant = make_tenant('acme')
        self.admin = make_user('boss@example.com')
        self.manager = make_user('pm@example.com')
        self.member = make_user('member@example.com')
        add_member(self.tenant, self.admin, Role.TENANT_ADMIN)
        add_member(self.tenant, self.manager, Role.PROJECT_MANAGER)
        add_member(self.tenant, self.member, Role.CONTRIBUTOR)
        self.client.defaults['HTTP_HOST'] = 'acme.pledgehub.test'


class ProjectListCreateAPITest(ProjectAPITestCase):

    def test_create(self):
        self.client.force_authenticate(self.admin)
        response = self.client.post('/api/projects/', create_payload(), format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['slug'], 'summer-camp')
        self.assertEqual(response.data['status'], ProjectStatus.DRAFT)
        self.assertEqual(response.data['products_total'], '900.00')
        self.assertEqual(len(response.data['products']), 2)
        self.assertTrue(response.data['abilities']['activate'])
        project = Project.objects.get(pk=response.data['id'])
        self.assertEqual(project.tenant, self.tenant)

    def test_only_tenant_admin_creates(self):
        self.client.force_authenticate(self.manager)
        response = self.client.post('/api/projects/', create_payload(), format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_create_validation(self):
        self.client.force_authenticate(self.admin)
        today = timezone.localdate()

        response = self.client.post('/api/projects/', create_payload(total_amount='1000.00'), format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('products', response.data)

        response = self.client.post('/api/projects/', create_payload(
            start_date=today.isoformat(),
            installment_frequency=None,
            minimum_contribution='5000.00',
            name='Bad <name>',
        ), format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('name', response.data)

        response = self.client.post('/api/projects/', create_payload(
            start_date=today.isoformat(),
            installment_frequency=None,
            minimum_contribution='5000.00',
        ), format='json')
        for field in ('start_date', 'installment_frequency', 'minimum_contribution'):
            self.assertIn(field, response.data)

        payload = create_payload()
        del payload['products']
        response = self.client.post('/api/projects/', payload, format='json')
        self.assertIn('products', response.data)

    def test_create_validates_managers_and_settings(self):
        outsider = make_user('outsider@example.com')
        self.client.force_authenticate(self.admin)

        response = self.client.post('/api/projects/', create_payload(managed_by=[outsider.pk]), format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('managed_by', response.data)

        response = self.client.post('/api/projects/', create_payload(settings='dark'), format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('settings', response.data)

        response = self.client.post('/api/projects/', create_payload(
            managed_by=[self.manager.pk, self.manager.pk],
            settings={'theme': 'dark', 'cancellation_reason': 'Early'},
        ), format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['managed_by'], [self.manager.pk])
        self.assertEqual(response.data['settings'], {'theme': 'dark'})

    def test_custom_frequency_needs_months(self):
        self.client.force_authenticate(self.admin)
        response = self.client.post('/api/projects/', create_payload(installment_frequency='custom'), format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('custom_installment_months', response.data)

    def test_registration_deadline_rules(self):
        self.client.force_authenticate(self.admin)
        today = timezone.localdate()
        response = self.client.post('/api/projects/', create_payload(
            registration_deadline=(today + timedelta(days=10)).isoformat(),
        ), format='json')
        self.assertIn('registration_deadline', response.data)

        response = self.client.post('/api/projects/', create_payload(
            registration_deadline=(today + timedelta(days=5)).isoformat(),
        ), format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)

    def test_list_for_managers_and_members(self):
        make_project(self.tenant, self.admin, name='Draft Plan')
        make_project(self.tenant, self.admin, name='Open', status=ProjectStatus.ACTIVE)
        make_project(self.tenant, self.admin, name='Members', status=ProjectStatus.ACTIVE,
                     visibility=ProjectVisibility.PRIVATE)
        make_project(self.tenant, self.admin, name='Invited', status=ProjectStatus.ACTIVE,
                     visibility=ProjectVisibility.INVITE_ONLY)

        self.client.force_authenticate(self.manager)
        names = {p['name'] for p in self.client.get('/api/projects/').data}
        self.assertEqual(names, {'Draft Plan', 'Open', 'Members', 'Invited'})

        self.client.force_authenticate(self.member)
        names = {p['name'] for p in self.client.get('/api/projects/').data}
        self.assertEqual(names, {'Open', 'Members'})

    def test_list_filters(self):
        make_project(self.tenant, self.admin, name='Draft Plan')
        make_project(self.tenant, self.admin, name='Open', status=ProjectStatus.ACTIVE)
        self.client.force_authenticate(self.manager)

        response = self.client.get('/api/projects/', {'status': 'active'})
        self.assertEqual([p['name'] for p in response.data], ['Open'])
        response = self.client.get('/api/projects/?status=active&status=draft&sort_by=name&sort_direction=asc')
        self.assertEqual([p['name'] for p in response.data], ['Draft Plan', 'Open'])

    def test_list_requires_membership(self):
        self.client.force_authenticate(make_user('outsider@example.com'))
        response = self.client.get('/api/projects/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_list_requires_tenant(self):
        self.client.force_authenticate(self.admin)
        response = self.client.get('/api/projects/', HTTP_HOST='pledgehub.test')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_tenant_isolation(self):
        other = make_tenant('globex')
        foreign = make_project(other, self.admin, name='Foreign', status=ProjectStatus.ACTIVE)
        self.client.force_authenticate(self.admin)

        self.assertNotIn('Foreign', [p['name'] for p in self.client.get('/api/projects/').data])
        response = self.client.get(f'/api/projects/{foreign.pk}/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)


class ProjectDetailAPITest(ProjectAPITestCase):

    def setUp(self):
        super().setUp()
        self.project = make_project(self.tenant, self.admin)
        self.url = f'/api/projects/{self.project.pk}/'

    def test_draft_hidden_from_members(self):
        self.client.force_authenticate(self.member)
        self.assertEqual(self.client.get(self.url).status_code, status.HTTP_404_NOT_FOUND)

    def test_lifecycle_actions(self):
        self.client.force_authenticate(self.manager)

        response = self.client.post(f'{self.url}activate/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], ProjectStatus.ACTIVE)

        response = self.client.post(f'{self.url}activate/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

        response = self.client.post(f'{self.url}pause/')
        self.assertEqual(response.data['status'], ProjectStatus.PAUSED)
        response = self.client.post(f'{self.url}resume/')
        self.assertEqual(response.data['status'], ProjectStatus.ACTIVE)

        response = self.client.post(f'{self.url}cancel/', {'reason': 'Weather'}, format='json')
        self.assertEqual(response.data['status'], ProjectStatus.CANCELLED)
        self.assertEqual(response.data['settings']['cancellation_reason'], 'Weather')

    def test_activate_not_ready(self):
        self.project.description = ''
        self.project.save()
        self.client.force_authenticate(self.admin)

        response = self.client.post(f'{self.url}activate/')

        self.assertEqual(response.status_code, status.HTTP_422_UNPROCESSABLE_ENTITY)
        self.assertEqual(response.data['errors'], ['Project description is required'])

    def test_members_cannot_transition(self):
        self.project.status = ProjectStatus.ACTIVE
        self.project.save()
        self.client.force_authenticate(self.member)
        response = self.client.post(f'{self.url}pause/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_partial_update(self):
        self.client.force_authenticate(self.manager)
        response = self.client.patch(self.url, {'name': 'Community Hall Roof'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['slug'], 'community-hall-roof')

    def test_update_locked_terms(self):
        self.project.status = ProjectStatus.ACTIVE
        self.project.save()
        make_contribution(self.project, self.member)
        self.client.force_authenticate(self.admin)

        response = self.client.patch(self.url, {'total_amount': '2000.00'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)

    def test_update_replaces_products(self):
        self.client.force_authenticate(self.manager)
        response = self.client.patch(self.url, {
            'total_amount': '1000.00',
            'products': [{'name': 'Only one', 'price': '1000.00'}],
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(
            [(p['name'], Decimal(p['price'])) for p in response.data['products']],
            [('Only one', Decimal('1000.00'))],
        )
        self.assertEqual(list(self.project.products.values_list('name', flat=True)), ['Only one'])

    def test_update_edits_and_deletes_products(self):
        first, second = self.project.products.order_by('sort_order')
        self.client.force_authenticate(self.manager)
        response = self.client.patch(self.url, {
            'total_amount': '1000.00',
            'products': [
                {'id': first.pk, 'name': 'Foundation', 'price': '700.00'},
                {'id': second.pk, 'name': 'Item 2', 'price': '400.00', 'delete': True},
                {'name': 'Windows', 'price': '300.00'},
            ],
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        products = list(self.project.products.order_by('sort_order'))
        self.assertEqual([(p.name, p.price) for p in products],
                         [('Foundation', Decimal('700.00')), ('Windows', Decimal('300.00'))])
        self.assertEqual(products[0].pk, first.pk)
        self.assertEqual([p.sort_order for p in products], [1, 2])
        self.project.refresh_from_db()
        self.assertEqual(self.project.total_amount, Decimal('1000.00'))

    def test_update_products_must_match_total(self):
        self.client.force_authenticate(self.manager)
        response = self.client.patch(self.url, {
            'products': [{'name': 'Only one', 'price': '10.00'}],
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(self.project.products.count(), 2)

    def test_update_rejects_foreign_product(self):
        other = make_project(self.tenant, self.admin, name='Other')
        self.client.force_authenticate(self.manager)
        response = self.client.patch(self.url, {
            'total_amount': '1000.00',
            'products': [{'id': other.products.first().pk, 'name': 'Stolen', 'price': '1000.00'}],
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('products', response.data)
        self.assertEqual(other.products.first().name, 'Item 1')

    def test_update_products_locked_after_contributions(self):
        make_contribution(self.project, self.member)
        self.client.force_authenticate(self.admin)
        response = self.client.patch(self.url, {
            'total_amount': '1000.00',
            'products': [{'name': 'Only one', 'price': '1000.00'}],
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(self.project.products.count(), 2)

    def test_update_managed_by_requires_members(self):
        outsider = make_user('outsider@example.com')
        self.client.force_authenticate(self.admin)

        response = self.client.patch(self.url, {'managed_by': [outsider.pk]}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('managed_by', response.data)

        response = self.client.patch(self.url, {'managed_by': [self.member.pk]}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['managed_by'], [self.member.pk])

    def test_update_keeps_cancellation_settings(self):
        self.project.settings = {'cancellation_reason': 'Weather', 'cancelled_by': self.admin.pk}
        self.project.save()
        self.client.force_authenticate(self.admin)

        response = self.client.patch(self.url, {
            'settings': {'theme': 'dark', 'cancellation_reason': 'Changed', 'cancelled_by': 0},
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['settings'], {
            'theme': 'dark', 'cancellation_reason': 'Weather', 'cancelled_by': self.admin.pk,
        })

    def test_delete(self):
        self.client.force_authenticate(self.admin)
        self.assertEqual(self.client.delete(self.url).status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(Project.objects.filter(pk=self.project.pk).exists())

    def test_delete_with_active_contribution(self):
        self.project.status = ProjectStatus.ACTIVE
        self.project.save()
        make_contribution(self.project, self.member)
        self.client.force_authenticate(self.admin)
        self.assertEqual(self.client.delete(self.url).status_code, status.HTTP_403_FORBIDDEN)

    def test_statistics(self):
        self.project.status = ProjectStatus.ACTIVE
        self.project.save()
        make_contribution(self.project, self.member, total_paid=Decimal('250.00'))

        self.client.force_authenticate(self.manager)
        response = self.client.get(f'{self.url}statistics/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['total_contributors'], 1)
        self.assertEqual(Decimal(response.data['total_raised']), Decimal('250'))
        self.assertEqual(Decimal(response.data['completion_percentage']), Decimal('25'))

        outsider = make_user('other@example.com')
        add_member(self.tenant, outsider)
        self.client.force_authenticate(outsider)
        response = self.client.get(f'{self.url}statistics/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_products(self):
        self.client.force_authenticate(self.manager)

        response = self.client.get(f'{self.url}products/')
        self.assertEqual([p['name'] for p in response.data], ['Item 1', 'Item 2'])

        response = self.client.post(f'{self.url}products/', {'name': 'Chairs', 'price': '250.00'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.project.refresh_from_db()
        self.assertEqual(self.project.total_amount, Decimal('1250.00'))

        response = self.client.post(f'{self.url}products/', {'name': 'Cheap', 'price': '0.50'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        ids = list(self.project.products.values_list('pk', flat=True))
        response = self.client.post(f'{self.url}reorder-products/', {'product_ids': ids[::-1]}, format='json')
        self.assertEqual([p['id'] for p in response.data], ids[::-1])

        response = self.client.post(f'{self.url}reorder-products/', {'product_ids': [999999]}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_product_endpoints(self):
        product = self.project.products.first()
        self.client.force_authenticate(self.manager)

        response = self.client.patch(f'/api/products/{product.pk}/', {'name': 'Big Tents'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['name'], 'Big Tents')

        response = self.client.delete(f'/api/products/{product.pk}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.project.refresh_from_db()
        self.assertEqual(self.project.total_amount, Decimal('400.00'))

    def test_members_cannot_manage_products(self):
        self.project.status = ProjectStatus.ACTIVE
        self.project.save()
        self.client.force_authenticate(self.member)
        response = self.client.post(f'{self.url}products/', {'name': 'Chairs', 'price': '250.00'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)


class InvitationAPITest(ProjectAPITestCase):

    def setUp(self):
        super().setUp()
        self.project = make_project(self.tenant, self.admin, status=ProjectStatus.ACTIVE,
                                    visibility=ProjectVisibility.INVITE_ONLY)
        self.url = f'/api/projects/{self.project.pk}/invitations/'
        self.guest = make_user('guest@example.com')

    def test_invite_and_accept(self):
        self.client.force_authenticate(self.manager)
        with self.captureOnCommitCallbacks(execute=True):
            response = self.client.post(self.url, {'email': 'guest@example.com'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(len(mail.outbox), 1)

        response = self.client.post(self.url, {'email': 'guest@example.com'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)

        self.assertEqual(len(self.client.get(self.url).data), 1)

        token = ProjectInvitation.objects.get().token
        self.client.force_authenticate(self.guest)
        self.assertEqual(self.client.get(f'/api/projects/{self.project.pk}/').status_code,
                         status.HTTP_404_NOT_FOUND)

        response = self.client.post(f'/api/invitations/{token}/accept/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], ProjectInvitation.Status.ACCEPTED)

        response = self.client.post(f'/api/projects/{self.project.pk}/contribute/',
                                    {'payment_type': 'full'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)

    def test_other_user_cannot_accept(self):
        invitation = ProjectInvitation.objects.create(
            project=self.project, email='guest@example.com', invited_by=self.admin,
        )
        self.client.force_authenticate(self.member)
        response = self.client.post(f'/api/invitations/{invitation.token}/accept/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_decline(self):
        invitation = ProjectInvitation.objects.create(
            project=self.project, email='guest@example.com', invited_by=self.admin,
        )
        self.client.force_authenticate(self.guest)
        response = self.client.post(f'/api/invitations/{invitation.token}/decline/')
        self.assertEqual(response.data['status'], ProjectInvitation.Status.DECLINED)

    def test_public_projects_cannot_invite(self):
        public = make_project(self.tenant, self.admin, name='Open', status=ProjectStatus.ACTIVE)
        self.client.force_authenticate(self.admin)
        response = self.client.post(f'/api/projects/{public.pk}/invitations/',
                                    {'email': 'guest@example.com'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)


class PublicProjectAPITest(APITestCase):

    def setUp(self):
        cache.clear()
        self.client.defaults['HTTP_HOST'] = 'pledgehub.test'
        self.tenant = make_tenant('acme', primary_color='#112233')
        owner = make_user('boss@example.com')
        add_member(self.tenant, owner, Role.TENANT_ADMIN)
        self.hall = make_project(self.tenant, owner, status=ProjectStatus.ACTIVE)
        self.draft = make_project(self.tenant, owner, name='Secret Draft')
        make_project(self.tenant, owner, name='Private Hall', status=ProjectStatus.ACTIVE,
                     visibility=ProjectVisibility.PRIVATE)

    def test_list(self):
        response = self.client.get('/api/public/projects/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([p['slug'] for p in response.data], ['community-hall'])
        self.assertEqual(response.data[0]['tenant']['primary_color'], '#112233')
        self.assertFalse(response.data[0]['abilities']['contribute'])

    def test_malformed_filters_are_ignored(self):
        for params in ({'start_date': 'notadate'}, {'end_date': '2030-02-30'},
                       {'tenant_id': 'abc'}, {'created_by': 'x'}):
            response = self.client.get('/api/public/projects/', params)
            self.assertEqual(response.status_code, status.HTTP_200_OK, params)
            self.assertEqual([p['slug'] for p in response.data], ['community-hall'], params)

        response = self.client.get('/api/public/projects/', {'tenant_id': str(self.tenant.pk)})
        self.assertEqual([p['slug'] for p in response.data], ['community-hall'])

    def test_search(self):
        response = self.client.get('/api/public/projects/search/', {'q': 'hall'})
        self.assertEqual([p['slug'] for p in response.data], ['community-hall'])
        self.assertEqual(self.client.get('/api/public/projects/search/').data, [])

    def test_detail(self):
        response = self.client.get('/api/public/projects/acme/community-hall/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data['products']), 2)

        response = self.client.get('/api/public/projects/acme/secret-draft/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        response = self.client.get('/api/public/projects/acme/private-hall/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)


class AdminProjectAPITest(APITestCase):

    def setUp(self):
        cache.clear()
        self.client.defaults['HTTP_HOST'] = 'pledgehub.test'
        self.system_admin = make_user('root@example.com', role=Role.SYSTEM_ADMIN)
        self.acme = make_tenant('acme')
        self.globex = make_tenant('globex')
        owner = make_user('boss@example.com')
        self.project = make_project(self.acme, owner, status=ProjectStatus.ACTIVE)
        make_project(self.globex, owner, name='Globex Fund')
        self.client.force_authenticate(self.system_admin)

    def test_list_across_tenants(self):
        response = self.client.get('/api/admin/projects/')
        self.assertEqual(len(response.data), 2)
        response = self.client.get('/api/admin/projects/', {'tenant_id': str(self.globex.id)})
        self.assertEqual([p['name'] for p in response.data], ['Globex Fund'])

    def test_create_for_tenant(self):
        response = self.client.post('/api/admin/projects/',
                                    create_payload(tenant_id=str(self.globex.id)), format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(Project.objects.get(pk=response.data['id']).tenant, self.globex)

    def test_invalid_transition_is_conflict(self):
        response = self.client.post(f'/api/admin/projects/{self.project.pk}/activate/')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)

    def test_requires_system_admin(self):
        self.client.force_authenticate(make_user('someone@example.com'))
        self.assertEqual(self.client.get('/api/admin/projects/').status_code, status.HTTP_403_FORBIDDEN)
