"""
API tests for tenants: tenant-scoped endpoints, selection and platform administration.
"""
from django.core.cache import cache
from rest_framework import status
from rest_framework.test import APITestCase

from accounts.models import Role
from core.testing import add_member, make_project, make_tenant, make_user
from tenants.middleware import SESSION_KEY
from tenants.models import OnboardingProgress, Tenant, TenantMembership


class TenantScopeAPITest(APITestCase):

    def setUp(self):
        cache.clear()
        self.acme = make_tenant('acme')
        self.globex = make_tenant('globex')
        self.tenant_admin = make_user('boss@example.com')
        self.contributor = make_user('c@example.com')
        add_member(self.acme, self.tenant_admin, Role.TENANT_ADMIN)
        add_member(self.acme, self.contributor, Role.CONTRIBUTOR)
        self.client.defaults['HTTP_HOST'] = 'acme.pledgehub.test'

    def test_config_is_public(self):
        response = self.client.get('/api/tenants/config/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['tenant']['slug'], 'acme')

    def test_config_on_platform_host(self):
        response = self.client.get('/api/tenants/config/', HTTP_HOST='pledgehub.test')
        self.assertIsNone(response.data['tenant'])

    def test_path_prefix_routes_to_tenant(self):
        response = self.client.get('/t/globex/api/tenants/config/', HTTP_HOST='pledgehub.test')
        self.assertEqual(response.data['tenant']['slug'], 'globex')

    def test_unknown_tenant_is_404(self):
        response = self.client.get('/api/tenants/config/', HTTP_HOST='nobody.pledgehub.test')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.json(), {'detail': 'Tenant not found.'})

    def test_current_tenant_for_member(self):
        self.client.force_authenticate(self.contributor)
        response = self.client.get('/api/tenants/current/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['role'], Role.CONTRIBUTOR)

    def test_current_tenant_rejects_non_member(self):
        self.client.force_authenticate(make_user('stranger@example.com'))
        response = self.client.get('/api/tenants/current/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_settings_update_requires_tenant_admin(self):
        self.client.force_authenticate(self.contributor)
        response = self.client.patch('/api/tenants/current/', {'primary_color': '#000000'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

        self.client.force_authenticate(self.tenant_admin)
        response = self.client.patch('/api/tenants/current/', {'primary_color': '#000000'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.acme.refresh_from_db()
        self.assertEqual(self.acme.primary_color, '#000000')

    def test_settings_update_validates_color(self):
        self.client.force_authenticate(self.tenant_admin)
        response = self.client.patch('/api/tenants/current/', {'primary_color': 'blue'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_my_tenants(self):
        add_member(self.globex, self.contributor, Role.PROJECT_MANAGER)
        self.client.force_authenticate(self.contributor)
        response = self.client.get('/api/tenants/my/')
        self.assertEqual([m['tenant']['slug'] for m in response.data], ['acme', 'globex'])

    def test_member_management(self):
        self.client.force_authenticate(self.tenant_admin)
        newcomer = make_user('new@example.com')

        response = self.client.post('/api/tenants/members/', {
            'email': 'NEW@example.com', 'role': Role.PROJECT_MANAGER,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        membership = TenantMembership.objects.get(tenant=self.acme, user=newcomer)
        self.assertEqual(membership.role, Role.PROJECT_MANAGER)

        response = self.client.post(f'/api/tenants/members/{membership.pk}/role/', {'role': Role.CONTRIBUTOR}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        membership.refresh_from_db()
        self.assertEqual(membership.role, Role.CONTRIBUTOR)

        response = self.client.delete(f'/api/tenants/members/{membership.pk}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        membership.refresh_from_db()
        self.assertFalse(membership.is_active)

    def test_tenant_admin_cannot_change_own_role(self):
        self.client.force_authenticate(self.tenant_admin)
        own = TenantMembership.objects.get(tenant=self.acme, user=self.tenant_admin)
        response = self.client.post(f'/api/tenants/members/{own.pk}/role/', {'role': Role.CONTRIBUTOR}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_members_are_isolated_per_tenant(self):
        other = add_member(self.globex, make_user('g@example.com'))
        self.client.force_authenticate(self.tenant_admin)

        listed = self.client.get('/api/tenants/members/').data
        self.assertNotIn(other.pk, [m['id'] for m in listed])
        response = self.client.delete(f'/api/tenants/members/{other.pk}/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_member_limit(self):
        self.acme.max_users = 2
        self.acme.save()
        make_user('new@example.com')
        self.client.force_authenticate(self.tenant_admin)
        response = self.client.post('/api/tenants/members/', {
            'email': 'new@example.com', 'role': Role.CONTRIBUTOR,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)

    def test_onboarding(self):
        OnboardingProgress.seed_for(self.acme)
        self.client.force_authenticate(self.tenant_admin)

        response = self.client.post('/api/tenants/onboarding/platform_tour/complete/', {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['completed'])

        response = self.client.post('/api/tenants/onboarding/platform_tour/reset/')
        self.assertFalse(response.data['completed'])


class TenantSelectionAPITest(APITestCase):

    def setUp(self):
        cache.clear()
        self.acme = make_tenant('acme')
        self.globex = make_tenant('globex')
        self.manager = make_user('pm@example.com')
        add_member(self.acme, self.manager, Role.TENANT_ADMIN)
        add_member(self.globex, self.manager, Role.PROJECT_MANAGER)
        self.client.defaults['HTTP_HOST'] = 'pledgehub.test'

    def test_lists_selectable_tenants(self):
        self.client.force_login(self.manager)
        response = self.client.get('/api/tenants/select/')
        self.assertTrue(response.data['needs_selection'])
        self.assertEqual(len(response.data['tenants']), 2)
        self.assertIsNone(response.data['current'])

    def test_selection_is_stored_in_session(self):
        self.client.force_login(self.manager)
        response = self.client.post('/api/tenants/select/', {'tenant': 'globex'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['role'], Role.PROJECT_MANAGER)
        self.assertEqual(self.client.session[SESSION_KEY], 'globex')

        response = self.client.get('/api/tenants/config/')
        self.assertEqual(response.data['tenant']['slug'], 'globex')

    def test_select_by_id(self):
        self.client.force_login(self.manager)
        response = self.client.post('/api/tenants/select/', {'tenant': str(self.acme.id)}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)

    def test_cannot_select_foreign_tenant(self):
        make_tenant('initech')
        self.client.force_login(self.manager)
        response = self.client.post('/api/tenants/select/', {'tenant': 'initech'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_select_unknown_tenant(self):
        self.client.force_login(self.manager)
        response = self.client.post('/api/tenants/select/', {'tenant': 'nope'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)


class AdminTenantAPITest(APITestCase):

    def setUp(self):
        cache.clear()
        self.system_admin = make_user('root@example.com', role=Role.SYSTEM_ADMIN)
        self.acme = make_tenant('acme', contact_email='ops@acme.test')
        self.client.defaults['HTTP_HOST'] = 'pledgehub.test'

    def test_requires_system_admin(self):
        tenant_admin = make_user('boss@example.com')
        add_member(self.acme, tenant_admin, Role.TENANT_ADMIN)
        self.client.force_authenticate(tenant_admin)
        response = self.client.get('/api/admin/tenants/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_list_and_search(self):
        make_tenant('globex')
        self.client.force_authenticate(self.system_admin)
        response = self.client.get('/api/admin/tenants/', {'search': 'ops@acme'})
        self.assertEqual([t['slug'] for t in response.data], ['acme'])

    def test_create_generates_slug(self):
        self.client.force_authenticate(self.system_admin)
        response = self.client.post('/api/admin/tenants/', {'name': 'Acme'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['slug'], 'acme-1')

    def test_suspend_reactivate(self):
        self.client.force_authenticate(self.system_admin)
        response = self.client.post(f'/api/admin/tenants/{self.acme.pk}/suspend/', {'reason': 'Fraud'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], Tenant.Status.SUSPENDED)

        response = self.client.post(f'/api/admin/tenants/{self.acme.pk}/suspend/', {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)

        response = self.client.post(f'/api/admin/tenants/{self.acme.pk}/reactivate/')
        self.assertEqual(response.data['status'], Tenant.Status.ACTIVE)

    def test_metrics(self):
        owner = make_user('owner@example.com')
        add_member(self.acme, owner, Role.TENANT_ADMIN)
        make_project(self.acme, owner)
        self.client.force_authenticate(self.system_admin)

        response = self.client.get(f'/api/admin/tenants/{self.acme.pk}/metrics/')

        self.assertEqual(response.data['total_projects'], 1)
        self.assertEqual(response.data['total_users'], 1)
        self.assertEqual(response.data['active_projects'], 0)
