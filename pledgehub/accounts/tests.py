"""
Tests for accounts.

Covers:
- CustomUser roles and tenant membership helpers
- Registration, JWT login, profile endpoint
"""
from django.contrib.auth import get_user_model
from django.core.cache import cache
from django.test import TestCase
from rest_framework import status
from rest_framework.test import APITestCase

from accounts.models import Role
from core.testing import PASSWORD, add_member, make_tenant, make_user

User = get_user_model()


class CustomUserModelTest(TestCase):

    def setUp(self):
        self.acme = make_tenant('acme')
        self.globex = make_tenant('globex')
        self.user = make_user('Jane@Example.com')

    def test_email_is_normalized_to_lowercase(self):
        self.assertEqual(self.user.email, 'jane@example.com')

    def test_superuser_is_system_admin(self):
        admin = User.objects.create_superuser(email='root@example.com', password=PASSWORD)
        self.assertEqual(admin.role, Role.SYSTEM_ADMIN)
        self.assertTrue(admin.is_system_admin())
        self.assertIn(admin, User.objects.system_admins())

    def test_role_in_tenant(self):
        add_member(self.acme, self.user, Role.PROJECT_MANAGER)
        self.assertEqual(self.user.role_in_tenant(self.acme), Role.PROJECT_MANAGER)
        self.assertIsNone(self.user.role_in_tenant(self.globex))
        self.assertTrue(self.user.can_manage_projects(self.acme))
        self.assertFalse(self.user.is_tenant_admin(self.acme))

    def test_inactive_membership_is_ignored(self):
        add_member(self.acme, self.user, Role.TENANT_ADMIN, is_active=False)
        self.assertFalse(self.user.is_member_of(self.acme))
        self.assertFalse(self.user.is_tenant_admin())

    def test_needs_tenant_selection_with_several_admin_tenants(self):
        add_member(self.acme, self.user, Role.TENANT_ADMIN)
        self.assertFalse(self.user.needs_tenant_selection())
        add_member(self.globex, self.user, Role.PROJECT_MANAGER)
        self.assertTrue(self.user.needs_tenant_selection())
        self.assertEqual(set(self.user.admin_tenants()), {self.acme, self.globex})

    def test_contributor_tenants_are_not_admin_tenants(self):
        add_member(self.acme, self.user, Role.CONTRIBUTOR)
        self.assertEqual(list(self.user.tenants()), [self.acme])
        self.assertEqual(list(self.user.admin_tenants()), [])


class AuthAPITest(APITestCase):

    def setUp(self):
        cache.clear()

    def test_register_creates_contributor(self):
        response = self.client.post('/api/auth/register/', {
            'email': 'New.User@Example.com',
            'password': 'S3cure-passphrase',
            'name': 'New User',
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertIn('access', response.data)
        user = User.objects.get(email='new.user@example.com')
        self.assertEqual(user.role, Role.CONTRIBUTOR)

    def test_register_rejects_duplicate_email(self):
        make_user('taken@example.com')
        response = self.client.post('/api/auth/register/', {
            'email': 'TAKEN@example.com', 'password': 'S3cure-passphrase',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('email', response.data)

    def test_login_is_case_insensitive(self):
        make_user('login@example.com')
        response = self.client.post('/api/auth/token/', {
            'email': 'LOGIN@example.com', 'password': PASSWORD,
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn('refresh', response.data)
        self.assertEqual(response.data['user']['email'], 'login@example.com')
        self.assertIsNotNone(User.objects.get(email='login@example.com').last_login)

    def test_login_with_wrong_password(self):
        make_user('login@example.com')
        response = self.client.post('/api/auth/token/', {
            'email': 'login@example.com', 'password': 'wrong',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_me_lists_memberships(self):
        user = make_user('me@example.com')
        add_member(make_tenant('acme'), user, Role.TENANT_ADMIN)
        self.client.force_authenticate(user)

        response = self.client.get('/api/auth/me/')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['memberships'][0]['tenant_slug'], 'acme')
        self.assertEqual(response.data['memberships'][0]['role'], Role.TENANT_ADMIN)

    def test_me_patch_cannot_change_role(self):
        user = make_user('me@example.com')
        self.client.force_authenticate(user)

        response = self.client.patch('/api/auth/me/', {'name': 'Renamed', 'role': Role.SYSTEM_ADMIN}, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        user.refresh_from_db()
        self.assertEqual(user.name, 'Renamed')
        self.assertEqual(user.role, Role.CONTRIBUTOR)

    def test_me_requires_authentication(self):
        response = self.client.get('/api/auth/me/')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
