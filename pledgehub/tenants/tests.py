"""
Tests for tenants.

Covers:
- TenantMiddleware resolution (subdomain, custom domain, path, header, session)
- TenantService (cache, suspension, membership quota, selection)
- Tenant/Platform/User policies
- tenant_cache management command
"""
from io import StringIO
from unittest import mock

from django.contrib.sessions.middleware import SessionMiddleware
from django.core.cache import cache
from django.core.management import call_command
from django.http import HttpResponse
from django.test import RequestFactory, TestCase, override_settings

from accounts.models import Role
from core.testing import add_member, make_tenant, make_user
from tenants.context import get_current_tenant, tenant_context
from tenants.middleware import SESSION_KEY, TenantMiddleware
from tenants.models import OnboardingProgress, Tenant
from tenants.policies import PlatformPolicy, TenantPolicy, UserPolicy
from tenants.services import TenantLimitError, TenantService, TenantStateError, _slug_key


class TenantMiddlewareTest(TestCase):

    def setUp(self):
        cache.clear()
        self.factory = RequestFactory()
        self.acme = make_tenant('acme', domain='pledge.acme.org')
        self.seen = {}

        def get_response(request):
            self.seen['tenant'] = request.tenant
            self.seen['path_info'] = request.path_info
            self.seen['context'] = get_current_tenant()
            return HttpResponse('ok')

        self.middleware = TenantMiddleware(get_response)

    def _get(self, path='/api/projects/', host='pledgehub.test', **extra):
        request = self.factory.get(path, HTTP_HOST=host, **extra)
        SessionMiddleware(lambda r: None).process_request(request)
        return request

    def test_resolves_subdomain(self):
        response = self.middleware(self._get(host='acme.pledgehub.test'))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(self.seen['tenant'], self.acme)
        self.assertEqual(self.seen['context'], self.acme)

    def test_context_is_cleared_after_request(self):
        self.middleware(self._get(host='acme.pledgehub.test'))
        self.assertIsNone(get_current_tenant())

    def test_unknown_subdomain_is_404(self):
        response = self.middleware(self._get(host='nobody.pledgehub.test'))
        self.assertEqual(response.status_code, 404)
        self.assertNotIn('tenant', self.seen)

    def test_suspended_tenant_is_404(self):
        TenantService.suspend(self.acme, by=None, reason='unpaid')
        response = self.middleware(self._get(host='acme.pledgehub.test'))
        self.assertEqual(response.status_code, 404)

    def test_platform_domain_has_no_tenant(self):
        self.middleware(self._get(host='pledgehub.test'))
        self.assertIsNone(self.seen['tenant'])

    @override_settings(ALLOWED_HOSTS=['*'])
    def test_custom_domain(self):
        self.middleware(self._get(host='pledge.acme.org'))
        self.assertEqual(self.seen['tenant'], self.acme)

    def test_path_prefix_is_stripped(self):
        self.middleware(self._get(path='/t/acme/api/projects/'))
        self.assertEqual(self.seen['tenant'], self.acme)
        self.assertEqual(self.seen['path_info'], '/api/projects/')

    def test_header_honoured_on_dev_host(self):
        self.middleware(self._get(host='localhost', HTTP_X_TENANT_ID='acme'))
        self.assertEqual(self.seen['tenant'], self.acme)

    def test_header_ignored_on_public_host(self):
        self.middleware(self._get(host='pledgehub.test', HTTP_X_TENANT_ID='acme'))
        self.assertIsNone(self.seen['tenant'])

    def test_session_selection(self):
        request = self._get(host='pledgehub.test')
        request.session[SESSION_KEY] = 'acme'
        self.middleware(request)
        self.assertEqual(self.seen['tenant'], self.acme)

    def test_stale_session_selection_is_dropped(self):
        request = self._get(host='pledgehub.test')
        request.session[SESSION_KEY] = 'gone'
        self.middleware(request)
        self.assertIsNone(self.seen['tenant'])
        self.assertNotIn(SESSION_KEY, request.session)

    def test_skip_paths(self):
        self.middleware(self._get(path='/api/health/', host='nobody.pledgehub.test'))
        self.assertIsNone(self.seen['tenant'])


class TenantServiceTest(TestCase):

    def setUp(self):
        cache.clear()
        self.admin = make_user('admin@example.com', role=Role.SYSTEM_ADMIN)
        self.acme = make_tenant('acme')

    def test_find_by_slug_uses_cache(self):
        TenantService.find_by_slug('acme')
        with self.assertNumQueries(0):
            self.assertEqual(TenantService.find_by_slug('acme'), self.acme)

    def test_clear_cache_leaves_other_keys(self):
        cache.set('sessions:unrelated', 'keep-me')
        self.assertEqual(TenantService.warm_cache(), 1)
        self.assertIsNotNone(cache.get(_slug_key('acme')))

        TenantService.clear_cache()

        self.assertIsNone(cache.get(_slug_key('acme')))
        self.assertEqual(cache.get('sessions:unrelated'), 'keep-me')

    def test_saving_tenant_invalidates_cache(self):
        TenantService.find_by_slug('acme')
        self.acme.name = 'Acme Renamed'
        self.acme.save()
        self.assertEqual(TenantService.find_by_slug('acme').name, 'Acme Renamed')

    def test_unique_slug(self):
        self.assertEqual(TenantService.unique_slug('Acme'), 'acme-1')
        make_tenant('acme-1')
        self.assertEqual(TenantService.unique_slug('ACME'), 'acme-2')
        self.assertEqual(TenantService.unique_slug('Brand New Org'), 'brand-new-org')

    def test_suspend_and_reactivate(self):
        tenant = TenantService.suspend(self.acme, self.admin, 'Terms violation')
        self.assertTrue(tenant.is_suspended())
        self.assertEqual(tenant.suspended_by, self.admin)
        self.assertIsNone(TenantService.find_by_slug('acme'))

        with self.assertRaises(TenantStateError):
            TenantService.suspend(tenant, self.admin)

        tenant = TenantService.reactivate(tenant, self.admin)
        self.assertTrue(tenant.is_operational())
        self.assertEqual(tenant.suspended_reason, '')

        with self.assertRaises(TenantStateError):
            TenantService.reactivate(tenant, self.admin)

    def test_add_member_respects_max_users(self):
        self.acme.max_users = 1
        self.acme.save()
        TenantService.add_member(self.acme, make_user('one@example.com'))
        with self.assertRaises(TenantLimitError):
            TenantService.add_member(self.acme, make_user('two@example.com'))

    def test_add_member_reactivates_existing(self):
        user = make_user('member@example.com')
        membership = TenantService.add_member(self.acme, user, Role.CONTRIBUTOR)
        TenantService.deactivate_member(membership)

        again = TenantService.add_member(self.acme, user, Role.PROJECT_MANAGER)

        self.assertEqual(again.pk, membership.pk)
        self.assertTrue(again.is_active)
        self.assertEqual(again.role, Role.PROJECT_MANAGER)

    def test_selectable_tenants_only_lists_managed_tenants(self):
        user = make_user('multi@example.com')
        globex = make_tenant('globex')
        initech = make_tenant('initech')
        add_member(self.acme, user, Role.TENANT_ADMIN)
        add_member(globex, user, Role.PROJECT_MANAGER)
        add_member(initech, user, Role.CONTRIBUTOR)

        slugs = [t['slug'] for t in TenantService.selectable_tenants(user)]

        self.assertEqual(slugs, ['acme', 'globex'])

    def test_get_url(self):
        with override_settings(APP_URL='https://pledgehub.test'):
            self.assertEqual(self.acme.get_url(), 'https://acme.pledgehub.test')
            self.assertEqual(self.acme.get_url('/login'), 'https://acme.pledgehub.test/login')

    def test_tenant_context(self):
        with tenant_context(self.acme):
            self.assertEqual(get_current_tenant(), self.acme)
        self.assertIsNone(get_current_tenant())

    def test_onboarding_seed_is_idempotent(self):
        OnboardingProgress.seed_for(self.acme)
        OnboardingProgress.seed_for(self.acme)
        self.assertEqual(self.acme.onboarding_steps.count(), len(OnboardingProgress.DEFAULT_STEPS))

        step = self.acme.onboarding_steps.get(step_key='first_project')
        step.mark_completed({'project': 1})
        step.refresh_from_db()
        self.assertTrue(step.completed)
        self.assertIsNotNone(step.completed_at)


class PolicyTest(TestCase):

    def setUp(self):
        self.acme = make_tenant('acme')
        self.globex = make_tenant('globex')
        self.system_admin = make_user('root@example.com', role=Role.SYSTEM_ADMIN)
        self.tenant_admin = make_user('boss@example.com')
        self.manager = make_user('pm@example.com')
        self.contributor = make_user('c@example.com')
        self.outsider = make_user('out@example.com')
        add_member(self.acme, self.tenant_admin, Role.TENANT_ADMIN)
        add_member(self.acme, self.manager, Role.PROJECT_MANAGER)
        add_member(self.acme, self.contributor, Role.CONTRIBUTOR)
        add_member(self.globex, self.outsider, Role.TENANT_ADMIN)

    def test_tenant_policy(self):
        self.assertTrue(TenantPolicy.view_any(self.system_admin))
        self.assertFalse(TenantPolicy.view_any(self.tenant_admin))
        self.assertTrue(TenantPolicy.view(self.contributor, self.acme))
        self.assertFalse(TenantPolicy.view(self.outsider, self.acme))
        self.assertTrue(TenantPolicy.update(self.tenant_admin, self.acme))
        self.assertFalse(TenantPolicy.update(self.manager, self.acme))
        self.assertFalse(TenantPolicy.update(self.outsider, self.acme))
        self.assertTrue(TenantPolicy.manage_settings(self.system_admin, self.acme))
        self.assertFalse(TenantPolicy.suspend(self.tenant_admin, self.acme))

    def test_platform_policy_is_system_admin_only(self):
        for ability in ('access_admin_panel', 'manage_tenants', 'manage_platform_fees', 'view_all_users'):
            self.assertTrue(getattr(PlatformPolicy, ability)(self.system_admin), ability)
            self.assertFalse(getattr(PlatformPolicy, ability)(self.tenant_admin), ability)

    def test_user_policy(self):
        self.assertTrue(UserPolicy.view(self.contributor, self.contributor))
        self.assertTrue(UserPolicy.view(self.tenant_admin, self.contributor))
        self.assertFalse(UserPolicy.view(self.outsider, self.contributor))
        self.assertFalse(UserPolicy.delete(self.tenant_admin, self.tenant_admin))
        self.assertTrue(UserPolicy.delete(self.tenant_admin, self.manager))
        self.assertFalse(UserPolicy.change_global_role(self.tenant_admin, self.manager))
        self.assertFalse(UserPolicy.change_global_role(self.system_admin, self.system_admin))
        self.assertTrue(UserPolicy.assign_system_admin_role(self.system_admin, self.manager))

    def test_manage_tenant_roles(self):
        self.assertTrue(UserPolicy.manage_tenant_roles(self.tenant_admin, self.manager, self.acme))
        self.assertFalse(UserPolicy.manage_tenant_roles(self.tenant_admin, self.tenant_admin, self.acme))
        self.assertFalse(UserPolicy.manage_tenant_roles(self.manager, self.contributor, self.acme))
        self.assertFalse(UserPolicy.manage_tenant_roles(self.outsider, self.contributor, self.acme))


class TenantCacheCommandTest(TestCase):

    def setUp(self):
        cache.clear()
        make_tenant('acme')
        make_tenant('globex')

    def test_warm(self):
        out = StringIO()
        call_command('tenant_cache', 'warm', stdout=out)
        self.assertIn('2 tenant(s)', out.getvalue())
        with self.assertNumQueries(0):
            self.assertIsNotNone(TenantService.find_by_slug('globex'))

    def test_clear_one_tenant(self):
        out = StringIO()
        with mock.patch.object(TenantService, 'clear_cache') as clear:
            call_command('tenant_cache', 'clear', '--tenant', 'acme', stdout=out)
        clear.assert_called_once_with(slug='acme', domain=None)
        self.assertIn('acme', out.getvalue())

    def test_unknown_tenant(self):
        from django.core.management.base import CommandError
        with self.assertRaises(CommandError):
            call_command('tenant_cache', 'clear', '--tenant', 'nobody', stdout=StringIO())


class SeedDemoCommandTest(TestCase):

    def test_seed_is_idempotent(self):
        call_command('seed_demo', stdout=StringIO())
        out = StringIO()
        call_command('seed_demo', '--password', 'another123', stdout=out)

        tenant = Tenant.objects.get(slug='demo')
        self.assertEqual(tenant.memberships.count(), 3)
        self.assertEqual(tenant.onboarding_steps.count(), 4)
        self.assertEqual(
            sorted(tenant.projects.values_list('slug', 'status')),
            [('community-hall', 'active'), ('library-books', 'draft')],
        )
        self.assertIn('EXISTS: project Community Hall', out.getvalue())
        admin = tenant.memberships.get(role=Role.TENANT_ADMIN).user
        self.assertTrue(admin.check_password('another123'))


class TenantModelTest(TestCase):

    def test_frontend_config(self):
        tenant = make_tenant('acme', primary_color='#112233')
        config = tenant.to_frontend_config()
        self.assertEqual(config['slug'], 'acme')
        self.assertEqual(config['primary_color'], '#112233')
        self.assertEqual(config['id'], str(tenant.id))

    def test_queryset_scoped_to_current_tenant(self):
        from projects.models import Project
        from core.testing import make_project

        acme, globex = make_tenant('acme'), make_tenant('globex')
        owner = make_user('owner@example.com')
        make_project(acme, owner, name='Hall')
        make_project(globex, owner, name='Roof')

        self.assertEqual(Project.objects.for_current_tenant().count(), 2)
        with tenant_context(globex):
            self.assertEqual(list(Project.objects.for_current_tenant().values_list('name', flat=True)), ['Roof'])
        self.assertEqual(Project.objects.for_tenant(acme).get().name, 'Hall')

    def test_metrics_of_empty_tenant(self):
        metrics = make_tenant('acme').metrics()
        self.assertEqual(metrics['total_projects'], 0)
        self.assertEqual(metrics['total_users'], 0)
        self.assertEqual(str(metrics['total_revenue']), '0.00')

    def test_default_status(self):
        tenant = Tenant.objects.create(slug='fresh', name='Fresh')
        self.assertTrue(tenant.is_operational())
        self.assertFalse(tenant.is_on_trial())
