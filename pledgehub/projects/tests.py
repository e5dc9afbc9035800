"""
Tests for projects.

Covers:
- Status state machine and visibility rules
- ProjectService: create/update/delete, lifecycle, activation checks,
  filters, date-driven status sweep
- ProductService: totals follow product prices, reordering, locking
- InvitationService: invite, accept, decline, expiry
- ProjectPolicy / ProjectInvitationPolicy
- update_project_statuses command and task
"""
from datetime import timedelta
from decimal import Decimal
from io import StringIO

from django.core import mail
from django.core.management import call_command
from django.test import TestCase
from django.utils import timezone

from accounts.models import Role
from core.testing import add_member, make_contribution, make_project, make_tenant, make_user
from tenants.models import Tenant
from tenants.services import TenantLimitError
from .models import ProjectInvitation, ProjectStatus, ProjectVisibility
from .policies import ProjectInvitationPolicy, ProjectPolicy
from .services import (
    InvalidStatusTransition,
    InvitationError,
    InvitationService,
    ProductService,
    ProjectLockedError,
    ProjectNotReady,
    ProjectService,
)
from .tasks import update_project_statuses


def project_data(**overrides):
    today = timezone.localdate()
    data = {
        'name': 'Summer Camp',
        'description': 'Two weeks of outdoor activities for the youth group.',
        'visibility': ProjectVisibility.PUBLIC,
        'total_amount': Decimal('900.00'),
        'payment_options': ['full', 'installments'],
        'installment_frequency': 'monthly',
        'start_date': today + timedelta(days=10),
        'end_date': today + timedelta(days=100),
    }
    data.update(overrides)
    return data


PRODUCTS = [
    {'name': 'Tents', 'price': Decimal('500.00')},
    {'name': 'Food', 'price': Decimal('400.00')},
]


class ProjectStatusTest(TestCase):

    def test_transitions(self):
        self.assertTrue(ProjectStatus.DRAFT.can_transition_to(ProjectStatus.ACTIVE))
        self.assertTrue(ProjectStatus.PAUSED.can_transition_to(ProjectStatus.COMPLETED))
        self.assertFalse(ProjectStatus.DRAFT.can_transition_to(ProjectStatus.PAUSED))
        self.assertFalse(ProjectStatus.DRAFT.can_transition_to(ProjectStatus.COMPLETED))
        self.assertEqual(ProjectStatus.COMPLETED.valid_transitions(), ())
        self.assertEqual(ProjectStatus.CANCELLED.valid_transitions(), ())

    def test_descriptions(self):
        self.assertEqual(
            ProjectStatus.PAUSED.transition_description(ProjectStatus.ACTIVE),
            'Resuming paused project',
        )
        self.assertEqual(
            ProjectStatus.DRAFT.transition_description(ProjectStatus.COMPLETED),
            'Invalid transition from Draft to Completed',
        )

    def test_flags(self):
        self.assertTrue(ProjectStatus.ACTIVE.accepts_contributions)
        self.assertFalse(ProjectStatus.PAUSED.accepts_contributions)
        self.assertTrue(ProjectStatus.CANCELLED.is_final)
        self.assertTrue(ProjectStatus.PAUSED.is_ongoing)
        self.assertIn('green', ProjectStatus.ACTIVE.css_class)

    def test_visibility(self):
        self.assertTrue(ProjectVisibility.PUBLIC.is_publicly_discoverable)
        self.assertTrue(ProjectVisibility.INVITE_ONLY.has_restricted_access)
        self.assertFalse(ProjectVisibility.PUBLIC.has_restricted_access)
        self.assertEqual(
            ProjectVisibility.PRIVATE.description,
            'Only tenant members can view and join this project',
        )


class ProjectServiceTest(TestCase):

    def setUp(self):
        self.tenant = make_tenant('acme')
        self.admin = make_user('boss@example.com')
        add_member(self.tenant, self.admin, Role.TENANT_ADMIN)

    def test_create_project(self):
        project = ProjectService.create_project(project_data(), self.tenant, self.admin, PRODUCTS)

        self.assertEqual(project.status, ProjectStatus.DRAFT)
        self.assertEqual(project.slug, 'summer-camp')
        self.assertEqual(project.created_by, self.admin)
        self.assertEqual([p.name for p in project.products.all()], ['Tents', 'Food'])
        self.assertEqual([p.sort_order for p in project.products.all()], [1, 2])

    def test_slug_is_unique_per_tenant(self):
        first = ProjectService.create_project(project_data(), self.tenant, self.admin, PRODUCTS)
        second = ProjectService.create_project(project_data(), self.tenant, self.admin, PRODUCTS)
        other_tenant = ProjectService.create_project(
            project_data(), make_tenant('globex'), self.admin, PRODUCTS,
        )
        self.assertEqual(first.slug, 'summer-camp')
        self.assertEqual(second.slug, 'summer-camp-1')
        self.assertEqual(other_tenant.slug, 'summer-camp')

    def test_total_defaults_to_products_sum(self):
        data = project_data()
        del data['total_amount']
        project = ProjectService.create_project(data, self.tenant, self.admin, PRODUCTS)
        self.assertEqual(project.total_amount, Decimal('900.00'))

    def test_project_limit(self):
        self.tenant.max_projects = 1
        self.tenant.save()
        ProjectService.create_project(project_data(), self.tenant, self.admin, PRODUCTS)
        with self.assertRaises(TenantLimitError):
            ProjectService.create_project(project_data(name='Other'), self.tenant, self.admin, PRODUCTS)

    def test_update_renames_slug(self):
        project = make_project(self.tenant, self.admin)
        project = ProjectService.update_project(project, {'name': 'New Roof', 'description': None}, self.admin)
        self.assertEqual(project.slug, 'new-roof')
        self.assertEqual(project.description, 'Raising funds for a new community hall.')

    def test_financial_terms_lock_after_contributions(self):
        project = make_project(self.tenant, self.admin, status=ProjectStatus.ACTIVE)
        make_contribution(project, make_user('c@example.com'))

        with self.assertRaises(ProjectLockedError):
            ProjectService.update_project(project, {'total_amount': Decimal('2000.00')}, self.admin)
        with self.assertRaises(ProjectLockedError):
            ProjectService.update_project(project, {'payment_options': ['full']}, self.admin)

        project = ProjectService.update_project(project, {'description': 'Updated text'}, self.admin)
        self.assertEqual(project.description, 'Updated text')

    def test_unchanged_terms_are_not_locked(self):
        project = make_project(self.tenant, self.admin, status=ProjectStatus.ACTIVE)
        make_contribution(project, make_user('c@example.com'))
        ProjectService.update_project(project, {'total_amount': project.total_amount}, self.admin)

    def test_delete(self):
        project = make_project(self.tenant, self.admin)
        ProjectService.delete_project(project, self.admin)
        self.assertFalse(self.tenant.projects.exists())

    def test_delete_with_contributions(self):
        project = make_project(self.tenant, self.admin, status=ProjectStatus.ACTIVE)
        make_contribution(project, make_user('c@example.com'))
        with self.assertRaises(ProjectLockedError):
            ProjectService.delete_project(project, self.admin)

    # ─── Lifecycle ───

    def test_ready_project_has_no_activation_errors(self):
        project = make_project(self.tenant, self.admin)
        self.assertEqual(ProjectService.activation_errors(project), [])
        self.assertTrue(ProjectService.is_ready_for_activation(project))

    def test_activation_errors(self):
        today = timezone.localdate()
        project = make_project(
            self.tenant, self.admin,
            description='  ',
            total_amount=Decimal('5000.00'),
            end_date=today - timedelta(days=1),
            start_date=today - timedelta(days=10),
            payment_options=[],
        )
        errors = ProjectService.activation_errors(project)

        self.assertIn('Project description is required', errors)
        self.assertIn('End date cannot be in the past', errors)
        self.assertIn('At least one payment option is required', errors)
        self.assertTrue(any(e.startswith('Total amount (5000.00)') for e in errors))

    def test_project_without_products_is_not_ready(self):
        project = make_project(self.tenant, self.admin, prices=())
        self.assertIn('Project must have at least one product', ProjectService.activation_errors(project))

    def test_lifecycle(self):
        project = make_project(self.tenant, self.admin)

        project = ProjectService.activate(project, self.admin)
        self.assertEqual(project.status, ProjectStatus.ACTIVE)
        project = ProjectService.pause(project, self.admin)
        self.assertEqual(project.status, ProjectStatus.PAUSED)
        project = ProjectService.resume(project, self.admin)
        self.assertEqual(project.status, ProjectStatus.ACTIVE)
        project = ProjectService.complete(project, self.admin)
        self.assertEqual(project.status, ProjectStatus.COMPLETED)

        with self.assertRaises(InvalidStatusTransition):
            ProjectService.cancel(project, self.admin)

    def test_invalid_transition(self):
        project = make_project(self.tenant, self.admin)
        with self.assertRaises(InvalidStatusTransition):
            ProjectService.complete(project, self.admin)
        with self.assertRaises(InvalidStatusTransition):
            ProjectService.resume(project, self.admin)

    def test_activation_checks(self):
        project = make_project(self.tenant, self.admin, description='')
        with self.assertRaises(ProjectNotReady) as ctx:
            ProjectService.activate(project, self.admin)
        self.assertEqual(ctx.exception.errors, ['Project description is required'])
        project.refresh_from_db()
        self.assertEqual(project.status, ProjectStatus.DRAFT)

    def test_cancel_records_reason(self):
        project = make_project(self.tenant, self.admin, settings={'theme': 'dark'})
        project = ProjectService.cancel(project, self.admin, 'Venue unavailable')

        self.assertEqual(project.status, ProjectStatus.CANCELLED)
        self.assertEqual(project.settings['cancellation_reason'], 'Venue unavailable')
        self.assertEqual(project.settings['cancelled_by'], self.admin.pk)
        self.assertIn('cancelled_at', project.settings)
        self.assertEqual(project.settings['theme'], 'dark')

    # ─── Reporting ───

    def test_statistics(self):
        project = make_project(self.tenant, self.admin, status=ProjectStatus.ACTIVE)
        make_contribution(project, make_user('a@example.com'), total_paid=Decimal('300.00'))
        make_contribution(project, make_user('b@example.com'), total_paid=Decimal('200.00'))

        stats = ProjectService.statistics(project)

        self.assertEqual(stats['total_contributors'], 2)
        self.assertEqual(stats['total_raised'], Decimal('500.00'))
        self.assertEqual(stats['completion_percentage'], Decimal('50.00'))
        self.assertEqual(stats['average_contribution'], Decimal('250.00'))
        self.assertEqual(stats['days_remaining'], 180)

    def test_filters(self):
        hall = make_project(self.tenant, self.admin, status=ProjectStatus.ACTIVE)
        roof = make_project(self.tenant, self.admin, name='Roof Repair', prices=('5000.00',))
        make_project(self.tenant, self.admin, name='Garden', prices=('50.00',),
                     status=ProjectStatus.CANCELLED)
        qs = self.tenant.projects.all()

        by_status = ProjectService.apply_filters(qs, {'status': ['draft', 'active']})
        self.assertEqual(set(by_status), {hall, roof})

        by_amount = ProjectService.apply_filters(qs, {'min_amount': '1000', 'max_amount': 'lots'})
        self.assertEqual(set(by_amount), {hall, roof})

        by_search = ProjectService.apply_filters(qs, {'search': 'roof'})
        self.assertEqual(list(by_search), [roof])

        by_name = ProjectService.apply_filters(qs, {'sort_by': 'name', 'sort_direction': 'asc'})
        self.assertEqual([p.name for p in by_name], ['Community Hall', 'Garden', 'Roof Repair'])

    def test_filters_ignore_malformed_values(self):
        hall = make_project(self.tenant, self.admin)
        qs = self.tenant.projects.all()

        for filters in ({'start_date': 'notadate'}, {'end_date': '2030-02-30'},
                        {'tenant_id': 'abc'}, {'created_by': 'x'}):
            self.assertEqual(list(ProjectService.apply_filters(qs, filters)), [hall], filters)

        later = (hall.start_date + timedelta(days=1)).isoformat()
        self.assertEqual(list(ProjectService.apply_filters(qs, {'start_date': later})), [])

    def test_update_keeps_protected_settings(self):
        project = make_project(self.tenant, self.admin)
        project.settings = {'cancellation_reason': 'Weather'}
        project.save()

        project = ProjectService.update_project(
            project, {'settings': {'cancellation_reason': 'x', 'theme': 'dark'}}, self.admin,
        )

        self.assertEqual(project.settings, {'cancellation_reason': 'Weather', 'theme': 'dark'})

    def test_public_projects(self):
        visible = make_project(self.tenant, self.admin, status=ProjectStatus.ACTIVE)
        make_project(self.tenant, self.admin, name='Secret', status=ProjectStatus.ACTIVE,
                     visibility=ProjectVisibility.PRIVATE)
        make_project(self.tenant, self.admin, name='Draft')
        suspended = make_tenant('initech', status=Tenant.Status.SUSPENDED)
        make_project(suspended, self.admin, name='Hidden', status=ProjectStatus.ACTIVE)

        self.assertEqual(list(ProjectService.public_projects()), [visible])

    def test_search_projects(self):
        hall = make_project(self.tenant, self.admin, status=ProjectStatus.ACTIVE)
        draft = make_project(self.tenant, self.admin, name='Hall Lights')

        self.assertEqual(list(ProjectService.search_projects('hall')), [hall])
        self.assertEqual(set(ProjectService.search_projects('hall', tenant=self.tenant)), {hall, draft})
        self.assertEqual(list(ProjectService.search_projects('pool')), [])


class ProjectStatusSweepTest(TestCase):

    def setUp(self):
        self.tenant = make_tenant('acme')
        self.admin = make_user('boss@example.com')
        add_member(self.tenant, self.admin, Role.TENANT_ADMIN)
        today = timezone.localdate()
        self.expired = make_project(
            self.tenant, self.admin, name='Expired', status=ProjectStatus.ACTIVE,
            start_date=today - timedelta(days=30), end_date=today - timedelta(days=1),
        )
        self.starting = make_project(self.tenant, self.admin, name='Starting', start_date=today)
        self.broken = make_project(self.tenant, self.admin, name='Broken', start_date=today, prices=())
        self.future = make_project(self.tenant, self.admin, name='Future')

    def test_sweep(self):
        report = ProjectService.update_statuses_by_date()

        self.assertEqual(report['completed'], ['acme/expired'])
        self.assertEqual(report['activated'], ['acme/starting'])
        self.assertEqual(report['not_ready'][0]['project'], 'acme/broken')
        self.assertIn('Project must have at least one product', report['not_ready'][0]['reasons'])
        self.assertEqual(report['errors'], [])

        for project, expected in ((self.expired, ProjectStatus.COMPLETED),
                                  (self.starting, ProjectStatus.ACTIVE),
                                  (self.broken, ProjectStatus.DRAFT),
                                  (self.future, ProjectStatus.DRAFT)):
            project.refresh_from_db()
            self.assertEqual(project.status, expected)

    def test_dry_run_changes_nothing(self):
        report = ProjectService.update_statuses_by_date(dry_run=True)
        self.assertEqual(len(report['completed']), 1)
        self.expired.refresh_from_db()
        self.assertEqual(self.expired.status, ProjectStatus.ACTIVE)

    def test_command(self):
        out = StringIO()
        call_command('update_project_statuses', '--detailed', stdout=out)
        output = out.getvalue()
        self.assertIn('Completed: 1', output)
        self.assertIn('Activated: 1', output)
        self.assertIn('Not ready: 1', output)
        self.assertIn('acme/starting', output)
        self.assertIn('Project statuses updated', output)

    def test_task_expires_invitations(self):
        invitation = ProjectInvitation.objects.create(
            project=self.future, email='late@example.com', invited_by=self.admin,
            expires_at=timezone.now() - timedelta(hours=1),
        )
        result = update_project_statuses()

        self.assertEqual(result['completed'], 1)
        self.assertEqual(result['invitations_expired'], 1)
        invitation.refresh_from_db()
        self.assertEqual(invitation.status, ProjectInvitation.Status.EXPIRED)


class ProductServiceTest(TestCase):

    def setUp(self):
        self.tenant = make_tenant('acme')
        self.admin = make_user('boss@example.com')
        add_member(self.tenant, self.admin, Role.TENANT_ADMIN)
        self.project = make_project(self.tenant, self.admin)

    def test_add_product_updates_total(self):
        product = ProductService.add_product(self.project, {'name': 'Chairs', 'price': Decimal('250.00')})
        self.project.refresh_from_db()
        self.assertEqual(product.sort_order, 3)
        self.assertEqual(self.project.total_amount, Decimal('1250.00'))

    def test_update_price_updates_total(self):
        product = self.project.products.first()
        ProductService.update_product(product, {'price': Decimal('100.00')})
        self.project.refresh_from_db()
        self.assertEqual(self.project.total_amount, Decimal('500.00'))

    def test_delete_product_updates_total(self):
        ProductService.delete_product(self.project.products.first())
        self.project.refresh_from_db()
        self.assertEqual(self.project.total_amount, Decimal('400.00'))

    def test_products_lock_after_contributions(self):
        make_contribution(self.project, make_user('c@example.com'))
        product = self.project.products.first()

        with self.assertRaises(ProjectLockedError):
            ProductService.delete_product(product)
        with self.assertRaises(ProjectLockedError):
            ProductService.update_product(product, {'price': Decimal('1.00')})
        ProductService.update_product(product, {'name': 'Renamed'})
        product.refresh_from_db()
        self.assertEqual(product.name, 'Renamed')

    def test_sync_products(self):
        first, second = self.project.products.all()
        kept = ProductService.sync_products(self.project, [
            {'name': 'Windows', 'price': Decimal('300.00')},
            {'id': first.pk, 'name': 'Foundation', 'price': Decimal('600.00')},
            {'id': second.pk, 'name': 'Item 2', 'price': Decimal('400.00'), 'delete': True},
        ], self.admin)

        self.project.refresh_from_db()
        self.assertEqual([p.name for p in kept], ['Windows', 'Foundation'])
        self.assertEqual([(p.name, p.sort_order) for p in self.project.products.all()],
                         [('Windows', 1), ('Foundation', 2)])
        self.assertFalse(self.project.products.filter(pk=second.pk).exists())
        self.assertEqual(self.project.total_amount, Decimal('900.00'))

    def test_sync_products_rejects_foreign_rows(self):
        other = make_project(self.tenant, self.admin, name='Other')
        with self.assertRaises(ValueError):
            ProductService.sync_products(self.project, [
                {'id': other.products.first().pk, 'name': 'Stolen', 'price': Decimal('1000.00')},
            ])
        self.assertEqual(self.project.products.count(), 2)

    def test_sync_products_locked_after_contributions(self):
        make_contribution(self.project, make_user('c@example.com'))
        first, second = self.project.products.all()

        with self.assertRaises(ProjectLockedError):
            ProductService.sync_products(self.project, [{'name': 'Only one', 'price': Decimal('1000.00')}])
        ProductService.sync_products(self.project, [
            {'id': first.pk, 'name': 'Renamed', 'price': first.price},
            {'id': second.pk, 'name': second.name, 'price': second.price},
        ])
        first.refresh_from_db()
        self.assertEqual(first.name, 'Renamed')

    def test_reorder(self):
        first, second = self.project.products.all()
        products = ProductService.reorder_products(self.project, [second.pk, first.pk])
        self.assertEqual([p.pk for p in products], [second.pk, first.pk])

    def test_reorder_rejects_foreign_and_empty(self):
        other = make_project(self.tenant, self.admin, name='Other')
        with self.assertRaises(ValueError):
            ProductService.reorder_products(self.project, [other.products.first().pk])
        with self.assertRaises(ValueError):
            ProductService.reorder_products(self.project, [])


class InvitationServiceTest(TestCase):

    def setUp(self):
        self.tenant = make_tenant('acme')
        self.admin = make_user('boss@example.com')
        add_member(self.tenant, self.admin, Role.TENANT_ADMIN)
        self.project = make_project(self.tenant, self.admin, visibility=ProjectVisibility.INVITE_ONLY)
        self.guest = make_user('guest@example.com')

    def test_invite_sends_email(self):
        with self.captureOnCommitCallbacks(execute=True):
            invitation = InvitationService.invite(self.project, ' Guest@Example.com ', self.admin)

        self.assertEqual(invitation.email, 'guest@example.com')
        self.assertTrue(invitation.is_pending())
        self.assertEqual(len(invitation.token), 40)
        self.assertEqual(len(mail.outbox), 1)
        self.assertEqual(mail.outbox[0].to, ['guest@example.com'])
        self.assertIn(f'https://acme.pledgehub.test/invitations/{invitation.token}', mail.outbox[0].body)

    def test_duplicate_pending_invitation(self):
        InvitationService.invite(self.project, 'guest@example.com', self.admin)
        with self.assertRaises(InvitationError):
            InvitationService.invite(self.project, 'GUEST@example.com', self.admin)

    def test_cannot_invite_to_final_project(self):
        self.project.status = ProjectStatus.CANCELLED
        self.project.save()
        with self.assertRaises(InvitationError):
            InvitationService.invite(self.project, 'guest@example.com', self.admin)

    def test_accept(self):
        invitation = InvitationService.invite(self.project, 'guest@example.com', self.admin)
        invitation = InvitationService.accept(invitation, self.guest)
        self.assertEqual(invitation.status, ProjectInvitation.Status.ACCEPTED)
        self.assertIsNotNone(invitation.accepted_at)

        with self.assertRaises(InvitationError):
            InvitationService.decline(invitation, self.guest)

    def test_decline(self):
        invitation = InvitationService.invite(self.project, 'guest@example.com', self.admin)
        invitation = InvitationService.decline(invitation, self.guest)
        self.assertEqual(invitation.status, ProjectInvitation.Status.DECLINED)

    def test_wrong_user(self):
        invitation = InvitationService.invite(self.project, 'guest@example.com', self.admin)
        with self.assertRaises(InvitationError):
            InvitationService.accept(invitation, make_user('other@example.com'))

    def test_expired(self):
        invitation = InvitationService.invite(self.project, 'guest@example.com', self.admin)
        invitation.expires_at = timezone.now() - timedelta(minutes=1)
        invitation.save()

        with self.assertRaises(InvitationError):
            InvitationService.accept(invitation, self.guest)
        invitation.refresh_from_db()
        self.assertEqual(invitation.status, ProjectInvitation.Status.EXPIRED)

        # An expired invitation does not block a new one
        InvitationService.invite(self.project, 'guest@example.com', self.admin)


class ProjectPolicyTest(TestCase):

    def setUp(self):
        self.tenant = make_tenant('acme')
        self.admin = make_user('boss@example.com')
        self.manager = make_user('pm@example.com')
        self.member = make_user('member@example.com')
        self.outsider = make_user('outsider@example.com')
        self.system_admin = make_user('root@example.com', role=Role.SYSTEM_ADMIN)
        add_member(self.tenant, self.admin, Role.TENANT_ADMIN)
        add_member(self.tenant, self.manager, Role.PROJECT_MANAGER)
        add_member(self.tenant, self.member, Role.CONTRIBUTOR)

    def test_view_by_visibility(self):
        public = make_project(self.tenant, self.admin, name='Public')
        private = make_project(self.tenant, self.admin, name='Private', visibility=ProjectVisibility.PRIVATE)
        invite_only = make_project(self.tenant, self.admin, name='Invite',
                                   visibility=ProjectVisibility.INVITE_ONLY)

        self.assertTrue(ProjectPolicy.view(None, public))
        self.assertTrue(ProjectPolicy.view(self.outsider, public))
        self.assertFalse(ProjectPolicy.view(None, private))
        self.assertTrue(ProjectPolicy.view(self.member, private))
        self.assertFalse(ProjectPolicy.view(self.outsider, private))
        self.assertFalse(ProjectPolicy.view(self.member, invite_only))
        self.assertTrue(ProjectPolicy.view(self.admin, invite_only))
        self.assertTrue(ProjectPolicy.view(self.system_admin, invite_only))

        ProjectInvitation.objects.create(
            project=invite_only, email='member@example.com', invited_by=self.admin,
            status=ProjectInvitation.Status.ACCEPTED,
        )
        self.assertTrue(ProjectPolicy.view(self.member, invite_only))

    def test_create_requires_tenant_admin(self):
        self.assertTrue(ProjectPolicy.create(self.admin, self.tenant))
        self.assertFalse(ProjectPolicy.create(self.manager, self.tenant))
        self.assertFalse(ProjectPolicy.create(self.admin, make_tenant('globex')))
        self.assertTrue(ProjectPolicy.create(self.system_admin, None))

    def test_update_by_managers(self):
        project = make_project(self.tenant, self.admin)
        self.assertTrue(ProjectPolicy.update(self.manager, project))
        self.assertFalse(ProjectPolicy.update(self.member, project))

        project.managed_by = [self.member.pk]
        self.assertTrue(ProjectPolicy.update(self.member, project))

    def test_delete_blocked_by_active_contribution(self):
        project = make_project(self.tenant, self.admin, status=ProjectStatus.ACTIVE)
        self.assertTrue(ProjectPolicy.delete(self.admin, project))
        make_contribution(project, self.member)
        self.assertFalse(ProjectPolicy.delete(self.admin, project))
        self.assertTrue(ProjectPolicy.delete(self.system_admin, project))

    def test_transitions_follow_status(self):
        project = make_project(self.tenant, self.admin)
        self.assertTrue(ProjectPolicy.activate(self.manager, project))
        self.assertFalse(ProjectPolicy.pause(self.manager, project))
        self.assertTrue(ProjectPolicy.cancel(self.manager, project))
        self.assertFalse(ProjectPolicy.activate(self.member, project))
        self.assertTrue(ProjectPolicy.pause(self.system_admin, project))

        project.status = ProjectStatus.PAUSED
        self.assertTrue(ProjectPolicy.resume(self.manager, project))
        self.assertTrue(ProjectPolicy.complete(self.manager, project))

    def test_invite_users_only_for_restricted_projects(self):
        public = make_project(self.tenant, self.admin, name='Public')
        private = make_project(self.tenant, self.admin, name='Private', visibility=ProjectVisibility.PRIVATE)
        self.assertFalse(ProjectPolicy.invite_users(self.admin, public))
        self.assertTrue(ProjectPolicy.invite_users(self.admin, private))

    def test_contribute(self):
        project = make_project(self.tenant, self.admin, status=ProjectStatus.ACTIVE)

        self.assertTrue(ProjectPolicy.contribute(self.member, project))
        self.assertTrue(ProjectPolicy.contribute(self.outsider, project))
        self.assertFalse(ProjectPolicy.contribute(self.admin, project))
        self.assertFalse(ProjectPolicy.contribute(None, project))

        make_contribution(project, self.member)
        self.assertFalse(ProjectPolicy.contribute(self.member, project))

    def test_contribute_limits(self):
        today = timezone.localdate()
        project = make_project(self.tenant, self.admin, status=ProjectStatus.ACTIVE,
                               max_contributors=1, registration_deadline=today + timedelta(days=5))
        self.assertFalse(ProjectPolicy.contribute(self.member, project, today=today + timedelta(days=6)))

        make_contribution(project, self.outsider)
        self.assertFalse(ProjectPolicy.contribute(self.member, project))

        project.status = ProjectStatus.PAUSED
        project.max_contributors = None
        self.assertFalse(ProjectPolicy.contribute(self.member, project))

    def test_view_statistics(self):
        project = make_project(self.tenant, self.admin, status=ProjectStatus.ACTIVE)
        self.assertTrue(ProjectPolicy.view_statistics(self.manager, project))
        self.assertFalse(ProjectPolicy.view_statistics(self.member, project))
        make_contribution(project, self.member)
        self.assertTrue(ProjectPolicy.view_statistics(self.member, project))

    def test_abilities(self):
        project = make_project(self.tenant, self.admin)
        abilities = ProjectPolicy.abilities(self.manager, project)
        self.assertTrue(abilities['activate'])
        self.assertFalse(abilities['resume'])
        self.assertFalse(abilities['contribute'])


class ProjectInvitationPolicyTest(TestCase):

    def setUp(self):
        self.tenant = make_tenant('acme')
        self.admin = make_user('boss@example.com')
        self.manager = make_user('pm@example.com')
        add_member(self.tenant, self.admin, Role.TENANT_ADMIN)
        add_member(self.tenant, self.manager, Role.PROJECT_MANAGER)
        project = make_project(self.tenant, self.admin, visibility=ProjectVisibility.PRIVATE)
        self.guest = make_user('guest@example.com')
        self.invitation = ProjectInvitation.objects.create(
            project=project, email='guest@example.com', invited_by=self.admin,
        )

    def test_manage(self):
        self.assertTrue(ProjectInvitationPolicy.view_any(self.manager, self.tenant))
        self.assertTrue(ProjectInvitationPolicy.update(self.manager, self.invitation))
        self.assertFalse(ProjectInvitationPolicy.force_delete(self.manager, self.invitation))
        self.assertTrue(ProjectInvitationPolicy.force_delete(self.admin, self.invitation))

    def test_invitee(self):
        self.assertTrue(ProjectInvitationPolicy.view(self.guest, self.invitation))
        self.assertTrue(ProjectInvitationPolicy.accept(self.guest, self.invitation))
        self.assertFalse(ProjectInvitationPolicy.update(self.guest, self.invitation))
        self.assertFalse(ProjectInvitationPolicy.decline(self.manager, self.invitation))
