from unittest import mock

from django.core import mail
from django.test import TestCase

from core.audit import log_event
from core.emails import email_service
from core.testing import make_tenant, make_user
from tenants.context import clear_current_tenant, set_current_tenant


class AuditLogTest(TestCase):

    def setUp(self):
        self.tenant = make_tenant('acme')
        self.user = make_user('boss@example.com')

    def test_record_extras(self):
        with self.assertLogs('audit', level='INFO') as logs:
            log_event('tenant_updated', actor=self.user, subject=self.tenant, fields=['name'])

        record = logs.records[0]
        self.assertEqual(record.getMessage(), 'tenant_updated')
        self.assertEqual(record.actor, f'{self.user.pk}:boss@example.com')
        self.assertEqual(record.subject, f'tenants.Tenant:{self.tenant.pk}')
        self.assertEqual(record.tenant, 'acme')
        self.assertEqual(record.context, {'fields': ['name']})

    def test_system_actor_and_current_tenant(self):
        set_current_tenant(self.tenant)
        self.addCleanup(clear_current_tenant)
        with self.assertLogs('audit', level='INFO') as logs:
            log_event('overdue_marked', count=3)

        record = logs.records[0]
        self.assertEqual(record.actor, 'system')
        self.assertEqual(record.subject, '-')
        self.assertEqual(record.tenant, 'acme')


class EmailServiceTest(TestCase):

    def test_send(self):
        sent = email_service.send(
            'user@example.com', 'Welcome', 'applications/emails/confirmation.txt',
            {'application': {'reference_number': 'TA-1', 'organization_name': 'Riverside'}},
        )
        self.assertTrue(sent)
        self.assertEqual(mail.outbox[0].to, ['user@example.com'])
        self.assertEqual(mail.outbox[0].subject, 'Welcome')

    def test_no_recipients(self):
        self.assertFalse(email_service.send(['', None], 'Welcome', 'applications/emails/confirmation.txt'))
        self.assertEqual(len(mail.outbox), 0)

    def test_backend_failure_is_reported(self):
        with mock.patch('core.emails.send_mail', side_effect=ConnectionRefusedError('smtp down')):
            with self.assertLogs('core.emails', level='ERROR'):
                sent = email_service.send('user@example.com', 'Welcome', 'applications/emails/confirmation.txt')
        self.assertFalse(sent)


class HealthCheckTest(TestCase):

    def test_health(self):
        response = self.client.get('/api/health/')
        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual(data['status'], 'healthy')
        self.assertEqual(data['checks'], {'database': 'ok', 'cache': 'ok'})

    def test_ready_and_live(self):
        self.assertEqual(self.client.get('/api/health/ready/').json(), {'ready': True})
        self.assertTrue(self.client.get('/api/health/live/').json()['alive'])
