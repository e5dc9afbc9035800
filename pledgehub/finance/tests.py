"""
Tests for finance.

Covers:
- Installment splitting and schedule dates
- ContributionService.pledge: policy checks, amounts, approval flag
- Approval / rejection / cancellation
- record_payment: schedule settlement, completion, arrears, platform fee,
  duplicate references, overpayment
- mark_overdue and the Celery task
"""
from datetime import date
from decimal import Decimal
from unittest import mock

from django.db import IntegrityError
from django.test import TestCase

from accounts.models import Role
from core.testing import add_member, make_project, make_tenant, make_user
from projects.models import InstallmentFrequency, ProjectStatus
from .models import Contribution, PaymentSchedule, PlatformFee, Transaction
from .services import (
    ContributionError,
    ContributionNotAllowed,
    ContributionService,
    ContributionStateError,
    DuplicatePaymentError,
    months_between,
    split_amount,
)
from .tasks import mark_overdue_installments

TODAY = date(2030, 1, 10)


class HelpersTest(TestCase):

    def test_split_amount_puts_remainder_last(self):
        self.assertEqual(
            split_amount(Decimal('1000.00'), 3),
            [Decimal('333.33'), Decimal('333.33'), Decimal('333.34')],
        )
        self.assertEqual(split_amount(Decimal('100.00'), 1), [Decimal('100.00')])

    def test_split_amount_sums_to_total(self):
        parts = split_amount(Decimal('999.99'), 7)
        self.assertEqual(sum(parts), Decimal('999.99'))
        self.assertEqual(len(set(parts[:-1])), 1)

    def test_months_between(self):
        self.assertEqual(months_between(date(2030, 2, 1), date(2030, 7, 31)), 5)
        self.assertEqual(months_between(date(2030, 2, 1), date(2031, 2, 1)), 12)


class ContributionTestCase(TestCase):

    def setUp(self):
        self.tenant = make_tenant('acme')
        self.admin = make_user('boss@example.com')
        self.contributor = make_user('c@example.com')
        add_member(self.tenant, self.admin, Role.TENANT_ADMIN)
        add_member(self.tenant, self.contributor, Role.CONTRIBUTOR)
        self.project = make_project(
            self.tenant, self.admin, status=ProjectStatus.ACTIVE,
            start_date=date(2030, 2, 1), end_date=date(2030, 7, 31),
        )

    def pledge(self, payment_type='installments', user=None, **kwargs):
        kwargs.setdefault('today', TODAY)
        return ContributionService.pledge(self.project, user or self.contributor, payment_type, **kwargs)


class PledgeTest(ContributionTestCase):

    def test_installment_pledge_builds_schedule(self):
        contribution = self.pledge()

        self.assertEqual(contribution.total_committed, Decimal('1000.00'))
        self.assertEqual(contribution.total_installments, 5)
        self.assertEqual(contribution.installment_amount, Decimal('200.00'))
        self.assertEqual(contribution.installment_frequency, InstallmentFrequency.MONTHLY)
        self.assertEqual(contribution.next_payment_due, date(2030, 2, 1))
        self.assertEqual(contribution.joined_date, TODAY)
        self.assertEqual(contribution.approval_status, Contribution.ApprovalStatus.APPROVED)
        self.assertIsNotNone(contribution.approved_at)

        schedules = list(contribution.schedules.all())
        self.assertEqual([s.due_date for s in schedules], [
            date(2030, 2, 1), date(2030, 3, 1), date(2030, 4, 1), date(2030, 5, 1), date(2030, 6, 1),
        ])
        self.assertTrue(all(s.status == PaymentSchedule.Status.PENDING for s in schedules))
        self.assertTrue(all(s.tenant_id == self.tenant.id for s in schedules))

    def test_explicit_installment_count(self):
        contribution = self.pledge(total_installments=3)
        amounts = [s.amount for s in contribution.schedules.all()]
        self.assertEqual(amounts, [Decimal('333.33'), Decimal('333.33'), Decimal('333.34')])

    def test_quarterly_and_custom_frequency(self):
        self.project.installment_frequency = InstallmentFrequency.QUARTERLY
        self.project.save()
        contribution = self.pledge()
        self.assertEqual(contribution.total_installments, 1)

        self.project.installment_frequency = InstallmentFrequency.CUSTOM
        self.project.custom_installment_months = 2
        self.project.save()
        other = self.pledge(user=make_user('d@example.com'))
        self.assertEqual([s.due_date for s in other.schedules.all()], [date(2030, 2, 1), date(2030, 4, 1)])

    def test_schedule_starts_today_when_project_started(self):
        contribution = self.pledge(total_installments=2, today=date(2030, 3, 15))
        self.assertEqual(
            [s.due_date for s in contribution.schedules.all()],
            [date(2030, 3, 15), date(2030, 4, 15)],
        )

    def test_full_pledge_has_no_schedule(self):
        contribution = self.pledge('full', total_committed=Decimal('250.00'))
        self.assertEqual(contribution.total_committed, Decimal('250.00'))
        self.assertFalse(contribution.schedules.exists())
        self.assertEqual(contribution.next_payment_due, date(2030, 2, 1))

    def test_requires_approval(self):
        self.project.requires_approval = True
        self.project.save()
        contribution = self.pledge('full')
        self.assertTrue(contribution.is_pending_approval())
        self.assertIsNone(contribution.approved_at)
        self.assertFalse(contribution.accepts_payments())

    def test_minimum_contribution(self):
        self.project.minimum_contribution = Decimal('100.00')
        self.project.save()
        with self.assertRaises(ContributionError):
            self.pledge('full', total_committed=Decimal('50.00'))

    def test_payment_type_must_be_offered(self):
        self.project.payment_options = ['full']
        self.project.save()
        with self.assertRaises(ContributionError):
            self.pledge('installments')
        with self.assertRaises(ContributionError):
            self.pledge('bitcoin')

    def test_not_allowed(self):
        self.pledge('full')
        with self.assertRaises(ContributionNotAllowed):
            self.pledge('full')
        with self.assertRaises(ContributionNotAllowed):
            self.pledge('full', user=self.admin)

        self.project.status = ProjectStatus.PAUSED
        self.project.save()
        with self.assertRaises(ContributionNotAllowed):
            self.pledge('full', user=make_user('late@example.com'))


class ReviewTest(ContributionTestCase):

    def setUp(self):
        super().setUp()
        self.project.requires_approval = True
        self.project.save()
        self.contribution = self.pledge()

    def test_approve(self):
        contribution = ContributionService.approve(self.contribution, self.admin)
        self.assertEqual(contribution.approval_status, Contribution.ApprovalStatus.APPROVED)
        self.assertEqual(contribution.approved_by, self.admin)
        self.assertTrue(contribution.accepts_payments())

        with self.assertRaises(ContributionStateError):
            ContributionService.reject(contribution, self.admin)

    def test_pending_contributions_do_not_build_arrears(self):
        self.assertEqual(ContributionService.mark_overdue(today=date(2030, 4, 1)), 0)

        self.contribution.refresh_from_db()
        self.assertEqual(self.contribution.arrears_amount, Decimal('0.00'))
        self.assertFalse(self.contribution.schedules.exclude(status=PaymentSchedule.Status.PENDING).exists())

    def test_late_approval_moves_schedule_forward(self):
        contribution = ContributionService.approve(self.contribution, self.admin, today=date(2030, 4, 15))

        due_dates = list(contribution.schedules.values_list('due_date', flat=True))
        self.assertEqual(due_dates[0], date(2030, 5, 1))
        self.assertEqual(due_dates[-1], date(2030, 9, 1))
        self.assertEqual(contribution.next_payment_due, date(2030, 5, 1))
        self.assertEqual(ContributionService.mark_overdue(today=date(2030, 4, 20)), 0)

    def test_reject_cancels_and_skips_schedule(self):
        contribution = ContributionService.reject(self.contribution, self.admin)
        self.assertEqual(contribution.status, Contribution.Status.CANCELLED)
        self.assertIsNone(contribution.next_payment_due)
        self.assertFalse(contribution.schedules.exclude(status=PaymentSchedule.Status.SKIPPED).exists())

    def test_cancel(self):
        contribution = ContributionService.cancel(self.contribution, self.contributor)
        self.assertEqual(contribution.status, Contribution.Status.CANCELLED)
        self.assertEqual(contribution.schedules.filter(status=PaymentSchedule.Status.SKIPPED).count(), 5)
        with self.assertRaises(ContributionStateError):
            ContributionService.cancel(contribution, self.contributor)


class RecordPaymentTest(ContributionTestCase):

    def setUp(self):
        super().setUp()
        self.contribution = self.pledge()

    def test_installment_payment(self):
        txn = ContributionService.record_payment(self.contribution, Decimal('200.00'), 'PAY-1')

        self.assertEqual(txn.status, Transaction.Status.SUCCESS)
        self.assertEqual(txn.type, Transaction.Type.INSTALLMENT)
        self.assertEqual(txn.user, self.contributor)
        self.contribution.refresh_from_db()
        self.assertEqual(self.contribution.total_paid, Decimal('200.00'))
        self.assertEqual(self.contribution.next_payment_due, date(2030, 3, 1))

        first = self.contribution.schedules.first()
        self.assertEqual(first.status, PaymentSchedule.Status.PAID)
        self.assertEqual(first.transaction, txn)

        fee = txn.platform_fee
        self.assertEqual(fee.fee_percentage, Decimal('5.00'))
        self.assertEqual(fee.fee_amount, Decimal('10.00'))
        self.assertEqual(fee.project, self.project)
        self.assertEqual(fee.status, PlatformFee.Status.CALCULATED)

    def test_partial_credit_carries_over(self):
        ContributionService.record_payment(self.contribution, Decimal('200.00'), 'PAY-1')
        ContributionService.record_payment(self.contribution, Decimal('450.00'), 'PAY-2')

        statuses = list(self.contribution.schedules.values_list('status', flat=True))
        self.assertEqual(statuses, ['paid', 'paid', 'paid', 'pending', 'pending'])
        self.contribution.refresh_from_db()
        self.assertEqual(self.contribution.next_payment_due, date(2030, 5, 1))

        # 50 left over + 150 settles the fourth installment
        ContributionService.record_payment(self.contribution, Decimal('150.00'), 'PAY-3')
        self.assertEqual(self.contribution.schedules.filter(status='paid').count(), 4)

    def test_full_payment_completes_contribution(self):
        txn = ContributionService.record_payment(self.contribution, Decimal('1000.00'), 'PAY-ALL')

        self.contribution.refresh_from_db()
        self.assertEqual(self.contribution.status, Contribution.Status.COMPLETED)
        self.assertIsNone(self.contribution.next_payment_due)
        self.assertEqual(self.contribution.progress_percentage(), Decimal('100.00'))
        self.assertFalse(self.contribution.schedules.exclude(status='paid').exists())
        self.assertEqual(txn.type, Transaction.Type.INSTALLMENT)

        with self.assertRaises(ContributionStateError):
            ContributionService.record_payment(self.contribution, Decimal('1.00'), 'PAY-MORE')

    def test_full_payment_type(self):
        contribution = self.pledge('full', user=make_user('d@example.com'))
        partial = ContributionService.record_payment(contribution, Decimal('400.00'), 'F-1')
        rest = ContributionService.record_payment(contribution, Decimal('600.00'), 'F-2')
        self.assertEqual(partial.type, Transaction.Type.PARTIAL)
        self.assertEqual(rest.type, Transaction.Type.FULL_PAYMENT)
        contribution.refresh_from_db()
        self.assertEqual(contribution.status, Contribution.Status.COMPLETED)

    def test_duplicate_reference(self):
        ContributionService.record_payment(self.contribution, Decimal('200.00'), 'PAY-1')
        with self.assertRaises(DuplicatePaymentError):
            ContributionService.record_payment(self.contribution, Decimal('200.00'), 'PAY-1')
        self.contribution.refresh_from_db()
        self.assertEqual(self.contribution.total_paid, Decimal('200.00'))

    def test_concurrent_duplicate_insert(self):
        # Another worker inserted the same reference after the existence check
        with mock.patch.object(Transaction.objects, 'create', side_effect=IntegrityError('duplicate')):
            with self.assertRaises(DuplicatePaymentError):
                ContributionService.record_payment(self.contribution, Decimal('200.00'), 'PAY-RACE')
            with self.assertRaises(DuplicatePaymentError):
                ContributionService.record_failure(self.contribution, Decimal('200.00'), 'PAY-RACE', 'Declined')

        self.contribution.refresh_from_db()
        self.assertEqual(self.contribution.total_paid, Decimal('0.00'))
        self.assertFalse(self.contribution.schedules.exclude(status=PaymentSchedule.Status.PENDING).exists())
        self.assertFalse(PlatformFee.objects.exists())

    def test_overpayment(self):
        with self.assertRaises(ContributionError):
            ContributionService.record_payment(self.contribution, Decimal('1000.01'), 'PAY-X')
        self.assertFalse(Transaction.objects.exists())

    def test_pending_approval_blocks_payment(self):
        self.project.requires_approval = True
        self.project.save()
        pending = self.pledge('full', user=make_user('d@example.com'))
        with self.assertRaises(ContributionStateError):
            ContributionService.record_payment(pending, Decimal('10.00'), 'PAY-P')

    def test_failure_leaves_balance(self):
        txn = ContributionService.record_failure(self.contribution, Decimal('200.00'), 'PAY-F', 'Card declined')

        self.assertEqual(txn.status, Transaction.Status.FAILED)
        self.assertEqual(txn.failure_reason, 'Card declined')
        self.contribution.refresh_from_db()
        self.assertEqual(self.contribution.total_paid, Decimal('0.00'))
        self.assertFalse(PlatformFee.objects.exists())

    def test_transactions_are_immutable(self):
        txn = ContributionService.record_payment(self.contribution, Decimal('200.00'), 'PAY-1')
        txn.amount = Decimal('1.00')
        with self.assertRaises(ValueError):
            txn.save()

    def test_fee_rounding_and_totals(self):
        ContributionService.record_payment(self.contribution, Decimal('333.33'), 'PAY-1')
        ContributionService.record_payment(self.contribution, Decimal('100.00'), 'PAY-2')

        fees = PlatformFee.objects.order_by('created_at', 'id')
        self.assertEqual([f.fee_amount for f in fees], [Decimal('16.67'), Decimal('5.00')])
        totals = PlatformFee.totals()
        self.assertEqual(totals['project_amount'], Decimal('433.33'))
        self.assertEqual(totals['fee_amount'], Decimal('21.67'))


class OverdueTest(ContributionTestCase):

    def setUp(self):
        super().setUp()
        self.contribution = self.pledge()

    def test_mark_overdue_builds_arrears(self):
        self.assertEqual(ContributionService.mark_overdue(today=date(2030, 3, 2)), 2)
        self.assertEqual(ContributionService.mark_overdue(today=date(2030, 3, 2)), 0)

        self.contribution.refresh_from_db()
        self.assertEqual(self.contribution.arrears_amount, Decimal('400.00'))
        self.assertEqual(self.contribution.outstanding_arrears, Decimal('400.00'))

        txn = ContributionService.record_payment(self.contribution, Decimal('200.00'), 'PAY-A')
        self.assertEqual(txn.type, Transaction.Type.ARREARS)
        self.contribution.refresh_from_db()
        self.assertEqual(self.contribution.arrears_paid, Decimal('200.00'))
        self.assertEqual(self.contribution.outstanding_arrears, Decimal('200.00'))

    def test_cancelled_contributions_are_skipped(self):
        ContributionService.cancel(self.contribution, self.contributor)
        self.assertEqual(ContributionService.mark_overdue(today=date(2030, 12, 31)), 0)

    def test_task(self):
        # Schedules of 2030 are not due yet in real time
        result = mark_overdue_installments()
        self.assertEqual(result['overdue'], 0)
        self.assertIn('timestamp', result)
