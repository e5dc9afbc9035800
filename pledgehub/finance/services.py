"""
Contribution bookkeeping.

Pledges, approval, installment schedules, recording gateway results and
platform fees. Money is Decimal, rounded to cents with ROUND_HALF_UP; the
last installment absorbs the rounding remainder.
"""
from datetime import date
from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal
from typing import Optional
import logging

from dateutil.relativedelta import relativedelta
from django.db import IntegrityError, transaction
from django.utils import timezone

from core.audit import log_event
from projects.models import InstallmentFrequency, PaymentOption
from projects.policies import ProjectPolicy
from .models import Contribution, PaymentSchedule, PaymentType, PlatformFee, Transaction

logger = logging.getLogger(__name__)

CENT = Decimal('0.01')

FREQUENCY_MONTHS = {
    InstallmentFrequency.MONTHLY: 1,
    InstallmentFrequency.QUARTERLY: 3,
}


class ContributionError(Exception):
    """Base exception for contribution operations."""
    pass


class ContributionNotAllowed(ContributionError):
    """The user may not pledge to this project."""
    pass


class ContributionStateError(ContributionError):
    """The contribution is not in a state that allows the operation."""
    pass


class DuplicatePaymentError(ContributionError):
    """A transaction with this gateway reference is already recorded."""
    pass


def months_between(start, end):
    delta = relativedelta(end, start)
    return delta.years * 12 + delta.months


def interval_months(project):
    if project.installment_frequency == InstallmentFrequency.CUSTOM:
        return project.custom_installment_months or 1
    return FREQUENCY_MONTHS.get(project.installment_frequency, 1)


def split_amount(total, count):
    """``count`` installments of ``total``; the last one takes the remainder."""
    base = (total / count).quantize(CENT, rounding=ROUND_DOWN)
    amounts = [base] * (count - 1)
    amounts.append(total - base * (count - 1))
    return amounts


class ContributionService:

    # ─── Pledge ───

    @staticmethod
    @transaction.atomic
    def pledge(project, user, payment_type, total_committed=None, total_installments=None,
               today: Optional[date] = None) -> Contribution:
        """
        Pledge ``user`` to ``project``.

        Args:
            payment_type: 'full' or 'installments', must be offered by the project
            total_committed: defaults to the project total
            total_installments: defaults to as many intervals as fit before the end date

        Raises:
            ContributionNotAllowed: ProjectPolicy.contribute refused
            ContributionError: invalid amount or payment type
        """
        today = today or timezone.localdate()

        if not ProjectPolicy.contribute(user, project, today=today):
            raise ContributionNotAllowed('You cannot contribute to this project')

        if payment_type not in PaymentType.values or not project.offers(payment_type):
            raise ContributionError(f'Payment type "{payment_type}" is not offered by this project')

        total = Decimal(total_committed if total_committed is not None else project.total_amount)
        total = total.quantize(CENT, rounding=ROUND_HALF_UP)
        if total <= 0:
            raise ContributionError('Contribution amount must be positive')
        if project.minimum_contribution is not None and total < project.minimum_contribution:
            raise ContributionError(f'Minimum contribution is {project.minimum_contribution}')

        requires_approval = project.requires_approval
        contribution = Contribution(
            tenant=project.tenant,
            user=user,
            project=project,
            total_committed=total,
            payment_type=payment_type,
            joined_date=today,
            status=Contribution.Status.ACTIVE,
            approval_status=(
                Contribution.ApprovalStatus.PENDING if requires_approval
                else Contribution.ApprovalStatus.APPROVED
            ),
            approved_at=None if requires_approval else timezone.now(),
        )

        schedule = []
        if payment_type == PaymentOption.INSTALLMENTS:
            schedule = ContributionService.build_schedule(project, total, total_installments, today)
            contribution.installment_frequency = project.installment_frequency
            contribution.total_installments = len(schedule)
            contribution.installment_amount = schedule[0][1]
            contribution.next_payment_due = schedule[0][0]
        else:
            contribution.next_payment_due = max(project.start_date or today, today)

        try:
            with transaction.atomic():
                contribution.save()
        except IntegrityError:
            raise ContributionNotAllowed('You already contribute to this project')

        PaymentSchedule.objects.bulk_create([
            PaymentSchedule(tenant=project.tenant, contribution=contribution, amount=amount, due_date=due)
            for due, amount in schedule
        ])

        logger.info(
            f'Contribution pledged: {user.email} -> {project.slug} ({total}, {payment_type}, '
            f'installments={len(schedule) or "-"}, approval={contribution.approval_status})'
        )
        log_event('contribution_pledged', actor=user, subject=contribution,
                  project=project.pk, amount=str(total), payment_type=payment_type)
        return contribution

    @staticmethod
    def build_schedule(project, total, total_installments=None, today: Optional[date] = None):
        """List of (due_date, amount) starting at the project start date or today."""
        today = today or timezone.localdate()
        start = max(project.start_date or today, today)
        step = interval_months(project)

        count = total_installments
        if not count:
            count = 1
            if project.end_date and project.end_date > start:
                count = max(months_between(start, project.end_date) // step, 1)
        if count < 1:
            raise ContributionError('Number of installments must be at least 1')

        amounts = split_amount(total, count)
        return [(start + relativedelta(months=step * index), amount) for index, amount in enumerate(amounts)]

    # ─── Approval ───

    @staticmethod
    def _rebase_schedule(contribution, today):
        """Shift pending installments by whole intervals so none falls due before ``today``."""
        pending = list(contribution.schedules.filter(status=PaymentSchedule.Status.PENDING).order_by('due_date'))
        if not pending:
            if contribution.next_payment_due and contribution.next_payment_due < today:
                contribution.next_payment_due = today
            return
        if pending[0].due_date >= today:
            return
        gap = relativedelta(today, pending[0].due_date)
        months = gap.years * 12 + gap.months + (1 if gap.days else 0)
        for schedule in pending:
            schedule.due_date += relativedelta(months=months)
            schedule.save(update_fields=['due_date', 'updated_at'])
        contribution.next_payment_due = pending[0].due_date
        logger.info(f'Contribution {contribution.pk}: schedule moved {months} month(s) forward on approval')

    @staticmethod
    def _review(contribution, by, approval_status, event, today=None):
        with transaction.atomic():
            contribution = Contribution.objects.select_for_update().get(pk=contribution.pk)
            if contribution.approval_status != Contribution.ApprovalStatus.PENDING:
                raise ContributionStateError(f'Contribution is already {contribution.approval_status}')
            contribution.approval_status = approval_status
            contribution.approved_by = by
            contribution.approved_at = timezone.now()
            if approval_status == Contribution.ApprovalStatus.APPROVED:
                ContributionService._rebase_schedule(contribution, today or timezone.localdate())
            if approval_status == Contribution.ApprovalStatus.REJECTED:
                contribution.status = Contribution.Status.CANCELLED
                contribution.next_payment_due = None
                contribution.schedules.filter(status=PaymentSchedule.Status.PENDING).update(
                    status=PaymentSchedule.Status.SKIPPED,
                )
            contribution.save()

        logger.info(f'Contribution {contribution.pk} {approval_status} by {by.email}')
        log_event(event, actor=by, subject=contribution)
        return contribution

    @staticmethod
    def approve(contribution, by, today: Optional[date] = None) -> Contribution:
        """Approve a pending pledge; installments already past due move forward."""
        return ContributionService._review(
            contribution, by, Contribution.ApprovalStatus.APPROVED, 'contribution_approved', today,
        )

    @staticmethod
    def reject(contribution, by) -> Contribution:
        return ContributionService._review(
            contribution, by, Contribution.ApprovalStatus.REJECTED, 'contribution_rejected',
        )

    # ─── Payments ───

    @staticmethod
    @transaction.atomic
    def record_payment(contribution, amount, reference, type=None, gateway_response=None) -> Transaction:
        """
        Record a successful gateway payment.

        Marks unpaid schedules paid oldest first while the paid total covers
        them, completes the contribution when fully paid and books the
        platform fee.

        Raises:
            DuplicatePaymentError: reference already recorded
            ContributionStateError: contribution not approved or not active
            ContributionError: non-positive amount or overpayment
        """
        if Transaction.objects.filter(gateway_reference=reference).exists():
            raise DuplicatePaymentError(f'Payment {reference} is already recorded')

        contribution = Contribution.objects.select_for_update().select_related('project', 'tenant').get(
            pk=contribution.pk,
        )
        if not contribution.accepts_payments():
            raise ContributionStateError(
                f'Contribution does not accept payments (status={contribution.status}, '
                f'approval={contribution.approval_status})'
            )

        amount = Decimal(amount).quantize(CENT, rounding=ROUND_HALF_UP)
        if amount <= 0:
            raise ContributionError('Payment amount must be positive')
        if amount > contribution.outstanding:
            raise ContributionError(f'Payment exceeds the outstanding balance ({contribution.outstanding})')

        now = timezone.now()
        txn = ContributionService._create_transaction(
            tenant=contribution.tenant,
            contribution=contribution,
            user=contribution.user,
            gateway_reference=reference,
            amount=amount,
            type=type or ContributionService._payment_type_for(contribution, amount),
            status=Transaction.Status.SUCCESS,
            gateway_response=gateway_response or {},
            processed_at=now,
        )

        contribution.total_paid += amount
        ContributionService._settle_schedules(contribution, txn, now)

        if contribution.is_fully_paid():
            contribution.status = Contribution.Status.COMPLETED
            contribution.next_payment_due = None
        contribution.save()

        fee = ContributionService.book_platform_fee(txn, contribution)

        logger.info(
            f'Payment recorded: {reference} {amount} for contribution {contribution.pk} '
            f'(paid {contribution.total_paid}/{contribution.total_committed}, fee {fee.fee_amount})'
        )
        log_event('payment_recorded', subject=contribution, reference=reference, amount=str(amount))
        return txn

    @staticmethod
    def _create_transaction(**fields) -> Transaction:
        """Insert a ledger row; a concurrent insert of the same reference is a duplicate."""
        try:
            with transaction.atomic():
                return Transaction.objects.create(**fields)
        except IntegrityError:
            raise DuplicatePaymentError(f'Payment {fields["gateway_reference"]} is already recorded')

    @staticmethod
    def _payment_type_for(contribution, amount):
        if contribution.outstanding_arrears > 0:
            return Transaction.Type.ARREARS
        if contribution.payment_type == PaymentType.FULL:
            if amount == contribution.outstanding:
                return Transaction.Type.FULL_PAYMENT
            return Transaction.Type.PARTIAL
        next_schedule = contribution.schedules.filter(
            status__in=[PaymentSchedule.Status.PENDING, PaymentSchedule.Status.OVERDUE],
        ).first()
        if next_schedule is not None and amount >= next_schedule.amount:
            return Transaction.Type.INSTALLMENT
        return Transaction.Type.PARTIAL

    @staticmethod
    def _settle_schedules(contribution, txn, now):
        paid_so_far = sum(
            (s.amount for s in contribution.schedules.filter(status=PaymentSchedule.Status.PAID)),
            Decimal('0.00'),
        )
        credit = contribution.total_paid - paid_so_far
        unpaid = contribution.schedules.filter(
            status__in=[PaymentSchedule.Status.PENDING, PaymentSchedule.Status.OVERDUE],
        ).order_by('due_date', 'id')

        next_due = None
        for schedule in unpaid:
            if credit >= schedule.amount:
                if schedule.status == PaymentSchedule.Status.OVERDUE:
                    contribution.arrears_paid += schedule.amount
                credit -= schedule.amount
                schedule.status = PaymentSchedule.Status.PAID
                schedule.transaction = txn
                schedule.paid_at = now
                schedule.save(update_fields=['status', 'transaction', 'paid_at', 'updated_at'])
            elif next_due is None:
                next_due = schedule.due_date

        if contribution.payment_type == PaymentType.INSTALLMENTS:
            contribution.next_payment_due = next_due

    @staticmethod
    def book_platform_fee(txn, contribution) -> PlatformFee:
        percentage = contribution.tenant.platform_fee_percentage
        fee_amount = (txn.amount * percentage / 100).quantize(CENT, rounding=ROUND_HALF_UP)
        return PlatformFee.objects.create(
            tenant=contribution.tenant,
            project=contribution.project,
            transaction=txn,
            project_amount=txn.amount,
            fee_percentage=percentage,
            fee_amount=fee_amount,
            status=PlatformFee.Status.CALCULATED,
            calculated_at=timezone.now(),
        )

    @staticmethod
    @transaction.atomic
    def record_failure(contribution, amount, reference, reason, gateway_response=None) -> Transaction:
        """Record a failed gateway attempt. Balances are left untouched."""
        if Transaction.objects.filter(gateway_reference=reference).exists():
            raise DuplicatePaymentError(f'Payment {reference} is already recorded')

        amount = Decimal(amount).quantize(CENT, rounding=ROUND_HALF_UP)
        txn = ContributionService._create_transaction(
            tenant=contribution.tenant,
            contribution=contribution,
            user=contribution.user,
            gateway_reference=reference,
            amount=amount,
            type=ContributionService._payment_type_for(contribution, amount),
            status=Transaction.Status.FAILED,
            gateway_response=gateway_response or {},
            failure_reason=(reason or '')[:500],
            processed_at=timezone.now(),
        )
        logger.warning(f'Payment failed: {reference} {amount} for contribution {contribution.pk}: {reason}')
        log_event('payment_failed', subject=contribution, reference=reference, reason=reason)
        return txn

    # ─── Maintenance ───

    @staticmethod
    def mark_overdue(today: Optional[date] = None):
        """
        Pending schedules of approved, active contributions past their due date
        become overdue and add to the contribution's arrears. Returns the number
        of schedules marked.
        """
        today = today or timezone.localdate()
        count = 0
        overdue = PaymentSchedule.objects.filter(
            status=PaymentSchedule.Status.PENDING,
            due_date__lt=today,
            contribution__status=Contribution.Status.ACTIVE,
            contribution__approval_status=Contribution.ApprovalStatus.APPROVED,
        ).select_related('contribution')

        for schedule in overdue:
            with transaction.atomic():
                contribution = Contribution.objects.select_for_update().get(pk=schedule.contribution_id)
                schedule.status = PaymentSchedule.Status.OVERDUE
                schedule.save(update_fields=['status', 'updated_at'])
                contribution.arrears_amount += schedule.amount
                contribution.save(update_fields=['arrears_amount', 'updated_at'])
            count += 1
            logger.info(f'Installment overdue: contribution {contribution.pk}, {schedule.amount} due {schedule.due_date}')
        return count

    @staticmethod
    @transaction.atomic
    def cancel(contribution, by) -> Contribution:
        contribution = Contribution.objects.select_for_update().get(pk=contribution.pk)
        if contribution.status in (Contribution.Status.CANCELLED, Contribution.Status.COMPLETED):
            raise ContributionStateError(f'Contribution is already {contribution.status}')

        contribution.status = Contribution.Status.CANCELLED
        contribution.next_payment_due = None
        contribution.save(update_fields=['status', 'next_payment_due', 'updated_at'])
        skipped = contribution.schedules.filter(
            status__in=[PaymentSchedule.Status.PENDING, PaymentSchedule.Status.OVERDUE],
        ).update(status=PaymentSchedule.Status.SKIPPED)

        logger.info(f'Contribution {contribution.pk} cancelled by {by.email} ({skipped} installments skipped)')
        log_event('contribution_cancelled', actor=by, subject=contribution)
        return contribution
