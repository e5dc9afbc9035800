"""
Celery tasks for finance.
"""
import logging

from celery import shared_task
from django.utils import timezone

from .services import ContributionService

logger = logging.getLogger(__name__)


@shared_task
def mark_overdue_installments():
    """Daily (Celery Beat, 01:00): pending installments past due become arrears."""
    count = ContributionService.mark_overdue()
    if count:
        logger.info(f'[Celery] Installments marked overdue: {count}')
    return {'overdue': count, 'timestamp': timezone.now().isoformat()}
