"""
Celery tasks for projects.
"""
import logging

from celery import shared_task
from django.utils import timezone

from .services import InvitationService, ProjectService

logger = logging.getLogger(__name__)


@shared_task
def update_project_statuses():
    """
    Daily lifecycle sweep (Celery Beat, 00:05).

    Completes active projects whose end date has passed and activates draft
    projects whose start date has arrived, then expires stale invitations.
    """
    report = ProjectService.update_statuses_by_date()
    expired = InvitationService.expire_stale()

    logger.info(
        f'[Celery] Project statuses updated: completed={len(report["completed"])}, '
        f'activated={len(report["activated"])}, not_ready={len(report["not_ready"])}, '
        f'errors={len(report["errors"])}, invitations_expired={expired}'
    )
    return {
        'completed': len(report['completed']),
        'activated': len(report['activated']),
        'not_ready': len(report['not_ready']),
        'errors': len(report['errors']),
        'invitations_expired': expired,
        'timestamp': timezone.now().isoformat(),
    }
