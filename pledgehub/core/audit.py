"""
Audit trail.

Every state-changing business operation writes one record to the ``audit``
logger. The LOGGING config routes it to a dedicated rotating file; records
always carry ``actor``, ``subject``, ``tenant`` and ``context`` extras.

    from core.audit import log_event
    log_event('project_activated', actor=request.user, subject=project)
"""
import logging

from tenants.context import get_current_tenant

audit_logger = logging.getLogger('audit')


def _describe_actor(actor):
    if actor is None or not getattr(actor, 'is_authenticated', False):
        return 'system'
    return f'{actor.pk}:{actor.email}'


def _describe_subject(subject):
    if subject is None:
        return '-'
    return f'{subject._meta.label}:{subject.pk}'


def _resolve_tenant(subject, tenant):
    if tenant is not None:
        return tenant
    if subject is not None and subject._meta.label == 'tenants.Tenant':
        return subject
    return getattr(subject, 'tenant', None) or get_current_tenant()


def log_event(event, actor=None, subject=None, tenant=None, **context):
    """Write a structured audit record."""
    tenant = _resolve_tenant(subject, tenant)
    audit_logger.info(event, extra={
        'actor': _describe_actor(actor),
        'subject': _describe_subject(subject),
        'tenant': getattr(tenant, 'slug', None) or '-',
        'context': context,
    })
