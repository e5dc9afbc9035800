"""
Project business logic.

Lifecycle (draft -> active -> paused/completed/cancelled), product catalogue,
listings with filters and invitations. All writes are atomic; every state
change is logged and written to the audit trail.
"""
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Optional
import logging
import uuid

from django.db import transaction
from django.db.models import Max
from django.utils import timezone
from django.utils.dateparse import parse_date
from django.utils.text import slugify

from core.audit import log_event
from core.emails import email_service
from tenants.services import TenantLimitError
from .models import (
    InstallmentFrequency,
    PaymentOption,
    Product,
    Project,
    ProjectInvitation,
    ProjectStatus,
)

logger = logging.getLogger(__name__)

# Financial terms that cannot change once someone has contributed
FROZEN_FIELDS = ('total_amount', 'minimum_contribution', 'payment_options')

SORT_FIELDS = ('created_at', 'updated_at', 'name', 'start_date', 'end_date', 'total_amount')

# Written by cancel() only; updates keep the stored values
PROTECTED_SETTINGS = ('cancellation_reason', 'cancelled_at', 'cancelled_by')

AMOUNT_TOLERANCE = Decimal('0.01')


def _to_date(value):
    if isinstance(value, date):
        return value
    parsed = parse_date(str(value))
    if parsed is None:
        raise ValueError(f'invalid date {value!r}')
    return parsed


def _parse_filter(filters, key, convert):
    """Converted filter value, or None when it is missing or malformed."""
    value = filters.get(key)
    if value in (None, ''):
        return None
    try:
        return convert(value)
    except (TypeError, ValueError):
        logger.debug(f'Ignoring malformed {key}={value!r}')
        return None


class ProjectServiceError(Exception):
    """Base exception for project operations."""
    pass


class InvalidStatusTransition(ProjectServiceError):
    """Raised when the state machine does not allow the requested move."""
    pass


class ProjectNotReady(ProjectServiceError):
    """Raised when a project fails its activation checks."""

    def __init__(self, errors):
        self.errors = list(errors)
        super().__init__('Project is not ready for activation: ' + '; '.join(self.errors))


class ProjectLockedError(ProjectServiceError):
    """Raised when a change would alter terms contributors already accepted."""
    pass


class InvitationError(ProjectServiceError):
    """Raised when an invitation cannot be sent, accepted or declined."""
    pass


class ProjectService:

    # ─── Slugs ───

    @staticmethod
    def unique_slug(name, tenant, exclude_pk=None):
        """Slug unique within ``tenant``: name, name-1, name-2, ..."""
        base = slugify(name)[:240] or 'project'
        qs = Project.objects.filter(tenant=tenant)
        if exclude_pk is not None:
            qs = qs.exclude(pk=exclude_pk)
        slug = base
        counter = 1
        while qs.filter(slug=slug).exists():
            slug = f'{base}-{counter}'
            counter += 1
        return slug

    # ─── CRUD ───

    @staticmethod
    @transaction.atomic
    def create_project(data, tenant, user, products=None) -> Project:
        """
        Create a draft project with its products.

        Args:
            data: validated project fields (without ``products``)
            tenant: owning tenant
            user: creator
            products: list of dicts with name, description, price, image

        Raises:
            TenantLimitError: tenant reached max_projects
        """
        data = dict(data)
        products = list(products if products is not None else data.pop('products', []) or [])

        if tenant.max_projects is not None and tenant.projects.count() >= tenant.max_projects:
            raise TenantLimitError(
                f'Tenant {tenant.slug} reached its project limit ({tenant.max_projects})'
            )

        data.pop('status', None)
        project = Project.objects.create(
            tenant=tenant,
            created_by=user,
            slug=ProjectService.unique_slug(data['name'], tenant),
            status=ProjectStatus.DRAFT,
            **data,
        )

        for index, product_data in enumerate(products, start=1):
            Product.objects.create(
                tenant=tenant,
                project=project,
                sort_order=product_data.get('sort_order') or index,
                name=product_data['name'],
                description=product_data.get('description') or '',
                price=product_data['price'],
                image=product_data.get('image'),
            )

        if products and not project.total_amount:
            project.total_amount = project.products_total()
            project.save(update_fields=['total_amount', 'updated_at'])

        logger.info(
            f'Project created: {project.slug} (tenant={tenant.slug}, by={user.email}, '
            f'products={len(products)}, total={project.total_amount})'
        )
        log_event('project_created', actor=user, subject=project, name=project.name)
        return project

    @staticmethod
    @transaction.atomic
    def update_project(project, data, user) -> Project:
        """
        Apply a partial update. ``None`` values are ignored.

        A ``products`` list replaces the catalogue through
        ``ProductService.sync_products`` in the same transaction.

        Raises:
            ProjectLockedError: financial terms or products changed after contributions
            ValueError: a product row belongs to another project
        """
        project = Project.objects.select_for_update().get(pk=project.pk)
        data = {key: value for key, value in data.items() if value is not None}
        data.pop('status', None)
        products = data.pop('products', None)

        if project.has_contributions():
            locked = [
                field for field in FROZEN_FIELDS
                if field in data and data[field] != getattr(project, field)
            ]
            if locked:
                raise ProjectLockedError(
                    'Cannot change ' + ', '.join(locked) + ' after contributions have been made'
                )

        if 'settings' in data:
            kept = {key: value for key, value in (project.settings or {}).items() if key in PROTECTED_SETTINGS}
            data['settings'] = {
                **{key: value for key, value in data['settings'].items() if key not in PROTECTED_SETTINGS},
                **kept,
            }

        if 'name' in data and data['name'] != project.name:
            project.slug = ProjectService.unique_slug(data['name'], project.tenant, exclude_pk=project.pk)

        for field, value in data.items():
            setattr(project, field, value)
        project.save()

        if products is not None:
            ProductService.sync_products(project, products, user)

        logger.info(f'Project updated: {project.slug} by {user.email}, fields={sorted(data)}')
        log_event('project_updated', actor=user, subject=project, fields=sorted(data))
        return project

    @staticmethod
    @transaction.atomic
    def delete_project(project, user):
        """
        Raises:
            ProjectLockedError: project has contributions
        """
        if project.has_contributions():
            raise ProjectLockedError('Cannot delete a project that has contributions')

        for product in project.products.all():
            if product.image:
                product.image.delete(save=False)

        logger.info(f'Project deleted: {project.slug} (tenant={project.tenant.slug}) by {user.email}')
        log_event('project_deleted', actor=user, subject=project, name=project.name)
        project.delete()

    # ─── Lifecycle ───

    @staticmethod
    def validate_status_transition(project, new_status, user=None):
        """
        Raises:
            InvalidStatusTransition: not an edge of the state machine
            ProjectNotReady: activation checks failed
        """
        current = project.project_status
        new_status = ProjectStatus(new_status)

        if not current.can_transition_to(new_status):
            raise InvalidStatusTransition(current.transition_description(new_status))

        if new_status == ProjectStatus.ACTIVE:
            errors = ProjectService.activation_errors(project)
            if errors:
                raise ProjectNotReady(errors)

        if new_status == ProjectStatus.CANCELLED and project.has_contributions():
            logger.warning(
                f'Project with contributions is being cancelled: {project.slug} '
                f'(contributions={project.contributions.count()}, by={getattr(user, "email", "system")})'
            )

        logger.info(f'Project {project.slug}: {current.transition_description(new_status)}')

    @staticmethod
    def activation_errors(project, today: Optional[date] = None):
        """Everything that keeps ``project`` from going live. Empty list = ready."""
        today = today or timezone.localdate()
        errors = []

        if not project.name:
            errors.append('Project name is required')
        if not (project.description or '').strip():
            errors.append('Project description is required')
        if project.start_date is None or project.end_date is None:
            errors.append('Project start and end dates are required')
        else:
            if project.end_date <= project.start_date:
                errors.append('End date must be after start date')
            if project.end_date < today:
                errors.append('End date cannot be in the past')

        product_count = project.products.count()
        products_total = project.products_total()
        if product_count == 0:
            errors.append('Project must have at least one product')
        elif products_total <= 0:
            errors.append('Product prices must add up to a positive total')

        if project.total_amount and product_count and abs(project.total_amount - products_total) > AMOUNT_TOLERANCE:
            errors.append(
                f'Total amount ({project.total_amount}) must equal the sum of product prices ({products_total})'
            )

        if project.minimum_contribution is not None and product_count and project.minimum_contribution > products_total:
            errors.append('Minimum contribution cannot exceed the project total')

        if not project.payment_options:
            errors.append('At least one payment option is required')
        elif (PaymentOption.INSTALLMENTS in project.payment_options
              and project.installment_frequency == InstallmentFrequency.CUSTOM
              and not project.custom_installment_months):
            errors.append('Custom installment frequency requires the number of months')

        if project.registration_deadline and project.end_date and project.registration_deadline >= project.end_date:
            errors.append('Registration deadline must be before the end date')

        if project.max_contributors is not None and project.max_contributors < 1:
            errors.append('Maximum contributors must be at least 1')

        return errors

    @staticmethod
    def is_ready_for_activation(project):
        return not ProjectService.activation_errors(project)

    @staticmethod
    def _transition(project, new_status, user, event, **context):
        with transaction.atomic():
            project = Project.objects.select_for_update().get(pk=project.pk)
            ProjectService.validate_status_transition(project, new_status, user)
            previous = project.status
            project.status = new_status
            if context.get('settings'):
                project.settings = {**(project.settings or {}), **context.pop('settings')}
            project.save(update_fields=['status', 'settings', 'updated_at'])

        log_event(event, actor=user, subject=project, from_status=previous, to_status=project.status, **context)
        return project

    @staticmethod
    def activate(project, user) -> Project:
        return ProjectService._transition(project, ProjectStatus.ACTIVE, user, 'project_activated')

    @staticmethod
    def pause(project, user) -> Project:
        return ProjectService._transition(project, ProjectStatus.PAUSED, user, 'project_paused')

    @staticmethod
    def resume(project, user) -> Project:
        if project.status != ProjectStatus.PAUSED:
            raise InvalidStatusTransition(f'Only paused projects can be resumed (status: {project.status})')
        return ProjectService._transition(project, ProjectStatus.ACTIVE, user, 'project_resumed')

    @staticmethod
    def complete(project, user) -> Project:
        return ProjectService._transition(project, ProjectStatus.COMPLETED, user, 'project_completed')

    @staticmethod
    def cancel(project, user, reason=None) -> Project:
        return ProjectService._transition(
            project, ProjectStatus.CANCELLED, user, 'project_cancelled',
            reason=reason,
            settings={
                'cancellation_reason': reason,
                'cancelled_at': timezone.now().isoformat(),
                'cancelled_by': user.pk if user is not None else None,
            },
        )

    # ─── Reporting ───

    @staticmethod
    def statistics(project):
        return project.statistics()

    @staticmethod
    def apply_filters(qs, filters=None):
        """
        Narrow and sort a project queryset.

        Supported keys: search, status, visibility, tenant_id, min_amount,
        max_amount, start_date, end_date, created_by, sort_by, sort_direction.
        """
        filters = filters or {}

        if filters.get('search'):
            qs = qs.search(filters['search'])

        for field in ('status', 'visibility'):
            value = filters.get(field)
            if not value:
                continue
            if isinstance(value, (list, tuple)):
                qs = qs.filter(**{f'{field}__in': value})
            else:
                qs = qs.filter(**{field: value})

        tenant_id = _parse_filter(filters, 'tenant_id', lambda value: uuid.UUID(str(value)))
        if tenant_id is not None:
            qs = qs.filter(tenant_id=tenant_id)
        created_by = _parse_filter(filters, 'created_by', int)
        if created_by is not None:
            qs = qs.filter(created_by_id=created_by)

        for key, lookup in (('min_amount', 'total_amount__gte'), ('max_amount', 'total_amount__lte')):
            if filters.get(key) not in (None, ''):
                try:
                    qs = qs.filter(**{lookup: Decimal(str(filters[key]))})
                except InvalidOperation:
                    logger.debug(f'Ignoring non-numeric {key}={filters[key]!r}')

        start_date = _parse_filter(filters, 'start_date', _to_date)
        if start_date is not None:
            qs = qs.filter(start_date__gte=start_date)
        end_date = _parse_filter(filters, 'end_date', _to_date)
        if end_date is not None:
            qs = qs.filter(end_date__lte=end_date)

        sort_by = filters.get('sort_by') or 'created_at'
        if sort_by in SORT_FIELDS:
            direction = '' if (filters.get('sort_direction') or 'desc').lower() == 'asc' else '-'
            qs = qs.order_by(f'{direction}{sort_by}', 'id')

        return qs

    @staticmethod
    def public_projects(filters=None):
        qs = Project.objects.publicly_discoverable().select_related('tenant')
        return ProjectService.apply_filters(qs, filters)

    @staticmethod
    def search_projects(term, filters=None, tenant=None):
        qs = Project.objects.select_related('tenant').search(term)
        if tenant is not None:
            qs = qs.for_tenant(tenant)
        else:
            qs = qs.publicly_discoverable()
        return ProjectService.apply_filters(qs, filters)

    @staticmethod
    def tenant_projects(tenant, filters=None):
        qs = Project.objects.for_tenant(tenant).select_related('created_by')
        return ProjectService.apply_filters(qs, filters)

    @staticmethod
    def all_projects(filters=None):
        qs = Project.objects.select_related('tenant', 'created_by')
        return ProjectService.apply_filters(qs, filters)

    # ─── Scheduled ───

    @staticmethod
    def update_statuses_by_date(today: Optional[date] = None, dry_run=False):
        """
        Date-driven lifecycle sweep.

        Completes active projects whose end date has passed and activates
        draft projects whose start date has arrived, when they pass the
        activation checks. Failures are logged per project.

        Returns:
            dict with ``completed``, ``activated`` and ``not_ready`` lists of
            project slugs plus ``errors``
        """
        today = today or timezone.localdate()
        report = {'completed': [], 'activated': [], 'not_ready': [], 'errors': []}

        expired = Project.objects.filter(status=ProjectStatus.ACTIVE, end_date__lt=today).select_related('tenant')
        for project in expired:
            label = f'{project.tenant.slug}/{project.slug}'
            try:
                if not dry_run:
                    with transaction.atomic():
                        project.status = ProjectStatus.COMPLETED
                        project.save(update_fields=['status', 'updated_at'])
                    log_event('project_completed', subject=project, reason='end_date_reached')
                report['completed'].append(label)
                logger.info(f'Project automatically completed: {label} (end_date={project.end_date})')
            except Exception as e:
                report['errors'].append({'project': label, 'error': str(e)})
                logger.exception(f'Failed to auto-complete project {label}')

        starting = Project.objects.filter(
            status=ProjectStatus.DRAFT, start_date__isnull=False, start_date__lte=today,
        ).select_related('tenant')
        for project in starting:
            label = f'{project.tenant.slug}/{project.slug}'
            errors = ProjectService.activation_errors(project, today=today)
            if errors:
                report['not_ready'].append({'project': label, 'reasons': errors})
                logger.debug(f'Project not ready for auto-activation: {label}: {errors}')
                continue
            try:
                if not dry_run:
                    with transaction.atomic():
                        project.status = ProjectStatus.ACTIVE
                        project.save(update_fields=['status', 'updated_at'])
                    log_event('project_activated', subject=project, reason='start_date_reached')
                report['activated'].append(label)
                logger.info(f'Project automatically activated: {label} (start_date={project.start_date})')
            except Exception as e:
                report['errors'].append({'project': label, 'error': str(e)})
                logger.exception(f'Failed to auto-activate project {label}')

        return report


class ProductService:
    """Product catalogue of a project. The project total follows product prices."""

    @staticmethod
    def project_total(project):
        return project.products_total()

    @staticmethod
    def _sync_total(project):
        project.total_amount = project.products_total()
        project.save(update_fields=['total_amount', 'updated_at'])

    @staticmethod
    def _ensure_editable(project):
        if project.has_contributions():
            raise ProjectLockedError('Products cannot change after contributions have been made')

    @staticmethod
    @transaction.atomic
    def add_product(project, data, user=None) -> Product:
        ProductService._ensure_editable(project)
        next_order = (project.products.aggregate(m=Max('sort_order'))['m'] or 0) + 1
        product = Product.objects.create(
            tenant=project.tenant,
            project=project,
            name=data['name'],
            description=data.get('description') or '',
            price=data['price'],
            image=data.get('image'),
            sort_order=next_order,
        )
        ProductService._sync_total(project)
        logger.info(f'Product added: {product.name} ({product.price}) to {project.slug}')
        log_event('product_added', actor=user, subject=product, project=project.pk)
        return product

    @staticmethod
    @transaction.atomic
    def update_product(product, data, user=None, remove_image=False) -> Product:
        project = product.project
        if 'price' in data and data['price'] != product.price:
            ProductService._ensure_editable(project)

        new_image = data.pop('image', None)
        if (new_image or remove_image) and product.image:
            product.image.delete(save=False)
            product.image = None
        if new_image:
            product.image = new_image

        for field in ('name', 'description', 'price'):
            if field in data and data[field] is not None:
                setattr(product, field, data[field])
        product.save()

        ProductService._sync_total(project)
        log_event('product_updated', actor=user, subject=product, fields=sorted(data))
        return product

    @staticmethod
    @transaction.atomic
    def delete_product(product, user=None):
        """
        Raises:
            ProjectLockedError: the project has contributions
        """
        project = product.project
        ProductService._ensure_editable(project)
        if product.image:
            product.image.delete(save=False)
        log_event('product_deleted', actor=user, subject=product, name=product.name)
        product.delete()
        ProductService._sync_total(project)

    @staticmethod
    @transaction.atomic
    def sync_products(project, rows, user=None):
        """
        Replace the catalogue of ``project`` with ``rows``.

        A row with the ``id`` of an existing product updates it and a row
        without one adds a product. Rows flagged ``delete`` and products
        missing from the list are removed. Sort order follows the list.

        Raises:
            ValueError: a row references a product of another project
            ProjectLockedError: the catalogue changes after contributions
        """
        existing = {product.pk: product for product in project.products.all()}
        foreign = [row['id'] for row in rows if row.get('id') and row['id'] not in existing]
        if foreign:
            raise ValueError(f'Products {foreign} do not belong to project {project.slug}')

        kept = []
        changed = False
        for row in rows:
            if row.get('delete'):
                continue
            fields = {
                'name': row['name'],
                'description': row.get('description') or '',
                'price': row['price'],
                'sort_order': len(kept) + 1,
            }
            product = existing.get(row.get('id'))
            if product is None:
                product = Product(tenant=project.tenant, project=project, **fields)
                changed = True
            else:
                changed = changed or product.price != row['price']
                for field, value in fields.items():
                    setattr(product, field, value)
            kept.append(product)

        kept_ids = {product.pk for product in kept if product.pk}
        removed = [product for pk, product in existing.items() if pk not in kept_ids]
        if changed or removed:
            ProductService._ensure_editable(project)

        for product in removed:
            if product.image:
                product.image.delete(save=False)
            product.delete()
        for product in kept:
            product.save()
        ProductService._sync_total(project)

        logger.info(
            f'Products synced for {project.slug}: kept={len(kept)}, removed={len(removed)}, '
            f'total={project.total_amount}'
        )
        log_event('products_synced', actor=user, subject=project,
                  products=len(kept), removed=len(removed))
        return kept

    @staticmethod
    @transaction.atomic
    def reorder_products(project, product_ids):
        """Assign sort_order 1..n following ``product_ids``."""
        if not product_ids:
            raise ValueError('Order list cannot be empty')
        products = {p.pk: p for p in project.products.filter(pk__in=product_ids)}
        missing = [pk for pk in product_ids if pk not in products]
        if missing:
            raise ValueError(f'Products {missing} do not belong to project {project.slug}')
        for position, pk in enumerate(product_ids, start=1):
            Product.objects.filter(pk=pk).update(sort_order=position)
        return list(project.products.all())


class InvitationService:

    @staticmethod
    @transaction.atomic
    def invite(project, email, invited_by) -> ProjectInvitation:
        email = email.strip().lower()
        if project.is_final():
            raise InvitationError('Cannot invite to a completed or cancelled project')
        existing = ProjectInvitation.objects.filter(
            project=project, email__iexact=email, status=ProjectInvitation.Status.PENDING,
        ).first()
        if existing is not None and not existing.is_expired():
            raise InvitationError(f'{email} already has a pending invitation')

        invitation = ProjectInvitation.objects.create(project=project, email=email, invited_by=invited_by)
        logger.info(f'Project invitation created: {email} -> {project.slug}')
        log_event('project_invitation_sent', actor=invited_by, subject=project, email=email)

        transaction.on_commit(lambda: InvitationService._send(invitation))
        return invitation

    @staticmethod
    def _send(invitation):
        project = invitation.project
        email_service.send(
            invitation.email,
            f"You're invited to join {project.name}",
            'projects/emails/invitation.txt',
            {
                'invitation': invitation,
                'project': project,
                'accept_url': project.tenant.get_url(f'/invitations/{invitation.token}'),
            },
        )

    @staticmethod
    def _respond(invitation, user, status):
        if not invitation.matches(user):
            raise InvitationError('This invitation was sent to a different email address')
        if invitation.status != ProjectInvitation.Status.PENDING:
            raise InvitationError(f'Invitation is already {invitation.status}')
        if invitation.is_expired():
            invitation.status = ProjectInvitation.Status.EXPIRED
            invitation.save(update_fields=['status', 'updated_at'])
            raise InvitationError('Invitation has expired')

        invitation.status = status
        if status == ProjectInvitation.Status.ACCEPTED:
            invitation.accepted_at = timezone.now()
        invitation.save(update_fields=['status', 'accepted_at', 'updated_at'])
        log_event(f'project_invitation_{status}', actor=user, subject=invitation.project)
        return invitation

    @staticmethod
    def accept(invitation, user) -> ProjectInvitation:
        return InvitationService._respond(invitation, user, ProjectInvitation.Status.ACCEPTED)

    @staticmethod
    def decline(invitation, user) -> ProjectInvitation:
        return InvitationService._respond(invitation, user, ProjectInvitation.Status.DECLINED)

    @staticmethod
    def expire_stale():
        """Mark pending invitations past their expiry as expired. Returns the count."""
        return ProjectInvitation.objects.filter(
            status=ProjectInvitation.Status.PENDING, expires_at__lte=timezone.now(),
        ).update(status=ProjectInvitation.Status.EXPIRED)
