"""
Test helpers shared by the app test suites.

    from core.testing import make_user, make_tenant, make_project
"""
from datetime import timedelta
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.utils import timezone

from accounts.models import Role

PASSWORD = 'Testpass123!'


def make_user(email, role=Role.CONTRIBUTOR, **extra):
    User = get_user_model()
    extra.setdefault('name', email.split('@')[0].title())
    return User.objects.create_user(email=email, password=PASSWORD, role=role, **extra)


def make_tenant(slug, name=None, **extra):
    from tenants.models import Tenant
    return Tenant.objects.create(slug=slug, name=name or slug.title(), **extra)


def add_member(tenant, user, role=Role.CONTRIBUTOR, is_active=True):
    from tenants.models import TenantMembership
    return TenantMembership.objects.create(tenant=tenant, user=user, role=role, is_active=is_active)


def make_project(tenant, created_by, name='Community Hall', prices=('600.00', '400.00'), **extra):
    """Project with one product per price; total = sum of prices."""
    from projects.models import Product, Project, ProjectStatus

    today = timezone.localdate()
    total = sum((Decimal(price) for price in prices), Decimal('0.00'))
    fields = {
        'description': 'Raising funds for a new community hall.',
        'total_amount': total,
        'start_date': today + timedelta(days=1),
        'end_date': today + timedelta(days=180),
        'status': ProjectStatus.DRAFT,
        'slug': name.lower().replace(' ', '-'),
    }
    fields.update(extra)
    project = Project.objects.create(tenant=tenant, created_by=created_by, name=name, **fields)
    for index, price in enumerate(prices, start=1):
        Product.objects.create(
            tenant=tenant, project=project, name=f'Item {index}',
            price=Decimal(price), sort_order=index,
        )
    return project


def make_contribution(project, user, **extra):
    """Approved full-payment pledge stored directly, bypassing the pledge checks."""
    from finance.models import Contribution

    fields = {
        'total_committed': project.total_amount,
        'payment_type': 'full',
        'joined_date': timezone.localdate(),
    }
    fields.update(extra)
    return Contribution.objects.create(tenant=project.tenant, project=project, user=user, **fields)
