"""
Management command: seed a demo tenant for local development.

Usage:
    python manage.py seed_demo
    python manage.py seed_demo --password secret123
"""
from datetime import timedelta
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand
from django.db import transaction
from django.utils import timezone

from accounts.models import Role
from projects.models import ProjectVisibility
from projects.services import ProjectService
from tenants.models import OnboardingProgress, Tenant
from tenants.services import TenantService

DEMO_TENANT = {'slug': 'demo', 'name': 'Demo Community Trust', 'contact_email': 'admin@demo.pledgehub.test'}

DEMO_USERS = [
    ('admin@demo.pledgehub.test', 'Demo Admin', Role.TENANT_ADMIN),
    ('manager@demo.pledgehub.test', 'Demo Manager', Role.PROJECT_MANAGER),
    ('member@demo.pledgehub.test', 'Demo Member', Role.CONTRIBUTOR),
]

DEMO_PROJECTS = [
    {
        'name': 'Community Hall',
        'description': 'A new hall for events, classes and meetings.',
        'visibility': ProjectVisibility.PUBLIC,
        'products': [('Foundation', '6000.00'), ('Roof', '4000.00')],
        'activate': True,
    },
    {
        'name': 'Library Books',
        'description': 'Restocking the children\'s library.',
        'visibility': ProjectVisibility.PRIVATE,
        'products': [('Picture books', '800.00'), ('Shelving', '1200.00')],
        'activate': False,
    },
]


class Command(BaseCommand):
    help = 'Seed a demo tenant with members and projects'

    def add_arguments(self, parser):
        parser.add_argument('--password', default='demo12345', help='Password for the demo users')

    @transaction.atomic
    def handle(self, *args, **options):
        tenant, created = Tenant.objects.get_or_create(
            slug=DEMO_TENANT['slug'],
            defaults={'name': DEMO_TENANT['name'], 'contact_email': DEMO_TENANT['contact_email']},
        )
        if created:
            OnboardingProgress.seed_for(tenant)
        self.stdout.write(f'{"CREATED" if created else "EXISTS"}: tenant {tenant.slug}')

        User = get_user_model()
        users = {}
        for email, name, role in DEMO_USERS:
            user, was_created = User.objects.get_or_create(email=email, defaults={'name': name})
            user.set_password(options['password'])
            user.save(update_fields=['password'])
            TenantService.add_member(tenant, user, role)
            users[role] = user
            self.stdout.write(f'{"CREATED" if was_created else "EXISTS"}: {email} ({role})')

        today = timezone.localdate()
        for demo in DEMO_PROJECTS:
            if tenant.projects.filter(name=demo['name']).exists():
                self.stdout.write(f'EXISTS: project {demo["name"]}')
                continue
            products = [{'name': name, 'price': Decimal(price)} for name, price in demo['products']]
            project = ProjectService.create_project({
                'name': demo['name'],
                'description': demo['description'],
                'visibility': demo['visibility'],
                'start_date': today + timedelta(days=7),
                'end_date': today + timedelta(days=365),
            }, tenant, users[Role.TENANT_ADMIN], products=products)
            if demo['activate']:
                project = ProjectService.activate(project, users[Role.TENANT_ADMIN])
            self.stdout.write(f'CREATED: project {project.slug} ({project.status})')

        self.stdout.write(self.style.SUCCESS(
            f'Demo data ready: {TenantService.url_for(tenant.slug)} '
            f'(password: {options["password"]})'
        ))
