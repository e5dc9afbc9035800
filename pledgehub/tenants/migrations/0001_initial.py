import uuid
from decimal import Decimal

import django.core.validators
import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
        ('applications', '0001_initial'),
    ]

    operations = [
        migrations.CreateModel(
            name='Tenant',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('slug', models.SlugField(help_text='Unique identifier used for the subdomain and URL prefix', max_length=100, unique=True)),
                ('name', models.CharField(max_length=255)),
                ('domain', models.CharField(blank=True, help_text='Optional custom domain', max_length=255, null=True, unique=True)),
                ('status', models.CharField(choices=[('active', 'Active'), ('suspended', 'Suspended'), ('inactive', 'Inactive')], db_index=True, default='active', max_length=20)),
                ('is_active', models.BooleanField(default=True)),
                ('logo_url', models.URLField(blank=True, default='')),
                ('primary_color', models.CharField(default='#3B82F6', max_length=7, validators=[django.core.validators.RegexValidator(message='Color must be a hex value like #3B82F6.', regex='^#[0-9A-Fa-f]{6}$')])),
                ('secondary_color', models.CharField(default='#10B981', max_length=7, validators=[django.core.validators.RegexValidator(message='Color must be a hex value like #3B82F6.', regex='^#[0-9A-Fa-f]{6}$')])),
                ('platform_fee_percentage', models.DecimalField(decimal_places=2, default=Decimal('5.00'), max_digits=5, validators=[django.core.validators.MinValueValidator(Decimal('0')), django.core.validators.MaxValueValidator(Decimal('100'))])),
                ('trial_ends_at', models.DateTimeField(blank=True, null=True)),
                ('max_projects', models.PositiveIntegerField(blank=True, help_text='Empty = unlimited', null=True)),
                ('max_users', models.PositiveIntegerField(blank=True, help_text='Empty = unlimited', null=True)),
                ('max_storage_mb', models.PositiveIntegerField(default=10000)),
                ('contact_name', models.CharField(blank=True, default='', max_length=255)),
                ('contact_email', models.EmailField(blank=True, default='', max_length=254)),
                ('contact_phone', models.CharField(blank=True, default='', max_length=20)),
                ('settings', models.JSONField(blank=True, default=dict)),
                ('suspended_at', models.DateTimeField(blank=True, null=True)),
                ('suspended_reason', models.TextField(blank=True, default='')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('application', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='tenants', to='applications.tenantapplication')),
                ('suspended_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'ordering': ['name'],
                'indexes': [models.Index(fields=['status', 'is_active'], name='tenant_status_active_idx')],
            },
        ),
        migrations.CreateModel(
            name='TenantMembership',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('role', models.CharField(choices=[('tenant_admin', 'Tenant administrator'), ('project_manager', 'Project manager'), ('contributor', 'Contributor')], default='contributor', max_length=20)),
                ('is_active', models.BooleanField(default=True)),
                ('joined_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('tenant', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='memberships', to='tenants.tenant')),
                ('user', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='tenant_memberships', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'unique_together': {('tenant', 'user')},
                'indexes': [
                    models.Index(fields=['tenant', 'role'], name='membership_tenant_role_idx'),
                    models.Index(fields=['user', 'is_active'], name='membership_user_active_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='OnboardingProgress',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('step_key', models.CharField(max_length=100)),
                ('step_name', models.CharField(max_length=255)),
                ('completed', models.BooleanField(default=False)),
                ('completed_at', models.DateTimeField(blank=True, null=True)),
                ('data', models.JSONField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('tenant', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='onboarding_steps', to='tenants.tenant')),
            ],
            options={
                'ordering': ['id'],
                'unique_together': {('tenant', 'step_key')},
            },
        ),
    ]
