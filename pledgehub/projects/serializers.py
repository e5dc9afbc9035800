import re
from decimal import Decimal

from django.utils import timezone
from rest_framework import serializers

from tenants.models import Tenant, TenantMembership
from .models import (
    InstallmentFrequency,
    PaymentOption,
    Product,
    Project,
    ProjectInvitation,
    ProjectVisibility,
)
from .policies import ProjectPolicy
from .services import PROTECTED_SETTINGS

PROJECT_NAME_RE = re.compile(r"^[a-zA-Z0-9\s\-'.&()]+$")

AMOUNT_TOLERANCE = Decimal('0.01')
MAX_PRODUCTS = 50


def _squash(value):
    return ' '.join((value or '').split())


# ═══════════════════════════════════════════════════════════════
# PRODUCTS
# ═══════════════════════════════════════════════════════════════

class ProductInputSerializer(serializers.Serializer):
    """
    Product row submitted together with a project.

    On update a row with the ``id`` of an existing product edits it, and
    ``delete`` removes it.
    """

    id = serializers.IntegerField(required=False)
    delete = serializers.BooleanField(required=False, default=False)
    name = serializers.CharField(max_length=255)
    description = serializers.CharField(max_length=1000, required=False, allow_blank=True)
    price = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('1'))

    def validate_name(self, value):
        value = _squash(value)
        if not value:
            raise serializers.ValidationError('Product name is required.')
        return value


class ProductSerializer(serializers.ModelSerializer):
    price = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('1'))
    remove_image = serializers.BooleanField(write_only=True, required=False, default=False)

    class Meta:
        model = Product
        fields = ['id', 'project', 'name', 'description', 'price', 'image', 'sort_order',
                  'remove_image', 'created_at', 'updated_at']
        read_only_fields = ['id', 'project', 'sort_order', 'created_at', 'updated_at']

    def validate_name(self, value):
        value = _squash(value)
        if not value:
            raise serializers.ValidationError('Product name is required.')
        return value


class ReorderProductsSerializer(serializers.Serializer):
    product_ids = serializers.ListField(child=serializers.IntegerField(), allow_empty=False)


# ═══════════════════════════════════════════════════════════════
# PROJECT INPUT
# ═══════════════════════════════════════════════════════════════

class ProjectInputSerializer(serializers.ModelSerializer):
    """
    Create/update form of a project.

    On update (``partial=True``) every cross-field rule is checked against
    the merged state of the instance and the submitted values.
    """

    name = serializers.CharField(max_length=255)
    description = serializers.CharField(max_length=5000)
    visibility = serializers.ChoiceField(choices=ProjectVisibility.choices)
    max_contributors = serializers.IntegerField(min_value=1, max_value=10000, required=False, allow_null=True)
    total_amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('1'))
    minimum_contribution = serializers.DecimalField(
        max_digits=12, decimal_places=2, min_value=Decimal('1'), required=False, allow_null=True,
    )
    payment_options = serializers.ListField(
        child=serializers.ChoiceField(choices=PaymentOption.choices), allow_empty=False,
    )
    installment_frequency = serializers.ChoiceField(
        choices=InstallmentFrequency.choices, required=False, allow_null=True,
    )
    custom_installment_months = serializers.IntegerField(
        min_value=2, max_value=60, required=False, allow_null=True,
    )
    start_date = serializers.DateField()
    end_date = serializers.DateField()
    registration_deadline = serializers.DateField(required=False, allow_null=True)
    products = ProductInputSerializer(many=True, required=False)

    class Meta:
        model = Project
        fields = [
            'name', 'description', 'visibility', 'requires_approval', 'max_contributors',
            'total_amount', 'minimum_contribution', 'payment_options',
            'installment_frequency', 'custom_installment_months',
            'start_date', 'end_date', 'registration_deadline',
            'managed_by', 'settings', 'products',
        ]

    def validate_name(self, value):
        value = _squash(value)
        if not PROJECT_NAME_RE.match(value):
            raise serializers.ValidationError(
                'Project name may contain only letters, numbers, spaces, hyphens, '
                'apostrophes, periods, ampersands and parentheses.'
            )
        return value

    def validate_description(self, value):
        value = value.strip()
        if not value:
            raise serializers.ValidationError('Project description is required.')
        return value

    def validate_payment_options(self, value):
        return list(dict.fromkeys(value))

    def validate_managed_by(self, value):
        if value is None:
            return []
        if not isinstance(value, list) or not all(isinstance(pk, int) and not isinstance(pk, bool) for pk in value):
            raise serializers.ValidationError('Managers must be a list of user ids.')
        return list(dict.fromkeys(value))

    def validate_settings(self, value):
        if value is None:
            return {}
        if not isinstance(value, dict):
            raise serializers.ValidationError('Settings must be an object.')
        return {key: item for key, item in value.items() if key not in PROTECTED_SETTINGS}

    def _tenant(self, attrs):
        if attrs.get('tenant') is not None:
            return attrs['tenant']
        if self.instance is not None:
            return self.instance.tenant
        return self.context.get('tenant')

    def validate_products(self, value):
        if self.instance is None:
            value = [row for row in value if not row.get('delete')]
        live = [row for row in value if not row.get('delete')]
        if not 1 <= len(live) <= MAX_PRODUCTS:
            raise serializers.ValidationError(f'A project needs between 1 and {MAX_PRODUCTS} products.')
        return value

    def _merged(self, attrs, field):
        if field in attrs:
            return attrs[field]
        if self.instance is not None:
            return getattr(self.instance, field)
        return None

    def validate(self, attrs):
        today = timezone.localdate()
        errors = {}

        if self.instance is None and 'products' not in attrs:
            errors['products'] = 'At least one product is required.'

        total = self._merged(attrs, 'total_amount')
        minimum = self._merged(attrs, 'minimum_contribution')
        if minimum is not None and total is not None and minimum > total:
            errors['minimum_contribution'] = 'Minimum contribution cannot exceed the total amount.'

        options = self._merged(attrs, 'payment_options') or []
        frequency = self._merged(attrs, 'installment_frequency')
        if PaymentOption.INSTALLMENTS in options:
            if not frequency:
                errors['installment_frequency'] = 'Installment frequency is required when installments are enabled.'
            elif frequency == InstallmentFrequency.CUSTOM and not self._merged(attrs, 'custom_installment_months'):
                errors['custom_installment_months'] = 'Number of months is required for a custom frequency.'

        start = self._merged(attrs, 'start_date')
        end = self._merged(attrs, 'end_date')
        if 'start_date' in attrs and start <= today:
            errors['start_date'] = 'Start date must be after today.'
        if start and end and end <= start:
            errors['end_date'] = 'End date must be after the start date.'

        deadline = self._merged(attrs, 'registration_deadline')
        if deadline is not None and 'registration_deadline' in attrs:
            if deadline <= today:
                errors['registration_deadline'] = 'Registration deadline must be after today.'
            elif end and deadline >= end:
                errors['registration_deadline'] = 'Registration deadline must be before the end date.'
            elif start and (start - deadline).days < 1:
                errors['registration_deadline'] = 'Registration deadline must be at least one day before the start date.'

        if 'products' in attrs and total is not None:
            products_total = sum(
                (p['price'] for p in attrs['products'] if not p.get('delete')), Decimal('0'),
            )
            if abs(products_total - total) > AMOUNT_TOLERANCE:
                errors['products'] = (
                    f'The sum of product prices ({products_total}) must equal the total amount ({total}).'
                )

        managers = attrs.get('managed_by')
        tenant = self._tenant(attrs)
        if managers and tenant is not None:
            members = set(
                TenantMembership.objects.filter(tenant=tenant, user_id__in=managers, is_active=True)
                .values_list('user_id', flat=True)
            )
            strangers = [pk for pk in managers if pk not in members]
            if strangers:
                errors['managed_by'] = f'Users {strangers} are not active members of this organization.'

        if errors:
            raise serializers.ValidationError(errors)

        if attrs.get('installment_frequency') is None:
            attrs.pop('installment_frequency', None)
        return attrs


class AdminProjectInputSerializer(ProjectInputSerializer):
    """System admins create projects on behalf of any tenant."""

    tenant_id = serializers.PrimaryKeyRelatedField(
        queryset=Tenant.objects.all(), source='tenant', write_only=True,
    )

    class Meta(ProjectInputSerializer.Meta):
        fields = ProjectInputSerializer.Meta.fields + ['tenant_id']


class CancelProjectSerializer(serializers.Serializer):
    reason = serializers.CharField(max_length=1000, required=False, allow_blank=True, allow_null=True)


# ═══════════════════════════════════════════════════════════════
# PROJECT OUTPUT
# ═══════════════════════════════════════════════════════════════

class ProjectSerializer(serializers.ModelSerializer):
    status_label = serializers.CharField(source='get_status_display', read_only=True)
    status_css = serializers.SerializerMethodField()
    visibility_label = serializers.CharField(source='get_visibility_display', read_only=True)
    visibility_description = serializers.SerializerMethodField()
    tenant_slug = serializers.CharField(source='tenant.slug', read_only=True)
    created_by_email = serializers.EmailField(source='created_by.email', read_only=True)
    products = ProductSerializer(many=True, read_only=True)
    products_total = serializers.SerializerMethodField()
    statistics = serializers.SerializerMethodField()
    abilities = serializers.SerializerMethodField()

    class Meta:
        model = Project
        fields = [
            'id', 'tenant', 'tenant_slug', 'name', 'slug', 'description',
            'visibility', 'visibility_label', 'visibility_description',
            'requires_approval', 'max_contributors',
            'total_amount', 'minimum_contribution', 'payment_options',
            'installment_frequency', 'custom_installment_months',
            'start_date', 'end_date', 'registration_deadline',
            'created_by', 'created_by_email', 'managed_by',
            'status', 'status_label', 'status_css', 'settings',
            'products', 'products_total', 'statistics', 'abilities',
            'created_at', 'updated_at',
        ]
        read_only_fields = fields

    def get_status_css(self, obj):
        return obj.project_status.css_class

    def get_visibility_description(self, obj):
        return obj.project_visibility.description

    def get_products_total(self, obj):
        return str(obj.products_total())

    def _user(self):
        request = self.context.get('request')
        return getattr(request, 'user', None)

    def get_statistics(self, obj):
        if not ProjectPolicy.view_statistics(self._user(), obj):
            return None
        return {key: str(value) if isinstance(value, Decimal) else value
                for key, value in obj.statistics().items()}

    def get_abilities(self, obj):
        return ProjectPolicy.abilities(self._user(), obj)


class ProjectListSerializer(ProjectSerializer):
    """List rows: no products, statistics or abilities."""

    class Meta(ProjectSerializer.Meta):
        fields = [
            'id', 'tenant', 'tenant_slug', 'name', 'slug', 'description',
            'visibility', 'visibility_label', 'total_amount', 'minimum_contribution',
            'start_date', 'end_date', 'status', 'status_label', 'status_css',
            'created_at', 'updated_at',
        ]
        read_only_fields = fields


class PublicProjectSerializer(ProjectSerializer):
    """Public catalogue: project data with tenant branding."""

    tenant = serializers.SerializerMethodField()

    class Meta(ProjectSerializer.Meta):
        fields = [
            'id', 'tenant', 'name', 'slug', 'description',
            'visibility', 'visibility_label', 'total_amount', 'minimum_contribution',
            'payment_options', 'installment_frequency',
            'start_date', 'end_date', 'registration_deadline',
            'status', 'status_label', 'status_css', 'products', 'abilities',
        ]
        read_only_fields = fields

    def get_tenant(self, obj):
        return obj.tenant.to_frontend_config()


# ═══════════════════════════════════════════════════════════════
# INVITATIONS
# ═══════════════════════════════════════════════════════════════

class InvitationCreateSerializer(serializers.Serializer):
    email = serializers.EmailField()


class ProjectInvitationSerializer(serializers.ModelSerializer):
    project_name = serializers.CharField(source='project.name', read_only=True)
    invited_by_email = serializers.EmailField(source='invited_by.email', read_only=True)
    status_label = serializers.CharField(source='get_status_display', read_only=True)

    class Meta:
        model = ProjectInvitation
        fields = [
            'id', 'project', 'project_name', 'email', 'invited_by', 'invited_by_email',
            'status', 'status_label', 'expires_at', 'accepted_at', 'created_at',
        ]
        read_only_fields = fields
