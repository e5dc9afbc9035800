from django.contrib.auth import get_user_model
from rest_framework import serializers

from accounts.models import TENANT_ROLE_CHOICES
from .models import OnboardingProgress, Tenant, TenantMembership

User = get_user_model()


class TenantSerializer(serializers.ModelSerializer):
    member_count = serializers.SerializerMethodField()
    url = serializers.SerializerMethodField()

    class Meta:
        model = Tenant
        fields = [
            'id', 'name', 'slug', 'domain', 'status', 'is_active', 'url',
            'logo_url', 'primary_color', 'secondary_color',
            'platform_fee_percentage', 'trial_ends_at',
            'max_projects', 'max_users', 'max_storage_mb',
            'contact_name', 'contact_email', 'contact_phone',
            'settings', 'application',
            'suspended_at', 'suspended_reason',
            'member_count',
            'created_at', 'updated_at',
        ]
        read_only_fields = [
            'id', 'status', 'application', 'suspended_at', 'suspended_reason',
            'created_at', 'updated_at',
        ]

    def get_member_count(self, obj):
        return obj.memberships.filter(is_active=True).count()

    def get_url(self, obj):
        return obj.get_url()


class TenantCreateSerializer(serializers.ModelSerializer):
    slug = serializers.SlugField(max_length=100, required=False)

    class Meta:
        model = Tenant
        fields = [
            'name', 'slug', 'domain', 'logo_url', 'primary_color', 'secondary_color',
            'platform_fee_percentage', 'trial_ends_at',
            'max_projects', 'max_users', 'max_storage_mb',
            'contact_name', 'contact_email', 'contact_phone', 'settings',
        ]

    def validate_slug(self, value):
        if Tenant.objects.filter(slug=value).exists():
            raise serializers.ValidationError('This slug is already taken.')
        return value

    def create(self, validated_data):
        from .services import TenantService
        if not validated_data.get('slug'):
            validated_data['slug'] = TenantService.unique_slug(validated_data['name'])
        return super().create(validated_data)


class TenantSettingsSerializer(serializers.ModelSerializer):
    """Fields a tenant admin may change on their own tenant."""

    class Meta:
        model = Tenant
        fields = [
            'name', 'logo_url', 'primary_color', 'secondary_color',
            'contact_name', 'contact_email', 'contact_phone', 'settings',
        ]


class TenantMembershipSerializer(serializers.ModelSerializer):
    user_email = serializers.EmailField(source='user.email', read_only=True)
    user_name = serializers.CharField(source='user.name', read_only=True)

    class Meta:
        model = TenantMembership
        fields = [
            'id', 'tenant', 'user', 'role', 'is_active',
            'user_email', 'user_name',
            'joined_at', 'updated_at',
        ]
        read_only_fields = ['id', 'tenant', 'user', 'is_active', 'joined_at', 'updated_at']


class MemberCreateSerializer(serializers.Serializer):
    email = serializers.EmailField()
    role = serializers.ChoiceField(choices=TENANT_ROLE_CHOICES)

    def validate_email(self, value):
        user = User.objects.filter(email__iexact=value.strip()).first()
        if user is None:
            raise serializers.ValidationError('No user with this email.')
        return user


class MyTenantSerializer(serializers.ModelSerializer):
    tenant = serializers.SerializerMethodField()

    class Meta:
        model = TenantMembership
        fields = ['role', 'joined_at', 'tenant']

    def get_tenant(self, obj):
        return obj.tenant.to_frontend_config()


class OnboardingProgressSerializer(serializers.ModelSerializer):
    class Meta:
        model = OnboardingProgress
        fields = ['step_key', 'step_name', 'completed', 'completed_at', 'data']
        read_only_fields = fields


class SuspendSerializer(serializers.Serializer):
    reason = serializers.CharField(max_length=1000, required=False, allow_blank=True, default='')


class TenantSelectSerializer(serializers.Serializer):
    tenant = serializers.CharField(help_text='Tenant slug or id')


class MemberRoleSerializer(serializers.Serializer):
    role = serializers.ChoiceField(choices=TENANT_ROLE_CHOICES)
