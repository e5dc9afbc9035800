import re

from rest_framework import serializers

from .models import TenantApplication

ORGANIZATION_NAME_RE = re.compile(r"^[a-zA-Z0-9\s\-&.,']+$")
PERSON_NAME_RE = re.compile(r"^[a-zA-Z\s\-'.]+$")
PHONE_RE = re.compile(r'^\+?[0-9\s\-()]+$')


def _squash(value):
    return ' '.join((value or '').split())


class TenantApplicationCreateSerializer(serializers.ModelSerializer):
    """Public application form."""

    business_description = serializers.CharField(min_length=50, max_length=1000)
    contact_person_phone = serializers.CharField(max_length=20, required=False, allow_blank=True)

    class Meta:
        model = TenantApplication
        fields = [
            'organization_name', 'business_description', 'industry_type',
            'contact_person_name', 'contact_person_email', 'contact_person_phone',
            'business_registration_number', 'website_url',
        ]
        extra_kwargs = {
            'business_registration_number': {'required': False},
            'website_url': {'required': False},
        }

    def validate_organization_name(self, value):
        value = _squash(value)
        if not ORGANIZATION_NAME_RE.match(value):
            raise serializers.ValidationError(
                'Organization name may contain only letters, numbers, spaces, '
                "hyphens, ampersands, periods, commas and apostrophes."
            )
        if TenantApplication.objects.filter(organization_name__iexact=value).exists():
            raise serializers.ValidationError('An application for this organization already exists.')
        return value

    def validate_business_description(self, value):
        return value.strip()

    def validate_contact_person_name(self, value):
        value = _squash(value)
        if not PERSON_NAME_RE.match(value):
            raise serializers.ValidationError(
                'Contact name may contain only letters, spaces, hyphens, apostrophes and periods.'
            )
        return value

    def validate_contact_person_email(self, value):
        return value.strip().lower()

    def validate_contact_person_phone(self, value):
        value = (value or '').strip()
        if value and not PHONE_RE.match(value):
            raise serializers.ValidationError('Enter a valid phone number.')
        return value


class TenantApplicationSerializer(serializers.ModelSerializer):
    status_label = serializers.CharField(source='get_status_display', read_only=True)
    industry_label = serializers.CharField(source='get_industry_type_display', read_only=True)
    reviewer_email = serializers.EmailField(source='reviewer.email', read_only=True, default=None)
    tenant_id = serializers.SerializerMethodField()

    class Meta:
        model = TenantApplication
        fields = [
            'id', 'reference_number', 'organization_name', 'business_description',
            'industry_type', 'industry_label',
            'contact_person_name', 'contact_person_email', 'contact_person_phone',
            'business_registration_number', 'website_url',
            'status', 'status_label', 'submitted_at', 'reviewed_at',
            'reviewer', 'reviewer_email', 'rejection_reason', 'notes', 'tenant_id',
        ]
        read_only_fields = fields

    def get_tenant_id(self, obj):
        tenant = obj.tenants.first()
        return str(tenant.id) if tenant else None


class ApplicationStatusSerializer(serializers.ModelSerializer):
    """What an applicant may see about their own application."""

    status_label = serializers.CharField(source='get_status_display', read_only=True)

    class Meta:
        model = TenantApplication
        fields = [
            'reference_number', 'organization_name', 'status', 'status_label',
            'submitted_at', 'reviewed_at', 'rejection_reason',
        ]
        read_only_fields = fields


class ApproveApplicationSerializer(serializers.Serializer):
    notes = serializers.CharField(required=False, allow_blank=True, allow_null=True)


class RejectApplicationSerializer(serializers.Serializer):
    rejection_reason = serializers.CharField(max_length=255)
    notes = serializers.CharField(required=False, allow_blank=True, allow_null=True)
