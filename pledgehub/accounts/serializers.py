from django.contrib.auth import get_user_model
from django.contrib.auth.password_validation import validate_password
from django.utils import timezone
from rest_framework import exceptions, serializers
from rest_framework_simplejwt.serializers import TokenObtainPairSerializer

User = get_user_model()


class MembershipSummarySerializer(serializers.Serializer):
    tenant_id = serializers.UUIDField(source='tenant.id')
    tenant_slug = serializers.CharField(source='tenant.slug')
    tenant_name = serializers.CharField(source='tenant.name')
    role = serializers.CharField()


class UserSerializer(serializers.ModelSerializer):
    is_system_admin = serializers.SerializerMethodField()
    memberships = serializers.SerializerMethodField()
    needs_tenant_selection = serializers.SerializerMethodField()

    class Meta:
        model = User
        fields = [
            'id', 'email', 'name', 'role', 'phone', 'avatar_url', 'bio',
            'is_active', 'email_verified_at', 'last_login', 'created_at',
            'is_system_admin', 'memberships', 'needs_tenant_selection',
        ]
        read_only_fields = fields

    def get_is_system_admin(self, obj):
        return obj.is_system_admin()

    def get_memberships(self, obj):
        return MembershipSummarySerializer(obj.active_memberships(), many=True).data

    def get_needs_tenant_selection(self, obj):
        return obj.needs_tenant_selection()


class UserUpdateSerializer(serializers.ModelSerializer):
    """Profile fields a user may change on their own account."""

    class Meta:
        model = User
        fields = ['name', 'phone', 'avatar_url', 'bio']


class RegisterSerializer(serializers.ModelSerializer):
    password = serializers.CharField(write_only=True, min_length=8)

    class Meta:
        model = User
        fields = ['email', 'password', 'name', 'phone']

    def validate_email(self, value):
        value = User.objects.normalize_email(value)
        if User.objects.filter(email__iexact=value).exists():
            raise serializers.ValidationError('A user with this email already exists.')
        return value

    def validate_password(self, value):
        validate_password(value)
        return value

    def create(self, validated_data):
        # Registration never grants the global admin role
        return User.objects.create_user(**validated_data)


class EmailTokenObtainPairSerializer(TokenObtainPairSerializer):
    """JWT issue with case-insensitive email lookup and user payload."""

    @classmethod
    def get_token(cls, user):
        token = super().get_token(user)
        token['email'] = user.email
        token['role'] = user.role
        return token

    def validate(self, attrs):
        email_field = self.username_field
        raw_email = (attrs.get(email_field) or '').strip()
        password = attrs.get('password') or ''

        user = User.objects.filter(**{f'{email_field}__iexact': raw_email}).first()
        if user is None or not user.check_password(password):
            raise exceptions.AuthenticationFailed('Invalid email or password.')
        if not user.is_active:
            raise exceptions.AuthenticationFailed('Account is disabled.')

        refresh = self.get_token(user)
        user.last_login = timezone.now()
        user.save(update_fields=['last_login'])

        return {
            'refresh': str(refresh),
            'access': str(refresh.access_token),
            'user': UserSerializer(user).data,
        }
