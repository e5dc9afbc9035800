"""
Tenant API views.

Tenant scope:
- GET  /api/tenants/config/             - branding of the resolved tenant (public)
- GET  /api/tenants/my/                 - memberships of the current user
- GET  /api/tenants/current/            - current tenant + own role (members)
- PATCH /api/tenants/current/           - tenant settings (tenant admins)
- GET|POST /api/tenants/select/         - pick the tenant to administer
- /api/tenants/members/                 - membership management (tenant admins)
- GET  /api/tenants/onboarding/         - onboarding checklist
- POST /api/tenants/onboarding/{key}/complete/

Platform scope (system admins):
- /api/admin/tenants/                   - CRUD
- POST /api/admin/tenants/{id}/suspend/
- POST /api/admin/tenants/{id}/reactivate/
- GET  /api/admin/tenants/{id}/metrics/
"""
import logging

from django.core.exceptions import ValidationError
from django.db.models import Q
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import PermissionDenied
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from accounts.permissions import IsSystemAdmin
from core.audit import log_event
from .middleware import SESSION_KEY
from .mixins import TenantAPIViewMixin, TenantViewSetMixin
from .models import OnboardingProgress, Tenant, TenantMembership
from .permissions import IsTenantAdmin, IsTenantMember, current_membership
from .policies import TenantPolicy, UserPolicy
from .serializers import (
    MemberCreateSerializer,
    MemberRoleSerializer,
    MyTenantSerializer,
    OnboardingProgressSerializer,
    SuspendSerializer,
    TenantCreateSerializer,
    TenantMembershipSerializer,
    TenantSelectSerializer,
    TenantSerializer,
    TenantSettingsSerializer,
)
from .services import TenantLimitError, TenantService, TenantStateError

logger = logging.getLogger(__name__)


class TenantConfigView(APIView):
    """Branding for the tenant the request resolved to. Null on platform hosts."""

    permission_classes = [AllowAny]

    def get(self, request):
        tenant = getattr(request, 'tenant', None)
        return Response({'tenant': tenant.to_frontend_config() if tenant else None})


class MyTenantsView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        memberships = request.user.active_memberships().order_by('tenant__name')
        return Response(MyTenantSerializer(memberships, many=True).data)


class CurrentTenantView(TenantAPIViewMixin, APIView):
    permission_classes = [IsAuthenticated, IsTenantMember]

    def get(self, request):
        membership = current_membership(request)
        data = TenantSerializer(request.tenant).data
        data['role'] = membership.role if membership else None
        data['onboarding'] = OnboardingProgressSerializer(
            request.tenant.onboarding_steps.all(), many=True
        ).data
        return Response(data)

    def patch(self, request):
        if not TenantPolicy.manage_settings(request.user, request.tenant):
            raise PermissionDenied('Tenant administrator role required.')
        serializer = TenantSettingsSerializer(request.tenant, data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        serializer.save()
        log_event('tenant_settings_updated', actor=request.user, subject=request.tenant,
                  fields=sorted(serializer.validated_data))
        return Response(TenantSerializer(request.tenant).data)


class TenantSelectView(APIView):
    """
    Tenant selection for users who administer several tenants.

    GET  -> {'tenants': [...], 'current': slug}
    POST {"tenant": "<slug or id>"} -> stores the choice in the session
    """

    permission_classes = [IsAuthenticated]

    def get(self, request):
        tenants = TenantService.selectable_tenants(request.user)
        current = getattr(request, 'tenant', None)
        return Response({
            'tenants': tenants,
            'current': current.slug if current else None,
            'needs_selection': len(tenants) > 1,
        })

    def post(self, request):
        serializer = TenantSelectSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        key = serializer.validated_data['tenant']

        lookup = Q(slug=key)
        try:
            lookup |= Q(pk=Tenant._meta.pk.to_python(key))
        except ValidationError:
            # Not a UUID, slug lookup only
            pass
        tenant = Tenant.objects.filter(lookup).first()
        if tenant is None or not tenant.is_operational():
            return Response({'detail': 'Tenant not found.'}, status=status.HTTP_404_NOT_FOUND)

        if not (request.user.is_system_admin() or request.user.can_manage_projects(tenant)):
            raise PermissionDenied('You do not have access to this tenant.')

        request.session[SESSION_KEY] = tenant.slug
        logger.info(f'Tenant selected: {request.user.email} -> {tenant.slug}')
        return Response({
            'tenant': tenant.to_frontend_config(),
            'role': request.user.role_in_tenant(tenant),
            'redirect_url': tenant.get_url('/dashboard'),
        })


class TenantMemberViewSet(TenantViewSetMixin,
                          mixins.ListModelMixin,
                          mixins.RetrieveModelMixin,
                          mixins.DestroyModelMixin,
                          viewsets.GenericViewSet):
    """
    Membership management inside the current tenant.

    POST   {"email", "role"}  - grant membership
    POST   {id}/role/ {"role"} - change role
    DELETE {id}/               - deactivate membership
    """

    queryset = TenantMembership.objects.select_related('user', 'tenant')
    serializer_class = TenantMembershipSerializer
    permission_classes = [IsAuthenticated, IsTenantAdmin]

    def get_queryset(self):
        qs = super().get_queryset()
        if self.action == 'list' and self.request.query_params.get('include_inactive') != '1':
            qs = qs.filter(is_active=True)
        return qs

    def create(self, request):
        serializer = MemberCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        user = serializer.validated_data['email']
        role = serializer.validated_data['role']

        if not UserPolicy.manage_tenant_roles(request.user, user, request.tenant):
            raise PermissionDenied('You cannot change roles of this user.')
        try:
            membership = TenantService.add_member(request.tenant, user, role, by=request.user)
        except TenantLimitError as e:
            return Response({'detail': str(e)}, status=status.HTTP_409_CONFLICT)
        return Response(TenantMembershipSerializer(membership).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['post'])
    def role(self, request, pk=None):
        membership = self.get_object()
        serializer = MemberRoleSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        if not UserPolicy.manage_tenant_roles(request.user, membership.user, request.tenant):
            raise PermissionDenied('You cannot change roles of this user.')
        membership = TenantService.add_member(
            request.tenant, membership.user, serializer.validated_data['role'], by=request.user,
        )
        return Response(TenantMembershipSerializer(membership).data)

    def destroy(self, request, *args, **kwargs):
        membership = self.get_object()
        if not UserPolicy.manage_tenant_roles(request.user, membership.user, request.tenant):
            raise PermissionDenied('You cannot remove this member.')
        TenantService.deactivate_member(membership, by=request.user)
        return Response(status=status.HTTP_204_NO_CONTENT)


class OnboardingViewSet(TenantViewSetMixin, viewsets.ReadOnlyModelViewSet):
    queryset = OnboardingProgress.objects.all()
    serializer_class = OnboardingProgressSerializer
    permission_classes = [IsAuthenticated, IsTenantAdmin]
    lookup_field = 'step_key'

    @action(detail=True, methods=['post'])
    def complete(self, request, step_key=None):
        step = self.get_object()
        step.mark_completed(data=request.data.get('data'))
        return Response(OnboardingProgressSerializer(step).data)

    @action(detail=True, methods=['post'])
    def reset(self, request, step_key=None):
        step = self.get_object()
        step.mark_incomplete()
        return Response(OnboardingProgressSerializer(step).data)


class AdminTenantViewSet(viewsets.ModelViewSet):
    """Cross-tenant administration for system admins."""

    queryset = Tenant.objects.all()
    permission_classes = [IsAuthenticated, IsSystemAdmin]

    def get_queryset(self):
        qs = super().get_queryset()
        params = self.request.query_params
        if params.get('status'):
            qs = qs.filter(status=params['status'])
        if params.get('search'):
            term = params['search']
            qs = qs.filter(Q(name__icontains=term) | Q(slug__icontains=term) | Q(contact_email__icontains=term))
        return qs

    def get_serializer_class(self):
        if self.action == 'create':
            return TenantCreateSerializer
        return TenantSerializer

    def create(self, request, *args, **kwargs):
        serializer = TenantCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        tenant = serializer.save()
        logger.info(f'Tenant created by admin: {tenant.slug} ({request.user.email})')
        log_event('tenant_created', actor=request.user, subject=tenant)
        return Response(TenantSerializer(tenant).data, status=status.HTTP_201_CREATED)

    def perform_destroy(self, instance):
        log_event('tenant_deleted', actor=self.request.user, subject=instance)
        instance.delete()

    @action(detail=True, methods=['post'])
    def suspend(self, request, pk=None):
        tenant = self.get_object()
        serializer = SuspendSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            tenant = TenantService.suspend(tenant, request.user, serializer.validated_data['reason'])
        except TenantStateError as e:
            return Response({'detail': str(e)}, status=status.HTTP_409_CONFLICT)
        return Response(TenantSerializer(tenant).data)

    @action(detail=True, methods=['post'])
    def reactivate(self, request, pk=None):
        tenant = self.get_object()
        try:
            tenant = TenantService.reactivate(tenant, request.user)
        except TenantStateError as e:
            return Response({'detail': str(e)}, status=status.HTTP_409_CONFLICT)
        return Response(TenantSerializer(tenant).data)

    @action(detail=True, methods=['get'])
    def metrics(self, request, pk=None):
        return Response(self.get_object().metrics())
