"""
Finance API views.

Tenant scope:
- GET  /api/contributions/                 - own contributions; managers see the tenant's
- GET  /api/contributions/{id}/
- POST /api/contributions/{id}/approve|reject|cancel/
- POST /api/contributions/{id}/payments/   - record a gateway result (managers)
- GET  /api/contributions/{id}/schedule/
- POST /api/projects/{id}/contribute/      - pledge to a project

System admins:
- GET /api/admin/platform-fees/?tenant=&status=   - fees with totals
"""
import logging

from django.http import Http404
from django.shortcuts import get_object_or_404
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import PermissionDenied
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from accounts.permissions import IsSystemAdmin
from projects.models import Project
from projects.policies import ProjectPolicy
from tenants.mixins import TenantAPIViewMixin, TenantViewSetMixin
from tenants.permissions import HasTenant
from .models import Contribution, PlatformFee
from .policies import ContributionPolicy
from .serializers import (
    ContributionDetailSerializer,
    ContributionSerializer,
    PaymentScheduleSerializer,
    PlatformFeeSerializer,
    PledgeSerializer,
    RecordPaymentSerializer,
    TransactionSerializer,
)
from .services import (
    ContributionError,
    ContributionNotAllowed,
    ContributionService,
    ContributionStateError,
    DuplicatePaymentError,
)

logger = logging.getLogger(__name__)


def _int_param(params, key):
    """Integer query parameter; malformed values are ignored."""
    try:
        return int(params[key]) if params.get(key) else None
    except ValueError:
        logger.debug(f'Ignoring malformed {key}={params[key]!r}')
        return None


class ContributionViewSet(TenantViewSetMixin,
                          mixins.ListModelMixin,
                          mixins.RetrieveModelMixin,
                          viewsets.GenericViewSet):
    queryset = Contribution.objects.select_related('user', 'project', 'tenant')
    permission_classes = [IsAuthenticated, HasTenant]

    def get_serializer_class(self):
        if self.action == 'retrieve':
            return ContributionDetailSerializer
        return ContributionSerializer

    def get_queryset(self):
        qs = super().get_queryset()
        user = self.request.user
        if not (user.is_system_admin() or user.can_manage_projects(self.request.tenant)):
            qs = qs.filter(user=user)

        params = self.request.query_params
        for field in ('status', 'approval_status'):
            if params.get(field):
                qs = qs.filter(**{field: params[field]})
        project_id = _int_param(params, 'project')
        if project_id is not None:
            qs = qs.filter(project_id=project_id)
        return qs

    def get_object(self):
        contribution = super().get_object()
        if not ContributionPolicy.view(self.request.user, contribution):
            raise Http404
        return contribution

    def _review(self, request, operation):
        contribution = self.get_object()
        if not ContributionPolicy.approve(request.user, contribution):
            raise PermissionDenied('Project management role required.')
        try:
            contribution = operation(contribution, request.user)
        except ContributionStateError as e:
            return Response({'detail': str(e)}, status=status.HTTP_409_CONFLICT)
        return Response(ContributionSerializer(contribution).data)

    @action(detail=True, methods=['post'])
    def approve(self, request, pk=None):
        return self._review(request, ContributionService.approve)

    @action(detail=True, methods=['post'])
    def reject(self, request, pk=None):
        return self._review(request, ContributionService.reject)

    @action(detail=True, methods=['post'])
    def cancel(self, request, pk=None):
        contribution = self.get_object()
        if not ContributionPolicy.update(request.user, contribution):
            raise PermissionDenied()
        try:
            contribution = ContributionService.cancel(contribution, request.user)
        except ContributionStateError as e:
            return Response({'detail': str(e)}, status=status.HTTP_409_CONFLICT)
        return Response(ContributionSerializer(contribution).data)

    @action(detail=True, methods=['post'])
    def payments(self, request, pk=None):
        contribution = self.get_object()
        if not ContributionPolicy.record_payment(request.user, contribution):
            raise PermissionDenied('Project management role required.')
        serializer = RecordPaymentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            if data['success']:
                txn = ContributionService.record_payment(
                    contribution, data['amount'], data['reference'],
                    type=data.get('type'), gateway_response=data.get('gateway_response'),
                )
            else:
                txn = ContributionService.record_failure(
                    contribution, data['amount'], data['reference'],
                    data['failure_reason'], gateway_response=data.get('gateway_response'),
                )
        except DuplicatePaymentError as e:
            return Response({'detail': str(e)}, status=status.HTTP_409_CONFLICT)
        except ContributionStateError as e:
            return Response({'detail': str(e)}, status=status.HTTP_409_CONFLICT)
        except ContributionError as e:
            return Response({'detail': str(e)}, status=status.HTTP_400_BAD_REQUEST)

        contribution.refresh_from_db()
        return Response({
            'transaction': TransactionSerializer(txn).data,
            'contribution': ContributionSerializer(contribution).data,
        }, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['get'])
    def schedule(self, request, pk=None):
        contribution = self.get_object()
        return Response(PaymentScheduleSerializer(contribution.schedules.all(), many=True).data)


class ContributeView(TenantAPIViewMixin, APIView):
    permission_classes = [IsAuthenticated, HasTenant]

    def post(self, request, pk):
        project = get_object_or_404(Project.objects.select_related('tenant'), pk=pk, tenant=request.tenant)
        if not ProjectPolicy.view(request.user, project):
            raise Http404

        serializer = PledgeSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        try:
            contribution = ContributionService.pledge(
                project, request.user, data['payment_type'],
                total_committed=data.get('total_committed'),
                total_installments=data.get('total_installments'),
            )
        except ContributionNotAllowed as e:
            raise PermissionDenied(str(e))
        except ContributionError as e:
            return Response({'detail': str(e)}, status=status.HTTP_400_BAD_REQUEST)
        return Response(ContributionDetailSerializer(contribution).data, status=status.HTTP_201_CREATED)


class AdminPlatformFeeViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = PlatformFee.objects.select_related('tenant', 'project', 'transaction')
    serializer_class = PlatformFeeSerializer
    permission_classes = [IsAuthenticated, IsSystemAdmin]

    def get_queryset(self):
        qs = super().get_queryset()
        params = self.request.query_params
        if params.get('tenant'):
            qs = qs.filter(tenant__slug=params['tenant'])
        project_id = _int_param(params, 'project')
        if project_id is not None:
            qs = qs.filter(project_id=project_id)
        if params.get('status'):
            qs = qs.filter(status=params['status'])
        return qs

    def list(self, request, *args, **kwargs):
        qs = self.get_queryset()
        totals = PlatformFee.totals(qs)
        return Response({
            'results': PlatformFeeSerializer(qs, many=True).data,
            'totals': {key: str(value) for key, value in totals.items()},
        })
