"""
Tenant application API.

Public:
- POST /api/applications/                        - submit
- GET  /api/applications/status/{reference}/     - status by reference number

System admins:
- GET  /api/admin/applications/?status=&search=
- GET  /api/admin/applications/{id}/
- POST /api/admin/applications/{id}/approve/
- POST /api/admin/applications/{id}/reject/
"""
import logging

from django.db.models import Q
from django.shortcuts import get_object_or_404
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle
from rest_framework.views import APIView

from accounts.permissions import IsSystemAdmin
from tenants.serializers import TenantSerializer
from .models import TenantApplication
from .serializers import (
    ApplicationStatusSerializer,
    ApproveApplicationSerializer,
    RejectApplicationSerializer,
    TenantApplicationCreateSerializer,
    TenantApplicationSerializer,
)
from .services import ApplicationReviewError, TenantApplicationService

logger = logging.getLogger(__name__)


class TenantApplicationSubmitView(APIView):
    permission_classes = [AllowAny]
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = 'applications'

    def post(self, request):
        serializer = TenantApplicationCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        application = TenantApplicationService.submit(serializer.validated_data)
        return Response(
            ApplicationStatusSerializer(application).data,
            status=status.HTTP_201_CREATED,
        )


class TenantApplicationStatusView(APIView):
    permission_classes = [AllowAny]

    def get(self, request, reference):
        application = get_object_or_404(TenantApplication, reference_number=reference)
        return Response(ApplicationStatusSerializer(application).data)


class AdminTenantApplicationViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = TenantApplication.objects.select_related('reviewer')
    serializer_class = TenantApplicationSerializer
    permission_classes = [IsAuthenticated, IsSystemAdmin]

    def get_queryset(self):
        qs = super().get_queryset()
        params = self.request.query_params
        if params.get('status'):
            qs = qs.filter(status=params['status'])
        if params.get('industry_type'):
            qs = qs.filter(industry_type=params['industry_type'])
        if params.get('search'):
            term = params['search']
            qs = qs.filter(
                Q(organization_name__icontains=term)
                | Q(reference_number__icontains=term)
                | Q(contact_person_email__icontains=term)
                | Q(contact_person_name__icontains=term)
            )
        return qs

    @action(detail=True, methods=['post'])
    def approve(self, request, pk=None):
        application = self.get_object()
        serializer = ApproveApplicationSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            tenant = TenantApplicationService.approve(
                application, request.user, serializer.validated_data.get('notes'),
            )
        except ApplicationReviewError as e:
            return Response({'detail': str(e)}, status=status.HTTP_409_CONFLICT)
        application.refresh_from_db()
        return Response({
            'application': TenantApplicationSerializer(application).data,
            'tenant': TenantSerializer(tenant).data,
        })

    @action(detail=True, methods=['post'])
    def reject(self, request, pk=None):
        application = self.get_object()
        serializer = RejectApplicationSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            application = TenantApplicationService.reject(
                application,
                request.user,
                serializer.validated_data['rejection_reason'],
                serializer.validated_data.get('notes'),
            )
        except ApplicationReviewError as e:
            return Response({'detail': str(e)}, status=status.HTTP_409_CONFLICT)
        return Response(TenantApplicationSerializer(application).data)
