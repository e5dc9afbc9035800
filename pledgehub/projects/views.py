"""
Project API views.

Tenant scope:
- /api/projects/                              - list / create / retrieve / update / destroy
- POST /api/projects/{id}/activate|pause|resume|complete|cancel/
- GET  /api/projects/{id}/statistics/
- GET|POST /api/projects/{id}/products/
- POST /api/projects/{id}/reorder-products/   {"product_ids": [...]}
- GET|POST /api/projects/{id}/invitations/
- /api/products/{id}/                         - retrieve / update / delete
- GET /api/invitations/{token}/, POST accept/ | decline/

Public:
- GET /api/public/projects/?search=&status=&sort_by=
- GET /api/public/projects/search/?q=
- GET /api/public/projects/{tenant_slug}/{slug}/

System admins:
- /api/admin/projects/                        - cross-tenant CRUD + transitions
"""
import logging

from django.db.models import Q
from django.http import Http404
from django.shortcuts import get_object_or_404
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import PermissionDenied
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from accounts.permissions import IsSystemAdmin
from tenants.mixins import TenantViewSetMixin
from tenants.permissions import HasTenant
from tenants.services import TenantLimitError
from .models import Product, Project, ProjectInvitation, ProjectStatus, ProjectVisibility
from .policies import ProjectInvitationPolicy, ProjectPolicy
from .serializers import (
    AdminProjectInputSerializer,
    CancelProjectSerializer,
    InvitationCreateSerializer,
    ProductSerializer,
    ProjectInputSerializer,
    ProjectInvitationSerializer,
    ProjectListSerializer,
    ProjectSerializer,
    PublicProjectSerializer,
    ReorderProductsSerializer,
)
from .services import (
    InvalidStatusTransition,
    InvitationError,
    InvitationService,
    ProductService,
    ProjectLockedError,
    ProjectNotReady,
    ProjectService,
)

logger = logging.getLogger(__name__)

LIST_FILTERS = ('search', 'tenant_id', 'min_amount', 'max_amount', 'start_date',
                'end_date', 'created_by', 'sort_by', 'sort_direction')


def filters_from_query(params):
    """Listing filters from query parameters; status and visibility may repeat."""
    filters = {key: params.get(key) for key in LIST_FILTERS if params.get(key)}
    for key in ('status', 'visibility'):
        values = params.getlist(key)
        if len(values) == 1:
            filters[key] = values[0]
        elif values:
            filters[key] = values
    return filters


def check(allowed, message='You do not have permission to perform this action.'):
    if not allowed:
        raise PermissionDenied(message)


# ═══════════════════════════════════════════════════════════════
# LIFECYCLE ACTIONS (shared by tenant and admin viewsets)
# ═══════════════════════════════════════════════════════════════

class ProjectLifecycleMixin:
    """activate / pause / resume / complete / cancel actions."""

    def _run_transition(self, request, ability, operation, *args):
        project = self.get_object()
        check(getattr(ProjectPolicy, ability)(request.user, project))
        try:
            project = operation(project, request.user, *args)
        except ProjectNotReady as e:
            return Response(
                {'detail': 'Project is not ready for activation.', 'errors': e.errors},
                status=status.HTTP_422_UNPROCESSABLE_ENTITY,
            )
        except InvalidStatusTransition as e:
            return Response({'detail': str(e)}, status=status.HTTP_409_CONFLICT)
        return Response(ProjectSerializer(project, context=self.get_serializer_context()).data)

    @action(detail=True, methods=['post'])
    def activate(self, request, pk=None):
        return self._run_transition(request, 'activate', ProjectService.activate)

    @action(detail=True, methods=['post'])
    def pause(self, request, pk=None):
        return self._run_transition(request, 'pause', ProjectService.pause)

    @action(detail=True, methods=['post'])
    def resume(self, request, pk=None):
        return self._run_transition(request, 'resume', ProjectService.resume)

    @action(detail=True, methods=['post'])
    def complete(self, request, pk=None):
        return self._run_transition(request, 'complete', ProjectService.complete)

    @action(detail=True, methods=['post'])
    def cancel(self, request, pk=None):
        serializer = CancelProjectSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        return self._run_transition(
            request, 'cancel', ProjectService.cancel, serializer.validated_data.get('reason'),
        )

    def _update(self, request, partial):
        project = self.get_object()
        check(ProjectPolicy.update(request.user, project))
        serializer = ProjectInputSerializer(project, data=request.data, partial=partial)
        serializer.is_valid(raise_exception=True)
        if 'products' in serializer.validated_data:
            check(ProjectPolicy.manage_products(request.user, project))
        try:
            project = ProjectService.update_project(project, serializer.validated_data, request.user)
        except ProjectLockedError as e:
            return Response({'detail': str(e)}, status=status.HTTP_409_CONFLICT)
        except ValueError as e:
            return Response({'products': [str(e)]}, status=status.HTTP_400_BAD_REQUEST)
        return Response(ProjectSerializer(project, context=self.get_serializer_context()).data)

    def update(self, request, *args, **kwargs):
        return self._update(request, partial=kwargs.pop('partial', False))

    def partial_update(self, request, *args, **kwargs):
        return self._update(request, partial=True)

    def destroy(self, request, *args, **kwargs):
        project = self.get_object()
        check(ProjectPolicy.delete(request.user, project),
              'Projects with active or pending contributions cannot be deleted.')
        try:
            ProjectService.delete_project(project, request.user)
        except ProjectLockedError as e:
            return Response({'detail': str(e)}, status=status.HTTP_409_CONFLICT)
        return Response(status=status.HTTP_204_NO_CONTENT)


# ═══════════════════════════════════════════════════════════════
# TENANT SCOPE
# ═══════════════════════════════════════════════════════════════

class ProjectViewSet(ProjectLifecycleMixin, TenantViewSetMixin, viewsets.ModelViewSet):
    queryset = Project.objects.select_related('tenant', 'created_by')
    permission_classes = [IsAuthenticated, HasTenant]

    def get_serializer_class(self):
        if self.action == 'list':
            return ProjectListSerializer
        if self.action == 'create':
            return ProjectInputSerializer
        return ProjectSerializer

    def get_queryset(self):
        qs = super().get_queryset()
        user = self.request.user
        tenant = self.request.tenant
        if user.is_system_admin() or user.can_manage_projects(tenant):
            return qs

        # Members see what the project visibility lets them see
        visible = Q(visibility=ProjectVisibility.PUBLIC)
        if user.is_member_of(tenant):
            visible |= Q(visibility=ProjectVisibility.PRIVATE)
        visible |= Q(
            visibility=ProjectVisibility.INVITE_ONLY,
            invitations__email__iexact=user.email,
            invitations__status=ProjectInvitation.Status.ACCEPTED,
        )
        managed_ids = [
            project.pk for project in qs.only('id', 'managed_by')
            if user.pk in (project.managed_by or [])
        ]
        return qs.filter(Q(created_by=user) | Q(pk__in=managed_ids) | (
            ~Q(status=ProjectStatus.DRAFT) & visible
        )).distinct()

    def get_object(self):
        project = super().get_object()
        if not ProjectPolicy.view(self.request.user, project):
            raise Http404
        return project

    def list(self, request, *args, **kwargs):
        check(ProjectPolicy.view_any(request.user, request.tenant),
              'You are not a member of this organization.')
        qs = ProjectService.apply_filters(self.get_queryset(), filters_from_query(request.query_params))
        return Response(ProjectListSerializer(qs, many=True, context=self.get_serializer_context()).data)

    def create(self, request, *args, **kwargs):
        check(ProjectPolicy.create(request.user, request.tenant),
              'Only tenant administrators can create projects.')
        serializer = ProjectInputSerializer(data=request.data, context={'tenant': request.tenant})
        serializer.is_valid(raise_exception=True)
        data = dict(serializer.validated_data)
        products = data.pop('products', [])
        try:
            project = ProjectService.create_project(data, request.tenant, request.user, products)
        except TenantLimitError as e:
            return Response({'detail': str(e)}, status=status.HTTP_409_CONFLICT)
        return Response(
            ProjectSerializer(project, context=self.get_serializer_context()).data,
            status=status.HTTP_201_CREATED,
        )

    @action(detail=True, methods=['get'])
    def statistics(self, request, pk=None):
        project = self.get_object()
        check(ProjectPolicy.view_statistics(request.user, project))
        return Response(ProjectSerializer(project, context=self.get_serializer_context()).data['statistics'])

    @action(detail=True, methods=['get', 'post'])
    def products(self, request, pk=None):
        project = self.get_object()
        if request.method == 'GET':
            return Response(ProductSerializer(project.products.all(), many=True).data)

        check(ProjectPolicy.manage_products(request.user, project))
        serializer = ProductSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            product = ProductService.add_product(project, serializer.validated_data, request.user)
        except ProjectLockedError as e:
            return Response({'detail': str(e)}, status=status.HTTP_409_CONFLICT)
        return Response(ProductSerializer(product).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['post'], url_path='reorder-products')
    def reorder_products(self, request, pk=None):
        project = self.get_object()
        check(ProjectPolicy.manage_products(request.user, project))
        serializer = ReorderProductsSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            products = ProductService.reorder_products(project, serializer.validated_data['product_ids'])
        except ValueError as e:
            return Response({'detail': str(e)}, status=status.HTTP_400_BAD_REQUEST)
        return Response(ProductSerializer(products, many=True).data)

    @action(detail=True, methods=['get', 'post'])
    def invitations(self, request, pk=None):
        project = self.get_object()
        if request.method == 'GET':
            check(ProjectInvitationPolicy.view_any(request.user, project.tenant))
            return Response(ProjectInvitationSerializer(project.invitations.all(), many=True).data)

        check(ProjectPolicy.invite_users(request.user, project),
              'Invitations are only available for private or invite-only projects.')
        serializer = InvitationCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            invitation = InvitationService.invite(project, serializer.validated_data['email'], request.user)
        except InvitationError as e:
            return Response({'detail': str(e)}, status=status.HTTP_409_CONFLICT)
        return Response(ProjectInvitationSerializer(invitation).data, status=status.HTTP_201_CREATED)


class ProductViewSet(TenantViewSetMixin,
                     mixins.RetrieveModelMixin,
                     mixins.UpdateModelMixin,
                     mixins.DestroyModelMixin,
                     viewsets.GenericViewSet):
    queryset = Product.objects.select_related('project', 'project__tenant')
    serializer_class = ProductSerializer
    permission_classes = [IsAuthenticated, HasTenant]

    def get_object(self):
        product = super().get_object()
        if not ProjectPolicy.view(self.request.user, product.project):
            raise Http404
        return product

    def update(self, request, *args, **kwargs):
        product = self.get_object()
        check(ProjectPolicy.manage_products(request.user, product.project))
        serializer = ProductSerializer(product, data=request.data, partial=kwargs.pop('partial', False))
        serializer.is_valid(raise_exception=True)
        data = dict(serializer.validated_data)
        remove_image = data.pop('remove_image', False)
        try:
            product = ProductService.update_product(product, data, request.user, remove_image=remove_image)
        except ProjectLockedError as e:
            return Response({'detail': str(e)}, status=status.HTTP_409_CONFLICT)
        return Response(ProductSerializer(product).data)

    def destroy(self, request, *args, **kwargs):
        product = self.get_object()
        check(ProjectPolicy.manage_products(request.user, product.project))
        try:
            ProductService.delete_product(product, request.user)
        except ProjectLockedError as e:
            return Response({'detail': str(e)}, status=status.HTTP_409_CONFLICT)
        return Response(status=status.HTTP_204_NO_CONTENT)


class InvitationViewSet(mixins.RetrieveModelMixin, viewsets.GenericViewSet):
    """Invitee side. Looked up by token; the invitee need not be a tenant member."""

    queryset = ProjectInvitation.objects.select_related('project', 'project__tenant', 'invited_by')
    serializer_class = ProjectInvitationSerializer
    permission_classes = [IsAuthenticated]
    lookup_field = 'token'

    def get_object(self):
        invitation = super().get_object()
        check(ProjectInvitationPolicy.view(self.request.user, invitation))
        return invitation

    def _respond(self, request, ability, operation):
        invitation = self.get_object()
        check(getattr(ProjectInvitationPolicy, ability)(request.user, invitation),
              'This invitation was sent to a different email address.')
        try:
            invitation = operation(invitation, request.user)
        except InvitationError as e:
            return Response({'detail': str(e)}, status=status.HTTP_409_CONFLICT)
        return Response(ProjectInvitationSerializer(invitation).data)

    @action(detail=True, methods=['post'])
    def accept(self, request, token=None):
        return self._respond(request, 'accept', InvitationService.accept)

    @action(detail=True, methods=['post'])
    def decline(self, request, token=None):
        return self._respond(request, 'decline', InvitationService.decline)


# ═══════════════════════════════════════════════════════════════
# PUBLIC
# ═══════════════════════════════════════════════════════════════

class PublicProjectListView(APIView):
    permission_classes = [AllowAny]

    def get(self, request):
        qs = ProjectService.public_projects(filters_from_query(request.query_params))
        return Response(PublicProjectSerializer(qs, many=True, context={'request': request}).data)


class PublicProjectSearchView(APIView):
    permission_classes = [AllowAny]

    def get(self, request):
        term = (request.query_params.get('q') or '').strip()
        if not term:
            return Response([])
        filters = filters_from_query(request.query_params)
        filters.pop('search', None)
        qs = ProjectService.search_projects(term, filters)
        return Response(PublicProjectSerializer(qs, many=True, context={'request': request}).data)


class PublicProjectDetailView(APIView):
    permission_classes = [AllowAny]

    def get(self, request, tenant_slug, slug):
        project = get_object_or_404(
            Project.objects.select_related('tenant'),
            tenant__slug=tenant_slug, tenant__is_active=True, slug=slug,
        )
        if project.status == ProjectStatus.DRAFT and not ProjectPolicy.update(request.user, project):
            raise Http404
        if not ProjectPolicy.view(request.user, project):
            raise Http404
        return Response(PublicProjectSerializer(project, context={'request': request}).data)


# ═══════════════════════════════════════════════════════════════
# PLATFORM SCOPE
# ═══════════════════════════════════════════════════════════════

class AdminProjectViewSet(ProjectLifecycleMixin, viewsets.ModelViewSet):
    """Cross-tenant project administration for system admins."""

    queryset = Project.objects.select_related('tenant', 'created_by')
    permission_classes = [IsAuthenticated, IsSystemAdmin]

    def get_serializer_class(self):
        if self.action == 'list':
            return ProjectListSerializer
        if self.action == 'create':
            return AdminProjectInputSerializer
        return ProjectSerializer

    def list(self, request, *args, **kwargs):
        qs = ProjectService.all_projects(filters_from_query(request.query_params))
        return Response(ProjectListSerializer(qs, many=True, context=self.get_serializer_context()).data)

    def create(self, request, *args, **kwargs):
        serializer = AdminProjectInputSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = dict(serializer.validated_data)
        tenant = data.pop('tenant')
        products = data.pop('products', [])
        try:
            project = ProjectService.create_project(data, tenant, request.user, products)
        except TenantLimitError as e:
            return Response({'detail': str(e)}, status=status.HTTP_409_CONFLICT)
        logger.info(f'Project created by admin: {tenant.slug}/{project.slug} ({request.user.email})')
        return Response(
            ProjectSerializer(project, context=self.get_serializer_context()).data,
            status=status.HTTP_201_CREATED,
        )
