from django.urls import include, path
from rest_framework.routers import DefaultRouter

from .views import (
    AdminProjectViewSet,
    InvitationViewSet,
    ProductViewSet,
    ProjectViewSet,
    PublicProjectDetailView,
    PublicProjectListView,
    PublicProjectSearchView,
)

router = DefaultRouter()
router.register(r'projects', ProjectViewSet, basename='project')
router.register(r'products', ProductViewSet, basename='product')
router.register(r'invitations', InvitationViewSet, basename='project-invitation')

admin_router = DefaultRouter()
admin_router.register(r'projects', AdminProjectViewSet, basename='admin-project')

urlpatterns = [
    path('', include(router.urls)),
]

public_urlpatterns = [
    path('projects/', PublicProjectListView.as_view(), name='public-project-list'),
    path('projects/search/', PublicProjectSearchView.as_view(), name='public-project-search'),
    path('projects/<slug:tenant_slug>/<slug:slug>/', PublicProjectDetailView.as_view(),
         name='public-project-detail'),
]

admin_urlpatterns = admin_router.urls
