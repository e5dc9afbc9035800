from django.urls import include, path
from rest_framework.routers import DefaultRouter

from .views import (
    AdminTenantViewSet,
    CurrentTenantView,
    MyTenantsView,
    OnboardingViewSet,
    TenantConfigView,
    TenantMemberViewSet,
    TenantSelectView,
)

router = DefaultRouter()
router.register(r'members', TenantMemberViewSet, basename='tenant-member')
router.register(r'onboarding', OnboardingViewSet, basename='tenant-onboarding')

admin_router = DefaultRouter()
admin_router.register(r'tenants', AdminTenantViewSet, basename='admin-tenant')

urlpatterns = [
    path('config/', TenantConfigView.as_view(), name='tenant-config'),
    path('my/', MyTenantsView.as_view(), name='tenant-my'),
    path('current/', CurrentTenantView.as_view(), name='tenant-current'),
    path('select/', TenantSelectView.as_view(), name='tenant-select'),
    path('', include(router.urls)),
]

admin_urlpatterns = admin_router.urls
