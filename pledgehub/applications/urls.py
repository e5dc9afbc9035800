from django.urls import path
from rest_framework.routers import DefaultRouter

from .views import (
    AdminTenantApplicationViewSet,
    TenantApplicationStatusView,
    TenantApplicationSubmitView,
)

admin_router = DefaultRouter()
admin_router.register(r'applications', AdminTenantApplicationViewSet, basename='admin-application')

urlpatterns = [
    path('', TenantApplicationSubmitView.as_view(), name='application-submit'),
    path('status/<str:reference>/', TenantApplicationStatusView.as_view(), name='application-status'),
]

admin_urlpatterns = admin_router.urls
