from django.urls import include, path
from rest_framework.routers import DefaultRouter

from .views import AdminPlatformFeeViewSet, ContributeView, ContributionViewSet

router = DefaultRouter()
router.register(r'contributions', ContributionViewSet, basename='contribution')

admin_router = DefaultRouter()
admin_router.register(r'platform-fees', AdminPlatformFeeViewSet, basename='admin-platform-fee')

urlpatterns = [
    path('projects/<int:pk>/contribute/', ContributeView.as_view(), name='project-contribute'),
    path('', include(router.urls)),
]

admin_urlpatterns = admin_router.urls
