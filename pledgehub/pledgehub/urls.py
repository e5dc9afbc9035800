"""
URL configuration for pledgehub.

Tenant-scoped endpoints resolve the tenant from the subdomain, a custom
domain or the ``/t/<slug>/`` prefix (see tenants.middleware).
"""
from django.conf import settings
from django.conf.urls.static import static
from django.contrib import admin
from django.urls import include, path

from applications.urls import admin_urlpatterns as application_admin_urls
from finance.urls import admin_urlpatterns as finance_admin_urls
from projects.urls import admin_urlpatterns as project_admin_urls
from projects.urls import public_urlpatterns as project_public_urls
from tenants.urls import admin_urlpatterns as tenant_admin_urls
from .health import health_check, live_check, ready_check

urlpatterns = [
    path('admin/', admin.site.urls),

    # Health checks
    path('api/health/', health_check, name='health'),
    path('api/health/ready/', ready_check, name='health-ready'),
    path('api/health/live/', live_check, name='health-live'),

    # Authentication
    path('api/auth/', include('accounts.urls')),

    # Tenant scope
    path('api/tenants/', include('tenants.urls')),
    path('api/', include('finance.urls')),
    path('api/', include('projects.urls')),

    # Public
    path('api/applications/', include('applications.urls')),
    path('api/public/', include(project_public_urls)),

    # Platform administration (system admins)
    path('api/admin/', include(tenant_admin_urls)),
    path('api/admin/', include(application_admin_urls)),
    path('api/admin/', include(project_admin_urls)),
    path('api/admin/', include(finance_admin_urls)),
]

if settings.DEBUG:
    urlpatterns += static(settings.MEDIA_URL, document_root=settings.MEDIA_ROOT)
