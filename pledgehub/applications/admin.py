from django.contrib import admin

from .models import TenantApplication


@admin.register(TenantApplication)
class TenantApplicationAdmin(admin.ModelAdmin):
    list_display = ('reference_number', 'organization_name', 'industry_type', 'status', 'submitted_at', 'reviewed_at')
    list_filter = ('status', 'industry_type')
    search_fields = ('reference_number', 'organization_name', 'contact_person_email')
    readonly_fields = ('reference_number', 'submitted_at', 'reviewed_at', 'reviewer', 'created_at', 'updated_at')
