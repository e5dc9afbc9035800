from django.contrib import admin

from .models import OnboardingProgress, Tenant, TenantMembership


class TenantMembershipInline(admin.TabularInline):
    model = TenantMembership
    extra = 0
    readonly_fields = ('joined_at', 'updated_at')
    raw_id_fields = ('user',)


class OnboardingProgressInline(admin.TabularInline):
    model = OnboardingProgress
    extra = 0
    readonly_fields = ('completed_at',)


@admin.register(Tenant)
class TenantAdmin(admin.ModelAdmin):
    list_display = ('name', 'slug', 'status', 'is_active', 'platform_fee_percentage', 'created_at')
    list_filter = ('status', 'is_active')
    search_fields = ('name', 'slug', 'domain', 'contact_email')
    readonly_fields = ('id', 'suspended_at', 'suspended_by', 'created_at', 'updated_at')
    prepopulated_fields = {'slug': ('name',)}
    inlines = [TenantMembershipInline, OnboardingProgressInline]

    fieldsets = (
        ('Identity', {
            'fields': ('id', 'name', 'slug', 'domain', 'status', 'is_active', 'application')
        }),
        ('Branding', {
            'fields': ('logo_url', 'primary_color', 'secondary_color')
        }),
        ('Billing & limits', {
            'fields': ('platform_fee_percentage', 'trial_ends_at', 'max_projects', 'max_users', 'max_storage_mb')
        }),
        ('Contacts', {
            'fields': ('contact_name', 'contact_email', 'contact_phone')
        }),
        ('Suspension', {
            'fields': ('suspended_at', 'suspended_reason', 'suspended_by'),
            'classes': ('collapse',),
        }),
        ('Settings (JSON)', {
            'fields': ('settings',),
            'classes': ('collapse',),
        }),
        ('Dates', {
            'fields': ('created_at', 'updated_at')
        }),
    )


@admin.register(TenantMembership)
class TenantMembershipAdmin(admin.ModelAdmin):
    list_display = ('user', 'tenant', 'role', 'is_active', 'joined_at')
    list_filter = ('role', 'is_active', 'tenant')
    search_fields = ('user__email', 'tenant__name', 'tenant__slug')
    raw_id_fields = ('user', 'tenant')
