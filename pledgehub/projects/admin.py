from django.contrib import admin

from .models import Product, Project, ProjectInvitation


class ProductInline(admin.TabularInline):
    model = Product
    extra = 0
    fields = ('sort_order', 'name', 'price', 'image')


@admin.register(Project)
class ProjectAdmin(admin.ModelAdmin):
    list_display = ('name', 'tenant', 'status', 'visibility', 'total_amount', 'start_date', 'end_date')
    list_filter = ('status', 'visibility', 'tenant')
    search_fields = ('name', 'slug', 'description', 'tenant__slug')
    readonly_fields = ('created_at', 'updated_at')
    raw_id_fields = ('tenant', 'created_by')
    inlines = [ProductInline]

    fieldsets = (
        ('Project', {
            'fields': ('tenant', 'name', 'slug', 'description', 'status', 'visibility', 'requires_approval')
        }),
        ('Money', {
            'fields': ('total_amount', 'minimum_contribution', 'payment_options',
                       'installment_frequency', 'custom_installment_months', 'max_contributors')
        }),
        ('Timeline', {
            'fields': ('start_date', 'end_date', 'registration_deadline')
        }),
        ('Ownership', {
            'fields': ('created_by', 'managed_by')
        }),
        ('Settings (JSON)', {
            'fields': ('settings',),
            'classes': ('collapse',),
        }),
        ('Dates', {
            'fields': ('created_at', 'updated_at')
        }),
    )

    def save_formset(self, request, form, formset, change):
        for product in formset.save(commit=False):
            product.tenant = form.instance.tenant
            product.save()
        for product in formset.deleted_objects:
            product.delete()


@admin.register(ProjectInvitation)
class ProjectInvitationAdmin(admin.ModelAdmin):
    list_display = ('email', 'project', 'status', 'expires_at', 'accepted_at')
    list_filter = ('status',)
    search_fields = ('email', 'project__name')
    raw_id_fields = ('project', 'invited_by')
    readonly_fields = ('token', 'created_at', 'updated_at')
