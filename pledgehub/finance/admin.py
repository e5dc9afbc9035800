from django.contrib import admin

from .models import Contribution, PaymentSchedule, PlatformFee, Transaction


class PaymentScheduleInline(admin.TabularInline):
    model = PaymentSchedule
    extra = 0
    fields = ('due_date', 'amount', 'status', 'paid_at')
    readonly_fields = ('paid_at',)


@admin.register(Contribution)
class ContributionAdmin(admin.ModelAdmin):
    list_display = ('user', 'project', 'tenant', 'total_committed', 'total_paid', 'status', 'approval_status')
    list_filter = ('status', 'approval_status', 'payment_type', 'tenant')
    search_fields = ('user__email', 'project__name', 'tenant__slug')
    raw_id_fields = ('user', 'project', 'tenant', 'approved_by')
    readonly_fields = ('created_at', 'updated_at')
    inlines = [PaymentScheduleInline]


@admin.register(Transaction)
class TransactionAdmin(admin.ModelAdmin):
    list_display = ('gateway_reference', 'contribution', 'amount', 'type', 'status', 'processed_at')
    list_filter = ('status', 'type', 'tenant')
    search_fields = ('gateway_reference', 'user__email')

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(PlatformFee)
class PlatformFeeAdmin(admin.ModelAdmin):
    list_display = ('transaction', 'tenant', 'project', 'project_amount', 'fee_percentage', 'fee_amount', 'status')
    list_filter = ('status', 'tenant')
    raw_id_fields = ('tenant', 'project', 'transaction')
