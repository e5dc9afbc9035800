from decimal import Decimal

from rest_framework import serializers

from .models import Contribution, PaymentSchedule, PaymentType, PlatformFee, Transaction


class PaymentScheduleSerializer(serializers.ModelSerializer):
    status_label = serializers.CharField(source='get_status_display', read_only=True)
    transaction_reference = serializers.CharField(
        source='transaction.gateway_reference', read_only=True, default=None,
    )

    class Meta:
        model = PaymentSchedule
        fields = ['id', 'amount', 'due_date', 'status', 'status_label', 'transaction_reference', 'paid_at']
        read_only_fields = fields


class TransactionSerializer(serializers.ModelSerializer):
    type_label = serializers.CharField(source='get_type_display', read_only=True)
    status_label = serializers.CharField(source='get_status_display', read_only=True)

    class Meta:
        model = Transaction
        fields = [
            'id', 'contribution', 'gateway_reference', 'amount', 'type', 'type_label',
            'status', 'status_label', 'failure_reason', 'processed_at', 'created_at',
        ]
        read_only_fields = fields


class ContributionSerializer(serializers.ModelSerializer):
    status_label = serializers.CharField(source='get_status_display', read_only=True)
    approval_status_label = serializers.CharField(source='get_approval_status_display', read_only=True)
    user_email = serializers.EmailField(source='user.email', read_only=True)
    project_name = serializers.CharField(source='project.name', read_only=True)
    outstanding = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)
    outstanding_arrears = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)
    progress_percentage = serializers.SerializerMethodField()

    class Meta:
        model = Contribution
        fields = [
            'id', 'tenant', 'user', 'user_email', 'project', 'project_name',
            'total_committed', 'payment_type', 'installment_amount', 'installment_frequency',
            'total_installments', 'arrears_amount', 'arrears_paid', 'outstanding_arrears',
            'total_paid', 'outstanding', 'progress_percentage', 'next_payment_due',
            'status', 'status_label', 'joined_date',
            'approval_status', 'approval_status_label', 'approved_by', 'approved_at',
            'created_at', 'updated_at',
        ]
        read_only_fields = fields

    def get_progress_percentage(self, obj):
        return str(obj.progress_percentage())


class ContributionDetailSerializer(ContributionSerializer):
    schedules = PaymentScheduleSerializer(many=True, read_only=True)
    transactions = TransactionSerializer(many=True, read_only=True)

    class Meta(ContributionSerializer.Meta):
        fields = ContributionSerializer.Meta.fields + ['schedules', 'transactions']
        read_only_fields = fields


class PledgeSerializer(serializers.Serializer):
    payment_type = serializers.ChoiceField(choices=PaymentType.choices)
    total_committed = serializers.DecimalField(
        max_digits=12, decimal_places=2, min_value=Decimal('1'), required=False, allow_null=True,
    )
    total_installments = serializers.IntegerField(min_value=1, max_value=60, required=False, allow_null=True)


class RecordPaymentSerializer(serializers.Serializer):
    """Gateway result reported by a manager or the payment integration."""

    reference = serializers.CharField(max_length=100)
    amount = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=Decimal('0.01'))
    success = serializers.BooleanField(default=True)
    type = serializers.ChoiceField(choices=Transaction.Type.choices, required=False, allow_null=True)
    failure_reason = serializers.CharField(max_length=500, required=False, allow_blank=True)
    gateway_response = serializers.JSONField(required=False)

    def validate(self, attrs):
        if not attrs.get('success') and not attrs.get('failure_reason'):
            raise serializers.ValidationError({'failure_reason': 'Failure reason is required for a failed payment.'})
        return attrs


class PlatformFeeSerializer(serializers.ModelSerializer):
    tenant_slug = serializers.CharField(source='tenant.slug', read_only=True)
    project_name = serializers.CharField(source='project.name', read_only=True)
    transaction_reference = serializers.CharField(source='transaction.gateway_reference', read_only=True)

    class Meta:
        model = PlatformFee
        fields = [
            'id', 'tenant', 'tenant_slug', 'project', 'project_name', 'transaction_reference',
            'project_amount', 'fee_percentage', 'fee_amount', 'status',
            'calculated_at', 'paid_at', 'created_at',
        ]
        read_only_fields = fields
