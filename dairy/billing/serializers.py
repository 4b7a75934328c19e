from decimal import Decimal

from rest_framework import serializers

from dairy.catalog.models import Product
from dairy.customers.models import Customer
from .models import Invoice, InvoiceItem, Payment
from .utils import get_effective_payment_status, get_invoice_balance


class InvoiceItemSerializer(serializers.ModelSerializer):
    class Meta:
        model = InvoiceItem
        fields = ['id', 'product', 'description', 'quantity', 'rate', 'tax_percentage', 'amount', 'tax_amount']
        read_only_fields = fields


class InvoiceSerializer(serializers.ModelSerializer):
    customer_name = serializers.CharField(source='customer.name', read_only=True)
    customer_phone = serializers.CharField(source='customer.phone', read_only=True)
    effective_status = serializers.SerializerMethodField()
    balance = serializers.SerializerMethodField()
    created_by_username = serializers.CharField(source='created_by.username', read_only=True, default=None)

    class Meta:
        model = Invoice
        fields = [
            'id', 'invoice_number', 'customer', 'customer_name', 'customer_phone',
            'billing_period_start', 'billing_period_end', 'total_amount', 'tax_amount', 'discount_amount',
            'final_amount', 'payment_status', 'effective_status', 'paid_amount', 'balance', 'payment_date',
            'due_date', 'upi_handle', 'notes', 'created_by', 'created_by_username', 'created_at', 'updated_at'
        ]
        read_only_fields = fields

    def get_effective_status(self, obj):
        return get_effective_payment_status(obj)

    def get_balance(self, obj):
        return str(get_invoice_balance(obj))


class InvoiceLineSerializer(serializers.Serializer):
    product = serializers.PrimaryKeyRelatedField(queryset=Product.objects.all(), required=False, allow_null=True)
    description = serializers.CharField(max_length=255, required=False, allow_blank=True)
    quantity = serializers.DecimalField(max_digits=10, decimal_places=3, min_value=Decimal('0'))
    rate = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=Decimal('0'))
    tax_percentage = serializers.DecimalField(max_digits=5, decimal_places=2, min_value=Decimal('0'),
                                              max_value=Decimal('100'), default=Decimal('0'))


class InvoiceCreateSerializer(serializers.Serializer):
    customer = serializers.PrimaryKeyRelatedField(queryset=Customer.objects.all())
    billing_period_start = serializers.DateField()
    billing_period_end = serializers.DateField()
    line_items = InvoiceLineSerializer(many=True, allow_empty=False)
    discount_amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0'), default=Decimal('0'))
    due_date = serializers.DateField(required=False, allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True, default='')

    def validate(self, attrs):
        if attrs['billing_period_end'] < attrs['billing_period_start']:
            raise serializers.ValidationError({"billing_period_end": "Period end cannot be before period start"})
        return attrs


class InvoiceUpdateSerializer(serializers.Serializer):
    line_items = InvoiceLineSerializer(many=True, required=False, allow_empty=False)
    discount_amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0'), required=False)
    due_date = serializers.DateField(required=False)
    notes = serializers.CharField(required=False, allow_blank=True)


class PaymentSerializer(serializers.ModelSerializer):
    customer_name = serializers.CharField(source='customer.name', read_only=True)
    invoice_number = serializers.CharField(source='invoice.invoice_number', read_only=True, default=None)
    recorded_by_username = serializers.CharField(source='recorded_by.username', read_only=True, default=None)

    class Meta:
        model = Payment
        fields = [
            'id', 'customer', 'customer_name', 'invoice', 'invoice_number', 'amount', 'payment_date',
            'payment_mode', 'reference_number', 'notes', 'recorded_by', 'recorded_by_username', 'created_at'
        ]
        read_only_fields = fields


class PaymentCreateSerializer(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0.01'))
    payment_mode = serializers.ChoiceField(choices=Payment.PAYMENT_MODE_CHOICES)
    payment_date = serializers.DateField(required=False)
    reference_number = serializers.CharField(max_length=100, required=False, allow_blank=True, default='')
    notes = serializers.CharField(required=False, allow_blank=True, default='')


class AdvancePaymentSerializer(PaymentCreateSerializer):
    customer = serializers.PrimaryKeyRelatedField(queryset=Customer.objects.all())


class MonthlyGenerationSerializer(serializers.Serializer):
    year = serializers.IntegerField(min_value=2000, max_value=2100)
    month = serializers.IntegerField(min_value=1, max_value=12)


class BulkPeriodSerializer(serializers.Serializer):
    period_start = serializers.DateField()
    period_end = serializers.DateField()
    customer_ids = serializers.ListField(child=serializers.IntegerField(min_value=1), required=False)

    def validate(self, attrs):
        if attrs['period_end'] < attrs['period_start']:
            raise serializers.ValidationError({"period_end": "Period end cannot be before period start"})
        return attrs
