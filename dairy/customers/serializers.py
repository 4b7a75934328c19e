from decimal import Decimal

from rest_framework import serializers
from .models import Customer, CustomerSubscription, CustomerVacation, LedgerEntry

WEEKDAY_KEYS = ['monday', 'tuesday', 'wednesday', 'thursday', 'friday', 'saturday', 'sunday']


class CustomerSubscriptionSerializer(serializers.ModelSerializer):
    product_name = serializers.CharField(source='product.name', read_only=True)
    product_unit = serializers.CharField(source='product.unit', read_only=True)
    unit_price = serializers.DecimalField(max_digits=10, decimal_places=2, read_only=True)

    class Meta:
        model = CustomerSubscription
        fields = ['id', 'customer', 'product', 'product_name', 'product_unit', 'quantity',
                  'custom_price', 'unit_price', 'is_active', 'created_at', 'updated_at']
        read_only_fields = ['customer', 'created_at', 'updated_at']

    def validate_quantity(self, value):
        if value <= 0:
            raise serializers.ValidationError("Quantity must be greater than zero")
        return value

    def validate_custom_price(self, value):
        if value is not None and value < 0:
            raise serializers.ValidationError("Price cannot be negative")
        return value


class CustomerSerializer(serializers.ModelSerializer):
    subscriptions = CustomerSubscriptionSerializer(many=True, read_only=True)

    class Meta:
        model = Customer
        fields = [
            'id', 'name', 'phone', 'email', 'address', 'area', 'subscription_type', 'billing_cycle',
            'delivery_schedule', 'credit_balance', 'advance_balance', 'is_active', 'notes',
            'subscriptions', 'created_at', 'updated_at'
        ]
        read_only_fields = ['credit_balance', 'advance_balance', 'created_at', 'updated_at']

    def validate_delivery_schedule(self, value):
        if value in (None, ''):
            return {}
        if not isinstance(value, dict):
            raise serializers.ValidationError("Delivery schedule must be an object")
        days = value.get('days')
        if days is not None:
            if not isinstance(days, list) or any(not isinstance(d, int) or not 0 <= d <= 6 for d in days):
                raise serializers.ValidationError("'days' must be a list of weekday numbers 0 (Sunday) to 6 (Saturday)")
        day = value.get('day')
        if day is not None and (not isinstance(day, int) or not 0 <= day <= 6):
            raise serializers.ValidationError("'day' must be a weekday number 0 (Sunday) to 6 (Saturday)")
        delivery_days = value.get('delivery_days')
        if delivery_days is not None:
            if not isinstance(delivery_days, dict) or any(k not in WEEKDAY_KEYS for k in delivery_days):
                raise serializers.ValidationError(f"'delivery_days' keys must be among: {', '.join(WEEKDAY_KEYS)}")
        return value


class CustomerListSerializer(serializers.ModelSerializer):
    class Meta:
        model = Customer
        fields = ['id', 'name', 'phone', 'area', 'subscription_type', 'billing_cycle',
                  'credit_balance', 'advance_balance', 'is_active']


class CustomerVacationSerializer(serializers.ModelSerializer):
    created_by_username = serializers.CharField(source='created_by.username', read_only=True, default=None)

    class Meta:
        model = CustomerVacation
        fields = ['id', 'customer', 'start_date', 'end_date', 'reason', 'is_active',
                  'created_by', 'created_by_username', 'created_at']
        read_only_fields = ['customer', 'created_by', 'created_at']

    def validate(self, attrs):
        start_date = attrs.get('start_date', getattr(self.instance, 'start_date', None))
        end_date = attrs.get('end_date', getattr(self.instance, 'end_date', None))
        if start_date and end_date and end_date < start_date:
            raise serializers.ValidationError({"end_date": "End date cannot be before start date"})
        return attrs


class LedgerEntrySerializer(serializers.ModelSerializer):
    customer_name = serializers.CharField(source='customer.name', read_only=True)
    created_by_username = serializers.CharField(source='created_by.username', read_only=True, default=None)

    class Meta:
        model = LedgerEntry
        fields = [
            'id', 'customer', 'customer_name', 'transaction_date', 'transaction_type', 'description',
            'debit_amount', 'credit_amount', 'running_balance', 'reference_id',
            'created_by', 'created_by_username', 'created_at'
        ]
        read_only_fields = fields


class LedgerAdjustmentSerializer(serializers.Serializer):
    """Manual debit/credit posted by an accountant"""
    ENTRY_CHOICES = ['debit', 'credit']

    entry_type = serializers.ChoiceField(choices=ENTRY_CHOICES)
    amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0.01'))
    description = serializers.CharField(max_length=500)
    transaction_date = serializers.DateField(required=False)
