from decimal import Decimal

from rest_framework import serializers

from .models import MilkProcurement, MilkVendor, VendorPayment


class MilkVendorSerializer(serializers.ModelSerializer):
    class Meta:
        model = MilkVendor
        fields = ['id', 'name', 'phone', 'address', 'area', 'current_balance', 'is_active', 'notes',
                  'created_at', 'updated_at']
        read_only_fields = ['current_balance', 'created_at', 'updated_at']


class MilkProcurementSerializer(serializers.ModelSerializer):
    recorded_by_username = serializers.CharField(source='recorded_by.username', read_only=True, default=None)

    class Meta:
        model = MilkProcurement
        fields = [
            'id', 'vendor', 'vendor_name', 'procurement_date', 'session', 'quantity_liters', 'fat_percentage',
            'snf_percentage', 'rate_per_liter', 'total_amount', 'payment_status', 'notes',
            'recorded_by', 'recorded_by_username', 'created_at', 'updated_at'
        ]
        read_only_fields = ['recorded_by', 'created_at', 'updated_at']

    def validate_quantity_liters(self, value):
        if value <= 0:
            raise serializers.ValidationError("Quantity must be greater than zero")
        return value

    def validate_fat_percentage(self, value):
        if value is not None and not Decimal('0') <= value <= Decimal('15'):
            raise serializers.ValidationError("Fat percentage must be between 0 and 15")
        return value

    def validate_snf_percentage(self, value):
        if value is not None and not Decimal('0') <= value <= Decimal('15'):
            raise serializers.ValidationError("SNF percentage must be between 0 and 15")
        return value

    def validate(self, attrs):
        vendor = attrs.get('vendor', getattr(self.instance, 'vendor', None))
        vendor_name = attrs.get('vendor_name', getattr(self.instance, 'vendor_name', ''))
        if vendor is None and not vendor_name:
            raise serializers.ValidationError({"vendor": "Select a vendor or enter a vendor name"})
        return attrs


class VendorPaymentSerializer(serializers.ModelSerializer):
    vendor_name = serializers.CharField(source='vendor.name', read_only=True)
    recorded_by_username = serializers.CharField(source='recorded_by.username', read_only=True, default=None)

    class Meta:
        model = VendorPayment
        fields = ['id', 'vendor', 'vendor_name', 'amount', 'payment_date', 'payment_mode', 'reference_number',
                  'notes', 'recorded_by', 'recorded_by_username', 'created_at']
        read_only_fields = ['recorded_by', 'created_at']
        extra_kwargs = {'payment_date': {'required': False}}

    def validate_amount(self, value):
        if value <= 0:
            raise serializers.ValidationError("Amount must be greater than zero")
        return value
