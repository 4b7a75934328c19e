from decimal import Decimal

from rest_framework import serializers

from dairy.catalog.models import Product
from dairy.customers.models import Customer
from .models import Delivery, DeliveryItem


class DeliveryItemSerializer(serializers.ModelSerializer):
    product_name = serializers.CharField(source='product.name', read_only=True)
    product_unit = serializers.CharField(source='product.unit', read_only=True)

    class Meta:
        model = DeliveryItem
        fields = ['id', 'product', 'product_name', 'product_unit', 'quantity', 'unit_price', 'total_amount', 'created_at']
        read_only_fields = ['total_amount', 'created_at']


class DeliverySerializer(serializers.ModelSerializer):
    customer_name = serializers.CharField(source='customer.name', read_only=True)
    customer_area = serializers.CharField(source='customer.area', read_only=True)
    delivered_by_username = serializers.CharField(source='delivered_by.username', read_only=True, default=None)
    items = DeliveryItemSerializer(many=True, read_only=True)
    total_amount = serializers.SerializerMethodField()

    class Meta:
        model = Delivery
        fields = [
            'id', 'customer', 'customer_name', 'customer_area', 'delivery_date', 'delivery_type', 'status',
            'delivery_time', 'delivered_by', 'delivered_by_username', 'notes', 'items', 'total_amount',
            'created_at', 'updated_at'
        ]
        read_only_fields = ['delivered_by', 'created_at', 'updated_at']

    def get_total_amount(self, obj):
        # Use prefetched items when available
        return str(sum((item.total_amount for item in obj.items.all()), Decimal('0.00')))

    def validate_customer(self, value):
        if not value.is_active:
            raise serializers.ValidationError(f"{value.name} is not an active customer")
        return value


class ItemInputSerializer(serializers.Serializer):
    """One product line posted with an add-on order or an items edit"""
    product = serializers.PrimaryKeyRelatedField(queryset=Product.objects.all())
    quantity = serializers.DecimalField(max_digits=10, decimal_places=3, min_value=Decimal('0'))
    unit_price = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=Decimal('0'),
                                          required=False, allow_null=True)


class DeliveryItemsUpdateSerializer(serializers.Serializer):
    items = ItemInputSerializer(many=True)


class AddonOrderSerializer(serializers.Serializer):
    customer = serializers.PrimaryKeyRelatedField(queryset=Customer.objects.all())
    delivery_date = serializers.DateField()
    items = ItemInputSerializer(many=True)
    notes = serializers.CharField(required=False, allow_blank=True, default='')

    def validate_items(self, value):
        if not any(item['quantity'] > 0 for item in value):
            raise serializers.ValidationError("Add at least one product with a quantity")
        return value


class BulkMarkDeliveredSerializer(serializers.Serializer):
    delivery_ids = serializers.ListField(child=serializers.IntegerField(min_value=1), allow_empty=False)


class ScheduleRequestSerializer(serializers.Serializer):
    date = serializers.DateField()
    days = serializers.IntegerField(min_value=1, max_value=31, default=1)
    auto_mark_delivered = serializers.BooleanField(default=False)


class AutoDeliverRequestSerializer(serializers.Serializer):
    date = serializers.DateField(required=False)
