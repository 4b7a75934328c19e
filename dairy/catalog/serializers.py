from decimal import Decimal

from rest_framework import serializers
from .models import Product


class ProductSerializer(serializers.ModelSerializer):
    class Meta:
        model = Product
        fields = ['id', 'name', 'category', 'description', 'base_price', 'unit',
                  'tax_percentage', 'is_active', 'created_at', 'updated_at']
        read_only_fields = ['created_at', 'updated_at']

    def validate_base_price(self, value):
        if value < 0:
            raise serializers.ValidationError("Price cannot be negative")
        return value

    def validate_tax_percentage(self, value):
        if value < 0 or value > Decimal('100'):
            raise serializers.ValidationError("Tax percentage must be between 0 and 100")
        return value
