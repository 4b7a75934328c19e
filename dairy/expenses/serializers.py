from rest_framework import serializers
from .models import Expense


class ExpenseSerializer(serializers.ModelSerializer):
    recorded_by_username = serializers.CharField(source='recorded_by.username', read_only=True, default=None)
    is_automatic = serializers.SerializerMethodField()

    class Meta:
        model = Expense
        fields = ['id', 'title', 'category', 'amount', 'expense_date', 'notes', 'is_automatic',
                  'recorded_by', 'recorded_by_username', 'created_at']
        read_only_fields = ['recorded_by', 'created_at']

    def get_is_automatic(self, obj):
        return obj.notes.startswith('[AUTO]')

    def validate_amount(self, value):
        if value <= 0:
            raise serializers.ValidationError("Amount must be greater than zero")
        return value
