from django.contrib import admin
from .models import Delivery, DeliveryItem


class DeliveryItemInline(admin.TabularInline):
    model = DeliveryItem
    extra = 0
    readonly_fields = ['total_amount', 'created_at']


@admin.register(Delivery)
class DeliveryAdmin(admin.ModelAdmin):
    list_display = ['customer', 'delivery_date', 'delivery_type', 'status', 'delivery_time', 'delivered_by']
    list_filter = ['status', 'delivery_type', 'delivery_date']
    search_fields = ['customer__name', 'customer__phone', 'notes']
    date_hierarchy = 'delivery_date'
    inlines = [DeliveryItemInline]
