from django.contrib import admin
from .models import MilkProcurement, MilkVendor, VendorPayment


@admin.register(MilkVendor)
class MilkVendorAdmin(admin.ModelAdmin):
    list_display = ['name', 'phone', 'area', 'current_balance', 'is_active']
    list_filter = ['is_active', 'area']
    search_fields = ['name', 'phone']
    readonly_fields = ['current_balance', 'created_at', 'updated_at']


@admin.register(MilkProcurement)
class MilkProcurementAdmin(admin.ModelAdmin):
    list_display = ['procurement_date', 'session', 'vendor_name', 'quantity_liters', 'fat_percentage',
                    'snf_percentage', 'rate_per_liter', 'total_amount', 'payment_status']
    list_filter = ['session', 'payment_status', 'procurement_date']
    search_fields = ['vendor_name', 'vendor__name']
    date_hierarchy = 'procurement_date'


@admin.register(VendorPayment)
class VendorPaymentAdmin(admin.ModelAdmin):
    list_display = ['vendor', 'amount', 'payment_date', 'payment_mode', 'reference_number']
    list_filter = ['payment_mode', 'payment_date']
    search_fields = ['vendor__name', 'reference_number']
