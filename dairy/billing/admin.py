from django.contrib import admin
from .models import Invoice, InvoiceItem, Payment


class InvoiceItemInline(admin.TabularInline):
    model = InvoiceItem
    extra = 0


@admin.register(Invoice)
class InvoiceAdmin(admin.ModelAdmin):
    list_display = ['invoice_number', 'customer', 'billing_period_start', 'billing_period_end',
                    'final_amount', 'paid_amount', 'payment_status', 'due_date']
    list_filter = ['payment_status', 'billing_period_start']
    search_fields = ['invoice_number', 'customer__name', 'customer__phone']
    readonly_fields = ['created_at', 'updated_at']
    inlines = [InvoiceItemInline]


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = ['customer', 'invoice', 'amount', 'payment_mode', 'payment_date', 'recorded_by']
    list_filter = ['payment_mode', 'payment_date']
    search_fields = ['customer__name', 'invoice__invoice_number', 'reference_number']
    date_hierarchy = 'payment_date'
