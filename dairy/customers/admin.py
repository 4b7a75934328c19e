from django.contrib import admin
from .models import Customer, CustomerSubscription, CustomerVacation, LedgerEntry


class CustomerSubscriptionInline(admin.TabularInline):
    model = CustomerSubscription
    extra = 0
    fields = ['product', 'quantity', 'custom_price', 'is_active']


@admin.register(Customer)
class CustomerAdmin(admin.ModelAdmin):
    list_display = ['name', 'phone', 'area', 'subscription_type', 'credit_balance', 'advance_balance', 'is_active']
    list_filter = ['subscription_type', 'billing_cycle', 'is_active', 'area']
    search_fields = ['name', 'phone', 'email', 'address']
    ordering = ['name']
    readonly_fields = ['credit_balance', 'advance_balance', 'created_at', 'updated_at']
    inlines = [CustomerSubscriptionInline]


@admin.register(CustomerVacation)
class CustomerVacationAdmin(admin.ModelAdmin):
    list_display = ['customer', 'start_date', 'end_date', 'reason', 'is_active']
    list_filter = ['is_active', 'start_date']
    search_fields = ['customer__name', 'reason']
    date_hierarchy = 'start_date'


@admin.register(LedgerEntry)
class LedgerEntryAdmin(admin.ModelAdmin):
    list_display = ['customer', 'transaction_date', 'transaction_type', 'debit_amount', 'credit_amount', 'running_balance', 'reference_id']
    list_filter = ['transaction_type', 'transaction_date']
    search_fields = ['customer__name', 'description']
    ordering = ['-transaction_date', '-created_at']
    date_hierarchy = 'transaction_date'
    readonly_fields = ['running_balance', 'created_at']
