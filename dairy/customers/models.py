import json
import logging
import re
from decimal import Decimal

from django.core.exceptions import ValidationError
from django.db import models

from dairy.core.models import User

logger = logging.getLogger(__name__)

SCHEDULE_NOTES_PATTERN = re.compile(r'Schedule:\s*(\{.*\})', re.DOTALL)


class Customer(models.Model):
    """Subscription customers"""
    SUBSCRIPTION_TYPE_CHOICES = [
        ('daily', 'Daily'),
        ('alternate', 'Alternate Days'),
        ('weekly', 'Weekly'),
        ('custom', 'Custom Days'),
    ]
    BILLING_CYCLE_CHOICES = [
        ('monthly', 'Monthly'),
        ('weekly', 'Weekly'),
    ]

    name = models.CharField(max_length=200)
    phone = models.CharField(max_length=20, unique=True, blank=True, null=True)
    email = models.EmailField(blank=True, default='')
    address = models.TextField(blank=True, default='')
    area = models.CharField(max_length=100, blank=True, default='')
    subscription_type = models.CharField(max_length=20, choices=SUBSCRIPTION_TYPE_CHOICES, default='daily')
    billing_cycle = models.CharField(max_length=20, choices=BILLING_CYCLE_CHOICES, default='monthly')
    delivery_schedule = models.JSONField(default=dict, blank=True, help_text="e.g. {'frequency': 'custom', 'days': [1, 3, 5]}")
    credit_balance = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'), help_text="Amount owed (ledger debits minus credits)")
    advance_balance = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'), help_text="Amount paid in advance")
    is_active = models.BooleanField(default=True)
    notes = models.TextField(blank=True, default='')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.name

    class Meta:
        db_table = 'customers'
        ordering = ['name']
        indexes = [
            models.Index(fields=['area'], name='customers_area_idx'),
            models.Index(fields=['is_active'], name='customers_active_idx'),
        ]

    def get_delivery_schedule(self):
        """
        Return the delivery schedule dict.

        ``delivery_schedule`` wins; older records keep the schedule as
        ``Schedule: {...}`` JSON inside ``notes``.
        """
        if self.delivery_schedule:
            return self.delivery_schedule
        if self.notes:
            match = SCHEDULE_NOTES_PATTERN.search(self.notes)
            if match:
                try:
                    schedule = json.loads(match.group(1))
                    if isinstance(schedule, dict):
                        return schedule
                except ValueError:
                    logger.warning(f"Unparseable schedule in notes for customer {self.id}")
        return {}


class CustomerSubscription(models.Model):
    """Recurring per-product quantity delivered to a customer"""
    customer = models.ForeignKey(Customer, on_delete=models.CASCADE, related_name='subscriptions')
    product = models.ForeignKey('catalog.Product', on_delete=models.PROTECT, related_name='subscriptions')
    quantity = models.DecimalField(max_digits=10, decimal_places=3, default=Decimal('1.000'))
    custom_price = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'customer_products'
        ordering = ['customer', 'product__name']

    def __str__(self):
        return f"{self.customer} - {self.product.name} x {self.quantity}"

    @property
    def unit_price(self):
        if self.custom_price is not None:
            return self.custom_price
        return self.product.base_price


class VacationQuerySet(models.QuerySet):
    def active_on(self, on_date):
        return self.filter(is_active=True, start_date__lte=on_date, end_date__gte=on_date)


class CustomerVacation(models.Model):
    """Date range during which a customer receives no deliveries"""
    customer = models.ForeignKey(Customer, on_delete=models.CASCADE, related_name='vacations')
    start_date = models.DateField()
    end_date = models.DateField()
    reason = models.CharField(max_length=255, blank=True, default='')
    is_active = models.BooleanField(default=True)
    created_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='customer_vacations')
    created_at = models.DateTimeField(auto_now_add=True)

    objects = VacationQuerySet.as_manager()

    class Meta:
        db_table = 'customer_vacations'
        ordering = ['-start_date']

    def __str__(self):
        return f"{self.customer} vacation {self.start_date} - {self.end_date}"

    def clean(self):
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValidationError({'end_date': 'End date cannot be before start date'})


class LedgerEntry(models.Model):
    """Debit/credit rows against a customer's running balance"""
    TRANSACTION_TYPE_CHOICES = [
        ('invoice', 'Invoice'),
        ('payment', 'Payment'),
        ('delivery', 'Delivery'),
        ('advance', 'Advance'),
        ('adjustment', 'Adjustment'),
    ]

    customer = models.ForeignKey(Customer, on_delete=models.CASCADE, related_name='ledger_entries')
    transaction_date = models.DateField()
    transaction_type = models.CharField(max_length=20, choices=TRANSACTION_TYPE_CHOICES)
    description = models.TextField(blank=True, default='')
    debit_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    credit_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    running_balance = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    reference_id = models.PositiveBigIntegerField(null=True, blank=True, help_text="ID of the invoice/payment/delivery this entry came from")
    created_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='ledger_entries')
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"{self.customer.name} - {self.transaction_type} - Dr {self.debit_amount} / Cr {self.credit_amount}"

    class Meta:
        db_table = 'customer_ledger'
        ordering = ['-transaction_date', '-created_at', '-id']
        indexes = [
            models.Index(fields=['customer', 'transaction_date'], name='ledger_customer_date_idx'),
            models.Index(fields=['transaction_type', 'reference_id'], name='ledger_type_reference_idx'),
        ]
