from decimal import Decimal

from django.db import models
from django.db.models import Sum

from dairy.core.models import User


class Delivery(models.Model):
    """One drop-off to a customer on a date"""
    STATUS_CHOICES = [
        ('pending', 'Pending'),
        ('delivered', 'Delivered'),
        ('missed', 'Missed'),
        ('partial', 'Partial'),
    ]
    TYPE_CHOICES = [
        ('subscription', 'Subscription'),
        ('addon', 'Add-on Order'),
    ]

    customer = models.ForeignKey('customers.Customer', on_delete=models.CASCADE, related_name='deliveries')
    delivery_date = models.DateField()
    delivery_type = models.CharField(max_length=20, choices=TYPE_CHOICES, default='subscription')
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='pending')
    delivery_time = models.DateTimeField(null=True, blank=True)
    delivered_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='deliveries')
    notes = models.TextField(blank=True, default='')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.customer} - {self.delivery_date} ({self.status})"

    def get_total_amount(self):
        return self.items.aggregate(total=Sum('total_amount'))['total'] or Decimal('0.00')

    class Meta:
        db_table = 'deliveries'
        ordering = ['-delivery_date', 'customer__name']
        indexes = [
            models.Index(fields=['delivery_date', 'status'], name='deliveries_date_status_idx'),
            models.Index(fields=['customer', 'delivery_date'], name='deliveries_customer_date_idx'),
        ]


class DeliveryItem(models.Model):
    """Product line within a delivery"""
    delivery = models.ForeignKey(Delivery, on_delete=models.CASCADE, related_name='items')
    product = models.ForeignKey('catalog.Product', on_delete=models.PROTECT, related_name='delivery_items')
    quantity = models.DecimalField(max_digits=10, decimal_places=3)
    unit_price = models.DecimalField(max_digits=10, decimal_places=2)
    total_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"{self.product.name} x {self.quantity}"

    def get_line_total(self):
        return (self.quantity * self.unit_price).quantize(Decimal('0.01'))

    def save(self, *args, **kwargs):
        self.total_amount = self.get_line_total()
        super().save(*args, **kwargs)

    class Meta:
        db_table = 'delivery_items'
