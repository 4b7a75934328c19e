from decimal import Decimal

from django.db import models

from dairy.core.models import User


class MilkVendor(models.Model):
    """Farmers and collection centres the dairy buys milk from"""
    name = models.CharField(max_length=200)
    phone = models.CharField(max_length=20, blank=True, default='')
    address = models.TextField(blank=True, default='')
    area = models.CharField(max_length=100, blank=True, default='')
    current_balance = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'), help_text="Amount owed to the vendor")
    is_active = models.BooleanField(default=True)
    notes = models.TextField(blank=True, default='')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.name

    class Meta:
        db_table = 'milk_vendors'
        ordering = ['name']


class MilkProcurement(models.Model):
    """One milk collection from a vendor in a session"""
    SESSION_CHOICES = [
        ('morning', 'Morning'),
        ('evening', 'Evening'),
    ]
    PAYMENT_STATUS_CHOICES = [
        ('pending', 'Pending'),
        ('paid', 'Paid'),
    ]

    vendor = models.ForeignKey(MilkVendor, on_delete=models.SET_NULL, null=True, blank=True, related_name='procurements')
    vendor_name = models.CharField(max_length=200, blank=True, default='')
    procurement_date = models.DateField()
    session = models.CharField(max_length=10, choices=SESSION_CHOICES, default='morning')
    quantity_liters = models.DecimalField(max_digits=10, decimal_places=2)
    fat_percentage = models.DecimalField(max_digits=5, decimal_places=2, null=True, blank=True)
    snf_percentage = models.DecimalField(max_digits=5, decimal_places=2, null=True, blank=True)
    rate_per_liter = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    total_amount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    payment_status = models.CharField(max_length=20, choices=PAYMENT_STATUS_CHOICES, default='pending')
    notes = models.TextField(blank=True, default='')
    recorded_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='milk_procurements')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.vendor_name or self.vendor} - {self.procurement_date} {self.session}: {self.quantity_liters}L"

    def save(self, *args, **kwargs):
        if self.rate_per_liter is not None:
            self.total_amount = (self.quantity_liters * self.rate_per_liter).quantize(Decimal('0.01'))
        if self.vendor_id and not self.vendor_name:
            self.vendor_name = self.vendor.name
        super().save(*args, **kwargs)

    class Meta:
        db_table = 'milk_procurement'
        ordering = ['-procurement_date', 'session']
        indexes = [
            models.Index(fields=['procurement_date', 'session'], name='procurement_date_session_idx'),
            models.Index(fields=['vendor', 'procurement_date'], name='procurement_vendor_date_idx'),
        ]


class VendorPayment(models.Model):
    """Lump-sum payment made to a milk vendor"""
    PAYMENT_MODE_CHOICES = [
        ('cash', 'Cash'),
        ('upi', 'UPI'),
        ('bank_transfer', 'Bank Transfer'),
        ('cheque', 'Cheque'),
    ]

    vendor = models.ForeignKey(MilkVendor, on_delete=models.PROTECT, related_name='payments')
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    payment_date = models.DateField()
    payment_mode = models.CharField(max_length=20, choices=PAYMENT_MODE_CHOICES, default='cash')
    reference_number = models.CharField(max_length=100, blank=True, default='')
    notes = models.TextField(blank=True, default='')
    recorded_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='vendor_payments')
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"{self.vendor} - {self.amount} ({self.payment_date})"

    class Meta:
        db_table = 'vendor_payments'
        ordering = ['-payment_date', '-created_at']
