import re

from django.contrib.auth.hashers import check_password, make_password
from django.contrib.auth.models import AbstractUser
from django.db import models

PIN_PATTERN = re.compile(r'^\d{6}$')


class User(AbstractUser):
    """Extended user model with phone and a confirmation PIN"""
    phone = models.CharField(max_length=20, blank=True, null=True)
    pin_hash = models.CharField(max_length=128, blank=True, default='')
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'users'

    def set_pin(self, raw_pin):
        """Hash and store a 6-digit PIN. Caller saves the user."""
        if not raw_pin or not PIN_PATTERN.match(str(raw_pin)):
            raise ValueError('PIN must be exactly 6 digits')
        self.pin_hash = make_password(str(raw_pin))

    def check_pin(self, raw_pin):
        if not self.pin_hash or not raw_pin:
            return False
        return check_password(str(raw_pin), self.pin_hash)

    @property
    def has_pin(self):
        return bool(self.pin_hash)


class DairySetting(models.Model):
    """Dairy-wide business settings (single row)"""
    dairy_name = models.CharField(max_length=200, default='My Dairy')
    phone = models.CharField(max_length=20, blank=True, default='')
    email = models.EmailField(blank=True, default='')
    address = models.TextField(blank=True, default='')
    currency = models.CharField(max_length=10, default='INR')
    invoice_prefix = models.CharField(max_length=20, default='INV')
    financial_year_start = models.PositiveSmallIntegerField(default=4, help_text="Month (1-12) the financial year starts")
    upi_handle = models.CharField(max_length=100, blank=True, default='')
    invoice_due_days = models.PositiveSmallIntegerField(default=15, help_text="Days after billing period end an invoice is due")
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'dairy_settings'

    def __str__(self):
        return self.dairy_name

    def save(self, *args, **kwargs):
        self.pk = 1
        super().save(*args, **kwargs)

    @classmethod
    def load(cls):
        obj, _ = cls.objects.get_or_create(pk=1)
        return obj


class AuditLog(models.Model):
    """Audit log for critical operations"""
    ACTION_CHOICES = [
        ('create', 'Create'),
        ('update', 'Update'),
        ('delete', 'Delete'),
        ('invoice_create', 'Invoice Created'),
        ('invoice_update', 'Invoice Updated'),
        ('invoice_delete', 'Invoice Deleted'),
        ('payment_add', 'Payment Added'),
        ('ledger_entry', 'Ledger Entry'),
        ('delivery_schedule', 'Deliveries Scheduled'),
        ('auto_deliver', 'Auto Deliver Run'),
        ('vendor_payment', 'Vendor Payment'),
        ('balance_repair', 'Balance Repair'),
        ('data_archived', 'Data Archived'),
        ('factory_reset', 'Factory Reset'),
    ]

    user = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, related_name='audit_logs')
    action = models.CharField(max_length=50, choices=ACTION_CHOICES)
    model_name = models.CharField(max_length=100)
    object_id = models.CharField(max_length=100)
    object_name = models.CharField(max_length=255, blank=True, null=True, help_text="Human-readable name of the object (e.g., customer name, invoice number)")
    object_reference = models.CharField(max_length=255, blank=True, null=True, help_text="Reference identifier (e.g., invoice number, billing period)")
    changes = models.JSONField(default=dict, blank=True)
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'audit_logs'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['-created_at'], name='audit_logs_created_5c1d0e_idx'),
            models.Index(fields=['action'], name='audit_logs_action_8a2f4b_idx'),
            models.Index(fields=['model_name'], name='audit_logs_model_n_3e7c91_idx'),
            models.Index(fields=['object_reference'], name='audit_logs_object__b64d27_idx'),
        ]
