"""Vendor balances and payments"""
import logging

from django.db import transaction
from django.db.models import Sum
from django.utils import timezone

from dairy.core.exceptions import ValidationFailed
from dairy.core.utils import ZERO, quantize_money
from dairy.expenses.services import log_vendor_payment_expense
from .models import MilkProcurement, MilkVendor, VendorPayment

logger = logging.getLogger(__name__)


def calculate_vendor_balance(vendor_id):
    """Procured value minus payments made"""
    procured = MilkProcurement.objects.filter(vendor_id=vendor_id).aggregate(total=Sum('total_amount'))['total'] or ZERO
    paid = VendorPayment.objects.filter(vendor_id=vendor_id).aggregate(total=Sum('amount'))['total'] or ZERO
    return procured - paid


def recalculate_vendor_balance(vendor_id):
    """Store the derived balance on the vendor; returns it"""
    balance = calculate_vendor_balance(vendor_id)
    updated = MilkVendor.objects.filter(pk=vendor_id).exclude(current_balance=balance).update(
        current_balance=balance, updated_at=timezone.now()
    )
    if updated:
        logger.debug(f"Vendor {vendor_id} balance set to {balance}")
    return balance


def recalculate_all_vendor_balances():
    count = 0
    for vendor_id in MilkVendor.objects.values_list('id', flat=True):
        recalculate_vendor_balance(vendor_id)
        count += 1
    logger.info(f"Recalculated balances for {count} vendors")
    return count


def record_vendor_payment(vendor, amount, payment_date=None, payment_mode='cash', reference_number='', notes='', user=None):
    """Pay a vendor and log the matching feed expense"""
    amount = quantize_money(amount)
    if amount <= ZERO:
        raise ValidationFailed('Payment amount must be greater than zero')
    if payment_mode not in dict(VendorPayment.PAYMENT_MODE_CHOICES):
        raise ValidationFailed(f'Unknown payment mode: {payment_mode}')

    with transaction.atomic():
        payment = VendorPayment.objects.create(
            vendor=vendor,
            amount=amount,
            payment_date=payment_date or timezone.localdate(),
            payment_mode=payment_mode,
            reference_number=reference_number or '',
            notes=notes or '',
            recorded_by=user,
        )
        log_vendor_payment_expense(payment, user=user)

    vendor.refresh_from_db(fields=['current_balance'])
    logger.info(f"Vendor payment {amount} ({payment_mode}) to {vendor.name}, balance now {vendor.current_balance}")
    return payment
