"""
Keep MilkVendor.current_balance derived from procurements and payments.
"""
import logging
import threading
from contextlib import contextmanager

from django.db.models.signals import pre_save, post_save, post_delete
from django.dispatch import receiver

from .models import MilkProcurement, VendorPayment
from .services import recalculate_vendor_balance

logger = logging.getLogger(__name__)

_thread_locals = threading.local()


@contextmanager
def bulk_vendor_changes():
    """
    Skip per-row vendor balance updates inside the block.
    Caller must recalculate vendor balances afterwards.
    """
    previous = getattr(_thread_locals, 'suspended', False)
    try:
        _thread_locals.suspended = True
        yield
    finally:
        _thread_locals.suspended = previous


def is_suspended():
    return getattr(_thread_locals, 'suspended', False)


def _vendor_ids(instance):
    ids = {instance.vendor_id}
    # A procurement moved to another vendor changes both balances
    previous = getattr(instance, '_previous_vendor_id', None)
    if previous:
        ids.add(previous)
    return [vendor_id for vendor_id in ids if vendor_id]


@receiver(pre_save, sender=MilkProcurement)
def remember_previous_vendor(sender, instance, **kwargs):
    if instance.pk:
        instance._previous_vendor_id = (
            MilkProcurement.objects.filter(pk=instance.pk).values_list('vendor_id', flat=True).first()
        )


@receiver(post_save, sender=MilkProcurement)
@receiver(post_save, sender=VendorPayment)
def vendor_transaction_saved(sender, instance, **kwargs):
    if is_suspended():
        return
    for vendor_id in _vendor_ids(instance):
        recalculate_vendor_balance(vendor_id)


@receiver(post_delete, sender=MilkProcurement)
@receiver(post_delete, sender=VendorPayment)
def vendor_transaction_deleted(sender, instance, **kwargs):
    if is_suspended():
        return
    for vendor_id in _vendor_ids(instance):
        recalculate_vendor_balance(vendor_id)
