"""
Keep Customer.credit_balance in step with the ledger.

Any ledger row saved or deleted (service layer, admin, archive) re-derives
the customer's balance from the ledger totals.
"""
import logging
import threading
from contextlib import contextmanager

from django.db.models.signals import post_save, post_delete
from django.dispatch import receiver

from .ledger import sync_customer_balance
from .models import LedgerEntry

logger = logging.getLogger(__name__)

_thread_locals = threading.local()


@contextmanager
def bulk_ledger_changes():
    """
    Skip per-row balance syncing inside the block.
    Caller must recalculate balances afterwards.
    """
    previous = getattr(_thread_locals, 'suspended', False)
    try:
        _thread_locals.suspended = True
        yield
    finally:
        _thread_locals.suspended = previous


def is_suspended():
    return getattr(_thread_locals, 'suspended', False)


@receiver(post_save, sender=LedgerEntry)
def ledger_entry_saved(sender, instance, **kwargs):
    if is_suspended():
        return
    sync_customer_balance(instance.customer_id)


@receiver(post_delete, sender=LedgerEntry)
def ledger_entry_deleted(sender, instance, **kwargs):
    if is_suspended():
        return
    sync_customer_balance(instance.customer_id)
