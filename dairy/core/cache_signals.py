"""
Cache invalidation signals
Automatically invalidate cached reports when data changes
"""
from django.db.models.signals import post_save, post_delete
from django.dispatch import receiver
from django.core.cache import cache
import logging
import threading
from contextlib import contextmanager

logger = logging.getLogger(__name__)

BILLING_CACHE_PATTERN = 'billing_summary'
PROCUREMENT_CACHE_PATTERN = 'procurement_analytics'
DELIVERY_REPORT_CACHE_PATTERN = 'delivery_summary'

# Thread-local storage to track signal suspension
_thread_locals = threading.local()


@contextmanager
def suspend_cache_signals():
    """
    Context manager to temporarily suspend cache invalidation signals.
    Useful for bulk operations to prevent excessive cache clearing.
    Remember to manually invalidate cache after the block!
    """
    previous = is_suspended()
    try:
        _thread_locals.suspended = True
        yield
    finally:
        _thread_locals.suspended = previous


def is_suspended():
    return getattr(_thread_locals, 'suspended', False)


def invalidate_cache_pattern(pattern):
    """
    Invalidate all cache keys matching a pattern
    Uses Redis SCAN to find and delete matching keys. Backends without key
    scanning (local memory in development and tests) are cleared entirely.
    """
    try:
        from django_redis import get_redis_connection
        redis_conn = get_redis_connection("default")
    except NotImplementedError:
        cache.clear()
        logger.debug(f"Cache backend has no pattern support, cleared cache for pattern: {pattern}")
        return
    except Exception as e:
        logger.warning(f"Could not invalidate cache pattern {pattern}: {str(e)}")
        return

    try:
        keys = []
        cursor = 0
        while True:
            cursor, partial_keys = redis_conn.scan(cursor, match=f"*{pattern}*", count=100)
            keys.extend(partial_keys)
            if cursor == 0:
                break

        if keys:
            redis_conn.delete(*keys)
            logger.info(f"Cache invalidation requested for pattern: {pattern} - Deleted {len(keys)} keys")
        else:
            logger.debug(f"Cache invalidation requested for pattern: {pattern} - No keys found")
    except Exception as e:
        logger.warning(f"Could not invalidate cache pattern {pattern}: {str(e)}")


# --- Manual Invalidation Helpers ---

def invalidate_billing_cache_manual():
    """Manually invalidate billing summary cache"""
    invalidate_cache_pattern(BILLING_CACHE_PATTERN)
    logger.debug("Invalidated billing cache (Manual/Signal)")


def invalidate_procurement_cache_manual():
    """Manually invalidate procurement analytics cache"""
    invalidate_cache_pattern(PROCUREMENT_CACHE_PATTERN)
    logger.debug("Invalidated procurement cache (Manual/Signal)")


def invalidate_delivery_cache_manual():
    """Manually invalidate delivery report cache"""
    invalidate_cache_pattern(DELIVERY_REPORT_CACHE_PATTERN)
    logger.debug("Invalidated delivery report cache (Manual/Signal)")


def invalidate_all_report_caches():
    invalidate_billing_cache_manual()
    invalidate_procurement_cache_manual()
    invalidate_delivery_cache_manual()


# --- Signal Handlers ---

@receiver([post_save, post_delete])
def invalidate_billing_cache(sender, instance, **kwargs):
    """Invalidate billing summary when invoices, payments or ledger rows change"""
    if is_suspended():
        return

    if sender.__name__ in ['Invoice', 'Payment', 'LedgerEntry']:
        from dairy.billing.models import Invoice, Payment
        from dairy.customers.models import LedgerEntry
        if isinstance(instance, (Invoice, Payment, LedgerEntry)):
            invalidate_billing_cache_manual()


@receiver([post_save, post_delete])
def invalidate_procurement_cache(sender, instance, **kwargs):
    """Invalidate procurement analytics when collections change"""
    if is_suspended():
        return

    if sender.__name__ in ['MilkProcurement', 'MilkVendor']:
        from dairy.procurement.models import MilkProcurement, MilkVendor
        if isinstance(instance, (MilkProcurement, MilkVendor)):
            invalidate_procurement_cache_manual()


@receiver([post_save, post_delete])
def invalidate_delivery_cache(sender, instance, **kwargs):
    """Invalidate delivery summary when deliveries change"""
    if is_suspended():
        return

    if sender.__name__ in ['Delivery', 'DeliveryItem']:
        from dairy.deliveries.models import Delivery, DeliveryItem
        if isinstance(instance, (Delivery, DeliveryItem)):
            invalidate_delivery_cache_manual()
