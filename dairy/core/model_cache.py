"""
Caching for frequently read models: Customer and Product.

Customer detail payloads are cached by ID; customer and product lists are
cached per filter combination and dropped by key pattern when any row changes.
"""
from django.core.cache import cache
from django.db.models.signals import post_save, post_delete
from django.dispatch import receiver
import logging

from .cache_signals import invalidate_cache_pattern

logger = logging.getLogger(__name__)

# Cache key prefixes
CUSTOMER_KEY_PREFIX = 'customer:'
CUSTOMER_LIST_KEY_PREFIX = 'customer_list:'
PRODUCT_LIST_KEY_PREFIX = 'product_list:'

# Cache TTL (Time To Live) in seconds
CUSTOMER_CACHE_TTL = 600  # 10 minutes
CUSTOMER_LIST_CACHE_TTL = 300  # 5 minutes
PRODUCT_LIST_CACHE_TTL = 180  # 3 minutes


# ==================== CUSTOMER CACHING ====================

def get_customer_cache_key(customer_id: int) -> str:
    """Get cache key for customer by ID"""
    return f"{CUSTOMER_KEY_PREFIX}{customer_id}"


def get_customer_list_cache_key(search_query: str = '', area: str = '', active: str = '') -> str:
    """Get cache key for customer list"""
    return f"{CUSTOMER_LIST_KEY_PREFIX}{search_query or 'all'}:{area or 'all'}:{active or 'all'}"


def cache_customer_data(customer_id: int, data, ttl: int = None):
    """Cache a serialized customer payload"""
    ttl = ttl or CUSTOMER_CACHE_TTL
    cache.set(get_customer_cache_key(customer_id), data, ttl)
    logger.debug(f"Cached customer data (ID: {customer_id})")


def get_cached_customer(customer_id: int):
    """Get cached customer data by ID"""
    cached_data = cache.get(get_customer_cache_key(customer_id))
    if cached_data:
        logger.debug(f"Cache hit for customer: {customer_id}")
    return cached_data


def invalidate_customer_cache(customer_obj):
    """Invalidate all cache entries for a customer"""
    if not customer_obj:
        return
    cache.delete(get_customer_cache_key(customer_obj.id))
    # Lists are keyed by filters, any of them might include this customer
    invalidate_cache_pattern(CUSTOMER_LIST_KEY_PREFIX)
    logger.debug(f"Invalidated cache for customer: {customer_obj.name} (ID: {customer_obj.id})")


def invalidate_customer_detail(customer_id):
    """Drop one customer's detail payload and every customer list"""
    cache.delete(get_customer_cache_key(customer_id))
    invalidate_cache_pattern(CUSTOMER_LIST_KEY_PREFIX)
    logger.debug(f"Invalidated cache for customer ID: {customer_id}")


# ==================== PRODUCT CACHING ====================

def get_product_list_cache_key(category: str = '', active: str = '', search: str = '') -> str:
    """Get cache key for product list"""
    return f"{PRODUCT_LIST_KEY_PREFIX}{category or 'all'}:{active or 'all'}:{search or 'all'}"


def invalidate_product_cache(product_obj):
    """Invalidate product lists and the customers whose subscriptions embed the product"""
    if not product_obj:
        return
    invalidate_cache_pattern(PRODUCT_LIST_KEY_PREFIX)
    from dairy.customers.models import CustomerSubscription
    customer_ids = set(
        CustomerSubscription.objects.filter(product_id=product_obj.id).values_list('customer_id', flat=True)
    )
    if customer_ids:
        cache.delete_many([get_customer_cache_key(customer_id) for customer_id in customer_ids])
        invalidate_cache_pattern(CUSTOMER_LIST_KEY_PREFIX)
    logger.debug(f"Invalidated cache for product: {product_obj.name} (ID: {product_obj.id})")


# ==================== DJANGO SIGNALS ====================

@receiver(post_save)
def model_post_save(sender, instance, **kwargs):
    """Invalidate cache when model is saved"""
    model_name = sender.__name__

    if model_name == 'Customer':
        from dairy.customers.models import Customer
        if isinstance(instance, Customer):
            invalidate_customer_cache(instance)

    elif model_name == 'Product':
        from dairy.catalog.models import Product
        if isinstance(instance, Product):
            invalidate_product_cache(instance)

    elif model_name == 'CustomerSubscription':
        invalidate_customer_detail(instance.customer_id)


@receiver(post_delete)
def model_post_delete(sender, instance, **kwargs):
    """Invalidate cache when model is deleted"""
    model_name = sender.__name__

    if model_name == 'Customer':
        from dairy.customers.models import Customer
        if isinstance(instance, Customer):
            invalidate_customer_cache(instance)
            logger.debug(f"Cache invalidated for deleted customer: {instance.name} (ID: {instance.id})")

    elif model_name == 'Product':
        from dairy.catalog.models import Product
        if isinstance(instance, Product):
            invalidate_product_cache(instance)

    elif model_name == 'CustomerSubscription':
        invalidate_customer_detail(instance.customer_id)
