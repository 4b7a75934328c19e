"""
Delivery scheduling for subscription customers.

A customer gets a subscription delivery on a date when they are active,
have at least one active subscription, are not on vacation and their
frequency rule matches the date. Weekday numbers in schedules use
0 = Sunday ... 6 = Saturday.
"""
import logging
from datetime import timedelta
from decimal import Decimal

from django.db import transaction
from django.db.models import Prefetch
from django.utils import timezone

from dairy.core.cache_signals import suspend_cache_signals, invalidate_delivery_cache_manual
from dairy.core.exceptions import ValidationFailed
from dairy.core.utils import quantize_money, to_decimal
from dairy.customers.models import Customer, CustomerSubscription, CustomerVacation
from .models import Delivery, DeliveryItem

logger = logging.getLogger(__name__)

WEEKDAY_KEYS = ['monday', 'tuesday', 'wednesday', 'thursday', 'friday', 'saturday', 'sunday']
ALL_DAYS = [0, 1, 2, 3, 4, 5, 6]

AUTO_SCHEDULED_NOTE = '[AUTO] Scheduled delivery'
AUTO_MARKED_NOTE = '[AUTO] Auto-marked as delivered'
ADDON_NOTE = 'Add-on order'


def sunday_based_weekday(target_date):
    """Python's Monday=0 weekday converted to Sunday=0"""
    return (target_date.weekday() + 1) % 7


def should_deliver_on_date(customer, target_date, schedule=None):
    """
    Frequency rule:

    - ``delivery_days`` map ({'monday': True, ...}) decides when present
    - daily: every day
    - alternate: odd days of the month
    - weekly: weekday equals ``schedule['day']`` (default Sunday)
    - custom: weekday in ``schedule['days']`` (default every day)
    """
    if schedule is None:
        schedule = customer.get_delivery_schedule()

    delivery_days = schedule.get('delivery_days')
    if isinstance(delivery_days, dict) and delivery_days:
        return bool(delivery_days.get(WEEKDAY_KEYS[target_date.weekday()], False))

    frequency = schedule.get('frequency') or customer.subscription_type or 'daily'
    weekday = sunday_based_weekday(target_date)

    if frequency == 'daily':
        return True
    if frequency == 'alternate':
        return target_date.day % 2 == 1
    if frequency == 'weekly':
        return weekday == _schedule_day(customer, schedule)
    if frequency == 'custom':
        return weekday in _schedule_days(customer, schedule)
    return True


def _schedule_day(customer, schedule):
    day = schedule.get('day', 0)
    if isinstance(day, int) and 0 <= day <= 6:
        return day
    logger.warning(f"Invalid weekly delivery day {day!r} for {customer.name}, using Sunday")
    return 0


def _schedule_days(customer, schedule):
    days = schedule.get('days')
    if days is None:
        return ALL_DAYS
    if isinstance(days, list) and all(isinstance(d, int) for d in days):
        return days
    logger.warning(f"Invalid custom delivery days {days!r} for {customer.name}, delivering every day")
    return ALL_DAYS


def get_subscribed_customers():
    """Active customers with their active subscriptions on ``active_subscriptions``"""
    active_subscriptions = CustomerSubscription.objects.filter(
        is_active=True, product__is_active=True
    ).select_related('product')
    return (
        Customer.objects.filter(
            is_active=True,
            subscriptions__is_active=True,
            subscriptions__product__is_active=True,
        )
        .distinct()
        .order_by('name')
        .prefetch_related(Prefetch('subscriptions', queryset=active_subscriptions, to_attr='active_subscriptions'))
    )


def get_customers_on_vacation(target_date):
    return set(CustomerVacation.objects.active_on(target_date).values_list('customer_id', flat=True))


def is_on_vacation(customer, target_date):
    return CustomerVacation.objects.active_on(target_date).filter(customer=customer).exists()


def build_item(delivery, product, quantity, unit_price=None):
    """Unsaved DeliveryItem; price falls back to the product's base price"""
    price = to_decimal(unit_price, default=None) if unit_price is not None else product.base_price
    quantity = to_decimal(quantity)
    return DeliveryItem(
        delivery=delivery,
        product=product,
        quantity=quantity,
        unit_price=price,
        total_amount=quantize_money(price * quantity),
    )


def create_items_from_subscriptions(delivery, subscriptions):
    items = [
        build_item(delivery, sub.product, sub.quantity, sub.unit_price)
        for sub in subscriptions
    ]
    return DeliveryItem.objects.bulk_create(items)


def _create_subscription_delivery(customer, target_date, status, notes='', user=None):
    delivery = Delivery.objects.create(
        customer=customer,
        delivery_date=target_date,
        delivery_type='subscription',
        status=status,
        delivery_time=timezone.now() if status == 'delivered' else None,
        delivered_by=user if status == 'delivered' else None,
        notes=notes,
    )
    create_items_from_subscriptions(delivery, customer.active_subscriptions)
    return delivery


def _mark_delivered(delivery, user=None, notes=None):
    """Mark a delivery delivered, adding subscription items when it has none"""
    if not delivery.items.exists() and delivery.delivery_type == 'subscription':
        subscriptions = CustomerSubscription.objects.filter(
            customer_id=delivery.customer_id, is_active=True, product__is_active=True
        ).select_related('product')
        create_items_from_subscriptions(delivery, subscriptions)

    delivery.status = 'delivered'
    delivery.delivery_time = timezone.now()
    if user is not None:
        delivery.delivered_by = user
    update_fields = ['status', 'delivery_time', 'delivered_by', 'updated_at']
    if notes is not None:
        delivery.notes = notes
        update_fields.append('notes')
    delivery.save(update_fields=update_fields)
    return delivery


def schedule_deliveries_for_date(target_date, auto_mark_delivered=False, user=None):
    """
    Create subscription deliveries for one date.

    Customers that already have a subscription delivery that day are skipped.
    """
    result = {'date': target_date, 'scheduled': 0, 'skipped': 0, 'errors': []}
    status = 'delivered' if auto_mark_delivered else 'pending'

    existing_customer_ids = set(
        Delivery.objects.filter(delivery_date=target_date, delivery_type='subscription')
        .values_list('customer_id', flat=True)
    )
    on_vacation = get_customers_on_vacation(target_date)

    with suspend_cache_signals():
        for customer in get_subscribed_customers():
            if customer.id in existing_customer_ids or customer.id in on_vacation:
                result['skipped'] += 1
                continue
            try:
                if not should_deliver_on_date(customer, target_date):
                    result['skipped'] += 1
                    continue
                with transaction.atomic():
                    _create_subscription_delivery(customer, target_date, status, user=user)
                result['scheduled'] += 1
            except Exception as e:
                logger.error(f"Failed to schedule delivery for {customer.name} on {target_date}: {str(e)}")
                result['errors'].append(f"{customer.name}: {str(e)}")

    invalidate_delivery_cache_manual()
    logger.info(
        f"Scheduled deliveries for {target_date}: scheduled={result['scheduled']}, "
        f"skipped={result['skipped']}, errors={len(result['errors'])}"
    )
    return result


def schedule_deliveries_for_range(start_date, days=7, auto_mark_delivered=False, user=None):
    if days < 1 or days > 31:
        raise ValidationFailed('Days must be between 1 and 31')
    return [
        schedule_deliveries_for_date(start_date + timedelta(days=offset), auto_mark_delivered, user)
        for offset in range(days)
    ]


def auto_deliver_pending_for_date(target_date, user=None):
    """Mark every pending delivery of a date as delivered"""
    result = {'date': target_date, 'delivered': 0, 'errors': []}
    pending = Delivery.objects.filter(delivery_date=target_date, status='pending').select_related('customer')

    with suspend_cache_signals():
        for delivery in pending:
            try:
                with transaction.atomic():
                    _mark_delivered(delivery, user=user)
                result['delivered'] += 1
            except Exception as e:
                logger.error(f"Failed to mark delivery {delivery.id} delivered: {str(e)}")
                result['errors'].append(f"{delivery.customer.name}: {str(e)}")

    invalidate_delivery_cache_manual()
    logger.info(f"Auto-delivered {result['delivered']} pending deliveries for {target_date}")
    return result


def run_auto_deliver(target_date=None, user=None):
    """
    Daily job: every eligible subscription customer ends the day delivered.

    Pending deliveries are marked delivered, missing ones are created as
    delivered, anything already delivered/missed/partial is left alone.
    """
    target_date = target_date or timezone.localdate()
    result = {'date': target_date, 'scheduled': 0, 'delivered': 0, 'skipped': 0, 'errors': []}

    existing = {
        d.customer_id: d
        for d in Delivery.objects.filter(delivery_date=target_date, delivery_type='subscription')
    }
    on_vacation = get_customers_on_vacation(target_date)
    logger.info(f"[AUTO-DELIVER] {target_date}: {len(on_vacation)} customers on vacation")

    with suspend_cache_signals():
        for customer in get_subscribed_customers():
            if customer.id in on_vacation:
                logger.debug(f"[AUTO-DELIVER] Skipping {customer.name}: on vacation")
                result['skipped'] += 1
                continue
            delivery = existing.get(customer.id)
            try:
                if not should_deliver_on_date(customer, target_date):
                    result['skipped'] += 1
                    continue
                with transaction.atomic():
                    if delivery is not None:
                        if delivery.status != 'pending':
                            result['skipped'] += 1
                            continue
                        _mark_delivered(delivery, user=user, notes=AUTO_MARKED_NOTE)
                        result['delivered'] += 1
                    else:
                        _create_subscription_delivery(customer, target_date, 'delivered', notes=AUTO_SCHEDULED_NOTE, user=user)
                        result['scheduled'] += 1
                        result['delivered'] += 1
            except Exception as e:
                logger.error(f"[AUTO-DELIVER] Error for {customer.name}: {str(e)}")
                result['errors'].append(f"Error creating delivery for {customer.name}: {str(e)}")

    invalidate_delivery_cache_manual()
    logger.info(
        f"[AUTO-DELIVER] Complete: scheduled={result['scheduled']}, delivered={result['delivered']}, "
        f"skipped={result['skipped']}, errors={len(result['errors'])}"
    )
    return result


def mark_deliveries_delivered(delivery_ids, user=None):
    """Bulk action: mark selected pending deliveries delivered, skipping vacations"""
    result = {'success': 0, 'failed': 0, 'skipped': 0, 'errors': []}
    deliveries = Delivery.objects.filter(pk__in=delivery_ids).select_related('customer')

    found_ids = set()
    with suspend_cache_signals():
        for delivery in deliveries:
            found_ids.add(delivery.pk)
            if delivery.status != 'pending' or is_on_vacation(delivery.customer, delivery.delivery_date):
                result['skipped'] += 1
                continue
            try:
                with transaction.atomic():
                    _mark_delivered(delivery, user=user)
                result['success'] += 1
            except Exception as e:
                logger.error(f"Bulk mark failed for delivery {delivery.id}: {str(e)}")
                result['failed'] += 1
                result['errors'].append(f"{delivery.customer.name}: {str(e)}")

    missing = set(delivery_ids) - found_ids
    result['failed'] += len(missing)
    for delivery_id in sorted(missing):
        result['errors'].append(f"Delivery {delivery_id} not found")

    invalidate_delivery_cache_manual()
    logger.info(f"Bulk delivery update: success={result['success']}, failed={result['failed']}, skipped={result['skipped']}")
    return result


def create_addon_order(customer, delivery_date, items, user=None, notes=''):
    """
    Record an extra delivered order outside the subscription.

    ``items`` is a list of ``{'product': Product, 'quantity': ..., 'unit_price': optional}``.
    The order is billed through the monthly invoice like every delivered item.
    """
    if not customer.is_active:
        raise ValidationFailed(f'{customer.name} is not an active customer')
    lines = [item for item in items if to_decimal(item.get('quantity')) > 0]
    if not lines:
        raise ValidationFailed('Add at least one product with a quantity')

    with transaction.atomic():
        delivery = Delivery.objects.create(
            customer=customer,
            delivery_date=delivery_date,
            delivery_type='addon',
            status='delivered',
            delivery_time=timezone.now(),
            delivered_by=user,
            notes=f"{ADDON_NOTE}: {notes}" if notes else ADDON_NOTE,
        )
        DeliveryItem.objects.bulk_create([
            build_item(delivery, line['product'], line['quantity'], line.get('unit_price'))
            for line in lines
        ])

    summary = ', '.join(f"{line['product'].name} × {line['quantity']}" for line in lines)
    logger.info(f"Add-on order for {customer.name} on {delivery_date}: {summary}")
    return delivery


def replace_delivery_items(delivery, items):
    """Replace every item of a delivery; ``items`` as in ``create_addon_order``"""
    lines = [item for item in items if to_decimal(item.get('quantity')) > 0]
    with transaction.atomic():
        delivery.items.all().delete()
        created = DeliveryItem.objects.bulk_create([
            build_item(delivery, line['product'], line['quantity'], line.get('unit_price'))
            for line in lines
        ])
    total = sum((item.total_amount for item in created), Decimal('0.00'))
    logger.info(f"Replaced items of delivery {delivery.id}: {len(created)} lines, total {total}")
    return created
