"""Delivery and revenue summaries for the reports dashboard"""
from collections import OrderedDict
from datetime import timedelta

from django.db.models import Count, Sum
from django.db.models.functions import TruncMonth
from django.utils import timezone

from dairy.billing.models import Invoice, Payment
from dairy.core.exceptions import ValidationFailed
from dairy.core.utils import ZERO
from dairy.deliveries.models import Delivery, DeliveryItem

DEFAULT_SUMMARY_DAYS = 30


def resolve_date_range(date_from=None, date_to=None, today=None):
    """Explicit range, or the last 30 days ending today"""
    end = date_to or today or timezone.localdate()
    start = date_from or end - timedelta(days=DEFAULT_SUMMARY_DAYS)
    if end < start:
        raise ValidationFailed('date_to cannot be before date_from')
    return start, end


def build_delivery_summary(start, end):
    """Per-day delivery counts by status and litres delivered"""
    days = OrderedDict()
    day = start
    while day <= end:
        days[day] = {'date': day, 'pending': 0, 'delivered': 0, 'missed': 0, 'partial': 0,
                     'total': 0, 'quantity': ZERO, 'amount': ZERO}
        day += timedelta(days=1)

    status_rows = (
        Delivery.objects.filter(delivery_date__gte=start, delivery_date__lte=end)
        .order_by()
        .values('delivery_date', 'status')
        .annotate(count=Count('id'))
    )
    for row in status_rows:
        bucket = days[row['delivery_date']]
        bucket[row['status']] = row['count']
        bucket['total'] += row['count']

    item_rows = (
        DeliveryItem.objects.filter(
            delivery__status='delivered',
            delivery__delivery_date__gte=start,
            delivery__delivery_date__lte=end,
        )
        .order_by()
        .values('delivery__delivery_date')
        .annotate(quantity=Sum('quantity'), amount=Sum('total_amount'))
    )
    for row in item_rows:
        bucket = days[row['delivery__delivery_date']]
        bucket['quantity'] = row['quantity'] or ZERO
        bucket['amount'] = row['amount'] or ZERO

    daily = list(days.values())
    return {
        'start_date': start,
        'end_date': end,
        'daily': daily,
        'totals': {
            'deliveries': sum(d['total'] for d in daily),
            'delivered': sum(d['delivered'] for d in daily),
            'missed': sum(d['missed'] for d in daily),
            'quantity': sum((d['quantity'] for d in daily), ZERO),
            'amount': sum((d['amount'] for d in daily), ZERO),
        },
    }


def build_revenue_summary(start, end):
    """Amount billed against amount collected, by month"""
    billed = (
        Invoice.objects.filter(created_at__date__gte=start, created_at__date__lte=end)
        .annotate(month=TruncMonth('created_at'))
        .order_by()
        .values('month')
        .annotate(amount=Sum('final_amount'), count=Count('id'))
    )
    collected = (
        Payment.objects.filter(payment_date__gte=start, payment_date__lte=end)
        .annotate(month=TruncMonth('payment_date'))
        .order_by()
        .values('month')
        .annotate(amount=Sum('amount'), count=Count('id'))
    )

    months = {}
    for row in billed:
        key = row['month'].strftime('%Y-%m')
        months.setdefault(key, {'month': key, 'billed': ZERO, 'collected': ZERO, 'invoices': 0, 'payments': 0})
        months[key]['billed'] = row['amount'] or ZERO
        months[key]['invoices'] = row['count']
    for row in collected:
        key = row['month'].strftime('%Y-%m')
        months.setdefault(key, {'month': key, 'billed': ZERO, 'collected': ZERO, 'invoices': 0, 'payments': 0})
        months[key]['collected'] = row['amount'] or ZERO
        months[key]['payments'] = row['count']

    rows = [months[key] for key in sorted(months)]
    total_billed = sum((r['billed'] for r in rows), ZERO)
    total_collected = sum((r['collected'] for r in rows), ZERO)
    return {
        'start_date': start,
        'end_date': end,
        'months': rows,
        'total_billed': total_billed,
        'total_collected': total_collected,
        'collection_rate': round(float(total_collected / total_billed * 100), 1) if total_billed else 0.0,
    }
