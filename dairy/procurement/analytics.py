"""
Procurement analytics: daily collection trends, milk quality and vendor stats.

Averages are arithmetic means over the records that carry the value, so a
record without a fat reading does not drag the average fat down.
"""
from collections import OrderedDict
from datetime import timedelta

from django.utils import timezone

from dairy.core.exceptions import ValidationFailed
from dairy.core.utils import ZERO, CENT, to_decimal

DATE_RANGE_PRESETS = ('7d', '30d', '90d', 'month')
DEFAULT_PRESET = '30d'


def get_date_range(preset=DEFAULT_PRESET, today=None):
    """(start, end) for a preset; end is today"""
    end = today or timezone.localdate()
    preset = preset or DEFAULT_PRESET
    if preset not in DATE_RANGE_PRESETS:
        raise ValidationFailed(f"Unknown date range '{preset}'. Use one of: {', '.join(DATE_RANGE_PRESETS)}")
    if preset == 'month':
        return end.replace(day=1), end
    return end - timedelta(days=int(preset[:-1])), end


def _mean(values):
    values = [v for v in values if v is not None]
    if not values:
        return ZERO
    return (sum(values, ZERO) / len(values)).quantize(CENT)


def build_procurement_analytics(records, start, end):
    """
    ``records`` is an iterable of MilkProcurement rows within [start, end].

    Returns ``{'daily_trends', 'quality_trends', 'vendor_stats', 'summary'}``.
    """
    records = list(records)

    daily = OrderedDict()
    day = start
    while day <= end:
        daily[day] = {'morning': ZERO, 'evening': ZERO, 'total': ZERO, 'amount': ZERO, 'fat': [], 'snf': []}
        day += timedelta(days=1)

    vendors = {}
    for record in records:
        quantity = to_decimal(record.quantity_liters)
        amount = to_decimal(record.total_amount)
        fat = record.fat_percentage if record.fat_percentage else None
        snf = record.snf_percentage if record.snf_percentage else None

        bucket = daily.get(record.procurement_date)
        if bucket is not None:
            bucket['morning' if record.session == 'morning' else 'evening'] += quantity
            bucket['total'] += quantity
            bucket['amount'] += amount
            bucket['fat'].append(fat)
            bucket['snf'].append(snf)

        name = record.vendor_name or (record.vendor.name if record.vendor_id else 'Unknown')
        stats = vendors.setdefault(name, {'quantity': ZERO, 'amount': ZERO, 'fat': [], 'snf': [], 'rate': [], 'count': 0})
        stats['quantity'] += quantity
        stats['amount'] += amount
        stats['fat'].append(fat)
        stats['snf'].append(snf)
        stats['rate'].append(record.rate_per_liter if record.rate_per_liter else None)
        stats['count'] += 1

    daily_trends = [
        {
            'date': day,
            'morning': bucket['morning'],
            'evening': bucket['evening'],
            'total': bucket['total'],
            'avg_fat': _mean(bucket['fat']),
            'avg_snf': _mean(bucket['snf']),
            'amount': bucket['amount'],
        }
        for day, bucket in daily.items()
    ]
    quality_trends = [
        {'date': trend['date'], 'avg_fat': trend['avg_fat'], 'avg_snf': trend['avg_snf']}
        for trend in daily_trends
        if trend['avg_fat'] > ZERO or trend['avg_snf'] > ZERO
    ]

    vendor_stats = sorted(
        [
            {
                'name': name,
                'total_quantity': stats['quantity'],
                'total_amount': stats['amount'],
                'avg_fat': _mean(stats['fat']),
                'avg_snf': _mean(stats['snf']),
                'avg_rate': _mean(stats['rate']),
                'record_count': stats['count'],
            }
            for name, stats in vendors.items()
        ],
        key=lambda v: v['total_quantity'],
        reverse=True,
    )

    summary = {
        'total_quantity': sum((to_decimal(r.quantity_liters) for r in records), ZERO),
        'total_amount': sum((to_decimal(r.total_amount) for r in records), ZERO),
        'avg_fat': _mean([r.fat_percentage for r in records if r.fat_percentage]),
        'avg_snf': _mean([r.snf_percentage for r in records if r.snf_percentage]),
        'avg_rate': _mean([r.rate_per_liter for r in records if r.rate_per_liter]),
        'unique_vendors': len(vendors),
        'record_count': len(records),
    }

    return {
        'start_date': start,
        'end_date': end,
        'daily_trends': daily_trends,
        'quality_trends': quality_trends,
        'vendor_stats': vendor_stats,
        'summary': summary,
    }
