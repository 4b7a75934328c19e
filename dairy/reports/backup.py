"""
JSON backup export.

``build_backup(period)`` returns ``{'metadata': {...}, 'data': {table: rows}}``.
Dated tables are limited to the period; master data is always exported whole.
"""
import logging
from datetime import timedelta

from django.apps import apps
from django.utils import timezone

from dairy.core.exceptions import ValidationFailed

logger = logging.getLogger(__name__)

BACKUP_VERSION = '1.0.0'
BACKUP_PERIODS = ('weekly', 'monthly', 'all')

# (table, model, date field or None)
BACKUP_TABLES = [
    ('products', 'catalog.Product', None),
    ('customers', 'customers.Customer', None),
    ('customer_products', 'customers.CustomerSubscription', None),
    ('customer_vacations', 'customers.CustomerVacation', None),
    ('deliveries', 'deliveries.Delivery', 'delivery_date'),
    ('delivery_items', 'deliveries.DeliveryItem', 'delivery__delivery_date'),
    ('invoices', 'billing.Invoice', 'created_at__date'),
    ('payments', 'billing.Payment', 'payment_date'),
    ('customer_ledger', 'customers.LedgerEntry', 'transaction_date'),
    ('milk_vendors', 'procurement.MilkVendor', None),
    ('milk_procurement', 'procurement.MilkProcurement', 'procurement_date'),
    ('vendor_payments', 'procurement.VendorPayment', 'payment_date'),
    ('expenses', 'expenses.Expense', 'expense_date'),
]


def get_backup_date_range(period, today=None):
    """Monday to Sunday of this week, this calendar month, or None for everything"""
    if period not in BACKUP_PERIODS:
        raise ValidationFailed(f"Unknown backup period '{period}'. Use one of: {', '.join(BACKUP_PERIODS)}")
    today = today or timezone.localdate()
    if period == 'weekly':
        start = today - timedelta(days=today.weekday())
        return start, start + timedelta(days=6)
    if period == 'monthly':
        start = today.replace(day=1)
        next_month = (start + timedelta(days=32)).replace(day=1)
        return start, next_month - timedelta(days=1)
    return None


def build_backup(period='monthly', today=None):
    date_range = get_backup_date_range(period, today)

    data = {}
    record_counts = {}
    for table, model_label, date_field in BACKUP_TABLES:
        queryset = apps.get_model(model_label).objects.order_by('pk')
        if date_range and date_field:
            start, end = date_range
            queryset = queryset.filter(**{f'{date_field}__gte': start, f'{date_field}__lte': end})
        rows = list(queryset.values())
        data[table] = rows
        record_counts[table] = len(rows)

    metadata = {
        'version': BACKUP_VERSION,
        'exported_at': timezone.now().isoformat(),
        'period': period,
        'date_range': {'start': date_range[0], 'end': date_range[1]} if date_range else None,
        'tables': [table for table, _, _ in BACKUP_TABLES],
        'record_counts': record_counts,
    }
    logger.info(f"Backup built for period {period}: {sum(record_counts.values())} records")
    return {'metadata': metadata, 'data': data}
