"""
Retention-based archival and factory reset.

Rows older than a cutoff date are removed from a fixed list of tables.
``retention_years=0`` is a factory reset: the cutoff is tomorrow so every
row goes, including the customer ledger and unpaid invoices.
"""
import logging
from datetime import timedelta

from django.apps import apps
from django.conf import settings
from django.db import transaction
from django.utils import timezone

from .cache_signals import suspend_cache_signals, invalidate_all_report_caches
from .exceptions import InvalidPin, PermissionDenied, ValidationFailed
from .models import PIN_PATTERN
from .permissions import is_super_admin
from .utils import create_audit_log

logger = logging.getLogger(__name__)

# Deletion order matters: children before parents
ARCHIVE_TABLES = [
    {
        'key': 'delivery_items',
        'model': 'deliveries.DeliveryItem',
        'lookup': 'delivery__delivery_date__lt',
    },
    {
        'key': 'deliveries',
        'model': 'deliveries.Delivery',
        'lookup': 'delivery_date__lt',
    },
    {
        'key': 'payments',
        'model': 'billing.Payment',
        'lookup': 'payment_date__lt',
    },
    {
        'key': 'invoices',
        'model': 'billing.Invoice',
        'lookup': 'created_at__date__lt',
        'retention_filter': {'payment_status': 'paid'},
        # Kept ledger debits lose their link to the deleted invoice
        'detach_ledger': True,
    },
    {
        'key': 'vendor_payments',
        'model': 'procurement.VendorPayment',
        'lookup': 'payment_date__lt',
    },
    {
        'key': 'milk_procurement',
        'model': 'procurement.MilkProcurement',
        'lookup': 'procurement_date__lt',
    },
    {
        'key': 'expenses',
        'model': 'expenses.Expense',
        'lookup': 'expense_date__lt',
    },
    {
        'key': 'customer_ledger',
        'model': 'customers.LedgerEntry',
        'lookup': 'transaction_date__lt',
        'factory_reset_only': True,
    },
    {
        'key': 'audit_logs',
        'model': 'core.AuditLog',
        'lookup': 'created_at__date__lt',
    },
]


def get_cutoff_date(retention_years, today=None):
    """Return the first date that is kept"""
    if retention_years not in settings.ARCHIVE_RETENTION_CHOICES:
        raise ValidationFailed(
            'Invalid retention period',
            context={'allowed': list(settings.ARCHIVE_RETENTION_CHOICES)},
        )
    today = today or timezone.localdate()
    if retention_years == 0:
        return today + timedelta(days=1)
    try:
        return today.replace(year=today.year - retention_years)
    except ValueError:
        # 29 February in a non-leap target year
        return today.replace(year=today.year - retention_years, day=28)


def _archive_tables(cutoff_date, factory_reset):
    for table in ARCHIVE_TABLES:
        if table.get('factory_reset_only') and not factory_reset:
            continue
        model = apps.get_model(table['model'])
        queryset = model.objects.filter(**{table['lookup']: cutoff_date})
        if not factory_reset and table.get('retention_filter'):
            queryset = queryset.filter(**table['retention_filter'])
        yield table, queryset


def get_archive_querysets(cutoff_date, factory_reset=False):
    """Yield (key, queryset) pairs in deletion order"""
    for table, queryset in _archive_tables(cutoff_date, factory_reset):
        yield table['key'], queryset


def detach_invoice_ledger_entries(invoice_ids):
    """Clear the invoice reference on ledger debits whose invoice is being archived"""
    LedgerEntry = apps.get_model('customers.LedgerEntry')
    return LedgerEntry.objects.filter(
        transaction_type='invoice', reference_id__in=list(invoice_ids)
    ).update(reference_id=None)


def preview_archive(retention_years, today=None):
    cutoff_date = get_cutoff_date(retention_years, today)
    factory_reset = retention_years == 0
    counts = {key: qs.count() for key, qs in get_archive_querysets(cutoff_date, factory_reset)}
    return {
        'mode': 'preview',
        'cutoff_date': cutoff_date,
        'is_factory_reset': factory_reset,
        'counts': counts,
        'total': sum(counts.values()),
    }


def export_archive(retention_years, today=None, limit=None):
    """Rows that an archive run would delete, capped per table"""
    limit = limit or settings.ARCHIVE_EXPORT_ROW_LIMIT
    cutoff_date = get_cutoff_date(retention_years, today)
    factory_reset = retention_years == 0
    data = {}
    counts = {}
    for key, queryset in get_archive_querysets(cutoff_date, factory_reset):
        rows = list(queryset.order_by('pk').values()[:limit])
        data[key] = rows
        counts[key] = len(rows)
    return {
        'mode': 'export',
        'cutoff_date': cutoff_date,
        'is_factory_reset': factory_reset,
        'row_limit': limit,
        'counts': counts,
        'data': data,
    }


def verify_pin(user, pin):
    if not pin or not PIN_PATTERN.match(str(pin)):
        raise InvalidPin('Please enter your 6-digit PIN')
    if not user.has_pin:
        raise InvalidPin('Set a confirmation PIN before running an archive')
    if not user.check_pin(pin):
        raise InvalidPin('Incorrect PIN')


def execute_archive(retention_years, user, pin, request=None, today=None):
    """
    Delete archived rows after PIN confirmation.

    All deletes run in one transaction; afterwards customer and vendor
    balances are recomputed from what remains.
    """
    if not is_super_admin(user):
        raise PermissionDenied('Only super admins can archive data')
    verify_pin(user, pin)

    from dairy.customers.ledger import recalculate_all_balances
    from dairy.customers.signals import bulk_ledger_changes
    from dairy.procurement.services import recalculate_all_vendor_balances
    from dairy.procurement.signals import bulk_vendor_changes

    cutoff_date = get_cutoff_date(retention_years, today)
    factory_reset = retention_years == 0
    deleted = {}
    errors = []
    detached = 0

    with transaction.atomic():
        with suspend_cache_signals(), bulk_ledger_changes(), bulk_vendor_changes():
            for table, queryset in _archive_tables(cutoff_date, factory_reset):
                key = table['key']
                try:
                    with transaction.atomic():
                        detached_here = 0
                        if table.get('detach_ledger') and not factory_reset:
                            detached_here = detach_invoice_ledger_entries(queryset.values_list('id', flat=True))
                        count = queryset.count()
                        queryset.delete()
                    deleted[key] = count
                    detached += detached_here
                    logger.info(f"Archive deleted {count} rows from {key} (cutoff {cutoff_date})")
                except Exception as e:
                    logger.error(f"Archive failed for {key}: {str(e)}")
                    deleted[key] = 0
                    errors.append(f"{key}: {str(e)}")

        recalculate_all_balances()
        recalculate_all_vendor_balances()

    invalidate_all_report_caches()

    total_deleted = sum(deleted.values())
    action = 'factory_reset' if factory_reset else 'data_archived'
    create_audit_log(
        request=request,
        user=user,
        action=action,
        model_name='Archive',
        object_id=str(cutoff_date),
        object_name='Factory reset' if factory_reset else f'Archive older than {retention_years} year(s)',
        object_reference=str(cutoff_date),
        changes={
            'retention_years': retention_years,
            'deleted': deleted,
            'total_deleted': total_deleted,
            'errors': errors,
            'detached_ledger_entries': detached,
        },
    )
    logger.info(f"{action}: deleted {total_deleted} rows with cutoff {cutoff_date}")

    return {
        'mode': 'execute',
        'cutoff_date': cutoff_date,
        'is_factory_reset': factory_reset,
        'deleted': deleted,
        'errors': errors,
        'total_deleted': total_deleted,
        'detached_ledger_entries': detached,
    }


def run_archive(mode, retention_years, user, pin=None, request=None, today=None):
    """Dispatch an archive request by mode"""
    if not is_super_admin(user):
        raise PermissionDenied('Only super admins can archive data')
    if mode == 'preview':
        return preview_archive(retention_years, today)
    if mode == 'export':
        return export_archive(retention_years, today)
    if mode == 'execute':
        return execute_archive(retention_years, user, pin, request=request, today=today)
    raise ValidationFailed(f'Unknown archive mode: {mode}')
