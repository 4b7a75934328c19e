"""
Read-only financial health checks and the matching repair.

Each check returns ``{'status': 'pass' | 'fail', 'label', 'detail', ...}``.
"""
import logging

from django.db import transaction
from django.db.models import Sum

from dairy.billing.models import Invoice
from dairy.core.utils import ZERO, quantize_money
from dairy.customers.ledger import recalculate_all_balances, sync_invoices_to_ledger
from dairy.customers.models import Customer, LedgerEntry

logger = logging.getLogger(__name__)

MAX_REPORTED_ITEMS = 50


def check_balance_sync():
    """Stored credit_balance of active customers against their ledger totals"""
    label = 'Ledger / Balance Sync'
    customers = list(Customer.objects.filter(is_active=True).values('id', 'name', 'credit_balance'))
    if not customers:
        return {'status': 'pass', 'label': label, 'detail': 'No active customers to check.'}

    totals = {
        row['customer_id']: (row['debit'] or ZERO) - (row['credit'] or ZERO)
        for row in LedgerEntry.objects.order_by().values('customer_id').annotate(
            debit=Sum('debit_amount'), credit=Sum('credit_amount')
        )
    }

    mismatches = []
    for customer in customers:
        expected = quantize_money(totals.get(customer['id'], ZERO))
        actual = quantize_money(customer['credit_balance'])
        if expected != actual:
            mismatches.append({
                'customer_id': customer['id'],
                'name': customer['name'],
                'expected': expected,
                'actual': actual,
            })

    if not mismatches:
        return {'status': 'pass', 'label': label, 'detail': f'All {len(customers)} active customers in sync.'}
    return {
        'status': 'fail',
        'label': label,
        'detail': f'{len(mismatches)} customer(s) have mismatched balances.',
        'count': len(mismatches),
        'mismatches': mismatches[:MAX_REPORTED_ITEMS],
    }


def _invoice_ledger_refs():
    return set(
        LedgerEntry.objects.filter(transaction_type='invoice', reference_id__isnull=False)
        .values_list('reference_id', flat=True)
    )


def check_invoices_without_ledger():
    """Invoices that never got their ledger debit"""
    label = 'Orphaned Invoices'
    invoices = list(
        Invoice.objects.filter(final_amount__gt=ZERO)
        .values('id', 'invoice_number', 'customer__name', 'final_amount')
        .order_by('id')
    )
    if not invoices:
        return {'status': 'pass', 'label': label, 'detail': 'No invoices in the system.'}

    refs = _invoice_ledger_refs()
    orphaned = [inv for inv in invoices if inv['id'] not in refs]
    if not orphaned:
        return {'status': 'pass', 'label': label, 'detail': f'All {len(invoices)} invoices have ledger entries.'}
    return {
        'status': 'fail',
        'label': label,
        'detail': f'{len(orphaned)} invoice(s) have no corresponding ledger debit entry.',
        'count': len(orphaned),
        'items': [
            {'invoice_id': inv['id'], 'invoice_number': inv['invoice_number'],
             'customer_name': inv['customer__name'], 'final_amount': inv['final_amount']}
            for inv in orphaned[:MAX_REPORTED_ITEMS]
        ],
    }


def check_ledger_without_invoice():
    """Invoice debits whose invoice has been deleted"""
    label = 'Orphaned Ledger Entries'
    entries = list(
        LedgerEntry.objects.filter(transaction_type='invoice', reference_id__isnull=False)
        .values('id', 'reference_id', 'customer__name', 'debit_amount', 'description')
        .order_by('id')
    )
    if not entries:
        return {'status': 'pass', 'label': label, 'detail': 'No invoice ledger entries to check.'}

    invoice_ids = set(Invoice.objects.values_list('id', flat=True))
    orphaned = [entry for entry in entries if entry['reference_id'] not in invoice_ids]
    if not orphaned:
        return {'status': 'pass', 'label': label,
                'detail': f'All {len(entries)} invoice ledger entries have matching invoices.'}
    return {
        'status': 'fail',
        'label': label,
        'detail': f'{len(orphaned)} ledger debit(s) reference invoices that no longer exist.',
        'count': len(orphaned),
        'items': [
            {'entry_id': entry['id'], 'reference_id': entry['reference_id'],
             'customer_name': entry['customer__name'], 'debit_amount': entry['debit_amount'],
             'description': entry['description']}
            for entry in orphaned[:MAX_REPORTED_ITEMS]
        ],
    }


def run_integrity_checks():
    results = [check_balance_sync(), check_invoices_without_ledger(), check_ledger_without_invoice()]
    failed = [r['label'] for r in results if r['status'] == 'fail']
    if failed:
        logger.warning(f"Financial integrity checks failed: {', '.join(failed)}")
    return {
        'status': 'fail' if failed else 'pass',
        'checks': results,
    }


def repair_financial_integrity(user=None):
    """Post missing invoice debits, then recalculate every balance"""
    with transaction.atomic():
        sync_result = sync_invoices_to_ledger(created_by=user)
        customers = recalculate_all_balances()
    logger.info(f"Integrity repair: {sync_result['created']} invoice debits posted, {customers} customers recalculated")
    return {
        'invoices_synced': sync_result['created'],
        'errors': sync_result['errors'],
        'customers_recalculated': customers,
    }
