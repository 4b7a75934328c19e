"""
Customer ledger operations.

Every ledger write goes through ``insert_ledger_with_balance`` which locks
the customer row so concurrent writers see each other's running balance.
``credit_balance`` on the customer is the amount owed: sum of debits minus
sum of credits. It is kept in sync by the signal receivers in
``dairy.customers.signals``.
"""
import logging
from datetime import date, datetime

from django.db import transaction
from django.db.models import Sum, Q
from django.utils import timezone

from dairy.core.exceptions import ValidationFailed
from dairy.core.utils import ZERO, quantize_money
from .models import Customer, LedgerEntry

logger = logging.getLogger(__name__)

CHRONOLOGICAL_ORDER = ('transaction_date', 'created_at', 'id')
LATEST_FIRST_ORDER = ('-transaction_date', '-created_at', '-id')


def _as_date(value):
    if value is None:
        return timezone.localdate()
    if isinstance(value, str):
        return date.fromisoformat(value)
    if isinstance(value, datetime):
        return timezone.localtime(value).date() if timezone.is_aware(value) else value.date()
    return value


def insert_ledger_with_balance(customer, transaction_date, transaction_type, description='',
                               debit_amount=ZERO, credit_amount=ZERO, reference_id=None,
                               created_by=None):
    """
    Atomically insert a ledger entry and return it.

    new running balance = previous running balance + debit - credit, where
    the previous entry is the latest by (transaction_date, created_at, id).
    A backdated entry shifts every later balance, so the whole ledger is
    recalculated in that case.
    """
    debit = quantize_money(debit_amount)
    credit = quantize_money(credit_amount)
    if debit < 0 or credit < 0:
        raise ValidationFailed('Ledger amounts cannot be negative')
    if debit == ZERO and credit == ZERO:
        raise ValidationFailed('Ledger entry needs a debit or a credit amount')
    if transaction_type not in dict(LedgerEntry.TRANSACTION_TYPE_CHOICES):
        raise ValidationFailed(f'Unknown ledger transaction type: {transaction_type}')

    transaction_date = _as_date(transaction_date)

    with transaction.atomic():
        # Row lock serializes writers per customer, including the very first entry
        locked_customer = Customer.objects.select_for_update().get(pk=customer.pk)

        previous = (
            LedgerEntry.objects.filter(customer=locked_customer)
            .order_by(*LATEST_FIRST_ORDER)
            .first()
        )
        previous_balance = previous.running_balance if previous else ZERO
        new_balance = previous_balance + debit - credit

        entry = LedgerEntry.objects.create(
            customer=locked_customer,
            transaction_date=transaction_date,
            transaction_type=transaction_type,
            description=description,
            debit_amount=debit,
            credit_amount=credit,
            running_balance=new_balance,
            reference_id=reference_id,
            created_by=created_by,
        )

        if previous is not None and transaction_date < previous.transaction_date:
            recalculate_ledger_balances(locked_customer)
            entry.refresh_from_db(fields=['running_balance'])

    logger.info(
        f"Ledger {transaction_type} for customer {locked_customer.id}: "
        f"Dr {debit} Cr {credit} -> balance {entry.running_balance}"
    )
    return entry


def recalculate_ledger_balances(customer):
    """Recompute every running balance in chronological order. Returns the final balance."""
    running = ZERO
    changed = []
    for entry in LedgerEntry.objects.filter(customer=customer).order_by(*CHRONOLOGICAL_ORDER):
        running = running + entry.debit_amount - entry.credit_amount
        if entry.running_balance != running:
            entry.running_balance = running
            changed.append(entry)
    if changed:
        LedgerEntry.objects.bulk_update(changed, ['running_balance'])
        logger.info(f"Recalculated {len(changed)} running balances for customer {customer.pk}")
    return running


def calculate_balance(customer):
    """Totals straight from the ledger"""
    totals = LedgerEntry.objects.filter(customer=customer).aggregate(
        total_debit=Sum('debit_amount'),
        total_credit=Sum('credit_amount'),
    )
    total_debit = totals['total_debit'] or ZERO
    total_credit = totals['total_credit'] or ZERO
    return {
        'total_debit': total_debit,
        'total_credit': total_credit,
        'balance': total_debit - total_credit,
    }


def sync_customer_balance(customer_id):
    """Store ledger totals on the customer row; returns the balance"""
    balance = calculate_balance(customer_id)['balance']
    try:
        customer = Customer.objects.get(pk=customer_id)
    except Customer.DoesNotExist:
        # Customer deleted together with its ledger
        return balance
    advance = -balance if balance < ZERO else ZERO
    if customer.credit_balance != balance or customer.advance_balance != advance:
        customer.credit_balance = balance
        customer.advance_balance = advance
        customer.save(update_fields=['credit_balance', 'advance_balance', 'updated_at'])
    return balance


def recalculate_all_balances():
    """Recompute running balances and cached balances for every customer"""
    count = 0
    customer_ids = Customer.objects.filter(
        Q(ledger_entries__isnull=False) | ~Q(credit_balance=ZERO) | ~Q(advance_balance=ZERO)
    ).values_list('id', flat=True).distinct()
    for customer_id in customer_ids:
        with transaction.atomic():
            customer = Customer.objects.select_for_update().get(pk=customer_id)
            recalculate_ledger_balances(customer)
            sync_customer_balance(customer.pk)
        count += 1
    logger.info(f"Recalculated ledger balances for {count} customers")
    return count


# ==================== TYPED HELPERS ====================

def find_invoice_ledger_entry(invoice):
    """The debit entry posted for an invoice, matched by reference then by number"""
    entries = LedgerEntry.objects.filter(customer_id=invoice.customer_id, transaction_type='invoice')
    entry = entries.filter(reference_id=invoice.pk).first()
    if entry is None:
        entry = entries.filter(
            reference_id__isnull=True, description__startswith=f"Invoice {invoice.invoice_number} "
        ).first()
    return entry


def log_invoice(invoice, created_by=None, transaction_date=None):
    return insert_ledger_with_balance(
        customer=invoice.customer,
        transaction_date=transaction_date or timezone.localdate(),
        transaction_type='invoice',
        description=f"Invoice {invoice.invoice_number} generated",
        debit_amount=invoice.final_amount,
        reference_id=invoice.pk,
        created_by=created_by,
    )


def log_payment(payment, created_by=None):
    description = f"Payment received ({payment.payment_mode})"
    if payment.invoice_id:
        description = f"{description} - {payment.invoice.invoice_number}"
    return insert_ledger_with_balance(
        customer=payment.customer,
        transaction_date=payment.payment_date,
        transaction_type='payment',
        description=description,
        credit_amount=payment.amount,
        reference_id=payment.pk,
        created_by=created_by,
    )


def log_advance_payment(payment, created_by=None):
    description = f"Advance payment received ({payment.payment_mode})"
    if payment.notes:
        description = f"{description} - {payment.notes}"
    return insert_ledger_with_balance(
        customer=payment.customer,
        transaction_date=payment.payment_date,
        transaction_type='advance',
        description=description,
        credit_amount=payment.amount,
        reference_id=payment.pk,
        created_by=created_by,
    )


def sync_invoices_to_ledger(customer=None, created_by=None):
    """Post the missing debit for every invoice that has no ledger entry"""
    from dairy.billing.models import Invoice

    invoices = Invoice.objects.select_related('customer')
    if customer is not None:
        invoices = invoices.filter(customer=customer)

    created = 0
    errors = []
    for invoice in invoices.order_by('created_at', 'id'):
        if find_invoice_ledger_entry(invoice) is not None:
            continue
        if invoice.final_amount <= ZERO:
            continue
        try:
            log_invoice(invoice, created_by=created_by, transaction_date=invoice.created_at)
            created += 1
        except Exception as e:
            logger.error(f"Failed to sync invoice {invoice.invoice_number} to ledger: {str(e)}")
            errors.append(f"{invoice.invoice_number}: {str(e)}")

    if created:
        logger.info(f"Synced {created} invoices to the ledger")
    return {'created': created, 'errors': errors}
