"""Invoice status and balance helpers"""
from django.utils import timezone

from dairy.core.utils import ZERO


def get_effective_payment_status(invoice, today=None):
    """
    Status shown to users.

    A paid invoice stays paid; an unpaid one past its due date is overdue
    even if the stored status has not been updated yet.
    """
    if invoice.payment_status == 'paid':
        return 'paid'
    today = today or timezone.localdate()
    if invoice.due_date and invoice.due_date < today:
        return 'overdue'
    return invoice.payment_status


def get_invoice_balance(invoice):
    return max(invoice.final_amount - invoice.paid_amount, ZERO)


def is_invoice_overdue(invoice, today=None):
    return get_effective_payment_status(invoice, today) == 'overdue'


def derive_payment_status(final_amount, paid_amount):
    """Stored status from amounts alone"""
    if paid_amount > ZERO and final_amount - paid_amount <= ZERO:
        return 'paid'
    if paid_amount > ZERO:
        return 'partial'
    return 'pending'


def calculate_outstanding_balance(invoices):
    return sum((get_invoice_balance(inv) for inv in invoices if inv.payment_status != 'paid'), ZERO)


def calculate_overdue_balance(invoices, today=None):
    today = today or timezone.localdate()
    return sum((get_invoice_balance(inv) for inv in invoices if is_invoice_overdue(inv, today)), ZERO)


def get_billing_stats(invoices, today=None):
    """Totals for the billing dashboard"""
    today = today or timezone.localdate()
    invoices = list(invoices)
    total_billed = sum((inv.final_amount for inv in invoices), ZERO)
    total_collected = sum((inv.paid_amount for inv in invoices), ZERO)
    overdue = [inv for inv in invoices if is_invoice_overdue(inv, today)]
    return {
        'invoice_count': len(invoices),
        'total_billed': total_billed,
        'total_collected': total_collected,
        'total_pending': calculate_outstanding_balance(invoices),
        'total_overdue': sum((get_invoice_balance(inv) for inv in overdue), ZERO),
        'overdue_count': len(overdue),
        'paid_count': sum(1 for inv in invoices if inv.payment_status == 'paid'),
    }
