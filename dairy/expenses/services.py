"""Expenses recorded automatically from other transactions"""
import logging

from django.db.models import Q

from dairy.core.utils import ZERO, quantize_money
from .models import Expense

logger = logging.getLogger(__name__)

AUTO_PREFIX = '[AUTO]'


def get_auto_reference(source_type, source_id):
    return f"{AUTO_PREFIX} {source_type}:{source_id}"


def find_auto_expense(source_type, source_id):
    reference = get_auto_reference(source_type, source_id)
    return Expense.objects.filter(Q(notes=reference) | Q(notes__startswith=f"{reference} | ")).first()


def create_auto_expense(source_type, source_id, category, title, amount, expense_date, notes='', user=None):
    """
    Record an expense for another transaction once.

    Notes start with ``[AUTO] {source_type}:{source_id}``; when an expense
    with that reference exists it is returned instead of a duplicate.
    Returns None for a non-positive amount.
    """
    amount = quantize_money(amount)
    if amount <= ZERO:
        return None

    existing = find_auto_expense(source_type, source_id)
    if existing is not None:
        logger.debug(f"Expense already exists for {source_type}:{source_id}")
        return existing

    reference = get_auto_reference(source_type, source_id)
    expense = Expense.objects.create(
        title=title,
        category=category,
        amount=amount,
        expense_date=expense_date,
        notes=f"{reference} | {notes}" if notes else reference,
        recorded_by=user,
    )
    logger.info(f"Automatic expense created: {title} ({amount})")
    return expense


def log_vendor_payment_expense(payment, user=None):
    """Feed expense for a lump-sum payment to a milk vendor"""
    notes = f"Payment via {payment.payment_mode}"
    if payment.reference_number:
        notes = f"{notes} (Ref: {payment.reference_number})"
    return create_auto_expense(
        source_type='vendor_payment',
        source_id=payment.pk,
        category='feed',
        title=f"Vendor Payment - {payment.vendor.name}",
        amount=payment.amount,
        expense_date=payment.payment_date,
        notes=notes,
        user=user,
    )
