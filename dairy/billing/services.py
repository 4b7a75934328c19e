"""
Invoice generation, editing and payment collection.

Every invoice posts a debit to the customer ledger and every payment a
credit, through the helpers in ``dairy.customers.ledger``.
"""
import calendar
import logging
from datetime import date, timedelta

from django.db import transaction
from django.db.models import Count, Sum
from django.utils import timezone

from dairy.core.cache_signals import suspend_cache_signals, invalidate_billing_cache_manual
from dairy.core.exceptions import InvoiceLocked, ValidationFailed
from dairy.core.models import DairySetting
from dairy.core.utils import ZERO, CENT, quantize_money, to_decimal
from dairy.customers.ledger import (
    find_invoice_ledger_entry, log_advance_payment, log_invoice, log_payment,
    recalculate_ledger_balances, sync_customer_balance,
)
from dairy.customers.models import Customer
from dairy.deliveries.models import Delivery, DeliveryItem
from .models import Invoice, InvoiceItem, Payment
from .utils import derive_payment_status

logger = logging.getLogger(__name__)


def get_billing_period(year, month):
    """First and last day of a month"""
    if month < 1 or month > 12:
        raise ValidationFailed(f'Invalid month: {month}')
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


def get_due_date(period_end, dairy_settings=None):
    dairy_settings = dairy_settings or DairySetting.load()
    return period_end + timedelta(days=dairy_settings.invoice_due_days)


def generate_invoice_numbers(count, issue_date=None, prefix=None):
    """
    Next ``count`` invoice numbers as ``{prefix}-{YYYYMM}-{seq:04d}``.

    The sequence continues from the highest number already issued for
    the prefix and month, so deleted invoices never cause a reuse clash.
    """
    issue_date = issue_date or timezone.localdate()
    prefix = prefix or DairySetting.load().invoice_prefix
    base = f"{prefix}-{issue_date:%Y%m}-"

    highest = 0
    for number in Invoice.objects.filter(invoice_number__startswith=base).values_list('invoice_number', flat=True):
        suffix = number[len(base):]
        if suffix.isdigit():
            highest = max(highest, int(suffix))

    return [f"{base}{highest + i:04d}" for i in range(1, count + 1)]


def calculate_customer_invoice(customer, period_start, period_end):
    """
    Aggregate the customer's delivered items in the period by product.

    Returns None when nothing was delivered.
    """
    deliveries = Delivery.objects.filter(
        customer=customer,
        status='delivered',
        delivery_date__gte=period_start,
        delivery_date__lte=period_end,
    )
    delivery_count = deliveries.count()
    if not delivery_count:
        return None

    rows = (
        DeliveryItem.objects.filter(delivery__in=deliveries)
        .values('product_id', 'product__name', 'product__unit')
        .annotate(quantity=Sum('quantity'), amount=Sum('total_amount'), deliveries=Count('delivery', distinct=True))
        .order_by('product__name')
    )

    items = []
    total_amount = ZERO
    for row in rows:
        quantity = row['quantity'] or ZERO
        amount = quantize_money(row['amount'] or ZERO)
        unit_price = quantize_money(amount / quantity) if quantity else ZERO
        items.append({
            'product_id': row['product_id'],
            'product_name': row['product__name'],
            'unit': row['product__unit'],
            'quantity': quantity,
            'unit_price': unit_price,
            'amount': amount,
            'delivery_count': row['deliveries'],
        })
        total_amount += amount

    return {
        'customer_id': customer.id,
        'customer_name': customer.name,
        'total_amount': total_amount,
        'items': items,
        'delivery_count': delivery_count,
    }


def get_invoice_breakdown(invoice):
    """Line items of an invoice, from its stored items or from the period's deliveries"""
    stored = list(invoice.items.select_related('product'))
    if stored:
        return [
            {
                'product_id': item.product_id,
                'product_name': item.description,
                'quantity': item.quantity,
                'unit_price': item.rate,
                'tax_percentage': item.tax_percentage,
                'amount': item.amount,
            }
            for item in stored
        ]
    data = calculate_customer_invoice(invoice.customer, invoice.billing_period_start, invoice.billing_period_end)
    return data['items'] if data else []


def _period_has_invoice(customer, period_start, period_end, exclude=None):
    qs = Invoice.objects.filter(customer=customer, billing_period_start=period_start, billing_period_end=period_end)
    if exclude is not None:
        qs = qs.exclude(pk=exclude.pk)
    return qs.exists()


def _save_invoice(customer, invoice_number, period_start, period_end, total_amount, due_date,
                  upi_handle, tax_amount=ZERO, discount_amount=ZERO, notes='', user=None):
    """Create the invoice row and its ledger debit. Caller owns the transaction."""
    final_amount = max(total_amount + tax_amount - discount_amount, ZERO)
    invoice = Invoice.objects.create(
        invoice_number=invoice_number,
        customer=customer,
        billing_period_start=period_start,
        billing_period_end=period_end,
        total_amount=quantize_money(total_amount),
        tax_amount=quantize_money(tax_amount),
        discount_amount=quantize_money(discount_amount),
        final_amount=quantize_money(final_amount),
        payment_status='pending',
        due_date=due_date,
        upi_handle=upi_handle or '',
        notes=notes or '',
        created_by=user,
    )
    if invoice.final_amount > ZERO:
        log_invoice(invoice, created_by=user)
    return invoice


def _generate_invoices(customers, period_start, period_end, user=None):
    result = {'generated': 0, 'skipped': 0, 'total_amount': ZERO, 'errors': [], 'invoices': []}

    dairy_settings = DairySetting.load()
    due_date = get_due_date(period_end, dairy_settings)
    invoiced_ids = set(
        Invoice.objects.filter(billing_period_start=period_start, billing_period_end=period_end)
        .values_list('customer_id', flat=True)
    )

    to_invoice = []
    for customer in customers:
        if customer.id in invoiced_ids:
            result['skipped'] += 1
            continue
        data = calculate_customer_invoice(customer, period_start, period_end)
        if data is None or data['total_amount'] <= ZERO:
            result['skipped'] += 1
            continue
        to_invoice.append((customer, data))

    if not to_invoice:
        return result

    numbers = generate_invoice_numbers(len(to_invoice), prefix=dairy_settings.invoice_prefix)
    with suspend_cache_signals():
        for (customer, data), number in zip(to_invoice, numbers):
            try:
                with transaction.atomic():
                    invoice = _save_invoice(
                        customer, number, period_start, period_end, data['total_amount'], due_date,
                        dairy_settings.upi_handle, user=user,
                    )
            except Exception as e:
                logger.error(f"Failed to generate invoice for {customer.name}: {str(e)}")
                result['errors'].append(f"Failed to create invoice for {customer.name}: {str(e)}")
                continue
            result['generated'] += 1
            result['total_amount'] += invoice.final_amount
            result['invoices'].append({
                'id': invoice.id,
                'customer_name': customer.name,
                'amount': invoice.final_amount,
                'invoice_number': invoice.invoice_number,
            })

    invalidate_billing_cache_manual()
    logger.info(
        f"Invoices for {period_start} - {period_end}: generated={result['generated']}, "
        f"skipped={result['skipped']}, total={result['total_amount']}"
    )
    return result


def generate_monthly_invoices(year, month, user=None):
    """Invoice every active customer for the deliveries of a month"""
    period_start, period_end = get_billing_period(year, month)
    customers = Customer.objects.filter(is_active=True).order_by('name')
    return _generate_invoices(customers, period_start, period_end, user=user)


def bulk_generate_invoices(customer_ids, period_start, period_end, user=None):
    """Invoice chosen customers for a custom period"""
    if period_end < period_start:
        raise ValidationFailed('Billing period end cannot be before its start')
    customers = Customer.objects.filter(pk__in=customer_ids, is_active=True).order_by('name')
    return _generate_invoices(customers, period_start, period_end, user=user)


def get_billing_summaries(period_start, period_end, customer_ids=None):
    """Per-customer delivered totals for a period, for previewing bulk generation"""
    customers = Customer.objects.filter(is_active=True).order_by('name')
    if customer_ids:
        customers = customers.filter(pk__in=customer_ids)

    delivered = Delivery.objects.filter(
        status='delivered', delivery_date__gte=period_start, delivery_date__lte=period_end
    )
    totals = dict(
        DeliveryItem.objects.filter(delivery__in=delivered)
        .values_list('delivery__customer_id')
        .annotate(total=Sum('total_amount'))
    )
    counts = dict(
        delivered.order_by().values_list('customer_id').annotate(count=Count('id'))
    )
    invoiced_ids = set(
        Invoice.objects.filter(billing_period_start=period_start, billing_period_end=period_end)
        .values_list('customer_id', flat=True)
    )

    return [
        {
            'customer_id': customer.id,
            'customer_name': customer.name,
            'area': customer.area,
            'total_amount': quantize_money(totals.get(customer.id) or ZERO),
            'delivery_count': counts.get(customer.id, 0),
            'has_invoice': customer.id in invoiced_ids,
        }
        for customer in customers
    ]


def _price_line_items(line_items):
    """Normalise posted line items and compute their amounts"""
    priced = []
    for line in line_items:
        quantity = to_decimal(line.get('quantity'))
        rate = to_decimal(line.get('rate'))
        tax_percentage = to_decimal(line.get('tax_percentage'))
        if quantity < 0 or rate < 0 or tax_percentage < 0:
            raise ValidationFailed('Quantity, rate and tax cannot be negative')
        amount = quantize_money(quantity * rate)
        product = line.get('product')
        priced.append({
            'product': product,
            'description': line.get('description') or (product.name if product else 'Item'),
            'quantity': quantity,
            'rate': rate,
            'tax_percentage': tax_percentage,
            'amount': amount,
            'tax_amount': quantize_money(amount * tax_percentage / 100),
        })
    return priced


def _replace_invoice_items(invoice, priced):
    invoice.items.all().delete()
    InvoiceItem.objects.bulk_create([InvoiceItem(invoice=invoice, **line) for line in priced])


def create_invoice(customer, period_start, period_end, line_items, discount_amount=ZERO,
                   due_date=None, notes='', user=None):
    """
    Create an invoice from explicit line items.

    ``line_items`` is a list of ``{'product'?, 'description'?, 'quantity', 'rate', 'tax_percentage'?}``.
    """
    if period_end < period_start:
        raise ValidationFailed('Billing period end cannot be before its start')
    priced = _price_line_items(line_items)
    subtotal = sum((line['amount'] for line in priced), ZERO)
    tax_amount = sum((line['tax_amount'] for line in priced), ZERO)
    if not priced or subtotal <= ZERO:
        raise ValidationFailed('Cannot create an empty invoice')
    discount_amount = quantize_money(discount_amount)
    if discount_amount < ZERO:
        raise ValidationFailed('Discount cannot be negative')
    if _period_has_invoice(customer, period_start, period_end):
        raise ValidationFailed(
            f'{customer.name} already has an invoice for {period_start} - {period_end}',
            context={'customer_id': customer.id},
        )

    dairy_settings = DairySetting.load()
    due_date = due_date or get_due_date(period_end, dairy_settings)

    with transaction.atomic():
        number = generate_invoice_numbers(1, prefix=dairy_settings.invoice_prefix)[0]
        invoice = _save_invoice(
            customer, number, period_start, period_end, subtotal, due_date, dairy_settings.upi_handle,
            tax_amount=tax_amount, discount_amount=discount_amount, notes=notes, user=user,
        )
        _replace_invoice_items(invoice, priced)

    logger.info(f"Invoice {invoice.invoice_number} created for {customer.name}: {invoice.final_amount}")
    return invoice


def update_invoice(invoice, line_items=None, discount_amount=None, due_date=None, notes=None, user=None):
    """
    Edit an unpaid invoice.

    A change of the final amount moves the invoice's ledger debit and every
    running balance after it.
    """
    with transaction.atomic():
        invoice = Invoice.objects.select_for_update().select_related('customer').get(pk=invoice.pk)
        if invoice.payment_status == 'paid':
            raise InvoiceLocked(f'Invoice {invoice.invoice_number} is paid and cannot be edited')
        old_final = invoice.final_amount

        if line_items is not None:
            priced = _price_line_items(line_items)
            subtotal = sum((line['amount'] for line in priced), ZERO)
            if not priced or subtotal <= ZERO:
                raise ValidationFailed('Cannot save an empty invoice')
            invoice.total_amount = subtotal
            invoice.tax_amount = sum((line['tax_amount'] for line in priced), ZERO)
            _replace_invoice_items(invoice, priced)
        if discount_amount is not None:
            discount_amount = quantize_money(discount_amount)
            if discount_amount < ZERO:
                raise ValidationFailed('Discount cannot be negative')
            invoice.discount_amount = discount_amount
        if due_date is not None:
            invoice.due_date = due_date
        if notes is not None:
            invoice.notes = notes

        invoice.final_amount = quantize_money(max(invoice.total_amount + invoice.tax_amount - invoice.discount_amount, ZERO))
        if invoice.final_amount < invoice.paid_amount:
            raise ValidationFailed(
                f'Final amount {invoice.final_amount} is less than the {invoice.paid_amount} already paid'
            )
        invoice.payment_status = derive_payment_status(invoice.final_amount, invoice.paid_amount)
        if invoice.payment_status == 'paid' and invoice.payment_date is None:
            invoice.payment_date = timezone.localdate()
        invoice.save()

        if abs(invoice.final_amount - old_final) > CENT:
            entry = find_invoice_ledger_entry(invoice)
            if entry is not None:
                entry.debit_amount = invoice.final_amount
                entry.description = f"Invoice {invoice.invoice_number} updated"
                entry.save(update_fields=['debit_amount', 'description'])
                recalculate_ledger_balances(invoice.customer)
                sync_customer_balance(invoice.customer_id)
            elif invoice.final_amount > ZERO:
                log_invoice(invoice, created_by=user)
            logger.info(f"Invoice {invoice.invoice_number} amount changed {old_final} -> {invoice.final_amount}")

    return invoice


def delete_invoice(invoice):
    """Delete an invoice that has no payments, with its ledger debit"""
    customer = invoice.customer
    with transaction.atomic():
        invoice = Invoice.objects.select_for_update().get(pk=invoice.pk)
        Customer.objects.select_for_update().get(pk=customer.pk)
        if invoice.payments.exists():
            raise InvoiceLocked(f'Invoice {invoice.invoice_number} has payments and cannot be deleted')
        entry = find_invoice_ledger_entry(invoice)
        if entry is not None:
            entry.delete()
        number = invoice.invoice_number
        invoice.delete()
        recalculate_ledger_balances(customer)
        sync_customer_balance(customer.pk)

    logger.info(f"Invoice {number} deleted for {customer.name}")


def record_payment(invoice, amount, payment_mode, payment_date=None, reference_number='', notes='', user=None):
    """
    Record a payment against an invoice and post the ledger credit.

    Paying more than the outstanding amount is rejected; take the surplus as
    an advance payment instead.
    """
    amount = quantize_money(amount)
    if amount <= ZERO:
        raise ValidationFailed('Payment amount must be greater than zero')
    if payment_mode not in dict(Payment.PAYMENT_MODE_CHOICES):
        raise ValidationFailed(f'Unknown payment mode: {payment_mode}')
    payment_date = payment_date or timezone.localdate()

    with transaction.atomic():
        invoice = Invoice.objects.select_for_update().select_related('customer').get(pk=invoice.pk)
        outstanding = invoice.final_amount - invoice.paid_amount
        if amount > outstanding:
            raise ValidationFailed(
                f'Payment {amount} exceeds the outstanding {max(outstanding, ZERO)} on {invoice.invoice_number}',
                context={'outstanding': str(max(outstanding, ZERO))},
            )

        invoice.paid_amount = invoice.paid_amount + amount
        invoice.payment_status = derive_payment_status(invoice.final_amount, invoice.paid_amount)
        if invoice.payment_status == 'paid':
            invoice.payment_date = payment_date
        invoice.save(update_fields=['paid_amount', 'payment_status', 'payment_date', 'updated_at'])

        payment = Payment.objects.create(
            customer=invoice.customer,
            invoice=invoice,
            amount=amount,
            payment_date=payment_date,
            payment_mode=payment_mode,
            reference_number=reference_number or '',
            notes=notes or '',
            recorded_by=user,
        )
        log_payment(payment, created_by=user)

    logger.info(f"Payment {amount} ({payment_mode}) recorded for {invoice.invoice_number}, status {invoice.payment_status}")
    return payment


def record_advance_payment(customer, amount, payment_mode, payment_date=None, reference_number='', notes='', user=None):
    """Record money received without an invoice"""
    amount = quantize_money(amount)
    if amount <= ZERO:
        raise ValidationFailed('Payment amount must be greater than zero')
    if payment_mode not in dict(Payment.PAYMENT_MODE_CHOICES):
        raise ValidationFailed(f'Unknown payment mode: {payment_mode}')

    with transaction.atomic():
        payment = Payment.objects.create(
            customer=customer,
            invoice=None,
            amount=amount,
            payment_date=payment_date or timezone.localdate(),
            payment_mode=payment_mode,
            reference_number=reference_number or '',
            notes=notes or '',
            recorded_by=user,
        )
        log_advance_payment(payment, created_by=user)

    logger.info(f"Advance payment {amount} ({payment_mode}) recorded for {customer.name}")
    return payment


def mark_overdue_invoices(today=None):
    """Persist the overdue status on unpaid invoices past their due date"""
    today = today or timezone.localdate()
    updated = Invoice.objects.filter(
        payment_status__in=['pending', 'partial'], due_date__lt=today
    ).update(payment_status='overdue', updated_at=timezone.now())
    if updated:
        invalidate_billing_cache_manual()
    logger.info(f"Marked {updated} invoices overdue as of {today}")
    return updated
