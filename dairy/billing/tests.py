"""
Tests for invoicing and payments
"""
from datetime import date, timedelta
from decimal import Decimal

from django.core.cache import cache
from django.core.management import call_command
from django.test import TestCase
from django.utils import timezone

from dairy.billing.models import Invoice, Payment
from dairy.billing.services import (
    bulk_generate_invoices, create_invoice, delete_invoice, generate_invoice_numbers,
    generate_monthly_invoices, get_billing_period, get_billing_summaries, mark_overdue_invoices,
    record_advance_payment, record_payment, update_invoice,
)
from dairy.billing.utils import derive_payment_status, get_effective_payment_status
from dairy.core.exceptions import InvoiceLocked, ValidationFailed
from dairy.core.models import DairySetting
from dairy.core.permissions import ACCOUNTANT, DELIVERY_STAFF
from dairy.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from dairy.customers.ledger import find_invoice_ledger_entry, insert_ledger_with_balance
from dairy.customers.models import LedgerEntry


class InvoiceNumberTests(TestCase):
    """Test invoice numbering"""

    def test_first_numbers_of_month(self):
        """Numbers start at 0001 for a month"""
        numbers = generate_invoice_numbers(2, issue_date=date(2026, 3, 10), prefix='INV')
        self.assertEqual(numbers, ['INV-202603-0001', 'INV-202603-0002'])

    def test_continues_from_highest(self):
        """The sequence continues after the highest issued number"""
        customer = TestDataFactory.create_customer()
        TestDataFactory.create_invoice(customer, invoice_number='INV-202603-0007')
        TestDataFactory.create_invoice(customer, invoice_number='INV-202603-0002')
        TestDataFactory.create_invoice(customer, invoice_number='INV-202602-0040')
        numbers = generate_invoice_numbers(1, issue_date=date(2026, 3, 28), prefix='INV')
        self.assertEqual(numbers, ['INV-202603-0008'])

    def test_prefix_from_settings(self):
        """The dairy setting supplies the default prefix"""
        setting = DairySetting.load()
        setting.invoice_prefix = 'MILK'
        setting.save()
        self.assertEqual(generate_invoice_numbers(1, issue_date=date(2026, 1, 5)), ['MILK-202601-0001'])

    def test_billing_period(self):
        """A billing period spans the whole month"""
        self.assertEqual(get_billing_period(2028, 2), (date(2028, 2, 1), date(2028, 2, 29)))
        with self.assertRaises(ValidationFailed):
            get_billing_period(2026, 13)


class PaymentStatusTests(TestCase):
    """Test status helpers"""

    def test_derive_payment_status(self):
        """Stored status follows the paid amount"""
        self.assertEqual(derive_payment_status(Decimal('100'), Decimal('0')), 'pending')
        self.assertEqual(derive_payment_status(Decimal('100'), Decimal('40')), 'partial')
        self.assertEqual(derive_payment_status(Decimal('100'), Decimal('100')), 'paid')

    def test_effective_status_overdue(self):
        """An unpaid invoice past its due date reads as overdue"""
        customer = TestDataFactory.create_customer()
        invoice = TestDataFactory.create_invoice(customer, due_date=date(2026, 1, 15))
        self.assertEqual(get_effective_payment_status(invoice, today=date(2026, 1, 16)), 'overdue')
        self.assertEqual(get_effective_payment_status(invoice, today=date(2026, 1, 15)), 'pending')
        invoice.payment_status = 'paid'
        self.assertEqual(get_effective_payment_status(invoice, today=date(2026, 2, 1)), 'paid')

    def test_mark_overdue(self):
        """Unpaid invoices past due are stored as overdue"""
        customer = TestDataFactory.create_customer()
        late = TestDataFactory.create_invoice(customer, due_date=date(2026, 1, 10))
        paid = TestDataFactory.create_invoice(customer, due_date=date(2026, 1, 10), payment_status='paid',
                                              paid_amount=Decimal('1000.00'))
        current = TestDataFactory.create_invoice(customer, due_date=date(2026, 2, 10))
        self.assertEqual(mark_overdue_invoices(today=date(2026, 1, 20)), 1)
        late.refresh_from_db()
        paid.refresh_from_db()
        current.refresh_from_db()
        self.assertEqual(late.payment_status, 'overdue')
        self.assertEqual(paid.payment_status, 'paid')
        self.assertEqual(current.payment_status, 'pending')


class InvoiceGenerationTests(TestCase):
    """Test invoice generation from deliveries"""

    def setUp(self):
        self.milk = TestDataFactory.create_product(name='Cow Milk', base_price=Decimal('60.00'))
        self.curd = TestDataFactory.create_product(name='Curd', category='curd', base_price=Decimal('40.00'))
        self.customer = TestDataFactory.create_customer(name='Lakshmi')
        TestDataFactory.create_delivery(self.customer, date(2026, 2, 1), items=[(self.milk, 2), (self.curd, 1)])
        TestDataFactory.create_delivery(self.customer, date(2026, 2, 2), items=[(self.milk, 1)])
        TestDataFactory.create_delivery(self.customer, date(2026, 2, 3), status='missed', items=[(self.milk, 1)])
        TestDataFactory.create_delivery(self.customer, date(2026, 3, 1), items=[(self.milk, 1)])

    def test_monthly_generation(self):
        """Delivered items of the month are invoiced and debited"""
        result = generate_monthly_invoices(2026, 2)
        self.assertEqual(result['generated'], 1)
        self.assertEqual(result['total_amount'], Decimal('220.00'))

        invoice = Invoice.objects.get(customer=self.customer)
        self.assertEqual(invoice.billing_period_start, date(2026, 2, 1))
        self.assertEqual(invoice.billing_period_end, date(2026, 2, 28))
        self.assertEqual(invoice.final_amount, Decimal('220.00'))
        self.assertEqual(invoice.due_date, date(2026, 2, 28) + timedelta(days=15))
        self.assertTrue(invoice.invoice_number.startswith(f"INV-{timezone.localdate():%Y%m}-"))

        entry = LedgerEntry.objects.get(customer=self.customer)
        self.assertEqual(entry.transaction_type, 'invoice')
        self.assertEqual(entry.debit_amount, Decimal('220.00'))
        self.assertEqual(entry.reference_id, invoice.pk)
        self.customer.refresh_from_db()
        self.assertEqual(self.customer.credit_balance, Decimal('220.00'))

    def test_generation_skips_existing_and_empty(self):
        """Customers already invoiced or with no deliveries are skipped"""
        TestDataFactory.create_customer(name='Nobody')
        generate_monthly_invoices(2026, 2)
        result = generate_monthly_invoices(2026, 2)
        self.assertEqual(result['generated'], 0)
        self.assertEqual(result['skipped'], 2)
        self.assertEqual(Invoice.objects.count(), 1)

    def test_generated_numbers_are_sequential(self):
        """Each invoice in a batch gets the next number"""
        other = TestDataFactory.create_customer(name='Zeenat')
        TestDataFactory.create_delivery(other, date(2026, 2, 5), items=[(self.milk, 1)])
        result = generate_monthly_invoices(2026, 2)
        numbers = [inv['invoice_number'] for inv in result['invoices']]
        self.assertEqual(len(numbers), 2)
        self.assertEqual([n[-4:] for n in numbers], ['0001', '0002'])

    def test_bulk_generation_for_custom_period(self):
        """Chosen customers are invoiced for a custom period"""
        result = bulk_generate_invoices([self.customer.id], date(2026, 2, 1), date(2026, 2, 1))
        self.assertEqual(result['generated'], 1)
        self.assertEqual(Invoice.objects.get().final_amount, Decimal('160.00'))
        with self.assertRaises(ValidationFailed):
            bulk_generate_invoices([self.customer.id], date(2026, 2, 2), date(2026, 2, 1))

    def test_billing_summaries(self):
        """Preview lists delivered totals and whether an invoice exists"""
        summaries = get_billing_summaries(date(2026, 2, 1), date(2026, 2, 28))
        row = next(s for s in summaries if s['customer_id'] == self.customer.id)
        self.assertEqual(row['total_amount'], Decimal('220.00'))
        self.assertEqual(row['delivery_count'], 2)
        self.assertFalse(row['has_invoice'])

    def test_command_dry_run(self):
        """A dry run saves nothing"""
        call_command('generate_monthly_invoices', '--year', '2026', '--month', '2', '--dry-run')
        self.assertEqual(Invoice.objects.count(), 0)
        self.assertEqual(LedgerEntry.objects.count(), 0)
        call_command('generate_monthly_invoices', '--year', '2026', '--month', '2')
        self.assertEqual(Invoice.objects.count(), 1)


class InvoiceEditingTests(TestCase):
    """Test manual invoices, edits and deletion"""

    def setUp(self):
        self.customer = TestDataFactory.create_customer()
        self.milk = TestDataFactory.create_product()
        self.invoice = create_invoice(
            self.customer, date(2026, 1, 1), date(2026, 1, 31),
            [{'product': self.milk, 'quantity': Decimal('10'), 'rate': Decimal('60.00')},
             {'description': 'Delivery charge', 'quantity': Decimal('1'), 'rate': Decimal('50.00'),
              'tax_percentage': Decimal('10')}],
            discount_amount=Decimal('20.00'),
        )

    def test_create_invoice_totals(self):
        """Line items, tax and discount make up the final amount"""
        self.assertEqual(self.invoice.total_amount, Decimal('650.00'))
        self.assertEqual(self.invoice.tax_amount, Decimal('5.00'))
        self.assertEqual(self.invoice.final_amount, Decimal('635.00'))
        self.assertEqual(self.invoice.items.count(), 2)
        self.customer.refresh_from_db()
        self.assertEqual(self.customer.credit_balance, Decimal('635.00'))

    def test_duplicate_period_rejected(self):
        """A customer has one invoice per period"""
        with self.assertRaises(ValidationFailed):
            create_invoice(self.customer, date(2026, 1, 1), date(2026, 1, 31),
                           [{'quantity': Decimal('1'), 'rate': Decimal('5')}])

    def test_empty_invoice_rejected(self):
        """An invoice needs a positive subtotal"""
        with self.assertRaises(ValidationFailed):
            create_invoice(self.customer, date(2026, 2, 1), date(2026, 2, 28),
                           [{'quantity': Decimal('0'), 'rate': Decimal('5')}])

    def test_update_moves_ledger_debit(self):
        """Changing the amount updates the ledger debit and balance"""
        record_payment(self.invoice, Decimal('100.00'), 'cash')
        update_invoice(self.invoice, discount_amount=Decimal('0.00'))
        self.invoice.refresh_from_db()
        self.assertEqual(self.invoice.final_amount, Decimal('655.00'))
        debit = LedgerEntry.objects.get(customer=self.customer, transaction_type='invoice')
        self.assertEqual(debit.debit_amount, Decimal('655.00'))
        credit = LedgerEntry.objects.get(customer=self.customer, transaction_type='payment')
        self.assertEqual(credit.running_balance, Decimal('555.00'))
        self.customer.refresh_from_db()
        self.assertEqual(self.customer.credit_balance, Decimal('555.00'))

    def test_update_below_paid_rejected(self):
        """The final amount cannot drop under what was paid"""
        record_payment(self.invoice, Decimal('600.00'), 'upi')
        with self.assertRaises(ValidationFailed):
            update_invoice(self.invoice, discount_amount=Decimal('100.00'))

    def test_paid_invoice_locked(self):
        """A paid invoice cannot be edited"""
        record_payment(self.invoice, Decimal('635.00'), 'cash')
        self.invoice.refresh_from_db()
        with self.assertRaises(InvoiceLocked):
            update_invoice(self.invoice, notes='late edit')

    def test_stale_instance_of_paid_invoice_locked(self):
        """The paid check uses the stored invoice, not the caller's copy"""
        stale = Invoice.objects.get(pk=self.invoice.pk)
        record_payment(self.invoice, Decimal('635.00'), 'cash')
        self.assertEqual(stale.payment_status, 'pending')
        with self.assertRaises(InvoiceLocked):
            update_invoice(stale, notes='late edit')
        self.assertEqual(Invoice.objects.get(pk=self.invoice.pk).notes, '')

    def test_delete_with_payments_locked(self):
        """An invoice with payments cannot be deleted"""
        record_payment(self.invoice, Decimal('10.00'), 'cash')
        with self.assertRaises(InvoiceLocked):
            delete_invoice(self.invoice)

    def test_ledger_debit_matched_by_exact_number(self):
        """An unlinked debit of a longer invoice number is not mistaken for this invoice"""
        LedgerEntry.objects.filter(reference_id=self.invoice.pk).update(reference_id=None)
        other = TestDataFactory.create_customer()
        Invoice.objects.filter(pk=self.invoice.pk).update(customer=other)
        self.invoice.refresh_from_db()
        insert_ledger_with_balance(other, date(2026, 2, 1), 'invoice',
                                   description=f"Invoice X{self.invoice.invoice_number} generated",
                                   debit_amount=Decimal('10.00'))
        self.assertIsNone(find_invoice_ledger_entry(self.invoice))
        entry = insert_ledger_with_balance(other, date(2026, 2, 2), 'invoice',
                                           description=f"Invoice {self.invoice.invoice_number} generated",
                                           debit_amount=Decimal('635.00'))
        self.assertEqual(find_invoice_ledger_entry(self.invoice), entry)

    def test_delete_removes_ledger_debit(self):
        """Deleting an invoice removes its debit"""
        delete_invoice(self.invoice)
        self.assertFalse(Invoice.objects.exists())
        self.assertFalse(LedgerEntry.objects.filter(customer=self.customer).exists())
        self.customer.refresh_from_db()
        self.assertEqual(self.customer.credit_balance, Decimal('0.00'))


class PaymentTests(TestCase):
    """Test payment collection"""

    def setUp(self):
        self.customer = TestDataFactory.create_customer()
        self.invoice = create_invoice(
            self.customer, date(2026, 1, 1), date(2026, 1, 31),
            [{'description': 'Milk', 'quantity': Decimal('20'), 'rate': Decimal('50.00')}],
        )

    def test_partial_then_full_payment(self):
        """Payments move the invoice from partial to paid"""
        record_payment(self.invoice, Decimal('400.00'), 'cash', payment_date=date(2026, 2, 3))
        self.invoice.refresh_from_db()
        self.assertEqual(self.invoice.payment_status, 'partial')
        self.assertEqual(self.invoice.paid_amount, Decimal('400.00'))

        record_payment(self.invoice, Decimal('600.00'), 'upi', payment_date=date(2026, 2, 9))
        self.invoice.refresh_from_db()
        self.assertEqual(self.invoice.payment_status, 'paid')
        self.assertEqual(self.invoice.payment_date, date(2026, 2, 9))
        self.customer.refresh_from_db()
        self.assertEqual(self.customer.credit_balance, Decimal('0.00'))
        self.assertEqual(LedgerEntry.objects.filter(transaction_type='payment').count(), 2)

    def test_overpayment_rejected(self):
        """Paying more than the outstanding amount fails and records nothing"""
        with self.assertRaises(ValidationFailed) as ctx:
            record_payment(self.invoice, Decimal('1000.01'), 'cash')
        self.assertEqual(ctx.exception.context['outstanding'], '1000.00')
        self.assertFalse(Payment.objects.exists())

    def test_invalid_mode_rejected(self):
        """Unknown payment modes are rejected"""
        with self.assertRaises(ValidationFailed):
            record_payment(self.invoice, Decimal('10.00'), 'barter')

    def test_advance_payment(self):
        """An advance credits the ledger without an invoice"""
        payment = record_advance_payment(self.customer, Decimal('1500.00'), 'bank_transfer', notes='March')
        self.assertIsNone(payment.invoice)
        entry = LedgerEntry.objects.get(transaction_type='advance')
        self.assertEqual(entry.credit_amount, Decimal('1500.00'))
        self.assertIn('March', entry.description)
        self.customer.refresh_from_db()
        self.assertEqual(self.customer.credit_balance, Decimal('-500.00'))
        self.assertEqual(self.customer.advance_balance, Decimal('500.00'))


class BillingAPITests(TestCase):
    """Test billing endpoints"""

    def setUp(self):
        cache.clear()
        self.user = TestDataFactory.create_user(role=ACCOUNTANT)
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)
        self.customer = TestDataFactory.create_customer(name='Farida')
        self.milk = TestDataFactory.create_product()

    def _create_invoice(self):
        data = {
            'customer': self.customer.id,
            'billing_period_start': '2026-01-01',
            'billing_period_end': '2026-01-31',
            'line_items': [{'product': self.milk.id, 'quantity': '10', 'rate': '55.00'}],
        }
        return self.client.post('/api/v1/invoices/', data, format='json')

    def test_create_invoice(self):
        """Test creating an invoice from line items"""
        response = self._create_invoice()
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data['final_amount'], '550.00')
        self.assertEqual(response.data['balance'], '550.00')

    def test_invoice_detail_includes_items(self):
        """Test the detail view returns items, breakdown and payments"""
        invoice_id = self._create_invoice().data['id']
        response = self.client.get(f'/api/v1/invoices/{invoice_id}/')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(len(response.data['items']), 1)
        self.assertEqual(len(response.data['breakdown']), 1)
        self.assertEqual(response.data['payments'], [])

    def test_record_payment(self):
        """Test recording a payment against an invoice"""
        invoice_id = self._create_invoice().data['id']
        data = {'amount': '200.00', 'payment_mode': 'upi', 'reference_number': 'UTR123'}
        response = self.client.post(f'/api/v1/invoices/{invoice_id}/payments/', data, format='json')
        self.assertEqual(response.status_code, 201)
        self.assertEqual(Invoice.objects.get(pk=invoice_id).payment_status, 'partial')

    def test_overpayment_returns_400(self):
        """Test that an overpayment is refused with the outstanding amount"""
        invoice_id = self._create_invoice().data['id']
        response = self.client.post(f'/api/v1/invoices/{invoice_id}/payments/',
                                    {'amount': '600.00', 'payment_mode': 'cash'}, format='json')
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data['details']['outstanding'], '550.00')

    def test_paid_invoice_cannot_be_edited(self):
        """Test that editing a paid invoice is refused"""
        invoice_id = self._create_invoice().data['id']
        self.client.post(f'/api/v1/invoices/{invoice_id}/payments/',
                         {'amount': '550.00', 'payment_mode': 'cash'}, format='json')
        response = self.client.patch(f'/api/v1/invoices/{invoice_id}/', {'notes': 'x'}, format='json')
        self.assertEqual(response.status_code, 400)

    def test_filter_by_status(self):
        """Test filtering invoices by effective status"""
        TestDataFactory.create_invoice(self.customer, due_date=date(2020, 1, 1))
        TestDataFactory.create_invoice(self.customer, due_date=timezone.localdate() + timedelta(days=10))
        response = self.client.get('/api/v1/invoices/?status=overdue')
        self.assertEqual(len(response.data), 1)
        response = self.client.get('/api/v1/invoices/?status=pending')
        self.assertEqual(len(response.data), 1)

    def test_billing_summary(self):
        """Test billing totals"""
        TestDataFactory.create_invoice(self.customer, final_amount=Decimal('300.00'))
        TestDataFactory.create_invoice(self.customer, final_amount=Decimal('200.00'), payment_status='paid',
                                       paid_amount=Decimal('200.00'))
        response = self.client.get('/api/v1/billing/summary/')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['total_billed'], '500.00')
        self.assertEqual(response.data['total_pending'], '300.00')
        self.assertEqual(response.data['paid_count'], 1)

    def test_billing_summary_bad_date(self):
        """Test that malformed dates are rejected"""
        response = self.client.get('/api/v1/billing/summary/?date_from=yesterday')
        self.assertEqual(response.status_code, 400)

    def test_advance_payment_endpoint(self):
        """Test recording an advance payment"""
        data = {'customer': self.customer.id, 'amount': '300.00', 'payment_mode': 'cash'}
        response = self.client.post('/api/v1/payments/advance/', data, format='json')
        self.assertEqual(response.status_code, 201)
        self.assertIsNone(response.data['invoice'])

    def test_delivery_staff_cannot_generate(self):
        """Test that invoice generation needs a billing role"""
        staff = TestDataFactory.create_user(role=DELIVERY_STAFF)
        self.client.authenticate_user(staff)
        response = self.client.post('/api/v1/invoices/generate-monthly/', {'year': 2026, 'month': 1}, format='json')
        self.assertEqual(response.status_code, 403)
