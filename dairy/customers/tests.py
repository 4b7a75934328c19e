"""
Tests for customers, subscriptions, vacations and the ledger
"""
from datetime import date
from decimal import Decimal
from io import StringIO

from django.core.cache import cache
from django.core.management import call_command
from django.test import TestCase

from dairy.core.exceptions import ValidationFailed
from dairy.core.permissions import ACCOUNTANT, DELIVERY_STAFF, MANAGER
from dairy.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from dairy.customers.ledger import (
    calculate_balance, insert_ledger_with_balance, recalculate_all_balances, sync_invoices_to_ledger,
)
from dairy.customers.models import Customer, CustomerSubscription, CustomerVacation, LedgerEntry
from dairy.customers.signals import bulk_ledger_changes


class LedgerTests(TestCase):
    """Test running balance bookkeeping"""

    def setUp(self):
        self.customer = TestDataFactory.create_customer()

    def test_running_balance_accumulates(self):
        """Each entry adds debit and subtracts credit from the previous balance"""
        first = insert_ledger_with_balance(self.customer, date(2026, 1, 1), 'invoice', debit_amount=Decimal('1000'))
        second = insert_ledger_with_balance(self.customer, date(2026, 1, 5), 'payment', credit_amount=Decimal('400'))
        self.assertEqual(first.running_balance, Decimal('1000.00'))
        self.assertEqual(second.running_balance, Decimal('600.00'))
        self.customer.refresh_from_db()
        self.assertEqual(self.customer.credit_balance, Decimal('600.00'))
        self.assertEqual(self.customer.advance_balance, Decimal('0.00'))

    def test_backdated_entry_recalculates(self):
        """A backdated entry shifts every later running balance"""
        insert_ledger_with_balance(self.customer, date(2026, 1, 10), 'invoice', debit_amount=Decimal('500'))
        later = insert_ledger_with_balance(self.customer, date(2026, 1, 20), 'invoice', debit_amount=Decimal('300'))
        early = insert_ledger_with_balance(self.customer, date(2026, 1, 1), 'adjustment', debit_amount=Decimal('100'))
        later.refresh_from_db()
        self.assertEqual(early.running_balance, Decimal('100.00'))
        self.assertEqual(later.running_balance, Decimal('900.00'))

    def test_overpayment_becomes_advance(self):
        """Credits beyond the debits show up as advance balance"""
        insert_ledger_with_balance(self.customer, date(2026, 2, 1), 'advance', credit_amount=Decimal('250'))
        self.customer.refresh_from_db()
        self.assertEqual(self.customer.credit_balance, Decimal('-250.00'))
        self.assertEqual(self.customer.advance_balance, Decimal('250.00'))

    def test_rejects_invalid_amounts(self):
        """Entries need a positive debit or credit"""
        with self.assertRaises(ValidationFailed):
            insert_ledger_with_balance(self.customer, date(2026, 1, 1), 'adjustment')
        with self.assertRaises(ValidationFailed):
            insert_ledger_with_balance(self.customer, date(2026, 1, 1), 'adjustment', debit_amount=Decimal('-5'))
        with self.assertRaises(ValidationFailed):
            insert_ledger_with_balance(self.customer, date(2026, 1, 1), 'refund', debit_amount=Decimal('5'))

    def test_deleting_entry_resyncs_balance(self):
        """Removing a ledger row re-derives the customer balance"""
        insert_ledger_with_balance(self.customer, date(2026, 1, 1), 'invoice', debit_amount=Decimal('1000'))
        payment = insert_ledger_with_balance(self.customer, date(2026, 1, 2), 'payment', credit_amount=Decimal('200'))
        payment.delete()
        self.customer.refresh_from_db()
        self.assertEqual(self.customer.credit_balance, Decimal('1000.00'))

    def test_recalculate_all_after_bulk_changes(self):
        """Balances left stale by bulk changes are repaired"""
        with bulk_ledger_changes():
            LedgerEntry.objects.create(
                customer=self.customer, transaction_date=date(2026, 1, 1), transaction_type='invoice',
                debit_amount=Decimal('700'), running_balance=Decimal('0')
            )
        self.customer.refresh_from_db()
        self.assertEqual(self.customer.credit_balance, Decimal('0.00'))

        recalculate_all_balances()
        self.customer.refresh_from_db()
        self.assertEqual(self.customer.credit_balance, Decimal('700.00'))
        self.assertEqual(LedgerEntry.objects.get().running_balance, Decimal('700.00'))

    def test_sync_invoices_to_ledger(self):
        """Invoices without a ledger debit get one"""
        invoice = TestDataFactory.create_invoice(self.customer, final_amount=Decimal('450.00'))
        result = sync_invoices_to_ledger()
        self.assertEqual(result['created'], 1)
        entry = LedgerEntry.objects.get(customer=self.customer)
        self.assertEqual(entry.reference_id, invoice.pk)
        self.assertEqual(calculate_balance(self.customer)['balance'], Decimal('450.00'))
        self.assertEqual(sync_invoices_to_ledger()['created'], 0)


class DeliveryScheduleTests(TestCase):
    """Test delivery schedule resolution"""

    def test_schedule_field_wins(self):
        """The structured field is used when set"""
        customer = TestDataFactory.create_customer(
            delivery_schedule={'frequency': 'custom', 'days': [1, 3]},
            notes='Schedule: {"frequency": "weekly", "day": 2}'
        )
        self.assertEqual(customer.get_delivery_schedule()['days'], [1, 3])

    def test_schedule_from_notes(self):
        """Older records keep the schedule as JSON in notes"""
        customer = TestDataFactory.create_customer(notes='Gate 2. Schedule: {"frequency": "weekly", "day": 2}')
        self.assertEqual(customer.get_delivery_schedule(), {'frequency': 'weekly', 'day': 2})

    def test_unparseable_notes(self):
        """Broken JSON in notes yields an empty schedule"""
        customer = TestDataFactory.create_customer(notes='Schedule: {not json}')
        self.assertEqual(customer.get_delivery_schedule(), {})


class CustomerAPITests(TestCase):
    """Test customer endpoints"""

    def setUp(self):
        cache.clear()
        self.user = TestDataFactory.create_user(role=MANAGER)
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)

    def test_create_customer(self):
        """Test creating a customer with a custom schedule"""
        data = {
            'name': 'Ramesh',
            'phone': '9000000001',
            'area': 'North',
            'subscription_type': 'custom',
            'delivery_schedule': {'frequency': 'custom', 'days': [1, 3, 5]},
        }
        response = self.client.post('/api/v1/customers/', data, format='json')
        self.assertEqual(response.status_code, 201)
        self.assertEqual(Customer.objects.get(name='Ramesh').delivery_schedule['days'], [1, 3, 5])

    def test_detail_cache_follows_subscription_changes(self):
        """Test that the cached detail reflects added and repriced subscriptions"""
        customer = TestDataFactory.create_customer()
        product = TestDataFactory.create_product(base_price=Decimal('60.00'))
        url = f'/api/v1/customers/{customer.id}/'
        self.assertEqual(len(self.client.get(url).data['subscriptions']), 0)

        data = {'product': product.id, 'quantity': '2.000'}
        response = self.client.post(f'/api/v1/customers/{customer.id}/subscriptions/', data, format='json')
        self.assertEqual(response.status_code, 201)
        subscriptions = self.client.get(url).data['subscriptions']
        self.assertEqual(len(subscriptions), 1)
        self.assertEqual(subscriptions[0]['unit_price'], '60.00')

        product.base_price = Decimal('65.00')
        product.save()
        self.assertEqual(self.client.get(url).data['subscriptions'][0]['unit_price'], '65.00')

        CustomerSubscription.objects.filter(customer=customer).get().delete()
        self.assertEqual(len(self.client.get(url).data['subscriptions']), 0)

    def test_list_cache_follows_customer_changes(self):
        """Test that a new customer shows up in a cached list"""
        TestDataFactory.create_customer(name='Anil')
        self.assertEqual(len(self.client.get('/api/v1/customers/').data), 1)
        TestDataFactory.create_customer(name='Bina')
        names = [c['name'] for c in self.client.get('/api/v1/customers/').data]
        self.assertEqual(names, ['Anil', 'Bina'])

    def test_invalid_schedule_rejected(self):
        """Test that weekday numbers outside 0-6 are rejected"""
        data = {'name': 'Suresh', 'delivery_schedule': {'days': [7]}}
        response = self.client.post('/api/v1/customers/', data, format='json')
        self.assertEqual(response.status_code, 400)

    def test_delete_customer_with_history_deactivates(self):
        """Test that a customer with ledger history is deactivated"""
        customer = TestDataFactory.create_customer()
        subscription = TestDataFactory.create_subscription(customer)
        insert_ledger_with_balance(customer, date(2026, 1, 1), 'invoice', debit_amount=Decimal('10'))
        response = self.client.delete(f'/api/v1/customers/{customer.id}/')
        self.assertEqual(response.status_code, 200)
        customer.refresh_from_db()
        subscription.refresh_from_db()
        self.assertFalse(customer.is_active)
        self.assertFalse(subscription.is_active)

    def test_delete_customer_without_history(self):
        """Test deleting a new customer"""
        customer = TestDataFactory.create_customer()
        response = self.client.delete(f'/api/v1/customers/{customer.id}/')
        self.assertEqual(response.status_code, 204)

    def test_duplicate_subscription_rejected(self):
        """Test that a customer cannot subscribe twice to the same product"""
        customer = TestDataFactory.create_customer()
        product = TestDataFactory.create_product()
        TestDataFactory.create_subscription(customer, product)
        data = {'product': product.id, 'quantity': '2.000'}
        response = self.client.post(f'/api/v1/customers/{customer.id}/subscriptions/', data, format='json')
        self.assertEqual(response.status_code, 400)

    def test_vacation_by_delivery_staff(self):
        """Test that delivery staff can schedule a vacation"""
        staff = TestDataFactory.create_user(role=DELIVERY_STAFF)
        self.client.authenticate_user(staff)
        customer = TestDataFactory.create_customer()
        data = {'start_date': '2026-03-01', 'end_date': '2026-03-05', 'reason': 'Travel'}
        response = self.client.post(f'/api/v1/customers/{customer.id}/vacations/', data, format='json')
        self.assertEqual(response.status_code, 201)
        self.assertTrue(CustomerVacation.objects.active_on(date(2026, 3, 3)).filter(customer=customer).exists())

    def test_vacation_end_before_start(self):
        """Test that a vacation cannot end before it starts"""
        customer = TestDataFactory.create_customer()
        data = {'start_date': '2026-03-05', 'end_date': '2026-03-01'}
        response = self.client.post(f'/api/v1/customers/{customer.id}/vacations/', data, format='json')
        self.assertEqual(response.status_code, 400)


class LedgerAPITests(TestCase):
    """Test ledger endpoints"""

    def setUp(self):
        self.user = TestDataFactory.create_user(role=ACCOUNTANT)
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)
        self.customer = TestDataFactory.create_customer()

    def test_manual_adjustment(self):
        """Test posting a manual credit"""
        insert_ledger_with_balance(self.customer, date(2026, 1, 1), 'invoice', debit_amount=Decimal('300'))
        data = {'entry_type': 'credit', 'amount': '50.00', 'description': 'Spoiled milk refund',
                'transaction_date': '2026-01-03'}
        response = self.client.post(f'/api/v1/customers/{self.customer.id}/ledger/', data, format='json')
        self.assertEqual(response.status_code, 201)
        self.assertEqual(Decimal(response.data['running_balance']), Decimal('250.00'))

    def test_delivery_staff_cannot_adjust(self):
        """Test that ledger adjustments need a billing role"""
        staff = TestDataFactory.create_user(role=DELIVERY_STAFF)
        self.client.authenticate_user(staff)
        data = {'entry_type': 'debit', 'amount': '10.00', 'description': 'x'}
        response = self.client.post(f'/api/v1/customers/{self.customer.id}/ledger/', data, format='json')
        self.assertEqual(response.status_code, 403)

    def test_balance_endpoint(self):
        """Test ledger totals for a customer"""
        insert_ledger_with_balance(self.customer, date(2026, 1, 1), 'invoice', debit_amount=Decimal('300'))
        insert_ledger_with_balance(self.customer, date(2026, 1, 2), 'payment', credit_amount=Decimal('100'))
        response = self.client.get(f'/api/v1/customers/{self.customer.id}/balance/')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['balance'], Decimal('200.00'))
        self.assertEqual(response.data['total_credit'], Decimal('100.00'))


class RepairBalancesCommandTests(TestCase):
    """Test the repair_customer_balances command"""

    def setUp(self):
        self.customer = TestDataFactory.create_customer()
        self.other = TestDataFactory.create_customer()
        self.invoice = TestDataFactory.create_invoice(self.customer, final_amount=Decimal('300.00'))
        insert_ledger_with_balance(self.other, date(2026, 1, 1), 'adjustment', debit_amount=Decimal('80'))
        Customer.objects.filter(pk=self.other.pk).update(credit_balance=Decimal('0.00'))

    def test_repairs_everything(self):
        """Missing debits are posted and stale balances fixed"""
        call_command('repair_customer_balances', stdout=StringIO())
        self.customer.refresh_from_db()
        self.other.refresh_from_db()
        self.assertEqual(self.customer.credit_balance, Decimal('300.00'))
        self.assertEqual(self.other.credit_balance, Decimal('80.00'))
        self.assertTrue(LedgerEntry.objects.filter(reference_id=self.invoice.pk).exists())

    def test_dry_run_saves_nothing(self):
        """A dry run reports but rolls back"""
        out = StringIO()
        call_command('repair_customer_balances', '--dry-run', stdout=out)
        self.assertIn('Dry run complete', out.getvalue())
        self.other.refresh_from_db()
        self.assertEqual(self.other.credit_balance, Decimal('0.00'))
        self.assertFalse(LedgerEntry.objects.filter(reference_id=self.invoice.pk).exists())

    def test_single_customer(self):
        """Only the selected customer is repaired"""
        call_command('repair_customer_balances', '--customer', str(self.other.pk), stdout=StringIO())
        self.other.refresh_from_db()
        self.assertEqual(self.other.credit_balance, Decimal('80.00'))
        self.assertFalse(LedgerEntry.objects.filter(reference_id=self.invoice.pk).exists())
