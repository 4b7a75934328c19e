"""
Tests for financial integrity checks, backups and summaries
"""
import json
from datetime import date
from decimal import Decimal
from io import StringIO

from django.core.cache import cache
from django.core.management import call_command
from django.test import TestCase

from dairy.billing.services import create_invoice, record_payment
from dairy.core.exceptions import ValidationFailed
from dairy.core.permissions import ACCOUNTANT, DELIVERY_STAFF, MANAGER
from dairy.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from dairy.customers.ledger import insert_ledger_with_balance
from dairy.customers.models import Customer
from dairy.reports.backup import BACKUP_TABLES, build_backup, get_backup_date_range
from dairy.reports.integrity import (
    check_balance_sync, check_invoices_without_ledger, check_ledger_without_invoice,
    repair_financial_integrity, run_integrity_checks,
)
from dairy.reports.summaries import build_delivery_summary, resolve_date_range


class IntegrityCheckTests(TestCase):
    """Test the financial integrity checks"""

    def setUp(self):
        self.customer = TestDataFactory.create_customer()

    def test_clean_books_pass(self):
        """Invoices created through billing pass every check"""
        create_invoice(self.customer, date(2026, 1, 1), date(2026, 1, 31),
                       [{'description': 'Milk', 'quantity': Decimal('30'), 'rate': Decimal('60')}])
        result = run_integrity_checks()
        self.assertEqual(result['status'], 'pass')
        self.assertEqual([c['label'] for c in result['checks']],
                         ['Ledger / Balance Sync', 'Orphaned Invoices', 'Orphaned Ledger Entries'])

    def test_balance_mismatch_detected(self):
        """A stored balance that disagrees with the ledger fails"""
        insert_ledger_with_balance(self.customer, date(2026, 1, 1), 'invoice', debit_amount=Decimal('100'))
        Customer.objects.filter(pk=self.customer.pk).update(credit_balance=Decimal('40.00'))
        result = check_balance_sync()
        self.assertEqual(result['status'], 'fail')
        self.assertEqual(result['mismatches'][0]['expected'], Decimal('100.00'))
        self.assertEqual(result['mismatches'][0]['actual'], Decimal('40.00'))

    def test_invoice_without_ledger_detected(self):
        """An invoice with no ledger debit fails"""
        invoice = TestDataFactory.create_invoice(self.customer, final_amount=Decimal('500.00'))
        result = check_invoices_without_ledger()
        self.assertEqual(result['status'], 'fail')
        self.assertEqual(result['items'][0]['invoice_number'], invoice.invoice_number)

    def test_ledger_without_invoice_detected(self):
        """An invoice debit pointing at a missing invoice fails"""
        insert_ledger_with_balance(self.customer, date(2026, 1, 1), 'invoice',
                                   debit_amount=Decimal('100'), reference_id=987654)
        result = check_ledger_without_invoice()
        self.assertEqual(result['status'], 'fail')
        self.assertEqual(result['items'][0]['reference_id'], 987654)

    def test_empty_system_passes(self):
        """Checks pass on an empty system"""
        self.assertEqual(check_invoices_without_ledger()['status'], 'pass')
        self.assertEqual(check_ledger_without_invoice()['status'], 'pass')

    def test_repair(self):
        """Repair posts missing debits and fixes stored balances"""
        TestDataFactory.create_invoice(self.customer, final_amount=Decimal('500.00'))
        other = TestDataFactory.create_customer()
        insert_ledger_with_balance(other, date(2026, 1, 1), 'adjustment', debit_amount=Decimal('70'))
        Customer.objects.filter(pk=other.pk).update(credit_balance=Decimal('0.00'))

        result = repair_financial_integrity()
        self.assertEqual(result['invoices_synced'], 1)
        self.assertEqual(result['errors'], [])
        self.assertEqual(run_integrity_checks()['status'], 'pass')
        self.customer.refresh_from_db()
        self.assertEqual(self.customer.credit_balance, Decimal('500.00'))


class BackupTests(TestCase):
    """Test JSON backup export"""

    def setUp(self):
        self.customer = TestDataFactory.create_customer()
        self.milk = TestDataFactory.create_product()
        TestDataFactory.create_delivery(self.customer, date(2026, 3, 2), items=[(self.milk, 1)])
        TestDataFactory.create_delivery(self.customer, date(2026, 1, 15), items=[(self.milk, 1)])
        TestDataFactory.create_expense(expense_date=date(2026, 3, 10))

    def test_date_ranges(self):
        """Weekly runs Monday to Sunday, monthly covers the calendar month"""
        wednesday = date(2026, 3, 4)
        self.assertEqual(get_backup_date_range('weekly', wednesday), (date(2026, 3, 2), date(2026, 3, 8)))
        self.assertEqual(get_backup_date_range('monthly', wednesday), (date(2026, 3, 1), date(2026, 3, 31)))
        self.assertIsNone(get_backup_date_range('all', wednesday))
        with self.assertRaises(ValidationFailed):
            get_backup_date_range('yearly', wednesday)

    def test_monthly_backup(self):
        """Dated tables are limited to the month, master data is whole"""
        backup = build_backup('monthly', today=date(2026, 3, 20))
        metadata = backup['metadata']
        self.assertEqual(metadata['version'], '1.0.0')
        self.assertEqual(metadata['tables'], [table for table, _, _ in BACKUP_TABLES])
        self.assertEqual(metadata['record_counts']['deliveries'], 1)
        self.assertEqual(metadata['record_counts']['delivery_items'], 1)
        self.assertEqual(metadata['record_counts']['expenses'], 1)
        self.assertEqual(metadata['record_counts']['customers'], 1)
        self.assertEqual(backup['data']['deliveries'][0]['delivery_date'], date(2026, 3, 2))

    def test_full_backup(self):
        """The all period exports every row"""
        backup = build_backup('all', today=date(2026, 3, 20))
        self.assertEqual(backup['metadata']['record_counts']['deliveries'], 2)
        self.assertIsNone(backup['metadata']['date_range'])

    def test_export_command(self):
        """The command prints the backup as JSON"""
        out = StringIO()
        call_command('export_backup', '--period', 'all', stdout=out)
        payload = json.loads(out.getvalue())
        self.assertEqual(payload['metadata']['period'], 'all')
        self.assertEqual(len(payload['data']['deliveries']), 2)


class SummaryTests(TestCase):
    """Test delivery summary"""

    def test_default_range(self):
        """Without dates the range is the last 30 days"""
        self.assertEqual(resolve_date_range(today=date(2026, 3, 31)), (date(2026, 3, 1), date(2026, 3, 31)))
        with self.assertRaises(ValidationFailed):
            resolve_date_range(date(2026, 3, 5), date(2026, 3, 1))

    def test_delivery_summary(self):
        """Counts by status and delivered quantity per day"""
        customer = TestDataFactory.create_customer()
        milk = TestDataFactory.create_product(base_price=Decimal('50.00'))
        TestDataFactory.create_delivery(customer, date(2026, 3, 1), items=[(milk, 2)])
        TestDataFactory.create_delivery(TestDataFactory.create_customer(), date(2026, 3, 1), status='missed',
                                        items=[(milk, 1)])
        summary = build_delivery_summary(date(2026, 3, 1), date(2026, 3, 2))
        first = summary['daily'][0]
        self.assertEqual(first['delivered'], 1)
        self.assertEqual(first['missed'], 1)
        self.assertEqual(first['total'], 2)
        self.assertEqual(first['quantity'], Decimal('2.000'))
        self.assertEqual(first['amount'], Decimal('100.00'))
        self.assertEqual(summary['daily'][1]['total'], 0)
        self.assertEqual(summary['totals']['delivered'], 1)


class ReportAPITests(TestCase):
    """Test report endpoints"""

    def setUp(self):
        cache.clear()
        self.user = TestDataFactory.create_user(role=ACCOUNTANT)
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)

    def test_integrity_endpoint(self):
        """Test running the integrity checks"""
        response = self.client.get('/api/v1/reports/integrity/')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['status'], 'pass')

    def test_integrity_repair_endpoint(self):
        """Test repairing from the API"""
        customer = TestDataFactory.create_customer()
        TestDataFactory.create_invoice(customer, final_amount=Decimal('120.00'))
        response = self.client.post('/api/v1/reports/integrity/repair/')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['invoices_synced'], 1)
        self.assertEqual(response.data['checks']['status'], 'pass')

    def test_integrity_needs_billing_role(self):
        """Test that delivery staff cannot run integrity checks"""
        staff = TestDataFactory.create_user(role=DELIVERY_STAFF)
        self.client.authenticate_user(staff)
        self.assertEqual(self.client.get('/api/v1/reports/integrity/').status_code, 403)

    def test_backup_endpoint(self):
        """Test that managers can download a backup"""
        manager = TestDataFactory.create_user(role=MANAGER)
        self.client.authenticate_user(manager)
        response = self.client.get('/api/v1/reports/backup/?period=weekly')
        self.assertEqual(response.status_code, 200)
        self.assertIn('attachment', response['Content-Disposition'])
        self.assertEqual(response.data['metadata']['period'], 'weekly')

    def test_backup_needs_manager(self):
        """Test that accountants cannot download backups"""
        self.assertEqual(self.client.get('/api/v1/reports/backup/').status_code, 403)

    def test_revenue_summary(self):
        """Test billed against collected"""
        customer = TestDataFactory.create_customer()
        invoice = create_invoice(customer, date(2026, 1, 1), date(2026, 1, 31),
                                 [{'description': 'Milk', 'quantity': Decimal('10'), 'rate': Decimal('50')}])
        record_payment(invoice, Decimal('250.00'), 'cash')
        response = self.client.get('/api/v1/reports/revenue/')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['total_billed'], Decimal('500.00'))
        self.assertEqual(response.data['total_collected'], Decimal('250.00'))
        self.assertEqual(response.data['collection_rate'], 50.0)

    def test_delivery_summary_bad_date(self):
        """Test that malformed dates are rejected"""
        response = self.client.get('/api/v1/reports/deliveries/?date_from=03/01/2026')
        self.assertEqual(response.status_code, 400)
