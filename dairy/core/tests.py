"""
Tests for users, roles, settings and data archival
"""
from datetime import date, timedelta
from decimal import Decimal

from django.test import TestCase
from django.utils import timezone

from dairy.billing.models import Invoice
from dairy.billing.services import create_invoice, record_payment
from dairy.core.archive import execute_archive, export_archive, get_cutoff_date, preview_archive
from dairy.core.exceptions import InvalidPin, PermissionDenied, ValidationFailed
from dairy.core.models import AuditLog, DairySetting
from dairy.core.permissions import (
    ACCOUNTANT, AUDITOR, DELIVERY_STAFF, MANAGER, SUPER_ADMIN, get_access_flags, get_user_roles,
)
from dairy.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from dairy.customers.ledger import insert_ledger_with_balance
from dairy.customers.models import LedgerEntry
from dairy.deliveries.models import Delivery
from dairy.expenses.models import Expense
from dairy.reports.integrity import run_integrity_checks


class RoleTests(TestCase):
    """Test role resolution from groups"""

    def test_superuser_without_group_is_super_admin(self):
        """A bare superuser falls back to the super admin role"""
        user = TestDataFactory.create_user(is_superuser=True)
        self.assertEqual(get_user_roles(user), [SUPER_ADMIN])

    def test_plain_user_has_no_roles(self):
        """A user outside every group has no roles"""
        user = TestDataFactory.create_user()
        self.assertEqual(get_user_roles(user), [])
        self.assertFalse(get_access_flags(user)['can_manage_billing'])

    def test_access_flags_follow_group(self):
        """Capability flags come from the user's group"""
        user = TestDataFactory.create_user(role=DELIVERY_STAFF)
        flags = get_access_flags(user)
        self.assertTrue(flags['can_manage_deliveries'])
        self.assertFalse(flags['can_manage_billing'])
        self.assertFalse(flags['can_archive_data'])


class UserAPITests(TestCase):
    """Test user and PIN endpoints"""

    def setUp(self):
        self.admin = TestDataFactory.create_user(role=SUPER_ADMIN)
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.admin)

    def test_me_returns_flags(self):
        """The current user endpoint includes capability flags"""
        response = self.client.get('/api/v1/auth/me/')
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.data['is_admin'])
        self.assertIn(SUPER_ADMIN, response.data['roles'])

    def test_create_user_with_role(self):
        """Super admins can create users in a role group"""
        data = {
            'username': 'accountant1',
            'email': 'acc@test.com',
            'password': 'Dairy#Secure2026',
            'password_confirm': 'Dairy#Secure2026',
            'role': ACCOUNTANT,
        }
        response = self.client.post('/api/v1/users/', data, format='json')
        self.assertEqual(response.status_code, 201)
        self.assertIn(ACCOUNTANT, response.data['groups'])

    def test_non_admin_cannot_list_users(self):
        """Managers cannot manage users"""
        manager = TestDataFactory.create_user(role=MANAGER)
        self.client.authenticate_user(manager)
        response = self.client.get('/api/v1/users/')
        self.assertEqual(response.status_code, 403)

    def test_set_pin(self):
        """A user can set a PIN after confirming the password"""
        data = {'pin': '123456', 'pin_confirm': '123456', 'password': 'testpass123'}
        response = self.client.post('/api/v1/auth/pin/', data, format='json')
        self.assertEqual(response.status_code, 200)
        self.admin.refresh_from_db()
        self.assertTrue(self.admin.check_pin('123456'))

    def test_set_pin_rejects_short_pin(self):
        """A PIN must be six digits"""
        data = {'pin': '1234', 'pin_confirm': '1234', 'password': 'testpass123'}
        response = self.client.post('/api/v1/auth/pin/', data, format='json')
        self.assertEqual(response.status_code, 400)

    def test_unauthenticated_request_rejected(self):
        """Endpoints require a token"""
        self.client.logout()
        response = self.client.get('/api/v1/auth/me/')
        self.assertEqual(response.status_code, 401)


class SettingsAPITests(TestCase):
    """Test dairy settings endpoint"""

    def setUp(self):
        self.admin = TestDataFactory.create_user(role=SUPER_ADMIN)
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.admin)

    def test_update_settings(self):
        """Super admins can change the invoice prefix"""
        response = self.client.patch('/api/v1/settings/', {'invoice_prefix': 'MILK'}, format='json')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(DairySetting.load().invoice_prefix, 'MILK')
        self.assertTrue(AuditLog.objects.filter(model_name='DairySetting').exists())

    def test_auditor_cannot_update_settings(self):
        """Other roles can only read settings"""
        auditor = TestDataFactory.create_user(role=AUDITOR)
        self.client.authenticate_user(auditor)
        self.assertEqual(self.client.get('/api/v1/settings/').status_code, 200)
        response = self.client.patch('/api/v1/settings/', {'invoice_prefix': 'X'}, format='json')
        self.assertEqual(response.status_code, 403)


class ArchiveTests(TestCase):
    """Test retention archive and factory reset"""

    def setUp(self):
        self.today = date(2026, 6, 15)
        self.admin = TestDataFactory.create_user(role=SUPER_ADMIN, pin='654321')
        self.customer = TestDataFactory.create_customer()
        self.product = TestDataFactory.create_product()
        self.old_delivery = TestDataFactory.create_delivery(
            self.customer, delivery_date=date(2024, 1, 10), items=[(self.product, 1)]
        )
        self.new_delivery = TestDataFactory.create_delivery(
            self.customer, delivery_date=date(2026, 6, 1), items=[(self.product, 1)]
        )
        TestDataFactory.create_expense(expense_date=date(2024, 3, 1))
        TestDataFactory.create_expense(expense_date=date(2026, 5, 1))
        insert_ledger_with_balance(self.customer, date(2024, 2, 1), 'invoice', debit_amount=Decimal('500'))

    def test_cutoff_date(self):
        """Retention years count back from today, zero means tomorrow"""
        self.assertEqual(get_cutoff_date(1, self.today), date(2025, 6, 15))
        self.assertEqual(get_cutoff_date(0, self.today), self.today + timedelta(days=1))
        self.assertEqual(get_cutoff_date(1, date(2028, 2, 29)), date(2027, 2, 28))

    def test_invalid_retention(self):
        """Unsupported retention periods are rejected"""
        with self.assertRaises(ValidationFailed):
            get_cutoff_date(4, self.today)

    def test_preview_counts(self):
        """Preview counts rows older than the cutoff without deleting"""
        result = preview_archive(1, today=self.today)
        self.assertEqual(result['counts']['deliveries'], 1)
        self.assertEqual(result['counts']['delivery_items'], 1)
        self.assertEqual(result['counts']['expenses'], 1)
        self.assertNotIn('customer_ledger', result['counts'])
        self.assertEqual(Delivery.objects.count(), 2)

    def test_execute_requires_correct_pin(self):
        """A wrong PIN aborts the archive"""
        with self.assertRaises(InvalidPin):
            execute_archive(1, self.admin, '111111', today=self.today)
        with self.assertRaises(InvalidPin):
            execute_archive(1, self.admin, 'abc', today=self.today)
        self.assertEqual(Delivery.objects.count(), 2)

    def test_execute_requires_super_admin(self):
        """Managers cannot archive"""
        manager = TestDataFactory.create_user(role=MANAGER, pin='654321')
        with self.assertRaises(PermissionDenied):
            execute_archive(1, manager, '654321', today=self.today)

    def test_execute_keeps_ledger(self):
        """A retention archive deletes old rows and keeps the ledger"""
        result = execute_archive(1, self.admin, '654321', today=self.today)
        self.assertEqual(result['deleted']['deliveries'], 1)
        self.assertEqual(list(Delivery.objects.all()), [self.new_delivery])
        self.assertEqual(Expense.objects.count(), 1)
        self.assertEqual(LedgerEntry.objects.count(), 1)
        self.assertTrue(AuditLog.objects.filter(action='data_archived').exists())

    def test_export_caps_rows_per_table(self):
        """Export returns the rows an archive would delete, capped per table"""
        TestDataFactory.create_expense(expense_date=date(2024, 4, 1))
        result = export_archive(1, today=self.today)
        self.assertEqual(result['row_limit'], 10000)
        self.assertEqual(result['counts']['expenses'], 2)
        self.assertEqual(result['data']['deliveries'][0]['id'], self.old_delivery.id)

        capped = export_archive(1, today=self.today, limit=1)
        self.assertEqual(capped['counts']['expenses'], 1)
        self.assertEqual(Expense.objects.count(), 3)

    def test_archived_invoice_debits_pass_integrity_checks(self):
        """Debits of archived paid invoices stay in the ledger without failing the checks"""
        invoice = create_invoice(self.customer, date(2024, 1, 1), date(2024, 1, 31),
                                 [{'description': 'Milk', 'quantity': Decimal('10'), 'rate': Decimal('60')}])
        record_payment(invoice, Decimal('600.00'), 'cash', payment_date=date(2024, 2, 5))
        Invoice.objects.filter(pk=invoice.pk).update(created_at=timezone.now() - timedelta(days=800))
        self.assertEqual(run_integrity_checks()['status'], 'pass')

        result = execute_archive(1, self.admin, '654321', today=self.today)
        self.assertEqual(result['deleted']['invoices'], 1)
        self.assertEqual(result['detached_ledger_entries'], 1)
        debit = LedgerEntry.objects.get(description=f"Invoice {invoice.invoice_number} generated")
        self.assertIsNone(debit.reference_id)
        self.assertEqual(run_integrity_checks()['status'], 'pass')
        self.customer.refresh_from_db()
        self.assertEqual(self.customer.credit_balance, Decimal('500.00'))

    def test_factory_reset_clears_ledger(self):
        """Retention zero removes every row, including the ledger"""
        result = execute_archive(0, self.admin, '654321', today=self.today)
        self.assertTrue(result['is_factory_reset'])
        self.assertEqual(Delivery.objects.count(), 0)
        self.assertEqual(LedgerEntry.objects.count(), 0)
        self.customer.refresh_from_db()
        self.assertEqual(self.customer.credit_balance, Decimal('0.00'))

    def test_archive_api_preview(self):
        """The archive endpoint previews for super admins"""
        client = AuthenticatedAPIClient()
        client.authenticate_user(self.admin)
        response = client.post('/api/v1/archive/', {'mode': 'preview', 'retention_years': 1}, format='json')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['mode'], 'preview')

    def test_archive_api_wrong_pin(self):
        """The archive endpoint answers 403 on a wrong PIN"""
        client = AuthenticatedAPIClient()
        client.authenticate_user(self.admin)
        data = {'mode': 'execute', 'retention_years': 1, 'pin': '000000'}
        response = client.post('/api/v1/archive/', data, format='json')
        self.assertEqual(response.status_code, 403)
