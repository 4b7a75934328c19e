"""
Tests for expenses and automatic expense logging
"""
from datetime import date
from decimal import Decimal

from django.test import TestCase

from dairy.core.permissions import ACCOUNTANT, FARM_WORKER
from dairy.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from dairy.expenses.models import Expense
from dairy.expenses.services import create_auto_expense, find_auto_expense


class AutoExpenseTests(TestCase):
    """Test create_auto_expense"""

    def test_creates_once(self):
        """A second call for the same source returns the first expense"""
        first = create_auto_expense('vendor_payment', 1, 'feed', 'Vendor Payment - Ravi',
                                    Decimal('300'), date(2026, 3, 1), notes='Payment via cash')
        second = create_auto_expense('vendor_payment', 1, 'feed', 'Vendor Payment - Ravi',
                                     Decimal('300'), date(2026, 3, 1))
        self.assertEqual(first.pk, second.pk)
        self.assertEqual(Expense.objects.count(), 1)
        self.assertEqual(first.notes, '[AUTO] vendor_payment:1 | Payment via cash')

    def test_reference_match_is_exact(self):
        """Source 1 does not match an expense for source 12"""
        create_auto_expense('vendor_payment', 12, 'feed', 'Twelve', Decimal('100'), date(2026, 3, 1))
        self.assertIsNone(find_auto_expense('vendor_payment', 1))
        create_auto_expense('vendor_payment', 1, 'feed', 'One', Decimal('100'), date(2026, 3, 1))
        self.assertEqual(Expense.objects.count(), 2)

    def test_non_positive_amount_skipped(self):
        """Nothing is recorded for a zero amount"""
        self.assertIsNone(create_auto_expense('vendor_payment', 5, 'feed', 'Zero', Decimal('0'), date(2026, 3, 1)))
        self.assertFalse(Expense.objects.exists())


class ExpenseAPITests(TestCase):
    """Test expense endpoints"""

    def setUp(self):
        self.user = TestDataFactory.create_user(role=ACCOUNTANT)
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)

    def test_create_expense(self):
        """Test recording an expense"""
        data = {'title': 'Cattle feed', 'category': 'feed', 'amount': '2500.00', 'expense_date': '2026-03-02'}
        response = self.client.post('/api/v1/expenses/', data, format='json')
        self.assertEqual(response.status_code, 201)
        self.assertEqual(Expense.objects.get().recorded_by, self.user)

    def test_list_with_total(self):
        """Test that the list returns the filtered total"""
        TestDataFactory.create_expense(category='feed', amount=Decimal('200.00'), expense_date=date(2026, 3, 1))
        TestDataFactory.create_expense(category='feed', amount=Decimal('150.00'), expense_date=date(2026, 3, 2))
        TestDataFactory.create_expense(category='salary', amount=Decimal('9000.00'), expense_date=date(2026, 3, 2))
        response = self.client.get('/api/v1/expenses/?category=feed')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['count'], 2)
        self.assertEqual(Decimal(response.data['total_amount']), Decimal('350.00'))

    def test_filter_auto(self):
        """Test separating automatic from manual expenses"""
        TestDataFactory.create_expense(title='Manual')
        create_auto_expense('vendor_payment', 3, 'feed', 'Automatic', Decimal('10'), date(2026, 3, 1))
        response = self.client.get('/api/v1/expenses/?auto=true')
        self.assertEqual([e['title'] for e in response.data['results']], ['Automatic'])
        response = self.client.get('/api/v1/expenses/?auto=false')
        self.assertEqual([e['title'] for e in response.data['results']], ['Manual'])

    def test_farm_worker_cannot_create(self):
        """Test that expenses need an expense role"""
        worker = TestDataFactory.create_user(role=FARM_WORKER)
        self.client.authenticate_user(worker)
        data = {'title': 'x', 'category': 'other', 'amount': '1.00', 'expense_date': '2026-03-02'}
        response = self.client.post('/api/v1/expenses/', data, format='json')
        self.assertEqual(response.status_code, 403)
