"""
Tests for milk procurement, vendor balances and analytics
"""
from datetime import date, timedelta
from decimal import Decimal

from django.core.cache import cache
from django.test import TestCase

from dairy.core.exceptions import ValidationFailed
from dairy.core.permissions import DELIVERY_STAFF, FARM_WORKER
from dairy.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from dairy.expenses.models import Expense
from dairy.procurement.analytics import build_procurement_analytics, get_date_range
from dairy.procurement.models import MilkProcurement, MilkVendor, VendorPayment
from dairy.procurement.services import calculate_vendor_balance, record_vendor_payment
from dairy.procurement.signals import bulk_vendor_changes


class ProcurementModelTests(TestCase):
    """Test procurement totals"""

    def test_total_from_rate(self):
        """Total is quantity times rate"""
        vendor = TestDataFactory.create_vendor(name='Gopal')
        record = TestDataFactory.create_procurement(vendor, quantity=Decimal('12.50'), rate=Decimal('42.00'))
        self.assertEqual(record.total_amount, Decimal('525.00'))
        self.assertEqual(record.vendor_name, 'Gopal')

    def test_no_rate_no_total(self):
        """Without a rate the total stays empty"""
        record = TestDataFactory.create_procurement(vendor_name='Walk-in', quantity=Decimal('5.00'))
        self.assertIsNone(record.total_amount)


class VendorBalanceTests(TestCase):
    """Test vendor balance bookkeeping"""

    def setUp(self):
        self.vendor = TestDataFactory.create_vendor()

    def test_balance_follows_procurements_and_payments(self):
        """Balance is procured value minus payments"""
        TestDataFactory.create_procurement(self.vendor, quantity=Decimal('10.00'), rate=Decimal('40.00'))
        TestDataFactory.create_procurement(self.vendor, session='evening', quantity=Decimal('5.00'), rate=Decimal('40.00'))
        self.vendor.refresh_from_db()
        self.assertEqual(self.vendor.current_balance, Decimal('600.00'))

        record_vendor_payment(self.vendor, Decimal('250.00'))
        self.vendor.refresh_from_db()
        self.assertEqual(self.vendor.current_balance, Decimal('350.00'))

    def test_deleting_procurement_reduces_balance(self):
        """Removing a procurement recalculates the balance"""
        record = TestDataFactory.create_procurement(self.vendor, quantity=Decimal('10.00'), rate=Decimal('40.00'))
        record.delete()
        self.vendor.refresh_from_db()
        self.assertEqual(self.vendor.current_balance, Decimal('0.00'))

    def test_moving_procurement_updates_both_vendors(self):
        """Reassigning a procurement updates the old and new vendor"""
        other = TestDataFactory.create_vendor()
        record = TestDataFactory.create_procurement(self.vendor, quantity=Decimal('10.00'), rate=Decimal('30.00'))
        record.vendor = other
        record.save()
        self.vendor.refresh_from_db()
        other.refresh_from_db()
        self.assertEqual(self.vendor.current_balance, Decimal('0.00'))
        self.assertEqual(other.current_balance, Decimal('300.00'))

    def test_bulk_changes_skip_updates(self):
        """Inside bulk changes the stored balance is left alone"""
        with bulk_vendor_changes():
            TestDataFactory.create_procurement(self.vendor, quantity=Decimal('10.00'), rate=Decimal('40.00'))
        self.vendor.refresh_from_db()
        self.assertEqual(self.vendor.current_balance, Decimal('0.00'))
        self.assertEqual(calculate_vendor_balance(self.vendor.id), Decimal('400.00'))

    def test_payment_logs_expense_once(self):
        """A vendor payment records one feed expense"""
        payment = record_vendor_payment(self.vendor, Decimal('500.00'), payment_mode='upi', reference_number='UTR9')
        expense = Expense.objects.get()
        self.assertEqual(expense.category, 'feed')
        self.assertEqual(expense.amount, Decimal('500.00'))
        self.assertEqual(expense.title, f'Vendor Payment - {self.vendor.name}')
        self.assertEqual(expense.notes, f'[AUTO] vendor_payment:{payment.pk} | Payment via upi (Ref: UTR9)')

    def test_invalid_payment(self):
        """Zero amounts and unknown modes are rejected"""
        with self.assertRaises(ValidationFailed):
            record_vendor_payment(self.vendor, Decimal('0'))
        with self.assertRaises(ValidationFailed):
            record_vendor_payment(self.vendor, Decimal('10'), payment_mode='barter')
        self.assertFalse(VendorPayment.objects.exists())


class AnalyticsTests(TestCase):
    """Test procurement analytics"""

    def setUp(self):
        self.start = date(2026, 3, 1)
        self.end = date(2026, 3, 3)
        self.ravi = TestDataFactory.create_vendor(name='Ravi')
        self.mohan = TestDataFactory.create_vendor(name='Mohan')
        TestDataFactory.create_procurement(self.ravi, date(2026, 3, 1), 'morning', Decimal('20.00'),
                                           rate=Decimal('40.00'), fat=Decimal('4.00'), snf=Decimal('8.50'))
        TestDataFactory.create_procurement(self.ravi, date(2026, 3, 1), 'evening', Decimal('10.00'),
                                           rate=Decimal('44.00'), fat=Decimal('5.00'), snf=Decimal('8.70'))
        TestDataFactory.create_procurement(self.mohan, date(2026, 3, 3), 'morning', Decimal('15.00'),
                                           rate=Decimal('42.00'))

    def _analytics(self):
        records = MilkProcurement.objects.filter(
            procurement_date__gte=self.start, procurement_date__lte=self.end
        ).select_related('vendor')
        return build_procurement_analytics(records, self.start, self.end)

    def test_daily_trends_cover_every_day(self):
        """Days without collections appear with zero totals"""
        trends = self._analytics()['daily_trends']
        self.assertEqual([t['date'] for t in trends], [date(2026, 3, 1), date(2026, 3, 2), date(2026, 3, 3)])
        self.assertEqual(trends[0]['morning'], Decimal('20.00'))
        self.assertEqual(trends[0]['evening'], Decimal('10.00'))
        self.assertEqual(trends[0]['total'], Decimal('30.00'))
        self.assertEqual(trends[1]['total'], Decimal('0.00'))

    def test_averages_are_means(self):
        """Averages ignore records without a reading"""
        result = self._analytics()
        self.assertEqual(result['daily_trends'][0]['avg_fat'], Decimal('4.50'))
        self.assertEqual(result['daily_trends'][0]['avg_snf'], Decimal('8.60'))
        self.assertEqual(result['summary']['avg_fat'], Decimal('4.50'))
        self.assertEqual(result['summary']['avg_rate'], Decimal('42.00'))

    def test_quality_trends_skip_days_without_readings(self):
        """Only days with a fat or SNF reading show in quality trends"""
        quality = self._analytics()['quality_trends']
        self.assertEqual([q['date'] for q in quality], [date(2026, 3, 1)])

    def test_vendor_stats_sorted_by_quantity(self):
        """Vendors are ranked by collected quantity"""
        stats = self._analytics()['vendor_stats']
        self.assertEqual([v['name'] for v in stats], ['Ravi', 'Mohan'])
        self.assertEqual(stats[0]['total_quantity'], Decimal('30.00'))
        self.assertEqual(stats[0]['total_amount'], Decimal('1240.00'))
        self.assertEqual(stats[0]['avg_rate'], Decimal('42.00'))
        self.assertEqual(stats[1]['avg_fat'], Decimal('0.00'))

    def test_summary(self):
        """Summary totals the whole range"""
        summary = self._analytics()['summary']
        self.assertEqual(summary['total_quantity'], Decimal('45.00'))
        self.assertEqual(summary['total_amount'], Decimal('1870.00'))
        self.assertEqual(summary['unique_vendors'], 2)
        self.assertEqual(summary['record_count'], 3)

    def test_date_range_presets(self):
        """Presets count back from today"""
        today = date(2026, 3, 20)
        self.assertEqual(get_date_range('7d', today), (today - timedelta(days=7), today))
        self.assertEqual(get_date_range('month', today), (date(2026, 3, 1), today))
        with self.assertRaises(ValidationFailed):
            get_date_range('1y', today)


class ProcurementAPITests(TestCase):
    """Test procurement endpoints"""

    def setUp(self):
        cache.clear()
        self.user = TestDataFactory.create_user(role=FARM_WORKER)
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)
        self.vendor = TestDataFactory.create_vendor()

    def test_record_procurement(self):
        """Test recording a collection"""
        data = {
            'vendor': self.vendor.id,
            'procurement_date': '2026-03-01',
            'session': 'morning',
            'quantity_liters': '18.50',
            'fat_percentage': '4.20',
            'rate_per_liter': '40.00',
        }
        response = self.client.post('/api/v1/procurements/', data, format='json')
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data['total_amount'], '740.00')
        self.vendor.refresh_from_db()
        self.assertEqual(self.vendor.current_balance, Decimal('740.00'))

    def test_procurement_needs_vendor(self):
        """Test that a vendor or vendor name is required"""
        data = {'procurement_date': '2026-03-01', 'quantity_liters': '5.00'}
        response = self.client.post('/api/v1/procurements/', data, format='json')
        self.assertEqual(response.status_code, 400)

    def test_vendor_payment_endpoint(self):
        """Test paying a vendor"""
        TestDataFactory.create_procurement(self.vendor, quantity=Decimal('10.00'), rate=Decimal('40.00'))
        data = {'vendor': self.vendor.id, 'amount': '100.00', 'payment_mode': 'cash'}
        response = self.client.post('/api/v1/vendor-payments/', data, format='json')
        self.assertEqual(response.status_code, 201)
        self.vendor.refresh_from_db()
        self.assertEqual(self.vendor.current_balance, Decimal('300.00'))
        self.assertEqual(Expense.objects.count(), 1)

    def test_delete_vendor_with_payments_deactivates(self):
        """Test that a vendor with payments is deactivated"""
        record_vendor_payment(self.vendor, Decimal('10.00'))
        response = self.client.delete(f'/api/v1/vendors/{self.vendor.id}/')
        self.assertEqual(response.status_code, 200)
        self.assertFalse(MilkVendor.objects.get(pk=self.vendor.pk).is_active)

    def test_analytics_endpoint(self):
        """Test the analytics endpoint"""
        response = self.client.get('/api/v1/procurements/analytics/?range=7d')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(len(response.data['daily_trends']), 8)

    def test_analytics_bad_range(self):
        """Test that an unknown range is rejected"""
        response = self.client.get('/api/v1/procurements/analytics/?range=forever')
        self.assertEqual(response.status_code, 400)

    def test_delivery_staff_cannot_record(self):
        """Test that procurement writes need a procurement role"""
        staff = TestDataFactory.create_user(role=DELIVERY_STAFF)
        self.client.authenticate_user(staff)
        data = {'vendor': self.vendor.id, 'procurement_date': '2026-03-01', 'quantity_liters': '5.00'}
        response = self.client.post('/api/v1/procurements/', data, format='json')
        self.assertEqual(response.status_code, 403)
