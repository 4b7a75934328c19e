"""
Tests for delivery scheduling, auto-deliver and add-on orders
"""
from datetime import date
from decimal import Decimal

from django.core.management import call_command
from django.test import TestCase

from dairy.core.exceptions import ValidationFailed
from dairy.core.models import AuditLog
from dairy.core.permissions import ACCOUNTANT, DELIVERY_STAFF
from dairy.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from dairy.deliveries.models import Delivery
from dairy.deliveries.scheduler import (
    AUTO_MARKED_NOTE, AUTO_SCHEDULED_NOTE, auto_deliver_pending_for_date, create_addon_order,
    mark_deliveries_delivered, run_auto_deliver, schedule_deliveries_for_date,
    schedule_deliveries_for_range, should_deliver_on_date, sunday_based_weekday,
)

# 1 March 2026 is a Sunday
SUNDAY = date(2026, 3, 1)
MONDAY = date(2026, 3, 2)
TUESDAY = date(2026, 3, 3)
WEDNESDAY = date(2026, 3, 4)


class FrequencyRuleTests(TestCase):
    """Test should_deliver_on_date"""

    def test_sunday_is_zero(self):
        """Weekday numbers start at Sunday"""
        self.assertEqual(sunday_based_weekday(SUNDAY), 0)
        self.assertEqual(sunday_based_weekday(TUESDAY), 2)

    def test_daily(self):
        """Daily customers get every day"""
        customer = TestDataFactory.create_customer(subscription_type='daily')
        self.assertTrue(should_deliver_on_date(customer, SUNDAY))
        self.assertTrue(should_deliver_on_date(customer, MONDAY))

    def test_alternate_uses_odd_days(self):
        """Alternate customers get odd days of the month"""
        customer = TestDataFactory.create_customer(subscription_type='alternate')
        self.assertTrue(should_deliver_on_date(customer, SUNDAY))
        self.assertFalse(should_deliver_on_date(customer, MONDAY))
        self.assertTrue(should_deliver_on_date(customer, TUESDAY))

    def test_weekly_defaults_to_sunday(self):
        """Weekly customers get the configured day, Sunday when unset"""
        customer = TestDataFactory.create_customer(subscription_type='weekly')
        self.assertTrue(should_deliver_on_date(customer, SUNDAY))
        self.assertFalse(should_deliver_on_date(customer, MONDAY))
        customer.delivery_schedule = {'frequency': 'weekly', 'day': 3}
        self.assertTrue(should_deliver_on_date(customer, WEDNESDAY))
        self.assertFalse(should_deliver_on_date(customer, SUNDAY))

    def test_custom_days(self):
        """Custom customers get the listed weekdays"""
        customer = TestDataFactory.create_customer(
            subscription_type='custom', delivery_schedule={'frequency': 'custom', 'days': [1, 3]}
        )
        self.assertTrue(should_deliver_on_date(customer, MONDAY))
        self.assertFalse(should_deliver_on_date(customer, TUESDAY))
        self.assertTrue(should_deliver_on_date(customer, WEDNESDAY))

    def test_custom_without_days_means_every_day(self):
        """A custom schedule with no day list delivers daily"""
        customer = TestDataFactory.create_customer(subscription_type='custom')
        self.assertTrue(should_deliver_on_date(customer, TUESDAY))

    def test_delivery_days_map_wins(self):
        """The named weekday map overrides the frequency"""
        customer = TestDataFactory.create_customer(
            subscription_type='daily', delivery_schedule={'delivery_days': {'monday': True, 'tuesday': False}}
        )
        self.assertTrue(should_deliver_on_date(customer, MONDAY))
        self.assertFalse(should_deliver_on_date(customer, TUESDAY))
        self.assertFalse(should_deliver_on_date(customer, SUNDAY))


    def test_malformed_schedule_in_notes_uses_defaults(self):
        """Unreadable weekday values fall back to the defaults"""
        weekly = TestDataFactory.create_customer(notes='Schedule: {"frequency": "weekly", "day": "monday"}')
        self.assertTrue(should_deliver_on_date(weekly, SUNDAY))
        self.assertFalse(should_deliver_on_date(weekly, MONDAY))
        custom = TestDataFactory.create_customer(notes='Schedule: {"frequency": "custom", "days": "1,3"}')
        self.assertTrue(should_deliver_on_date(custom, TUESDAY))


class SchedulingTests(TestCase):
    """Test schedule_deliveries_for_date and friends"""

    def setUp(self):
        self.milk = TestDataFactory.create_product(base_price=Decimal('60.00'))
        self.customer = TestDataFactory.create_customer(name='Anita')
        TestDataFactory.create_subscription(self.customer, self.milk, quantity=Decimal('2.000'))

    def test_schedules_pending_delivery_with_items(self):
        """A scheduled delivery is pending with the subscription items"""
        result = schedule_deliveries_for_date(MONDAY)
        self.assertEqual(result['scheduled'], 1)
        delivery = Delivery.objects.get(customer=self.customer, delivery_date=MONDAY)
        self.assertEqual(delivery.status, 'pending')
        item = delivery.items.get()
        self.assertEqual(item.quantity, Decimal('2.000'))
        self.assertEqual(item.total_amount, Decimal('120.00'))

    def test_custom_price_used(self):
        """A subscription's custom price overrides the base price"""
        other = TestDataFactory.create_customer()
        TestDataFactory.create_subscription(other, self.milk, quantity=Decimal('1.000'), custom_price=Decimal('55.00'))
        schedule_deliveries_for_date(MONDAY)
        item = Delivery.objects.get(customer=other).items.get()
        self.assertEqual(item.unit_price, Decimal('55.00'))

    def test_scheduling_twice_skips(self):
        """Existing subscription deliveries are not duplicated"""
        schedule_deliveries_for_date(MONDAY)
        result = schedule_deliveries_for_date(MONDAY)
        self.assertEqual(result['scheduled'], 0)
        self.assertEqual(result['skipped'], 1)
        self.assertEqual(Delivery.objects.filter(delivery_date=MONDAY).count(), 1)

    def test_vacation_skipped(self):
        """Customers on vacation are skipped"""
        TestDataFactory.create_vacation(self.customer, SUNDAY, TUESDAY)
        result = schedule_deliveries_for_date(MONDAY)
        self.assertEqual(result['scheduled'], 0)
        self.assertEqual(result['skipped'], 1)

    def test_inactive_customers_ignored(self):
        """Inactive customers and inactive subscriptions are not scheduled"""
        self.customer.is_active = False
        self.customer.save()
        other = TestDataFactory.create_customer()
        TestDataFactory.create_subscription(other, self.milk, is_active=False)
        result = schedule_deliveries_for_date(MONDAY)
        self.assertEqual(result['scheduled'], 0)
        self.assertEqual(Delivery.objects.count(), 0)

    def test_auto_mark_delivered(self):
        """Scheduling can create deliveries already delivered"""
        schedule_deliveries_for_date(MONDAY, auto_mark_delivered=True)
        delivery = Delivery.objects.get()
        self.assertEqual(delivery.status, 'delivered')
        self.assertIsNotNone(delivery.delivery_time)

    def test_range(self):
        """A range schedules one batch per day"""
        results = schedule_deliveries_for_range(SUNDAY, days=3)
        self.assertEqual([r['scheduled'] for r in results], [1, 1, 1])
        with self.assertRaises(ValidationFailed):
            schedule_deliveries_for_range(SUNDAY, days=32)


class AutoDeliverTests(TestCase):
    """Test the daily auto-deliver job"""

    def setUp(self):
        self.milk = TestDataFactory.create_product()
        self.new_customer = TestDataFactory.create_customer(name='A New')
        self.pending_customer = TestDataFactory.create_customer(name='B Pending')
        self.missed_customer = TestDataFactory.create_customer(name='C Missed')
        self.vacation_customer = TestDataFactory.create_customer(name='D Vacation')
        self.alternate_customer = TestDataFactory.create_customer(name='E Alternate', subscription_type='alternate')
        for customer in (self.new_customer, self.pending_customer, self.missed_customer,
                         self.vacation_customer, self.alternate_customer):
            TestDataFactory.create_subscription(customer, self.milk)
        self.pending = TestDataFactory.create_delivery(self.pending_customer, MONDAY, status='pending')
        self.missed = TestDataFactory.create_delivery(self.missed_customer, MONDAY, status='missed')
        TestDataFactory.create_vacation(self.vacation_customer, MONDAY, MONDAY)

    def test_counters(self):
        """Each customer lands in exactly one bucket"""
        result = run_auto_deliver(MONDAY)
        self.assertEqual(result['scheduled'], 1)
        self.assertEqual(result['delivered'], 2)
        self.assertEqual(result['skipped'], 3)
        self.assertEqual(result['errors'], [])

    def test_delivery_states(self):
        """New deliveries are created delivered and pending ones are marked"""
        run_auto_deliver(MONDAY)
        created = Delivery.objects.get(customer=self.new_customer, delivery_date=MONDAY)
        self.assertEqual(created.status, 'delivered')
        self.assertEqual(created.notes, AUTO_SCHEDULED_NOTE)
        self.assertEqual(created.items.count(), 1)

        self.pending.refresh_from_db()
        self.assertEqual(self.pending.status, 'delivered')
        self.assertEqual(self.pending.notes, AUTO_MARKED_NOTE)
        self.assertEqual(self.pending.items.count(), 1)

        self.missed.refresh_from_db()
        self.assertEqual(self.missed.status, 'missed')
        self.assertFalse(Delivery.objects.filter(customer=self.vacation_customer).exists())
        self.assertFalse(Delivery.objects.filter(customer=self.alternate_customer).exists())

    def test_rerun_is_idempotent(self):
        """A second run creates nothing new"""
        run_auto_deliver(MONDAY)
        result = run_auto_deliver(MONDAY)
        self.assertEqual(result['scheduled'], 0)
        self.assertEqual(result['delivered'], 0)
        self.assertEqual(Delivery.objects.filter(delivery_date=MONDAY).count(), 3)

    def test_management_command(self):
        """The command runs auto-deliver and writes an audit log"""
        call_command('auto_deliver', '--date', MONDAY.isoformat())
        self.assertTrue(Delivery.objects.filter(customer=self.new_customer, delivery_date=MONDAY).exists())
        self.assertTrue(AuditLog.objects.filter(action='auto_deliver').exists())

    def test_bad_schedule_does_not_stop_job(self):
        """A customer with an unreadable schedule does not block the others"""
        broken = TestDataFactory.create_customer(
            name='F Broken', notes='Schedule: {"frequency": "weekly", "day": "monday"}'
        )
        TestDataFactory.create_subscription(broken, self.milk)
        result = run_auto_deliver(MONDAY)
        self.assertEqual(result['errors'], [])
        self.assertEqual(result['scheduled'], 1)
        self.assertEqual(result['skipped'], 4)
        self.assertTrue(Delivery.objects.filter(customer=self.new_customer, delivery_date=MONDAY).exists())
        self.assertFalse(Delivery.objects.filter(customer=broken).exists())


class AutoDeliverPendingTests(TestCase):
    """Test auto_deliver_pending_for_date"""

    def setUp(self):
        self.milk = TestDataFactory.create_product(base_price=Decimal('50.00'))
        self.customer = TestDataFactory.create_customer()
        TestDataFactory.create_subscription(self.customer, self.milk, quantity=Decimal('2.000'))

    def test_marks_pending_and_adds_items(self):
        """Pending deliveries of the date are delivered with subscription items"""
        pending = TestDataFactory.create_delivery(self.customer, MONDAY, status='pending')
        missed = TestDataFactory.create_delivery(TestDataFactory.create_customer(), MONDAY, status='missed')
        other_day = TestDataFactory.create_delivery(self.customer, TUESDAY, status='pending')

        result = auto_deliver_pending_for_date(MONDAY)
        self.assertEqual(result['delivered'], 1)
        self.assertEqual(result['errors'], [])
        pending.refresh_from_db()
        self.assertEqual(pending.status, 'delivered')
        self.assertIsNotNone(pending.delivery_time)
        item = pending.items.get()
        self.assertEqual(item.total_amount, Decimal('100.00'))
        missed.refresh_from_db()
        other_day.refresh_from_db()
        self.assertEqual(missed.status, 'missed')
        self.assertEqual(other_day.status, 'pending')

    def test_existing_items_kept(self):
        """Deliveries that already have items are not topped up"""
        pending = TestDataFactory.create_delivery(self.customer, MONDAY, status='pending',
                                                  items=[(self.milk, Decimal('5'))])
        auto_deliver_pending_for_date(MONDAY)
        self.assertEqual(pending.items.get().quantity, Decimal('5.000'))


class BulkMarkTests(TestCase):
    """Test mark_deliveries_delivered"""

    def setUp(self):
        self.milk = TestDataFactory.create_product()
        self.customer = TestDataFactory.create_customer()
        TestDataFactory.create_subscription(self.customer, self.milk)

    def test_bulk_mark(self):
        """Pending deliveries are marked, others skipped, unknown ids failed"""
        pending = TestDataFactory.create_delivery(self.customer, MONDAY, status='pending')
        delivered = TestDataFactory.create_delivery(self.customer, TUESDAY, status='delivered')
        result = mark_deliveries_delivered([pending.id, delivered.id, 999999])
        self.assertEqual(result['success'], 1)
        self.assertEqual(result['skipped'], 1)
        self.assertEqual(result['failed'], 1)
        self.assertIn('Delivery 999999 not found', result['errors'])
        pending.refresh_from_db()
        self.assertEqual(pending.status, 'delivered')
        self.assertEqual(pending.items.count(), 1)

    def test_vacation_skipped(self):
        """Deliveries during a vacation are not marked"""
        pending = TestDataFactory.create_delivery(self.customer, MONDAY, status='pending')
        TestDataFactory.create_vacation(self.customer, MONDAY, TUESDAY)
        result = mark_deliveries_delivered([pending.id])
        self.assertEqual(result['skipped'], 1)
        pending.refresh_from_db()
        self.assertEqual(pending.status, 'pending')


class AddonOrderTests(TestCase):
    """Test add-on orders"""

    def setUp(self):
        self.paneer = TestDataFactory.create_product(name='Paneer', category='paneer', base_price=Decimal('400.00'))
        self.customer = TestDataFactory.create_customer()

    def test_create_addon(self):
        """An add-on order is a delivered addon delivery"""
        delivery = create_addon_order(self.customer, MONDAY, [{'product': self.paneer, 'quantity': Decimal('0.5')}])
        self.assertEqual(delivery.delivery_type, 'addon')
        self.assertEqual(delivery.status, 'delivered')
        self.assertEqual(delivery.items.get().total_amount, Decimal('200.00'))

    def test_addon_requires_items(self):
        """Zero quantities are rejected"""
        with self.assertRaises(ValidationFailed):
            create_addon_order(self.customer, MONDAY, [{'product': self.paneer, 'quantity': 0}])

    def test_addon_inactive_customer(self):
        """Inactive customers cannot order"""
        self.customer.is_active = False
        self.customer.save()
        with self.assertRaises(ValidationFailed):
            create_addon_order(self.customer, MONDAY, [{'product': self.paneer, 'quantity': 1}])


class DeliveryAPITests(TestCase):
    """Test delivery endpoints"""

    def setUp(self):
        self.user = TestDataFactory.create_user(role=DELIVERY_STAFF)
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)
        self.milk = TestDataFactory.create_product(base_price=Decimal('50.00'))
        self.customer = TestDataFactory.create_customer(area='East')
        TestDataFactory.create_subscription(self.customer, self.milk)

    def test_schedule_endpoint(self):
        """Test scheduling deliveries over a few days"""
        data = {'date': MONDAY.isoformat(), 'days': 2}
        response = self.client.post('/api/v1/deliveries/schedule/', data, format='json')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['total_scheduled'], 2)
        self.assertTrue(AuditLog.objects.filter(action='delivery_schedule').exists())

    def test_auto_deliver_endpoint(self):
        """Test running auto-deliver for a date"""
        response = self.client.post('/api/v1/deliveries/auto-deliver/', {'date': MONDAY.isoformat()}, format='json')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['scheduled'], 1)

    def test_list_filters(self):
        """Test filtering deliveries by date and area"""
        TestDataFactory.create_delivery(self.customer, MONDAY, items=[(self.milk, 1)])
        TestDataFactory.create_delivery(self.customer, TUESDAY, items=[(self.milk, 1)])
        response = self.client.get(f'/api/v1/deliveries/?date={MONDAY.isoformat()}&area=East')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(len(response.data), 1)
        self.assertEqual(response.data[0]['total_amount'], '50.00')

    def test_addon_endpoint(self):
        """Test posting an add-on order"""
        data = {
            'customer': self.customer.id,
            'delivery_date': MONDAY.isoformat(),
            'items': [{'product': self.milk.id, 'quantity': '3.000', 'unit_price': '45.00'}],
        }
        response = self.client.post('/api/v1/deliveries/addon/', data, format='json')
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data['delivery_type'], 'addon')
        self.assertEqual(response.data['total_amount'], '135.00')

    def test_replace_items(self):
        """Test replacing the items of a delivery"""
        delivery = TestDataFactory.create_delivery(self.customer, MONDAY, items=[(self.milk, 1)])
        data = {'items': [{'product': self.milk.id, 'quantity': '2.500'}]}
        response = self.client.put(f'/api/v1/deliveries/{delivery.id}/items/', data, format='json')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['total_amount'], '125.00')

    def test_bulk_mark_endpoint(self):
        """Test bulk marking deliveries delivered"""
        pending = TestDataFactory.create_delivery(self.customer, MONDAY, status='pending')
        response = self.client.post('/api/v1/deliveries/bulk-mark-delivered/',
                                    {'delivery_ids': [pending.id]}, format='json')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['success'], 1)

    def test_accountant_cannot_schedule(self):
        """Test that scheduling needs a delivery role"""
        accountant = TestDataFactory.create_user(role=ACCOUNTANT)
        self.client.authenticate_user(accountant)
        response = self.client.post('/api/v1/deliveries/schedule/', {'date': MONDAY.isoformat()}, format='json')
        self.assertEqual(response.status_code, 403)
