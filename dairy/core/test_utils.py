"""
Test utilities and factories for creating test data
"""
from django.contrib.auth import get_user_model
from django.contrib.auth.models import Group
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken
from dairy.billing.models import Invoice
from dairy.catalog.models import Product
from dairy.customers.models import Customer, CustomerSubscription, CustomerVacation
from dairy.deliveries.models import Delivery, DeliveryItem
from dairy.expenses.models import Expense
from dairy.procurement.models import MilkProcurement, MilkVendor
from decimal import Decimal
from django.utils import timezone
import random
import string

User = get_user_model()


class TestDataFactory:
    """Factory class for creating test data"""

    @staticmethod
    def random_string(length=10):
        """Generate a random string"""
        return ''.join(random.choices(string.ascii_letters + string.digits, k=length))

    @staticmethod
    def create_user(username=None, email=None, password='testpass123', role=None,
                    is_staff=False, is_superuser=False, pin=None):
        """Create a test user, optionally in a role group and with a PIN"""
        if not username:
            username = f'testuser_{TestDataFactory.random_string(6)}'
        if not email:
            email = f'{username}@test.com'
        user = User.objects.create_user(
            username=username,
            email=email,
            password=password,
            is_staff=is_staff,
            is_superuser=is_superuser
        )
        if role:
            group, _ = Group.objects.get_or_create(name=role)
            user.groups.add(group)
        if pin:
            user.set_pin(pin)
            user.save(update_fields=['pin_hash'])
        return user

    @staticmethod
    def create_product(name=None, category='milk', base_price=None, unit='L', is_active=True):
        """Create a test product"""
        if not name:
            name = f'Product_{TestDataFactory.random_string(6)}'
        return Product.objects.create(
            name=name,
            category=category,
            base_price=base_price if base_price is not None else Decimal('60.00'),
            unit=unit,
            is_active=is_active
        )

    @staticmethod
    def create_customer(name=None, phone=None, area='Central', subscription_type='daily',
                        delivery_schedule=None, notes='', is_active=True):
        """Create a test customer"""
        if not name:
            name = f'Customer_{TestDataFactory.random_string(6)}'
        if not phone:
            phone = f'9{random.randint(100000000, 999999999)}'
        return Customer.objects.create(
            name=name,
            phone=phone,
            area=area,
            subscription_type=subscription_type,
            delivery_schedule=delivery_schedule or {},
            notes=notes,
            is_active=is_active
        )

    @staticmethod
    def create_subscription(customer, product=None, quantity=None, custom_price=None, is_active=True):
        """Create a test subscription"""
        if not product:
            product = TestDataFactory.create_product()
        return CustomerSubscription.objects.create(
            customer=customer,
            product=product,
            quantity=quantity if quantity is not None else Decimal('1.000'),
            custom_price=custom_price,
            is_active=is_active
        )

    @staticmethod
    def create_vacation(customer, start_date, end_date, is_active=True):
        """Create a test vacation"""
        return CustomerVacation.objects.create(
            customer=customer,
            start_date=start_date,
            end_date=end_date,
            is_active=is_active
        )

    @staticmethod
    def create_delivery(customer, delivery_date=None, status='delivered', delivery_type='subscription', items=None):
        """Create a test delivery; ``items`` is a list of (product, quantity[, unit_price])"""
        delivery = Delivery.objects.create(
            customer=customer,
            delivery_date=delivery_date or timezone.localdate(),
            status=status,
            delivery_type=delivery_type
        )
        for item in items or []:
            product, quantity = item[0], Decimal(str(item[1]))
            unit_price = item[2] if len(item) > 2 else product.base_price
            DeliveryItem.objects.create(
                delivery=delivery,
                product=product,
                quantity=quantity,
                unit_price=unit_price
            )
        return delivery

    @staticmethod
    def create_invoice(customer, final_amount=None, period_start=None, period_end=None,
                       payment_status='pending', paid_amount=None, due_date=None, invoice_number=None):
        """Create a bare invoice row without ledger posting"""
        today = timezone.localdate()
        amount = final_amount if final_amount is not None else Decimal('1000.00')
        return Invoice.objects.create(
            invoice_number=invoice_number or f'INV-TEST-{TestDataFactory.random_string(6).upper()}',
            customer=customer,
            billing_period_start=period_start or today.replace(day=1),
            billing_period_end=period_end or today,
            total_amount=amount,
            final_amount=amount,
            payment_status=payment_status,
            paid_amount=paid_amount if paid_amount is not None else Decimal('0.00'),
            due_date=due_date
        )

    @staticmethod
    def create_vendor(name=None, area='Village'):
        """Create a test milk vendor"""
        if not name:
            name = f'Vendor_{TestDataFactory.random_string(6)}'
        return MilkVendor.objects.create(name=name, phone='9876543210', area=area)

    @staticmethod
    def create_procurement(vendor=None, procurement_date=None, session='morning', quantity=None,
                           rate=None, fat=None, snf=None, vendor_name=''):
        """Create a test milk procurement"""
        return MilkProcurement.objects.create(
            vendor=vendor,
            vendor_name=vendor_name,
            procurement_date=procurement_date or timezone.localdate(),
            session=session,
            quantity_liters=quantity if quantity is not None else Decimal('10.00'),
            rate_per_liter=rate,
            fat_percentage=fat,
            snf_percentage=snf
        )

    @staticmethod
    def create_expense(title=None, category='other', amount=None, expense_date=None, notes=''):
        """Create a test expense"""
        return Expense.objects.create(
            title=title or f'Expense_{TestDataFactory.random_string(6)}',
            category=category,
            amount=amount if amount is not None else Decimal('100.00'),
            expense_date=expense_date or timezone.localdate(),
            notes=notes
        )


class AuthenticatedAPIClient(APIClient):
    """APIClient with authentication helper"""

    def authenticate_user(self, user):
        """Authenticate the client with a user"""
        refresh = RefreshToken.for_user(user)
        self.credentials(HTTP_AUTHORIZATION=f'Bearer {refresh.access_token}')
        return self

    def logout(self):
        """Remove authentication"""
        self.credentials()
