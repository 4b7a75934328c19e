"""
Tests for product catalog API
"""
from decimal import Decimal

from django.test import TestCase

from dairy.catalog.models import Product
from dairy.core.permissions import DELIVERY_STAFF, MANAGER
from dairy.core.test_utils import TestDataFactory, AuthenticatedAPIClient


class ProductAPITests(TestCase):
    """Test product endpoints"""

    def setUp(self):
        self.user = TestDataFactory.create_user(role=MANAGER)
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)

    def test_create_product(self):
        """Test creating a product"""
        data = {'name': 'Buffalo Milk', 'category': 'milk', 'base_price': '70.00', 'unit': 'L'}
        response = self.client.post('/api/v1/products/', data, format='json')
        self.assertEqual(response.status_code, 201)
        self.assertEqual(Product.objects.get(name='Buffalo Milk').base_price, Decimal('70.00'))

    def test_negative_price_rejected(self):
        """Test that a negative price is rejected"""
        data = {'name': 'Curd', 'category': 'curd', 'base_price': '-1.00'}
        response = self.client.post('/api/v1/products/', data, format='json')
        self.assertEqual(response.status_code, 400)

    def test_filter_active(self):
        """Test filtering products by active status"""
        TestDataFactory.create_product(name='Active Milk')
        TestDataFactory.create_product(name='Old Ghee', is_active=False)
        response = self.client.get('/api/v1/products/?active=false')
        self.assertEqual(response.status_code, 200)
        self.assertEqual([p['name'] for p in response.data], ['Old Ghee'])

    def test_delivery_staff_cannot_create(self):
        """Test that delivery staff can read but not write products"""
        staff = TestDataFactory.create_user(role=DELIVERY_STAFF)
        self.client.authenticate_user(staff)
        self.assertEqual(self.client.get('/api/v1/products/').status_code, 200)
        response = self.client.post('/api/v1/products/', {'name': 'X', 'base_price': '1'}, format='json')
        self.assertEqual(response.status_code, 403)

    def test_delete_product_in_use_deactivates(self):
        """Test that a subscribed product is deactivated instead of deleted"""
        product = TestDataFactory.create_product()
        customer = TestDataFactory.create_customer()
        TestDataFactory.create_subscription(customer, product)
        response = self.client.delete(f'/api/v1/products/{product.id}/')
        self.assertEqual(response.status_code, 200)
        product.refresh_from_db()
        self.assertFalse(product.is_active)

    def test_delete_unused_product(self):
        """Test deleting a product nobody uses"""
        product = TestDataFactory.create_product()
        response = self.client.delete(f'/api/v1/products/{product.id}/')
        self.assertEqual(response.status_code, 204)
        self.assertFalse(Product.objects.filter(pk=product.pk).exists())
