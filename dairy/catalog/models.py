from decimal import Decimal

from django.db import models


class Product(models.Model):
    """Dairy product sold to customers (milk, curd, paneer...)"""
    CATEGORY_CHOICES = [
        ('milk', 'Milk'),
        ('curd', 'Curd'),
        ('paneer', 'Paneer'),
        ('ghee', 'Ghee'),
        ('butter', 'Butter'),
        ('buttermilk', 'Buttermilk'),
        ('other', 'Other'),
    ]

    name = models.CharField(max_length=200)
    category = models.CharField(max_length=50, choices=CATEGORY_CHOICES, default='milk')
    description = models.TextField(blank=True, default='')
    base_price = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'))
    unit = models.CharField(max_length=20, default='L')
    tax_percentage = models.DecimalField(max_digits=5, decimal_places=2, default=Decimal('0.00'))
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'products'
        ordering = ['name']

    def __str__(self):
        return f"{self.name} ({self.unit})"
