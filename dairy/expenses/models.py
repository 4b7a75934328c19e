from django.db import models

from dairy.core.models import User


class Expense(models.Model):
    """Money spent running the dairy"""
    CATEGORY_CHOICES = [
        ('feed', 'Feed'),
        ('salary', 'Salary'),
        ('medicine', 'Medicine'),
        ('equipment', 'Equipment'),
        ('maintenance', 'Maintenance'),
        ('utilities', 'Utilities'),
        ('transport', 'Transport'),
        ('other', 'Other'),
    ]

    title = models.CharField(max_length=255)
    category = models.CharField(max_length=20, choices=CATEGORY_CHOICES, default='other')
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    expense_date = models.DateField()
    notes = models.TextField(blank=True, default='')
    recorded_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='expenses')
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"{self.title} - {self.amount}"

    class Meta:
        db_table = 'expenses'
        ordering = ['-expense_date', '-created_at']
        indexes = [
            models.Index(fields=['category', 'expense_date'], name='expenses_category_date_idx'),
        ]
