import django_filters
from django.db.models import Q

from .models import Expense


class ExpenseFilter(django_filters.FilterSet):
    category = django_filters.ChoiceFilter(choices=Expense.CATEGORY_CHOICES)
    date_from = django_filters.DateFilter(field_name='expense_date', lookup_expr='gte')
    date_to = django_filters.DateFilter(field_name='expense_date', lookup_expr='lte')
    search = django_filters.CharFilter(method='filter_search', label='Search')
    auto = django_filters.BooleanFilter(method='filter_auto', label='Automatic')

    class Meta:
        model = Expense
        fields = ['category', 'date_from', 'date_to', 'search', 'auto']

    def filter_search(self, queryset, name, value):
        if not value:
            return queryset
        return queryset.filter(Q(title__icontains=value) | Q(notes__icontains=value))

    def filter_auto(self, queryset, name, value):
        if value is None:
            return queryset
        if value:
            return queryset.filter(notes__startswith='[AUTO]')
        return queryset.exclude(notes__startswith='[AUTO]')
