import django_filters
from django.db.models import Q

from .models import Product


class ProductFilter(django_filters.FilterSet):
    """Filter products by search text, category and active status"""
    search = django_filters.CharFilter(method='filter_search', label='Search')
    category = django_filters.CharFilter(field_name='category', lookup_expr='exact')
    active = django_filters.CharFilter(method='filter_active', label='Active')

    class Meta:
        model = Product
        fields = ['search', 'category', 'active']

    def filter_search(self, queryset, name, value):
        if not value:
            return queryset
        return queryset.filter(Q(name__icontains=value) | Q(description__icontains=value))

    def filter_active(self, queryset, name, value):
        """Filter by active status (handles string 'true'/'false')"""
        if value is None or value == '':
            return queryset
        return queryset.filter(is_active=value.lower() == 'true')
