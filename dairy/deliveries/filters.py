import django_filters
from django.db.models import Q

from .models import Delivery


class DeliveryFilter(django_filters.FilterSet):
    """Filter deliveries by date range, status, customer, type and search text"""
    date = django_filters.DateFilter(field_name='delivery_date')
    date_from = django_filters.DateFilter(field_name='delivery_date', lookup_expr='gte')
    date_to = django_filters.DateFilter(field_name='delivery_date', lookup_expr='lte')
    status = django_filters.ChoiceFilter(choices=Delivery.STATUS_CHOICES)
    delivery_type = django_filters.ChoiceFilter(choices=Delivery.TYPE_CHOICES)
    customer = django_filters.NumberFilter(field_name='customer_id')
    area = django_filters.CharFilter(field_name='customer__area', lookup_expr='iexact')
    search = django_filters.CharFilter(method='filter_search', label='Search')

    class Meta:
        model = Delivery
        fields = ['date', 'date_from', 'date_to', 'status', 'delivery_type', 'customer', 'area', 'search']

    def filter_search(self, queryset, name, value):
        if not value:
            return queryset
        return queryset.filter(
            Q(customer__name__icontains=value) |
            Q(customer__phone__icontains=value) |
            Q(notes__icontains=value)
        )
