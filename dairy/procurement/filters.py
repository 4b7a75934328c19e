import django_filters
from django.db.models import Q

from .models import MilkProcurement, MilkVendor, VendorPayment


class MilkVendorFilter(django_filters.FilterSet):
    search = django_filters.CharFilter(method='filter_search', label='Search')
    area = django_filters.CharFilter(field_name='area', lookup_expr='iexact')
    active = django_filters.CharFilter(method='filter_active', label='Active')

    class Meta:
        model = MilkVendor
        fields = ['search', 'area', 'active']

    def filter_search(self, queryset, name, value):
        if not value:
            return queryset
        return queryset.filter(Q(name__icontains=value) | Q(phone__icontains=value))

    def filter_active(self, queryset, name, value):
        """Filter by active status (handles string 'true'/'false')"""
        if value is None or value == '':
            return queryset
        return queryset.filter(is_active=value.lower() == 'true')


class MilkProcurementFilter(django_filters.FilterSet):
    vendor = django_filters.NumberFilter(field_name='vendor_id')
    session = django_filters.ChoiceFilter(choices=MilkProcurement.SESSION_CHOICES)
    payment_status = django_filters.ChoiceFilter(choices=MilkProcurement.PAYMENT_STATUS_CHOICES)
    date = django_filters.DateFilter(field_name='procurement_date')
    date_from = django_filters.DateFilter(field_name='procurement_date', lookup_expr='gte')
    date_to = django_filters.DateFilter(field_name='procurement_date', lookup_expr='lte')

    class Meta:
        model = MilkProcurement
        fields = ['vendor', 'session', 'payment_status', 'date', 'date_from', 'date_to']


class VendorPaymentFilter(django_filters.FilterSet):
    vendor = django_filters.NumberFilter(field_name='vendor_id')
    date_from = django_filters.DateFilter(field_name='payment_date', lookup_expr='gte')
    date_to = django_filters.DateFilter(field_name='payment_date', lookup_expr='lte')

    class Meta:
        model = VendorPayment
        fields = ['vendor', 'date_from', 'date_to']
