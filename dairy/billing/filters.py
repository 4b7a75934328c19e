import django_filters
from django.db.models import Q
from django.utils import timezone

from .models import Invoice, Payment


class InvoiceFilter(django_filters.FilterSet):
    """
    Filter invoices by customer, period, search text and status.

    ``status`` matches the effective status: an unpaid invoice past its due
    date counts as overdue whatever is stored.
    """
    customer = django_filters.NumberFilter(field_name='customer_id')
    status = django_filters.CharFilter(method='filter_status', label='Status')
    date_from = django_filters.DateFilter(field_name='billing_period_start', lookup_expr='gte')
    date_to = django_filters.DateFilter(field_name='billing_period_end', lookup_expr='lte')
    search = django_filters.CharFilter(method='filter_search', label='Search')

    class Meta:
        model = Invoice
        fields = ['customer', 'status', 'date_from', 'date_to', 'search']

    def filter_status(self, queryset, name, value):
        if not value:
            return queryset
        today = timezone.localdate()
        past_due = Q(due_date__lt=today) & ~Q(payment_status='paid')
        if value == 'overdue':
            return queryset.filter(Q(payment_status='overdue') | past_due)
        if value == 'paid':
            return queryset.filter(payment_status='paid')
        return queryset.filter(payment_status=value).exclude(past_due)

    def filter_search(self, queryset, name, value):
        if not value:
            return queryset
        return queryset.filter(
            Q(invoice_number__icontains=value) |
            Q(customer__name__icontains=value) |
            Q(customer__phone__icontains=value)
        )


class PaymentFilter(django_filters.FilterSet):
    customer = django_filters.NumberFilter(field_name='customer_id')
    invoice = django_filters.NumberFilter(field_name='invoice_id')
    payment_mode = django_filters.ChoiceFilter(choices=Payment.PAYMENT_MODE_CHOICES)
    date_from = django_filters.DateFilter(field_name='payment_date', lookup_expr='gte')
    date_to = django_filters.DateFilter(field_name='payment_date', lookup_expr='lte')

    class Meta:
        model = Payment
        fields = ['customer', 'invoice', 'payment_mode', 'date_from', 'date_to']
