import logging

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django.core.cache import cache
from django.shortcuts import get_object_or_404
from django.utils.dateparse import parse_date

from dairy.core.cache_signals import BILLING_CACHE_PATTERN
from dairy.core.exceptions import DairyError, error_response, forbidden_response
from dairy.core.permissions import can_write, BILLING_ROLES
from dairy.core.utils import create_audit_log
from .filters import InvoiceFilter, PaymentFilter
from .models import Invoice, Payment
from .serializers import (
    InvoiceSerializer, InvoiceItemSerializer, InvoiceCreateSerializer, InvoiceUpdateSerializer,
    PaymentSerializer, PaymentCreateSerializer, AdvancePaymentSerializer,
    MonthlyGenerationSerializer, BulkPeriodSerializer,
)
from .services import (
    bulk_generate_invoices, create_invoice, delete_invoice, generate_monthly_invoices,
    get_billing_summaries, get_invoice_breakdown, record_advance_payment, record_payment, update_invoice,
)
from .utils import get_billing_stats

logger = logging.getLogger(__name__)

BILLING_SUMMARY_CACHE_TTL = 300


# Invoice views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def invoice_list_create(request):
    """List invoices or create one from line items"""
    if request.method == 'GET':
        queryset = Invoice.objects.select_related('customer', 'created_by')
        filterset = InvoiceFilter(request.query_params, queryset=queryset)
        if not filterset.is_valid():
            return Response(filterset.errors, status=status.HTTP_400_BAD_REQUEST)
        return Response(InvoiceSerializer(filterset.qs, many=True).data)

    if not can_write(request.user, BILLING_ROLES, request.method):
        return forbidden_response()
    serializer = InvoiceCreateSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    data = serializer.validated_data
    try:
        invoice = create_invoice(
            customer=data['customer'],
            period_start=data['billing_period_start'],
            period_end=data['billing_period_end'],
            line_items=data['line_items'],
            discount_amount=data['discount_amount'],
            due_date=data.get('due_date'),
            notes=data['notes'],
            user=request.user,
        )
    except DairyError as e:
        return error_response(e)

    create_audit_log(request=request, action='invoice_create', model_name='Invoice',
                     object_id=invoice.id, object_name=invoice.customer.name,
                     object_reference=invoice.invoice_number,
                     changes={'final_amount': str(invoice.final_amount)})
    return Response(InvoiceSerializer(invoice).data, status=status.HTTP_201_CREATED)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def invoice_detail(request, pk):
    """Retrieve, edit or delete an invoice"""
    invoice = get_object_or_404(Invoice.objects.select_related('customer', 'created_by'), pk=pk)

    if request.method == 'GET':
        data = InvoiceSerializer(invoice).data
        data['items'] = InvoiceItemSerializer(invoice.items.all(), many=True).data
        data['breakdown'] = get_invoice_breakdown(invoice)
        data['payments'] = PaymentSerializer(invoice.payments.select_related('customer', 'recorded_by'), many=True).data
        return Response(data)

    if not can_write(request.user, BILLING_ROLES, request.method):
        return forbidden_response()

    if request.method in ('PUT', 'PATCH'):
        serializer = InvoiceUpdateSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        old_final = invoice.final_amount
        try:
            invoice = update_invoice(invoice, user=request.user, **serializer.validated_data)
        except DairyError as e:
            return error_response(e)
        create_audit_log(request=request, action='invoice_update', model_name='Invoice',
                         object_id=invoice.id, object_name=invoice.customer.name,
                         object_reference=invoice.invoice_number,
                         changes={'final_amount': {'old': str(old_final), 'new': str(invoice.final_amount)}})
        return Response(InvoiceSerializer(invoice).data)
    else:  # DELETE
        invoice_id, number, customer_name = invoice.id, invoice.invoice_number, invoice.customer.name
        try:
            delete_invoice(invoice)
        except DairyError as e:
            return error_response(e)
        create_audit_log(request=request, action='invoice_delete', model_name='Invoice',
                         object_id=invoice_id, object_name=customer_name, object_reference=number)
        return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def invoice_payment(request, pk):
    """Record a payment against an invoice"""
    if not can_write(request.user, BILLING_ROLES, request.method):
        return forbidden_response()
    invoice = get_object_or_404(Invoice.objects.select_related('customer'), pk=pk)

    serializer = PaymentCreateSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    data = serializer.validated_data
    try:
        payment = record_payment(invoice, data['amount'], data['payment_mode'], data.get('payment_date'),
                                 data['reference_number'], data['notes'], user=request.user)
    except DairyError as e:
        return error_response(e)

    create_audit_log(request=request, action='payment_add', model_name='Payment',
                     object_id=payment.id, object_name=invoice.customer.name,
                     object_reference=invoice.invoice_number,
                     changes={'amount': str(payment.amount), 'mode': payment.payment_mode})
    return Response(PaymentSerializer(payment).data, status=status.HTTP_201_CREATED)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def generate_monthly(request):
    """Generate invoices for every active customer for a month"""
    if not can_write(request.user, BILLING_ROLES, request.method):
        return forbidden_response()
    serializer = MonthlyGenerationSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    year, month = serializer.validated_data['year'], serializer.validated_data['month']
    result = generate_monthly_invoices(year, month, user=request.user)
    create_audit_log(request=request, action='invoice_create', model_name='Invoice',
                     object_id=0, object_reference=f"{year}-{month:02d}",
                     changes={'generated': result['generated'], 'skipped': result['skipped'],
                              'total_amount': str(result['total_amount'])})
    return Response(result)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def bulk_preview(request):
    """Per-customer delivered totals for a period before bulk generation"""
    serializer = BulkPeriodSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    data = serializer.validated_data
    summaries = get_billing_summaries(data['period_start'], data['period_end'], data.get('customer_ids'))
    return Response(summaries)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def bulk_generate(request):
    """Generate invoices for chosen customers and a custom period"""
    if not can_write(request.user, BILLING_ROLES, request.method):
        return forbidden_response()
    serializer = BulkPeriodSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    data = serializer.validated_data
    if not data.get('customer_ids'):
        return Response({'error': 'Select at least one customer'}, status=status.HTTP_400_BAD_REQUEST)
    try:
        result = bulk_generate_invoices(data['customer_ids'], data['period_start'], data['period_end'], user=request.user)
    except DairyError as e:
        return error_response(e)

    create_audit_log(request=request, action='invoice_create', model_name='Invoice',
                     object_id=0, object_reference=f"{data['period_start']} - {data['period_end']}",
                     changes={'generated': result['generated'], 'skipped': result['skipped']})
    return Response(result)


# Payment views
@api_view(['GET'])
@permission_classes([IsAuthenticated])
def payment_list(request):
    """List payments"""
    queryset = Payment.objects.select_related('customer', 'invoice', 'recorded_by')
    filterset = PaymentFilter(request.query_params, queryset=queryset)
    if not filterset.is_valid():
        return Response(filterset.errors, status=status.HTTP_400_BAD_REQUEST)
    return Response(PaymentSerializer(filterset.qs, many=True).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def advance_payment(request):
    """Record a payment that is not tied to an invoice"""
    if not can_write(request.user, BILLING_ROLES, request.method):
        return forbidden_response()
    serializer = AdvancePaymentSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    data = serializer.validated_data
    try:
        payment = record_advance_payment(data['customer'], data['amount'], data['payment_mode'],
                                         data.get('payment_date'), data['reference_number'], data['notes'],
                                         user=request.user)
    except DairyError as e:
        return error_response(e)

    create_audit_log(request=request, action='payment_add', model_name='Payment',
                     object_id=payment.id, object_name=payment.customer.name,
                     object_reference='advance', changes={'amount': str(payment.amount)})
    return Response(PaymentSerializer(payment).data, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def billing_summary(request):
    """Billed, collected, pending and overdue totals (cached)"""
    date_from = request.query_params.get('date_from', '')
    date_to = request.query_params.get('date_to', '')
    cache_key = f"{BILLING_CACHE_PATTERN}:{date_from}:{date_to}"
    cached_data = cache.get(cache_key)
    if cached_data is not None:
        return Response(cached_data)

    try:
        start = parse_date(date_from) if date_from else None
        end = parse_date(date_to) if date_to else None
    except ValueError:
        start = end = None
    if (date_from and start is None) or (date_to and end is None):
        return Response({'error': 'Dates must be YYYY-MM-DD'}, status=status.HTTP_400_BAD_REQUEST)

    invoices = Invoice.objects.all()
    if start:
        invoices = invoices.filter(billing_period_start__gte=start)
    if end:
        invoices = invoices.filter(billing_period_end__lte=end)
    stats = get_billing_stats(invoices)
    response_data = {key: str(value) if not isinstance(value, int) else value for key, value in stats.items()}

    cache.set(cache_key, response_data, BILLING_SUMMARY_CACHE_TTL)
    return Response(response_data)
