import logging

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django.core.cache import cache
from django.db.models import Q
from django.shortcuts import get_object_or_404
from django.utils import timezone

from dairy.core.exceptions import DairyError, error_response, forbidden_response
from dairy.core.model_cache import (
    get_customer_list_cache_key, CUSTOMER_LIST_CACHE_TTL,
    get_cached_customer, cache_customer_data, invalidate_customer_detail,
)
from dairy.core.permissions import can_write, BILLING_ROLES, CUSTOMER_ROLES, DELIVERY_ROLES
from dairy.core.utils import create_audit_log
from .ledger import insert_ledger_with_balance, calculate_balance
from .models import Customer, CustomerSubscription, CustomerVacation, LedgerEntry
from .serializers import (
    CustomerSerializer, CustomerListSerializer, CustomerSubscriptionSerializer,
    CustomerVacationSerializer, LedgerEntrySerializer, LedgerAdjustmentSerializer,
)

logger = logging.getLogger(__name__)

VACATION_ROLES = tuple(set(CUSTOMER_ROLES) | set(DELIVERY_ROLES))


# Customer views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def customer_list_create(request):
    """List all customers or create a new customer"""
    if request.method == 'GET':
        search = request.query_params.get('search', None)
        area = request.query_params.get('area', None)
        active = request.query_params.get('active', None)

        cache_key = get_customer_list_cache_key(search or '', area or '', active or '')
        cached_data = cache.get(cache_key)
        if cached_data is not None:
            response = Response(cached_data)
            response['Cache-Control'] = 'private, max-age=300, stale-while-revalidate=600'
            return response

        queryset = Customer.objects.all().order_by('name')
        if search:
            queryset = queryset.filter(Q(name__icontains=search) | Q(phone__icontains=search) | Q(address__icontains=search))
        if area:
            queryset = queryset.filter(area__iexact=area)
        if active in ('true', 'false'):
            queryset = queryset.filter(is_active=active == 'true')
        serializer = CustomerListSerializer(queryset, many=True)
        response_data = serializer.data

        cache.set(cache_key, response_data, CUSTOMER_LIST_CACHE_TTL)

        response = Response(response_data)
        response['Cache-Control'] = 'private, max-age=300, stale-while-revalidate=600'
        return response

    if not can_write(request.user, CUSTOMER_ROLES, request.method):
        return forbidden_response()
    serializer = CustomerSerializer(data=request.data)
    if serializer.is_valid():
        customer = serializer.save()
        create_audit_log(request=request, action='create', model_name='Customer',
                         object_id=customer.id, object_name=customer.name)
        return Response(serializer.data, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def customer_detail(request, pk):
    """Retrieve, update or delete a customer"""
    if request.method == 'GET':
        cached_data = get_cached_customer(pk)
        if cached_data:
            return Response(cached_data)

    customer = get_object_or_404(Customer.objects.prefetch_related('subscriptions__product'), pk=pk)

    if request.method == 'GET':
        serializer = CustomerSerializer(customer)
        response_data = serializer.data
        cache_customer_data(customer.id, response_data)
        return Response(response_data)

    if not can_write(request.user, CUSTOMER_ROLES, request.method):
        return forbidden_response()

    if request.method in ('PUT', 'PATCH'):
        serializer = CustomerSerializer(customer, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            serializer.save()
            create_audit_log(request=request, action='update', model_name='Customer',
                             object_id=customer.id, object_name=customer.name,
                             changes={k: str(v) for k, v in serializer.validated_data.items()})
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        # Customers with financial history are deactivated, never deleted
        if customer.ledger_entries.exists() or customer.invoices.exists():
            customer.is_active = False
            customer.save(update_fields=['is_active', 'updated_at'])
            customer.subscriptions.update(is_active=False)
            invalidate_customer_detail(customer.id)
            create_audit_log(request=request, action='update', model_name='Customer',
                             object_id=customer.id, object_name=customer.name,
                             changes={'is_active': False})
            return Response({'message': 'Customer has billing history and was deactivated instead of deleted'})
        create_audit_log(request=request, action='delete', model_name='Customer',
                         object_id=customer.id, object_name=customer.name)
        customer.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)


# Subscription views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def subscription_list_create(request, customer_pk):
    """List or add products a customer subscribes to"""
    customer = get_object_or_404(Customer, pk=customer_pk)

    if request.method == 'GET':
        subscriptions = customer.subscriptions.select_related('product')
        if request.query_params.get('active') == 'true':
            subscriptions = subscriptions.filter(is_active=True)
        return Response(CustomerSubscriptionSerializer(subscriptions, many=True).data)

    if not can_write(request.user, CUSTOMER_ROLES, request.method):
        return forbidden_response()
    serializer = CustomerSubscriptionSerializer(data=request.data)
    if serializer.is_valid():
        product = serializer.validated_data['product']
        if customer.subscriptions.filter(product=product, is_active=True).exists():
            return Response({'error': f'{customer.name} already subscribes to {product.name}'},
                            status=status.HTTP_400_BAD_REQUEST)
        serializer.save(customer=customer)
        return Response(serializer.data, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def subscription_detail(request, customer_pk, pk):
    """Retrieve, update or remove a subscription"""
    subscription = get_object_or_404(CustomerSubscription.objects.select_related('product'), pk=pk, customer_id=customer_pk)

    if request.method == 'GET':
        return Response(CustomerSubscriptionSerializer(subscription).data)

    if not can_write(request.user, CUSTOMER_ROLES, request.method):
        return forbidden_response()

    if request.method in ('PUT', 'PATCH'):
        serializer = CustomerSubscriptionSerializer(subscription, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            serializer.save()
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        subscription.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)


# Vacation views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def vacation_list_create(request, customer_pk):
    """List or schedule vacations for a customer"""
    customer = get_object_or_404(Customer, pk=customer_pk)

    if request.method == 'GET':
        vacations = customer.vacations.select_related('created_by')
        return Response(CustomerVacationSerializer(vacations, many=True).data)

    if not can_write(request.user, VACATION_ROLES, request.method):
        return forbidden_response()
    serializer = CustomerVacationSerializer(data=request.data)
    if serializer.is_valid():
        vacation = serializer.save(customer=customer, created_by=request.user)
        create_audit_log(request=request, action='create', model_name='CustomerVacation',
                         object_id=vacation.id, object_name=customer.name,
                         object_reference=f"{vacation.start_date} - {vacation.end_date}")
        return Response(serializer.data, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def vacation_detail(request, customer_pk, pk):
    """Retrieve, update or cancel a vacation"""
    vacation = get_object_or_404(CustomerVacation, pk=pk, customer_id=customer_pk)

    if request.method == 'GET':
        return Response(CustomerVacationSerializer(vacation).data)

    if not can_write(request.user, VACATION_ROLES, request.method):
        return forbidden_response()

    if request.method in ('PUT', 'PATCH'):
        serializer = CustomerVacationSerializer(vacation, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            serializer.save()
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        vacation.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)


# Ledger views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def customer_ledger(request, customer_pk):
    """List a customer's ledger or post a manual adjustment"""
    customer = get_object_or_404(Customer, pk=customer_pk)

    if request.method == 'GET':
        entries = LedgerEntry.objects.filter(customer=customer).select_related('customer', 'created_by')
        date_from = request.query_params.get('date_from', None)
        date_to = request.query_params.get('date_to', None)
        transaction_type = request.query_params.get('type', None)
        if date_from:
            entries = entries.filter(transaction_date__gte=date_from)
        if date_to:
            entries = entries.filter(transaction_date__lte=date_to)
        if transaction_type:
            entries = entries.filter(transaction_type=transaction_type)
        return Response(LedgerEntrySerializer(entries, many=True).data)

    if not can_write(request.user, BILLING_ROLES, request.method):
        return forbidden_response()
    serializer = LedgerAdjustmentSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    data = serializer.validated_data
    is_debit = data['entry_type'] == 'debit'
    try:
        entry = insert_ledger_with_balance(
            customer=customer,
            transaction_date=data.get('transaction_date') or timezone.localdate(),
            transaction_type='adjustment',
            description=data['description'],
            debit_amount=data['amount'] if is_debit else 0,
            credit_amount=0 if is_debit else data['amount'],
            created_by=request.user,
        )
    except DairyError as e:
        return error_response(e)

    create_audit_log(request=request, action='ledger_entry', model_name='LedgerEntry',
                     object_id=entry.id, object_name=customer.name,
                     changes={'entry_type': data['entry_type'], 'amount': str(data['amount']),
                              'description': data['description']})
    return Response(LedgerEntrySerializer(entry).data, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def customer_balance(request, customer_pk):
    """Ledger totals and invoice outstanding for a customer"""
    from dairy.billing.utils import calculate_outstanding_balance, calculate_overdue_balance

    customer = get_object_or_404(Customer, pk=customer_pk)
    totals = calculate_balance(customer)
    invoices = customer.invoices.all()
    return Response({
        'customer_id': customer.id,
        'customer_name': customer.name,
        'total_debit': totals['total_debit'],
        'total_credit': totals['total_credit'],
        'balance': totals['balance'],
        'credit_balance': customer.credit_balance,
        'advance_balance': customer.advance_balance,
        'outstanding': calculate_outstanding_balance(invoices),
        'overdue': calculate_overdue_balance(invoices),
    })
