import logging

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django.core.cache import cache
from django.db.models import ProtectedError
from django.shortcuts import get_object_or_404

from dairy.core.cache_signals import PROCUREMENT_CACHE_PATTERN
from dairy.core.exceptions import DairyError, error_response, forbidden_response
from dairy.core.permissions import can_write, PROCUREMENT_ROLES
from dairy.core.utils import create_audit_log
from .analytics import build_procurement_analytics, get_date_range
from .filters import MilkProcurementFilter, MilkVendorFilter, VendorPaymentFilter
from .models import MilkProcurement, MilkVendor, VendorPayment
from .serializers import MilkProcurementSerializer, MilkVendorSerializer, VendorPaymentSerializer
from .services import record_vendor_payment

logger = logging.getLogger(__name__)

ANALYTICS_CACHE_TTL = 300


# Vendor views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def vendor_list_create(request):
    """List milk vendors or add one"""
    if request.method == 'GET':
        filterset = MilkVendorFilter(request.query_params, queryset=MilkVendor.objects.all())
        return Response(MilkVendorSerializer(filterset.qs, many=True).data)

    if not can_write(request.user, PROCUREMENT_ROLES, request.method):
        return forbidden_response()
    serializer = MilkVendorSerializer(data=request.data)
    if serializer.is_valid():
        vendor = serializer.save()
        create_audit_log(request=request, action='create', model_name='MilkVendor',
                         object_id=vendor.id, object_name=vendor.name)
        return Response(serializer.data, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def vendor_detail(request, pk):
    """Retrieve, update or delete a milk vendor"""
    vendor = get_object_or_404(MilkVendor, pk=pk)

    if request.method == 'GET':
        return Response(MilkVendorSerializer(vendor).data)

    if not can_write(request.user, PROCUREMENT_ROLES, request.method):
        return forbidden_response()

    if request.method in ('PUT', 'PATCH'):
        serializer = MilkVendorSerializer(vendor, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            serializer.save()
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        vendor_id, vendor_name = vendor.id, vendor.name
        try:
            vendor.delete()
        except ProtectedError:
            # Vendors with payments are deactivated instead
            vendor.is_active = False
            vendor.save(update_fields=['is_active', 'updated_at'])
            return Response({'message': 'Vendor has payments and was deactivated instead of deleted'})
        create_audit_log(request=request, action='delete', model_name='MilkVendor',
                         object_id=vendor_id, object_name=vendor_name)
        return Response(status=status.HTTP_204_NO_CONTENT)


# Procurement views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def procurement_list_create(request):
    """List milk collections or record one"""
    if request.method == 'GET':
        queryset = MilkProcurement.objects.select_related('vendor', 'recorded_by')
        filterset = MilkProcurementFilter(request.query_params, queryset=queryset)
        if not filterset.is_valid():
            return Response(filterset.errors, status=status.HTTP_400_BAD_REQUEST)
        return Response(MilkProcurementSerializer(filterset.qs, many=True).data)

    if not can_write(request.user, PROCUREMENT_ROLES, request.method):
        return forbidden_response()
    serializer = MilkProcurementSerializer(data=request.data)
    if serializer.is_valid():
        procurement = serializer.save(recorded_by=request.user)
        create_audit_log(request=request, action='create', model_name='MilkProcurement',
                         object_id=procurement.id, object_name=procurement.vendor_name,
                         object_reference=f"{procurement.procurement_date} {procurement.session}",
                         changes={'quantity_liters': str(procurement.quantity_liters),
                                  'total_amount': str(procurement.total_amount)})
        return Response(serializer.data, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def procurement_detail(request, pk):
    """Retrieve, update or delete a milk collection"""
    procurement = get_object_or_404(MilkProcurement.objects.select_related('vendor'), pk=pk)

    if request.method == 'GET':
        return Response(MilkProcurementSerializer(procurement).data)

    if not can_write(request.user, PROCUREMENT_ROLES, request.method):
        return forbidden_response()

    if request.method in ('PUT', 'PATCH'):
        serializer = MilkProcurementSerializer(procurement, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            serializer.save()
            create_audit_log(request=request, action='update', model_name='MilkProcurement',
                             object_id=procurement.id, object_name=procurement.vendor_name,
                             changes={k: str(v) for k, v in serializer.validated_data.items()})
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        create_audit_log(request=request, action='delete', model_name='MilkProcurement',
                         object_id=procurement.id, object_name=procurement.vendor_name,
                         object_reference=str(procurement.procurement_date))
        procurement.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)


# Vendor payment views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def vendor_payment_list_create(request):
    """List vendor payments or pay a vendor"""
    if request.method == 'GET':
        queryset = VendorPayment.objects.select_related('vendor', 'recorded_by')
        filterset = VendorPaymentFilter(request.query_params, queryset=queryset)
        if not filterset.is_valid():
            return Response(filterset.errors, status=status.HTTP_400_BAD_REQUEST)
        return Response(VendorPaymentSerializer(filterset.qs, many=True).data)

    if not can_write(request.user, PROCUREMENT_ROLES, request.method):
        return forbidden_response()
    serializer = VendorPaymentSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    data = serializer.validated_data
    try:
        payment = record_vendor_payment(
            vendor=data['vendor'],
            amount=data['amount'],
            payment_date=data.get('payment_date'),
            payment_mode=data.get('payment_mode', 'cash'),
            reference_number=data.get('reference_number', ''),
            notes=data.get('notes', ''),
            user=request.user,
        )
    except DairyError as e:
        return error_response(e)

    create_audit_log(request=request, action='vendor_payment', model_name='VendorPayment',
                     object_id=payment.id, object_name=payment.vendor.name,
                     changes={'amount': str(payment.amount), 'mode': payment.payment_mode})
    return Response(VendorPaymentSerializer(payment).data, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def procurement_analytics(request):
    """Daily trends, quality and vendor stats for a date range (cached)"""
    preset = request.query_params.get('range', '30d')
    try:
        start, end = get_date_range(preset)
    except DairyError as e:
        return error_response(e)

    cache_key = f"{PROCUREMENT_CACHE_PATTERN}:{preset}:{end}"
    cached_data = cache.get(cache_key)
    if cached_data is not None:
        return Response(cached_data)

    records = MilkProcurement.objects.filter(
        procurement_date__gte=start, procurement_date__lte=end
    ).select_related('vendor').order_by('procurement_date')
    response_data = build_procurement_analytics(records, start, end)

    cache.set(cache_key, response_data, ANALYTICS_CACHE_TTL)
    return Response(response_data)
