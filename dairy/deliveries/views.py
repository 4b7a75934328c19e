import logging

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django.db import transaction
from django.db.models import Prefetch
from django.shortcuts import get_object_or_404
from django.utils import timezone

from dairy.core.exceptions import DairyError, error_response, forbidden_response
from dairy.core.permissions import can_write, DELIVERY_ROLES
from dairy.core.utils import create_audit_log
from .filters import DeliveryFilter
from .models import Delivery, DeliveryItem
from .scheduler import (
    create_addon_order, mark_deliveries_delivered, replace_delivery_items,
    run_auto_deliver, schedule_deliveries_for_range,
)
from .serializers import (
    DeliverySerializer, ItemInputSerializer, DeliveryItemsUpdateSerializer, AddonOrderSerializer,
    BulkMarkDeliveredSerializer, ScheduleRequestSerializer, AutoDeliverRequestSerializer,
)

logger = logging.getLogger(__name__)


def _delivery_queryset():
    return Delivery.objects.select_related('customer', 'delivered_by').prefetch_related(
        Prefetch('items', queryset=DeliveryItem.objects.select_related('product'))
    )


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def delivery_list_create(request):
    """List deliveries or record a delivery by hand"""
    if request.method == 'GET':
        filterset = DeliveryFilter(request.query_params, queryset=_delivery_queryset())
        if not filterset.is_valid():
            return Response(filterset.errors, status=status.HTTP_400_BAD_REQUEST)
        serializer = DeliverySerializer(filterset.qs, many=True)
        return Response(serializer.data)

    if not can_write(request.user, DELIVERY_ROLES, request.method):
        return forbidden_response()

    serializer = DeliverySerializer(data=request.data)
    items_serializer = ItemInputSerializer(data=request.data.get('items', []), many=True)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    if not items_serializer.is_valid():
        return Response({'items': items_serializer.errors}, status=status.HTTP_400_BAD_REQUEST)

    with transaction.atomic():
        extra = {}
        if serializer.validated_data.get('status') == 'delivered':
            extra = {'delivered_by': request.user, 'delivery_time': timezone.now()}
        delivery = serializer.save(**extra)
        replace_delivery_items(delivery, items_serializer.validated_data)

    create_audit_log(request=request, action='create', model_name='Delivery',
                     object_id=delivery.id, object_name=delivery.customer.name,
                     object_reference=str(delivery.delivery_date))
    return Response(DeliverySerializer(_delivery_queryset().get(pk=delivery.pk)).data, status=status.HTTP_201_CREATED)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def delivery_detail(request, pk):
    """Retrieve, update or delete a delivery"""
    delivery = get_object_or_404(_delivery_queryset(), pk=pk)

    if request.method == 'GET':
        return Response(DeliverySerializer(delivery).data)

    if not can_write(request.user, DELIVERY_ROLES, request.method):
        return forbidden_response()

    if request.method in ('PUT', 'PATCH'):
        old_status = delivery.status
        serializer = DeliverySerializer(delivery, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            extra = {}
            if serializer.validated_data.get('status') == 'delivered' and old_status != 'delivered':
                extra = {'delivered_by': request.user, 'delivery_time': timezone.now()}
            serializer.save(**extra)
            if old_status != delivery.status:
                create_audit_log(request=request, action='update', model_name='Delivery',
                                 object_id=delivery.id, object_name=delivery.customer.name,
                                 changes={'status': {'old': old_status, 'new': delivery.status}})
            return Response(DeliverySerializer(_delivery_queryset().get(pk=delivery.pk)).data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        create_audit_log(request=request, action='delete', model_name='Delivery',
                         object_id=delivery.id, object_name=delivery.customer.name,
                         object_reference=str(delivery.delivery_date))
        delivery.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['PUT'])
@permission_classes([IsAuthenticated])
def delivery_items(request, pk):
    """Replace the product lines of a delivery"""
    if not can_write(request.user, DELIVERY_ROLES, request.method):
        return forbidden_response()
    delivery = get_object_or_404(Delivery, pk=pk)

    serializer = DeliveryItemsUpdateSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    replace_delivery_items(delivery, serializer.validated_data['items'])
    create_audit_log(request=request, action='update', model_name='Delivery',
                     object_id=delivery.id, object_name=delivery.customer.name,
                     changes={'items': len(serializer.validated_data['items'])})
    return Response(DeliverySerializer(_delivery_queryset().get(pk=delivery.pk)).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def bulk_mark_delivered(request):
    """Mark selected pending deliveries delivered"""
    if not can_write(request.user, DELIVERY_ROLES, request.method):
        return forbidden_response()
    serializer = BulkMarkDeliveredSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    result = mark_deliveries_delivered(serializer.validated_data['delivery_ids'], user=request.user)
    return Response(result)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def schedule_deliveries(request):
    """Create subscription deliveries for one or more days"""
    if not can_write(request.user, DELIVERY_ROLES, request.method):
        return forbidden_response()
    serializer = ScheduleRequestSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    data = serializer.validated_data
    try:
        results = schedule_deliveries_for_range(data['date'], data['days'], data['auto_mark_delivered'], user=request.user)
    except DairyError as e:
        return error_response(e)

    total_scheduled = sum(r['scheduled'] for r in results)
    create_audit_log(request=request, action='delivery_schedule', model_name='Delivery',
                     object_id=0, object_reference=f"{data['date']} (+{data['days']} days)",
                     changes={'scheduled': total_scheduled, 'auto_mark_delivered': data['auto_mark_delivered']})
    return Response({'total_scheduled': total_scheduled, 'results': results})


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def auto_deliver(request):
    """Run the daily auto-deliver job now"""
    if not can_write(request.user, DELIVERY_ROLES, request.method):
        return forbidden_response()
    serializer = AutoDeliverRequestSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    result = run_auto_deliver(serializer.validated_data.get('date'), user=request.user)
    create_audit_log(request=request, action='auto_deliver', model_name='Delivery',
                     object_id=0, object_reference=str(result['date']),
                     changes={k: result[k] for k in ('scheduled', 'delivered', 'skipped')})
    return Response(result)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def addon_order(request):
    """Record an extra delivered order for a customer"""
    if not can_write(request.user, DELIVERY_ROLES, request.method):
        return forbidden_response()
    serializer = AddonOrderSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    data = serializer.validated_data
    try:
        delivery = create_addon_order(data['customer'], data['delivery_date'], data['items'],
                                      user=request.user, notes=data['notes'])
    except DairyError as e:
        return error_response(e)

    create_audit_log(request=request, action='create', model_name='Delivery',
                     object_id=delivery.id, object_name=delivery.customer.name,
                     object_reference=f"Add-on {delivery.delivery_date}")
    return Response(DeliverySerializer(_delivery_queryset().get(pk=delivery.pk)).data, status=status.HTTP_201_CREATED)
