from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django.core.cache import cache
from django.shortcuts import get_object_or_404

from dairy.core.exceptions import forbidden_response
from dairy.core.model_cache import get_product_list_cache_key, PRODUCT_LIST_CACHE_TTL
from dairy.core.permissions import can_write, MANAGER, SUPER_ADMIN
from dairy.core.utils import create_audit_log
from .filters import ProductFilter
from .models import Product
from .serializers import ProductSerializer

PRODUCT_ROLES = (SUPER_ADMIN, MANAGER)


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def product_list_create(request):
    """List all products or create a new product"""
    if request.method == 'GET':
        params = request.query_params
        cache_key = get_product_list_cache_key(params.get('category', ''), params.get('active', ''), params.get('search', ''))
        cached_data = cache.get(cache_key)
        if cached_data is not None:
            return Response(cached_data)

        filterset = ProductFilter(params, queryset=Product.objects.all())
        serializer = ProductSerializer(filterset.qs, many=True)
        cache.set(cache_key, serializer.data, PRODUCT_LIST_CACHE_TTL)
        return Response(serializer.data)

    if not can_write(request.user, PRODUCT_ROLES, request.method):
        return forbidden_response()
    serializer = ProductSerializer(data=request.data)
    if serializer.is_valid():
        product = serializer.save()
        create_audit_log(request=request, action='create', model_name='Product',
                         object_id=product.id, object_name=product.name)
        return Response(serializer.data, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def product_detail(request, pk):
    """Retrieve, update or delete a product"""
    product = get_object_or_404(Product, pk=pk)

    if request.method == 'GET':
        serializer = ProductSerializer(product)
        return Response(serializer.data)

    if not can_write(request.user, PRODUCT_ROLES, request.method):
        return forbidden_response()

    if request.method in ('PUT', 'PATCH'):
        old_price = product.base_price
        serializer = ProductSerializer(product, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            product = serializer.save()
            if product.base_price != old_price:
                create_audit_log(request=request, action='update', model_name='Product',
                                 object_id=product.id, object_name=product.name,
                                 changes={'base_price': {'old': str(old_price), 'new': str(product.base_price)}})
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        # Products referenced by deliveries are deactivated instead of deleted
        if product.delivery_items.exists() or product.subscriptions.exists():
            product.is_active = False
            product.save(update_fields=['is_active', 'updated_at'])
            return Response({'message': 'Product is in use and was deactivated instead of deleted'})
        create_audit_log(request=request, action='delete', model_name='Product',
                         object_id=product.id, object_name=product.name)
        product.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)
