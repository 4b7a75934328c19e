from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django.db.models import Sum
from django.shortcuts import get_object_or_404

from dairy.core.exceptions import forbidden_response
from dairy.core.permissions import can_write, EXPENSE_ROLES
from dairy.core.utils import ZERO, create_audit_log
from .filters import ExpenseFilter
from .models import Expense
from .serializers import ExpenseSerializer


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def expense_list_create(request):
    """List expenses with their total or record a new expense"""
    if request.method == 'GET':
        filterset = ExpenseFilter(request.query_params, queryset=Expense.objects.select_related('recorded_by'))
        if not filterset.is_valid():
            return Response(filterset.errors, status=status.HTTP_400_BAD_REQUEST)
        queryset = filterset.qs
        total = queryset.aggregate(total=Sum('amount'))['total'] or ZERO
        return Response({
            'count': queryset.count(),
            'total_amount': str(total),
            'results': ExpenseSerializer(queryset, many=True).data,
        })

    if not can_write(request.user, EXPENSE_ROLES, request.method):
        return forbidden_response()
    serializer = ExpenseSerializer(data=request.data)
    if serializer.is_valid():
        expense = serializer.save(recorded_by=request.user)
        create_audit_log(request=request, action='create', model_name='Expense',
                         object_id=expense.id, object_name=expense.title,
                         changes={'amount': str(expense.amount), 'category': expense.category})
        return Response(serializer.data, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def expense_detail(request, pk):
    """Retrieve, update or delete an expense"""
    expense = get_object_or_404(Expense, pk=pk)

    if request.method == 'GET':
        return Response(ExpenseSerializer(expense).data)

    if not can_write(request.user, EXPENSE_ROLES, request.method):
        return forbidden_response()

    if request.method in ('PUT', 'PATCH'):
        serializer = ExpenseSerializer(expense, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            serializer.save()
            create_audit_log(request=request, action='update', model_name='Expense',
                             object_id=expense.id, object_name=expense.title,
                             changes={k: str(v) for k, v in serializer.validated_data.items()})
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        create_audit_log(request=request, action='delete', model_name='Expense',
                         object_id=expense.id, object_name=expense.title,
                         changes={'amount': str(expense.amount)})
        expense.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)
