import logging

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django.core.cache import cache
from django.utils.dateparse import parse_date

from dairy.core.cache_signals import DELIVERY_REPORT_CACHE_PATTERN
from dairy.core.exceptions import DairyError, error_response, forbidden_response
from dairy.core.permissions import has_any_role, BILLING_ROLES, MANAGER, SUPER_ADMIN
from dairy.core.utils import create_audit_log
from .backup import build_backup
from .integrity import repair_financial_integrity, run_integrity_checks
from .summaries import build_delivery_summary, build_revenue_summary, resolve_date_range

logger = logging.getLogger(__name__)

BACKUP_ROLES = (SUPER_ADMIN, MANAGER)
DELIVERY_SUMMARY_CACHE_TTL = 300


def _parse_range(request):
    """(start, end) from date_from/date_to query params; raises ValueError on bad input"""
    raw_from = request.query_params.get('date_from')
    raw_to = request.query_params.get('date_to')
    date_from = parse_date(raw_from) if raw_from else None
    date_to = parse_date(raw_to) if raw_to else None
    if (raw_from and date_from is None) or (raw_to and date_to is None):
        raise ValueError('Dates must be YYYY-MM-DD')
    return resolve_date_range(date_from, date_to)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def financial_integrity(request):
    """Run the ledger, invoice and balance health checks"""
    if not has_any_role(request.user, BILLING_ROLES):
        return forbidden_response()
    return Response(run_integrity_checks())


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def financial_integrity_repair(request):
    """Post missing invoice debits and recalculate balances"""
    if not has_any_role(request.user, BILLING_ROLES):
        return forbidden_response()
    result = repair_financial_integrity(user=request.user)
    create_audit_log(request=request, action='balance_repair', model_name='Customer',
                     object_id='all', changes={'invoices_synced': result['invoices_synced'],
                                               'customers_recalculated': result['customers_recalculated']})
    result['checks'] = run_integrity_checks()
    return Response(result)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def backup_export(request):
    """Download a JSON backup for the current week, month or everything"""
    if not has_any_role(request.user, BACKUP_ROLES):
        return forbidden_response()
    period = request.query_params.get('period', 'monthly')
    try:
        backup = build_backup(period)
    except DairyError as e:
        return error_response(e)

    response = Response(backup)
    response['Content-Disposition'] = f'attachment; filename="dairy-backup-{period}.json"'
    return response


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def delivery_summary(request):
    """Per-day delivery status counts and litres (cached)"""
    try:
        start, end = _parse_range(request)
    except ValueError as e:
        return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)
    except DairyError as e:
        return error_response(e)

    cache_key = f"{DELIVERY_REPORT_CACHE_PATTERN}:{start}:{end}"
    cached_data = cache.get(cache_key)
    if cached_data is not None:
        return Response(cached_data)

    response_data = build_delivery_summary(start, end)
    cache.set(cache_key, response_data, DELIVERY_SUMMARY_CACHE_TTL)
    return Response(response_data)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def revenue_summary(request):
    """Billed against collected by month"""
    try:
        start, end = _parse_range(request)
    except ValueError as e:
        return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)
    except DairyError as e:
        return error_response(e)
    return Response(build_revenue_summary(start, end))
