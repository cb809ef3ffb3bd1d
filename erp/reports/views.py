import logging
from datetime import datetime
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.exceptions import PermissionDenied
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django.utils import timezone

from erp.core.utils import is_admin_user
from erp.staff.utils import get_employee
from .utils import (
    build_dashboard_stats, build_dashboard_charts, build_report_summary, build_alerts,
    build_profit_loss, build_gst_report,
)

logger = logging.getLogger(__name__)


def get_store_scope(request):
    """
    Store the figures are limited to. Site admins see every store unless they
    pick one with `store`; everyone else is held to their employee store.
    """
    if is_admin_user(request.user):
        return request.query_params.get('store') or None
    employee = get_employee(request.user)
    if employee is None or not employee.store_id:
        raise PermissionDenied('Reports are only available to members of a store')
    return str(employee.store_id)


def get_date_range(request):
    """date_from/date_to as ISO strings; the current month to date when missing"""
    date_from = request.query_params.get('date_from', None)
    date_to = request.query_params.get('date_to', None)
    today = timezone.localdate()

    if not date_from:
        date_from = today.replace(day=1)
    else:
        date_from = datetime.strptime(date_from, '%Y-%m-%d').date()

    if not date_to:
        date_to = today
    else:
        date_to = datetime.strptime(date_to, '%Y-%m-%d').date()

    if date_from > date_to:
        raise ValueError('date_from must not be after date_to')
    return date_from.isoformat(), date_to.isoformat()


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def dashboard_stats(request):
    """Headline figures for the dashboard"""
    data = build_dashboard_stats(store_id=get_store_scope(request), today=timezone.localdate().isoformat())
    return Response(data)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def dashboard_charts(request):
    """Sales against expenses for the last six months"""
    data = build_dashboard_charts(store_id=get_store_scope(request), today=timezone.localdate().isoformat())
    return Response(data)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def report_summary(request):
    data = build_report_summary(store_id=get_store_scope(request), today=timezone.localdate().isoformat())
    return Response(data)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def alerts(request):
    """Low stock, pending payments, overdue invoices and new deals"""
    data = build_alerts(store_id=get_store_scope(request), today=timezone.localdate().isoformat())
    return Response(data)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def profit_loss(request):
    """Profit and loss statement for a date range"""
    try:
        date_from, date_to = get_date_range(request)
    except ValueError as e:
        return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)
    return Response(build_profit_loss(date_from, date_to, store_id=get_store_scope(request)))


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def gst_report(request):
    """GST summary for a date range: output tax by rate, input tax and net liability"""
    try:
        date_from, date_to = get_date_range(request)
    except ValueError as e:
        return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)
    return Response(build_gst_report(date_from, date_to, store_id=get_store_scope(request)))
