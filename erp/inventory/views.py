import logging
from decimal import Decimal
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django.db import transaction
from django.db.models import Sum, F, DecimalField, ExpressionWrapper
from django.shortcuts import get_object_or_404
from erp.catalog.models import Product
from erp.core.pagination import paginated_response
from erp.core.utils import create_audit_log
from .models import StockAdjustment
from .serializers import StockAdjustmentSerializer
from .utils import reverse_adjustment

logger = logging.getLogger(__name__)


def adjustment_items_summary(adjustment):
    return [
        {'product': item.product.name, 'quantity': str(item.quantity), 'type': item.adjustment_type}
        for item in adjustment.items.select_related('product')
    ]


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def stock_summary(request):
    """Totals across stocked products"""
    products = Product.objects.stocked().filter(is_active=True)
    totals = products.aggregate(
        total_units=Sum('current_stock'),
        stock_value=Sum(ExpressionWrapper(F('current_stock') * F('purchase_price'),
                                          output_field=DecimalField(max_digits=18, decimal_places=5))),
    )
    return Response({
        'total_products': products.count(),
        'total_units': totals['total_units'] or Decimal('0'),
        'stock_value': (totals['stock_value'] or Decimal('0')).quantize(Decimal('0.01')),
        'low_stock_count': products.low_stock().count(),
        'out_of_stock_count': products.filter(current_stock__lte=0).count(),
    })


# StockAdjustment views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def stock_adjustment_list_create(request):
    """List all stock adjustments or create a new adjustment"""
    if request.method == 'GET':
        adjustments = StockAdjustment.objects.select_related('created_by').prefetch_related('items__product')
        reason = request.query_params.get('reason')
        if reason:
            adjustments = adjustments.filter(reason=reason)
        product = request.query_params.get('product')
        if product:
            adjustments = adjustments.filter(items__product_id=product).distinct()
        return paginated_response(request, adjustments, StockAdjustmentSerializer)
    else:  # POST
        data = request.data.copy()
        items_data = data.pop('items', [])
        serializer = StockAdjustmentSerializer(data=data, context={'items_data': items_data, 'request': request})
        if serializer.is_valid():
            adjustment = serializer.save(created_by=request.user)
            create_audit_log(
                request=request,
                action='stock_adjust',
                model_name='StockAdjustment',
                object_id=adjustment.id,
                object_name=adjustment.reference_number,
                object_reference=adjustment.reference_number,
                changes={'reason': adjustment.reason, 'items': adjustment_items_summary(adjustment)},
            )
            logger.info(f"Stock adjustment {adjustment.reference_number} created by {request.user.username}")
            return Response(StockAdjustmentSerializer(adjustment).data, status=status.HTTP_201_CREATED)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def stock_adjustment_detail(request, pk):
    """Retrieve, edit or delete a stock adjustment; edits and deletes reverse its earlier movements"""
    adjustment = get_object_or_404(StockAdjustment.objects.prefetch_related('items__product'), pk=pk)

    if request.method == 'GET':
        serializer = StockAdjustmentSerializer(adjustment)
        return Response(serializer.data)
    elif request.method in ('PUT', 'PATCH'):
        old_items = adjustment_items_summary(adjustment)
        data = request.data.copy()
        items_data = data.pop('items', None)
        serializer = StockAdjustmentSerializer(adjustment, data=data, partial=request.method == 'PATCH',
                                               context={'items_data': items_data, 'request': request})
        if serializer.is_valid():
            adjustment = serializer.save()
            adjustment = StockAdjustment.objects.prefetch_related('items__product').get(pk=adjustment.pk)
            create_audit_log(request=request, action='update', model_name='StockAdjustment',
                             object_id=adjustment.id, object_name=adjustment.reference_number,
                             object_reference=adjustment.reference_number,
                             changes={'reason': adjustment.reason, 'old_items': old_items,
                                      'items': adjustment_items_summary(adjustment)})
            logger.info(f"Stock adjustment {adjustment.reference_number} edited by {request.user.username}")
            return Response(StockAdjustmentSerializer(adjustment).data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        reference = adjustment.reference_number
        with transaction.atomic():
            reverse_adjustment(adjustment, request=request, reason='Adjustment deleted')
            adjustment_id = adjustment.id
            adjustment.delete()
        create_audit_log(request=request, action='delete', model_name='StockAdjustment',
                         object_id=adjustment_id, object_name=reference, object_reference=reference)
        return Response(status=status.HTTP_204_NO_CONTENT)
