import logging
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from rest_framework.serializers import ValidationError
from django.db import transaction
from django.db.models import Q
from django.shortcuts import get_object_or_404
from erp.core.pagination import paginated_response
from erp.core.utils import create_audit_log, date_param, snapshot
from erp.inventory.utils import stock_in
from .models import PurchaseOrder, PurchaseReturn
from .serializers import PurchaseOrderSerializer, PurchaseOrderListSerializer, PurchaseReturnSerializer
from .utils import receive_purchase_order, reverse_received_stock

logger = logging.getLogger(__name__)


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def purchase_order_list_create(request):
    """List purchase orders or create a new one (status 'received' books stock immediately)"""
    if request.method == 'GET':
        queryset = PurchaseOrder.objects.select_related('supplier')

        # Filters
        supplier = request.query_params.get('supplier')
        status_filter = request.query_params.get('status')
        date_from = date_param(request, 'date_from')
        date_to = date_param(request, 'date_to')
        search = request.query_params.get('search')

        if supplier:
            queryset = queryset.filter(supplier_id=supplier)
        if status_filter:
            queryset = queryset.filter(status=status_filter)
        if date_from:
            queryset = queryset.filter(order_date__gte=date_from)
        if date_to:
            queryset = queryset.filter(order_date__lte=date_to)
        if search:
            queryset = queryset.filter(
                Q(order_number__icontains=search) |
                Q(bill_number__icontains=search) |
                Q(supplier__name__icontains=search)
            )

        return paginated_response(request, queryset.order_by('-id'), PurchaseOrderListSerializer)
    else:  # POST
        data = request.data.copy()
        items_data = data.pop('items', [])

        serializer = PurchaseOrderSerializer(data=data, context={'items_data': items_data, 'request': request})
        if serializer.is_valid():
            purchase_order = serializer.save(created_by=request.user)
            create_audit_log(request=request, action='create', model_name='PurchaseOrder',
                             object_id=purchase_order.pk, object_name=purchase_order.order_number,
                             object_reference=purchase_order.order_number,
                             changes={'new': snapshot(purchase_order)})
            logger.info(f"Purchase order {purchase_order.order_number} created by {request.user.username}")
            return Response(PurchaseOrderSerializer(purchase_order).data, status=status.HTTP_201_CREATED)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def purchase_order_detail(request, pk):
    """Retrieve, update or delete a purchase order"""
    purchase_order = get_object_or_404(
        PurchaseOrder.objects.select_related('supplier', 'store').prefetch_related('items__product'), pk=pk
    )

    if request.method == 'GET':
        return Response(PurchaseOrderSerializer(purchase_order).data)
    elif request.method in ('PUT', 'PATCH'):
        data = request.data.copy()
        items_data = data.pop('items', None)
        old = snapshot(purchase_order)

        serializer = PurchaseOrderSerializer(
            purchase_order, data=data, partial=request.method == 'PATCH',
            context={'items_data': items_data, 'request': request}
        )
        if serializer.is_valid():
            purchase_order = serializer.save()
            create_audit_log(request=request, action='update', model_name='PurchaseOrder',
                             object_id=purchase_order.pk, object_name=purchase_order.order_number,
                             object_reference=purchase_order.order_number,
                             changes={'old': old, 'new': snapshot(purchase_order)})
            return Response(PurchaseOrderSerializer(PurchaseOrder.objects.get(pk=purchase_order.pk)).data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        if purchase_order.returns.exists():
            return Response(
                {'error': 'Purchase order has supplier returns. Delete the returns first.'},
                status=status.HTTP_400_BAD_REQUEST
            )
        order_number = purchase_order.order_number
        with transaction.atomic():
            # Received goods leave stock again
            reverse_received_stock(purchase_order, request=request)
            purchase_order.delete()
        create_audit_log(request=request, action='delete', model_name='PurchaseOrder',
                         object_id=pk, object_name=order_number, object_reference=order_number)
        logger.info(f"Purchase order {order_number} deleted by {request.user.username}")
        return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def purchase_order_receive(request, pk):
    """Goods received: mark a pending order received and add its items to stock"""
    purchase_order = get_object_or_404(PurchaseOrder, pk=pk)
    try:
        receive_purchase_order(purchase_order, request=request)
    except ValidationError as e:
        return Response(e.detail, status=status.HTTP_400_BAD_REQUEST)
    return Response(PurchaseOrderSerializer(purchase_order).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def purchase_order_cancel(request, pk):
    """Cancel a pending purchase order. Received orders must be returned instead."""
    purchase_order = get_object_or_404(PurchaseOrder, pk=pk)
    if purchase_order.status != 'pending':
        return Response(
            {'error': f"Only pending orders can be cancelled (order is {purchase_order.status})"},
            status=status.HTTP_400_BAD_REQUEST
        )
    purchase_order.status = 'cancelled'
    purchase_order.save(update_fields=['status', 'updated_at'])
    create_audit_log(request=request, action='cancel', model_name='PurchaseOrder',
                     object_id=purchase_order.pk, object_name=purchase_order.order_number,
                     object_reference=purchase_order.order_number,
                     changes={'old': {'status': 'pending'}, 'new': {'status': 'cancelled'}})
    return Response(PurchaseOrderSerializer(purchase_order).data)


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def purchase_return_list_create(request):
    """List supplier returns or record a new one (stock goes down)"""
    if request.method == 'GET':
        queryset = PurchaseReturn.objects.select_related('supplier', 'purchase_order').prefetch_related('items__product')
        supplier = request.query_params.get('supplier')
        purchase_order = request.query_params.get('purchase_order')
        if supplier:
            queryset = queryset.filter(supplier_id=supplier)
        if purchase_order:
            queryset = queryset.filter(purchase_order_id=purchase_order)
        return paginated_response(request, queryset.order_by('-id'), PurchaseReturnSerializer)
    else:  # POST
        data = request.data.copy()
        items_data = data.pop('items', [])

        serializer = PurchaseReturnSerializer(data=data, context={'items_data': items_data, 'request': request})
        if serializer.is_valid():
            purchase_return = serializer.save(created_by=request.user)
            create_audit_log(request=request, action='return', model_name='PurchaseReturn',
                             object_id=purchase_return.pk, object_name=purchase_return.return_number,
                             object_reference=purchase_return.purchase_order.order_number if purchase_return.purchase_order else None,
                             changes={'new': snapshot(purchase_return)})
            return Response(PurchaseReturnSerializer(purchase_return).data, status=status.HTTP_201_CREATED)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'DELETE'])
@permission_classes([IsAuthenticated])
def purchase_return_detail(request, pk):
    """Retrieve a supplier return, or delete it and put the goods back into stock"""
    purchase_return = get_object_or_404(
        PurchaseReturn.objects.select_related('supplier', 'purchase_order').prefetch_related('items__product'), pk=pk
    )
    if request.method == 'GET':
        return Response(PurchaseReturnSerializer(purchase_return).data)

    return_number = purchase_return.return_number
    with transaction.atomic():
        for item in purchase_return.items.select_related('product'):
            stock_in(item.product, item.quantity, request=request,
                     reason='Supplier return deleted', reference=return_number)
        purchase_return.delete()
    create_audit_log(request=request, action='delete', model_name='PurchaseReturn',
                     object_id=pk, object_name=return_number)
    return Response(status=status.HTTP_204_NO_CONTENT)
