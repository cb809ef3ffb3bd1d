import logging
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from rest_framework.serializers import ValidationError
from django.db import transaction
from django.shortcuts import get_object_or_404
from erp.core.csv_utils import csv_response
from erp.core.pagination import paginated_response
from erp.core.utils import create_audit_log, snapshot
from erp.inventory.utils import stock_out
from .filters import SalesOrderFilter
from .models import SalesOrder, SalesPayment, SalesReturn
from .serializers import (
    SalesOrderSerializer, SalesOrderListSerializer, SalesPaymentSerializer, SalesReturnSerializer
)
from .utils import convert_document, record_payment, restore_stock, build_print_document

logger = logging.getLogger(__name__)

SALES_EXPORT_HEADERS = [
    'order_number', 'document_type', 'order_date', 'due_date', 'customer', 'status', 'channel',
    'subtotal', 'tax_amount', 'discount_amount', 'total_amount', 'paid_amount', 'balance_due', 'payment_status',
]


def _document_queryset():
    return SalesOrder.objects.select_related('customer', 'store', 'source_document') \
        .prefetch_related('items__product', 'payments')


def _document_list_create(request, document_types):
    """
    Shared list/create for one family of sales documents

    The first entry of document_types is the default for new documents.
    """
    if request.method == 'GET':
        queryset = SalesOrder.objects.select_related('customer').filter(document_type__in=document_types)
        filterset = SalesOrderFilter(request.query_params, queryset=queryset)
        if not filterset.is_valid():
            return Response(filterset.errors, status=status.HTTP_400_BAD_REQUEST)
        return paginated_response(request, filterset.qs.order_by('-order_date', '-id'), SalesOrderListSerializer)

    data = request.data.copy()
    items_data = data.pop('items', [])
    serializer = SalesOrderSerializer(
        data=data,
        context={'items_data': items_data, 'request': request, 'document_types': document_types}
    )
    if serializer.is_valid():
        sales_order = serializer.save(created_by=request.user)
        create_audit_log(request=request, action='create', model_name='SalesOrder', object_id=sales_order.pk,
                         object_name=sales_order.order_number, object_reference=sales_order.order_number,
                         changes={'new': snapshot(sales_order)})
        logger.info(f"{sales_order.get_document_type_display()} {sales_order.order_number} created by {request.user.username}")
        return Response(SalesOrderSerializer(_document_queryset().get(pk=sales_order.pk)).data,
                        status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


def _document_detail(request, sales_order):
    if request.method == 'GET':
        return Response(SalesOrderSerializer(sales_order).data)
    elif request.method in ('PUT', 'PATCH'):
        data = request.data.copy()
        items_data = data.pop('items', None)
        old = snapshot(sales_order)
        serializer = SalesOrderSerializer(
            sales_order, data=data, partial=request.method == 'PATCH',
            context={'items_data': items_data, 'request': request}
        )
        if serializer.is_valid():
            sales_order = serializer.save()
            create_audit_log(request=request, action='update', model_name='SalesOrder', object_id=sales_order.pk,
                             object_name=sales_order.order_number, object_reference=sales_order.order_number,
                             changes={'old': old, 'new': snapshot(sales_order)})
            return Response(SalesOrderSerializer(_document_queryset().get(pk=sales_order.pk)).data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        if sales_order.returns.exists():
            return Response({'error': 'Document has customer returns. Delete the returns first.'},
                            status=status.HTTP_400_BAD_REQUEST)
        document_id, order_number = sales_order.pk, sales_order.order_number
        with transaction.atomic():
            if sales_order.status != 'cancelled':
                restore_stock(sales_order, request=request, reason='Invoice deleted')
            sales_order.delete()
        create_audit_log(request=request, action='delete', model_name='SalesOrder', object_id=document_id,
                         object_name=order_number, object_reference=order_number)
        logger.info(f"{order_number} deleted by {request.user.username}")
        return Response(status=status.HTTP_204_NO_CONTENT)


def _convert(request, sales_order):
    try:
        target = convert_document(sales_order, request=request)
    except ValidationError as e:
        return Response(e.detail, status=status.HTTP_400_BAD_REQUEST)
    return Response(SalesOrderSerializer(_document_queryset().get(pk=target.pk)).data, status=status.HTTP_201_CREATED)


# Quotation views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def quotation_list_create(request):
    """List quotations or create a new quotation"""
    return _document_list_create(request, ['quotation'])


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def quotation_detail(request, pk):
    """Retrieve, update or delete a quotation"""
    quotation = get_object_or_404(_document_queryset().quotations(), pk=pk)
    return _document_detail(request, quotation)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def quotation_convert(request, pk):
    """Turn an open quotation into a sales order"""
    quotation = get_object_or_404(SalesOrder.objects.quotations(), pk=pk)
    return _convert(request, quotation)


# Delivery challan views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def delivery_challan_list_create(request):
    """List delivery challans or create a new challan (no stock movement)"""
    return _document_list_create(request, ['delivery_challan'])


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def delivery_challan_detail(request, pk):
    """Retrieve, update or delete a delivery challan"""
    challan = get_object_or_404(_document_queryset().challans(), pk=pk)
    return _document_detail(request, challan)


# Sales order / invoice views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def sales_order_list_create(request):
    """
    List sales orders and invoices, or create one.

    document_type defaults to 'order' (no stock change); 'invoice' is a
    direct sale and takes the goods out of stock.
    """
    return _document_list_create(request, ['order', 'invoice'])


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def sales_order_detail(request, pk):
    """Retrieve, update or delete a sales order or invoice"""
    sales_order = get_object_or_404(_document_queryset().orders_and_invoices(), pk=pk)
    return _document_detail(request, sales_order)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def sales_order_convert(request, pk):
    """Turn an open sales order into an invoice"""
    sales_order = get_object_or_404(SalesOrder.objects.orders_and_invoices(), pk=pk)
    return _convert(request, sales_order)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def sales_order_cancel(request, pk):
    """Cancel any open or completed sales document; invoice stock is restored"""
    sales_order = get_object_or_404(SalesOrder, pk=pk)
    if sales_order.status in ('cancelled', 'converted'):
        return Response({'error': f"A {sales_order.status} document cannot be cancelled"},
                        status=status.HTTP_400_BAD_REQUEST)

    old_status = sales_order.status
    with transaction.atomic():
        restore_stock(sales_order, request=request, reason='Invoice cancelled')
        sales_order.status = 'cancelled'
        sales_order.save(update_fields=['status', 'updated_at'])
    create_audit_log(request=request, action='cancel', model_name='SalesOrder', object_id=sales_order.pk,
                     object_name=sales_order.order_number, object_reference=sales_order.order_number,
                     changes={'old': {'status': old_status}, 'new': {'status': 'cancelled'}})
    logger.info(f"{sales_order.order_number} cancelled by {request.user.username}")
    return Response(SalesOrderSerializer(_document_queryset().get(pk=sales_order.pk)).data)


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def sales_order_payments(request, pk):
    """List or add payments of an order or invoice"""
    sales_order = get_object_or_404(SalesOrder, pk=pk)
    if request.method == 'GET':
        return Response(SalesPaymentSerializer(sales_order.payments.select_related('created_by'), many=True).data)

    serializer = SalesPaymentSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    try:
        payment = record_payment(sales_order, request=request, **serializer.validated_data)
    except ValidationError as e:
        return Response(e.detail, status=status.HTTP_400_BAD_REQUEST)
    sales_order.refresh_from_db()
    return Response({
        'payment': SalesPaymentSerializer(payment).data,
        'paid_amount': sales_order.paid_amount,
        'balance_due': sales_order.balance_due,
        'payment_status': sales_order.payment_status,
    }, status=status.HTTP_201_CREATED)


@api_view(['DELETE'])
@permission_classes([IsAuthenticated])
def sales_payment_delete(request, pk, payment_id):
    """Delete a payment and recompute the document's payment status"""
    payment = get_object_or_404(SalesPayment.objects.select_related('sales_order'), pk=payment_id, sales_order_id=pk)
    sales_order = payment.sales_order
    amount = payment.amount
    with transaction.atomic():
        payment.delete()
        sales_order.refresh_payment_status()
    create_audit_log(request=request, action='payment_delete', model_name='SalesPayment', object_id=payment_id,
                     object_name=f"Payment for {sales_order.order_number}", object_reference=sales_order.order_number,
                     changes={'amount': str(amount), 'new': {'paid_amount': str(sales_order.paid_amount),
                                                             'payment_status': sales_order.payment_status}})
    return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def sales_order_print(request, pk):
    """Printable document data with the GST breakdown"""
    sales_order = get_object_or_404(SalesOrder.objects.select_related('customer'), pk=pk)
    return Response(build_print_document(sales_order))


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def sales_order_export(request):
    """Export the (filtered) sales documents as CSV"""
    queryset = SalesOrder.objects.select_related('customer')
    queryset = SalesOrderFilter(request.query_params, queryset=queryset).qs.order_by('-order_date', '-id')
    rows = (
        [
            o.order_number, o.document_type, o.order_date, o.due_date or '',
            o.customer.name if o.customer else '', o.status, o.channel,
            o.subtotal, o.tax_amount, o.discount_amount, o.total_amount, o.paid_amount,
            o.balance_due, o.payment_status,
        ]
        for o in queryset
    )
    return csv_response('sales.csv', SALES_EXPORT_HEADERS, rows)


# Sales return views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def sales_return_list_create(request):
    """List customer returns or record a new one (stock goes back up)"""
    if request.method == 'GET':
        queryset = SalesReturn.objects.select_related('sales_order__customer').prefetch_related('items__product')
        sales_order = request.query_params.get('sales_order')
        if sales_order:
            queryset = queryset.filter(sales_order_id=sales_order)
        return paginated_response(request, queryset.order_by('-id'), SalesReturnSerializer)

    data = request.data.copy()
    items_data = data.pop('items', [])
    serializer = SalesReturnSerializer(data=data, context={'items_data': items_data, 'request': request})
    if serializer.is_valid():
        sales_return = serializer.save(created_by=request.user)
        create_audit_log(request=request, action='return', model_name='SalesReturn', object_id=sales_return.pk,
                         object_name=sales_return.return_number,
                         object_reference=sales_return.sales_order.order_number,
                         changes={'new': snapshot(sales_return)})
        return Response(SalesReturnSerializer(sales_return).data, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def sales_return_detail(request, pk):
    """
    Retrieve, edit or delete a customer return

    Editing the items swaps the old lines' stock for the new ones; deleting
    takes the returned goods out of stock again. Returns of a cancelled
    invoice are frozen, since cancelling already settled their stock.
    """
    sales_return = get_object_or_404(
        SalesReturn.objects.select_related('sales_order__customer').prefetch_related('items__product'), pk=pk
    )
    if request.method == 'GET':
        return Response(SalesReturnSerializer(sales_return).data)

    if sales_return.sales_order.status == 'cancelled':
        return Response({'error': f"Invoice {sales_return.sales_order.order_number} is cancelled; its returns cannot be changed"},
                        status=status.HTTP_400_BAD_REQUEST)

    if request.method in ('PUT', 'PATCH'):
        old = snapshot(sales_return)
        data = request.data.copy()
        items_data = data.pop('items', None)
        serializer = SalesReturnSerializer(sales_return, data=data, partial=request.method == 'PATCH',
                                           context={'items_data': items_data, 'request': request})
        if serializer.is_valid():
            sales_return = serializer.save()
            sales_return = SalesReturn.objects.prefetch_related('items__product').get(pk=sales_return.pk)
            create_audit_log(request=request, action='update', model_name='SalesReturn', object_id=sales_return.pk,
                             object_name=sales_return.return_number,
                             object_reference=sales_return.sales_order.order_number,
                             changes={'old': old, 'new': snapshot(sales_return)})
            return Response(SalesReturnSerializer(sales_return).data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    return_number = sales_return.return_number
    with transaction.atomic():
        for item in sales_return.items.select_related('product'):
            stock_out(item.product, item.quantity, request=request,
                      reason='Customer return deleted', reference=return_number)
        sales_return.delete()
    create_audit_log(request=request, action='delete', model_name='SalesReturn', object_id=pk,
                     object_name=return_number)
    return Response(status=status.HTTP_204_NO_CONTENT)
