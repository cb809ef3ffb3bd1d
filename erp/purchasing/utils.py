"""Purchase order stock operations"""
import logging
from django.db import transaction
from django.utils import timezone
from rest_framework import serializers
from erp.core.utils import create_audit_log
from erp.inventory.utils import stock_in, stock_out
from .models import PurchaseOrder, PurchaseItem

logger = logging.getLogger(__name__)


def replace_items(purchase_order, lines):
    """Replace all items of a purchase order with validated lines and refresh its totals"""
    purchase_order.items.all().delete()
    for line in lines:
        PurchaseItem.objects.create(
            purchase_order=purchase_order,
            product=line['product'],
            quantity=line['quantity'],
            unit_price=line['unit_price'],
            tax_rate=line['tax_rate'],
        )
    purchase_order.recalculate_totals()


def receive_purchase_order(purchase_order, request=None):
    """
    Goods received note: mark a pending order received and add its items to stock
    """
    with transaction.atomic():
        # Status is checked on the locked row so an order is received once
        current = PurchaseOrder.objects.select_for_update().values_list('status', flat=True).get(pk=purchase_order.pk)
        if current != 'pending':
            raise serializers.ValidationError({'status': f"Only pending orders can be received (order is {current})"})
        purchase_order.status = 'received'
        purchase_order.received_at = timezone.now()
        purchase_order.save(update_fields=['status', 'received_at', 'updated_at'])
        for item in purchase_order.items.select_related('product'):
            stock_in(item.product, item.quantity, request=request,
                     reason='Purchase received', reference=purchase_order.order_number)

    create_audit_log(request=request, action='receive', model_name='PurchaseOrder',
                     object_id=purchase_order.pk, object_name=purchase_order.order_number,
                     object_reference=purchase_order.order_number,
                     changes={'old': {'status': 'pending'}, 'new': {'status': 'received'}})
    logger.info(f"Purchase order {purchase_order.order_number} received")
    return purchase_order


def reverse_received_stock(purchase_order, request=None, reason='Purchase deleted'):
    """Take a received order's quantities back out of stock (net of supplier returns)"""
    if purchase_order.status != 'received':
        return
    returned = purchase_order.get_returned_quantities()
    for item in purchase_order.items.select_related('product'):
        remaining = item.quantity - returned.get(item.product_id, 0)
        if remaining > 0:
            stock_out(item.product, remaining, request=request, reason=reason,
                      reference=purchase_order.order_number)
        # Each product's return is netted once
        returned.pop(item.product_id, None)
