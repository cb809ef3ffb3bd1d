"""Stock movement helpers shared by purchasing, sales, returns and adjustments"""
import logging
from decimal import Decimal

from django.db import transaction

from erp.catalog.models import Product
from erp.core.utils import create_audit_log

logger = logging.getLogger(__name__)

STOCK_IN = 'in'
STOCK_OUT = 'out'


def move_stock(product, quantity, direction, request=None, user=None, reason='', reference=None):
    """
    Increase or decrease a product's current stock

    Services carry no stock and are skipped. Decreases clamp at zero. The
    product row is locked for the duration of the update and the movement is
    written to the audit log against the product.

    Returns the refreshed product, or None when nothing moved.
    """
    if product is None or product.is_service:
        return None
    quantity = Decimal(str(quantity))
    if quantity <= 0:
        return None

    with transaction.atomic():
        locked = Product.objects.select_for_update().get(pk=product.pk)
        old_stock = locked.current_stock
        if direction == STOCK_IN:
            new_stock = old_stock + quantity
        elif direction == STOCK_OUT:
            new_stock = max(old_stock - quantity, Decimal('0'))
        else:
            raise ValueError(f"Unknown stock direction: {direction}")

        locked.current_stock = new_stock
        locked.save(update_fields=['current_stock', 'updated_at'])

    product.current_stock = new_stock
    logger.info(f"Stock {direction} for {locked.sku}: {old_stock} -> {new_stock} ({reason or 'no reason'})")
    create_audit_log(
        request=request,
        user=user,
        action='stock_in' if direction == STOCK_IN else 'stock_out',
        model_name='Product',
        object_id=locked.pk,
        object_name=locked.name,
        object_reference=reference,
        changes={
            'old': {'current_stock': str(old_stock)},
            'new': {'current_stock': str(new_stock)},
            'quantity': str(quantity),
            'reason': reason,
        },
    )
    return locked


def stock_in(product, quantity, **kwargs):
    return move_stock(product, quantity, STOCK_IN, **kwargs)


def stock_out(product, quantity, **kwargs):
    return move_stock(product, quantity, STOCK_OUT, **kwargs)


def reverse_adjustment(adjustment, request=None, reason='Adjustment reversed'):
    """Undo an adjustment's movements: increases are taken back out, decreases put back"""
    for item in adjustment.items.select_related('product'):
        move = stock_out if item.adjustment_type == 'increase' else stock_in
        move(item.product, item.quantity, request=request, reason=reason,
             reference=adjustment.reference_number)
