"""Sales document helpers: numbering, stock, conversion, payments and GST split"""
import logging
from decimal import Decimal, ROUND_HALF_UP
from django.db import transaction
from django.utils import timezone
from rest_framework import serializers
from erp.core.models import BusinessProfile
from erp.core.utils import create_audit_log, generate_document_number, money
from erp.inventory.utils import stock_in, stock_out
from .models import SalesOrder, SalesItem, SalesPayment

logger = logging.getLogger(__name__)

DOCUMENT_PREFIXES = {
    'quotation': 'QT',
    'delivery_challan': 'DC',
    'order': 'SO',
    'invoice': 'INV',
}

# What each document type becomes when converted
CONVERSIONS = {
    'quotation': 'order',
    'order': 'invoice',
}


def next_document_number(document_type):
    return generate_document_number(DOCUMENT_PREFIXES[document_type], SalesOrder, 'order_number')


def replace_items(sales_order, lines):
    """Replace all items of a sales document with validated lines and refresh its totals"""
    sales_order.items.all().delete()
    for line in lines:
        SalesItem.objects.create(
            sales_order=sales_order,
            product=line['product'],
            description=line.get('description') or '',
            quantity=line['quantity'],
            unit_price=line['unit_price'],
            tax_rate=line['tax_rate'],
        )
    sales_order.recalculate_totals()


def issue_stock(sales_order, request=None, user=None):
    """Take an invoice's items out of stock. Other document types never move stock."""
    if not sales_order.is_invoice:
        return
    for item in sales_order.items.select_related('product'):
        stock_out(item.product, item.quantity, request=request, user=user,
                  reason='Sold', reference=sales_order.order_number)


def restore_stock(sales_order, request=None, reason='Invoice cancelled'):
    """Put an invoice's items back into stock, net of what customers already returned"""
    if not sales_order.is_invoice:
        return
    returned = sales_order.get_returned_quantities()
    for item in sales_order.items.select_related('product'):
        quantity = item.quantity - returned.pop(item.product_id, Decimal('0'))
        if quantity > 0:
            stock_in(item.product, quantity, request=request, reason=reason,
                     reference=sales_order.order_number)


def convert_document(source, request=None):
    """
    Convert a quotation into a sales order, or a sales order into an invoice

    The new document copies the source's customer and items and links back
    to it; the source is marked converted. Converting to an invoice takes
    the goods out of stock and moves the order's payments onto the invoice.
    """
    target_type = CONVERSIONS.get(source.document_type)
    if target_type is None:
        raise serializers.ValidationError({'document_type': f"A {source.get_document_type_display().lower()} cannot be converted"})

    user = request.user if request is not None else None
    with transaction.atomic():
        # Status is checked on the locked row so a document is converted once
        current = SalesOrder.objects.select_for_update().values_list('status', flat=True).get(pk=source.pk)
        if current != 'open':
            raise serializers.ValidationError({'status': f"Only open documents can be converted ({source.order_number} is {current})"})
        target = SalesOrder.objects.create(
            order_number=next_document_number(target_type),
            document_type=target_type,
            customer=source.customer,
            store=source.store,
            order_date=timezone.localdate(),
            due_date=source.due_date,
            channel=source.channel,
            place_of_supply=source.place_of_supply,
            discount_amount=source.discount_amount,
            notes=source.notes,
            source_document=source,
            created_by=user if user is not None and user.is_authenticated else None,
        )
        for item in source.items.all():
            SalesItem.objects.create(
                sales_order=target,
                product_id=item.product_id,
                description=item.description,
                quantity=item.quantity,
                unit_price=item.unit_price,
                tax_rate=item.tax_rate,
            )
        if target_type == 'invoice':
            source.payments.update(sales_order=target)
        target.recalculate_totals()
        issue_stock(target, request=request)

        source.status = 'converted'
        source.save(update_fields=['status', 'updated_at'])
        source.refresh_payment_status()

    create_audit_log(request=request, action='convert', model_name='SalesOrder', object_id=source.pk,
                     object_name=source.order_number, object_reference=target.order_number,
                     changes={'old': {'status': 'open'}, 'new': {'status': 'converted'},
                              'converted_to': target.order_number, 'document_type': target_type})
    logger.info(f"{source.order_number} converted to {target.order_number}")
    return target


def record_payment(sales_order, amount, payment_method='cash', request=None, user=None,
                   payment_date=None, reference='', notes=''):
    """Add a payment to an order or invoice and recompute its payment status"""
    if not sales_order.accepts_payments:
        raise serializers.ValidationError(
            {'error': f"Payments cannot be recorded on {sales_order.order_number} ({sales_order.get_document_type_display()}, {sales_order.status})"}
        )
    amount = money(amount)
    if amount <= 0:
        raise serializers.ValidationError({'amount': 'Payment amount must be greater than zero'})

    if user is None and request is not None and request.user.is_authenticated:
        user = request.user
    old_paid = sales_order.paid_amount
    with transaction.atomic():
        payment = SalesPayment.objects.create(
            sales_order=sales_order,
            amount=amount,
            payment_date=payment_date or timezone.localdate(),
            payment_method=payment_method,
            reference=reference or '',
            notes=notes or '',
            created_by=user,
        )
        sales_order.refresh_payment_status()

    create_audit_log(request=request, user=user, action='payment_add', model_name='SalesPayment',
                     object_id=payment.pk, object_name=f"Payment for {sales_order.order_number}",
                     object_reference=sales_order.order_number,
                     changes={'amount': str(amount), 'payment_method': payment_method,
                              'old': {'paid_amount': str(old_paid)},
                              'new': {'paid_amount': str(sales_order.paid_amount),
                                      'payment_status': sales_order.payment_status}})
    return payment


def get_tax_type(supplier_state, buyer_state):
    """
    'INTRA' (CGST + SGST) when both states are known and equal ignoring case
    and surrounding whitespace, 'INTER' (IGST) otherwise
    """
    if not supplier_state or not buyer_state:
        return 'INTER'
    return 'INTRA' if supplier_state.strip().lower() == buyer_state.strip().lower() else 'INTER'


def calculate_taxable_amount(items):
    return sum((item.subtotal - item.tax_amount for item in items), Decimal('0.00'))


def calculate_total_tax(items):
    return sum((item.tax_amount for item in items), Decimal('0.00'))


def calculate_item_tax_rate(tax_amount, subtotal):
    """Effective whole-number rate of a line from its tax and tax-inclusive subtotal"""
    tax_amount = Decimal(str(tax_amount or 0))
    subtotal = Decimal(str(subtotal or 0))
    if tax_amount <= 0 or not subtotal:
        return 0
    taxable = subtotal - tax_amount
    if taxable <= 0:
        return 0
    return int((tax_amount / taxable * 100).quantize(Decimal('1'), rounding=ROUND_HALF_UP))


def split_tax(tax_amount, tax_type):
    """(cgst, sgst, igst) for a tax amount"""
    tax_amount = money(tax_amount)
    if tax_type == 'INTRA':
        cgst = money(tax_amount / 2)
        return cgst, tax_amount - cgst, Decimal('0.00')
    return Decimal('0.00'), Decimal('0.00'), tax_amount


def build_print_document(sales_order):
    """Everything a printed invoice needs: seller, buyer, lines, GST breakdown and totals"""
    profile = BusinessProfile.load() or BusinessProfile()
    customer = sales_order.customer
    buyer_state = sales_order.place_of_supply or (customer.state if customer else '')
    tax_type = get_tax_type(profile.state, buyer_state)
    items = list(sales_order.items.select_related('product', 'product__unit'))

    lines = []
    for index, item in enumerate(items, start=1):
        cgst, sgst, igst = split_tax(item.tax_amount, tax_type)
        lines.append({
            'sr_no': index,
            'product': item.product.name,
            'description': item.description,
            'hsn_code': item.product.hsn_code,
            'unit': item.product.unit.short_name if item.product.unit else '',
            'quantity': item.quantity,
            'unit_price': item.unit_price,
            'taxable_amount': item.get_taxable_amount(),
            'tax_rate': calculate_item_tax_rate(item.tax_amount, item.subtotal),
            'cgst': cgst,
            'sgst': sgst,
            'igst': igst,
            'total': item.subtotal,
        })

    total_tax = calculate_total_tax(items)
    cgst, sgst, igst = split_tax(total_tax, tax_type)
    return {
        'document': {
            'number': sales_order.order_number,
            'type': sales_order.document_type,
            'title': sales_order.get_document_type_display(),
            'date': sales_order.order_date,
            'due_date': sales_order.due_date,
            'status': sales_order.status,
            'notes': sales_order.notes,
        },
        'seller': {
            'name': profile.business_name,
            'gstin': profile.gstin,
            'pan_no': profile.pan_no,
            'state': profile.state,
            'address': profile.address,
            'phone': profile.phone,
            'email': profile.email,
            'bank': {
                'bank_name': profile.bank_name,
                'account_name': profile.account_name,
                'account_no': profile.account_no,
                'ifsc_code': profile.ifsc_code,
                'branch': profile.branch,
            },
            'terms': profile.invoice_terms,
        },
        'buyer': {
            'name': customer.name if customer else 'Walk-in Customer',
            'company': customer.company if customer else '',
            'gstin': customer.gstin if customer else '',
            'address': customer.address if customer else '',
            'phone': customer.phone if customer else '',
            'state': buyer_state,
        },
        'tax_type': tax_type,
        'items': lines,
        'totals': {
            'taxable_amount': calculate_taxable_amount(items),
            'cgst': cgst,
            'sgst': sgst,
            'igst': igst,
            'total_tax': total_tax,
            'discount_amount': sales_order.discount_amount,
            'total_amount': sales_order.total_amount,
            'paid_amount': sales_order.paid_amount,
            'balance_due': sales_order.balance_due,
        },
    }
