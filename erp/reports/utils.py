"""
Report builders

Each builder takes plain arguments (store id, ISO dates) so its result can be
cached under a key derived from them. The cache namespace is bumped by the
model signals in erp.core.cache_signals whenever the underlying data changes.
"""
import logging
from datetime import date, timedelta
from decimal import Decimal
from django.conf import settings
from django.db.models import Sum, Count, F, DecimalField, ExpressionWrapper
from django.db.models.functions import TruncMonth
from django.utils import timezone
from erp.catalog.models import Product
from erp.core.cache_utils import cached_query
from erp.core.models import BusinessProfile
from erp.core.utils import money
from erp.crm.models import Deal
from erp.expenses.models import Expense
from erp.parties.models import Contact
from erp.purchasing.models import PurchaseItem
from erp.sales.models import SalesOrder, SalesItem
from erp.sales.utils import get_tax_type, split_tax

logger = logging.getLogger(__name__)

CHART_MONTHS = 6
NEW_DEAL_DAYS = 7
ALERT_LIST_LIMIT = 10


def month_starts(today, count=CHART_MONTHS):
    """First day of the last `count` months, oldest first, current month included"""
    year, month = today.year, today.month
    starts = []
    for _ in range(count):
        starts.append(date(year, month, 1))
        month -= 1
        if month == 0:
            month, year = 12, year - 1
    return list(reversed(starts))


def _billable(store_id=None):
    documents = SalesOrder.objects.billable()
    if store_id:
        documents = documents.filter(store_id=store_id)
    return documents


def _expenses(store_id=None):
    expenses = Expense.objects.all()
    if store_id:
        expenses = expenses.filter(store_id=store_id)
    return expenses


def _monthly_totals(queryset, date_field, amount_field, since):
    rows = queryset.filter(**{f"{date_field}__gte": since}) \
        .annotate(month=TruncMonth(date_field)) \
        .values('month') \
        .annotate(total=Sum(amount_field))
    return {row['month'].strftime('%Y-%m'): money(row['total']) for row in rows}


def _monthly_series(store_id, today):
    starts = month_starts(today)
    sales = _monthly_totals(_billable(store_id), 'order_date', 'total_amount', starts[0])
    expenses = _monthly_totals(_expenses(store_id), 'expense_date', 'amount', starts[0])
    series = []
    for start in starts:
        key = start.strftime('%Y-%m')
        series.append({
            'month': key,
            'label': start.strftime('%b %Y'),
            'sales': sales.get(key, Decimal('0.00')),
            'expenses': expenses.get(key, Decimal('0.00')),
        })
    return series


@cached_query(key_prefix='dashboard_stats')
def build_dashboard_stats(store_id=None, today=None):
    today = date.fromisoformat(today) if today else timezone.localdate()
    documents = _billable(store_id)
    low_stock = Product.objects.low_stock().filter(is_active=True)

    return {
        'total_customers': Contact.objects.customers().count(),
        'total_revenue': money(documents.aggregate(total=Sum('paid_amount'))['total']),
        'pending_orders': documents.exclude(payment_status='paid').count(),
        'low_stock_count': low_stock.count(),
        'total_products': Product.objects.filter(is_active=True).count(),
        'month_expenses': money(
            _expenses(store_id).filter(expense_date__gte=today.replace(day=1), expense_date__lte=today)
            .aggregate(total=Sum('amount'))['total']
        ),
    }


@cached_query(key_prefix='dashboard_charts')
def build_dashboard_charts(store_id=None, today=None):
    today = date.fromisoformat(today) if today else timezone.localdate()
    return {'monthly': _monthly_series(store_id, today)}


@cached_query(key_prefix='report_summary')
def build_report_summary(store_id=None, today=None):
    today = date.fromisoformat(today) if today else timezone.localdate()
    documents = _billable(store_id)

    total_revenue = money(documents.aggregate(total=Sum('paid_amount'))['total'])
    total_expenses = money(_expenses(store_id).aggregate(total=Sum('amount'))['total'])

    top_categories = SalesItem.objects.filter(sales_order__in=documents, product__category__isnull=False) \
        .values(category_id=F('product__category_id'), category_name=F('product__category__name')) \
        .annotate(total=Sum('subtotal'), quantity=Sum('quantity')) \
        .order_by('-total')[:5]

    return {
        'total_revenue': total_revenue,
        'total_orders': documents.count(),
        'total_expenses': total_expenses,
        'net_profit': total_revenue - total_expenses,
        'monthly_sales': [
            {'month': row['month'], 'label': row['label'], 'sales': row['sales']}
            for row in _monthly_series(store_id, today)
        ],
        'top_categories': [
            {
                'category_id': row['category_id'],
                'category_name': row['category_name'],
                'total': money(row['total']),
                'quantity': row['quantity'],
            }
            for row in top_categories
        ],
    }


@cached_query(key_prefix='alerts')
def build_alerts(store_id=None, today=None):
    today = date.fromisoformat(today) if today else timezone.localdate()
    overdue_days = getattr(settings, 'OVERDUE_DAYS', 30)

    low_stock = Product.objects.low_stock().filter(is_active=True).order_by('current_stock', 'name')
    outstanding = _billable(store_id).exclude(payment_status='paid')
    outstanding_totals = outstanding.aggregate(
        count=Count('id'),
        amount=Sum(ExpressionWrapper(F('total_amount') - F('paid_amount'),
                                     output_field=DecimalField(max_digits=12, decimal_places=2))),
    )
    overdue = outstanding.filter(document_type='invoice', order_date__lt=today - timedelta(days=overdue_days)) \
        .select_related('customer').order_by('order_date')
    new_deals = Deal.objects.filter(
        stage__in=Deal.ACTIVE_STAGES,
        created_at__gte=timezone.now() - timedelta(days=NEW_DEAL_DAYS),
    ).select_related('contact').order_by('-created_at')

    return {
        'low_stock': {
            'count': low_stock.count(),
            'items': [
                {'id': p.id, 'name': p.name, 'sku': p.sku, 'current_stock': p.current_stock,
                 'alert_quantity': p.alert_quantity}
                for p in low_stock[:ALERT_LIST_LIMIT]
            ],
        },
        'pending_payments': {
            'count': outstanding_totals['count'],
            'amount': money(outstanding_totals['amount']),
        },
        'overdue_invoices': {
            'count': overdue.count(),
            'days': overdue_days,
            'items': [
                {'id': o.id, 'order_number': o.order_number, 'order_date': o.order_date.isoformat(),
                 'customer_name': o.customer.name if o.customer else '', 'balance_due': o.balance_due}
                for o in overdue[:ALERT_LIST_LIMIT]
            ],
        },
        'new_deals': {
            'count': new_deals.count(),
            'items': [
                {'id': d.id, 'title': d.title, 'stage': d.stage, 'value': d.value,
                 'contact_name': d.contact.name if d.contact else ''}
                for d in new_deals[:ALERT_LIST_LIMIT]
            ],
        },
    }


@cached_query(key_prefix='profit_loss')
def build_profit_loss(date_from, date_to, store_id=None):
    documents = _billable(store_id).filter(order_date__gte=date_from, order_date__lte=date_to)

    # Net of tax, after document discounts
    totals = documents.aggregate(total=Sum('total_amount'), tax=Sum('tax_amount'))
    revenue = money(totals['total']) - money(totals['tax'])

    cost_of_goods_sold = money(
        SalesItem.objects.filter(sales_order__in=documents).aggregate(
            total=Sum(ExpressionWrapper(F('quantity') * F('product__purchase_price'),
                                        output_field=DecimalField(max_digits=14, decimal_places=2)))
        )['total']
    )
    gross_profit = revenue - cost_of_goods_sold

    expense_rows = _expenses(store_id).filter(expense_date__gte=date_from, expense_date__lte=date_to) \
        .values(category_name=F('category__name')) \
        .annotate(total=Sum('amount')) \
        .order_by('-total')
    expenses_by_category = [
        {'category_name': row['category_name'], 'total': money(row['total'])} for row in expense_rows
    ]
    total_expenses = sum((row['total'] for row in expenses_by_category), Decimal('0.00'))

    return {
        'date_from': date_from,
        'date_to': date_to,
        'revenue': revenue,
        'cost_of_goods_sold': cost_of_goods_sold,
        'gross_profit': gross_profit,
        'expenses': expenses_by_category,
        'total_expenses': total_expenses,
        'net_profit': gross_profit - total_expenses,
    }


@cached_query(key_prefix='gst_report')
def build_gst_report(date_from, date_to, store_id=None):
    """Outward supplies from invoices and input tax from received purchases"""
    profile = BusinessProfile.load() or BusinessProfile()

    invoices = _billable(store_id).invoices().filter(order_date__gte=date_from, order_date__lte=date_to)
    items = SalesItem.objects.filter(sales_order__in=invoices).values(
        'tax_rate', 'subtotal', 'tax_amount', 'sales_order__place_of_supply', 'sales_order__customer__state'
    )

    outward = {}
    for item in items:
        buyer_state = item['sales_order__place_of_supply'] or item['sales_order__customer__state']
        cgst, sgst, igst = split_tax(item['tax_amount'], get_tax_type(profile.state, buyer_state))
        rate = money(item['tax_rate'])
        row = outward.setdefault(rate, {
            'tax_rate': rate,
            'taxable_value': Decimal('0.00'),
            'cgst': Decimal('0.00'),
            'sgst': Decimal('0.00'),
            'igst': Decimal('0.00'),
            'total_tax': Decimal('0.00'),
        })
        row['taxable_value'] += money(item['subtotal']) - money(item['tax_amount'])
        row['cgst'] += cgst
        row['sgst'] += sgst
        row['igst'] += igst
        row['total_tax'] += money(item['tax_amount'])
    outward_rows = [outward[rate] for rate in sorted(outward)]

    purchase_rows = PurchaseItem.objects.filter(
        purchase_order__status='received',
        purchase_order__order_date__gte=date_from,
        purchase_order__order_date__lte=date_to,
    )
    if store_id:
        purchase_rows = purchase_rows.filter(purchase_order__store_id=store_id)
    purchase_rows = purchase_rows.values('tax_rate').annotate(
        total=Sum('subtotal'), tax=Sum('tax_amount')
    ).order_by('tax_rate')
    inward_rows = [
        {
            'tax_rate': money(row['tax_rate']),
            'taxable_value': money(row['total']) - money(row['tax']),
            'total_tax': money(row['tax']),
        }
        for row in purchase_rows
    ]

    output_tax = sum((row['total_tax'] for row in outward_rows), Decimal('0.00'))
    input_tax = sum((row['total_tax'] for row in inward_rows), Decimal('0.00'))
    return {
        'date_from': date_from,
        'date_to': date_to,
        'business_state': profile.state,
        'outward_supplies': outward_rows,
        'output_tax': output_tax,
        'input_tax': input_tax,
        'inward_supplies': inward_rows,
        'net_liability': output_tax - input_tax,
    }
