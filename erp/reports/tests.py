"""
Test suite for the reports module
Tests: dashboard stats and charts, summary, alerts, profit and loss, GST report, caching
"""
from datetime import date, timedelta
from decimal import Decimal
from django.core.cache import cache
from django.test import TestCase
from django.utils import timezone
from rest_framework import status
from erp.core.models import BusinessProfile
from erp.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from erp.crm.models import Deal
from erp.sales.models import SalesOrder
from erp.sales.utils import record_payment
from erp.reports.utils import month_starts


class ReportsTestCase(TestCase):
    def setUp(self):
        cache.clear()
        self.user = TestDataFactory.create_admin()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)
        self.customer = TestDataFactory.create_customer(state='Karnataka')
        self.category = TestDataFactory.create_category(name='Appliances')
        self.product = TestDataFactory.create_product(category=self.category, stock=50,
                                                      purchase_price=Decimal('60.00'))


class MonthStartsTests(TestCase):
    def test_spans_year_boundary(self):
        starts = month_starts(date(2026, 2, 14))
        self.assertEqual(len(starts), 6)
        self.assertEqual(starts[0].isoformat(), '2025-09-01')
        self.assertEqual(starts[-1].isoformat(), '2026-02-01')


class DashboardTests(ReportsTestCase):
    def test_requires_authentication(self):
        self.client.logout()
        response = self.client.get('/api/v1/dashboard/stats/')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_stats(self):
        invoice = TestDataFactory.create_sales_order(
            user=self.user, customer=self.customer, document_type='invoice',
            items=[(self.product, 2, 100, 0)])
        record_payment(invoice, Decimal('150.00'), user=self.user)
        TestDataFactory.create_sales_order(customer=self.customer, document_type='quotation',
                                           items=[(self.product, 1, 100, 0)])
        TestDataFactory.create_product(stock=1, alert_quantity=Decimal('5'))
        TestDataFactory.create_expense(amount=Decimal('40.00'))

        response = self.client.get('/api/v1/dashboard/stats/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['total_customers'], 1)
        self.assertEqual(Decimal(str(response.data['total_revenue'])), Decimal('150.00'))
        self.assertEqual(response.data['pending_orders'], 1)
        self.assertEqual(response.data['low_stock_count'], 1)
        self.assertEqual(response.data['total_products'], 2)
        self.assertEqual(Decimal(str(response.data['month_expenses'])), Decimal('40.00'))

    def test_stats_are_cached_until_data_changes(self):
        invoice = TestDataFactory.create_sales_order(
            customer=self.customer, document_type='invoice', items=[(self.product, 1, 100, 0)])
        record_payment(invoice, Decimal('100.00'), user=self.user)
        first = self.client.get('/api/v1/dashboard/stats/')
        self.assertEqual(Decimal(str(first.data['total_revenue'])), Decimal('100.00'))

        # A queryset update sends no signals, so the cached figures are served
        SalesOrder.objects.filter(pk=invoice.pk).update(paid_amount=Decimal('1.00'))
        cached = self.client.get('/api/v1/dashboard/stats/')
        self.assertEqual(Decimal(str(cached.data['total_revenue'])), Decimal('100.00'))

        # A model save invalidates the namespace
        TestDataFactory.create_expense(amount=Decimal('10.00'))
        fresh = self.client.get('/api/v1/dashboard/stats/')
        self.assertEqual(Decimal(str(fresh.data['total_revenue'])), Decimal('1.00'))

    def test_charts(self):
        TestDataFactory.create_sales_order(customer=self.customer, document_type='invoice',
                                           items=[(self.product, 3, 100, 0)])
        TestDataFactory.create_expense(amount=Decimal('75.00'))
        response = self.client.get('/api/v1/dashboard/charts/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        monthly = response.data['monthly']
        self.assertEqual(len(monthly), 6)
        current = monthly[-1]
        self.assertEqual(current['month'], timezone.localdate().strftime('%Y-%m'))
        self.assertEqual(Decimal(str(current['sales'])), Decimal('300.00'))
        self.assertEqual(Decimal(str(current['expenses'])), Decimal('75.00'))


class SummaryTests(ReportsTestCase):
    def test_summary(self):
        other = TestDataFactory.create_category(name='Spares')
        spare = TestDataFactory.create_product(category=other, stock=10)
        invoice = TestDataFactory.create_sales_order(
            customer=self.customer, document_type='invoice',
            items=[(self.product, 3, 100, 0), (spare, 1, 50, 0)])
        record_payment(invoice, Decimal('350.00'), user=self.user)
        TestDataFactory.create_expense(amount=Decimal('100.00'))

        response = self.client.get('/api/v1/reports/summary/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(Decimal(str(response.data['total_revenue'])), Decimal('350.00'))
        self.assertEqual(response.data['total_orders'], 1)
        self.assertEqual(Decimal(str(response.data['net_profit'])), Decimal('250.00'))
        self.assertEqual(len(response.data['monthly_sales']), 6)
        categories = response.data['top_categories']
        self.assertEqual(categories[0]['category_name'], 'Appliances')
        self.assertEqual(Decimal(str(categories[0]['total'])), Decimal('300.00'))
        self.assertEqual(categories[1]['category_name'], 'Spares')

    def test_cancelled_documents_are_left_out(self):
        TestDataFactory.create_sales_order(customer=self.customer, document_type='order', status='cancelled',
                                           items=[(self.product, 1, 100, 0)])
        response = self.client.get('/api/v1/reports/summary/')
        self.assertEqual(response.data['total_orders'], 0)


class AlertsTests(ReportsTestCase):
    def test_alerts(self):
        TestDataFactory.create_product(name='Filter', stock=2, alert_quantity=Decimal('5'))
        old_date = timezone.localdate() - timedelta(days=45)
        TestDataFactory.create_sales_order(customer=self.customer, document_type='invoice', order_date=old_date,
                                           items=[(self.product, 1, 200, 0)])
        TestDataFactory.create_sales_order(customer=self.customer, document_type='invoice',
                                           items=[(self.product, 1, 100, 0)])
        TestDataFactory.create_deal(title='New lead', stage='lead')
        TestDataFactory.create_deal(title='Won', stage='closed')

        response = self.client.get('/api/v1/reports/alerts/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['low_stock']['count'], 1)
        self.assertEqual(response.data['low_stock']['items'][0]['name'], 'Filter')
        self.assertEqual(response.data['pending_payments']['count'], 2)
        self.assertEqual(Decimal(str(response.data['pending_payments']['amount'])), Decimal('300.00'))
        self.assertEqual(response.data['overdue_invoices']['count'], 1)
        self.assertEqual(response.data['new_deals']['count'], 1)
        self.assertEqual(response.data['new_deals']['items'][0]['title'], 'New lead')

    def test_old_deals_are_not_new(self):
        deal = TestDataFactory.create_deal(stage='negotiation')
        Deal.objects.filter(pk=deal.pk).update(created_at=timezone.now() - timedelta(days=10))
        response = self.client.get('/api/v1/reports/alerts/')
        self.assertEqual(response.data['new_deals']['count'], 0)


class ProfitLossTests(ReportsTestCase):
    def test_profit_loss(self):
        TestDataFactory.create_sales_order(customer=self.customer, document_type='invoice',
                                           items=[(self.product, 2, 100, 18)])
        TestDataFactory.create_expense(amount=Decimal('50.00'))
        today = timezone.localdate().isoformat()

        response = self.client.get(f'/api/v1/reports/profit-loss/?date_from={today}&date_to={today}')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(Decimal(str(response.data['revenue'])), Decimal('200.00'))
        self.assertEqual(Decimal(str(response.data['cost_of_goods_sold'])), Decimal('120.00'))
        self.assertEqual(Decimal(str(response.data['gross_profit'])), Decimal('80.00'))
        self.assertEqual(Decimal(str(response.data['total_expenses'])), Decimal('50.00'))
        self.assertEqual(Decimal(str(response.data['net_profit'])), Decimal('30.00'))
        self.assertEqual(response.data['expenses'][0]['category_name'], 'General')

    def test_reversed_range_is_rejected(self):
        response = self.client.get('/api/v1/reports/profit-loss/?date_from=2026-02-01&date_to=2026-01-01')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_invalid_date_is_rejected(self):
        response = self.client.get('/api/v1/reports/profit-loss/?date_from=01-01-2026')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


class GstReportTests(ReportsTestCase):
    def setUp(self):
        super().setUp()
        BusinessProfile.objects.create(business_name='Test Traders', state='Karnataka')

    def test_intra_and_inter_state_split(self):
        TestDataFactory.create_sales_order(customer=self.customer, document_type='invoice',
                                           items=[(self.product, 1, 100, 18)])
        outside = TestDataFactory.create_customer(state='Kerala')
        TestDataFactory.create_sales_order(customer=outside, document_type='invoice',
                                           items=[(self.product, 1, 200, 18)])
        # Orders are not invoices and stay out of the GST report
        TestDataFactory.create_sales_order(customer=self.customer, document_type='order',
                                           items=[(self.product, 1, 999, 18)])
        supplier = TestDataFactory.create_supplier()
        TestDataFactory.create_purchase_order(supplier=supplier, status='received',
                                              items=[(self.product, 1, 100, 18)])
        TestDataFactory.create_purchase_order(supplier=supplier, status='pending',
                                              items=[(self.product, 1, 500, 18)])

        response = self.client.get('/api/v1/reports/gst/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        rows = response.data['outward_supplies']
        self.assertEqual(len(rows), 1)
        row = rows[0]
        self.assertEqual(Decimal(str(row['tax_rate'])), Decimal('18.00'))
        self.assertEqual(Decimal(str(row['taxable_value'])), Decimal('300.00'))
        self.assertEqual(Decimal(str(row['cgst'])), Decimal('9.00'))
        self.assertEqual(Decimal(str(row['sgst'])), Decimal('9.00'))
        self.assertEqual(Decimal(str(row['igst'])), Decimal('36.00'))
        self.assertEqual(Decimal(str(response.data['output_tax'])), Decimal('54.00'))
        self.assertEqual(Decimal(str(response.data['input_tax'])), Decimal('18.00'))
        self.assertEqual(Decimal(str(response.data['net_liability'])), Decimal('36.00'))

    def test_business_state_change_refreshes_cached_report(self):
        outside = TestDataFactory.create_customer(state='Kerala')
        TestDataFactory.create_sales_order(customer=outside, document_type='invoice',
                                           items=[(self.product, 1, 100, 18)])
        response = self.client.get('/api/v1/reports/gst/')
        self.assertEqual(Decimal(str(response.data['outward_supplies'][0]['igst'])), Decimal('18.00'))

        response = self.client.patch('/api/v1/business-profile/', {'state': 'Kerala'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        response = self.client.get('/api/v1/reports/gst/')
        self.assertEqual(response.data['business_state'], 'Kerala')
        row = response.data['outward_supplies'][0]
        self.assertEqual(Decimal(str(row['igst'])), Decimal('0.00'))
        self.assertEqual(Decimal(str(row['cgst'])), Decimal('9.00'))


class CategoryRenameTests(ReportsTestCase):
    def test_summary_shows_renamed_category(self):
        TestDataFactory.create_sales_order(customer=self.customer, document_type='invoice',
                                           items=[(self.product, 1, 100, 0)])
        response = self.client.get('/api/v1/reports/summary/')
        self.assertEqual(response.data['top_categories'][0]['category_name'], 'Appliances')
        self.category.name = 'Home Appliances'
        self.category.save()
        response = self.client.get('/api/v1/reports/summary/')
        self.assertEqual(response.data['top_categories'][0]['category_name'], 'Home Appliances')


class StoreScopeTests(ReportsTestCase):
    def setUp(self):
        super().setUp()
        self.store_a = TestDataFactory.create_store()
        self.store_b = TestDataFactory.create_store()
        invoice = TestDataFactory.create_sales_order(customer=self.customer, document_type='invoice',
                                                     store=self.store_b, items=[(self.product, 1, 999, 0)])
        record_payment(invoice, Decimal('999.00'))
        self.member = TestDataFactory.create_user()
        TestDataFactory.create_employee(user=self.member, store=self.store_a)

    def revenue(self, url):
        response = self.client.get(url)
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        return Decimal(str(response.data['total_revenue']))

    def test_employee_sees_only_own_store(self):
        self.client.authenticate_user(self.member)
        self.assertEqual(self.revenue('/api/v1/dashboard/stats/'), Decimal('0.00'))
        self.assertEqual(self.revenue(f'/api/v1/dashboard/stats/?store={self.store_b.id}'), Decimal('0.00'))

    def test_admin_sees_every_store_or_picks_one(self):
        self.assertEqual(self.revenue('/api/v1/dashboard/stats/'), Decimal('999.00'))
        self.assertEqual(self.revenue(f'/api/v1/dashboard/stats/?store={self.store_a.id}'), Decimal('0.00'))
        self.assertEqual(self.revenue(f'/api/v1/dashboard/stats/?store={self.store_b.id}'), Decimal('999.00'))

    def test_user_without_store_is_refused(self):
        self.client.authenticate_user(TestDataFactory.create_user())
        for url in ('/api/v1/dashboard/stats/', '/api/v1/reports/alerts/', '/api/v1/reports/gst/'):
            response = self.client.get(url)
            self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
