"""
Test suite for the sales module
Tests: quotations, challans, orders and invoices, conversion, payments, returns, print data and export
"""
from django.test import TestCase
from rest_framework import status
from rest_framework.exceptions import ValidationError
from decimal import Decimal
from django.utils import timezone
from erp.core.models import BusinessProfile
from erp.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from erp.sales.models import SalesOrder, SalesPayment
from erp.sales.utils import get_tax_type, split_tax, calculate_item_tax_rate, record_payment, convert_document


class SalesHelperTests(TestCase):
    def test_tax_type(self):
        self.assertEqual(get_tax_type('Karnataka', ' karnataka '), 'INTRA')
        self.assertEqual(get_tax_type('Karnataka', 'Kerala'), 'INTER')
        self.assertEqual(get_tax_type('', 'Kerala'), 'INTER')

    def test_split_tax(self):
        self.assertEqual(split_tax(Decimal('18.01'), 'INTRA'), (Decimal('9.01'), Decimal('9.00'), Decimal('0.00')))
        self.assertEqual(split_tax(Decimal('18.00'), 'INTER'), (Decimal('0.00'), Decimal('0.00'), Decimal('18.00')))

    def test_item_tax_rate(self):
        self.assertEqual(calculate_item_tax_rate(Decimal('18.00'), Decimal('118.00')), 18)
        self.assertEqual(calculate_item_tax_rate(0, Decimal('100.00')), 0)


class SalesModelTests(TestCase):
    def setUp(self):
        self.customer = TestDataFactory.create_customer()
        self.product = TestDataFactory.create_product()

    def test_totals_with_discount(self):
        order = TestDataFactory.create_sales_order(customer=self.customer, items=[(self.product, 2, 100, 18)])
        order.discount_amount = Decimal('36.00')
        order.save()
        order.recalculate_totals()
        self.assertEqual(order.subtotal, Decimal('200.00'))
        self.assertEqual(order.tax_amount, Decimal('36.00'))
        self.assertEqual(order.total_amount, Decimal('200.00'))

    def test_payment_status(self):
        order = TestDataFactory.create_sales_order(customer=self.customer, items=[(self.product, 1, 100, 0)])
        self.assertEqual(order.payment_status, 'unpaid')
        record_payment(order, Decimal('40.00'))
        self.assertEqual(order.payment_status, 'partial')
        self.assertEqual(order.balance_due, Decimal('60.00'))
        record_payment(order, Decimal('80.00'))
        self.assertEqual(order.payment_status, 'paid')
        self.assertEqual(order.balance_due, Decimal('0.00'))

    def test_paid_invoice_is_completed(self):
        invoice = TestDataFactory.create_sales_order(customer=self.customer, document_type='invoice',
                                                     items=[(self.product, 1, 100, 0)])
        record_payment(invoice, Decimal('100.00'))
        self.assertEqual(invoice.status, 'completed')

    def test_quotation_takes_no_payment(self):
        quotation = TestDataFactory.create_sales_order(customer=self.customer, document_type='quotation',
                                                       items=[(self.product, 1, 100, 0)])
        with self.assertRaises(ValidationError):
            record_payment(quotation, Decimal('10.00'))
        self.assertFalse(SalesPayment.objects.exists())


class SalesAPITestCase(TestCase):
    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)
        self.customer = TestDataFactory.create_customer(state='Karnataka')
        self.tax = TestDataFactory.create_tax_rate(percentage=Decimal('18.00'))
        self.product = TestDataFactory.create_product(stock=10, sale_price=Decimal('100.00'), tax_rate=self.tax)

    def document_payload(self, quantity='2', **overrides):
        data = {
            'customer': self.customer.id,
            'order_date': timezone.localdate().isoformat(),
            'items': [{'product': self.product.id, 'quantity': quantity}],
        }
        data.update(overrides)
        return data

    def stock(self):
        self.product.refresh_from_db()
        return self.product.current_stock


class QuotationTests(SalesAPITestCase):
    def test_create_quotation_uses_product_defaults(self):
        response = self.client.post('/api/v1/quotations/', self.document_payload(), format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['document_type'], 'quotation')
        self.assertTrue(response.data['order_number'].startswith('QT-'))
        item = response.data['items'][0]
        self.assertEqual(Decimal(item['unit_price']), Decimal('100.00'))
        self.assertEqual(Decimal(item['tax_rate']), Decimal('18.00'))
        self.assertEqual(Decimal(response.data['total_amount']), Decimal('236.00'))
        self.assertEqual(self.stock(), Decimal('10'))

    def test_quotation_endpoint_rejects_other_types(self):
        response = self.client.post('/api/v1/quotations/', self.document_payload(document_type='invoice'),
                                    format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_convert_quotation_to_order(self):
        response = self.client.post('/api/v1/quotations/', self.document_payload(), format='json')
        quotation_id = response.data['id']
        response = self.client.post(f'/api/v1/quotations/{quotation_id}/convert/')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['document_type'], 'order')
        self.assertEqual(response.data['source_document'], quotation_id)
        self.assertEqual(len(response.data['items']), 1)
        self.assertEqual(SalesOrder.objects.get(pk=quotation_id).status, 'converted')
        self.assertEqual(self.stock(), Decimal('10'))

        response = self.client.post(f'/api/v1/quotations/{quotation_id}/convert/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_converted_quotation_cannot_be_edited(self):
        response = self.client.post('/api/v1/quotations/', self.document_payload(), format='json')
        quotation_id = response.data['id']
        self.client.post(f'/api/v1/quotations/{quotation_id}/convert/')
        response = self.client.patch(f'/api/v1/quotations/{quotation_id}/', {'notes': 'late'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


class DeliveryChallanTests(SalesAPITestCase):
    def test_challan_does_not_move_stock(self):
        response = self.client.post('/api/v1/delivery-challans/', self.document_payload(), format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertTrue(response.data['order_number'].startswith('DC-'))
        self.assertEqual(self.stock(), Decimal('10'))

    def test_challan_cannot_be_converted(self):
        response = self.client.post('/api/v1/delivery-challans/', self.document_payload(), format='json')
        response = self.client.post(f"/api/v1/sales-orders/{response.data['id']}/convert/")
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)


class SalesOrderTests(SalesAPITestCase):
    def test_order_defaults_and_keeps_stock(self):
        response = self.client.post('/api/v1/sales-orders/', self.document_payload(), format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['document_type'], 'order')
        self.assertEqual(response.data['payment_status'], 'unpaid')
        self.assertEqual(self.stock(), Decimal('10'))

    def test_invoice_issues_stock(self):
        response = self.client.post('/api/v1/sales-orders/', self.document_payload(document_type='invoice'),
                                    format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertTrue(response.data['order_number'].startswith('INV-'))
        self.assertEqual(self.stock(), Decimal('8'))

    def test_invoice_stock_clamps_at_zero(self):
        self.client.post('/api/v1/sales-orders/', self.document_payload(quantity='15', document_type='invoice'),
                         format='json')
        self.assertEqual(self.stock(), Decimal('0'))

    def test_supplier_is_not_a_customer(self):
        supplier = TestDataFactory.create_supplier()
        response = self.client.post('/api/v1/sales-orders/', self.document_payload(customer=supplier.id),
                                    format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_editing_invoice_items_resyncs_stock(self):
        response = self.client.post('/api/v1/sales-orders/', self.document_payload(document_type='invoice'),
                                    format='json')
        invoice_id = response.data['id']
        response = self.client.patch(f'/api/v1/sales-orders/{invoice_id}/', {
            'items': [{'product': self.product.id, 'quantity': '5'}]
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(Decimal(response.data['items'][0]['quantity']), Decimal('5'))
        self.assertEqual(self.stock(), Decimal('5'))

    def test_discount_update_recalculates(self):
        response = self.client.post('/api/v1/sales-orders/', self.document_payload(), format='json')
        response = self.client.patch(f"/api/v1/sales-orders/{response.data['id']}/",
                                     {'discount_amount': '36.00'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(Decimal(response.data['total_amount']), Decimal('200.00'))

    def test_document_type_is_fixed(self):
        response = self.client.post('/api/v1/sales-orders/', self.document_payload(), format='json')
        response = self.client.patch(f"/api/v1/sales-orders/{response.data['id']}/",
                                     {'document_type': 'invoice'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_convert_order_to_invoice_moves_payments(self):
        response = self.client.post('/api/v1/sales-orders/', self.document_payload(), format='json')
        order_id = response.data['id']
        response = self.client.post(f'/api/v1/sales-orders/{order_id}/payments/',
                                    {'amount': '100.00', 'payment_method': 'upi'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['payment_status'], 'partial')

        response = self.client.post(f'/api/v1/sales-orders/{order_id}/convert/')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['document_type'], 'invoice')
        self.assertEqual(Decimal(response.data['paid_amount']), Decimal('100.00'))
        self.assertEqual(len(response.data['payments']), 1)
        self.assertEqual(self.stock(), Decimal('8'))
        order = SalesOrder.objects.get(pk=order_id)
        self.assertEqual(order.status, 'converted')
        self.assertEqual(order.paid_amount, Decimal('0.00'))

    def test_stale_order_is_converted_once(self):
        response = self.client.post('/api/v1/sales-orders/', self.document_payload(), format='json')
        first = SalesOrder.objects.get(pk=response.data['id'])
        stale = SalesOrder.objects.get(pk=response.data['id'])
        convert_document(first)
        with self.assertRaises(ValidationError):
            convert_document(stale)
        self.assertEqual(SalesOrder.objects.filter(document_type='invoice').count(), 1)
        self.assertEqual(self.stock(), Decimal('8'))

    def test_cancel_invoice_restores_stock(self):
        response = self.client.post('/api/v1/sales-orders/', self.document_payload(document_type='invoice'),
                                    format='json')
        invoice_id = response.data['id']
        response = self.client.post(f'/api/v1/sales-orders/{invoice_id}/cancel/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'cancelled')
        self.assertEqual(self.stock(), Decimal('10'))
        response = self.client.post(f'/api/v1/sales-orders/{invoice_id}/cancel/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(self.stock(), Decimal('10'))

    def test_delete_invoice_restores_stock(self):
        response = self.client.post('/api/v1/sales-orders/', self.document_payload(document_type='invoice'),
                                    format='json')
        response = self.client.delete(f"/api/v1/sales-orders/{response.data['id']}/")
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertEqual(self.stock(), Decimal('10'))

    def test_list_filters(self):
        self.client.post('/api/v1/sales-orders/', self.document_payload(), format='json')
        self.client.post('/api/v1/sales-orders/', self.document_payload(document_type='invoice'), format='json')
        self.client.post('/api/v1/quotations/', self.document_payload(), format='json')

        response = self.client.get('/api/v1/sales-orders/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 2)
        response = self.client.get('/api/v1/sales-orders/?document_type=invoice')
        self.assertEqual(response.data['count'], 1)
        response = self.client.get(f'/api/v1/sales-orders/?search={self.customer.name}')
        self.assertEqual(response.data['count'], 2)

    def test_export_csv(self):
        self.client.post('/api/v1/sales-orders/', self.document_payload(), format='json')
        response = self.client.get('/api/v1/sales-orders/export/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response['Content-Type'], 'text/csv')
        lines = response.content.decode().strip().splitlines()
        self.assertTrue(lines[0].startswith('order_number,document_type'))
        self.assertEqual(len(lines), 2)


class PaymentTests(SalesAPITestCase):
    def setUp(self):
        super().setUp()
        response = self.client.post('/api/v1/sales-orders/', self.document_payload(document_type='invoice'),
                                    format='json')
        self.invoice_id = response.data['id']

    def test_rejects_non_positive_amount(self):
        response = self.client.post(f'/api/v1/sales-orders/{self.invoice_id}/payments/',
                                    {'amount': '0'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_full_payment_completes_invoice(self):
        response = self.client.post(f'/api/v1/sales-orders/{self.invoice_id}/payments/',
                                    {'amount': '236.00'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['payment_status'], 'paid')
        self.assertEqual(Decimal(response.data['balance_due']), Decimal('0.00'))
        self.assertEqual(SalesOrder.objects.get(pk=self.invoice_id).status, 'completed')

    def test_delete_payment(self):
        response = self.client.post(f'/api/v1/sales-orders/{self.invoice_id}/payments/',
                                    {'amount': '236.00'}, format='json')
        payment_id = response.data['payment']['id']
        response = self.client.delete(f'/api/v1/sales-orders/{self.invoice_id}/payments/{payment_id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        invoice = SalesOrder.objects.get(pk=self.invoice_id)
        self.assertEqual(invoice.payment_status, 'unpaid')
        self.assertEqual(invoice.status, 'open')

    def test_list_payments(self):
        self.client.post(f'/api/v1/sales-orders/{self.invoice_id}/payments/', {'amount': '10.00'}, format='json')
        response = self.client.get(f'/api/v1/sales-orders/{self.invoice_id}/payments/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data), 1)


class SalesReturnTests(SalesAPITestCase):
    def setUp(self):
        super().setUp()
        response = self.client.post('/api/v1/sales-orders/', self.document_payload(quantity='4', document_type='invoice'),
                                    format='json')
        self.invoice_id = response.data['id']

    def return_payload(self, quantity):
        return {
            'sales_order': self.invoice_id,
            'return_date': timezone.localdate().isoformat(),
            'items': [{'product': self.product.id, 'quantity': str(quantity)}],
        }

    def test_return_restocks_and_prices_refund(self):
        self.assertEqual(self.stock(), Decimal('6'))
        response = self.client.post('/api/v1/sales-returns/', self.return_payload(1), format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertTrue(response.data['return_number'].startswith('SR-'))
        self.assertEqual(Decimal(response.data['total_refund_amount']), Decimal('118.00'))
        self.assertEqual(self.stock(), Decimal('7'))

    def test_cannot_return_more_than_sold(self):
        self.client.post('/api/v1/sales-returns/', self.return_payload(3), format='json')
        response = self.client.post('/api/v1/sales-returns/', self.return_payload(2), format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_orders_cannot_be_returned(self):
        response = self.client.post('/api/v1/sales-orders/', self.document_payload(), format='json')
        payload = self.return_payload(1)
        payload['sales_order'] = response.data['id']
        response = self.client.post('/api/v1/sales-returns/', payload, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_invoice_with_returns_is_protected(self):
        self.client.post('/api/v1/sales-returns/', self.return_payload(1), format='json')
        response = self.client.delete(f'/api/v1/sales-orders/{self.invoice_id}/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_cancel_after_return_restores_net_quantity(self):
        self.client.post('/api/v1/sales-returns/', self.return_payload(1), format='json')
        self.client.post(f'/api/v1/sales-orders/{self.invoice_id}/cancel/')
        self.assertEqual(self.stock(), Decimal('10'))

    def test_delete_return_takes_stock_out_again(self):
        response = self.client.post('/api/v1/sales-returns/', self.return_payload(2), format='json')
        response = self.client.delete(f"/api/v1/sales-returns/{response.data['id']}/")
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertEqual(self.stock(), Decimal('6'))

    def test_returns_of_cancelled_invoice_are_frozen(self):
        return_id = self.client.post('/api/v1/sales-returns/', self.return_payload(2), format='json').data['id']
        self.client.post(f'/api/v1/sales-orders/{self.invoice_id}/cancel/')
        self.assertEqual(self.stock(), Decimal('10'))
        response = self.client.delete(f'/api/v1/sales-returns/{return_id}/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        response = self.client.patch(f'/api/v1/sales-returns/{return_id}/', {
            'items': [{'product': self.product.id, 'quantity': '1'}]
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(self.stock(), Decimal('10'))

    def test_edit_return_swaps_stock(self):
        return_id = self.client.post('/api/v1/sales-returns/', self.return_payload(1), format='json').data['id']
        self.assertEqual(self.stock(), Decimal('7'))
        response = self.client.patch(f'/api/v1/sales-returns/{return_id}/', {
            'reason': 'Damaged in transit',
            'items': [{'product': self.product.id, 'quantity': '3'}],
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['reason'], 'Damaged in transit')
        self.assertEqual(len(response.data['items']), 1)
        self.assertEqual(Decimal(response.data['total_refund_amount']), Decimal('354.00'))
        self.assertEqual(self.stock(), Decimal('9'))

    def test_edit_return_checks_other_returns(self):
        self.client.post('/api/v1/sales-returns/', self.return_payload(3), format='json')
        return_id = self.client.post('/api/v1/sales-returns/', self.return_payload(1), format='json').data['id']
        response = self.client.patch(f'/api/v1/sales-returns/{return_id}/', {
            'items': [{'product': self.product.id, 'quantity': '2'}]
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(self.stock(), Decimal('10'))

    def test_edit_header_only_keeps_items(self):
        return_id = self.client.post('/api/v1/sales-returns/', self.return_payload(2), format='json').data['id']
        response = self.client.patch(f'/api/v1/sales-returns/{return_id}/', {'reason': 'Wrong size'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(Decimal(response.data['items'][0]['quantity']), Decimal('2'))
        self.assertEqual(self.stock(), Decimal('8'))


class PrintTests(SalesAPITestCase):
    def test_print_intra_state(self):
        BusinessProfile.objects.create(business_name='Test Traders', state='Karnataka', bank_name='Test Bank')
        response = self.client.post('/api/v1/sales-orders/', self.document_payload(document_type='invoice'),
                                    format='json')
        response = self.client.get(f"/api/v1/sales-orders/{response.data['id']}/print/")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['tax_type'], 'INTRA')
        self.assertEqual(response.data['seller']['bank']['bank_name'], 'Test Bank')
        self.assertEqual(response.data['items'][0]['tax_rate'], 18)
        self.assertEqual(response.data['totals']['cgst'], Decimal('18.00'))
        self.assertEqual(response.data['totals']['sgst'], Decimal('18.00'))
        self.assertEqual(response.data['totals']['igst'], Decimal('0.00'))

    def test_print_without_profile_is_inter_state(self):
        response = self.client.post('/api/v1/sales-orders/', self.document_payload(), format='json')
        response = self.client.get(f"/api/v1/sales-orders/{response.data['id']}/print/")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['tax_type'], 'INTER')
        self.assertEqual(response.data['totals']['igst'], Decimal('36.00'))
