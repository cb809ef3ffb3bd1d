"""
Test suite for the purchasing module
Tests: purchase order CRUD, receiving, cancelling, stock effects and supplier returns
"""
from django.test import TestCase
from rest_framework import status
from rest_framework.exceptions import ValidationError
from decimal import Decimal
from django.utils import timezone
from erp.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from erp.purchasing.models import PurchaseOrder, PurchaseItem, PurchaseReturn
from erp.purchasing.utils import receive_purchase_order
from erp.catalog.models import Product


class PurchaseModelTests(TestCase):
    """Test PurchaseOrder and PurchaseItem model methods"""

    def setUp(self):
        self.supplier = TestDataFactory.create_supplier()
        self.product = TestDataFactory.create_product()

    def test_item_amounts(self):
        """Line tax and subtotal are computed on save"""
        order = TestDataFactory.create_purchase_order(supplier=self.supplier)
        item = PurchaseItem.objects.create(purchase_order=order, product=self.product, quantity=Decimal('3'),
                                           unit_price=Decimal('100.00'), tax_rate=Decimal('18.00'))
        self.assertEqual(item.tax_amount, Decimal('54.00'))
        self.assertEqual(item.subtotal, Decimal('354.00'))
        self.assertEqual(item.get_taxable_amount(), Decimal('300.00'))

    def test_recalculate_totals(self):
        order = TestDataFactory.create_purchase_order(
            supplier=self.supplier,
            items=[(self.product, 10, 100, 0), (self.product, 5, 50, 18)]
        )
        self.assertEqual(order.subtotal, Decimal('1250.00'))
        self.assertEqual(order.tax_amount, Decimal('45.00'))
        self.assertEqual(order.total_amount, Decimal('1295.00'))

    def test_str(self):
        order = TestDataFactory.create_purchase_order(supplier=self.supplier)
        self.assertEqual(str(order), order.order_number)


class PurchaseOrderAPITests(TestCase):
    """Test purchase order API endpoints"""

    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)
        self.supplier = TestDataFactory.create_supplier()
        self.store = TestDataFactory.create_store()
        self.product = TestDataFactory.create_product(stock=5, purchase_price=Decimal('80.00'))

    def order_payload(self, **overrides):
        data = {
            'supplier': self.supplier.id,
            'order_date': timezone.localdate().isoformat(),
            'store': self.store.id,
            'items': [
                {'product': self.product.id, 'quantity': '10', 'unit_price': '100.00'}
            ]
        }
        data.update(overrides)
        return data

    def test_create_pending_order(self):
        """A pending order does not touch stock"""
        response = self.client.post('/api/v1/purchase-orders/', self.order_payload(), format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertTrue(response.data['order_number'].startswith('PO-'))
        self.assertEqual(response.data['status'], 'pending')
        self.assertEqual(len(response.data['items']), 1)
        self.product.refresh_from_db()
        self.assertEqual(self.product.current_stock, Decimal('5'))

    def test_create_direct_purchase_adds_stock(self):
        response = self.client.post('/api/v1/purchase-orders/', self.order_payload(status='received'), format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['status'], 'received')
        self.product.refresh_from_db()
        self.assertEqual(self.product.current_stock, Decimal('15'))

    def test_price_defaults_to_purchase_price(self):
        payload = self.order_payload(items=[{'product': self.product.id, 'quantity': '2'}])
        response = self.client.post('/api/v1/purchase-orders/', payload, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(Decimal(response.data['items'][0]['unit_price']), Decimal('80.00'))

    def test_create_without_items_fails(self):
        response = self.client.post('/api/v1/purchase-orders/', self.order_payload(items=[]), format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(PurchaseOrder.objects.exists())

    def test_customer_cannot_be_supplier(self):
        customer = TestDataFactory.create_customer()
        response = self.client.post('/api/v1/purchase-orders/', self.order_payload(supplier=customer.id), format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('supplier', response.data)

    def test_list_is_paginated(self):
        for _ in range(3):
            TestDataFactory.create_purchase_order(supplier=self.supplier, items=[(self.product, 1, 10, 0)])
        response = self.client.get('/api/v1/purchase-orders/?limit=2')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 3)
        self.assertEqual(len(response.data['results']), 2)
        self.assertEqual(response.data['total_pages'], 2)
        self.assertEqual(response.data['next'], 2)

    def test_list_filters_by_status(self):
        TestDataFactory.create_purchase_order(supplier=self.supplier, status='received')
        TestDataFactory.create_purchase_order(supplier=self.supplier)
        response = self.client.get('/api/v1/purchase-orders/?status=received')
        self.assertEqual(response.data['count'], 1)

    def test_update_pending_order_items(self):
        order = TestDataFactory.create_purchase_order(supplier=self.supplier, items=[(self.product, 10, 100, 0)])
        payload = self.order_payload(bill_number='BILL-001',
                                     items=[{'product': self.product.id, 'quantity': '15', 'unit_price': '100.00'}])
        response = self.client.put(f'/api/v1/purchase-orders/{order.id}/', payload, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['bill_number'], 'BILL-001')
        self.assertEqual(len(response.data['items']), 1)
        self.assertEqual(Decimal(response.data['items'][0]['quantity']), Decimal('15'))
        self.assertEqual(Decimal(response.data['total_amount']), Decimal('1500.00'))

    def test_received_order_only_allows_notes(self):
        order = TestDataFactory.create_purchase_order(supplier=self.supplier, status='received',
                                                      items=[(self.product, 1, 100, 0)])
        response = self.client.patch(f'/api/v1/purchase-orders/{order.id}/', {'notes': 'Checked'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        response = self.client.patch(
            f'/api/v1/purchase-orders/{order.id}/',
            {'items': [{'product': self.product.id, 'quantity': '5'}]}, format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_receive_adds_stock_once(self):
        order = TestDataFactory.create_purchase_order(supplier=self.supplier, items=[(self.product, 10, 100, 0)])
        response = self.client.post(f'/api/v1/purchase-orders/{order.id}/receive/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'received')
        self.assertIsNotNone(response.data['received_at'])
        self.product.refresh_from_db()
        self.assertEqual(self.product.current_stock, Decimal('15'))

        response = self.client.post(f'/api/v1/purchase-orders/{order.id}/receive/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.product.refresh_from_db()
        self.assertEqual(self.product.current_stock, Decimal('15'))

    def test_stale_order_is_received_once(self):
        order = TestDataFactory.create_purchase_order(supplier=self.supplier, items=[(self.product, 10, 100, 0)])
        stale = PurchaseOrder.objects.get(pk=order.pk)
        receive_purchase_order(order)
        with self.assertRaises(ValidationError):
            receive_purchase_order(stale)
        self.product.refresh_from_db()
        self.assertEqual(self.product.current_stock, Decimal('15'))

    def test_malformed_date_filter(self):
        response = self.client.get('/api/v1/purchase-orders/?date_from=01-02-2026')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('date_from', response.data)

    def test_receive_skips_services(self):
        service = TestDataFactory.create_service()
        order = TestDataFactory.create_purchase_order(supplier=self.supplier, items=[(service, 2, 100, 0)])
        response = self.client.post(f'/api/v1/purchase-orders/{order.id}/receive/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        service.refresh_from_db()
        self.assertEqual(service.current_stock, Decimal('0'))

    def test_cancel(self):
        order = TestDataFactory.create_purchase_order(supplier=self.supplier)
        response = self.client.post(f'/api/v1/purchase-orders/{order.id}/cancel/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'cancelled')
        response = self.client.post(f'/api/v1/purchase-orders/{order.id}/cancel/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_delete_received_order_removes_stock(self):
        response = self.client.post('/api/v1/purchase-orders/', self.order_payload(status='received'), format='json')
        order_id = response.data['id']
        response = self.client.delete(f'/api/v1/purchase-orders/{order_id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(PurchaseOrder.objects.filter(id=order_id).exists())
        self.product.refresh_from_db()
        self.assertEqual(self.product.current_stock, Decimal('5'))

    def test_get_missing_order(self):
        response = self.client.get('/api/v1/purchase-orders/99999/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)


class PurchaseReturnTests(TestCase):
    """Supplier returns take stock back out"""

    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)
        self.supplier = TestDataFactory.create_supplier()
        self.product = TestDataFactory.create_product(stock=0)
        response = self.client.post('/api/v1/purchase-orders/', {
            'supplier': self.supplier.id,
            'order_date': timezone.localdate().isoformat(),
            'status': 'received',
            'items': [{'product': self.product.id, 'quantity': '10', 'unit_price': '50.00'}],
        }, format='json')
        self.order = PurchaseOrder.objects.get(pk=response.data['id'])

    def return_payload(self, quantity):
        return {
            'purchase_order': self.order.id,
            'return_date': timezone.localdate().isoformat(),
            'reason': 'Damaged',
            'items': [{'product': self.product.id, 'quantity': str(quantity)}],
        }

    def test_return_reduces_stock(self):
        response = self.client.post('/api/v1/purchase-returns/', self.return_payload(4), format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertTrue(response.data['return_number'].startswith('PR-'))
        self.assertEqual(response.data['supplier'], self.supplier.id)
        self.assertEqual(Decimal(response.data['total_amount']), Decimal('200.00'))
        self.product.refresh_from_db()
        self.assertEqual(self.product.current_stock, Decimal('6'))

    def test_cannot_return_more_than_received(self):
        self.client.post('/api/v1/purchase-returns/', self.return_payload(8), format='json')
        response = self.client.post('/api/v1/purchase-returns/', self.return_payload(3), format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(PurchaseReturn.objects.count(), 1)

    def test_pending_order_cannot_be_returned(self):
        pending = TestDataFactory.create_purchase_order(supplier=self.supplier, items=[(self.product, 1, 10, 0)])
        payload = self.return_payload(1)
        payload['purchase_order'] = pending.id
        response = self.client.post('/api/v1/purchase-returns/', payload, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_order_with_returns_cannot_be_deleted(self):
        self.client.post('/api/v1/purchase-returns/', self.return_payload(2), format='json')
        response = self.client.delete(f'/api/v1/purchase-orders/{self.order.id}/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertTrue(PurchaseOrder.objects.filter(id=self.order.id).exists())

    def test_delete_return_restores_stock(self):
        response = self.client.post('/api/v1/purchase-returns/', self.return_payload(4), format='json')
        response = self.client.delete(f"/api/v1/purchase-returns/{response.data['id']}/")
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertEqual(Product.objects.get(pk=self.product.pk).current_stock, Decimal('10'))
