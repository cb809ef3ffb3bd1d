"""
Test suite for the inventory module
Tests: stock movements, stock summary and stock adjustments
"""
from django.test import TestCase
from rest_framework import status
from decimal import Decimal
from django.utils import timezone
from erp.core.models import AuditLog
from erp.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from erp.inventory.models import StockAdjustment
from erp.inventory.utils import stock_in, stock_out, move_stock


class StockMovementTests(TestCase):
    def setUp(self):
        self.product = TestDataFactory.create_product(stock=5)

    def test_stock_in_and_out(self):
        stock_in(self.product, Decimal('2.5'), reason='Found')
        self.assertEqual(self.product.current_stock, Decimal('7.5'))
        stock_out(self.product, 3)
        self.product.refresh_from_db()
        self.assertEqual(self.product.current_stock, Decimal('4.5'))

    def test_stock_out_clamps_at_zero(self):
        stock_out(self.product, 20)
        self.product.refresh_from_db()
        self.assertEqual(self.product.current_stock, Decimal('0'))

    def test_movement_is_audited(self):
        stock_in(self.product, 1, reason='Opening stock', reference='OPEN-1')
        log = AuditLog.objects.get(action='stock_in')
        self.assertEqual(log.object_id, str(self.product.pk))
        self.assertEqual(log.object_reference, 'OPEN-1')
        self.assertEqual(log.changes['new']['current_stock'], '6.000')

    def test_services_and_zero_quantities_are_skipped(self):
        service = TestDataFactory.create_service()
        self.assertIsNone(stock_in(service, 5))
        self.assertIsNone(stock_in(self.product, 0))
        self.assertFalse(AuditLog.objects.exists())

    def test_unknown_direction(self):
        with self.assertRaises(ValueError):
            move_stock(self.product, 1, 'sideways')


class StockSummaryTests(TestCase):
    def setUp(self):
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(TestDataFactory.create_user())

    def test_summary(self):
        TestDataFactory.create_product(stock=10, purchase_price=Decimal('20.00'))
        TestDataFactory.create_product(stock=1, purchase_price=Decimal('5.00'), alert_quantity=Decimal('2'))
        TestDataFactory.create_product(stock=0)
        TestDataFactory.create_service()
        response = self.client.get('/api/v1/stock/summary/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['total_products'], 3)
        self.assertEqual(response.data['total_units'], Decimal('11'))
        self.assertEqual(response.data['stock_value'], Decimal('205.00'))
        self.assertEqual(response.data['low_stock_count'], 1)
        self.assertEqual(response.data['out_of_stock_count'], 1)


class StockAdjustmentAPITests(TestCase):
    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)
        self.product = TestDataFactory.create_product(stock=10)

    def payload(self, items, reason='count_correction'):
        return {
            'adjustment_date': timezone.localdate().isoformat(),
            'reason': reason,
            'items': items,
        }

    def stock(self):
        self.product.refresh_from_db()
        return self.product.current_stock

    def test_increase_and_decrease(self):
        other = TestDataFactory.create_product(stock=3)
        response = self.client.post('/api/v1/stock-adjustments/', self.payload([
            {'product': self.product.id, 'quantity': '4', 'adjustment_type': 'increase'},
            {'product': other.id, 'quantity': '1', 'adjustment_type': 'decrease'},
        ]), format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertTrue(response.data['reference_number'].startswith('ADJ-'))
        self.assertEqual(len(response.data['items']), 2)
        self.assertEqual(self.stock(), Decimal('14'))
        other.refresh_from_db()
        self.assertEqual(other.current_stock, Decimal('2'))
        self.assertTrue(AuditLog.objects.filter(action='stock_adjust', model_name='StockAdjustment').exists())

    def test_requires_items(self):
        response = self.client.post('/api/v1/stock-adjustments/', self.payload([]), format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(StockAdjustment.objects.exists())

    def test_rejects_bad_type(self):
        response = self.client.post('/api/v1/stock-adjustments/', self.payload([
            {'product': self.product.id, 'quantity': '1', 'adjustment_type': 'sideways'},
        ]), format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_rejects_services(self):
        service = TestDataFactory.create_service()
        response = self.client.post('/api/v1/stock-adjustments/', self.payload([
            {'product': service.id, 'quantity': '1', 'adjustment_type': 'increase'},
        ]), format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_duplicate_reference(self):
        data = self.payload([{'product': self.product.id, 'quantity': '1', 'adjustment_type': 'increase'}])
        data['reference_number'] = 'ADJ-MANUAL'
        self.client.post('/api/v1/stock-adjustments/', data, format='json')
        response = self.client.post('/api/v1/stock-adjustments/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(self.stock(), Decimal('11'))

    def test_delete_reverses_movements(self):
        response = self.client.post('/api/v1/stock-adjustments/', self.payload([
            {'product': self.product.id, 'quantity': '4', 'adjustment_type': 'decrease'},
        ], reason='damage'), format='json')
        self.assertEqual(self.stock(), Decimal('6'))
        response = self.client.delete(f"/api/v1/stock-adjustments/{response.data['id']}/")
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertEqual(self.stock(), Decimal('10'))

    def test_list_filters(self):
        self.client.post('/api/v1/stock-adjustments/', self.payload([
            {'product': self.product.id, 'quantity': '1', 'adjustment_type': 'increase'},
        ], reason='damage'), format='json')
        other = TestDataFactory.create_product(stock=3)
        self.client.post('/api/v1/stock-adjustments/', self.payload([
            {'product': other.id, 'quantity': '1', 'adjustment_type': 'increase'},
        ]), format='json')
        response = self.client.get('/api/v1/stock-adjustments/')
        self.assertEqual(response.data['count'], 2)
        response = self.client.get('/api/v1/stock-adjustments/?reason=damage')
        self.assertEqual(response.data['count'], 1)
        response = self.client.get(f'/api/v1/stock-adjustments/?product={other.id}')
        self.assertEqual(response.data['count'], 1)

    def test_edit_items_replaces_movements(self):
        response = self.client.post('/api/v1/stock-adjustments/', self.payload([
            {'product': self.product.id, 'quantity': '4', 'adjustment_type': 'increase'},
        ]), format='json')
        self.assertEqual(self.stock(), Decimal('14'))
        response = self.client.patch(f"/api/v1/stock-adjustments/{response.data['id']}/", {
            'reason': 'damage',
            'items': [{'product': self.product.id, 'quantity': '3', 'adjustment_type': 'decrease'}],
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['reason'], 'damage')
        self.assertEqual(len(response.data['items']), 1)
        self.assertEqual(response.data['items'][0]['adjustment_type'], 'decrease')
        self.assertEqual(self.stock(), Decimal('7'))
        self.assertTrue(AuditLog.objects.filter(action='update', model_name='StockAdjustment').exists())

    def test_edit_header_keeps_stock(self):
        response = self.client.post('/api/v1/stock-adjustments/', self.payload([
            {'product': self.product.id, 'quantity': '2', 'adjustment_type': 'increase'},
        ]), format='json')
        reference = response.data['reference_number']
        response = self.client.patch(f"/api/v1/stock-adjustments/{response.data['id']}/",
                                     {'notes': 'Recounted shelf B'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['notes'], 'Recounted shelf B')
        self.assertEqual(response.data['reference_number'], reference)
        self.assertEqual(len(response.data['items']), 1)
        self.assertEqual(self.stock(), Decimal('12'))

    def test_invalid_edit_leaves_stock_alone(self):
        service = TestDataFactory.create_service()
        response = self.client.post('/api/v1/stock-adjustments/', self.payload([
            {'product': self.product.id, 'quantity': '2', 'adjustment_type': 'increase'},
        ]), format='json')
        adjustment_id = response.data['id']
        response = self.client.patch(f'/api/v1/stock-adjustments/{adjustment_id}/', {
            'items': [{'product': service.id, 'quantity': '1', 'adjustment_type': 'increase'}],
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        response = self.client.patch(f'/api/v1/stock-adjustments/{adjustment_id}/', {'items': []}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(self.stock(), Decimal('12'))
        self.assertEqual(StockAdjustment.objects.get().items.count(), 1)
