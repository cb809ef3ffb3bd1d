"""
Test suite for the catalog module
Tests: masters, product CRUD and filters, low stock, services, stock history and CSV import/export
"""
from django.test import TestCase
from django.core.files.uploadedfile import SimpleUploadedFile
from rest_framework import status
from decimal import Decimal
from erp.catalog.models import Category, SubCategory, Brand, Unit, TaxRate, Product
from erp.catalog.utils import map_product_row, generate_unique_sku
from erp.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from erp.inventory.utils import stock_in


class ProductModelTests(TestCase):
    def test_low_stock(self):
        product = TestDataFactory.create_product(stock=5, alert_quantity=Decimal('5'))
        self.assertTrue(product.is_low_stock)
        product.current_stock = Decimal('6')
        self.assertFalse(product.is_low_stock)

    def test_no_alert_quantity_is_never_low(self):
        product = TestDataFactory.create_product(stock=0)
        self.assertFalse(product.is_low_stock)

    def test_stock_value(self):
        product = TestDataFactory.create_product(stock=3, purchase_price=Decimal('12.50'))
        self.assertEqual(product.get_stock_value(), Decimal('37.50'))
        self.assertEqual(TestDataFactory.create_service().get_stock_value(), Decimal('0.00'))

    def test_sku_generation(self):
        sku = generate_unique_sku('Table Fan')
        self.assertTrue(sku.startswith('TABL-'))


class ProductCSVRowTests(TestCase):
    def test_defaults(self):
        row = map_product_row({'name': 'Bulb'})
        self.assertEqual(row['item_type'], 'product')
        self.assertEqual(row['sale_price'], Decimal('0'))
        self.assertIsNone(row['alert_quantity'])

    def test_errors(self):
        with self.assertRaises(ValueError):
            map_product_row({'name': ''})
        with self.assertRaises(ValueError):
            map_product_row({'name': 'Bulb', 'type': 'gadget'})
        with self.assertRaises(ValueError):
            map_product_row({'name': 'Bulb', 'sale_price': 'abc'})
        with self.assertRaises(ValueError):
            map_product_row({'name': 'Bulb', 'purchase_price': '-5'})


class CatalogMasterAPITests(TestCase):
    def setUp(self):
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(TestDataFactory.create_user())

    def test_requires_authentication(self):
        self.client.logout()
        response = self.client.get('/api/v1/categories/')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_category_crud(self):
        response = self.client.post('/api/v1/categories/', {'name': 'Lighting'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        category_id = response.data['id']
        response = self.client.post('/api/v1/categories/', {'name': 'Lighting'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        response = self.client.get('/api/v1/categories/?search=light')
        self.assertEqual(len(response.data), 1)
        response = self.client.patch(f'/api/v1/categories/{category_id}/', {'is_active': False}, format='json')
        self.assertFalse(response.data['is_active'])
        response = self.client.delete(f'/api/v1/categories/{category_id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(Category.objects.exists())

    def test_sub_categories_filter_by_category(self):
        lighting = TestDataFactory.create_category(name='Lighting')
        fans = TestDataFactory.create_category(name='Fans')
        self.client.post('/api/v1/sub-categories/', {'category': lighting.id, 'name': 'LED'}, format='json')
        self.client.post('/api/v1/sub-categories/', {'category': fans.id, 'name': 'Ceiling'}, format='json')
        response = self.client.get(f'/api/v1/sub-categories/?category={fans.id}')
        self.assertEqual([s['name'] for s in response.data], ['Ceiling'])
        self.assertEqual(response.data[0]['category_name'], 'Fans')

    def test_brand_and_unit(self):
        response = self.client.post('/api/v1/brands/', {'name': 'Havells'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        response = self.client.post('/api/v1/units/', {'name': 'Kilogram', 'short_name': 'kg', 'allow_decimal': True},
                                    format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(Brand.objects.count(), 1)
        self.assertTrue(Unit.objects.get().allow_decimal)

    def test_tax_rates_are_ordered_and_validated(self):
        self.client.post('/api/v1/tax-rates/', {'name': 'GST 18%', 'percentage': '18.00'}, format='json')
        self.client.post('/api/v1/tax-rates/', {'name': 'GST 5%', 'percentage': '5.00'}, format='json')
        response = self.client.get('/api/v1/tax-rates/')
        self.assertEqual([r['name'] for r in response.data], ['GST 5%', 'GST 18%'])
        response = self.client.post('/api/v1/tax-rates/', {'name': 'Bad', 'percentage': '120'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(TaxRate.objects.count(), 2)


class ProductAPITests(TestCase):
    def setUp(self):
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(TestDataFactory.create_user())
        self.category = TestDataFactory.create_category(name='Fans')

    def test_create_product_generates_sku(self):
        response = self.client.post('/api/v1/products/', {
            'name': 'Table Fan', 'category': self.category.id, 'sale_price': '1500.00', 'current_stock': '4'
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertTrue(response.data['sku'].startswith('TABL-'))
        self.assertEqual(response.data['category_name'], 'Fans')

    def test_duplicate_sku(self):
        TestDataFactory.create_product(sku='FAN-1')
        response = self.client.post('/api/v1/products/', {'name': 'Fan', 'sku': 'FAN-1'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_negative_price_rejected(self):
        response = self.client.post('/api/v1/products/', {'name': 'Fan', 'sale_price': '-1'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_sub_category_must_match_category(self):
        other = TestDataFactory.create_category(name='Lighting')
        led = SubCategory.objects.create(category=other, name='LED')
        response = self.client.post('/api/v1/products/', {
            'name': 'Fan', 'category': self.category.id, 'sub_category': led.id
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        response = self.client.post('/api/v1/products/', {'name': 'Bulb', 'sub_category': led.id}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['category'], other.id)

    def test_service_carries_no_stock(self):
        response = self.client.post('/api/v1/products/', {
            'name': 'AC Service', 'item_type': 'service', 'current_stock': '10', 'alert_quantity': '2'
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(Decimal(response.data['current_stock']), Decimal('0'))
        self.assertIsNone(response.data['alert_quantity'])

    def test_stock_edit_is_audited_as_adjustment(self):
        product = TestDataFactory.create_product(stock=5)
        response = self.client.patch(f'/api/v1/products/{product.id}/', {'current_stock': '8'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        response = self.client.get(f'/api/v1/products/{product.id}/stock-history/')
        self.assertEqual(response.data['count'], 1)
        self.assertEqual(response.data['results'][0]['action'], 'stock_adjust')

    def test_stock_history_lists_movements(self):
        product = TestDataFactory.create_product(stock=0)
        stock_in(product, 5, reason='Opening stock')
        response = self.client.get(f'/api/v1/products/{product.id}/stock-history/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['results'][0]['action'], 'stock_in')

    def test_list_filters(self):
        TestDataFactory.create_product(name='Ceiling Fan', category=self.category, stock=1, alert_quantity=Decimal('2'))
        TestDataFactory.create_product(name='LED Bulb', stock=50, alert_quantity=Decimal('2'))
        TestDataFactory.create_service(name='Fan Repair')

        response = self.client.get('/api/v1/products/?search=fan')
        self.assertEqual(response.data['count'], 2)
        response = self.client.get('/api/v1/products/?search=fan ceiling')
        self.assertEqual(response.data['count'], 1)
        response = self.client.get('/api/v1/products/?item_type=service')
        self.assertEqual(response.data['count'], 1)
        response = self.client.get('/api/v1/products/?low_stock=true')
        self.assertEqual(response.data['count'], 1)
        response = self.client.get(f'/api/v1/products/?category={self.category.id}')
        self.assertEqual(response.data['count'], 1)

    def test_low_stock_and_services_endpoints(self):
        low = TestDataFactory.create_product(stock=1, alert_quantity=Decimal('3'))
        TestDataFactory.create_product(stock=10, alert_quantity=Decimal('3'))
        service = TestDataFactory.create_service()
        response = self.client.get('/api/v1/products/low-stock/')
        self.assertEqual([p['id'] for p in response.data], [low.id])
        response = self.client.get('/api/v1/stock/low/')
        self.assertEqual([p['id'] for p in response.data], [low.id])
        response = self.client.get('/api/v1/products/services/')
        self.assertEqual([p['id'] for p in response.data], [service.id])

    def test_product_used_on_documents_cannot_be_deleted(self):
        product = TestDataFactory.create_product()
        TestDataFactory.create_sales_order(customer=TestDataFactory.create_customer(), items=[(product, 1, 100, 0)])
        response = self.client.delete(f'/api/v1/products/{product.id}/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertTrue(Product.objects.filter(pk=product.id).exists())

    def test_delete_unused_product(self):
        product = TestDataFactory.create_product()
        response = self.client.delete(f'/api/v1/products/{product.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)


class ProductCSVAPITests(TestCase):
    def setUp(self):
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(TestDataFactory.create_user())

    def upload(self, text):
        csv_file = SimpleUploadedFile('products.csv', text.encode('utf-8'), content_type='text/csv')
        return self.client.post('/api/v1/products/import/', {'file': csv_file}, format='multipart')

    def test_import_creates_and_updates(self):
        TestDataFactory.create_product(name='Old Name', sku='BULB-9W')
        response = self.upload(
            'Name,SKU,Category,Brand,Unit,Sale_Price,Current_Stock,Tax_Rate\n'
            'LED Bulb 9W,BULB-9W,Lighting,Philips,pcs,120,40,18\n'
            'Tube Light,,Lighting,,,250,10,18\n'
            ',NO-NAME,,,,1,1,\n'
            'Bad Price,BAD-1,,,,abc,1,\n'
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['total_rows'], 4)
        self.assertEqual(response.data['created'], 1)
        self.assertEqual(response.data['updated'], 1)
        self.assertEqual(len(response.data['errors']), 2)
        self.assertTrue(response.data['errors'][0].startswith('Row 4:'))

        bulb = Product.objects.get(sku='BULB-9W')
        self.assertEqual(bulb.name, 'LED Bulb 9W')
        self.assertEqual(bulb.category.name, 'Lighting')
        self.assertEqual(bulb.tax_rate.percentage, Decimal('18.00'))
        self.assertEqual(Category.objects.filter(name='Lighting').count(), 1)
        self.assertEqual(TaxRate.objects.count(), 1)

    def test_import_requires_name_column(self):
        response = self.upload('sku,sale_price\nX-1,10\n')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['valid_rows'], 0)
        self.assertIn('Missing required columns: name', response.data['errors'][0])

    def test_import_without_file(self):
        response = self.client.post('/api/v1/products/import/', {}, format='multipart')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_export(self):
        TestDataFactory.create_product(name='Fan, Ceiling', sku='FAN-1')
        response = self.client.get('/api/v1/products/export/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        lines = response.content.decode().strip().splitlines()
        self.assertTrue(lines[0].startswith('name,sku,type'))
        self.assertTrue(lines[1].startswith('"Fan, Ceiling",FAN-1,product'))
