"""
Test suite for the parties module
Tests: contact CRUD, role filters, customer statement, CSV import/export and the import command
"""
import os
import tempfile
from io import StringIO
from django.core.files.uploadedfile import SimpleUploadedFile
from django.core.management import call_command
from django.core.management.base import CommandError
from django.test import TestCase
from rest_framework import status
from decimal import Decimal
from erp.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from erp.parties.models import Contact
from erp.parties.utils import map_contact_row, save_imported_contact
from erp.sales.utils import record_payment


class ContactModelTests(TestCase):
    def test_roles(self):
        both = TestDataFactory.create_customer(role='both')
        supplier = TestDataFactory.create_supplier()
        customer = TestDataFactory.create_customer()
        self.assertTrue(both.is_customer and both.is_supplier)
        self.assertFalse(supplier.is_customer)
        self.assertEqual(set(Contact.objects.customers()), {both, customer})
        self.assertEqual(set(Contact.objects.suppliers()), {both, supplier})


class ContactCSVRowTests(TestCase):
    def test_mapping(self):
        row = map_contact_row({'name': 'Ravi', 'role': 'Supplier', 'gstin': '29abcde1234f1z5'})
        self.assertEqual(row['role'], 'supplier')
        self.assertEqual(row['gstin'], '29ABCDE1234F1Z5')

    def test_invalid_rows(self):
        for row in ({'name': ''}, {'name': 'A', 'role': 'vendor'}, {'name': 'A', 'email': 'nope'},
                    {'name': 'A', 'gstin': '123'}):
            with self.assertRaises(ValueError):
                map_contact_row(row)

    def test_save_matches_on_phone(self):
        TestDataFactory.create_customer(name='Ravi', phone='9800000001')
        data = map_contact_row({'name': 'Ravi Kumar', 'phone': '9800000001', 'city': 'Mysuru'})
        contact, created = save_imported_contact(data)
        self.assertFalse(created)
        self.assertEqual(contact.name, 'Ravi Kumar')
        self.assertEqual(contact.city, 'Mysuru')
        self.assertEqual(Contact.objects.count(), 1)


class ContactAPITests(TestCase):
    def setUp(self):
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(TestDataFactory.create_user())

    def test_create_contact(self):
        response = self.client.post('/api/v1/contacts/', {
            'name': '  Meena Stores ', 'phone': '9811111111', 'role': 'both', 'state': 'Kerala'
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['name'], 'Meena Stores')

    def test_blank_name_and_bad_gstin(self):
        response = self.client.post('/api/v1/contacts/', {'name': '   '}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        response = self.client.post('/api/v1/contacts/', {'name': 'X', 'gstin': 'ABC'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_list_filters(self):
        TestDataFactory.create_customer(name='Asha')
        TestDataFactory.create_supplier(name='Bharat Traders')
        TestDataFactory.create_customer(name='Chetan', role='both')
        response = self.client.get('/api/v1/contacts/?role=customer')
        self.assertEqual([c['name'] for c in response.data], ['Asha', 'Chetan'])
        response = self.client.get('/api/v1/contacts/?role=supplier')
        self.assertEqual([c['name'] for c in response.data], ['Bharat Traders', 'Chetan'])
        response = self.client.get('/api/v1/contacts/?search=bharat')
        self.assertEqual(len(response.data), 1)

    def test_contact_with_documents_cannot_be_deleted(self):
        customer = TestDataFactory.create_customer()
        TestDataFactory.create_sales_order(customer=customer)
        response = self.client.delete(f'/api/v1/contacts/{customer.id}/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_update_and_delete(self):
        contact = TestDataFactory.create_customer()
        response = self.client.patch(f'/api/v1/contacts/{contact.id}/', {'city': 'Hubli'}, format='json')
        self.assertEqual(response.data['city'], 'Hubli')
        response = self.client.delete(f'/api/v1/contacts/{contact.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)

    def test_statement(self):
        customer = TestDataFactory.create_customer()
        product = TestDataFactory.create_product()
        order = TestDataFactory.create_sales_order(customer=customer, items=[(product, 2, 100, 0)])
        record_payment(order, Decimal('50.00'))
        TestDataFactory.create_sales_order(customer=customer, items=[(product, 1, 100, 0)], status='cancelled')
        TestDataFactory.create_sales_order(customer=customer, document_type='quotation', items=[(product, 1, 100, 0)])

        response = self.client.get(f'/api/v1/contacts/{customer.id}/statement/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data['documents']), 1)
        self.assertEqual(response.data['total_billed'], Decimal('200.00'))
        self.assertEqual(response.data['total_paid'], Decimal('50.00'))
        self.assertEqual(response.data['balance_due'], Decimal('150.00'))

    def test_import_and_export(self):
        csv_file = SimpleUploadedFile('contacts.csv', (
            'name,phone,role,state\n'
            'Asha,9800000001,customer,Karnataka\n'
            'Bharat Traders,9800000002,supplier,Kerala\n'
            'Bad,9800000003,vendor,\n'
        ).encode('utf-8'), content_type='text/csv')
        response = self.client.post('/api/v1/contacts/import/', {'file': csv_file}, format='multipart')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['created'], 2)
        self.assertEqual(len(response.data['errors']), 1)

        response = self.client.get('/api/v1/contacts/export/?role=supplier')
        lines = response.content.decode().strip().splitlines()
        self.assertEqual(lines[0], 'name,email,phone,company,role,address,city,state,gstin,notes')
        self.assertEqual(len(lines), 2)
        self.assertTrue(lines[1].startswith('Bharat Traders,'))


class ImportContactsCommandTests(TestCase):
    def write_csv(self, text):
        handle, path = tempfile.mkstemp(suffix='.csv')
        with os.fdopen(handle, 'w', encoding='utf-8') as f:
            f.write(text)
        self.addCleanup(os.remove, path)
        return path

    def test_import(self):
        path = self.write_csv('name,phone,role\nAsha,9800000001,customer\n,9800000002,customer\n')
        out = StringIO()
        call_command('import_contacts', path, stdout=out)
        self.assertIn('1 created', out.getvalue())
        self.assertIn('Row 3: name is required', out.getvalue())
        self.assertTrue(Contact.objects.filter(name='Asha').exists())

    def test_dry_run_saves_nothing(self):
        path = self.write_csv('name,phone\nAsha,9800000001\n')
        out = StringIO()
        call_command('import_contacts', path, '--dry-run', stdout=out)
        self.assertIn('Dry run', out.getvalue())
        self.assertFalse(Contact.objects.exists())

    def test_missing_file(self):
        with self.assertRaises(CommandError):
            call_command('import_contacts', '/nonexistent/contacts.csv')
