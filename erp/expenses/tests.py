"""
Test suite for the expenses module
Tests: expense categories, expense recording, filters and category summary
"""
from datetime import date
from django.test import TestCase
from rest_framework import status
from decimal import Decimal
from erp.core.models import AuditLog
from erp.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from erp.expenses.models import ExpenseCategory, Expense


class ExpenseCategoryAPITests(TestCase):
    def setUp(self):
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(TestDataFactory.create_user())

    def test_create_and_list(self):
        response = self.client.post('/api/v1/expense-categories/', {'name': 'Rent'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        response = self.client.post('/api/v1/expense-categories/', {'name': 'Rent'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        response = self.client.get('/api/v1/expense-categories/')
        self.assertEqual([c['name'] for c in response.data], ['Rent'])
        self.assertEqual(response.data[0]['expense_count'], 0)

    def test_category_in_use_cannot_be_deleted(self):
        expense = TestDataFactory.create_expense()
        response = self.client.delete(f'/api/v1/expense-categories/{expense.category_id}/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        empty = ExpenseCategory.objects.create(name='Travel')
        response = self.client.delete(f'/api/v1/expense-categories/{empty.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)


class ExpenseAPITests(TestCase):
    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)
        self.rent = ExpenseCategory.objects.create(name='Rent')
        self.power = ExpenseCategory.objects.create(name='Electricity')

    def test_create_generates_reference(self):
        response = self.client.post('/api/v1/expenses/', {
            'category': self.rent.id, 'amount': '25000.00', 'expense_date': '2026-03-01',
            'payment_method': 'bank_transfer', 'description': 'March rent'
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertTrue(response.data['reference_number'].startswith('EXP-'))
        self.assertEqual(response.data['category_name'], 'Rent')
        self.assertEqual(response.data['created_by'], self.user.id)
        self.assertTrue(AuditLog.objects.filter(model_name='Expense', action='create').exists())

    def test_validation(self):
        response = self.client.post('/api/v1/expenses/', {
            'category': self.rent.id, 'amount': '0', 'expense_date': '2026-03-01'
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        TestDataFactory.create_expense(category=self.rent)
        reference = Expense.objects.get().reference_number
        response = self.client.post('/api/v1/expenses/', {
            'category': self.rent.id, 'amount': '10', 'expense_date': '2026-03-01', 'reference_number': reference
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_update_keeps_reference(self):
        expense = TestDataFactory.create_expense(category=self.rent)
        response = self.client.patch(f'/api/v1/expenses/{expense.id}/', {
            'amount': '150.00', 'reference_number': ''
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        expense.refresh_from_db()
        self.assertEqual(expense.amount, Decimal('150.00'))
        self.assertTrue(expense.reference_number.startswith('TEXP-'))

    def test_delete(self):
        expense = TestDataFactory.create_expense()
        response = self.client.delete(f'/api/v1/expenses/{expense.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(Expense.objects.exists())

    def test_list_filters(self):
        store = TestDataFactory.create_store()
        TestDataFactory.create_expense(category=self.rent, expense_date=date(2026, 1, 5), store=store)
        TestDataFactory.create_expense(category=self.power, expense_date=date(2026, 2, 5))
        TestDataFactory.create_expense(category=self.power, expense_date=date(2026, 3, 5))

        response = self.client.get('/api/v1/expenses/')
        self.assertEqual(response.data['count'], 3)
        self.assertEqual(response.data['results'][0]['expense_date'], '2026-03-05')
        response = self.client.get(f'/api/v1/expenses/?category={self.power.id}')
        self.assertEqual(response.data['count'], 2)
        response = self.client.get('/api/v1/expenses/?date_from=2026-02-01&date_to=2026-02-28')
        self.assertEqual(response.data['count'], 1)
        response = self.client.get(f'/api/v1/expenses/?store={store.id}')
        self.assertEqual(response.data['count'], 1)

    def test_invalid_filter(self):
        response = self.client.get('/api/v1/expenses/?date_from=yesterday')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_summary(self):
        TestDataFactory.create_expense(amount=Decimal('25000.00'), category=self.rent, expense_date=date(2026, 3, 1))
        TestDataFactory.create_expense(amount=Decimal('1200.00'), category=self.power, expense_date=date(2026, 3, 2))
        TestDataFactory.create_expense(amount=Decimal('800.00'), category=self.power, expense_date=date(2026, 3, 20))
        TestDataFactory.create_expense(amount=Decimal('999.00'), category=self.power, expense_date=date(2026, 4, 1))

        response = self.client.get('/api/v1/expenses/summary/?date_from=2026-03-01&date_to=2026-03-31')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['total'], Decimal('27000.00'))
        self.assertEqual(response.data['count'], 3)
        self.assertEqual([c['category_name'] for c in response.data['categories']], ['Rent', 'Electricity'])
        self.assertEqual(response.data['categories'][1]['total'], Decimal('2000.00'))
        self.assertEqual(response.data['categories'][1]['count'], 2)
