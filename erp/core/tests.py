"""
Test suite for the core module
Tests: authentication, users, business profile, audit logs, global search and shared helpers
"""
from django.test import TestCase
from django.core.cache import cache
from rest_framework import status
from decimal import Decimal
from erp.core.cache_utils import cached_query, invalidate_reports_cache
from erp.core.models import AuditLog, BusinessProfile
from erp.core.test_utils import TestDataFactory, AuthenticatedAPIClient, TEST_PASSWORD
from erp.core.utils import money, line_amounts, generate_document_number, diff_fields, create_audit_log
from erp.sales.models import SalesOrder


class HelperTests(TestCase):
    def test_money_rounds_half_up(self):
        self.assertEqual(money('2.345'), Decimal('2.35'))
        self.assertEqual(money(None), Decimal('0.00'))

    def test_line_amounts(self):
        taxable, tax, subtotal = line_amounts(Decimal('3'), Decimal('33.33'), Decimal('18'))
        self.assertEqual(taxable, Decimal('99.99'))
        self.assertEqual(tax, Decimal('18.00'))
        self.assertEqual(subtotal, Decimal('117.99'))

    def test_document_number_format(self):
        number = generate_document_number('INV', SalesOrder, 'order_number')
        prefix, day, suffix = number.split('-')
        self.assertEqual(prefix, 'INV')
        self.assertEqual(len(day), 8)
        self.assertEqual(len(suffix), 8)

    def test_diff_fields(self):
        self.assertEqual(diff_fields({'a': 1, 'b': 2}, {'a': 1, 'b': 3, 'c': 4}), ['b', 'c'])

    def test_audit_log_requires_fields(self):
        self.assertIsNone(create_audit_log(action='create', model_name='Product'))
        log = create_audit_log(action='update', model_name='Product', object_id=5,
                               changes={'old': {'price': '1'}, 'new': {'price': '2'}})
        self.assertEqual(log.object_id, '5')
        self.assertEqual(log.changed_fields, ['price'])


class CachedQueryTests(TestCase):
    def setUp(self):
        cache.clear()
        self.calls = 0

    def test_results_are_cached_until_invalidated(self):
        @cached_query(key_prefix='test_counter')
        def counter(store_id=None):
            self.calls += 1
            return {'calls': self.calls}

        self.assertEqual(counter(store_id=1), {'calls': 1})
        self.assertEqual(counter(store_id=1), {'calls': 1})
        self.assertEqual(counter(store_id=2), {'calls': 2})
        invalidate_reports_cache()
        self.assertEqual(counter(store_id=1), {'calls': 3})


class AuthTests(TestCase):
    def setUp(self):
        self.client = AuthenticatedAPIClient()

    def test_register_returns_tokens(self):
        response = self.client.post('/api/v1/auth/register/', {
            'username': 'newuser',
            'email': 'newuser@test.com',
            'password': TEST_PASSWORD,
            'password_confirm': TEST_PASSWORD,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertIn('access', response.data)
        self.assertIn('refresh', response.data)
        self.assertEqual(response.data['user']['username'], 'newuser')

    def test_register_password_mismatch(self):
        response = self.client.post('/api/v1/auth/register/', {
            'username': 'newuser',
            'password': TEST_PASSWORD,
            'password_confirm': 'Different-Passw0rd!',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_login_writes_audit_log(self):
        user = TestDataFactory.create_user(username='loginuser')
        response = self.client.post('/api/v1/auth/login/', {
            'username': 'loginuser', 'password': TEST_PASSWORD
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn('access', response.data)
        self.assertTrue(AuditLog.objects.filter(action='login', user=user).exists())

    def test_login_with_wrong_password(self):
        TestDataFactory.create_user(username='loginuser')
        response = self.client.post('/api/v1/auth/login/', {
            'username': 'loginuser', 'password': 'wrong'
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_refresh_with_garbage_token(self):
        response = self.client.post('/api/v1/auth/refresh/', {'refresh': 'not-a-token'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_me_requires_auth(self):
        response = self.client.get('/api/v1/auth/me/')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_me_includes_store_and_flags(self):
        user = TestDataFactory.create_user()
        store = TestDataFactory.create_store()
        TestDataFactory.create_employee(user=user, store=store, role='admin')
        self.client.authenticate_user(user)
        response = self.client.get('/api/v1/auth/me/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['store']['id'], store.id)
        self.assertEqual(response.data['employee']['role'], 'admin')
        self.assertTrue(response.data['is_admin'])

    def test_me_for_plain_user(self):
        user = TestDataFactory.create_user()
        self.client.authenticate_user(user)
        response = self.client.patch('/api/v1/auth/me/', {'first_name': 'Asha'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['first_name'], 'Asha')
        self.assertIsNone(response.data['store'])
        self.assertFalse(response.data['can_access_reports'])

    def test_change_password(self):
        user = TestDataFactory.create_user()
        self.client.authenticate_user(user)
        new_password = 'An0ther-Str0ng-Pass!'
        response = self.client.post('/api/v1/auth/change-password/', {
            'current_password': 'wrong',
            'new_password': new_password,
            'new_password_confirm': new_password,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        response = self.client.post('/api/v1/auth/change-password/', {
            'current_password': TEST_PASSWORD,
            'new_password': new_password,
            'new_password_confirm': new_password,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        user.refresh_from_db()
        self.assertTrue(user.check_password(new_password))


class UserManagementTests(TestCase):
    def setUp(self):
        self.admin = TestDataFactory.create_admin()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.admin)

    def test_non_admin_is_forbidden(self):
        self.client.authenticate_user(TestDataFactory.create_user())
        response = self.client.get('/api/v1/users/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_create_and_list_users(self):
        response = self.client.post('/api/v1/users/', {
            'username': 'cashier',
            'password': TEST_PASSWORD,
            'password_confirm': TEST_PASSWORD,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        response = self.client.get('/api/v1/users/')
        self.assertIn('cashier', [u['username'] for u in response.data])

    def test_cannot_delete_self(self):
        response = self.client.delete(f'/api/v1/users/{self.admin.id}/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_admin_group_member_is_admin(self):
        from django.contrib.auth.models import Group
        user = TestDataFactory.create_user()
        user.groups.add(Group.objects.create(name='Admin'))
        self.client.authenticate_user(user)
        response = self.client.get('/api/v1/users/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)


class BusinessProfileTests(TestCase):
    def setUp(self):
        self.admin = TestDataFactory.create_admin()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.admin)

    def test_empty_profile(self):
        response = self.client.get('/api/v1/business-profile/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIsNone(response.data['id'])

    def test_upsert_keeps_one_row(self):
        response = self.client.put('/api/v1/business-profile/', {
            'business_name': 'Sharma Electronics', 'state': 'Karnataka', 'gstin': '29abcde1234f1z5'
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['gstin'], '29ABCDE1234F1Z5')
        response = self.client.patch('/api/v1/business-profile/', {'bank_name': 'SBI'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(BusinessProfile.objects.count(), 1)
        self.assertEqual(BusinessProfile.load().bank_name, 'SBI')

    def test_invalid_gstin(self):
        response = self.client.patch('/api/v1/business-profile/', {'gstin': 'SHORT'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_non_admin_cannot_change(self):
        self.client.authenticate_user(TestDataFactory.create_user())
        response = self.client.patch('/api/v1/business-profile/', {'business_name': 'X'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)


class AuditLogTests(TestCase):
    def setUp(self):
        self.admin = TestDataFactory.create_admin()
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        create_audit_log(user=self.admin, action='create', model_name='Product', object_id=1, object_name='Fan')
        create_audit_log(user=self.user, action='update', model_name='Product', object_id=1, object_name='Fan')
        create_audit_log(user=self.user, action='delete', model_name='Contact', object_id=2, object_name='Ravi')

    def test_admin_sees_everything(self):
        self.client.authenticate_user(self.admin)
        response = self.client.get('/api/v1/audit-logs/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 3)
        self.assertEqual(response.data['page_size'], 100)

    def test_user_sees_own_logs(self):
        self.client.authenticate_user(self.user)
        response = self.client.get('/api/v1/audit-logs/')
        self.assertEqual(response.data['count'], 2)

    def test_filters(self):
        self.client.authenticate_user(self.admin)
        response = self.client.get('/api/v1/audit-logs/?model=product&action=update')
        self.assertEqual(response.data['count'], 1)
        response = self.client.get('/api/v1/audit-logs/?search=Ravi')
        self.assertEqual(response.data['count'], 1)

    def test_malformed_date_filter(self):
        self.client.authenticate_user(self.admin)
        response = self.client.get('/api/v1/audit-logs/?date_to=yesterday')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_history_is_oldest_first(self):
        self.client.authenticate_user(self.admin)
        response = self.client.get('/api/v1/audit-logs/history/Product/1/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([entry['action'] for entry in response.data], ['create', 'update'])

    def test_detail_of_other_users_log_is_forbidden(self):
        log = AuditLog.objects.get(user=self.admin)
        self.client.authenticate_user(self.user)
        response = self.client.get(f'/api/v1/audit-logs/{log.id}/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)


class GlobalSearchTests(TestCase):
    def setUp(self):
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(TestDataFactory.create_user())

    def test_empty_query(self):
        response = self.client.get('/api/v1/search/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['products'], [])
        self.assertEqual(response.data['deals'], [])

    def test_search_across_models(self):
        TestDataFactory.create_product(name='Ceiling Fan')
        customer = TestDataFactory.create_customer(name='Fanindra')
        TestDataFactory.create_deal(title='Fan order', contact=customer)
        response = self.client.get('/api/v1/search/?q=fan')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data['products']), 1)
        self.assertEqual(len(response.data['contacts']), 1)
        self.assertEqual(len(response.data['deals']), 1)
        self.assertEqual(response.data['employees'], [])


class SeedDefaultsCommandTests(TestCase):
    def test_seed_is_idempotent(self):
        from io import StringIO
        from django.contrib.auth.models import Group
        from django.core.management import call_command
        from erp.catalog.models import TaxRate, Unit
        from erp.expenses.models import ExpenseCategory

        out = StringIO()
        call_command('seed_defaults', stdout=out)
        self.assertIn('Created', out.getvalue())
        self.assertTrue(Group.objects.filter(name='Admin').exists())
        self.assertEqual(TaxRate.objects.count(), 5)
        self.assertTrue(Unit.objects.filter(short_name='pcs').exists())
        self.assertTrue(ExpenseCategory.objects.filter(name='Rent').exists())

        out = StringIO()
        call_command('seed_defaults', stdout=out)
        self.assertIn('nothing to do', out.getvalue())
        self.assertEqual(TaxRate.objects.count(), 5)
