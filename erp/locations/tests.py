"""
Test suite for the locations module
Tests: store CRUD, store admin linking, access rules and onboarding
"""
from django.test import TestCase
from rest_framework import status
from erp.core.models import AuditLog
from erp.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from erp.locations.models import Store
from erp.staff.models import Employee


class StoreAPITests(TestCase):
    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)

    def test_create_store_links_creator_as_admin(self):
        response = self.client.post('/api/v1/stores/', {
            'name': 'MG Road', 'domain': ' MGRoad.Example.com ', 'address': 'Bengaluru'
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['domain'], 'mgroad.example.com')
        self.assertFalse(response.data['onboarding_completed'])
        self.assertEqual(response.data['employee_count'], 1)
        employee = Employee.objects.get(user=self.user)
        self.assertEqual(employee.role, 'admin')
        self.assertEqual(employee.store_id, response.data['id'])
        self.assertEqual(employee.full_name, self.user.username)
        self.assertTrue(AuditLog.objects.filter(model_name='Store', action='create').exists())

    def test_blank_domain_is_stored_as_null(self):
        self.client.post('/api/v1/stores/', {'name': 'A', 'domain': ''}, format='json')
        response = self.client.post('/api/v1/stores/', {'name': 'B', 'domain': ''}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(Store.objects.filter(domain__isnull=True).count(), 2)

    def test_invalid_gstin(self):
        response = self.client.post('/api/v1/stores/', {'name': 'A', 'gstin': '123'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_user_sees_only_own_store(self):
        TestDataFactory.create_store(name='Other')
        response = self.client.post('/api/v1/stores/', {'name': 'Mine'}, format='json')
        response = self.client.get('/api/v1/stores/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([s['name'] for s in response.data], ['Mine'])

    def test_admin_sees_all_stores(self):
        TestDataFactory.create_store(name='One')
        TestDataFactory.create_store(name='Two')
        self.client.authenticate_user(TestDataFactory.create_admin())
        response = self.client.get('/api/v1/stores/')
        self.assertEqual(len(response.data), 2)
        response = self.client.get('/api/v1/stores/?is_active=false')
        self.assertEqual(len(response.data), 0)

    def test_only_store_admin_can_update(self):
        other = TestDataFactory.create_store(name='Other')
        response = self.client.patch(f'/api/v1/stores/{other.id}/', {'name': 'Hijacked'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

        response = self.client.post('/api/v1/stores/', {'name': 'Mine'}, format='json')
        store_id = response.data['id']
        response = self.client.patch(f'/api/v1/stores/{store_id}/', {'phone': '080123456'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['phone'], '080123456')

    def test_complete_onboarding(self):
        response = self.client.post('/api/v1/stores/', {'name': 'Mine'}, format='json')
        store_id = response.data['id']
        response = self.client.post(f'/api/v1/stores/{store_id}/complete-onboarding/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['onboarding_completed'])

    def test_delete_store(self):
        store = TestDataFactory.create_store()
        self.client.authenticate_user(TestDataFactory.create_admin())
        response = self.client.delete(f'/api/v1/stores/{store.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(Store.objects.filter(pk=store.id).exists())

    def test_missing_store(self):
        response = self.client.get('/api/v1/stores/99999/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
