"""
Test suite for the staff module
Tests: employees, task workflow and completion billing, attendance and performance
"""
from django.test import TestCase
from rest_framework import status
from rest_framework.exceptions import ValidationError
from decimal import Decimal
from unittest import mock
from django.utils import timezone
from erp.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from erp.catalog.models import Product
from erp.parties.models import Contact
from erp.sales.models import SalesOrder
from erp.staff.models import Employee, EmployeeTask, Attendance
from erp.staff.utils import task_payment_status, change_task_status, complete_task


class TaskWorkflowTests(TestCase):
    def test_payment_status(self):
        self.assertEqual(task_payment_status(Decimal('0'), Decimal('500')), 'pending')
        self.assertEqual(task_payment_status(Decimal('200'), Decimal('500')), 'partial')
        self.assertEqual(task_payment_status(Decimal('500'), Decimal('500')), 'paid')
        self.assertEqual(task_payment_status(Decimal('50'), Decimal('0')), 'paid')

    def test_transitions(self):
        task = TestDataFactory.create_task()
        with self.assertRaises(ValidationError):
            change_task_status(task, 'in_progress')
        change_task_status(task, 'accepted')
        change_task_status(task, 'in_progress')
        with self.assertRaises(ValidationError):
            change_task_status(task, 'completed')
        change_task_status(task, 'cancelled')
        with self.assertRaises(ValidationError):
            change_task_status(task, 'pending')

    def test_pending_task_cannot_be_completed(self):
        task = TestDataFactory.create_task()
        with self.assertRaises(ValidationError):
            complete_task(task, Decimal('100'))
        self.assertFalse(SalesOrder.objects.exists())

    def test_completion_reuses_existing_contact_and_service(self):
        supplier = TestDataFactory.create_supplier(phone='9800000009')
        service = TestDataFactory.create_service(name='AC Repair')
        task = TestDataFactory.create_task(status='in_progress', customer_name='Someone',
                                           customer_phone='9800000009', payment_amount=Decimal('0.00'))
        task = complete_task(task, Decimal('450.00'))
        supplier.refresh_from_db()
        self.assertEqual(supplier.role, 'both')
        self.assertEqual(task.service, service)
        self.assertEqual(task.sales_order.customer, supplier)
        self.assertEqual(task.sales_order.total_amount, Decimal('450.00'))
        self.assertEqual(task.payment_status, 'paid')

    def test_failed_completion_rolls_back_everything(self):
        task = TestDataFactory.create_task(status='in_progress', customer_name='New Customer',
                                           customer_phone='9800000077', payment_amount=Decimal('400.00'))
        with mock.patch('erp.staff.utils.record_payment', side_effect=RuntimeError('payment store unavailable')):
            with self.assertRaises(RuntimeError):
                complete_task(task, Decimal('400.00'))
        self.assertFalse(Contact.objects.exists())
        self.assertFalse(Product.objects.exists())
        self.assertFalse(SalesOrder.objects.exists())
        task.refresh_from_db()
        self.assertEqual(task.status, 'in_progress')
        self.assertIsNone(task.sales_order)


class StaffAPITestCase(TestCase):
    def setUp(self):
        self.store = TestDataFactory.create_store()
        self.admin_user = TestDataFactory.create_user()
        self.admin_employee = TestDataFactory.create_employee(user=self.admin_user, store=self.store, role='admin',
                                                              full_name='Store Admin')
        self.worker_user = TestDataFactory.create_user()
        self.worker = TestDataFactory.create_employee(user=self.worker_user, store=self.store, full_name='Field Worker')
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.admin_user)


class EmployeeAPITests(StaffAPITestCase):
    def test_list_is_scoped_to_store(self):
        TestDataFactory.create_employee(store=TestDataFactory.create_store(), full_name='Elsewhere')
        response = self.client.get('/api/v1/employees/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([e['full_name'] for e in response.data], ['Field Worker', 'Store Admin'])

    def test_create_defaults_to_admins_store(self):
        response = self.client.post('/api/v1/employees/', {'full_name': 'New Hire', 'salary': '15000'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['store'], self.store.id)

    def test_user_can_link_only_once(self):
        response = self.client.post('/api/v1/employees/', {'full_name': 'Dup', 'user': self.worker_user.id},
                                    format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_employee_cannot_manage_staff(self):
        self.client.authenticate_user(self.worker_user)
        response = self.client.get('/api/v1/employees/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        response = self.client.get(f'/api/v1/employees/{self.worker.id}/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)

    def test_cannot_delete_self(self):
        response = self.client.delete(f'/api/v1/employees/{self.admin_employee.id}/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        response = self.client.delete(f'/api/v1/employees/{self.worker.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(Employee.objects.filter(pk=self.worker.id).exists())

    def test_performance(self):
        TestDataFactory.create_task(employee=self.worker, status='completed', amount_collected=Decimal('300.00'))
        TestDataFactory.create_task(employee=self.worker, status='pending')
        Attendance.objects.create(employee=self.worker, date=timezone.localdate(), status='late')
        response = self.client.get(f'/api/v1/employees/{self.worker.id}/performance/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['tasks']['total'], 2)
        self.assertEqual(response.data['tasks']['completion_rate'], 50.0)
        self.assertEqual(response.data['amount_collected'], Decimal('300.00'))
        self.assertEqual(response.data['attendance']['days_present'], 1)


class TaskAPITests(StaffAPITestCase):
    def create_task(self, **overrides):
        data = {
            'employee': self.worker.id,
            'title': 'AC Installation',
            'customer_name': 'Ravi',
            'customer_phone': '9800000001',
            'customer_address': 'Jayanagar',
            'payment_amount': '500.00',
        }
        data.update(overrides)
        return self.client.post('/api/v1/tasks/', data, format='json')

    def test_create_task(self):
        response = self.create_task()
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['status'], 'pending')
        self.assertEqual(response.data['store'], self.store.id)

    def test_employee_cannot_assign_tasks(self):
        self.client.authenticate_user(self.worker_user)
        response = self.create_task()
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_service_must_be_a_service(self):
        product = TestDataFactory.create_product()
        response = self.create_task(service=product.id)
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_employee_sees_only_own_tasks(self):
        self.create_task()
        other = TestDataFactory.create_employee(store=self.store)
        self.create_task(employee=other.id)
        self.client.authenticate_user(self.worker_user)
        response = self.client.get('/api/v1/tasks/')
        self.assertEqual(len(response.data), 1)
        response = self.client.get('/api/v1/tasks/mine/')
        self.assertEqual(len(response.data['active']), 1)
        self.assertEqual(response.data['finished'], [])

    def test_full_workflow_bills_the_customer(self):
        task_id = self.create_task().data['id']
        self.client.authenticate_user(self.worker_user)
        response = self.client.post(f'/api/v1/tasks/{task_id}/status/', {'status': 'in_progress'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.client.post(f'/api/v1/tasks/{task_id}/status/', {'status': 'accepted'}, format='json')
        response = self.client.post(f'/api/v1/tasks/{task_id}/status/', {'status': 'in_progress'}, format='json')
        self.assertEqual(response.data['status'], 'in_progress')

        response = self.client.post(f'/api/v1/tasks/{task_id}/complete/',
                                    {'amount_collected': '300.00', 'payment_mode': 'online'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'completed')
        self.assertEqual(response.data['payment_status'], 'partial')
        self.assertIsNotNone(response.data['completed_at'])
        self.assertTrue(response.data['invoice_number'].startswith('INV-'))

        invoice = SalesOrder.objects.get(pk=response.data['sales_order'])
        self.assertEqual(invoice.channel, 'task')
        self.assertEqual(invoice.total_amount, Decimal('500.00'))
        self.assertEqual(invoice.paid_amount, Decimal('300.00'))
        self.assertEqual(invoice.payment_status, 'partial')
        self.assertEqual(invoice.payments.get().payment_method, 'upi')
        self.assertEqual(invoice.customer, Contact.objects.get(phone='9800000001'))
        self.assertTrue(invoice.items.get().product.is_service)

        response = self.client.post(f'/api/v1/tasks/{task_id}/complete/', {'amount_collected': '100.00'},
                                    format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(SalesOrder.objects.count(), 1)

    def test_other_employee_has_no_access(self):
        task_id = self.create_task().data['id']
        stranger = TestDataFactory.create_user()
        TestDataFactory.create_employee(user=stranger, store=self.store)
        self.client.authenticate_user(stranger)
        response = self.client.get(f'/api/v1/tasks/{task_id}/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_finished_task_cannot_be_edited(self):
        task = TestDataFactory.create_task(employee=self.worker, store=self.store, status='cancelled')
        response = self.client.patch(f'/api/v1/tasks/{task.id}/', {'title': 'Changed'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(EmployeeTask.objects.get(pk=task.id).title, 'AC Repair')


class AttendanceAPITests(StaffAPITestCase):
    def test_check_in_once_per_day(self):
        self.client.authenticate_user(self.worker_user)
        response = self.client.post('/api/v1/attendance/check-in/', {'location': {'lat': 12.9, 'lng': 77.6}},
                                    format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['status'], 'present')
        self.assertEqual(response.data['employee'], self.worker.id)
        response = self.client.post('/api/v1/attendance/check-in/', {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_check_out(self):
        self.client.authenticate_user(self.worker_user)
        attendance_id = self.client.post('/api/v1/attendance/check-in/', {}, format='json').data['id']
        response = self.client.post(f'/api/v1/attendance/{attendance_id}/check-out/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIsNotNone(response.data['check_out'])
        response = self.client.post(f'/api/v1/attendance/{attendance_id}/check-out/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_employee_cannot_check_in_someone_else(self):
        self.client.authenticate_user(self.worker_user)
        response = self.client.post('/api/v1/attendance/check-in/', {'employee': self.admin_employee.id},
                                    format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_user_without_profile(self):
        self.client.authenticate_user(TestDataFactory.create_user())
        response = self.client.post('/api/v1/attendance/check-in/', {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        response = self.client.get('/api/v1/attendance/mine/')
        self.assertIsNone(response.data['today'])

    def test_admin_lists_todays_attendance(self):
        self.client.post('/api/v1/attendance/check-in/', {'employee': self.worker.id}, format='json')
        response = self.client.get('/api/v1/attendance/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data), 1)
        self.client.authenticate_user(self.worker_user)
        response = self.client.get('/api/v1/attendance/mine/')
        self.assertIsNotNone(response.data['today'])


class CrossStoreTests(StaffAPITestCase):
    def setUp(self):
        super().setUp()
        self.other_store = TestDataFactory.create_store()
        self.outsider = TestDataFactory.create_employee(store=self.other_store, full_name='Other Store Worker',
                                                        salary=Decimal('12000.00'))

    def test_store_admin_cannot_touch_other_store_staff(self):
        url = f'/api/v1/employees/{self.outsider.id}/'
        self.assertEqual(self.client.get(url).status_code, status.HTTP_403_FORBIDDEN)
        response = self.client.patch(url, {'salary': '1.00'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(self.client.delete(url).status_code, status.HTTP_403_FORBIDDEN)
        self.outsider.refresh_from_db()
        self.assertEqual(self.outsider.salary, Decimal('12000.00'))
        response = self.client.get(f'/api/v1/employees/{self.outsider.id}/performance/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_store_admin_cannot_move_staff_out(self):
        response = self.client.patch(f'/api/v1/employees/{self.worker.id}/', {'store': self.other_store.id},
                                     format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        response = self.client.post('/api/v1/employees/', {'full_name': 'Smuggled', 'store': self.other_store.id},
                                    format='json')
        self.assertEqual(response.data['store'], self.store.id)

    def test_store_admin_cannot_check_in_other_store_staff(self):
        response = self.client.post('/api/v1/attendance/check-in/', {'employee': self.outsider.id}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertFalse(Attendance.objects.exists())

    def test_store_admin_cannot_assign_other_store_staff(self):
        response = self.client.post('/api/v1/tasks/', {
            'employee': self.outsider.id, 'title': 'Install', 'customer_name': 'Ravi',
            'customer_phone': '9800000001',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertFalse(EmployeeTask.objects.exists())

    def test_site_admin_manages_every_store(self):
        self.client.authenticate_user(TestDataFactory.create_admin())
        response = self.client.patch(f'/api/v1/employees/{self.outsider.id}/', {'salary': '15000.00'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)


class DateParameterTests(StaffAPITestCase):
    def test_malformed_dates_are_rejected(self):
        response = self.client.get(f'/api/v1/employees/{self.worker.id}/performance/?date_from=last-week')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        response = self.client.get('/api/v1/attendance/?date=2026-02-30')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_valid_date_filters_attendance(self):
        Attendance.objects.create(employee=self.worker, date=timezone.localdate(), status='present')
        response = self.client.get(f'/api/v1/attendance/?date={timezone.localdate().isoformat()}')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data), 1)
