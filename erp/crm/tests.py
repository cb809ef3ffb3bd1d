"""
Test suite for the crm module
Tests: deal pipeline ordering and moves, board totals, bookings and booking conversion
"""
from django.test import TestCase
from rest_framework import status
from rest_framework.exceptions import ValidationError
from decimal import Decimal
from erp.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from erp.crm.models import Deal, Booking
from erp.crm.utils import move_deal, next_position, pipeline_board
from erp.staff.models import EmployeeTask


def column(stage):
    return list(Deal.objects.filter(stage=stage).order_by('position').values_list('title', flat=True))


class DealPipelineTests(TestCase):
    def setUp(self):
        for index, title in enumerate(['A', 'B', 'C']):
            TestDataFactory.create_deal(title=title, stage='lead', position=index)
        for index, title in enumerate(['X', 'Y']):
            TestDataFactory.create_deal(title=title, stage='negotiation', position=index)

    def deal(self, title):
        return Deal.objects.get(title=title)

    def test_next_position(self):
        self.assertEqual(next_position('lead'), 3)
        self.assertEqual(next_position('closed'), 0)

    def test_reorder_within_stage(self):
        deal, moved = move_deal(self.deal('C'), 'lead', 0)
        self.assertTrue(moved)
        self.assertEqual(column('lead'), ['C', 'A', 'B'])
        self.assertEqual(list(Deal.objects.filter(stage='lead').order_by('position').values_list('position', flat=True)),
                         [0, 1, 2])

    def test_same_slot_is_not_a_move(self):
        _, moved = move_deal(self.deal('B'), 'lead', 1)
        self.assertFalse(moved)

    def test_move_across_stages(self):
        move_deal(self.deal('A'), 'negotiation', 1)
        self.assertEqual(column('lead'), ['B', 'C'])
        self.assertEqual(column('negotiation'), ['X', 'A', 'Y'])
        self.assertEqual(self.deal('B').position, 0)

    def test_position_is_clamped(self):
        move_deal(self.deal('B'), 'closed', 10)
        self.assertEqual(self.deal('B').stage, 'closed')
        self.assertEqual(self.deal('B').position, 0)

    def test_stale_instance_moves_from_current_stage(self):
        stale = self.deal('A')
        move_deal(self.deal('A'), 'closed', 0)
        self.assertEqual(stale.stage, 'lead')
        deal, moved = move_deal(stale, 'negotiation', 0)
        self.assertTrue(moved)
        self.assertEqual(column('closed'), [])
        self.assertEqual(column('negotiation'), ['A', 'X', 'Y'])
        self.assertEqual(column('lead'), ['B', 'C'])

    def test_invalid_stage(self):
        with self.assertRaises(ValidationError):
            move_deal(self.deal('A'), 'won', 0)

    def test_board(self):
        board = pipeline_board()
        self.assertEqual([c['stage'] for c in board], ['lead', 'negotiation', 'closed'])
        self.assertEqual([d.title for d in board[0]['deals']], ['A', 'B', 'C'])
        self.assertEqual(board[0]['count'], 3)
        self.assertEqual(board[0]['total_value'], Decimal('3000.00'))
        self.assertEqual(board[2]['total_value'], Decimal('0.00'))


class DealAPITests(TestCase):
    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)

    def test_create_appends_to_stage(self):
        TestDataFactory.create_deal(title='Existing', stage='lead', position=0)
        customer = TestDataFactory.create_customer(name='Kaveri Hotels')
        response = self.client.post('/api/v1/deals/', {
            'title': 'Kitchen equipment', 'contact': customer.id, 'value': '250000'
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['position'], 1)
        self.assertEqual(response.data['owner'], self.user.id)
        self.assertEqual(response.data['contact_name'], 'Kaveri Hotels')

    def test_negative_value(self):
        response = self.client.post('/api/v1/deals/', {'title': 'Bad', 'value': '-1'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_stage_changes_only_through_move(self):
        deal = TestDataFactory.create_deal()
        response = self.client.patch(f'/api/v1/deals/{deal.id}/', {'stage': 'closed'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        response = self.client.post(f'/api/v1/deals/{deal.id}/move/', {'stage': 'closed', 'position': 0},
                                    format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['stage'], 'closed')

    def test_move_rejects_negative_position(self):
        deal = TestDataFactory.create_deal()
        response = self.client.post(f'/api/v1/deals/{deal.id}/move/', {'stage': 'lead', 'position': -1},
                                    format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_delete_closes_gap(self):
        first = TestDataFactory.create_deal(title='First', position=0)
        TestDataFactory.create_deal(title='Second', position=1)
        TestDataFactory.create_deal(title='Third', position=2)
        response = self.client.delete(f'/api/v1/deals/{first.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertEqual(list(Deal.objects.order_by('position').values_list('title', 'position')),
                         [('Second', 0), ('Third', 1)])

    def test_board_endpoint(self):
        TestDataFactory.create_deal(title='Lead deal')
        response = self.client.get('/api/v1/deals/board/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data[0]['deals'][0]['title'], 'Lead deal')

    def test_list_filters(self):
        customer = TestDataFactory.create_customer(name='Nandini Dairy')
        TestDataFactory.create_deal(title='Cold storage', contact=customer)
        TestDataFactory.create_deal(title='Other', stage='closed')
        response = self.client.get('/api/v1/deals/?stage=closed')
        self.assertEqual([d['title'] for d in response.data], ['Other'])
        response = self.client.get('/api/v1/deals/?search=nandini')
        self.assertEqual([d['title'] for d in response.data], ['Cold storage'])


class BookingAPITests(TestCase):
    def setUp(self):
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(TestDataFactory.create_user())
        self.store = TestDataFactory.create_store()
        self.booking = Booking.objects.create(
            customer_name='Lakshmi', customer_phone='9800000011', service_type='Water Purifier Service',
            store=self.store, preferred_time='Morning', address='Basavanagudi', notes='Second floor'
        )

    def test_create_and_filter(self):
        response = self.client.post('/api/v1/bookings/', {
            'customer_name': 'Anil', 'customer_phone': '9800000012', 'service_type': 'AC Service'
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['status'], 'pending')
        response = self.client.get(f'/api/v1/bookings/?store={self.store.id}')
        self.assertEqual(len(response.data), 1)

    def test_convert_creates_task(self):
        employee = TestDataFactory.create_employee(store=self.store)
        response = self.client.post(f'/api/v1/bookings/{self.booking.id}/convert/', {
            'employee': employee.id, 'payment_amount': '800.00'
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['title'], 'Water Purifier Service')
        self.assertEqual(response.data['customer_phone'], '9800000011')
        self.assertEqual(response.data['description'], 'Preferred time: Morning\nSecond floor')
        self.assertEqual(Decimal(response.data['payment_amount']), Decimal('800.00'))

        self.booking.refresh_from_db()
        self.assertEqual(self.booking.status, 'confirmed')
        self.assertEqual(self.booking.task, EmployeeTask.objects.get())

        response = self.client.post(f'/api/v1/bookings/{self.booking.id}/convert/', {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_cancelled_booking_cannot_be_converted(self):
        self.booking.status = 'cancelled'
        self.booking.save()
        response = self.client.post(f'/api/v1/bookings/{self.booking.id}/convert/', {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(EmployeeTask.objects.exists())
