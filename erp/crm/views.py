import logging
from decimal import Decimal
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from rest_framework.serializers import ValidationError
from django.db import transaction
from django.db.models import Q
from django.shortcuts import get_object_or_404
from erp.core.utils import create_audit_log, snapshot
from erp.staff.models import EmployeeTask
from erp.staff.serializers import EmployeeTaskSerializer
from .models import Deal, Booking
from .serializers import DealSerializer, DealMoveSerializer, BookingSerializer, BookingConvertSerializer
from .utils import next_position, move_deal, pipeline_board

logger = logging.getLogger(__name__)


# Deal views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def deal_list_create(request):
    """List deals or create one at the end of its stage"""
    if request.method == 'GET':
        deals = Deal.objects.select_related('contact', 'owner')
        stage = request.query_params.get('stage')
        contact = request.query_params.get('contact')
        search = request.query_params.get('search')
        if stage:
            deals = deals.filter(stage=stage)
        if contact:
            deals = deals.filter(contact_id=contact)
        if search:
            deals = deals.filter(Q(title__icontains=search) | Q(contact__name__icontains=search) |
                                 Q(contact__company__icontains=search))
        return Response(DealSerializer(deals, many=True).data)

    serializer = DealSerializer(data=request.data)
    if serializer.is_valid():
        with transaction.atomic():
            stage = serializer.validated_data.get('stage', 'lead')
            deal = serializer.save(
                position=next_position(stage),
                owner=serializer.validated_data.get('owner') or request.user,
            )
        create_audit_log(request=request, action='create', model_name='Deal', object_id=deal.pk,
                         object_name=deal.title, changes={'new': snapshot(deal)})
        return Response(DealSerializer(deal).data, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def deal_detail(request, pk):
    """Retrieve, update or delete a deal"""
    deal = get_object_or_404(Deal.objects.select_related('contact', 'owner'), pk=pk)

    if request.method == 'GET':
        return Response(DealSerializer(deal).data)
    elif request.method in ('PUT', 'PATCH'):
        old = snapshot(deal)
        serializer = DealSerializer(deal, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            deal = serializer.save()
            create_audit_log(request=request, action='update', model_name='Deal', object_id=deal.pk,
                             object_name=deal.title, changes={'old': old, 'new': snapshot(deal)})
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        stage, title = deal.stage, deal.title
        with transaction.atomic():
            deal.delete()
            # Close the gap left in the column
            for index, remaining in enumerate(Deal.objects.select_for_update().filter(stage=stage).order_by('position', 'id')):
                if remaining.position != index:
                    remaining.position = index
                    remaining.save(update_fields=['position', 'updated_at'])
        create_audit_log(request=request, action='delete', model_name='Deal', object_id=pk, object_name=title)
        return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def deal_board(request):
    """Pipeline board: every stage with its ordered deals, count and total value"""
    board = pipeline_board()
    for column in board:
        column['deals'] = DealSerializer(column['deals'], many=True).data
    return Response(board)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def deal_move(request, pk):
    """Move a deal to a stage and position on the board"""
    deal = get_object_or_404(Deal, pk=pk)
    serializer = DealMoveSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    old = {'stage': deal.stage, 'position': deal.position}
    try:
        deal, moved = move_deal(deal, serializer.validated_data['stage'], serializer.validated_data['position'])
    except ValidationError as e:
        return Response(e.detail, status=status.HTTP_400_BAD_REQUEST)
    if moved:
        create_audit_log(request=request, action='move', model_name='Deal', object_id=deal.pk, object_name=deal.title,
                         changes={'old': old, 'new': {'stage': deal.stage, 'position': deal.position}})
    return Response(DealSerializer(Deal.objects.select_related('contact', 'owner').get(pk=deal.pk)).data)


# Booking views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def booking_list_create(request):
    """List bookings (filters: status, store, date) or create one"""
    if request.method == 'GET':
        bookings = Booking.objects.select_related('store')
        status_filter = request.query_params.get('status')
        store = request.query_params.get('store')
        date = request.query_params.get('date')
        if status_filter:
            bookings = bookings.filter(status=status_filter)
        if store:
            bookings = bookings.filter(store_id=store)
        if date:
            bookings = bookings.filter(preferred_date=date)
        return Response(BookingSerializer(bookings, many=True).data)

    serializer = BookingSerializer(data=request.data)
    if serializer.is_valid():
        booking = serializer.save()
        create_audit_log(request=request, action='create', model_name='Booking', object_id=booking.pk,
                         object_name=str(booking), changes={'new': snapshot(booking)})
        return Response(serializer.data, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def booking_detail(request, pk):
    """Retrieve, update or delete a booking"""
    booking = get_object_or_404(Booking.objects.select_related('store'), pk=pk)

    if request.method == 'GET':
        return Response(BookingSerializer(booking).data)
    elif request.method in ('PUT', 'PATCH'):
        old = snapshot(booking)
        serializer = BookingSerializer(booking, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            booking = serializer.save()
            action = 'status_change' if old['status'] != booking.status else 'update'
            create_audit_log(request=request, action=action, model_name='Booking', object_id=booking.pk,
                             object_name=str(booking), changes={'old': old, 'new': snapshot(booking)})
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        create_audit_log(request=request, action='delete', model_name='Booking', object_id=booking.pk,
                         object_name=str(booking))
        booking.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def booking_convert(request, pk):
    """Turn a booking into an employee task and confirm the booking"""
    booking = get_object_or_404(Booking, pk=pk)
    if booking.task_id is not None:
        return Response({'error': 'Booking already has a task'}, status=status.HTTP_400_BAD_REQUEST)
    if booking.status in ('completed', 'cancelled'):
        return Response({'error': f"A {booking.status} booking cannot be converted"}, status=status.HTTP_400_BAD_REQUEST)

    serializer = BookingConvertSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    employee = serializer.validated_data.get('employee')

    with transaction.atomic():
        description = booking.notes
        if booking.preferred_time:
            description = f"Preferred time: {booking.preferred_time}\n{description}".strip()
        task = EmployeeTask.objects.create(
            employee=employee,
            store=booking.store or (employee.store if employee else None),
            title=booking.service_type,
            description=description,
            customer_name=booking.customer_name,
            customer_phone=booking.customer_phone,
            customer_address=booking.address,
            payment_amount=serializer.validated_data.get('payment_amount') or Decimal('0.00'),
            due_date=serializer.validated_data.get('due_date') or booking.preferred_date,
            created_by=request.user,
        )
        booking.task = task
        booking.status = 'confirmed'
        booking.save(update_fields=['task', 'status', 'updated_at'])

    create_audit_log(request=request, action='convert', model_name='Booking', object_id=booking.pk,
                     object_name=str(booking), object_reference=str(task.pk),
                     changes={'old': {'status': 'pending'}, 'new': {'status': 'confirmed', 'task': task.pk}})
    logger.info(f"Booking {booking.pk} converted to task {task.pk}")
    return Response(EmployeeTaskSerializer(task).data, status=status.HTTP_201_CREATED)
