import logging
from decimal import Decimal
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from rest_framework.serializers import ValidationError
from django.db import IntegrityError, transaction
from django.db.models import Count, Sum
from django.shortcuts import get_object_or_404
from django.utils import timezone
from erp.core.utils import create_audit_log, date_param, is_admin_user, snapshot
from .models import Employee, EmployeeTask, Attendance
from .serializers import (
    EmployeeSerializer, EmployeeTaskSerializer, TaskStatusSerializer, TaskCompleteSerializer,
    AttendanceSerializer, CheckInSerializer
)
from .utils import get_employee, is_store_admin, change_task_status, complete_task

logger = logging.getLogger(__name__)

ADMIN_REQUIRED = {'error': 'Only store admins can do this'}


def _store_scope(user, queryset, store_field='store_id'):
    """Site admins see everything; store admins see their own store"""
    if is_admin_user(user):
        return queryset
    employee = get_employee(user)
    if employee is None or employee.store_id is None:
        return queryset.none()
    return queryset.filter(**{store_field: employee.store_id})


def _manages(user, employee):
    """Site admins manage every employee; store admins only their own store's"""
    if is_admin_user(user):
        return True
    admin = get_employee(user)
    return (admin is not None and admin.role == 'admin' and admin.store_id is not None
            and employee.store_id == admin.store_id)


def _can_access_task(user, task):
    if is_store_admin(user):
        return is_admin_user(user) or task.store_id == get_employee(user).store_id
    employee = get_employee(user)
    return employee is not None and task.employee_id == employee.pk


# Employee views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def employee_list_create(request):
    """List the store's employees or add one (store admins only)"""
    if not is_store_admin(request.user):
        return Response(ADMIN_REQUIRED, status=status.HTTP_403_FORBIDDEN)

    if request.method == 'GET':
        employees = _store_scope(request.user, Employee.objects.select_related('store', 'user'))
        status_filter = request.query_params.get('status')
        role = request.query_params.get('role')
        if status_filter:
            employees = employees.filter(status=status_filter)
        if role:
            employees = employees.filter(role=role)
        return Response(EmployeeSerializer(employees, many=True).data)

    data = request.data.copy()
    admin_employee = get_employee(request.user)
    if admin_employee is not None and (not data.get('store') or not is_admin_user(request.user)):
        data['store'] = admin_employee.store_id
    serializer = EmployeeSerializer(data=data)
    if serializer.is_valid():
        employee = serializer.save()
        create_audit_log(request=request, action='create', model_name='Employee', object_id=employee.pk,
                         object_name=employee.full_name, changes={'new': snapshot(employee)})
        return Response(EmployeeSerializer(employee).data, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def employee_detail(request, pk):
    """Retrieve, update or delete an employee"""
    employee = get_object_or_404(Employee.objects.select_related('store', 'user'), pk=pk)
    own_profile = get_employee(request.user) == employee
    if not _manages(request.user, employee) and not (own_profile and request.method == 'GET'):
        return Response(ADMIN_REQUIRED, status=status.HTTP_403_FORBIDDEN)

    if request.method == 'GET':
        return Response(EmployeeSerializer(employee).data)
    elif request.method in ('PUT', 'PATCH'):
        old = snapshot(employee)
        serializer = EmployeeSerializer(employee, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            store = serializer.validated_data.get('store', employee.store)
            if not is_admin_user(request.user) and (store is None or store.pk != employee.store_id):
                return Response({'error': 'Employees cannot be moved to another store'},
                                status=status.HTTP_403_FORBIDDEN)
            employee = serializer.save()
            create_audit_log(request=request, action='update', model_name='Employee', object_id=employee.pk,
                             object_name=employee.full_name, changes={'old': old, 'new': snapshot(employee)})
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        if own_profile:
            return Response({'error': 'You cannot delete your own employee record'}, status=status.HTTP_400_BAD_REQUEST)
        create_audit_log(request=request, action='delete', model_name='Employee', object_id=employee.pk,
                         object_name=employee.full_name)
        employee.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def employee_performance(request, pk):
    """Task and attendance figures for one employee over an optional date range"""
    employee = get_object_or_404(Employee, pk=pk)
    if not _manages(request.user, employee) and get_employee(request.user) != employee:
        return Response(ADMIN_REQUIRED, status=status.HTTP_403_FORBIDDEN)

    date_from = date_param(request, 'date_from')
    date_to = date_param(request, 'date_to')
    tasks = employee.tasks.all()
    attendance = employee.attendance.all()
    if date_from:
        tasks = tasks.filter(created_at__date__gte=date_from)
        attendance = attendance.filter(date__gte=date_from)
    if date_to:
        tasks = tasks.filter(created_at__date__lte=date_to)
        attendance = attendance.filter(date__lte=date_to)

    by_status = {key: 0 for key, _ in EmployeeTask.STATUS_CHOICES}
    for row in tasks.values('status').annotate(count=Count('id')):
        by_status[row['status']] = row['count']
    total_tasks = sum(by_status.values())
    attendance_by_status = {key: 0 for key, _ in Attendance.STATUS_CHOICES}
    for row in attendance.values('status').annotate(count=Count('id')):
        attendance_by_status[row['status']] = row['count']

    return Response({
        'employee': EmployeeSerializer(employee).data,
        'tasks': {
            'total': total_tasks,
            'by_status': by_status,
            'completion_rate': round(by_status['completed'] * 100 / total_tasks, 1) if total_tasks else 0,
        },
        'amount_collected': tasks.filter(status='completed').aggregate(
            total=Sum('amount_collected'))['total'] or Decimal('0.00'),
        'attendance': {
            'days_present': attendance_by_status['present'] + attendance_by_status['late'] + attendance_by_status['half_day'],
            'by_status': attendance_by_status,
        },
    })


# Task views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def task_list_create(request):
    """
    List tasks or assign a new one

    Store admins see every task of their store (optionally one employee's);
    employees see only the tasks assigned to them.
    """
    if request.method == 'GET':
        tasks = EmployeeTask.objects.select_related('employee', 'service', 'sales_order')
        if is_store_admin(request.user):
            tasks = _store_scope(request.user, tasks)
            employee_id = request.query_params.get('employee')
            if employee_id:
                tasks = tasks.filter(employee_id=employee_id)
        else:
            employee = get_employee(request.user)
            tasks = tasks.filter(employee=employee) if employee else tasks.none()
        status_filter = request.query_params.get('status')
        if status_filter:
            tasks = tasks.filter(status=status_filter)
        return Response(EmployeeTaskSerializer(tasks, many=True).data)

    if not is_store_admin(request.user):
        return Response(ADMIN_REQUIRED, status=status.HTTP_403_FORBIDDEN)
    data = request.data.copy()
    admin_employee = get_employee(request.user)
    if admin_employee is not None and (not data.get('store') or not is_admin_user(request.user)):
        data['store'] = admin_employee.store_id
    serializer = EmployeeTaskSerializer(data=data)
    if serializer.is_valid():
        assignee = serializer.validated_data.get('employee')
        if assignee is not None and not _manages(request.user, assignee):
            return Response({'error': 'Tasks can only be assigned to employees of your store'},
                            status=status.HTTP_403_FORBIDDEN)
        task = serializer.save(created_by=request.user)
        if task.store_id is None and task.employee is not None:
            task.store_id = task.employee.store_id
            task.save(update_fields=['store', 'updated_at'])
        create_audit_log(request=request, action='create', model_name='EmployeeTask', object_id=task.pk,
                         object_name=task.title, changes={'new': snapshot(task)})
        return Response(EmployeeTaskSerializer(task).data, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def task_detail(request, pk):
    """Retrieve a task; store admins may also update or delete it"""
    task = get_object_or_404(EmployeeTask.objects.select_related('employee', 'service', 'sales_order'), pk=pk)
    if not _can_access_task(request.user, task):
        return Response({'error': 'You do not have access to this task'}, status=status.HTTP_403_FORBIDDEN)

    if request.method == 'GET':
        return Response(EmployeeTaskSerializer(task).data)
    if not is_store_admin(request.user):
        return Response(ADMIN_REQUIRED, status=status.HTTP_403_FORBIDDEN)

    if request.method in ('PUT', 'PATCH'):
        old = snapshot(task)
        serializer = EmployeeTaskSerializer(task, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            assignee = serializer.validated_data.get('employee')
            if assignee is not None and not _manages(request.user, assignee):
                return Response({'error': 'Tasks can only be assigned to employees of your store'},
                                status=status.HTTP_403_FORBIDDEN)
            task = serializer.save()
            create_audit_log(request=request, action='update', model_name='EmployeeTask', object_id=task.pk,
                             object_name=task.title, changes={'old': old, 'new': snapshot(task)})
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        create_audit_log(request=request, action='delete', model_name='EmployeeTask', object_id=task.pk,
                         object_name=task.title)
        task.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def task_status(request, pk):
    """Move a task to its next status (accept, start, cancel)"""
    task = get_object_or_404(EmployeeTask, pk=pk)
    if not _can_access_task(request.user, task):
        return Response({'error': 'You do not have access to this task'}, status=status.HTTP_403_FORBIDDEN)

    serializer = TaskStatusSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    try:
        task = change_task_status(task, serializer.validated_data['status'], request=request)
    except ValidationError as e:
        return Response(e.detail, status=status.HTTP_400_BAD_REQUEST)
    return Response(EmployeeTaskSerializer(task).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def task_complete(request, pk):
    """Complete an in-progress task: bill the customer and record what was collected"""
    task = get_object_or_404(EmployeeTask, pk=pk)
    if not _can_access_task(request.user, task):
        return Response({'error': 'You do not have access to this task'}, status=status.HTTP_403_FORBIDDEN)

    serializer = TaskCompleteSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    try:
        task = complete_task(task, serializer.validated_data['amount_collected'],
                             serializer.validated_data['payment_mode'], request=request)
    except ValidationError as e:
        return Response(e.detail, status=status.HTTP_400_BAD_REQUEST)
    task = EmployeeTask.objects.select_related('employee', 'service', 'sales_order').get(pk=task.pk)
    return Response(EmployeeTaskSerializer(task).data)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def my_tasks(request):
    """Tasks assigned to the logged-in employee, open ones first"""
    employee = get_employee(request.user)
    if employee is None:
        return Response({'active': [], 'finished': []})
    tasks = employee.tasks.select_related('service', 'sales_order')
    active = [t for t in tasks if t.status not in ('completed', 'cancelled')]
    finished = [t for t in tasks if t.status in ('completed', 'cancelled')]
    return Response({
        'active': EmployeeTaskSerializer(active, many=True).data,
        'finished': EmployeeTaskSerializer(finished, many=True).data,
    })


# Attendance views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def attendance_list_create(request):
    """Attendance for a day (default today) or an employee; admins may record rows directly"""
    if request.method == 'GET':
        records = Attendance.objects.select_related('employee')
        if is_store_admin(request.user):
            records = _store_scope(request.user, records, store_field='employee__store_id')
        else:
            employee = get_employee(request.user)
            records = records.filter(employee=employee) if employee else records.none()

        employee_id = request.query_params.get('employee')
        date = date_param(request, 'date')
        date_from = date_param(request, 'date_from')
        date_to = date_param(request, 'date_to')
        if employee_id:
            records = records.filter(employee_id=employee_id)
        if date:
            records = records.filter(date=date)
        elif date_from or date_to:
            if date_from:
                records = records.filter(date__gte=date_from)
            if date_to:
                records = records.filter(date__lte=date_to)
        elif not employee_id:
            records = records.filter(date=timezone.localdate())
        return Response(AttendanceSerializer(records, many=True).data)

    if not is_store_admin(request.user):
        return Response(ADMIN_REQUIRED, status=status.HTTP_403_FORBIDDEN)
    serializer = AttendanceSerializer(data=request.data)
    if serializer.is_valid():
        if not _manages(request.user, serializer.validated_data['employee']):
            return Response(ADMIN_REQUIRED, status=status.HTTP_403_FORBIDDEN)
        attendance = serializer.save()
        return Response(AttendanceSerializer(attendance).data, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def attendance_check_in(request):
    """
    Check in for today. Employees check themselves in; store admins may pass
    another employee. Checking in after the shift start marks the day late.
    """
    serializer = CheckInSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    employee = serializer.validated_data.get('employee')
    if employee is not None and employee != get_employee(request.user) and not _manages(request.user, employee):
        return Response(ADMIN_REQUIRED, status=status.HTTP_403_FORBIDDEN)
    employee = employee or get_employee(request.user)
    if employee is None:
        return Response({'error': 'No employee profile is linked to this user'}, status=status.HTTP_400_BAD_REQUEST)

    now = timezone.localtime()
    late = employee.shift_start is not None and now.time() > employee.shift_start
    try:
        with transaction.atomic():
            attendance = Attendance.objects.create(
                employee=employee,
                date=now.date(),
                check_in=now,
                status='late' if late else 'present',
                location_check_in=serializer.validated_data.get('location'),
                notes=serializer.validated_data.get('notes', ''),
            )
    except IntegrityError:
        return Response({'error': f"{employee.full_name} has already checked in today"},
                        status=status.HTTP_400_BAD_REQUEST)

    create_audit_log(request=request, action='check_in', model_name='Attendance', object_id=attendance.pk,
                     object_name=str(attendance), changes={'status': attendance.status})
    logger.info(f"{employee.full_name} checked in ({attendance.status})")
    return Response(AttendanceSerializer(attendance).data, status=status.HTTP_201_CREATED)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def attendance_check_out(request, pk):
    """Check out of an attendance row that is checked in"""
    attendance = get_object_or_404(Attendance.objects.select_related('employee'), pk=pk)
    if attendance.employee != get_employee(request.user) and not _manages(request.user, attendance.employee):
        return Response(ADMIN_REQUIRED, status=status.HTTP_403_FORBIDDEN)
    if attendance.check_out is not None:
        return Response({'error': 'Already checked out'}, status=status.HTTP_400_BAD_REQUEST)

    attendance.check_out = timezone.now()
    attendance.save(update_fields=['check_out', 'updated_at'])
    create_audit_log(request=request, action='check_out', model_name='Attendance', object_id=attendance.pk,
                     object_name=str(attendance))
    return Response(AttendanceSerializer(attendance).data)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def my_attendance(request):
    """The logged-in employee's attendance, newest first, with today's row"""
    employee = get_employee(request.user)
    if employee is None:
        return Response({'today': None, 'history': []})
    records = employee.attendance.all()
    today = records.filter(date=timezone.localdate()).first()
    return Response({
        'today': AttendanceSerializer(today).data if today else None,
        'history': AttendanceSerializer(records[:31], many=True).data,
    })
