import logging
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django.shortcuts import get_object_or_404
from django.db import transaction
from erp.core.utils import create_audit_log, is_admin_user, snapshot
from erp.staff.models import Employee
from .models import Store
from .serializers import StoreSerializer

logger = logging.getLogger('erp.locations')


def can_manage_store(user, store):
    """Admins manage every store; a store's admin employee manages that store"""
    if is_admin_user(user):
        return True
    employee = getattr(user, 'employee_profile', None)
    return employee is not None and employee.role == 'admin' and employee.store_id == store.pk


def link_store_admin(user, store):
    """Make the user an admin employee of the store, creating the employee row if needed"""
    employee, created = Employee.objects.update_or_create(
        user=user,
        defaults={
            'store': store,
            'role': 'admin',
            'status': 'active',
        },
    )
    if created or not employee.full_name:
        employee.full_name = user.get_full_name() or user.username
        employee.email = employee.email or user.email
        employee.save(update_fields=['full_name', 'email', 'updated_at'])
    return employee


# Store views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def store_list_create(request):
    """List stores visible to the user or create a new store owned by the user"""
    if request.method == 'GET':
        if is_admin_user(request.user):
            stores = Store.objects.all()
        else:
            employee = getattr(request.user, 'employee_profile', None)
            store_id = employee.store_id if employee else None
            stores = Store.objects.filter(pk=store_id)
        is_active = request.query_params.get('is_active')
        if is_active is not None:
            stores = stores.filter(is_active=is_active.lower() == 'true')
        serializer = StoreSerializer(stores, many=True)
        return Response(serializer.data)
    else:
        serializer = StoreSerializer(data=request.data)
        if serializer.is_valid():
            with transaction.atomic():
                store = serializer.save()
                link_store_admin(request.user, store)
            create_audit_log(request=request, action='create', model_name='Store',
                             object_id=store.pk, object_name=store.name)
            logger.info(f"Store '{store.name}' created by {request.user.username}")
            return Response(StoreSerializer(store).data, status=status.HTTP_201_CREATED)
        logger.warning(f"Store creation validation failed: {serializer.errors}")
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def store_detail(request, pk):
    """Retrieve, update or delete a store (update/delete requires store admin)"""
    store = get_object_or_404(Store, pk=pk)

    if request.method == 'GET':
        return Response(StoreSerializer(store).data)

    if not can_manage_store(request.user, store):
        logger.warning(f"User {request.user.username} attempted to modify store {pk} without admin privileges")
        return Response({'error': 'Only store administrators can modify stores'}, status=status.HTTP_403_FORBIDDEN)

    if request.method in ('PUT', 'PATCH'):
        old = snapshot(store)
        serializer = StoreSerializer(store, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            store = serializer.save()
            create_audit_log(request=request, action='update', model_name='Store', object_id=store.pk,
                             object_name=store.name, changes={'old': old, 'new': snapshot(store)})
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        logger.info(f"User {request.user.username} deleting store {pk} ({store.name})")
        create_audit_log(request=request, action='delete', model_name='Store',
                         object_id=store.pk, object_name=store.name)
        store.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def store_complete_onboarding(request, pk):
    """Mark the setup wizard as finished for a store"""
    store = get_object_or_404(Store, pk=pk)
    if not can_manage_store(request.user, store):
        return Response({'error': 'Only store administrators can modify stores'}, status=status.HTTP_403_FORBIDDEN)
    store.onboarding_completed = True
    store.save(update_fields=['onboarding_completed', 'updated_at'])
    create_audit_log(request=request, action='update', model_name='Store', object_id=store.pk,
                     object_name=store.name, changes={'onboarding_completed': True})
    return Response(StoreSerializer(store).data)
