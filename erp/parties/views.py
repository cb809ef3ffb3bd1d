import logging
from decimal import Decimal
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes, parser_classes
from rest_framework.parsers import MultiPartParser, FormParser, JSONParser
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django.db import transaction
from django.db.models import ProtectedError, Sum
from django.shortcuts import get_object_or_404
from erp.core.cache_signals import suspend_cache_signals
from erp.core.csv_utils import parse_csv, read_upload, csv_response
from erp.core.utils import create_audit_log, snapshot
from .models import Contact, search_contacts
from .serializers import ContactSerializer
from .utils import CONTACT_CSV_HEADERS, map_contact_row, save_imported_contact

logger = logging.getLogger(__name__)


def filter_contacts(request, queryset):
    role = request.query_params.get('role')
    if role == 'customer':
        queryset = queryset.customers()
    elif role == 'supplier':
        queryset = queryset.suppliers()
    elif role:
        queryset = queryset.filter(role=role)

    search = request.query_params.get('search', '').strip()
    if search:
        queryset = search_contacts(queryset, search)

    is_active = request.query_params.get('is_active')
    if is_active is not None:
        queryset = queryset.filter(is_active=is_active.lower() == 'true')
    return queryset


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def contact_list_create(request):
    """List contacts (filter by role/search) or create a new contact"""
    if request.method == 'GET':
        contacts = filter_contacts(request, Contact.objects.all())
        return Response(ContactSerializer(contacts, many=True).data)
    else:
        serializer = ContactSerializer(data=request.data)
        if serializer.is_valid():
            contact = serializer.save()
            create_audit_log(request=request, action='create', model_name='Contact', object_id=contact.pk,
                             object_name=contact.name, changes={'new': snapshot(contact)})
            return Response(serializer.data, status=status.HTTP_201_CREATED)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def contact_detail(request, pk):
    """Retrieve, update or delete a contact"""
    contact = get_object_or_404(Contact, pk=pk)

    if request.method == 'GET':
        return Response(ContactSerializer(contact).data)
    elif request.method in ('PUT', 'PATCH'):
        old = snapshot(contact)
        serializer = ContactSerializer(contact, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            contact = serializer.save()
            create_audit_log(request=request, action='update', model_name='Contact', object_id=contact.pk,
                             object_name=contact.name, changes={'old': old, 'new': snapshot(contact)})
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        contact_id, name = contact.pk, contact.name
        try:
            with transaction.atomic():
                contact.delete()
        except ProtectedError:
            return Response(
                {'error': 'Contact has sales or purchase documents and cannot be deleted'},
                status=status.HTTP_400_BAD_REQUEST
            )
        create_audit_log(request=request, action='delete', model_name='Contact',
                         object_id=contact_id, object_name=name)
        return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def contact_statement(request, pk):
    """Billed, paid and outstanding amounts for a customer's sales documents"""
    from erp.sales.models import SalesOrder
    from erp.sales.serializers import SalesOrderListSerializer

    contact = get_object_or_404(Contact, pk=pk)
    documents = SalesOrder.objects.billable().filter(customer=contact).order_by('-order_date', '-id')
    totals = documents.aggregate(total=Sum('total_amount'), paid=Sum('paid_amount'))
    total = totals['total'] or Decimal('0.00')
    paid = totals['paid'] or Decimal('0.00')
    return Response({
        'contact': ContactSerializer(contact).data,
        'documents': SalesOrderListSerializer(documents, many=True).data,
        'total_billed': total,
        'total_paid': paid,
        'balance_due': max(total - paid, Decimal('0.00')),
    })


@api_view(['POST'])
@permission_classes([IsAuthenticated])
@parser_classes([MultiPartParser, FormParser, JSONParser])
def contact_import(request):
    """Import contacts from an uploaded CSV file (field name 'file')"""
    upload = request.FILES.get('file')
    if upload is None:
        return Response({'error': 'Upload a CSV file in the "file" field'}, status=status.HTTP_400_BAD_REQUEST)
    try:
        content = read_upload(upload)
    except UnicodeDecodeError:
        return Response({'error': 'CSV file must be UTF-8 encoded'}, status=status.HTTP_400_BAD_REQUEST)

    result = parse_csv(content, map_contact_row, required_headers=['name'])
    created = updated = 0
    with suspend_cache_signals(), transaction.atomic():
        for row in result.data:
            contact, was_created = save_imported_contact(row)
            if was_created:
                created += 1
            else:
                updated += 1

    create_audit_log(request=request, action='import', model_name='Contact', object_id='csv',
                     object_name=upload.name,
                     changes={'created': created, 'updated': updated, 'errors': len(result.errors)})
    logger.info(f"Contact import by {request.user.username}: {created} created, {updated} updated")
    payload = result.as_dict()
    payload.update({'created': created, 'updated': updated})
    return Response(payload)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def contact_export(request):
    """Export the (filtered) contact list as CSV"""
    contacts = filter_contacts(request, Contact.objects.all())
    rows = (
        [c.name, c.email, c.phone, c.company, c.role, c.address, c.city, c.state, c.gstin, c.notes]
        for c in contacts
    )
    return csv_response('contacts.csv', CONTACT_CSV_HEADERS, rows)
