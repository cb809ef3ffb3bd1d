"""Utility functions for audit logging and document numbering"""
import datetime
import logging
import uuid
from decimal import Decimal, ROUND_HALF_UP

from django.db import transaction
from django.forms.models import model_to_dict
from django.utils import timezone
from django.utils.dateparse import parse_date
from rest_framework import serializers

from .models import AuditLog

logger = logging.getLogger(__name__)

TWO_PLACES = Decimal('0.01')


def money(value):
    """Round a Decimal-compatible value to two decimal places"""
    return Decimal(str(value or 0)).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def generate_document_number(prefix, model, field):
    """
    Generate a unique document number such as PO-20240131-1A2B3C4D

    Args:
        prefix: Document prefix (PO, INV, QT, ...)
        model: Model class the number must be unique in
        field: Name of the number field on that model
    """
    def _candidate():
        return f"{prefix}-{timezone.now().strftime('%Y%m%d')}-{str(uuid.uuid4())[:8].upper()}"

    number = _candidate()
    while model.objects.filter(**{field: number}).exists():
        number = _candidate()
    return number


def get_client_ip(request):
    """Extract client IP address from request"""
    if not request or not hasattr(request, 'META'):
        return None
    x_forwarded_for = request.META.get('HTTP_X_FORWARDED_FOR')
    if x_forwarded_for:
        ip = x_forwarded_for.split(',')[0].strip()
    else:
        ip = request.META.get('REMOTE_ADDR')
    return ip or None


def diff_fields(old_data, new_data):
    """Return the sorted keys whose values differ between two snapshots"""
    old_data = old_data or {}
    new_data = new_data or {}
    keys = set(old_data) | set(new_data)
    return sorted(k for k in keys if old_data.get(k) != new_data.get(k))


def create_audit_log(request=None, action=None, model_name=None, object_id=None,
                     changes=None, user=None, object_name=None, object_reference=None):
    """
    Create an audit log entry

    Args:
        request: Django request object (for user, IP and user agent) - optional if user is provided
        action: Action type (create, update, delete, stock_in, convert, etc.)
        model_name: Name of the model being acted upon
        object_id: ID of the object (as string)
        changes: Dictionary of changes made. When it holds 'old' and 'new'
            snapshots the changed field names are derived from them.
        user: Optional user override (defaults to request.user if request provided)
        object_name: Human-readable name of the object (e.g., product name, invoice number)
        object_reference: Reference identifier (e.g., invoice number, order number)
    """
    try:
        audit_user = None
        if user:
            audit_user = user
        elif request and hasattr(request, 'user'):
            audit_user = request.user

        ip_address = get_client_ip(request) if request else None
        user_agent = None
        if request is not None and hasattr(request, 'META'):
            user_agent = (request.META.get('HTTP_USER_AGENT') or '')[:500] or None

        if not action or not model_name or not object_id:
            logger.warning(f"Audit log creation skipped: missing required fields (action={action}, model_name={model_name}, object_id={object_id})")
            return None

        changes = changes or {}
        changed_fields = []
        if 'old' in changes or 'new' in changes:
            changed_fields = diff_fields(changes.get('old'), changes.get('new'))

        # Savepoint keeps a failed insert from breaking the caller's transaction
        with transaction.atomic():
            return AuditLog.objects.create(
                user=audit_user if audit_user and audit_user.is_authenticated else None,
                action=action,
                model_name=model_name,
                object_id=str(object_id),
                object_name=object_name,
                object_reference=object_reference,
                changes=changes,
                changed_fields=changed_fields,
                ip_address=ip_address,
                user_agent=user_agent,
            )
    except Exception as e:
        # Don't fail the main operation if audit logging fails
        logger.error(f"Failed to create audit log: {str(e)}")
        return None


def is_admin_user(user):
    """Check whether a user may perform administrative operations"""
    if not user or not user.is_authenticated:
        return False
    return user.is_admin()


def snapshot(instance, fields=None):
    """JSON-safe dict of a model instance for audit 'old'/'new' values"""
    data = model_to_dict(instance, fields=fields)
    for key, value in data.items():
        if isinstance(value, (Decimal, datetime.date, datetime.time)):
            data[key] = str(value)
        elif isinstance(value, list):
            data[key] = [getattr(v, 'pk', v) for v in value]
    return data


def line_amounts(quantity, unit_price, tax_rate):
    """
    Amounts for one document line

    Returns (taxable, tax_amount, subtotal) where subtotal is
    quantity x unit price plus tax.
    """
    taxable = money(Decimal(str(quantity or 0)) * Decimal(str(unit_price or 0)))
    tax_amount = money(taxable * Decimal(str(tax_rate or 0)) / Decimal('100'))
    return taxable, tax_amount, taxable + tax_amount


def date_param(request, name):
    """A YYYY-MM-DD query parameter as a date; None when absent, 400 when malformed"""
    value = request.query_params.get(name)
    if not value:
        return None
    try:
        parsed = parse_date(value)
    except ValueError:
        parsed = None
    if parsed is None:
        raise serializers.ValidationError({name: f"'{value}' is not a valid date (YYYY-MM-DD)"})
    return parsed
