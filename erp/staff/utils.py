"""Task workflow and the task completion cascade"""
import logging
from decimal import Decimal
from django.db import transaction
from django.utils import timezone
from rest_framework import serializers
from erp.catalog.models import Product
from erp.catalog.utils import generate_unique_sku
from erp.core.utils import create_audit_log, is_admin_user, money
from erp.parties.models import Contact
from erp.sales.models import SalesOrder, SalesItem
from erp.sales.utils import next_document_number, issue_stock, record_payment
from .models import EmployeeTask

logger = logging.getLogger(__name__)

# Task payment modes as sales payment methods
PAYMENT_METHODS = {
    'cash': 'cash',
    'online': 'upi',
    'mixed': 'other',
}


def get_employee(user):
    return getattr(user, 'employee_profile', None)


def is_store_admin(user):
    """Site admins and admin employees manage staff, tasks and attendance"""
    if is_admin_user(user):
        return True
    employee = get_employee(user)
    return employee is not None and employee.role == 'admin'


def task_payment_status(amount_collected, payment_amount):
    if amount_collected <= 0:
        return 'pending'
    if payment_amount and amount_collected < payment_amount:
        return 'partial'
    return 'paid'


def change_task_status(task, new_status, request=None):
    """Move a task along its workflow; completion goes through complete_task"""
    if new_status == 'completed':
        raise serializers.ValidationError({'status': 'Use the complete action to complete a task'})
    if not task.can_transition_to(new_status):
        raise serializers.ValidationError(
            {'status': f"Cannot move a task from {task.status} to {new_status}"}
        )
    old_status = task.status
    task.status = new_status
    task.save(update_fields=['status', 'updated_at'])
    create_audit_log(request=request, action='status_change', model_name='EmployeeTask', object_id=task.pk,
                     object_name=task.title,
                     changes={'old': {'status': old_status}, 'new': {'status': new_status}})
    return task


def find_or_create_customer(task):
    """Customer contact for a task: matched by phone, else by name, else created"""
    name = (task.customer_name or '').strip()
    phone = (task.customer_phone or '').strip()
    if not name and not phone:
        return None

    contact = None
    if phone:
        contact = Contact.objects.filter(phone=phone).order_by('id').first()
    if contact is None and name:
        contact = Contact.objects.filter(name__iexact=name).order_by('id').first()

    if contact is None:
        contact = Contact.objects.create(
            name=name or phone,
            phone=phone,
            address=task.customer_address or '',
            role='customer',
        )
        logger.info(f"Created customer {contact.name} from task {task.pk}")
    elif contact.role == 'supplier':
        contact.role = 'both'
        contact.save(update_fields=['role', 'updated_at'])
    return contact


def find_or_create_service(task, price):
    """The task's service, else an existing service with the task's title, else a new one"""
    if task.service_id:
        return task.service
    service = Product.objects.services().filter(name__iexact=task.title).order_by('id').first()
    if service is None:
        service = Product.objects.create(
            name=task.title,
            sku=generate_unique_sku(task.title),
            item_type='service',
            sale_price=price,
            description=task.description or '',
        )
        logger.info(f"Created service {service.sku} from task {task.pk}")
    return service


def complete_task(task, amount_collected, payment_mode='cash', request=None):
    """
    Complete an in-progress task and bill it

    In one transaction: records the collection on the task, finds or
    creates the customer and the service, raises a one-line invoice for the
    task's charge (payment_amount, or the amount collected when no charge
    was agreed), records a payment for the amount collected and links the
    invoice to the task. Any failure leaves every record untouched.
    """
    amount_collected = money(amount_collected)
    if amount_collected < 0:
        raise serializers.ValidationError({'amount_collected': 'Amount collected cannot be negative'})
    if payment_mode not in PAYMENT_METHODS:
        raise serializers.ValidationError({'payment_mode': f"Must be one of: {', '.join(PAYMENT_METHODS)}"})

    user = request.user if request is not None and request.user.is_authenticated else None
    with transaction.atomic():
        task = EmployeeTask.objects.select_for_update().get(pk=task.pk)
        if not task.can_transition_to('completed'):
            raise serializers.ValidationError({'status': f"Cannot complete a task that is {task.status}"})

        charge = task.payment_amount if task.payment_amount > 0 else amount_collected
        customer = find_or_create_customer(task)
        service = find_or_create_service(task, charge)

        invoice = SalesOrder.objects.create(
            order_number=next_document_number('invoice'),
            document_type='invoice',
            customer=customer,
            store=task.store,
            order_date=timezone.localdate(),
            channel='task',
            notes=f"Task: {task.title}",
            created_by=user,
        )
        # The agreed charge is billed as-is
        SalesItem.objects.create(
            sales_order=invoice,
            product=service,
            description=task.title,
            quantity=Decimal('1'),
            unit_price=charge,
            tax_rate=Decimal('0'),
        )
        invoice.recalculate_totals()
        issue_stock(invoice, request=request)
        if amount_collected > 0:
            record_payment(invoice, amount_collected, payment_method=PAYMENT_METHODS[payment_mode],
                           request=request, reference=f"Task {task.pk}")

        task.status = 'completed'
        task.completed_at = timezone.now()
        task.amount_collected = amount_collected
        task.payment_mode = payment_mode
        task.payment_status = task_payment_status(amount_collected, task.payment_amount)
        task.service = service
        task.sales_order = invoice
        task.save()

    create_audit_log(request=request, action='complete', model_name='EmployeeTask', object_id=task.pk,
                     object_name=task.title, object_reference=invoice.order_number,
                     changes={'old': {'status': 'in_progress'},
                              'new': {'status': 'completed', 'amount_collected': str(amount_collected),
                                      'payment_status': task.payment_status}})
    logger.info(f"Task {task.pk} completed, billed on {invoice.order_number}")
    return task
