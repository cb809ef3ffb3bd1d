from django.db import models
from decimal import Decimal
from erp.core.models import User
from erp.locations.models import Store
from erp.parties.models import Contact


class Deal(models.Model):
    """Sales pipeline card; position orders the cards within a stage from zero"""
    STAGE_CHOICES = [
        ('lead', 'Lead'),
        ('negotiation', 'Negotiation'),
        ('closed', 'Closed'),
    ]

    ACTIVE_STAGES = ('lead', 'negotiation')

    title = models.CharField(max_length=255)
    contact = models.ForeignKey(Contact, on_delete=models.SET_NULL, null=True, blank=True, related_name='deals')
    value = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    stage = models.CharField(max_length=20, choices=STAGE_CHOICES, default='lead')
    position = models.PositiveIntegerField(default=0)
    expected_close_date = models.DateField(null=True, blank=True)
    notes = models.TextField(blank=True)
    owner = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='deals')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.title

    class Meta:
        db_table = 'deals'
        ordering = ['stage', 'position', 'id']
        indexes = [
            models.Index(fields=['stage', 'position'], name='idx_deal_stage_position'),
        ]


class Booking(models.Model):
    """Service booking request from a customer"""
    STATUS_CHOICES = [
        ('pending', 'Pending'),
        ('confirmed', 'Confirmed'),
        ('completed', 'Completed'),
        ('cancelled', 'Cancelled'),
    ]

    customer_name = models.CharField(max_length=255)
    customer_phone = models.CharField(max_length=20)
    service_type = models.CharField(max_length=255)
    store = models.ForeignKey(Store, on_delete=models.SET_NULL, null=True, blank=True, related_name='bookings')
    preferred_date = models.DateField(null=True, blank=True)
    preferred_time = models.CharField(max_length=50, blank=True)
    address = models.TextField(blank=True)
    notes = models.TextField(blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='pending')
    task = models.OneToOneField('staff.EmployeeTask', on_delete=models.SET_NULL, null=True, blank=True, related_name='booking')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.customer_name} - {self.service_type}"

    class Meta:
        db_table = 'bookings'
        ordering = ['-created_at']
