from django.db import models
from django.db.models import Q


class ContactQuerySet(models.QuerySet):
    def customers(self):
        return self.filter(role__in=['customer', 'both'])

    def suppliers(self):
        return self.filter(role__in=['supplier', 'both'])


class Contact(models.Model):
    """Customers and suppliers"""
    ROLE_CHOICES = [
        ('customer', 'Customer'),
        ('supplier', 'Supplier'),
        ('both', 'Customer & Supplier'),
    ]

    name = models.CharField(max_length=200, db_index=True)
    email = models.EmailField(blank=True)
    phone = models.CharField(max_length=20, blank=True, db_index=True)
    company = models.CharField(max_length=200, blank=True)
    role = models.CharField(max_length=20, choices=ROLE_CHOICES, default='customer', db_index=True)
    address = models.TextField(blank=True)
    city = models.CharField(max_length=100, blank=True)
    state = models.CharField(max_length=100, blank=True, help_text="Place of supply for tax purposes")
    gstin = models.CharField(max_length=15, blank=True)
    notes = models.TextField(blank=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = ContactQuerySet.as_manager()

    def __str__(self):
        return self.name

    class Meta:
        db_table = 'contacts'
        ordering = ['name']

    @property
    def is_customer(self):
        return self.role in ('customer', 'both')

    @property
    def is_supplier(self):
        return self.role in ('supplier', 'both')


def search_contacts(queryset, search):
    """Case-insensitive match on name, phone, email, company or GSTIN"""
    return queryset.filter(
        Q(name__icontains=search) |
        Q(phone__icontains=search) |
        Q(email__icontains=search) |
        Q(company__icontains=search) |
        Q(gstin__icontains=search)
    )
