from django.db import models


class Store(models.Model):
    """A business location; employees, stock documents and bookings belong to one"""
    CURRENCY_CHOICES = [
        ('INR', 'Indian Rupee'),
        ('USD', 'US Dollar'),
        ('EUR', 'Euro'),
        ('GBP', 'Pound Sterling'),
        ('AED', 'UAE Dirham'),
    ]

    name = models.CharField(max_length=200)
    domain = models.CharField(max_length=255, unique=True, null=True, blank=True)
    description = models.TextField(blank=True)
    address = models.TextField(blank=True)
    phone = models.CharField(max_length=20, blank=True)
    email = models.EmailField(blank=True)
    website = models.CharField(max_length=255, blank=True)
    logo_url = models.CharField(max_length=500, blank=True)
    gstin = models.CharField(max_length=15, blank=True)
    currency = models.CharField(max_length=3, choices=CURRENCY_CHOICES, default='INR')
    is_active = models.BooleanField(default=True)
    onboarding_completed = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.name

    class Meta:
        db_table = 'stores'
        ordering = ['name']
