"""
Management command to add the default lookup data a new installation needs
"""
from decimal import Decimal
from django.contrib.auth.models import Group
from django.core.management.base import BaseCommand
from erp.catalog.models import TaxRate, Unit
from erp.expenses.models import ExpenseCategory


class Command(BaseCommand):
    help = "Creates the Admin group, GST tax rates, units of measure and expense categories"

    groups = ['Admin']

    tax_rates = [
        ('GST 0%', Decimal('0.00')),
        ('GST 5%', Decimal('5.00')),
        ('GST 12%', Decimal('12.00')),
        ('GST 18%', Decimal('18.00')),
        ('GST 28%', Decimal('28.00')),
    ]

    units = [
        ('Pieces', 'pcs', False),
        ('Kilogram', 'kg', True),
        ('Litre', 'l', True),
        ('Metre', 'm', True),
        ('Box', 'box', False),
        ('Hour', 'hr', True),
    ]

    expense_categories = ['Rent', 'Utilities', 'Salaries', 'Transport', 'Maintenance', 'Office Supplies', 'Other']

    def handle(self, *args, **options):
        created = 0

        for name in self.groups:
            _, was_created = Group.objects.get_or_create(name=name)
            created += was_created

        for name, percentage in self.tax_rates:
            if not TaxRate.objects.filter(percentage=percentage).exists():
                TaxRate.objects.create(name=name, percentage=percentage)
                created += 1

        for name, short_name, allow_decimal in self.units:
            _, was_created = Unit.objects.get_or_create(
                name=name, defaults={'short_name': short_name, 'allow_decimal': allow_decimal}
            )
            created += was_created

        for name in self.expense_categories:
            _, was_created = ExpenseCategory.objects.get_or_create(name=name)
            created += was_created

        if created:
            self.stdout.write(self.style.SUCCESS(f"Created {created} default records"))
        else:
            self.stdout.write("Defaults already present, nothing to do")
