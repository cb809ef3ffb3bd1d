"""
Test utilities and factories for creating test data
"""
from django.contrib.auth import get_user_model
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken
from erp.locations.models import Store
from erp.catalog.models import Category, Brand, Product, TaxRate
from erp.parties.models import Contact
from erp.purchasing.models import PurchaseOrder, PurchaseItem
from erp.sales.models import SalesOrder, SalesItem
from erp.staff.models import Employee, EmployeeTask
from erp.expenses.models import Expense, ExpenseCategory
from erp.crm.models import Deal
from decimal import Decimal
from django.utils import timezone
import random
import string

User = get_user_model()

TEST_PASSWORD = 'Str0ng-Test-Passw0rd!'


class TestDataFactory:
    """Factory class for creating test data"""

    @staticmethod
    def random_string(length=10):
        """Generate a random string"""
        return ''.join(random.choices(string.ascii_letters + string.digits, k=length))

    @staticmethod
    def create_user(username=None, email=None, password=TEST_PASSWORD, is_staff=False, is_superuser=False):
        """Create a test user"""
        if not username:
            username = f'testuser_{TestDataFactory.random_string(6)}'
        if not email:
            email = f'{username}@test.com'
        return User.objects.create_user(
            username=username,
            email=email,
            password=password,
            is_staff=is_staff,
            is_superuser=is_superuser
        )

    @staticmethod
    def create_admin(username=None):
        return TestDataFactory.create_user(username=username, is_staff=True)

    @staticmethod
    def create_store(name=None, domain=None):
        """Create a test store"""
        if not name:
            name = f'Store_{TestDataFactory.random_string(6)}'
        return Store.objects.create(
            name=name,
            domain=domain,
            address=f'Test Address {name}',
            phone='1234567890'
        )

    @staticmethod
    def create_category(name=None):
        if not name:
            name = f'Category_{TestDataFactory.random_string(6)}'
        return Category.objects.create(name=name, description=f'Test category {name}')

    @staticmethod
    def create_brand(name=None):
        if not name:
            name = f'Brand_{TestDataFactory.random_string(6)}'
        return Brand.objects.create(name=name, description=f'Test brand {name}')

    @staticmethod
    def create_tax_rate(name=None, percentage=None):
        """Create a test tax rate"""
        if not name:
            name = f'GST_{TestDataFactory.random_string(4)}'
        if percentage is None:
            percentage = Decimal('18.00')
        return TaxRate.objects.create(name=name, percentage=percentage)

    @staticmethod
    def create_product(name=None, sku=None, category=None, stock=Decimal('0'), purchase_price=Decimal('60.00'),
                       sale_price=Decimal('100.00'), alert_quantity=None, tax_rate=None, item_type='product'):
        """Create a test product (or service with item_type='service')"""
        if not name:
            name = f'Product_{TestDataFactory.random_string(6)}'
        if not sku:
            sku = f'SKU-{TestDataFactory.random_string(8).upper()}'
        return Product.objects.create(
            name=name,
            sku=sku,
            item_type=item_type,
            category=category,
            tax_rate=tax_rate,
            purchase_price=purchase_price,
            sale_price=sale_price,
            current_stock=Decimal(str(stock)),
            alert_quantity=alert_quantity,
        )

    @staticmethod
    def create_service(name=None, sale_price=Decimal('500.00')):
        return TestDataFactory.create_product(name=name, item_type='service', purchase_price=Decimal('0.00'),
                                              sale_price=sale_price)

    @staticmethod
    def create_customer(name=None, phone=None, state='', role='customer'):
        """Create a test customer"""
        if not name:
            name = f'Customer_{TestDataFactory.random_string(6)}'
        if phone is None:
            phone = f'9{random.randint(100000000, 999999999)}'
        return Contact.objects.create(
            name=name,
            phone=phone,
            email=f'{name.lower()}@test.com',
            state=state,
            role=role,
        )

    @staticmethod
    def create_supplier(name=None, phone=None, state=''):
        """Create a test supplier"""
        if not name:
            name = f'Supplier_{TestDataFactory.random_string(6)}'
        return TestDataFactory.create_customer(name=name, phone=phone, state=state, role='supplier')

    @staticmethod
    def create_sales_order(user=None, customer=None, document_type='order', items=None, order_date=None,
                           store=None, status='open'):
        """
        Create a sales document straight in the database

        items is a list of (product, quantity, unit_price, tax_rate) tuples.
        Stock is not touched; use the API when stock movements matter.
        """
        order = SalesOrder.objects.create(
            order_number=f'T-{TestDataFactory.random_string(10).upper()}',
            document_type=document_type,
            customer=customer,
            store=store,
            order_date=order_date or timezone.localdate(),
            status=status,
            created_by=user,
        )
        for product, quantity, unit_price, tax_rate in items or []:
            SalesItem.objects.create(
                sales_order=order,
                product=product,
                quantity=Decimal(str(quantity)),
                unit_price=Decimal(str(unit_price)),
                tax_rate=Decimal(str(tax_rate)),
            )
        order.recalculate_totals()
        return order

    @staticmethod
    def create_purchase_order(user=None, supplier=None, items=None, status='pending', order_date=None):
        """Create a purchase order straight in the database (no stock movement)"""
        if supplier is None:
            supplier = TestDataFactory.create_supplier()
        order = PurchaseOrder.objects.create(
            order_number=f'TPO-{TestDataFactory.random_string(10).upper()}',
            supplier=supplier,
            order_date=order_date or timezone.localdate(),
            status=status,
            created_by=user,
        )
        for product, quantity, unit_price, tax_rate in items or []:
            PurchaseItem.objects.create(
                purchase_order=order,
                product=product,
                quantity=Decimal(str(quantity)),
                unit_price=Decimal(str(unit_price)),
                tax_rate=Decimal(str(tax_rate)),
            )
        order.recalculate_totals()
        return order

    @staticmethod
    def create_employee(user=None, store=None, role='employee', full_name=None, **kwargs):
        if not full_name:
            full_name = f'Employee {TestDataFactory.random_string(5)}'
        return Employee.objects.create(user=user, store=store, role=role, full_name=full_name, **kwargs)

    @staticmethod
    def create_task(employee=None, store=None, title='AC Repair', status='pending', payment_amount=Decimal('0.00'),
                    **kwargs):
        return EmployeeTask.objects.create(
            employee=employee,
            store=store,
            title=title,
            status=status,
            payment_amount=payment_amount,
            **kwargs
        )

    @staticmethod
    def create_expense(amount=Decimal('100.00'), category=None, expense_date=None, store=None):
        if category is None:
            category, _ = ExpenseCategory.objects.get_or_create(name='General')
        return Expense.objects.create(
            reference_number=f'TEXP-{TestDataFactory.random_string(10).upper()}',
            category=category,
            amount=amount,
            expense_date=expense_date or timezone.localdate(),
            store=store,
        )

    @staticmethod
    def create_deal(title=None, stage='lead', position=0, value=Decimal('1000.00'), contact=None):
        return Deal.objects.create(
            title=title or f'Deal {TestDataFactory.random_string(5)}',
            stage=stage,
            position=position,
            value=value,
            contact=contact,
        )


class AuthenticatedAPIClient(APIClient):
    """APIClient with authentication helper"""

    def authenticate_user(self, user):
        """Authenticate the client with a user"""
        refresh = RefreshToken.for_user(user)
        self.credentials(HTTP_AUTHORIZATION=f'Bearer {refresh.access_token}')
        return self

    def logout(self):
        """Remove authentication"""
        self.credentials()
