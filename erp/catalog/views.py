import logging
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes, parser_classes
from rest_framework.parsers import MultiPartParser, FormParser, JSONParser
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django.db import transaction
from django.db.models import ProtectedError
from django.shortcuts import get_object_or_404
from erp.core.cache_signals import suspend_cache_signals
from erp.core.csv_utils import parse_csv, read_upload, csv_response
from erp.core.models import AuditLog
from erp.core.pagination import paginated_response
from erp.core.serializers import AuditLogSerializer
from erp.core.utils import create_audit_log, snapshot
from .filters import ProductFilter
from .models import Category, SubCategory, Brand, Unit, TaxRate, Product
from .serializers import (
    CategorySerializer, SubCategorySerializer, BrandSerializer, UnitSerializer,
    TaxRateSerializer, ProductSerializer
)
from .utils import PRODUCT_CSV_HEADERS, map_product_row, save_imported_product

logger = logging.getLogger(__name__)


def _detail(request, instance, serializer_class, model_name):
    """Shared retrieve/update/delete for the simple catalog masters"""
    if request.method == 'GET':
        return Response(serializer_class(instance).data)
    elif request.method in ('PUT', 'PATCH'):
        serializer = serializer_class(instance, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            serializer.save()
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        create_audit_log(request=request, action='delete', model_name=model_name,
                         object_id=instance.pk, object_name=str(instance))
        instance.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)


def _create(request, serializer_class, model_name):
    serializer = serializer_class(data=request.data)
    if serializer.is_valid():
        instance = serializer.save()
        create_audit_log(request=request, action='create', model_name=model_name,
                         object_id=instance.pk, object_name=str(instance))
        return Response(serializer.data, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


# Category views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def category_list_create(request):
    """List all categories or create a new category"""
    if request.method == 'GET':
        categories = Category.objects.all()
        search = request.query_params.get('search')
        if search:
            categories = categories.filter(name__icontains=search)
        return Response(CategorySerializer(categories, many=True).data)
    return _create(request, CategorySerializer, 'Category')


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def category_detail(request, pk):
    """Retrieve, update or delete a category"""
    category = get_object_or_404(Category, pk=pk)
    return _detail(request, category, CategorySerializer, 'Category')


# SubCategory views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def sub_category_list_create(request):
    """List sub-categories (optionally of one category) or create one"""
    if request.method == 'GET':
        sub_categories = SubCategory.objects.select_related('category')
        category = request.query_params.get('category')
        if category:
            sub_categories = sub_categories.filter(category_id=category)
        return Response(SubCategorySerializer(sub_categories, many=True).data)
    return _create(request, SubCategorySerializer, 'SubCategory')


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def sub_category_detail(request, pk):
    """Retrieve, update or delete a sub-category"""
    sub_category = get_object_or_404(SubCategory, pk=pk)
    return _detail(request, sub_category, SubCategorySerializer, 'SubCategory')


# Brand views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def brand_list_create(request):
    """List all brands or create a new brand"""
    if request.method == 'GET':
        return Response(BrandSerializer(Brand.objects.all(), many=True).data)
    return _create(request, BrandSerializer, 'Brand')


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def brand_detail(request, pk):
    """Retrieve, update or delete a brand"""
    brand = get_object_or_404(Brand, pk=pk)
    return _detail(request, brand, BrandSerializer, 'Brand')


# Unit views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def unit_list_create(request):
    """List all units or create a new unit"""
    if request.method == 'GET':
        return Response(UnitSerializer(Unit.objects.all(), many=True).data)
    return _create(request, UnitSerializer, 'Unit')


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def unit_detail(request, pk):
    """Retrieve, update or delete a unit"""
    unit = get_object_or_404(Unit, pk=pk)
    return _detail(request, unit, UnitSerializer, 'Unit')


# TaxRate views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def tax_rate_list_create(request):
    """List tax rates ordered by percentage or create a new one"""
    if request.method == 'GET':
        tax_rates = TaxRate.objects.all()
        if request.query_params.get('active') == 'true':
            tax_rates = tax_rates.filter(is_active=True)
        return Response(TaxRateSerializer(tax_rates, many=True).data)
    return _create(request, TaxRateSerializer, 'TaxRate')


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def tax_rate_detail(request, pk):
    """Retrieve, update or delete a tax rate"""
    tax_rate = get_object_or_404(TaxRate, pk=pk)
    return _detail(request, tax_rate, TaxRateSerializer, 'TaxRate')


# Product views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def product_list_create(request):
    """List products with filters or create a new product"""
    if request.method == 'GET':
        queryset = Product.objects.select_related('category', 'sub_category', 'brand', 'unit', 'tax_rate')
        filterset = ProductFilter(request.query_params, queryset=queryset)
        if not filterset.is_valid():
            return Response(filterset.errors, status=status.HTTP_400_BAD_REQUEST)
        return paginated_response(request, filterset.qs.order_by('name', 'id'), ProductSerializer, default_limit=50)
    else:
        serializer = ProductSerializer(data=request.data)
        if serializer.is_valid():
            product = serializer.save()
            create_audit_log(request=request, action='create', model_name='Product', object_id=product.pk,
                             object_name=product.name, object_reference=product.sku,
                             changes={'new': snapshot(product)})
            logger.info(f"Product {product.sku} created by {request.user.username}")
            return Response(ProductSerializer(product).data, status=status.HTTP_201_CREATED)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def product_detail(request, pk):
    """Retrieve, update or delete a product"""
    product = get_object_or_404(Product.objects.select_related('category', 'sub_category', 'brand', 'unit', 'tax_rate'), pk=pk)

    if request.method == 'GET':
        return Response(ProductSerializer(product).data)
    elif request.method in ('PUT', 'PATCH'):
        old = snapshot(product)
        serializer = ProductSerializer(product, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            product = serializer.save()
            new = snapshot(product)
            action = 'stock_adjust' if old.get('current_stock') != new.get('current_stock') else 'update'
            create_audit_log(request=request, action=action, model_name='Product', object_id=product.pk,
                             object_name=product.name, object_reference=product.sku,
                             changes={'old': old, 'new': new})
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        try:
            with transaction.atomic():
                product_id, name, sku = product.pk, product.name, product.sku
                product.delete()
        except ProtectedError:
            return Response(
                {'error': 'Product is used on purchase, sales or stock documents. Deactivate it instead.'},
                status=status.HTTP_400_BAD_REQUEST
            )
        create_audit_log(request=request, action='delete', model_name='Product',
                         object_id=product_id, object_name=name, object_reference=sku)
        return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def product_services(request):
    """Active services, used when billing tasks and bookings"""
    services = Product.objects.services().filter(is_active=True).select_related('category', 'tax_rate')
    return Response(ProductSerializer(services, many=True).data)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def product_low_stock(request):
    """Products at or below their alert quantity"""
    products = Product.objects.low_stock().filter(is_active=True).select_related('category', 'brand', 'unit')
    serializer = ProductSerializer(products.order_by('current_stock', 'name'), many=True)
    return Response(serializer.data)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def product_stock_history(request, pk):
    """Stock movements of a product, newest first"""
    product = get_object_or_404(Product, pk=pk)
    logs = AuditLog.objects.select_related('user').filter(
        model_name='Product',
        object_id=str(product.pk),
        action__in=['stock_in', 'stock_out', 'stock_adjust'],
    ).order_by('-created_at', '-id')
    return paginated_response(request, logs, AuditLogSerializer, default_limit=50)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
@parser_classes([MultiPartParser, FormParser, JSONParser])
def product_import(request):
    """
    Import products from an uploaded CSV file (field name 'file').

    Every valid row is saved; invalid rows are reported back with their row
    number and skipped. Existing products are matched on SKU and updated.
    """
    upload = request.FILES.get('file')
    if upload is None:
        return Response({'error': 'Upload a CSV file in the "file" field'}, status=status.HTTP_400_BAD_REQUEST)

    try:
        content = read_upload(upload)
    except UnicodeDecodeError:
        return Response({'error': 'CSV file must be UTF-8 encoded'}, status=status.HTTP_400_BAD_REQUEST)

    result = parse_csv(content, map_product_row, required_headers=['name'])
    created = updated = 0
    with suspend_cache_signals(), transaction.atomic():
        for row in result.data:
            product, was_created = save_imported_product(row)
            if was_created:
                created += 1
            else:
                updated += 1

    create_audit_log(request=request, action='import', model_name='Product', object_id='csv',
                     object_name=upload.name,
                     changes={'created': created, 'updated': updated, 'errors': len(result.errors)})
    logger.info(f"Product import by {request.user.username}: {created} created, {updated} updated, {len(result.errors)} errors")
    payload = result.as_dict()
    payload.update({'created': created, 'updated': updated})
    return Response(payload, status=status.HTTP_200_OK)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def product_export(request):
    """Export the (filtered) product list as CSV"""
    queryset = Product.objects.select_related('category', 'sub_category', 'brand', 'unit', 'tax_rate')
    queryset = ProductFilter(request.query_params, queryset=queryset).qs.order_by('name')
    rows = (
        [
            p.name, p.sku, p.item_type,
            p.category.name if p.category else '',
            p.sub_category.name if p.sub_category else '',
            p.brand.name if p.brand else '',
            p.unit.name if p.unit else '',
            p.hsn_code, p.purchase_price, p.sale_price, p.current_stock,
            p.alert_quantity if p.alert_quantity is not None else '',
            p.tax_rate.percentage if p.tax_rate else '',
            p.description,
        ]
        for p in queryset
    )
    return csv_response('products.csv', PRODUCT_CSV_HEADERS, rows)
